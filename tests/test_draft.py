"""Tests for DVHL draft sessions."""
import random

import pytest

from hq.models import DraftSession
from hq.repository import list_all
from hq.services.competitions import assign_member
from hq.services.draft import (
    close_draft,
    expected_team_id,
    get_current_session,
    list_picks,
    make_pick,
    start_draft,
)
from hq.services.errors import ConflictError, NotFoundError, UnauthorizedError, ValidationError
from hq.services.season_plans import upsert_plan
from hq.services.signups import upsert_intent
from hq.services.team_controls import set_captain


@pytest.fixture
async def manager(make_user, actor_for):
    ops = await make_user("ops", role="dvhl_manager")
    return await actor_for(ops)


@pytest.fixture
async def pool_users(make_user):
    return [await make_user(f"u{i}") for i in range(1, 7)]


@pytest.mark.asyncio
async def test_two_round_draft_and_repeat_pick(session, manager, pool_users, make_league):
    """Four picks across two rounds succeed; re-picking U1 fails."""
    league, (team1, team2) = await make_league()
    await upsert_plan(session, league.id, manager.user_id, rounds=2)
    u1, u2, u3, u4 = [u.id for u in pool_users[:4]]

    draft = await start_draft(session, league.id, manager, pool_user_ids=[u1, u2, u3, u4])
    assert draft.rounds == 2
    assert draft.status == "open"

    for team, user in ((team1, u1), (team2, u2), (team1, u3), (team2, u4)):
        await make_pick(session, league.id, team.id, user, manager)

    with pytest.raises(ConflictError) as exc:
        await make_pick(session, league.id, team1.id, u1, manager)
    assert exc.value.code == "player_already_picked"

    picks = await list_picks(session, draft.id)
    assert [(p.pick_number, p.round, p.team_id, p.user_id) for p in picks] == [
        (1, 1, team1.id, u1),
        (2, 1, team2.id, u2),
        (3, 2, team1.id, u3),
        (4, 2, team2.id, u4),
    ]


@pytest.mark.asyncio
async def test_player_cannot_be_picked_by_two_teams(session, manager, pool_users, make_league):
    league, (team1, team2) = await make_league()
    ids = [u.id for u in pool_users]
    await start_draft(session, league.id, manager, pool_user_ids=ids)

    await make_pick(session, league.id, team1.id, ids[0], manager)
    with pytest.raises(ConflictError) as exc:
        await make_pick(session, league.id, team2.id, ids[0], manager)
    assert exc.value.code == "player_already_picked"


@pytest.mark.asyncio
async def test_snake_order_reverses_odd_rounds(session, manager, pool_users, make_league):
    league, teams = await make_league(team_names=("A", "B", "C"))
    ids = [u.id for u in pool_users]
    draft = await start_draft(session, league.id, manager, pool_user_ids=ids, draft_mode="snake", rounds=2)
    a, b, c = [t.id for t in teams]

    assert [expected_team_id(draft, i) for i in range(6)] == [a, b, c, c, b, a]

    for team_id, user_id in zip((a, b, c), ids[:3]):
        await make_pick(session, league.id, team_id, user_id, manager)
    with pytest.raises(ConflictError) as exc:
        await make_pick(session, league.id, a, ids[3], manager)
    assert exc.value.code == "not_this_team_turn"
    assert exc.value.context["expected_team_id"] == c

    await make_pick(session, league.id, c, ids[3], manager)


@pytest.mark.asyncio
async def test_manual_mode_keeps_linear_order(session, manager, pool_users, make_league):
    league, teams = await make_league(team_names=("A", "B", "C"))
    draft = await start_draft(session, league.id, manager, pool_user_ids=[u.id for u in pool_users])
    a, b, c = [t.id for t in teams]

    assert [expected_team_id(draft, i) for i in range(6)] == [a, b, c, a, b, c]


@pytest.mark.asyncio
async def test_random_team_order_is_a_permutation(session, manager, make_league):
    league, teams = await make_league(team_names=("A", "B", "C", "D"))
    await upsert_plan(session, league.id, manager.user_id, team_order_strategy="random")
    team_ids = [t.id for t in teams]
    rng = random.Random(1234)

    seen = set()
    for _ in range(40):
        draft = await start_draft(session, league.id, manager, rng=rng)
        order = list(draft.pick_order_team_ids)
        assert sorted(order) == sorted(team_ids)
        assert len(order) == len(team_ids)
        seen.add(tuple(order))
    assert len(seen) > 1


@pytest.mark.asyncio
async def test_explicit_team_order_wins(session, manager, make_league):
    league, (team1, team2) = await make_league()
    await upsert_plan(session, league.id, manager.user_id, team_order_strategy="random")

    draft = await start_draft(session, league.id, manager, pick_order_team_ids=[team2.id, team1.id])
    assert draft.pick_order_team_ids == [team2.id, team1.id]

    with pytest.raises(ValidationError) as exc:
        await start_draft(session, league.id, manager, pick_order_team_ids=[team1.id, 999])
    assert exc.value.code == "invalid_dvhl_team"


@pytest.mark.asyncio
async def test_pool_unions_signups_members_and_eligible(session, manager, pool_users, make_league, make_user):
    league, (team1, _) = await make_league()
    signed, member, bystander = pool_users[0], pool_users[1], pool_users[2]
    await upsert_intent(session, league.id, signed.id, wants_captain=False)
    await assign_member(session, team1.id, member.id)

    draft = await start_draft(session, league.id, manager)
    assert draft.pool_user_ids == [signed.id, member.id]

    draft = await start_draft(session, league.id, manager, include_all_eligible=True)
    assert set(draft.pool_user_ids) >= {signed.id, member.id, bystander.id}
    assert len(draft.pool_user_ids) == len(set(draft.pool_user_ids))

    draft = await start_draft(session, league.id, manager, pool_user_ids=[bystander.id])
    assert draft.pool_user_ids == [bystander.id, member.id]


@pytest.mark.asyncio
async def test_pool_strategies(session, manager, pool_users, make_league):
    league, (team1, _) = await make_league()
    signed, member = pool_users[0], pool_users[1]
    await upsert_intent(session, league.id, signed.id, wants_captain=False)
    await assign_member(session, team1.id, member.id)

    await upsert_plan(session, league.id, manager.user_id, player_pool_strategy="ops_selected")
    draft = await start_draft(session, league.id, manager)
    assert draft.pool_user_ids == [member.id]

    await upsert_plan(session, league.id, manager.user_id, player_pool_strategy="all_eligible")
    draft = await start_draft(session, league.id, manager)
    assert set(draft.pool_user_ids) == {u.id for u in pool_users}


@pytest.mark.asyncio
async def test_pick_preconditions(session, manager, pool_users, make_league):
    league, (team1, team2) = await make_league()
    _, (other_team, _) = await make_league(title="Other League")
    ids = [u.id for u in pool_users]

    with pytest.raises(ConflictError) as exc:
        await make_pick(session, league.id, team1.id, ids[0], manager)
    assert exc.value.code == "draft_not_open"

    await start_draft(session, league.id, manager, pool_user_ids=ids[:2])

    with pytest.raises(ValidationError) as exc:
        await make_pick(session, league.id, other_team.id, ids[0], manager)
    assert exc.value.code == "invalid_pick_team"

    with pytest.raises(ConflictError) as exc:
        await make_pick(session, league.id, team1.id, ids[5], manager)
    assert exc.value.code == "player_not_in_draft_pool"


@pytest.mark.asyncio
async def test_pool_snapshot_unchanged_by_picks(session, manager, pool_users, make_league):
    league, (team1, _) = await make_league()
    ids = [u.id for u in pool_users[:4]]
    draft = await start_draft(session, league.id, manager, pool_user_ids=ids)

    await make_pick(session, league.id, team1.id, ids[0], manager)

    current = await get_current_session(session, league.id)
    assert current.pool_user_ids == ids


@pytest.mark.asyncio
async def test_close_is_idempotent_and_blocks_picks(session, manager, pool_users, make_league):
    league, (team1, _) = await make_league()

    with pytest.raises(NotFoundError) as exc:
        await close_draft(session, league.id, manager)
    assert exc.value.code == "draft_not_found"

    await start_draft(session, league.id, manager, pool_user_ids=[pool_users[0].id])
    closed = await close_draft(session, league.id, manager)
    assert closed.status == "closed"
    assert closed.closed_at is not None
    again = await close_draft(session, league.id, manager)
    assert again.id == closed.id and again.status == "closed"

    with pytest.raises(ConflictError) as exc:
        await make_pick(session, league.id, team1.id, pool_users[0].id, manager)
    assert exc.value.code == "draft_not_open"


@pytest.mark.asyncio
async def test_restart_creates_new_generation(session, manager, pool_users, make_league):
    league, (team1, _) = await make_league()
    ids = [u.id for u in pool_users[:2]]

    first = await start_draft(session, league.id, manager, pool_user_ids=ids)
    await make_pick(session, league.id, team1.id, ids[0], manager)
    second = await start_draft(session, league.id, manager, pool_user_ids=ids)

    assert (first.generation, second.generation) == (1, 2)
    assert first.status == "closed"
    assert (await get_current_session(session, league.id)).id == second.id
    assert len(await list_picks(session, first.id)) == 1
    assert await list_picks(session, second.id) == []

    await make_pick(session, league.id, team1.id, ids[0], manager)
    sessions = await list_all(session, DraftSession, DraftSession.competition_id == league.id)
    assert len(sessions) == 2


@pytest.mark.asyncio
async def test_captains_pick_only_for_their_team(session, manager, pool_users, make_league, make_user, actor_for):
    league, (team1, team2) = await make_league()
    captain = await make_user("cap")
    await set_captain(session, team1.id, captain.id, manager.user_id)
    captain_actor = await actor_for(captain)
    ids = [u.id for u in pool_users]
    await start_draft(session, league.id, manager, pool_user_ids=ids)

    pick = await make_pick(session, league.id, team1.id, ids[0], captain_actor)
    assert pick.actor_user_id == captain.id

    with pytest.raises(UnauthorizedError) as exc:
        await make_pick(session, league.id, team2.id, ids[1], captain_actor)
    assert exc.value.code == "captain_access_required"

    with pytest.raises(UnauthorizedError) as exc:
        await start_draft(session, league.id, captain_actor)
    assert exc.value.code == "dvhl_manager_required"


@pytest.mark.asyncio
async def test_start_validation(session, manager, make_league):
    league, _ = await make_league()
    with pytest.raises(ValidationError) as exc:
        await start_draft(session, league.id, manager, rounds=0)
    assert exc.value.code == "invalid_rounds"
    with pytest.raises(NotFoundError):
        await start_draft(session, 5555, manager)


@pytest.mark.asyncio
async def test_pool_holds_only_eligible_players(session, manager, pool_users, make_league, make_user):
    league, _ = await make_league()
    player = pool_users[0]
    fan = await make_user("fan", role="public")
    demoted = pool_users[1]
    await upsert_intent(session, league.id, player.id, wants_captain=False)
    await upsert_intent(session, league.id, demoted.id, wants_captain=False)
    demoted.status = "rejected"
    await session.flush()

    draft = await start_draft(session, league.id, manager)
    assert draft.pool_user_ids == [player.id]

    for bad_id in (fan.id, 9999):
        with pytest.raises(ConflictError) as exc:
            await start_draft(session, league.id, manager, pool_user_ids=[player.id, bad_id])
        assert exc.value.code == "player_not_eligible"
        assert exc.value.context["user_id"] == bad_id


@pytest.mark.asyncio
async def test_pick_refuses_player_who_lost_eligibility(session, manager, pool_users, make_league):
    league, (team1, _) = await make_league()
    ids = [u.id for u in pool_users[:2]]
    draft = await start_draft(session, league.id, manager, pool_user_ids=ids)
    pool_users[0].role = "public"
    await session.flush()

    with pytest.raises(ConflictError) as exc:
        await make_pick(session, league.id, team1.id, ids[0], manager)
    assert exc.value.code == "player_not_eligible"
    assert await list_picks(session, draft.id) == []
