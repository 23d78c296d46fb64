"""Tests for jersey number allocation and roster profile changes."""
import pytest

from hq.models import Team
from hq.repository import list_all
from hq.services.competitions import assign_member, create_dvhl, create_tournament
from hq.services.errors import ConflictError, ValidationError
from hq.services.jersey import assign_jersey, list_available_numbers, validate_jersey_number
from hq.services.roster import create_player, update_player_profile


async def _assign(session, player, number, **kwargs):
    return await assign_jersey(
        session,
        user_id=player.user_id,
        full_name=player.full_name,
        roster_id=player.roster_id,
        jersey_number=number,
        activity_status=kwargs.pop("activity_status", "active"),
        **kwargs,
    )


@pytest.mark.asyncio
async def test_same_sub_roster_collision_reports_holder(session, make_player):
    """Player B cannot take #12 from Player A on the same roster and sub-roster."""
    a = await make_player("Player A", jersey_number=12)
    b = await make_player("Player B")
    for competition in (
        await create_tournament(session, "Summer Classic", ["gold", "white"]),
        await create_tournament(session, "Winter Cup", ["gold"]),
        await create_dvhl(session, "DVHL Fall", ["Red"]),
    ):
        teams = await list_all(session, Team, Team.competition_id == competition.id, order_by=Team.id)
        await assign_member(session, teams[0].id, a.user_id)
        if competition.title != "Winter Cup":
            await assign_member(session, teams[-1].id, b.user_id)

    result = await _assign(session, b, 12)

    assert result.ok is False
    assert result.conflict.name == "Player A"
    assert result.conflict.user_id == a.user_id
    assert result.conflict.shared_tournament_titles == ["Summer Classic"]
    assert result.conflict.to_dict()["shared_tournament_titles"] == ["Summer Classic"]
    assert b.jersey_number is None
    assert a.jersey_number == 12


@pytest.mark.asyncio
async def test_force_override_allows_duplicate(session, make_player):
    await make_player("Player A", jersey_number=12)
    b = await make_player("Player B")

    result = await _assign(session, b, 12, force_override=True)

    assert result.ok is True
    assert b.jersey_number == 12


@pytest.mark.asyncio
async def test_cross_color_sharing_needs_both_opt_ins(session, make_player):
    a = await make_player("Gold Keeper", sub_roster="gold", jersey_number=9, overlap=True)
    b = await make_player("White Wing", sub_roster="white", overlap=True)
    c = await make_player("Black Center", sub_roster="black", overlap=False)

    ok = await _assign(session, b, 9)
    assert ok.ok is True
    assert b.jersey_number == 9

    refused = await _assign(session, c, 9)
    assert refused.ok is False
    assert refused.conflict.name in (a.full_name, b.full_name)
    assert c.jersey_number is None


@pytest.mark.asyncio
async def test_cross_color_refused_when_holder_did_not_opt_in(session, make_player):
    await make_player("Gold Keeper", sub_roster="gold", jersey_number=9, overlap=False)
    b = await make_player("White Wing", sub_roster="white", overlap=True)

    result = await _assign(session, b, 9)

    assert result.ok is False
    assert result.conflict.name == "Gold Keeper"


@pytest.mark.asyncio
async def test_different_rosters_never_conflict(session, make_player):
    await make_player("Main Player", roster_id="main", jersey_number=4)
    other = await make_player("Vets Player", roster_id="vets")

    result = await _assign(session, other, 4)

    assert result.ok is True


@pytest.mark.asyncio
async def test_repeat_assignment_is_idempotent(session, make_player):
    await make_player("Player A", jersey_number=12)
    b = await make_player("Player B")

    first = await _assign(session, b, 21)
    snapshot = (b.full_name, b.roster_id, b.jersey_number, b.activity_status)
    second = await _assign(session, b, 21)

    assert first.ok and second.ok
    assert (b.full_name, b.roster_id, b.jersey_number, b.activity_status) == snapshot


@pytest.mark.asyncio
async def test_inactive_holder_does_not_block(session, make_player):
    await make_player("Retired Guy", jersey_number=30, activity_status="inactive")
    b = await make_player("New Goalie")

    result = await _assign(session, b, 30)

    assert result.ok is True


@pytest.mark.asyncio
async def test_going_inactive_skips_uniqueness(session, make_player):
    await make_player("Player A", jersey_number=12)
    b = await make_player("Player B")

    result = await _assign(session, b, 12, activity_status="inactive")

    assert result.ok is True
    assert b.activity_status == "inactive"


@pytest.mark.asyncio
async def test_unknown_activity_status_rejected(session, make_player):
    b = await make_player("Player B")
    with pytest.raises(ValidationError) as exc:
        await _assign(session, b, 5, activity_status="retired")
    assert exc.value.code == "invalid_activity_status"


@pytest.mark.parametrize("value", [0, 100, "abc", "", None, True, -3])
def test_validate_jersey_number_rejects(value):
    with pytest.raises(ValidationError) as exc:
        validate_jersey_number(value)
    assert exc.value.code == "invalid_jersey_number"


def test_validate_jersey_number_parses_strings():
    assert validate_jersey_number(" 7 ") == 7
    assert validate_jersey_number(99) == 99
    assert validate_jersey_number(1) == 1


@pytest.mark.asyncio
async def test_available_numbers_skip_active_holders(session, make_player):
    a = await make_player("Player A", jersey_number=1)
    await make_player("Player B", jersey_number=2)
    await make_player("Player C", jersey_number=3, activity_status="inactive")

    numbers = await list_available_numbers(session, "main")
    assert 1 not in numbers and 2 not in numbers
    assert 3 in numbers
    assert len(numbers) == 97

    including_a = await list_available_numbers(session, "main", include_user_id=a.user_id)
    assert 1 in including_a


@pytest.mark.asyncio
async def test_profile_change_into_collision_is_refused(session, make_player):
    await make_player("Gold Keeper", sub_roster="gold", jersey_number=5, overlap=True)
    b = await make_player("White Wing", sub_roster="white", jersey_number=5, overlap=True)

    with pytest.raises(ConflictError) as exc:
        await update_player_profile(session, b.user_id, primary_sub_roster="gold")

    assert exc.value.code == "jersey_number_conflict"
    assert exc.value.context["conflict"]["name"] == "Gold Keeper"
    assert b.primary_sub_roster == "white"

    with pytest.raises(ConflictError):
        await update_player_profile(session, b.user_id, allow_cross_color_jersey_overlap=False)
    assert b.allow_cross_color_jersey_overlap is True


@pytest.mark.asyncio
async def test_create_player_validation(session, make_user):
    user = await make_user("skater")
    with pytest.raises(ValidationError):
        await create_player(session, user.id, "  ")
    with pytest.raises(ValidationError) as exc:
        await create_player(session, user.id, "Skater", primary_sub_roster="purple")
    assert exc.value.code == "invalid_sub_roster"

    player = await create_player(session, user.id, "Skater", roster_id="main", primary_sub_roster="Gold")
    assert player.primary_sub_roster == "gold"
    assert player.jersey_number is None

    with pytest.raises(ConflictError) as exc:
        await create_player(session, user.id, "Skater Again")
    assert exc.value.code == "player_exists"
