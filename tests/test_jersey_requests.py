"""Tests for the self-service jersey request workflow."""
import pytest

import config
from hq.services.errors import ConflictError, NotFoundError, ValidationError
from hq.services.jersey import assign_jersey
from hq.services.jersey_requests import (
    create_jersey_request,
    list_jersey_options,
    list_jersey_requests,
    review_jersey_request,
)


@pytest.mark.asyncio
async def test_free_number_is_auto_granted(session, make_player):
    p = await make_player("Fresh Skater", jersey_number=None)

    outcome = await create_jersey_request(session, p.user_id, 10)

    assert outcome.outcome == "jersey_auto_granted"
    assert outcome.request is None
    assert p.jersey_number == 10
    assert await list_jersey_requests(session) == []


@pytest.mark.asyncio
async def test_shared_number_goes_pending_then_approval_assigns(session, make_user, make_player):
    """#7 needs approval; after approval the requester wears #7."""
    holder = await make_player("Gold Seven", sub_roster="gold", jersey_number=7, overlap=True)
    requester = await make_player("White Wing", sub_roster="white", jersey_number=15, overlap=True)
    reviewer = await make_user("ops", role="moderator")

    outcome = await create_jersey_request(session, requester.user_id, 7)

    assert outcome.outcome == "jersey_request"
    request = outcome.request
    assert request.status == "pending"
    assert request.requires_approval is True
    assert request.known_holder_user_ids == [holder.user_id]
    assert request.current_jersey_number == 15
    assert requester.jersey_number == 15

    reviewed = await review_jersey_request(session, request.id, "approved", reviewer.id, notes="ok")

    assert reviewed.status == "approved"
    assert reviewed.reviewed_by_user_id == reviewer.id
    assert reviewed.review_notes == "ok"
    assert requester.jersey_number == 7


@pytest.mark.asyncio
async def test_inactive_holder_number_needs_approval(session, make_player):
    await make_player("Old Timer", jersey_number=44, activity_status="inactive")
    p = await make_player("Rookie")

    outcome = await create_jersey_request(session, p.user_id, 44)

    assert outcome.outcome == "jersey_request"
    assert "inactive" in outcome.request.approval_reason


@pytest.mark.asyncio
async def test_retired_number_needs_approval(session, make_player, monkeypatch):
    monkeypatch.setattr(config, "RETIRED_JERSEY_NUMBERS", {99})
    p = await make_player("Rookie")

    options = {o.number: o for o in await list_jersey_options(session, p.user_id)}
    assert options[99].requires_approval is True
    assert options[98].requires_approval is False

    outcome = await create_jersey_request(session, p.user_id, 99)
    assert outcome.outcome == "jersey_request"


@pytest.mark.asyncio
async def test_same_sub_roster_number_is_unavailable(session, make_player):
    await make_player("Gold Twelve", sub_roster="gold", jersey_number=12, overlap=True)
    p = await make_player("Gold Rookie", sub_roster="gold", overlap=True)

    numbers = [o.number for o in await list_jersey_options(session, p.user_id)]
    assert 12 not in numbers

    with pytest.raises(ConflictError) as exc:
        await create_jersey_request(session, p.user_id, 12)
    assert exc.value.code == "jersey_number_unavailable"


@pytest.mark.asyncio
async def test_cross_color_number_hidden_without_opt_in(session, make_player):
    await make_player("Gold Twelve", sub_roster="gold", jersey_number=12, overlap=True)
    p = await make_player("White Rookie", sub_roster="white", overlap=False)

    numbers = [o.number for o in await list_jersey_options(session, p.user_id)]
    assert 12 not in numbers


@pytest.mark.asyncio
async def test_options_skip_current_number(session, make_player):
    p = await make_player("Has Number", jersey_number=3)

    numbers = [o.number for o in await list_jersey_options(session, p.user_id)]

    assert 3 not in numbers
    assert len(numbers) == 98


@pytest.mark.asyncio
async def test_request_preconditions(session, make_player):
    no_roster = await make_player("No Roster", roster_id=None)
    no_color = await make_player("No Color", sub_roster=None)
    has_number = await make_player("Has Number", jersey_number=8)

    cases = [
        (no_roster.user_id, 5, "roster_not_assigned"),
        (no_color.user_id, 5, "primary_sub_roster_required"),
        (has_number.user_id, 8, "already_your_current_number"),
        (has_number.user_id, 0, "invalid_jersey_number"),
    ]
    for user_id, number, code in cases:
        with pytest.raises(ValidationError) as exc:
            await create_jersey_request(session, user_id, number)
        assert exc.value.code == code

    with pytest.raises(NotFoundError) as exc:
        await create_jersey_request(session, 987654, 5)
    assert exc.value.code == "player_not_found"


@pytest.mark.asyncio
async def test_second_pending_request_rejected(session, make_player):
    await make_player("Old Timer", jersey_number=44, activity_status="inactive")
    await make_player("Old Timer Two", jersey_number=45, activity_status="inactive")
    p = await make_player("Rookie")

    await create_jersey_request(session, p.user_id, 44)
    with pytest.raises(ConflictError) as exc:
        await create_jersey_request(session, p.user_id, 45)
    assert exc.value.code == "jersey_request_already_pending"


@pytest.mark.asyncio
async def test_approval_blocked_when_new_holder_appears(session, make_user, make_player):
    await make_player("Gold Seven", sub_roster="gold", jersey_number=7, overlap=True)
    requester = await make_player("White Wing", sub_roster="white", overlap=True)
    newcomer = await make_player("White Newcomer", sub_roster="white")
    reviewer = await make_user("ops", role="moderator")

    outcome = await create_jersey_request(session, requester.user_id, 7)
    forced = await assign_jersey(
        session,
        user_id=newcomer.user_id,
        full_name=newcomer.full_name,
        roster_id="main",
        jersey_number=7,
        activity_status="active",
        force_override=True,
    )
    assert forced.ok

    with pytest.raises(ConflictError) as exc:
        await review_jersey_request(session, outcome.request.id, "approved", reviewer.id)

    assert exc.value.code == "jersey_conflict_changed"
    assert exc.value.context["conflict"]["name"] == "White Newcomer"
    assert outcome.request.status == "pending"
    assert requester.jersey_number is None


@pytest.mark.asyncio
async def test_rejection_and_review_rules(session, make_user, make_player):
    await make_player("Old Timer", jersey_number=44, activity_status="inactive")
    p = await make_player("Rookie", jersey_number=2)
    reviewer = await make_user("ops", role="moderator")
    outcome = await create_jersey_request(session, p.user_id, 44)

    with pytest.raises(ValidationError) as exc:
        await review_jersey_request(session, outcome.request.id, "maybe", reviewer.id)
    assert exc.value.code == "invalid_jersey_review_payload"

    rejected = await review_jersey_request(session, outcome.request.id, "rejected", reviewer.id, notes=" no ")
    assert rejected.status == "rejected"
    assert rejected.review_notes == "no"
    assert p.jersey_number == 2

    with pytest.raises(ConflictError) as exc:
        await review_jersey_request(session, outcome.request.id, "approved", reviewer.id)
    assert exc.value.code == "jersey_request_not_pending"

    with pytest.raises(NotFoundError) as exc:
        await review_jersey_request(session, 424242, "approved", reviewer.id)
    assert exc.value.code == "jersey_request_not_found"

    assert [r.id for r in await list_jersey_requests(session, status="rejected")] == [outcome.request.id]
    assert await list_jersey_requests(session, status="pending") == []
