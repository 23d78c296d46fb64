"""Self-service jersey number requests: auto-grant safe numbers, queue the rest for review."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

import config
from hq.models import JerseyNumberRequest, Player
from hq.models.base import utcnow
from hq.repository import find_one, flush, get_or_raise, list_all
from hq.services.errors import ConflictError, ValidationError
from hq.services.jersey import assign_jersey, find_jersey_conflicts, validate_jersey_number

logger = logging.getLogger("hq.jersey")

REVIEW_DECISIONS = ("approved", "rejected")


@dataclass
class JerseyOption:
    number: int
    display_label: str
    requires_approval: bool
    reason: Optional[str] = None
    holder_user_ids: list[int] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "number": self.number,
            "display_label": self.display_label,
            "requires_approval": self.requires_approval,
            "reason": self.reason,
        }


@dataclass
class JerseyRequestOutcome:
    outcome: str  # jersey_auto_granted | jersey_request
    player: Player
    request: Optional[JerseyNumberRequest] = None


async def list_jersey_options(session: AsyncSession, user_id: int) -> list[JerseyOption]:
    """Numbers the player may ask for, flagged where an operator must approve.

    Free numbers are granted directly. Retired numbers and numbers held by an
    inactive roster-mate need approval. A number worn by an active roster-mate
    is offered (with approval) only when every holder is on another sub-roster
    and the requester opted into cross-color overlap.
    """
    player = await get_or_raise(session, Player, user_id, "player_not_found")
    if not player.roster_id or not player.primary_sub_roster:
        return []

    mates = await list_all(
        session,
        Player,
        Player.roster_id == player.roster_id,
        Player.user_id != player.user_id,
        Player.jersey_number.is_not(None),
    )
    active_by_number: dict[int, list[Player]] = {}
    inactive_by_number: dict[int, list[Player]] = {}
    for mate in mates:
        bucket = active_by_number if mate.is_active else inactive_by_number
        bucket.setdefault(mate.jersey_number, []).append(mate)

    options: list[JerseyOption] = []
    for number in range(config.JERSEY_NUMBER_MIN, config.JERSEY_NUMBER_MAX + 1):
        if number == player.jersey_number:
            continue
        active = active_by_number.get(number, [])
        if not active:
            inactive = inactive_by_number.get(number, [])
            if number in config.RETIRED_JERSEY_NUMBERS:
                options.append(JerseyOption(number, f"#{number} *", True, "Retired number; requires Hockey Ops approval."))
            elif inactive:
                options.append(
                    JerseyOption(
                        number,
                        f"#{number} *",
                        True,
                        f"Held by inactive player {inactive[0].full_name}; requires Hockey Ops approval.",
                        [p.user_id for p in inactive],
                    )
                )
            else:
                options.append(JerseyOption(number, f"#{number}", False))
            continue

        if any(not p.primary_sub_roster or p.primary_sub_roster == player.primary_sub_roster for p in active):
            continue
        if not player.allow_cross_color_jersey_overlap:
            continue
        colors = ", ".join(sorted({p.primary_sub_roster for p in active}))
        options.append(
            JerseyOption(
                number,
                f"#{number} *",
                True,
                f"Shared with {colors} roster; requires Hockey Ops approval.",
                [p.user_id for p in active],
            )
        )
    return options


async def create_jersey_request(
    session: AsyncSession,
    user_id: int,
    requested_jersey_number,
    now: Optional[datetime] = None,
) -> JerseyRequestOutcome:
    """Auto-grant a number that needs no approval, otherwise file a pending request."""
    number = validate_jersey_number(requested_jersey_number)
    player = await get_or_raise(session, Player, user_id, "player_not_found")
    if not player.roster_id:
        raise ValidationError("roster_not_assigned")
    if number == player.jersey_number:
        raise ValidationError("already_your_current_number")
    if not player.primary_sub_roster:
        raise ValidationError("primary_sub_roster_required")

    options = await list_jersey_options(session, user_id)
    selected = next((o for o in options if o.number == number), None)
    if selected is None:
        raise ConflictError("jersey_number_unavailable", f"#{number} is not available on your roster")

    if not selected.requires_approval:
        result = await assign_jersey(
            session,
            user_id=player.user_id,
            full_name=player.full_name,
            roster_id=player.roster_id,
            jersey_number=number,
            activity_status=player.activity_status,
            now=now,
        )
        if not result.ok:
            raise ConflictError("jersey_auto_grant_failed", conflict=result.conflict.to_dict())
        logger.info("Jersey #%s auto-granted to user %s", number, user_id)
        return JerseyRequestOutcome(outcome="jersey_auto_granted", player=player)

    pending = await find_one(
        session,
        JerseyNumberRequest,
        JerseyNumberRequest.user_id == user_id,
        JerseyNumberRequest.status == "pending",
    )
    if pending:
        raise ConflictError("jersey_request_already_pending", request_id=pending.id)

    request = JerseyNumberRequest(
        user_id=user_id,
        roster_id=player.roster_id,
        primary_sub_roster=player.primary_sub_roster,
        current_jersey_number=player.jersey_number,
        requested_jersey_number=number,
        requires_approval=True,
        approval_reason=selected.reason,
        known_holder_user_ids=list(selected.holder_user_ids),
        status="pending",
        created_at=now or utcnow(),
    )
    session.add(request)
    await flush(session)
    logger.info("Jersey request %s filed: user %s wants #%s", request.id, user_id, number)
    return JerseyRequestOutcome(outcome="jersey_request", player=player, request=request)


async def review_jersey_request(
    session: AsyncSession,
    request_id: int,
    decision: str,
    reviewer_user_id: int,
    notes: Optional[str] = None,
    now: Optional[datetime] = None,
) -> JerseyNumberRequest:
    """Approve or reject a pending request.

    Approval books the number with the override the request was filed for.
    If someone not known at filing time now holds the number, the review
    fails and the request stays pending.
    """
    if decision not in REVIEW_DECISIONS:
        raise ValidationError("invalid_jersey_review_payload")
    request = await get_or_raise(session, JerseyNumberRequest, request_id, "jersey_request_not_found")
    if request.status != "pending":
        raise ConflictError("jersey_request_not_pending")

    if decision == "approved":
        player = await get_or_raise(session, Player, request.user_id, "player_not_found")
        known = set(request.known_holder_user_ids or [])
        conflicts = []
        if player.is_active:
            conflicts = await find_jersey_conflicts(
                session, player, player.roster_id, request.requested_jersey_number
            )
        unexpected = [c for c in conflicts if c.user_id not in known]
        if unexpected:
            logger.warning(
                "Jersey request %s approval blocked: #%s now held by %s",
                request.id, request.requested_jersey_number, unexpected[0].user_id,
            )
            raise ConflictError(
                "jersey_conflict_changed",
                f"#{request.requested_jersey_number} is now worn by {unexpected[0].name}",
                conflict=unexpected[0].to_dict(),
            )
        result = await assign_jersey(
            session,
            user_id=player.user_id,
            full_name=player.full_name,
            roster_id=player.roster_id,
            jersey_number=request.requested_jersey_number,
            activity_status=player.activity_status,
            force_override=bool(request.requires_approval),
            now=now,
        )
        if not result.ok:
            raise ConflictError("jersey_update_failed", conflict=result.conflict.to_dict())

    request.status = decision
    request.reviewed_at = now or utcnow()
    request.reviewed_by_user_id = reviewer_user_id
    request.review_notes = (notes or "").strip() or None
    await flush(session)
    logger.info("Jersey request %s %s by user %s", request.id, decision, reviewer_user_id)
    return request


async def list_jersey_requests(
    session: AsyncSession,
    status: Optional[str] = None,
    user_id: Optional[int] = None,
) -> list[JerseyNumberRequest]:
    where = []
    if status:
        where.append(JerseyNumberRequest.status == status)
    if user_id is not None:
        where.append(JerseyNumberRequest.user_id == user_id)
    return await list_all(session, JerseyNumberRequest, *where, order_by=JerseyNumberRequest.created_at)
