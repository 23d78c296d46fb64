"""API routes for roster records, jersey assignment, and jersey requests."""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from hq.models import JerseyNumberRequest
from hq.models.base import async_session_factory
from hq.permissions import MANAGE_PLAYERS, Actor
from hq.repository import commit
from hq.services import jersey, jersey_requests, roster
from hq.services.errors import ConflictError, UnauthorizedError
from hq.services.events import HQEvent, dispatch_event
from web.api.utils import iso, player_to_dict
from web.auth import get_actor, require_permission

router = APIRouter(prefix="/api", tags=["roster"])

require_player_manager = require_permission(MANAGE_PLAYERS)


class PlayerCreate(BaseModel):
    user_id: int
    full_name: str
    roster_id: Optional[str] = None
    primary_sub_roster: Optional[str] = None
    allow_cross_color_jersey_overlap: bool = False


class ProfileUpdate(BaseModel):
    primary_sub_roster: Optional[str] = None
    allow_cross_color_jersey_overlap: Optional[bool] = None
    force_override: bool = False


class JerseyAssign(BaseModel):
    full_name: Optional[str] = None
    roster_id: Optional[str] = None
    jersey_number: Optional[int | str] = None
    activity_status: str = "active"
    force_override: bool = False


class JerseyRequestCreate(BaseModel):
    requested_jersey_number: int | str


class JerseyReview(BaseModel):
    decision: str  # approved | rejected
    notes: Optional[str] = None


def _request_to_dict(r: JerseyNumberRequest) -> dict:
    return {
        "id": r.id,
        "user_id": r.user_id,
        "roster_id": r.roster_id,
        "primary_sub_roster": r.primary_sub_roster,
        "current_jersey_number": r.current_jersey_number,
        "requested_jersey_number": r.requested_jersey_number,
        "requires_approval": r.requires_approval,
        "approval_reason": r.approval_reason,
        "status": r.status,
        "created_at": iso(r.created_at),
        "reviewed_at": iso(r.reviewed_at),
        "reviewed_by_user_id": r.reviewed_by_user_id,
        "review_notes": r.review_notes,
    }


@router.get("/players")
async def list_players(
    roster_id: Optional[str] = None,
    include_inactive: bool = True,
    actor: Actor = Depends(get_actor),
):
    async with async_session_factory() as session:
        players = await roster.list_players(session, roster_id=roster_id, include_inactive=include_inactive)
        return [player_to_dict(p) for p in players]


@router.post("/players")
async def create_player(body: PlayerCreate, actor: Actor = Depends(require_player_manager)):
    async with async_session_factory() as session:
        player = await roster.create_player(
            session,
            body.user_id,
            body.full_name,
            roster_id=body.roster_id,
            primary_sub_roster=body.primary_sub_roster,
            allow_cross_color_jersey_overlap=body.allow_cross_color_jersey_overlap,
        )
        await commit(session)
        return {"ok": True, "outcome": "player_created", "player": player_to_dict(player)}


@router.patch("/players/{user_id}/profile")
async def update_profile(user_id: int, body: ProfileUpdate, actor: Actor = Depends(get_actor)):
    """Players edit their own sub-roster and overlap opt-in; managers edit anyone's."""
    is_manager = actor.can(MANAGE_PLAYERS)
    if user_id != actor.user_id and not is_manager:
        raise UnauthorizedError("unauthorized", "You can only edit your own profile")
    changes = body.model_dump(exclude_unset=True, exclude={"force_override"})
    async with async_session_factory() as session:
        player = await roster.update_player_profile(
            session,
            user_id,
            force_override=body.force_override and is_manager,
            **changes,
        )
        await commit(session)
        return {"ok": True, "outcome": "profile_saved", "player": player_to_dict(player)}


@router.put("/players/{user_id}/jersey")
async def assign_jersey(user_id: int, body: JerseyAssign, actor: Actor = Depends(require_player_manager)):
    """Set name, roster, number and activity status. A clash returns 409 naming the other player."""
    number = None
    if body.jersey_number is not None and str(body.jersey_number).strip():
        number = jersey.validate_jersey_number(body.jersey_number)
    async with async_session_factory() as session:
        result = await jersey.assign_jersey(
            session,
            user_id=user_id,
            full_name=body.full_name or "",
            roster_id=body.roster_id,
            jersey_number=number,
            activity_status=body.activity_status,
            force_override=body.force_override,
        )
        if not result.ok:
            raise ConflictError(
                "jersey_number_conflict",
                f"#{number} is already worn by {result.conflict.name}",
                conflict=result.conflict.to_dict(),
                requires_override=True,
            )
        await commit(session)
        payload = player_to_dict(result.player)
    await dispatch_event(
        HQEvent("jersey_assigned", actor.user_id, user_id=user_id, extra={"jersey_number": number})
    )
    return {"ok": True, "outcome": "player_saved", "player": payload}


@router.get("/rosters/{roster_id}/available-numbers")
async def available_numbers(roster_id: str, user_id: Optional[int] = None, actor: Actor = Depends(get_actor)):
    async with async_session_factory() as session:
        return {"roster_id": roster_id, "numbers": await jersey.list_available_numbers(session, roster_id, user_id)}


@router.get("/me/jersey-options")
async def my_jersey_options(actor: Actor = Depends(get_actor)):
    async with async_session_factory() as session:
        options = await jersey_requests.list_jersey_options(session, actor.user_id)
        return [o.to_dict() for o in options]


@router.post("/me/jersey-requests")
async def request_jersey(body: JerseyRequestCreate, actor: Actor = Depends(get_actor)):
    async with async_session_factory() as session:
        outcome = await jersey_requests.create_jersey_request(session, actor.user_id, body.requested_jersey_number)
        await commit(session)
        player = player_to_dict(outcome.player)
        request = _request_to_dict(outcome.request) if outcome.request else None
    if outcome.outcome == "jersey_auto_granted":
        await dispatch_event(
            HQEvent(
                "jersey_assigned",
                actor.user_id,
                user_id=actor.user_id,
                extra={"jersey_number": player["jersey_number"], "auto_granted": True},
            )
        )
    else:
        await dispatch_event(
            HQEvent("jersey_request_created", actor.user_id, user_id=actor.user_id, extra={"request_id": request["id"]})
        )
    return {"ok": True, "outcome": outcome.outcome, "player": player, "request": request}


@router.get("/jersey-requests")
async def list_jersey_requests(
    status: Optional[str] = None,
    actor: Actor = Depends(get_actor),
):
    """Managers see every request; players see their own."""
    user_filter = None if actor.can(MANAGE_PLAYERS) else actor.user_id
    async with async_session_factory() as session:
        rows = await jersey_requests.list_jersey_requests(session, status=status, user_id=user_filter)
        return [_request_to_dict(r) for r in rows]


@router.post("/jersey-requests/{request_id}/review")
async def review_jersey_request(request_id: int, body: JerseyReview, actor: Actor = Depends(require_player_manager)):
    async with async_session_factory() as session:
        request = await jersey_requests.review_jersey_request(
            session, request_id, body.decision, actor.user_id, notes=body.notes
        )
        await commit(session)
        payload = _request_to_dict(request)
    await dispatch_event(
        HQEvent(
            "jersey_request_reviewed",
            actor.user_id,
            user_id=payload["user_id"],
            extra={"request_id": request_id, "decision": body.decision},
        )
    )
    return {"ok": True, "outcome": f"jersey_request_{body.decision}", "request": payload}
