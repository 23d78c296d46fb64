"""API routes for the DVHL league workflow: plan, signups, captains, sub-pools, draft, sub requests."""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from hq.models import DraftSession, SeasonPlan, SubRequest, Team
from hq.models.base import async_session_factory
from hq.permissions import MANAGE_DVHL, Actor
from hq.repository import commit, list_all
from hq.services import draft as draft_service
from hq.services import season_plans, signups, sub_requests, team_controls
from hq.services.competitions import assign_member
from hq.services.errors import HQError, UnauthorizedError, ValidationError
from hq.services.events import HQEvent, dispatch_event
from web.api.utils import iso
from web.auth import get_actor, require_permission

logger = logging.getLogger("hq.api")

router = APIRouter(prefix="/api/dvhl", tags=["dvhl"])

require_dvhl_manager = require_permission(MANAGE_DVHL, "dvhl_manager_required")


# --- Pydantic schemas ---


class PlanUpdate(BaseModel):
    signup_closes_at: Optional[datetime | str] = None
    captain_signup_closes_at: Optional[datetime | str] = None
    desired_captain_count: Optional[int | str] = None
    rounds: Optional[int | str] = None
    team_order_strategy: Optional[str] = None
    player_pool_strategy: Optional[str] = None
    draft_mode: Optional[str] = None


class SignupBody(BaseModel):
    wants_captain: bool = False
    note: Optional[str] = None
    user_id: Optional[int] = None  # managers may record a signup for someone else


class CaptainsBody(BaseModel):
    captains: dict[int, Optional[int]]  # team_id -> captain user_id (null clears)


class SubPoolBody(BaseModel):
    user_id: int
    action: str = "add"  # add | remove


class DraftStart(BaseModel):
    pick_order_team_ids: list[int] = []
    pool_user_ids: list[int] = []
    draft_mode: Optional[str] = None
    rounds: Optional[int] = None
    include_all_eligible: bool = False


class DraftPickBody(BaseModel):
    team_id: int
    user_id: int


class SubRequestCreate(BaseModel):
    team_id: int
    message: Optional[str] = None
    needed_for_game_id: Optional[str] = None


def _plan_to_dict(plan: Optional[SeasonPlan]) -> Optional[dict]:
    if plan is None:
        return None
    return {
        "competition_id": plan.competition_id,
        "signup_closes_at": iso(plan.signup_closes_at),
        "captain_signup_closes_at": iso(plan.captain_signup_closes_at),
        "desired_captain_count": plan.desired_captain_count,
        "rounds": plan.rounds,
        "team_order_strategy": plan.team_order_strategy,
        "player_pool_strategy": plan.player_pool_strategy,
        "draft_mode": plan.draft_mode,
        "updated_at": iso(plan.updated_at),
        "updated_by_user_id": plan.updated_by_user_id,
    }


async def _draft_to_dict(session, draft: Optional[DraftSession]) -> Optional[dict]:
    if draft is None:
        return None
    picks = await draft_service.list_picks(session, draft.id)
    return {
        "id": draft.id,
        "competition_id": draft.competition_id,
        "generation": draft.generation,
        "status": draft.status,
        "pick_order_team_ids": list(draft.pick_order_team_ids or []),
        "pool_user_ids": list(draft.pool_user_ids or []),
        "draft_mode": draft.draft_mode,
        "rounds": draft.rounds,
        "on_the_clock_team_id": draft_service.expected_team_id(draft, len(picks)) if draft.status == "open" else None,
        "created_at": iso(draft.created_at),
        "closed_at": iso(draft.closed_at),
        "picks": [
            {
                "pick_number": p.pick_number,
                "round": p.round,
                "team_id": p.team_id,
                "user_id": p.user_id,
                "picked_at": iso(p.picked_at),
                "actor_user_id": p.actor_user_id,
            }
            for p in picks
        ],
    }


def _sub_request_to_dict(r: SubRequest) -> dict:
    return {
        "id": r.id,
        "competition_id": r.competition_id,
        "team_id": r.team_id,
        "captain_user_id": r.captain_user_id,
        "requested_by_user_id": r.requested_by_user_id,
        "message": r.message,
        "needed_for_game_id": r.needed_for_game_id,
        "status": r.status,
        "accepted_by_user_id": r.accepted_by_user_id,
        "accepted_at": iso(r.accepted_at),
        "created_at": iso(r.created_at),
    }


async def _league_team_ids(session, competition_id: int) -> list[int]:
    teams = await list_all(session, Team, Team.competition_id == competition_id, order_by=Team.id)
    return [t.id for t in teams]


# --- League overview ---


@router.get("/{competition_id}")
async def get_league(competition_id: int, actor: Actor = Depends(get_actor)):
    """Plan, phase, team controls, current draft and the caller's own signup."""
    async with async_session_factory() as session:
        competition = await season_plans.require_dvhl_competition(session, competition_id)
        plan = await season_plans.get_plan(session, competition_id)
        team_ids = await _league_team_ids(session, competition_id)
        controls = await team_controls.get_team_control_map(session, team_ids)
        intents = await signups.list_intents(session, competition_id)
        mine = next((i for i in intents if i.user_id == actor.user_id), None)
        draft = await draft_service.get_current_session(session, competition_id)
        return {
            "competition_id": competition.id,
            "title": competition.title,
            "phase": season_plans.plan_phase(plan),
            "plan": _plan_to_dict(plan),
            "team_controls": [controls[tid].to_dict() for tid in team_ids],
            "signup_count": len(intents),
            "my_signup": {"wants_captain": mine.wants_captain, "note": mine.note} if mine else None,
            "draft": await _draft_to_dict(session, draft),
        }


# --- Season plan ---


@router.put("/{competition_id}/plan")
async def save_plan(competition_id: int, body: PlanUpdate, actor: Actor = Depends(require_dvhl_manager)):
    async with async_session_factory() as session:
        plan = await season_plans.upsert_plan(
            session,
            competition_id,
            actor.user_id,
            **body.model_dump(),
        )
        await commit(session)
        payload = _plan_to_dict(plan)
    await dispatch_event(HQEvent("plan_saved", actor.user_id, competition_id=competition_id))
    return {"ok": True, "outcome": "plan_saved", "plan": payload}


# --- Signups ---


@router.post("/{competition_id}/signup")
async def save_signup(competition_id: int, body: SignupBody, actor: Actor = Depends(get_actor)):
    is_manager = actor.can(MANAGE_DVHL)
    user_id = body.user_id if (body.user_id and is_manager) else actor.user_id
    if user_id == actor.user_id and not actor.is_eligible_player:
        raise UnauthorizedError("unauthorized", "Only approved players can sign up")
    async with async_session_factory() as session:
        intent = await signups.upsert_intent(
            session,
            competition_id,
            user_id,
            body.wants_captain,
            note=body.note,
            enforce_window=not is_manager,
        )
        await commit(session)
        return {
            "ok": True,
            "outcome": "signup_saved",
            "signup": {"user_id": intent.user_id, "wants_captain": intent.wants_captain, "note": intent.note},
        }


@router.get("/{competition_id}/signups")
async def list_signups(competition_id: int, captains_only: bool = False, actor: Actor = Depends(require_dvhl_manager)):
    async with async_session_factory() as session:
        await season_plans.require_dvhl_competition(session, competition_id)
        if captains_only:
            rows = await signups.captain_candidates(session, competition_id)
        else:
            rows = await signups.list_intents(session, competition_id)
        return [
            {
                "user_id": i.user_id,
                "wants_captain": i.wants_captain,
                "note": i.note,
                "created_at": iso(i.created_at),
                "updated_at": iso(i.updated_at),
            }
            for i in rows
        ]


# --- Captains and sub-pools ---


@router.put("/{competition_id}/captains")
async def save_captains(competition_id: int, body: CaptainsBody, actor: Actor = Depends(require_dvhl_manager)):
    async with async_session_factory() as session:
        await season_plans.require_dvhl_competition(session, competition_id)
        team_ids = await _league_team_ids(session, competition_id)
        for team_id in body.captains:
            if team_id not in team_ids:
                raise ValidationError("invalid_dvhl_team", team_id=team_id)
        controls = await team_controls.assign_captains(session, body.captains, actor.user_id)
        await commit(session)
        result = {c.team_id: c.captain_user_id for c in controls}
    for team_id, captain_id in result.items():
        await dispatch_event(
            HQEvent("captain_changed", actor.user_id, competition_id=competition_id, team_id=team_id, user_id=captain_id)
        )
    return {"ok": True, "outcome": "captains_assigned", "captains": result}


@router.post("/teams/{team_id}/sub-pool")
async def save_sub_pool(team_id: int, body: SubPoolBody, actor: Actor = Depends(get_actor)):
    """League managers edit any bench; captains edit their own."""
    if not actor.can_pick_for(team_id):
        raise UnauthorizedError("captain_access_required")
    async with async_session_factory() as session:
        if body.action == "remove":
            control = await team_controls.remove_sub_pool_member(session, team_id, body.user_id, actor.user_id)
        else:
            control = await team_controls.add_sub_pool_member(session, team_id, body.user_id, actor.user_id)
        await commit(session)
        return {"ok": True, "outcome": "subpool_saved", "sub_pool_user_ids": list(control.sub_pool_user_ids)}


# --- Draft ---


@router.post("/{competition_id}/draft/start")
async def start_draft(competition_id: int, body: DraftStart, actor: Actor = Depends(require_dvhl_manager)):
    async with async_session_factory() as session:
        draft = await draft_service.start_draft(
            session,
            competition_id,
            actor,
            pick_order_team_ids=body.pick_order_team_ids,
            pool_user_ids=body.pool_user_ids,
            draft_mode=body.draft_mode,
            rounds=body.rounds,
            include_all_eligible=body.include_all_eligible,
        )
        await commit(session)
        payload = await _draft_to_dict(session, draft)
    await dispatch_event(
        HQEvent("draft_started", actor.user_id, competition_id=competition_id, extra={"generation": payload["generation"]})
    )
    return {"ok": True, "outcome": "draft_started", "draft": payload}


@router.post("/{competition_id}/draft/close")
async def close_draft(competition_id: int, actor: Actor = Depends(require_dvhl_manager)):
    async with async_session_factory() as session:
        draft = await draft_service.close_draft(session, competition_id, actor)
        await commit(session)
        payload = await _draft_to_dict(session, draft)
    await dispatch_event(HQEvent("draft_closed", actor.user_id, competition_id=competition_id))
    return {"ok": True, "outcome": "draft_closed", "draft": payload}


@router.get("/{competition_id}/draft")
async def get_draft(competition_id: int, actor: Actor = Depends(get_actor)):
    async with async_session_factory() as session:
        await season_plans.require_dvhl_competition(session, competition_id)
        draft = await draft_service.get_current_session(session, competition_id)
        return await _draft_to_dict(session, draft)


@router.post("/{competition_id}/draft/pick")
async def make_pick(competition_id: int, body: DraftPickBody, actor: Actor = Depends(get_actor)):
    """Save the pick, then put the player on the team.

    The pick commits on its own; a failed membership write is reported
    alongside the saved pick and can be redone from the pick log.
    """
    async with async_session_factory() as session:
        pick = await draft_service.make_pick(session, competition_id, body.team_id, body.user_id, actor)
        await commit(session)
        pick_number = pick.pick_number
        round_ = pick.round

    membership_error = None
    async with async_session_factory() as session:
        try:
            await assign_member(session, body.team_id, body.user_id)
            await commit(session)
        except HQError as e:
            membership_error = e.code
            logger.error(
                "Pick %s saved but team %s membership for user %s failed: %s",
                pick_number, body.team_id, body.user_id, e.code,
            )

    await dispatch_event(
        HQEvent(
            "draft_pick",
            actor.user_id,
            competition_id=competition_id,
            team_id=body.team_id,
            user_id=body.user_id,
            extra={"pick_number": pick_number, "round": round_},
        )
    )
    return {
        "ok": True,
        "outcome": "draft_pick_saved",
        "pick_number": pick_number,
        "round": round_,
        "membership_error": membership_error,
    }


# --- Sub requests ---


@router.get("/{competition_id}/sub-requests")
async def list_sub_requests(competition_id: int, status: Optional[str] = None, actor: Actor = Depends(get_actor)):
    async with async_session_factory() as session:
        rows = await sub_requests.list_sub_requests(session, competition_id=competition_id, status=status)
        return [_sub_request_to_dict(r) for r in rows]


@router.post("/{competition_id}/sub-requests")
async def create_sub_request(competition_id: int, body: SubRequestCreate, actor: Actor = Depends(get_actor)):
    async with async_session_factory() as session:
        await season_plans.require_dvhl_competition(session, competition_id)
        request = await sub_requests.create_sub_request(
            session,
            competition_id,
            body.team_id,
            actor,
            message=body.message,
            needed_for_game_id=body.needed_for_game_id,
        )
        await commit(session)
        payload = _sub_request_to_dict(request)
    await dispatch_event(
        HQEvent(
            "sub_request_created",
            actor.user_id,
            competition_id=competition_id,
            team_id=body.team_id,
            extra={"request_id": payload["id"]},
        )
    )
    return {"ok": True, "outcome": "sub_request_created", "sub_request": payload}


@router.post("/sub-requests/{request_id}/accept")
async def accept_sub_request(request_id: int, actor: Actor = Depends(get_actor)):
    async with async_session_factory() as session:
        request = await sub_requests.accept_sub_request(session, request_id, actor)
        await commit(session)
        payload = _sub_request_to_dict(request)
    await dispatch_event(
        HQEvent(
            "sub_request_accepted",
            actor.user_id,
            competition_id=payload["competition_id"],
            team_id=payload["team_id"],
            user_id=actor.user_id,
            extra={"request_id": request_id},
        )
    )
    return {"ok": True, "outcome": "sub_request_accepted", "sub_request": payload}


@router.post("/sub-requests/{request_id}/cancel")
async def cancel_sub_request(request_id: int, actor: Actor = Depends(get_actor)):
    async with async_session_factory() as session:
        request = await sub_requests.cancel_sub_request(session, request_id, actor)
        await commit(session)
        payload = _sub_request_to_dict(request)
    await dispatch_event(
        HQEvent(
            "sub_request_cancelled",
            actor.user_id,
            competition_id=payload["competition_id"],
            team_id=payload["team_id"],
            extra={"request_id": request_id},
        )
    )
    return {"ok": True, "outcome": "sub_request_cancelled", "sub_request": payload}
