"""API routes for competitions, teams, and team membership."""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from hq.models import Competition
from hq.models.base import async_session_factory
from hq.permissions import ADMIN_PORTAL, Actor
from hq.repository import commit
from hq.services import competitions as competition_service
from web.api.utils import iso, user_display_name
from web.auth import get_actor, require_permission

router = APIRouter(prefix="/api", tags=["competitions"])

require_admin_portal = require_permission(ADMIN_PORTAL)


# --- Pydantic schemas ---


class SingleGameCreate(BaseModel):
    title: str
    starts_at: Optional[datetime] = None
    notes: Optional[str] = None
    team_names: list[str] = ["Single Game Squad"]


class TournamentCreate(BaseModel):
    title: str
    sub_rosters: list[str]
    starts_at: Optional[datetime] = None
    notes: Optional[str] = None


class DvhlCreate(BaseModel):
    title: str
    team_names: list[str] = []
    starts_at: Optional[datetime] = None
    notes: Optional[str] = None


class TeamCreate(BaseModel):
    name: str
    color_tag: Optional[str] = None


class MemberAssign(BaseModel):
    user_id: int


async def _competition_payload(session, competition_id: int) -> dict:
    competition = await competition_service.get_competition(session, competition_id)
    return _competition_to_dict(competition)


def _competition_to_dict(c: Competition) -> dict:
    return {
        "id": c.id,
        "type": c.type,
        "title": c.title,
        "starts_at": iso(c.starts_at),
        "notes": c.notes,
        "created_at": iso(c.created_at),
        "teams": [
            {
                "id": t.id,
                "name": t.name,
                "color_tag": t.color_tag,
                "roster_mode": t.roster_mode,
                "member_user_ids": [m.user_id for m in t.members],
            }
            for t in c.teams
        ],
    }


@router.get("/competitions")
async def list_competitions(type: Optional[str] = None):
    """List competitions with their teams, newest first."""
    async with async_session_factory() as session:
        rows = await competition_service.list_competitions(session, type_=type.upper() if type else None)
        return [_competition_to_dict(c) for c in rows]


@router.get("/competitions/{competition_id}")
async def get_competition(competition_id: int):
    async with async_session_factory() as session:
        return await _competition_payload(session, competition_id)


@router.post("/competitions/single-game")
async def create_single_game(body: SingleGameCreate, actor: Actor = Depends(require_admin_portal)):
    async with async_session_factory() as session:
        c = await competition_service.create_single_game(
            session, body.title, starts_at=body.starts_at, notes=body.notes, team_names=body.team_names
        )
        await commit(session)
        return {"ok": True, "outcome": "competition_created", "competition": await _competition_payload(session, c.id)}


@router.post("/competitions/tournament")
async def create_tournament(body: TournamentCreate, actor: Actor = Depends(require_admin_portal)):
    async with async_session_factory() as session:
        c = await competition_service.create_tournament(
            session, body.title, body.sub_rosters, starts_at=body.starts_at, notes=body.notes
        )
        await commit(session)
        return {"ok": True, "outcome": "competition_created", "competition": await _competition_payload(session, c.id)}


@router.post("/competitions/dvhl")
async def create_dvhl(body: DvhlCreate, actor: Actor = Depends(require_admin_portal)):
    async with async_session_factory() as session:
        c = await competition_service.create_dvhl(
            session, body.title, body.team_names, starts_at=body.starts_at, notes=body.notes
        )
        await commit(session)
        return {"ok": True, "outcome": "competition_created", "competition": await _competition_payload(session, c.id)}


@router.post("/competitions/{competition_id}/teams")
async def add_team(competition_id: int, body: TeamCreate, actor: Actor = Depends(require_admin_portal)):
    async with async_session_factory() as session:
        team = await competition_service.add_team(session, competition_id, body.name, color_tag=body.color_tag)
        await commit(session)
        return {"ok": True, "outcome": "team_created", "team_id": team.id}


@router.delete("/teams/{team_id}")
async def remove_team(team_id: int, actor: Actor = Depends(require_admin_portal)):
    async with async_session_factory() as session:
        await competition_service.remove_team(session, team_id)
        await commit(session)
        return {"ok": True, "outcome": "team_removed"}


@router.post("/teams/{team_id}/members")
async def assign_member(team_id: int, body: MemberAssign, actor: Actor = Depends(require_admin_portal)):
    async with async_session_factory() as session:
        await competition_service.assign_member(session, team_id, body.user_id)
        await commit(session)
        return {"ok": True, "outcome": "assignment_saved"}


@router.delete("/teams/{team_id}/members/{user_id}")
async def remove_member(team_id: int, user_id: int, actor: Actor = Depends(require_admin_portal)):
    async with async_session_factory() as session:
        removed = await competition_service.remove_member(session, team_id, user_id)
        await commit(session)
        return {"ok": True, "removed": removed}


@router.get("/eligible-players")
async def list_eligible_players(actor: Actor = Depends(get_actor)):
    """Approved users who can be drafted or placed on a team."""
    async with async_session_factory() as session:
        users = await competition_service.list_eligible_players(session)
        return [
            {
                "user_id": u.id,
                "name": user_display_name(u, u.player),
                "roster_id": u.player.roster_id if u.player else None,
                "primary_sub_roster": u.player.primary_sub_roster if u.player else None,
            }
            for u in users
        ]
