"""Competitions, their teams, and team membership."""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

import config
from hq.models import Competition, DraftSession, Player, SubRequest, Team, TeamControl, TeamMembership, User
from hq.models.base import utcnow
from hq.models.user import ELIGIBLE_ROLES
from hq.repository import find_one, flush, get_or_raise, list_all
from hq.services.errors import ConflictError, NotFoundError, ValidationError

logger = logging.getLogger("hq.competitions")


def _clean_title(title: Optional[str]) -> str:
    title = (title or "").strip()
    if not title:
        raise ValidationError("title_required")
    return title


async def _create(
    session: AsyncSession,
    type_: str,
    title: str,
    starts_at: Optional[datetime],
    notes: Optional[str],
) -> Competition:
    competition = Competition(
        type=type_,
        title=_clean_title(title),
        starts_at=starts_at,
        notes=(notes or "").strip() or None,
    )
    session.add(competition)
    await flush(session)
    return competition


async def create_single_game(
    session: AsyncSession,
    title: str,
    starts_at: Optional[datetime] = None,
    notes: Optional[str] = None,
    team_names: Iterable[str] = (),
) -> Competition:
    competition = await _create(session, "SINGLE_GAME", title, starts_at, notes)
    for name in team_names:
        name = (name or "").strip()
        if name:
            session.add(Team(competition_id=competition.id, name=name, roster_mode="SINGLE_GAME"))
    await flush(session)
    logger.info("Single game %s created: %s", competition.id, competition.title)
    return competition


async def create_tournament(
    session: AsyncSession,
    title: str,
    sub_rosters: Iterable[str],
    starts_at: Optional[datetime] = None,
    notes: Optional[str] = None,
) -> Competition:
    """Tournament with one team per sub-roster color (e.g. GOLD, WHITE)."""
    keys = []
    for key in sub_rosters:
        key = (key or "").strip().lower()
        if not key:
            continue
        if key not in config.SUB_ROSTERS:
            raise ValidationError("invalid_sub_roster", f"Unknown sub-roster: {key}")
        if key not in keys:
            keys.append(key)
    if not keys:
        raise ValidationError("teams_required", "Pick at least one sub-roster")
    competition = await _create(session, "TOURNAMENT", title, starts_at, notes)
    for key in keys:
        session.add(Team(competition_id=competition.id, name=key.upper(), color_tag=key, roster_mode="TOURNAMENT"))
    await flush(session)
    logger.info("Tournament %s created with teams %s", competition.id, keys)
    return competition


async def create_dvhl(
    session: AsyncSession,
    title: str,
    team_names: Iterable[str] = (),
    starts_at: Optional[datetime] = None,
    notes: Optional[str] = None,
) -> Competition:
    """League with named draft teams; "Team 1".."Team N" when no names are given."""
    names = [n.strip() for n in team_names if n and n.strip()]
    if not names:
        names = [f"Team {i}" for i in range(1, config.DVHL_DEFAULT_TEAM_COUNT + 1)]
    competition = await _create(session, "DVHL", title, starts_at, notes)
    for name in names:
        session.add(Team(competition_id=competition.id, name=name, roster_mode="DVHL_DRAFT"))
    await flush(session)
    logger.info("DVHL league %s created with %s teams", competition.id, len(names))
    return competition


async def add_team(
    session: AsyncSession,
    competition_id: int,
    name: str,
    color_tag: Optional[str] = None,
) -> Team:
    competition = await get_or_raise(session, Competition, competition_id, "competition_not_found")
    name = (name or "").strip()
    if not name:
        raise ValidationError("team_name_required")
    roster_mode = {"DVHL": "DVHL_DRAFT", "TOURNAMENT": "TOURNAMENT"}.get(competition.type, "SINGLE_GAME")
    team = Team(
        competition_id=competition.id,
        name=name,
        color_tag=(color_tag or "").strip().lower() or None,
        roster_mode=roster_mode,
    )
    session.add(team)
    await flush(session)
    return team


async def remove_team(session: AsyncSession, team_id: int) -> None:
    """Delete a team with its captain/bench row; open sub requests for it are cancelled.

    Refused while an open draft still has the team in its pick order.
    """
    team = await get_or_raise(session, Team, team_id, "team_not_found")
    open_drafts = await list_all(
        session,
        DraftSession,
        DraftSession.competition_id == team.competition_id,
        DraftSession.status == "open",
    )
    if any(team_id in (d.pick_order_team_ids or []) for d in open_drafts):
        raise ConflictError("team_in_open_draft", "Close the draft before removing this team", team_id=team_id)

    control = await session.get(TeamControl, team_id)
    if control is not None:
        await session.delete(control)
    now = utcnow()
    for request in await list_all(session, SubRequest, SubRequest.team_id == team_id, SubRequest.status == "open"):
        request.status = "cancelled"
        request.updated_at = now
    await session.delete(team)
    await flush(session)
    logger.info("Team %s removed from competition %s", team_id, team.competition_id)


async def get_competition(session: AsyncSession, competition_id: int) -> Competition:
    result = await session.execute(
        select(Competition)
        .where(Competition.id == competition_id)
        .options(selectinload(Competition.teams).selectinload(Team.members))
        .execution_options(populate_existing=True)
    )
    competition = result.scalar_one_or_none()
    if competition is None:
        raise NotFoundError("competition_not_found")
    return competition


async def list_competitions(session: AsyncSession, type_: Optional[str] = None) -> list[Competition]:
    query = select(Competition).options(selectinload(Competition.teams).selectinload(Team.members))
    if type_:
        query = query.where(Competition.type == type_)
    result = await session.execute(query.order_by(Competition.created_at.desc(), Competition.id.desc()))
    return list(result.scalars().all())


async def assign_member(session: AsyncSession, team_id: int, user_id: int) -> TeamMembership:
    """Put a user on a team. Re-assigning an existing member is a no-op."""
    team = await get_or_raise(session, Team, team_id, "team_not_found")
    user = await get_or_raise(session, User, user_id, "user_not_found")
    if not user.is_eligible:
        raise ConflictError("player_not_eligible", f"{user.username} cannot be placed on a team")
    existing = await find_one(
        session,
        TeamMembership,
        TeamMembership.team_id == team.id,
        TeamMembership.user_id == user.id,
    )
    if existing:
        return existing
    membership = TeamMembership(team_id=team.id, user_id=user.id)
    session.add(membership)
    await flush(session)
    logger.info("User %s assigned to team %s", user_id, team_id)
    return membership


async def remove_member(session: AsyncSession, team_id: int, user_id: int) -> bool:
    existing = await find_one(
        session,
        TeamMembership,
        TeamMembership.team_id == team_id,
        TeamMembership.user_id == user_id,
    )
    if existing is None:
        return False
    await session.delete(existing)
    await flush(session)
    return True


async def member_user_ids(session: AsyncSession, competition_id: int) -> list[int]:
    """Users on any team in the competition, in assignment order."""
    result = await session.execute(
        select(TeamMembership.user_id)
        .join(Team, Team.id == TeamMembership.team_id)
        .where(Team.competition_id == competition_id)
        .order_by(TeamMembership.id)
    )
    seen: list[int] = []
    for (uid,) in result.fetchall():
        if uid not in seen:
            seen.append(uid)
    return seen


async def list_eligible_players(session: AsyncSession) -> list[User]:
    """Approved users with a drafting role, ordered by roster name."""
    result = await session.execute(
        select(User)
        .outerjoin(Player, Player.user_id == User.id)
        .where(User.status == "approved", User.role.in_(ELIGIBLE_ROLES))
        .options(selectinload(User.player))
        .order_by(Player.full_name, User.username)
    )
    return list(result.scalars().all())
