"""Captains asking their bench for a substitute."""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from hq.models import SubRequest, Team, TeamControl
from hq.models.base import utcnow
from hq.permissions import MANAGE_DVHL, Actor
from hq.repository import flush, get_or_raise, list_all
from hq.services.errors import ConflictError, UnauthorizedError, ValidationError

logger = logging.getLogger("hq.dvhl")


async def create_sub_request(
    session: AsyncSession,
    competition_id: int,
    team_id: int,
    actor: Actor,
    message: Optional[str] = None,
    needed_for_game_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> SubRequest:
    if not competition_id or not team_id:
        raise ValidationError("missing_sub_request_fields")
    team = await get_or_raise(session, Team, team_id, "team_not_found")
    if team.competition_id != competition_id:
        raise ValidationError("invalid_dvhl_team")
    control = await session.get(TeamControl, team_id)
    captain_id = control.captain_user_id if control else None
    if captain_id != actor.user_id and not actor.can(MANAGE_DVHL):
        raise UnauthorizedError("captain_access_required")

    now = now or utcnow()
    request = SubRequest(
        competition_id=competition_id,
        team_id=team_id,
        captain_user_id=captain_id or actor.user_id,
        requested_by_user_id=actor.user_id,
        message=(message or "").strip() or None,
        needed_for_game_id=(needed_for_game_id or "").strip() or None,
        status="open",
        created_at=now,
        updated_at=now,
    )
    session.add(request)
    await flush(session)
    logger.info("Sub request %s opened for team %s by user %s", request.id, team_id, actor.user_id)
    return request


async def accept_sub_request(
    session: AsyncSession,
    request_id: int,
    actor: Actor,
    now: Optional[datetime] = None,
) -> SubRequest:
    """A bench player (or league manager) takes the open request."""
    request = await get_or_raise(session, SubRequest, request_id, "sub_request_not_found")
    control = await session.get(TeamControl, request.team_id)
    on_bench = control is not None and actor.user_id in (control.sub_pool_user_ids or [])
    if not on_bench and not actor.can(MANAGE_DVHL):
        raise UnauthorizedError("not_in_sub_pool")
    if request.status != "open":
        raise ConflictError("sub_request_not_open")
    now = now or utcnow()
    request.status = "accepted"
    request.accepted_by_user_id = actor.user_id
    request.accepted_at = now
    request.updated_at = now
    await flush(session)
    logger.info("Sub request %s accepted by user %s", request.id, actor.user_id)
    return request


async def cancel_sub_request(
    session: AsyncSession,
    request_id: int,
    actor: Actor,
    now: Optional[datetime] = None,
) -> SubRequest:
    request = await get_or_raise(session, SubRequest, request_id, "sub_request_not_found")
    control = await session.get(TeamControl, request.team_id)
    is_captain = control is not None and control.captain_user_id == actor.user_id
    if not (is_captain or request.requested_by_user_id == actor.user_id or actor.can(MANAGE_DVHL)):
        raise UnauthorizedError("sub_request_cancel_not_authorized")
    if request.status != "open":
        raise ConflictError("sub_request_not_open")
    request.status = "cancelled"
    request.updated_at = now or utcnow()
    await flush(session)
    logger.info("Sub request %s cancelled by user %s", request.id, actor.user_id)
    return request


async def list_sub_requests(
    session: AsyncSession,
    competition_id: Optional[int] = None,
    status: Optional[str] = None,
) -> list[SubRequest]:
    where = []
    if competition_id is not None:
        where.append(SubRequest.competition_id == competition_id)
    if status:
        where.append(SubRequest.status == status)
    return await list_all(session, SubRequest, *where, order_by=SubRequest.created_at.desc())
