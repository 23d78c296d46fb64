"""Per-team captain and sub-pool (bench) registries."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from hq.models import Team, TeamControl, User
from hq.models.base import utcnow
from hq.repository import flush, get_or_raise, list_all, unique_ids
from hq.services.errors import ValidationError

logger = logging.getLogger("hq.dvhl")


@dataclass
class TeamControlView:
    """Captain and bench for a team; defaults when no row exists yet."""

    team_id: int
    captain_user_id: Optional[int] = None
    sub_pool_user_ids: list[int] = field(default_factory=list)
    updated_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "team_id": self.team_id,
            "captain_user_id": self.captain_user_id,
            "sub_pool_user_ids": list(self.sub_pool_user_ids),
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


async def _load_or_create(session: AsyncSession, team_id: int) -> TeamControl:
    await get_or_raise(session, Team, team_id, "team_not_found")
    control = await session.get(TeamControl, team_id)
    if control is None:
        control = TeamControl(team_id=team_id, captain_user_id=None, sub_pool_user_ids=[])
        session.add(control)
    return control


async def set_captain(
    session: AsyncSession,
    team_id: int,
    captain_user_id: Optional[int],
    updated_by_user_id: int,
) -> TeamControl:
    """Replace the team's captain (None clears it). The sub-pool is untouched."""
    if captain_user_id is not None:
        await get_or_raise(session, User, captain_user_id, "user_not_found")
    control = await _load_or_create(session, team_id)
    control.captain_user_id = captain_user_id
    control.updated_at = utcnow()
    control.updated_by_user_id = updated_by_user_id
    await flush(session)
    logger.info("Team %s captain set to %s by user %s", team_id, captain_user_id, updated_by_user_id)
    return control


async def assign_captains(
    session: AsyncSession,
    captains: dict[int, Optional[int]],
    updated_by_user_id: int,
) -> list[TeamControl]:
    """Set several captains at once, e.g. from the captain assignment form."""
    return [
        await set_captain(session, team_id, captain_user_id, updated_by_user_id)
        for team_id, captain_user_id in captains.items()
    ]


async def add_sub_pool_member(
    session: AsyncSession,
    team_id: int,
    user_id: int,
    updated_by_user_id: int,
) -> TeamControl:
    if user_id is None:
        raise ValidationError("missing_user_id")
    await get_or_raise(session, User, user_id, "user_not_found")
    control = await _load_or_create(session, team_id)
    current = unique_ids(control.sub_pool_user_ids or [])
    if user_id in current:
        return control
    control.sub_pool_user_ids = sorted(current + [user_id])
    control.updated_at = utcnow()
    control.updated_by_user_id = updated_by_user_id
    await flush(session)
    logger.info("User %s added to team %s sub-pool", user_id, team_id)
    return control


async def remove_sub_pool_member(
    session: AsyncSession,
    team_id: int,
    user_id: int,
    updated_by_user_id: int,
) -> TeamControl:
    control = await _load_or_create(session, team_id)
    current = unique_ids(control.sub_pool_user_ids or [])
    if user_id not in current:
        return control
    control.sub_pool_user_ids = sorted(uid for uid in current if uid != user_id)
    control.updated_at = utcnow()
    control.updated_by_user_id = updated_by_user_id
    await flush(session)
    logger.info("User %s removed from team %s sub-pool", user_id, team_id)
    return control


async def get_team_control_map(session: AsyncSession, team_ids: Iterable[int]) -> dict[int, TeamControlView]:
    ids = unique_ids(list(team_ids))
    if not ids:
        return {}
    rows = await list_all(session, TeamControl, TeamControl.team_id.in_(ids))
    by_team = {row.team_id: row for row in rows}
    out: dict[int, TeamControlView] = {}
    for team_id in ids:
        row = by_team.get(team_id)
        if row is None:
            out[team_id] = TeamControlView(team_id=team_id)
        else:
            out[team_id] = TeamControlView(
                team_id=team_id,
                captain_user_id=row.captain_user_id,
                sub_pool_user_ids=unique_ids(row.sub_pool_user_ids or []),
                updated_at=row.updated_at,
            )
    return out


async def is_captain_of_team(session: AsyncSession, user_id: int, team_id: int) -> bool:
    control = await session.get(TeamControl, team_id)
    return control is not None and control.captain_user_id == user_id
