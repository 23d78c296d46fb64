"""Roster profiles: the non-number fields of a player's record."""
from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

import config
from hq.models import Player, User
from hq.models.base import utcnow
from hq.repository import find_one, flush, get_or_raise, list_all
from hq.services.errors import ConflictError, ValidationError
from hq.services.jersey import find_jersey_conflicts

logger = logging.getLogger("hq.roster")

_UNSET = object()


def normalize_sub_roster(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip().lower()
    if not value:
        return None
    if value not in config.SUB_ROSTERS:
        raise ValidationError("invalid_sub_roster", f"Sub-roster must be one of {', '.join(config.SUB_ROSTERS)}")
    return value


async def create_player(
    session: AsyncSession,
    user_id: int,
    full_name: str,
    roster_id: Optional[str] = None,
    primary_sub_roster: Optional[str] = None,
    allow_cross_color_jersey_overlap: bool = False,
) -> Player:
    """Attach a roster record (without a jersey number) to an existing user."""
    full_name = (full_name or "").strip()
    if not full_name:
        raise ValidationError("full_name_required")
    await get_or_raise(session, User, user_id, "user_not_found")
    if await find_one(session, Player, Player.user_id == user_id):
        raise ConflictError("player_exists")
    player = Player(
        user_id=user_id,
        full_name=full_name,
        roster_id=(roster_id or "").strip() or None,
        primary_sub_roster=normalize_sub_roster(primary_sub_roster),
        allow_cross_color_jersey_overlap=allow_cross_color_jersey_overlap,
        activity_status="active",
    )
    session.add(player)
    await flush(session)
    logger.info("Player %s added to roster %s", user_id, player.roster_id)
    return player


async def update_player_profile(
    session: AsyncSession,
    user_id: int,
    primary_sub_roster=_UNSET,
    allow_cross_color_jersey_overlap=_UNSET,
    force_override: bool = False,
) -> Player:
    """Change the sub-roster or overlap opt-in. Refuses changes that would collide with a held number."""
    player = await get_or_raise(session, Player, user_id, "player_not_found")
    old = (player.primary_sub_roster, player.allow_cross_color_jersey_overlap)
    if primary_sub_roster is not _UNSET:
        player.primary_sub_roster = normalize_sub_roster(primary_sub_roster)
    if allow_cross_color_jersey_overlap is not _UNSET:
        player.allow_cross_color_jersey_overlap = bool(allow_cross_color_jersey_overlap)

    if player.is_active and player.jersey_number is not None and not force_override:
        conflicts = await find_jersey_conflicts(session, player, player.roster_id, player.jersey_number)
        if conflicts:
            player.primary_sub_roster, player.allow_cross_color_jersey_overlap = old
            raise ConflictError(
                "jersey_number_conflict",
                f"#{player.jersey_number} is also worn by {conflicts[0].name}",
                conflict=conflicts[0].to_dict(),
            )
    player.updated_at = utcnow()
    await flush(session)
    return player


async def list_players(
    session: AsyncSession,
    roster_id: Optional[str] = None,
    include_inactive: bool = True,
) -> list[Player]:
    where = []
    if roster_id:
        where.append(Player.roster_id == roster_id)
    if not include_inactive:
        where.append(Player.activity_status == "active")
    return await list_all(session, Player, *where, order_by=Player.full_name)
