"""Jersey number allocation: uniqueness per roster and sub-roster."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

import config
from hq.models import Competition, Player, Team, TeamMembership
from hq.models.base import utcnow
from hq.models.player import ACTIVITY_STATUSES
from hq.repository import flush, get_or_raise, list_all
from hq.services.errors import ValidationError

logger = logging.getLogger("hq.jersey")


@dataclass
class JerseyConflict:
    """The other player already wearing the number."""

    user_id: int
    name: str
    roster_id: Optional[str]
    jersey_number: int
    primary_sub_roster: Optional[str]
    shared_tournament_titles: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "name": self.name,
            "roster_id": self.roster_id,
            "jersey_number": self.jersey_number,
            "primary_sub_roster": self.primary_sub_roster,
            "shared_tournament_titles": list(self.shared_tournament_titles),
        }


@dataclass
class AssignResult:
    ok: bool
    conflict: Optional[JerseyConflict] = None
    player: Optional[Player] = None


def validate_jersey_number(value: Any) -> int:
    """Parse and range-check a jersey number. The allocator itself only checks uniqueness."""
    if isinstance(value, bool):
        raise ValidationError("invalid_jersey_number")
    try:
        number = int(str(value).strip())
    except (TypeError, ValueError):
        raise ValidationError("invalid_jersey_number", f"Jersey number must be {config.JERSEY_NUMBER_MIN}-{config.JERSEY_NUMBER_MAX}")
    if number < config.JERSEY_NUMBER_MIN or number > config.JERSEY_NUMBER_MAX:
        raise ValidationError("invalid_jersey_number", f"Jersey number must be {config.JERSEY_NUMBER_MIN}-{config.JERSEY_NUMBER_MAX}")
    return number


def overlap_permitted(a: Player, b: Player) -> bool:
    """Cross-color sharing: both opted in and on different sub-rosters."""
    if not (a.allow_cross_color_jersey_overlap and b.allow_cross_color_jersey_overlap):
        return False
    if not a.primary_sub_roster or not b.primary_sub_roster:
        return False
    return a.primary_sub_roster != b.primary_sub_roster


async def shared_tournament_titles(session: AsyncSession, user_id: int, other_user_id: int) -> list[str]:
    """Titles of tournaments where both users have played, oldest first."""
    result = await session.execute(
        select(Competition.id, Competition.title, TeamMembership.user_id)
        .join(Team, Team.competition_id == Competition.id)
        .join(TeamMembership, TeamMembership.team_id == Team.id)
        .where(
            Competition.type == "TOURNAMENT",
            TeamMembership.user_id.in_([user_id, other_user_id]),
        )
        .order_by(Competition.id)
    )
    players_by_competition: dict[int, set[int]] = {}
    titles: dict[int, str] = {}
    for competition_id, title, member_id in result.all():
        players_by_competition.setdefault(competition_id, set()).add(member_id)
        titles[competition_id] = title
    return [titles[cid] for cid, ids in players_by_competition.items() if len(ids) == 2]


async def find_jersey_conflicts(
    session: AsyncSession,
    target: Player,
    roster_id: Optional[str],
    jersey_number: Optional[int],
) -> list[JerseyConflict]:
    """Active roster-mates holding the number whom ``target`` may not share with."""
    if not roster_id or jersey_number is None:
        return []
    holders = await list_all(
        session,
        Player,
        Player.roster_id == roster_id,
        Player.jersey_number == jersey_number,
        Player.activity_status == "active",
        Player.user_id != target.user_id,
        order_by=Player.user_id,
    )
    return [
        JerseyConflict(
            user_id=other.user_id,
            name=other.full_name,
            roster_id=other.roster_id,
            jersey_number=jersey_number,
            primary_sub_roster=other.primary_sub_roster,
            shared_tournament_titles=await shared_tournament_titles(session, target.user_id, other.user_id),
        )
        for other in holders
        if not overlap_permitted(target, other)
    ]


async def assign_jersey(
    session: AsyncSession,
    user_id: int,
    full_name: str,
    roster_id: Optional[str],
    jersey_number: Optional[int],
    activity_status: str,
    force_override: bool = False,
    now: Optional[datetime] = None,
) -> AssignResult:
    """Book a jersey number on the player's record.

    A matching active roster-mate is a conflict unless ``force_override`` is
    set or both players opted into cross-color overlap on different
    sub-rosters. On conflict nothing is written. Inactive players keep their
    number without a uniqueness check.
    """
    if activity_status not in ACTIVITY_STATUSES:
        raise ValidationError("invalid_activity_status")
    player = await get_or_raise(session, Player, user_id, "player_not_found")
    roster_id = (roster_id or "").strip() or None
    full_name = (full_name or "").strip() or player.full_name

    conflicts: list[JerseyConflict] = []
    if activity_status == "active":
        conflicts = await find_jersey_conflicts(session, player, roster_id, jersey_number)
    if conflicts and not force_override:
        logger.info(
            "Jersey #%s on roster %s refused for user %s: held by %s",
            jersey_number, roster_id, user_id, conflicts[0].user_id,
        )
        return AssignResult(ok=False, conflict=conflicts[0], player=player)
    if conflicts:
        logger.info("Jersey #%s on roster %s forced for user %s", jersey_number, roster_id, user_id)

    player.full_name = full_name
    player.roster_id = roster_id
    player.jersey_number = jersey_number
    player.activity_status = activity_status
    player.updated_at = now or utcnow()
    await flush(session)
    return AssignResult(ok=True, player=player)


async def list_available_numbers(
    session: AsyncSession,
    roster_id: str,
    include_user_id: Optional[int] = None,
) -> list[int]:
    """Numbers not held by any active player on the roster (ignoring ``include_user_id``)."""
    roster_id = (roster_id or "").strip()
    if not roster_id:
        return []
    holders = await list_all(
        session,
        Player,
        Player.roster_id == roster_id,
        Player.activity_status == "active",
        Player.jersey_number.is_not(None),
    )
    taken = {p.jersey_number for p in holders if p.user_id != include_user_id}
    return [n for n in range(config.JERSEY_NUMBER_MIN, config.JERSEY_NUMBER_MAX + 1) if n not in taken]
