"""DVHL season plan: signup windows, captain count, draft configuration."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

import config
from hq.models import Competition, SeasonPlan
from hq.models.base import as_utc, utcnow
from hq.models.dvhl import DRAFT_MODES, PLAYER_POOL_STRATEGIES, TEAM_ORDER_STRATEGIES
from hq.repository import flush
from hq.services.errors import NotFoundError, ValidationError

logger = logging.getLogger("hq.dvhl")


def coerce_choice(value: Any, allowed: Sequence[str], default: str) -> str:
    """Map a free-form value onto a closed enumeration.

    Unknown or empty values fall back to ``default`` rather than failing;
    plan forms are permissive about strategy fields.
    """
    if value is None:
        return default
    text = str(value).strip().lower()
    return text if text in allowed else default


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse an ISO datetime (or pass a datetime through) as UTC. Blank means unset."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return as_utc(value)
    s = str(value).strip()
    if not s:
        return None
    try:
        dt = datetime.fromisoformat(s.replace("Z", "+00:00"))
    except ValueError:
        raise ValidationError("invalid_datetime", f"Not an ISO datetime: {s}")
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _parse_count(value: Any, default: int, code: str) -> int:
    if value is None or (isinstance(value, str) and not value.strip()):
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(code)


async def require_dvhl_competition(session: AsyncSession, competition_id: int) -> Competition:
    competition = await session.get(Competition, competition_id)
    if competition is None or competition.type != "DVHL":
        raise NotFoundError("dvhl_competition_not_found")
    return competition


async def get_plan(session: AsyncSession, competition_id: int) -> Optional[SeasonPlan]:
    return await session.get(SeasonPlan, competition_id)


async def upsert_plan(
    session: AsyncSession,
    competition_id: int,
    updated_by_user_id: int,
    signup_closes_at: Any = None,
    captain_signup_closes_at: Any = None,
    desired_captain_count: Any = None,
    rounds: Any = None,
    team_order_strategy: Any = None,
    player_pool_strategy: Any = None,
    draft_mode: Any = None,
    now: Optional[datetime] = None,
) -> SeasonPlan:
    """Replace the competition's plan with the given fields (omitted ones take defaults)."""
    rounds_value = _parse_count(rounds, 1, "invalid_rounds")
    if rounds_value < 1:
        raise ValidationError("invalid_rounds", "Draft needs at least one round")
    captains = _parse_count(desired_captain_count, config.DEFAULT_DESIRED_CAPTAIN_COUNT, "invalid_desired_captain_count")
    if captains < 0:
        raise ValidationError("invalid_desired_captain_count")
    signup_close = parse_datetime(signup_closes_at)
    captain_close = parse_datetime(captain_signup_closes_at)

    await require_dvhl_competition(session, competition_id)
    now = now or utcnow()
    plan = await session.get(SeasonPlan, competition_id)
    if plan is None:
        plan = SeasonPlan(competition_id=competition_id, created_at=now)
        session.add(plan)

    plan.signup_closes_at = signup_close
    plan.captain_signup_closes_at = captain_close
    plan.desired_captain_count = captains
    plan.rounds = rounds_value
    plan.team_order_strategy = coerce_choice(team_order_strategy, TEAM_ORDER_STRATEGIES, "manual")
    plan.player_pool_strategy = coerce_choice(player_pool_strategy, PLAYER_POOL_STRATEGIES, "all_signups")
    plan.draft_mode = coerce_choice(draft_mode, DRAFT_MODES, "manual")
    plan.updated_at = now
    plan.updated_by_user_id = updated_by_user_id
    await flush(session)
    logger.info("Season plan saved for competition %s by user %s", competition_id, updated_by_user_id)
    return plan


def window_closed(closes_at: Optional[datetime], now: Optional[datetime] = None) -> bool:
    closes_at = as_utc(closes_at)
    if closes_at is None:
        return False
    return closes_at <= (now or utcnow())


def plan_phase(plan: Optional[SeasonPlan], now: Optional[datetime] = None) -> str:
    """plan_setup before a plan exists, signup_open until signups close, then captain_assignment."""
    if plan is None:
        return "plan_setup"
    if plan.signup_closes_at and not window_closed(plan.signup_closes_at, now):
        return "signup_open"
    return "captain_assignment"
