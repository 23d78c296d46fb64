"""DVHL signup intents with a two-phase window (captain interest locks first)."""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from hq.models import SignupIntent, User
from hq.models.base import utcnow
from hq.repository import find_one, flush, get_or_raise, list_all
from hq.services.errors import ConflictError, WindowClosedError
from hq.services.season_plans import get_plan, require_dvhl_competition, window_closed

logger = logging.getLogger("hq.dvhl")


async def upsert_intent(
    session: AsyncSession,
    competition_id: int,
    user_id: int,
    wants_captain: bool,
    note: Optional[str] = None,
    now: Optional[datetime] = None,
    enforce_window: bool = True,
) -> SignupIntent:
    """Record an eligible player's interest in the league.

    Rejected once the signup window has closed (callers exempt league
    managers by passing ``enforce_window=False``). After the captain window
    closes, ``wants_captain`` keeps its stored value; the note still updates.
    """
    now = now or utcnow()
    await require_dvhl_competition(session, competition_id)
    user = await get_or_raise(session, User, user_id, "user_not_found")
    if not user.is_eligible:
        raise ConflictError("player_not_eligible", f"{user.username} cannot sign up for the league")
    plan = await get_plan(session, competition_id)
    if enforce_window and plan and window_closed(plan.signup_closes_at, now):
        raise WindowClosedError("signup_window_closed", "DVHL signup is closed")

    existing = await find_one(
        session,
        SignupIntent,
        SignupIntent.competition_id == competition_id,
        SignupIntent.user_id == user_id,
    )
    captain_locked = bool(plan and window_closed(plan.captain_signup_closes_at, now))
    if captain_locked:
        wants_captain = bool(existing.wants_captain) if existing else False

    if existing is None:
        existing = SignupIntent(competition_id=competition_id, user_id=user_id, created_at=now)
        session.add(existing)
    existing.wants_captain = bool(wants_captain)
    existing.note = (note or "").strip() or None
    existing.updated_at = now
    await flush(session)
    logger.info(
        "Signup saved: user %s competition %s (captain=%s%s)",
        user_id, competition_id, existing.wants_captain, ", locked" if captain_locked else "",
    )
    return existing


async def list_intents(session: AsyncSession, competition_id: int) -> list[SignupIntent]:
    return await list_all(
        session,
        SignupIntent,
        SignupIntent.competition_id == competition_id,
        order_by=SignupIntent.created_at,
    )


async def captain_candidates(session: AsyncSession, competition_id: int) -> list[SignupIntent]:
    return [i for i in await list_intents(session, competition_id) if i.wants_captain]
