"""DVHL draft sessions.

Each start opens a new generation for the competition; the highest
generation is the current session. Picks are appended to a log and never
mutate the session's pool snapshot. Membership is created by the caller
after the pick is saved.
"""
from __future__ import annotations

import logging
import random
from datetime import datetime
from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hq.models import DraftPick, DraftSession, SignupIntent, Team, User
from hq.models.base import utcnow
from hq.models.dvhl import DRAFT_MODES
from hq.permissions import MANAGE_DVHL, Actor
from hq.repository import flush, list_all, unique_ids
from hq.services.competitions import list_eligible_players, member_user_ids
from hq.services.errors import ConflictError, NotFoundError, UnauthorizedError, ValidationError
from hq.services.season_plans import coerce_choice, get_plan, require_dvhl_competition

logger = logging.getLogger("hq.draft")


def expected_team_id(session_row: DraftSession, pick_index: int) -> Optional[int]:
    """Team on the clock for the zero-based ``pick_index``. Snake mode reverses odd rounds."""
    order = list(session_row.pick_order_team_ids or [])
    if not order:
        return None
    round_index, in_round = divmod(pick_index, len(order))
    if session_row.draft_mode == "snake" and round_index % 2 == 1:
        return order[len(order) - 1 - in_round]
    return order[in_round]


async def get_current_session(session: AsyncSession, competition_id: int) -> Optional[DraftSession]:
    result = await session.execute(
        select(DraftSession)
        .where(DraftSession.competition_id == competition_id)
        .order_by(DraftSession.generation.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def list_picks(session: AsyncSession, draft_session_id: int) -> list[DraftPick]:
    return await list_all(
        session,
        DraftPick,
        DraftPick.draft_session_id == draft_session_id,
        order_by=DraftPick.pick_number,
    )


async def _resolve_team_order(
    session: AsyncSession,
    competition_id: int,
    requested: Optional[Sequence],
    strategy: str,
    rng: random.Random,
) -> list[int]:
    teams = await list_all(session, Team, Team.competition_id == competition_id, order_by=Team.id)
    team_ids = [t.id for t in teams]
    explicit = unique_ids(requested or [])
    if explicit:
        unknown = [tid for tid in explicit if tid not in team_ids]
        if unknown:
            raise ValidationError("invalid_dvhl_team", f"Team {unknown[0]} is not in this league", team_id=unknown[0])
        return explicit
    if strategy == "random":
        rng.shuffle(team_ids)
    return team_ids


async def _resolve_pool(
    session: AsyncSession,
    competition_id: int,
    requested: Optional[Sequence],
    strategy: str,
    include_all_eligible: bool,
) -> list[int]:
    eligible_ids = [u.id for u in await list_eligible_players(session)]
    explicit = unique_ids(requested or [])
    unknown = [uid for uid in explicit if uid not in eligible_ids]
    if unknown:
        raise ConflictError("player_not_eligible", f"User {unknown[0]} cannot be drafted", user_id=unknown[0])

    members = await member_user_ids(session, competition_id)
    if explicit:
        base = explicit
    elif strategy == "all_eligible":
        base = eligible_ids
    elif strategy == "ops_selected":
        base = members
    else:
        intents = await list_all(
            session,
            SignupIntent,
            SignupIntent.competition_id == competition_id,
            order_by=SignupIntent.created_at,
        )
        base = [i.user_id for i in intents]
    extra = eligible_ids if include_all_eligible else []
    # signups and memberships can outlive a user's eligibility
    return [uid for uid in unique_ids(list(base) + members + extra) if uid in eligible_ids]


async def start_draft(
    session: AsyncSession,
    competition_id: int,
    actor: Actor,
    pick_order_team_ids: Optional[Sequence] = None,
    pool_user_ids: Optional[Sequence] = None,
    draft_mode: Optional[str] = None,
    rounds: Optional[int] = None,
    include_all_eligible: bool = False,
    rng: Optional[random.Random] = None,
    now: Optional[datetime] = None,
) -> DraftSession:
    """Open a new draft generation for the league.

    Team order: the explicit order, else a shuffle when the plan says
    ``random``, else team creation order. Pool: the explicit pool (or the
    plan's strategy base) unioned with current team members, plus every
    eligible player when ``include_all_eligible``. Mode and rounds fall back
    to the plan. Any earlier open generation is closed. Only eligible
    players enter the pool; an explicit pool naming anyone else is refused.
    """
    actor.require(MANAGE_DVHL, "dvhl_manager_required")
    if rounds is not None:
        try:
            rounds = int(rounds)
        except (TypeError, ValueError):
            raise ValidationError("invalid_rounds")
        if rounds < 1:
            raise ValidationError("invalid_rounds", "Draft needs at least one round")
    await require_dvhl_competition(session, competition_id)
    plan = await get_plan(session, competition_id)
    now = now or utcnow()

    order = await _resolve_team_order(
        session,
        competition_id,
        pick_order_team_ids,
        plan.team_order_strategy if plan else "manual",
        rng or random.Random(),
    )
    if not order:
        raise ValidationError("draft_requires_teams", "Add teams before starting the draft")
    pool = await _resolve_pool(
        session,
        competition_id,
        pool_user_ids,
        plan.player_pool_strategy if plan else "all_signups",
        include_all_eligible,
    )
    mode = coerce_choice(draft_mode, DRAFT_MODES, plan.draft_mode if plan else "manual")

    previous = await get_current_session(session, competition_id)
    if previous and previous.status == "open":
        previous.status = "closed"
        previous.closed_at = now
        previous.updated_at = now
        previous.updated_by_user_id = actor.user_id

    draft = DraftSession(
        competition_id=competition_id,
        generation=(previous.generation + 1) if previous else 1,
        status="open",
        pick_order_team_ids=order,
        pool_user_ids=pool,
        draft_mode=mode,
        rounds=rounds or (plan.rounds if plan else 1),
        created_at=now,
        updated_at=now,
        updated_by_user_id=actor.user_id,
    )
    session.add(draft)
    await flush(session)
    logger.info(
        "Draft generation %s started for competition %s: %s teams, %s players, %s",
        draft.generation, competition_id, len(order), len(pool), mode,
    )
    return draft


async def make_pick(
    session: AsyncSession,
    competition_id: int,
    team_id: int,
    user_id: int,
    actor: Actor,
    now: Optional[datetime] = None,
) -> DraftPick:
    """Record a pick for the team on the clock.

    Managers may pick for any team, captains only for their own. The pool
    snapshot is never changed; already-picked players are found in the log.
    """
    if not actor.can_pick_for(team_id):
        raise UnauthorizedError("captain_access_required", "Only the team's captain or a league manager can pick")
    draft = await get_current_session(session, competition_id)
    if draft is None or draft.status != "open":
        raise ConflictError("draft_not_open")
    if team_id not in (draft.pick_order_team_ids or []):
        raise ValidationError("invalid_pick_team", team_id=team_id)
    if user_id not in (draft.pool_user_ids or []):
        raise ConflictError("player_not_in_draft_pool", user_id=user_id)
    user = await session.get(User, user_id)
    if user is None or not user.is_eligible:
        raise ConflictError("player_not_eligible", user_id=user_id)

    picks = await list_picks(session, draft.id)
    taken = next((p for p in picks if p.user_id == user_id), None)
    if taken:
        raise ConflictError("player_already_picked", user_id=user_id, team_id=taken.team_id)

    expected = expected_team_id(draft, len(picks))
    if expected != team_id:
        raise ConflictError("not_this_team_turn", expected_team_id=expected)

    now = now or utcnow()
    pick_number = len(picks) + 1
    pick = DraftPick(
        draft_session_id=draft.id,
        competition_id=competition_id,
        team_id=team_id,
        user_id=user_id,
        pick_number=pick_number,
        round=(pick_number - 1) // len(draft.pick_order_team_ids) + 1,
        picked_at=now,
        actor_user_id=actor.user_id,
    )
    session.add(pick)
    # bumps the session version; a racing pick fails on flush
    draft.updated_at = now
    draft.updated_by_user_id = actor.user_id
    await flush(session)
    logger.info(
        "Pick %s (round %s): team %s takes user %s, by user %s",
        pick.pick_number, pick.round, team_id, user_id, actor.user_id,
    )
    return pick


async def close_draft(
    session: AsyncSession,
    competition_id: int,
    actor: Actor,
    now: Optional[datetime] = None,
) -> DraftSession:
    """Close the current generation. Closing a closed draft is a no-op."""
    actor.require(MANAGE_DVHL, "dvhl_manager_required")
    draft = await get_current_session(session, competition_id)
    if draft is None:
        raise NotFoundError("draft_not_found")
    if draft.status == "closed":
        return draft
    now = now or utcnow()
    draft.status = "closed"
    draft.closed_at = now
    draft.updated_at = now
    draft.updated_by_user_id = actor.user_id
    await flush(session)
    logger.info("Draft generation %s closed for competition %s", draft.generation, competition_id)
    return draft

