"""DVHL league workflow models: season plan, signups, team controls, draft, sub requests."""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hq.models.base import Base, utcnow

TEAM_ORDER_STRATEGIES = ("manual", "random")
PLAYER_POOL_STRATEGIES = ("all_signups", "all_eligible", "ops_selected")
DRAFT_MODES = ("manual", "snake")


class SeasonPlan(Base):
    """Per-league configuration, one row per DVHL competition."""

    __tablename__ = "dvhl_season_plans"

    competition_id: Mapped[int] = mapped_column(ForeignKey("competitions.id"), primary_key=True)
    signup_closes_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    captain_signup_closes_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    desired_captain_count: Mapped[int] = mapped_column(Integer, nullable=False, default=4)
    rounds: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    team_order_strategy: Mapped[str] = mapped_column(String(16), nullable=False, default="manual")
    player_pool_strategy: Mapped[str] = mapped_column(String(16), nullable=False, default="all_signups")
    draft_mode: Mapped[str] = mapped_column(String(16), nullable=False, default="manual")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_by_user_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)


class SignupIntent(Base):
    """A player's interest (and captain interest) in a league."""

    __tablename__ = "dvhl_signup_intents"
    __table_args__ = (UniqueConstraint("competition_id", "user_id", name="uq_dvhl_signup_intents_competition_user"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    competition_id: Mapped[int] = mapped_column(ForeignKey("competitions.id"), nullable=False, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("web_users.id"), nullable=False)
    wants_captain: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class TeamControl(Base):
    """Captain and sub-pool (bench) for one team."""

    __tablename__ = "dvhl_team_controls"

    team_id: Mapped[int] = mapped_column(ForeignKey("teams.id"), primary_key=True)
    captain_user_id: Mapped[Optional[int]] = mapped_column(ForeignKey("web_users.id"), nullable=True, index=True)
    sub_pool_user_ids: Mapped[list] = mapped_column(JSON, nullable=False, default=list)  # unordered set, stored sorted
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_by_user_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}


class DraftSession(Base):
    """One generation of a league draft. The highest generation is the current session."""

    __tablename__ = "dvhl_draft_sessions"
    __table_args__ = (UniqueConstraint("competition_id", "generation", name="uq_dvhl_draft_sessions_generation"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    competition_id: Mapped[int] = mapped_column(ForeignKey("competitions.id"), nullable=False, index=True)
    generation: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="open")  # open, closed
    pick_order_team_ids: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    pool_user_ids: Mapped[list] = mapped_column(JSON, nullable=False, default=list)  # static snapshot
    draft_mode: Mapped[str] = mapped_column(String(16), nullable=False, default="manual")
    rounds: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_by_user_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    closed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    picks = relationship(
        "DraftPick",
        back_populates="draft_session",
        cascade="all, delete-orphan",
        order_by="DraftPick.pick_number",
    )


class DraftPick(Base):
    """Append-only pick log entry."""

    __tablename__ = "dvhl_draft_picks"
    __table_args__ = (
        UniqueConstraint("draft_session_id", "user_id", name="uq_dvhl_draft_picks_session_user"),
        UniqueConstraint("draft_session_id", "pick_number", name="uq_dvhl_draft_picks_session_number"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    draft_session_id: Mapped[int] = mapped_column(ForeignKey("dvhl_draft_sessions.id"), nullable=False)
    competition_id: Mapped[int] = mapped_column(ForeignKey("competitions.id"), nullable=False, index=True)
    team_id: Mapped[int] = mapped_column(ForeignKey("teams.id"), nullable=False)
    user_id: Mapped[int] = mapped_column(ForeignKey("web_users.id"), nullable=False)
    pick_number: Mapped[int] = mapped_column(Integer, nullable=False)
    round: Mapped[int] = mapped_column(Integer, nullable=False)
    picked_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    actor_user_id: Mapped[int] = mapped_column(Integer, nullable=False)

    draft_session: Mapped["DraftSession"] = relationship("DraftSession", back_populates="picks")


class SubRequest(Base):
    """Captain's call for a substitute from the team's sub-pool."""

    __tablename__ = "dvhl_sub_requests"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    competition_id: Mapped[int] = mapped_column(ForeignKey("competitions.id"), nullable=False, index=True)
    team_id: Mapped[int] = mapped_column(ForeignKey("teams.id"), nullable=False)
    captain_user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    requested_by_user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    needed_for_game_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="open")  # open, accepted, cancelled
    accepted_by_user_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    accepted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
