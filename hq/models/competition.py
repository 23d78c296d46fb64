"""Competition, team, and team membership models."""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hq.models.base import Base, utcnow

COMPETITION_TYPES = ("SINGLE_GAME", "TOURNAMENT", "DVHL")


class Competition(Base):
    """Single game, tournament, or DVHL league. Type is fixed at creation."""

    __tablename__ = "competitions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    type: Mapped[str] = mapped_column(String(16), nullable=False)  # SINGLE_GAME, TOURNAMENT, DVHL
    title: Mapped[str] = mapped_column(String(128), nullable=False)
    starts_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    teams = relationship(
        "Team",
        back_populates="competition",
        cascade="all, delete-orphan",
        order_by="Team.id",
    )


class Team(Base):
    """Team within exactly one competition."""

    __tablename__ = "teams"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    competition_id: Mapped[int] = mapped_column(ForeignKey("competitions.id"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    color_tag: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    roster_mode: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)  # TOURNAMENT, SINGLE_GAME, DVHL_DRAFT
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    competition: Mapped["Competition"] = relationship("Competition", back_populates="teams")
    members = relationship(
        "TeamMembership",
        back_populates="team",
        cascade="all, delete-orphan",
        order_by="TeamMembership.id",
    )


class TeamMembership(Base):
    """User on a team, by direct assignment or a draft pick."""

    __tablename__ = "team_memberships"
    __table_args__ = (UniqueConstraint("team_id", "user_id", name="uq_team_memberships_team_user"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    team_id: Mapped[int] = mapped_column(ForeignKey("teams.id"), nullable=False)
    user_id: Mapped[int] = mapped_column(ForeignKey("web_users.id"), nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    team: Mapped["Team"] = relationship("Team", back_populates="members")
