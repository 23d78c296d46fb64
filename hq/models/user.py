"""Web user model for site authentication."""
from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hq.models.base import Base, utcnow

USER_ROLES = ("public", "player", "moderator", "dvhl_manager", "admin")
USER_STATUSES = ("pending", "approved", "rejected")
# Roles that can be drafted, assigned to teams, and sign up for leagues
ELIGIBLE_ROLES = ("player", "admin")


class User(Base):
    """Web user with role-based access. Players are users with a roster profile."""

    __tablename__ = "web_users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    password_hash: Mapped[str] = mapped_column(String(128), nullable=False)
    role: Mapped[str] = mapped_column(String(16), nullable=False, default="player")
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="approved")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    player = relationship("Player", back_populates="user", uselist=False, cascade="all, delete-orphan")

    @property
    def is_eligible(self) -> bool:
        return self.status == "approved" and self.role in ELIGIBLE_ROLES
