"""Player roster model."""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hq.models.base import Base, utcnow

ACTIVITY_STATUSES = ("active", "inactive")


class Player(Base):
    """Roster record for an approved user. Jersey numbers are unique per roster and sub-roster."""

    __tablename__ = "players"

    user_id: Mapped[int] = mapped_column(ForeignKey("web_users.id"), primary_key=True)
    full_name: Mapped[str] = mapped_column(String(128), nullable=False)
    roster_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)  # physical roster group
    jersey_number: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    primary_sub_roster: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)  # gold, white, black
    allow_cross_color_jersey_overlap: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    activity_status: Mapped[str] = mapped_column(String(16), default="active", nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    user = relationship("User", back_populates="player")

    @property
    def is_active(self) -> bool:
        return self.activity_status == "active"
