"""Jersey number change request model."""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from hq.models.base import Base, utcnow

REQUEST_STATUSES = ("pending", "approved", "rejected")


class JerseyNumberRequest(Base):
    """Self-service jersey number request awaiting operator review. Never deleted."""

    __tablename__ = "jersey_number_requests"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("web_users.id"), nullable=False, index=True)
    roster_id: Mapped[str] = mapped_column(String(64), nullable=False)
    primary_sub_roster: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    current_jersey_number: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    requested_jersey_number: Mapped[int] = mapped_column(Integer, nullable=False)
    requires_approval: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    approval_reason: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    known_holder_user_ids: Mapped[list] = mapped_column(JSON, nullable=False, default=list)  # holders at filing time
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")  # pending, approved, rejected
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    reviewed_by_user_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    review_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
