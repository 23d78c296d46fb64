"""Shared API utilities."""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from hq.models import Player, User
from hq.models.base import as_utc


def iso(value: Optional[datetime]) -> Optional[str]:
    value = as_utc(value)
    return value.isoformat() if value else None


def user_display_name(user: User | None, player: Player | None = None) -> str:
    """Roster name if the user has one, else the username. Never a raw user ID."""
    if player and (player.full_name or "").strip():
        return player.full_name.strip()
    if user and (user.username or "").strip():
        return user.username.strip()
    return "Unknown player"


def player_to_dict(player: Player) -> dict:
    return {
        "user_id": player.user_id,
        "full_name": player.full_name,
        "roster_id": player.roster_id,
        "jersey_number": player.jersey_number,
        "primary_sub_roster": player.primary_sub_roster,
        "allow_cross_color_jersey_overlap": player.allow_cross_color_jersey_overlap,
        "activity_status": player.activity_status,
        "updated_at": iso(player.updated_at),
    }
