"""Configuration for the club HQ roster and league engine."""
from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# Database (Repository storage location)
DATABASE_URL = os.getenv(
    "DATABASE_URL",
    f"sqlite+aiosqlite:///{Path(__file__).parent / 'hq.db'}",
)

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()


def _parse_int_set(value: str) -> set[int]:
    if not value:
        return set()
    result = set()
    for x in value.split(","):
        try:
            result.add(int(x.strip()))
        except ValueError:
            continue
    return result


def _parse_names(value: str) -> tuple[str, ...]:
    if not value:
        return ()
    names = []
    for x in value.split(","):
        name = x.strip().lower()
        if name and name not in names:
            names.append(name)
    return tuple(names)


def _parse_int(value: str, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


# Jersey numbers
JERSEY_NUMBER_MIN = 1
JERSEY_NUMBER_MAX = 99
RETIRED_JERSEY_NUMBERS = _parse_int_set(os.getenv("RETIRED_JERSEY_NUMBERS", ""))

# Sub-rosters (color groups) scoping jersey uniqueness
SUB_ROSTERS = _parse_names(os.getenv("SUB_ROSTERS", "gold,white,black")) or ("gold", "white", "black")

# DVHL league defaults
DEFAULT_DESIRED_CAPTAIN_COUNT = _parse_int(os.getenv("DEFAULT_DESIRED_CAPTAIN_COUNT", "4"), 4)
DVHL_DEFAULT_TEAM_COUNT = _parse_int(os.getenv("DVHL_DEFAULT_TEAM_COUNT", "4"), 4)

# External event dispatcher (email/push fan-out lives outside this service)
EVENT_WEBHOOK_URL = os.getenv("EVENT_WEBHOOK_URL", "")
EVENT_WEBHOOK_SECRET = os.getenv("EVENT_WEBHOOK_SECRET", "")

# Web auth (JWT secret, initial admin bootstrap)
JWT_SECRET = os.getenv("JWT_SECRET", "change-me-in-production-use-long-random-string")
JWT_ALGORITHM = "HS256"
JWT_EXPIRE_DAYS = 7
INITIAL_ADMIN_USERNAME = os.getenv("INITIAL_ADMIN_USERNAME", "admin")
INITIAL_ADMIN_PASSWORD = os.getenv("INITIAL_ADMIN_PASSWORD", "")  # Set to bootstrap first admin
