"""Database models."""
from hq.models.base import Base, init_db
from hq.models.user import User
from hq.models.player import Player
from hq.models.competition import Competition, Team, TeamMembership
from hq.models.dvhl import DraftPick, DraftSession, SeasonPlan, SignupIntent, SubRequest, TeamControl
from hq.models.jersey_request import JerseyNumberRequest

__all__ = [
    "Base",
    "User",
    "Player",
    "Competition",
    "Team",
    "TeamMembership",
    "SeasonPlan",
    "SignupIntent",
    "TeamControl",
    "DraftSession",
    "DraftPick",
    "SubRequest",
    "JerseyNumberRequest",
    "init_db",
]
