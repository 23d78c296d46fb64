"""Capability resolution. Routes check an Actor before calling any engine operation."""
from __future__ import annotations

from dataclasses import dataclass, field

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hq.models import TeamControl, User
from hq.services.errors import UnauthorizedError

ADMIN_PORTAL = "admin_portal"
MANAGE_PLAYERS = "manage_players"
MANAGE_DVHL = "manage_dvhl"
MANAGE_SITE_USERS = "manage_site_users"

ROLE_PERMISSIONS: dict[str, frozenset[str]] = {
    "admin": frozenset({ADMIN_PORTAL, MANAGE_PLAYERS, MANAGE_DVHL, MANAGE_SITE_USERS}),
    "moderator": frozenset({ADMIN_PORTAL, MANAGE_PLAYERS}),
    "dvhl_manager": frozenset({ADMIN_PORTAL, MANAGE_DVHL}),
    "player": frozenset(),
    "public": frozenset(),
}


def permissions_for_role(role: str) -> frozenset[str]:
    return ROLE_PERMISSIONS.get(role, frozenset())


@dataclass(frozen=True)
class Actor:
    """Authenticated user plus everything they are allowed to do."""

    user: User
    permissions: frozenset[str] = field(default_factory=frozenset)
    captain_team_ids: frozenset[int] = field(default_factory=frozenset)

    @property
    def user_id(self) -> int:
        return self.user.id

    @property
    def is_approved(self) -> bool:
        return self.user.status == "approved"

    @property
    def is_eligible_player(self) -> bool:
        return self.user.is_eligible

    def can(self, permission: str) -> bool:
        return self.is_approved and permission in self.permissions

    def is_captain_of(self, team_id: int) -> bool:
        return team_id in self.captain_team_ids

    def can_pick_for(self, team_id: int) -> bool:
        """League managers pick for any team; captains only for their own."""
        return self.can(MANAGE_DVHL) or self.is_captain_of(team_id)

    def require(self, permission: str, code: str = "unauthorized") -> None:
        if not self.can(permission):
            raise UnauthorizedError(code, f"{permission} permission required")


async def resolve_actor(session: AsyncSession, user: User) -> Actor:
    """Build the capability set for a user (role permissions + captaincies)."""
    result = await session.execute(
        select(TeamControl.team_id).where(TeamControl.captain_user_id == user.id)
    )
    captain_team_ids = frozenset(row[0] for row in result.fetchall())
    return Actor(
        user=user,
        permissions=permissions_for_role(user.role),
        captain_team_ids=captain_team_ids,
    )
