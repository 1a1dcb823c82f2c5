"""Resolved caller context passed into the services."""

from dataclasses import dataclass, field
from typing import Optional

ROLE_ADMIN = "Admin"
ROLE_ORGANIZATION_ADMIN = "OrganizationAdmin"
ROLE_USER = "User"

USERNAME_SYSTEM = "system@yoma.world"


@dataclass(frozen=True)
class RequestContext:
    """Authenticated caller: username (email) and the roles granted to it."""

    username: Optional[str] = None
    roles: frozenset[str] = field(default_factory=frozenset)

    @property
    def is_admin(self) -> bool:
        return ROLE_ADMIN in self.roles

    @property
    def is_organization_admin(self) -> bool:
        return ROLE_ORGANIZATION_ADMIN in self.roles

    @classmethod
    def system(cls) -> "RequestContext":
        """Context used by background jobs and the CLI."""
        return cls(username=USERNAME_SYSTEM, roles=frozenset({ROLE_ADMIN}))
