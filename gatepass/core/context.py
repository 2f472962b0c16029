"""Request-scoped caller context.

Authentication lives in front of this service (gateway / auth service). It
forwards the resolved caller as headers, which are turned into an explicit
:class:`RequestContext` and passed into every service call; nothing reads a
global "current user".
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from fastapi import Header

from gatepass.core.exceptions import ForbiddenError, UnauthorizedError


class UserRole(str, Enum):
    SUPER_ADMIN = "super_admin"
    BUILDING_ADMIN = "building_admin"
    RESIDENT = "resident"
    SECURITY = "security"


ADMIN_ROLES = frozenset({UserRole.SUPER_ADMIN, UserRole.BUILDING_ADMIN})
GATE_ROLES = frozenset({UserRole.SECURITY, UserRole.BUILDING_ADMIN, UserRole.SUPER_ADMIN})


@dataclass(frozen=True)
class RequestContext:
    actor_id: str
    role: UserRole
    building_id: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES

    @property
    def is_super_admin(self) -> bool:
        return self.role == UserRole.SUPER_ADMIN

    def can_access_building(self, building_id: str) -> bool:
        return self.is_super_admin or self.building_id == building_id

    def require_building(self, building_id: str) -> None:
        if not self.can_access_building(building_id):
            raise ForbiddenError("You do not have access to this building")

    def require_role(self, *roles: UserRole) -> None:
        if self.role not in roles:
            allowed = ", ".join(r.value for r in roles)
            raise ForbiddenError(f"One of these roles is required: {allowed}")


def get_request_context(
    x_user_id: Optional[str] = Header(default=None),
    x_user_role: Optional[str] = Header(default=None),
    x_building_id: Optional[str] = Header(default=None),
) -> RequestContext:
    """FastAPI dependency: build the caller context from forwarded headers."""
    if not x_user_id or not x_user_role:
        raise UnauthorizedError()
    try:
        role = UserRole(x_user_role)
    except ValueError:
        raise UnauthorizedError(f"Unknown role '{x_user_role}'") from None
    return RequestContext(actor_id=x_user_id, role=role, building_id=x_building_id)
