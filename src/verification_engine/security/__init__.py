"""Roles, permissions and authorization."""

from verification_engine.security.actor import Actor, ActorType
from verification_engine.security.authorization import authorize_review, require_owner
from verification_engine.security.roles import (
    ROLE_PERMISSIONS,
    ROUTE_PERMISSIONS,
    CompanyRole,
    Permission,
    can_access_route,
    has_permission,
    parse_role,
    permissions_for,
)

__all__ = [
    "Actor",
    "ActorType",
    "authorize_review",
    "require_owner",
    "ROLE_PERMISSIONS",
    "ROUTE_PERMISSIONS",
    "CompanyRole",
    "Permission",
    "can_access_route",
    "has_permission",
    "parse_role",
    "permissions_for",
]
