"""Company roles, permission sets and route access table.

The tables are built once at import time and exposed read-only; every
lookup is a pure function over them.
"""

from __future__ import annotations

from enum import Enum
from fnmatch import fnmatchcase
from types import MappingProxyType
from typing import Mapping


class CompanyRole(str, Enum):
    """Role of a company-scoped account (manager or company admin)."""

    COMPANY_ADMIN = "COMPANY_ADMIN"
    MANAGER = "MANAGER"
    BRANCH_ADMIN = "BRANCH_ADMIN"  # Reserved


class Permission(str, Enum):
    """Actions a role may be granted."""

    WORK_APPROVE_ANY = "work.approve.any"
    WORK_APPROVE_DIRECT_REPORTS = "work.approve.directReports"
    EMPLOYEE_MANAGE = "employee.manage"
    MANAGER_MANAGE = "manager.manage"
    TEAM_MANAGE = "team.manage"
    SETTINGS_READ = "settings.read"
    SETTINGS_WRITE = "settings.write"
    REPORTS_VIEW = "reports.view"
    REPORTS_VIEW_TEAM = "reports.view.team"


ROLE_PERMISSIONS: Mapping[CompanyRole, frozenset[Permission]] = MappingProxyType(
    {
        CompanyRole.COMPANY_ADMIN: frozenset(
            {
                Permission.WORK_APPROVE_ANY,
                Permission.EMPLOYEE_MANAGE,
                Permission.MANAGER_MANAGE,
                Permission.SETTINGS_READ,
                Permission.SETTINGS_WRITE,
                Permission.REPORTS_VIEW,
            }
        ),
        CompanyRole.MANAGER: frozenset(
            {
                Permission.WORK_APPROVE_DIRECT_REPORTS,
                Permission.TEAM_MANAGE,
                Permission.REPORTS_VIEW_TEAM,
            }
        ),
        CompanyRole.BRANCH_ADMIN: frozenset(
            {
                Permission.WORK_APPROVE_DIRECT_REPORTS,
                Permission.REPORTS_VIEW_TEAM,
                Permission.SETTINGS_READ,
            }
        ),
    }
)

# Ordered: first matching pattern wins
ROUTE_PERMISSIONS: tuple[tuple[str, frozenset[CompanyRole]], ...] = (
    ("/company/admin/*", frozenset({CompanyRole.COMPANY_ADMIN})),
    ("/company/manager/*", frozenset({CompanyRole.MANAGER, CompanyRole.COMPANY_ADMIN})),
    ("/company/branch/*", frozenset({CompanyRole.BRANCH_ADMIN, CompanyRole.COMPANY_ADMIN})),
)


def parse_role(value: str | CompanyRole | None) -> CompanyRole | None:
    """Coerce a raw role string; unknown values yield None."""
    if value is None or isinstance(value, CompanyRole):
        return value
    try:
        return CompanyRole(value.strip().upper())
    except ValueError:
        return None


def permissions_for(role: CompanyRole | None) -> frozenset[Permission]:
    """All permissions granted to a role (empty for unknown roles)."""
    if role is None:
        return frozenset()
    return ROLE_PERMISSIONS.get(role, frozenset())


def has_permission(role: CompanyRole | None, permission: Permission | str) -> bool:
    """Check whether a role grants a permission."""
    try:
        permission = Permission(permission)
    except ValueError:
        return False
    return permission in permissions_for(role)


def can_access_route(role: CompanyRole | None, route: str) -> bool:
    """Check a route against the route table; no match means deny."""
    for pattern, allowed_roles in ROUTE_PERMISSIONS:
        if fnmatchcase(route, pattern):
            return role in allowed_roles
    return False
