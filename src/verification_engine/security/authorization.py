"""Approval authority checks."""

from __future__ import annotations

import logging
from collections.abc import Collection
from uuid import UUID

from verification_engine.errors import UnauthorizedError
from verification_engine.security.actor import Actor
from verification_engine.security.roles import Permission, has_permission

logger = logging.getLogger(__name__)


def authorize_review(
    actor: Actor,
    entry_company_id: UUID,
    entry_team_id: UUID | None,
    managed_team_ids: Collection[UUID],
) -> Permission:
    """Check that an actor may review (approve, request changes, reject) an entry.

    COMPANY_ADMIN may review anything in their own company. Roles holding
    only ``work.approve.directReports`` may review entries whose team is
    one they manage. Returns the permission that granted access.

    Raises UnauthorizedError naming the failed precondition otherwise.
    """
    if actor.is_employee:
        raise UnauthorizedError("Employees cannot review work entries")

    if actor.company_id is None or actor.company_id != entry_company_id:
        raise UnauthorizedError("Work entry belongs to a different company")

    if has_permission(actor.role, Permission.WORK_APPROVE_ANY):
        return Permission.WORK_APPROVE_ANY

    if has_permission(actor.role, Permission.WORK_APPROVE_DIRECT_REPORTS):
        if entry_team_id is not None and entry_team_id in managed_team_ids:
            return Permission.WORK_APPROVE_DIRECT_REPORTS
        logger.warning(
            "Actor %s denied: team %s not among managed teams",
            actor.actor_id,
            entry_team_id,
        )
        raise UnauthorizedError("Work entry is not in a team you manage")

    raise UnauthorizedError(
        f"Role {actor.role.value if actor.role else 'none'} cannot approve work entries"
    )


def require_owner(actor: Actor, employee_id: UUID) -> None:
    """Only the owning employee may author or resubmit an entry."""
    if not actor.is_employee or actor.actor_id != employee_id:
        raise UnauthorizedError("Only the owning employee may perform this action")
