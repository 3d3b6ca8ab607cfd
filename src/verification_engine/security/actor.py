"""Authenticated actor supplied by the identity provider."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from uuid import UUID

from verification_engine.security.roles import CompanyRole


class ActorType(str, Enum):
    """Kind of account performing a request."""

    EMPLOYEE = "employee"
    MANAGER = "manager"
    COMPANY = "company"


@dataclass(frozen=True)
class Actor:
    """Identity tuple for one request.

    The engine trusts this tuple as given; it never re-derives role or
    company from storage.
    """

    actor_id: UUID
    actor_type: ActorType
    company_id: UUID | None = None
    role: CompanyRole | None = None

    @classmethod
    def employee(cls, employee_id: UUID) -> Actor:
        return cls(actor_id=employee_id, actor_type=ActorType.EMPLOYEE)

    @classmethod
    def manager(
        cls,
        manager_id: UUID,
        company_id: UUID,
        role: CompanyRole = CompanyRole.MANAGER,
    ) -> Actor:
        return cls(
            actor_id=manager_id,
            actor_type=ActorType.MANAGER,
            company_id=company_id,
            role=role,
        )

    @classmethod
    def company_admin(cls, company_id: UUID) -> Actor:
        return cls(
            actor_id=company_id,
            actor_type=ActorType.COMPANY,
            company_id=company_id,
            role=CompanyRole.COMPANY_ADMIN,
        )

    @property
    def is_employee(self) -> bool:
        return self.actor_type == ActorType.EMPLOYEE

    @property
    def approver_type(self) -> str:
        """Value recorded in ``approved_by_type``."""
        return "company" if self.actor_type == ActorType.COMPANY else "manager"
