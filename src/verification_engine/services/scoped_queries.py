"""Role-scoped read views over work entries."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Select, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from verification_engine.models import Employee, Manager, Team, WorkEntry
from verification_engine.services.state_machine import WorkEntryStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WorkEntryView:
    """Read-only projection of a work entry with display names joined in."""

    work_entry_id: UUID
    employee_id: UUID
    company_id: UUID
    team_id: UUID | None
    title: str
    description: str | None
    start_date: date
    end_date: date | None
    work_type: str
    priority: str
    hours: Decimal | None
    project: str | None
    approval_status: str
    is_immutable: bool
    submitted_at: datetime | None
    approved_by: UUID | None
    approved_by_type: str | None
    approved_at: datetime | None
    approval_comments: str | None
    company_rating: int | None
    created_at: datetime
    employee_name: str
    employee_email: str
    team_name: str | None = None
    manager_name: str | None = None


class ScopedQueryService:
    """Work entry listings scoped to the caller's authority.

    Team membership is resolved when the query runs, so a manager sees
    entries from teams they own now, not when the entry was created.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def manager_work_queue(self, manager_id: UUID) -> list[WorkEntryView]:
        """Pending entries in the manager's teams, oldest first."""
        managed = select(Team.team_id).where(Team.manager_id == manager_id)
        query = (
            self._base_query()
            .where(
                WorkEntry.approval_status == WorkEntryStatus.PENDING_REVIEW.value,
                WorkEntry.team_id.in_(managed),
            )
            .order_by(WorkEntry.created_at.asc())
        )
        return await self._fetch(query)

    async def company_work_view(self, company_id: UUID) -> list[WorkEntryView]:
        """Every entry of the company, newest first, with manager names."""
        query = (
            self._base_query()
            .where(WorkEntry.company_id == company_id)
            .order_by(WorkEntry.created_at.desc())
        )
        return await self._fetch(query)

    async def company_pending(self, company_id: UUID) -> list[WorkEntryView]:
        """Company-wide review queue, oldest first."""
        query = (
            self._base_query()
            .where(
                WorkEntry.company_id == company_id,
                WorkEntry.approval_status == WorkEntryStatus.PENDING_REVIEW.value,
            )
            .order_by(WorkEntry.created_at.asc())
        )
        return await self._fetch(query)

    async def employee_entries(
        self,
        employee_id: UUID,
        company_id: UUID | None = None,
    ) -> list[WorkEntryView]:
        """An employee's own entries, newest first."""
        query = self._base_query().where(WorkEntry.employee_id == employee_id)
        if company_id is not None:
            query = query.where(WorkEntry.company_id == company_id)
        return await self._fetch(query.order_by(WorkEntry.created_at.desc()))

    def _base_query(self) -> Select:
        team_manager = aliased(Manager)
        return (
            select(WorkEntry, Employee, Team, team_manager)
            .join(Employee, WorkEntry.employee_id == Employee.employee_id)
            .outerjoin(Team, WorkEntry.team_id == Team.team_id)
            .outerjoin(team_manager, Team.manager_id == team_manager.manager_id)
        )

    async def _fetch(self, query: Select) -> list[WorkEntryView]:
        result = await self.session.execute(query)
        return [
            _to_view(entry, employee, team, manager)
            for entry, employee, team, manager in result.all()
        ]


def _to_view(
    entry: WorkEntry,
    employee: Employee,
    team: Team | None,
    manager: Manager | None,
) -> WorkEntryView:
    return WorkEntryView(
        work_entry_id=entry.work_entry_id,
        employee_id=entry.employee_id,
        company_id=entry.company_id,
        team_id=entry.team_id,
        title=entry.title,
        description=entry.description,
        start_date=entry.start_date,
        end_date=entry.end_date,
        work_type=entry.work_type,
        priority=entry.priority,
        hours=entry.hours,
        project=entry.project,
        approval_status=entry.approval_status,
        is_immutable=entry.is_immutable,
        submitted_at=entry.submitted_at,
        approved_by=entry.approved_by,
        approved_by_type=entry.approved_by_type,
        approved_at=entry.approved_at,
        approval_comments=entry.approval_comments,
        company_rating=entry.company_rating,
        created_at=entry.created_at,
        employee_name=employee.full_name,
        employee_email=employee.email,
        team_name=team.name if team else None,
        manager_name=manager.full_name if manager else None,
    )
