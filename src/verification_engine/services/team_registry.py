"""Team and employee-to-team hierarchy registry."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from verification_engine.errors import DuplicateAssignmentError, NotFoundError, ValidationError
from verification_engine.events import (
    AsyncEventEmitter,
    DomainEvent,
    EmployeeAssignedToTeam,
    EventMetadata,
    TeamCreated,
)
from verification_engine.models import (
    Company,
    Employee,
    EmployeeTeamAssignment,
    Manager,
    Team,
    WorkEntry,
    utcnow,
)
from verification_engine.services.state_machine import WorkEntryStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ManagedTeam:
    """A manager's team with live counts."""

    team_id: UUID
    company_id: UUID
    name: str
    description: str | None
    created_at: datetime
    employee_count: int
    pending_entries_count: int


@dataclass(frozen=True)
class CompanyTeam:
    """A company's team with the owning manager joined in."""

    team_id: UUID
    name: str
    description: str | None
    manager_id: UUID | None
    manager_name: str | None
    manager_email: str | None
    created_at: datetime


class TeamRegistry:
    """Creates teams and maintains employee assignments.

    Assignment rows are soft-deleted, never removed. Uniqueness of the
    active (employee, team) pair is enforced by a partial unique index, so
    two concurrent assigns cannot both succeed.
    """

    def __init__(self, session: AsyncSession, emitter: AsyncEventEmitter | None = None):
        self.session = session
        self.emitter = emitter

    async def create_team(
        self,
        company_id: UUID,
        name: str,
        description: str | None = None,
        manager_id: UUID | None = None,
        actor_id: UUID | None = None,
    ) -> Team:
        """Create a team in a company, optionally owned by a manager."""
        if not name or not name.strip():
            raise ValidationError("Team name is required")
        if await self.session.get(Company, company_id) is None:
            raise NotFoundError("Company", company_id)
        if manager_id is not None:
            await self._check_manager(manager_id, company_id)

        team = Team(
            company_id=company_id,
            name=name.strip(),
            description=description,
            manager_id=manager_id,
        )
        self.session.add(team)
        try:
            await self.session.flush()
        except IntegrityError:
            await self.session.rollback()
            raise ValidationError(
                "Team name already in use", [f"team '{name.strip()}' exists in this company"]
            ) from None
        await self.session.commit()
        logger.info("Created team %s (%s) in company %s", team.team_id, team.name, company_id)

        await self._publish(
            TeamCreated(
                metadata=EventMetadata.create(company_id=company_id, actor_id=actor_id, actor_type="company"),
                team_id=team.team_id,
                team_name=team.name,
                manager_id=manager_id,
            )
        )
        return team

    async def get_team(self, team_id: UUID) -> Team:
        team = await self.session.get(Team, team_id)
        if team is None:
            raise NotFoundError("Team", team_id)
        return team

    async def assign_manager(self, team_id: UUID, manager_id: UUID | None) -> Team:
        """Set or replace (or clear, with None) the team's owning manager."""
        team = await self.get_team(team_id)
        if manager_id is not None:
            await self._check_manager(manager_id, team.company_id)
        team.manager_id = manager_id
        await self.session.commit()
        logger.info("Team %s manager set to %s", team_id, manager_id)
        return team

    async def assign_employee(
        self,
        employee_id: UUID,
        team_id: UUID,
        company_id: UUID,
        assigned_by: UUID | None = None,
    ) -> EmployeeTeamAssignment:
        """Insert an active assignment.

        Raises DuplicateAssignmentError if the pair already has one.
        """
        await self._check_assignment_target(employee_id, team_id, company_id)

        existing = await self._active_assignment(employee_id, team_id)
        if existing is not None:
            raise DuplicateAssignmentError(employee_id, team_id)

        assignment = await self._insert_assignment(employee_id, team_id, company_id, assigned_by)
        await self.session.commit()
        await self._announce_assignment(assignment, assigned_by)
        return assignment

    async def unassign_employee(self, employee_id: UUID, team_id: UUID) -> EmployeeTeamAssignment:
        """Soft-delete the active assignment for the pair."""
        assignment = await self._active_assignment(employee_id, team_id)
        if assignment is None:
            raise NotFoundError("Active assignment", f"{employee_id}/{team_id}")
        assignment.is_active = False
        assignment.deactivated_at = utcnow()
        await self.session.commit()
        logger.info("Employee %s removed from team %s", employee_id, team_id)
        return assignment

    async def reassign_employee(
        self,
        employee_id: UUID,
        team_id: UUID,
        company_id: UUID,
        assigned_by: UUID | None = None,
    ) -> EmployeeTeamAssignment:
        """Replace the pair's active assignment with a fresh one.

        The predecessor is kept with ``is_active = False``.
        """
        await self._check_assignment_target(employee_id, team_id, company_id)

        await self.session.execute(
            update(EmployeeTeamAssignment)
            .where(
                EmployeeTeamAssignment.employee_id == employee_id,
                EmployeeTeamAssignment.team_id == team_id,
                EmployeeTeamAssignment.is_active.is_(True),
            )
            .values(is_active=False, deactivated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        assignment = await self._insert_assignment(employee_id, team_id, company_id, assigned_by)
        await self.session.commit()
        await self._announce_assignment(assignment, assigned_by)
        return assignment

    async def list_team_members(self, team_id: UUID) -> list[EmployeeTeamAssignment]:
        """Active assignments for a team."""
        await self.get_team(team_id)
        result = await self.session.execute(
            select(EmployeeTeamAssignment)
            .where(
                EmployeeTeamAssignment.team_id == team_id,
                EmployeeTeamAssignment.is_active.is_(True),
            )
            .order_by(EmployeeTeamAssignment.created_at)
        )
        return list(result.scalars().all())

    async def assignment_history(self, employee_id: UUID, team_id: UUID) -> list[EmployeeTeamAssignment]:
        """All assignments (active and soft-deleted) for the pair, oldest first."""
        result = await self.session.execute(
            select(EmployeeTeamAssignment)
            .where(
                EmployeeTeamAssignment.employee_id == employee_id,
                EmployeeTeamAssignment.team_id == team_id,
            )
            .order_by(EmployeeTeamAssignment.created_at)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def manager_team_ids(self, manager_id: UUID, company_id: UUID | None = None) -> set[UUID]:
        """Teams a manager owns, resolved at read time."""
        query = select(Team.team_id).where(Team.manager_id == manager_id)
        if company_id is not None:
            query = query.where(Team.company_id == company_id)
        result = await self.session.execute(query)
        return set(result.scalars().all())

    async def get_teams_for_manager(self, manager_id: UUID) -> list[ManagedTeam]:
        """Manager's teams with active employee and pending entry counts."""
        employee_count = (
            select(func.count(EmployeeTeamAssignment.assignment_id))
            .where(
                EmployeeTeamAssignment.team_id == Team.team_id,
                EmployeeTeamAssignment.is_active.is_(True),
            )
            .correlate(Team)
            .scalar_subquery()
        )
        pending_count = (
            select(func.count(WorkEntry.work_entry_id))
            .where(
                WorkEntry.team_id == Team.team_id,
                WorkEntry.approval_status == WorkEntryStatus.PENDING_REVIEW.value,
            )
            .correlate(Team)
            .scalar_subquery()
        )
        result = await self.session.execute(
            select(Team, employee_count, pending_count)
            .where(Team.manager_id == manager_id)
            .order_by(Team.name)
        )
        return [
            ManagedTeam(
                team_id=team.team_id,
                company_id=team.company_id,
                name=team.name,
                description=team.description,
                created_at=team.created_at,
                employee_count=employees or 0,
                pending_entries_count=pending or 0,
            )
            for team, employees, pending in result.all()
        ]

    async def get_teams_for_company(self, company_id: UUID) -> list[CompanyTeam]:
        """All teams of a company with manager names joined in."""
        result = await self.session.execute(
            select(Team, Manager)
            .outerjoin(Manager, Team.manager_id == Manager.manager_id)
            .where(Team.company_id == company_id)
            .order_by(Team.name)
        )
        return [
            CompanyTeam(
                team_id=team.team_id,
                name=team.name,
                description=team.description,
                manager_id=team.manager_id,
                manager_name=manager.full_name if manager else None,
                manager_email=manager.email if manager else None,
                created_at=team.created_at,
            )
            for team, manager in result.all()
        ]

    async def _active_assignment(self, employee_id: UUID, team_id: UUID) -> EmployeeTeamAssignment | None:
        result = await self.session.execute(
            select(EmployeeTeamAssignment).where(
                EmployeeTeamAssignment.employee_id == employee_id,
                EmployeeTeamAssignment.team_id == team_id,
                EmployeeTeamAssignment.is_active.is_(True),
            )
        )
        return result.scalar_one_or_none()

    async def _insert_assignment(
        self,
        employee_id: UUID,
        team_id: UUID,
        company_id: UUID,
        assigned_by: UUID | None,
    ) -> EmployeeTeamAssignment:
        assignment = EmployeeTeamAssignment(
            employee_id=employee_id,
            team_id=team_id,
            company_id=company_id,
            assigned_by=assigned_by,
            is_active=True,
        )
        self.session.add(assignment)
        try:
            await self.session.flush()
        except IntegrityError:
            # Lost the race to a concurrent assign of the same pair
            await self.session.rollback()
            raise DuplicateAssignmentError(employee_id, team_id) from None
        return assignment

    async def _check_assignment_target(self, employee_id: UUID, team_id: UUID, company_id: UUID) -> None:
        if await self.session.get(Employee, employee_id) is None:
            raise NotFoundError("Employee", employee_id)
        team = await self.get_team(team_id)
        if team.company_id != company_id:
            raise ValidationError(
                "Team belongs to a different company",
                [f"team {team_id} is not part of company {company_id}"],
            )

    async def _check_manager(self, manager_id: UUID, company_id: UUID) -> None:
        manager = await self.session.get(Manager, manager_id)
        if manager is None:
            raise NotFoundError("Manager", manager_id)
        if manager.company_id != company_id:
            raise ValidationError(
                "Manager belongs to a different company",
                [f"manager {manager_id} is not part of company {company_id}"],
            )

    async def _announce_assignment(
        self,
        assignment: EmployeeTeamAssignment,
        assigned_by: UUID | None,
    ) -> None:
        logger.info(
            "Employee %s assigned to team %s (assignment %s)",
            assignment.employee_id,
            assignment.team_id,
            assignment.assignment_id,
        )
        await self._publish(
            EmployeeAssignedToTeam(
                metadata=EventMetadata.create(
                    company_id=assignment.company_id,
                    actor_id=assigned_by,
                    actor_type="company",
                ),
                employee_id=assignment.employee_id,
                team_id=assignment.team_id,
                assignment_id=assignment.assignment_id,
            )
        )

    async def _publish(self, event: DomainEvent) -> None:
        if self.emitter is not None:
            await self.emitter.emit(event)
