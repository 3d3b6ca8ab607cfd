"""Company, manager, employee and team hierarchy models."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from verification_engine.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from verification_engine.models.work import WorkEntry


class Company(Base, TimestampMixin):
    """Tenant: a verifying company."""

    __tablename__ = "company"

    company_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String, nullable=False)
    email: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    # Role of the company's own admin account
    sub_role: Mapped[str] = mapped_column(String, nullable=False, default="COMPANY_ADMIN")

    __table_args__ = (
        CheckConstraint(
            "sub_role IN ('COMPANY_ADMIN', 'MANAGER', 'BRANCH_ADMIN')",
            name="company_sub_role_check",
        ),
    )

    # Relationships
    managers: Mapped[list[Manager]] = relationship(back_populates="company")
    teams: Mapped[list[Team]] = relationship(back_populates="company")


class Manager(Base, TimestampMixin):
    """Company-scoped manager account."""

    __tablename__ = "manager"

    manager_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    company_id: Mapped[UUID] = mapped_column(
        ForeignKey("company.company_id", ondelete="CASCADE"),
        nullable=False,
    )
    email: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    first_name: Mapped[str] = mapped_column(String, nullable=False)
    last_name: Mapped[str] = mapped_column(String, nullable=False)
    role: Mapped[str] = mapped_column(String, nullable=False, default="MANAGER")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        CheckConstraint(
            "role IN ('COMPANY_ADMIN', 'MANAGER', 'BRANCH_ADMIN')",
            name="manager_role_check",
        ),
    )

    # Relationships
    company: Mapped[Company] = relationship(back_populates="managers")
    teams: Mapped[list[Team]] = relationship(back_populates="manager")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class Employee(Base, TimestampMixin):
    """Employee account; may work for several companies."""

    __tablename__ = "employee"

    employee_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    email: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    first_name: Mapped[str] = mapped_column(String, nullable=False)
    last_name: Mapped[str] = mapped_column(String, nullable=False)

    # Relationships (deleting an employee with entries is refused by the work_entry FK)
    work_entries: Mapped[list[WorkEntry]] = relationship(back_populates="employee", passive_deletes="all")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class Team(Base, TimestampMixin):
    """Grouping of employees under at most one manager."""

    __tablename__ = "team"

    team_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    company_id: Mapped[UUID] = mapped_column(
        ForeignKey("company.company_id", ondelete="CASCADE"),
        nullable=False,
    )
    name: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    manager_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("manager.manager_id", ondelete="SET NULL"),
        nullable=True,
    )

    __table_args__ = (
        UniqueConstraint("company_id", "name", name="team_company_name_unique"),
        Index("ix_team_manager_id", "manager_id"),
    )

    # Relationships
    company: Mapped[Company] = relationship(back_populates="teams")
    manager: Mapped[Manager | None] = relationship(back_populates="teams")
    assignments: Mapped[list[EmployeeTeamAssignment]] = relationship(back_populates="team")


class EmployeeTeamAssignment(Base, TimestampMixin):
    """Employee membership in a team.

    Rows are never deleted; re-assignment flips ``is_active`` off on the
    predecessor so the history stays auditable.
    """

    __tablename__ = "employee_team_assignment"

    assignment_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.employee_id", ondelete="CASCADE"),
        nullable=False,
    )
    team_id: Mapped[UUID] = mapped_column(
        ForeignKey("team.team_id", ondelete="CASCADE"),
        nullable=False,
    )
    company_id: Mapped[UUID] = mapped_column(
        ForeignKey("company.company_id", ondelete="CASCADE"),
        nullable=False,
    )
    assigned_by: Mapped[UUID | None] = mapped_column(nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    deactivated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        # At most one active assignment per (employee, team)
        Index(
            "uq_employee_team_active",
            "employee_id",
            "team_id",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active = 1"),
        ),
    )

    # Relationships
    team: Mapped[Team] = relationship(back_populates="assignments")
    employee: Mapped[Employee] = relationship()
