"""SQLAlchemy ORM models."""

from verification_engine.models.base import Base, TimestampMixin, utcnow
from verification_engine.models.company import (
    Company,
    Employee,
    EmployeeTeamAssignment,
    Manager,
    Team,
)
from verification_engine.models.work import AuditEvent, WorkEntry, WorkEntryAnnotation

__all__ = [
    "Base",
    "TimestampMixin",
    "utcnow",
    "Company",
    "Employee",
    "EmployeeTeamAssignment",
    "Manager",
    "Team",
    "AuditEvent",
    "WorkEntry",
    "WorkEntryAnnotation",
]
