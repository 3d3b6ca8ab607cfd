"""Work entry, annotation and audit models."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from verification_engine.models.base import Base, JSONType, TimestampMixin, utcnow

if TYPE_CHECKING:
    from verification_engine.models.company import Employee, Team


class WorkEntry(Base, TimestampMixin):
    """Employee-submitted record of work, reviewed by a manager or company.

    ``approval_status`` and ``is_immutable`` are written only through the
    store's conditional transition; once ``is_immutable`` is set the row is
    the permanent verified record.
    """

    __tablename__ = "work_entry"

    work_entry_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.employee_id", ondelete="RESTRICT"),
        nullable=False,
    )
    company_id: Mapped[UUID] = mapped_column(
        ForeignKey("company.company_id", ondelete="RESTRICT"),
        nullable=False,
    )
    team_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("team.team_id", ondelete="RESTRICT"),
        nullable=True,
    )
    title: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    work_type: Mapped[str] = mapped_column(String, nullable=False, default="task")
    priority: Mapped[str] = mapped_column(String, nullable=False, default="medium")
    hours: Mapped[Decimal | None] = mapped_column(Numeric(8, 2), nullable=True)
    project: Mapped[str | None] = mapped_column(String, nullable=True)

    approval_status: Mapped[str] = mapped_column(String, nullable=False, default="pending_review")
    is_immutable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    approved_by: Mapped[UUID | None] = mapped_column(nullable=True)
    approved_by_type: Mapped[str | None] = mapped_column(String, nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    approval_comments: Mapped[str | None] = mapped_column(Text, nullable=True)
    company_rating: Mapped[int | None] = mapped_column(Integer, nullable=True)
    reviewed_by: Mapped[UUID | None] = mapped_column(nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )

    __table_args__ = (
        CheckConstraint(
            "approval_status IN ('draft', 'pending_review', 'approved', "
            "'changes_requested', 'rejected')",
            name="work_entry_status_check",
        ),
        CheckConstraint(
            "approved_by_type IS NULL OR approved_by_type IN ('manager', 'company')",
            name="work_entry_approved_by_type_check",
        ),
        CheckConstraint(
            "company_rating IS NULL OR (company_rating >= 0 AND company_rating <= 5)",
            name="work_entry_rating_range",
        ),
        CheckConstraint(
            "end_date IS NULL OR end_date >= start_date",
            name="work_entry_date_range",
        ),
        # Only approved entries are locked
        CheckConstraint(
            "is_immutable = (approval_status = 'approved')",
            name="work_entry_immutable_iff_approved",
        ),
        Index("ix_work_entry_team_status", "team_id", "approval_status"),
        Index("ix_work_entry_company_created", "company_id", "created_at"),
        Index("ix_work_entry_employee", "employee_id"),
    )

    # Relationships
    employee: Mapped[Employee] = relationship(back_populates="work_entries")
    team: Mapped[Team | None] = relationship()
    annotations: Mapped[list[WorkEntryAnnotation]] = relationship(
        back_populates="work_entry",
        order_by="WorkEntryAnnotation.created_at",
    )


class WorkEntryAnnotation(Base, TimestampMixin):
    """Append-only note on a work entry; the only write allowed once locked."""

    __tablename__ = "work_entry_annotation"

    annotation_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    work_entry_id: Mapped[UUID] = mapped_column(
        ForeignKey("work_entry.work_entry_id", ondelete="CASCADE"),
        nullable=False,
    )
    author_id: Mapped[UUID] = mapped_column(nullable=False)
    author_type: Mapped[str] = mapped_column(String, nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)

    __table_args__ = (
        CheckConstraint(
            "author_type IN ('employee', 'manager', 'company')",
            name="work_entry_annotation_author_type_check",
        ),
    )

    work_entry: Mapped[WorkEntry] = relationship(back_populates="annotations")


class AuditEvent(Base, TimestampMixin):
    """Audit trail entry."""

    __tablename__ = "audit_event"

    audit_event_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    company_id: Mapped[UUID] = mapped_column(
        ForeignKey("company.company_id", ondelete="CASCADE"),
        nullable=False,
    )
    actor_id: Mapped[UUID | None] = mapped_column(nullable=True)
    actor_type: Mapped[str | None] = mapped_column(String, nullable=True)
    entity_type: Mapped[str] = mapped_column(String, nullable=False)
    entity_id: Mapped[UUID] = mapped_column(nullable=False)
    action: Mapped[str] = mapped_column(String, nullable=False)
    before_json: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    after_json: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)

    __table_args__ = (Index("ix_audit_event_entity", "entity_type", "entity_id"),)
