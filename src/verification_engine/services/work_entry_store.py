"""Work entry persistence and the immutability contract."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, fields
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any
from uuid import UUID

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from verification_engine.errors import (
    ImmutableEntryError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from verification_engine.models import AuditEvent, Team, WorkEntry, WorkEntryAnnotation, utcnow
from verification_engine.services.state_machine import WorkEntryStateMachine, WorkEntryStatus

logger = logging.getLogger(__name__)

PRIORITIES = ("low", "medium", "high")
AUTHOR_TYPES = ("employee", "manager", "company")

# Fields a generic edit may touch; everything else goes through transitions
EDITABLE_FIELDS = frozenset(
    {"title", "description", "start_date", "end_date", "team_id", "work_type", "priority", "hours", "project"}
)
# Editable columns that are NOT NULL
REQUIRED_EDITABLE_FIELDS = ("title", "start_date", "work_type", "priority")
PROTECTED_FIELDS = frozenset(
    {
        "work_entry_id",
        "employee_id",
        "company_id",
        "approval_status",
        "is_immutable",
        "submitted_at",
        "approved_by",
        "approved_by_type",
        "approved_at",
        "approval_comments",
        "company_rating",
        "reviewed_by",
        "reviewed_at",
        "created_at",
        "updated_at",
    }
)


@dataclass
class NewWorkEntry:
    """Input for creating a work entry."""

    employee_id: UUID | None = None
    company_id: UUID | None = None
    title: str | None = None
    start_date: date | None = None
    description: str | None = None
    end_date: date | None = None
    team_id: UUID | None = None
    work_type: str = "task"
    priority: str = "medium"
    hours: Decimal | None = None
    project: str | None = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> NewWorkEntry:
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValidationError("Unknown work entry fields", sorted(unknown))
        return cls(**{k: v for k, v in data.items() if v is not None})


class WorkEntryStore:
    """Owns WorkEntry rows.

    Generic edits go through ``mutate``; status and lock changes go
    through ``apply_transition`` only, which the approval engine calls.
    Both are single conditional UPDATEs so concurrent writers cannot both
    win. The store never commits.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, data: NewWorkEntry, as_draft: bool = False) -> WorkEntry:
        """Create an entry in pending_review (or draft when as_draft)."""
        errors = []
        for name in ("employee_id", "company_id", "title", "start_date"):
            value = getattr(data, name)
            if value is None or (isinstance(value, str) and not value.strip()):
                errors.append(f"{name} is required")
        if errors:
            raise ValidationError("Missing required fields", errors)

        values = {f.name: getattr(data, f.name) for f in fields(data)}
        values = _normalize(values)
        errors = _validate_fields(values)
        if errors:
            raise ValidationError("Invalid work entry", errors)

        if values.get("team_id") is not None:
            await self._check_team(values["team_id"], values["company_id"])

        status = WorkEntryStatus.DRAFT if as_draft else WorkEntryStatus.PENDING_REVIEW
        entry = WorkEntry(
            **values,
            approval_status=status.value,
            is_immutable=False,
            submitted_at=None if as_draft else utcnow(),
        )
        self.session.add(entry)
        await self.session.flush()
        logger.info(
            "Created work entry %s for employee %s (%s)",
            entry.work_entry_id,
            entry.employee_id,
            status.value,
        )
        return entry

    async def get(self, entry_id: UUID) -> WorkEntry:
        """Load an entry, always reflecting the latest committed row."""
        result = await self.session.execute(
            select(WorkEntry)
            .where(WorkEntry.work_entry_id == entry_id)
            .execution_options(populate_existing=True)
        )
        entry = result.scalar_one_or_none()
        if entry is None:
            raise NotFoundError("Work entry", entry_id)
        return entry

    async def mutate(self, entry_id: UUID, patch: Mapping[str, Any]) -> WorkEntry:
        """Apply a field patch to an unlocked entry.

        Raises ImmutableEntryError once the entry is locked, and
        InvalidStateError for terminal (rejected) entries.
        """
        protected = sorted(set(patch) & PROTECTED_FIELDS)
        if protected:
            raise ValidationError(
                "Fields can only change through approval transitions",
                [f"{name} is read-only" for name in protected],
            )
        unknown = sorted(set(patch) - EDITABLE_FIELDS)
        if unknown:
            raise ValidationError("Unknown work entry fields", unknown)
        if not patch:
            raise ValidationError("Empty patch")

        entry = await self.get(entry_id)
        self._check_editable(entry)

        values = _normalize(dict(patch))
        merged = {name: getattr(entry, name) for name in EDITABLE_FIELDS}
        merged.update(values)
        errors = [
            f"{name} is required"
            for name in REQUIRED_EDITABLE_FIELDS
            if name in values and (values[name] is None or values[name] == "")
        ]
        errors += _validate_fields(merged)
        if errors:
            raise ValidationError("Invalid work entry", errors)

        if values.get("team_id") is not None:
            await self._check_team(values["team_id"], entry.company_id)

        result = await self.session.execute(
            update(WorkEntry)
            .where(
                WorkEntry.work_entry_id == entry_id,
                WorkEntry.is_immutable.is_(False),
                WorkEntry.approval_status.in_(
                    [s.value for s in WorkEntryStateMachine.EDITABLE_STATUSES]
                ),
            )
            .values(**values, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            # Locked or closed between read and write
            current = await self.get(entry_id)
            self._check_editable(current)
            raise InvalidStateError(current.approval_status, reason="entry changed during edit")

        return await self.get(entry_id)

    async def delete(self, entry_id: UUID) -> None:
        """Physically delete an entry that has never been locked."""
        result = await self.session.execute(
            delete(WorkEntry)
            .where(
                WorkEntry.work_entry_id == entry_id,
                WorkEntry.is_immutable.is_(False),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            entry = await self.get(entry_id)
            if entry.is_immutable:
                raise ImmutableEntryError(entry_id)
        logger.info("Deleted work entry %s", entry_id)

    async def apply_transition(
        self,
        entry_id: UUID,
        from_status: WorkEntryStatus,
        to_status: WorkEntryStatus,
        values: Mapping[str, Any] | None = None,
    ) -> WorkEntry:
        """Privileged status change as one compare-and-set write.

        Matches only when the row is still in ``from_status`` and unlocked;
        a zero row count is re-read and reported as the precondition that
        failed. ``is_immutable`` is derived from the target status.
        """
        from_status = WorkEntryStatus(from_status)
        to_status = WorkEntryStatus(to_status)
        WorkEntryStateMachine.validate_transition(entry_id, from_status, False, to_status)

        result = await self.session.execute(
            update(WorkEntry)
            .where(
                WorkEntry.work_entry_id == entry_id,
                WorkEntry.approval_status == from_status.value,
                WorkEntry.is_immutable.is_(False),
            )
            .values(
                **dict(values or {}),
                approval_status=to_status.value,
                is_immutable=WorkEntryStateMachine.is_immutable_status(to_status),
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            current = await self.get(entry_id)
            logger.warning(
                "Conditional transition %s → %s lost for entry %s (now %s, immutable=%s)",
                from_status.value,
                to_status.value,
                entry_id,
                current.approval_status,
                current.is_immutable,
            )
            WorkEntryStateMachine.validate_transition(
                entry_id, current.approval_status, current.is_immutable, to_status
            )
            raise InvalidStateError(
                current.approval_status, to_status.value, "status changed concurrently"
            )

        return await self.get(entry_id)

    async def annotate(
        self,
        entry_id: UUID,
        author_id: UUID,
        author_type: str,
        body: str,
    ) -> WorkEntryAnnotation:
        """Append an annotation; allowed on locked entries, never edits the row."""
        if not body or not body.strip():
            raise ValidationError("Annotation body is required")
        if author_type not in AUTHOR_TYPES:
            raise ValidationError("Invalid author type", [f"author_type must be one of {AUTHOR_TYPES}"])
        await self.get(entry_id)

        annotation = WorkEntryAnnotation(
            work_entry_id=entry_id,
            author_id=author_id,
            author_type=author_type,
            body=body.strip(),
        )
        self.session.add(annotation)
        await self.session.flush()
        return annotation

    async def list_annotations(self, entry_id: UUID) -> list[WorkEntryAnnotation]:
        await self.get(entry_id)
        result = await self.session.execute(
            select(WorkEntryAnnotation)
            .where(WorkEntryAnnotation.work_entry_id == entry_id)
            .order_by(WorkEntryAnnotation.created_at)
        )
        return list(result.scalars().all())

    async def record_audit(
        self,
        entry: WorkEntry,
        action: str,
        actor_id: UUID | None = None,
        actor_type: str | None = None,
        before: dict[str, Any] | None = None,
        after: dict[str, Any] | None = None,
    ) -> AuditEvent:
        """Record an audit event for a work entry action."""
        event = AuditEvent(
            company_id=entry.company_id,
            actor_id=actor_id,
            actor_type=actor_type,
            entity_type="work_entry",
            entity_id=entry.work_entry_id,
            action=action,
            before_json=before,
            after_json=after,
        )
        self.session.add(event)
        await self.session.flush()
        return event

    def _check_editable(self, entry: WorkEntry) -> None:
        if entry.is_immutable:
            raise ImmutableEntryError(entry.work_entry_id)
        if not WorkEntryStateMachine.can_edit(entry.approval_status):
            raise InvalidStateError(
                entry.approval_status,
                reason=f"'{entry.approval_status}' entries cannot be edited",
            )

    async def _check_team(self, team_id: UUID, company_id: UUID) -> None:
        team_company = await self.session.scalar(
            select(Team.company_id).where(Team.team_id == team_id)
        )
        if team_company is None:
            raise ValidationError("Unknown team", [f"team {team_id} does not exist"])
        if team_company != company_id:
            raise ValidationError(
                "Team belongs to a different company",
                [f"team {team_id} is not part of company {company_id}"],
            )


def _normalize(values: dict[str, Any]) -> dict[str, Any]:
    """Coerce loosely typed input (ISO dates, numeric hours, stripped text)."""
    out = dict(values)
    for name in ("start_date", "end_date"):
        value = out.get(name)
        if isinstance(value, str):
            try:
                out[name] = date.fromisoformat(value)
            except ValueError:
                raise ValidationError("Invalid date", [f"{name} must be an ISO date"]) from None
    hours = out.get("hours")
    if hours is not None and not isinstance(hours, Decimal):
        try:
            out["hours"] = Decimal(str(hours))
        except InvalidOperation:
            raise ValidationError("Invalid hours", ["hours must be numeric"]) from None
    for name in ("title", "description", "project", "work_type"):
        if isinstance(out.get(name), str):
            out[name] = out[name].strip()
    return out


def _validate_fields(values: Mapping[str, Any]) -> list[str]:
    errors: list[str] = []
    start, end = values.get("start_date"), values.get("end_date")
    if start is not None and end is not None and end < start:
        errors.append("end_date must not be before start_date")
    hours = values.get("hours")
    if hours is not None and hours < 0:
        errors.append("hours must not be negative")
    priority = values.get("priority")
    if priority is not None and priority not in PRIORITIES:
        errors.append(f"priority must be one of {', '.join(PRIORITIES)}")
    if "work_type" in values and not values.get("work_type"):
        errors.append("work_type must not be empty")
    return errors
