"""Domain event types for work entry and team operations.

All events are immutable (frozen dataclasses), carry traceable metadata,
and serialize to plain JSON for notification delivery and audit.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Any, ClassVar
from uuid import UUID, uuid4

if TYPE_CHECKING:
    from verification_engine.models import WorkEntry


class EventCategory(str, Enum):
    """Event categories for routing and filtering."""

    WORK_ENTRY = "work_entry"
    TEAM = "team"


@dataclass(frozen=True)
class EventMetadata:
    """Metadata attached to every domain event."""

    event_id: UUID
    timestamp: datetime
    company_id: UUID
    correlation_id: UUID  # Links related events
    actor_id: UUID | None  # Account that triggered the event
    actor_type: str  # 'employee', 'manager', 'company', 'system'
    source_service: str
    version: int = 1  # Schema version for evolution

    @classmethod
    def create(
        cls,
        company_id: UUID,
        correlation_id: UUID | None = None,
        actor_id: UUID | None = None,
        actor_type: str = "system",
        source_service: str = "verification_engine",
    ) -> EventMetadata:
        """Create metadata with auto-generated fields."""
        return cls(
            event_id=uuid4(),
            timestamp=datetime.now(timezone.utc),
            company_id=company_id,
            correlation_id=correlation_id or uuid4(),
            actor_id=actor_id,
            actor_type=actor_type,
            source_service=source_service,
        )


@dataclass(frozen=True)
class DomainEvent:
    """Base class for all domain events."""

    # Wire name used by the notification sender
    name: ClassVar[str] = ""

    metadata: EventMetadata

    @property
    def event_type(self) -> str:
        """Event type name for routing."""
        return self.__class__.__name__

    @property
    def category(self) -> EventCategory:
        """Event category for filtering."""
        raise NotImplementedError("Subclasses must define category")

    def to_dict(self) -> dict[str, Any]:
        """Serialize event to dictionary."""
        data = asdict(self)
        data["event_type"] = self.event_type
        data["name"] = self.name
        return _serialize_dict(data)

    def to_json(self) -> str:
        """Serialize event to JSON string."""
        return json.dumps(self.to_dict(), default=str)

    def notification_payload(self) -> dict[str, Any]:
        """Payload handed to the notification sender."""
        return {k: v for k, v in self.to_dict().items() if k not in ("metadata", "event_type", "name")}


def _serialize_dict(obj: Any) -> Any:
    """Recursively serialize objects for JSON compatibility."""
    if isinstance(obj, dict):
        return {k: _serialize_dict(v) for k, v in obj.items()}
    elif isinstance(obj, (list, tuple)):
        return [_serialize_dict(v) for v in obj]
    elif isinstance(obj, UUID):
        return str(obj)
    elif isinstance(obj, (datetime, date)):
        return obj.isoformat()
    elif isinstance(obj, Decimal):
        return str(obj)
    elif isinstance(obj, Enum):
        return obj.value
    return obj


def work_entry_snapshot(entry: WorkEntry) -> dict[str, Any]:
    """JSON-ready copy of a work entry row."""
    return _serialize_dict(entry.to_dict())


# =============================================================================
# Work Entry Events
# =============================================================================


@dataclass(frozen=True)
class WorkEntryEvent(DomainEvent):
    """Common payload for work entry transitions."""

    employee_id: UUID
    work_entry_id: UUID
    work_entry: dict[str, Any]

    @property
    def category(self) -> EventCategory:
        return EventCategory.WORK_ENTRY


@dataclass(frozen=True)
class WorkEntrySubmitted(WorkEntryEvent):
    """Draft entry was submitted for review."""

    name: ClassVar[str] = "work-entry-submitted"


@dataclass(frozen=True)
class WorkEntryResubmitted(WorkEntryEvent):
    """Entry was resubmitted after changes were requested."""

    name: ClassVar[str] = "work-entry-resubmitted"


@dataclass(frozen=True)
class WorkEntryApproved(WorkEntryEvent):
    """Entry was approved and is now an immutable verified record."""

    name: ClassVar[str] = "work-entry-approved"

    rating: int | None = None


@dataclass(frozen=True)
class WorkEntryChangesRequested(WorkEntryEvent):
    """Reviewer asked the employee to revise the entry."""

    name: ClassVar[str] = "work-entry-changes-requested"

    comments: str = ""


@dataclass(frozen=True)
class WorkEntryRejected(WorkEntryEvent):
    """Reviewer rejected the entry (terminal)."""

    name: ClassVar[str] = "work-entry-rejected"

    comments: str = ""


# =============================================================================
# Team Events
# =============================================================================


@dataclass(frozen=True)
class TeamCreated(DomainEvent):
    """A team was created within a company."""

    name: ClassVar[str] = "team-created"

    team_id: UUID
    team_name: str
    manager_id: UUID | None

    @property
    def category(self) -> EventCategory:
        return EventCategory.TEAM


@dataclass(frozen=True)
class EmployeeAssignedToTeam(DomainEvent):
    """An employee received a new active team assignment."""

    name: ClassVar[str] = "employee-assigned-to-team"

    employee_id: UUID
    team_id: UUID
    assignment_id: UUID

    @property
    def category(self) -> EventCategory:
        return EventCategory.TEAM
