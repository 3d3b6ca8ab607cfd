"""Domain events package.

This package provides:
- Typed domain events for work entry and team operations
- Async event emitter with handler isolation
- Notification relay to the external sender
"""

from verification_engine.events.emitter import (
    AsyncEventEmitter,
    AsyncEventHandler,
)
from verification_engine.events.notifications import (
    LoggingNotificationSender,
    NotificationRelay,
    NotificationSender,
)
from verification_engine.events.types import (
    DomainEvent,
    EmployeeAssignedToTeam,
    EventCategory,
    EventMetadata,
    TeamCreated,
    WorkEntryApproved,
    WorkEntryChangesRequested,
    WorkEntryEvent,
    WorkEntryRejected,
    WorkEntryResubmitted,
    WorkEntrySubmitted,
    work_entry_snapshot,
)

__all__ = [
    # Base
    "DomainEvent",
    "EventMetadata",
    "EventCategory",
    # Work entry events
    "WorkEntryEvent",
    "WorkEntrySubmitted",
    "WorkEntryResubmitted",
    "WorkEntryApproved",
    "WorkEntryChangesRequested",
    "WorkEntryRejected",
    "work_entry_snapshot",
    # Team events
    "TeamCreated",
    "EmployeeAssignedToTeam",
    # Emitter
    "AsyncEventEmitter",
    "AsyncEventHandler",
    # Notifications
    "NotificationSender",
    "NotificationRelay",
    "LoggingNotificationSender",
]
