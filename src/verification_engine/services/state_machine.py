"""Work entry state machine with transition validation."""

from __future__ import annotations

from enum import Enum

from verification_engine.errors import AlreadyImmutableError, InvalidStateError


class WorkEntryStatus(str, Enum):
    """Work entry approval status values."""

    DRAFT = "draft"
    PENDING_REVIEW = "pending_review"
    APPROVED = "approved"
    CHANGES_REQUESTED = "changes_requested"
    REJECTED = "rejected"


class WorkEntryStateMachine:
    """State machine for work entry status transitions.

    Allowed transitions:
    - draft → pending_review (submit)
    - pending_review → approved (locks the entry permanently)
    - pending_review → changes_requested
    - pending_review → rejected
    - changes_requested → pending_review (resubmit)

    approved and rejected are terminal; only approved is immutable.
    """

    VALID_TRANSITIONS: dict[str, list[str]] = {
        WorkEntryStatus.DRAFT: [WorkEntryStatus.PENDING_REVIEW],
        WorkEntryStatus.PENDING_REVIEW: [
            WorkEntryStatus.APPROVED,
            WorkEntryStatus.CHANGES_REQUESTED,
            WorkEntryStatus.REJECTED,
        ],
        WorkEntryStatus.CHANGES_REQUESTED: [WorkEntryStatus.PENDING_REVIEW],
        WorkEntryStatus.APPROVED: [],  # Terminal, immutable
        WorkEntryStatus.REJECTED: [],  # Terminal
    }

    # Statuses that lock the entry on entry
    IMMUTABLE_STATUSES = {WorkEntryStatus.APPROVED}

    # Statuses where the owning employee may still edit fields
    EDITABLE_STATUSES = {
        WorkEntryStatus.DRAFT,
        WorkEntryStatus.PENDING_REVIEW,
        WorkEntryStatus.CHANGES_REQUESTED,
    }

    TERMINAL_STATUSES = {WorkEntryStatus.APPROVED, WorkEntryStatus.REJECTED}

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        """Check if a transition is valid."""
        allowed = cls.VALID_TRANSITIONS.get(from_status, [])
        return to_status in allowed

    @classmethod
    def is_immutable_status(cls, status: str) -> bool:
        """Check if entering this status locks the entry."""
        return status in cls.IMMUTABLE_STATUSES

    @classmethod
    def can_edit(cls, status: str) -> bool:
        """Check if entry fields can be modified in this status."""
        return status in cls.EDITABLE_STATUSES

    @classmethod
    def is_terminal(cls, status: str) -> bool:
        return status in cls.TERMINAL_STATUSES

    @classmethod
    def is_resubmission(cls, from_status: str, to_status: str) -> bool:
        """Check if this transition is a resubmission (changes_requested → pending_review)."""
        return (
            from_status == WorkEntryStatus.CHANGES_REQUESTED
            and to_status == WorkEntryStatus.PENDING_REVIEW
        )

    @classmethod
    def is_first_submission(cls, from_status: str, to_status: str) -> bool:
        """Check if this transition submits a draft (draft → pending_review)."""
        return from_status == WorkEntryStatus.DRAFT and to_status == WorkEntryStatus.PENDING_REVIEW

    @classmethod
    def validate_transition(
        cls,
        entry_id: object,
        from_status: str,
        is_immutable: bool,
        to_status: str,
    ) -> None:
        """Single guard for every status change.

        Raises AlreadyImmutableError if the entry is locked, otherwise
        InvalidStateError if the transition is not in the table.
        """
        if is_immutable:
            raise AlreadyImmutableError(entry_id)
        if not cls.can_transition(from_status, to_status):
            reason = None
            if cls.is_terminal(from_status):
                reason = f"'{from_status}' is terminal"
            elif to_status == WorkEntryStatus.APPROVED:
                reason = "entry is not pending review"
            raise InvalidStateError(_value(from_status), _value(to_status), reason)


def _value(status: str) -> str:
    return status.value if isinstance(status, WorkEntryStatus) else str(status)
