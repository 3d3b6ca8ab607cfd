"""Error taxonomy for the verification engine.

Every error carries a stable ``code`` so callers can render precise
guidance (e.g. "already approved" vs "not authorized"). None of these are
retried by the engine.
"""

from __future__ import annotations

from typing import Any


class VerificationError(Exception):
    """Base class for all domain errors."""

    code = "VERIFICATION_ERROR"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Serialize for API responses."""
        return {"detail": self.message, "code": self.code}


class ValidationError(VerificationError):
    """Malformed or missing input."""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, field_errors: list[str] | None = None):
        self.field_errors = field_errors or []
        if self.field_errors:
            message = f"{message}: {'; '.join(self.field_errors)}"
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["errors"] = list(self.field_errors)
        return data


class NotFoundError(VerificationError):
    """Referenced entity does not exist."""

    code = "NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: Any):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} {entity_id} not found")


class UnauthorizedError(VerificationError):
    """Actor lacks the permission (or scope) required for the action."""

    code = "UNAUTHORIZED"


class InvalidStateError(VerificationError):
    """Transition is not legal from the entry's current status."""

    code = "INVALID_STATE"

    def __init__(
        self,
        current_status: str,
        target_status: str | None = None,
        reason: str | None = None,
    ):
        self.current_status = current_status
        self.target_status = target_status
        if target_status is not None:
            msg = f"Invalid transition from '{current_status}' to '{target_status}'"
        else:
            msg = f"Operation not allowed in status '{current_status}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class AlreadyImmutableError(VerificationError):
    """Entry is locked (approved); it can never be approved or changed again."""

    code = "ALREADY_IMMUTABLE"

    def __init__(self, entry_id: Any, message: str | None = None):
        self.entry_id = entry_id
        super().__init__(message or f"Work entry {entry_id} is already approved and immutable")


class ImmutableEntryError(AlreadyImmutableError):
    """Field edit or delete attempted on a locked entry."""

    code = "IMMUTABLE_ENTRY"

    def __init__(self, entry_id: Any):
        super().__init__(
            entry_id,
            f"Work entry {entry_id} is immutable; only annotations may be appended",
        )


class DuplicateAssignmentError(VerificationError):
    """An active assignment already exists for the (employee, team) pair."""

    code = "DUPLICATE_ASSIGNMENT"

    def __init__(self, employee_id: Any, team_id: Any):
        self.employee_id = employee_id
        self.team_id = team_id
        super().__init__(f"Employee {employee_id} is already assigned to team {team_id}")
