"""Approval engine - orchestrates the work entry lifecycle."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from verification_engine.errors import (
    ImmutableEntryError,
    InvalidStateError,
    UnauthorizedError,
    ValidationError,
    VerificationError,
)
from verification_engine.events import (
    AsyncEventEmitter,
    EventMetadata,
    WorkEntryApproved,
    WorkEntryChangesRequested,
    WorkEntryEvent,
    WorkEntryRejected,
    WorkEntryResubmitted,
    WorkEntrySubmitted,
    work_entry_snapshot,
)
from verification_engine.models import WorkEntry, WorkEntryAnnotation, utcnow
from verification_engine.security import (
    Actor,
    ActorType,
    Permission,
    authorize_review,
    has_permission,
    require_owner,
)
from verification_engine.services.state_machine import WorkEntryStateMachine, WorkEntryStatus
from verification_engine.services.team_registry import TeamRegistry
from verification_engine.services.work_entry_store import NewWorkEntry, WorkEntryStore

logger = logging.getLogger(__name__)

MIN_RATING = 0
MAX_RATING = 5


class ApprovalEngine:
    """Service for the work entry approval workflow.

    Operations:
    - submit: draft → pending_review (owning employee)
    - approve: pending_review → approved, locking the entry for good
    - request_changes: pending_review → changes_requested
    - reject: pending_review → rejected (terminal)
    - resubmit: changes_requested → pending_review (owning employee)

    Each transition is one conditional write plus an audit row, committed
    together. Domain events are emitted only after the commit, and a
    failing notification never undoes or blocks the transition.
    """

    def __init__(self, session: AsyncSession, emitter: AsyncEventEmitter | None = None):
        self.session = session
        self.emitter = emitter
        self.store = WorkEntryStore(session)
        self.registry = TeamRegistry(session)

    # ------------------------------------------------------------------
    # Authoring (owning employee)
    # ------------------------------------------------------------------

    async def create_entry(
        self,
        actor: Actor,
        data: NewWorkEntry | Mapping[str, Any],
        as_draft: bool = False,
    ) -> WorkEntry:
        """Create an entry owned by the employee actor."""
        if not actor.is_employee:
            raise UnauthorizedError("Only employees can create work entries")
        if isinstance(data, Mapping):
            data = NewWorkEntry.from_mapping(data)
        if data.employee_id is not None and data.employee_id != actor.actor_id:
            raise UnauthorizedError("Employees can only create their own work entries")
        data.employee_id = actor.actor_id

        entry = await self.store.create(data, as_draft=as_draft)
        await self.store.record_audit(
            entry,
            action="created",
            actor_id=actor.actor_id,
            actor_type=actor.actor_type.value,
            after={"approval_status": entry.approval_status},
        )
        await self.session.commit()

        if not as_draft:
            await self._publish(WorkEntrySubmitted, entry, actor)
        return entry

    async def edit_entry(self, entry_id: UUID, actor: Actor, patch: Mapping[str, Any]) -> WorkEntry:
        """Edit fields of an unlocked entry."""
        entry = await self.store.get(entry_id)
        if entry.is_immutable:
            raise ImmutableEntryError(entry_id)
        require_owner(actor, entry.employee_id)

        try:
            updated = await self.store.mutate(entry_id, patch)
            await self.store.record_audit(
                updated,
                action="edited",
                actor_id=actor.actor_id,
                actor_type=actor.actor_type.value,
                after={"fields": sorted(patch)},
            )
        except VerificationError:
            await self.session.rollback()
            raise
        await self.session.commit()
        return updated

    async def delete_entry(self, entry_id: UUID, actor: Actor) -> None:
        """Delete an entry that was never approved."""
        entry = await self.store.get(entry_id)
        if entry.is_immutable:
            raise ImmutableEntryError(entry_id)
        require_owner(actor, entry.employee_id)

        try:
            await self.store.record_audit(
                entry,
                action="deleted",
                actor_id=actor.actor_id,
                actor_type=actor.actor_type.value,
                before=work_entry_snapshot(entry),
            )
            await self.store.delete(entry_id)
        except VerificationError:
            await self.session.rollback()
            raise
        await self.session.commit()

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def submit(self, entry_id: UUID, actor: Actor) -> WorkEntry:
        """Submit a draft for review."""
        entry = await self.store.get(entry_id)
        WorkEntryStateMachine.validate_transition(
            entry_id, entry.approval_status, entry.is_immutable, WorkEntryStatus.PENDING_REVIEW
        )
        if not WorkEntryStateMachine.is_first_submission(entry.approval_status, WorkEntryStatus.PENDING_REVIEW):
            raise InvalidStateError(
                entry.approval_status,
                WorkEntryStatus.PENDING_REVIEW.value,
                "only drafts can be submitted; use resubmit after changes were requested",
            )
        require_owner(actor, entry.employee_id)

        return await self._transition(
            entry,
            WorkEntryStatus.PENDING_REVIEW,
            actor,
            values={"submitted_at": utcnow()},
            event_type=WorkEntrySubmitted,
        )

    async def approve(
        self,
        entry_id: UUID,
        approver: Actor,
        comments: str | None = None,
        rating: int | None = None,
    ) -> WorkEntry:
        """Approve a pending entry, making it an immutable verified record.

        Raises:
            NotFoundError: entry does not exist
            AlreadyImmutableError: entry is already approved (also for the
                loser of two concurrent approvals)
            InvalidStateError: entry is not pending review
            UnauthorizedError: approver lacks authority over the entry
            ValidationError: rating outside 0-5
        """
        entry = await self.store.get(entry_id)
        WorkEntryStateMachine.validate_transition(
            entry_id, entry.approval_status, entry.is_immutable, WorkEntryStatus.APPROVED
        )
        await self._authorize_reviewer(approver, entry)
        rating = _validate_rating(rating)

        now = utcnow()
        return await self._transition(
            entry,
            WorkEntryStatus.APPROVED,
            approver,
            values={
                "approved_by": approver.actor_id,
                "approved_by_type": approver.approver_type,
                "approved_at": now,
                "approval_comments": _clean(comments),
                "company_rating": rating,
                "reviewed_by": approver.actor_id,
                "reviewed_at": now,
            },
            event_type=WorkEntryApproved,
            event_fields={"rating": rating},
        )

    async def request_changes(self, entry_id: UUID, approver: Actor, comments: str) -> WorkEntry:
        """Send a pending entry back to the employee; it stays mutable."""
        entry = await self.store.get(entry_id)
        WorkEntryStateMachine.validate_transition(
            entry_id, entry.approval_status, entry.is_immutable, WorkEntryStatus.CHANGES_REQUESTED
        )
        await self._authorize_reviewer(approver, entry)
        feedback = _require_comments(comments, "Feedback is required when requesting changes")

        return await self._transition(
            entry,
            WorkEntryStatus.CHANGES_REQUESTED,
            approver,
            values=_review_stamp(approver, feedback),
            event_type=WorkEntryChangesRequested,
            event_fields={"comments": feedback},
        )

    async def reject(self, entry_id: UUID, approver: Actor, comments: str) -> WorkEntry:
        """Reject a pending entry; rejected is terminal."""
        entry = await self.store.get(entry_id)
        WorkEntryStateMachine.validate_transition(
            entry_id, entry.approval_status, entry.is_immutable, WorkEntryStatus.REJECTED
        )
        await self._authorize_reviewer(approver, entry)
        reason = _require_comments(comments, "A reason is required when rejecting")

        return await self._transition(
            entry,
            WorkEntryStatus.REJECTED,
            approver,
            values=_review_stamp(approver, reason),
            event_type=WorkEntryRejected,
            event_fields={"comments": reason},
        )

    async def resubmit(self, entry_id: UUID, actor: Actor) -> WorkEntry:
        """Return an entry to review after the employee's edits."""
        entry = await self.store.get(entry_id)
        WorkEntryStateMachine.validate_transition(
            entry_id, entry.approval_status, entry.is_immutable, WorkEntryStatus.PENDING_REVIEW
        )
        if not WorkEntryStateMachine.is_resubmission(entry.approval_status, WorkEntryStatus.PENDING_REVIEW):
            raise InvalidStateError(
                entry.approval_status,
                WorkEntryStatus.PENDING_REVIEW.value,
                "only entries with changes requested can be resubmitted",
            )
        require_owner(actor, entry.employee_id)

        return await self._transition(
            entry,
            WorkEntryStatus.PENDING_REVIEW,
            actor,
            values={"submitted_at": utcnow(), "approval_comments": None},
            event_type=WorkEntryResubmitted,
        )

    # ------------------------------------------------------------------
    # Reads and annotations
    # ------------------------------------------------------------------

    async def get_entry(self, entry_id: UUID, actor: Actor) -> WorkEntry:
        entry = await self.store.get(entry_id)
        await self._authorize_viewer(actor, entry)
        return entry

    async def annotate(self, entry_id: UUID, actor: Actor, body: str) -> WorkEntryAnnotation:
        """Append a note; the one write still allowed on a locked entry."""
        entry = await self.store.get(entry_id)
        await self._authorize_viewer(actor, entry)

        try:
            annotation = await self.store.annotate(
                entry_id, actor.actor_id, actor.actor_type.value, body
            )
            await self.store.record_audit(
                entry,
                action="annotated",
                actor_id=actor.actor_id,
                actor_type=actor.actor_type.value,
                after={"annotation_id": str(annotation.annotation_id)},
            )
        except VerificationError:
            await self.session.rollback()
            raise
        await self.session.commit()
        return annotation

    async def list_annotations(self, entry_id: UUID, actor: Actor) -> list[WorkEntryAnnotation]:
        entry = await self.store.get(entry_id)
        await self._authorize_viewer(actor, entry)
        return await self.store.list_annotations(entry_id)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _transition(
        self,
        entry: WorkEntry,
        to_status: WorkEntryStatus,
        actor: Actor,
        values: dict[str, Any],
        event_type: type[WorkEntryEvent],
        event_fields: dict[str, Any] | None = None,
    ) -> WorkEntry:
        """Compare-and-set from the status we read, audit, commit, then publish."""
        from_status = WorkEntryStatus(entry.approval_status)
        entry_id = entry.work_entry_id

        try:
            updated = await self.store.apply_transition(entry_id, from_status, to_status, values)
            await self.store.record_audit(
                updated,
                action=f"status_change:{from_status.value}:{to_status.value}",
                actor_id=actor.actor_id,
                actor_type=actor.actor_type.value,
                before={"approval_status": from_status.value},
                after={
                    "approval_status": to_status.value,
                    "is_immutable": updated.is_immutable,
                    **{k: v for k, v in (event_fields or {}).items() if v is not None},
                },
            )
        except VerificationError:
            await self.session.rollback()
            raise
        await self.session.commit()

        logger.info(
            "Work entry %s: %s → %s by %s %s",
            entry_id,
            from_status.value,
            to_status.value,
            actor.actor_type.value,
            actor.actor_id,
        )
        await self._publish(event_type, updated, actor, **(event_fields or {}))
        return updated

    async def _authorize_reviewer(self, actor: Actor, entry: WorkEntry) -> None:
        managed: set[UUID] = set()
        if (
            actor.actor_type == ActorType.MANAGER
            and not has_permission(actor.role, Permission.WORK_APPROVE_ANY)
        ):
            managed = await self.registry.manager_team_ids(actor.actor_id, entry.company_id)
        try:
            authorize_review(actor, entry.company_id, entry.team_id, managed)
        except UnauthorizedError:
            logger.warning(
                "Denied %s %s on work entry %s",
                actor.actor_type.value,
                actor.actor_id,
                entry.work_entry_id,
            )
            raise

    async def _authorize_viewer(self, actor: Actor, entry: WorkEntry) -> None:
        if actor.is_employee:
            require_owner(actor, entry.employee_id)
        else:
            await self._authorize_reviewer(actor, entry)

    async def _publish(
        self,
        event_type: type[WorkEntryEvent],
        entry: WorkEntry,
        actor: Actor,
        **fields: Any,
    ) -> None:
        if self.emitter is None:
            return
        event = event_type(
            metadata=EventMetadata.create(
                company_id=entry.company_id,
                actor_id=actor.actor_id,
                actor_type=actor.actor_type.value,
            ),
            employee_id=entry.employee_id,
            work_entry_id=entry.work_entry_id,
            work_entry=work_entry_snapshot(entry),
            **fields,
        )
        errors = await self.emitter.emit(event)
        if errors:
            logger.warning(
                "%d notification handler(s) failed for %s on entry %s",
                len(errors),
                event.name,
                entry.work_entry_id,
            )


def _validate_rating(rating: int | None) -> int | None:
    if rating is None:
        return None
    if isinstance(rating, bool) or not isinstance(rating, int):
        raise ValidationError("Invalid rating", ["rating must be an integer"])
    if not MIN_RATING <= rating <= MAX_RATING:
        raise ValidationError("Invalid rating", [f"rating must be between {MIN_RATING} and {MAX_RATING}"])
    return rating


def _require_comments(comments: str | None, message: str) -> str:
    cleaned = _clean(comments)
    if not cleaned:
        raise ValidationError(message)
    return cleaned


def _clean(text: str | None) -> str | None:
    if text is None:
        return None
    return text.strip() or None


def _review_stamp(approver: Actor, comments: str) -> dict[str, Any]:
    return {
        "approval_comments": comments,
        "reviewed_by": approver.actor_id,
        "reviewed_at": utcnow(),
    }
