"""Tests for the approval workflow."""

from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

import pytest
from sqlalchemy import select

from verification_engine.errors import (
    AlreadyImmutableError,
    ImmutableEntryError,
    InvalidStateError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from verification_engine.events import AsyncEventEmitter, NotificationRelay
from verification_engine.models import AuditEvent, WorkEntry
from verification_engine.security import Actor
from verification_engine.services import ApprovalEngine, WorkEntryStore


async def pending_entry(engine: ApprovalEngine, world, **overrides) -> WorkEntry:
    return await engine.create_entry(world.employee_actor, world.entry_data(**overrides))


async def audit_actions(session, entry_id) -> list[str]:
    result = await session.execute(
        select(AuditEvent.action)
        .where(AuditEvent.entity_id == entry_id)
        .order_by(AuditEvent.created_at)
    )
    return list(result.scalars().all())


def serve_stale_first(monkeypatch, engine: ApprovalEngine, stale: WorkEntry) -> None:
    """Make the engine's first read return a snapshot taken before a rival commit."""
    reads = []
    real_get = engine.store.get

    async def stale_then_real(entry_id):
        if not reads:
            reads.append(entry_id)
            return stale
        return await real_get(entry_id)

    monkeypatch.setattr(engine.store, "get", stale_then_real)


class TestApprove:
    """pending_review → approved."""

    async def test_team_manager_approves_and_locks(self, session, world, emitter, sender):
        """Manager owning the team approves; a second approval is refused."""
        engine = ApprovalEngine(session, emitter)
        entry = await pending_entry(engine, world)

        approved = await engine.approve(
            entry.work_entry_id, world.manager_actor, comments="good work", rating=5
        )

        assert approved.approval_status == "approved"
        assert approved.is_immutable is True
        assert approved.approved_by == world.manager.manager_id
        assert approved.approved_by_type == "manager"
        assert approved.company_rating == 5
        assert approved.approval_comments == "good work"
        assert approved.approved_at is not None

        with pytest.raises(AlreadyImmutableError):
            await engine.approve(entry.work_entry_id, world.manager_actor, rating=1)

        reloaded = await engine.store.get(entry.work_entry_id)
        assert reloaded.company_rating == 5

    async def test_manager_of_other_team_denied(self, session, world):
        engine = ApprovalEngine(session)
        entry = await pending_entry(engine, world)

        with pytest.raises(UnauthorizedError, match="team you manage"):
            await engine.approve(entry.work_entry_id, world.second_manager_actor)

        reloaded = await engine.store.get(entry.work_entry_id)
        assert reloaded.approval_status == "pending_review"
        assert reloaded.is_immutable is False

    async def test_company_admin_approves_any_team(self, session, world):
        engine = ApprovalEngine(session)
        entry = await pending_entry(engine, world, team_id=world.team_b.team_id)

        approved = await engine.approve(entry.work_entry_id, world.admin)

        assert approved.is_immutable is True
        assert approved.approved_by_type == "company"
        assert approved.approved_by == world.company.company_id

    async def test_company_admin_of_other_company_denied(self, session, world):
        engine = ApprovalEngine(session)
        entry = await pending_entry(engine, world)

        with pytest.raises(UnauthorizedError, match="different company"):
            await engine.approve(entry.work_entry_id, world.foreign_admin)

    async def test_entry_without_team_needs_company_admin(self, session, world):
        engine = ApprovalEngine(session)
        entry = await pending_entry(engine, world, team_id=None)

        with pytest.raises(UnauthorizedError):
            await engine.approve(entry.work_entry_id, world.manager_actor)

        approved = await engine.approve(entry.work_entry_id, world.admin)
        assert approved.approval_status == "approved"

    async def test_branch_admin_without_teams_denied(self, session, world):
        engine = ApprovalEngine(session)
        entry = await pending_entry(engine, world)

        with pytest.raises(UnauthorizedError):
            await engine.approve(entry.work_entry_id, world.branch_admin_actor)

    async def test_team_authority_is_resolved_at_approval_time(self, session, world):
        """Handing the team to another manager moves approval authority with it."""
        engine = ApprovalEngine(session)
        entry = await pending_entry(engine, world)
        await engine.registry.assign_manager(world.team_a.team_id, world.second_manager.manager_id)

        with pytest.raises(UnauthorizedError):
            await engine.approve(entry.work_entry_id, world.manager_actor)

        approved = await engine.approve(entry.work_entry_id, world.second_manager_actor)
        assert approved.approved_by == world.second_manager.manager_id

    async def test_employee_cannot_approve_own_entry(self, session, world):
        engine = ApprovalEngine(session)
        entry = await pending_entry(engine, world)

        with pytest.raises(UnauthorizedError):
            await engine.approve(entry.work_entry_id, world.employee_actor)

    async def test_draft_cannot_be_approved(self, session, world):
        engine = ApprovalEngine(session)
        entry = await engine.create_entry(world.employee_actor, world.entry_data(), as_draft=True)

        with pytest.raises(InvalidStateError, match="not pending review"):
            await engine.approve(entry.work_entry_id, world.manager_actor)

    async def test_locked_entry_reports_immutability_to_anyone(self, session, world):
        """Once approved, every approve attempt fails the same way."""
        engine = ApprovalEngine(session)
        entry = await pending_entry(engine, world)
        await engine.approve(entry.work_entry_id, world.admin)

        for approver in (world.manager_actor, world.second_manager_actor, world.foreign_admin):
            with pytest.raises(AlreadyImmutableError):
                await engine.approve(entry.work_entry_id, approver)

    @pytest.mark.parametrize("rating", [-1, 6, True, "5"])
    async def test_rating_out_of_range(self, session, world, rating):
        engine = ApprovalEngine(session)
        entry = await pending_entry(engine, world)

        with pytest.raises(ValidationError, match="rating"):
            await engine.approve(entry.work_entry_id, world.manager_actor, rating=rating)

        assert (await engine.store.get(entry.work_entry_id)).is_immutable is False

    async def test_missing_entry(self, session, world):
        with pytest.raises(NotFoundError):
            await ApprovalEngine(session).approve(uuid4(), world.admin)


class TestConcurrentApproval:
    """At most one approval wins."""

    async def test_stale_reader_loses_to_committed_approval(self, session_factory, world, monkeypatch):
        """An approver that read the entry before a rival committed gets AlreadyImmutableError."""
        async with session_factory() as setup:
            entry = await pending_entry(ApprovalEngine(setup), world)
        entry_id = entry.work_entry_id

        async with session_factory() as session_a, session_factory() as session_b:
            engine_a = ApprovalEngine(session_a)
            engine_b = ApprovalEngine(session_b)

            # Approver A reads the entry while it is still pending
            stale = await engine_a.store.get(entry_id)
            await session_a.commit()
            assert stale.approval_status == "pending_review"

            # Approver B wins the race
            await engine_b.approve(entry_id, world.manager_actor, rating=4)

            serve_stale_first(monkeypatch, engine_a, stale)

            with pytest.raises(AlreadyImmutableError):
                await engine_a.approve(entry_id, world.admin, rating=1)

        async with session_factory() as check:
            final = await WorkEntryStore(check).get(entry_id)
            assert final.approved_by == world.manager.manager_id
            assert final.company_rating == 4
            actions = await audit_actions(check, entry_id)
            assert actions.count("status_change:pending_review:approved") == 1

    async def test_stale_reject_after_approval(self, session_factory, world, monkeypatch):
        async with session_factory() as setup:
            entry = await pending_entry(ApprovalEngine(setup), world)

        async with session_factory() as session_a, session_factory() as session_b:
            engine_a = ApprovalEngine(session_a)
            stale = await engine_a.store.get(entry.work_entry_id)
            await session_a.commit()

            await ApprovalEngine(session_b).approve(entry.work_entry_id, world.admin)

            serve_stale_first(monkeypatch, engine_a, stale)
            with pytest.raises(AlreadyImmutableError):
                await engine_a.reject(entry.work_entry_id, world.manager_actor, "too late")


class TestReviewFeedback:
    """request_changes, resubmit and reject."""

    async def test_request_changes_then_resubmit(self, session, world, emitter, sender):
        engine = ApprovalEngine(session, emitter)
        entry = await engine.create_entry(world.employee_actor, world.entry_data(), as_draft=True)

        submitted = await engine.submit(entry.work_entry_id, world.employee_actor)
        assert submitted.approval_status == "pending_review"
        assert submitted.submitted_at is not None

        returned = await engine.request_changes(
            entry.work_entry_id, world.manager_actor, "Please add the ticket numbers"
        )
        assert returned.approval_status == "changes_requested"
        assert returned.is_immutable is False
        assert returned.approval_comments == "Please add the ticket numbers"

        edited = await engine.edit_entry(
            entry.work_entry_id, world.employee_actor, {"description": "Tickets BIL-12, BIL-19"}
        )
        assert edited.description == "Tickets BIL-12, BIL-19"

        resubmitted = await engine.resubmit(entry.work_entry_id, world.employee_actor)
        assert resubmitted.approval_status == "pending_review"
        assert resubmitted.approval_comments is None

        assert sender.names == [
            "work-entry-submitted",
            "work-entry-changes-requested",
            "work-entry-resubmitted",
        ]
        assert sender.sent[1][1]["comments"] == "Please add the ticket numbers"

    @pytest.mark.parametrize("comments", ["", "   ", None])
    async def test_request_changes_requires_feedback(self, session, world, comments):
        engine = ApprovalEngine(session)
        entry = await pending_entry(engine, world)

        with pytest.raises(ValidationError, match="Feedback is required"):
            await engine.request_changes(entry.work_entry_id, world.manager_actor, comments)

    async def test_request_changes_needs_review_authority(self, session, world):
        engine = ApprovalEngine(session)
        entry = await pending_entry(engine, world)

        with pytest.raises(UnauthorizedError):
            await engine.request_changes(entry.work_entry_id, world.second_manager_actor, "Redo")

    async def test_reject_is_terminal(self, session, world, emitter, sender):
        engine = ApprovalEngine(session, emitter)
        entry = await pending_entry(engine, world)

        rejected = await engine.reject(entry.work_entry_id, world.manager_actor, "Duplicate of last week")

        assert rejected.approval_status == "rejected"
        assert rejected.is_immutable is False
        assert sender.names[-1] == "work-entry-rejected"

        with pytest.raises(InvalidStateError, match="terminal"):
            await engine.resubmit(entry.work_entry_id, world.employee_actor)
        with pytest.raises(InvalidStateError):
            await engine.approve(entry.work_entry_id, world.manager_actor)
        with pytest.raises(InvalidStateError):
            await engine.edit_entry(entry.work_entry_id, world.employee_actor, {"title": "Retry"})

    async def test_reject_requires_reason(self, session, world):
        engine = ApprovalEngine(session)
        entry = await pending_entry(engine, world)

        with pytest.raises(ValidationError):
            await engine.reject(entry.work_entry_id, world.admin, "")

    async def test_resubmit_only_from_changes_requested(self, session, world):
        engine = ApprovalEngine(session)
        entry = await pending_entry(engine, world)

        with pytest.raises(InvalidStateError):
            await engine.resubmit(entry.work_entry_id, world.employee_actor)

    async def test_draft_cannot_be_resubmitted(self, session, world, emitter, sender):
        engine = ApprovalEngine(session, emitter)
        entry = await engine.create_entry(world.employee_actor, world.entry_data(), as_draft=True)

        with pytest.raises(InvalidStateError, match="changes requested"):
            await engine.resubmit(entry.work_entry_id, world.employee_actor)

        reloaded = await engine.store.get(entry.work_entry_id)
        assert reloaded.approval_status == "draft"
        assert sender.names == []
        assert await audit_actions(session, entry.work_entry_id) == ["created"]

    async def test_returned_entry_cannot_be_submitted(self, session, world, emitter, sender):
        """An entry sent back for changes goes through resubmit, not submit."""
        engine = ApprovalEngine(session, emitter)
        entry = await pending_entry(engine, world)
        await engine.request_changes(entry.work_entry_id, world.manager_actor, "Add hours per day")

        with pytest.raises(InvalidStateError, match="only drafts"):
            await engine.submit(entry.work_entry_id, world.employee_actor)

        reloaded = await engine.store.get(entry.work_entry_id)
        assert reloaded.approval_status == "changes_requested"
        assert reloaded.approval_comments == "Add hours per day"
        assert sender.names == ["work-entry-submitted", "work-entry-changes-requested"]

    async def test_only_owner_submits_and_resubmits(self, session, world):
        engine = ApprovalEngine(session)
        entry = await engine.create_entry(world.employee_actor, world.entry_data(), as_draft=True)

        with pytest.raises(UnauthorizedError):
            await engine.submit(entry.work_entry_id, world.colleague_actor)
        with pytest.raises(UnauthorizedError):
            await engine.submit(entry.work_entry_id, world.manager_actor)

        await engine.submit(entry.work_entry_id, world.employee_actor)
        await engine.request_changes(entry.work_entry_id, world.manager_actor, "More detail")

        with pytest.raises(UnauthorizedError):
            await engine.resubmit(entry.work_entry_id, world.colleague_actor)


class TestAuthoring:
    """Owner-only create, edit and delete."""

    async def test_create_for_someone_else_denied(self, session, world):
        engine = ApprovalEngine(session)

        with pytest.raises(UnauthorizedError):
            await engine.create_entry(
                world.employee_actor, world.entry_data(employee_id=world.colleague.employee_id)
            )

    async def test_only_employees_create(self, session, world):
        with pytest.raises(UnauthorizedError):
            await ApprovalEngine(session).create_entry(world.manager_actor, world.entry_data())

    async def test_edit_and_delete_after_approval_fail(self, session, world):
        engine = ApprovalEngine(session)
        entry = await pending_entry(engine, world)
        await engine.approve(entry.work_entry_id, world.manager_actor)

        with pytest.raises(ImmutableEntryError):
            await engine.edit_entry(entry.work_entry_id, world.employee_actor, {"hours": "1"})
        with pytest.raises(ImmutableEntryError):
            await engine.delete_entry(entry.work_entry_id, world.employee_actor)

        reloaded = await engine.store.get(entry.work_entry_id)
        assert reloaded.hours == Decimal("32.5")

    async def test_colleague_cannot_edit(self, session, world):
        engine = ApprovalEngine(session)
        entry = await pending_entry(engine, world)

        with pytest.raises(UnauthorizedError):
            await engine.edit_entry(entry.work_entry_id, world.colleague_actor, {"title": "Mine now"})

    async def test_owner_deletes_pending_entry(self, session, world):
        engine = ApprovalEngine(session)
        entry = await pending_entry(engine, world)

        await engine.delete_entry(entry.work_entry_id, world.employee_actor)

        with pytest.raises(NotFoundError):
            await engine.store.get(entry.work_entry_id)
        assert await audit_actions(session, entry.work_entry_id) == ["created", "deleted"]


class TestAnnotations:
    async def test_reviewer_and_owner_annotate_approved_entry(self, session, world):
        engine = ApprovalEngine(session)
        entry = await pending_entry(engine, world)
        await engine.approve(entry.work_entry_id, world.manager_actor)

        await engine.annotate(entry.work_entry_id, world.manager_actor, "Reference for promotion")
        await engine.annotate(entry.work_entry_id, world.employee_actor, "Thank you")

        notes = await engine.list_annotations(entry.work_entry_id, world.admin)
        assert [(n.author_type, n.body) for n in notes] == [
            ("manager", "Reference for promotion"),
            ("employee", "Thank you"),
        ]

    async def test_outsiders_cannot_annotate(self, session, world):
        engine = ApprovalEngine(session)
        entry = await pending_entry(engine, world)

        with pytest.raises(UnauthorizedError):
            await engine.annotate(entry.work_entry_id, world.colleague_actor, "Nice")
        with pytest.raises(UnauthorizedError):
            await engine.annotate(entry.work_entry_id, world.foreign_admin, "Nice")


class TestAuditAndEvents:
    async def test_every_transition_is_audited(self, session, world):
        engine = ApprovalEngine(session)
        entry = await pending_entry(engine, world)
        await engine.request_changes(entry.work_entry_id, world.manager_actor, "Split by day")
        await engine.resubmit(entry.work_entry_id, world.employee_actor)
        await engine.approve(entry.work_entry_id, world.manager_actor, rating=3)

        assert await audit_actions(session, entry.work_entry_id) == [
            "created",
            "status_change:pending_review:changes_requested",
            "status_change:changes_requested:pending_review",
            "status_change:pending_review:approved",
        ]

        result = await session.execute(
            select(AuditEvent).where(
                AuditEvent.entity_id == entry.work_entry_id,
                AuditEvent.action == "status_change:pending_review:approved",
            )
        )
        audit = result.scalar_one()
        assert audit.actor_id == world.manager.manager_id
        assert audit.actor_type == "manager"
        assert audit.after_json["is_immutable"] is True
        assert audit.after_json["rating"] == 3

    async def test_refused_transition_leaves_no_audit(self, session, world):
        engine = ApprovalEngine(session)
        entry = await pending_entry(engine, world)

        with pytest.raises(UnauthorizedError):
            await engine.approve(entry.work_entry_id, world.second_manager_actor)

        assert await audit_actions(session, entry.work_entry_id) == ["created"]

    async def test_approval_event_payload(self, session, world, emitter, sender):
        engine = ApprovalEngine(session, emitter)
        entry = await pending_entry(engine, world)

        await engine.approve(entry.work_entry_id, world.manager_actor, rating=5)

        name, payload = sender.sent[-1]
        assert name == "work-entry-approved"
        assert payload["employee_id"] == str(world.employee.employee_id)
        assert payload["rating"] == 5
        assert payload["work_entry"]["approval_status"] == "approved"
        assert payload["work_entry"]["is_immutable"] is True

    async def test_event_is_emitted_after_commit(self, session, session_factory, world):
        """Handlers observe the committed state from an independent session."""
        seen: list[str] = []

        class CheckingSender:
            async def send(self, event_name: str, payload: dict[str, Any]) -> None:
                async with session_factory() as other:
                    row = await WorkEntryStore(other).get(UUID(payload["work_entry_id"]))
                    seen.append(row.approval_status)

        emitter = AsyncEventEmitter()
        engine = ApprovalEngine(session)
        entry = await pending_entry(engine, world)
        NotificationRelay(CheckingSender()).attach(emitter)
        engine.emitter = emitter

        await engine.approve(entry.work_entry_id, world.manager_actor)

        assert seen == ["approved"]

    async def test_notification_failure_does_not_undo_approval(self, session, session_factory, world, emitter, sender):
        engine = ApprovalEngine(session, emitter)
        entry = await pending_entry(engine, world)
        sender.fail = True

        approved = await engine.approve(entry.work_entry_id, world.manager_actor)

        assert approved.is_immutable is True
        async with session_factory() as other:
            assert (await WorkEntryStore(other).get(entry.work_entry_id)).approval_status == "approved"


class TestGetEntry:
    async def test_visibility(self, session, world):
        engine = ApprovalEngine(session)
        entry = await pending_entry(engine, world)

        for actor in (world.employee_actor, world.manager_actor, world.admin):
            assert (await engine.get_entry(entry.work_entry_id, actor)).work_entry_id == entry.work_entry_id

        for actor in (world.colleague_actor, world.second_manager_actor, world.foreign_admin):
            with pytest.raises(UnauthorizedError):
                await engine.get_entry(entry.work_entry_id, actor)

    async def test_unknown_actor_role_cannot_review(self, session, world):
        engine = ApprovalEngine(session)
        entry = await pending_entry(engine, world)
        nobody = Actor(
            actor_id=uuid4(),
            actor_type=world.manager_actor.actor_type,
            company_id=world.company.company_id,
        )

        with pytest.raises(UnauthorizedError, match="cannot approve"):
            await engine.approve(entry.work_entry_id, nobody)
