"""Verification engine services."""

from verification_engine.services.approval_engine import ApprovalEngine
from verification_engine.services.scoped_queries import ScopedQueryService, WorkEntryView
from verification_engine.services.state_machine import WorkEntryStateMachine, WorkEntryStatus
from verification_engine.services.team_registry import CompanyTeam, ManagedTeam, TeamRegistry
from verification_engine.services.work_entry_store import NewWorkEntry, WorkEntryStore

__all__ = [
    "ApprovalEngine",
    "CompanyTeam",
    "ManagedTeam",
    "NewWorkEntry",
    "ScopedQueryService",
    "TeamRegistry",
    "WorkEntryStateMachine",
    "WorkEntryStatus",
    "WorkEntryStore",
    "WorkEntryView",
]
