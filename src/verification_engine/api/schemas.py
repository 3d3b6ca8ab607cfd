"""Pydantic schemas for API request/response models."""

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict


# ============================================================================
# Work entry schemas
# ============================================================================


class WorkEntryCreate(BaseModel):
    """Schema for creating a work entry; the owner comes from the caller."""

    title: str
    start_date: date
    description: str | None = None
    end_date: date | None = None
    team_id: UUID | None = None
    work_type: str = "task"
    priority: str = "medium"
    hours: Decimal | None = None
    project: str | None = None
    as_draft: bool = False


class WorkEntryUpdate(BaseModel):
    """Schema for editing an unlocked entry. Only sent fields are applied."""

    title: str | None = None
    description: str | None = None
    start_date: date | None = None
    end_date: date | None = None
    team_id: UUID | None = None
    work_type: str | None = None
    priority: str | None = None
    hours: Decimal | None = None
    project: str | None = None


class WorkEntryResponse(BaseModel):
    """Schema for work entry response."""

    model_config = ConfigDict(from_attributes=True)

    work_entry_id: UUID
    employee_id: UUID
    company_id: UUID
    team_id: UUID | None = None
    title: str
    description: str | None = None
    start_date: date
    end_date: date | None = None
    work_type: str
    priority: str
    hours: Decimal | None = None
    project: str | None = None
    approval_status: str
    is_immutable: bool
    submitted_at: datetime | None = None
    approved_by: UUID | None = None
    approved_by_type: str | None = None
    approved_at: datetime | None = None
    approval_comments: str | None = None
    company_rating: int | None = None
    created_at: datetime
    updated_at: datetime | None = None


class WorkEntryViewResponse(BaseModel):
    """Work entry with employee, team and manager names for listings."""

    model_config = ConfigDict(from_attributes=True)

    work_entry_id: UUID
    employee_id: UUID
    company_id: UUID
    team_id: UUID | None = None
    title: str
    description: str | None = None
    start_date: date
    end_date: date | None = None
    work_type: str
    priority: str
    hours: Decimal | None = None
    project: str | None = None
    approval_status: str
    is_immutable: bool
    submitted_at: datetime | None = None
    approved_at: datetime | None = None
    approval_comments: str | None = None
    company_rating: int | None = None
    created_at: datetime
    employee_name: str
    employee_email: str
    team_name: str | None = None
    manager_name: str | None = None


class WorkEntryListResponse(BaseModel):
    """Schema for listing work entries."""

    items: list[WorkEntryViewResponse]
    total: int


# ============================================================================
# Review schemas
# ============================================================================


class ApprovalRequest(BaseModel):
    """Schema for approval request."""

    comments: str | None = None
    rating: int | None = None


class FeedbackRequest(BaseModel):
    """Schema for request-changes and reject; comments are mandatory."""

    comments: str = ""


class AnnotationCreate(BaseModel):
    body: str


class AnnotationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    annotation_id: UUID
    work_entry_id: UUID
    author_id: UUID
    author_type: str
    body: str
    created_at: datetime


# ============================================================================
# Team schemas
# ============================================================================


class TeamCreate(BaseModel):
    """Schema for creating a team in the caller's company."""

    name: str
    description: str | None = None
    manager_id: UUID | None = None


class TeamResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    team_id: UUID
    company_id: UUID
    name: str
    description: str | None = None
    manager_id: UUID | None = None
    created_at: datetime


class CompanyTeamResponse(BaseModel):
    """Team as seen by a company admin."""

    model_config = ConfigDict(from_attributes=True)

    team_id: UUID
    name: str
    description: str | None = None
    manager_id: UUID | None = None
    manager_name: str | None = None
    manager_email: str | None = None
    created_at: datetime


class ManagedTeamResponse(BaseModel):
    """Team as seen by its manager, with live counts."""

    model_config = ConfigDict(from_attributes=True)

    team_id: UUID
    company_id: UUID
    name: str
    description: str | None = None
    created_at: datetime
    employee_count: int
    pending_entries_count: int


class ManagerAssignRequest(BaseModel):
    """Set the owning manager; null clears it."""

    manager_id: UUID | None = None


class EmployeeAssignRequest(BaseModel):
    """Assign an employee; ``reassign`` replaces an existing active assignment."""

    employee_id: UUID
    reassign: bool = False


class AssignmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    assignment_id: UUID
    employee_id: UUID
    team_id: UUID
    company_id: UUID
    assigned_by: UUID | None = None
    is_active: bool
    created_at: datetime
    deactivated_at: datetime | None = None


# ============================================================================
# Error schemas
# ============================================================================


class ErrorResponse(BaseModel):
    """Schema for error response."""

    detail: str
    code: str | None = None
    errors: list[Any] | None = None
