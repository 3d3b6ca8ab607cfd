"""Work entry API endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, status

from verification_engine.api.dependencies import CurrentActor, Engine, Queries
from verification_engine.api.schemas import (
    AnnotationCreate,
    AnnotationResponse,
    ApprovalRequest,
    ErrorResponse,
    FeedbackRequest,
    WorkEntryCreate,
    WorkEntryListResponse,
    WorkEntryResponse,
    WorkEntryUpdate,
    WorkEntryViewResponse,
)
from verification_engine.errors import UnauthorizedError, ValidationError

router = APIRouter(prefix="/work-entries", tags=["work-entries"])

EntryId = Annotated[UUID, Path()]


# ============================================================================
# Authoring
# ============================================================================


@router.post(
    "",
    response_model=WorkEntryResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}, 403: {"model": ErrorResponse}},
)
async def create_work_entry(
    engine: Engine,
    actor: CurrentActor,
    payload: WorkEntryCreate,
) -> WorkEntryResponse:
    """Create a work entry, submitted for review unless ``as_draft``."""
    if actor.company_id is None:
        raise ValidationError("X-Company-Id header is required to create work entries")
    data = payload.model_dump(exclude={"as_draft"})
    data["company_id"] = actor.company_id
    entry = await engine.create_entry(actor, data, as_draft=payload.as_draft)
    return WorkEntryResponse.model_validate(entry)


@router.get("", response_model=WorkEntryListResponse)
async def list_my_work_entries(queries: Queries, actor: CurrentActor) -> WorkEntryListResponse:
    """The caller's own work diary, newest first."""
    if not actor.is_employee:
        raise UnauthorizedError("Only employees have a work diary")
    views = await queries.employee_entries(actor.actor_id, actor.company_id)
    return WorkEntryListResponse(
        items=[WorkEntryViewResponse.model_validate(v) for v in views],
        total=len(views),
    )


@router.get(
    "/{work_entry_id}",
    response_model=WorkEntryResponse,
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def get_work_entry(engine: Engine, actor: CurrentActor, work_entry_id: EntryId) -> WorkEntryResponse:
    entry = await engine.get_entry(work_entry_id, actor)
    return WorkEntryResponse.model_validate(entry)


@router.patch(
    "/{work_entry_id}",
    response_model=WorkEntryResponse,
    responses={400: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def update_work_entry(
    engine: Engine,
    actor: CurrentActor,
    work_entry_id: EntryId,
    payload: WorkEntryUpdate,
) -> WorkEntryResponse:
    """Edit an entry. Approved entries are locked and answer 409."""
    entry = await engine.edit_entry(work_entry_id, actor, payload.model_dump(exclude_unset=True))
    return WorkEntryResponse.model_validate(entry)


@router.delete(
    "/{work_entry_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={409: {"model": ErrorResponse}},
)
async def delete_work_entry(engine: Engine, actor: CurrentActor, work_entry_id: EntryId) -> None:
    await engine.delete_entry(work_entry_id, actor)


# ============================================================================
# Transitions
# ============================================================================


@router.post("/{work_entry_id}/submit", response_model=WorkEntryResponse)
async def submit_work_entry(engine: Engine, actor: CurrentActor, work_entry_id: EntryId) -> WorkEntryResponse:
    entry = await engine.submit(work_entry_id, actor)
    return WorkEntryResponse.model_validate(entry)


@router.post("/{work_entry_id}/resubmit", response_model=WorkEntryResponse)
async def resubmit_work_entry(engine: Engine, actor: CurrentActor, work_entry_id: EntryId) -> WorkEntryResponse:
    entry = await engine.resubmit(work_entry_id, actor)
    return WorkEntryResponse.model_validate(entry)


@router.post(
    "/{work_entry_id}/approve",
    response_model=WorkEntryResponse,
    responses={
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
)
async def approve_work_entry(
    engine: Engine,
    actor: CurrentActor,
    work_entry_id: EntryId,
    payload: ApprovalRequest,
) -> WorkEntryResponse:
    """Approve a pending entry. This locks it permanently."""
    entry = await engine.approve(work_entry_id, actor, comments=payload.comments, rating=payload.rating)
    return WorkEntryResponse.model_validate(entry)


@router.post("/{work_entry_id}/request-changes", response_model=WorkEntryResponse)
async def request_changes(
    engine: Engine,
    actor: CurrentActor,
    work_entry_id: EntryId,
    payload: FeedbackRequest,
) -> WorkEntryResponse:
    entry = await engine.request_changes(work_entry_id, actor, payload.comments)
    return WorkEntryResponse.model_validate(entry)


@router.post("/{work_entry_id}/reject", response_model=WorkEntryResponse)
async def reject_work_entry(
    engine: Engine,
    actor: CurrentActor,
    work_entry_id: EntryId,
    payload: FeedbackRequest,
) -> WorkEntryResponse:
    entry = await engine.reject(work_entry_id, actor, payload.comments)
    return WorkEntryResponse.model_validate(entry)


# ============================================================================
# Annotations
# ============================================================================


@router.post(
    "/{work_entry_id}/annotations",
    response_model=AnnotationResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_annotation(
    engine: Engine,
    actor: CurrentActor,
    work_entry_id: EntryId,
    payload: AnnotationCreate,
) -> AnnotationResponse:
    """Append a note. Allowed on approved entries."""
    annotation = await engine.annotate(work_entry_id, actor, payload.body)
    return AnnotationResponse.model_validate(annotation)


@router.get("/{work_entry_id}/annotations", response_model=list[AnnotationResponse])
async def list_annotations(
    engine: Engine,
    actor: CurrentActor,
    work_entry_id: EntryId,
) -> list[AnnotationResponse]:
    annotations = await engine.list_annotations(work_entry_id, actor)
    return [AnnotationResponse.model_validate(a) for a in annotations]
