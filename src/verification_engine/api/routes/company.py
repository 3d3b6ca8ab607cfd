"""Company admin and manager endpoints, guarded by the route access table."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, status

from verification_engine.api.dependencies import CompanyActor, Queries, Registry
from verification_engine.api.schemas import (
    AssignmentResponse,
    CompanyTeamResponse,
    EmployeeAssignRequest,
    ErrorResponse,
    ManagedTeamResponse,
    ManagerAssignRequest,
    TeamCreate,
    TeamResponse,
    WorkEntryListResponse,
    WorkEntryViewResponse,
)
from verification_engine.errors import NotFoundError
from verification_engine.security import Actor

admin_router = APIRouter(prefix="/company/admin", tags=["company-admin"])
manager_router = APIRouter(prefix="/company/manager", tags=["company-manager"])

TeamId = Annotated[UUID, Path()]


def _listing(views: list) -> WorkEntryListResponse:
    return WorkEntryListResponse(
        items=[WorkEntryViewResponse.model_validate(v) for v in views],
        total=len(views),
    )


async def _own_team(registry: Registry, actor: Actor, team_id: UUID):
    team = await registry.get_team(team_id)
    if team.company_id != actor.company_id:
        # Other tenants' teams are indistinguishable from missing ones
        raise NotFoundError("Team", team_id)
    return team


# ============================================================================
# Company admin: teams
# ============================================================================


@admin_router.post(
    "/teams",
    response_model=TeamResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}, 403: {"model": ErrorResponse}},
)
async def create_team(registry: Registry, actor: CompanyActor, payload: TeamCreate) -> TeamResponse:
    team = await registry.create_team(
        actor.company_id,
        payload.name,
        description=payload.description,
        manager_id=payload.manager_id,
        actor_id=actor.actor_id,
    )
    return TeamResponse.model_validate(team)


@admin_router.get("/teams", response_model=list[CompanyTeamResponse])
async def list_company_teams(registry: Registry, actor: CompanyActor) -> list[CompanyTeamResponse]:
    teams = await registry.get_teams_for_company(actor.company_id)
    return [CompanyTeamResponse.model_validate(t) for t in teams]


@admin_router.post("/teams/{team_id}/manager", response_model=TeamResponse)
async def assign_team_manager(
    registry: Registry,
    actor: CompanyActor,
    team_id: TeamId,
    payload: ManagerAssignRequest,
) -> TeamResponse:
    await _own_team(registry, actor, team_id)
    team = await registry.assign_manager(team_id, payload.manager_id)
    return TeamResponse.model_validate(team)


@admin_router.post(
    "/teams/{team_id}/employees",
    response_model=AssignmentResponse,
    status_code=status.HTTP_201_CREATED,
    responses={409: {"model": ErrorResponse}},
)
async def assign_team_employee(
    registry: Registry,
    actor: CompanyActor,
    team_id: TeamId,
    payload: EmployeeAssignRequest,
) -> AssignmentResponse:
    """Assign an employee; a second active assignment answers 409 unless ``reassign``."""
    await _own_team(registry, actor, team_id)
    if payload.reassign:
        assignment = await registry.reassign_employee(
            payload.employee_id, team_id, actor.company_id, assigned_by=actor.actor_id
        )
    else:
        assignment = await registry.assign_employee(
            payload.employee_id, team_id, actor.company_id, assigned_by=actor.actor_id
        )
    return AssignmentResponse.model_validate(assignment)


@admin_router.get("/teams/{team_id}/employees", response_model=list[AssignmentResponse])
async def list_team_employees(
    registry: Registry,
    actor: CompanyActor,
    team_id: TeamId,
) -> list[AssignmentResponse]:
    await _own_team(registry, actor, team_id)
    members = await registry.list_team_members(team_id)
    return [AssignmentResponse.model_validate(m) for m in members]


@admin_router.delete(
    "/teams/{team_id}/employees/{employee_id}",
    response_model=AssignmentResponse,
)
async def remove_team_employee(
    registry: Registry,
    actor: CompanyActor,
    team_id: TeamId,
    employee_id: Annotated[UUID, Path()],
) -> AssignmentResponse:
    """Soft-delete the active assignment; history is kept."""
    await _own_team(registry, actor, team_id)
    assignment = await registry.unassign_employee(employee_id, team_id)
    return AssignmentResponse.model_validate(assignment)


# ============================================================================
# Company admin: oversight
# ============================================================================


@admin_router.get("/work-entries", response_model=WorkEntryListResponse)
async def company_work_entries(queries: Queries, actor: CompanyActor) -> WorkEntryListResponse:
    """Every entry in the company, any team and status."""
    return _listing(await queries.company_work_view(actor.company_id))


@admin_router.get("/work-entries/pending", response_model=WorkEntryListResponse)
async def company_pending_entries(queries: Queries, actor: CompanyActor) -> WorkEntryListResponse:
    return _listing(await queries.company_pending(actor.company_id))


# ============================================================================
# Manager
# ============================================================================


@manager_router.get("/teams", response_model=list[ManagedTeamResponse])
async def my_teams(registry: Registry, actor: CompanyActor) -> list[ManagedTeamResponse]:
    teams = await registry.get_teams_for_manager(actor.actor_id)
    return [ManagedTeamResponse.model_validate(t) for t in teams]


@manager_router.get("/work-queue", response_model=WorkEntryListResponse)
async def my_work_queue(queries: Queries, actor: CompanyActor) -> WorkEntryListResponse:
    """Pending entries in the caller's teams, oldest first."""
    return _listing(await queries.manager_work_queue(actor.actor_id))
