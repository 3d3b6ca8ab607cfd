"""FastAPI dependencies for dependency injection."""

from collections.abc import AsyncGenerator
from typing import Annotated
from uuid import UUID

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from verification_engine.database import init_db
from verification_engine.errors import UnauthorizedError
from verification_engine.events import AsyncEventEmitter
from verification_engine.security import Actor, ActorType, CompanyRole, can_access_route, parse_role
from verification_engine.services import ApprovalEngine, ScopedQueryService, TeamRegistry

API_PREFIX = "/api/v1"


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Get database session dependency."""
    _, session_factory = init_db()
    async with session_factory() as session:
        try:
            yield session
        finally:
            await session.close()


def _parse_uuid(value: str, header: str) -> UUID:
    try:
        return UUID(value)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid {header} format",
        )


async def get_actor(
    x_actor_id: Annotated[str | None, Header()] = None,
    x_actor_type: Annotated[str | None, Header()] = None,
    x_company_id: Annotated[str | None, Header()] = None,
    x_actor_role: Annotated[str | None, Header()] = None,
) -> Actor:
    """Build the caller's identity from the headers set by the identity provider."""
    if not x_actor_id or not x_actor_type:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Actor-Id and X-Actor-Type headers are required",
        )
    try:
        actor_type = ActorType(x_actor_type.lower())
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid X-Actor-Type; expected employee, manager or company",
        )
    role = parse_role(x_actor_role)
    if x_actor_role and role is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid X-Actor-Role",
        )

    actor_id = _parse_uuid(x_actor_id, "X-Actor-Id")
    company_id = _parse_uuid(x_company_id, "X-Company-Id") if x_company_id else None

    if actor_type == ActorType.EMPLOYEE:
        return Actor(actor_id=actor_id, actor_type=actor_type, company_id=company_id)

    if company_id is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Company-Id header is required for company accounts",
        )
    if role is None:
        role = CompanyRole.COMPANY_ADMIN if actor_type == ActorType.COMPANY else CompanyRole.MANAGER
    return Actor(actor_id=actor_id, actor_type=actor_type, company_id=company_id, role=role)


async def require_route_access(request: Request, actor: Annotated[Actor, Depends(get_actor)]) -> Actor:
    """Guard company routes with the route access table."""
    route = request.url.path.removeprefix(API_PREFIX)
    if not can_access_route(actor.role, route):
        raise UnauthorizedError(f"Access to {route} is not permitted for this role")
    return actor


def get_emitter(request: Request) -> AsyncEventEmitter:
    """App-wide event emitter."""
    return request.app.state.emitter


# Type aliases for cleaner dependency injection
DbSession = Annotated[AsyncSession, Depends(get_db_session)]
CurrentActor = Annotated[Actor, Depends(get_actor)]
CompanyActor = Annotated[Actor, Depends(require_route_access)]
Emitter = Annotated[AsyncEventEmitter, Depends(get_emitter)]


def get_approval_engine(db: DbSession, emitter: Emitter) -> ApprovalEngine:
    return ApprovalEngine(db, emitter)


def get_team_registry(db: DbSession, emitter: Emitter) -> TeamRegistry:
    return TeamRegistry(db, emitter)


def get_scoped_queries(db: DbSession) -> ScopedQueryService:
    return ScopedQueryService(db)


Engine = Annotated[ApprovalEngine, Depends(get_approval_engine)]
Registry = Annotated[TeamRegistry, Depends(get_team_registry)]
Queries = Annotated[ScopedQueryService, Depends(get_scoped_queries)]
