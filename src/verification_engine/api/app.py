"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from verification_engine import __version__
from verification_engine.api.routes import (
    company_admin_router,
    company_manager_router,
    health_router,
    work_entries_router,
)
from verification_engine.config import get_settings
from verification_engine.database import create_schema, dispose_db, init_db
from verification_engine.errors import (
    AlreadyImmutableError,
    DuplicateAssignmentError,
    InvalidStateError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
    VerificationError,
)
from verification_engine.events import (
    AsyncEventEmitter,
    LoggingNotificationSender,
    NotificationRelay,
    NotificationSender,
)
from verification_engine.logging_config import configure_logging

logger = logging.getLogger(__name__)

# Checked in order; ImmutableEntryError is covered by its base class
ERROR_STATUS: tuple[tuple[type[VerificationError], int], ...] = (
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (UnauthorizedError, status.HTTP_403_FORBIDDEN),
    (AlreadyImmutableError, status.HTTP_409_CONFLICT),
    (InvalidStateError, status.HTTP_409_CONFLICT),
    (DuplicateAssignmentError, status.HTTP_409_CONFLICT),
)


def status_for(exc: VerificationError) -> int:
    for error_type, status_code in ERROR_STATUS:
        if isinstance(exc, error_type):
            return status_code
    return status.HTTP_400_BAD_REQUEST


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    settings = get_settings()
    configure_logging(settings.log_level)
    engine, _ = init_db()
    if settings.database_url.startswith("sqlite"):
        await create_schema(engine)
    logger.info("Verification engine %s started", __version__)
    yield
    await dispose_db()


def create_app(notification_sender: NotificationSender | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()
    app = FastAPI(
        title="Verification Engine API",
        description="Work entry verification with team-scoped approval",
        version=__version__,
        lifespan=lifespan,
    )

    emitter = AsyncEventEmitter()
    NotificationRelay(notification_sender or LoggingNotificationSender()).attach(emitter)
    app.state.emitter = emitter

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Exception handlers
    @app.exception_handler(VerificationError)
    async def verification_error_handler(request: Request, exc: VerificationError) -> JSONResponse:
        """Render domain errors with their stable code."""
        status_code = status_for(exc)
        logger.info("%s %s -> %d %s", request.method, request.url.path, status_code, exc.code)
        return JSONResponse(status_code=status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={
                "detail": "Invalid request",
                "code": ValidationError.code,
                "errors": [
                    f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
                ],
            },
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "An unexpected error occurred",
                "code": "INTERNAL_ERROR",
            },
        )

    # Include routers
    app.include_router(health_router)
    app.include_router(work_entries_router, prefix="/api/v1")
    app.include_router(company_admin_router, prefix="/api/v1")
    app.include_router(company_manager_router, prefix="/api/v1")

    return app
