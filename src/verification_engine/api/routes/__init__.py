"""API routes."""

from verification_engine.api.routes.company import admin_router as company_admin_router
from verification_engine.api.routes.company import manager_router as company_manager_router
from verification_engine.api.routes.health import router as health_router
from verification_engine.api.routes.work_entries import router as work_entries_router

__all__ = [
    "company_admin_router",
    "company_manager_router",
    "health_router",
    "work_entries_router",
]
