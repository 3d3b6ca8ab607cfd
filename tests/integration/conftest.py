"""HTTP-level fixtures: the app wired to the per-test database."""

from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from verification_engine.api.app import create_app
from verification_engine.api.dependencies import get_db_session


@pytest_asyncio.fixture
async def app(session_factory, sender):
    """App whose sessions come from the test engine and whose notifications are recorded."""
    app = create_app(notification_sender=sender)

    async def override_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db_session] = override_session
    return app


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Create async HTTP client for API testing."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


def _actor_headers(actor_id, actor_type: str, company_id, role: str | None = None) -> dict[str, str]:
    headers = {
        "X-Actor-Id": str(actor_id),
        "X-Actor-Type": actor_type,
        "X-Company-Id": str(company_id),
    }
    if role:
        headers["X-Actor-Role"] = role
    return headers


@pytest.fixture
def employee_headers(world) -> dict[str, str]:
    return _actor_headers(world.employee.employee_id, "employee", world.company.company_id)


@pytest.fixture
def colleague_headers(world) -> dict[str, str]:
    return _actor_headers(world.colleague.employee_id, "employee", world.company.company_id)


@pytest.fixture
def manager_headers(world) -> dict[str, str]:
    return _actor_headers(world.manager.manager_id, "manager", world.company.company_id, "MANAGER")


@pytest.fixture
def second_manager_headers(world) -> dict[str, str]:
    return _actor_headers(world.second_manager.manager_id, "manager", world.company.company_id, "MANAGER")


@pytest.fixture
def admin_headers(world) -> dict[str, str]:
    return _actor_headers(world.company.company_id, "company", world.company.company_id, "COMPANY_ADMIN")


@pytest.fixture
def foreign_admin_headers(world) -> dict[str, str]:
    return _actor_headers(
        world.other_company.company_id, "company", world.other_company.company_id, "COMPANY_ADMIN"
    )
