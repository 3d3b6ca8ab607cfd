"""Pytest fixtures for verification engine tests."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any, AsyncGenerator
from uuid import uuid4

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from verification_engine.database import make_session_factory
from verification_engine.events import AsyncEventEmitter, NotificationRelay
from verification_engine.models import (
    Base,
    Company,
    Employee,
    EmployeeTeamAssignment,
    Manager,
    Team,
)
from verification_engine.security import Actor, ActorType, CompanyRole

# In-memory SQLite shared by every session of a test through StaticPool
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@dataclass
class World:
    """Two tenants: the main company with two teams, and a foreign company."""

    company: Company
    other_company: Company
    manager: Manager
    second_manager: Manager
    branch_admin: Manager
    foreign_manager: Manager
    team_a: Team
    team_b: Team
    foreign_team: Team
    employee: Employee
    colleague: Employee
    foreign_employee: Employee

    @property
    def admin(self) -> Actor:
        return Actor.company_admin(self.company.company_id)

    @property
    def foreign_admin(self) -> Actor:
        return Actor.company_admin(self.other_company.company_id)

    @property
    def manager_actor(self) -> Actor:
        return Actor.manager(self.manager.manager_id, self.company.company_id)

    @property
    def second_manager_actor(self) -> Actor:
        return Actor.manager(self.second_manager.manager_id, self.company.company_id)

    @property
    def branch_admin_actor(self) -> Actor:
        return Actor.manager(
            self.branch_admin.manager_id, self.company.company_id, role=CompanyRole.BRANCH_ADMIN
        )

    @property
    def employee_actor(self) -> Actor:
        return Actor(
            actor_id=self.employee.employee_id,
            actor_type=ActorType.EMPLOYEE,
            company_id=self.company.company_id,
        )

    @property
    def colleague_actor(self) -> Actor:
        return Actor(
            actor_id=self.colleague.employee_id,
            actor_type=ActorType.EMPLOYEE,
            company_id=self.company.company_id,
        )

    def entry_data(self, **overrides: Any) -> dict[str, Any]:
        """Valid creation payload for the main employee in team A."""
        data: dict[str, Any] = {
            "employee_id": self.employee.employee_id,
            "company_id": self.company.company_id,
            "team_id": self.team_a.team_id,
            "title": "Migrated billing service",
            "description": "Moved invoices to the new ledger",
            "start_date": date(2026, 3, 2),
            "end_date": date(2026, 3, 6),
            "hours": "32.5",
            "project": "billing",
        }
        data.update(overrides)
        return data


@dataclass
class RecordingSender:
    """Notification sender that keeps what it was asked to deliver."""

    sent: list[tuple[str, dict[str, Any]]] = field(default_factory=list)
    fail: bool = False

    async def send(self, event_name: str, payload: dict[str, Any]) -> None:
        if self.fail:
            raise RuntimeError("mail server unavailable")
        self.sent.append((event_name, payload))

    @property
    def names(self) -> list[str]:
        return [name for name, _ in self.sent]


@pytest.fixture
async def engine():
    """Fresh in-memory database per test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return make_session_factory(engine)


@pytest.fixture
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def sender() -> RecordingSender:
    return RecordingSender()


@pytest.fixture
def emitter(sender: RecordingSender) -> AsyncEventEmitter:
    """Emitter with the recording sender attached through the relay."""
    emitter = AsyncEventEmitter()
    NotificationRelay(sender).attach(emitter)
    return emitter


def _manager(company: Company, email: str, first: str, last: str, role: str = "MANAGER") -> Manager:
    return Manager(
        manager_id=uuid4(),
        company_id=company.company_id,
        email=email,
        first_name=first,
        last_name=last,
        role=role,
    )


@pytest.fixture
async def world(session: AsyncSession) -> World:
    """Seed two companies, their managers, teams and employees."""
    company = Company(company_id=uuid4(), name="Acme Corp", email="hr@acme.test")
    other_company = Company(company_id=uuid4(), name="Globex", email="hr@globex.test")
    session.add_all([company, other_company])
    await session.flush()

    manager = _manager(company, "ada@acme.test", "Ada", "Lovelace")
    second_manager = _manager(company, "grace@acme.test", "Grace", "Hopper")
    branch_admin = _manager(company, "linus@acme.test", "Linus", "Branch", role="BRANCH_ADMIN")
    foreign_manager = _manager(other_company, "hank@globex.test", "Hank", "Scorpio")
    session.add_all([manager, second_manager, branch_admin, foreign_manager])
    await session.flush()

    team_a = Team(
        team_id=uuid4(),
        company_id=company.company_id,
        name="Platform",
        manager_id=manager.manager_id,
    )
    team_b = Team(
        team_id=uuid4(),
        company_id=company.company_id,
        name="Support",
        manager_id=second_manager.manager_id,
    )
    foreign_team = Team(
        team_id=uuid4(),
        company_id=other_company.company_id,
        name="Platform",
        manager_id=foreign_manager.manager_id,
    )
    session.add_all([team_a, team_b, foreign_team])

    employee = Employee(employee_id=uuid4(), email="eve@acme.test", first_name="Eve", last_name="Smith")
    colleague = Employee(employee_id=uuid4(), email="bob@acme.test", first_name="Bob", last_name="Jones")
    foreign_employee = Employee(
        employee_id=uuid4(), email="homer@globex.test", first_name="Homer", last_name="Simpson"
    )
    session.add_all([employee, colleague, foreign_employee])
    await session.flush()

    session.add_all(
        [
            EmployeeTeamAssignment(
                employee_id=employee.employee_id,
                team_id=team_a.team_id,
                company_id=company.company_id,
            ),
            EmployeeTeamAssignment(
                employee_id=colleague.employee_id,
                team_id=team_b.team_id,
                company_id=company.company_id,
            ),
        ]
    )
    await session.commit()

    return World(
        company=company,
        other_company=other_company,
        manager=manager,
        second_manager=second_manager,
        branch_admin=branch_admin,
        foreign_manager=foreign_manager,
        team_a=team_a,
        team_b=team_b,
        foreign_team=foreign_team,
        employee=employee,
        colleague=colleague,
        foreign_employee=foreign_employee,
    )

