from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from httpx import ASGITransport, AsyncClient

from leaveflow.config import Settings
from leaveflow.container import LeaveCore, build_core, set_core
from leaveflow.db import create_database_engine, create_session_factory, get_session, init_models
from leaveflow.main import app
from leaveflow.models.enums import DutyStation
from leaveflow.services.directory import InMemoryOrganizationDirectory, StaffContext
from leaveflow.services.locking import LockPolicy
from leaveflow.services.outbox import InMemoryNotificationSink
from leaveflow.services.policy import InMemoryPolicyStore

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Iterator
    from pathlib import Path

    from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker


@pytest.fixture
async def engine(tmp_path: Path) -> AsyncIterator[AsyncEngine]:
    """A file-backed SQLite database per test, so concurrent sessions see each other's commits."""
    _engine = create_database_engine(f"sqlite+aiosqlite:///{tmp_path / 'leaveflow.db'}")
    await init_models(_engine)
    yield _engine
    await _engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(engine)


@pytest.fixture
def directory() -> InMemoryOrganizationDirectory:
    """Seed a small organization covering the chain shapes the router produces.

    STAFF-001  HQ, Accounts Unit          -> supervisor, unit head, director, HR officer
    STAFF-002  HQ, directorate only       -> supervisor, director, HR officer
    STAFF-003  regional office            -> supervisor, regional manager, HR officer
    HRMU-001   HQ, HRMU                   -> supervisor, unit head, director, HR director, HR officer
    DIR-001    director                   -> HR director, chief director
    """
    svc = InMemoryOrganizationDirectory()
    svc.seed(
        StaffContext(
            staff_id="STAFF-001",
            duty_station=DutyStation.HQ,
            unit="Accounts Unit",
            supervisor_id="SUP-001",
            position="Accounts Officer",
        )
    )
    svc.seed(
        StaffContext(
            staff_id="STAFF-002",
            duty_station=DutyStation.HQ,
            directorate="Finance & Administration Directorate",
            supervisor_id="SUP-002",
            position="Administrative Officer",
        )
    )
    svc.seed(
        StaffContext(
            staff_id="STAFF-003",
            duty_station=DutyStation.REGION,
            supervisor_id="SUP-003",
            position="Field Officer",
        )
    )
    svc.seed(
        StaffContext(
            staff_id="HRMU-001",
            duty_station=DutyStation.HQ,
            unit="Human Resource Management Unit (HRMU)",
            supervisor_id="SUP-004",
            position="HR Assistant",
        )
    )
    svc.seed(
        StaffContext(
            staff_id="DIR-001",
            duty_station=DutyStation.HQ,
            position="Director, Finance & Administration",
            acting_officer_id="STAFF-002",
        )
    )
    svc.seed(StaffContext(staff_id="GONE-001", duty_station=DutyStation.HQ, active=False))
    return svc


@pytest.fixture
def policies() -> InMemoryPolicyStore:
    return InMemoryPolicyStore()


@pytest.fixture
def sink() -> InMemoryNotificationSink:
    return InMemoryNotificationSink()


@pytest.fixture
def core(
    session_factory: async_sessionmaker[AsyncSession],
    directory: InMemoryOrganizationDirectory,
    policies: InMemoryPolicyStore,
    sink: InMemoryNotificationSink,
) -> Iterator[LeaveCore]:
    """Fully wired core with retries that never sleep."""
    _core = build_core(
        session_factory,
        Settings(),
        directory=directory,
        policies=policies,
        sinks=[sink],
        lock_policy=LockPolicy.immediate(),
    )
    set_core(_core)
    yield _core
    set_core(None)


@pytest.fixture
async def async_client(core: LeaveCore) -> AsyncIterator[AsyncClient]:
    """Async HTTP client bound to the test core and database."""

    async def _override_get_session() -> AsyncIterator[AsyncSession]:
        async with core.session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = _override_get_session
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()
