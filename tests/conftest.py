"""
Pytest configuration and fixtures for MatterFlow tests
"""
import os

# Settings are read at import time
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["ENABLE_OTEL_EXPORTER"] = "false"
os.environ["ENABLE_JSON_LOGGING"] = "false"
os.environ["SLA_SWEEP_ENABLED"] = "false"
os.environ["SEED_DEFAULT_SLA_RULES"] = "false"

import pytest
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool, StaticPool

from matterflow.main import app
from matterflow.db.database import get_db, Base
from matterflow.db import models  # noqa: F401
from matterflow.db.models import TaskPriority
from matterflow.api.v1.dependencies import get_workflow_engine
from matterflow.engine import WorkflowEngine

TEST_DATABASE_URL = "sqlite+aiosqlite://"
CASE_ID = "CASE-2026-001"


class FrozenClock:
    """Deterministic clock injected into the engine"""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Fresh in-memory database and session for each test"""
    test_engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    TestSessionLocal = async_sessionmaker(
        bind=test_engine,
        class_=AsyncSession,
        autoflush=False,
        expire_on_commit=False
    )
    async with TestSessionLocal() as session:
        yield session

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await test_engine.dispose()


@pytest.fixture(scope="function")
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker, None]:
    """File-backed database that several sessions can interleave on"""
    test_engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'matterflow.db'}",
        echo=False,
        poolclass=NullPool,
    )
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(
        bind=test_engine,
        class_=AsyncSession,
        autoflush=False,
        expire_on_commit=False
    )

    await test_engine.dispose()


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def workflow_engine(clock) -> WorkflowEngine:
    return WorkflowEngine(clock=clock)


@pytest.fixture(scope="function")
async def client(db_session: AsyncSession, workflow_engine: WorkflowEngine) -> AsyncGenerator[AsyncClient, None]:
    """Test client sharing the test session and engine"""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_workflow_engine] = lambda: workflow_engine

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def make_stage(db_session, workflow_engine):
    """Factory for stages of the test case"""

    async def _make(name: str = "Intake", order_index: int = 0, case_id: str = CASE_ID, activate: bool = False):
        stage = await workflow_engine.lifecycle.create_stage(
            db_session, case_id, name, order_index=order_index, actor_id="partner-1"
        )
        if activate:
            stage = await workflow_engine.lifecycle.activate_stage(db_session, stage.uuid, actor_id="partner-1")
        return stage

    return _make


@pytest.fixture
def make_task(db_session, workflow_engine):
    """Factory for tasks in a stage"""

    async def _make(stage, title: str = "Draft engagement letter", priority: TaskPriority = TaskPriority.MEDIUM,
                    assignee_id: str = None, due_date: datetime = None):
        return await workflow_engine.lifecycle.create_task(
            db_session, stage.uuid, title, priority=priority, actor_id="partner-1",
            assignee_id=assignee_id, due_date=due_date
        )

    return _make
