"""Shared test fixtures for the triage API tests.

Uses an in-memory SQLite async engine so tests run without PostgreSQL,
a fake Vapi client and a virtual-time task scheduler so retry loops can
be driven without sleeping.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession

from triage_api.core.database import Base, get_db
from triage_api.core.deps import get_call_intake
from triage_api.main import app
from triage_api.services.business_logic import BusinessLogicHook
from triage_api.services.call_analysis import AnalysisProcessor, CallAnalysisStore
from triage_api.services.call_intake import build_call_intake
from triage_api.services.call_scheduler import TaskScheduler
from triage_api.services.pending_calls import PendingCallRegistry
from triage_api.services.vapi_client import VapiClientError

# Import all models to ensure they're registered with Base.metadata
from triage_api.models.appointment import Appointment  # noqa: F401
from triage_api.models.call_analysis import CallAnalysis  # noqa: F401
from triage_api.models.profile import Profile  # noqa: F401

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


class FakeVapiClient:
    """Stands in for VapiClient. Queue responses per call id with ``queue``."""

    def __init__(self, api_key: str = "test-private-key"):
        self.api_key = api_key
        self.responses: dict[str, list] = {}
        self.fetched: list[str] = []
        self.updates: list[tuple[str, dict]] = []

    def queue(self, call_id: str, *responses) -> None:
        """Each response is a call dict or an exception to raise."""
        self.responses.setdefault(call_id, []).extend(responses)

    async def get_call(self, call_id: str) -> dict:
        self.fetched.append(call_id)
        queued = self.responses.get(call_id)
        if not queued:
            raise VapiClientError(f"no response queued for {call_id}")
        response = queued.pop(0) if len(queued) > 1 else queued[0]
        if isinstance(response, Exception):
            raise response
        return response

    async def update_call(self, call_id: str, data: dict) -> dict:
        self.updates.append((call_id, data))
        return {"id": call_id, **data}


class ManualTaskScheduler(TaskScheduler):
    """Virtual-time TaskScheduler: wakes only run inside ``advance``."""

    def __init__(self):
        self.now_ms = 0
        self.history: list[tuple[str, int]] = []
        self._queued: dict[str, tuple[int, object]] = {}

    def schedule(self, key, delay_ms, callback):
        self.history.append((key, delay_ms))
        self._queued[key] = (self.now_ms + delay_ms, callback)

    def cancel(self, key):
        return self._queued.pop(key, None) is not None

    def pending(self):
        return list(self._queued)

    def due_at(self, key):
        return self._queued[key][0]

    async def advance(self, ms: int) -> None:
        target = self.now_ms + ms
        while True:
            due = [(when, key) for key, (when, _) in self._queued.items() if when <= target]
            if not due:
                break
            when, key = min(due)
            _, callback = self._queued.pop(key)
            self.now_ms = when
            await callback()
        self.now_ms = target


@pytest_asyncio.fixture
async def engine():
    """Fresh in-memory database per test."""
    engine = create_async_engine(TEST_DATABASE_URL, echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory):
    """Direct DB session for test setup/assertions."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def registry():
    return PendingCallRegistry()


@pytest.fixture
def fake_vapi():
    return FakeVapiClient()


@pytest.fixture
def task_scheduler():
    return ManualTaskScheduler()


@pytest.fixture
def processor(session_factory, fake_vapi):
    return AnalysisProcessor(
        store=CallAnalysisStore(session_factory),
        business_logic=BusinessLogicHook(session_factory),
        vapi=fake_vapi,
    )


@pytest.fixture
def call_intake(session_factory, fake_vapi, registry, task_scheduler):
    return build_call_intake(
        session_factory=session_factory,
        vapi=fake_vapi,
        registry=registry,
        task_scheduler=task_scheduler,
    )


@pytest_asyncio.fixture
async def client(session_factory, call_intake):
    """Async HTTP test client wired to the test database and fakes."""

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_call_intake] = lambda: call_intake
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


def make_call(call_id="call-1", status="ended", analysis=None, **extra) -> dict:
    """Vapi-shaped call dict."""
    call = {"id": call_id, "status": status}
    if analysis is not None:
        call["analysis"] = analysis
    call.update(extra)
    return call


def complete_analysis(patient_id="p1", success_evaluation=True, **structured) -> dict:
    return {
        "summary": "ok",
        "successEvaluation": success_evaluation,
        "structuredData": {"patientId": patient_id, **structured},
    }
