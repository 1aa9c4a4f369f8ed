from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import pytest
from asgi_lifespan import LifespanManager
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import src.fleet_gps.vehicles.models  # noqa: F401
from src.fleet_gps.database.database import Base
from src.fleet_gps.gpsbuddy.schemas import GpsBuddyConnection, VehicleTelemetry
from src.fleet_gps.main import app
from tests.mocks.config_mocks import (  # noqa: F401
    gps_settings,
    settings_without_credentials,
)

# -----------------------------------------------------------------------------
# DATABASE SETUP & CLEANUP
# -----------------------------------------------------------------------------
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture(scope="function")
async def test_engine():
    engine = create_async_engine(TEST_DATABASE_URL, poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture(scope="function")
def session_factory(test_engine):
    return async_sessionmaker(
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
        bind=test_engine,
        class_=AsyncSession,
    )


@pytest.fixture(scope="function")
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


# -----------------------------------------------------------------------------
# FASTAPI CLIENT FOR API TESTING
# -----------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def reset_app_state():
    app.openapi_schema = None
    yield
    app.openapi_schema = None
    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
async def async_client():
    """
    Provide an async client for FastAPI test with lifespan events.
    """

    @asynccontextmanager
    async def test_lifespan(_):
        yield

    app.router.lifespan_context = test_lifespan
    async with LifespanManager(app):
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            yield client


# -----------------------------------------------------------------------------
# GPSBUDDY FAKES
# -----------------------------------------------------------------------------


@pytest.fixture
def connection() -> GpsBuddyConnection:
    return GpsBuddyConnection(
        base_url="http://gpsbuddy.test/",
        company_id=1234,
        username="fleet",
        password="secret",
        group_id=7,
        live_endpoint="gpsb_unitvehicle_filter_by_group",
    )


class FakeTransport:
    """Replays queued responses per URL path and records every call."""

    def __init__(self, responses: Optional[Dict[str, List[Any]]] = None):
        self.responses = responses or {}
        self.calls: List[Dict[str, Any]] = []

    async def get_payload(self, url: str, params: Dict[str, Any], timeout_seconds):
        path = url.split("/", 3)[-1]
        self.calls.append(
            {"path": path, "params": dict(params), "timeout": timeout_seconds}
        )
        queue = self.responses.get(path)
        if not queue:
            raise AssertionError(f"Unexpected request to {path}")
        response = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(response, Exception):
            raise response
        return response

    def paths(self) -> List[str]:
        return [call["path"] for call in self.calls]


@pytest.fixture
def fake_transport_factory():
    return FakeTransport


DEFAULT_TIME = datetime(2024, 5, 10, 9, 0, tzinfo=timezone.utc)


def make_vehicle(
    vehicle_id: int = 1,
    plate: Optional[str] = "34 ABC 123",
    velocity: Optional[int] = 50,
    time_indicator: Optional[datetime] = DEFAULT_TIME,
    **fields,
) -> VehicleTelemetry:
    return VehicleTelemetry(
        vehicle_id=vehicle_id,
        plate=plate,
        velocity=velocity,
        time_indicator=time_indicator,
        **fields,
    )


@pytest.fixture
def vehicle_factory():
    return make_vehicle
