"""Pytest configuration and fixtures."""

import asyncio
from collections.abc import AsyncGenerator, Callable
from pathlib import Path
from typing import Any

import httpx
import pytest
import pytest_asyncio
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from backoffice_sync.api.deps import SettingsDep, get_backoffice_client, get_cache
from backoffice_sync.config import Settings, get_settings
from backoffice_sync.infrastructure.backoffice_client import BackOfficeClient
from backoffice_sync.infrastructure.database.connection import (
    build_session_factory,
    get_async_engine,
    get_session,
)
from backoffice_sync.infrastructure.database.models import (
    Base,
    Order,
    OrderItem,
    Product,
    User,
)
from backoffice_sync.infrastructure.database.repositories import CommerceRepository
from backoffice_sync.infrastructure.redis import CacheService
from backoffice_sync.infrastructure.sync_log import SyncLog
from backoffice_sync.main import create_app
from backoffice_sync.services import PendingRegistrationStore, SyncDispatcher

BACKOFFICE_URL = "https://backoffice.test"
SITE_URL = "https://shop.test"


# =============================================================================
# Test doubles
# =============================================================================


class FakeRedis:
    """In-memory stand-in for the redis.asyncio client calls CacheService makes."""

    def __init__(self) -> None:
        self.store: dict[str, bytes] = {}
        self.ttls: dict[str, int | None] = {}

    async def get(self, key: str) -> bytes | None:
        return self.store.get(key)

    async def set(self, key: str, value: bytes, ex: int | None = None) -> bool:
        self.store[key] = value
        self.ttls[key] = ex
        return True

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if self.store.pop(key, None) is not None:
                removed += 1
            self.ttls.pop(key, None)
        return removed

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        return None


Handler = Callable[[httpx.Request], httpx.Response]


class FakeBackOffice:
    """Canned back-office API behind an httpx.MockTransport; records every request."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self._routes: dict[tuple[str, str], Handler] = {}

    def respond(
        self,
        method: str,
        path: str,
        status_code: int = 200,
        json: Any = None,
        handler: Handler | None = None,
    ) -> None:
        if handler is None:
            def handler(request: httpx.Request) -> httpx.Response:
                return httpx.Response(status_code, json=json)
        self._routes[(method.upper(), path)] = handler

    def fail(self, method: str, path: str) -> None:
        """Make calls to `path` fail at the transport level."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        self._routes[(method.upper(), path)] = handler

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        handler = self._routes.get((request.method, request.url.path))
        if handler is None:
            return httpx.Response(404, json={"message": "No such route"})
        return handler(request)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self._handle)

    def calls(self, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path == path]


# =============================================================================
# Settings and storage
# =============================================================================


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    """Get test settings with overrides."""
    return Settings(
        app_env="test",
        debug=True,
        site_url=SITE_URL,
        backoffice_api_base_url=BACKOFFICE_URL,
        backoffice_api_key="test-api-key",
        backoffice_frontend_url="https://app.backoffice.test",
        sponsor_api_token="sponsor-token",
        inbound_api_key="",
        sync_log_path=str(tmp_path / "logs" / "sync.log"),
        session_cookie_secure=False,
        database_dsn=f"sqlite+aiosqlite:///{tmp_path / 'commerce.db'}",
    )


async def seed_commerce(session: AsyncSession) -> None:
    """Two customers, a small catalog and two completed orders."""
    session.add_all(
        [
            User(id=1, username="alice", email="alice@example.com", first_name="Alice", last_name="Smith"),
            User(id=2, username="bob", email="bob@example.com", display_name="Bob"),
            Product(id=10, name="Starter Kit", regular_price="49.90", status="publish"),
            Product(id=11, name="No Price", regular_price="", status="publish"),
            Product(id=12, name="Refill", regular_price="5", status="publish"),
            Product(id=13, name="Draft Item", regular_price="7.50", status="draft"),
        ]
    )
    await session.flush()
    session.add_all(
        [
            Order(id=100, user_id=1, billing_email="alice@example.com", status="completed"),
            Order(id=101, user_id=None, billing_email="guest@example.com", status="completed"),
        ]
    )
    await session.flush()
    session.add_all(
        [
            OrderItem(id=1000, order_id=100, product_id=10, quantity=1),
            OrderItem(id=1001, order_id=100, product_id=12, quantity=2),
            OrderItem(id=1002, order_id=101, product_id=10, quantity=1),
        ]
    )
    await session.commit()


async def prepare_database(engine: AsyncEngine) -> None:
    """Create every table and load the sample commerce data."""
    factory = build_session_factory(engine)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    async with factory() as session:
        await seed_commerce(session)


@pytest.fixture
def engine(test_settings: Settings) -> AsyncEngine:
    return get_async_engine(test_settings)


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Seeded SQLite database for the synchronous API tests (no pooling, any loop)."""
    asyncio.run(prepare_database(engine))
    return build_session_factory(engine)


@pytest_asyncio.fixture
async def db_session(engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    """Seeded session for async service tests."""
    await prepare_database(engine)
    async with build_session_factory(engine)() as session:
        yield session
    await engine.dispose()


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def cache(fake_redis: FakeRedis) -> CacheService:
    return CacheService(fake_redis)


@pytest.fixture
def backoffice() -> FakeBackOffice:
    return FakeBackOffice()


@pytest.fixture
def backoffice_client(test_settings: Settings, backoffice: FakeBackOffice) -> BackOfficeClient:
    return BackOfficeClient(test_settings, transport=backoffice.transport)


@pytest.fixture
def sync_log(test_settings: Settings) -> SyncLog:
    return SyncLog(test_settings.sync_log_path)


@pytest.fixture
def pending(cache: CacheService) -> PendingRegistrationStore:
    return PendingRegistrationStore(cache, ttl_seconds=300)


@pytest.fixture
def dispatcher(
    db_session: AsyncSession,
    backoffice_client: BackOfficeClient,
    sync_log: SyncLog,
    pending: PendingRegistrationStore,
) -> SyncDispatcher:
    return SyncDispatcher(CommerceRepository(db_session), backoffice_client, sync_log, pending)


# =============================================================================
# Application
# =============================================================================


@pytest.fixture
def app(
    test_settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    backoffice: FakeBackOffice,
    fake_redis: FakeRedis,
) -> FastAPI:
    """Create test application."""
    app = create_app(test_settings)

    async def get_test_session() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session
            await session.commit()

    async def get_test_cache() -> CacheService:
        return CacheService(fake_redis)

    def get_test_backoffice_client(settings: SettingsDep) -> BackOfficeClient:
        return BackOfficeClient(settings, transport=backoffice.transport)

    app.dependency_overrides[get_settings] = lambda: test_settings
    app.dependency_overrides[get_session] = get_test_session
    app.dependency_overrides[get_cache] = get_test_cache
    app.dependency_overrides[get_backoffice_client] = get_test_backoffice_client
    return app


@pytest.fixture
def client(app: FastAPI) -> TestClient:
    """Create synchronous test client."""
    return TestClient(app)
