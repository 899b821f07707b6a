"""Shared test fixtures."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from src.pm_common.database import Base, create_session_factory
from src.pm_relay.client import RelayClient
from src.pm_session.application.service import SessionManager

# Register every table on Base.metadata
from src.pm_session.infrastructure import db_models as _session_tables  # noqa: F401
from src.pm_settlement.infrastructure import db_models as _settlement_tables  # noqa: F401


@pytest.fixture
async def engine(tmp_path) -> AsyncEngine:  # type: ignore[no-untyped-def]
    """File-backed SQLite store, one per test, schema built from the ORM models."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}",
        connect_args={"timeout": 30},
        poolclass=NullPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(engine)


@pytest.fixture
async def db(session_factory: async_sessionmaker[AsyncSession]) -> AsyncSession:
    async with session_factory() as session:
        yield session


@pytest.fixture
def relay() -> RelayClient:
    """Disabled relay: publishes are dropped, requests return nothing."""
    return RelayClient("")


@pytest.fixture
def manager(relay: RelayClient) -> SessionManager:
    return SessionManager(relay)


@pytest.fixture
def redis() -> AsyncMock:
    """Lock-only Redis stand-in: SET NX always succeeds."""
    client = AsyncMock()
    client.set.return_value = True
    return client


@pytest.fixture
def chain_disabled() -> MagicMock:
    chain = MagicMock()
    chain.enabled = False
    chain.reads_enabled = False
    return chain
