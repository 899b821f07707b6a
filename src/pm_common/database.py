from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from src.pm_common.errors import PersistenceError


class Base(DeclarativeBase):
    """Shared declarative base for all ORM models across modules."""

    pass


def create_engine(
    url: str,
    *,
    echo: bool = False,
    pool_size: int = 20,
    max_overflow: int = 10,
) -> AsyncEngine:
    """Build the async engine. Owned and disposed by the service container."""
    return create_async_engine(
        url,
        echo=echo,
        pool_size=pool_size,
        max_overflow=max_overflow,
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@asynccontextmanager
async def unit_of_work(db: AsyncSession) -> AsyncGenerator[AsyncSession, None]:
    """Commit on success, roll back on any error.

    Connection-level failures surface as PersistenceError so callers can
    tell "store unavailable" apart from business rejections. Integrity
    errors propagate unchanged.
    """
    try:
        yield db
        await db.commit()
    except (OperationalError, InterfaceError, PoolTimeoutError, OSError) as exc:
        await safe_rollback(db)
        raise PersistenceError(f"Ledger store unavailable: {exc.__class__.__name__}") from exc
    except BaseException:
        await safe_rollback(db)
        raise


async def safe_rollback(db: AsyncSession) -> None:
    try:
        await db.rollback()
    except (OperationalError, InterfaceError, OSError):
        # connection already gone; the server discards the transaction
        pass
