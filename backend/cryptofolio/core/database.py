"""
Database engine and session management.

Provides the async SQLAlchemy engine, the session factory, and the
unit-of-work runner every write path goes through.
"""

import asyncio
import logging
from typing import AsyncIterator, Awaitable, Callable, Optional, TypeVar

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from cryptofolio.core.config import settings
from cryptofolio.core.exceptions import PersistenceConflictError, TransientConflictError
from cryptofolio.core.metrics import metrics

logger = logging.getLogger(__name__)

T = TypeVar("T")

Base = declarative_base()


def _engine_options(url: str) -> dict:
    if url.startswith("sqlite"):
        return {"echo": settings.DB_ECHO}
    return {
        "echo": settings.DB_ECHO,
        "pool_size": settings.DB_POOL_SIZE,
        "max_overflow": settings.DB_MAX_OVERFLOW,
        "pool_pre_ping": True,
    }


engine = create_async_engine(settings.DATABASE_URL, **_engine_options(settings.DATABASE_URL))

AsyncSessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def get_db() -> AsyncIterator[AsyncSession]:
    """FastAPI dependency yielding a session."""
    async with AsyncSessionLocal() as session:
        yield session


async def init_db() -> None:
    """Create all tables (local runs only; deployed databases are managed by Alembic)."""
    import cryptofolio.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Dispose of the engine's connection pool."""
    await engine.dispose()


def upsert(session: AsyncSession, model):
    """Dialect-specific INSERT supporting ON CONFLICT DO UPDATE."""
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert(model)
    if dialect == "sqlite":
        return sqlite.insert(model)
    raise ValueError(f"Upsert not supported for dialect {dialect}")


# =========================================================================
# Conflict classification and retry
# =========================================================================

SERIALIZATION_FAILURE = "40001"
DEADLOCK_DETECTED = "40P01"
UNIQUE_VIOLATION = "23505"

RETRYABLE_SQLSTATES = {SERIALIZATION_FAILURE, DEADLOCK_DETECTED, UNIQUE_VIOLATION}


def _sqlstate(exc: DBAPIError) -> Optional[str]:
    orig = exc.orig
    return getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)


def is_transient_conflict(exc: BaseException) -> bool:
    """
    True for write conflicts that are safe to retry.

    Serialization failures, deadlocks, SQLite lock contention, and unique
    violations raised when two writers race to lazily create the same row.
    Everything else is a genuine error and must propagate.
    """
    if isinstance(exc, TransientConflictError):
        return True
    if not isinstance(exc, DBAPIError):
        return False
    if _sqlstate(exc) in RETRYABLE_SQLSTATES:
        return True
    message = str(exc.orig).lower()
    if isinstance(exc, OperationalError) and "database is locked" in message:
        return True
    if isinstance(exc, IntegrityError) and "unique constraint failed" in message:
        return True
    return False


async def _sleep_with_backoff(base: float, attempt: int) -> None:
    if base > 0:
        await asyncio.sleep(base * (2 ** (attempt - 1)))


async def run_in_transaction(
    work: Callable[[AsyncSession], Awaitable[T]],
    session_factory: Optional[async_sessionmaker] = None,
    max_attempts: Optional[int] = None,
    backoff_sec: Optional[float] = None,
    label: str = "transaction",
) -> T:
    """
    Run ``work`` in a fresh session and commit it.

    A transient conflict rolls the whole unit back and retries it with
    exponential backoff; any other error propagates immediately.

    Raises:
        PersistenceConflictError: every attempt conflicted
    """
    session_factory = session_factory or AsyncSessionLocal
    max_attempts = settings.PERSIST_MAX_ATTEMPTS if max_attempts is None else max_attempts
    backoff_sec = settings.PERSIST_RETRY_BACKOFF_SEC if backoff_sec is None else backoff_sec

    last_exc: Optional[BaseException] = None
    for attempt in range(1, max_attempts + 1):
        async with session_factory() as session:
            try:
                result = await work(session)
                await session.commit()
                return result
            except Exception as exc:
                await session.rollback()
                if not is_transient_conflict(exc):
                    raise
                last_exc = exc
                logger.warning(
                    "Transient conflict in %s (attempt %d/%d): %s",
                    label, attempt, max_attempts, exc,
                )
                metrics.persistence_retry(label, attempt, str(exc))
        if attempt < max_attempts:
            await _sleep_with_backoff(backoff_sec, attempt)

    raise PersistenceConflictError(
        f"{label} conflicted on all {max_attempts} attempts", attempts=max_attempts
    ) from last_exc
