"""Async database engine, session management and the unit of work.

Provides:
    - _get_engine / _get_session_factory: lazy singletons for the app.
    - build_session_factory: sessionmaker with the project-wide options.
    - get_async_session: FastAPI dependency that yields a session per request.
    - session_scope: context manager for code running outside a request (jobs).
    - unit_of_work: commit-or-rollback boundary around one atomic operation.
    - init_db / close_db: Lifecycle hooks for FastAPI's lifespan.

Usage in a service:
    async with unit_of_work(self._session, "escrow.cancel", transaction_id=str(tx_id)):
        tx = await self._transactions.get_for_update(tx_id)
        ...
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from authority_exchange.config import get_settings
from authority_exchange.domain.exceptions import ExchangeError, OperationFailedError
from authority_exchange.logging_config import get_logger

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator, AsyncIterator

logger = get_logger(__name__)

# Module-level singletons (initialized in init_db)
_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None

_UOW_DEPTH_KEY = "unit_of_work_depth"


def _get_engine() -> AsyncEngine:
    """Get or create the async engine (lazy singleton)."""
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = create_async_engine(
            settings.database_url,
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_timeout=settings.db_pool_timeout,
            pool_pre_ping=True,
            echo=settings.db_echo_sql,
        )
        logger.info(
            "database.engine_created",
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
        )
    return _engine


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory used by the app, the scheduler and the test suite."""
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


def _get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get or create the session factory (lazy singleton)."""
    global _session_factory
    if _session_factory is None:
        _session_factory = build_session_factory(_get_engine())
    return _session_factory


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency that yields an async database session.

    Services commit their own units of work; anything left pending when the
    request ends is committed here, or rolled back on error.
    """
    factory = _get_session_factory()
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


@asynccontextmanager
async def session_scope() -> AsyncIterator[AsyncSession]:
    """Open a session outside of a request (background jobs)."""
    factory = _get_session_factory()
    async with factory() as session:
        yield session


@asynccontextmanager
async def unit_of_work(
    session: AsyncSession,
    operation: str,
    **context: object,
) -> AsyncIterator[AsyncSession]:
    """Run the enclosed writes as one atomic unit.

    Commits when the block exits cleanly. Domain errors roll back and
    propagate unchanged. Persistence errors (constraint violations, lost
    updates, dropped connections) roll back, are logged with the operation
    context and surface as OperationFailedError.

    Units nest: an inner unit opened on a session that is already inside one
    joins the outer unit, which alone commits or rolls back.
    """
    depth = session.info.get(_UOW_DEPTH_KEY, 0)
    if depth:
        session.info[_UOW_DEPTH_KEY] = depth + 1
        try:
            yield session
        finally:
            session.info[_UOW_DEPTH_KEY] = depth
        return

    session.info[_UOW_DEPTH_KEY] = 1
    try:
        yield session
        await session.commit()
    except ExchangeError:
        await session.rollback()
        raise
    except SQLAlchemyError as exc:
        await session.rollback()
        logger.error(
            "unit_of_work.failed",
            operation=operation,
            error=str(exc),
            error_type=type(exc).__name__,
            exc_info=True,
            **context,
        )
        raise OperationFailedError(operation) from exc
    except Exception:
        await session.rollback()
        raise
    finally:
        session.info.pop(_UOW_DEPTH_KEY, None)


async def init_db() -> None:
    """Initialize the database engine and create tables if they don't exist.

    Called during FastAPI's lifespan startup. In production, use Alembic
    migrations instead of create_all.
    """
    from authority_exchange.infrastructure.database.orm_models import Base

    engine = _get_engine()
    settings = get_settings()

    if settings.is_development:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
            logger.info("database.tables_created")
    else:
        logger.info("database.skipping_create_all", reason="not in development mode")


async def close_db() -> None:
    """Dispose of the database engine. Called during FastAPI's lifespan shutdown."""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
        logger.info("database.engine_disposed")
        _engine = None
        _session_factory = None
