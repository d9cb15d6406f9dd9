"""
Database Service

Purpose
-------
Owns the single async engine of the process and hands out sessions. Every
progression read and write in Cadence runs inside a session obtained here.

Transaction Model
-----------------
- ``get_transaction()`` commits when the block exits cleanly and rolls
  back on any exception, which is then re-raised unchanged.
- ``get_session()`` never commits; use it for reads.
- Services never call ``session.commit()`` themselves.

Pooling
-------
PostgreSQL in development and production uses an ``AsyncAdaptedQueuePool`` sized from
Config. Test runs and SQLite files use ``NullPool`` so each session gets
its own connection.

Usage
-----
>>> await DatabaseService.initialize()
>>> async with DatabaseService.get_transaction() as session:
...     await session.execute(select(ProgressionRecord))
"""

from __future__ import annotations

import asyncio
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncGenerator, Dict, Optional, Type

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import AsyncAdaptedQueuePool, NullPool, Pool

from cadence.core.config.config import Config
from cadence.core.database.base import Base
from cadence.core.logging.logger import get_logger

logger = get_logger(__name__)


class DatabaseInitializationError(RuntimeError):
    """The engine could not be created from the configured URL."""


class DatabaseNotInitializedError(RuntimeError):
    """A session was requested before ``DatabaseService.initialize()``."""


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000.0, 2)


@dataclass(frozen=True)
class EngineSettings:
    """Engine parameters resolved once at initialization."""

    url: str
    echo: bool = False
    pooled: bool = True
    pool_options: Dict[str, int] = field(default_factory=dict)
    statement_timeout_ms: int = 30_000

    @property
    def scheme(self) -> str:
        return self.url.partition(":")[0] or "unknown"

    @property
    def backend(self) -> str:
        return self.scheme.partition("+")[0]

    @property
    def pool_class(self) -> Type[Pool]:
        return AsyncAdaptedQueuePool if self.pooled else NullPool

    def engine_kwargs(self) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {"echo": self.echo, "poolclass": self.pool_class}
        if self.pooled:
            kwargs.update(self.pool_options)
        return kwargs

    @classmethod
    def resolve(cls, url: Optional[str] = None) -> "EngineSettings":
        database_url = url or Config.DATABASE_URL
        if not isinstance(database_url, str) or not database_url.strip():
            raise DatabaseInitializationError("DATABASE_URL is empty or not a string")

        return cls(
            url=database_url,
            echo=bool(Config.DATABASE_ECHO),
            pooled=not (Config.is_testing() or database_url.startswith("sqlite")),
            pool_options={
                "pool_size": int(Config.DATABASE_POOL_SIZE),
                "max_overflow": int(Config.DATABASE_MAX_OVERFLOW),
                "pool_recycle": int(Config.DATABASE_POOL_RECYCLE),
                "pool_timeout": int(Config.DATABASE_POOL_TIMEOUT),
            },
            statement_timeout_ms=int(Config.DATABASE_STATEMENT_TIMEOUT_MS),
        )


class DatabaseService:
    """
    Process-wide engine and session factory.

    Lifecycle: ``initialize`` / ``shutdown`` (both idempotent),
    ``create_all`` / ``drop_all`` for schema management.
    Sessions: ``get_session`` for reads, ``get_transaction`` for writes.
    """

    _engine: Optional[AsyncEngine] = None
    _sessions: Optional[async_sessionmaker[AsyncSession]] = None
    _settings: Optional[EngineSettings] = None
    _guard: Optional[asyncio.Lock] = None

    @classmethod
    def _lifecycle_lock(cls) -> asyncio.Lock:
        if cls._guard is None:
            cls._guard = asyncio.Lock()
        return cls._guard

    @classmethod
    def _reset(cls) -> None:
        cls._engine = None
        cls._sessions = None
        cls._settings = None

    @classmethod
    async def initialize(cls, url: Optional[str] = None) -> None:
        """
        Create the engine and session factory.

        Args:
            url: Overrides ``Config.DATABASE_URL``

        Raises:
            DatabaseInitializationError: Invalid URL or engine creation failure
        """
        async with cls._lifecycle_lock():
            if cls._engine is not None:
                return

            try:
                settings = EngineSettings.resolve(url)
                cls._engine = create_async_engine(settings.url, **settings.engine_kwargs())
                cls._sessions = async_sessionmaker(cls._engine, expire_on_commit=False)
                cls._settings = settings
            except Exception as exc:
                cls._reset()
                logger.error(
                    "Database engine could not be created",
                    extra={"error": str(exc), "error_type": type(exc).__name__},
                    exc_info=True,
                )
                if isinstance(exc, DatabaseInitializationError):
                    raise
                raise DatabaseInitializationError(str(exc)) from exc

            logger.info(
                "Database engine ready",
                extra={
                    "url_scheme": settings.scheme,
                    "pool_class": settings.pool_class.__name__,
                    "statement_timeout_ms": settings.statement_timeout_ms,
                },
            )

    @classmethod
    async def shutdown(cls) -> None:
        """Dispose the engine. Calling it when not initialized is a no-op."""
        async with cls._lifecycle_lock():
            engine = cls._engine
            if engine is None:
                return
            try:
                await engine.dispose()
            finally:
                cls._reset()
            logger.info("Database engine disposed")

    @classmethod
    def _require_engine(cls) -> AsyncEngine:
        if cls._engine is None or cls._sessions is None:
            raise DatabaseNotInitializedError(
                "DatabaseService.initialize() must be awaited before use"
            )
        return cls._engine

    @classmethod
    def dialect_name(cls) -> str:
        return cls._require_engine().dialect.name

    @classmethod
    async def create_all(cls) -> None:
        """Create missing tables for every model registered on ``Base``."""
        engine = cls._require_engine()

        import cadence.database.models  # noqa: F401

        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Schema ensured", extra={"tables": sorted(Base.metadata.tables)})

    @classmethod
    async def drop_all(cls) -> None:
        engine = cls._require_engine()
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
        logger.warning("Schema dropped")

    @classmethod
    async def health_check(cls) -> bool:
        """True when ``SELECT 1`` succeeds; never raises."""
        if cls._engine is None:
            return False

        start = time.perf_counter()
        try:
            async with cls._engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except (SQLAlchemyError, OSError) as exc:
            logger.warning(
                "Database health check failed",
                extra={"error": str(exc), "duration_ms": _elapsed_ms(start)},
            )
            return False

        logger.debug("Database health check passed", extra={"duration_ms": _elapsed_ms(start)})
        return True

    @classmethod
    async def _apply_timeout(cls, session: AsyncSession) -> None:
        settings = cls._settings
        if settings is not None and settings.backend == "postgresql":
            await session.execute(
                text(f"SET LOCAL statement_timeout = {settings.statement_timeout_ms}")
            )

    @classmethod
    @asynccontextmanager
    async def get_session(cls) -> AsyncGenerator[AsyncSession, None]:
        """Session without commit, for reads."""
        cls._require_engine()
        assert cls._sessions is not None

        async with cls._sessions() as session:
            await cls._apply_timeout(session)
            yield session

    @classmethod
    @asynccontextmanager
    async def get_transaction(cls) -> AsyncGenerator[AsyncSession, None]:
        """
        Session inside one atomic transaction.

        Commits on clean exit. On any exception the transaction is rolled
        back, the failure is logged with its duration and the exception
        propagates unchanged.
        """
        cls._require_engine()
        assert cls._sessions is not None

        start = time.perf_counter()
        async with cls._sessions() as session:
            try:
                await cls._apply_timeout(session)
                yield session
                await session.commit()
            except Exception as exc:
                await session.rollback()
                log = logger.error if isinstance(exc, SQLAlchemyError) else logger.warning
                log(
                    "Transaction rolled back",
                    extra={
                        "error": str(exc),
                        "error_type": type(exc).__name__,
                        "duration_ms": _elapsed_ms(start),
                    },
                )
                raise

        logger.debug("Transaction committed", extra={"duration_ms": _elapsed_ms(start)})
