"""
Database Service (Scorekeep 2025)

One shared AsyncEngine for the score write path, the rank queries and the
retention engine. Reads use ``get_session()``; anything that writes or
deletes goes through ``get_transaction()``, which commits on success and
rolls back, logs and re-raises on any error.

Every session runs with a PostgreSQL ``statement_timeout`` so a slow
retention batch cannot hold a pooled connection indefinitely. Under the
testing environment the engine uses ``NullPool`` so each testcontainer
session gets a fresh connection.

>>> async with DatabaseService.get_transaction() as session:
...     session.add(record)
"""

from __future__ import annotations

import asyncio
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncGenerator, Dict, Optional, Type

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import AsyncAdaptedQueuePool, NullPool, Pool

from scorekeep.core.config.config import Config
from scorekeep.core.database.base import Base
from scorekeep.core.logging.logger import get_logger

logger = get_logger(__name__)


class DatabaseInitializationError(RuntimeError):
    """The engine could not be created from the configured URL."""


class DatabaseNotInitializedError(RuntimeError):
    """A session was requested before ``DatabaseService.initialize()``."""


@dataclass(frozen=True)
class EngineSettings:
    url: str
    echo: bool
    pool_class: Type[Pool]
    pool_size: int
    max_overflow: int
    pool_recycle: int
    pool_timeout: int
    statement_timeout_ms: int

    @classmethod
    def from_config(cls, url: Optional[str] = None) -> "EngineSettings":
        database_url = url or Config.DATABASE_URL
        if not database_url or not isinstance(database_url, str):
            raise DatabaseInitializationError(
                "DATABASE_URL must be configured as a non-empty string"
            )
        return cls(
            url=database_url,
            echo=Config.DATABASE_ECHO,
            pool_class=NullPool if Config.is_testing() else AsyncAdaptedQueuePool,
            pool_size=Config.DATABASE_POOL_SIZE,
            max_overflow=Config.DATABASE_MAX_OVERFLOW,
            pool_recycle=Config.DATABASE_POOL_RECYCLE,
            pool_timeout=Config.DATABASE_POOL_TIMEOUT,
            statement_timeout_ms=Config.DATABASE_STATEMENT_TIMEOUT_MS,
        )

    @property
    def is_postgres(self) -> bool:
        return self.url.startswith(("postgresql://", "postgresql+asyncpg://"))

    @property
    def scheme(self) -> str:
        return self.url.split(":", 1)[0]

    def engine_kwargs(self) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {"echo": self.echo, "poolclass": self.pool_class}
        if self.pool_class is AsyncAdaptedQueuePool:
            kwargs.update(
                pool_size=self.pool_size,
                max_overflow=self.max_overflow,
                pool_recycle=self.pool_recycle,
                pool_timeout=self.pool_timeout,
                pool_pre_ping=True,
            )
        return kwargs


class DatabaseService:
    """
    Process-wide engine and session factory, used through classmethods.

    Lifecycle: ``initialize()``, ``create_schema()``, ``shutdown()``.
    Sessions: ``get_session()`` for reads, ``get_transaction()`` for writes.
    """

    _engine: Optional[AsyncEngine] = None
    _session_factory: Optional[async_sessionmaker[AsyncSession]] = None
    _settings: Optional[EngineSettings] = None
    _init_lock: Optional[asyncio.Lock] = None

    @classmethod
    def _lock(cls) -> asyncio.Lock:
        if cls._init_lock is None:
            cls._init_lock = asyncio.Lock()
        return cls._init_lock

    # ========================================================================
    # Lifecycle
    # ========================================================================

    @classmethod
    async def initialize(cls, url: Optional[str] = None) -> None:
        """
        Create the engine; a no-op when already initialized.

        ``url`` overrides ``Config.DATABASE_URL`` (integration tests pass the
        testcontainer URL here).

        Raises:
            DatabaseInitializationError: bad URL or engine creation failed
        """
        async with cls._lock():
            if cls._engine is not None:
                return

            try:
                settings = EngineSettings.from_config(url)
                cls._engine = create_async_engine(settings.url, **settings.engine_kwargs())
            except Exception as exc:
                logger.error(
                    "DatabaseService initialization failed",
                    extra={"error": str(exc), "error_type": type(exc).__name__},
                    exc_info=True,
                )
                if isinstance(exc, DatabaseInitializationError):
                    raise
                raise DatabaseInitializationError(f"Database initialization failed: {exc}") from exc

            cls._session_factory = async_sessionmaker(
                bind=cls._engine, class_=AsyncSession, expire_on_commit=False
            )
            cls._settings = settings

            logger.info(
                "DatabaseService initialized",
                extra={
                    "url_scheme": settings.scheme,
                    "pool_class": settings.pool_class.__name__,
                    "statement_timeout_ms": settings.statement_timeout_ms,
                },
            )

    @classmethod
    async def shutdown(cls) -> None:
        """Dispose the engine. Safe to call repeatedly."""
        async with cls._lock():
            if cls._engine is None:
                return
            try:
                await cls._engine.dispose()
                logger.info("DatabaseService shut down")
            finally:
                cls._engine = None
                cls._session_factory = None
                cls._settings = None

    @classmethod
    async def create_schema(cls) -> None:
        """Create the game record, profile and reward tables if missing."""
        engine = cls._require_engine()

        # Register models on the metadata before create_all
        import scorekeep.database.models  # noqa: F401

        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        logger.info("Database schema ensured", extra={"tables": sorted(Base.metadata.tables)})

    @classmethod
    async def health_check(cls) -> bool:
        """``SELECT 1`` against the engine; False instead of raising."""
        if cls._engine is None:
            return False

        start = time.perf_counter()
        try:
            async with cls._engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except DBAPIError as exc:
            logger.warning(
                "Database health check failed",
                extra={"error": str(exc), "error_type": type(exc).__name__},
            )
            return False

        logger.debug(
            "Database health check passed",
            extra={"duration_ms": (time.perf_counter() - start) * 1000.0},
        )
        return True

    # ========================================================================
    # Sessions
    # ========================================================================

    @classmethod
    def _require_engine(cls) -> AsyncEngine:
        if cls._engine is None or cls._session_factory is None:
            raise DatabaseNotInitializedError(
                "DatabaseService.initialize() must run before any session is opened"
            )
        return cls._engine

    @classmethod
    async def _open(cls, session: AsyncSession) -> None:
        settings = cls._settings
        if settings is not None and settings.is_postgres:
            await session.execute(
                text(f"SET LOCAL statement_timeout = {settings.statement_timeout_ms}")
            )

    @classmethod
    @asynccontextmanager
    async def get_session(cls) -> AsyncGenerator[AsyncSession, None]:
        """Session for reads; nothing is committed."""
        cls._require_engine()
        assert cls._session_factory is not None

        async with cls._session_factory() as session:
            await cls._open(session)
            yield session

    @classmethod
    @asynccontextmanager
    async def get_transaction(cls) -> AsyncGenerator[AsyncSession, None]:
        """
        Session wrapped in one transaction.

        Commits when the block exits cleanly. Any exception rolls back,
        is logged with its type and duration, and propagates unchanged.
        """
        cls._require_engine()
        assert cls._session_factory is not None

        start = time.perf_counter()
        async with cls._session_factory() as session:
            try:
                await cls._open(session)
                yield session
                await session.commit()
            except Exception as exc:
                await session.rollback()
                logger.error(
                    "Transaction rolled back",
                    extra={
                        "error": str(exc),
                        "error_type": type(exc).__name__,
                        "duration_ms": (time.perf_counter() - start) * 1000.0,
                    },
                    exc_info=isinstance(exc, DBAPIError),
                )
                raise
