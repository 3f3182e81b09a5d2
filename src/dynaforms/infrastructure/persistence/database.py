"""Persistent store connection management using SQLAlchemy 2.0 async.

The persistent store is optional: when no database URL is configured, or
when the database cannot be reached, record operations are served by the
in-process fallback store. Reachability is probed per call with a bounded
timeout, so the service degrades and recovers without a restart.
"""

import asyncio
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator

from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from dynaforms.core.config import Settings, get_settings
from dynaforms.core.logging import get_logger

logger = get_logger(__name__)

# SQLite's built-in lower() folds ASCII only
SQLITE_LOWER_FUNCTION = "py_lower"


def _unicode_lower(value: object) -> object:
    return value.lower() if isinstance(value, str) else value


def register_sqlite_functions(dbapi_connection, connection_record) -> None:
    """Install Python helpers on every new SQLite connection."""
    dbapi_connection.create_function(
        SQLITE_LOWER_FUNCTION, 1, _unicode_lower, deterministic=True
    )


class DatabaseManager:
    """Persistent store engine and session manager.

    The engine is created lazily on first use. ``is_available`` is the only
    place that decides whether the persistent store is reachable.
    """

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()
        self._engine: AsyncEngine | None = None
        self._session_factory: async_sessionmaker[AsyncSession] | None = None
        self._last_available: bool | None = None

    @property
    def is_configured(self) -> bool:
        """Whether a persistent store URL is configured at all."""
        return self.settings.has_persistent_store

    @property
    def engine(self) -> AsyncEngine:
        """Get or create the database engine.

        Raises:
            RuntimeError: If no database URL is configured.
        """
        if self._engine is None:
            if not self.is_configured:
                raise RuntimeError("No persistent store configured")

            url = self.settings.database_url
            if self.settings.is_sqlite:
                self._ensure_sqlite_directory(url)
                # SQLite picks its own pool class; pool sizing does not apply
                self._engine = create_async_engine(
                    url,
                    echo=self.settings.db_echo,
                    connect_args={"check_same_thread": False},
                )
                event.listen(self._engine.sync_engine, "connect", register_sqlite_functions)
            else:
                self._engine = create_async_engine(
                    url,
                    echo=self.settings.db_echo,
                    pool_size=self.settings.db_pool_size,
                    max_overflow=self.settings.db_max_overflow,
                    pool_timeout=self.settings.db_pool_timeout,
                    pool_recycle=self.settings.db_pool_recycle,
                    pool_pre_ping=True,
                )

            logger.info(
                "Database engine created",
                database_url=self._engine.url.render_as_string(hide_password=True),
            )
        return self._engine

    @staticmethod
    def _ensure_sqlite_directory(url: str) -> None:
        db_path = url.split(":///")[-1]
        if not db_path or db_path == ":memory:":
            return
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        """Get or create the session factory."""
        if self._session_factory is None:
            self._session_factory = async_sessionmaker(
                bind=self.engine,
                class_=AsyncSession,
                expire_on_commit=False,
                autoflush=False,
            )
        return self._session_factory

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Provide a session that is rolled back on error and always closed.

        Example:
            async with db.session() as session:
                await session.execute(select(table))
                await session.commit()
        """
        async with self.session_factory() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise

    async def check_connection(self) -> bool:
        """Check if the database answers a trivial query."""
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.debug("Database connection check failed", error=str(e))
            return False

    async def is_available(self, timeout: float | None = None) -> bool:
        """Probe the persistent store with a bounded wait.

        Transitions between reachable and unreachable are logged once.

        Args:
            timeout: Probe timeout in seconds. Defaults to
                ``db_probe_timeout_seconds``.
        """
        if not self.is_configured:
            return False

        timeout = timeout if timeout is not None else self.settings.db_probe_timeout_seconds
        try:
            available = await asyncio.wait_for(self.check_connection(), timeout=timeout)
        except asyncio.TimeoutError:
            available = False

        if available != self._last_available:
            if available:
                logger.info("Persistent store reachable")
            else:
                logger.warning(
                    "Persistent store unreachable, serving from fallback store",
                    timeout=timeout,
                )
            self._last_available = available
        return available

    async def disconnect(self) -> None:
        """Dispose the engine and all pooled connections."""
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None
            logger.info("Database engine disposed")
