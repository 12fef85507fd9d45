"""
Database session management and connection handling.
"""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Optional

from sqlalchemy import event, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool, StaticPool

from .base import Base
from .exceptions import StorageConnectionError, StorageError


class Database:
    """Database connection and session management."""

    def __init__(self, database_url: str, *, echo_sql: bool = False, **kwargs: Any) -> None:
        """Initialize the database connection.

        Args:
            database_url: SQLAlchemy async connection URL.
            echo_sql: Log every statement.
            **kwargs: Additional keyword arguments passed to create_async_engine.
        """
        self.database_url = database_url
        self.echo_sql = echo_sql
        self.engine: Optional[AsyncEngine] = None
        self.session_factory: Optional[async_sessionmaker[AsyncSession]] = None
        self._logger = logging.getLogger(__name__)

        self._setup_engine(**kwargs)

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")

    def _setup_engine(self, **kwargs: Any) -> None:
        """Set up the SQLAlchemy async engine."""
        if not self.database_url:
            raise ValueError("Database URL is required")

        engine_options: Dict[str, Any] = {"echo": self.echo_sql}

        if self.is_sqlite:
            engine_options["connect_args"] = {"check_same_thread": False, "timeout": 15}
            # An in-memory database only lives as long as its one connection.
            if ":memory:" in self.database_url or self.database_url.endswith("://"):
                engine_options["poolclass"] = StaticPool
            else:
                engine_options["poolclass"] = NullPool
        else:
            engine_options.update({"pool_pre_ping": True, "pool_recycle": 300})
        engine_options.update(kwargs)

        try:
            self.engine = create_async_engine(self.database_url, **engine_options)
            self.session_factory = async_sessionmaker(
                bind=self.engine,
                expire_on_commit=False,
                class_=AsyncSession
            )
        except Exception as e:
            self._logger.error(f"Failed to initialize database engine: {e}")
            raise StorageConnectionError(
                f"Failed to connect to database: {e}",
                context={"database_url": self._obfuscate_url(self.database_url)},
                original_exception=e,
            )

        if self.is_sqlite:
            event.listen(self.engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
        self._logger.info(
            f"Database engine initialized for {self._obfuscate_url(self.database_url)}"
        )

    @staticmethod
    def _obfuscate_url(url: str) -> str:
        """Obfuscate credentials in database URLs for logging."""
        if not url or "@" not in url:
            return url or ""
        scheme, _, rest = url.partition("//")
        auth_part, _, host_part = rest.partition("@")
        if ":" in auth_part:
            user = auth_part.split(":", 1)[0]
            return f"{scheme}//{user}:****@{host_part}"
        return url

    async def create_tables(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def drop_tables(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)

    async def health_check(self) -> bool:
        """Check if the database is reachable."""
        if not self.engine:
            return False

        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
                return True
        except SQLAlchemyError as e:
            self._logger.error(f"Database health check failed: {e}")
            return False

    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        """Get an async database session; commits on success, rolls back on error."""
        if not self.session_factory:
            raise StorageConnectionError("Database session factory not initialized")

        session = self.session_factory()
        try:
            yield session
            await session.commit()
        except SQLAlchemyError as e:
            await session.rollback()
            self._logger.error(f"Database error: {e}")
            raise StorageError(f"Database operation failed: {e}", original_exception=e) from e
        finally:
            await session.close()

    async def close(self) -> None:
        """Close all database connections."""
        if self.engine:
            await self.engine.dispose()
            self._logger.info("Database connections closed")


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()
