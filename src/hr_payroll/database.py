"""Database engine and session lifecycle.

The engine is owned by an explicit ``Database`` handle created once at
startup and disposed on shutdown. Services receive an ``AsyncSession``
from ``Database.session()`` and never reach for module-level state.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator

from sqlalchemy import event
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from hr_payroll.config import Settings
from hr_payroll.errors import PayrollError, PersistenceError
from hr_payroll.models import Base

logger = logging.getLogger(__name__)


def _enable_sqlite_savepoints(engine: AsyncEngine) -> None:
    """Let SQLAlchemy drive BEGIN so SAVEPOINT and nested transactions work.

    The sqlite3 driver otherwise issues its own implicit BEGIN, which breaks
    ``session.begin_nested()``. Foreign keys are switched on per connection.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection: Any, connection_record: Any) -> None:
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn: Any) -> None:
        conn.exec_driver_sql("BEGIN")


def create_engine_for_url(
    url: str,
    echo: bool = False,
    pool_size: int = 10,
    max_overflow: int = 20,
) -> AsyncEngine:
    """Create an async engine with dialect-appropriate pooling."""
    if url.startswith("sqlite"):
        kwargs: dict[str, Any] = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in url or url.rstrip("/").endswith("sqlite+aiosqlite:"):
            kwargs["poolclass"] = StaticPool
        engine = create_async_engine(url, echo=echo, **kwargs)
        _enable_sqlite_savepoints(engine)
        return engine

    return create_async_engine(
        url,
        echo=echo,
        pool_pre_ping=True,
        pool_size=pool_size,
        max_overflow=max_overflow,
    )


class Database:
    """Persistence context handle.

    Usage:
        db = Database.from_settings(get_settings())
        await db.create_all()
        async with db.session() as session:
            ...
        await db.dispose()
    """

    def __init__(self, engine: AsyncEngine):
        self.engine = engine
        self.session_factory: async_sessionmaker[AsyncSession] = async_sessionmaker(
            engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

    @classmethod
    def from_url(cls, url: str, echo: bool = False) -> Database:
        return cls(create_engine_for_url(url, echo=echo))

    @classmethod
    def from_settings(cls, settings: Settings) -> Database:
        """Create the handle from application settings."""
        return cls(
            create_engine_for_url(
                settings.database_url,
                echo=settings.echo_sql,
                pool_size=settings.pool_size,
                max_overflow=settings.max_overflow,
            )
        )

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Open a session that commits on success and rolls back on error.

        Driver and constraint failures escaping the block are surfaced as
        PersistenceError; engine errors pass through unchanged.
        """
        async with self.session_factory() as session:
            try:
                yield session
                await session.commit()
            except PayrollError:
                await session.rollback()
                raise
            except SQLAlchemyError as e:
                await session.rollback()
                logger.error("Transaction rolled back: %s", e)
                raise PersistenceError(f"Storage failure: {e}") from e
            except Exception:
                await session.rollback()
                raise

    async def create_all(self) -> None:
        """Create all tables (tests and first-run bootstrap)."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def drop_all(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)

    async def dispose(self) -> None:
        """Drain the connection pool on shutdown."""
        await self.engine.dispose()
        logger.debug("Database engine disposed")
