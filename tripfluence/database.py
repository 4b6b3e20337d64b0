# SPDX-FileCopyrightText: 2026 Andrew Grimberg <tykeal@bardicgrove.org>
# SPDX-License-Identifier: Apache-2.0
"""Async engine, session factory and the request-scoped session dependency.

SQLite (aiosqlite) is the default store. PostgreSQL is served through
asyncpg, which comes with the ``postgres`` extra.
"""

import logging
from collections.abc import AsyncGenerator
from typing import Any

from sqlalchemy import event
from sqlalchemy.engine import URL, make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from tripfluence.config import get_settings

logger = logging.getLogger(__name__)

# Async driver used for each backend when the URL names none
ASYNC_DRIVERS = {
    "sqlite": "sqlite+aiosqlite",
    "postgresql": "postgresql+asyncpg",
    "postgres": "postgresql+asyncpg",
}


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for all models."""

    pass


def _async_url(raw: str) -> URL:
    url = make_url(raw)
    if "+" in url.drivername:
        return url
    driver = ASYNC_DRIVERS.get(url.drivername)
    if driver is None:
        msg = f"Unsupported database backend: {url.drivername}"
        raise ValueError(msg)
    return url.set(drivername=driver)


def get_database_url() -> str:
    """Get the configured database URL with an async driver.

    ``sqlite://`` becomes ``sqlite+aiosqlite://`` and ``postgresql://`` or
    ``postgres://`` become ``postgresql+asyncpg://``. URLs that already
    name a driver are kept.

    Raises:
        ValueError: If the backend is neither SQLite nor PostgreSQL.
    """
    url = _async_url(get_settings().database_url)
    return url.render_as_string(hide_password=False)


def _enable_sqlite_foreign_keys(dbapi_connection: Any, _record: Any) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys = ON")
    cursor.close()


def build_engine(url: str | None = None) -> AsyncEngine:
    """Create the async engine for a database URL.

    SQLite connections enforce foreign keys so cascading deletes of
    businesses, spaces and listings behave as on PostgreSQL.

    Args:
        url: Async database URL, defaults to the configured one.
    """
    url = url or get_database_url()
    backend = make_url(url).get_backend_name()

    if backend == "sqlite":
        engine = create_async_engine(
            url, echo=False, connect_args={"check_same_thread": False}
        )
        event.listen(engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
    else:
        engine = create_async_engine(url, echo=False, pool_pre_ping=True)

    logger.info("Database engine created for %s", backend)
    return engine


def create_session_factory(
    engine: AsyncEngine | None = None,
) -> async_sessionmaker[AsyncSession]:
    """Create a session factory whose objects stay usable after commit."""
    return async_sessionmaker(
        engine or build_engine(),
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


# Created on first use so settings can be overridden before startup
_session_factory: async_sessionmaker[AsyncSession] | None = None


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get the process-wide session factory, creating it on first use."""
    global _session_factory  # noqa: PLW0603
    if _session_factory is None:
        _session_factory = create_session_factory()
    return _session_factory


async def get_db() -> AsyncGenerator[AsyncSession]:
    """FastAPI dependency yielding one session per request.

    The session commits when the endpoint returns and rolls back if it
    raises, so audit entries are stored together with the change they
    describe.

    Yields:
        AsyncSession for database operations.
    """
    async with get_session_factory()() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
