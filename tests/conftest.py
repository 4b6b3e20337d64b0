# SPDX-FileCopyrightText: 2026 Andrew Grimberg <tykeal@bardicgrove.org>
# SPDX-License-Identifier: Apache-2.0
"""Pytest fixtures for Tripfluence tests."""

import os
from collections.abc import AsyncGenerator, Awaitable, Callable
from pathlib import Path
from typing import Any

import pytest
from cryptography.fernet import Fernet
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool


# Set environment variables BEFORE any tripfluence imports
# This must happen at module load time
def _setup_env() -> None:
    """Set up test environment variables at module load."""
    if "ENCRYPTION_KEY" not in os.environ:
        test_key = Fernet.generate_key().decode()
        os.environ["ENCRYPTION_KEY"] = test_key
    if "DATABASE_URL" not in os.environ:
        os.environ["DATABASE_URL"] = "sqlite:///./test.db"
    if "LOG_LEVEL" not in os.environ:
        os.environ["LOG_LEVEL"] = "DEBUG"
    if "SCHEDULER_ENABLED" not in os.environ:
        os.environ["SCHEDULER_ENABLED"] = "false"
    if "EXPOSE_DOCS" not in os.environ:
        os.environ["EXPOSE_DOCS"] = "true"
    if "PUBLIC_BASE_URL" not in os.environ:
        os.environ["PUBLIC_BASE_URL"] = "https://tripfluence.test"


_setup_env()

# Now safe to import from tripfluence
from fastapi import FastAPI  # noqa: E402

from tripfluence import database  # noqa: E402
from tripfluence.database import Base, get_db  # noqa: E402
from tripfluence.models.business import (  # noqa: E402
    ROLE_ADMIN,
    ROLE_INFLUENCER,
    ROLE_MANAGER,
    ROLE_STAFF,
    Business,
    RoleAssignment,
)
from tripfluence.models.listing import LISTING_PUBLISHED, Listing  # noqa: E402
from tripfluence.models.space import (  # noqa: E402
    RULE_CLEANING_FEE,
    RULE_HOURLY,
    SPACE_PUBLISHED,
    Space,
    SpacePricingRule,
)
from tripfluence.services.idempotency import get_idempotency_cache  # noqa: E402

ADMIN_USER = "admin-user"
MANAGER_USER = "manager-user"
STAFF_USER = "staff-user"
INFLUENCER_USER = "influencer-user"
OUTSIDER_USER = "outsider-user"


@pytest.fixture(scope="session", autouse=True)
def setup_test_environment():
    """Set up test environment variables."""
    # Already set by _setup_env(), just yield and cleanup
    yield
    # Cleanup
    test_db_path = Path("test.db")
    if test_db_path.exists():
        test_db_path.unlink()


@pytest.fixture(autouse=True)
def clear_idempotency_cache():
    """Start every test with an empty idempotency cache."""
    get_idempotency_cache().clear()
    yield
    get_idempotency_cache().clear()


@pytest.fixture
async def async_engine():
    """Create an async test database engine."""
    from sqlalchemy import event

    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # Enable foreign key constraint enforcement for SQLite on every connection
    @event.listens_for(engine.sync_engine, "connect")
    def set_sqlite_pragma(dbapi_connection, _connection_record):
        """Enable SQLite FK constraints on each connection."""
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys = ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(async_engine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test engine."""
    return async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


@pytest.fixture
async def async_session(session_factory) -> AsyncGenerator[AsyncSession]:
    """Create an async test database session."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def app(session_factory, monkeypatch) -> FastAPI:
    """Create a test FastAPI application backed by the test database."""
    from tripfluence.main import create_app

    async def override_get_db() -> AsyncGenerator[AsyncSession]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    # Background webhook fan-out opens its own sessions
    monkeypatch.setattr(database, "_session_factory", session_factory)

    application = create_app()
    application.dependency_overrides[get_db] = override_get_db
    return application


@pytest.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient]:
    """Create an async test client."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


def auth_headers(user_id: str, business_id: int) -> dict[str, str]:
    """Identity headers the upstream gateway would forward."""
    return {"X-User-Id": user_id, "X-Business-Id": str(business_id)}


@pytest.fixture
async def business(async_session: AsyncSession) -> Business:
    """A business with one member for each role."""
    biz = Business(name="Harbour Venues", slug="harbour-venues")
    async_session.add(biz)
    await async_session.flush()
    for user_id, role in (
        (ADMIN_USER, ROLE_ADMIN),
        (MANAGER_USER, ROLE_MANAGER),
        (STAFF_USER, ROLE_STAFF),
        (INFLUENCER_USER, ROLE_INFLUENCER),
    ):
        async_session.add(
            RoleAssignment(user_id=user_id, business_id=biz.id, role=role)
        )
    await async_session.commit()
    return biz


@pytest.fixture
async def other_business(async_session: AsyncSession) -> Business:
    """A second tenant whose only member is its admin."""
    biz = Business(name="Other Venues", slug="other-venues")
    async_session.add(biz)
    await async_session.flush()
    async_session.add(
        RoleAssignment(user_id="other-admin", business_id=biz.id, role=ROLE_ADMIN)
    )
    await async_session.commit()
    return biz


@pytest.fixture
def admin_headers(business: Business) -> dict[str, str]:
    """Headers of the business admin."""
    return auth_headers(ADMIN_USER, business.id)


@pytest.fixture
def manager_headers(business: Business) -> dict[str, str]:
    """Headers of the business manager."""
    return auth_headers(MANAGER_USER, business.id)


@pytest.fixture
def staff_headers(business: Business) -> dict[str, str]:
    """Headers of a staff member."""
    return auth_headers(STAFF_USER, business.id)


@pytest.fixture
def influencer_headers(business: Business) -> dict[str, str]:
    """Headers of an influencer."""
    return auth_headers(INFLUENCER_USER, business.id)


@pytest.fixture
def make_space(
    async_session: AsyncSession, business: Business
) -> Callable[..., Awaitable[Space]]:
    """Factory creating spaces of the test business.

    Spaces are published and priced at 50.00/hour plus a 25.00 cleaning
    fee unless told otherwise.
    """

    async def _make(**overrides: Any) -> Space:
        rules = overrides.pop("rules", None)
        if rules is None:
            rules = [
                SpacePricingRule(kind=RULE_HOURLY, amount=5000, currency="USD"),
                SpacePricingRule(kind=RULE_CLEANING_FEE, amount=2500, currency="USD"),
            ]
        data: dict[str, Any] = {
            "business_id": business.id,
            "title": "Loft Studio",
            "slug": "loft-studio",
            "description": "Sunny loft with a long table",
            "city": "Berlin",
            "capacity": 20,
            "timezone": "UTC",
            "status": SPACE_PUBLISHED,
        }
        data.update(overrides)
        space = Space(**data, pricing_rules=rules, availability=[])
        async_session.add(space)
        await async_session.commit()
        return space

    return _make


@pytest.fixture
async def space(make_space) -> Space:
    """A published space with default pricing."""
    return await make_space()


@pytest.fixture
def make_listing(
    async_session: AsyncSession, business: Business
) -> Callable[..., Awaitable[Listing]]:
    """Factory creating listings of the test business."""

    async def _make(**overrides: Any) -> Listing:
        data: dict[str, Any] = {
            "business_id": business.id,
            "type": "EVENT",
            "title": "Sunset Yoga",
            "slug": "sunset-yoga",
            "description": "Yoga on the rooftop",
            "city": "Berlin",
            "country": "DE",
            "status": LISTING_PUBLISHED,
            "price_from": 2500,
            "currency": "EUR",
            "capacity": 10,
        }
        data.update(overrides)
        listing = Listing(**data)
        async_session.add(listing)
        await async_session.commit()
        return listing

    return _make


@pytest.fixture
async def listing(make_listing) -> Listing:
    """A published listing priced at 25.00 EUR per ticket."""
    return await make_listing()


@pytest.fixture
def encryption_key(setup_test_environment) -> str:
    """Get test encryption key."""
    return os.environ["ENCRYPTION_KEY"]
