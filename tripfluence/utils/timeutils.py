# SPDX-FileCopyrightText: 2026 Andrew Grimberg <tykeal@bardicgrove.org>
# SPDX-License-Identifier: Apache-2.0
"""Datetime helpers shared by models, services and API schemas."""

from datetime import UTC, datetime


def utc_now() -> datetime:
    """Get current UTC datetime for SQLAlchemy defaults."""
    return datetime.now(UTC)


def ensure_utc(value: datetime) -> datetime:
    """Return an aware UTC datetime.

    SQLite returns timezone-naive datetimes; every stored value is UTC,
    so naive values are tagged rather than converted.

    Args:
        value: Naive or aware datetime.

    Returns:
        Aware datetime in UTC.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def ensure_utc_or_none(value: datetime | None) -> datetime | None:
    """Like ensure_utc but passes None through."""
    if value is None:
        return None
    return ensure_utc(value)


def isoformat_or_none(value: datetime | None) -> str | None:
    """Serialize a stored datetime as an ISO string in UTC."""
    if value is None:
        return None
    return ensure_utc(value).isoformat()
