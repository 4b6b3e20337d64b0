# SPDX-FileCopyrightText: 2026 Andrew Grimberg <tykeal@bardicgrove.org>
# SPDX-License-Identifier: Apache-2.0
"""Connection status derivation for connected social and event accounts."""

import math
from datetime import UTC, datetime, timedelta
from typing import Any

from pydantic import BaseModel, Field

from tripfluence.utils.timeutils import ensure_utc, ensure_utc_or_none

STATUS_CONNECTED = "CONNECTED"
STATUS_EXPIRED = "EXPIRED"
STATUS_ERROR = "ERROR"
STATUS_DISCONNECTED = "DISCONNECTED"

# Errors newer than this mark an account as failing
RECENT_ERROR_WINDOW = timedelta(hours=24)


class AccountStatusInfo(BaseModel):
    """Derived connection status of a social account."""

    status: str = Field(description="CONNECTED, EXPIRED, ERROR or DISCONNECTED")
    expires_in_sec: int | None = Field(
        default=None, description="Seconds until the token expires"
    )
    message: str | None = Field(default=None, description="Status explanation")
    last_success_at: datetime | None = Field(
        default=None, description="Last successful provider call"
    )
    last_error_at: datetime | None = Field(
        default=None, description="Last failed provider call"
    )


def _seconds_until(expires_at: datetime | None, now: datetime) -> int | None:
    if expires_at is None:
        return None
    return math.floor((expires_at - now).total_seconds())


def compute_account_status(
    account: Any, now: datetime | None = None
) -> AccountStatusInfo:
    """Derive the connection status of an account.

    Args:
        account: SocialAccount (or any object with the same attributes).
        now: Reference time, defaults to the current UTC time.

    Returns:
        AccountStatusInfo for display and filtering.
    """
    now = ensure_utc(now) if now is not None else datetime.now(UTC)
    last_error_at = ensure_utc_or_none(account.last_error_at)
    last_success_at = ensure_utc_or_none(account.last_success_at)
    history = {"last_success_at": last_success_at, "last_error_at": last_error_at}

    if not account.is_active or not account.has_access_token():
        return AccountStatusInfo(status=STATUS_DISCONNECTED, **history)

    expires_at = ensure_utc_or_none(account.expires_at)
    if expires_at is not None and expires_at < now:
        return AccountStatusInfo(
            status=STATUS_EXPIRED,
            expires_in_sec=0,
            message="Token has expired",
            **history,
        )

    if (
        last_error_at is not None
        and now - last_error_at < RECENT_ERROR_WINDOW
        and (last_success_at is None or last_error_at > last_success_at)
    ):
        return AccountStatusInfo(
            status=STATUS_ERROR,
            expires_in_sec=_seconds_until(expires_at, now),
            message="Recent error detected",
            **history,
        )

    return AccountStatusInfo(
        status=STATUS_CONNECTED,
        expires_in_sec=_seconds_until(expires_at, now),
        **history,
    )


def format_expiry_time(seconds: int | None) -> str:
    """Format seconds until expiry, e.g. ``2d 3h`` or ``45m``."""
    if seconds is None:
        return "Never expires"
    if seconds <= 0:
        return "Expired"

    days, remainder = divmod(seconds, 86400)
    hours, remainder = divmod(remainder, 3600)
    minutes = remainder // 60

    if days > 0:
        return f"{days}d {hours}h"
    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"


def format_time_ago(value: datetime | None, now: datetime | None = None) -> str:
    """Format a past timestamp relative to now, e.g. ``2d ago``."""
    if value is None:
        return "Never"
    now = ensure_utc(now) if now is not None else datetime.now(UTC)
    seconds = int((now - ensure_utc(value)).total_seconds())

    days, remainder = divmod(seconds, 86400)
    hours, remainder = divmod(remainder, 3600)
    minutes = remainder // 60

    if days > 0:
        return f"{days}d ago"
    if hours > 0:
        return f"{hours}h ago"
    if minutes > 0:
        return f"{minutes}m ago"
    return "Just now"
