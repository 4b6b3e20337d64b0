# SPDX-FileCopyrightText: 2026 Andrew Grimberg <tykeal@bardicgrove.org>
# SPDX-License-Identifier: Apache-2.0
"""Unit tests for social account status derivation."""

from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock

import pytest

from tripfluence.services.account_status import (
    STATUS_CONNECTED,
    STATUS_DISCONNECTED,
    STATUS_ERROR,
    STATUS_EXPIRED,
    compute_account_status,
    format_expiry_time,
    format_time_ago,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


def make_account(**kwargs) -> MagicMock:
    """Account stand-in that is connected unless told otherwise."""
    account = MagicMock()
    account.is_active = kwargs.get("is_active", True)
    account.has_access_token.return_value = kwargs.get("has_token", True)
    account.expires_at = kwargs.get("expires_at")
    account.last_error_at = kwargs.get("last_error_at")
    account.last_success_at = kwargs.get("last_success_at")
    return account


class TestComputeAccountStatus:
    """Tests for compute_account_status."""

    def test_inactive_is_disconnected(self) -> None:
        """Test a disconnected account."""
        info = compute_account_status(make_account(is_active=False), now=NOW)

        assert info.status == STATUS_DISCONNECTED

    def test_missing_token_is_disconnected(self) -> None:
        """Test an account without an access token."""
        info = compute_account_status(make_account(has_token=False), now=NOW)

        assert info.status == STATUS_DISCONNECTED

    def test_expired_token(self) -> None:
        """Test an account whose token expired."""
        account = make_account(expires_at=NOW - timedelta(minutes=1))

        info = compute_account_status(account, now=NOW)

        assert info.status == STATUS_EXPIRED
        assert info.expires_in_sec == 0
        assert info.message == "Token has expired"

    def test_recent_error(self) -> None:
        """Test an error newer than the last success within a day."""
        account = make_account(
            last_success_at=NOW - timedelta(hours=5),
            last_error_at=NOW - timedelta(hours=1),
        )

        info = compute_account_status(account, now=NOW)

        assert info.status == STATUS_ERROR
        assert info.message == "Recent error detected"

    def test_old_error_is_connected(self) -> None:
        """Test errors older than a day are ignored."""
        account = make_account(last_error_at=NOW - timedelta(days=2))

        info = compute_account_status(account, now=NOW)

        assert info.status == STATUS_CONNECTED

    def test_error_before_success_is_connected(self) -> None:
        """Test a success after the error clears it."""
        account = make_account(
            last_error_at=NOW - timedelta(hours=3),
            last_success_at=NOW - timedelta(hours=1),
        )

        info = compute_account_status(account, now=NOW)

        assert info.status == STATUS_CONNECTED

    def test_connected_reports_expiry(self) -> None:
        """Test seconds until expiry are reported for healthy accounts."""
        account = make_account(expires_at=NOW + timedelta(hours=2))

        info = compute_account_status(account, now=NOW)

        assert info.status == STATUS_CONNECTED
        assert info.expires_in_sec == 7200

    def test_naive_timestamps(self) -> None:
        """Test naive timestamps from the database are treated as UTC."""
        account = make_account(expires_at=datetime(2026, 3, 1, 11, 0))

        info = compute_account_status(account, now=NOW)

        assert info.status == STATUS_EXPIRED


class TestFormatting:
    """Tests for display helpers."""

    @pytest.mark.parametrize(
        ("seconds", "expected"),
        [
            (None, "Never expires"),
            (0, "Expired"),
            (-10, "Expired"),
            (90061, "1d 1h"),
            (3720, "1h 2m"),
            (300, "5m"),
        ],
    )
    def test_format_expiry_time(self, seconds: int | None, expected: str) -> None:
        """Test expiry formatting."""
        assert format_expiry_time(seconds) == expected

    @pytest.mark.parametrize(
        ("delta", "expected"),
        [
            (timedelta(days=2, hours=3), "2d ago"),
            (timedelta(hours=3), "3h ago"),
            (timedelta(minutes=5), "5m ago"),
            (timedelta(seconds=30), "Just now"),
        ],
    )
    def test_format_time_ago(self, delta: timedelta, expected: str) -> None:
        """Test relative time formatting."""
        assert format_time_ago(NOW - delta, now=NOW) == expected

    def test_format_time_ago_never(self) -> None:
        """Test a missing timestamp."""
        assert format_time_ago(None) == "Never"
