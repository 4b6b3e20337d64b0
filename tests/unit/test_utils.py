# SPDX-FileCopyrightText: 2026 Andrew Grimberg <tykeal@bardicgrove.org>
# SPDX-License-Identifier: Apache-2.0
"""Unit tests for identifier and time helpers."""

import re
from datetime import UTC, datetime, timedelta, timezone

import pytest

from tripfluence.utils.ids import (
    create_api_key,
    create_order_number,
    create_payment_number,
    hash_api_key,
    slugify,
)
from tripfluence.utils.timeutils import (
    ensure_utc,
    ensure_utc_or_none,
    isoformat_or_none,
)


class TestIdentifiers:
    """Tests for generated identifiers."""

    def test_order_number_format(self) -> None:
        """Test order numbers are ORD- plus 8 uppercase alphanumerics."""
        assert re.fullmatch(r"ORD-[0-9A-Z]{8}", create_order_number())

    def test_payment_number_format(self) -> None:
        """Test payment numbers are PAY- plus 10 uppercase alphanumerics."""
        assert re.fullmatch(r"PAY-[0-9A-Z]{10}", create_payment_number())

    def test_api_key(self) -> None:
        """Test API keys are prefixed and unique."""
        key = create_api_key()

        assert key.startswith("tf_")
        assert len(key) > 20
        assert key != create_api_key()

    def test_hash_api_key(self) -> None:
        """Test key hashes are stable SHA-256 hex digests."""
        digest = hash_api_key("tf_example")

        assert digest == hash_api_key("tf_example")
        assert re.fullmatch(r"[0-9a-f]{64}", digest)
        assert digest != hash_api_key("tf_other")


class TestSlugify:
    """Tests for slugify."""

    @pytest.mark.parametrize(
        ("text", "expected"),
        [
            ("Loft Studio Berlin!", "loft-studio-berlin"),
            ("  --Hello   World-- ", "hello-world"),
            ("Café Nord", "caf-nord"),
            ("New York", "new-york"),
        ],
    )
    def test_slugify(self, text: str, expected: str) -> None:
        """Test conversion to URL-safe slugs."""
        assert slugify(text) == expected

    def test_fallback(self) -> None:
        """Test the fallback is used when nothing URL-safe remains."""
        assert slugify("!!!") == "item"
        assert slugify("日本", fallback="city") == "city"

    def test_max_length(self) -> None:
        """Test slugs are truncated without a trailing hyphen."""
        assert slugify("abcd efgh", max_length=5) == "abcd"


class TestTimeutils:
    """Tests for datetime helpers."""

    def test_naive_is_tagged_utc(self) -> None:
        """Test naive values are tagged rather than converted."""
        value = ensure_utc(datetime(2030, 1, 1, 10, 0))

        assert value == datetime(2030, 1, 1, 10, 0, tzinfo=UTC)

    def test_aware_is_converted(self) -> None:
        """Test aware values are converted to UTC."""
        plus_two = timezone(timedelta(hours=2))

        value = ensure_utc(datetime(2030, 1, 1, 12, 0, tzinfo=plus_two))

        assert value.hour == 10
        assert value.tzinfo == UTC

    def test_none_passthrough(self) -> None:
        """Test None is passed through."""
        assert ensure_utc_or_none(None) is None
        assert isoformat_or_none(None) is None

    def test_isoformat(self) -> None:
        """Test stored values serialize with an explicit offset."""
        assert (
            isoformat_or_none(datetime(2030, 1, 1, 10, 0))
            == "2030-01-01T10:00:00+00:00"
        )
