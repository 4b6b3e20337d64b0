# SPDX-FileCopyrightText: 2026 Andrew Grimberg <tykeal@bardicgrove.org>
# SPDX-License-Identifier: Apache-2.0
"""Unit tests for the idempotency cache."""

from datetime import UTC, datetime, timedelta

from tripfluence.services.idempotency import IdempotencyCache, get_idempotency_cache


class TestIdempotencyCache:
    """Tests for IdempotencyCache."""

    def test_make_key(self) -> None:
        """Test keys are namespaced by scope."""
        key = IdempotencyCache.make_key("space-request:4", "abc")

        assert key == "space-request:4:abc"

    def test_set_and_get(self) -> None:
        """Test a stored response is returned."""
        cache = IdempotencyCache(ttl_seconds=60)
        cache.set("scope:key", {"id": 1})

        assert cache.get("scope:key") == {"id": 1}
        assert cache.get("scope:other") is None

    def test_expired_entry_is_dropped(self) -> None:
        """Test entries older than the TTL are not returned."""
        cache = IdempotencyCache(ttl_seconds=60)
        cache._cache["scope:key"] = (
            {"id": 1},
            datetime.now(UTC) - timedelta(seconds=120),
        )

        assert cache.get("scope:key") is None
        assert "scope:key" not in cache._cache

    def test_purge_expired(self) -> None:
        """Test purging removes only expired entries."""
        cache = IdempotencyCache(ttl_seconds=60)
        cache.set("fresh", {"id": 1})
        cache._cache["stale"] = ({"id": 2}, datetime.now(UTC) - timedelta(hours=1))

        assert cache.purge_expired() == 1
        assert cache.get("fresh") == {"id": 1}

    def test_clear(self) -> None:
        """Test clear drops everything."""
        cache = IdempotencyCache(ttl_seconds=60)
        cache.set("a", {})
        cache.clear()

        assert cache.get("a") is None

    def test_global_instance(self) -> None:
        """Test the global cache is a singleton."""
        assert get_idempotency_cache() is get_idempotency_cache()
