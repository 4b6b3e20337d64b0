# SPDX-FileCopyrightText: 2026 Andrew Grimberg <tykeal@bardicgrove.org>
# SPDX-License-Identifier: Apache-2.0
"""In-memory replay cache for requests carrying an Idempotency-Key."""

from datetime import UTC, datetime, timedelta
from typing import Any

from tripfluence.config import get_settings

IDEMPOTENCY_HEADER = "Idempotency-Key"


class IdempotencyCache:
    """Simple in-memory cache of first responses keyed by scope and key."""

    def __init__(self, ttl_seconds: int) -> None:
        """Initialize cache with TTL.

        Args:
            ttl_seconds: Time-to-live for cache entries.
        """
        self._cache: dict[str, tuple[dict[str, Any], datetime]] = {}
        self._ttl = timedelta(seconds=ttl_seconds)

    @staticmethod
    def make_key(scope: str, key: str) -> str:
        """Build a cache key for an operation scope and client key."""
        return f"{scope}:{key}"

    def get(self, key: str) -> dict[str, Any] | None:
        """Get cached response if not expired.

        Args:
            key: Cache key from make_key.

        Returns:
            Cached response body or None if expired/missing.
        """
        if key not in self._cache:
            return None

        value, timestamp = self._cache[key]
        if datetime.now(UTC) - timestamp > self._ttl:
            del self._cache[key]
            return None

        return value

    def set(self, key: str, value: dict[str, Any]) -> None:
        """Store a response body.

        Args:
            key: Cache key from make_key.
            value: JSON-serializable response body.
        """
        self._cache[key] = (value, datetime.now(UTC))

    def purge_expired(self) -> int:
        """Drop expired entries.

        Returns:
            Number of entries removed.
        """
        now = datetime.now(UTC)
        expired = [k for k, (_, ts) in self._cache.items() if now - ts > self._ttl]
        for key in expired:
            del self._cache[key]
        return len(expired)

    def clear(self) -> None:
        """Clear all cache entries."""
        self._cache.clear()


# Global cache instance
_idempotency_cache: IdempotencyCache | None = None


def get_idempotency_cache() -> IdempotencyCache:
    """Get the global idempotency cache instance.

    Returns:
        IdempotencyCache singleton.
    """
    global _idempotency_cache  # noqa: PLW0603
    if _idempotency_cache is None:
        _idempotency_cache = IdempotencyCache(get_settings().idempotency_ttl_seconds)
    return _idempotency_cache
