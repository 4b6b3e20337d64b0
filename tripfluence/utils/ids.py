# SPDX-FileCopyrightText: 2026 Andrew Grimberg <tykeal@bardicgrove.org>
# SPDX-License-Identifier: Apache-2.0
"""Human-readable identifiers for orders, payments and API keys."""

import hashlib
import secrets
import string

ID_ALPHABET = string.digits + string.ascii_uppercase
ORDER_ID_LENGTH = 8
PAYMENT_ID_LENGTH = 10
API_KEY_PREFIX = "tf_"
API_KEY_DISPLAY_LENGTH = 8


def _random_code(length: int) -> str:
    return "".join(secrets.choice(ID_ALPHABET) for _ in range(length))


def create_order_number() -> str:
    """Generate an order number like ``ORD-7K2M9QX1``."""
    return f"ORD-{_random_code(ORDER_ID_LENGTH)}"


def create_payment_number() -> str:
    """Generate a payment reference like ``PAY-0Z4B8R2LQA``."""
    return f"PAY-{_random_code(PAYMENT_ID_LENGTH)}"


def create_api_key() -> str:
    """Generate a new plaintext API key.

    Returns:
        Key string with the ``tf_`` prefix.
    """
    return f"{API_KEY_PREFIX}{secrets.token_urlsafe(24)}"


def hash_api_key(key: str) -> str:
    """Hash an API key for storage and lookup.

    Args:
        key: Plaintext API key.

    Returns:
        Hex SHA-256 digest.
    """
    return hashlib.sha256(key.encode()).hexdigest()


def slugify(text: str, max_length: int = 100, fallback: str = "item") -> str:
    """Convert text to URL-safe slug.

    Args:
        text: Input text.
        max_length: Maximum slug length.
        fallback: Value used when nothing URL-safe remains.

    Returns:
        URL-safe lowercase slug.
    """
    slug = text.lower().strip().replace(" ", "-")

    # Keep only ASCII alphanumerics and hyphens
    slug = "".join(c for c in slug if (c.isascii() and c.isalnum()) or c == "-")

    while "--" in slug:
        slug = slug.replace("--", "-")

    slug = slug.strip("-")[:max_length].strip("-")
    return slug or fallback
