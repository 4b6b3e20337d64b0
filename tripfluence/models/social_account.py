# SPDX-FileCopyrightText: 2026 Andrew Grimberg <tykeal@bardicgrove.org>
# SPDX-License-Identifier: Apache-2.0
"""SocialAccount model for connected social and event platforms."""

from datetime import UTC, datetime

from cryptography.fernet import Fernet
from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from tripfluence.config import get_settings
from tripfluence.database import Base
from tripfluence.utils.timeutils import utc_now

PROVIDER_FACEBOOK_PAGE = "FACEBOOK_PAGE"
PROVIDER_INSTAGRAM_BUSINESS = "INSTAGRAM_BUSINESS"
PROVIDER_GOOGLE_BUSINESS = "GOOGLE_BUSINESS"
PROVIDER_EVENTBRITE = "EVENTBRITE"
PROVIDER_MEETUP = "MEETUP"
SOCIAL_PROVIDERS = (
    PROVIDER_FACEBOOK_PAGE,
    PROVIDER_INSTAGRAM_BUSINESS,
    PROVIDER_GOOGLE_BUSINESS,
    PROVIDER_EVENTBRITE,
    PROVIDER_MEETUP,
)


def get_cipher() -> Fernet:
    """Get Fernet cipher for token encryption.

    Returns:
        Fernet cipher instance.

    Raises:
        ValueError: If encryption key is not configured.
    """
    settings = get_settings()
    if not settings.encryption_key:
        msg = "ENCRYPTION_KEY environment variable is required"
        raise ValueError(msg)
    return Fernet(settings.encryption_key.encode())


def encrypt_value(value: str | None) -> str | None:
    """Encrypt a value using Fernet.

    Args:
        value: Plain text value to encrypt.

    Returns:
        Encrypted value as string, or None if input is None.
    """
    if value is None:
        return None
    return get_cipher().encrypt(value.encode()).decode()


def decrypt_value(value: str | None) -> str | None:
    """Decrypt a value using Fernet.

    Args:
        value: Encrypted value to decrypt.

    Returns:
        Decrypted plain text value, or None if input is None.
    """
    if value is None:
        return None
    return get_cipher().decrypt(value.encode()).decode()


class SocialAccount(Base):
    """OAuth connection between a business and an external platform.

    Access and refresh tokens are stored Fernet-encrypted and exposed
    through decrypting properties.
    """

    __tablename__ = "social_accounts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    business_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False
    )
    provider: Mapped[str] = mapped_column(String(30), nullable=False)
    account_name: Mapped[str] = mapped_column(String(255), nullable=False)
    external_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    _access_token: Mapped[str | None] = mapped_column(
        "access_token", Text, nullable=True
    )
    _refresh_token: Mapped[str | None] = mapped_column(
        "refresh_token", Text, nullable=True
    )
    expires_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    last_success_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    last_error_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    last_error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        Index("idx_social_account_business", "business_id", "provider"),
        Index("idx_social_account_expiry", "is_active", "expires_at"),
    )

    @property
    def access_token(self) -> str | None:
        """Get decrypted access token."""
        return decrypt_value(self._access_token)

    @access_token.setter
    def access_token(self, value: str | None) -> None:
        """Set encrypted access token."""
        self._access_token = encrypt_value(value)

    @property
    def refresh_token(self) -> str | None:
        """Get decrypted refresh token."""
        return decrypt_value(self._refresh_token)

    @refresh_token.setter
    def refresh_token(self, value: str | None) -> None:
        """Set encrypted refresh token."""
        self._refresh_token = encrypt_value(value)

    def has_access_token(self) -> bool:
        """Check if an access token is stored, without decrypting it."""
        return self._access_token is not None

    def has_refresh_token(self) -> bool:
        """Check if a refresh token is stored, without decrypting it."""
        return self._refresh_token is not None

    def is_token_expired(self, buffer_seconds: int = 0) -> bool:
        """Check if the access token is expired.

        Args:
            buffer_seconds: Treat tokens expiring within this window as expired.

        Returns:
            True if token is expired. Tokens without an expiry never expire.
        """
        if self.expires_at is None:
            return False
        # Handle timezone-naive datetimes from database
        expires_at = self.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=UTC)
        return datetime.now(UTC).timestamp() + buffer_seconds >= expires_at.timestamp()

    def __repr__(self) -> str:
        """Return string representation."""
        return (
            f"<SocialAccount(id={self.id}, provider={self.provider}, "
            f"active={self.is_active})>"
        )
