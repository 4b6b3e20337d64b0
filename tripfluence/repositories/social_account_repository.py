# SPDX-FileCopyrightText: 2026 Andrew Grimberg <tykeal@bardicgrove.org>
# SPDX-License-Identifier: Apache-2.0
"""Repository for connected social and event platform accounts."""

from collections.abc import Sequence
from datetime import UTC, datetime, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tripfluence.models.social_account import SocialAccount


class SocialAccountRepository:
    """Repository for SocialAccount operations."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with database session.

        Args:
            session: Async SQLAlchemy session.
        """
        self._session = session

    async def get_by_id(
        self, account_id: int, business_id: int | None = None
    ) -> SocialAccount | None:
        """Get account by ID, optionally scoped to a business."""
        query = select(SocialAccount).where(SocialAccount.id == account_id)
        if business_id is not None:
            query = query.where(SocialAccount.business_id == business_id)
        result = await self._session.execute(query)
        return result.scalar_one_or_none()

    async def list_for_business(self, business_id: int) -> Sequence[SocialAccount]:
        """List all accounts of a business ordered by provider."""
        result = await self._session.execute(
            select(SocialAccount)
            .where(SocialAccount.business_id == business_id)
            .order_by(SocialAccount.provider, SocialAccount.id)
        )
        return result.scalars().all()

    async def get_active_for_providers(
        self, business_id: int, providers: Sequence[str]
    ) -> Sequence[SocialAccount]:
        """Get active accounts of a business for the given providers."""
        result = await self._session.execute(
            select(SocialAccount)
            .where(
                SocialAccount.business_id == business_id,
                SocialAccount.provider.in_(list(providers)),
                SocialAccount.is_active == True,  # noqa: E712
            )
            .order_by(SocialAccount.id)
        )
        return result.scalars().all()

    async def get_by_external_id(
        self, business_id: int, provider: str, external_id: str
    ) -> SocialAccount | None:
        """Find the account for a provider-side identity."""
        result = await self._session.execute(
            select(SocialAccount).where(
                SocialAccount.business_id == business_id,
                SocialAccount.provider == provider,
                SocialAccount.external_id == external_id,
            )
        )
        return result.scalar_one_or_none()

    async def get_expiring(self, buffer_seconds: int = 0) -> Sequence[SocialAccount]:
        """Get active, refreshable accounts expiring within a buffer.

        Args:
            buffer_seconds: Include tokens expiring within this many seconds.

        Returns:
            Accounts due for a token refresh.
        """
        cutoff = datetime.now(UTC) + timedelta(seconds=buffer_seconds)
        result = await self._session.execute(
            select(SocialAccount).where(
                SocialAccount.is_active == True,  # noqa: E712
                SocialAccount._refresh_token.is_not(None),
                SocialAccount.expires_at.is_not(None),
                SocialAccount.expires_at < cutoff,
            )
        )
        return result.scalars().all()

    async def create(self, account: SocialAccount) -> SocialAccount:
        """Create a new account."""
        self._session.add(account)
        await self._session.flush()
        await self._session.refresh(account)
        return account

    async def update(self, account: SocialAccount) -> SocialAccount:
        """Persist changes made to an account."""
        await self._session.flush()
        await self._session.refresh(account)
        return account
