# SPDX-FileCopyrightText: 2026 Andrew Grimberg <tykeal@bardicgrove.org>
# SPDX-License-Identifier: Apache-2.0
"""Repository for businesses, role assignments and API keys."""

from collections.abc import Sequence
from datetime import UTC, datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tripfluence.models.business import ApiKey, Business, RoleAssignment


class BusinessRepository:
    """Repository for tenant and access-control records."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with database session.

        Args:
            session: Async SQLAlchemy session.
        """
        self._session = session

    async def get_by_id(self, business_id: int) -> Business | None:
        """Get business by ID.

        Args:
            business_id: Business primary key.

        Returns:
            Business if found, None otherwise.
        """
        return await self._session.get(Business, business_id)

    async def create(self, business: Business) -> Business:
        """Create a new business."""
        self._session.add(business)
        await self._session.flush()
        await self._session.refresh(business)
        return business

    async def get_role(self, user_id: str, business_id: int) -> str | None:
        """Get a user's role within a business.

        Args:
            user_id: Gateway-provided user identifier.
            business_id: Business to check.

        Returns:
            Role name, or None if the user has no assignment.
        """
        result = await self._session.execute(
            select(RoleAssignment.role).where(
                RoleAssignment.user_id == user_id,
                RoleAssignment.business_id == business_id,
            )
        )
        return result.scalar_one_or_none()

    async def assign_role(
        self, user_id: str, business_id: int, role: str
    ) -> RoleAssignment:
        """Create or update a user's role within a business.

        Args:
            user_id: Gateway-provided user identifier.
            business_id: Business the role applies to.
            role: Role name.

        Returns:
            The role assignment.
        """
        result = await self._session.execute(
            select(RoleAssignment).where(
                RoleAssignment.user_id == user_id,
                RoleAssignment.business_id == business_id,
            )
        )
        assignment = result.scalar_one_or_none()
        if assignment is None:
            assignment = RoleAssignment(
                user_id=user_id, business_id=business_id, role=role
            )
            self._session.add(assignment)
        else:
            assignment.role = role
        await self._session.flush()
        return assignment

    async def get_api_key_by_hash(self, key_hash: str) -> ApiKey | None:
        """Get an unrevoked API key by its hash.

        Args:
            key_hash: SHA-256 hex digest of the plaintext key.

        Returns:
            ApiKey if found and active, None otherwise.
        """
        result = await self._session.execute(
            select(ApiKey).where(
                ApiKey.key_hash == key_hash,
                ApiKey.revoked_at.is_(None),
            )
        )
        return result.scalar_one_or_none()

    async def get_api_key(self, key_id: int, business_id: int) -> ApiKey | None:
        """Get an API key belonging to a business."""
        result = await self._session.execute(
            select(ApiKey).where(ApiKey.id == key_id, ApiKey.business_id == business_id)
        )
        return result.scalar_one_or_none()

    async def list_api_keys(self, business_id: int) -> Sequence[ApiKey]:
        """List all API keys of a business, newest first."""
        result = await self._session.execute(
            select(ApiKey)
            .where(ApiKey.business_id == business_id)
            .order_by(ApiKey.created_at.desc(), ApiKey.id.desc())
        )
        return result.scalars().all()

    async def create_api_key(self, api_key: ApiKey) -> ApiKey:
        """Store a new API key."""
        self._session.add(api_key)
        await self._session.flush()
        await self._session.refresh(api_key)
        return api_key

    async def revoke_api_key(self, api_key: ApiKey) -> ApiKey:
        """Mark an API key as revoked."""
        api_key.revoked_at = datetime.now(UTC)
        await self._session.flush()
        await self._session.refresh(api_key)
        return api_key

    async def touch_api_key(self, api_key: ApiKey) -> None:
        """Record that an API key was just used."""
        api_key.last_used_at = datetime.now(UTC)
        await self._session.flush()
