# SPDX-FileCopyrightText: 2026 Andrew Grimberg <tykeal@bardicgrove.org>
# SPDX-License-Identifier: Apache-2.0
"""Repository for EventSync records."""

from collections.abc import Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tripfluence.models.event_sync import SYNC_ACTIVE, SYNC_PENDING, EventSync


class EventSyncRepository:
    """Repository for EventSync operations."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with database session.

        Args:
            session: Async SQLAlchemy session.
        """
        self._session = session

    async def get_by_id(self, sync_id: int, business_id: int) -> EventSync | None:
        """Get a business' event sync by ID."""
        result = await self._session.execute(
            select(EventSync).where(
                EventSync.id == sync_id, EventSync.business_id == business_id
            )
        )
        return result.scalar_one_or_none()

    async def get_for_listing(
        self, business_id: int, listing_id: int
    ) -> EventSync | None:
        """Get the event sync of a listing, if any."""
        result = await self._session.execute(
            select(EventSync).where(
                EventSync.business_id == business_id,
                EventSync.listing_id == listing_id,
            )
        )
        return result.scalar_one_or_none()

    async def list_for_business(self, business_id: int) -> Sequence[EventSync]:
        """List a business' event syncs, most recently updated first."""
        result = await self._session.execute(
            select(EventSync)
            .where(EventSync.business_id == business_id)
            .order_by(EventSync.updated_at.desc(), EventSync.id.desc())
        )
        return result.scalars().all()

    async def get_pending(self, limit: int = 50) -> Sequence[EventSync]:
        """Get active syncs waiting to be pushed to their platforms, oldest first."""
        result = await self._session.execute(
            select(EventSync)
            .where(
                EventSync.last_sync_status == SYNC_PENDING,
                EventSync.status == SYNC_ACTIVE,
            )
            .order_by(EventSync.updated_at)
            .limit(limit)
        )
        return result.scalars().all()

    async def create(self, event_sync: EventSync) -> EventSync:
        """Create a new event sync."""
        self._session.add(event_sync)
        await self._session.flush()
        await self._session.refresh(event_sync)
        return event_sync

    async def update(self, event_sync: EventSync) -> EventSync:
        """Persist changes made to an event sync."""
        await self._session.flush()
        await self._session.refresh(event_sync)
        return event_sync
