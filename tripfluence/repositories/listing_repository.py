# SPDX-FileCopyrightText: 2026 Andrew Grimberg <tykeal@bardicgrove.org>
# SPDX-License-Identifier: Apache-2.0
"""Repository for Listing database operations."""

import secrets
import string
from collections.abc import Sequence

from sqlalchemy import delete, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from tripfluence.models.event_sync import EventSync
from tripfluence.models.listing import LISTING_PUBLISHED, Listing
from tripfluence.models.order import Order
from tripfluence.models.review import Review
from tripfluence.repositories.base import DEFAULT_PAGE_SIZE, paginate
from tripfluence.utils.ids import slugify


class ListingRepository:
    """Repository for Listing CRUD operations."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with database session.

        Args:
            session: Async SQLAlchemy session.
        """
        self._session = session

    async def get_by_id(
        self, listing_id: int, business_id: int | None = None
    ) -> Listing | None:
        """Get listing by ID.

        Args:
            listing_id: Listing primary key.
            business_id: Owning business, when the lookup is tenant-scoped.

        Returns:
            Listing if found, None otherwise.
        """
        query = select(Listing).where(Listing.id == listing_id)
        if business_id is not None:
            query = query.where(Listing.business_id == business_id)
        result = await self._session.execute(query)
        return result.scalar_one_or_none()

    async def get_published(self, listing_id: int) -> Listing | None:
        """Get a listing only if it is published."""
        result = await self._session.execute(
            select(Listing).where(
                Listing.id == listing_id, Listing.status == LISTING_PUBLISHED
            )
        )
        return result.scalar_one_or_none()

    async def get_by_slug(self, business_id: int, slug: str) -> Listing | None:
        """Get a business' listing by slug."""
        result = await self._session.execute(
            select(Listing).where(
                Listing.business_id == business_id, Listing.slug == slug
            )
        )
        return result.scalar_one_or_none()

    async def list_for_business(
        self,
        business_id: int,
        listing_type: str | None = None,
        status: str | None = None,
        q: str | None = None,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> tuple[Sequence[Listing], int]:
        """List a business' listings with filters.

        Returns:
            Tuple of (listings on the page, total count).
        """
        query = select(Listing).where(Listing.business_id == business_id)
        if listing_type:
            query = query.where(Listing.type == listing_type)
        if status:
            query = query.where(Listing.status == status)
        if q:
            pattern = f"%{q}%"
            query = query.where(
                or_(Listing.title.ilike(pattern), Listing.description.ilike(pattern))
            )
        query = query.order_by(Listing.updated_at.desc(), Listing.id.desc())
        return await paginate(self._session, query, page, limit)

    async def create(self, listing: Listing) -> Listing:
        """Create a new listing.

        Args:
            listing: Listing entity to create.

        Returns:
            Created listing with ID.
        """
        self._session.add(listing)
        await self._session.flush()
        await self._session.refresh(listing)
        return listing

    async def update(self, listing: Listing) -> Listing:
        """Persist changes made to a listing."""
        await self._session.flush()
        await self._session.refresh(listing)
        return listing

    async def has_orders(self, listing_id: int) -> bool:
        """Check whether any order was placed for a listing."""
        result = await self._session.execute(
            select(Order.id).where(Order.listing_id == listing_id).limit(1)
        )
        return result.scalar_one_or_none() is not None

    async def delete(self, listing: Listing) -> None:
        """Delete a listing with its reviews and event syncs."""
        await self._session.execute(
            delete(Review).where(Review.listing_id == listing.id)
        )
        await self._session.execute(
            delete(EventSync).where(EventSync.listing_id == listing.id)
        )
        await self._session.delete(listing)
        await self._session.flush()

    async def generate_unique_slug(self, business_id: int, title: str) -> str:
        """Generate a slug from a title that is unique within the business.

        Args:
            business_id: Owning business.
            title: Listing title.

        Returns:
            URL-safe slug.
        """
        base_slug = slugify(title, max_length=90, fallback="listing")

        existing = await self.get_by_slug(business_id, base_slug)
        if existing is None:
            return base_slug

        # Add random suffix if collision
        suffix = "".join(secrets.choice(string.ascii_lowercase) for _ in range(6))
        return f"{base_slug}-{suffix}"
