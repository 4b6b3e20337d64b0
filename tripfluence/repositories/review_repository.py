# SPDX-FileCopyrightText: 2026 Andrew Grimberg <tykeal@bardicgrove.org>
# SPDX-License-Identifier: Apache-2.0
"""Repository for Review database operations."""

from collections.abc import Sequence
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tripfluence.models.review import REVIEW_APPROVED, Review
from tripfluence.repositories.base import DEFAULT_PAGE_SIZE, paginate


class ReviewRepository:
    """Repository for Review CRUD operations."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with database session.

        Args:
            session: Async SQLAlchemy session.
        """
        self._session = session

    async def get_by_id(self, review_id: int, business_id: int) -> Review | None:
        """Get a business' review by ID."""
        result = await self._session.execute(
            select(Review).where(
                Review.id == review_id, Review.business_id == business_id
            )
        )
        return result.scalar_one_or_none()

    async def list_for_business(
        self,
        business_id: int,
        status: str | None = None,
        listing_id: int | None = None,
        rating: int | None = None,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> tuple[Sequence[Review], int]:
        """List a business' reviews with filters, newest first."""
        query = select(Review).where(Review.business_id == business_id)
        if status:
            query = query.where(Review.status == status)
        if listing_id is not None:
            query = query.where(Review.listing_id == listing_id)
        if rating is not None:
            query = query.where(Review.rating == rating)
        query = query.order_by(Review.created_at.desc(), Review.id.desc())
        return await paginate(self._session, query, page, limit)

    async def list_approved_for_listing(self, listing_id: int) -> Sequence[Review]:
        """List approved reviews shown publicly for a listing."""
        result = await self._session.execute(
            select(Review)
            .where(Review.listing_id == listing_id, Review.status == REVIEW_APPROVED)
            .order_by(Review.created_at.desc())
        )
        return result.scalars().all()

    async def create(self, review: Review) -> Review:
        """Create a new review."""
        self._session.add(review)
        await self._session.flush()
        await self._session.refresh(review)
        return review

    async def update(self, review: Review) -> Review:
        """Persist changes made to a review."""
        await self._session.flush()
        await self._session.refresh(review)
        return review

    async def average_rating(
        self,
        business_id: int,
        since: datetime | None = None,
        until: datetime | None = None,
    ) -> tuple[float | None, int]:
        """Average rating and count of approved reviews.

        Returns:
            Tuple of (average rounded to 2 places or None, review count).
        """
        query = select(func.avg(Review.rating), func.count()).where(
            Review.business_id == business_id, Review.status == REVIEW_APPROVED
        )
        if since is not None:
            query = query.where(Review.created_at >= since)
        if until is not None:
            query = query.where(Review.created_at < until)
        average, count = (await self._session.execute(query)).one()
        return (round(float(average), 2) if average is not None else None, int(count))
