# SPDX-FileCopyrightText: 2026 Andrew Grimberg <tykeal@bardicgrove.org>
# SPDX-License-Identifier: Apache-2.0
"""Repository for Space, pricing rule and availability operations."""

from collections.abc import Sequence
from datetime import datetime

from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from tripfluence.models.space import (
    SPACE_PUBLISHED,
    Space,
    SpaceAvailability,
    SpacePricingRule,
)
from tripfluence.models.space_request import SpaceMessage, SpaceRequest
from tripfluence.repositories.base import DEFAULT_PAGE_SIZE, paginate
from tripfluence.utils.ids import slugify


class SpaceRepository:
    """Repository for Space CRUD operations.

    Admin lookups are always scoped to a business so that spaces of
    other tenants behave as if they did not exist.
    """

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with database session.

        Args:
            session: Async SQLAlchemy session.
        """
        self._session = session

    async def get_by_id(
        self, space_id: int, business_id: int | None = None
    ) -> Space | None:
        """Get space by ID.

        Args:
            space_id: Space primary key.
            business_id: Owning business; when given, other tenants' spaces
                are not returned.

        Returns:
            Space if found, None otherwise.
        """
        query = select(Space).where(Space.id == space_id)
        if business_id is not None:
            query = query.where(Space.business_id == business_id)
        result = await self._session.execute(query)
        return result.scalar_one_or_none()

    async def get_published(self, space_id: int) -> Space | None:
        """Get a space only if it is published."""
        result = await self._session.execute(
            select(Space).where(Space.id == space_id, Space.status == SPACE_PUBLISHED)
        )
        return result.scalar_one_or_none()

    async def get_published_by_city_slug(self, city: str, slug: str) -> Space | None:
        """Get a published space by city and slug.

        The city is compared in its URL form, as produced by ``slugify``,
        so ``st-louis`` matches a space in "St. Louis".

        Args:
            city: City name or URL form of it.
            slug: Space slug.

        Returns:
            First matching published space, None otherwise.
        """
        city_slug = slugify(city, fallback="city")
        result = await self._session.execute(
            select(Space)
            .where(Space.slug == slug, Space.status == SPACE_PUBLISHED)
            .order_by(Space.id)
        )
        for space in result.scalars():
            if slugify(space.city, fallback="city") == city_slug:
                return space
        return None

    async def slug_exists(
        self, business_id: int, slug: str, exclude_id: int | None = None
    ) -> bool:
        """Check if a slug is already used by another space of the business."""
        query = select(Space.id).where(
            Space.business_id == business_id, Space.slug == slug
        )
        if exclude_id is not None:
            query = query.where(Space.id != exclude_id)
        result = await self._session.execute(query.limit(1))
        return result.scalar_one_or_none() is not None

    async def list_for_business(
        self,
        business_id: int,
        status: str | None = None,
        q: str | None = None,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> tuple[Sequence[Space], int]:
        """List a business' spaces with optional filters.

        Returns:
            Tuple of (spaces on the page, total count).
        """
        query = select(Space).where(Space.business_id == business_id)
        if status:
            query = query.where(Space.status == status)
        if q:
            pattern = f"%{q}%"
            query = query.where(
                or_(Space.title.ilike(pattern), Space.description.ilike(pattern))
            )
        query = query.order_by(Space.updated_at.desc(), Space.id.desc())
        return await paginate(self._session, query, page, limit)

    async def list_published(
        self,
        city: str | None = None,
        min_capacity: int | None = None,
        q: str | None = None,
    ) -> Sequence[Space]:
        """List published spaces matching database-level filters.

        Price filters and sorting depend on pricing rules and are applied
        by the caller.

        Args:
            city: Case-insensitive city filter.
            min_capacity: Minimum capacity required.
            q: Free-text search over title, description and city.

        Returns:
            Matching published spaces, newest publication first.
        """
        query = select(Space).where(Space.status == SPACE_PUBLISHED)
        if city:
            query = query.where(func.lower(Space.city) == city.lower())
        if min_capacity is not None:
            query = query.where(Space.capacity >= min_capacity)
        if q:
            pattern = f"%{q}%"
            query = query.where(
                or_(
                    Space.title.ilike(pattern),
                    Space.description.ilike(pattern),
                    Space.city.ilike(pattern),
                )
            )
        result = await self._session.execute(
            query.order_by(Space.published_at.desc(), Space.id.desc())
        )
        return result.scalars().all()

    async def published_cities(self) -> list[str]:
        """Distinct cities that have at least one published space."""
        result = await self._session.execute(
            select(Space.city)
            .where(Space.status == SPACE_PUBLISHED)
            .distinct()
            .order_by(Space.city)
        )
        return list(result.scalars().all())

    async def create(self, space: Space) -> Space:
        """Create a new space.

        Args:
            space: Space entity to create.

        Returns:
            Created space with ID.
        """
        self._session.add(space)
        await self._session.flush()
        await self._session.refresh(space)
        return space

    async def update(self, space: Space) -> Space:
        """Persist changes made to a space."""
        await self._session.flush()
        await self._session.refresh(space)
        return space

    async def delete(self, space: Space) -> None:
        """Delete a space with its rules, blocks and requests."""
        request_ids = select(SpaceRequest.id).where(SpaceRequest.space_id == space.id)
        await self._session.execute(
            delete(SpaceMessage).where(SpaceMessage.space_request_id.in_(request_ids))
        )
        await self._session.execute(
            delete(SpaceRequest).where(SpaceRequest.space_id == space.id)
        )
        await self._session.delete(space)
        await self._session.flush()

    async def replace_pricing_rules(
        self, space: Space, rules: list[SpacePricingRule]
    ) -> Space:
        """Replace every pricing rule of a space.

        Args:
            space: Space whose rules are replaced.
            rules: New rules, not yet attached to a session.

        Returns:
            Space with reloaded rules.
        """
        space.pricing_rules = rules
        await self._session.flush()
        await self._session.refresh(space)
        return space

    async def add_block(self, block: SpaceAvailability) -> SpaceAvailability:
        """Store a new availability block."""
        self._session.add(block)
        await self._session.flush()
        await self._session.refresh(block)
        return block

    async def get_block(
        self, block_id: int, space_id: int
    ) -> SpaceAvailability | None:
        """Get an availability block of a space."""
        result = await self._session.execute(
            select(SpaceAvailability).where(
                SpaceAvailability.id == block_id,
                SpaceAvailability.space_id == space_id,
            )
        )
        return result.scalar_one_or_none()

    async def delete_block(self, block: SpaceAvailability) -> None:
        """Delete an availability block."""
        await self._session.delete(block)
        await self._session.flush()

    async def get_blocks_in_range(
        self,
        space_id: int,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> Sequence[SpaceAvailability]:
        """Get availability blocks of a space overlapping a window.

        Args:
            space_id: Space to query.
            start: Window start; open-ended when None.
            end: Window end; open-ended when None.

        Returns:
            Blocks ordered by start.
        """
        query = select(SpaceAvailability).where(SpaceAvailability.space_id == space_id)
        if end is not None:
            query = query.where(SpaceAvailability.start < end)
        if start is not None:
            query = query.where(SpaceAvailability.end > start)
        result = await self._session.execute(query.order_by(SpaceAvailability.start))
        return result.scalars().all()
