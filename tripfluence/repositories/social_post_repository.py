# SPDX-FileCopyrightText: 2026 Andrew Grimberg <tykeal@bardicgrove.org>
# SPDX-License-Identifier: Apache-2.0
"""Repository for SocialPost records."""

from collections.abc import Sequence
from datetime import UTC, datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tripfluence.models.social_post import POST_SCHEDULED, SocialPost
from tripfluence.repositories.base import DEFAULT_PAGE_SIZE, paginate


class SocialPostRepository:
    """Repository for SocialPost operations."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with database session.

        Args:
            session: Async SQLAlchemy session.
        """
        self._session = session

    async def get_by_id(self, post_id: int, business_id: int) -> SocialPost | None:
        """Get a business' post by ID."""
        result = await self._session.execute(
            select(SocialPost).where(
                SocialPost.id == post_id, SocialPost.business_id == business_id
            )
        )
        return result.scalar_one_or_none()

    async def list_for_business(
        self,
        business_id: int,
        status: str | None = None,
        platform: str | None = None,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> tuple[Sequence[SocialPost], int]:
        """List a business' posts, newest first.

        Args:
            business_id: Owning business.
            status: Only posts in this status.
            platform: Only posts targeting this platform, e.g. ``instagram``.
            page: 1-based page number.
            limit: Page size.

        Returns:
            Tuple of (posts on the page, total count).
        """
        query = select(SocialPost).where(SocialPost.business_id == business_id)
        if status:
            query = query.where(SocialPost.status == status)
        query = query.order_by(SocialPost.created_at.desc(), SocialPost.id.desc())

        if not platform:
            return await paginate(self._session, query, page, limit)

        # Platforms live in a JSON list, so filter after loading
        result = await self._session.execute(query)
        posts = [post for post in result.scalars() if platform in post.platforms]
        start = (page - 1) * limit
        return posts[start : start + limit], len(posts)

    async def get_due(
        self, now: datetime | None = None, limit: int = 50
    ) -> Sequence[SocialPost]:
        """Get scheduled posts whose publish time has come, oldest first."""
        now = now or datetime.now(UTC)
        result = await self._session.execute(
            select(SocialPost)
            .where(
                SocialPost.status == POST_SCHEDULED,
                SocialPost.scheduled_at.is_not(None),
                SocialPost.scheduled_at <= now,
            )
            .order_by(SocialPost.scheduled_at, SocialPost.id)
            .limit(limit)
        )
        return result.scalars().all()

    async def create(self, post: SocialPost) -> SocialPost:
        """Create a new post."""
        self._session.add(post)
        await self._session.flush()
        await self._session.refresh(post)
        return post

    async def update(self, post: SocialPost) -> SocialPost:
        """Persist changes made to a post."""
        await self._session.flush()
        await self._session.refresh(post)
        return post
