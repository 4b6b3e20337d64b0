# SPDX-FileCopyrightText: 2026 Andrew Grimberg <tykeal@bardicgrove.org>
# SPDX-License-Identifier: Apache-2.0
"""Repository for space booking requests and their messages."""

from collections.abc import Sequence
from datetime import UTC, datetime
from typing import cast

from sqlalchemy import CursorResult, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from tripfluence.models.space_request import (
    REQUEST_CONFIRMED,
    REQUEST_EXPIRED,
    REQUEST_NEEDS_PAYMENT,
    SpaceMessage,
    SpaceRequest,
)
from tripfluence.repositories.base import DEFAULT_PAGE_SIZE, paginate


class SpaceRequestRepository:
    """Repository for SpaceRequest CRUD and conflict queries."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with database session.

        Args:
            session: Async SQLAlchemy session.
        """
        self._session = session

    async def get_by_id(
        self, request_id: int, business_id: int | None = None
    ) -> SpaceRequest | None:
        """Get a request by ID, optionally scoped to a business.

        Args:
            request_id: Request primary key.
            business_id: Owning business.

        Returns:
            SpaceRequest if found, None otherwise.
        """
        query = select(SpaceRequest).where(SpaceRequest.id == request_id)
        if business_id is not None:
            query = query.where(SpaceRequest.business_id == business_id)
        result = await self._session.execute(query)
        return result.scalar_one_or_none()

    async def list_for_business(
        self,
        business_id: int,
        status: str | None = None,
        space_id: int | None = None,
        window_start: datetime | None = None,
        window_end: datetime | None = None,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> tuple[Sequence[SpaceRequest], int]:
        """List requests with filters.

        Args:
            business_id: Owning business.
            status: Only requests in this status.
            space_id: Only requests for this space.
            window_start: Only requests ending after this instant.
            window_end: Only requests starting before this instant.
            page: 1-based page number.
            limit: Page size.

        Returns:
            Tuple of (requests on the page, total count).
        """
        query = select(SpaceRequest).where(SpaceRequest.business_id == business_id)
        if status:
            query = query.where(SpaceRequest.status == status)
        if space_id is not None:
            query = query.where(SpaceRequest.space_id == space_id)
        if window_start is not None:
            query = query.where(SpaceRequest.end > window_start)
        if window_end is not None:
            query = query.where(SpaceRequest.start < window_end)
        query = query.order_by(SpaceRequest.start.desc(), SpaceRequest.id.desc())
        return await paginate(self._session, query, page, limit)

    async def get_for_space_in_range(
        self,
        space_id: int,
        start: datetime,
        end: datetime,
        statuses: Sequence[str] | None = None,
    ) -> Sequence[SpaceRequest]:
        """Get requests for a space overlapping a window.

        Args:
            space_id: Space to query.
            start: Window start.
            end: Window end.
            statuses: Restrict to these statuses.

        Returns:
            Overlapping requests ordered by start.
        """
        query = select(SpaceRequest).where(
            SpaceRequest.space_id == space_id,
            SpaceRequest.start < end,
            SpaceRequest.end > start,
        )
        if statuses is not None:
            query = query.where(SpaceRequest.status.in_(list(statuses)))
        result = await self._session.execute(query.order_by(SpaceRequest.start))
        return result.scalars().all()

    async def create(self, request: SpaceRequest) -> SpaceRequest:
        """Create a new request."""
        self._session.add(request)
        await self._session.flush()
        await self._session.refresh(request)
        return request

    async def update(self, request: SpaceRequest) -> SpaceRequest:
        """Persist changes made to a request."""
        await self._session.flush()
        await self._session.refresh(request)
        return request

    async def expire_holds(self, now: datetime | None = None) -> int:
        """Expire approved requests whose payment hold has lapsed.

        Args:
            now: Reference time, defaults to current UTC time.

        Returns:
            Number of requests expired.
        """
        now = now or datetime.now(UTC)
        result = cast(
            "CursorResult[tuple[()]]",
            await self._session.execute(
                update(SpaceRequest)
                .where(
                    SpaceRequest.status == REQUEST_NEEDS_PAYMENT,
                    SpaceRequest.hold_expires_at.is_not(None),
                    SpaceRequest.hold_expires_at < now,
                )
                .values(status=REQUEST_EXPIRED, updated_at=now)
                .execution_options(synchronize_session=False)
            ),
        )
        await self._session.flush()
        return result.rowcount or 0

    async def count_by_status(
        self,
        business_id: int,
        space_id: int | None = None,
        since: datetime | None = None,
        until: datetime | None = None,
    ) -> dict[str, int]:
        """Count requests per status.

        Args:
            business_id: Owning business.
            space_id: Restrict to one space.
            since: Only requests created at or after this instant.
            until: Only requests created before this instant.

        Returns:
            Mapping of status to count.
        """
        query = select(SpaceRequest.status, func.count()).where(
            SpaceRequest.business_id == business_id
        )
        if space_id is not None:
            query = query.where(SpaceRequest.space_id == space_id)
        if since is not None:
            query = query.where(SpaceRequest.created_at >= since)
        if until is not None:
            query = query.where(SpaceRequest.created_at < until)
        result = await self._session.execute(query.group_by(SpaceRequest.status))
        return {row[0]: row[1] for row in result.all()}

    async def confirmed_revenue(self, space_id: int) -> int:
        """Sum of quotes of confirmed requests for a space."""
        result = await self._session.execute(
            select(func.coalesce(func.sum(SpaceRequest.quote_amount), 0)).where(
                SpaceRequest.space_id == space_id,
                SpaceRequest.status == REQUEST_CONFIRMED,
            )
        )
        return int(result.scalar_one())

    async def add_message(self, message: SpaceMessage) -> SpaceMessage:
        """Store a message on a request thread."""
        self._session.add(message)
        await self._session.flush()
        await self._session.refresh(message)
        return message

    async def list_messages(self, request_id: int) -> Sequence[SpaceMessage]:
        """List a request's messages, oldest first."""
        result = await self._session.execute(
            select(SpaceMessage)
            .where(SpaceMessage.space_request_id == request_id)
            .order_by(SpaceMessage.created_at, SpaceMessage.id)
        )
        return result.scalars().all()
