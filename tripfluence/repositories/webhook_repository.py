# SPDX-FileCopyrightText: 2026 Andrew Grimberg <tykeal@bardicgrove.org>
# SPDX-License-Identifier: Apache-2.0
"""Repository for webhook endpoints and deliveries."""

from collections.abc import Sequence
from datetime import UTC, datetime, timedelta
from typing import cast

from sqlalchemy import CursorResult, delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from tripfluence.models.webhook import WebhookDelivery, WebhookEndpoint
from tripfluence.repositories.base import DEFAULT_PAGE_SIZE, paginate


class WebhookRepository:
    """Repository for WebhookEndpoint and WebhookDelivery operations."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with database session.

        Args:
            session: Async SQLAlchemy session.
        """
        self._session = session

    async def get_endpoint(
        self, endpoint_id: int, business_id: int
    ) -> WebhookEndpoint | None:
        """Get a business' webhook endpoint by ID."""
        result = await self._session.execute(
            select(WebhookEndpoint).where(
                WebhookEndpoint.id == endpoint_id,
                WebhookEndpoint.business_id == business_id,
            )
        )
        return result.scalar_one_or_none()

    async def list_endpoints(self, business_id: int) -> Sequence[WebhookEndpoint]:
        """List all endpoints of a business."""
        result = await self._session.execute(
            select(WebhookEndpoint)
            .where(WebhookEndpoint.business_id == business_id)
            .order_by(WebhookEndpoint.id)
        )
        return result.scalars().all()

    async def get_active_endpoints(
        self, business_id: int
    ) -> Sequence[WebhookEndpoint]:
        """List endpoints of a business that receive events."""
        result = await self._session.execute(
            select(WebhookEndpoint)
            .where(
                WebhookEndpoint.business_id == business_id,
                WebhookEndpoint.active == True,  # noqa: E712
            )
            .order_by(WebhookEndpoint.id)
        )
        return result.scalars().all()

    async def create_endpoint(self, endpoint: WebhookEndpoint) -> WebhookEndpoint:
        """Create a new endpoint."""
        self._session.add(endpoint)
        await self._session.flush()
        await self._session.refresh(endpoint)
        return endpoint

    async def update_endpoint(self, endpoint: WebhookEndpoint) -> WebhookEndpoint:
        """Persist changes made to an endpoint."""
        await self._session.flush()
        await self._session.refresh(endpoint)
        return endpoint

    async def delete_endpoint(self, endpoint: WebhookEndpoint) -> None:
        """Delete an endpoint and its delivery log."""
        await self._session.execute(
            delete(WebhookDelivery).where(WebhookDelivery.endpoint_id == endpoint.id)
        )
        await self._session.delete(endpoint)
        await self._session.flush()

    async def add_delivery(self, delivery: WebhookDelivery) -> WebhookDelivery:
        """Record a delivery attempt."""
        self._session.add(delivery)
        await self._session.flush()
        await self._session.refresh(delivery)
        return delivery

    async def list_deliveries(
        self,
        endpoint_id: int,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> tuple[Sequence[WebhookDelivery], int]:
        """List deliveries of an endpoint, newest first."""
        query = (
            select(WebhookDelivery)
            .where(WebhookDelivery.endpoint_id == endpoint_id)
            .order_by(WebhookDelivery.created_at.desc(), WebhookDelivery.id.desc())
        )
        return await paginate(self._session, query, page, limit)

    async def purge_deliveries(self, days: int = 30) -> int:
        """Delete deliveries older than the given number of days.

        Args:
            days: Retention period.

        Returns:
            Number of deliveries deleted.
        """
        cutoff = datetime.now(UTC) - timedelta(days=days)
        result = cast(
            "CursorResult[tuple[()]]",
            await self._session.execute(
                delete(WebhookDelivery).where(WebhookDelivery.created_at < cutoff)
            ),
        )
        await self._session.flush()
        return result.rowcount or 0
