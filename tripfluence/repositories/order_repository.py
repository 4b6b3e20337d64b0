# SPDX-FileCopyrightText: 2026 Andrew Grimberg <tykeal@bardicgrove.org>
# SPDX-License-Identifier: Apache-2.0
"""Repository for orders and payments."""

from collections.abc import Sequence
from datetime import datetime
from typing import Any

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from tripfluence.models.order import (
    ORDER_CANCELLED,
    ORDER_PENDING,
    Order,
    Payment,
)
from tripfluence.repositories.base import DEFAULT_PAGE_SIZE, RepositoryError, paginate
from tripfluence.utils.ids import create_order_number, create_payment_number

# Attempts to find an unused random order or payment number
MAX_NUMBER_ATTEMPTS = 5


class OrderRepository:
    """Repository for Order and Payment operations."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with database session.

        Args:
            session: Async SQLAlchemy session.
        """
        self._session = session

    async def get_by_id(self, order_id: int, business_id: int) -> Order | None:
        """Get a business' order by ID.

        Args:
            order_id: Order primary key.
            business_id: Owning business.

        Returns:
            Order if found, None otherwise.
        """
        result = await self._session.execute(
            select(Order).where(Order.id == order_id, Order.business_id == business_id)
        )
        return result.scalar_one_or_none()

    async def list_for_business(
        self,
        business_id: int,
        status: str | None = None,
        listing_id: int | None = None,
        q: str | None = None,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> tuple[Sequence[Order], int]:
        """List a business' orders with filters, newest first."""
        query = select(Order).where(Order.business_id == business_id)
        if status:
            query = query.where(Order.status == status)
        if listing_id is not None:
            query = query.where(Order.listing_id == listing_id)
        if q:
            pattern = f"%{q}%"
            query = query.where(
                or_(
                    Order.order_number.ilike(pattern),
                    Order.customer_email.ilike(pattern),
                    Order.customer_name.ilike(pattern),
                )
            )
        query = query.order_by(Order.created_at.desc(), Order.id.desc())
        return await paginate(self._session, query, page, limit)

    async def _number_taken(self, column: Any, value: str) -> bool:
        result = await self._session.execute(select(column).where(column == value))
        return result.first() is not None

    async def generate_order_number(self) -> str:
        """Generate an unused order number.

        Raises:
            RepositoryError: If no unused number was found.
        """
        for _ in range(MAX_NUMBER_ATTEMPTS):
            number = create_order_number()
            if not await self._number_taken(Order.order_number, number):
                return number
        msg = "Could not allocate a unique order number"
        raise RepositoryError(msg)

    async def generate_payment_number(self) -> str:
        """Generate an unused payment number.

        Raises:
            RepositoryError: If no unused number was found.
        """
        for _ in range(MAX_NUMBER_ATTEMPTS):
            number = create_payment_number()
            if not await self._number_taken(Payment.payment_number, number):
                return number
        msg = "Could not allocate a unique payment number"
        raise RepositoryError(msg)

    async def create(self, order: Order) -> Order:
        """Create a new order."""
        self._session.add(order)
        await self._session.flush()
        await self._session.refresh(order)
        return order

    async def add_payment(self, order: Order, payment: Payment) -> Order:
        """Record a payment against an order and reload it.

        Args:
            order: Order the payment belongs to.
            payment: Charge or refund to record.

        Returns:
            Order with reloaded payments.
        """
        order.payments.append(payment)
        await self._session.flush()
        await self._session.refresh(order)
        return order

    async def update(self, order: Order) -> Order:
        """Persist changes made to an order."""
        await self._session.flush()
        await self._session.refresh(order)
        return order

    async def totals(
        self,
        business_id: int,
        since: datetime | None = None,
        until: datetime | None = None,
    ) -> dict[str, int]:
        """Aggregate order counts and amounts for reporting.

        Cancelled and still-pending orders count as orders but not revenue.

        Args:
            business_id: Owning business.
            since: Only orders created at or after this instant.
            until: Only orders created before this instant.

        Returns:
            Dict with orders, revenue and refunds.
        """
        conditions = [Order.business_id == business_id]
        if since is not None:
            conditions.append(Order.created_at >= since)
        if until is not None:
            conditions.append(Order.created_at < until)

        count_result = await self._session.execute(
            select(func.count()).select_from(Order).where(*conditions)
        )
        money_result = await self._session.execute(
            select(
                func.coalesce(func.sum(Order.total_amount), 0),
                func.coalesce(func.sum(Order.refunded_amount), 0),
            ).where(
                *conditions,
                Order.status.not_in([ORDER_PENDING, ORDER_CANCELLED]),
            )
        )
        revenue, refunds = money_result.one()
        return {
            "orders": int(count_result.scalar_one()),
            "revenue": int(revenue),
            "refunds": int(refunds),
        }
