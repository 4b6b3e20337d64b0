# SPDX-FileCopyrightText: 2026 Andrew Grimberg <tykeal@bardicgrove.org>
# SPDX-License-Identifier: Apache-2.0
"""Order checkout, payment capture, cancellation and refunds."""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from tripfluence.config import get_settings
from tripfluence.models.listing import Listing
from tripfluence.models.order import (
    ORDER_CANCELLED,
    ORDER_PAID,
    ORDER_PARTIALLY_REFUNDED,
    ORDER_PENDING,
    ORDER_REFUNDED,
    PAYMENT_CHARGE,
    PAYMENT_REFUND,
    PAYMENT_SUCCEEDED,
    Order,
    Payment,
)
from tripfluence.repositories.order_repository import OrderRepository

logger = logging.getLogger(__name__)

MANUAL_PROVIDER = "MANUAL"
STRIPE_PROVIDER = "STRIPE"
RAZORPAY_PROVIDER = "RAZORPAY"


class OrderError(Exception):
    """Exception raised when an order operation is not allowed."""

    pass


def _require_configured(provider: str) -> None:
    settings = get_settings()
    configured = {
        MANUAL_PROVIDER: True,
        STRIPE_PROVIDER: settings.has_stripe(),
        RAZORPAY_PROVIDER: settings.has_razorpay(),
    }
    if not configured.get(provider, False):
        msg = f"Payment provider {provider} is not configured"
        raise OrderError(msg)


class OrderService:
    """Service applying order rules and recording payments.

    Payments are recorded with their provider tag only; no gateway is
    contacted.
    """

    def __init__(self, session: AsyncSession) -> None:
        """Initialize order service.

        Args:
            session: Async database session.
        """
        self._repo = OrderRepository(session)

    async def checkout(
        self,
        listing: Listing,
        *,
        customer_email: str,
        customer_name: str,
        quantity: int = 1,
        customer_phone: str | None = None,
    ) -> Order:
        """Create a PENDING order for a published listing.

        Args:
            listing: Listing being purchased.
            customer_email: Customer email.
            customer_name: Customer name.
            quantity: Number of units, at least 1.
            customer_phone: Customer phone.

        Returns:
            The created order.

        Raises:
            OrderError: If the listing is not published or quantity is invalid.
            RepositoryError: If no order number could be allocated.
        """
        if not listing.is_published:
            msg = "Listing is not available for purchase"
            raise OrderError(msg)
        if quantity < 1:
            msg = "Quantity must be at least 1"
            raise OrderError(msg)
        if listing.capacity is not None and quantity > listing.capacity:
            msg = f"Quantity exceeds listing capacity of {listing.capacity}"
            raise OrderError(msg)

        order = await self._repo.create(
            Order(
                business_id=listing.business_id,
                listing_id=listing.id,
                order_number=await self._repo.generate_order_number(),
                customer_email=customer_email,
                customer_name=customer_name,
                customer_phone=customer_phone,
                quantity=quantity,
                unit_amount=listing.price_from,
                total_amount=listing.price_from * quantity,
                refunded_amount=0,
                currency=listing.currency,
                status=ORDER_PENDING,
                payments=[],
            )
        )
        logger.info(
            "Created order %s for listing %d (%d x %d)",
            order.order_number,
            listing.id,
            quantity,
            listing.price_from,
        )
        return order

    async def capture(self, order: Order, provider: str = MANUAL_PROVIDER) -> Order:
        """Record the charge of a pending order and mark it PAID.

        Raises:
            OrderError: If the order is not PENDING or the provider is not
                configured.
        """
        if order.status != ORDER_PENDING:
            msg = f"Order cannot be captured in status {order.status}"
            raise OrderError(msg)
        _require_configured(provider)

        order.status = ORDER_PAID
        order = await self._repo.add_payment(
            order,
            Payment(
                payment_number=await self._repo.generate_payment_number(),
                provider=provider,
                kind=PAYMENT_CHARGE,
                amount=order.total_amount,
                status=PAYMENT_SUCCEEDED,
            ),
        )
        logger.info("Captured order %s via %s", order.order_number, provider)
        return order

    async def cancel(self, order: Order) -> Order:
        """Cancel an unpaid order.

        Raises:
            OrderError: If the order is not PENDING.
        """
        if order.status != ORDER_PENDING:
            msg = f"Order cannot be cancelled in status {order.status}"
            raise OrderError(msg)

        order.status = ORDER_CANCELLED
        order = await self._repo.update(order)
        logger.info("Cancelled order %s", order.order_number)
        return order

    async def refund(
        self,
        order: Order,
        amount: int | None = None,
        provider: str | None = None,
    ) -> Order:
        """Refund all or part of a paid order.

        Args:
            order: Order to refund.
            amount: Amount in minor units, defaults to everything refundable.
            provider: Provider tag, defaults to the provider of the charge.

        Returns:
            Order in REFUNDED or PARTIALLY_REFUNDED status.

        Raises:
            OrderError: If the order is not paid or the amount is invalid.
        """
        if order.status not in (ORDER_PAID, ORDER_PARTIALLY_REFUNDED):
            msg = f"Order cannot be refunded in status {order.status}"
            raise OrderError(msg)

        remaining = order.refundable_amount
        amount = remaining if amount is None else amount
        if amount <= 0:
            msg = "Refund amount must be positive"
            raise OrderError(msg)
        if amount > remaining:
            msg = f"Refund amount exceeds refundable balance of {remaining}"
            raise OrderError(msg)

        if provider is None:
            charge = next(
                (p for p in order.payments if p.kind == PAYMENT_CHARGE), None
            )
            provider = charge.provider if charge is not None else MANUAL_PROVIDER

        order.refunded_amount += amount
        order.status = (
            ORDER_REFUNDED
            if order.refunded_amount >= order.total_amount
            else ORDER_PARTIALLY_REFUNDED
        )
        order = await self._repo.add_payment(
            order,
            Payment(
                payment_number=await self._repo.generate_payment_number(),
                provider=provider,
                kind=PAYMENT_REFUND,
                amount=amount,
                status=PAYMENT_SUCCEEDED,
            ),
        )
        logger.info(
            "Refunded %d on order %s (%s)", amount, order.order_number, order.status
        )
        return order
