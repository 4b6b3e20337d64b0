# SPDX-FileCopyrightText: 2026 Andrew Grimberg <tykeal@bardicgrove.org>
# SPDX-License-Identifier: Apache-2.0
"""Order management API endpoints."""

import logging
from typing import Annotated, Any

from fastapi import (
    APIRouter,
    BackgroundTasks,
    Depends,
    HTTPException,
    Query,
    Request,
    status,
)
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from tripfluence.api.dependencies import (
    Actor,
    Pagination,
    pagination,
    record_audit,
    require_permission,
)
from tripfluence.database import get_db
from tripfluence.models.order import (
    ORDER_STATUSES,
    PAYMENT_PROVIDERS,
    Order,
)
from tripfluence.repositories.base import MAX_PAGE_SIZE
from tripfluence.repositories.order_repository import OrderRepository
from tripfluence.services import audit
from tripfluence.services.order_service import OrderError, OrderService
from tripfluence.services.webhook_service import publish_event
from tripfluence.utils.timeutils import isoformat_or_none

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/orders", tags=["Orders"])

PROVIDER_PATTERN = f"^({'|'.join(PAYMENT_PROVIDERS)})$"


class CaptureRequest(BaseModel):
    """Request model for recording an order's payment."""

    provider: str = Field(
        default="MANUAL",
        pattern=PROVIDER_PATTERN,
        description="STRIPE, RAZORPAY or MANUAL",
    )


class RefundRequest(BaseModel):
    """Request model for refunding an order."""

    amount: int | None = Field(
        default=None, gt=0, description="Amount in minor units, defaults to all"
    )
    provider: str | None = Field(
        default=None,
        pattern=PROVIDER_PATTERN,
        description="Provider tag, defaults to the charge's provider",
    )
    reason: str | None = Field(default=None, max_length=500, description="Reason")


class PaymentResponse(BaseModel):
    """Response model for a payment."""

    id: int = Field(description="Payment ID")
    payment_number: str = Field(description="PAY- number")
    provider: str = Field(description="Payment provider")
    kind: str = Field(description="CHARGE or REFUND")
    amount: int = Field(description="Amount in minor units")
    status: str = Field(description="Payment status")
    created_at: str | None = Field(default=None, description="Recorded at")


class OrderResponse(BaseModel):
    """Response model for an order."""

    id: int = Field(description="Order ID")
    order_number: str = Field(description="ORD- number")
    listing_id: int = Field(description="Purchased listing")
    customer_email: str = Field(description="Customer email")
    customer_name: str = Field(description="Customer name")
    customer_phone: str | None = Field(default=None, description="Customer phone")
    quantity: int = Field(description="Units purchased")
    unit_amount: int = Field(description="Unit price in minor units")
    total_amount: int = Field(description="Total in minor units")
    refunded_amount: int = Field(description="Refunded in minor units")
    currency: str = Field(description="ISO currency")
    status: str = Field(description="Order status")
    payments: list[PaymentResponse] = Field(description="Charges and refunds")
    created_at: str | None = Field(default=None, description="Creation time")
    updated_at: str | None = Field(default=None, description="Last update time")


class OrdersResponse(BaseModel):
    """Response model for a page of orders."""

    orders: list[OrderResponse] = Field(description="Orders on this page")
    pagination: Pagination = Field(description="Pagination details")


def order_to_response(order: Order) -> dict[str, Any]:
    """Convert order model to response dict."""
    return {
        "id": order.id,
        "order_number": order.order_number,
        "listing_id": order.listing_id,
        "customer_email": order.customer_email,
        "customer_name": order.customer_name,
        "customer_phone": order.customer_phone,
        "quantity": order.quantity,
        "unit_amount": order.unit_amount,
        "total_amount": order.total_amount,
        "refunded_amount": order.refunded_amount,
        "currency": order.currency,
        "status": order.status,
        "payments": [
            {
                "id": payment.id,
                "payment_number": payment.payment_number,
                "provider": payment.provider,
                "kind": payment.kind,
                "amount": payment.amount,
                "status": payment.status,
                "created_at": isoformat_or_none(payment.created_at),
            }
            for payment in order.payments
        ],
        "created_at": isoformat_or_none(order.created_at),
        "updated_at": isoformat_or_none(order.updated_at),
    }


def order_event_payload(order: Order) -> dict[str, Any]:
    """Webhook payload describing an order."""
    return {
        "id": order.id,
        "order_number": order.order_number,
        "listing_id": order.listing_id,
        "status": order.status,
        "total_amount": order.total_amount,
        "refunded_amount": order.refunded_amount,
        "currency": order.currency,
    }


async def _get_order_or_404(db: AsyncSession, order_id: int, actor: Actor) -> Order:
    order = await OrderRepository(db).get_by_id(order_id, actor.business_id)
    if order is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Order {order_id} not found",
        )
    return order


@router.get("", response_model=OrdersResponse)
async def list_orders(
    db: Annotated[AsyncSession, Depends(get_db)],
    actor: Annotated[Actor, Depends(require_permission("orders.read"))],
    status_filter: Annotated[str | None, Query(alias="status")] = None,
    listing_id: int | None = None,
    q: Annotated[str | None, Query(max_length=100)] = None,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=MAX_PAGE_SIZE)] = 20,
) -> dict[str, Any]:
    """List orders, searchable by number, customer email or name."""
    if status_filter is not None and status_filter not in ORDER_STATUSES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid status: {status_filter}",
        )

    orders, total = await OrderRepository(db).list_for_business(
        actor.business_id,
        status=status_filter,
        listing_id=listing_id,
        q=q,
        page=page,
        limit=limit,
    )
    return {
        "orders": [order_to_response(order) for order in orders],
        "pagination": pagination(page, limit, total),
    }


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: int,
    db: Annotated[AsyncSession, Depends(get_db)],
    actor: Annotated[Actor, Depends(require_permission("orders.read"))],
) -> dict[str, Any]:
    """Get an order with its payments."""
    return order_to_response(await _get_order_or_404(db, order_id, actor))


@router.post("/{order_id}/capture", response_model=OrderResponse)
async def capture_order(
    order_id: int,
    body: CaptureRequest,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    actor: Annotated[Actor, Depends(require_permission("orders.manage"))],
) -> dict[str, Any]:
    """Record payment of a pending order."""
    order = await _get_order_or_404(db, order_id, actor)
    try:
        order = await OrderService(db).capture(order, body.provider)
    except OrderError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)
        ) from e

    await record_audit(
        db,
        request,
        actor,
        audit.ORDER_PAID,
        "order",
        order.id,
        {"provider": body.provider, "amount": order.total_amount},
    )
    return order_to_response(order)


@router.post("/{order_id}/cancel", response_model=OrderResponse)
async def cancel_order(
    order_id: int,
    request: Request,
    background_tasks: BackgroundTasks,
    db: Annotated[AsyncSession, Depends(get_db)],
    actor: Annotated[Actor, Depends(require_permission("orders.manage"))],
) -> dict[str, Any]:
    """Cancel a pending order."""
    order = await _get_order_or_404(db, order_id, actor)
    try:
        order = await OrderService(db).cancel(order)
    except OrderError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)
        ) from e

    await record_audit(db, request, actor, audit.ORDER_CANCELLED, "order", order.id)
    background_tasks.add_task(
        publish_event,
        actor.business_id,
        "order.cancelled",
        order_event_payload(order),
    )
    return order_to_response(order)


@router.post("/{order_id}/refund", response_model=OrderResponse)
async def refund_order(
    order_id: int,
    body: RefundRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    db: Annotated[AsyncSession, Depends(get_db)],
    actor: Annotated[Actor, Depends(require_permission("orders.manage"))],
) -> dict[str, Any]:
    """Refund all or part of a paid order."""
    order = await _get_order_or_404(db, order_id, actor)
    try:
        order = await OrderService(db).refund(order, body.amount, body.provider)
    except OrderError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)
        ) from e

    await record_audit(
        db,
        request,
        actor,
        audit.ORDER_REFUNDED,
        "order",
        order.id,
        {"amount": body.amount, "reason": body.reason, "status": order.status},
    )
    background_tasks.add_task(
        publish_event,
        actor.business_id,
        "order.refunded",
        order_event_payload(order),
    )
    return order_to_response(order)
