# SPDX-FileCopyrightText: 2026 Andrew Grimberg <tykeal@bardicgrove.org>
# SPDX-License-Identifier: Apache-2.0
"""Webhook endpoint management API endpoints."""

import logging
import secrets
from datetime import UTC, datetime
from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
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
from tripfluence.models.webhook import WebhookDelivery, WebhookEndpoint
from tripfluence.repositories.base import MAX_PAGE_SIZE
from tripfluence.repositories.webhook_repository import WebhookRepository
from tripfluence.services import audit
from tripfluence.services.webhook_service import (
    TEST_EVENT,
    WebhookDispatchError,
    WebhookService,
)
from tripfluence.utils.timeutils import isoformat_or_none

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/webhooks", tags=["Webhooks"])

MIN_SECRET_LENGTH = 32
URL_PATTERN = r"^https?://\S+$"


class WebhookCreateRequest(BaseModel):
    """Request model for registering a webhook endpoint."""

    url: str = Field(max_length=2048, pattern=URL_PATTERN, description="Target URL")
    secret: str | None = Field(
        default=None,
        min_length=MIN_SECRET_LENGTH,
        max_length=255,
        description="Signing secret, generated when omitted",
    )
    active: bool = Field(default=True, description="Whether to deliver events")


class WebhookUpdateRequest(BaseModel):
    """Request model for updating a webhook endpoint."""

    url: str | None = Field(default=None, max_length=2048, pattern=URL_PATTERN)
    secret: str | None = Field(
        default=None, min_length=MIN_SECRET_LENGTH, max_length=255
    )
    active: bool | None = None


class WebhookResponse(BaseModel):
    """Response model for a webhook endpoint."""

    id: int = Field(description="Endpoint ID")
    url: str = Field(description="Target URL")
    active: bool = Field(description="Whether events are delivered")
    secret: str | None = Field(
        default=None, description="Signing secret, only returned on creation"
    )
    secret_hint: str = Field(description="Last characters of the secret")
    created_at: str | None = Field(default=None, description="Creation time")
    updated_at: str | None = Field(default=None, description="Last update time")


class DeliveryResponse(BaseModel):
    """Response model for a delivery attempt."""

    id: int = Field(description="Delivery ID")
    event: str = Field(description="Event name")
    status_code: int = Field(description="HTTP status, 0 on transport error")
    success: bool = Field(description="Whether a 2xx was received")
    duration_ms: int = Field(description="Round trip time")
    response: str | None = Field(default=None, description="Response or error text")
    created_at: str | None = Field(default=None, description="Attempt time")


class DeliveriesResponse(BaseModel):
    """Response model for a page of deliveries."""

    deliveries: list[DeliveryResponse] = Field(description="Delivery attempts")
    pagination: Pagination = Field(description="Pagination details")


def endpoint_to_response(
    endpoint: WebhookEndpoint, include_secret: bool = False
) -> dict[str, Any]:
    """Convert endpoint model to response dict."""
    return {
        "id": endpoint.id,
        "url": endpoint.url,
        "active": endpoint.active,
        "secret": endpoint.secret if include_secret else None,
        "secret_hint": f"...{endpoint.secret[-4:]}",
        "created_at": isoformat_or_none(endpoint.created_at),
        "updated_at": isoformat_or_none(endpoint.updated_at),
    }


def delivery_to_response(delivery: WebhookDelivery) -> dict[str, Any]:
    """Convert delivery model to response dict."""
    return {
        "id": delivery.id,
        "event": delivery.event,
        "status_code": delivery.status_code,
        "success": delivery.succeeded,
        "duration_ms": delivery.duration_ms,
        "response": delivery.response,
        "created_at": isoformat_or_none(delivery.created_at),
    }


async def _get_endpoint_or_404(
    repo: WebhookRepository, endpoint_id: int, actor: Actor
) -> WebhookEndpoint:
    endpoint = await repo.get_endpoint(endpoint_id, actor.business_id)
    if endpoint is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Webhook {endpoint_id} not found",
        )
    return endpoint


@router.get("", response_model=list[WebhookResponse])
async def list_webhooks(
    db: Annotated[AsyncSession, Depends(get_db)],
    actor: Annotated[Actor, Depends(require_permission("settings.manage"))],
) -> list[dict[str, Any]]:
    """List webhook endpoints."""
    endpoints = await WebhookRepository(db).list_endpoints(actor.business_id)
    return [endpoint_to_response(endpoint) for endpoint in endpoints]


@router.post("", response_model=WebhookResponse, status_code=status.HTTP_201_CREATED)
async def create_webhook(
    body: WebhookCreateRequest,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    actor: Annotated[Actor, Depends(require_permission("settings.manage"))],
) -> dict[str, Any]:
    """Register a webhook endpoint.

    The signing secret is returned only in this response.
    """
    endpoint = await WebhookRepository(db).create_endpoint(
        WebhookEndpoint(
            business_id=actor.business_id,
            url=body.url,
            secret=body.secret or secrets.token_hex(MIN_SECRET_LENGTH),
            active=body.active,
        )
    )
    await record_audit(
        db,
        request,
        actor,
        audit.WEBHOOK_CREATED,
        "webhook",
        endpoint.id,
        {"url": endpoint.url},
    )
    logger.info("Created webhook %d for business %d", endpoint.id, actor.business_id)
    return endpoint_to_response(endpoint, include_secret=True)


@router.patch("/{endpoint_id}", response_model=WebhookResponse)
async def update_webhook(
    endpoint_id: int,
    body: WebhookUpdateRequest,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    actor: Annotated[Actor, Depends(require_permission("settings.manage"))],
) -> dict[str, Any]:
    """Update a webhook endpoint."""
    repo = WebhookRepository(db)
    endpoint = await _get_endpoint_or_404(repo, endpoint_id, actor)

    changes = body.model_dump(exclude_unset=True, exclude_none=True)
    for field, value in changes.items():
        setattr(endpoint, field, value)
    endpoint = await repo.update_endpoint(endpoint)

    await record_audit(
        db,
        request,
        actor,
        audit.WEBHOOK_UPDATED,
        "webhook",
        endpoint.id,
        {"fields": sorted(changes)},
    )
    return endpoint_to_response(endpoint, include_secret="secret" in changes)


@router.delete("/{endpoint_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_webhook(
    endpoint_id: int,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    actor: Annotated[Actor, Depends(require_permission("settings.manage"))],
) -> None:
    """Delete a webhook endpoint and its delivery log."""
    repo = WebhookRepository(db)
    endpoint = await _get_endpoint_or_404(repo, endpoint_id, actor)
    url = endpoint.url
    await repo.delete_endpoint(endpoint)
    await record_audit(
        db, request, actor, audit.WEBHOOK_DELETED, "webhook", endpoint_id, {"url": url}
    )


@router.post("/{endpoint_id}/test", response_model=DeliveryResponse)
async def test_webhook(
    endpoint_id: int,
    db: Annotated[AsyncSession, Depends(get_db)],
    actor: Annotated[Actor, Depends(require_permission("settings.manage"))],
) -> dict[str, Any]:
    """Send a test event to an endpoint and report the result.

    Raises:
        HTTPException: 502 if the endpoint could not be reached.
    """
    endpoint = await _get_endpoint_or_404(WebhookRepository(db), endpoint_id, actor)
    payload = {
        "message": "This is a test webhook",
        "endpoint_id": endpoint.id,
        "sent_at": datetime.now(UTC).isoformat(),
    }
    try:
        delivery = await WebhookService(db).dispatch(endpoint, TEST_EVENT, payload)
    except WebhookDispatchError as e:
        # Keep the failed delivery record
        await db.commit()
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e)
        ) from e
    return delivery_to_response(delivery)


@router.get("/{endpoint_id}/deliveries", response_model=DeliveriesResponse)
async def list_deliveries(
    endpoint_id: int,
    db: Annotated[AsyncSession, Depends(get_db)],
    actor: Annotated[Actor, Depends(require_permission("settings.manage"))],
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=MAX_PAGE_SIZE)] = 20,
) -> dict[str, Any]:
    """List delivery attempts of an endpoint, newest first."""
    repo = WebhookRepository(db)
    endpoint = await _get_endpoint_or_404(repo, endpoint_id, actor)
    deliveries, total = await repo.list_deliveries(endpoint.id, page=page, limit=limit)
    return {
        "deliveries": [delivery_to_response(delivery) for delivery in deliveries],
        "pagination": pagination(page, limit, total),
    }
