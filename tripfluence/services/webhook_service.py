# SPDX-FileCopyrightText: 2026 Andrew Grimberg <tykeal@bardicgrove.org>
# SPDX-License-Identifier: Apache-2.0
"""Signed delivery of domain events to business webhook endpoints."""

import asyncio
import hashlib
import hmac
import json
import logging
import time
from datetime import UTC, datetime
from typing import Any

import httpx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tripfluence.config import get_settings
from tripfluence.database import get_session_factory
from tripfluence.models.webhook import WebhookDelivery, WebhookEndpoint
from tripfluence.repositories.webhook_repository import WebhookRepository

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-TF-Signature"
EVENT_HEADER = "X-TF-Event"
USER_AGENT = "Tripfluence-Webhooks/1.0"

# Stored response bodies are truncated to this many characters
MAX_RESPONSE_LENGTH = 1000

TEST_EVENT = "test.webhook"


class WebhookDispatchError(Exception):
    """Exception raised when a webhook cannot be delivered."""

    pass


def sign_payload(body: str | bytes, secret: str) -> str:
    """Compute the signature header value for a request body.

    Args:
        body: Exact request body sent to the endpoint.
        secret: Endpoint secret.

    Returns:
        ``sha256=`` followed by the hex HMAC-SHA256 digest.
    """
    if isinstance(body, str):
        body = body.encode()
    digest = hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
    return f"sha256={digest}"


def verify_signature(body: str | bytes, secret: str, signature: str) -> bool:
    """Check a signature header in constant time."""
    return hmac.compare_digest(sign_payload(body, secret), signature)


def build_body(event: str, payload: dict[str, Any]) -> str:
    """Serialize the delivery body for an event."""
    return json.dumps(
        {
            "event": event,
            "data": payload,
            "timestamp": datetime.now(UTC).isoformat(),
        },
        default=str,
        separators=(",", ":"),
    )


class WebhookService:
    """Service for delivering events and recording each attempt."""

    def __init__(self, session: AsyncSession, timeout: float | None = None) -> None:
        """Initialize webhook service.

        Args:
            session: Async database session for delivery records.
            timeout: Per-request timeout, defaults to the configured value.
        """
        self._repo = WebhookRepository(session)
        self._timeout = (
            timeout if timeout is not None else get_settings().webhook_timeout_seconds
        )

    async def _send(
        self, endpoint: WebhookEndpoint, event: str, body: str
    ) -> tuple[int, int, str]:
        """POST a body to an endpoint.

        Returns:
            Tuple of (status code, duration in ms, response or error text).
            Status code is 0 when the request did not complete.
        """
        headers = {
            "Content-Type": "application/json",
            SIGNATURE_HEADER: sign_payload(body, endpoint.secret),
            EVENT_HEADER: event,
            "User-Agent": USER_AGENT,
        }
        started = time.monotonic()
        try:
            async with httpx.AsyncClient() as client:
                response = await client.post(
                    endpoint.url,
                    content=body,
                    headers=headers,
                    timeout=self._timeout,
                )
        except httpx.HTTPError as e:
            duration_ms = int((time.monotonic() - started) * 1000)
            logger.warning(
                "Webhook delivery to endpoint %d failed: %s", endpoint.id, e
            )
            return 0, duration_ms, str(e) or e.__class__.__name__

        duration_ms = int((time.monotonic() - started) * 1000)
        return response.status_code, duration_ms, response.text

    async def _record(
        self,
        endpoint: WebhookEndpoint,
        event: str,
        payload: dict[str, Any],
        result: tuple[int, int, str],
    ) -> WebhookDelivery:
        status_code, duration_ms, text = result
        return await self._repo.add_delivery(
            WebhookDelivery(
                endpoint_id=endpoint.id,
                event=event,
                payload=payload,
                status_code=status_code,
                duration_ms=duration_ms,
                response=text[:MAX_RESPONSE_LENGTH],
            )
        )

    async def dispatch(
        self, endpoint: WebhookEndpoint, event: str, payload: dict[str, Any]
    ) -> WebhookDelivery:
        """Deliver one event to one endpoint.

        Args:
            endpoint: Destination endpoint.
            event: Event name.
            payload: Event data.

        Returns:
            The recorded delivery.

        Raises:
            WebhookDispatchError: If the request did not complete. The failed
                attempt is still recorded.
        """
        result = await self._send(endpoint, event, build_body(event, payload))
        delivery = await self._record(endpoint, event, payload, result)
        if delivery.status_code == 0:
            msg = f"Webhook delivery failed: {delivery.response}"
            raise WebhookDispatchError(msg)
        return delivery

    async def dispatch_to_all(
        self, business_id: int, event: str, payload: dict[str, Any]
    ) -> list[dict[str, Any]]:
        """Deliver an event to every active endpoint of a business.

        Requests run concurrently; one endpoint failing never affects the
        others and never raises to the caller.

        Args:
            business_id: Business whose endpoints receive the event.
            event: Event name.
            payload: Event data.

        Returns:
            Per-endpoint results with endpoint_id, success and status.
        """
        endpoints = await self._repo.get_active_endpoints(business_id)
        if not endpoints:
            logger.debug("No active webhook endpoints for business %d", business_id)
            return []

        body = build_body(event, payload)
        results = await asyncio.gather(
            *(self._send(endpoint, event, body) for endpoint in endpoints),
            return_exceptions=True,
        )

        summary = []
        for endpoint, result in zip(endpoints, results, strict=True):
            if isinstance(result, BaseException):
                logger.error(
                    "Unexpected error delivering %s to endpoint %d: %s",
                    event,
                    endpoint.id,
                    result,
                )
                result = (0, 0, str(result))
            delivery = await self._record(endpoint, event, payload, result)
            summary.append(
                {
                    "endpoint_id": endpoint.id,
                    "success": delivery.succeeded,
                    "status": delivery.status_code,
                }
            )

        logger.info(
            "Dispatched %s to %d endpoint(s) for business %d",
            event,
            len(endpoints),
            business_id,
        )
        return summary


async def publish_event(
    business_id: int,
    event: str,
    payload: dict[str, Any],
    session_factory: async_sessionmaker[AsyncSession] | None = None,
) -> None:
    """Fan an event out to webhooks in its own session.

    Used as a background task after the originating request has
    committed. Errors are logged and never propagate.

    Args:
        business_id: Business whose endpoints receive the event.
        event: Event name.
        payload: Event data.
        session_factory: Session factory, defaults to the application's.
    """
    if session_factory is None:
        session_factory = get_session_factory()

    try:
        async with session_factory() as session:
            await WebhookService(session).dispatch_to_all(business_id, event, payload)
            await session.commit()
    except Exception:
        logger.exception("Failed to publish %s for business %d", event, business_id)
