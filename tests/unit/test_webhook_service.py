# SPDX-FileCopyrightText: 2026 Andrew Grimberg <tykeal@bardicgrove.org>
# SPDX-License-Identifier: Apache-2.0
"""Unit tests for webhook signing and delivery."""

import hashlib
import hmac
import json
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
from sqlalchemy import select

from tripfluence.models.webhook import WebhookDelivery, WebhookEndpoint
from tripfluence.services.webhook_service import (
    EVENT_HEADER,
    SIGNATURE_HEADER,
    WebhookDispatchError,
    WebhookService,
    build_body,
    publish_event,
    sign_payload,
    verify_signature,
)

CLIENT_PATH = "tripfluence.services.webhook_service.httpx.AsyncClient"
SECRET = "s" * 32


def http_response(status_code: int, text: str = "ok") -> MagicMock:
    """Mock httpx response."""
    response = MagicMock()
    response.status_code = status_code
    response.text = text
    return response


@pytest.fixture
async def endpoint(async_session, business) -> WebhookEndpoint:
    """An active endpoint of the test business."""
    hook = WebhookEndpoint(
        business_id=business.id, url="https://hooks.example.com/a", secret=SECRET
    )
    async_session.add(hook)
    await async_session.commit()
    return hook


class TestSigning:
    """Tests for payload signing."""

    def test_sign_payload(self) -> None:
        """Test the signature is an HMAC-SHA256 of the exact body."""
        body = '{"event":"order.created"}'
        expected = hmac.new(SECRET.encode(), body.encode(), hashlib.sha256).hexdigest()

        assert sign_payload(body, SECRET) == f"sha256={expected}"
        assert sign_payload(body.encode(), SECRET) == f"sha256={expected}"

    def test_verify_signature(self) -> None:
        """Test signatures verify only for the same body and secret."""
        body = '{"event":"order.created"}'
        signature = sign_payload(body, SECRET)

        assert verify_signature(body, SECRET, signature)
        assert not verify_signature(body + " ", SECRET, signature)
        assert not verify_signature(body, "x" * 32, signature)

    def test_build_body(self) -> None:
        """Test bodies are compact JSON with event, data and timestamp."""
        body = build_body("order.created", {"id": 5})

        assert " " not in body
        parsed = json.loads(body)
        assert parsed["event"] == "order.created"
        assert parsed["data"] == {"id": 5}
        assert "timestamp" in parsed


class TestDispatch:
    """Tests for WebhookService.dispatch."""

    @pytest.mark.asyncio
    async def test_success_is_recorded(self, async_session, endpoint) -> None:
        """Test a delivered event is signed and recorded."""
        with patch(CLIENT_PATH) as mock_client:
            mock_post = AsyncMock(return_value=http_response(200, "thanks"))
            mock_client.return_value.__aenter__.return_value.post = mock_post

            delivery = await WebhookService(async_session).dispatch(
                endpoint, "order.created", {"id": 5}
            )

        assert delivery.status_code == 200
        assert delivery.succeeded
        assert delivery.response == "thanks"
        kwargs = mock_post.call_args.kwargs
        assert kwargs["headers"][EVENT_HEADER] == "order.created"
        assert verify_signature(
            kwargs["content"], SECRET, kwargs["headers"][SIGNATURE_HEADER]
        )

    @pytest.mark.asyncio
    async def test_error_status_is_recorded(self, async_session, endpoint) -> None:
        """Test a non-2xx answer is recorded as a failed delivery."""
        with patch(CLIENT_PATH) as mock_client:
            mock_client.return_value.__aenter__.return_value.post = AsyncMock(
                return_value=http_response(500, "x" * 5000)
            )

            delivery = await WebhookService(async_session).dispatch(
                endpoint, "order.created", {}
            )

        assert not delivery.succeeded
        assert len(delivery.response) == 1000

    @pytest.mark.asyncio
    async def test_transport_error_raises(self, async_session, endpoint) -> None:
        """Test an unreachable endpoint raises after recording the attempt."""
        with patch(CLIENT_PATH) as mock_client:
            mock_client.return_value.__aenter__.return_value.post = AsyncMock(
                side_effect=httpx.ConnectError("connection refused")
            )

            with pytest.raises(WebhookDispatchError, match="connection refused"):
                await WebhookService(async_session).dispatch(
                    endpoint, "test.webhook", {}
                )

        result = await async_session.execute(select(WebhookDelivery))
        deliveries = result.scalars().all()
        assert len(deliveries) == 1
        assert deliveries[0].status_code == 0


class TestDispatchToAll:
    """Tests for WebhookService.dispatch_to_all."""

    @pytest.mark.asyncio
    async def test_fan_out(self, async_session, business, endpoint) -> None:
        """Test one failing endpoint does not affect the others."""
        failing = WebhookEndpoint(
            business_id=business.id, url="https://down.example.com", secret=SECRET
        )
        inactive = WebhookEndpoint(
            business_id=business.id,
            url="https://off.example.com",
            secret=SECRET,
            active=False,
        )
        async_session.add_all([failing, inactive])
        await async_session.commit()

        async def fake_post(url, **kwargs):
            if "down" in url:
                raise httpx.ConnectTimeout("timed out")
            return http_response(204, "")

        with patch(CLIENT_PATH) as mock_client:
            mock_post = AsyncMock(side_effect=fake_post)
            mock_client.return_value.__aenter__.return_value.post = mock_post

            summary = await WebhookService(async_session).dispatch_to_all(
                business.id, "order.created", {"id": 1}
            )

        assert mock_post.await_count == 2
        assert summary == [
            {"endpoint_id": endpoint.id, "success": True, "status": 204},
            {"endpoint_id": failing.id, "success": False, "status": 0},
        ]

    @pytest.mark.asyncio
    async def test_no_endpoints(self, async_session, business) -> None:
        """Test nothing is sent without endpoints."""
        summary = await WebhookService(async_session).dispatch_to_all(
            business.id, "order.created", {}
        )

        assert summary == []


class TestPublishEvent:
    """Tests for publish_event."""

    @pytest.mark.asyncio
    async def test_delivers_in_own_session(
        self, session_factory, async_session, business, endpoint
    ) -> None:
        """Test deliveries are committed by the background session."""
        with patch(CLIENT_PATH) as mock_client:
            mock_client.return_value.__aenter__.return_value.post = AsyncMock(
                return_value=http_response(200)
            )

            await publish_event(
                business.id, "listing.created", {"id": 3}, session_factory
            )

        result = await async_session.execute(
            select(WebhookDelivery.event).where(
                WebhookDelivery.endpoint_id == endpoint.id
            )
        )
        assert result.scalars().all() == ["listing.created"]

    @pytest.mark.asyncio
    async def test_errors_are_swallowed(self) -> None:
        """Test failures never reach the caller."""
        factory = MagicMock(side_effect=RuntimeError("database gone"))

        await publish_event(1, "order.created", {}, factory)
