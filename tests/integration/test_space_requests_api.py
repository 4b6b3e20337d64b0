# SPDX-FileCopyrightText: 2026 Andrew Grimberg <tykeal@bardicgrove.org>
# SPDX-License-Identifier: Apache-2.0
"""Integration tests for booking request management endpoints."""

from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any

import pytest

from tripfluence.models.space_request import (
    REQUEST_CONFIRMED,
    REQUEST_DECLINED,
    REQUEST_NEEDS_PAYMENT,
    REQUEST_PENDING,
    SpaceRequest,
)

START = datetime(2030, 6, 3, 10)
END = datetime(2030, 6, 3, 12)


@pytest.fixture
def make_request(async_session, space) -> Callable[..., Awaitable[SpaceRequest]]:
    """Factory storing booking requests for the test space."""

    async def _make(**overrides: Any) -> SpaceRequest:
        data: dict[str, Any] = {
            "business_id": space.business_id,
            "space_id": space.id,
            "organizer_name": "Grace Hopper",
            "organizer_email": "grace@example.com",
            "title": "Product launch",
            "attendees": 12,
            "start": START,
            "end": END,
            "status": REQUEST_PENDING,
            "quote_amount": 12500,
            "currency": "USD",
            "cleaning_fee": 2500,
        }
        data.update(overrides)
        request = SpaceRequest(**data)
        async_session.add(request)
        await async_session.commit()
        return request

    return _make


class TestListAndGet:
    """Tests for reading booking requests."""

    @pytest.mark.asyncio
    async def test_list_newest_start_first(
        self, client, staff_headers, make_request
    ) -> None:
        """Test requests are listed by start, latest first."""
        early = await make_request()
        late = await make_request(
            start=datetime(2030, 6, 4, 10), end=datetime(2030, 6, 4, 12)
        )

        response = await client.get("/api/space-requests", headers=staff_headers)

        assert response.status_code == 200
        data = response.json()
        assert [r["id"] for r in data["requests"]] == [late.id, early.id]
        assert data["pagination"]["total"] == 2
        assert data["requests"][0]["space_title"] == "Loft Studio"

    @pytest.mark.asyncio
    async def test_filters(self, client, staff_headers, make_request) -> None:
        """Test status and window filters."""
        await make_request()
        confirmed = await make_request(
            start=datetime(2030, 7, 1, 10),
            end=datetime(2030, 7, 1, 12),
            status=REQUEST_CONFIRMED,
        )

        by_status = await client.get(
            "/api/space-requests",
            params={"status": "CONFIRMED"},
            headers=staff_headers,
        )
        by_window = await client.get(
            "/api/space-requests",
            params={"from": "2030-06-30T00:00:00Z", "to": "2030-07-02T00:00:00Z"},
            headers=staff_headers,
        )

        assert [r["id"] for r in by_status.json()["requests"]] == [confirmed.id]
        assert [r["id"] for r in by_window.json()["requests"]] == [confirmed.id]

    @pytest.mark.asyncio
    async def test_invalid_status(self, client, staff_headers) -> None:
        """Test unknown statuses are rejected."""
        response = await client.get(
            "/api/space-requests", params={"status": "LOST"}, headers=staff_headers
        )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_get_missing(self, client, staff_headers, business) -> None:
        """Test unknown requests return 404."""
        response = await client.get("/api/space-requests/999", headers=staff_headers)

        assert response.status_code == 404


class TestDecisions:
    """Tests for approving, declining and cancelling requests."""

    @pytest.mark.asyncio
    async def test_approve_opens_hold(
        self, client, manager_headers, make_request
    ) -> None:
        """Test approval moves the request to payment with a deadline."""
        request = await make_request()

        response = await client.post(
            f"/api/space-requests/{request.id}/approve",
            json={"message": "See you there"},
            headers=manager_headers,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == REQUEST_NEEDS_PAYMENT
        assert data["hold_expires_at"] is not None
        assert data["decision_message"] == "See you there"

    @pytest.mark.asyncio
    async def test_approve_twice(self, client, manager_headers, make_request) -> None:
        """Test only pending requests can be approved."""
        request = await make_request(status=REQUEST_NEEDS_PAYMENT)

        response = await client.post(
            f"/api/space-requests/{request.id}/approve",
            json={},
            headers=manager_headers,
        )

        assert response.status_code == 400
        assert "cannot be approved" in response.json()["detail"]

    @pytest.mark.asyncio
    async def test_approve_conflict(
        self, client, manager_headers, make_request
    ) -> None:
        """Test approving a request whose slot was taken returns 409."""
        request = await make_request()
        await make_request(
            organizer_email="ada@example.com",
            start=datetime(2030, 6, 3, 11),
            end=datetime(2030, 6, 3, 13),
            status=REQUEST_CONFIRMED,
        )

        response = await client.post(
            f"/api/space-requests/{request.id}/approve",
            json={},
            headers=manager_headers,
        )

        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_staff_cannot_approve(
        self, client, staff_headers, make_request
    ) -> None:
        """Test approvals need requests.approve."""
        request = await make_request()

        response = await client.post(
            f"/api/space-requests/{request.id}/approve",
            json={},
            headers=staff_headers,
        )

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_decline(self, client, manager_headers, make_request) -> None:
        """Test declining records the message."""
        request = await make_request()

        response = await client.post(
            f"/api/space-requests/{request.id}/decline",
            json={"message": "Fully booked"},
            headers=manager_headers,
        )

        assert response.json()["status"] == REQUEST_DECLINED
        assert response.json()["decision_message"] == "Fully booked"

    @pytest.mark.asyncio
    async def test_staff_cancel(self, client, staff_headers, make_request) -> None:
        """Test staff can cancel holding requests."""
        request = await make_request(status=REQUEST_CONFIRMED)

        response = await client.post(
            f"/api/space-requests/{request.id}/cancel",
            json={"reason": "Organizer called"},
            headers=staff_headers,
        )

        assert response.status_code == 200
        assert response.json()["status"] == "CANCELLED"
        assert response.json()["cancel_reason"] == "Organizer called"

    @pytest.mark.asyncio
    async def test_cancel_declined(
        self, client, staff_headers, make_request
    ) -> None:
        """Test requests no longer holding a slot cannot be cancelled."""
        request = await make_request(status=REQUEST_DECLINED)

        response = await client.post(
            f"/api/space-requests/{request.id}/cancel",
            json={},
            headers=staff_headers,
        )

        assert response.status_code == 400


class TestQuoteAndConfirm:
    """Tests for quote overrides and payment confirmation."""

    @pytest.mark.asyncio
    async def test_override_quote(
        self, client, manager_headers, make_request
    ) -> None:
        """Test overrides replace the total and flag the breakdown."""
        request = await make_request()

        response = await client.post(
            f"/api/space-requests/{request.id}/quote",
            json={"quote_amount": 10000, "breakdown": {"note": "Regular"}},
            headers=manager_headers,
        )

        data = response.json()
        assert data["quote_amount"] == 10000
        assert data["cleaning_fee"] == 2500
        assert data["pricing_breakdown"] == {
            "note": "Regular",
            "override": True,
            "total": 10000,
        }

    @pytest.mark.asyncio
    async def test_override_confirmed(
        self, client, manager_headers, make_request
    ) -> None:
        """Test confirmed requests keep their quote."""
        request = await make_request(status=REQUEST_CONFIRMED)

        response = await client.post(
            f"/api/space-requests/{request.id}/quote",
            json={"quote_amount": 1},
            headers=manager_headers,
        )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_confirm(self, client, manager_headers, make_request) -> None:
        """Test payment confirms an approved request."""
        request = await make_request(status=REQUEST_NEEDS_PAYMENT)

        response = await client.post(
            f"/api/space-requests/{request.id}/confirm", headers=manager_headers
        )

        assert response.json()["status"] == REQUEST_CONFIRMED
        assert response.json()["hold_expires_at"] is None

    @pytest.mark.asyncio
    async def test_confirm_pending(
        self, client, manager_headers, make_request
    ) -> None:
        """Test unapproved requests cannot be confirmed."""
        request = await make_request()

        response = await client.post(
            f"/api/space-requests/{request.id}/confirm", headers=manager_headers
        )

        assert response.status_code == 400


class TestMessages:
    """Tests for request message threads."""

    @pytest.mark.asyncio
    async def test_post_and_list(
        self, client, staff_headers, manager_headers, make_request
    ) -> None:
        """Test messages are stored with their author in order."""
        request = await make_request()
        url = f"/api/space-requests/{request.id}/messages"

        first = await client.post(
            url,
            json={"body": "Is parking available?", "attachments": ["https://x.io/a"]},
            headers=staff_headers,
        )
        await client.post(url, json={"body": "Yes, two spots"}, headers=manager_headers)
        listed = await client.get(url, headers=staff_headers)

        assert first.status_code == 201
        assert first.json()["author_id"] == "staff-user"
        assert first.json()["attachments"] == ["https://x.io/a"]
        assert [m["body"] for m in listed.json()] == [
            "Is parking available?",
            "Yes, two spots",
        ]

    @pytest.mark.asyncio
    async def test_empty_body(self, client, staff_headers, make_request) -> None:
        """Test empty messages are rejected."""
        request = await make_request()

        response = await client.post(
            f"/api/space-requests/{request.id}/messages",
            json={"body": ""},
            headers=staff_headers,
        )

        assert response.status_code == 400
