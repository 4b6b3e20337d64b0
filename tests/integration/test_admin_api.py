# SPDX-FileCopyrightText: 2026 Andrew Grimberg <tykeal@bardicgrove.org>
# SPDX-License-Identifier: Apache-2.0
"""Integration tests for webhooks, API keys, the audit log and reports."""

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

WEBHOOK_HTTP_PATH = "tripfluence.services.webhook_service.httpx.AsyncClient"
SECRET = "s" * 32


async def create_webhook(client, headers, **overrides) -> dict:
    """Register a webhook endpoint and return its response body."""
    response = await client.post(
        "/api/webhooks",
        json={"url": "https://hooks.example.com/tf", "secret": SECRET, **overrides},
        headers=headers,
    )
    assert response.status_code == 201
    return response.json()


class TestWebhooks:
    """Tests for /api/webhooks."""

    @pytest.mark.asyncio
    async def test_secret_only_on_create(self, client, admin_headers) -> None:
        """Test the secret is shown once and hinted afterwards."""
        created = await create_webhook(client, admin_headers)
        listed = await client.get("/api/webhooks", headers=admin_headers)

        assert created["secret"] == SECRET
        assert created["secret_hint"] == "...ssss"
        assert listed.json()[0]["secret"] is None
        assert listed.json()[0]["secret_hint"] == "...ssss"

    @pytest.mark.asyncio
    async def test_generated_secret(self, client, admin_headers) -> None:
        """Test a secret is generated when none is given."""
        response = await client.post(
            "/api/webhooks",
            json={"url": "https://hooks.example.com/tf"},
            headers=admin_headers,
        )

        assert len(response.json()["secret"]) == 64

    @pytest.mark.asyncio
    async def test_short_secret(self, client, admin_headers) -> None:
        """Test secrets need at least 32 characters."""
        response = await client.post(
            "/api/webhooks",
            json={"url": "https://hooks.example.com/tf", "secret": "short"},
            headers=admin_headers,
        )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_manager_forbidden(self, client, manager_headers) -> None:
        """Test webhooks need settings.manage."""
        response = await client.get("/api/webhooks", headers=manager_headers)

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_update_and_delete(self, client, admin_headers) -> None:
        """Test endpoints can be paused and removed."""
        endpoint = await create_webhook(client, admin_headers)
        url = f"/api/webhooks/{endpoint['id']}"

        updated = await client.patch(url, json={"active": False}, headers=admin_headers)
        deleted = await client.delete(url, headers=admin_headers)
        listed = await client.get("/api/webhooks", headers=admin_headers)

        assert updated.json()["active"] is False
        assert updated.json()["secret"] is None
        assert deleted.status_code == 204
        assert listed.json() == []

    @pytest.mark.asyncio
    async def test_test_delivery(self, client, admin_headers) -> None:
        """Test a test event is signed, sent and recorded."""
        endpoint = await create_webhook(client, admin_headers)
        mock_response = MagicMock(status_code=200, text="ok")

        with patch(WEBHOOK_HTTP_PATH) as mock_client:
            mock_post = AsyncMock(return_value=mock_response)
            mock_client.return_value.__aenter__.return_value.post = mock_post

            response = await client.post(
                f"/api/webhooks/{endpoint['id']}/test", headers=admin_headers
            )

        assert response.status_code == 200
        assert response.json()["event"] == "test.webhook"
        assert response.json()["success"] is True
        headers = mock_post.call_args.kwargs["headers"]
        assert headers["X-TF-Event"] == "test.webhook"
        assert headers["X-TF-Signature"].startswith("sha256=")

    @pytest.mark.asyncio
    async def test_unreachable_endpoint(self, client, admin_headers) -> None:
        """Test transport errors return 502 and keep the attempt."""
        endpoint = await create_webhook(client, admin_headers)

        with patch(WEBHOOK_HTTP_PATH) as mock_client:
            mock_client.return_value.__aenter__.return_value.post = AsyncMock(
                side_effect=httpx.ConnectError("Connection refused")
            )

            response = await client.post(
                f"/api/webhooks/{endpoint['id']}/test", headers=admin_headers
            )

        deliveries = await client.get(
            f"/api/webhooks/{endpoint['id']}/deliveries", headers=admin_headers
        )

        assert response.status_code == 502
        assert "Connection refused" in response.json()["detail"]
        data = deliveries.json()
        assert data["pagination"]["total"] == 1
        assert data["deliveries"][0]["status_code"] == 0
        assert data["deliveries"][0]["success"] is False


class TestApiKeys:
    """Tests for /api/api-keys."""

    @pytest.mark.asyncio
    async def test_key_shown_once(self, client, admin_headers) -> None:
        """Test the plaintext key is only in the creation response."""
        created = await client.post(
            "/api/api-keys", json={"name": "Website"}, headers=admin_headers
        )
        listed = await client.get("/api/api-keys", headers=admin_headers)

        assert created.status_code == 201
        key = created.json()["key"]
        assert key.startswith("tf_")
        assert created.json()["key_prefix"] == key[:8]
        assert created.json()["role"] == "STAFF"
        assert listed.json()[0]["key"] is None

    @pytest.mark.asyncio
    async def test_key_authenticates_with_role(
        self, client, admin_headers, space
    ) -> None:
        """Test requests with a key act with the key's role."""
        created = await client.post(
            "/api/api-keys", json={"name": "Sync bot"}, headers=admin_headers
        )
        key_headers = {"X-Api-Key": created.json()["key"]}

        read = await client.get("/api/spaces", headers=key_headers)
        write = await client.post(
            f"/api/spaces/{space.id}/archive", headers=key_headers
        )

        assert read.status_code == 200
        assert [s["id"] for s in read.json()["spaces"]] == [space.id]
        assert write.status_code == 403

    @pytest.mark.asyncio
    async def test_revoked_key_rejected(self, client, admin_headers) -> None:
        """Test revoked keys stop working."""
        created = await client.post(
            "/api/api-keys",
            json={"name": "Old", "role": "MANAGER"},
            headers=admin_headers,
        )
        key_headers = {"X-Api-Key": created.json()["key"]}

        revoked = await client.delete(
            f"/api/api-keys/{created.json()['id']}", headers=admin_headers
        )
        response = await client.get("/api/spaces", headers=key_headers)

        assert revoked.json()["revoked_at"] is not None
        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid API key"

    @pytest.mark.asyncio
    async def test_unknown_role(self, client, admin_headers) -> None:
        """Test keys can only grant known roles."""
        response = await client.post(
            "/api/api-keys",
            json={"name": "Root", "role": "OWNER"},
            headers=admin_headers,
        )

        assert response.status_code == 400


class TestAuditLog:
    """Tests for GET /api/audit."""

    @pytest.mark.asyncio
    async def test_filters(
        self, client, admin_headers, manager_headers, make_space
    ) -> None:
        """Test action, prefix and actor filters."""
        space = await make_space(status="DRAFT")
        await client.patch(
            f"/api/spaces/{space.id}", json={"capacity": 25}, headers=manager_headers
        )
        await client.post(f"/api/spaces/{space.id}/publish", headers=admin_headers)

        exact = await client.get(
            "/api/audit", params={"action": "space.published"}, headers=admin_headers
        )
        prefix = await client.get(
            "/api/audit", params={"action": "space."}, headers=admin_headers
        )
        by_actor = await client.get(
            "/api/audit", params={"actor_id": "manager-user"}, headers=admin_headers
        )

        assert [e["action"] for e in exact.json()["entries"]] == ["space.published"]
        assert [e["action"] for e in prefix.json()["entries"]] == [
            "space.published",
            "space.updated",
        ]
        entry = by_actor.json()["entries"][0]
        assert entry["action"] == "space.updated"
        assert entry["actor_type"] == "user"
        assert entry["details"] == {"fields": ["capacity"]}
        assert entry["entity_id"] == str(space.id)

    @pytest.mark.asyncio
    async def test_manager_forbidden(self, client, manager_headers) -> None:
        """Test the audit log is for admins."""
        response = await client.get("/api/audit", headers=manager_headers)

        assert response.status_code == 403


class TestReports:
    """Tests for GET /api/reports/summary."""

    @pytest.mark.asyncio
    async def test_summary(self, client, manager_headers, listing, space) -> None:
        """Test orders, requests and reviews are summarized."""
        order_ids = []
        for _ in range(2):
            response = await client.post(
                f"/api/public/listings/{listing.id}/checkout",
                json={
                    "customer_email": "sam@example.com",
                    "customer_name": "Sam",
                    "quantity": 2,
                },
            )
            order_ids.append(response.json()["id"])
        await client.post(
            f"/api/orders/{order_ids[0]}/capture", json={}, headers=manager_headers
        )
        await client.post(
            f"/api/orders/{order_ids[0]}/refund",
            json={"amount": 1000},
            headers=manager_headers,
        )
        await client.post(
            f"/api/public/spaces/{space.id}/requests",
            json={
                "organizer_name": "Ada",
                "organizer_email": "ada@example.com",
                "title": "Offsite",
                "attendees": 5,
                "start": "2030-06-03T10:00:00+00:00",
                "end": "2030-06-03T12:00:00+00:00",
            },
        )
        review = await client.post(
            f"/api/public/listings/{listing.id}/reviews",
            json={"customer_name": "Ada", "rating": 5},
        )
        await client.post(
            f"/api/reviews/{review.json()['id']}/moderate",
            json={"status": "APPROVED"},
            headers=manager_headers,
        )

        response = await client.get("/api/reports/summary", headers=manager_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["orders"] == 2
        assert data["revenue"] == 5000
        assert data["refunds"] == 1000
        assert data["net_revenue"] == 4000
        assert data["requests_by_status"] == {"PENDING": 1}
        assert data["total_requests"] == 1
        assert data["average_rating"] == 5
        assert data["review_count"] == 1
        assert data["period_start"] is None

    @pytest.mark.asyncio
    async def test_future_window_is_empty(
        self, client, manager_headers, listing
    ) -> None:
        """Test the window bounds restrict what is counted."""
        response = await client.get(
            "/api/reports/summary",
            params={"from": "2099-01-01T00:00:00Z", "to": "2099-02-01T00:00:00Z"},
            headers=manager_headers,
        )

        data = response.json()
        assert data["orders"] == 0
        assert data["average_rating"] is None
        assert data["period_start"] == "2099-01-01T00:00:00+00:00"

    @pytest.mark.asyncio
    async def test_inverted_window(self, client, manager_headers) -> None:
        """Test windows must end after they start."""
        response = await client.get(
            "/api/reports/summary",
            params={"from": "2030-02-01T00:00:00Z", "to": "2030-01-01T00:00:00Z"},
            headers=manager_headers,
        )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_staff_forbidden(self, client, staff_headers) -> None:
        """Test reports need reports.read."""
        response = await client.get("/api/reports/summary", headers=staff_headers)

        assert response.status_code == 403
