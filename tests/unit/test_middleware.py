# SPDX-FileCopyrightText: 2026 Andrew Grimberg <tykeal@bardicgrove.org>
# SPDX-License-Identifier: Apache-2.0
"""Unit tests for authentication and error handling middleware."""

import json
from typing import Any

import pytest
from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from httpx import ASGITransport, AsyncClient

from tripfluence.middleware.auth import AuthenticationMiddleware, is_public_path
from tripfluence.middleware.error_handler import (
    ErrorHandlerMiddleware,
    create_error_response,
    service_unavailable_response,
    validation_exception_handler,
)


def build_app() -> FastAPI:
    """Small app wired like the real one."""
    app = FastAPI()
    app.add_middleware(ErrorHandlerMiddleware)
    app.add_middleware(AuthenticationMiddleware)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/api/public/ping")
    async def public_ping() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/api/whoami")
    async def whoami(request: Request) -> dict[str, Any]:
        return {
            "user_id": getattr(request.state, "user_id", None),
            "business_id": getattr(request.state, "business_id", None),
            "api_key": getattr(request.state, "api_key", None),
        }

    @app.get("/api/boom")
    async def boom() -> None:
        raise RuntimeError("secret detail")

    @app.get("/api/missing")
    async def missing() -> None:
        raise HTTPException(status_code=404, detail="Nope")

    @app.get("/api/validated")
    async def validated(count: int = Query(ge=1)) -> dict[str, int]:
        return {"count": count}

    return app


@pytest.fixture
async def client():
    """Client for the middleware test app."""
    transport = ASGITransport(app=build_app())
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


USER = {"X-User-Id": "user-1", "X-Business-Id": "7"}


class TestIsPublicPath:
    """Tests for is_public_path."""

    @pytest.mark.parametrize(
        "path",
        ["/health", "/docs", "/openapi.json", "/sitemap.xml", "/robots.txt"],
    )
    def test_exact_public_paths(self, path: str) -> None:
        """Test exact public paths."""
        assert is_public_path(path)

    def test_public_api_prefix(self) -> None:
        """Test the public marketplace API is open."""
        assert is_public_path("/api/public/spaces")

    @pytest.mark.parametrize("path", ["/api/spaces", "/api/public", "/healthz"])
    def test_private_paths(self, path: str) -> None:
        """Test everything else needs an identity."""
        assert not is_public_path(path)


class TestAuthenticationMiddleware:
    """Tests for AuthenticationMiddleware."""

    @pytest.mark.asyncio
    async def test_public_paths_pass(self, client: AsyncClient) -> None:
        """Test public endpoints need no headers."""
        assert (await client.get("/health")).status_code == 200
        assert (await client.get("/api/public/ping")).status_code == 200

    @pytest.mark.asyncio
    async def test_missing_identity(self, client: AsyncClient) -> None:
        """Test private endpoints reject anonymous requests."""
        response = await client.get("/api/whoami")

        assert response.status_code == 401
        assert response.json() == {
            "detail": "Authentication required",
            "type": "unauthorized",
        }

    @pytest.mark.asyncio
    async def test_non_numeric_business(self, client: AsyncClient) -> None:
        """Test the business header must be numeric."""
        response = await client.get(
            "/api/whoami", headers={"X-User-Id": "user-1", "X-Business-Id": "abc"}
        )

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_gateway_identity_in_state(self, client: AsyncClient) -> None:
        """Test identity headers are stored on the request state."""
        response = await client.get("/api/whoami", headers=USER)

        assert response.status_code == 200
        assert response.json() == {
            "user_id": "user-1",
            "business_id": 7,
            "api_key": None,
        }

    @pytest.mark.asyncio
    async def test_api_key_in_state(self, client: AsyncClient) -> None:
        """Test an API key is accepted for later validation."""
        response = await client.get("/api/whoami", headers={"X-Api-Key": "tf_abc"})

        assert response.status_code == 200
        assert response.json()["api_key"] == "tf_abc"


class TestErrorHandling:
    """Tests for error handling middleware and handlers."""

    @pytest.mark.asyncio
    async def test_unhandled_exception(self, client: AsyncClient) -> None:
        """Test unexpected errors become a generic 500."""
        response = await client.get("/api/boom", headers=USER)

        assert response.status_code == 500
        body = response.json()
        assert body["type"] == "internal_error"
        assert "secret detail" not in response.text

    @pytest.mark.asyncio
    async def test_http_exception_passes(self, client: AsyncClient) -> None:
        """Test HTTP errors keep their status and detail."""
        response = await client.get("/api/missing", headers=USER)

        assert response.status_code == 404
        assert response.json()["detail"] == "Nope"

    @pytest.mark.asyncio
    async def test_validation_error(self, client: AsyncClient) -> None:
        """Test validation failures are 400 with field errors."""
        response = await client.get("/api/validated?count=0", headers=USER)

        assert response.status_code == 400
        body = response.json()
        assert body["detail"] == "Validation failed"
        assert body["type"] == "validation_error"
        assert body["errors"][0]["loc"] == ["query", "count"]

    def test_create_error_response(self) -> None:
        """Test the standard error body."""
        response = create_error_response(409, "Conflict", "conflict")

        assert response.status_code == 409
        assert json.loads(response.body) == {"detail": "Conflict", "type": "conflict"}

    def test_service_unavailable_response(self) -> None:
        """Test 503 responses carry Retry-After."""
        response = service_unavailable_response("Database unavailable", retry_after=30)

        assert response.status_code == 503
        assert response.headers["Retry-After"] == "30"
        assert json.loads(response.body)["type"] == "service_unavailable"
