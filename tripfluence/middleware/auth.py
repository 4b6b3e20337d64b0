# SPDX-FileCopyrightText: 2026 Andrew Grimberg <tykeal@bardicgrove.org>
# SPDX-License-Identifier: Apache-2.0
"""Authentication middleware for gateway identity headers and API keys."""

import logging
from collections.abc import Awaitable, Callable

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from tripfluence.middleware.error_handler import create_error_response

logger = logging.getLogger(__name__)

# Identity headers set by the upstream gateway
USER_ID_HEADER = "X-User-Id"
BUSINESS_ID_HEADER = "X-Business-Id"
API_KEY_HEADER = "X-Api-Key"

# Paths that don't require authentication
PUBLIC_PATHS = frozenset(
    {
        "/health",
        "/docs",
        "/redoc",
        "/openapi.json",
        "/sitemap.xml",
        "/robots.txt",
    }
)


def is_public_path(path: str) -> bool:
    """Check if a path is public (no auth required).

    Args:
        path: Request path to check.

    Returns:
        True if path is public.
    """
    # Exact matches
    if path in PUBLIC_PATHS:
        return True

    # Prefix matches for the public marketplace API
    return path.startswith("/api/public/")


class AuthenticationMiddleware(BaseHTTPMiddleware):
    """Middleware to require an identity on non-public requests.

    Requests must carry either ``X-User-Id`` and ``X-Business-Id`` from the
    gateway or an ``X-Api-Key``. Roles are resolved later, per route.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        """Process request and enforce authentication.

        Args:
            request: Incoming HTTP request.
            call_next: Next middleware or route handler.

        Returns:
            HTTP response, or a 401 response if no identity is present.
        """
        path = request.url.path

        # Public paths don't require authentication
        if is_public_path(path):
            return await call_next(request)

        api_key = request.headers.get(API_KEY_HEADER)
        if api_key:
            request.state.api_key = api_key
            logger.debug("API key request to %s", path)
            return await call_next(request)

        user_id = request.headers.get(USER_ID_HEADER)
        business_id = request.headers.get(BUSINESS_ID_HEADER)
        if not user_id or not business_id or not business_id.isdigit():
            logger.warning("Unauthorized access attempt to %s", path)
            return create_error_response(401, "Authentication required", "unauthorized")

        # Store identity in request state for later use
        request.state.user_id = user_id
        request.state.business_id = int(business_id)
        logger.debug("Authenticated request from user %s to %s", user_id, path)

        return await call_next(request)
