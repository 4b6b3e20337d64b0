# SPDX-FileCopyrightText: 2026 Andrew Grimberg <tykeal@bardicgrove.org>
# SPDX-License-Identifier: Apache-2.0
"""Health check API endpoint."""

import logging
from datetime import UTC, datetime
from typing import Annotated, Any

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from tripfluence import __version__
from tripfluence.database import get_db
from tripfluence.middleware.error_handler import service_unavailable_response

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])


@router.get("/health", response_model=None)
async def health_check(
    db: Annotated[AsyncSession, Depends(get_db)],
) -> dict[str, Any] | JSONResponse:
    """Health check endpoint.

    Returns:
        Health status with timestamp, or 503 if the database is unreachable.
    """
    try:
        await db.execute(text("SELECT 1"))
    except SQLAlchemyError:
        logger.exception("Health check database query failed")
        return service_unavailable_response("Database unavailable", retry_after=30)

    return {
        "status": "healthy",
        "timestamp": datetime.now(tz=UTC).isoformat(),
        "version": __version__,
    }
