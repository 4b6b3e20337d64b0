# SPDX-FileCopyrightText: 2026 Andrew Grimberg <tykeal@bardicgrove.org>
# SPDX-License-Identifier: Apache-2.0
"""Business reporting API endpoint."""

import logging
from datetime import datetime
from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from tripfluence.api.dependencies import Actor, require_permission
from tripfluence.database import get_db
from tripfluence.repositories.order_repository import OrderRepository
from tripfluence.repositories.review_repository import ReviewRepository
from tripfluence.repositories.space_request_repository import (
    SpaceRequestRepository,
)
from tripfluence.utils.timeutils import ensure_utc_or_none, isoformat_or_none

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/reports", tags=["Reports"])


class ReportSummaryResponse(BaseModel):
    """Response model for the business summary report."""

    period_start: str | None = Field(default=None, description="Window start")
    period_end: str | None = Field(default=None, description="Window end")
    orders: int = Field(description="Orders placed")
    revenue: int = Field(description="Paid order value in minor units")
    refunds: int = Field(description="Refunded value in minor units")
    net_revenue: int = Field(description="Revenue minus refunds")
    requests_by_status: dict[str, int] = Field(description="Booking requests")
    total_requests: int = Field(description="Booking requests in the window")
    average_rating: float | None = Field(default=None, description="Approved reviews")
    review_count: int = Field(description="Approved reviews in the window")


@router.get("/summary", response_model=ReportSummaryResponse)
async def get_summary(
    db: Annotated[AsyncSession, Depends(get_db)],
    actor: Annotated[Actor, Depends(require_permission("reports.read"))],
    since: Annotated[datetime | None, Query(alias="from")] = None,
    until: Annotated[datetime | None, Query(alias="to")] = None,
) -> dict[str, Any]:
    """Summarize orders, booking requests and reviews.

    Both window bounds are optional; the end is exclusive.

    Raises:
        HTTPException: 400 if the window ends before it starts.
    """
    since = ensure_utc_or_none(since)
    until = ensure_utc_or_none(until)
    if since is not None and until is not None and until <= since:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="to must be after from",
        )

    totals = await OrderRepository(db).totals(actor.business_id, since, until)
    by_status = await SpaceRequestRepository(db).count_by_status(
        actor.business_id, since=since, until=until
    )
    average, review_count = await ReviewRepository(db).average_rating(
        actor.business_id, since, until
    )

    logger.debug("Built summary report for business %d", actor.business_id)
    return {
        "period_start": isoformat_or_none(since),
        "period_end": isoformat_or_none(until),
        "orders": totals["orders"],
        "revenue": totals["revenue"],
        "refunds": totals["refunds"],
        "net_revenue": totals["revenue"] - totals["refunds"],
        "requests_by_status": by_status,
        "total_requests": sum(by_status.values()),
        "average_rating": average,
        "review_count": review_count,
    }
