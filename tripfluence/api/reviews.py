# SPDX-FileCopyrightText: 2026 Andrew Grimberg <tykeal@bardicgrove.org>
# SPDX-License-Identifier: Apache-2.0
"""Review moderation API endpoints."""

import logging
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
from tripfluence.models.review import (
    REVIEW_APPROVED,
    REVIEW_REJECTED,
    REVIEW_STATUSES,
    Review,
)
from tripfluence.repositories.base import MAX_PAGE_SIZE
from tripfluence.repositories.review_repository import ReviewRepository
from tripfluence.services import audit
from tripfluence.utils.timeutils import isoformat_or_none

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/reviews", tags=["Reviews"])


class ModerateRequest(BaseModel):
    """Request model for moderating a review."""

    status: str = Field(
        pattern=f"^({REVIEW_APPROVED}|{REVIEW_REJECTED})$",
        description="APPROVED or REJECTED",
    )
    reason: str | None = Field(
        default=None, max_length=500, description="Moderation reason"
    )


class ReplyRequest(BaseModel):
    """Request model for replying to a review."""

    reply: str = Field(min_length=1, max_length=500, description="Public reply")


class ReviewResponse(BaseModel):
    """Response model for a review."""

    id: int = Field(description="Review ID")
    listing_id: int = Field(description="Reviewed listing")
    customer_name: str = Field(description="Reviewer name")
    rating: int = Field(description="Rating from 1 to 5")
    text: str | None = Field(default=None, description="Review text")
    status: str = Field(description="PENDING, APPROVED or REJECTED")
    reply: str | None = Field(default=None, description="Business reply")
    replied_at: str | None = Field(default=None, description="Reply time")
    moderation_reason: str | None = Field(default=None, description="Reason")
    created_at: str | None = Field(default=None, description="Creation time")


class ReviewsResponse(BaseModel):
    """Response model for a page of reviews."""

    reviews: list[ReviewResponse] = Field(description="Reviews on this page")
    pagination: Pagination = Field(description="Pagination details")


def review_to_response(review: Review) -> dict[str, Any]:
    """Convert review model to response dict."""
    return {
        "id": review.id,
        "listing_id": review.listing_id,
        "customer_name": review.customer_name,
        "rating": review.rating,
        "text": review.text,
        "status": review.status,
        "reply": review.reply,
        "replied_at": isoformat_or_none(review.replied_at),
        "moderation_reason": review.moderation_reason,
        "created_at": isoformat_or_none(review.created_at),
    }


async def _get_review_or_404(db: AsyncSession, review_id: int, actor: Actor) -> Review:
    review = await ReviewRepository(db).get_by_id(review_id, actor.business_id)
    if review is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Review {review_id} not found",
        )
    return review


@router.get("", response_model=ReviewsResponse)
async def list_reviews(
    db: Annotated[AsyncSession, Depends(get_db)],
    actor: Annotated[Actor, Depends(require_permission("reviews.read"))],
    status_filter: Annotated[str | None, Query(alias="status")] = None,
    listing_id: int | None = None,
    rating: Annotated[int | None, Query(ge=1, le=5)] = None,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=MAX_PAGE_SIZE)] = 20,
) -> dict[str, Any]:
    """List reviews with filters."""
    if status_filter is not None and status_filter not in REVIEW_STATUSES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid status: {status_filter}",
        )

    reviews, total = await ReviewRepository(db).list_for_business(
        actor.business_id,
        status=status_filter,
        listing_id=listing_id,
        rating=rating,
        page=page,
        limit=limit,
    )
    return {
        "reviews": [review_to_response(review) for review in reviews],
        "pagination": pagination(page, limit, total),
    }


@router.post("/{review_id}/moderate", response_model=ReviewResponse)
async def moderate_review(
    review_id: int,
    body: ModerateRequest,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    actor: Annotated[Actor, Depends(require_permission("reviews.manage"))],
) -> dict[str, Any]:
    """Approve or reject a review."""
    review = await _get_review_or_404(db, review_id, actor)
    review.status = body.status
    review.moderation_reason = body.reason
    review = await ReviewRepository(db).update(review)

    await record_audit(
        db,
        request,
        actor,
        audit.REVIEW_MODERATED,
        "review",
        review.id,
        {"status": body.status, "reason": body.reason},
    )
    logger.info("Review %d moderated to %s", review.id, body.status)
    return review_to_response(review)


@router.post("/{review_id}/reply", response_model=ReviewResponse)
async def reply_to_review(
    review_id: int,
    body: ReplyRequest,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    actor: Annotated[Actor, Depends(require_permission("reviews.manage"))],
) -> dict[str, Any]:
    """Post or replace the business' public reply to a review."""
    review = await _get_review_or_404(db, review_id, actor)
    review.reply = body.reply.strip()
    review.replied_at = datetime.now(UTC)
    review = await ReviewRepository(db).update(review)

    await record_audit(db, request, actor, audit.REVIEW_REPLIED, "review", review.id)
    return review_to_response(review)
