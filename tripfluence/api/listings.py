# SPDX-FileCopyrightText: 2026 Andrew Grimberg <tykeal@bardicgrove.org>
# SPDX-License-Identifier: Apache-2.0
"""Listings management API endpoints."""

import logging
from datetime import UTC, datetime
from typing import Annotated, Any

from fastapi import (
    APIRouter,
    BackgroundTasks,
    Depends,
    HTTPException,
    Query,
    Request,
    status,
)
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.ext.asyncio import AsyncSession

from tripfluence.api.dependencies import (
    Actor,
    Pagination,
    pagination,
    record_audit,
    require_permission,
)
from tripfluence.database import get_db
from tripfluence.models.listing import (
    LISTING_ARCHIVED,
    LISTING_DRAFT,
    LISTING_PUBLISHED,
    LISTING_STATUSES,
    LISTING_TYPES,
    Listing,
)
from tripfluence.repositories.base import MAX_PAGE_SIZE
from tripfluence.repositories.listing_repository import ListingRepository
from tripfluence.services import audit
from tripfluence.services.webhook_service import publish_event
from tripfluence.utils.timeutils import isoformat_or_none

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/listings", tags=["Listings"])


class ListingCreateRequest(BaseModel):
    """Request model for creating a listing."""

    type: str = Field(description="EVENT, ACTIVITY, RETREAT, RESTAURANT or SPACE")
    title: str = Field(min_length=1, max_length=200, description="Listing title")
    description: str | None = Field(default=None, description="Description")
    city: str | None = Field(default=None, max_length=100, description="City")
    country: str | None = Field(default=None, max_length=100, description="Country")
    price_from: int = Field(default=0, ge=0, description="Price in minor units")
    currency: str = Field(default="USD", min_length=3, max_length=3)
    capacity: int | None = Field(default=None, ge=1, description="Capacity")
    photos: list[str] = Field(default_factory=list, description="Photo URLs")
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Type-specific details such as start_time and end_time",
    )

    @field_validator("type")
    @classmethod
    def check_type(cls, value: str) -> str:
        """Ensure the listing type is known."""
        if value not in LISTING_TYPES:
            msg = f"type must be one of {', '.join(LISTING_TYPES)}"
            raise ValueError(msg)
        return value

    @field_validator("currency")
    @classmethod
    def upper_currency(cls, value: str) -> str:
        """Normalize currency codes to upper case."""
        return value.upper()


class ListingUpdateRequest(BaseModel):
    """Request model for updating a listing."""

    title: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = None
    city: str | None = Field(default=None, max_length=100)
    country: str | None = Field(default=None, max_length=100)
    price_from: int | None = Field(default=None, ge=0)
    currency: str | None = Field(default=None, min_length=3, max_length=3)
    capacity: int | None = Field(default=None, ge=1)
    photos: list[str] | None = None
    details: dict[str, Any] | None = None


class ListingResponse(BaseModel):
    """Response model for a listing."""

    id: int = Field(description="Listing ID")
    type: str = Field(description="Listing type")
    title: str = Field(description="Listing title")
    slug: str = Field(description="URL slug")
    description: str | None = Field(default=None, description="Description")
    city: str | None = Field(default=None, description="City")
    country: str | None = Field(default=None, description="Country")
    status: str = Field(description="DRAFT, PUBLISHED or ARCHIVED")
    price_from: int = Field(description="Price in minor units")
    currency: str = Field(description="ISO currency")
    capacity: int | None = Field(default=None, description="Capacity")
    photos: list[str] = Field(description="Photo URLs")
    details: dict[str, Any] = Field(description="Type-specific details")
    published_at: str | None = Field(default=None, description="Publication time")
    created_at: str | None = Field(default=None, description="Creation time")
    updated_at: str | None = Field(default=None, description="Last update time")


class ListingsResponse(BaseModel):
    """Response model for a page of listings."""

    listings: list[ListingResponse] = Field(description="Listings on this page")
    pagination: Pagination = Field(description="Pagination details")


def listing_to_response(listing: Listing) -> dict[str, Any]:
    """Convert listing model to response dict."""
    return {
        "id": listing.id,
        "type": listing.type,
        "title": listing.title,
        "slug": listing.slug,
        "description": listing.description,
        "city": listing.city,
        "country": listing.country,
        "status": listing.status,
        "price_from": listing.price_from,
        "currency": listing.currency,
        "capacity": listing.capacity,
        "photos": listing.photos or [],
        "details": listing.details or {},
        "published_at": isoformat_or_none(listing.published_at),
        "created_at": isoformat_or_none(listing.created_at),
        "updated_at": isoformat_or_none(listing.updated_at),
    }


def listing_event_payload(listing: Listing) -> dict[str, Any]:
    """Webhook payload describing a listing."""
    return {
        "id": listing.id,
        "type": listing.type,
        "title": listing.title,
        "slug": listing.slug,
        "status": listing.status,
    }


async def _get_listing_or_404(
    repo: ListingRepository, listing_id: int, actor: Actor
) -> Listing:
    listing = await repo.get_by_id(listing_id, actor.business_id)
    if listing is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Listing {listing_id} not found",
        )
    return listing


@router.get("", response_model=ListingsResponse)
async def list_listings(
    db: Annotated[AsyncSession, Depends(get_db)],
    actor: Annotated[Actor, Depends(require_permission("listings.read"))],
    listing_type: Annotated[str | None, Query(alias="type")] = None,
    status_filter: Annotated[str | None, Query(alias="status")] = None,
    q: Annotated[str | None, Query(max_length=100)] = None,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=MAX_PAGE_SIZE)] = 20,
) -> dict[str, Any]:
    """List the business' listings.

    Returns:
        A page of listings with pagination details.
    """
    if listing_type is not None and listing_type not in LISTING_TYPES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid type: {listing_type}",
        )
    if status_filter is not None and status_filter not in LISTING_STATUSES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid status: {status_filter}",
        )

    listings, total = await ListingRepository(db).list_for_business(
        actor.business_id,
        listing_type=listing_type,
        status=status_filter,
        q=q,
        page=page,
        limit=limit,
    )
    return {
        "listings": [listing_to_response(listing) for listing in listings],
        "pagination": pagination(page, limit, total),
    }


@router.post("", response_model=ListingResponse, status_code=status.HTTP_201_CREATED)
async def create_listing(
    body: ListingCreateRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    db: Annotated[AsyncSession, Depends(get_db)],
    actor: Annotated[Actor, Depends(require_permission("listings.manage"))],
) -> dict[str, Any]:
    """Create a listing in DRAFT status with a generated slug."""
    repo = ListingRepository(db)
    listing = await repo.create(
        Listing(
            business_id=actor.business_id,
            slug=await repo.generate_unique_slug(actor.business_id, body.title),
            status=LISTING_DRAFT,
            **body.model_dump(),
        )
    )
    await record_audit(
        db,
        request,
        actor,
        audit.LISTING_CREATED,
        "listing",
        listing.id,
        {"title": listing.title, "type": listing.type},
    )
    background_tasks.add_task(
        publish_event,
        actor.business_id,
        "listing.created",
        listing_event_payload(listing),
    )

    logger.info("Created listing %d (%s)", listing.id, listing.slug)
    return listing_to_response(listing)


@router.get("/{listing_id}", response_model=ListingResponse)
async def get_listing(
    listing_id: int,
    db: Annotated[AsyncSession, Depends(get_db)],
    actor: Annotated[Actor, Depends(require_permission("listings.read"))],
) -> dict[str, Any]:
    """Get a listing."""
    listing = await _get_listing_or_404(ListingRepository(db), listing_id, actor)
    return listing_to_response(listing)


@router.patch("/{listing_id}", response_model=ListingResponse)
async def update_listing(
    listing_id: int,
    body: ListingUpdateRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    db: Annotated[AsyncSession, Depends(get_db)],
    actor: Annotated[Actor, Depends(require_permission("listings.manage"))],
) -> dict[str, Any]:
    """Update listing fields.

    Only provided fields are changed.
    """
    repo = ListingRepository(db)
    listing = await _get_listing_or_404(repo, listing_id, actor)

    changes = body.model_dump(exclude_unset=True)
    if changes.get("currency"):
        changes["currency"] = changes["currency"].upper()
    for field, value in changes.items():
        setattr(listing, field, value)
    listing = await repo.update(listing)

    await record_audit(
        db,
        request,
        actor,
        audit.LISTING_UPDATED,
        "listing",
        listing.id,
        {"fields": sorted(changes)},
    )
    background_tasks.add_task(
        publish_event,
        actor.business_id,
        "listing.updated",
        listing_event_payload(listing),
    )
    return listing_to_response(listing)


@router.post("/{listing_id}/publish", response_model=ListingResponse)
async def publish_listing(
    listing_id: int,
    request: Request,
    background_tasks: BackgroundTasks,
    db: Annotated[AsyncSession, Depends(get_db)],
    actor: Annotated[Actor, Depends(require_permission("listings.manage"))],
) -> dict[str, Any]:
    """Publish a listing so customers can order and review it."""
    repo = ListingRepository(db)
    listing = await _get_listing_or_404(repo, listing_id, actor)

    listing.status = LISTING_PUBLISHED
    listing.published_at = listing.published_at or datetime.now(UTC)
    listing = await repo.update(listing)

    await record_audit(
        db, request, actor, audit.LISTING_PUBLISHED, "listing", listing.id
    )
    background_tasks.add_task(
        publish_event,
        actor.business_id,
        "listing.published",
        listing_event_payload(listing),
    )
    logger.info("Published listing %d", listing.id)
    return listing_to_response(listing)


@router.post("/{listing_id}/archive", response_model=ListingResponse)
async def archive_listing(
    listing_id: int,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    actor: Annotated[Actor, Depends(require_permission("listings.manage"))],
) -> dict[str, Any]:
    """Archive a listing, closing it to new orders."""
    repo = ListingRepository(db)
    listing = await _get_listing_or_404(repo, listing_id, actor)
    listing.status = LISTING_ARCHIVED
    listing = await repo.update(listing)
    await record_audit(
        db, request, actor, audit.LISTING_ARCHIVED, "listing", listing.id
    )
    return listing_to_response(listing)


@router.delete("/{listing_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_listing(
    listing_id: int,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    actor: Annotated[Actor, Depends(require_permission("listings.manage"))],
) -> None:
    """Delete a listing that has never been ordered.

    Raises:
        HTTPException: 409 if orders reference the listing.
    """
    repo = ListingRepository(db)
    listing = await _get_listing_or_404(repo, listing_id, actor)

    if await repo.has_orders(listing.id):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Listing has orders; archive it instead",
        )

    await repo.delete(listing)
    await record_audit(
        db,
        request,
        actor,
        audit.LISTING_DELETED,
        "listing",
        listing_id,
        {"title": listing.title},
    )
    logger.info("Deleted listing %d", listing_id)
