# SPDX-FileCopyrightText: 2026 Andrew Grimberg <tykeal@bardicgrove.org>
# SPDX-License-Identifier: Apache-2.0
"""Public marketplace API endpoints (no authentication).

Covers browsing published spaces, quotes, booking requests, listing
checkout and reviews.
"""

import logging
from datetime import UTC, datetime, timedelta
from typing import Annotated, Any

from fastapi import (
    APIRouter,
    BackgroundTasks,
    Depends,
    Header,
    HTTPException,
    Query,
    status,
)
from fastapi.responses import Response
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from tripfluence.api.dependencies import Pagination, pagination
from tripfluence.api.orders import order_event_payload, order_to_response
from tripfluence.api.reviews import review_to_response
from tripfluence.api.space_requests import (
    event_payload,
    raise_for_request_error,
    request_to_response,
)
from tripfluence.config import get_settings
from tripfluence.database import get_db
from tripfluence.models.listing import Listing
from tripfluence.models.review import REVIEW_PENDING, Review
from tripfluence.models.space import Space, rules_as_dicts
from tripfluence.repositories.base import RepositoryError
from tripfluence.repositories.listing_repository import ListingRepository
from tripfluence.repositories.review_repository import ReviewRepository
from tripfluence.repositories.space_repository import SpaceRepository
from tripfluence.repositories.space_request_repository import (
    SpaceRequestRepository,
)
from tripfluence.services.availability import BUSY_STATUSES, merge_busy_intervals
from tripfluence.services.calendar_service import CalendarService
from tripfluence.services.idempotency import (
    IDEMPOTENCY_HEADER,
    IdempotencyCache,
    get_idempotency_cache,
)
from tripfluence.services.order_service import OrderError, OrderService
from tripfluence.services.pricing import (
    format_price,
    get_max_hourly_rate,
    get_min_hourly_rate,
    get_total_fees,
)
from tripfluence.services.space_request_service import (
    SpaceRequestError,
    SpaceRequestService,
    validate_window,
)
from tripfluence.services.webhook_service import publish_event
from tripfluence.utils.ids import slugify
from tripfluence.utils.timeutils import ensure_utc, isoformat_or_none

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/public", tags=["Public"])

MAX_PUBLIC_PAGE_SIZE = 50
DEFAULT_AVAILABILITY_DAYS = 30
CALENDAR_PAST_DAYS = 30
CALENDAR_FUTURE_DAYS = 365
MAX_AVAILABILITY_DAYS = 90
SORT_OPTIONS = ("relevance", "price_asc", "price_desc", "capacity")
EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


class WindowRequest(BaseModel):
    """Request model for a booking window."""

    start: datetime = Field(description="Requested start")
    end: datetime = Field(description="Requested end")


class SpaceRequestCreateRequest(WindowRequest):
    """Request model for submitting a booking request."""

    organizer_name: str = Field(min_length=1, max_length=255, description="Name")
    organizer_email: str = Field(pattern=EMAIL_PATTERN, description="Contact email")
    organizer_id: str | None = Field(
        default=None, max_length=100, description="Organizer user ID"
    )
    title: str = Field(min_length=1, max_length=200, description="Event title")
    description: str | None = Field(
        default=None, max_length=5000, description="Event description"
    )
    attendees: int = Field(ge=1, description="Expected attendees")


class CheckoutRequest(BaseModel):
    """Request model for buying a listing."""

    customer_email: str = Field(pattern=EMAIL_PATTERN, description="Customer email")
    customer_name: str = Field(min_length=1, max_length=255, description="Name")
    customer_phone: str | None = Field(default=None, max_length=50, description="Phone")
    quantity: int = Field(default=1, ge=1, description="Units to buy")


class ReviewCreateRequest(BaseModel):
    """Request model for reviewing a listing."""

    customer_name: str = Field(min_length=1, max_length=255, description="Name")
    customer_email: str | None = Field(
        default=None, pattern=EMAIL_PATTERN, description="Email"
    )
    rating: int = Field(ge=1, le=5, description="Rating from 1 to 5")
    text: str | None = Field(default=None, max_length=2000, description="Review")


class PublicSpacesResponse(BaseModel):
    """Response model for a page of public spaces."""

    spaces: list[dict[str, Any]] = Field(description="Spaces on this page")
    pagination: Pagination = Field(description="Pagination details")


def space_url(space: Space) -> str:
    """Public page URL of a space."""
    base = get_settings().public_base_url.rstrip("/")
    return f"{base}/venues/{slugify(space.city, fallback='city')}/{space.slug}"


def public_space_to_response(space: Space) -> dict[str, Any]:
    """Convert a published space to its public representation."""
    rules = space.pricing_rules
    min_rate = get_min_hourly_rate(rules)
    currency = rules[0].currency if rules else "USD"
    return {
        "id": space.id,
        "title": space.title,
        "slug": space.slug,
        "description": space.description,
        "city": space.city,
        "address": space.address,
        "lat": space.lat,
        "lng": space.lng,
        "timezone": space.timezone,
        "capacity": space.capacity,
        "floor_area_m2": space.floor_area_m2,
        "photos": space.photos or [],
        "amenities": space.amenities or [],
        "rules": space.rules or [],
        "url": space_url(space),
        "pricing": {
            "currency": currency,
            "min_hourly_rate": min_rate,
            "max_hourly_rate": get_max_hourly_rate(rules),
            "total_fees": get_total_fees(rules),
            "display_from": format_price(min_rate, currency)
            if min_rate is not None
            else None,
            "rules": rules_as_dicts(rules),
        },
    }


def _sort_spaces(spaces: list[Space], sort: str) -> list[Space]:
    if sort == "capacity":
        return sorted(spaces, key=lambda s: s.capacity, reverse=True)
    if sort in ("price_asc", "price_desc"):
        priced = [s for s in spaces if get_min_hourly_rate(s.pricing_rules) is not None]
        unpriced = [s for s in spaces if get_min_hourly_rate(s.pricing_rules) is None]
        priced.sort(
            key=lambda s: get_min_hourly_rate(s.pricing_rules) or 0,
            reverse=sort == "price_desc",
        )
        return priced + unpriced
    return spaces


async def _get_published_space_or_404(db: AsyncSession, space_id: int) -> Space:
    space = await SpaceRepository(db).get_published(space_id)
    if space is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Space {space_id} not found",
        )
    return space


async def _get_published_listing_or_404(db: AsyncSession, listing_id: int) -> Listing:
    listing = await ListingRepository(db).get_published(listing_id)
    if listing is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Listing {listing_id} not found",
        )
    return listing


@router.get("/spaces", response_model=PublicSpacesResponse)
async def list_public_spaces(
    db: Annotated[AsyncSession, Depends(get_db)],
    city: Annotated[str | None, Query(max_length=100)] = None,
    capacity: Annotated[int | None, Query(ge=1)] = None,
    price_min: Annotated[int | None, Query(ge=0)] = None,
    price_max: Annotated[int | None, Query(ge=0)] = None,
    q: Annotated[str | None, Query(max_length=100)] = None,
    sort: str = "relevance",
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=MAX_PUBLIC_PAGE_SIZE)] = 20,
) -> dict[str, Any]:
    """Browse published spaces.

    Price filters apply to the lowest hourly-equivalent rate.

    Returns:
        A page of public spaces with pagination details.
    """
    if sort not in SORT_OPTIONS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"sort must be one of {', '.join(SORT_OPTIONS)}",
        )

    spaces = list(
        await SpaceRepository(db).list_published(
            city=city, min_capacity=capacity, q=q
        )
    )

    if price_min is not None or price_max is not None:
        filtered = []
        for space in spaces:
            rate = get_min_hourly_rate(space.pricing_rules)
            if rate is None:
                continue
            if price_min is not None and rate < price_min:
                continue
            if price_max is not None and rate > price_max:
                continue
            filtered.append(space)
        spaces = filtered

    spaces = _sort_spaces(spaces, sort)
    total = len(spaces)
    offset = (page - 1) * limit
    return {
        "spaces": [
            public_space_to_response(space) for space in spaces[offset : offset + limit]
        ],
        "pagination": pagination(page, limit, total),
    }


@router.get("/spaces/by-slug/{city}/{slug}")
async def get_public_space_by_slug(
    city: str,
    slug: str,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> dict[str, Any]:
    """Get a published space by city and slug, as used in page URLs."""
    space = await SpaceRepository(db).get_published_by_city_slug(city, slug)
    if space is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Space '{slug}' not found in {city}",
        )
    return public_space_to_response(space)


@router.get("/spaces/{space_id}")
async def get_public_space(
    space_id: int,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> dict[str, Any]:
    """Get a published space."""
    return public_space_to_response(await _get_published_space_or_404(db, space_id))


@router.get("/spaces/{space_id}/availability")
async def get_public_availability(
    space_id: int,
    db: Annotated[AsyncSession, Depends(get_db)],
    start: Annotated[datetime | None, Query(alias="from")] = None,
    end: Annotated[datetime | None, Query(alias="to")] = None,
) -> dict[str, Any]:
    """Get open windows and busy periods of a space.

    Defaults to the next 30 days; windows longer than 90 days are rejected.
    """
    space = await _get_published_space_or_404(db, space_id)

    window_start = ensure_utc(start) if start else datetime.now(UTC)
    window_end = (
        ensure_utc(end)
        if end
        else window_start + timedelta(days=DEFAULT_AVAILABILITY_DAYS)
    )
    if window_end <= window_start:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="to must be after from",
        )
    if window_end - window_start > timedelta(days=MAX_AVAILABILITY_DAYS):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Window cannot exceed {MAX_AVAILABILITY_DAYS} days",
        )

    blocks = await SpaceRepository(db).get_blocks_in_range(
        space.id, window_start, window_end
    )
    bookings = await SpaceRequestRepository(db).get_for_space_in_range(
        space.id,
        window_start,
        window_end,
        statuses=sorted(BUSY_STATUSES),
    )
    busy = merge_busy_intervals(blocks, bookings)

    return {
        "space_id": space.id,
        "timezone": space.timezone,
        "from": window_start.isoformat(),
        "to": window_end.isoformat(),
        "open": [
            {
                "start": isoformat_or_none(block.start),
                "end": isoformat_or_none(block.end),
                "notes": block.notes,
            }
            for block in blocks
            if not block.is_blocked
        ],
        "busy": [
            {"start": interval.start.isoformat(), "end": interval.end.isoformat()}
            for interval in busy
        ],
    }


@router.get(
    "/spaces/{space_id}/calendar.ics",
    response_class=Response,
    responses={
        200: {"content": {"text/calendar": {}}, "description": "iCal busy feed"},
        404: {"description": "Space not found"},
    },
)
async def get_space_calendar(
    space_id: int,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> Response:
    """Subscribe-able iCal feed of the times a published space is taken.

    Covers the past 30 days and the next year.
    """
    space = await _get_published_space_or_404(db, space_id)

    now = datetime.now(UTC)
    window_start = now - timedelta(days=CALENDAR_PAST_DAYS)
    window_end = now + timedelta(days=CALENDAR_FUTURE_DAYS)
    blocks = await SpaceRepository(db).get_blocks_in_range(
        space.id, window_start, window_end
    )
    bookings = await SpaceRequestRepository(db).get_for_space_in_range(
        space.id, window_start, window_end, statuses=sorted(BUSY_STATUSES)
    )

    content = CalendarService().generate_ical(
        space, merge_busy_intervals(blocks, bookings)
    )
    return Response(
        content=content,
        media_type="text/calendar",
        headers={
            "Content-Disposition": f'attachment; filename="{space.slug}.ics"',
        },
    )


@router.post("/spaces/{space_id}/quote")
async def quote_space(
    space_id: int,
    body: WindowRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> dict[str, Any]:
    """Price a booking window and report whether it is available."""
    space = await _get_published_space_or_404(db, space_id)
    try:
        start, end = validate_window(body.start, body.end)
    except SpaceRequestError as e:
        raise_for_request_error(e)

    service = SpaceRequestService(db)
    pricing = service.quote(space, start, end)
    check = await service.check_window(space, start, end)

    return {
        "space_id": space.id,
        "start": start.isoformat(),
        "end": end.isoformat(),
        "available": check.available,
        "reason": check.reason,
        "quote": pricing.model_dump(),
        "display_total": format_price(pricing.total, pricing.currency),
    }


def _replay(
    cache: IdempotencyCache, scope: str, key: str | None
) -> tuple[str | None, dict[str, Any] | None]:
    if not key:
        return None, None
    cache_key = cache.make_key(scope, key)
    cached = cache.get(cache_key)
    if cached is not None:
        logger.info("Replaying idempotent response for %s", scope)
    return cache_key, cached


@router.post("/spaces/{space_id}/requests", status_code=status.HTTP_201_CREATED)
async def create_space_request(
    space_id: int,
    body: SpaceRequestCreateRequest,
    background_tasks: BackgroundTasks,
    db: Annotated[AsyncSession, Depends(get_db)],
    idempotency_key: Annotated[
        str | None, Header(alias=IDEMPOTENCY_HEADER, max_length=255)
    ] = None,
) -> dict[str, Any]:
    """Submit a booking request for a published space.

    Repeating the call with the same Idempotency-Key returns the first
    response instead of creating another request.

    Raises:
        HTTPException: 404 if the space is not published, 400 for invalid
            attendees or window, 409 if the window is taken.
    """
    cache = get_idempotency_cache()
    cache_key, cached = _replay(cache, f"space_request:{space_id}", idempotency_key)
    if cached is not None:
        return cached

    space = await _get_published_space_or_404(db, space_id)
    try:
        space_request = await SpaceRequestService(db).create(
            space,
            organizer_name=body.organizer_name,
            organizer_email=body.organizer_email,
            organizer_id=body.organizer_id,
            title=body.title,
            description=body.description,
            attendees=body.attendees,
            start=body.start,
            end=body.end,
        )
    except SpaceRequestError as e:
        raise_for_request_error(e)

    await db.commit()
    response = request_to_response(space_request)
    if cache_key is not None:
        cache.set(cache_key, response)

    background_tasks.add_task(
        publish_event,
        space.business_id,
        "space_request.created",
        event_payload(space_request),
    )
    return response


@router.get("/listings/{listing_id}")
async def get_public_listing(
    listing_id: int,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> dict[str, Any]:
    """Get a published listing with its approved reviews."""
    listing = await _get_published_listing_or_404(db, listing_id)
    reviews = await ReviewRepository(db).list_approved_for_listing(listing.id)
    ratings = [review.rating for review in reviews]
    return {
        "id": listing.id,
        "type": listing.type,
        "title": listing.title,
        "slug": listing.slug,
        "description": listing.description,
        "city": listing.city,
        "country": listing.country,
        "price_from": listing.price_from,
        "currency": listing.currency,
        "display_price": format_price(listing.price_from, listing.currency),
        "capacity": listing.capacity,
        "photos": listing.photos or [],
        "details": listing.details or {},
        "average_rating": round(sum(ratings) / len(ratings), 2) if ratings else None,
        "reviews": [review_to_response(review) for review in reviews],
    }


@router.post("/listings/{listing_id}/checkout", status_code=status.HTTP_201_CREATED)
async def checkout_listing(
    listing_id: int,
    body: CheckoutRequest,
    background_tasks: BackgroundTasks,
    db: Annotated[AsyncSession, Depends(get_db)],
    idempotency_key: Annotated[
        str | None, Header(alias=IDEMPOTENCY_HEADER, max_length=255)
    ] = None,
) -> dict[str, Any]:
    """Create a pending order for a published listing.

    Raises:
        HTTPException: 404 if the listing is not published, 400 for an
            invalid quantity, 503 if no order number could be allocated.
    """
    cache = get_idempotency_cache()
    cache_key, cached = _replay(cache, f"checkout:{listing_id}", idempotency_key)
    if cached is not None:
        return cached

    listing = await _get_published_listing_or_404(db, listing_id)
    try:
        order = await OrderService(db).checkout(
            listing,
            customer_email=body.customer_email,
            customer_name=body.customer_name,
            customer_phone=body.customer_phone,
            quantity=body.quantity,
        )
    except OrderError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)
        ) from e
    except RepositoryError as e:
        logger.error("Checkout for listing %d failed: %s", listing_id, e)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Could not create order, please retry",
        ) from e

    await db.commit()
    response = order_to_response(order)
    if cache_key is not None:
        cache.set(cache_key, response)

    background_tasks.add_task(
        publish_event,
        listing.business_id,
        "order.created",
        order_event_payload(order),
    )
    return response


@router.post("/listings/{listing_id}/reviews", status_code=status.HTTP_201_CREATED)
async def create_review(
    listing_id: int,
    body: ReviewCreateRequest,
    background_tasks: BackgroundTasks,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> dict[str, Any]:
    """Submit a review; it stays hidden until approved."""
    listing = await _get_published_listing_or_404(db, listing_id)
    review = await ReviewRepository(db).create(
        Review(
            business_id=listing.business_id,
            listing_id=listing.id,
            customer_name=body.customer_name,
            customer_email=body.customer_email,
            rating=body.rating,
            text=body.text,
            status=REVIEW_PENDING,
        )
    )
    logger.info("Review %d submitted for listing %d", review.id, listing.id)

    background_tasks.add_task(
        publish_event,
        listing.business_id,
        "review.created",
        {"id": review.id, "listing_id": listing.id, "rating": review.rating},
    )
    return review_to_response(review)
