# SPDX-FileCopyrightText: 2026 Andrew Grimberg <tykeal@bardicgrove.org>
# SPDX-License-Identifier: Apache-2.0
"""Space management API endpoints: spaces, pricing rules and availability."""

import logging
from datetime import UTC, datetime
from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from pydantic import BaseModel, Field, model_validator
from sqlalchemy.ext.asyncio import AsyncSession

from tripfluence.api.dependencies import (
    Actor,
    Pagination,
    pagination,
    record_audit,
    require_permission,
)
from tripfluence.database import get_db
from tripfluence.models.space import (
    RULE_KINDS,
    SPACE_ARCHIVED,
    SPACE_PUBLISHED,
    SPACE_STATUSES,
    Space,
    SpaceAvailability,
    SpacePricingRule,
    rules_as_dicts,
)
from tripfluence.repositories.base import MAX_PAGE_SIZE
from tripfluence.repositories.space_repository import SpaceRepository
from tripfluence.repositories.space_request_repository import (
    SpaceRequestRepository,
)
from tripfluence.services import audit
from tripfluence.services.pricing import (
    get_max_hourly_rate,
    get_min_hourly_rate,
    get_total_fees,
    validate_pricing_rules,
)
from tripfluence.utils.ids import slugify
from tripfluence.utils.timeutils import ensure_utc, isoformat_or_none

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/spaces", tags=["Spaces"])

SLUG_PATTERN = r"^[a-z0-9-]+$"
MAX_PRICING_RULES = 10


class SpaceCreateRequest(BaseModel):
    """Request model for creating a space."""

    title: str = Field(min_length=1, max_length=100, description="Space title")
    slug: str | None = Field(
        default=None,
        min_length=1,
        max_length=100,
        pattern=SLUG_PATTERN,
        description="URL slug, generated from the title when omitted",
    )
    description: str = Field(min_length=1, description="Space description")
    city: str = Field(min_length=1, max_length=100, description="City")
    address: str | None = Field(default=None, max_length=255, description="Address")
    lat: float | None = Field(default=None, ge=-90, le=90, description="Latitude")
    lng: float | None = Field(default=None, ge=-180, le=180, description="Longitude")
    timezone: str = Field(default="UTC", max_length=50, description="IANA timezone")
    capacity: int = Field(ge=1, description="Maximum attendees")
    floor_area_m2: int | None = Field(default=None, ge=1, description="Floor area")
    photos: list[str] = Field(default_factory=list, description="Photo URLs")
    amenities: list[str] = Field(default_factory=list, description="Amenities")
    rules: list[str] = Field(default_factory=list, description="House rules")


class SpaceUpdateRequest(BaseModel):
    """Request model for updating a space."""

    title: str | None = Field(default=None, min_length=1, max_length=100)
    slug: str | None = Field(
        default=None, min_length=1, max_length=100, pattern=SLUG_PATTERN
    )
    description: str | None = Field(default=None, min_length=1)
    city: str | None = Field(default=None, min_length=1, max_length=100)
    address: str | None = Field(default=None, max_length=255)
    lat: float | None = Field(default=None, ge=-90, le=90)
    lng: float | None = Field(default=None, ge=-180, le=180)
    timezone: str | None = Field(default=None, max_length=50)
    capacity: int | None = Field(default=None, ge=1)
    floor_area_m2: int | None = Field(default=None, ge=1)
    photos: list[str] | None = None
    amenities: list[str] | None = None
    rules: list[str] | None = None


class PricingRuleInput(BaseModel):
    """A pricing rule in a bulk replace request."""

    kind: str = Field(description="HOURLY, DAILY, PEAK, CLEANING_FEE, SECURITY_DEPOSIT")
    amount: int = Field(ge=0, description="Amount in minor units")
    currency: str = Field(
        default="USD", min_length=3, max_length=3, description="ISO currency"
    )
    dow: list[int] = Field(
        default_factory=list, description="Days of week, 0=Sunday..6=Saturday"
    )
    start_hour: int | None = Field(default=None, ge=0, le=23)
    end_hour: int | None = Field(default=None, ge=1, le=24)

    @model_validator(mode="after")
    def check_rule(self) -> "PricingRuleInput":
        """Validate kind, weekdays and hour range."""
        if self.kind not in RULE_KINDS:
            msg = f"kind must be one of {', '.join(RULE_KINDS)}"
            raise ValueError(msg)
        if any(day < 0 or day > 6 for day in self.dow):
            msg = "dow values must be between 0 and 6"
            raise ValueError(msg)
        if (self.start_hour is None) != (self.end_hour is None):
            msg = "start_hour and end_hour must be set together"
            raise ValueError(msg)
        if (
            self.start_hour is not None
            and self.end_hour is not None
            and self.start_hour >= self.end_hour
        ):
            msg = "start_hour must be before end_hour"
            raise ValueError(msg)
        self.currency = self.currency.upper()
        return self


class PricingReplaceRequest(BaseModel):
    """Request model for replacing all pricing rules of a space."""

    rules: list[PricingRuleInput] = Field(
        max_length=MAX_PRICING_RULES, description="New pricing rules"
    )


class AvailabilityCreateRequest(BaseModel):
    """Request model for adding an availability block."""

    start: datetime = Field(description="Block start")
    end: datetime = Field(description="Block end")
    is_blocked: bool = Field(default=False, description="Make the window unbookable")
    notes: str | None = Field(default=None, max_length=500, description="Notes")

    @model_validator(mode="after")
    def check_window(self) -> "AvailabilityCreateRequest":
        """Ensure the block ends after it starts."""
        if ensure_utc(self.start) >= ensure_utc(self.end):
            msg = "end must be after start"
            raise ValueError(msg)
        return self


class SpaceResponse(BaseModel):
    """Response model for a space."""

    id: int = Field(description="Space ID")
    title: str = Field(description="Space title")
    slug: str = Field(description="URL slug")
    description: str = Field(description="Description")
    city: str = Field(description="City")
    address: str | None = Field(default=None, description="Address")
    lat: float | None = Field(default=None, description="Latitude")
    lng: float | None = Field(default=None, description="Longitude")
    timezone: str = Field(description="IANA timezone")
    capacity: int = Field(description="Maximum attendees")
    floor_area_m2: int | None = Field(default=None, description="Floor area")
    photos: list[str] = Field(description="Photo URLs")
    amenities: list[str] = Field(description="Amenities")
    rules: list[str] = Field(description="House rules")
    status: str = Field(description="DRAFT, PUBLISHED or ARCHIVED")
    published_at: str | None = Field(default=None, description="Publication time")
    pricing_rules: list[dict[str, Any]] = Field(description="Pricing rules")
    created_at: str | None = Field(default=None, description="Creation time")
    updated_at: str | None = Field(default=None, description="Last update time")


class SpacesResponse(BaseModel):
    """Response model for a page of spaces."""

    spaces: list[SpaceResponse] = Field(description="Spaces on this page")
    pagination: Pagination = Field(description="Pagination details")


class AvailabilityResponse(BaseModel):
    """Response model for an availability block."""

    id: int = Field(description="Block ID")
    start: str = Field(description="Block start (UTC)")
    end: str = Field(description="Block end (UTC)")
    is_blocked: bool = Field(description="Whether the window is unbookable")
    notes: str | None = Field(default=None, description="Notes")


def space_to_response(space: Space) -> dict[str, Any]:
    """Convert space model to response dict."""
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
        "status": space.status,
        "published_at": isoformat_or_none(space.published_at),
        "pricing_rules": rules_as_dicts(space.pricing_rules),
        "created_at": isoformat_or_none(space.created_at),
        "updated_at": isoformat_or_none(space.updated_at),
    }


def block_to_response(block: SpaceAvailability) -> dict[str, Any]:
    """Convert availability block to response dict."""
    return {
        "id": block.id,
        "start": isoformat_or_none(block.start),
        "end": isoformat_or_none(block.end),
        "is_blocked": block.is_blocked,
        "notes": block.notes,
    }


async def _get_space_or_404(
    repo: SpaceRepository, space_id: int, actor: Actor
) -> Space:
    space = await repo.get_by_id(space_id, actor.business_id)
    if space is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Space {space_id} not found",
        )
    return space


@router.get("", response_model=SpacesResponse)
async def list_spaces(
    db: Annotated[AsyncSession, Depends(get_db)],
    actor: Annotated[Actor, Depends(require_permission("spaces.read"))],
    status_filter: Annotated[str | None, Query(alias="status")] = None,
    q: Annotated[str | None, Query(max_length=100)] = None,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=MAX_PAGE_SIZE)] = 20,
) -> dict[str, Any]:
    """List the business' spaces.

    Returns:
        A page of spaces with pagination details.
    """
    if status_filter is not None and status_filter not in SPACE_STATUSES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid status: {status_filter}",
        )

    spaces, total = await SpaceRepository(db).list_for_business(
        actor.business_id, status=status_filter, q=q, page=page, limit=limit
    )
    return {
        "spaces": [space_to_response(space) for space in spaces],
        "pagination": pagination(page, limit, total),
    }


@router.post("", response_model=SpaceResponse, status_code=status.HTTP_201_CREATED)
async def create_space(
    body: SpaceCreateRequest,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    actor: Annotated[Actor, Depends(require_permission("spaces.create"))],
) -> dict[str, Any]:
    """Create a space in DRAFT status.

    Raises:
        HTTPException: 409 if the slug is already used by the business.
    """
    repo = SpaceRepository(db)
    slug = body.slug or slugify(body.title, fallback="space")
    if await repo.slug_exists(actor.business_id, slug):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Slug '{slug}' is already in use",
        )

    space = Space(
        business_id=actor.business_id,
        **body.model_dump(exclude={"slug"}),
        slug=slug,
        pricing_rules=[],
        availability=[],
    )
    space = await repo.create(space)
    await record_audit(db, request, actor, audit.SPACE_CREATED, "space", space.id)

    logger.info(
        "Created space %d (%s) for business %d", space.id, slug, actor.business_id
    )
    return space_to_response(space)


@router.get("/{space_id}", response_model=SpaceResponse)
async def get_space(
    space_id: int,
    db: Annotated[AsyncSession, Depends(get_db)],
    actor: Annotated[Actor, Depends(require_permission("spaces.read"))],
) -> dict[str, Any]:
    """Get a space with its pricing rules."""
    space = await _get_space_or_404(SpaceRepository(db), space_id, actor)
    return space_to_response(space)


@router.patch("/{space_id}", response_model=SpaceResponse)
async def update_space(
    space_id: int,
    body: SpaceUpdateRequest,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    actor: Annotated[Actor, Depends(require_permission("spaces.update"))],
) -> dict[str, Any]:
    """Update space fields.

    Only provided fields are changed.

    Raises:
        HTTPException: 404 if not found, 409 if the new slug is taken.
    """
    repo = SpaceRepository(db)
    space = await _get_space_or_404(repo, space_id, actor)

    changes = body.model_dump(exclude_unset=True)
    new_slug = changes.get("slug")
    if new_slug and await repo.slug_exists(
        actor.business_id, new_slug, exclude_id=space.id
    ):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Slug '{new_slug}' is already in use",
        )

    for field, value in changes.items():
        setattr(space, field, value)
    space = await repo.update(space)
    await record_audit(
        db,
        request,
        actor,
        audit.SPACE_UPDATED,
        "space",
        space.id,
        {"fields": sorted(changes)},
    )

    return space_to_response(space)


@router.delete("/{space_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_space(
    space_id: int,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    actor: Annotated[Actor, Depends(require_permission("spaces.delete"))],
) -> None:
    """Delete a space with its rules, blocks and requests."""
    repo = SpaceRepository(db)
    space = await _get_space_or_404(repo, space_id, actor)
    await repo.delete(space)
    await record_audit(
        db, request, actor, audit.SPACE_DELETED, "space", space_id, {"slug": space.slug}
    )
    logger.info("Deleted space %d", space_id)


@router.post("/{space_id}/publish", response_model=SpaceResponse)
async def publish_space(
    space_id: int,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    actor: Annotated[Actor, Depends(require_permission("spaces.publish"))],
) -> dict[str, Any]:
    """Publish a space on the public site.

    Raises:
        HTTPException: 400 with the list of problems if its pricing rules
            cannot price a booking.
    """
    repo = SpaceRepository(db)
    space = await _get_space_or_404(repo, space_id, actor)

    errors = validate_pricing_rules(space.pricing_rules)
    if errors:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"message": "Space has invalid pricing rules", "errors": errors},
        )

    space.status = SPACE_PUBLISHED
    space.published_at = space.published_at or datetime.now(UTC)
    space = await repo.update(space)
    await record_audit(db, request, actor, audit.SPACE_PUBLISHED, "space", space.id)

    logger.info("Published space %d", space.id)
    return space_to_response(space)


@router.post("/{space_id}/archive", response_model=SpaceResponse)
async def archive_space(
    space_id: int,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    actor: Annotated[Actor, Depends(require_permission("spaces.publish"))],
) -> dict[str, Any]:
    """Archive a space, hiding it from the public site."""
    repo = SpaceRepository(db)
    space = await _get_space_or_404(repo, space_id, actor)
    space.status = SPACE_ARCHIVED
    space = await repo.update(space)
    await record_audit(db, request, actor, audit.SPACE_ARCHIVED, "space", space.id)
    return space_to_response(space)


@router.get("/{space_id}/pricing")
async def get_pricing(
    space_id: int,
    db: Annotated[AsyncSession, Depends(get_db)],
    actor: Annotated[Actor, Depends(require_permission("spaces.read"))],
) -> dict[str, Any]:
    """Get a space's pricing rules and the problems they have, if any."""
    space = await _get_space_or_404(SpaceRepository(db), space_id, actor)
    return {
        "rules": rules_as_dicts(space.pricing_rules),
        "errors": validate_pricing_rules(space.pricing_rules),
    }


@router.put("/{space_id}/pricing")
async def replace_pricing(
    space_id: int,
    body: PricingReplaceRequest,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    actor: Annotated[Actor, Depends(require_permission("pricing.manage"))],
) -> dict[str, Any]:
    """Replace every pricing rule of a space.

    Returns:
        Stored rules plus validation errors that would block publishing.
    """
    repo = SpaceRepository(db)
    space = await _get_space_or_404(repo, space_id, actor)

    rules = [
        SpacePricingRule(
            kind=rule.kind,
            amount=rule.amount,
            currency=rule.currency,
            dow=rule.dow,
            start_hour=rule.start_hour,
            end_hour=rule.end_hour,
        )
        for rule in body.rules
    ]
    space = await repo.replace_pricing_rules(space, rules)
    await record_audit(
        db,
        request,
        actor,
        audit.PRICING_UPDATED,
        "space",
        space.id,
        {"rules": len(rules)},
    )

    return {
        "rules": rules_as_dicts(space.pricing_rules),
        "errors": validate_pricing_rules(space.pricing_rules),
    }


@router.get("/{space_id}/availability", response_model=list[AvailabilityResponse])
async def list_availability(
    space_id: int,
    db: Annotated[AsyncSession, Depends(get_db)],
    actor: Annotated[Actor, Depends(require_permission("availability.read"))],
    start: Annotated[datetime | None, Query(alias="from")] = None,
    end: Annotated[datetime | None, Query(alias="to")] = None,
) -> list[dict[str, Any]]:
    """List availability blocks of a space, optionally within a window."""
    repo = SpaceRepository(db)
    await _get_space_or_404(repo, space_id, actor)
    blocks = await repo.get_blocks_in_range(
        space_id,
        ensure_utc(start) if start else None,
        ensure_utc(end) if end else None,
    )
    return [block_to_response(block) for block in blocks]


@router.post(
    "/{space_id}/availability",
    response_model=AvailabilityResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_availability(
    space_id: int,
    body: AvailabilityCreateRequest,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    actor: Annotated[Actor, Depends(require_permission("availability.manage"))],
) -> dict[str, Any]:
    """Add an open or blocked availability window to a space."""
    repo = SpaceRepository(db)
    await _get_space_or_404(repo, space_id, actor)

    block = await repo.add_block(
        SpaceAvailability(
            space_id=space_id,
            start=ensure_utc(body.start),
            end=ensure_utc(body.end),
            is_blocked=body.is_blocked,
            notes=body.notes,
        )
    )
    await record_audit(
        db,
        request,
        actor,
        audit.SLOT_CREATED,
        "space_availability",
        block.id,
        {"space_id": space_id, "is_blocked": block.is_blocked},
    )
    return block_to_response(block)


@router.delete(
    "/{space_id}/availability/{block_id}", status_code=status.HTTP_204_NO_CONTENT
)
async def delete_availability(
    space_id: int,
    block_id: int,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    actor: Annotated[Actor, Depends(require_permission("availability.manage"))],
) -> None:
    """Remove an availability block."""
    repo = SpaceRepository(db)
    await _get_space_or_404(repo, space_id, actor)

    block = await repo.get_block(block_id, space_id)
    if block is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Availability block {block_id} not found",
        )
    await repo.delete_block(block)
    await record_audit(
        db,
        request,
        actor,
        audit.SLOT_DELETED,
        "space_availability",
        block_id,
        {"space_id": space_id},
    )


@router.get("/{space_id}/stats")
async def get_space_stats(
    space_id: int,
    db: Annotated[AsyncSession, Depends(get_db)],
    actor: Annotated[Actor, Depends(require_permission("spaces.read"))],
) -> dict[str, Any]:
    """Get booking request counts and confirmed revenue for a space."""
    space = await _get_space_or_404(SpaceRepository(db), space_id, actor)
    request_repo = SpaceRequestRepository(db)

    by_status = await request_repo.count_by_status(actor.business_id, space_id=space.id)
    return {
        "space_id": space.id,
        "requests_by_status": by_status,
        "total_requests": sum(by_status.values()),
        "confirmed_revenue": await request_repo.confirmed_revenue(space.id),
        "min_hourly_rate": get_min_hourly_rate(space.pricing_rules),
        "max_hourly_rate": get_max_hourly_rate(space.pricing_rules),
        "total_fees": get_total_fees(space.pricing_rules),
    }
