# SPDX-FileCopyrightText: 2026 Andrew Grimberg <tykeal@bardicgrove.org>
# SPDX-License-Identifier: Apache-2.0
"""Event publication API endpoints."""

import logging
from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from tripfluence.api.dependencies import Actor, record_audit, require_permission
from tripfluence.database import get_db
from tripfluence.models.event_sync import EventSync
from tripfluence.repositories.event_sync_repository import EventSyncRepository
from tripfluence.repositories.listing_repository import ListingRepository
from tripfluence.services import audit
from tripfluence.services.event_sync_service import EventSyncError, EventSyncService
from tripfluence.utils.timeutils import isoformat_or_none

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/event-sync", tags=["Event Sync"])


class PublishRequest(BaseModel):
    """Request model for publishing a listing to event platforms."""

    listing_id: int = Field(description="Listing to publish")
    targets: list[str] = Field(
        min_length=1, description="Platforms: facebook, eventbrite, meetup"
    )
    metadata: dict[str, Any] = Field(
        default_factory=dict, description="Per-platform options such as meetupGroup"
    )


class EventSyncResponse(BaseModel):
    """Response model for an event sync."""

    id: int = Field(description="Event sync ID")
    listing_id: int = Field(description="Published listing")
    name: str = Field(description="Sync name")
    platforms: list[str] = Field(description="Providers being published to")
    status: str = Field(description="ACTIVE or PAUSED")
    last_sync_status: str = Field(description="PENDING, SUCCESS, PARTIAL or FAILED")
    last_sync_at: str | None = Field(default=None, description="Last attempt")
    external_ids: dict[str, Any] = Field(description="Platform event IDs and URLs")
    metadata: dict[str, Any] = Field(description="Options and last errors")


def event_sync_to_response(event_sync: EventSync) -> dict[str, Any]:
    """Convert event sync model to response dict."""
    return {
        "id": event_sync.id,
        "listing_id": event_sync.listing_id,
        "name": event_sync.name,
        "platforms": event_sync.platforms or [],
        "status": event_sync.status,
        "last_sync_status": event_sync.last_sync_status,
        "last_sync_at": isoformat_or_none(event_sync.last_sync_at),
        "external_ids": event_sync.external_ids or {},
        "metadata": event_sync.sync_metadata or {},
    }


@router.get("", response_model=list[EventSyncResponse])
async def list_event_syncs(
    db: Annotated[AsyncSession, Depends(get_db)],
    actor: Annotated[Actor, Depends(require_permission("integrations.read"))],
) -> list[dict[str, Any]]:
    """List the business' event syncs."""
    syncs = await EventSyncRepository(db).list_for_business(actor.business_id)
    return [event_sync_to_response(event_sync) for event_sync in syncs]


@router.post(
    "/publish",
    response_model=EventSyncResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def publish_listing_event(
    body: PublishRequest,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    actor: Annotated[Actor, Depends(require_permission("eventsync.publish"))],
) -> dict[str, Any]:
    """Queue a listing for publication on connected event platforms.

    The push itself happens in the background sync job.

    Raises:
        HTTPException: 404 if the listing is unknown, 400 if a platform is
            unsupported or none has a connected account.
    """
    listing = await ListingRepository(db).get_by_id(
        body.listing_id, actor.business_id
    )
    if listing is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Listing {body.listing_id} not found",
        )

    targets = [target.lower() for target in body.targets]
    try:
        event_sync = await EventSyncService(db).publish(
            actor.business_id, listing, targets, body.metadata
        )
    except EventSyncError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)
        ) from e

    await record_audit(
        db,
        request,
        actor,
        audit.EVENT_SYNC_PUBLISHED,
        "event_sync",
        event_sync.id,
        {"listing_id": listing.id, "platforms": event_sync.platforms},
    )
    return event_sync_to_response(event_sync)


async def _get_event_sync(
    db: AsyncSession, sync_id: int, business_id: int
) -> EventSync:
    event_sync = await EventSyncRepository(db).get_by_id(sync_id, business_id)
    if event_sync is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Event sync {sync_id} not found",
        )
    return event_sync


@router.post("/{sync_id}/pause", response_model=EventSyncResponse)
async def pause_event_sync(
    sync_id: int,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    actor: Annotated[Actor, Depends(require_permission("eventsync.publish"))],
) -> dict[str, Any]:
    """Pause an event sync so the background job skips it.

    Raises:
        HTTPException: 404 if the sync is unknown.
    """
    event_sync = await _get_event_sync(db, sync_id, actor.business_id)
    event_sync = await EventSyncService(db).pause(event_sync)

    await record_audit(
        db,
        request,
        actor,
        audit.EVENT_SYNC_PAUSED,
        "event_sync",
        event_sync.id,
        {"listing_id": event_sync.listing_id},
    )
    return event_sync_to_response(event_sync)


@router.post("/{sync_id}/resume", response_model=EventSyncResponse)
async def resume_event_sync(
    sync_id: int,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    actor: Annotated[Actor, Depends(require_permission("eventsync.publish"))],
) -> dict[str, Any]:
    """Resume a paused event sync and queue it for the next sync run.

    Raises:
        HTTPException: 404 if the sync is unknown.
    """
    event_sync = await _get_event_sync(db, sync_id, actor.business_id)
    event_sync = await EventSyncService(db).resume(event_sync)

    await record_audit(
        db,
        request,
        actor,
        audit.EVENT_SYNC_RESUMED,
        "event_sync",
        event_sync.id,
        {"listing_id": event_sync.listing_id},
    )
    return event_sync_to_response(event_sync)
