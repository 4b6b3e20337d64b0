# SPDX-FileCopyrightText: 2026 Andrew Grimberg <tykeal@bardicgrove.org>
# SPDX-License-Identifier: Apache-2.0
"""Booking request management API endpoints."""

import logging
from datetime import datetime
from typing import Annotated, Any, NoReturn

from fastapi import (
    APIRouter,
    BackgroundTasks,
    Depends,
    HTTPException,
    Query,
    Request,
    status,
)
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
from tripfluence.models.space_request import (
    REQUEST_STATUSES,
    SpaceMessage,
    SpaceRequest,
)
from tripfluence.repositories.base import MAX_PAGE_SIZE
from tripfluence.repositories.space_request_repository import (
    SpaceRequestRepository,
)
from tripfluence.services import audit
from tripfluence.services.space_request_service import (
    SlotConflictError,
    SpaceRequestError,
    SpaceRequestService,
)
from tripfluence.services.webhook_service import publish_event
from tripfluence.utils.timeutils import ensure_utc, isoformat_or_none

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/space-requests", tags=["Space Requests"])


class DecisionRequest(BaseModel):
    """Request model for approving or declining a booking request."""

    message: str | None = Field(
        default=None, max_length=1000, description="Message to the organizer"
    )


class CancelRequest(BaseModel):
    """Request model for cancelling a booking request."""

    reason: str | None = Field(
        default=None, max_length=1000, description="Cancellation reason"
    )


class QuoteOverrideRequest(BaseModel):
    """Request model for overriding a booking request's quote."""

    quote_amount: int = Field(ge=0, description="New total in minor units")
    deposit_amount: int | None = Field(default=None, ge=0, description="Deposit")
    cleaning_fee: int | None = Field(default=None, ge=0, description="Cleaning fee")
    breakdown: dict[str, Any] | None = Field(
        default=None, description="Custom pricing breakdown"
    )


class MessageCreateRequest(BaseModel):
    """Request model for posting a message."""

    body: str = Field(min_length=1, max_length=5000, description="Message text")
    attachments: list[str] = Field(
        default_factory=list, max_length=10, description="Attachment URLs"
    )


class SpaceRequestResponse(BaseModel):
    """Response model for a booking request."""

    id: int = Field(description="Request ID")
    space_id: int = Field(description="Requested space")
    space_title: str | None = Field(default=None, description="Space title")
    organizer_id: str | None = Field(default=None, description="Organizer user ID")
    organizer_name: str = Field(description="Organizer name")
    organizer_email: str = Field(description="Organizer email")
    title: str = Field(description="Event title")
    description: str | None = Field(default=None, description="Event description")
    attendees: int = Field(description="Expected attendees")
    start: str = Field(description="Start (UTC)")
    end: str = Field(description="End (UTC)")
    status: str = Field(description="Request status")
    quote_amount: int = Field(description="Quoted total in minor units")
    currency: str = Field(description="ISO currency")
    deposit_amount: int = Field(description="Security deposit in minor units")
    cleaning_fee: int = Field(description="Cleaning fee in minor units")
    pricing_breakdown: dict[str, Any] | None = Field(
        default=None, description="Quote details"
    )
    hold_expires_at: str | None = Field(default=None, description="Payment deadline")
    decision_message: str | None = Field(default=None, description="Decision note")
    cancel_reason: str | None = Field(default=None, description="Cancel reason")
    created_at: str | None = Field(default=None, description="Creation time")
    updated_at: str | None = Field(default=None, description="Last update time")


class SpaceRequestsResponse(BaseModel):
    """Response model for a page of booking requests."""

    requests: list[SpaceRequestResponse] = Field(description="Requests on this page")
    pagination: Pagination = Field(description="Pagination details")


class MessageResponse(BaseModel):
    """Response model for a request message."""

    id: int = Field(description="Message ID")
    author_id: str = Field(description="Author user ID")
    body: str = Field(description="Message text")
    attachments: list[str] = Field(description="Attachment URLs")
    created_at: str | None = Field(default=None, description="Posted at")


def request_to_response(request: SpaceRequest) -> dict[str, Any]:
    """Convert booking request model to response dict."""
    return {
        "id": request.id,
        "space_id": request.space_id,
        "space_title": request.space.title if request.space else None,
        "organizer_id": request.organizer_id,
        "organizer_name": request.organizer_name,
        "organizer_email": request.organizer_email,
        "title": request.title,
        "description": request.description,
        "attendees": request.attendees,
        "start": isoformat_or_none(request.start),
        "end": isoformat_or_none(request.end),
        "status": request.status,
        "quote_amount": request.quote_amount,
        "currency": request.currency,
        "deposit_amount": request.deposit_amount,
        "cleaning_fee": request.cleaning_fee,
        "pricing_breakdown": request.pricing_breakdown,
        "hold_expires_at": isoformat_or_none(request.hold_expires_at),
        "decision_message": request.decision_message,
        "cancel_reason": request.cancel_reason,
        "created_at": isoformat_or_none(request.created_at),
        "updated_at": isoformat_or_none(request.updated_at),
    }


def message_to_response(message: SpaceMessage) -> dict[str, Any]:
    """Convert message model to response dict."""
    return {
        "id": message.id,
        "author_id": message.author_id,
        "body": message.body,
        "attachments": message.attachments or [],
        "created_at": isoformat_or_none(message.created_at),
    }


def event_payload(request: SpaceRequest) -> dict[str, Any]:
    """Webhook payload describing a booking request."""
    return {
        "id": request.id,
        "space_id": request.space_id,
        "status": request.status,
        "start": isoformat_or_none(request.start),
        "end": isoformat_or_none(request.end),
        "attendees": request.attendees,
        "quote_amount": request.quote_amount,
        "currency": request.currency,
    }


def raise_for_request_error(error: SpaceRequestError) -> NoReturn:
    """Translate a booking request error into an HTTP error.

    Raises:
        HTTPException: 409 for slot conflicts, 400 otherwise.
    """
    if isinstance(error, SlotConflictError):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT, detail=str(error)
        ) from error
    raise HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST, detail=str(error)
    ) from error


async def _get_request_or_404(
    db: AsyncSession, request_id: int, actor: Actor
) -> SpaceRequest:
    space_request = await SpaceRequestRepository(db).get_by_id(
        request_id, actor.business_id
    )
    if space_request is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Request {request_id} not found",
        )
    return space_request


@router.get("", response_model=SpaceRequestsResponse)
async def list_requests(
    db: Annotated[AsyncSession, Depends(get_db)],
    actor: Annotated[Actor, Depends(require_permission("requests.read"))],
    status_filter: Annotated[str | None, Query(alias="status")] = None,
    space_id: int | None = None,
    window_start: Annotated[datetime | None, Query(alias="from")] = None,
    window_end: Annotated[datetime | None, Query(alias="to")] = None,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=MAX_PAGE_SIZE)] = 20,
) -> dict[str, Any]:
    """List booking requests with filters.

    The from/to window matches requests overlapping it.

    Returns:
        A page of requests with pagination details.
    """
    if status_filter is not None and status_filter not in REQUEST_STATUSES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid status: {status_filter}",
        )

    requests, total = await SpaceRequestRepository(db).list_for_business(
        actor.business_id,
        status=status_filter,
        space_id=space_id,
        window_start=ensure_utc(window_start) if window_start else None,
        window_end=ensure_utc(window_end) if window_end else None,
        page=page,
        limit=limit,
    )
    return {
        "requests": [request_to_response(r) for r in requests],
        "pagination": pagination(page, limit, total),
    }


@router.get("/{request_id}", response_model=SpaceRequestResponse)
async def get_request(
    request_id: int,
    db: Annotated[AsyncSession, Depends(get_db)],
    actor: Annotated[Actor, Depends(require_permission("requests.read"))],
) -> dict[str, Any]:
    """Get a booking request."""
    return request_to_response(await _get_request_or_404(db, request_id, actor))


@router.post("/{request_id}/approve", response_model=SpaceRequestResponse)
async def approve_request(
    request_id: int,
    body: DecisionRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    db: Annotated[AsyncSession, Depends(get_db)],
    actor: Annotated[Actor, Depends(require_permission("requests.approve"))],
) -> dict[str, Any]:
    """Approve a pending request; the organizer then has to pay.

    Raises:
        HTTPException: 400 if not PENDING, 409 if the slot is now taken.
    """
    space_request = await _get_request_or_404(db, request_id, actor)
    try:
        space_request = await SpaceRequestService(db).approve(
            space_request, body.message
        )
    except SpaceRequestError as e:
        raise_for_request_error(e)

    await record_audit(
        db, request, actor, audit.REQUEST_APPROVED, "space_request", request_id
    )
    background_tasks.add_task(
        publish_event,
        actor.business_id,
        "space_request.approved",
        event_payload(space_request),
    )
    return request_to_response(space_request)


@router.post("/{request_id}/decline", response_model=SpaceRequestResponse)
async def decline_request(
    request_id: int,
    body: DecisionRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    db: Annotated[AsyncSession, Depends(get_db)],
    actor: Annotated[Actor, Depends(require_permission("requests.decline"))],
) -> dict[str, Any]:
    """Decline a request that has not been paid."""
    space_request = await _get_request_or_404(db, request_id, actor)
    try:
        space_request = await SpaceRequestService(db).decline(
            space_request, body.message
        )
    except SpaceRequestError as e:
        raise_for_request_error(e)

    await record_audit(
        db, request, actor, audit.REQUEST_DECLINED, "space_request", request_id
    )
    background_tasks.add_task(
        publish_event,
        actor.business_id,
        "space_request.declined",
        event_payload(space_request),
    )
    return request_to_response(space_request)


@router.post("/{request_id}/cancel", response_model=SpaceRequestResponse)
async def cancel_request(
    request_id: int,
    body: CancelRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    db: Annotated[AsyncSession, Depends(get_db)],
    actor: Annotated[Actor, Depends(require_permission("requests.cancel"))],
) -> dict[str, Any]:
    """Cancel a request that still holds its slot."""
    space_request = await _get_request_or_404(db, request_id, actor)
    try:
        space_request = await SpaceRequestService(db).cancel(space_request, body.reason)
    except SpaceRequestError as e:
        raise_for_request_error(e)

    await record_audit(
        db,
        request,
        actor,
        audit.REQUEST_CANCELLED,
        "space_request",
        request_id,
        {"reason": body.reason},
    )
    background_tasks.add_task(
        publish_event,
        actor.business_id,
        "space_request.cancelled",
        event_payload(space_request),
    )
    return request_to_response(space_request)


@router.post("/{request_id}/quote", response_model=SpaceRequestResponse)
async def override_quote(
    request_id: int,
    body: QuoteOverrideRequest,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    actor: Annotated[Actor, Depends(require_permission("requests.approve"))],
) -> dict[str, Any]:
    """Override the quote of an unpaid request."""
    space_request = await _get_request_or_404(db, request_id, actor)
    try:
        space_request = await SpaceRequestService(db).override_quote(
            space_request,
            quote_amount=body.quote_amount,
            deposit_amount=body.deposit_amount,
            cleaning_fee=body.cleaning_fee,
            breakdown=body.breakdown,
        )
    except SpaceRequestError as e:
        raise_for_request_error(e)

    await record_audit(
        db,
        request,
        actor,
        audit.REQUEST_QUOTED,
        "space_request",
        request_id,
        {"quote_amount": body.quote_amount},
    )
    return request_to_response(space_request)


@router.post("/{request_id}/confirm", response_model=SpaceRequestResponse)
async def confirm_request(
    request_id: int,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    actor: Annotated[Actor, Depends(require_permission("requests.approve"))],
) -> dict[str, Any]:
    """Mark an approved request as paid and confirmed."""
    space_request = await _get_request_or_404(db, request_id, actor)
    try:
        space_request = await SpaceRequestService(db).confirm(space_request)
    except SpaceRequestError as e:
        raise_for_request_error(e)

    await record_audit(
        db, request, actor, audit.REQUEST_CONFIRMED, "space_request", request_id
    )
    return request_to_response(space_request)


@router.get("/{request_id}/messages", response_model=list[MessageResponse])
async def list_messages(
    request_id: int,
    db: Annotated[AsyncSession, Depends(get_db)],
    actor: Annotated[Actor, Depends(require_permission("requests.read"))],
) -> list[dict[str, Any]]:
    """List the messages of a request, oldest first."""
    space_request = await _get_request_or_404(db, request_id, actor)
    messages = await SpaceRequestRepository(db).list_messages(space_request.id)
    return [message_to_response(message) for message in messages]


@router.post(
    "/{request_id}/messages",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
)
async def post_message(
    request_id: int,
    body: MessageCreateRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
    actor: Annotated[Actor, Depends(require_permission("requests.read"))],
) -> dict[str, Any]:
    """Post a message on a request thread."""
    space_request = await _get_request_or_404(db, request_id, actor)
    message = await SpaceRequestService(db).add_message(
        space_request, actor.actor_id, body.body, body.attachments
    )
    return message_to_response(message)
