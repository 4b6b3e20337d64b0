# SPDX-FileCopyrightText: 2026 Andrew Grimberg <tykeal@bardicgrove.org>
# SPDX-License-Identifier: Apache-2.0
"""Booking request lifecycle: creation, approval, payment and cancellation."""

import logging
from datetime import UTC, datetime, timedelta
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from tripfluence.config import get_settings
from tripfluence.models.space import Space
from tripfluence.models.space_request import (
    REQUEST_CANCELLED,
    REQUEST_CONFIRMED,
    REQUEST_DECLINED,
    REQUEST_NEEDS_PAYMENT,
    REQUEST_PAID_HOLD,
    REQUEST_PENDING,
    SpaceMessage,
    SpaceRequest,
)
from tripfluence.repositories.space_repository import SpaceRepository
from tripfluence.repositories.space_request_repository import (
    SpaceRequestRepository,
)
from tripfluence.services.availability import (
    HOLDING_STATUSES,
    AvailabilityCheck,
    check_availability,
)
from tripfluence.services.pricing import PricingResult, price_space_request
from tripfluence.utils.timeutils import ensure_utc

logger = logging.getLogger(__name__)

# Longest window a single request may book
MAX_REQUEST_DURATION = timedelta(hours=24)


class SpaceRequestError(Exception):
    """Exception raised when a booking request operation is not allowed."""

    pass


class SlotConflictError(SpaceRequestError):
    """Exception raised when the requested window is not available."""

    pass


def validate_window(start: datetime, end: datetime) -> tuple[datetime, datetime]:
    """Check a requested booking window.

    Args:
        start: Requested start.
        end: Requested end.

    Returns:
        The window as aware UTC datetimes.

    Raises:
        SpaceRequestError: If end is not after start or the window is
            longer than 24 hours.
    """
    start = ensure_utc(start)
    end = ensure_utc(end)
    if end <= start:
        msg = "End time must be after start time"
        raise SpaceRequestError(msg)
    if end - start > MAX_REQUEST_DURATION:
        msg = "Booking duration cannot exceed 24 hours"
        raise SpaceRequestError(msg)
    return start, end


class SpaceRequestService:
    """Service applying booking request rules and state transitions."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize booking request service.

        Args:
            session: Async database session.
        """
        self._spaces = SpaceRepository(session)
        self._repo = SpaceRequestRepository(session)

    async def check_window(
        self,
        space: Space,
        start: datetime,
        end: datetime,
        ignore_id: int | None = None,
    ) -> AvailabilityCheck:
        """Check a window of a space against its blocks and holding requests."""
        blocks = await self._spaces.get_blocks_in_range(space.id, start, end)
        bookings = await self._repo.get_for_space_in_range(
            space.id, start, end, statuses=sorted(HOLDING_STATUSES)
        )
        return check_availability(start, end, blocks, bookings, ignore_id=ignore_id)

    def quote(self, space: Space, start: datetime, end: datetime) -> PricingResult:
        """Price a window with the space's rules in its timezone."""
        return price_space_request(space.pricing_rules, start, end, space.timezone)

    async def create(
        self,
        space: Space,
        *,
        organizer_name: str,
        organizer_email: str,
        title: str,
        attendees: int,
        start: datetime,
        end: datetime,
        description: str | None = None,
        organizer_id: str | None = None,
    ) -> SpaceRequest:
        """Create a PENDING request with a computed quote.

        Args:
            space: Published space being requested.
            organizer_name: Organizer's name.
            organizer_email: Organizer's email.
            title: Event title.
            attendees: Expected number of attendees.
            start: Requested start.
            end: Requested end.
            description: Event description.
            organizer_id: Organizer's user ID, when signed in.

        Returns:
            The stored request.

        Raises:
            SpaceRequestError: If attendees exceed capacity or the window is
                invalid.
            SlotConflictError: If the window overlaps a blocked period or a
                holding request.
        """
        if attendees > space.capacity:
            msg = f"Attendees exceed space capacity of {space.capacity}"
            raise SpaceRequestError(msg)

        start, end = validate_window(start, end)

        check = await self.check_window(space, start, end)
        if not check.available:
            raise SlotConflictError(check.reason)

        pricing = self.quote(space, start, end)
        request = await self._repo.create(
            SpaceRequest(
                business_id=space.business_id,
                space_id=space.id,
                organizer_id=organizer_id,
                organizer_name=organizer_name,
                organizer_email=organizer_email,
                title=title,
                description=description,
                attendees=attendees,
                start=start,
                end=end,
                status=REQUEST_PENDING,
                quote_amount=pricing.total,
                currency=pricing.currency,
                deposit_amount=pricing.breakdown["deposit"],
                cleaning_fee=pricing.breakdown["cleaning"],
                pricing_breakdown=pricing.model_dump(),
            )
        )

        logger.info(
            "Created request %d for space %d (%s - %s)",
            request.id,
            space.id,
            start.isoformat(),
            end.isoformat(),
        )
        return request

    @staticmethod
    def _require_status(
        request: SpaceRequest, allowed: set[str] | frozenset[str], action: str
    ) -> None:
        if request.status not in allowed:
            msg = f"Request cannot be {action} in status {request.status}"
            raise SpaceRequestError(msg)

    async def approve(
        self, request: SpaceRequest, message: str | None = None
    ) -> SpaceRequest:
        """Approve a pending request and open its payment hold.

        Raises:
            SpaceRequestError: If the request is not PENDING.
            SlotConflictError: If another request now holds the window.
        """
        self._require_status(request, {REQUEST_PENDING}, "approved")

        space = request.space
        check = await self.check_window(
            space, ensure_utc(request.start), ensure_utc(request.end), request.id
        )
        if not check.available:
            raise SlotConflictError(check.reason)

        hold_hours = get_settings().hold_expiry_hours
        request.status = REQUEST_NEEDS_PAYMENT
        request.hold_expires_at = datetime.now(UTC) + timedelta(hours=hold_hours)
        request.decision_message = message
        request = await self._repo.update(request)

        logger.info("Approved request %d, hold for %d hours", request.id, hold_hours)
        return request

    async def decline(
        self, request: SpaceRequest, message: str | None = None
    ) -> SpaceRequest:
        """Decline a request that has not been paid.

        Raises:
            SpaceRequestError: If the request is not PENDING or NEEDS_PAYMENT.
        """
        self._require_status(
            request, {REQUEST_PENDING, REQUEST_NEEDS_PAYMENT}, "declined"
        )
        request.status = REQUEST_DECLINED
        request.decision_message = message
        request.hold_expires_at = None
        request = await self._repo.update(request)
        logger.info("Declined request %d", request.id)
        return request

    async def cancel(
        self, request: SpaceRequest, reason: str | None = None
    ) -> SpaceRequest:
        """Cancel a request that still holds its slot.

        Raises:
            SpaceRequestError: If the request is not in a holding status.
        """
        self._require_status(request, HOLDING_STATUSES, "cancelled")
        request.status = REQUEST_CANCELLED
        request.cancel_reason = reason
        request.hold_expires_at = None
        request = await self._repo.update(request)
        logger.info("Cancelled request %d", request.id)
        return request

    async def override_quote(
        self,
        request: SpaceRequest,
        *,
        quote_amount: int,
        deposit_amount: int | None = None,
        cleaning_fee: int | None = None,
        breakdown: dict[str, Any] | None = None,
    ) -> SpaceRequest:
        """Replace the quote of an unpaid request.

        Raises:
            SpaceRequestError: If the request is not PENDING or NEEDS_PAYMENT.
        """
        self._require_status(
            request, {REQUEST_PENDING, REQUEST_NEEDS_PAYMENT}, "re-quoted"
        )
        request.quote_amount = quote_amount
        if deposit_amount is not None:
            request.deposit_amount = deposit_amount
        if cleaning_fee is not None:
            request.cleaning_fee = cleaning_fee
        request.pricing_breakdown = {
            **(breakdown or {}),
            "override": True,
            "total": quote_amount,
        }
        request = await self._repo.update(request)
        logger.info("Quote for request %d set to %d", request.id, quote_amount)
        return request

    async def confirm(self, request: SpaceRequest) -> SpaceRequest:
        """Confirm a request once payment is received.

        Raises:
            SpaceRequestError: If the request is not awaiting payment.
        """
        self._require_status(
            request, {REQUEST_NEEDS_PAYMENT, REQUEST_PAID_HOLD}, "confirmed"
        )
        request.status = REQUEST_CONFIRMED
        request.hold_expires_at = None
        request = await self._repo.update(request)
        logger.info("Confirmed request %d", request.id)
        return request

    async def add_message(
        self,
        request: SpaceRequest,
        author_id: str,
        body: str,
        attachments: list[str] | None = None,
    ) -> SpaceMessage:
        """Post a message on a request thread."""
        return await self._repo.add_message(
            SpaceMessage(
                space_request_id=request.id,
                author_id=author_id,
                body=body,
                attachments=attachments or [],
            )
        )
