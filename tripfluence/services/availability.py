# SPDX-FileCopyrightText: 2026 Andrew Grimberg <tykeal@bardicgrove.org>
# SPDX-License-Identifier: Apache-2.0
"""Availability and booking-conflict checks for spaces.

Every interval is half-open ``[start, end)``, so a booking ending at
14:00 does not conflict with one starting at 14:00.
"""

from collections.abc import Iterable
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from tripfluence.models.space_request import (
    REQUEST_CONFIRMED,
    REQUEST_NEEDS_PAYMENT,
    REQUEST_PAID_HOLD,
    REQUEST_PENDING,
)
from tripfluence.utils.timeutils import ensure_utc

# Request statuses that reserve their time slot
HOLDING_STATUSES = frozenset(
    {REQUEST_PENDING, REQUEST_NEEDS_PAYMENT, REQUEST_PAID_HOLD, REQUEST_CONFIRMED}
)

# Statuses shown as busy on the public availability view and calendar feed
BUSY_STATUSES = frozenset({REQUEST_CONFIRMED})


class BusyInterval(BaseModel):
    """A merged span during which the space cannot be booked."""

    start: datetime = Field(description="Start of busy span (UTC)")
    end: datetime = Field(description="End of busy span (UTC)")


class AvailabilityCheck(BaseModel):
    """Outcome of checking a window against blocks and bookings."""

    available: bool = Field(description="Whether the window can be booked")
    conflicting_request_ids: list[int] = Field(
        default_factory=list, description="Holding requests overlapping the window"
    )
    blocking_block_ids: list[int] = Field(
        default_factory=list, description="Blocked availability overlapping the window"
    )
    reason: str | None = Field(default=None, description="Why it is unavailable")


def overlaps(
    a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime
) -> bool:
    """Check whether two half-open intervals overlap.

    Args:
        a_start: Start of first interval.
        a_end: End of first interval.
        b_start: Start of second interval.
        b_end: End of second interval.

    Returns:
        True if the intervals share any instant.
    """
    return ensure_utc(a_start) < ensure_utc(b_end) and ensure_utc(
        b_start
    ) < ensure_utc(a_end)


def find_conflicts(
    start: datetime,
    end: datetime,
    bookings: Iterable[Any],
    ignore_id: int | None = None,
) -> list[Any]:
    """Find holding bookings that overlap a window.

    Args:
        start: Window start.
        end: Window end.
        bookings: Candidate requests with id, status, start and end.
        ignore_id: Request to exclude, typically the one being re-checked.

    Returns:
        Overlapping bookings in a holding status.
    """
    return [
        booking
        for booking in bookings
        if booking.id != ignore_id
        and booking.status in HOLDING_STATUSES
        and overlaps(start, end, booking.start, booking.end)
    ]


def find_blocking_blocks(
    start: datetime, end: datetime, blocks: Iterable[Any]
) -> list[Any]:
    """Find blocked availability entries that overlap a window."""
    return [
        block
        for block in blocks
        if block.is_blocked and overlaps(start, end, block.start, block.end)
    ]


def check_availability(
    start: datetime,
    end: datetime,
    blocks: Iterable[Any],
    bookings: Iterable[Any],
    ignore_id: int | None = None,
) -> AvailabilityCheck:
    """Decide whether a window can be booked.

    Args:
        start: Window start.
        end: Window end.
        blocks: Availability blocks of the space.
        bookings: Existing requests for the space.
        ignore_id: Request to exclude from conflict detection.

    Returns:
        AvailabilityCheck describing the outcome.
    """
    blocking = find_blocking_blocks(start, end, blocks)
    conflicts = find_conflicts(start, end, bookings, ignore_id=ignore_id)

    reason = None
    if blocking:
        reason = "Space is not available for the requested time"
    elif conflicts:
        reason = "Space is already booked for the requested time"

    return AvailabilityCheck(
        available=not blocking and not conflicts,
        conflicting_request_ids=[booking.id for booking in conflicts],
        blocking_block_ids=[block.id for block in blocking],
        reason=reason,
    )


def merge_busy_intervals(
    blocks: Iterable[Any], bookings: Iterable[Any]
) -> list[BusyInterval]:
    """Merge blocked blocks and firm bookings into sorted busy spans.

    Overlapping and touching spans are merged.

    Args:
        blocks: Availability blocks; only blocked ones count.
        bookings: Requests; only confirmed ones count.

    Returns:
        Busy intervals sorted by start.
    """
    spans = [
        (ensure_utc(block.start), ensure_utc(block.end))
        for block in blocks
        if block.is_blocked
    ]
    spans.extend(
        (ensure_utc(booking.start), ensure_utc(booking.end))
        for booking in bookings
        if booking.status in BUSY_STATUSES
    )
    spans.sort()

    merged: list[list[datetime]] = []
    for span_start, span_end in spans:
        if merged and span_start <= merged[-1][1]:
            merged[-1][1] = max(merged[-1][1], span_end)
        else:
            merged.append([span_start, span_end])

    return [BusyInterval(start=s, end=e) for s, e in merged]
