# SPDX-FileCopyrightText: 2026 Andrew Grimberg <tykeal@bardicgrove.org>
# SPDX-License-Identifier: Apache-2.0
"""iCal busy-time feeds for spaces."""

import hashlib
import logging
from collections.abc import Iterable
from datetime import UTC, datetime
from typing import cast
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from icalendar import Calendar, Event

from tripfluence.models.space import Space
from tripfluence.services.availability import BusyInterval

logger = logging.getLogger(__name__)

PRODID = "-//Tripfluence//tripfluence-spaces//EN"
BUSY_SUMMARY = "Unavailable"


def get_timezone(timezone_str: str) -> ZoneInfo:
    """Get ZoneInfo for timezone string with fallback to UTC.

    Args:
        timezone_str: IANA timezone identifier.

    Returns:
        ZoneInfo object, defaults to UTC on invalid timezone.
    """
    try:
        return ZoneInfo(timezone_str)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Invalid timezone '%s', falling back to UTC", timezone_str)
        return ZoneInfo("UTC")


def generate_uid(space_id: int, interval: BusyInterval) -> str:
    """Stable event UID for a busy span of a space."""
    unique_str = f"{space_id}-{interval.start.isoformat()}-{interval.end.isoformat()}"
    hash_hex = hashlib.sha256(unique_str.encode()).hexdigest()[:16]
    return f"{hash_hex}@tripfluence"


class CalendarService:
    """Generates RFC 5545 calendars of the times a space is taken.

    Only merged busy spans are published; organizer details never leave
    the admin API.
    """

    def generate_ical(self, space: Space, busy: Iterable[BusyInterval]) -> str:
        """Generate an iCal feed of a space's busy spans.

        Args:
            space: Space the feed describes.
            busy: Merged busy intervals in UTC.

        Returns:
            iCal string (text/calendar format).
        """
        tz = get_timezone(space.timezone)

        cal = Calendar()
        cal.add("prodid", PRODID)
        cal.add("version", "2.0")
        cal.add("calscale", "GREGORIAN")
        cal.add("method", "PUBLISH")
        cal.add("x-wr-calname", space.title)
        cal.add("x-wr-timezone", space.timezone)

        stamp = datetime.now(UTC)
        count = 0
        for interval in busy:
            event = Event()
            event.add("uid", generate_uid(space.id, interval))
            event.add("summary", BUSY_SUMMARY)
            event.add("dtstart", interval.start.astimezone(tz))
            event.add("dtend", interval.end.astimezone(tz))
            event.add("dtstamp", stamp)
            event.add("status", "CONFIRMED")
            event.add("transp", "OPAQUE")
            cal.add_component(event)
            count += 1

        logger.debug("Generated iCal for space %d with %d event(s)", space.id, count)
        return cast("bytes", cal.to_ical()).decode("utf-8")
