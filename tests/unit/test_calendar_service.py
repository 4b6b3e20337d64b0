# SPDX-FileCopyrightText: 2026 Andrew Grimberg <tykeal@bardicgrove.org>
# SPDX-License-Identifier: Apache-2.0
"""Unit tests for the iCal feed service."""

from datetime import UTC, datetime
from types import SimpleNamespace
from zoneinfo import ZoneInfo

from icalendar import Calendar

from tripfluence.services.availability import BusyInterval
from tripfluence.services.calendar_service import (
    BUSY_SUMMARY,
    PRODID,
    CalendarService,
    generate_uid,
    get_timezone,
)


def make_space(timezone: str = "Europe/Berlin") -> SimpleNamespace:
    """Space stand-in with the attributes the feed reads."""
    return SimpleNamespace(id=42, title="Loft Studio", timezone=timezone)


BUSY = [
    BusyInterval(
        start=datetime(2030, 6, 3, 10, tzinfo=UTC),
        end=datetime(2030, 6, 3, 13, tzinfo=UTC),
    ),
    BusyInterval(
        start=datetime(2030, 6, 4, 8, tzinfo=UTC),
        end=datetime(2030, 6, 4, 9, tzinfo=UTC),
    ),
]


class TestGetTimezone:
    """Tests for get_timezone."""

    def test_valid_timezone(self) -> None:
        """Test valid timezone is returned."""
        assert get_timezone("America/New_York") == ZoneInfo("America/New_York")

    def test_invalid_timezone_falls_back(self) -> None:
        """Test invalid timezone falls back to UTC."""
        assert get_timezone("Mars/Olympus") == ZoneInfo("UTC")


class TestGenerateUid:
    """Tests for generate_uid."""

    def test_stable(self) -> None:
        """Test the same span always gets the same UID."""
        assert generate_uid(42, BUSY[0]) == generate_uid(42, BUSY[0])
        assert generate_uid(42, BUSY[0]).endswith("@tripfluence")

    def test_unique_per_span_and_space(self) -> None:
        """Test UIDs differ across spans and spaces."""
        assert generate_uid(42, BUSY[0]) != generate_uid(42, BUSY[1])
        assert generate_uid(42, BUSY[0]) != generate_uid(43, BUSY[0])


class TestCalendarService:
    """Tests for CalendarService."""

    def test_generate_ical(self) -> None:
        """Test each busy span becomes an opaque event."""
        ical = CalendarService().generate_ical(make_space(), BUSY)

        cal = Calendar.from_ical(ical)
        assert str(cal["prodid"]) == PRODID
        assert str(cal["x-wr-calname"]) == "Loft Studio"

        events = list(cal.walk("VEVENT"))
        assert len(events) == 2
        assert all(str(event["summary"]) == BUSY_SUMMARY for event in events)
        first = events[0].decoded("dtstart")
        assert first.astimezone(UTC) == datetime(2030, 6, 3, 10, tzinfo=UTC)

    def test_events_in_space_timezone(self) -> None:
        """Test times are rendered in the space's timezone."""
        ical = CalendarService().generate_ical(make_space(), BUSY[:1])

        assert "TZID=Europe/Berlin" in ical

    def test_no_organizer_details(self) -> None:
        """Test the public feed exposes nothing but busy time."""
        ical = CalendarService().generate_ical(make_space(), BUSY)

        assert "ORGANIZER" not in ical
        assert "DESCRIPTION" not in ical

    def test_empty_calendar(self) -> None:
        """Test a space without busy time yields a calendar with no events."""
        ical = CalendarService().generate_ical(make_space("UTC"), [])

        cal = Calendar.from_ical(ical)
        assert list(cal.walk("VEVENT")) == []
