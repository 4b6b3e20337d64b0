# SPDX-FileCopyrightText: 2026 Andrew Grimberg <tykeal@bardicgrove.org>
# SPDX-License-Identifier: Apache-2.0
"""Unit tests for space pricing."""

from datetime import UTC, datetime

import pytest

from tripfluence.models.space import (
    RULE_CLEANING_FEE,
    RULE_DAILY,
    RULE_HOURLY,
    RULE_PEAK,
    RULE_SECURITY_DEPOSIT,
    SpacePricingRule,
)
from tripfluence.services.pricing import (
    format_price,
    get_max_hourly_rate,
    get_min_hourly_rate,
    get_total_fees,
    is_peak_time,
    price_space_request,
    validate_pricing_rules,
)

# 2026-01-03 is a Saturday, 2026-01-05 a Monday
SATURDAY = datetime(2026, 1, 3, tzinfo=UTC)
MONDAY = datetime(2026, 1, 5, tzinfo=UTC)


def rule(kind: str, amount: int, currency: str = "USD", **kwargs) -> SpacePricingRule:
    """Build a transient pricing rule."""
    return SpacePricingRule(kind=kind, amount=amount, currency=currency, **kwargs)


def at(day: datetime, hour: int, minute: int = 0) -> datetime:
    """Time of day on a fixed date."""
    return day.replace(hour=hour, minute=minute)


class TestPriceSpaceRequest:
    """Tests for price_space_request."""

    def test_hourly_rate(self) -> None:
        """Test hourly pricing multiplies the rate by the hours booked."""
        result = price_space_request(
            [rule(RULE_HOURLY, 5000)], at(MONDAY, 10), at(MONDAY, 13)
        )

        assert result.duration_hours == 3
        assert result.subtotal == 15000
        assert result.total == 15000
        assert result.currency == "USD"
        assert [line.label for line in result.lines] == ["Hourly rate (3 hours)"]

    def test_partial_hour_rounds_up(self) -> None:
        """Test a partial hour is charged as a full hour."""
        result = price_space_request(
            [rule(RULE_HOURLY, 5000)], at(MONDAY, 10), at(MONDAY, 11, 30)
        )

        assert result.duration_hours == 2
        assert result.breakdown["base"] == 10000

    def test_single_hour_label(self) -> None:
        """Test the label uses the singular for one hour."""
        result = price_space_request(
            [rule(RULE_HOURLY, 5000)], at(MONDAY, 10), at(MONDAY, 11)
        )

        assert result.lines[0].label == "Hourly rate (1 hour)"

    def test_daily_rate_from_eight_hours(self) -> None:
        """Test the daily rate replaces the hourly rate for long bookings."""
        rules = [rule(RULE_HOURLY, 5000), rule(RULE_DAILY, 30000)]

        result = price_space_request(rules, at(MONDAY, 9), at(MONDAY, 17))

        assert result.breakdown["base"] == 30000
        assert result.lines[0].label == "Daily rate (1 day)"
        assert result.lines[0].kind == RULE_DAILY

    def test_hourly_rate_below_eight_hours(self) -> None:
        """Test short bookings use the hourly rate even with a daily rate."""
        rules = [rule(RULE_HOURLY, 5000), rule(RULE_DAILY, 30000)]

        result = price_space_request(rules, at(MONDAY, 9), at(MONDAY, 16))

        assert result.breakdown["base"] == 35000
        assert result.lines[0].kind == RULE_HOURLY

    def test_fees_and_deposit(self) -> None:
        """Test cleaning fee is in the subtotal and deposit only in the total."""
        rules = [
            rule(RULE_HOURLY, 5000),
            rule(RULE_CLEANING_FEE, 2500),
            rule(RULE_SECURITY_DEPOSIT, 10000),
        ]

        result = price_space_request(rules, at(MONDAY, 10), at(MONDAY, 12))

        assert result.subtotal == 12500
        assert result.total == 22500
        assert result.breakdown == {
            "base": 10000,
            "peak": 0,
            "cleaning": 2500,
            "deposit": 10000,
        }
        assert [line.label for line in result.lines] == [
            "Hourly rate (2 hours)",
            "Cleaning fee",
            "Security deposit",
        ]

    def test_peak_surcharge_on_peak_day(self) -> None:
        """Test peak pricing charges the difference above the base rate."""
        rules = [rule(RULE_HOURLY, 5000), rule(RULE_PEAK, 8000, dow=[6])]

        result = price_space_request(rules, at(SATURDAY, 10), at(SATURDAY, 12))

        assert result.breakdown["peak"] == 6000
        assert result.subtotal == 16000
        assert result.lines[-1].label == "Peak time surcharge"

    def test_no_peak_surcharge_off_peak(self) -> None:
        """Test peak pricing does not apply outside its days."""
        rules = [rule(RULE_HOURLY, 5000), rule(RULE_PEAK, 8000, dow=[6])]

        result = price_space_request(rules, at(MONDAY, 10), at(MONDAY, 12))

        assert result.breakdown["peak"] == 0
        assert all(line.kind != RULE_PEAK for line in result.lines)

    def test_peak_below_base_adds_nothing(self) -> None:
        """Test a peak rate below the base rate never discounts."""
        rules = [rule(RULE_HOURLY, 5000), rule(RULE_PEAK, 4000, dow=[6])]

        result = price_space_request(rules, at(SATURDAY, 10), at(SATURDAY, 12))

        assert result.breakdown["peak"] == 0
        assert result.subtotal == 10000

    def test_peak_hours_use_space_timezone(self) -> None:
        """Test peak hours are evaluated in the space's local time."""
        rules = [
            rule(RULE_HOURLY, 5000),
            rule(RULE_PEAK, 7000, start_hour=18, end_hour=23),
        ]
        # 23:00-01:00 UTC is 18:00-20:00 in New York
        start = at(MONDAY, 23)
        end = datetime(2026, 1, 6, 1, tzinfo=UTC)

        local = price_space_request(rules, start, end, tz="America/New_York")
        utc = price_space_request(rules, start, end, tz="UTC")

        assert local.breakdown["peak"] == 4000
        assert utc.breakdown["peak"] == 0

    def test_unknown_timezone_falls_back_to_utc(self) -> None:
        """Test an invalid space timezone is priced as UTC."""
        rules = [
            rule(RULE_HOURLY, 5000),
            rule(RULE_PEAK, 7000, start_hour=18, end_hour=23),
        ]
        start = at(MONDAY, 23)
        end = datetime(2026, 1, 6, 1, tzinfo=UTC)

        result = price_space_request(rules, start, end, tz="Mars/Olympus")

        assert result.breakdown["peak"] == 0

    def test_end_before_start_raises(self) -> None:
        """Test an empty or inverted window is rejected."""
        with pytest.raises(ValueError, match="End time must be after start time"):
            price_space_request(
                [rule(RULE_HOURLY, 5000)], at(MONDAY, 12), at(MONDAY, 12)
            )

    def test_currency_from_first_rule(self) -> None:
        """Test the quote currency comes from the rules."""
        result = price_space_request(
            [rule(RULE_HOURLY, 5000, currency="EUR")], at(MONDAY, 10), at(MONDAY, 11)
        )

        assert result.currency == "EUR"

    def test_no_rules_defaults(self) -> None:
        """Test a space without rules quotes zero in USD."""
        result = price_space_request([], at(MONDAY, 10), at(MONDAY, 11))

        assert result.total == 0
        assert result.currency == "USD"
        assert result.lines == []

    def test_naive_datetimes_are_utc(self) -> None:
        """Test naive datetimes are treated as UTC."""
        result = price_space_request(
            [rule(RULE_HOURLY, 5000)],
            datetime(2026, 1, 5, 10),
            datetime(2026, 1, 5, 12),
        )

        assert result.total == 10000


class TestIsPeakTime:
    """Tests for is_peak_time."""

    def test_day_range_wraps_week(self) -> None:
        """Test a Saturday night booking into Sunday matches a Sunday rule."""
        peak = rule(RULE_PEAK, 8000, dow=[0])

        assert is_peak_time(
            peak, at(SATURDAY, 22), datetime(2026, 1, 4, 2, tzinfo=UTC)
        )

    def test_hours_outside_window(self) -> None:
        """Test a booking ending at the window start is not peak."""
        peak = rule(RULE_PEAK, 8000, start_hour=18, end_hour=22)

        assert not is_peak_time(peak, at(MONDAY, 15), at(MONDAY, 18))
        assert is_peak_time(peak, at(MONDAY, 17), at(MONDAY, 19))

    def test_days_and_hours_both_required(self) -> None:
        """Test both constraints must be touched when both are set."""
        peak = rule(RULE_PEAK, 8000, dow=[6], start_hour=18, end_hour=22)

        assert not is_peak_time(peak, at(SATURDAY, 10), at(SATURDAY, 12))
        assert not is_peak_time(peak, at(MONDAY, 19), at(MONDAY, 21))
        assert is_peak_time(peak, at(SATURDAY, 19), at(SATURDAY, 21))


class TestRateSummaries:
    """Tests for rate summary helpers."""

    def test_min_and_max_hourly(self) -> None:
        """Test daily rates are converted to an hourly equivalent."""
        rules = [rule(RULE_HOURLY, 5000), rule(RULE_DAILY, 32000)]

        assert get_min_hourly_rate(rules) == 4000
        assert get_max_hourly_rate(rules) == 5000

    def test_max_hourly_includes_peak(self) -> None:
        """Test the peak rate counts towards the highest hourly rate."""
        rules = [
            rule(RULE_HOURLY, 5000),
            rule(RULE_PEAK, 9000, start_hour=18, end_hour=23),
        ]

        assert get_min_hourly_rate(rules) == 5000
        assert get_max_hourly_rate(rules) == 9000

    def test_no_base_rates(self) -> None:
        """Test None is returned without hourly or daily rules."""
        rules = [rule(RULE_CLEANING_FEE, 2500)]

        assert get_min_hourly_rate(rules) is None
        assert get_max_hourly_rate(rules) is None

    def test_total_fees(self) -> None:
        """Test fees add cleaning and deposit."""
        rules = [
            rule(RULE_HOURLY, 5000),
            rule(RULE_CLEANING_FEE, 2500),
            rule(RULE_SECURITY_DEPOSIT, 10000),
        ]

        assert get_total_fees(rules) == 12500


class TestValidatePricingRules:
    """Tests for validate_pricing_rules."""

    def test_valid_rules(self) -> None:
        """Test a complete rule set has no errors."""
        rules = [rule(RULE_HOURLY, 5000), rule(RULE_PEAK, 8000, dow=[5, 6])]

        assert validate_pricing_rules(rules) == []

    def test_base_rate_required(self) -> None:
        """Test a rule set without a base rate is invalid."""
        errors = validate_pricing_rules([rule(RULE_CLEANING_FEE, 2500)])

        assert errors == [
            "At least one base pricing rule (hourly or daily) is required"
        ]

    def test_duplicate_kinds(self) -> None:
        """Test duplicate rule kinds are reported."""
        errors = validate_pricing_rules(
            [rule(RULE_HOURLY, 5000), rule(RULE_HOURLY, 6000)]
        )

        assert errors == ["Duplicate pricing rule types: HOURLY"]

    def test_peak_needs_days_or_hours(self) -> None:
        """Test a peak rule without any window is invalid."""
        errors = validate_pricing_rules(
            [rule(RULE_HOURLY, 5000), rule(RULE_PEAK, 8000)]
        )

        assert errors == [
            "Peak pricing rule must specify either days of week or time range"
        ]


class TestFormatPrice:
    """Tests for format_price."""

    @pytest.mark.parametrize(
        ("amount", "currency", "expected"),
        [
            (1250, "USD", "$12.50"),
            (123456, "EUR", "€1,234.56"),
            (5000, "JPY", "¥5,000"),
            (500, "CHF", "CHF 5.00"),
            (-250, "USD", "-$2.50"),
            (999, "gbp", "£9.99"),
        ],
    )
    def test_format(self, amount: int, currency: str, expected: str) -> None:
        """Test display formatting of minor-unit amounts."""
        assert format_price(amount, currency) == expected
