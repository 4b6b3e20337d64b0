# SPDX-FileCopyrightText: 2026 Andrew Grimberg <tykeal@bardicgrove.org>
# SPDX-License-Identifier: Apache-2.0
"""Quote calculation for space booking requests.

All amounts are integers in minor currency units. Peak windows are
evaluated in the space's local timezone.
"""

import math
from collections.abc import Iterable, Sequence
from datetime import datetime
from typing import Any, Protocol

from pydantic import BaseModel, Field

from tripfluence.models.space import (
    RULE_CLEANING_FEE,
    RULE_DAILY,
    RULE_HOURLY,
    RULE_PEAK,
    RULE_SECURITY_DEPOSIT,
)
from tripfluence.services.calendar_service import get_timezone
from tripfluence.utils.timeutils import ensure_utc

DEFAULT_CURRENCY = "USD"

# Bookings at least this long are charged the daily rate
DAILY_RATE_MIN_HOURS = 8

SECONDS_PER_HOUR = 3600
SECONDS_PER_DAY = 86400

# Symbols for the currencies the marketplace settles in
CURRENCY_SYMBOLS = {
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
    "INR": "₹",
    "AUD": "A$",
    "CAD": "C$",
    "JPY": "¥",
}

# Currencies without a minor unit
ZERO_DECIMAL_CURRENCIES = frozenset({"JPY", "KRW"})


class PricingRuleLike(Protocol):
    """Attributes read from a pricing rule (ORM row or request model)."""

    kind: str
    amount: int
    currency: str
    dow: list[int] | None
    start_hour: int | None
    end_hour: int | None


class PriceLine(BaseModel):
    """A single labelled line of a quote."""

    label: str = Field(description="Human readable description")
    amount: int = Field(description="Amount in minor units")
    kind: str = Field(description="Pricing rule kind the line comes from")


class PricingResult(BaseModel):
    """Full quote for a booking window."""

    subtotal: int = Field(description="Base, peak and cleaning charges")
    total: int = Field(description="Subtotal plus security deposit")
    currency: str = Field(description="ISO currency code")
    duration_hours: int = Field(description="Billable hours, rounded up")
    lines: list[PriceLine] = Field(description="Labelled quote lines")
    breakdown: dict[str, int] = Field(description="Amount per component")


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def _plural(count: int, unit: str) -> str:
    return f"{count} {unit}" if count == 1 else f"{count} {unit}s"


def _first_of_kind(rules: Iterable[PricingRuleLike], kind: str) -> Any:
    return next((rule for rule in rules if rule.kind == kind), None)


def _js_weekday(value: datetime) -> int:
    """Weekday with 0=Sunday..6=Saturday."""
    return (value.weekday() + 1) % 7


def _days_in_range(start_day: int, end_day: int) -> set[int]:
    """Weekdays from start_day to end_day inclusive, wrapping at Saturday."""
    if start_day <= end_day:
        return set(range(start_day, end_day + 1))
    return set(range(start_day, 7)) | set(range(end_day + 1))


def is_peak_time(
    rule: PricingRuleLike,
    start: datetime,
    end: datetime,
    tz: str = "UTC",
) -> bool:
    """Check whether a booking window touches a peak rule's window.

    Args:
        rule: PEAK pricing rule with days and/or an hour range.
        start: Booking start.
        end: Booking end.
        tz: IANA timezone the rule's days and hours are expressed in.

    Returns:
        True if every configured constraint of the rule is touched.
    """
    zone = get_timezone(tz)
    local_start = ensure_utc(start).astimezone(zone)
    local_end = ensure_utc(end).astimezone(zone)

    if rule.dow:
        booked_days = _days_in_range(_js_weekday(local_start), _js_weekday(local_end))
        if not booked_days.intersection(rule.dow):
            return False

    if rule.start_hour is not None and rule.end_hour is not None:
        if local_end.hour <= rule.start_hour or local_start.hour >= rule.end_hour:
            return False

    return True


def price_space_request(
    rules: Sequence[PricingRuleLike],
    start: datetime,
    end: datetime,
    tz: str = "UTC",
) -> PricingResult:
    """Calculate the quote for booking a space over a time window.

    Args:
        rules: Pricing rules of the space. The first rule of each kind wins.
        start: Booking start.
        end: Booking end, after start.
        tz: Timezone of the space, used for peak windows.

    Returns:
        Quote with lines and per-component breakdown.

    Raises:
        ValueError: If end is not after start.
    """
    start = ensure_utc(start)
    end = ensure_utc(end)
    seconds = (end - start).total_seconds()
    if seconds <= 0:
        msg = "End time must be after start time"
        raise ValueError(msg)

    duration_hours = math.ceil(seconds / SECONDS_PER_HOUR)
    duration_days = math.ceil(seconds / SECONDS_PER_DAY)

    hourly = _first_of_kind(rules, RULE_HOURLY)
    daily = _first_of_kind(rules, RULE_DAILY)
    peak = _first_of_kind(rules, RULE_PEAK)
    cleaning = _first_of_kind(rules, RULE_CLEANING_FEE)
    deposit = _first_of_kind(rules, RULE_SECURITY_DEPOSIT)

    lines: list[PriceLine] = []
    base_amount = 0

    if daily is not None and duration_hours >= DAILY_RATE_MIN_HOURS:
        base_amount = daily.amount * duration_days
        lines.append(
            PriceLine(
                label=f"Daily rate ({_plural(duration_days, 'day')})",
                amount=base_amount,
                kind=RULE_DAILY,
            )
        )
    elif hourly is not None:
        base_amount = hourly.amount * duration_hours
        lines.append(
            PriceLine(
                label=f"Hourly rate ({_plural(duration_hours, 'hour')})",
                amount=base_amount,
                kind=RULE_HOURLY,
            )
        )

    peak_amount = 0
    if peak is not None and is_peak_time(peak, start, end, tz):
        base_hourly = base_amount / duration_hours
        peak_amount = _round_half_up(
            max(0.0, peak.amount - base_hourly) * duration_hours
        )
        if peak_amount > 0:
            lines.append(
                PriceLine(
                    label="Peak time surcharge", amount=peak_amount, kind=RULE_PEAK
                )
            )

    cleaning_amount = cleaning.amount if cleaning is not None else 0
    if cleaning is not None:
        lines.append(
            PriceLine(
                label="Cleaning fee", amount=cleaning_amount, kind=RULE_CLEANING_FEE
            )
        )

    deposit_amount = deposit.amount if deposit is not None else 0
    if deposit is not None:
        lines.append(
            PriceLine(
                label="Security deposit",
                amount=deposit_amount,
                kind=RULE_SECURITY_DEPOSIT,
            )
        )

    subtotal = base_amount + peak_amount + cleaning_amount
    currency = rules[0].currency if rules else DEFAULT_CURRENCY

    return PricingResult(
        subtotal=subtotal,
        total=subtotal + deposit_amount,
        currency=currency,
        duration_hours=duration_hours,
        lines=lines,
        breakdown={
            "base": base_amount,
            "peak": peak_amount,
            "cleaning": cleaning_amount,
            "deposit": deposit_amount,
        },
    )


def _hourly_equivalents(rules: Iterable[PricingRuleLike]) -> list[int]:
    rates = []
    for rule in rules:
        if rule.kind == RULE_HOURLY:
            rates.append(rule.amount)
        elif rule.kind == RULE_DAILY:
            rates.append(math.ceil(rule.amount / DAILY_RATE_MIN_HOURS))
    return rates


def get_min_hourly_rate(rules: Iterable[PricingRuleLike]) -> int | None:
    """Lowest hourly-equivalent rate, converting daily rates over 8 hours."""
    rates = _hourly_equivalents(rules)
    return min(rates) if rates else None


def get_max_hourly_rate(rules: Iterable[PricingRuleLike]) -> int | None:
    """Highest hourly-equivalent rate, including the peak rate."""
    rules = list(rules)
    rates = _hourly_equivalents(rules)
    peak = _first_of_kind(rules, RULE_PEAK)
    if peak is not None:
        rates.append(peak.amount)
    return max(rates) if rates else None


def get_total_fees(rules: Iterable[PricingRuleLike]) -> int:
    """Sum of cleaning fees and security deposits."""
    return sum(
        rule.amount
        for rule in rules
        if rule.kind in (RULE_CLEANING_FEE, RULE_SECURITY_DEPOSIT)
    )


def validate_pricing_rules(rules: Sequence[PricingRuleLike]) -> list[str]:
    """Check that a rule set can price a booking.

    Args:
        rules: Pricing rules of a space.

    Returns:
        List of error messages; empty when the rules are valid.
    """
    errors: list[str] = []
    kinds = [rule.kind for rule in rules]

    if RULE_HOURLY not in kinds and RULE_DAILY not in kinds:
        errors.append("At least one base pricing rule (hourly or daily) is required")

    duplicates = sorted({kind for kind in kinds if kinds.count(kind) > 1})
    if duplicates:
        errors.append(f"Duplicate pricing rule types: {', '.join(duplicates)}")

    for rule in rules:
        if rule.kind != RULE_PEAK:
            continue
        has_days = bool(rule.dow)
        has_hours = rule.start_hour is not None and rule.end_hour is not None
        if not has_days and not has_hours:
            errors.append(
                "Peak pricing rule must specify either days of week or time range"
            )

    return errors


def format_price(amount: int, currency: str = DEFAULT_CURRENCY) -> str:
    """Format a minor-unit amount for display.

    Args:
        amount: Amount in minor units.
        currency: ISO currency code.

    Returns:
        Display string such as ``$12.50``.
    """
    code = currency.upper()
    symbol = CURRENCY_SYMBOLS.get(code, f"{code} ")
    sign = "-" if amount < 0 else ""
    if code in ZERO_DECIMAL_CURRENCIES:
        return f"{sign}{symbol}{abs(amount):,}"
    major, minor = divmod(abs(amount), 100)
    return f"{sign}{symbol}{major:,}.{minor:02d}"
