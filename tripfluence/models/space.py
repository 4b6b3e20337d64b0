# SPDX-FileCopyrightText: 2026 Andrew Grimberg <tykeal@bardicgrove.org>
# SPDX-License-Identifier: Apache-2.0
"""Space model with its pricing rules and availability blocks."""

from datetime import datetime
from typing import Any

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.sqlite import JSON
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tripfluence.database import Base
from tripfluence.utils.timeutils import utc_now

SPACE_DRAFT = "DRAFT"
SPACE_PUBLISHED = "PUBLISHED"
SPACE_ARCHIVED = "ARCHIVED"
SPACE_STATUSES = (SPACE_DRAFT, SPACE_PUBLISHED, SPACE_ARCHIVED)

RULE_HOURLY = "HOURLY"
RULE_DAILY = "DAILY"
RULE_PEAK = "PEAK"
RULE_CLEANING_FEE = "CLEANING_FEE"
RULE_SECURITY_DEPOSIT = "SECURITY_DEPOSIT"
RULE_KINDS = (
    RULE_HOURLY,
    RULE_DAILY,
    RULE_PEAK,
    RULE_CLEANING_FEE,
    RULE_SECURITY_DEPOSIT,
)


class Space(Base):
    """A bookable venue owned by a business.

    Pricing rules and availability blocks are loaded eagerly so quotes
    and public listings can be computed without further queries.
    """

    __tablename__ = "spaces"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    business_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(100), nullable=False)
    slug: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    city: Mapped[str] = mapped_column(String(100), nullable=False)
    address: Mapped[str | None] = mapped_column(String(255), nullable=True)
    lat: Mapped[float | None] = mapped_column(Float, nullable=True)
    lng: Mapped[float | None] = mapped_column(Float, nullable=True)
    timezone: Mapped[str] = mapped_column(String(50), nullable=False, default="UTC")
    capacity: Mapped[int] = mapped_column(Integer, nullable=False)
    floor_area_m2: Mapped[int | None] = mapped_column(Integer, nullable=True)
    photos: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)
    amenities: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)
    rules: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=SPACE_DRAFT
    )
    published_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utc_now, onupdate=utc_now
    )

    # Relationships
    pricing_rules: Mapped[list["SpacePricingRule"]] = relationship(
        "SpacePricingRule",
        back_populates="space",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="SpacePricingRule.id",
    )
    availability: Mapped[list["SpaceAvailability"]] = relationship(
        "SpaceAvailability",
        back_populates="space",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="SpaceAvailability.start",
    )

    __table_args__ = (
        UniqueConstraint("business_id", "slug", name="uq_space_business_slug"),
        Index("idx_space_status", "status"),
        Index("idx_space_city", "city"),
    )

    @property
    def is_published(self) -> bool:
        """Check whether the space is visible on the public site."""
        return self.status == SPACE_PUBLISHED

    def __repr__(self) -> str:
        """Return string representation."""
        return f"<Space(id={self.id}, slug={self.slug}, status={self.status})>"


class SpacePricingRule(Base):
    """A single pricing component for a space, amounts in minor units."""

    __tablename__ = "space_pricing_rules"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    space_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("spaces.id", ondelete="CASCADE"), nullable=False
    )
    kind: Mapped[str] = mapped_column(String(20), nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    # Days of week, 0=Sunday..6=Saturday
    dow: Mapped[list[int] | None] = mapped_column(JSON, nullable=True)
    start_hour: Mapped[int | None] = mapped_column(Integer, nullable=True)
    end_hour: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utc_now, onupdate=utc_now
    )

    space: Mapped["Space"] = relationship("Space", back_populates="pricing_rules")

    __table_args__ = (Index("idx_pricing_rule_space", "space_id"),)

    def __repr__(self) -> str:
        """Return string representation."""
        return f"<SpacePricingRule(kind={self.kind}, amount={self.amount})>"


class SpaceAvailability(Base):
    """An availability block; blocked ones make the window unbookable."""

    __tablename__ = "space_availability"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    space_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("spaces.id", ondelete="CASCADE"), nullable=False
    )
    start: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    end: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    is_blocked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    notes: Mapped[str | None] = mapped_column(String(500), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utc_now, onupdate=utc_now
    )

    space: Mapped["Space"] = relationship("Space", back_populates="availability")

    __table_args__ = (Index("idx_availability_window", "space_id", "start", "end"),)

    def __repr__(self) -> str:
        """Return string representation."""
        return (
            f"<SpaceAvailability(space_id={self.space_id}, start={self.start}, "
            f"end={self.end}, blocked={self.is_blocked})>"
        )


def rules_as_dicts(rules: list[SpacePricingRule]) -> list[dict[str, Any]]:
    """Serialize pricing rules for API responses."""
    return [
        {
            "id": rule.id,
            "kind": rule.kind,
            "amount": rule.amount,
            "currency": rule.currency,
            "dow": rule.dow or [],
            "start_hour": rule.start_hour,
            "end_hour": rule.end_hour,
        }
        for rule in rules
    ]
