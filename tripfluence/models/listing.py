# SPDX-FileCopyrightText: 2026 Andrew Grimberg <tykeal@bardicgrove.org>
# SPDX-License-Identifier: Apache-2.0
"""Listing model for events, activities, retreats and other offerings."""

from datetime import datetime
from typing import Any

from sqlalchemy import (
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.sqlite import JSON
from sqlalchemy.orm import Mapped, mapped_column

from tripfluence.database import Base
from tripfluence.utils.timeutils import utc_now

LISTING_TYPES = ("EVENT", "ACTIVITY", "RETREAT", "RESTAURANT", "SPACE")

LISTING_DRAFT = "DRAFT"
LISTING_PUBLISHED = "PUBLISHED"
LISTING_ARCHIVED = "ARCHIVED"
LISTING_STATUSES = (LISTING_DRAFT, LISTING_PUBLISHED, LISTING_ARCHIVED)


class Listing(Base):
    """An offering a business sells through orders.

    Listings are created as drafts and must be published before
    customers can check out or review them.
    """

    __tablename__ = "listings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    business_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False
    )
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    slug: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    city: Mapped[str | None] = mapped_column(String(100), nullable=True)
    country: Mapped[str | None] = mapped_column(String(100), nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=LISTING_DRAFT
    )
    price_from: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    capacity: Mapped[int | None] = mapped_column(Integer, nullable=True)
    photos: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)
    details: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    published_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        UniqueConstraint("business_id", "slug", name="uq_listing_business_slug"),
        Index("idx_listing_status", "business_id", "status"),
    )

    @property
    def is_published(self) -> bool:
        """Check whether the listing can be ordered and reviewed."""
        return self.status == LISTING_PUBLISHED

    def __repr__(self) -> str:
        """Return string representation."""
        return f"<Listing(id={self.id}, title={self.title}, status={self.status})>"
