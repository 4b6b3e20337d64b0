# SPDX-FileCopyrightText: 2026 Andrew Grimberg <tykeal@bardicgrove.org>
# SPDX-License-Identifier: Apache-2.0
"""Booking requests for spaces and their message threads."""

from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.dialects.sqlite import JSON
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tripfluence.database import Base
from tripfluence.utils.timeutils import utc_now

if TYPE_CHECKING:
    from tripfluence.models.space import Space

REQUEST_PENDING = "PENDING"
REQUEST_NEEDS_PAYMENT = "NEEDS_PAYMENT"
REQUEST_PAID_HOLD = "PAID_HOLD"
REQUEST_CONFIRMED = "CONFIRMED"
REQUEST_DECLINED = "DECLINED"
REQUEST_CANCELLED = "CANCELLED"
REQUEST_EXPIRED = "EXPIRED"
REQUEST_STATUSES = (
    REQUEST_PENDING,
    REQUEST_NEEDS_PAYMENT,
    REQUEST_PAID_HOLD,
    REQUEST_CONFIRMED,
    REQUEST_DECLINED,
    REQUEST_CANCELLED,
    REQUEST_EXPIRED,
)


class SpaceRequest(Base):
    """An organizer's request to book a space for a time window."""

    __tablename__ = "space_requests"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    business_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False
    )
    space_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("spaces.id", ondelete="CASCADE"), nullable=False
    )
    organizer_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    organizer_name: Mapped[str] = mapped_column(String(255), nullable=False)
    organizer_email: Mapped[str] = mapped_column(String(255), nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    attendees: Mapped[int] = mapped_column(Integer, nullable=False)
    start: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    end: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=REQUEST_PENDING
    )
    quote_amount: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    deposit_amount: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    cleaning_fee: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    pricing_breakdown: Mapped[dict[str, Any] | None] = mapped_column(
        JSON, nullable=True
    )
    hold_expires_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    decision_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    cancel_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utc_now, onupdate=utc_now
    )

    space: Mapped["Space"] = relationship("Space", lazy="selectin")

    __table_args__ = (
        Index("idx_request_space_window", "space_id", "start", "end"),
        Index("idx_request_business_status", "business_id", "status"),
        Index("idx_request_hold_expiry", "status", "hold_expires_at"),
    )

    def __repr__(self) -> str:
        """Return string representation."""
        return f"<SpaceRequest(id={self.id}, status={self.status})>"


class SpaceMessage(Base):
    """A message in a booking request thread."""

    __tablename__ = "space_messages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    space_request_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("space_requests.id", ondelete="CASCADE"), nullable=False
    )
    author_id: Mapped[str] = mapped_column(String(100), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    attachments: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utc_now, onupdate=utc_now
    )

    __table_args__ = (Index("idx_message_request", "space_request_id"),)

    def __repr__(self) -> str:
        """Return string representation."""
        return f"<SpaceMessage(id={self.id}, request={self.space_request_id})>"
