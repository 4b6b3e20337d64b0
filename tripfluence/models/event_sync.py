# SPDX-FileCopyrightText: 2026 Andrew Grimberg <tykeal@bardicgrove.org>
# SPDX-License-Identifier: Apache-2.0
"""EventSync model tracking publication of listings to event platforms."""

from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.dialects.sqlite import JSON
from sqlalchemy.orm import Mapped, mapped_column

from tripfluence.database import Base
from tripfluence.utils.timeutils import utc_now

SYNC_PENDING = "PENDING"
SYNC_SUCCESS = "SUCCESS"
SYNC_PARTIAL = "PARTIAL"
SYNC_FAILED = "FAILED"

SYNC_ACTIVE = "ACTIVE"
SYNC_PAUSED = "PAUSED"


class EventSync(Base):
    """Publication state of one listing across external event platforms."""

    __tablename__ = "event_syncs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    business_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False
    )
    listing_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("listings.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    platforms: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=SYNC_ACTIVE
    )
    last_sync_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=SYNC_PENDING
    )
    last_sync_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    external_ids: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    sync_metadata: Mapped[dict[str, Any] | None] = mapped_column(
        "metadata", JSON, nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        UniqueConstraint("business_id", "listing_id", name="uq_event_sync_listing"),
        Index("idx_event_sync_status", "last_sync_status"),
    )

    def __repr__(self) -> str:
        """Return string representation."""
        return (
            f"<EventSync(id={self.id}, listing_id={self.listing_id}, "
            f"last_sync_status={self.last_sync_status})>"
        )
