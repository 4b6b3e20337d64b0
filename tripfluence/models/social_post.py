# SPDX-FileCopyrightText: 2026 Andrew Grimberg <tykeal@bardicgrove.org>
# SPDX-License-Identifier: Apache-2.0
"""SocialPost model for captions published to social platforms."""

from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.dialects.sqlite import JSON
from sqlalchemy.orm import Mapped, mapped_column

from tripfluence.database import Base
from tripfluence.utils.timeutils import utc_now

POST_DRAFT = "DRAFT"
POST_SCHEDULED = "SCHEDULED"
POST_PUBLISHING = "PUBLISHING"
POST_PUBLISHED = "PUBLISHED"
POST_FAILED = "FAILED"
POST_STATUSES = (
    POST_DRAFT,
    POST_SCHEDULED,
    POST_PUBLISHING,
    POST_PUBLISHED,
    POST_FAILED,
)

# Instagram caption limit
MAX_CAPTION_LENGTH = 2200


class SocialPost(Base):
    """A caption with optional media, published to one or more platforms.

    ``results`` maps each target platform to the outcome of its publish
    attempt: ``success`` plus the external ``id`` and ``url``, or ``error``.
    """

    __tablename__ = "social_posts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    business_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[str | None] = mapped_column(String(200), nullable=True)
    caption: Mapped[str] = mapped_column(Text, nullable=False)
    media: Mapped[list[dict[str, str]]] = mapped_column(
        JSON, nullable=False, default=list
    )
    platforms: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=POST_SCHEDULED
    )
    scheduled_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    published_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    results: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    post_metadata: Mapped[dict[str, Any] | None] = mapped_column(
        "metadata", JSON, nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        Index("idx_social_post_business", "business_id", "status"),
        Index("idx_social_post_due", "status", "scheduled_at"),
    )

    def __repr__(self) -> str:
        """Return string representation."""
        return f"<SocialPost(id={self.id}, status={self.status})>"
