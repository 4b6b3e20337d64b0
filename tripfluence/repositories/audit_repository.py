# SPDX-FileCopyrightText: 2026 Andrew Grimberg <tykeal@bardicgrove.org>
# SPDX-License-Identifier: Apache-2.0
"""Repository for audit log entries."""

from collections.abc import Sequence
from datetime import UTC, datetime, timedelta
from typing import cast

from sqlalchemy import CursorResult, delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from tripfluence.models.audit_log import AuditLog
from tripfluence.repositories.base import DEFAULT_PAGE_SIZE, paginate


class AuditRepository:
    """Repository for AuditLog operations."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with database session.

        Args:
            session: Async SQLAlchemy session.
        """
        self._session = session

    async def create(self, entry: AuditLog) -> AuditLog:
        """Store an audit entry."""
        self._session.add(entry)
        await self._session.flush()
        return entry

    async def list_for_business(
        self,
        business_id: int,
        action: str | None = None,
        action_prefix: str | None = None,
        entity_type: str | None = None,
        actor_id: str | None = None,
        since: datetime | None = None,
        until: datetime | None = None,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> tuple[Sequence[AuditLog], int]:
        """List audit entries of a business, newest first.

        Args:
            business_id: Owning business.
            action: Exact action name.
            action_prefix: Action namespace such as ``social.account.``.
            entity_type: Entity type filter.
            actor_id: Actor filter.
            since: Entries created at or after this instant.
            until: Entries created before this instant.
            page: 1-based page number.
            limit: Page size.

        Returns:
            Tuple of (entries on the page, total count).
        """
        query = select(AuditLog).where(AuditLog.business_id == business_id)
        if action:
            query = query.where(AuditLog.action == action)
        if action_prefix:
            query = query.where(AuditLog.action.startswith(action_prefix))
        if entity_type:
            query = query.where(AuditLog.entity_type == entity_type)
        if actor_id:
            query = query.where(AuditLog.actor_id == actor_id)
        if since is not None:
            query = query.where(AuditLog.created_at >= since)
        if until is not None:
            query = query.where(AuditLog.created_at < until)
        query = query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
        return await paginate(self._session, query, page, limit)

    async def purge_old_entries(self, days: int = 90) -> int:
        """Delete entries older than the given number of days.

        Args:
            days: Retention period.

        Returns:
            Number of entries deleted.
        """
        cutoff = datetime.now(UTC) - timedelta(days=days)
        result = cast(
            "CursorResult[tuple[()]]",
            await self._session.execute(
                delete(AuditLog).where(AuditLog.created_at < cutoff)
            ),
        )
        await self._session.flush()
        return result.rowcount or 0
