# SPDX-FileCopyrightText: 2026 Andrew Grimberg <tykeal@bardicgrove.org>
# SPDX-License-Identifier: Apache-2.0
"""Background task scheduler for periodic maintenance jobs."""

import logging
from datetime import UTC, datetime

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tripfluence.repositories.audit_repository import AuditRepository
from tripfluence.repositories.space_request_repository import (
    SpaceRequestRepository,
)
from tripfluence.repositories.webhook_repository import WebhookRepository
from tripfluence.services.event_sync_service import EventSyncService
from tripfluence.services.idempotency import IdempotencyCache
from tripfluence.services.social_post_service import SocialPostService
from tripfluence.services.token_refresh import TokenRefreshService

# Job intervals
HOLD_EXPIRY_INTERVAL_MINUTES = 5
TOKEN_REFRESH_INTERVAL_MINUTES = 15
EVENT_SYNC_INTERVAL_MINUTES = 5
SOCIAL_POST_INTERVAL_MINUTES = 1

# Data retention settings
AUDIT_LOG_RETENTION_DAYS = 90
WEBHOOK_DELIVERY_RETENTION_DAYS = 30

logger = logging.getLogger(__name__)


class MaintenanceScheduler:
    """Scheduler for periodic maintenance tasks.

    Uses APScheduler to expire payment holds, refresh OAuth tokens, push
    pending event syncs, publish due social posts and purge old records.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        idempotency_cache: IdempotencyCache | None = None,
    ) -> None:
        """Initialize scheduler.

        Args:
            session_factory: Factory for creating database sessions.
            idempotency_cache: Optional cache to purge of expired entries.
        """
        self._session_factory = session_factory
        self._idempotency_cache = idempotency_cache
        self._scheduler = AsyncIOScheduler()
        self._running = False

    def start(self) -> None:
        """Start the scheduler."""
        if self._running:
            logger.warning("Scheduler already running")
            return

        self._scheduler.add_job(
            self._expire_holds,
            trigger=IntervalTrigger(minutes=HOLD_EXPIRY_INTERVAL_MINUTES),
            id="expire_holds",
            replace_existing=True,
            max_instances=1,
        )
        self._scheduler.add_job(
            self._refresh_tokens,
            trigger=IntervalTrigger(minutes=TOKEN_REFRESH_INTERVAL_MINUTES),
            id="refresh_tokens",
            replace_existing=True,
            max_instances=1,
        )
        self._scheduler.add_job(
            self._process_event_syncs,
            trigger=IntervalTrigger(minutes=EVENT_SYNC_INTERVAL_MINUTES),
            id="process_event_syncs",
            replace_existing=True,
            max_instances=1,
        )
        self._scheduler.add_job(
            self._publish_social_posts,
            trigger=IntervalTrigger(minutes=SOCIAL_POST_INTERVAL_MINUTES),
            id="publish_social_posts",
            replace_existing=True,
            max_instances=1,
        )

        # Add daily purge job at 03:00 UTC
        self._scheduler.add_job(
            self._purge_old_records,
            trigger=CronTrigger(hour=3, minute=0, timezone="UTC"),
            id="purge_old_records",
            replace_existing=True,
            max_instances=1,
        )

        self._scheduler.start()
        self._running = True
        logger.info("Maintenance scheduler started")
        logger.info("Data purge scheduled daily at 03:00 UTC")

    def stop(self) -> None:
        """Stop the scheduler."""
        if not self._running:
            return

        self._scheduler.shutdown(wait=False)
        self._running = False
        logger.info("Maintenance scheduler stopped")

    @property
    def is_running(self) -> bool:
        """Check if scheduler is running.

        Returns:
            True if scheduler is running.
        """
        return self._running

    async def _expire_holds(self) -> None:
        """Expire payment holds whose deadline has passed."""
        async with self._session_factory() as session:
            try:
                count = await SpaceRequestRepository(session).expire_holds(
                    datetime.now(UTC)
                )
                await session.commit()
                if count:
                    logger.info("Expired %d payment hold(s)", count)
                else:
                    logger.debug("No payment holds to expire")
            except Exception:
                logger.exception("Error expiring payment holds")

    async def _refresh_tokens(self) -> None:
        """Refresh OAuth tokens that are about to expire."""
        async with self._session_factory() as session:
            try:
                await TokenRefreshService(session).refresh_expired_accounts()
            except Exception:
                logger.exception("Error during scheduled token refresh")

    async def _process_event_syncs(self) -> None:
        """Push pending listing events to their platforms."""
        async with self._session_factory() as session:
            try:
                counts = await EventSyncService(session).process_pending()
                if counts:
                    logger.info("Event sync run complete: %s", counts)
            except Exception:
                logger.exception("Error processing event syncs")

    async def _publish_social_posts(self) -> None:
        """Publish scheduled social posts that are due."""
        async with self._session_factory() as session:
            try:
                counts = await SocialPostService(session).process_due()
                if counts:
                    logger.info("Social post run complete: %s", counts)
            except Exception:
                logger.exception("Error publishing social posts")

    async def _purge_old_records(self) -> None:
        """Purge old audit log entries and webhook deliveries.

        Runs daily at 03:00 UTC to clean up:
        - Audit log entries > 90 days old
        - Webhook deliveries > 30 days old
        """
        logger.info("Starting scheduled data purge")

        async with self._session_factory() as session:
            try:
                audit_count = await AuditRepository(session).purge_old_entries(
                    days=AUDIT_LOG_RETENTION_DAYS
                )
                delivery_count = await WebhookRepository(session).purge_deliveries(
                    days=WEBHOOK_DELIVERY_RETENTION_DAYS
                )
                await session.commit()

                cache_count = 0
                if self._idempotency_cache is not None:
                    cache_count = self._idempotency_cache.purge_expired()

                logger.info(
                    "Data purge complete: %d audit entries, %d deliveries, "
                    "%d cached responses removed",
                    audit_count,
                    delivery_count,
                    cache_count,
                )

            except Exception:
                logger.exception("Error during data purge")


# Global scheduler instance
_scheduler: MaintenanceScheduler | None = None


def get_scheduler() -> MaintenanceScheduler | None:
    """Get the global scheduler instance.

    Returns:
        MaintenanceScheduler instance or None if not initialized.
    """
    return _scheduler


def init_scheduler(
    session_factory: async_sessionmaker[AsyncSession],
    idempotency_cache: IdempotencyCache | None = None,
) -> MaintenanceScheduler:
    """Initialize the global scheduler.

    Args:
        session_factory: Factory for creating database sessions.
        idempotency_cache: Optional idempotency cache.

    Returns:
        Initialized MaintenanceScheduler.
    """
    global _scheduler  # noqa: PLW0603
    _scheduler = MaintenanceScheduler(session_factory, idempotency_cache)
    return _scheduler
