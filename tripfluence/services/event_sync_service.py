# SPDX-FileCopyrightText: 2026 Andrew Grimberg <tykeal@bardicgrove.org>
# SPDX-License-Identifier: Apache-2.0
"""Publication of listings as events on connected event platforms."""

import logging
from collections.abc import Sequence
from datetime import UTC, datetime, timedelta
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from tripfluence.models.event_sync import (
    SYNC_ACTIVE,
    SYNC_FAILED,
    SYNC_PARTIAL,
    SYNC_PAUSED,
    SYNC_PENDING,
    SYNC_SUCCESS,
    EventSync,
)
from tripfluence.models.listing import Listing
from tripfluence.models.social_account import PROVIDER_MEETUP, SocialAccount
from tripfluence.repositories.event_sync_repository import EventSyncRepository
from tripfluence.repositories.listing_repository import ListingRepository
from tripfluence.repositories.social_account_repository import (
    SocialAccountRepository,
)
from tripfluence.services.providers import (
    EVENT_TARGETS,
    ProviderClient,
    ProviderError,
    build_event_payload,
    get_provider,
)
from tripfluence.services.token_refresh import TokenRefreshService
from tripfluence.utils.timeutils import ensure_utc

logger = logging.getLogger(__name__)

TEST_EVENT_TITLE = "Test Event from Tripfluence"


class EventSyncError(Exception):
    """Exception raised when a listing cannot be queued for publication."""

    pass


class EventSyncService:
    """Service for queueing and pushing listing events to platforms."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize event sync service.

        Args:
            session: Async database session.
        """
        self._session = session
        self._repo = EventSyncRepository(session)
        self._accounts = SocialAccountRepository(session)

    async def publish(
        self,
        business_id: int,
        listing: Listing,
        targets: Sequence[str],
        metadata: dict[str, Any] | None = None,
    ) -> EventSync:
        """Queue a listing for publication on the given platforms.

        Args:
            business_id: Business owning the listing.
            listing: Listing to publish.
            targets: Platform names (facebook, eventbrite, meetup).
            metadata: Extra per-platform options, such as ``meetupGroup``.

        Returns:
            The created or updated EventSync, in PENDING state.

        Raises:
            EventSyncError: If a target is unknown or no target has an
                active connected account.
        """
        unknown = [target for target in targets if target not in EVENT_TARGETS]
        if unknown:
            msg = f"Unsupported platforms: {', '.join(unknown)}"
            raise EventSyncError(msg)

        providers = [EVENT_TARGETS[target] for target in targets]
        accounts = await self._accounts.get_active_for_providers(
            business_id, providers
        )
        if not accounts:
            msg = "No connected accounts found for the specified platforms"
            raise EventSyncError(msg)

        connected = sorted({account.provider for account in accounts})
        sync_metadata = {
            **(metadata or {}),
            "connected_accounts": connected,
            "requested_at": datetime.now(UTC).isoformat(),
        }

        event_sync = await self._repo.get_for_listing(business_id, listing.id)
        if event_sync is None:
            event_sync = EventSync(
                business_id=business_id,
                listing_id=listing.id,
                name=f"{listing.title} - Event Sync",
                platforms=connected,
                last_sync_status=SYNC_PENDING,
                external_ids={},
                sync_metadata=sync_metadata,
            )
            event_sync = await self._repo.create(event_sync)
        else:
            event_sync.name = f"{listing.title} - Event Sync"
            event_sync.platforms = connected
            event_sync.last_sync_status = SYNC_PENDING
            event_sync.sync_metadata = sync_metadata
            event_sync = await self._repo.update(event_sync)

        logger.info(
            "Queued listing %d for event sync on %s", listing.id, ", ".join(connected)
        )
        return event_sync

    async def pause(self, event_sync: EventSync) -> EventSync:
        """Stop the sync job from pushing this listing."""
        event_sync.status = SYNC_PAUSED
        event_sync = await self._repo.update(event_sync)
        logger.info("Paused event sync %d", event_sync.id)
        return event_sync

    async def resume(self, event_sync: EventSync) -> EventSync:
        """Reactivate a sync and queue the current listing for a push."""
        event_sync.status = SYNC_ACTIVE
        event_sync.last_sync_status = SYNC_PENDING
        event_sync = await self._repo.update(event_sync)
        logger.info("Resumed event sync %d", event_sync.id)
        return event_sync

    async def send_test_event(
        self,
        account: SocialAccount,
        listing: Listing | None = None,
        title: str = TEST_EVENT_TITLE,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> dict[str, str]:
        """Create an event through one account right away.

        Without a listing a sample event is sent, starting tomorrow and
        lasting two hours unless times are given.

        Args:
            account: Account to publish through.
            listing: Listing to publish as the test event.
            title: Sample event title.
            start: Sample event start.
            end: Sample event end.

        Returns:
            Dict with the platform's event ``id`` and public ``url``.

        Raises:
            EventSyncError: If the account is inactive or cannot take events.
            ProviderError: If the platform rejects the event.
        """
        if not account.is_active:
            msg = "Account is not active"
            raise EventSyncError(msg)
        info = get_provider(account.provider)
        if not info.supports_events:
            msg = f"{info.display_name} does not support event publishing"
            raise EventSyncError(msg)

        if listing is not None:
            payload = build_event_payload(listing)
        else:
            start = ensure_utc(start or datetime.now(UTC) + timedelta(days=1))
            end = ensure_utc(end or start + timedelta(hours=2))
            payload = {
                "name": title,
                "description": "This is a test event created from Tripfluence",
                "start_time": start.isoformat(),
                "end_time": end.isoformat(),
                "timezone": "UTC",
                "city": None,
                "country": None,
                "capacity": 10,
                "currency": "USD",
                "price": 0,
            }

        logger.info("Sending test event via account %d", account.id)
        return await self._push_to_account(account, payload, {})

    async def _push_to_account(
        self,
        account: SocialAccount,
        payload: dict[str, Any],
        metadata: dict[str, Any],
    ) -> dict[str, str]:
        token = await TokenRefreshService(self._session).get_valid_token(account)
        if not token:
            msg = f"No valid token for {account.provider} account {account.id}"
            raise ProviderError(msg)

        external_id = account.external_id
        if account.provider == PROVIDER_MEETUP:
            external_id = metadata.get("meetupGroup") or external_id

        return await ProviderClient(account.provider, token).create_event(
            external_id, payload
        )

    async def sync_one(self, event_sync: EventSync) -> EventSync:
        """Push one pending sync to each of its platforms.

        Args:
            event_sync: Sync to process.

        Returns:
            The sync with its result status, external IDs and errors.
        """
        listing = await ListingRepository(self._session).get_by_id(
            event_sync.listing_id, event_sync.business_id
        )
        metadata = dict(event_sync.sync_metadata or {})
        external_ids = dict(event_sync.external_ids or {})
        errors: dict[str, str] = {}

        if listing is None:
            errors["listing"] = "Listing no longer exists"
        else:
            payload = build_event_payload(listing)
            accounts = await self._accounts.get_active_for_providers(
                event_sync.business_id, event_sync.platforms
            )
            by_provider = {account.provider: account for account in accounts}

            for provider in event_sync.platforms:
                account = by_provider.get(provider)
                if account is None:
                    errors[provider] = "Account is no longer connected"
                    continue
                try:
                    external_ids[provider] = await self._push_to_account(
                        account, payload, metadata
                    )
                except ProviderError as e:
                    logger.warning(
                        "Event sync %d failed on %s: %s", event_sync.id, provider, e
                    )
                    errors[provider] = str(e)

        succeeded = [p for p in event_sync.platforms if p not in errors]
        if listing is None or (errors and not succeeded):
            status = SYNC_FAILED
        elif errors:
            status = SYNC_PARTIAL
        else:
            status = SYNC_SUCCESS

        return await self._finish(event_sync, status, external_ids, metadata, errors)

    async def _finish(
        self,
        event_sync: EventSync,
        status: str,
        external_ids: dict[str, Any],
        metadata: dict[str, Any],
        errors: dict[str, str],
    ) -> EventSync:
        metadata["errors"] = errors
        event_sync.external_ids = external_ids
        event_sync.sync_metadata = metadata
        event_sync.last_sync_status = status
        event_sync.last_sync_at = datetime.now(UTC)
        event_sync = await self._repo.update(event_sync)

        logger.info("Event sync %d finished with status %s", event_sync.id, status)
        return event_sync

    async def process_pending(self, limit: int = 50) -> dict[str, int]:
        """Push every pending sync to its platforms.

        A sync that fails unexpectedly is marked FAILED so it does not
        hold up the syncs queued after it.

        Args:
            limit: Maximum number of syncs to process in one run.

        Returns:
            Count of processed syncs per resulting status.
        """
        pending = await self._repo.get_pending(limit)
        if not pending:
            logger.debug("No pending event syncs")
            return {}

        counts: dict[str, int] = {}
        for sync_id in [event_sync.id for event_sync in pending]:
            # A rollback expires every loaded row, get() reloads it
            event_sync = await self._session.get(EventSync, sync_id)
            if event_sync is None:
                continue
            try:
                result = await self.sync_one(event_sync)
                status = result.last_sync_status
                await self._session.commit()
            except Exception as e:
                logger.exception("Event sync %d failed unexpectedly", sync_id)
                await self._session.rollback()
                await self._session.refresh(event_sync)
                await self._finish(
                    event_sync,
                    SYNC_FAILED,
                    dict(event_sync.external_ids or {}),
                    dict(event_sync.sync_metadata or {}),
                    {"sync": f"Unexpected error: {e}"},
                )
                await self._session.commit()
                status = SYNC_FAILED
            counts[status] = counts.get(status, 0) + 1
        return counts
