# SPDX-FileCopyrightText: 2026 Andrew Grimberg <tykeal@bardicgrove.org>
# SPDX-License-Identifier: Apache-2.0
"""Recording of administrative actions in the audit log."""

import logging
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from tripfluence.models.audit_log import AuditLog
from tripfluence.repositories.audit_repository import AuditRepository

logger = logging.getLogger(__name__)

# Listings
LISTING_CREATED = "listing.created"
LISTING_UPDATED = "listing.updated"
LISTING_DELETED = "listing.deleted"
LISTING_PUBLISHED = "listing.published"
LISTING_ARCHIVED = "listing.archived"

# Orders
ORDER_PAID = "order.paid"
ORDER_CANCELLED = "order.cancelled"
ORDER_REFUNDED = "order.refunded"

# Reviews
REVIEW_MODERATED = "review.moderated"
REVIEW_REPLIED = "review.replied"

# Spaces
SPACE_CREATED = "space.created"
SPACE_UPDATED = "space.updated"
SPACE_DELETED = "space.deleted"
SPACE_PUBLISHED = "space.published"
SPACE_ARCHIVED = "space.archived"
PRICING_UPDATED = "space.pricing.updated"
SLOT_CREATED = "slot.created"
SLOT_DELETED = "slot.deleted"

# Booking requests
REQUEST_APPROVED = "space_request.approved"
REQUEST_DECLINED = "space_request.declined"
REQUEST_CANCELLED = "space_request.cancelled"
REQUEST_QUOTED = "space_request.quoted"
REQUEST_CONFIRMED = "space_request.confirmed"

# Integrations
SOCIAL_ACCOUNT_CONNECTED = "social.account.connected"
SOCIAL_ACCOUNT_REFRESHED = "social.account.refreshed"
SOCIAL_ACCOUNT_DISCONNECTED = "social.account.disconnected"
SOCIAL_ACCOUNT_TEST_POST = "social.account.test_post"
SOCIAL_ACCOUNT_TEST_EVENT = "social.account.test_event"
SOCIAL_POST_CREATED = "social.post.created"
EVENT_SYNC_PUBLISHED = "event.sync.published"
EVENT_SYNC_PAUSED = "event.sync.paused"
EVENT_SYNC_RESUMED = "event.sync.resumed"

# Settings
WEBHOOK_CREATED = "webhook.created"
WEBHOOK_UPDATED = "webhook.updated"
WEBHOOK_DELETED = "webhook.deleted"
API_KEY_CREATED = "api.key.created"
API_KEY_REVOKED = "api.key.revoked"

# Action namespace shown on the integrations audit view
INTEGRATION_ACTION_PREFIX = "social.account."


async def log_action(
    session: AsyncSession,
    *,
    business_id: int,
    actor_id: str,
    actor_type: str,
    action: str,
    entity_type: str,
    entity_id: int | str | None = None,
    details: dict[str, Any] | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> AuditLog:
    """Record an action in the audit log.

    The entry is written in the caller's transaction, so it is only kept
    when the action itself commits.

    Args:
        session: Async database session.
        business_id: Business the action applies to.
        actor_id: User ID, API key ID or ``system``.
        actor_type: ``user``, ``api`` or ``system``.
        action: Action name such as ``listing.created``.
        entity_type: Kind of entity acted upon.
        entity_id: Identifier of the entity.
        details: Extra context.
        ip_address: Client address, when known.
        user_agent: Client user agent, when known.

    Returns:
        The stored entry.
    """
    entry = AuditLog(
        business_id=business_id,
        actor_id=actor_id,
        actor_type=actor_type,
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id) if entity_id is not None else None,
        details=details or {},
        ip_address=ip_address,
        user_agent=user_agent[:500] if user_agent else None,
    )
    await AuditRepository(session).create(entry)
    logger.debug("Audit %s on %s %s by %s", action, entity_type, entity_id, actor_id)
    return entry
