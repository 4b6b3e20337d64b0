# SPDX-FileCopyrightText: 2026 Andrew Grimberg <tykeal@bardicgrove.org>
# SPDX-License-Identifier: Apache-2.0
"""Tripfluence repositories package."""

from tripfluence.repositories.audit_repository import AuditRepository
from tripfluence.repositories.base import RepositoryError
from tripfluence.repositories.business_repository import BusinessRepository
from tripfluence.repositories.event_sync_repository import EventSyncRepository
from tripfluence.repositories.listing_repository import ListingRepository
from tripfluence.repositories.order_repository import OrderRepository
from tripfluence.repositories.review_repository import ReviewRepository
from tripfluence.repositories.social_account_repository import (
    SocialAccountRepository,
)
from tripfluence.repositories.space_repository import SpaceRepository
from tripfluence.repositories.space_request_repository import (
    SpaceRequestRepository,
)
from tripfluence.repositories.webhook_repository import WebhookRepository

__all__ = [
    "AuditRepository",
    "BusinessRepository",
    "EventSyncRepository",
    "ListingRepository",
    "OrderRepository",
    "RepositoryError",
    "ReviewRepository",
    "SocialAccountRepository",
    "SpaceRepository",
    "SpaceRequestRepository",
    "WebhookRepository",
]
