# SPDX-FileCopyrightText: 2026 Andrew Grimberg <tykeal@bardicgrove.org>
# SPDX-License-Identifier: Apache-2.0
"""SQLAlchemy ORM models for Tripfluence."""

from tripfluence.models.audit_log import AuditLog
from tripfluence.models.business import ApiKey, Business, RoleAssignment
from tripfluence.models.event_sync import EventSync
from tripfluence.models.listing import Listing
from tripfluence.models.order import Order, Payment
from tripfluence.models.review import Review
from tripfluence.models.social_account import SocialAccount
from tripfluence.models.social_post import SocialPost
from tripfluence.models.space import Space, SpaceAvailability, SpacePricingRule
from tripfluence.models.space_request import SpaceMessage, SpaceRequest
from tripfluence.models.webhook import WebhookDelivery, WebhookEndpoint

__all__ = [
    "ApiKey",
    "AuditLog",
    "Business",
    "EventSync",
    "Listing",
    "Order",
    "Payment",
    "Review",
    "RoleAssignment",
    "SocialAccount",
    "SocialPost",
    "Space",
    "SpaceAvailability",
    "SpacePricingRule",
    "SpaceMessage",
    "SpaceRequest",
    "WebhookDelivery",
    "WebhookEndpoint",
]
