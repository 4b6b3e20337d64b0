# SPDX-FileCopyrightText: 2026 Andrew Grimberg <tykeal@bardicgrove.org>
# SPDX-License-Identifier: Apache-2.0
"""Role to permission mapping for business members and API keys."""

from tripfluence.models.business import (
    ROLE_ADMIN,
    ROLE_INFLUENCER,
    ROLE_MANAGER,
    ROLE_STAFF,
)

_MANAGER_PERMISSIONS = frozenset(
    {
        "spaces.create",
        "spaces.read",
        "spaces.update",
        "spaces.publish",
        "requests.read",
        "requests.approve",
        "requests.decline",
        "requests.cancel",
        "pricing.manage",
        "availability.read",
        "availability.manage",
        "payouts.view",
        "listings.read",
        "listings.manage",
        "orders.read",
        "orders.manage",
        "reviews.read",
        "reviews.manage",
        "integrations.read",
        "integrations.manage",
        "integrations.test",
        "eventsync.publish",
        "social.read",
        "social.post",
        "reports.read",
    }
)

ROLE_PERMISSIONS: dict[str, frozenset[str]] = {
    ROLE_ADMIN: _MANAGER_PERMISSIONS
    | {
        "spaces.delete",
        "payouts.manage",
        "users.manage",
        "settings.manage",
        "audit.read",
    },
    ROLE_MANAGER: _MANAGER_PERMISSIONS,
    ROLE_STAFF: frozenset(
        {
            "spaces.read",
            "requests.read",
            "requests.cancel",
            "availability.read",
            "listings.read",
            "orders.read",
            "reviews.read",
        }
    ),
    ROLE_INFLUENCER: frozenset({"spaces.read"}),
}


def has_permission(role: str | None, permission: str) -> bool:
    """Check whether a role grants a permission.

    Args:
        role: Role name, or None for users without an assignment.
        permission: Permission such as ``spaces.publish``.

    Returns:
        True if the role includes the permission.
    """
    if role is None:
        return False
    return permission in ROLE_PERMISSIONS.get(role, frozenset())
