# SPDX-FileCopyrightText: 2026 Andrew Grimberg <tykeal@bardicgrove.org>
# SPDX-License-Identifier: Apache-2.0
"""Unit tests for role permissions."""

import pytest

from tripfluence.models.business import (
    ROLE_ADMIN,
    ROLE_INFLUENCER,
    ROLE_MANAGER,
    ROLE_STAFF,
)
from tripfluence.services.permissions import ROLE_PERMISSIONS, has_permission


class TestHasPermission:
    """Tests for has_permission."""

    def test_admin_has_everything(self) -> None:
        """Test admins hold every permission of every role."""
        for permissions in ROLE_PERMISSIONS.values():
            for permission in permissions:
                assert has_permission(ROLE_ADMIN, permission)

    @pytest.mark.parametrize(
        "permission",
        [
            "spaces.delete",
            "payouts.manage",
            "users.manage",
            "settings.manage",
            "audit.read",
        ],
    )
    def test_manager_lacks_admin_permissions(self, permission: str) -> None:
        """Test managers cannot perform admin-only actions."""
        assert not has_permission(ROLE_MANAGER, permission)

    def test_manager_can_run_operations(self) -> None:
        """Test managers handle day-to-day operations."""
        assert has_permission(ROLE_MANAGER, "requests.approve")
        assert has_permission(ROLE_MANAGER, "pricing.manage")
        assert has_permission(ROLE_MANAGER, "eventsync.publish")
        assert has_permission(ROLE_MANAGER, "social.post")
        assert not has_permission(ROLE_STAFF, "social.read")

    def test_staff_is_mostly_read_only(self) -> None:
        """Test staff can read and cancel but not approve or edit."""
        assert has_permission(ROLE_STAFF, "requests.read")
        assert has_permission(ROLE_STAFF, "requests.cancel")
        assert not has_permission(ROLE_STAFF, "requests.approve")
        assert not has_permission(ROLE_STAFF, "spaces.update")
        assert not has_permission(ROLE_STAFF, "orders.manage")

    def test_influencer_reads_spaces_only(self) -> None:
        """Test influencers only browse spaces."""
        assert ROLE_PERMISSIONS[ROLE_INFLUENCER] == frozenset({"spaces.read"})
        assert not has_permission(ROLE_INFLUENCER, "requests.read")

    def test_missing_or_unknown_role(self) -> None:
        """Test users without a known role get nothing."""
        assert not has_permission(None, "spaces.read")
        assert not has_permission("OWNER", "spaces.read")
