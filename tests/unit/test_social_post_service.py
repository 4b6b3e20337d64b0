# SPDX-FileCopyrightText: 2026 Andrew Grimberg <tykeal@bardicgrove.org>
# SPDX-License-Identifier: Apache-2.0
"""Unit tests for social post scheduling and publishing."""

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, patch

import pytest

from tripfluence.models.social_account import (
    PROVIDER_EVENTBRITE,
    PROVIDER_FACEBOOK_PAGE,
    PROVIDER_INSTAGRAM_BUSINESS,
    SocialAccount,
)
from tripfluence.models.social_post import (
    POST_FAILED,
    POST_PUBLISHED,
    POST_SCHEDULED,
    SocialPost,
)
from tripfluence.services.providers import ProviderError
from tripfluence.services.social_post_service import (
    SocialPostError,
    SocialPostService,
    target_for_provider,
)
from tripfluence.utils.timeutils import ensure_utc

CLIENT_PATH = "tripfluence.services.social_post_service.ProviderClient"


@pytest.fixture
async def accounts(async_session, business) -> dict[str, SocialAccount]:
    """Connected Facebook page and Instagram accounts."""
    expires = datetime.now(UTC) + timedelta(days=30)
    facebook = SocialAccount(
        business_id=business.id,
        provider=PROVIDER_FACEBOOK_PAGE,
        account_name="Harbour Page",
        external_id="page-1",
        access_token="fb-token",
        expires_at=expires,
    )
    instagram = SocialAccount(
        business_id=business.id,
        provider=PROVIDER_INSTAGRAM_BUSINESS,
        account_name="Harbour on Instagram",
        external_id="ig-1",
        access_token="ig-token",
        expires_at=expires,
    )
    async_session.add_all([facebook, instagram])
    await async_session.commit()
    return {PROVIDER_FACEBOOK_PAGE: facebook, PROVIDER_INSTAGRAM_BUSINESS: instagram}


async def fake_create_post(external_id, caption, media):
    """Succeed on Facebook, fail on Instagram."""
    if external_id == "ig-1":
        raise ProviderError("Instagram posts need an image")
    return {"id": f"post-{external_id}", "url": f"https://example.com/{external_id}"}


class TestTargetForProvider:
    """Tests for target_for_provider."""

    def test_post_providers(self) -> None:
        """Test posting providers map back to their target names."""
        assert target_for_provider(PROVIDER_FACEBOOK_PAGE) == "facebook"
        assert target_for_provider(PROVIDER_INSTAGRAM_BUSINESS) == "instagram"

    def test_event_only_provider(self) -> None:
        """Test providers without posts have no target."""
        assert target_for_provider(PROVIDER_EVENTBRITE) is None


class TestCreate:
    """Tests for SocialPostService.create."""

    @pytest.mark.asyncio
    async def test_unknown_target(self, async_session, business, accounts) -> None:
        """Test unknown platforms are rejected."""
        with pytest.raises(SocialPostError, match="Unsupported platforms: tiktok"):
            await SocialPostService(async_session).create(
                business.id, "Hello", ["facebook", "tiktok"]
            )

    @pytest.mark.asyncio
    async def test_no_connected_accounts(self, async_session, business) -> None:
        """Test posting needs at least one connected account."""
        with pytest.raises(SocialPostError, match="No connected social accounts"):
            await SocialPostService(async_session).create(
                business.id, "Hello", ["google"]
            )

    @pytest.mark.asyncio
    async def test_defaults_to_now(self, async_session, business, accounts) -> None:
        """Test a post without a schedule time is due immediately."""
        before = datetime.now(UTC)

        post = await SocialPostService(async_session).create(
            business.id, "Hello", ["facebook", "facebook", "instagram"]
        )

        assert post.status == POST_SCHEDULED
        assert post.platforms == ["facebook", "instagram"]
        assert ensure_utc(post.scheduled_at) >= before
        connected = post.post_metadata["connected_accounts"]
        assert {account["provider"] for account in connected} == {
            PROVIDER_FACEBOOK_PAGE,
            PROVIDER_INSTAGRAM_BUSINESS,
        }

    @pytest.mark.asyncio
    async def test_scheduled_later(self, async_session, business, accounts) -> None:
        """Test a future post is not due yet."""
        later = datetime.now(UTC) + timedelta(days=2)
        service = SocialPostService(async_session)

        await service.create(business.id, "Soon", ["facebook"], scheduled_at=later)

        assert await service.process_due() == {}


class TestPublishPost:
    """Tests for SocialPostService.publish_post."""

    @pytest.mark.asyncio
    async def test_partial_success_is_published(
        self, async_session, business, accounts
    ) -> None:
        """Test one accepted platform is enough to publish."""
        service = SocialPostService(async_session)
        post = await service.create(business.id, "Hello", ["facebook", "instagram"])

        with patch(CLIENT_PATH) as mock_client:
            mock_client.return_value.create_post = AsyncMock(
                side_effect=fake_create_post
            )

            post = await service.publish_post(post)

        assert post.status == POST_PUBLISHED
        assert post.published_at is not None
        assert post.results["facebook"]["success"] is True
        assert post.results["facebook"]["id"] == "post-page-1"
        assert post.results["instagram"] == {
            "success": False,
            "error": "Instagram posts need an image",
        }

    @pytest.mark.asyncio
    async def test_all_failed(self, async_session, business, accounts) -> None:
        """Test a post no platform accepted is failed."""
        service = SocialPostService(async_session)
        post = await service.create(business.id, "Hello", ["instagram"])

        with patch(CLIENT_PATH) as mock_client:
            mock_client.return_value.create_post = AsyncMock(
                side_effect=fake_create_post
            )

            post = await service.publish_post(post)

        assert post.status == POST_FAILED
        assert post.published_at is None

    @pytest.mark.asyncio
    async def test_disconnected_platform(
        self, async_session, business, accounts
    ) -> None:
        """Test a platform whose account went away is reported per platform."""
        service = SocialPostService(async_session)
        post = await service.create(business.id, "Hello", ["facebook", "instagram"])
        accounts[PROVIDER_INSTAGRAM_BUSINESS].is_active = False
        await async_session.commit()

        with patch(CLIENT_PATH) as mock_client:
            mock_client.return_value.create_post = AsyncMock(
                side_effect=fake_create_post
            )

            post = await service.publish_post(post)

        assert post.results["instagram"] == {
            "success": False,
            "error": "No connected account",
        }
        assert post.status == POST_PUBLISHED


class TestProcessDue:
    """Tests for SocialPostService.process_due."""

    @pytest.mark.asyncio
    async def test_unexpected_error_does_not_block_queue(
        self, async_session, business, accounts
    ) -> None:
        """Test a post that blows up is failed and the rest still go out."""
        now = datetime.now(UTC)
        broken = SocialPost(
            business_id=business.id,
            caption="Broken",
            media=[],
            platforms=["facebook"],
            status=POST_SCHEDULED,
            scheduled_at=now - timedelta(minutes=2),
        )
        healthy = SocialPost(
            business_id=business.id,
            caption="Healthy",
            media=[],
            platforms=["facebook"],
            status=POST_SCHEDULED,
            scheduled_at=now - timedelta(minutes=1),
        )
        async_session.add_all([broken, healthy])
        await async_session.commit()

        async def create_post(external_id, caption, media):
            if caption == "Broken":
                raise RuntimeError("malformed provider reply")
            return {"id": "1_2", "url": "https://www.facebook.com/1_2"}

        service = SocialPostService(async_session)
        with patch(CLIENT_PATH) as mock_client:
            mock_client.return_value.create_post = AsyncMock(side_effect=create_post)

            counts = await service.process_due()

        assert counts == {POST_FAILED: 1, POST_PUBLISHED: 1}
        await async_session.refresh(broken)
        await async_session.refresh(healthy)
        assert broken.status == POST_FAILED
        assert broken.results == {
            "facebook": {
                "success": False,
                "error": "Unexpected error: malformed provider reply",
            }
        }
        assert healthy.status == POST_PUBLISHED
        assert await service.process_due() == {}


class TestSendTestPost:
    """Tests for SocialPostService.send_test_post."""

    @pytest.mark.asyncio
    async def test_posts_through_given_account(
        self, async_session, business, accounts
    ) -> None:
        """Test the test post goes to the chosen account only."""
        account = accounts[PROVIDER_FACEBOOK_PAGE]

        with patch(CLIENT_PATH) as mock_client:
            mock_client.return_value.create_post = AsyncMock(
                side_effect=fake_create_post
            )

            post = await SocialPostService(async_session).send_test_post(
                account, "Testing", "https://cdn.example.com/a.jpg"
            )

        assert post.status == POST_PUBLISHED
        assert post.platforms == ["facebook"]
        assert post.media == [{"url": "https://cdn.example.com/a.jpg", "type": "image"}]
        assert post.post_metadata == {"is_test_post": True, "account_id": account.id}
        mock_client.assert_called_once_with(PROVIDER_FACEBOOK_PAGE, "fb-token")

    @pytest.mark.asyncio
    async def test_event_only_account(self, async_session, business) -> None:
        """Test accounts that cannot post are rejected."""
        account = SocialAccount(
            business_id=business.id,
            provider=PROVIDER_EVENTBRITE,
            account_name="Harbour on Eventbrite",
            access_token="eb-token",
        )
        async_session.add(account)
        await async_session.commit()

        with pytest.raises(SocialPostError, match="Eventbrite does not support posts"):
            await SocialPostService(async_session).send_test_post(account, "Testing")

    @pytest.mark.asyncio
    async def test_inactive_account(self, async_session, business, accounts) -> None:
        """Test disconnected accounts are rejected."""
        account = accounts[PROVIDER_FACEBOOK_PAGE]
        account.is_active = False

        with pytest.raises(SocialPostError, match="Account is not active"):
            await SocialPostService(async_session).send_test_post(account, "Testing")
