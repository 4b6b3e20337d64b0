# SPDX-FileCopyrightText: 2026 Andrew Grimberg <tykeal@bardicgrove.org>
# SPDX-License-Identifier: Apache-2.0
"""Scheduling and publishing of social posts to connected accounts."""

import logging
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from tripfluence.models.social_account import SocialAccount
from tripfluence.models.social_post import (
    POST_FAILED,
    POST_PUBLISHED,
    POST_PUBLISHING,
    POST_SCHEDULED,
    SocialPost,
)
from tripfluence.repositories.social_account_repository import (
    SocialAccountRepository,
)
from tripfluence.repositories.social_post_repository import SocialPostRepository
from tripfluence.services.providers import (
    POST_TARGETS,
    ProviderClient,
    ProviderError,
    get_provider,
)
from tripfluence.services.token_refresh import TokenRefreshService
from tripfluence.utils.timeutils import ensure_utc

logger = logging.getLogger(__name__)


class SocialPostError(Exception):
    """Exception raised when a post cannot be created."""

    pass


def target_for_provider(provider: str) -> str | None:
    """Get the post target name of an account provider, if it takes posts."""
    for target, key in POST_TARGETS.items():
        if key == provider:
            return target
    return None


class SocialPostService:
    """Service for creating and publishing social posts."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize social post service.

        Args:
            session: Async database session.
        """
        self._session = session
        self._repo = SocialPostRepository(session)
        self._accounts = SocialAccountRepository(session)

    async def create(
        self,
        business_id: int,
        caption: str,
        targets: Sequence[str],
        title: str | None = None,
        media: list[dict[str, str]] | None = None,
        scheduled_at: datetime | None = None,
    ) -> SocialPost:
        """Schedule a post for the given platforms.

        Posts without a schedule time are due immediately and go out on
        the next publish run.

        Args:
            business_id: Business posting.
            caption: Post text.
            targets: Platform names (facebook, instagram, google).
            title: Optional internal title.
            media: Items with ``url`` and ``type``.
            scheduled_at: When to publish.

        Returns:
            The created post, in SCHEDULED state.

        Raises:
            SocialPostError: If a target is unknown or no target has an
                active connected account.
        """
        unknown = [target for target in targets if target not in POST_TARGETS]
        if unknown:
            msg = f"Unsupported platforms: {', '.join(unknown)}"
            raise SocialPostError(msg)

        accounts = await self._accounts.get_active_for_providers(
            business_id, [POST_TARGETS[target] for target in targets]
        )
        if not accounts:
            msg = "No connected social accounts found for the specified platforms"
            raise SocialPostError(msg)

        post = SocialPost(
            business_id=business_id,
            title=title,
            caption=caption,
            media=media or [],
            platforms=list(dict.fromkeys(targets)),
            status=POST_SCHEDULED,
            scheduled_at=ensure_utc(scheduled_at or datetime.now(UTC)),
            results={},
            post_metadata={
                "connected_accounts": [
                    {
                        "id": account.id,
                        "provider": account.provider,
                        "account_name": account.account_name,
                    }
                    for account in accounts
                ],
            },
        )
        post = await self._repo.create(post)
        logger.info(
            "Scheduled post %d for %s at %s",
            post.id,
            ", ".join(post.platforms),
            post.scheduled_at,
        )
        return post

    async def _accounts_by_target(self, post: SocialPost) -> dict[str, SocialAccount]:
        metadata = post.post_metadata or {}
        if metadata.get("account_id"):
            account = await self._accounts.get_by_id(
                metadata["account_id"], post.business_id
            )
            accounts: Sequence[SocialAccount] = [account] if account else []
        else:
            accounts = await self._accounts.get_active_for_providers(
                post.business_id,
                [POST_TARGETS[t] for t in post.platforms if t in POST_TARGETS],
            )

        by_target: dict[str, SocialAccount] = {}
        for account in accounts:
            target = target_for_provider(account.provider)
            if target and target not in by_target:
                by_target[target] = account
        return by_target

    async def _publish_to_account(
        self, account: SocialAccount, post: SocialPost
    ) -> dict[str, str]:
        token = await TokenRefreshService(self._session).get_valid_token(account)
        if not token:
            msg = f"No valid token for {account.provider} account {account.id}"
            raise ProviderError(msg)
        return await ProviderClient(account.provider, token).create_post(
            account.external_id, post.caption, post.media or []
        )

    async def publish_post(self, post: SocialPost) -> SocialPost:
        """Publish a post to each of its platforms.

        Each platform's outcome is kept in ``results``; the post is
        PUBLISHED when at least one platform accepted it, else FAILED.

        Args:
            post: Post to publish.

        Returns:
            The updated post.
        """
        post.status = POST_PUBLISHING
        post = await self._repo.update(post)

        accounts = await self._accounts_by_target(post)
        results: dict[str, Any] = {}
        for target in post.platforms:
            account = accounts.get(target)
            if account is None:
                results[target] = {
                    "success": False,
                    "error": "No connected account",
                }
                continue
            try:
                external = await self._publish_to_account(account, post)
            except ProviderError as e:
                logger.warning("Post %d to %s failed: %s", post.id, target, e)
                results[target] = {"success": False, "error": str(e)}
                continue
            results[target] = {
                "success": True,
                "id": external["id"],
                "url": external["url"],
                "published_at": datetime.now(UTC).isoformat(),
            }

        return await self._finish(post, results)

    async def _finish(self, post: SocialPost, results: dict[str, Any]) -> SocialPost:
        succeeded = any(result.get("success") for result in results.values())
        post.results = results
        post.status = POST_PUBLISHED if succeeded else POST_FAILED
        if succeeded:
            post.published_at = datetime.now(UTC)
        post = await self._repo.update(post)
        logger.info("Post %d finished with status %s", post.id, post.status)
        return post

    async def process_due(self, limit: int = 50) -> dict[str, int]:
        """Publish every scheduled post that is due.

        A post that fails unexpectedly is marked FAILED so it does not
        hold up the posts due after it.

        Args:
            limit: Maximum number of posts to publish in one run.

        Returns:
            Count of processed posts per resulting status.
        """
        due = await self._repo.get_due(limit=limit)
        if not due:
            logger.debug("No social posts due")
            return {}

        counts: dict[str, int] = {}
        for post_id in [post.id for post in due]:
            # A rollback expires every loaded row, get() reloads it
            post = await self._session.get(SocialPost, post_id)
            if post is None:
                continue
            try:
                result = await self.publish_post(post)
                status = result.status
                await self._session.commit()
            except Exception as e:
                logger.exception("Post %d failed unexpectedly", post_id)
                await self._session.rollback()
                await self._session.refresh(post)
                await self._finish(
                    post,
                    {
                        target: {
                            "success": False,
                            "error": f"Unexpected error: {e}",
                        }
                        for target in post.platforms
                    },
                )
                await self._session.commit()
                status = POST_FAILED
            counts[status] = counts.get(status, 0) + 1
        return counts

    async def send_test_post(
        self, account: SocialAccount, caption: str, media_url: str | None = None
    ) -> SocialPost:
        """Publish a test post through one account right away.

        Args:
            account: Account to post through.
            caption: Post text.
            media_url: Optional image to attach.

        Returns:
            The published or failed test post.

        Raises:
            SocialPostError: If the account is inactive or cannot take posts.
        """
        if not account.is_active:
            msg = "Account is not active"
            raise SocialPostError(msg)
        target = target_for_provider(account.provider)
        if target is None:
            name = get_provider(account.provider).display_name
            msg = f"{name} does not support posts"
            raise SocialPostError(msg)

        post = SocialPost(
            business_id=account.business_id,
            title="Test Post",
            caption=caption,
            media=[{"url": media_url, "type": "image"}] if media_url else [],
            platforms=[target],
            status=POST_SCHEDULED,
            scheduled_at=datetime.now(UTC),
            results={},
            post_metadata={"is_test_post": True, "account_id": account.id},
        )
        post = await self._repo.create(post)
        logger.info("Sending test post %d via account %d", post.id, account.id)
        return await self.publish_post(post)
