# SPDX-FileCopyrightText: 2026 Andrew Grimberg <tykeal@bardicgrove.org>
# SPDX-License-Identifier: Apache-2.0
"""OAuth token refresh for connected social and event accounts."""

import logging
from datetime import UTC, datetime, timedelta
from typing import Any

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from tripfluence.models.social_account import SocialAccount
from tripfluence.repositories.social_account_repository import (
    SocialAccountRepository,
)
from tripfluence.services.providers import (
    ProviderClient,
    ProviderError,
    get_client_credentials,
    get_provider,
)

logger = logging.getLogger(__name__)

# Token expiry buffer in seconds (refresh 5 minutes before expiry)
TOKEN_EXPIRY_BUFFER_SECONDS = 300

REQUEST_TIMEOUT_SECONDS = 30.0


class TokenRefreshError(Exception):
    """Exception raised when an account's token cannot be refreshed."""

    pass


class TokenRefreshService:
    """Service for refreshing and validating stored OAuth tokens.

    Refresh outcomes (success or failure) are recorded on the account and
    committed immediately, so failures stay visible even when the caller
    turns the error into an HTTP error response.
    """

    def __init__(self, session: AsyncSession) -> None:
        """Initialize token refresh service.

        Args:
            session: Async database session for account storage.
        """
        self._session = session
        self._repo = SocialAccountRepository(session)

    async def _record_failure(self, account: SocialAccount, message: str) -> None:
        account.last_error_at = datetime.now(UTC)
        account.last_error_message = message
        await self._session.commit()

    async def _request_refresh(
        self, account: SocialAccount, refresh_token: str
    ) -> dict[str, Any]:
        """Post a refresh_token grant to the provider's token endpoint.

        Raises:
            TokenRefreshError: If the provider rejects the grant or is unreachable.
        """
        info = get_provider(account.provider)
        client_id, client_secret = get_client_credentials(account.provider)

        try:
            async with httpx.AsyncClient() as client:
                response = await client.post(
                    info.token_url or "",
                    data={
                        "grant_type": "refresh_token",
                        "client_id": client_id,
                        "client_secret": client_secret,
                        "refresh_token": refresh_token,
                    },
                    timeout=REQUEST_TIMEOUT_SECONDS,
                )
        except httpx.RequestError as e:
            logger.exception("HTTP error during token refresh for %s", info.key)
            msg = f"HTTP error: {e}"
            raise TokenRefreshError(msg) from e

        if not response.is_success:
            logger.error(
                "Token refresh for %s failed with status %d: %s",
                info.key,
                response.status_code,
                response.text,
            )
            msg = f"Token refresh failed: {response.status_code}"
            raise TokenRefreshError(msg)

        try:
            data = response.json()
        except ValueError as e:
            msg = "Token response is not valid JSON"
            raise TokenRefreshError(msg) from e
        if not isinstance(data, dict) or not data.get("access_token"):
            msg = "Token response missing access_token"
            raise TokenRefreshError(msg)

        expires_in = data.get("expires_in")
        if expires_in is not None:
            try:
                data["expires_in"] = int(expires_in)
            except (TypeError, ValueError) as e:
                msg = f"Token response has invalid expires_in: {expires_in!r}"
                raise TokenRefreshError(msg) from e
        return data

    async def refresh_account(self, account: SocialAccount) -> SocialAccount:
        """Refresh an account's access token and store the new tokens.

        Args:
            account: Account to refresh.

        Returns:
            The updated account.

        Raises:
            TokenRefreshError: If the account cannot be refreshed.
        """
        refresh_token = account.refresh_token
        if not refresh_token:
            msg = "No refresh token available"
            await self._record_failure(account, msg)
            raise TokenRefreshError(msg)

        try:
            info = get_provider(account.provider)
        except ProviderError as e:
            await self._record_failure(account, str(e))
            raise TokenRefreshError(str(e)) from e

        if info.long_lived or info.token_url is None:
            msg = f"{info.display_name} tokens are long-lived and cannot be refreshed"
            await self._record_failure(account, msg)
            raise TokenRefreshError(msg)

        try:
            data = await self._request_refresh(account, refresh_token)
        except TokenRefreshError as e:
            await self._record_failure(account, str(e))
            raise

        now = datetime.now(UTC)
        account.access_token = data["access_token"]
        # Keep the existing refresh token when the provider does not rotate it
        if data.get("refresh_token"):
            account.refresh_token = data["refresh_token"]
        expires_in = data.get("expires_in")
        account.expires_at = (
            now + timedelta(seconds=expires_in) if expires_in else None
        )
        account.last_success_at = now

        await self._session.commit()
        await self._session.refresh(account)

        logger.info(
            "Token refreshed for %s account %d", account.provider, account.id
        )
        return account

    async def refresh_expired_accounts(self) -> dict[str, Any]:
        """Refresh every active account whose token is about to expire.

        Returns:
            Dict with refreshed and failed counts and error descriptions.
        """
        accounts = await self._repo.get_expiring(TOKEN_EXPIRY_BUFFER_SECONDS)

        refreshed = 0
        failed = 0
        errors: list[str] = []

        for account_id in [account.id for account in accounts]:
            # A rollback expires every loaded row, get() reloads it
            account = await self._session.get(SocialAccount, account_id)
            if account is None:
                continue
            label = f"{account.provider} ({account.account_name})"
            try:
                await self.refresh_account(account)
                refreshed += 1
            except TokenRefreshError as e:
                failed += 1
                errors.append(f"{label}: {e}")
            except Exception as e:
                logger.exception("Failed to refresh account %d", account_id)
                await self._session.rollback()
                await self._session.refresh(account)
                await self._record_failure(account, f"Unexpected error: {e}")
                failed += 1
                errors.append(f"{label}: {e}")

        logger.info(
            "Token refresh completed: %d refreshed, %d failed", refreshed, failed
        )
        return {"refreshed": refreshed, "failed": failed, "errors": errors}

    async def get_valid_token(self, account: SocialAccount) -> str | None:
        """Get a usable access token, refreshing it if expired.

        Args:
            account: Account whose token is needed.

        Returns:
            Decrypted access token, or None if the account is inactive or
            its expired token could not be refreshed.
        """
        if not account.is_active:
            return None

        if account.is_token_expired():
            try:
                account = await self.refresh_account(account)
            except TokenRefreshError:
                logger.warning(
                    "Could not refresh expired token for account %d", account.id
                )
                return None

        return account.access_token

    async def validate_and_refresh(self, account: SocialAccount) -> bool:
        """Validate a token with the provider, refreshing it if rejected.

        Args:
            account: Account to check.

        Returns:
            True if the account ends up with a working token.
        """
        token = await self.get_valid_token(account)
        if not token:
            return False

        if await ProviderClient(account.provider, token).validate_token():
            return True

        try:
            await self.refresh_account(account)
        except TokenRefreshError:
            return False
        return True
