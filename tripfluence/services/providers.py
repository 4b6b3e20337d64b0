# SPDX-FileCopyrightText: 2026 Andrew Grimberg <tykeal@bardicgrove.org>
# SPDX-License-Identifier: Apache-2.0
"""Registry and HTTP client for external social and event platforms."""

import asyncio
import logging
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime
from http import HTTPStatus
from typing import Any

import httpx
from pydantic import BaseModel

from tripfluence.config import get_settings
from tripfluence.models.social_account import (
    PROVIDER_EVENTBRITE,
    PROVIDER_FACEBOOK_PAGE,
    PROVIDER_GOOGLE_BUSINESS,
    PROVIDER_INSTAGRAM_BUSINESS,
    PROVIDER_MEETUP,
)

logger = logging.getLogger(__name__)

MAX_RETRIES = 3
BASE_DELAY_SECONDS = 1.0
MAX_DELAY_SECONDS = 30.0
REQUEST_TIMEOUT_SECONDS = 30.0


class ProviderError(Exception):
    """Exception raised for external platform API errors."""

    pass


class RateLimitError(ProviderError):
    """Exception raised when a platform rate limit is exceeded."""

    def __init__(self, message: str, retry_after: float | None = None) -> None:
        """Initialize RateLimitError.

        Args:
            message: Error message.
            retry_after: Seconds to wait before retry, if provided by API.
        """
        super().__init__(message)
        self.retry_after = retry_after


class ProviderInfo(BaseModel):
    """Static description of an external platform."""

    key: str
    display_name: str
    token_url: str | None
    validation_url: str
    api_base: str
    long_lived: bool
    supports_events: bool
    supports_posts: bool
    client_id_setting: str
    client_secret_setting: str


PROVIDERS: dict[str, ProviderInfo] = {
    PROVIDER_FACEBOOK_PAGE: ProviderInfo(
        key=PROVIDER_FACEBOOK_PAGE,
        display_name="Facebook Page",
        token_url=None,
        validation_url="https://graph.facebook.com/me",
        api_base="https://graph.facebook.com",
        long_lived=True,
        supports_events=True,
        supports_posts=True,
        client_id_setting="facebook_app_id",
        client_secret_setting="facebook_app_secret",
    ),
    PROVIDER_INSTAGRAM_BUSINESS: ProviderInfo(
        key=PROVIDER_INSTAGRAM_BUSINESS,
        display_name="Instagram Business",
        token_url=None,
        validation_url="https://graph.facebook.com/me",
        api_base="https://graph.facebook.com",
        long_lived=True,
        supports_events=False,
        supports_posts=True,
        client_id_setting="facebook_app_id",
        client_secret_setting="facebook_app_secret",
    ),
    PROVIDER_GOOGLE_BUSINESS: ProviderInfo(
        key=PROVIDER_GOOGLE_BUSINESS,
        display_name="Google Business Profile",
        token_url="https://oauth2.googleapis.com/token",
        validation_url="https://www.googleapis.com/oauth2/v1/tokeninfo",
        api_base="https://mybusiness.googleapis.com",
        long_lived=False,
        supports_events=False,
        supports_posts=True,
        client_id_setting="google_client_id",
        client_secret_setting="google_client_secret",
    ),
    PROVIDER_EVENTBRITE: ProviderInfo(
        key=PROVIDER_EVENTBRITE,
        display_name="Eventbrite",
        token_url="https://www.eventbrite.com/oauth/token",
        validation_url="https://www.eventbriteapi.com/v3/users/me/",
        api_base="https://www.eventbriteapi.com/v3",
        long_lived=False,
        supports_events=True,
        supports_posts=False,
        client_id_setting="eventbrite_client_id",
        client_secret_setting="eventbrite_client_secret",
    ),
    PROVIDER_MEETUP: ProviderInfo(
        key=PROVIDER_MEETUP,
        display_name="Meetup",
        token_url="https://secure.meetup.com/oauth2/access",
        validation_url="https://api.meetup.com/members/self",
        api_base="https://api.meetup.com",
        long_lived=False,
        supports_events=True,
        supports_posts=False,
        client_id_setting="meetup_client_id",
        client_secret_setting="meetup_client_secret",
    ),
}

# Publish targets accepted by event sync, mapped to account providers
EVENT_TARGETS: dict[str, str] = {
    "facebook": PROVIDER_FACEBOOK_PAGE,
    "eventbrite": PROVIDER_EVENTBRITE,
    "meetup": PROVIDER_MEETUP,
}

# Publish targets accepted by social posts, mapped to account providers
POST_TARGETS: dict[str, str] = {
    "facebook": PROVIDER_FACEBOOK_PAGE,
    "instagram": PROVIDER_INSTAGRAM_BUSINESS,
    "google": PROVIDER_GOOGLE_BUSINESS,
}


def get_provider(provider: str) -> ProviderInfo:
    """Look up a provider.

    Args:
        provider: Provider key such as ``EVENTBRITE``.

    Returns:
        Provider description.

    Raises:
        ProviderError: If the provider is unknown.
    """
    info = PROVIDERS.get(provider)
    if info is None:
        msg = f"Unsupported provider: {provider}"
        raise ProviderError(msg)
    return info


def get_client_credentials(provider: str) -> tuple[str, str]:
    """Get the configured OAuth client ID and secret for a provider."""
    info = get_provider(provider)
    settings = get_settings()
    return (
        getattr(settings, info.client_id_setting),
        getattr(settings, info.client_secret_setting),
    )


def parse_retry_after(value: str | None) -> float | None:
    """Parse a Retry-After header given as seconds or as an HTTP date.

    Args:
        value: Raw header value.

    Returns:
        Seconds to wait, or None if the header is missing or unreadable.
    """
    if not value:
        return None
    try:
        return max(float(value), 0.0)
    except ValueError:
        pass
    try:
        retry_at = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        logger.debug("Ignoring unreadable Retry-After header: %s", value)
        return None
    if retry_at.tzinfo is None:
        retry_at = retry_at.replace(tzinfo=UTC)
    return max((retry_at - datetime.now(UTC)).total_seconds(), 0.0)


def build_event_payload(listing: Any) -> dict[str, Any]:
    """Build a platform-neutral event description from a listing.

    Args:
        listing: Listing being published.

    Returns:
        Dict with name, description, times, venue and capacity.
    """
    details = listing.details or {}
    return {
        "name": listing.title,
        "description": listing.description or "",
        "start_time": details.get("start_time"),
        "end_time": details.get("end_time"),
        "timezone": details.get("timezone", "UTC"),
        "city": listing.city,
        "country": listing.country,
        "capacity": listing.capacity,
        "currency": listing.currency,
        "price": listing.price_from,
    }


class ProviderClient:
    """Authenticated client for one platform account.

    Retries rate-limited calls with exponential backoff.
    """

    def __init__(self, provider: str, access_token: str) -> None:
        """Initialize ProviderClient.

        Args:
            provider: Provider key.
            access_token: Decrypted OAuth access token.
        """
        self._info = get_provider(provider)
        self._access_token = access_token

    async def _with_retry(self, operation: str, func: Any, *args: Any) -> Any:
        """Execute an API call with exponential backoff retry on rate limit.

        Args:
            operation: Description of operation for logging.
            func: Async function to call.
            *args: Positional arguments for func.

        Returns:
            Result from func.

        Raises:
            ProviderError: If all retries fail.
        """
        last_error: Exception | None = None
        delay = BASE_DELAY_SECONDS

        for attempt in range(MAX_RETRIES + 1):
            try:
                return await func(*args)
            except RateLimitError as e:
                last_error = e
                if attempt == MAX_RETRIES:
                    break

                wait_time = min(e.retry_after or delay, MAX_DELAY_SECONDS)
                logger.warning(
                    "%s rate limited, retrying in %.1fs (attempt %d/%d)",
                    operation,
                    wait_time,
                    attempt + 1,
                    MAX_RETRIES,
                )
                await asyncio.sleep(wait_time)
                delay *= 2

        msg = f"{operation} failed after {MAX_RETRIES} retries: {last_error}"
        raise ProviderError(msg) from last_error

    async def _post(self, url: str, body: dict[str, Any]) -> dict[str, Any]:
        try:
            async with httpx.AsyncClient() as client:
                response = await client.post(
                    url,
                    json=body,
                    headers={
                        "Authorization": f"Bearer {self._access_token}",
                        "Accept": "application/json",
                    },
                    timeout=REQUEST_TIMEOUT_SECONDS,
                )
        except httpx.RequestError as e:
            msg = f"{self._info.display_name} request failed: {e}"
            raise ProviderError(msg) from e

        if response.status_code == HTTPStatus.TOO_MANY_REQUESTS:
            raise RateLimitError(
                "Rate limited",
                retry_after=parse_retry_after(response.headers.get("Retry-After")),
            )

        if not response.is_success:
            msg = (
                f"{self._info.display_name} API error: "
                f"{response.status_code} {response.text}"
            )
            raise ProviderError(msg)

        try:
            data = response.json()
        except ValueError as e:
            msg = f"{self._info.display_name} returned a non-JSON response"
            raise ProviderError(msg) from e
        if not isinstance(data, dict):
            msg = f"{self._info.display_name} returned an unexpected response"
            raise ProviderError(msg)
        return data

    async def create_event(
        self, external_id: str | None, event: dict[str, Any]
    ) -> dict[str, str]:
        """Create an event on the platform.

        Args:
            external_id: Page ID, organizer ID or group URL name of the account.
            event: Payload from build_event_payload.

        Returns:
            Dict with the platform's event ``id`` and public ``url``.

        Raises:
            ProviderError: If the platform rejects the event or is unreachable.
        """
        if not self._info.supports_events:
            msg = f"{self._info.display_name} does not support events"
            raise ProviderError(msg)
        if not external_id:
            msg = f"{self._info.display_name} account has no page or group configured"
            raise ProviderError(msg)

        key = self._info.key
        if key == PROVIDER_FACEBOOK_PAGE:
            url = f"{self._info.api_base}/{external_id}/events"
            body = {**event, "access_token": self._access_token}
        elif key == PROVIDER_EVENTBRITE:
            url = f"{self._info.api_base}/events/"
            body = {"event": {**event, "organizer_id": external_id}}
        else:
            url = f"{self._info.api_base}/{external_id}/events"
            body = event

        data = await self._with_retry(f"create_event[{key}]", self._post, url, body)

        event_id = str(data.get("id", ""))
        if key == PROVIDER_FACEBOOK_PAGE:
            event_url = f"https://www.facebook.com/events/{event_id}"
        else:
            event_url = data.get("url") or data.get("link") or ""
        return {"id": event_id, "url": event_url}

    async def create_post(
        self, external_id: str | None, caption: str, media: list[dict[str, str]]
    ) -> dict[str, str]:
        """Publish a post to the account's page or profile.

        Instagram needs an image and publishes in two steps: a media
        container is created first and then published.

        Args:
            external_id: Page, Instagram user or Google location ID.
            caption: Post text.
            media: Items with ``url`` and ``type`` (image or video).

        Returns:
            Dict with the platform's post ``id`` and public ``url``.

        Raises:
            ProviderError: If the platform rejects the post or is unreachable.
        """
        if not self._info.supports_posts:
            msg = f"{self._info.display_name} does not support posts"
            raise ProviderError(msg)
        if not external_id:
            msg = f"{self._info.display_name} account has no page or profile configured"
            raise ProviderError(msg)

        key = self._info.key
        operation = f"create_post[{key}]"
        image_url = next(
            (item["url"] for item in media if item.get("type") == "image"), None
        )

        if key == PROVIDER_INSTAGRAM_BUSINESS:
            if not image_url:
                msg = "Instagram posts need an image"
                raise ProviderError(msg)
            container = await self._with_retry(
                operation,
                self._post,
                f"{self._info.api_base}/{external_id}/media",
                {"image_url": image_url, "caption": caption},
            )
            data = await self._with_retry(
                operation,
                self._post,
                f"{self._info.api_base}/{external_id}/media_publish",
                {"creation_id": container.get("id")},
            )
            post_id = str(data.get("id", ""))
            return {"id": post_id, "url": data.get("permalink") or ""}

        if key == PROVIDER_GOOGLE_BUSINESS:
            body: dict[str, Any] = {"summary": caption, "topicType": "STANDARD"}
            if image_url:
                body["media"] = [{"mediaFormat": "PHOTO", "sourceUrl": image_url}]
            data = await self._with_retry(
                operation,
                self._post,
                f"{self._info.api_base}/v4/{external_id}/localPosts",
                body,
            )
            return {
                "id": str(data.get("name", "")),
                "url": data.get("searchUrl") or "",
            }

        body = {"message": caption, "access_token": self._access_token}
        if image_url:
            body["link"] = image_url
        data = await self._with_retry(
            operation, self._post, f"{self._info.api_base}/{external_id}/feed", body
        )
        post_id = str(data.get("id", ""))
        return {"id": post_id, "url": f"https://www.facebook.com/{post_id}"}

    async def validate_token(self) -> bool:
        """Check whether the access token is accepted by the platform.

        Returns:
            True if the platform answered with a 2xx status.
        """
        params = {}
        if self._info.key == PROVIDER_GOOGLE_BUSINESS:
            params["access_token"] = self._access_token
        try:
            async with httpx.AsyncClient() as client:
                response = await client.get(
                    self._info.validation_url,
                    params=params,
                    headers={"Authorization": f"Bearer {self._access_token}"},
                    timeout=REQUEST_TIMEOUT_SECONDS,
                )
        except httpx.RequestError:
            logger.warning("Token validation request to %s failed", self._info.key)
            return False
        return response.is_success
