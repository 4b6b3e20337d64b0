# SPDX-FileCopyrightText: 2026 Andrew Grimberg <tykeal@bardicgrove.org>
# SPDX-License-Identifier: Apache-2.0
"""Social and event platform integration API endpoints."""

import logging
from datetime import UTC, datetime, timedelta
from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.ext.asyncio import AsyncSession

from tripfluence.api.dependencies import (
    Actor,
    Pagination,
    pagination,
    record_audit,
    require_permission,
)
from tripfluence.api.social_posts import PostResponse, post_to_response
from tripfluence.api.webhooks import URL_PATTERN
from tripfluence.database import get_db
from tripfluence.models.social_account import SOCIAL_PROVIDERS, SocialAccount
from tripfluence.models.social_post import MAX_CAPTION_LENGTH
from tripfluence.repositories.audit_repository import AuditRepository
from tripfluence.repositories.base import MAX_PAGE_SIZE
from tripfluence.repositories.listing_repository import ListingRepository
from tripfluence.repositories.social_account_repository import (
    SocialAccountRepository,
)
from tripfluence.services import audit
from tripfluence.services.account_status import (
    compute_account_status,
    format_expiry_time,
    format_time_ago,
)
from tripfluence.services.event_sync_service import (
    TEST_EVENT_TITLE,
    EventSyncError,
    EventSyncService,
)
from tripfluence.services.providers import ProviderError, get_provider
from tripfluence.services.social_post_service import (
    SocialPostError,
    SocialPostService,
)
from tripfluence.services.token_refresh import TokenRefreshError, TokenRefreshService
from tripfluence.utils.timeutils import ensure_utc, isoformat_or_none

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/integrations", tags=["Integrations"])


class ConnectRequest(BaseModel):
    """Request model for connecting a platform account."""

    provider: str = Field(description="Platform such as EVENTBRITE or MEETUP")
    account_name: str = Field(min_length=1, max_length=255, description="Label")
    external_id: str | None = Field(
        default=None, max_length=255, description="Page, organization or group ID"
    )
    access_token: str = Field(min_length=1, description="OAuth access token")
    refresh_token: str | None = Field(default=None, description="OAuth refresh token")
    expires_in: int | None = Field(
        default=None, gt=0, description="Seconds until the access token expires"
    )
    expires_at: datetime | None = Field(
        default=None, description="Access token expiry, if known as a timestamp"
    )

    @field_validator("provider")
    @classmethod
    def check_provider(cls, value: str) -> str:
        """Ensure the provider is supported."""
        value = value.upper()
        if value not in SOCIAL_PROVIDERS:
            msg = f"provider must be one of {', '.join(SOCIAL_PROVIDERS)}"
            raise ValueError(msg)
        return value


class AccountResponse(BaseModel):
    """Response model for a connected account."""

    id: int = Field(description="Account ID")
    provider: str = Field(description="Platform key")
    provider_name: str = Field(description="Platform display name")
    account_name: str = Field(description="Account label")
    external_id: str | None = Field(default=None, description="Platform-side ID")
    is_active: bool = Field(description="Whether the account is in use")
    status: str = Field(description="CONNECTED, EXPIRED, ERROR or DISCONNECTED")
    status_message: str | None = Field(default=None, description="Status detail")
    expires_at: str | None = Field(default=None, description="Token expiry")
    expires_in: str = Field(description="Human readable time until expiry")
    last_success: str = Field(description="Human readable last success")
    last_error: str = Field(description="Human readable last error")
    last_error_message: str | None = Field(default=None, description="Last error")
    has_refresh_token: bool = Field(description="Whether refresh is possible")


class AccountsResponse(BaseModel):
    """Response model for all accounts of a business."""

    accounts: list[AccountResponse] = Field(description="Connected accounts")


def account_to_response(account: SocialAccount) -> dict[str, Any]:
    """Convert account model to response dict, never exposing tokens."""
    info = compute_account_status(account)
    return {
        "id": account.id,
        "provider": account.provider,
        "provider_name": get_provider(account.provider).display_name,
        "account_name": account.account_name,
        "external_id": account.external_id,
        "is_active": account.is_active,
        "status": info.status,
        "status_message": info.message,
        "expires_at": isoformat_or_none(account.expires_at),
        "expires_in": format_expiry_time(info.expires_in_sec),
        "last_success": format_time_ago(info.last_success_at),
        "last_error": format_time_ago(info.last_error_at),
        "last_error_message": account.last_error_message,
        "has_refresh_token": account.has_refresh_token(),
    }


async def _get_account_or_404(
    db: AsyncSession, account_id: int, actor: Actor
) -> SocialAccount:
    account = await SocialAccountRepository(db).get_by_id(
        account_id, actor.business_id
    )
    if account is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Account {account_id} not found",
        )
    return account


@router.get("/accounts", response_model=AccountsResponse)
async def list_accounts(
    db: Annotated[AsyncSession, Depends(get_db)],
    actor: Annotated[Actor, Depends(require_permission("integrations.read"))],
) -> dict[str, Any]:
    """List connected accounts with their derived status."""
    accounts = await SocialAccountRepository(db).list_for_business(actor.business_id)
    return {"accounts": [account_to_response(account) for account in accounts]}


@router.post(
    "/accounts", response_model=AccountResponse, status_code=status.HTTP_201_CREATED
)
async def connect_account(
    body: ConnectRequest,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    actor: Annotated[Actor, Depends(require_permission("integrations.manage"))],
) -> dict[str, Any]:
    """Store tokens for a platform account.

    Reconnecting the same provider account replaces its tokens.

    Raises:
        HTTPException: 500 if token encryption is not configured.
    """
    repo = SocialAccountRepository(db)

    if body.expires_at is not None:
        expires_at = ensure_utc(body.expires_at)
    elif body.expires_in is not None:
        expires_at = datetime.now(UTC) + timedelta(seconds=body.expires_in)
    else:
        expires_at = None

    account = None
    if body.external_id:
        account = await repo.get_by_external_id(
            actor.business_id, body.provider, body.external_id
        )

    try:
        if account is None:
            account = SocialAccount(
                business_id=actor.business_id,
                provider=body.provider,
                account_name=body.account_name,
                external_id=body.external_id,
                is_active=True,
            )
            account.access_token = body.access_token
            account.refresh_token = body.refresh_token
            account.expires_at = expires_at
            account = await repo.create(account)
        else:
            account.account_name = body.account_name
            account.access_token = body.access_token
            if body.refresh_token:
                account.refresh_token = body.refresh_token
            account.expires_at = expires_at
            account.is_active = True
            account.last_error_at = None
            account.last_error_message = None
            account = await repo.update(account)
    except ValueError as e:
        logger.error("Cannot store tokens: %s", e)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Token encryption is not configured",
        ) from e

    await record_audit(
        db,
        request,
        actor,
        audit.SOCIAL_ACCOUNT_CONNECTED,
        "social_account",
        account.id,
        {"provider": account.provider, "account_name": account.account_name},
    )
    logger.info("Connected %s account %d", account.provider, account.id)
    return account_to_response(account)


@router.post("/accounts/{account_id}/refresh", response_model=AccountResponse)
async def refresh_account(
    account_id: int,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    actor: Annotated[Actor, Depends(require_permission("integrations.manage"))],
) -> dict[str, Any]:
    """Refresh an account's access token now.

    Raises:
        HTTPException: 400 if there is no refresh token or the provider
            rejects the refresh.
    """
    account = await _get_account_or_404(db, account_id, actor)
    try:
        account = await TokenRefreshService(db).refresh_account(account)
    except TokenRefreshError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)
        ) from e

    await record_audit(
        db,
        request,
        actor,
        audit.SOCIAL_ACCOUNT_REFRESHED,
        "social_account",
        account.id,
        {"provider": account.provider},
    )
    return account_to_response(account)


class ValidateResponse(BaseModel):
    """Response model for an account connection check."""

    valid: bool = Field(description="Whether the account has a working token")
    account: AccountResponse = Field(description="Account after the check")


@router.post("/accounts/{account_id}/validate", response_model=ValidateResponse)
async def validate_account(
    account_id: int,
    db: Annotated[AsyncSession, Depends(get_db)],
    actor: Annotated[Actor, Depends(require_permission("integrations.read"))],
) -> dict[str, Any]:
    """Check the stored token with the platform, refreshing it if rejected."""
    account = await _get_account_or_404(db, account_id, actor)
    valid = await TokenRefreshService(db).validate_and_refresh(account)
    logger.info("Validated account %d: %s", account.id, valid)
    return {"valid": valid, "account": account_to_response(account)}


class TestPostRequest(BaseModel):
    """Request model for sending a test post."""

    account_id: int = Field(description="Account to post through")
    caption: str = Field(
        default="Test post from Tripfluence",
        min_length=1,
        max_length=MAX_CAPTION_LENGTH,
        description="Post text",
    )
    media_url: str | None = Field(
        default=None, max_length=2048, pattern=URL_PATTERN, description="Image"
    )


class TestEventRequest(BaseModel):
    """Request model for sending a test event."""

    account_id: int = Field(description="Account to publish through")
    listing_id: int | None = Field(
        default=None, description="Listing to send, a sample event if omitted"
    )
    title: str = Field(
        default=TEST_EVENT_TITLE, min_length=1, max_length=200, description="Title"
    )
    start: datetime | None = Field(default=None, description="Sample event start")
    end: datetime | None = Field(default=None, description="Sample event end")


@router.post("/test-post", response_model=PostResponse)
async def send_test_post(
    body: TestPostRequest,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    actor: Annotated[Actor, Depends(require_permission("integrations.test"))],
) -> dict[str, Any]:
    """Publish a test post through one account now.

    The response carries the platform result; a rejected post comes back
    FAILED with the platform's error.

    Raises:
        HTTPException: 404 if the account is unknown, 400 if it is
            inactive or cannot take posts.
    """
    account = await _get_account_or_404(db, body.account_id, actor)
    try:
        post = await SocialPostService(db).send_test_post(
            account, body.caption, body.media_url
        )
    except SocialPostError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)
        ) from e

    await record_audit(
        db,
        request,
        actor,
        audit.SOCIAL_ACCOUNT_TEST_POST,
        "social_account",
        account.id,
        {"provider": account.provider, "post_id": post.id, "status": post.status},
    )
    return post_to_response(post)


class TestEventResponse(BaseModel):
    """Response model for a test event."""

    provider: str = Field(description="Platform the event was sent to")
    event_id: str = Field(description="Platform event ID")
    url: str = Field(description="Public event URL")


@router.post("/test-event", response_model=TestEventResponse)
async def send_test_event(
    body: TestEventRequest,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    actor: Annotated[Actor, Depends(require_permission("integrations.test"))],
) -> dict[str, Any]:
    """Create a test event through one account now.

    Raises:
        HTTPException: 404 if the account or listing is unknown, 400 if
            the account is inactive or cannot take events, 502 if the
            platform rejects the event.
    """
    account = await _get_account_or_404(db, body.account_id, actor)

    listing = None
    if body.listing_id is not None:
        listing = await ListingRepository(db).get_by_id(
            body.listing_id, actor.business_id
        )
        if listing is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Listing {body.listing_id} not found",
            )

    try:
        event = await EventSyncService(db).send_test_event(
            account, listing, body.title, body.start, body.end
        )
    except EventSyncError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)
        ) from e
    except ProviderError as e:
        logger.warning("Test event via account %d failed: %s", account.id, e)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e)
        ) from e

    await record_audit(
        db,
        request,
        actor,
        audit.SOCIAL_ACCOUNT_TEST_EVENT,
        "social_account",
        account.id,
        {
            "provider": account.provider,
            "listing_id": listing.id if listing else None,
            "event_id": event["id"],
        },
    )
    return {"provider": account.provider, "event_id": event["id"], "url": event["url"]}


@router.delete("/accounts/{account_id}", response_model=AccountResponse)
async def disconnect_account(
    account_id: int,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    actor: Annotated[Actor, Depends(require_permission("integrations.manage"))],
) -> dict[str, Any]:
    """Disconnect an account, discarding its tokens."""
    repo = SocialAccountRepository(db)
    account = await _get_account_or_404(db, account_id, actor)

    account.access_token = None
    account.refresh_token = None
    account.expires_at = None
    account.is_active = False
    account = await repo.update(account)

    await record_audit(
        db,
        request,
        actor,
        audit.SOCIAL_ACCOUNT_DISCONNECTED,
        "social_account",
        account.id,
        {"provider": account.provider},
    )
    logger.info("Disconnected %s account %d", account.provider, account.id)
    return account_to_response(account)


class IntegrationAuditResponse(BaseModel):
    """Response model for integration audit entries."""

    entries: list[dict[str, Any]] = Field(description="Audit entries")
    pagination: Pagination = Field(description="Pagination details")


@router.get("/audit", response_model=IntegrationAuditResponse)
async def list_integration_audit(
    db: Annotated[AsyncSession, Depends(get_db)],
    actor: Annotated[Actor, Depends(require_permission("integrations.read"))],
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=MAX_PAGE_SIZE)] = 20,
) -> dict[str, Any]:
    """List audit entries of integration actions, newest first."""
    entries, total = await AuditRepository(db).list_for_business(
        actor.business_id,
        action_prefix=audit.INTEGRATION_ACTION_PREFIX,
        page=page,
        limit=limit,
    )
    return {
        "entries": [
            {
                "id": entry.id,
                "action": entry.action,
                "actor_id": entry.actor_id,
                "entity_id": entry.entity_id,
                "details": entry.details or {},
                "created_at": isoformat_or_none(entry.created_at),
            }
            for entry in entries
        ],
        "pagination": pagination(page, limit, total),
    }
