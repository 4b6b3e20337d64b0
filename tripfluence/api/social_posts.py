# SPDX-FileCopyrightText: 2026 Andrew Grimberg <tykeal@bardicgrove.org>
# SPDX-License-Identifier: Apache-2.0
"""Social post API endpoints."""

import logging
from datetime import datetime
from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from tripfluence.api.dependencies import (
    Actor,
    Pagination,
    pagination,
    record_audit,
    require_permission,
)
from tripfluence.api.webhooks import URL_PATTERN
from tripfluence.database import get_db
from tripfluence.models.social_post import (
    MAX_CAPTION_LENGTH,
    POST_STATUSES,
    SocialPost,
)
from tripfluence.repositories.base import MAX_PAGE_SIZE
from tripfluence.repositories.social_post_repository import SocialPostRepository
from tripfluence.services import audit
from tripfluence.services.social_post_service import (
    SocialPostError,
    SocialPostService,
)
from tripfluence.utils.timeutils import isoformat_or_none

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/social/posts", tags=["Social Posts"])


class MediaItem(BaseModel):
    """An image or video attached to a post."""

    url: str = Field(max_length=2048, pattern=URL_PATTERN, description="Media URL")
    type: str = Field(pattern="^(image|video)$", description="image or video")


class CreatePostRequest(BaseModel):
    """Request model for scheduling a social post."""

    title: str | None = Field(default=None, max_length=200, description="Label")
    caption: str = Field(
        min_length=1, max_length=MAX_CAPTION_LENGTH, description="Post text"
    )
    media: list[MediaItem] = Field(default_factory=list, description="Attachments")
    targets: list[str] = Field(
        min_length=1, description="Platforms: facebook, instagram, google"
    )
    schedule_at: datetime | None = Field(
        default=None, description="Publish time, immediately if omitted"
    )


class PostResponse(BaseModel):
    """Response model for a social post."""

    id: int = Field(description="Post ID")
    title: str | None = Field(default=None, description="Label")
    caption: str = Field(description="Post text")
    media: list[dict[str, str]] = Field(description="Attachments")
    platforms: list[str] = Field(description="Target platforms")
    status: str = Field(description="SCHEDULED, PUBLISHING, PUBLISHED or FAILED")
    scheduled_at: str | None = Field(default=None, description="Publish time")
    published_at: str | None = Field(default=None, description="First success")
    results: dict[str, Any] = Field(description="Outcome per platform")
    metadata: dict[str, Any] = Field(description="Connected accounts and flags")
    created_at: str | None = Field(default=None, description="Creation time")


class PostsResponse(BaseModel):
    """Response model for a page of posts."""

    posts: list[PostResponse] = Field(description="Posts, newest first")
    pagination: Pagination = Field(description="Pagination details")


def post_to_response(post: SocialPost) -> dict[str, Any]:
    """Convert post model to response dict."""
    return {
        "id": post.id,
        "title": post.title,
        "caption": post.caption,
        "media": post.media or [],
        "platforms": post.platforms or [],
        "status": post.status,
        "scheduled_at": isoformat_or_none(post.scheduled_at),
        "published_at": isoformat_or_none(post.published_at),
        "results": post.results or {},
        "metadata": post.post_metadata or {},
        "created_at": isoformat_or_none(post.created_at),
    }


@router.get("", response_model=PostsResponse)
async def list_posts(
    db: Annotated[AsyncSession, Depends(get_db)],
    actor: Annotated[Actor, Depends(require_permission("social.read"))],
    status_filter: Annotated[str | None, Query(alias="status")] = None,
    platform: Annotated[str | None, Query(max_length=20)] = None,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=MAX_PAGE_SIZE)] = 20,
) -> dict[str, Any]:
    """List the business' social posts."""
    if status_filter is not None and status_filter not in POST_STATUSES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid status: {status_filter}",
        )

    posts, total = await SocialPostRepository(db).list_for_business(
        actor.business_id,
        status=status_filter,
        platform=platform.lower() if platform else None,
        page=page,
        limit=limit,
    )
    return {
        "posts": [post_to_response(post) for post in posts],
        "pagination": pagination(page, limit, total),
    }


@router.post("", response_model=PostResponse, status_code=status.HTTP_201_CREATED)
async def create_post(
    body: CreatePostRequest,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    actor: Annotated[Actor, Depends(require_permission("social.post"))],
) -> dict[str, Any]:
    """Schedule a post on connected social accounts.

    The publish itself happens in the background publish job.

    Raises:
        HTTPException: 400 if a platform is unsupported or none has a
            connected account.
    """
    targets = [target.lower() for target in body.targets]
    try:
        post = await SocialPostService(db).create(
            actor.business_id,
            body.caption,
            targets,
            title=body.title,
            media=[item.model_dump() for item in body.media],
            scheduled_at=body.schedule_at,
        )
    except SocialPostError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)
        ) from e

    await record_audit(
        db,
        request,
        actor,
        audit.SOCIAL_POST_CREATED,
        "social_post",
        post.id,
        {"platforms": post.platforms, "scheduled": body.schedule_at is not None},
    )
    return post_to_response(post)
