# SPDX-FileCopyrightText: 2026 Andrew Grimberg <tykeal@bardicgrove.org>
# SPDX-License-Identifier: Apache-2.0
"""Shared FastAPI dependencies: acting identity, permissions and audit."""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Annotated, Any

from fastapi import Depends, HTTPException, Request, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from tripfluence.database import get_db
from tripfluence.models.audit_log import ACTOR_API, ACTOR_USER
from tripfluence.repositories.business_repository import BusinessRepository
from tripfluence.services.audit import log_action
from tripfluence.services.permissions import has_permission
from tripfluence.utils.ids import hash_api_key

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Actor:
    """Identity acting on a business for the current request."""

    actor_id: str
    actor_type: str
    business_id: int
    role: str


class Pagination(BaseModel):
    """Pagination block of list responses."""

    page: int = Field(description="Current page, starting at 1")
    limit: int = Field(description="Page size")
    total: int = Field(description="Total matching items")
    pages: int = Field(description="Total number of pages")


def pagination(page: int, limit: int, total: int) -> dict[str, int]:
    """Build the pagination block for a list response."""
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "pages": (total + limit - 1) // limit if limit else 0,
    }


async def get_actor(
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> Actor:
    """Resolve the acting user or API key and its role.

    Args:
        request: Current HTTP request, authenticated by the middleware.
        db: Database session.

    Returns:
        The resolved Actor.

    Raises:
        HTTPException: 401 if the API key is unknown or revoked, 403 if the
            user holds no role in the business.
    """
    repo = BusinessRepository(db)

    raw_key = getattr(request.state, "api_key", None)
    if raw_key:
        api_key = await repo.get_api_key_by_hash(hash_api_key(raw_key))
        if api_key is None:
            logger.warning("Rejected invalid API key for %s", request.url.path)
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid API key",
            )
        await repo.touch_api_key(api_key)
        return Actor(
            actor_id=str(api_key.id),
            actor_type=ACTOR_API,
            business_id=api_key.business_id,
            role=api_key.role,
        )

    user_id = getattr(request.state, "user_id", None)
    business_id = getattr(request.state, "business_id", None)
    if not user_id or business_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
        )

    role = await repo.get_role(user_id, business_id)
    if role is None:
        logger.warning("User %s has no role in business %d", user_id, business_id)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not a member of this business",
        )

    return Actor(
        actor_id=user_id,
        actor_type=ACTOR_USER,
        business_id=business_id,
        role=role,
    )


def require_permission(permission: str) -> Callable[..., Awaitable[Actor]]:
    """Build a dependency that requires the actor's role to grant a permission.

    Args:
        permission: Permission name such as ``spaces.publish``.

    Returns:
        Dependency resolving to the Actor.
    """

    async def dependency(actor: Annotated[Actor, Depends(get_actor)]) -> Actor:
        if not has_permission(actor.role, permission):
            logger.info(
                "Permission %s denied for %s with role %s",
                permission,
                actor.actor_id,
                actor.role,
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return actor

    return dependency


async def record_audit(
    db: AsyncSession,
    request: Request,
    actor: Actor,
    action: str,
    entity_type: str,
    entity_id: int | str | None = None,
    details: dict[str, Any] | None = None,
) -> None:
    """Write an audit entry for an action taken through the API."""
    await log_action(
        db,
        business_id=actor.business_id,
        actor_id=actor.actor_id,
        actor_type=actor.actor_type,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        details=details,
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )


