# SPDX-FileCopyrightText: 2026 Andrew Grimberg <tykeal@bardicgrove.org>
# SPDX-License-Identifier: Apache-2.0
"""Audit log API endpoint."""

from datetime import datetime
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from tripfluence.api.dependencies import (
    Actor,
    Pagination,
    pagination,
    require_permission,
)
from tripfluence.database import get_db
from tripfluence.models.audit_log import AuditLog
from tripfluence.repositories.audit_repository import AuditRepository
from tripfluence.repositories.base import MAX_PAGE_SIZE
from tripfluence.utils.timeutils import ensure_utc_or_none, isoformat_or_none

router = APIRouter(prefix="/api/audit", tags=["Audit"])


class AuditEntryResponse(BaseModel):
    """Response model for an audit entry."""

    id: int = Field(description="Entry ID")
    actor_id: str = Field(description="User ID or API key ID")
    actor_type: str = Field(description="user, api or system")
    action: str = Field(description="Action name")
    entity_type: str = Field(description="Affected entity type")
    entity_id: str | None = Field(default=None, description="Affected entity ID")
    details: dict[str, Any] = Field(description="Action details")
    ip_address: str | None = Field(default=None, description="Client address")
    user_agent: str | None = Field(default=None, description="Client user agent")
    created_at: str | None = Field(default=None, description="When it happened")


class AuditLogResponse(BaseModel):
    """Response model for a page of audit entries."""

    entries: list[AuditEntryResponse] = Field(description="Entries on this page")
    pagination: Pagination = Field(description="Pagination details")


def audit_entry_to_response(entry: AuditLog) -> dict[str, Any]:
    """Convert audit entry to response dict."""
    return {
        "id": entry.id,
        "actor_id": entry.actor_id,
        "actor_type": entry.actor_type,
        "action": entry.action,
        "entity_type": entry.entity_type,
        "entity_id": entry.entity_id,
        "details": entry.details or {},
        "ip_address": entry.ip_address,
        "user_agent": entry.user_agent,
        "created_at": isoformat_or_none(entry.created_at),
    }


@router.get("", response_model=AuditLogResponse)
async def list_audit_log(
    db: Annotated[AsyncSession, Depends(get_db)],
    actor: Annotated[Actor, Depends(require_permission("audit.read"))],
    action: Annotated[str | None, Query(max_length=100)] = None,
    entity_type: Annotated[str | None, Query(max_length=50)] = None,
    actor_id: Annotated[str | None, Query(max_length=100)] = None,
    since: Annotated[datetime | None, Query(alias="from")] = None,
    until: Annotated[datetime | None, Query(alias="to")] = None,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=MAX_PAGE_SIZE)] = 50,
) -> dict[str, Any]:
    """List audit entries, newest first.

    An action ending in ``.`` matches every action in that namespace.
    """
    prefix = None
    if action and action.endswith("."):
        prefix, action = action, None

    entries, total = await AuditRepository(db).list_for_business(
        actor.business_id,
        action=action,
        action_prefix=prefix,
        entity_type=entity_type,
        actor_id=actor_id,
        since=ensure_utc_or_none(since),
        until=ensure_utc_or_none(until),
        page=page,
        limit=limit,
    )
    return {
        "entries": [audit_entry_to_response(entry) for entry in entries],
        "pagination": pagination(page, limit, total),
    }
