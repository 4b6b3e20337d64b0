# SPDX-FileCopyrightText: 2026 Andrew Grimberg <tykeal@bardicgrove.org>
# SPDX-License-Identifier: Apache-2.0
"""API key management endpoints."""

import logging
from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from tripfluence.api.dependencies import Actor, record_audit, require_permission
from tripfluence.database import get_db
from tripfluence.models.business import ROLE_STAFF, ROLES, ApiKey
from tripfluence.repositories.business_repository import BusinessRepository
from tripfluence.services import audit
from tripfluence.utils.ids import API_KEY_DISPLAY_LENGTH, create_api_key, hash_api_key
from tripfluence.utils.timeutils import isoformat_or_none

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/api-keys", tags=["API Keys"])


class ApiKeyCreateRequest(BaseModel):
    """Request model for issuing an API key."""

    name: str = Field(min_length=1, max_length=100, description="Key label")
    role: str = Field(
        default=ROLE_STAFF,
        pattern=f"^({'|'.join(ROLES)})$",
        description="Role granted to requests using the key",
    )


class ApiKeyResponse(BaseModel):
    """Response model for an API key."""

    id: int = Field(description="Key ID")
    name: str = Field(description="Key label")
    key_prefix: str = Field(description="First characters of the key")
    role: str = Field(description="Granted role")
    key: str | None = Field(
        default=None, description="Plaintext key, only returned on creation"
    )
    last_used_at: str | None = Field(default=None, description="Last use")
    revoked_at: str | None = Field(default=None, description="Revocation time")
    created_at: str | None = Field(default=None, description="Creation time")


def api_key_to_response(
    api_key: ApiKey, plaintext: str | None = None
) -> dict[str, Any]:
    """Convert API key model to response dict."""
    return {
        "id": api_key.id,
        "name": api_key.name,
        "key_prefix": api_key.key_prefix,
        "role": api_key.role,
        "key": plaintext,
        "last_used_at": isoformat_or_none(api_key.last_used_at),
        "revoked_at": isoformat_or_none(api_key.revoked_at),
        "created_at": isoformat_or_none(api_key.created_at),
    }


@router.get("", response_model=list[ApiKeyResponse])
async def list_api_keys(
    db: Annotated[AsyncSession, Depends(get_db)],
    actor: Annotated[Actor, Depends(require_permission("settings.manage"))],
) -> list[dict[str, Any]]:
    """List API keys, including revoked ones."""
    keys = await BusinessRepository(db).list_api_keys(actor.business_id)
    return [api_key_to_response(api_key) for api_key in keys]


@router.post("", response_model=ApiKeyResponse, status_code=status.HTTP_201_CREATED)
async def create_key(
    body: ApiKeyCreateRequest,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    actor: Annotated[Actor, Depends(require_permission("settings.manage"))],
) -> dict[str, Any]:
    """Issue a new API key.

    Only the hash is stored; the plaintext key is shown once.
    """
    plaintext = create_api_key()
    api_key = await BusinessRepository(db).create_api_key(
        ApiKey(
            business_id=actor.business_id,
            name=body.name,
            key_prefix=plaintext[:API_KEY_DISPLAY_LENGTH],
            key_hash=hash_api_key(plaintext),
            role=body.role,
        )
    )
    await record_audit(
        db,
        request,
        actor,
        audit.API_KEY_CREATED,
        "api_key",
        api_key.id,
        {"name": api_key.name, "role": api_key.role},
    )
    logger.info("Issued API key %d for business %d", api_key.id, actor.business_id)
    return api_key_to_response(api_key, plaintext)


@router.delete("/{key_id}", response_model=ApiKeyResponse)
async def revoke_key(
    key_id: int,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    actor: Annotated[Actor, Depends(require_permission("settings.manage"))],
) -> dict[str, Any]:
    """Revoke an API key; later requests using it are rejected."""
    repo = BusinessRepository(db)
    api_key = await repo.get_api_key(key_id, actor.business_id)
    if api_key is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"API key {key_id} not found",
        )
    if not api_key.is_revoked:
        api_key = await repo.revoke_api_key(api_key)
        await record_audit(
            db, request, actor, audit.API_KEY_REVOKED, "api_key", api_key.id
        )
    return api_key_to_response(api_key)
