# SPDX-FileCopyrightText: 2026 Andrew Grimberg <tykeal@bardicgrove.org>
# SPDX-License-Identifier: Apache-2.0
"""Sitemap and robots.txt endpoints for the public site."""

import logging
from typing import Annotated
from xml.sax.saxutils import escape

from fastapi import APIRouter, Depends
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from tripfluence.api.public import space_url
from tripfluence.config import get_settings
from tripfluence.database import get_db
from tripfluence.repositories.space_repository import SpaceRepository
from tripfluence.utils.ids import slugify
from tripfluence.utils.timeutils import ensure_utc

logger = logging.getLogger(__name__)

router = APIRouter(tags=["SEO"])

ROBOTS_ALLOW = ("/", "/venues", "/search")
ROBOTS_DISALLOW = ("/admin", "/api")


def _url_entry(
    loc: str, lastmod: str | None = None, priority: str | None = None
) -> str:
    parts = [f"<loc>{escape(loc)}</loc>"]
    if lastmod:
        parts.append(f"<lastmod>{lastmod}</lastmod>")
    if priority:
        parts.append(f"<priority>{priority}</priority>")
    return "<url>" + "".join(parts) + "</url>"


@router.get(
    "/sitemap.xml",
    response_class=Response,
    responses={200: {"content": {"application/xml": {}}, "description": "Sitemap"}},
)
async def get_sitemap(db: Annotated[AsyncSession, Depends(get_db)]) -> Response:
    """Sitemap of the home page, the venue index, each city and each space.

    Returns:
        XML sitemap following the sitemaps.org 0.9 schema.
    """
    base = get_settings().public_base_url.rstrip("/")
    repo = SpaceRepository(db)

    entries = [
        _url_entry(f"{base}/", priority="1.0"),
        _url_entry(f"{base}/venues", priority="0.9"),
    ]
    entries.extend(
        _url_entry(
            f"{base}/venues/{slugify(city, fallback='city')}", priority="0.8"
        )
        for city in await repo.published_cities()
    )

    spaces = await repo.list_published()
    for space in spaces:
        updated = space.updated_at or space.published_at
        entries.append(
            _url_entry(
                space_url(space),
                lastmod=ensure_utc(updated).date().isoformat() if updated else None,
                priority="0.7",
            )
        )

    logger.debug("Generated sitemap with %d URLs", len(entries))
    content = (
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">'
        + "".join(entries)
        + "</urlset>"
    )
    return Response(content=content, media_type="application/xml")


@router.get("/robots.txt", response_class=Response)
async def get_robots() -> Response:
    """Crawler rules pointing at the sitemap."""
    base = get_settings().public_base_url.rstrip("/")
    lines = ["User-agent: *"]
    lines.extend(f"Allow: {path}" for path in ROBOTS_ALLOW)
    lines.extend(f"Disallow: {path}" for path in ROBOTS_DISALLOW)
    lines.append("")
    lines.append(f"Sitemap: {base}/sitemap.xml")
    return Response(content="\n".join(lines) + "\n", media_type="text/plain")
