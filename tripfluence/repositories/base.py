# SPDX-FileCopyrightText: 2026 Andrew Grimberg <tykeal@bardicgrove.org>
# SPDX-License-Identifier: Apache-2.0
"""Shared repository helpers."""

from collections.abc import Sequence
from typing import Any

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


class RepositoryError(Exception):
    """Exception raised when a repository cannot complete an operation."""

    pass


async def paginate(
    session: AsyncSession,
    query: Select[Any],
    page: int = 1,
    limit: int = DEFAULT_PAGE_SIZE,
) -> tuple[Sequence[Any], int]:
    """Run a query for one page of results.

    Args:
        session: Async SQLAlchemy session.
        query: Select statement, already filtered and ordered.
        page: 1-based page number.
        limit: Page size.

    Returns:
        Tuple of (rows on the page, total matching rows).
    """
    count_query = select(func.count()).select_from(query.order_by(None).subquery())
    total = (await session.execute(count_query)).scalar_one()

    result = await session.execute(query.offset((page - 1) * limit).limit(limit))
    return result.scalars().all(), total
