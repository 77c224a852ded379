"""Keyset pagination over integer ids."""

from __future__ import annotations

from typing import Any, Sequence

from sqlalchemy import Select
from sqlalchemy.ext.asyncio import AsyncSession


async def paginate(
    session: AsyncSession,
    stmt: Select,
    id_column: Any,
    *,
    limit: int,
    cursor: int | None = None,
    ascending: bool = False,
) -> tuple[Sequence[Any], int | None]:
    """Fetch one page of ``stmt`` and the cursor of the next one.

    Reads ``limit + 1`` rows; the extra row only signals that another page
    exists and its id becomes ``next_cursor``.
    """

    if cursor is not None:
        stmt = stmt.where(id_column >= cursor if ascending else id_column <= cursor)
    stmt = stmt.order_by(id_column.asc() if ascending else id_column.desc()).limit(limit + 1)
    rows = list((await session.execute(stmt)).scalars())
    next_cursor = None
    if len(rows) > limit:
        next_cursor = rows.pop().id
    return rows, next_cursor


__all__ = ["paginate"]
