"""Admin audit trail."""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from ..models import AdminAction


async def record_admin_action(
    session: AsyncSession,
    *,
    admin_id: int,
    action: str,
    target_table: str,
    target_id: int | str,
    delta: int = 0,
    reason: str | None = None,
) -> AdminAction:
    entry = AdminAction(
        admin_id=admin_id,
        action=action,
        target_table=target_table,
        target_id=str(target_id),
        delta=delta,
        reason=reason,
    )
    session.add(entry)
    await session.flush()
    return entry


__all__ = ["record_admin_action"]
