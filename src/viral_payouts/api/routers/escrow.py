"""Escrow locking for brands, release and refund for admins."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ...db import get_session
from ...models import User
from ...services.escrow import EscrowService, Release
from ..deps import get_current_user, require_admin, require_brand
from ..schemas import EscrowOut, LockFundsIn, RefundIn, ReleaseIn

router = APIRouter(prefix="/api/escrow", tags=["escrow"])


@router.post("/lock", response_model=EscrowOut, status_code=201)
async def lock_funds(
    body: LockFundsIn,
    user: User = Depends(require_brand),
    session: AsyncSession = Depends(get_session),
):
    return await EscrowService(session).lock_funds(user, body.campaign_id, body.amount)


@router.get("/campaign/{campaign_id}", response_model=EscrowOut)
async def get_escrow(
    campaign_id: int,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    return await EscrowService(session).get_escrow(user, campaign_id)


@router.post("/{escrow_id}/release", response_model=EscrowOut)
async def release_escrow(
    escrow_id: int,
    body: ReleaseIn,
    admin: User = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    releases = [
        Release(creator_id=item.creator_id, amount=item.amount, participation_id=item.participation_id)
        for item in body.releases
    ]
    return await EscrowService(session).release(escrow_id, releases, admin_id=admin.id)


@router.post("/{escrow_id}/refund", response_model=EscrowOut)
async def refund_escrow(
    escrow_id: int,
    body: RefundIn,
    admin: User = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    return await EscrowService(session).refund(escrow_id, admin_id=admin.id, reason=body.reason)
