"""Wallets, ledger history, withdrawals and payment methods."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ...db import get_session
from ...models import PayoutStatus, TransactionType, User, WalletType
from ...services.payouts import PayoutService
from ...services.razorpay import RazorpayClient
from ...services.wallets import WalletService
from ..deps import get_current_user, get_gateway, require_brand, require_creator
from ..schemas import (
    BrandWalletOut,
    FundingIn,
    Page,
    PaymentMethodIn,
    PaymentMethodOut,
    PaymentMethodUpdateIn,
    PayoutOut,
    ReconcileOut,
    TransactionOut,
    WalletOut,
    WithdrawIn,
)

router = APIRouter(prefix="/api/wallet", tags=["wallet"])


@router.get("", response_model=WalletOut)
async def get_wallet(user: User = Depends(get_current_user), session: AsyncSession = Depends(get_session)):
    return await WalletService(session).get_for_user(user)


@router.get("/brand", response_model=BrandWalletOut)
async def get_brand_wallet(user: User = Depends(require_brand), session: AsyncSession = Depends(get_session)):
    summary = await WalletService(session).brand_summary(user.id)
    return BrandWalletOut.model_validate(summary, from_attributes=True)


@router.get("/creator", response_model=WalletOut)
async def get_creator_wallet(user: User = Depends(require_creator), session: AsyncSession = Depends(get_session)):
    return await WalletService(session).get_or_create(user.id, WalletType.CREATOR)


@router.post("/brand/funding", response_model=WalletOut)
async def record_brand_wallet_funding(
    body: FundingIn,
    user: User = Depends(require_brand),
    session: AsyncSession = Depends(get_session),
    gateway: RazorpayClient = Depends(get_gateway),
):
    return await WalletService(session).record_brand_funding(
        user,
        amount=body.amount,
        payment_id=body.razorpay_payment_id,
        order_id=body.razorpay_order_id,
        signature=body.razorpay_signature,
        gateway=gateway,
    )


@router.get("/transactions", response_model=Page[TransactionOut])
async def get_transactions(
    limit: int = Query(default=20, ge=1, le=100),
    cursor: Optional[int] = None,
    type: Optional[TransactionType] = None,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    items, next_cursor = await WalletService(session).list_transactions(
        user.id, limit=limit, cursor=cursor, type=type
    )
    return Page[TransactionOut](items=items, next_cursor=next_cursor)


@router.get("/payouts", response_model=list[PayoutOut])
async def get_payouts(
    limit: int = Query(default=20, ge=1, le=100),
    status: Optional[PayoutStatus] = None,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    return await WalletService(session).list_payouts(user.id, limit=limit, status=status)


@router.post("/withdraw", response_model=PayoutOut, status_code=201)
async def request_withdrawal(
    body: WithdrawIn,
    user: User = Depends(require_creator),
    session: AsyncSession = Depends(get_session),
):
    return await PayoutService(session).request_withdrawal(
        user, amount=body.amount, payment_method_id=body.payment_method_id
    )


@router.get("/payment-methods", response_model=list[PaymentMethodOut])
async def list_payment_methods(user: User = Depends(get_current_user), session: AsyncSession = Depends(get_session)):
    service = WalletService(session)
    wallet = await service.get_for_user(user)
    return await service.list_payment_methods(wallet.id)


@router.post("/payment-methods", response_model=PaymentMethodOut, status_code=201)
async def add_payment_method(
    body: PaymentMethodIn,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    return await WalletService(session).add_payment_method(
        user, type=body.type, details=body.details, is_primary=body.is_primary
    )


@router.patch("/payment-methods/{method_id}", response_model=PaymentMethodOut)
async def update_payment_method(
    method_id: int,
    body: PaymentMethodUpdateIn,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    return await WalletService(session).update_payment_method(user.id, method_id, is_primary=body.is_primary)


@router.delete("/payment-methods/{method_id}")
async def delete_payment_method(
    method_id: int,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> dict[str, bool]:
    await WalletService(session).delete_payment_method(user.id, method_id)
    return {"success": True}


@router.get("/reconcile", response_model=ReconcileOut)
async def reconcile_wallet(user: User = Depends(get_current_user), session: AsyncSession = Depends(get_session)):
    service = WalletService(session)
    report = await service.reconcile(await service.get_for_user(user))
    return ReconcileOut(
        wallet_id=report.wallet_id,
        balanced=report.balanced,
        stored=report.stored,
        computed=report.computed,
    )
