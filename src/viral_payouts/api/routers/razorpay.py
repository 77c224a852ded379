"""Razorpay order creation and webhook handling."""

from __future__ import annotations

import json
import logging
from typing import Any

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ...config import settings
from ...db import get_session
from ...errors import BadRequestError
from ...models import User, WalletType
from ...security import verify_webhook_signature
from ...services.payouts import PayoutService
from ...services.razorpay import RazorpayAPIError, RazorpayClient, to_rupees
from ...services.wallets import WalletService
from ..deps import get_gateway, require_brand
from ..schemas import OrderIn, OrderOut

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/razorpay", tags=["razorpay"])


@router.post("/order", response_model=OrderOut)
async def create_order(
    body: OrderIn,
    user: User = Depends(require_brand),
    session: AsyncSession = Depends(get_session),
    gateway: RazorpayClient = Depends(get_gateway),
):
    if body.amount < settings.minimum_topup:
        raise BadRequestError(f"Minimum amount is Rs. {settings.minimum_topup:,}")
    wallet = await WalletService(session).get_or_create(user.id, WalletType.BRAND)
    try:
        order = await gateway.create_order(
            amount=body.amount,
            receipt=f"wallet_{wallet.id}_{user.id}",
            notes={"userId": str(user.id), "walletId": str(wallet.id), "purpose": "wallet_topup"},
        )
    except RazorpayAPIError:
        return JSONResponse({"error": "Failed to create order"}, status_code=500)
    return OrderOut(
        orderId=order["id"],
        amount=order["amount"],
        currency=order["currency"],
        keyId=gateway.key_id,
    )


async def _payment_captured(
    session: AsyncSession,
    gateway: RazorpayClient,
    payment: dict[str, Any],
) -> None:
    order_id = payment.get("order_id")
    if not order_id:
        logger.warning("Captured payment %s has no order", payment.get("id"))
        return
    notes = payment.get("notes") or {}
    if not notes.get("userId"):
        notes = (await gateway.fetch_order(order_id)).get("notes") or {}
    if not notes.get("userId"):
        logger.warning("Order %s carries no user, payment %s ignored", order_id, payment.get("id"))
        return

    user_id = int(notes["userId"])
    wallets = WalletService(session)
    wallet = await wallets.get(user_id)
    if wallet is None or (notes.get("walletId") and str(wallet.id) != str(notes["walletId"])):
        logger.warning("Wallet for order %s not found", order_id)
        return
    await wallets.credit_funding(
        wallet,
        amount=to_rupees(payment["amount"]),
        order_id=order_id,
        user_id=user_id,
    )
    logger.info("Wallet %s funded by order %s", wallet.id, order_id)


async def _dispatch(session: AsyncSession, gateway: RazorpayClient, event: dict[str, Any]) -> None:
    name = event.get("event")
    entities = event.get("payload") or {}
    if name == "payment.captured":
        await _payment_captured(session, gateway, entities["payment"]["entity"])
    elif name == "payout.processed":
        payout = entities["payout"]["entity"]
        await PayoutService(session, gateway).mark_processed(payout.get("reference_id"), payout.get("id"))
    elif name == "payout.failed":
        payout = entities["payout"]["entity"]
        reason = payout.get("failure_reason") or (payout.get("status_details") or {}).get("description")
        await PayoutService(session, gateway).mark_failed(payout.get("reference_id"), payout.get("id"), reason)
    else:
        logger.info("Unhandled Razorpay event %s", name)


@router.post("/webhook")
async def webhook(
    request: Request,
    session: AsyncSession = Depends(get_session),
    gateway: RazorpayClient = Depends(get_gateway),
):
    body = await request.body()
    if not verify_webhook_signature(body, request.headers.get("x-razorpay-signature")):
        logger.warning("Rejected Razorpay webhook with a bad signature")
        return JSONResponse({"error": "Invalid signature"}, status_code=400)
    try:
        await _dispatch(session, gateway, json.loads(body))
    except Exception:
        await session.rollback()
        logger.exception("Razorpay webhook processing failed")
        return JSONResponse({"error": "Webhook processing failed"}, status_code=500)
    return {"status": "ok"}
