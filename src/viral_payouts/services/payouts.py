"""Payout workflow services."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..errors import BadRequestError, NotFoundError
from ..models import (
    ApprovalStatus,
    PaymentMethod,
    Payout,
    PayoutStatus,
    TransactionType,
    User,
    Wallet,
    WalletType,
    utcnow,
)
from .audit import record_admin_action
from .pagination import paginate
from .razorpay import RazorpayAPIError, RazorpayClient, get_razorpay_client
from .wallets import WalletService

logger = logging.getLogger(__name__)

OPEN_PAYOUT_STATUSES = (PayoutStatus.PENDING, PayoutStatus.PROCESSING)


@dataclass(slots=True)
class WithdrawalQuote:
    amount: int
    tds_amount: int
    net_amount: int


def quote_withdrawal(amount: int) -> WithdrawalQuote:
    """TDS is withheld on withdrawals above the threshold."""

    tds = int(round(amount * settings.tds_rate)) if amount > settings.tds_threshold else 0
    return WithdrawalQuote(amount=amount, tds_amount=tds, net_amount=amount - tds)


class PayoutService:
    def __init__(self, session: AsyncSession, gateway: RazorpayClient | None = None) -> None:
        self.session = session
        self.wallets = WalletService(session)
        self._gateway = gateway

    @property
    def gateway(self) -> RazorpayClient:
        if self._gateway is None:
            self._gateway = get_razorpay_client()
        return self._gateway

    async def _get(self, payout_id: int) -> Payout:
        payout = await self.session.get(Payout, payout_id)
        if not payout:
            raise NotFoundError("Payout not found")
        return payout

    async def _wallet(self, payout: Payout) -> Wallet:
        wallet = await self.session.get(Wallet, payout.wallet_id)
        if not wallet:
            raise NotFoundError("Wallet not found")
        return wallet

    async def request_withdrawal(self, user: User, *, amount: int, payment_method_id: int) -> Payout:
        if amount < settings.minimum_withdrawal:
            raise BadRequestError(f"Minimum withdrawal is Rs. {settings.minimum_withdrawal}")
        wallet = await self.wallets.require(user.id, WalletType.CREATOR)
        if wallet.available_balance < amount:
            raise BadRequestError("Insufficient balance")
        method = await self.session.get(PaymentMethod, payment_method_id)
        if not method or method.wallet_id != wallet.id:
            raise NotFoundError("Payment method not found")

        quote = quote_withdrawal(amount)
        payout = Payout(
            wallet_id=wallet.id,
            payment_method_id=method.id,
            user_id=user.id,
            amount=quote.amount,
            tds_amount=quote.tds_amount,
            net_amount=quote.net_amount,
            status=PayoutStatus.PENDING,
            approval_status=ApprovalStatus.PENDING_APPROVAL,
        )
        self.session.add(payout)
        await self.session.flush()
        wallet.pending_balance += amount
        await self.wallets.post(
            wallet,
            amount=-amount,
            type=TransactionType.WITHDRAWAL,
            description=f"Withdrawal request to {method.type.value}",
            reference_id=str(payout.id),
            reference_type="payout",
            from_user_id=user.id,
        )
        logger.info("Payout %s requested by user %s: %s", payout.id, user.id, amount)
        return payout

    async def _refund(self, payout: Payout, *, description: str, reference_type: str, release_pending: bool) -> None:
        wallet = await self._wallet(payout)
        if release_pending:
            wallet.pending_balance -= payout.amount
        await self.wallets.post(
            wallet,
            amount=payout.amount,
            type=TransactionType.REFUND,
            description=description,
            reference_id=str(payout.id),
            reference_type=reference_type,
            to_user_id=payout.user_id,
        )

    async def _claim_pending_approval(self, payout_id: int, **values) -> Payout:
        """Move a payout out of PENDING_APPROVAL exactly once."""

        result = await self.session.execute(
            update(Payout)
            .where(Payout.id == payout_id, Payout.approval_status == ApprovalStatus.PENDING_APPROVAL)
            .values(**values)
        )
        payout = await self._get(payout_id)
        if result.rowcount == 0:
            raise BadRequestError("Payout already processed")
        return payout

    async def approve(self, payout_id: int, *, admin_id: int) -> Payout:
        payout = await self._claim_pending_approval(
            payout_id,
            approval_status=ApprovalStatus.APPROVED,
            approved_by=admin_id,
            approved_at=utcnow(),
        )
        await record_admin_action(
            self.session, admin_id=admin_id, action="approve_payout",
            target_table="payouts", target_id=payout.id, delta=payout.amount,
        )
        return payout

    async def batch_approve(self, payout_ids: Sequence[int], *, admin_id: int) -> int:
        if not payout_ids:
            return 0
        result = await self.session.execute(
            update(Payout)
            .where(
                Payout.id.in_(list(payout_ids)),
                Payout.approval_status == ApprovalStatus.PENDING_APPROVAL,
            )
            .values(
                approval_status=ApprovalStatus.APPROVED,
                approved_by=admin_id,
                approved_at=utcnow(),
            )
        )
        approved = result.rowcount or 0
        await record_admin_action(
            self.session, admin_id=admin_id, action="batch_approve_payouts",
            target_table="payouts", target_id=",".join(str(i) for i in payout_ids)[:64],
            delta=approved,
        )
        return approved

    async def reject(self, payout_id: int, *, admin_id: int, reason: str) -> Payout:
        payout = await self._claim_pending_approval(
            payout_id,
            approval_status=ApprovalStatus.REJECTED,
            status=PayoutStatus.CANCELLED,
            failed_reason=reason,
        )
        await self._refund(
            payout,
            description=f"Payout rejected: {reason}",
            reference_type="payout_rejection",
            release_pending=True,
        )
        await record_admin_action(
            self.session, admin_id=admin_id, action="reject_payout",
            target_table="payouts", target_id=payout.id, delta=payout.amount, reason=reason,
        )
        return payout

    async def reverse(self, payout_id: int, *, admin_id: int, reason: str) -> Payout:
        payout = await self._get(payout_id)
        if payout.status != PayoutStatus.COMPLETED:
            raise BadRequestError("Can only reverse completed payouts")
        payout.status = PayoutStatus.FAILED
        payout.failed_reason = f"Reversed: {reason}"
        await self._refund(
            payout,
            description=f"Payout reversal: {reason}",
            reference_type="payout_reversal",
            release_pending=False,
        )
        await record_admin_action(
            self.session, admin_id=admin_id, action="reverse_payout",
            target_table="payouts", target_id=payout.id, delta=payout.amount, reason=reason,
        )
        return payout

    async def list_pending_approval(
        self, *, limit: int = 50, cursor: int | None = None
    ) -> tuple[Sequence[Payout], int | None]:
        stmt = select(Payout).where(Payout.approval_status == ApprovalStatus.PENDING_APPROVAL)
        return await paginate(self.session, stmt, Payout.id, limit=limit, cursor=cursor, ascending=True)

    async def count_pending_approval(self) -> int:
        stmt = select(func.count(Payout.id)).where(
            Payout.approval_status == ApprovalStatus.PENDING_APPROVAL
        )
        return (await self.session.execute(stmt)).scalar_one()

    async def _find_by_reference(self, reference_id: str | None) -> Payout | None:
        if not reference_id:
            return None
        try:
            payout_id = int(reference_id)
        except (TypeError, ValueError):
            logger.warning("Ignoring payout reference %r", reference_id)
            return None
        return await self.session.get(Payout, payout_id)

    async def _complete(self, payout: Payout, gateway_payout_id: str | None) -> None:
        wallet = await self._wallet(payout)
        wallet.pending_balance -= payout.amount
        payout.status = PayoutStatus.COMPLETED
        payout.processed_at = utcnow()
        if gateway_payout_id:
            payout.razorpay_payout_id = gateway_payout_id
        await self.session.flush()

    async def _fail(self, payout: Payout, reason: str, gateway_payout_id: str | None = None) -> None:
        payout.status = PayoutStatus.FAILED
        payout.failed_reason = reason
        if gateway_payout_id:
            payout.razorpay_payout_id = gateway_payout_id
        await self._refund(
            payout,
            description=f"Payout failed: {reason}",
            reference_type="payout_failure",
            release_pending=True,
        )

    async def mark_processed(self, reference_id: str | None, gateway_payout_id: str | None) -> Payout | None:
        payout = await self._find_by_reference(reference_id)
        if not payout:
            return None
        if payout.status not in OPEN_PAYOUT_STATUSES or payout.approval_status != ApprovalStatus.APPROVED:
            logger.info("Payout %s already settled as %s", payout.id, payout.status.value)
            return payout
        await self._complete(payout, gateway_payout_id)
        return payout

    async def mark_failed(
        self,
        reference_id: str | None,
        gateway_payout_id: str | None,
        reason: str | None,
    ) -> Payout | None:
        payout = await self._find_by_reference(reference_id)
        if not payout:
            return None
        if payout.status not in OPEN_PAYOUT_STATUSES or payout.approval_status != ApprovalStatus.APPROVED:
            logger.info("Payout %s already settled as %s", payout.id, payout.status.value)
            return payout
        await self._fail(payout, reason or "Payout failed", gateway_payout_id)
        return payout

    async def executable_ids(self, *, limit: int | None = None) -> list[int]:
        stmt = (
            select(Payout.id)
            .where(
                Payout.approval_status == ApprovalStatus.APPROVED,
                Payout.status == PayoutStatus.PENDING,
            )
            .order_by(Payout.id)
            .limit(limit or settings.payout_batch_size)
        )
        return list((await self.session.execute(stmt)).scalars())

    async def execute(self, payout_id: int) -> Payout:
        """Send one approved payout to the gateway."""

        payout = await self._get(payout_id)
        if payout.approval_status != ApprovalStatus.APPROVED or payout.status != PayoutStatus.PENDING:
            return payout
        payout.status = PayoutStatus.PROCESSING
        await self.session.flush()

        method = (
            await self.session.get(PaymentMethod, payout.payment_method_id)
            if payout.payment_method_id
            else None
        )
        fund_account_id = (method.details or {}).get("fund_account_id") if method else None
        if not fund_account_id:
            logger.error("No payment method configured for payout %s", payout.id)
            await self._fail(payout, "No payment method configured")
            return payout

        try:
            response = await self.gateway.create_payout(
                fund_account_id=fund_account_id,
                amount=payout.net_amount,
                reference_id=str(payout.id),
                narration=f"Payout {payout.id}",
            )
        except RazorpayAPIError as exc:
            logger.error("Gateway rejected payout %s: %s", payout.id, exc)
            await self._fail(payout, str(exc) or "Gateway error")
            return payout

        payout.razorpay_payout_id = response.get("id")
        if response.get("status") == "processed":
            await self._complete(payout, response.get("id"))
        await self.session.flush()
        logger.info("Payout %s sent: %s (%s)", payout.id, payout.net_amount, response.get("status"))
        return payout


__all__ = [
    "OPEN_PAYOUT_STATUSES",
    "PayoutService",
    "WithdrawalQuote",
    "quote_withdrawal",
]
