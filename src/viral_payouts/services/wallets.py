"""Wallet ledger helpers."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Sequence

from sqlalchemy import Select, case, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..errors import BadRequestError, ForbiddenError, NotFoundError
from ..models import (
    Escrow,
    EscrowStatus,
    PaymentMethod,
    PaymentMethodType,
    Payout,
    PayoutStatus,
    Transaction,
    TransactionStatus,
    TransactionType,
    User,
    UserRole,
    Wallet,
    WalletType,
)
from ..security import verify_payment_signature
from .pagination import paginate
from .razorpay import RazorpayAPIError, RazorpayClient, to_rupees

logger = logging.getLogger(__name__)

FUNDING_REFERENCE = "razorpay_order"


@dataclass(slots=True)
class LedgerSnapshot:
    available: int
    pending: int
    escrow: int


@dataclass(slots=True)
class ReconcileReport:
    wallet_id: int
    stored: LedgerSnapshot
    computed: LedgerSnapshot

    @property
    def balanced(self) -> bool:
        return self.stored == self.computed


def wallet_type_for(role: UserRole | None) -> WalletType:
    return WalletType.BRAND if role == UserRole.BRAND else WalletType.CREATOR


class WalletService:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, user_id: int) -> Wallet | None:
        stmt = select(Wallet).where(Wallet.user_id == user_id)
        return (await self.session.execute(stmt)).scalar_one_or_none()

    async def get_or_create(self, user_id: int, wallet_type: WalletType) -> Wallet:
        wallet = await self.get(user_id)
        if wallet:
            return wallet
        wallet = Wallet(
            user_id=user_id,
            type=wallet_type,
            available_balance=0,
            pending_balance=0,
            escrow_balance=0,
            lifetime_earnings=0,
        )
        self.session.add(wallet)
        await self.session.flush()
        return wallet

    async def get_for_user(self, user: User) -> Wallet:
        return await self.get_or_create(user.id, wallet_type_for(user.role))

    async def require(self, user_id: int, wallet_type: WalletType) -> Wallet:
        wallet = await self.get(user_id)
        if not wallet or wallet.type != wallet_type:
            label = "Brand" if wallet_type == WalletType.BRAND else "Creator"
            raise NotFoundError(f"{label} wallet not found")
        return wallet

    async def post(
        self,
        wallet: Wallet,
        *,
        amount: int,
        type: TransactionType,
        status: TransactionStatus = TransactionStatus.COMPLETED,
        description: str | None = None,
        reference_id: str | None = None,
        reference_type: str | None = None,
        from_user_id: int | None = None,
        to_user_id: int | None = None,
        participation_id: int | None = None,
    ) -> Transaction:
        """Append a ledger entry; completed entries move the available balance."""

        entry = Transaction(
            wallet_id=wallet.id,
            amount=amount,
            type=type,
            status=status,
            description=description,
            reference_id=reference_id,
            reference_type=reference_type,
            from_user_id=from_user_id,
            to_user_id=to_user_id,
            participation_id=participation_id,
        )
        if status == TransactionStatus.COMPLETED:
            wallet.available_balance += amount
        self.session.add(entry)
        await self.session.flush()
        return entry

    async def snapshot(self, wallet_id: int) -> LedgerSnapshot:
        """Recompute balances from the ledger, payouts and escrows."""

        available_stmt: Select = select(
            func.coalesce(
                func.sum(
                    case(
                        (Transaction.status == TransactionStatus.COMPLETED, Transaction.amount),
                        else_=0,
                    )
                ),
                0,
            )
        ).where(Transaction.wallet_id == wallet_id)
        available = (await self.session.execute(available_stmt)).scalar_one()

        pending_stmt: Select = select(func.coalesce(func.sum(Payout.amount), 0)).where(
            Payout.wallet_id == wallet_id,
            Payout.status.in_((PayoutStatus.PENDING, PayoutStatus.PROCESSING)),
        )
        pending = (await self.session.execute(pending_stmt)).scalar_one()

        escrow_stmt: Select = select(
            func.coalesce(func.sum(Escrow.total_amount - Escrow.released_amount), 0)
        ).where(
            Escrow.brand_wallet_id == wallet_id,
            Escrow.status.in_((EscrowStatus.LOCKED, EscrowStatus.PARTIALLY_RELEASED)),
        )
        escrow = (await self.session.execute(escrow_stmt)).scalar_one()
        return LedgerSnapshot(
            available=int(available or 0),
            pending=int(pending or 0),
            escrow=int(escrow or 0),
        )

    async def reconcile(self, wallet: Wallet) -> ReconcileReport:
        computed = await self.snapshot(wallet.id)
        stored = LedgerSnapshot(
            available=wallet.available_balance,
            pending=wallet.pending_balance,
            escrow=wallet.escrow_balance,
        )
        report = ReconcileReport(wallet_id=wallet.id, stored=stored, computed=computed)
        if not report.balanced:
            logger.warning("Wallet %s drifted from ledger: stored=%s computed=%s", wallet.id, stored, computed)
        return report

    async def brand_summary(self, user_id: int) -> dict[str, Any]:
        wallet = await self.get_or_create(user_id, WalletType.BRAND)
        stmt = select(
            func.coalesce(func.sum(Escrow.total_amount - Escrow.released_amount), 0)
        ).where(Escrow.brand_wallet_id == wallet.id, Escrow.status == EscrowStatus.LOCKED)
        locked = (await self.session.execute(stmt)).scalar_one()
        return {
            "wallet": wallet,
            "payment_methods": await self.list_payment_methods(wallet.id),
            "total_escrow_locked": int(locked or 0),
        }

    async def find_funding(self, order_id: str) -> Transaction | None:
        stmt = select(Transaction).where(
            Transaction.type == TransactionType.CAMPAIGN_FUND,
            Transaction.reference_type == FUNDING_REFERENCE,
            Transaction.reference_id == order_id,
        )
        return (await self.session.execute(stmt)).scalars().first()

    async def credit_funding(
        self,
        wallet: Wallet,
        *,
        amount: int,
        order_id: str,
        user_id: int,
    ) -> Transaction:
        """Credit a captured top-up once per gateway order."""

        existing = await self.find_funding(order_id)
        if existing:
            logger.info("Order %s already credited as transaction %s", order_id, existing.id)
            return existing
        return await self.post(
            wallet,
            amount=amount,
            type=TransactionType.CAMPAIGN_FUND,
            description="Wallet top-up via Razorpay",
            reference_id=order_id,
            reference_type=FUNDING_REFERENCE,
            to_user_id=user_id,
        )

    async def record_brand_funding(
        self,
        user: User,
        *,
        amount: int,
        payment_id: str,
        order_id: str,
        signature: str,
        gateway: RazorpayClient,
    ) -> Wallet:
        """Credit a top-up confirmed by checkout; the amount comes from the gateway order."""

        if amount < settings.minimum_topup:
            raise BadRequestError(f"Minimum top-up amount is Rs. {settings.minimum_topup:,}")
        if not verify_payment_signature(order_id=order_id, payment_id=payment_id, signature=signature):
            raise BadRequestError("Invalid payment signature")
        try:
            order = await gateway.fetch_order(order_id)
        except RazorpayAPIError as exc:
            raise BadRequestError("Unknown payment order") from exc
        if str((order.get("notes") or {}).get("userId")) != str(user.id):
            raise ForbiddenError("Payment order belongs to another account")
        paid = to_rupees(order["amount"])
        if amount != paid:
            logger.warning("Funding for order %s claimed %s, order amount is %s", order_id, amount, paid)
            raise BadRequestError("Amount does not match the payment order")
        wallet = await self.require(user.id, WalletType.BRAND)
        await self.credit_funding(wallet, amount=paid, order_id=order_id, user_id=user.id)
        return wallet

    async def list_transactions(
        self,
        user_id: int,
        *,
        limit: int = 20,
        cursor: int | None = None,
        type: TransactionType | None = None,
    ) -> tuple[Sequence[Transaction], int | None]:
        wallet = await self.get(user_id)
        if not wallet:
            return [], None
        stmt = select(Transaction).where(Transaction.wallet_id == wallet.id)
        if type:
            stmt = stmt.where(Transaction.type == type)
        return await paginate(self.session, stmt, Transaction.id, limit=limit, cursor=cursor)

    async def list_payouts(
        self,
        user_id: int,
        *,
        limit: int = 20,
        status: PayoutStatus | None = None,
    ) -> list[Payout]:
        wallet = await self.get(user_id)
        if not wallet:
            return []
        stmt = select(Payout).where(Payout.wallet_id == wallet.id)
        if status:
            stmt = stmt.where(Payout.status == status)
        stmt = stmt.order_by(Payout.id.desc()).limit(limit)
        return list((await self.session.execute(stmt)).scalars())

    async def list_payment_methods(self, wallet_id: int) -> list[PaymentMethod]:
        stmt = select(PaymentMethod).where(PaymentMethod.wallet_id == wallet_id).order_by(PaymentMethod.id)
        return list((await self.session.execute(stmt)).scalars())

    async def _owned_payment_method(self, user_id: int, method_id: int) -> tuple[Wallet, PaymentMethod]:
        wallet = await self.get(user_id)
        if not wallet:
            raise NotFoundError("Wallet not found")
        method = await self.session.get(PaymentMethod, method_id)
        if not method or method.wallet_id != wallet.id:
            raise NotFoundError("Payment method not found")
        return wallet, method

    async def add_payment_method(
        self,
        user: User,
        *,
        type: PaymentMethodType,
        details: dict[str, str],
        is_primary: bool = False,
    ) -> PaymentMethod:
        wallet = await self.get_for_user(user)
        if is_primary:
            await self.session.execute(
                update(PaymentMethod)
                .where(PaymentMethod.wallet_id == wallet.id)
                .values(is_primary=False)
            )
        method = PaymentMethod(
            wallet_id=wallet.id,
            type=type,
            details=details,
            is_primary=is_primary,
            is_verified=False,
        )
        self.session.add(method)
        await self.session.flush()
        return method

    async def update_payment_method(
        self,
        user_id: int,
        method_id: int,
        *,
        is_primary: bool | None = None,
    ) -> PaymentMethod:
        wallet, method = await self._owned_payment_method(user_id, method_id)
        if is_primary:
            await self.session.execute(
                update(PaymentMethod)
                .where(PaymentMethod.wallet_id == wallet.id, PaymentMethod.id != method.id)
                .values(is_primary=False)
            )
        if is_primary is not None:
            method.is_primary = is_primary
        await self.session.flush()
        return method

    async def delete_payment_method(self, user_id: int, method_id: int) -> PaymentMethod:
        _, method = await self._owned_payment_method(user_id, method_id)
        stmt = select(func.count(Payout.id)).where(
            Payout.payment_method_id == method.id,
            Payout.status.in_((PayoutStatus.PENDING, PayoutStatus.PROCESSING)),
        )
        if (await self.session.execute(stmt)).scalar_one() > 0:
            raise BadRequestError("Cannot delete payment method with pending payouts")
        await self.session.delete(method)
        await self.session.flush()
        return method


__all__ = [
    "FUNDING_REFERENCE",
    "LedgerSnapshot",
    "ReconcileReport",
    "WalletService",
    "wallet_type_for",
]
