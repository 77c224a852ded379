"""Wallet, ledger, escrow and payout models."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import JSON, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampMixin


class WalletType(str, Enum):
    BRAND = "BRAND"
    CREATOR = "CREATOR"


class Wallet(TimestampMixin, Base):
    __tablename__ = "wallets"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), unique=True, index=True)
    type: Mapped[WalletType]
    available_balance: Mapped[int] = mapped_column(Integer, default=0)
    pending_balance: Mapped[int] = mapped_column(Integer, default=0)
    escrow_balance: Mapped[int] = mapped_column(Integer, default=0)
    lifetime_earnings: Mapped[int] = mapped_column(Integer, default=0)


class PaymentMethodType(str, Enum):
    BANK_ACCOUNT = "BANK_ACCOUNT"
    UPI = "UPI"
    PAYPAL = "PAYPAL"


class PaymentMethod(TimestampMixin, Base):
    __tablename__ = "payment_methods"

    id: Mapped[int] = mapped_column(primary_key=True)
    wallet_id: Mapped[int] = mapped_column(ForeignKey("wallets.id"), index=True)
    type: Mapped[PaymentMethodType]
    details: Mapped[dict] = mapped_column(JSON, default=dict)
    is_primary: Mapped[bool] = mapped_column(default=False)
    is_verified: Mapped[bool] = mapped_column(default=False)


class TransactionType(str, Enum):
    EARNING = "EARNING"
    WITHDRAWAL = "WITHDRAWAL"
    BONUS = "BONUS"
    REFUND = "REFUND"
    CAMPAIGN_FUND = "CAMPAIGN_FUND"
    ESCROW_LOCK = "ESCROW_LOCK"
    ESCROW_RELEASE = "ESCROW_RELEASE"
    PLATFORM_FEE = "PLATFORM_FEE"


class TransactionStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


class Transaction(TimestampMixin, Base):
    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(primary_key=True)
    wallet_id: Mapped[int] = mapped_column(ForeignKey("wallets.id"), index=True)
    from_user_id: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"))
    to_user_id: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"))
    participation_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("campaign_participations.id")
    )
    amount: Mapped[int] = mapped_column(Integer)
    type: Mapped[TransactionType] = mapped_column(index=True)
    status: Mapped[TransactionStatus] = mapped_column(default=TransactionStatus.COMPLETED)
    description: Mapped[Optional[str]] = mapped_column(Text)
    reference_id: Mapped[Optional[str]] = mapped_column(String(128), index=True)
    reference_type: Mapped[Optional[str]] = mapped_column(String(64))


class PayoutStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


class ApprovalStatus(str, Enum):
    PENDING_APPROVAL = "PENDING_APPROVAL"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class Payout(TimestampMixin, Base):
    __tablename__ = "payouts"

    id: Mapped[int] = mapped_column(primary_key=True)
    wallet_id: Mapped[int] = mapped_column(ForeignKey("wallets.id"), index=True)
    payment_method_id: Mapped[Optional[int]] = mapped_column(ForeignKey("payment_methods.id"))
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    amount: Mapped[int] = mapped_column(Integer)
    tds_amount: Mapped[int] = mapped_column(Integer, default=0)
    net_amount: Mapped[int] = mapped_column(Integer)
    status: Mapped[PayoutStatus] = mapped_column(default=PayoutStatus.PENDING, index=True)
    approval_status: Mapped[ApprovalStatus] = mapped_column(
        default=ApprovalStatus.PENDING_APPROVAL, index=True
    )
    approved_by: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"))
    approved_at: Mapped[Optional[datetime]] = mapped_column()
    processed_at: Mapped[Optional[datetime]] = mapped_column()
    razorpay_payout_id: Mapped[Optional[str]] = mapped_column(String(64))
    failed_reason: Mapped[Optional[str]] = mapped_column(Text)


class EscrowStatus(str, Enum):
    LOCKED = "LOCKED"
    PARTIALLY_RELEASED = "PARTIALLY_RELEASED"
    FULLY_RELEASED = "FULLY_RELEASED"
    REFUNDED = "REFUNDED"


class Escrow(TimestampMixin, Base):
    __tablename__ = "escrows"

    id: Mapped[int] = mapped_column(primary_key=True)
    campaign_id: Mapped[int] = mapped_column(ForeignKey("campaigns.id"), unique=True, index=True)
    brand_wallet_id: Mapped[int] = mapped_column(ForeignKey("wallets.id"), index=True)
    total_amount: Mapped[int] = mapped_column(Integer)
    released_amount: Mapped[int] = mapped_column(Integer, default=0)
    commission_amount: Mapped[int] = mapped_column(Integer, default=0)
    status: Mapped[EscrowStatus] = mapped_column(default=EscrowStatus.LOCKED)
    released_at: Mapped[Optional[datetime]] = mapped_column()

    @property
    def remaining_amount(self) -> int:
        return self.total_amount - self.released_amount


__all__ = [
    "ApprovalStatus",
    "Escrow",
    "EscrowStatus",
    "PaymentMethod",
    "PaymentMethodType",
    "Payout",
    "PayoutStatus",
    "Transaction",
    "TransactionStatus",
    "TransactionType",
    "Wallet",
    "WalletType",
]
