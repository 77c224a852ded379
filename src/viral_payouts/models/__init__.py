"""SQLAlchemy models exports."""

from .base import Base, TimestampMixin, as_naive_utc, utcnow
from .campaign import (
    AudienceType,
    Campaign,
    CampaignMetrics,
    CampaignParticipation,
    CampaignStatus,
    CampaignType,
    ParticipationStatus,
    Platform,
    PromoCode,
    SavedCampaign,
    TrackingLink,
)
from .finance import (
    ApprovalStatus,
    Escrow,
    EscrowStatus,
    PaymentMethod,
    PaymentMethodType,
    Payout,
    PayoutStatus,
    Transaction,
    TransactionStatus,
    TransactionType,
    Wallet,
    WalletType,
)
from .oversight import (
    OPEN_FRAUD_STATUSES,
    TERMINAL_FRAUD_STATUSES,
    AdminAction,
    CampaignDailyAnalytics,
    FraudFlag,
    FraudFlagStatus,
    FraudType,
    PlatformDailyAnalytics,
)
from .tracking import ClickEvent, ConversionEvent, ViewSnapshot
from .user import (
    BrandProfile,
    CreatorProfile,
    CreatorTier,
    OneTimePassword,
    OTPType,
    User,
    UserRole,
)

__all__ = [
    "Base",
    "TimestampMixin",
    "as_naive_utc",
    "utcnow",
    "User",
    "UserRole",
    "BrandProfile",
    "CreatorProfile",
    "CreatorTier",
    "OneTimePassword",
    "OTPType",
    "Campaign",
    "CampaignType",
    "CampaignStatus",
    "CampaignParticipation",
    "ParticipationStatus",
    "CampaignMetrics",
    "AudienceType",
    "Platform",
    "PromoCode",
    "SavedCampaign",
    "TrackingLink",
    "ClickEvent",
    "ConversionEvent",
    "ViewSnapshot",
    "Wallet",
    "WalletType",
    "PaymentMethod",
    "PaymentMethodType",
    "Transaction",
    "TransactionType",
    "TransactionStatus",
    "Payout",
    "PayoutStatus",
    "ApprovalStatus",
    "Escrow",
    "EscrowStatus",
    "FraudFlag",
    "FraudFlagStatus",
    "FraudType",
    "OPEN_FRAUD_STATUSES",
    "TERMINAL_FRAUD_STATUSES",
    "CampaignDailyAnalytics",
    "PlatformDailyAnalytics",
    "AdminAction",
]
