"""Request and response models for the JSON API."""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, EmailStr, Field, HttpUrl, field_validator

from ..models import (
    ApprovalStatus,
    CampaignStatus,
    CampaignType,
    CreatorTier,
    EscrowStatus,
    FraudFlagStatus,
    FraudType,
    OTPType,
    ParticipationStatus,
    PaymentMethodType,
    PayoutStatus,
    Platform,
    TransactionStatus,
    TransactionType,
    UserRole,
    WalletType,
    as_naive_utc,
)

T = TypeVar("T")


class ORMModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class Page(BaseModel, Generic[T]):
    items: list[T]
    next_cursor: Optional[int] = None


# Auth


class OTPSendIn(BaseModel):
    identifier: str = Field(min_length=3, max_length=255)
    type: OTPType


class OTPVerifyIn(OTPSendIn):
    code: str = Field(min_length=4, max_length=8)


class EmailRegisterIn(BaseModel):
    email: EmailStr
    password: str = Field(min_length=8, max_length=128)
    name: str = Field(min_length=2, max_length=128)
    otp_id: int


class PhoneRegisterIn(BaseModel):
    phone: str = Field(pattern=r"^\d{10}$")
    country_code: str = Field(default="+91", max_length=4)
    name: str = Field(min_length=2, max_length=128)
    otp_id: int


class LoginIn(BaseModel):
    email: EmailStr
    password: str


class OTPLoginIn(BaseModel):
    identifier: str
    code: str


class RoleIn(BaseModel):
    role: UserRole


class OnboardingIn(BaseModel):
    name: str = Field(min_length=2, max_length=128)
    username: str = Field(min_length=3, max_length=30, pattern=r"^[A-Za-z0-9_]+$")
    role: UserRole
    company_name: Optional[str] = None
    industry: Optional[str] = None
    website: Optional[HttpUrl] = None
    bio: Optional[str] = Field(default=None, max_length=500)
    instagram_handle: Optional[str] = None
    youtube_handle: Optional[str] = None


class UserOut(ORMModel):
    id: int
    email: Optional[str] = None
    phone: Optional[str] = None
    name: str
    username: Optional[str] = None
    image: Optional[str] = None
    role: Optional[UserRole] = None
    is_admin: bool
    is_onboarded: bool
    is_active: bool
    created_at: datetime


class BrandProfileOut(ORMModel):
    id: int
    company_name: Optional[str] = None
    industry: Optional[str] = None
    website: Optional[str] = None
    company_logo: Optional[str] = None
    is_verified: bool
    total_campaigns: int


class CreatorProfileOut(ORMModel):
    id: int
    display_name: Optional[str] = None
    bio: Optional[str] = None
    instagram_handle: Optional[str] = None
    instagram_followers: int
    youtube_handle: Optional[str] = None
    youtube_subscribers: int
    tier: CreatorTier
    total_earnings: int
    total_campaigns: int
    is_verified: bool


class WalletOut(ORMModel):
    id: int
    type: WalletType
    available_balance: int
    pending_balance: int
    escrow_balance: int
    lifetime_earnings: int


class CurrentUserOut(BaseModel):
    user: UserOut
    brand_profile: Optional[BrandProfileOut] = None
    creator_profile: Optional[CreatorProfileOut] = None
    wallet: Optional[WalletOut] = None


class OTPOut(BaseModel):
    otp_id: int
    expires_at: datetime


# Campaigns


class CampaignBase(BaseModel):
    description: Optional[str] = None
    cover_image: Optional[str] = None
    product_name: Optional[str] = None
    campaign_brief: Optional[str] = None
    content_guidelines: Optional[str] = None
    assets_link: Optional[str] = None
    rules: Optional[str] = None
    target_platforms: list[Platform] = Field(default_factory=list)
    target_audience: list[str] = Field(default_factory=list)
    target_categories: list[str] = Field(default_factory=list)
    payout_per_1k_views: Optional[int] = Field(default=None, ge=0)
    oauth_required: bool = False
    payout_per_click: Optional[int] = Field(default=None, ge=0)
    landing_page_url: Optional[str] = None
    payout_per_sale: Optional[int] = Field(default=None, ge=0)
    promo_code_format: Optional[str] = None
    max_payout_per_creator: Optional[int] = Field(default=None, ge=0)


class CampaignCreateIn(CampaignBase):
    name: str = Field(min_length=3, max_length=255)
    type: CampaignType
    total_budget: int = Field(gt=0)
    start_date: datetime
    end_date: datetime
    duration: Optional[int] = Field(default=None, gt=0)

    @field_validator("start_date", "end_date")
    @classmethod
    def _utc(cls, value: datetime) -> datetime:
        return as_naive_utc(value)


class CampaignUpdateIn(BaseModel):
    name: Optional[str] = Field(default=None, min_length=3, max_length=255)
    description: Optional[str] = None
    cover_image: Optional[str] = None
    product_name: Optional[str] = None
    campaign_brief: Optional[str] = None
    content_guidelines: Optional[str] = None
    assets_link: Optional[str] = None
    rules: Optional[str] = None
    target_platforms: Optional[list[Platform]] = None
    target_audience: Optional[list[str]] = None
    target_categories: Optional[list[str]] = None
    total_budget: Optional[int] = Field(default=None, gt=0)
    payout_per_1k_views: Optional[int] = Field(default=None, ge=0)
    payout_per_click: Optional[int] = Field(default=None, ge=0)
    landing_page_url: Optional[str] = None
    payout_per_sale: Optional[int] = Field(default=None, ge=0)
    promo_code_format: Optional[str] = None
    max_payout_per_creator: Optional[int] = Field(default=None, ge=0)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    duration: Optional[int] = Field(default=None, gt=0)

    @field_validator("start_date", "end_date")
    @classmethod
    def _utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_naive_utc(value) if value else value


class CampaignOut(ORMModel):
    id: int
    brand_id: int
    slug: str
    name: str
    type: CampaignType
    status: CampaignStatus
    description: Optional[str] = None
    cover_image: Optional[str] = None
    product_name: Optional[str] = None
    campaign_brief: Optional[str] = None
    content_guidelines: Optional[str] = None
    assets_link: Optional[str] = None
    rules: Optional[str] = None
    target_platforms: list[str]
    target_audience: list[str]
    target_categories: list[str]
    start_date: datetime
    end_date: datetime
    duration: int
    total_budget: int
    spent_budget: int
    platform_commission_rate: float
    payout_per_1k_views: Optional[int] = None
    payout_per_click: Optional[int] = None
    landing_page_url: Optional[str] = None
    payout_per_sale: Optional[int] = None
    promo_code_format: Optional[str] = None
    max_payout_per_creator: Optional[int] = None
    total_views: int
    total_clicks: int
    total_conversions: int
    total_participants: int
    published_at: Optional[datetime] = None
    created_at: datetime


class EscrowOut(ORMModel):
    id: int
    campaign_id: int
    brand_wallet_id: int
    total_amount: int
    released_amount: int
    remaining_amount: int
    commission_amount: int
    status: EscrowStatus
    released_at: Optional[datetime] = None
    created_at: datetime


class BrandSummaryOut(BaseModel):
    id: int
    name: str
    image: Optional[str] = None
    company_name: Optional[str] = None
    is_verified: bool = False


class CampaignCardOut(BaseModel):
    campaign: CampaignOut
    brand: Optional[BrandSummaryOut] = None
    escrow: Optional[EscrowOut] = None
    participant_count: int = 0


class TrackingLinkOut(ORMModel):
    id: int
    campaign_id: int
    creator_id: int
    slug: str
    destination_url: str
    is_active: bool
    click_count: int


class PromoCodeOut(ORMModel):
    id: int
    campaign_id: int
    creator_id: int
    code: str
    is_active: bool
    usage_count: int


class MetricsOut(ORMModel):
    id: int
    campaign_id: int
    creator_id: int
    verified_views: int
    verified_clicks: int
    verified_conversions: int
    earned_amount: int
    paid_amount: int


class ParticipationOut(ORMModel):
    id: int
    campaign_id: int
    creator_id: int
    status: ParticipationStatus
    platform: Optional[Platform] = None
    selected_platforms: list[str]
    content_url: Optional[str] = None
    caption: Optional[str] = None
    review_note: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    approved_at: Optional[datetime] = None
    submitted_at: Optional[datetime] = None
    tracking_link_id: Optional[int] = None
    promo_code_id: Optional[int] = None
    created_at: datetime


class ParticipationDetailOut(BaseModel):
    participation: ParticipationOut
    campaign: CampaignOut
    tracking_link: Optional[TrackingLinkOut] = None
    promo_code: Optional[PromoCodeOut] = None
    metrics: Optional[MetricsOut] = None


class DailyAnalyticsOut(ORMModel):
    date: date
    views: int
    clicks: int
    conversions: int
    spend: int


class FraudFlagOut(ORMModel):
    id: int
    type: FraudType
    status: FraudFlagStatus
    severity: int
    description: str
    evidence: Optional[dict[str, Any]] = None
    campaign_id: int
    creator_id: Optional[int] = None
    resolved_by: Optional[int] = None
    resolved_at: Optional[datetime] = None
    resolved_note: Optional[str] = None
    created_at: datetime


class CampaignDetailOut(BaseModel):
    campaign: CampaignOut
    escrow: Optional[EscrowOut] = None
    participations: list[ParticipationOut]
    metrics: list[MetricsOut]
    daily: list[DailyAnalyticsOut]
    fraud_flags: list[FraudFlagOut]
    tracking_links: list[TrackingLinkOut]
    promo_codes: list[PromoCodeOut]


class InviteIn(BaseModel):
    creator_id: int


class ReviewIn(BaseModel):
    note: Optional[str] = Field(default=None, max_length=1000)


class RejectIn(BaseModel):
    reason: str = Field(min_length=1, max_length=1000)


class ApplyIn(BaseModel):
    platforms: list[Platform] = Field(default_factory=list)


class SubmitContentIn(BaseModel):
    content_url: HttpUrl
    platform: Platform
    caption: Optional[str] = Field(default=None, max_length=2200)


class SavedOut(BaseModel):
    saved: bool


# Wallet, escrow, payouts


class TransactionOut(ORMModel):
    id: int
    wallet_id: int
    amount: int
    type: TransactionType
    status: TransactionStatus
    description: Optional[str] = None
    reference_id: Optional[str] = None
    reference_type: Optional[str] = None
    participation_id: Optional[int] = None
    created_at: datetime


class PaymentMethodOut(ORMModel):
    id: int
    type: PaymentMethodType
    details: dict[str, Any]
    is_primary: bool
    is_verified: bool


class PayoutOut(ORMModel):
    id: int
    wallet_id: int
    user_id: int
    payment_method_id: Optional[int] = None
    amount: int
    tds_amount: int
    net_amount: int
    status: PayoutStatus
    approval_status: ApprovalStatus
    approved_by: Optional[int] = None
    approved_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None
    razorpay_payout_id: Optional[str] = None
    failed_reason: Optional[str] = None
    created_at: datetime


class BrandWalletOut(BaseModel):
    wallet: WalletOut
    payment_methods: list[PaymentMethodOut]
    total_escrow_locked: int


class FundingIn(BaseModel):
    amount: int = Field(gt=0)
    razorpay_payment_id: str
    razorpay_order_id: str
    razorpay_signature: str


class WithdrawIn(BaseModel):
    amount: int = Field(gt=0)
    payment_method_id: int


class PaymentMethodIn(BaseModel):
    type: PaymentMethodType
    details: dict[str, str]
    is_primary: bool = False


class PaymentMethodUpdateIn(BaseModel):
    is_primary: Optional[bool] = None


class LedgerOut(ORMModel):
    available: int
    pending: int
    escrow: int


class ReconcileOut(BaseModel):
    wallet_id: int
    balanced: bool
    stored: LedgerOut
    computed: LedgerOut


class LockFundsIn(BaseModel):
    campaign_id: int
    amount: int = Field(gt=0)


class ReleaseItemIn(BaseModel):
    creator_id: int
    amount: int = Field(gt=0)
    participation_id: Optional[int] = None


class ReleaseIn(BaseModel):
    releases: list[ReleaseItemIn] = Field(min_length=1)


class RefundIn(BaseModel):
    reason: Optional[str] = None


class ReasonIn(BaseModel):
    reason: str = Field(min_length=1, max_length=1000)


class BatchApproveIn(BaseModel):
    payout_ids: list[int] = Field(min_length=1, max_length=100)


class CountOut(BaseModel):
    count: int


# Gateway


class OrderIn(BaseModel):
    amount: int


class OrderOut(BaseModel):
    orderId: str
    amount: int
    currency: str
    keyId: str


# Tracking and fraud


class ConversionIn(BaseModel):
    promo_code: str = Field(min_length=1, max_length=64)
    order_id: Optional[str] = Field(default=None, max_length=128)
    order_value: int = Field(default=0, ge=0)


class ConversionEventOut(ORMModel):
    id: int
    campaign_id: int
    creator_id: int
    promo_code_id: int
    order_id: Optional[str] = None
    order_value: int
    is_verified: bool
    created_at: datetime


class ClickEventOut(ORMModel):
    id: int
    tracking_link_id: int
    campaign_id: int
    creator_id: int
    ip: Optional[str] = None
    user_agent: Optional[str] = None
    referer: Optional[str] = None
    is_fraud: bool
    fraud_reason: Optional[str] = None
    created_at: datetime


class ViewSnapshotIn(BaseModel):
    campaign_id: int
    creator_id: int
    platform: Platform
    post_url: str
    view_count: int = Field(ge=0)
    like_count: int = Field(default=0, ge=0)
    snapshot_at: Optional[datetime] = None


class ViewSnapshotOut(ORMModel):
    id: int
    campaign_id: int
    creator_id: int
    platform: Platform
    post_url: str
    view_count: int
    like_count: int
    snapshot_at: datetime


class ClickStatsOut(ORMModel):
    total_clicks: int
    fraud_clicks: int
    valid_clicks: int
    unique_ips: int


class CreatorLinkOut(BaseModel):
    link: TrackingLinkOut
    creator_id: int
    creator_name: str
    display_name: Optional[str] = None


class FraudFlagIn(BaseModel):
    campaign_id: int
    creator_id: Optional[int] = None
    type: FraudType = FraudType.MANUAL_REVIEW
    severity: int = Field(default=3, ge=1, le=5)
    description: str = Field(min_length=1)
    evidence: Optional[dict[str, Any]] = None


class ResolveFlagIn(BaseModel):
    status: FraudFlagStatus
    note: str = Field(min_length=1, max_length=1000)

    @field_validator("status")
    @classmethod
    def _not_detected(cls, value: FraudFlagStatus) -> FraudFlagStatus:
        if value == FraudFlagStatus.DETECTED:
            raise ValueError("A flag cannot be moved back to DETECTED")
        return value


# Admin


class CampaignRowOut(BaseModel):
    campaign: CampaignOut
    fraud_flag_count: int = 0


class CampaignOversightOut(BaseModel):
    campaign: CampaignOut
    brand: Optional[BrandSummaryOut] = None
    escrow: Optional[EscrowOut] = None
    participations: list[ParticipationOut]
    tracking_links: list[TrackingLinkOut]
    promo_codes: list[PromoCodeOut]
    metrics: list[MetricsOut]
    daily: list[DailyAnalyticsOut]
    fraud_flags: list[FraudFlagOut]


class UserRowOut(BaseModel):
    user: UserOut
    brand_profile: Optional[BrandProfileOut] = None
    creator_profile: Optional[CreatorProfileOut] = None
