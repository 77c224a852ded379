"""Campaign and participation models."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import JSON, Float, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampMixin


class CampaignType(str, Enum):
    VIEW = "VIEW"
    CLICK = "CLICK"
    CONVERSION = "CONVERSION"


class CampaignStatus(str, Enum):
    DRAFT = "DRAFT"
    FUNDING = "FUNDING"
    LIVE = "LIVE"
    PAUSED = "PAUSED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class Platform(str, Enum):
    INSTAGRAM = "INSTAGRAM"
    YOUTUBE = "YOUTUBE"
    TWITTER = "TWITTER"
    LINKEDIN = "LINKEDIN"
    OTHER = "OTHER"


class AudienceType(str, Enum):
    GEN_Z = "GEN_Z"
    MILLENNIALS = "MILLENNIALS"
    GEN_X = "GEN_X"
    PROFESSIONALS = "PROFESSIONALS"
    STUDENTS = "STUDENTS"


class ParticipationStatus(str, Enum):
    APPLIED = "APPLIED"
    APPROVED = "APPROVED"
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    REJECTED = "REJECTED"
    FROZEN = "FROZEN"


class Campaign(TimestampMixin, Base):
    __tablename__ = "campaigns"

    id: Mapped[int] = mapped_column(primary_key=True)
    brand_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    slug: Mapped[str] = mapped_column(String(160), unique=True, index=True)
    name: Mapped[str] = mapped_column(String(255))
    type: Mapped[CampaignType]
    status: Mapped[CampaignStatus] = mapped_column(default=CampaignStatus.DRAFT, index=True)
    description: Mapped[Optional[str]] = mapped_column(Text)
    cover_image: Mapped[Optional[str]] = mapped_column(Text)
    product_name: Mapped[Optional[str]] = mapped_column(String(255))
    campaign_brief: Mapped[Optional[str]] = mapped_column(Text)
    content_guidelines: Mapped[Optional[str]] = mapped_column(Text)
    assets_link: Mapped[Optional[str]] = mapped_column(Text)
    rules: Mapped[Optional[str]] = mapped_column(Text)
    target_platforms: Mapped[list[str]] = mapped_column(JSON, default=list)
    target_audience: Mapped[list[str]] = mapped_column(JSON, default=list)
    target_categories: Mapped[list[str]] = mapped_column(JSON, default=list)
    start_date: Mapped[datetime] = mapped_column()
    end_date: Mapped[datetime] = mapped_column(index=True)
    duration: Mapped[int] = mapped_column(Integer)
    total_budget: Mapped[int] = mapped_column(Integer)
    spent_budget: Mapped[int] = mapped_column(Integer, default=0)
    platform_commission_rate: Mapped[float] = mapped_column(Float, default=0.15)
    payout_per_1k_views: Mapped[Optional[int]] = mapped_column(Integer)
    oauth_required: Mapped[bool] = mapped_column(default=False)
    payout_per_click: Mapped[Optional[int]] = mapped_column(Integer)
    landing_page_url: Mapped[Optional[str]] = mapped_column(Text)
    payout_per_sale: Mapped[Optional[int]] = mapped_column(Integer)
    promo_code_format: Mapped[Optional[str]] = mapped_column(String(64))
    max_payout_per_creator: Mapped[Optional[int]] = mapped_column(Integer)
    total_views: Mapped[int] = mapped_column(Integer, default=0)
    total_clicks: Mapped[int] = mapped_column(Integer, default=0)
    total_conversions: Mapped[int] = mapped_column(Integer, default=0)
    total_participants: Mapped[int] = mapped_column(Integer, default=0)
    published_at: Mapped[Optional[datetime]] = mapped_column()


class CampaignParticipation(TimestampMixin, Base):
    __tablename__ = "campaign_participations"
    __table_args__ = (UniqueConstraint("campaign_id", "creator_id"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    campaign_id: Mapped[int] = mapped_column(ForeignKey("campaigns.id"), index=True)
    creator_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    status: Mapped[ParticipationStatus] = mapped_column(default=ParticipationStatus.APPLIED)
    platform: Mapped[Optional[Platform]] = mapped_column()
    selected_platforms: Mapped[list[str]] = mapped_column(JSON, default=list)
    content_url: Mapped[Optional[str]] = mapped_column(Text)
    caption: Mapped[Optional[str]] = mapped_column(Text)
    review_note: Mapped[Optional[str]] = mapped_column(Text)
    reviewed_at: Mapped[Optional[datetime]] = mapped_column()
    approved_at: Mapped[Optional[datetime]] = mapped_column()
    submitted_at: Mapped[Optional[datetime]] = mapped_column()
    tracking_link_id: Mapped[Optional[int]] = mapped_column(ForeignKey("tracking_links.id"))
    promo_code_id: Mapped[Optional[int]] = mapped_column(ForeignKey("promo_codes.id"))


class TrackingLink(TimestampMixin, Base):
    __tablename__ = "tracking_links"

    id: Mapped[int] = mapped_column(primary_key=True)
    campaign_id: Mapped[int] = mapped_column(ForeignKey("campaigns.id"), index=True)
    creator_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    slug: Mapped[str] = mapped_column(String(200), unique=True, index=True)
    destination_url: Mapped[str] = mapped_column(Text)
    is_active: Mapped[bool] = mapped_column(default=True)
    click_count: Mapped[int] = mapped_column(Integer, default=0)


class PromoCode(TimestampMixin, Base):
    __tablename__ = "promo_codes"

    id: Mapped[int] = mapped_column(primary_key=True)
    campaign_id: Mapped[int] = mapped_column(ForeignKey("campaigns.id"), index=True)
    creator_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    code: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    is_active: Mapped[bool] = mapped_column(default=True)
    usage_count: Mapped[int] = mapped_column(Integer, default=0)


class CampaignMetrics(TimestampMixin, Base):
    __tablename__ = "campaign_metrics"
    __table_args__ = (UniqueConstraint("campaign_id", "creator_id"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    campaign_id: Mapped[int] = mapped_column(ForeignKey("campaigns.id"), index=True)
    creator_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    verified_views: Mapped[int] = mapped_column(Integer, default=0)
    verified_clicks: Mapped[int] = mapped_column(Integer, default=0)
    verified_conversions: Mapped[int] = mapped_column(Integer, default=0)
    earned_amount: Mapped[int] = mapped_column(Integer, default=0)
    paid_amount: Mapped[int] = mapped_column(Integer, default=0)


class SavedCampaign(TimestampMixin, Base):
    __tablename__ = "saved_campaigns"
    __table_args__ = (UniqueConstraint("user_id", "campaign_id"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    campaign_id: Mapped[int] = mapped_column(ForeignKey("campaigns.id"), index=True)


__all__ = [
    "AudienceType",
    "Campaign",
    "CampaignMetrics",
    "CampaignParticipation",
    "CampaignStatus",
    "CampaignType",
    "ParticipationStatus",
    "Platform",
    "PromoCode",
    "SavedCampaign",
    "TrackingLink",
]
