"""Fraud review, rollups and admin audit models."""

from __future__ import annotations

import datetime as dt
from enum import Enum
from typing import Optional

from sqlalchemy import JSON, Float, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampMixin


class FraudType(str, Enum):
    CLICK_SPAM = "CLICK_SPAM"
    BOT_DETECTED = "BOT_DETECTED"
    VIEW_SPIKE = "VIEW_SPIKE"
    CONVERSION_MISMATCH = "CONVERSION_MISMATCH"
    DUPLICATE_ACCOUNT = "DUPLICATE_ACCOUNT"
    MANUAL_REVIEW = "MANUAL_REVIEW"


class FraudFlagStatus(str, Enum):
    DETECTED = "DETECTED"
    INVESTIGATING = "INVESTIGATING"
    CONFIRMED = "CONFIRMED"
    DISMISSED = "DISMISSED"


OPEN_FRAUD_STATUSES = (FraudFlagStatus.DETECTED, FraudFlagStatus.INVESTIGATING)
TERMINAL_FRAUD_STATUSES = (FraudFlagStatus.CONFIRMED, FraudFlagStatus.DISMISSED)


class FraudFlag(TimestampMixin, Base):
    __tablename__ = "fraud_flags"

    id: Mapped[int] = mapped_column(primary_key=True)
    type: Mapped[FraudType] = mapped_column(index=True)
    status: Mapped[FraudFlagStatus] = mapped_column(default=FraudFlagStatus.DETECTED, index=True)
    severity: Mapped[int] = mapped_column(Integer, default=1)
    description: Mapped[str] = mapped_column(Text)
    evidence: Mapped[dict | None] = mapped_column(JSON)
    campaign_id: Mapped[int] = mapped_column(ForeignKey("campaigns.id"), index=True)
    creator_id: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"))
    resolved_by: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"))
    resolved_at: Mapped[Optional[dt.datetime]] = mapped_column()
    resolved_note: Mapped[Optional[str]] = mapped_column(Text)


class CampaignDailyAnalytics(TimestampMixin, Base):
    __tablename__ = "campaign_daily_analytics"
    __table_args__ = (UniqueConstraint("campaign_id", "date"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    campaign_id: Mapped[int] = mapped_column(ForeignKey("campaigns.id"), index=True)
    date: Mapped[dt.date] = mapped_column(index=True)
    views: Mapped[int] = mapped_column(Integer, default=0)
    clicks: Mapped[int] = mapped_column(Integer, default=0)
    conversions: Mapped[int] = mapped_column(Integer, default=0)
    spend: Mapped[int] = mapped_column(Integer, default=0)


class PlatformDailyAnalytics(TimestampMixin, Base):
    __tablename__ = "platform_daily_analytics"

    id: Mapped[int] = mapped_column(primary_key=True)
    date: Mapped[dt.date] = mapped_column(unique=True, index=True)
    total_gmv: Mapped[int] = mapped_column(Integer, default=0)
    total_revenue: Mapped[int] = mapped_column(Integer, default=0)
    total_payouts: Mapped[int] = mapped_column(Integer, default=0)
    fraud_rate: Mapped[float] = mapped_column(Float, default=0.0)


class AdminAction(TimestampMixin, Base):
    __tablename__ = "admin_actions"

    id: Mapped[int] = mapped_column(primary_key=True)
    admin_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    action: Mapped[str] = mapped_column(String(64))
    target_table: Mapped[str] = mapped_column(String(64))
    target_id: Mapped[str] = mapped_column(String(64))
    delta: Mapped[int] = mapped_column(Integer, default=0)
    reason: Mapped[str | None] = mapped_column(Text)


__all__ = [
    "AdminAction",
    "CampaignDailyAnalytics",
    "FraudFlag",
    "FraudFlagStatus",
    "FraudType",
    "OPEN_FRAUD_STATUSES",
    "PlatformDailyAnalytics",
    "TERMINAL_FRAUD_STATUSES",
]
