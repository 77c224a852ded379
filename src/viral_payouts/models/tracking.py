"""Raw tracking events."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampMixin, utcnow
from .campaign import Platform


class ClickEvent(TimestampMixin, Base):
    __tablename__ = "click_events"

    id: Mapped[int] = mapped_column(primary_key=True)
    tracking_link_id: Mapped[int] = mapped_column(ForeignKey("tracking_links.id"), index=True)
    campaign_id: Mapped[int] = mapped_column(ForeignKey("campaigns.id"), index=True)
    creator_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    ip: Mapped[Optional[str]] = mapped_column(String(64), index=True)
    user_agent: Mapped[Optional[str]] = mapped_column(Text)
    referer: Mapped[Optional[str]] = mapped_column(Text)
    is_fraud: Mapped[bool] = mapped_column(default=False)
    fraud_reason: Mapped[Optional[str]] = mapped_column(String(128))


class ConversionEvent(TimestampMixin, Base):
    __tablename__ = "conversion_events"

    id: Mapped[int] = mapped_column(primary_key=True)
    campaign_id: Mapped[int] = mapped_column(ForeignKey("campaigns.id"), index=True)
    creator_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    promo_code_id: Mapped[int] = mapped_column(ForeignKey("promo_codes.id"), index=True)
    order_id: Mapped[Optional[str]] = mapped_column(String(128), index=True)
    order_value: Mapped[int] = mapped_column(Integer, default=0)
    is_verified: Mapped[bool] = mapped_column(default=False)


class ViewSnapshot(TimestampMixin, Base):
    __tablename__ = "view_snapshots"

    id: Mapped[int] = mapped_column(primary_key=True)
    campaign_id: Mapped[int] = mapped_column(ForeignKey("campaigns.id"), index=True)
    creator_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    platform: Mapped[Platform]
    post_url: Mapped[str] = mapped_column(Text)
    view_count: Mapped[int] = mapped_column(Integer, default=0)
    like_count: Mapped[int] = mapped_column(Integer, default=0)
    snapshot_at: Mapped[datetime] = mapped_column(default=utcnow, index=True)


__all__ = ["ClickEvent", "ConversionEvent", "ViewSnapshot"]
