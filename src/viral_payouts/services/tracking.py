"""Click, conversion and view tracking with per-creator metrics."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Sequence

from sqlalchemy import distinct, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from user_agents import parse as parse_user_agent

from ..config import settings
from ..errors import BadRequestError, ForbiddenError, NotFoundError
from ..models import (
    Campaign,
    CampaignMetrics,
    CampaignParticipation,
    CampaignStatus,
    CampaignType,
    ClickEvent,
    ConversionEvent,
    CreatorProfile,
    ParticipationStatus,
    Platform,
    PromoCode,
    TrackingLink,
    User,
    ViewSnapshot,
    utcnow,
)
from .pagination import paginate

logger = logging.getLogger(__name__)


def earned_amount(campaign: Campaign, metrics: CampaignMetrics) -> int:
    """What a creator has earned on a campaign so far, capped per creator."""

    earned = 0
    if campaign.payout_per_1k_views:
        earned += metrics.verified_views * campaign.payout_per_1k_views // 1000
    if campaign.payout_per_click:
        earned += metrics.verified_clicks * campaign.payout_per_click
    if campaign.payout_per_sale:
        earned += metrics.verified_conversions * campaign.payout_per_sale
    if campaign.max_payout_per_creator is not None:
        earned = min(earned, campaign.max_payout_per_creator)
    return earned


def is_bot_user_agent(user_agent: str | None) -> bool:
    """Crawlers, and clients no browser family can be read from."""

    parsed = parse_user_agent(user_agent or "")
    return parsed.is_bot or parsed.browser.family == "Other"


@dataclass(slots=True)
class ClickResult:
    event: ClickEvent | None
    destination_url: str


@dataclass(slots=True)
class ClickStats:
    total_clicks: int
    fraud_clicks: int
    valid_clicks: int
    unique_ips: int


class TrackingService:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def _metrics(self, campaign_id: int, creator_id: int) -> CampaignMetrics:
        stmt = select(CampaignMetrics).where(
            CampaignMetrics.campaign_id == campaign_id,
            CampaignMetrics.creator_id == creator_id,
        )
        metrics = (await self.session.execute(stmt)).scalar_one_or_none()
        if metrics is None:
            metrics = CampaignMetrics(
                campaign_id=campaign_id,
                creator_id=creator_id,
                verified_views=0,
                verified_clicks=0,
                verified_conversions=0,
                earned_amount=0,
                paid_amount=0,
            )
            self.session.add(metrics)
            await self.session.flush()
        return metrics

    async def _participation_status(self, campaign_id: int, creator_id: int) -> ParticipationStatus | None:
        stmt = select(CampaignParticipation.status).where(
            CampaignParticipation.campaign_id == campaign_id,
            CampaignParticipation.creator_id == creator_id,
        )
        return (await self.session.execute(stmt)).scalar_one_or_none()

    async def get_link(self, slug: str) -> TrackingLink | None:
        stmt = select(TrackingLink).where(TrackingLink.slug == slug)
        return (await self.session.execute(stmt)).scalar_one_or_none()

    async def record_click(
        self,
        slug: str,
        *,
        ip: str | None,
        user_agent: str | None = None,
        referer: str | None = None,
        now: datetime | None = None,
    ) -> ClickResult:
        link = await self.get_link(slug)
        if not link or not link.is_active:
            raise NotFoundError("Link not found")
        campaign = await self.session.get(Campaign, link.campaign_id)
        if not campaign:
            raise NotFoundError("Link not found")
        if campaign.status != CampaignStatus.LIVE:
            return ClickResult(event=None, destination_url=link.destination_url)

        now = now or utcnow()
        fraud_reason = None
        if await self._participation_status(campaign.id, link.creator_id) == ParticipationStatus.FROZEN:
            fraud_reason = "participation_frozen"
        elif is_bot_user_agent(user_agent):
            fraud_reason = "bot_user_agent"
        elif ip:
            window_start = now - timedelta(minutes=settings.fraud.click_window_minutes)
            stmt = select(func.count(ClickEvent.id)).where(
                ClickEvent.tracking_link_id == link.id,
                ClickEvent.ip == ip,
                ClickEvent.created_at >= window_start,
            )
            recent = (await self.session.execute(stmt)).scalar_one()
            if recent >= settings.fraud.max_clicks_per_ip:
                fraud_reason = "ip_click_limit"

        event = ClickEvent(
            tracking_link_id=link.id,
            campaign_id=campaign.id,
            creator_id=link.creator_id,
            ip=ip,
            user_agent=user_agent,
            referer=referer,
            is_fraud=fraud_reason is not None,
            fraud_reason=fraud_reason,
            created_at=now,
        )
        self.session.add(event)

        if fraud_reason is None:
            link.click_count += 1
            campaign.total_clicks += 1
            metrics = await self._metrics(campaign.id, link.creator_id)
            metrics.verified_clicks += 1
            metrics.earned_amount = earned_amount(campaign, metrics)
        else:
            logger.info("Fraudulent click on %s from %s: %s", link.slug, ip, fraud_reason)
        await self.session.flush()
        return ClickResult(event=event, destination_url=link.destination_url)

    async def record_conversion(
        self,
        user: User,
        *,
        promo_code: str,
        order_id: str | None = None,
        order_value: int = 0,
    ) -> ConversionEvent:
        stmt = select(PromoCode).where(PromoCode.code == promo_code.strip())
        code = (await self.session.execute(stmt)).scalar_one_or_none()
        if not code:
            raise NotFoundError("Promo code not found")
        campaign = await self.session.get(Campaign, code.campaign_id)
        if not campaign or (campaign.brand_id != user.id and not user.is_admin):
            raise ForbiddenError()

        if order_id:
            stmt = select(ConversionEvent).where(
                ConversionEvent.campaign_id == campaign.id,
                ConversionEvent.order_id == order_id,
            )
            existing = (await self.session.execute(stmt)).scalar_one_or_none()
            if existing:
                return existing

        verified = code.is_active and campaign.status == CampaignStatus.LIVE
        event = ConversionEvent(
            campaign_id=campaign.id,
            creator_id=code.creator_id,
            promo_code_id=code.id,
            order_id=order_id,
            order_value=order_value,
            is_verified=verified,
        )
        self.session.add(event)
        code.usage_count += 1
        if verified:
            campaign.total_conversions += 1
            metrics = await self._metrics(campaign.id, code.creator_id)
            metrics.verified_conversions += 1
            metrics.earned_amount = earned_amount(campaign, metrics)
        await self.session.flush()
        return event

    async def record_view_snapshot(
        self,
        *,
        campaign_id: int,
        creator_id: int,
        platform: Platform,
        post_url: str,
        view_count: int,
        like_count: int = 0,
        snapshot_at: datetime | None = None,
    ) -> ViewSnapshot:
        if view_count < 0 or like_count < 0:
            raise BadRequestError("Counts must not be negative")
        campaign = await self.session.get(Campaign, campaign_id)
        if not campaign:
            raise NotFoundError("Campaign not found")
        if await self._participation_status(campaign.id, creator_id) is None:
            raise NotFoundError("Participation not found")

        snapshot = ViewSnapshot(
            campaign_id=campaign.id,
            creator_id=creator_id,
            platform=platform,
            post_url=post_url,
            view_count=view_count,
            like_count=like_count,
            snapshot_at=snapshot_at or utcnow(),
        )
        self.session.add(snapshot)
        await self.session.flush()

        # Views are cumulative per post; the latest snapshot of each post counts.
        stmt = (
            select(ViewSnapshot.post_url, ViewSnapshot.view_count)
            .where(ViewSnapshot.campaign_id == campaign.id, ViewSnapshot.creator_id == creator_id)
            .order_by(ViewSnapshot.snapshot_at, ViewSnapshot.id)
        )
        latest: dict[str, int] = {}
        for url, count in (await self.session.execute(stmt)).all():
            latest[url] = count
        total_views = sum(latest.values())

        metrics = await self._metrics(campaign.id, creator_id)
        campaign.total_views += total_views - metrics.verified_views
        metrics.verified_views = total_views
        metrics.earned_amount = earned_amount(campaign, metrics)
        await self.session.flush()
        return snapshot

    async def view_sync_targets(self) -> list[tuple[int, int, str]]:
        """(campaign, creator, post URL) for submitted posts on live view campaigns."""

        stmt = (
            select(
                CampaignParticipation.campaign_id,
                CampaignParticipation.creator_id,
                CampaignParticipation.content_url,
            )
            .join(Campaign, Campaign.id == CampaignParticipation.campaign_id)
            .where(
                Campaign.type == CampaignType.VIEW,
                Campaign.status == CampaignStatus.LIVE,
                CampaignParticipation.status.in_([ParticipationStatus.ACTIVE, ParticipationStatus.COMPLETED]),
                CampaignParticipation.content_url.is_not(None),
            )
            .order_by(CampaignParticipation.id)
        )
        return [tuple(row) for row in (await self.session.execute(stmt)).all()]

    async def click_events(
        self,
        *,
        tracking_link_id: int | None = None,
        campaign_id: int | None = None,
        creator_id: int | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int = 100,
        cursor: int | None = None,
    ) -> tuple[Sequence[ClickEvent], int | None]:
        stmt = select(ClickEvent)
        if tracking_link_id:
            stmt = stmt.where(ClickEvent.tracking_link_id == tracking_link_id)
        if campaign_id:
            stmt = stmt.where(ClickEvent.campaign_id == campaign_id)
        if creator_id:
            stmt = stmt.where(ClickEvent.creator_id == creator_id)
        if start:
            stmt = stmt.where(ClickEvent.created_at >= start)
        if end:
            stmt = stmt.where(ClickEvent.created_at <= end)
        return await paginate(self.session, stmt, ClickEvent.id, limit=limit, cursor=cursor)

    async def view_snapshots(
        self,
        campaign_id: int,
        *,
        creator_id: int | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int = 100,
    ) -> list[ViewSnapshot]:
        stmt = select(ViewSnapshot).where(ViewSnapshot.campaign_id == campaign_id)
        if creator_id:
            stmt = stmt.where(ViewSnapshot.creator_id == creator_id)
        if start:
            stmt = stmt.where(ViewSnapshot.snapshot_at >= start)
        if end:
            stmt = stmt.where(ViewSnapshot.snapshot_at <= end)
        stmt = stmt.order_by(ViewSnapshot.snapshot_at.desc()).limit(limit)
        return list((await self.session.execute(stmt)).scalars())

    async def conversion_events(
        self,
        *,
        campaign_id: int | None = None,
        creator_id: int | None = None,
        promo_code_id: int | None = None,
        limit: int = 100,
        cursor: int | None = None,
    ) -> tuple[Sequence[ConversionEvent], int | None]:
        stmt = select(ConversionEvent)
        if campaign_id:
            stmt = stmt.where(ConversionEvent.campaign_id == campaign_id)
        if creator_id:
            stmt = stmt.where(ConversionEvent.creator_id == creator_id)
        if promo_code_id:
            stmt = stmt.where(ConversionEvent.promo_code_id == promo_code_id)
        return await paginate(self.session, stmt, ConversionEvent.id, limit=limit, cursor=cursor)

    async def click_stats(self, campaign_id: int, creator_id: int | None = None) -> ClickStats:
        filters = [ClickEvent.campaign_id == campaign_id]
        if creator_id:
            filters.append(ClickEvent.creator_id == creator_id)
        stmt = select(
            func.count(ClickEvent.id),
            func.count(ClickEvent.id).filter(ClickEvent.is_fraud.is_(True)),
            func.count(distinct(ClickEvent.ip)),
        ).where(*filters)
        total, fraud, unique_ips = (await self.session.execute(stmt)).one()
        return ClickStats(
            total_clicks=total,
            fraud_clicks=fraud,
            valid_clicks=total - fraud,
            unique_ips=unique_ips,
        )

    async def campaign_links(self, campaign_id: int) -> list[tuple[TrackingLink, User, CreatorProfile | None]]:
        stmt = (
            select(TrackingLink, User, CreatorProfile)
            .join(User, User.id == TrackingLink.creator_id)
            .outerjoin(CreatorProfile, CreatorProfile.user_id == User.id)
            .where(TrackingLink.campaign_id == campaign_id)
            .order_by(TrackingLink.id)
        )
        return [tuple(row) for row in (await self.session.execute(stmt)).all()]


__all__ = ["ClickResult", "ClickStats", "TrackingService", "earned_amount", "is_bot_user_agent"]
