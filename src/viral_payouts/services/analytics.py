"""Reporting for brands, creators and admins, plus the daily rollups."""

from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta
from typing import Any

from sqlalchemy import String, cast, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..errors import ForbiddenError, NotFoundError
from ..models import (
    OPEN_FRAUD_STATUSES,
    ApprovalStatus,
    BrandProfile,
    Campaign,
    CampaignDailyAnalytics,
    CampaignMetrics,
    CampaignParticipation,
    CampaignStatus,
    ClickEvent,
    ConversionEvent,
    CreatorProfile,
    CreatorTier,
    Escrow,
    FraudFlag,
    FraudFlagStatus,
    ParticipationStatus,
    Payout,
    PayoutStatus,
    PlatformDailyAnalytics,
    Transaction,
    TransactionStatus,
    TransactionType,
    User,
    UserRole,
    ViewSnapshot,
    Wallet,
    WalletType,
    utcnow,
)

logger = logging.getLogger(__name__)

TREND_DAYS = 30
EARNING_TYPES = (TransactionType.EARNING, TransactionType.ESCROW_RELEASE)


def day_bounds(day: date) -> tuple[datetime, datetime]:
    start = datetime.combine(day, time.min)
    return start, start + timedelta(days=1)


def _metrics_row(metrics: CampaignMetrics) -> dict[str, Any]:
    return {
        "campaign_id": metrics.campaign_id,
        "creator_id": metrics.creator_id,
        "verified_views": metrics.verified_views,
        "verified_clicks": metrics.verified_clicks,
        "verified_conversions": metrics.verified_conversions,
        "earned_amount": metrics.earned_amount,
        "paid_amount": metrics.paid_amount,
    }


def _daily_row(row: CampaignDailyAnalytics) -> dict[str, Any]:
    return {
        "campaign_id": row.campaign_id,
        "date": row.date.isoformat(),
        "views": row.views,
        "clicks": row.clicks,
        "conversions": row.conversions,
        "spend": row.spend,
    }


def _platform_row(row: PlatformDailyAnalytics) -> dict[str, Any]:
    return {
        "date": row.date.isoformat(),
        "total_gmv": row.total_gmv,
        "total_revenue": row.total_revenue,
        "total_payouts": row.total_payouts,
        "fraud_rate": row.fraud_rate,
    }


def _flag_row(flag: FraudFlag) -> dict[str, Any]:
    return {
        "id": flag.id,
        "type": flag.type.value,
        "status": flag.status.value,
        "severity": flag.severity,
        "description": flag.description,
        "creator_id": flag.creator_id,
        "created_at": flag.created_at.isoformat() if flag.created_at else None,
    }


def _campaign_row(campaign: Campaign) -> dict[str, Any]:
    return {
        "id": campaign.id,
        "name": campaign.name,
        "type": campaign.type.value,
        "status": campaign.status.value,
        "total_budget": campaign.total_budget,
        "spent_budget": campaign.spent_budget,
        "total_views": campaign.total_views,
        "total_clicks": campaign.total_clicks,
        "total_conversions": campaign.total_conversions,
        "total_participants": campaign.total_participants,
    }


class AnalyticsService:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def _scalar(self, stmt) -> int:
        return int((await self.session.execute(stmt)).scalar_one() or 0)

    async def _count_role(self, role: UserRole) -> int:
        return await self._scalar(select(func.count(User.id)).where(User.role == role))

    async def dashboard_stats(self) -> dict[str, Any]:
        latest = (
            await self.session.execute(
                select(PlatformDailyAnalytics).order_by(PlatformDailyAnalytics.date.desc()).limit(1)
            )
        ).scalar_one_or_none()
        brand = (
            await self.session.execute(
                select(
                    func.coalesce(func.sum(Wallet.available_balance), 0),
                    func.coalesce(func.sum(Wallet.escrow_balance), 0),
                ).where(Wallet.type == WalletType.BRAND)
            )
        ).one()
        creator = (
            await self.session.execute(
                select(
                    func.coalesce(func.sum(Wallet.available_balance), 0),
                    func.coalesce(func.sum(Wallet.pending_balance), 0),
                    func.coalesce(func.sum(Wallet.lifetime_earnings), 0),
                ).where(Wallet.type == WalletType.CREATOR)
            )
        ).one()
        return {
            "total_brands": await self._count_role(UserRole.BRAND),
            "total_creators": await self._count_role(UserRole.CREATOR),
            "total_campaigns": await self._scalar(select(func.count(Campaign.id))),
            "live_campaigns": await self._scalar(
                select(func.count(Campaign.id)).where(Campaign.status == CampaignStatus.LIVE)
            ),
            "pending_payouts": await self._scalar(
                select(func.count(Payout.id)).where(
                    Payout.approval_status == ApprovalStatus.PENDING_APPROVAL
                )
            ),
            "active_fraud_flags": await self._scalar(
                select(func.count(FraudFlag.id)).where(FraudFlag.status.in_(OPEN_FRAUD_STATUSES))
            ),
            "gmv": latest.total_gmv if latest else 0,
            "platform_revenue": latest.total_revenue if latest else 0,
            "total_payouts_processed": latest.total_payouts if latest else 0,
            "fraud_rate": latest.fraud_rate if latest else 0.0,
            "brand_funds_available": int(brand[0]),
            "brand_funds_escrow": int(brand[1]),
            "creator_balance_available": int(creator[0]),
            "creator_balance_pending": int(creator[1]),
            "creator_earnings_total": int(creator[2]),
        }

    async def brand_analytics(self, user: User) -> dict[str, Any]:
        campaigns = list(
            (await self.session.execute(select(Campaign).where(Campaign.brand_id == user.id))).scalars()
        )
        ids = [campaign.id for campaign in campaigns]
        total_spent = sum(campaign.spent_budget for campaign in campaigns)
        total_conversions = sum(campaign.total_conversions for campaign in campaigns)
        top_creators: list[dict[str, Any]] = []
        trends: list[dict[str, Any]] = []
        if ids:
            stmt = (
                select(CampaignMetrics)
                .where(CampaignMetrics.campaign_id.in_(ids))
                .order_by(CampaignMetrics.earned_amount.desc())
                .limit(10)
            )
            top_creators = [_metrics_row(row) for row in (await self.session.execute(stmt)).scalars()]
            since = utcnow().date() - timedelta(days=TREND_DAYS)
            stmt = (
                select(CampaignDailyAnalytics)
                .where(CampaignDailyAnalytics.campaign_id.in_(ids), CampaignDailyAnalytics.date >= since)
                .order_by(CampaignDailyAnalytics.date)
            )
            trends = [_daily_row(row) for row in (await self.session.execute(stmt)).scalars()]
        return {
            "summary": {
                "total_campaigns": len(campaigns),
                "live_campaigns": sum(1 for c in campaigns if c.status == CampaignStatus.LIVE),
                "total_budget": sum(campaign.total_budget for campaign in campaigns),
                "total_spent": total_spent,
                "total_views": sum(campaign.total_views for campaign in campaigns),
                "total_clicks": sum(campaign.total_clicks for campaign in campaigns),
                "total_conversions": total_conversions,
                "roi": f"{total_conversions * 100 / total_spent:.2f}" if total_spent else "0",
            },
            "campaigns": [_campaign_row(campaign) for campaign in campaigns],
            "top_creators": top_creators,
            "daily_trends": trends,
        }

    async def creator_analytics(self, user: User) -> dict[str, Any]:
        wallet = (await self.session.execute(select(Wallet).where(Wallet.user_id == user.id))).scalar_one_or_none()
        statuses = list(
            (
                await self.session.execute(
                    select(CampaignParticipation.status).where(CampaignParticipation.creator_id == user.id)
                )
            ).scalars()
        )
        metrics = list(
            (
                await self.session.execute(
                    select(CampaignMetrics).where(CampaignMetrics.creator_id == user.id)
                )
            ).scalars()
        )
        profile = (
            await self.session.execute(select(CreatorProfile).where(CreatorProfile.user_id == user.id))
        ).scalar_one_or_none()
        recent: list[dict[str, Any]] = []
        if wallet:
            since = utcnow() - timedelta(days=TREND_DAYS)
            stmt = (
                select(Transaction)
                .where(
                    Transaction.wallet_id == wallet.id,
                    Transaction.type.in_(EARNING_TYPES),
                    Transaction.created_at >= since,
                )
                .order_by(Transaction.created_at)
            )
            recent = [
                {
                    "amount": row.amount,
                    "created_at": row.created_at.isoformat(),
                    "description": row.description,
                }
                for row in (await self.session.execute(stmt)).scalars()
            ]
        total_earned = sum(row.earned_amount for row in metrics)
        total_paid = sum(row.paid_amount for row in metrics)
        tier = profile.tier if profile else CreatorTier.BRONZE
        return {
            "summary": {
                "total_earned": total_earned,
                "total_paid": total_paid,
                "pending_earnings": total_earned - total_paid,
                "available_balance": wallet.available_balance if wallet else 0,
                "total_views": sum(row.verified_views for row in metrics),
                "total_clicks": sum(row.verified_clicks for row in metrics),
                "total_conversions": sum(row.verified_conversions for row in metrics),
                "active_campaigns": sum(
                    1 for status in statuses
                    if status in (ParticipationStatus.APPROVED, ParticipationStatus.ACTIVE)
                ),
                "completed_campaigns": sum(1 for status in statuses if status == ParticipationStatus.COMPLETED),
            },
            "tier": tier.value,
            "tier_progress": {
                "current_tier": tier.value,
                "total_earnings": profile.total_earnings if profile else 0,
                "total_campaigns": profile.total_campaigns if profile else 0,
            },
            "metrics": [_metrics_row(row) for row in metrics],
            "recent_transactions": recent,
        }

    async def admin_analytics(self) -> dict[str, Any]:
        since = utcnow().date() - timedelta(days=TREND_DAYS)
        trends = (
            await self.session.execute(
                select(PlatformDailyAnalytics)
                .where(PlatformDailyAnalytics.date >= since)
                .order_by(PlatformDailyAnalytics.date)
            )
        ).scalars()
        roles = await self.session.execute(select(User.role, func.count(User.id)).group_by(User.role))
        types = await self.session.execute(
            select(
                Campaign.type,
                func.count(Campaign.id),
                func.coalesce(func.sum(Campaign.total_budget), 0),
                func.coalesce(func.sum(Campaign.spent_budget), 0),
            ).group_by(Campaign.type)
        )
        top_campaigns = await self.session.execute(
            select(Campaign, BrandProfile.company_name)
            .outerjoin(BrandProfile, BrandProfile.user_id == Campaign.brand_id)
            .order_by(Campaign.spent_budget.desc())
            .limit(10)
        )
        top_creators = await self.session.execute(
            select(CreatorProfile, User.name)
            .join(User, User.id == CreatorProfile.user_id)
            .order_by(CreatorProfile.total_earnings.desc())
            .limit(10)
        )
        return {
            "funnel": {
                "total_users": await self._scalar(select(func.count(User.id))),
                "onboarded_users": await self._scalar(
                    select(func.count(User.id)).where(User.is_onboarded.is_(True))
                ),
                "active_campaigns": await self._scalar(
                    select(func.count(Campaign.id)).where(Campaign.status == CampaignStatus.LIVE)
                ),
                "total_conversions": await self._scalar(
                    select(func.count(ConversionEvent.id)).where(ConversionEvent.is_verified.is_(True))
                ),
            },
            "role_stats": [
                {"role": role.value if role else None, "count": count} for role, count in roles.all()
            ],
            "campaign_type_stats": [
                {"type": type_.value, "count": count, "total_budget": int(budget), "spent_budget": int(spent)}
                for type_, count, budget, spent in types.all()
            ],
            "platform_trends": [_platform_row(row) for row in trends],
            "top_campaigns": [
                {**_campaign_row(campaign), "company_name": company}
                for campaign, company in top_campaigns.all()
            ],
            "top_creators": [
                {
                    "user_id": profile.user_id,
                    "name": name,
                    "display_name": profile.display_name,
                    "tier": profile.tier.value,
                    "total_earnings": profile.total_earnings,
                    "total_campaigns": profile.total_campaigns,
                }
                for profile, name in top_creators.all()
            ],
        }

    async def campaign_analytics(self, user: User, campaign_id: int) -> dict[str, Any]:
        campaign = await self.session.get(Campaign, campaign_id)
        if not campaign:
            raise NotFoundError("Campaign not found")
        if campaign.brand_id != user.id and not user.is_admin:
            raise ForbiddenError()
        daily = (
            await self.session.execute(
                select(CampaignDailyAnalytics)
                .where(CampaignDailyAnalytics.campaign_id == campaign.id)
                .order_by(CampaignDailyAnalytics.date)
            )
        ).scalars()
        metrics = (
            await self.session.execute(
                select(CampaignMetrics)
                .where(CampaignMetrics.campaign_id == campaign.id)
                .order_by(CampaignMetrics.earned_amount.desc())
            )
        ).scalars()
        flags = (
            await self.session.execute(
                select(FraudFlag).where(FraudFlag.campaign_id == campaign.id).order_by(FraudFlag.id.desc())
            )
        ).scalars()
        return {
            "campaign": _campaign_row(campaign),
            "daily_analytics": [_daily_row(row) for row in daily],
            "creator_metrics": [_metrics_row(row) for row in metrics],
            "fraud_flags": [_flag_row(flag) for flag in flags],
        }

    async def rollup_campaign_ids(self) -> list[int]:
        stmt = select(Campaign.id).where(
            Campaign.status.in_((CampaignStatus.LIVE, CampaignStatus.COMPLETED))
        )
        return list((await self.session.execute(stmt)).scalars())

    async def aggregate_campaign_day(self, campaign_id: int, day: date) -> CampaignDailyAnalytics:
        start, end = day_bounds(day)
        clicks = await self._scalar(
            select(func.count(ClickEvent.id)).where(
                ClickEvent.campaign_id == campaign_id,
                ClickEvent.created_at >= start,
                ClickEvent.created_at < end,
                ClickEvent.is_fraud.is_(False),
            )
        )
        conversions = await self._scalar(
            select(func.count(ConversionEvent.id)).where(
                ConversionEvent.campaign_id == campaign_id,
                ConversionEvent.created_at >= start,
                ConversionEvent.created_at < end,
                ConversionEvent.is_verified.is_(True),
            )
        )
        views = await self._scalar(
            select(func.coalesce(func.sum(ViewSnapshot.view_count), 0)).where(
                ViewSnapshot.campaign_id == campaign_id,
                ViewSnapshot.snapshot_at >= start,
                ViewSnapshot.snapshot_at < end,
            )
        )
        escrow_ids = select(cast(Escrow.id, String)).where(Escrow.campaign_id == campaign_id)
        spend = await self._scalar(
            select(func.coalesce(func.sum(Transaction.amount), 0)).where(
                Transaction.type == TransactionType.ESCROW_RELEASE,
                Transaction.status == TransactionStatus.COMPLETED,
                Transaction.reference_type == "escrow",
                Transaction.reference_id.in_(escrow_ids.scalar_subquery()),
                Transaction.created_at >= start,
                Transaction.created_at < end,
            )
        )

        stmt = select(CampaignDailyAnalytics).where(
            CampaignDailyAnalytics.campaign_id == campaign_id,
            CampaignDailyAnalytics.date == day,
        )
        row = (await self.session.execute(stmt)).scalar_one_or_none()
        if row is None:
            row = CampaignDailyAnalytics(campaign_id=campaign_id, date=day)
            self.session.add(row)
        row.views = views
        row.clicks = clicks
        row.conversions = conversions
        row.spend = abs(spend)
        await self.session.flush()
        return row

    async def aggregate_platform_day(self, day: date) -> PlatformDailyAnalytics:
        start, end = day_bounds(day)
        gmv = await self._scalar(
            select(func.coalesce(func.sum(Transaction.amount), 0)).where(
                Transaction.type == TransactionType.CAMPAIGN_FUND,
                Transaction.status == TransactionStatus.COMPLETED,
                Transaction.created_at >= start,
                Transaction.created_at < end,
            )
        )
        revenue = await self._scalar(
            select(func.coalesce(func.sum(Escrow.commission_amount), 0)).where(
                Escrow.created_at >= start,
                Escrow.created_at < end,
            )
        )
        payouts = await self._scalar(
            select(func.coalesce(func.sum(Payout.net_amount), 0)).where(
                Payout.status == PayoutStatus.COMPLETED,
                Payout.processed_at >= start,
                Payout.processed_at < end,
            )
        )
        total_flags = await self._scalar(select(func.count(FraudFlag.id)).where(FraudFlag.created_at < end))
        confirmed = await self._scalar(
            select(func.count(FraudFlag.id)).where(
                FraudFlag.status == FraudFlagStatus.CONFIRMED,
                FraudFlag.created_at < end,
            )
        )

        stmt = select(PlatformDailyAnalytics).where(PlatformDailyAnalytics.date == day)
        row = (await self.session.execute(stmt)).scalar_one_or_none()
        if row is None:
            row = PlatformDailyAnalytics(date=day)
            self.session.add(row)
        row.total_gmv = gmv
        row.total_revenue = revenue
        row.total_payouts = payouts
        row.fraud_rate = confirmed / total_flags if total_flags else 0.0
        await self.session.flush()
        logger.info("Platform analytics aggregated for %s", day.isoformat())
        return row


__all__ = ["AnalyticsService", "day_bounds"]
