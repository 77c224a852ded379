"""Fraud flags: manual review and the rule-based sweep."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..errors import BadRequestError, NotFoundError
from ..models import (
    OPEN_FRAUD_STATUSES,
    TERMINAL_FRAUD_STATUSES,
    Campaign,
    CampaignMetrics,
    CampaignParticipation,
    CampaignStatus,
    CampaignType,
    ClickEvent,
    FraudFlag,
    FraudFlagStatus,
    FraudType,
    ParticipationStatus,
    TrackingLink,
    ViewSnapshot,
    utcnow,
)
from .audit import record_admin_action
from .pagination import paginate

logger = logging.getLogger(__name__)

RESOLUTION_STATUSES = (
    FraudFlagStatus.INVESTIGATING,
    FraudFlagStatus.CONFIRMED,
    FraudFlagStatus.DISMISSED,
)


@dataclass(slots=True)
class SweepTargets:
    link_ids: list[int]
    conversion_pairs: list[tuple[int, int]]
    view_pairs: list[tuple[int, int]]


class FraudService:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def list_flags(
        self,
        *,
        status: FraudFlagStatus | None = None,
        type: FraudType | None = None,
        min_severity: int | None = None,
        limit: int = 50,
        cursor: int | None = None,
    ) -> tuple[Sequence[FraudFlag], int | None]:
        stmt = select(FraudFlag)
        if status:
            stmt = stmt.where(FraudFlag.status == status)
        if type:
            stmt = stmt.where(FraudFlag.type == type)
        if min_severity:
            stmt = stmt.where(FraudFlag.severity >= min_severity)
        return await paginate(self.session, stmt, FraudFlag.id, limit=limit, cursor=cursor)

    async def count_open(self) -> int:
        stmt = select(func.count(FraudFlag.id)).where(FraudFlag.status.in_(OPEN_FRAUD_STATUSES))
        return (await self.session.execute(stmt)).scalar_one()

    async def create_flag(
        self,
        *,
        campaign_id: int,
        type: FraudType = FraudType.MANUAL_REVIEW,
        severity: int = 3,
        description: str,
        creator_id: int | None = None,
        evidence: dict[str, Any] | None = None,
        admin_id: int | None = None,
    ) -> FraudFlag:
        if not 1 <= severity <= 5:
            raise BadRequestError("Severity must be between 1 and 5")
        if not await self.session.get(Campaign, campaign_id):
            raise NotFoundError("Campaign not found")
        flag = FraudFlag(
            type=type,
            status=FraudFlagStatus.DETECTED,
            severity=severity,
            description=description,
            evidence=evidence,
            campaign_id=campaign_id,
            creator_id=creator_id,
        )
        self.session.add(flag)
        await self.session.flush()
        if admin_id is not None:
            await record_admin_action(
                self.session, admin_id=admin_id, action="create_fraud_flag",
                target_table="fraud_flags", target_id=flag.id, reason=description,
            )
        return flag

    async def resolve(
        self,
        flag_id: int,
        *,
        status: FraudFlagStatus,
        note: str,
        admin_id: int,
    ) -> FraudFlag:
        if status not in RESOLUTION_STATUSES:
            raise BadRequestError("Invalid resolution status")
        flag = await self.session.get(FraudFlag, flag_id)
        if not flag:
            raise NotFoundError("Fraud flag not found")
        if flag.status in TERMINAL_FRAUD_STATUSES:
            raise BadRequestError(f"Fraud flag is already {flag.status.value.lower()}")
        if flag.status == status:
            raise BadRequestError(f"Fraud flag is already {status.value.lower()}")
        flag.status = status
        flag.resolved_by = admin_id
        flag.resolved_at = utcnow()
        flag.resolved_note = note
        await self.session.flush()
        await record_admin_action(
            self.session, admin_id=admin_id, action="resolve_fraud_flag",
            target_table="fraud_flags", target_id=flag.id, reason=note,
        )
        return flag

    async def raise_flag(
        self,
        *,
        type: FraudType,
        campaign_id: int,
        creator_id: int | None,
        severity: int,
        description: str,
        evidence: dict[str, Any],
    ) -> FraudFlag:
        """Open a rule-triggered flag unless one of the same type is already open."""

        stmt = (
            select(FraudFlag)
            .where(
                FraudFlag.type == type,
                FraudFlag.campaign_id == campaign_id,
                FraudFlag.status.in_(OPEN_FRAUD_STATUSES),
            )
            .limit(1)
        )
        existing = (await self.session.execute(stmt)).scalar_one_or_none()
        if existing:
            if severity > existing.severity:
                existing.severity = severity
                existing.description = description
                existing.evidence = evidence
                await self.session.flush()
            return existing
        flag = await self.create_flag(
            campaign_id=campaign_id,
            type=type,
            severity=severity,
            description=description,
            creator_id=creator_id,
            evidence=evidence,
        )
        logger.warning("Fraud flag %s raised on campaign %s: %s", flag.id, campaign_id, description)
        return flag

    async def sweep_targets(self) -> SweepTargets:
        links = await self.session.execute(
            select(TrackingLink.id)
            .join(Campaign, Campaign.id == TrackingLink.campaign_id)
            .where(TrackingLink.is_active.is_(True), Campaign.status == CampaignStatus.LIVE)
            .order_by(TrackingLink.id)
        )
        conversions = await self.session.execute(
            select(CampaignParticipation.campaign_id, CampaignParticipation.creator_id)
            .join(Campaign, Campaign.id == CampaignParticipation.campaign_id)
            .where(
                Campaign.type == CampaignType.CONVERSION,
                Campaign.status == CampaignStatus.LIVE,
                CampaignParticipation.status == ParticipationStatus.ACTIVE,
            )
        )
        views = await self.session.execute(
            select(ViewSnapshot.campaign_id, ViewSnapshot.creator_id)
            .join(Campaign, Campaign.id == ViewSnapshot.campaign_id)
            .where(Campaign.status == CampaignStatus.LIVE)
            .distinct()
        )
        return SweepTargets(
            link_ids=list(links.scalars()),
            conversion_pairs=[tuple(row) for row in conversions.all()],
            view_pairs=[tuple(row) for row in views.all()],
        )

    async def check_clicks(self, link_id: int, *, now: datetime | None = None) -> None:
        """Click burst and single-IP abuse on one tracking link."""

        link = await self.session.get(TrackingLink, link_id)
        if not link:
            return
        rules = settings.fraud
        since = (now or utcnow()) - timedelta(minutes=rules.click_window_minutes)
        window = (ClickEvent.tracking_link_id == link.id, ClickEvent.created_at >= since)

        recent = (await self.session.execute(select(func.count(ClickEvent.id)).where(*window))).scalar_one()
        if recent > rules.click_burst:
            await self.raise_flag(
                type=FraudType.CLICK_SPAM,
                campaign_id=link.campaign_id,
                creator_id=link.creator_id,
                severity=5 if recent > rules.click_burst * 4 else 4 if recent > rules.click_burst * 2 else 3,
                description=f"Click burst detected: {recent} clicks in last hour on tracking link {link.slug}",
                evidence={"tracking_link_id": link.id, "click_count": recent, "window": "1h"},
            )

        per_ip = await self.session.execute(
            select(ClickEvent.ip, func.count(ClickEvent.id))
            .where(*window, ClickEvent.ip.is_not(None))
            .group_by(ClickEvent.ip)
            .having(func.count(ClickEvent.id) > rules.ip_abuse_clicks)
        )
        for ip, count in per_ip.all():
            await self.raise_flag(
                type=FraudType.CLICK_SPAM,
                campaign_id=link.campaign_id,
                creator_id=link.creator_id,
                severity=5 if count > 50 else 4,
                description=f"IP abuse: {ip} made {count} clicks in last hour",
                evidence={"ip": ip, "click_count": count, "tracking_link_id": link.id},
            )

    async def check_bot_ratio(self, link_id: int, *, now: datetime | None = None) -> None:
        link = await self.session.get(TrackingLink, link_id)
        if not link:
            return
        rules = settings.fraud
        since = (now or utcnow()) - timedelta(minutes=rules.click_window_minutes)
        stmt = select(
            func.count(ClickEvent.id),
            func.count(ClickEvent.id).filter(ClickEvent.is_fraud.is_(True)),
        ).where(ClickEvent.tracking_link_id == link.id, ClickEvent.created_at >= since)
        total, fraudulent = (await self.session.execute(stmt)).one()
        if total <= rules.bot_min_clicks:
            return
        ratio = fraudulent / total
        if ratio <= rules.bot_ratio:
            return
        await self.raise_flag(
            type=FraudType.BOT_DETECTED,
            campaign_id=link.campaign_id,
            creator_id=link.creator_id,
            severity=5 if ratio > rules.bot_critical_ratio else 4,
            description=(
                f"High bot ratio: {fraudulent}/{total} ({round(ratio * 100)}%) "
                "clicks flagged as fraud in last hour"
            ),
            evidence={
                "tracking_link_id": link.id,
                "total_clicks": total,
                "fraud_clicks": fraudulent,
                "ratio": ratio,
            },
        )

    async def check_conversions(self, campaign_id: int, creator_id: int) -> None:
        stmt = select(CampaignMetrics).where(
            CampaignMetrics.campaign_id == campaign_id,
            CampaignMetrics.creator_id == creator_id,
        )
        metrics = (await self.session.execute(stmt)).scalar_one_or_none()
        if not metrics or metrics.verified_clicks == 0:
            return
        rules = settings.fraud
        clicks, conversions = metrics.verified_clicks, metrics.verified_conversions
        evidence = {"clicks": clicks, "conversions": conversions, "rate": conversions / clicks}

        rate = conversions / clicks
        if rate > rules.conversion_rate_limit and conversions > rules.conversion_min_conversions:
            await self.raise_flag(
                type=FraudType.CONVERSION_MISMATCH,
                campaign_id=campaign_id,
                creator_id=creator_id,
                severity=5 if rate > 0.7 else 4 if rate > 0.5 else 3,
                description=f"Unusually high conversion rate: {round(rate * 100)}% ({conversions}/{clicks})",
                evidence=evidence,
            )
        elif conversions == 0 and clicks >= rules.conversion_min_clicks:
            await self.raise_flag(
                type=FraudType.CONVERSION_MISMATCH,
                campaign_id=campaign_id,
                creator_id=creator_id,
                severity=3,
                description=f"{clicks} clicks without a single conversion",
                evidence=evidence,
            )

    async def check_view_spikes(self, campaign_id: int, creator_id: int) -> None:
        stmt = (
            select(ViewSnapshot)
            .where(ViewSnapshot.campaign_id == campaign_id, ViewSnapshot.creator_id == creator_id)
            .order_by(ViewSnapshot.snapshot_at, ViewSnapshot.id)
        )
        history: dict[str, list[int]] = {}
        for snapshot in (await self.session.execute(stmt)).scalars():
            history.setdefault(snapshot.post_url, []).append(snapshot.view_count)

        for post_url, counts in history.items():
            if len(counts) < 2:
                continue
            previous, current = counts[-2], counts[-1]
            if previous == 0:
                continue
            growth = (current - previous) / previous
            if growth <= settings.fraud.view_spike_growth:
                continue
            await self.raise_flag(
                type=FraudType.VIEW_SPIKE,
                campaign_id=campaign_id,
                creator_id=creator_id,
                severity=5 if growth > 20 else 4 if growth > 10 else 3,
                description=f"View spike: {round(growth * 100)}% growth ({previous} -> {current})",
                evidence={
                    "post_url": post_url,
                    "previous_views": previous,
                    "current_views": current,
                    "growth_rate": growth,
                },
            )


__all__ = ["FraudService", "RESOLUTION_STATUSES", "SweepTargets"]
