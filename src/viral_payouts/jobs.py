"""Background jobs: payout execution, fraud sweep, view sync and daily rollups.

Each unit of work runs in its own session so one failure rolls back only
itself and the job carries on with the rest.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import Awaitable, Callable

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .db import SessionFactory
from .models import PayoutStatus, utcnow
from .services.analytics import AnalyticsService
from .services.fraud import FraudService
from .services.payouts import PayoutService
from .services.razorpay import RazorpayClient
from .services.social import SocialMetricsClient, get_social_client
from .services.tracking import TrackingService

logger = logging.getLogger(__name__)

Factory = async_sessionmaker[AsyncSession]


async def _unit(factory: Factory, label: str, work: Callable[[AsyncSession], Awaitable[object]]) -> bool:
    async with factory() as session:
        try:
            await work(session)
            await session.commit()
            return True
        except Exception:
            await session.rollback()
            logger.exception("%s failed, transaction rolled back", label)
            return False


async def execute_approved_payouts(
    *,
    gateway: RazorpayClient | None = None,
    batch_size: int | None = None,
    factory: Factory = SessionFactory,
) -> dict[str, int]:
    async with factory() as session:
        payout_ids = await PayoutService(session).executable_ids(limit=batch_size)
    summary = {"processed": 0, "completed": 0, "failed": 0, "errors": 0}
    for payout_id in payout_ids:
        result: dict[str, PayoutStatus] = {}

        async def work(session: AsyncSession, payout_id: int = payout_id) -> None:
            payout = await PayoutService(session, gateway).execute(payout_id)
            result["status"] = payout.status

        if not await _unit(factory, f"Payout {payout_id}", work):
            summary["errors"] += 1
            continue
        summary["processed"] += 1
        if result.get("status") == PayoutStatus.COMPLETED:
            summary["completed"] += 1
        elif result.get("status") == PayoutStatus.FAILED:
            summary["failed"] += 1
    logger.info("Payout executor finished: %s", summary)
    return summary


async def detect_fraud(*, now: datetime | None = None, factory: Factory = SessionFactory) -> int:
    """Run every fraud rule once. Returns the number of failed checks."""

    logger.info("Starting fraud detection sweep")
    now = now or utcnow()
    async with factory() as session:
        targets = await FraudService(session).sweep_targets()

    failures = 0
    for link_id in targets.link_ids:
        ok = await _unit(
            factory,
            f"Click checks for link {link_id}",
            lambda session, link_id=link_id: _check_link(session, link_id, now),
        )
        failures += not ok
    for campaign_id, creator_id in targets.conversion_pairs:
        ok = await _unit(
            factory,
            f"Conversion check for {campaign_id}/{creator_id}",
            lambda session, c=campaign_id, u=creator_id: FraudService(session).check_conversions(c, u),
        )
        failures += not ok
    for campaign_id, creator_id in targets.view_pairs:
        ok = await _unit(
            factory,
            f"View check for {campaign_id}/{creator_id}",
            lambda session, c=campaign_id, u=creator_id: FraudService(session).check_view_spikes(c, u),
        )
        failures += not ok
    logger.info("Fraud detection sweep completed with %s failed checks", failures)
    return failures


async def _check_link(session: AsyncSession, link_id: int, now: datetime) -> None:
    service = FraudService(session)
    await service.check_clicks(link_id, now=now)
    await service.check_bot_ratio(link_id, now=now)


async def sync_views(
    *,
    client: SocialMetricsClient | None = None,
    factory: Factory = SessionFactory,
) -> dict[str, int]:
    """Snapshot view counts of submitted posts on live view campaigns."""

    client = client or get_social_client()
    async with factory() as session:
        targets = await TrackingService(session).view_sync_targets()
    summary = {"synced": 0, "skipped": 0, "errors": 0}
    for campaign_id, creator_id, post_url in targets:
        fetched: list[int] = []

        async def work(session: AsyncSession, c: int = campaign_id, u: int = creator_id, url: str = post_url) -> None:
            found = await client.post_metrics(url)
            if found is None:
                return
            platform, metrics = found
            await TrackingService(session).record_view_snapshot(
                campaign_id=c,
                creator_id=u,
                platform=platform,
                post_url=url,
                view_count=metrics.views,
                like_count=metrics.likes,
            )
            await FraudService(session).check_view_spikes(c, u)
            fetched.append(metrics.views)

        if not await _unit(factory, f"View sync for {campaign_id}/{creator_id}", work):
            summary["errors"] += 1
        elif fetched:
            summary["synced"] += 1
        else:
            summary["skipped"] += 1
    logger.info("View sync finished: %s", summary)
    return summary


async def aggregate_daily_analytics(*, day: date | None = None, factory: Factory = SessionFactory) -> date:
    """Roll up ``day`` (yesterday by default) per campaign and for the platform."""

    day = day or (utcnow().date() - timedelta(days=1))
    async with factory() as session:
        campaign_ids = await AnalyticsService(session).rollup_campaign_ids()
    for campaign_id in campaign_ids:
        await _unit(
            factory,
            f"Daily analytics for campaign {campaign_id}",
            lambda session, c=campaign_id: AnalyticsService(session).aggregate_campaign_day(c, day),
        )
    await _unit(
        factory,
        "Platform daily analytics",
        lambda session: AnalyticsService(session).aggregate_platform_day(day),
    )
    return day


JOBS = {
    "payouts": execute_approved_payouts,
    "fraud": detect_fraud,
    "analytics": aggregate_daily_analytics,
    "views": sync_views,
}

__all__ = [
    "JOBS",
    "aggregate_daily_analytics",
    "detect_fraud",
    "execute_approved_payouts",
    "sync_views",
]
