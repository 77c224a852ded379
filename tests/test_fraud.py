from datetime import timedelta

import pytest
from sqlalchemy import select

from viral_payouts.errors import BadRequestError
from viral_payouts.models import (
    CampaignMetrics,
    CampaignType,
    ClickEvent,
    FraudFlag,
    FraudFlagStatus,
    FraudType,
    Platform,
    TrackingLink,
    UserRole,
    utcnow,
)
from viral_payouts.services.campaigns import CampaignService
from viral_payouts.services.fraud import FraudService
from viral_payouts.services.tracking import TrackingService

from factories import make_campaign, make_user


async def _live_link(session):
    brand = await make_user(session, "brand@example.com", UserRole.BRAND)
    creator = await make_user(session, "creator@example.com", UserRole.CREATOR)
    campaign = await make_campaign(session, brand, live=True)
    participation = await CampaignService(session).invite_creator(brand, campaign.id, creator.id)
    link = await session.get(TrackingLink, participation.tracking_link_id)
    return campaign, creator, link


def _clicks(link, count, *, now, ips=10, fraud=0):
    return [
        ClickEvent(
            tracking_link_id=link.id,
            campaign_id=link.campaign_id,
            creator_id=link.creator_id,
            ip=f"10.0.0.{i % ips}",
            is_fraud=i < fraud,
            created_at=now,
        )
        for i in range(count)
    ]


async def _flags(session):
    return list((await session.execute(select(FraudFlag).order_by(FraudFlag.id))).scalars())


@pytest.mark.asyncio
async def test_resolution_is_terminal(session):
    campaign, creator, _ = await _live_link(session)
    admin = await make_user(session, "admin@example.com", UserRole.BRAND, is_admin=True)
    fraud = FraudService(session)
    flag = await fraud.create_flag(
        campaign_id=campaign.id, creator_id=creator.id, description="Suspicious reviews", admin_id=admin.id
    )
    assert flag.status == FraudFlagStatus.DETECTED
    assert await fraud.count_open() == 1

    with pytest.raises(BadRequestError, match="Invalid resolution"):
        await fraud.resolve(flag.id, status=FraudFlagStatus.DETECTED, note="n/a", admin_id=admin.id)

    await fraud.resolve(flag.id, status=FraudFlagStatus.INVESTIGATING, note="Looking", admin_id=admin.id)
    with pytest.raises(BadRequestError, match="already investigating"):
        await fraud.resolve(flag.id, status=FraudFlagStatus.INVESTIGATING, note="Still", admin_id=admin.id)

    await fraud.resolve(flag.id, status=FraudFlagStatus.CONFIRMED, note="Bots", admin_id=admin.id)
    assert flag.resolved_by == admin.id
    assert flag.resolved_at is not None
    with pytest.raises(BadRequestError, match="already confirmed"):
        await fraud.resolve(flag.id, status=FraudFlagStatus.DISMISSED, note="Oops", admin_id=admin.id)
    assert await fraud.count_open() == 0


@pytest.mark.asyncio
async def test_manual_flag_severity_bounds(session):
    campaign, _, _ = await _live_link(session)
    with pytest.raises(BadRequestError):
        await FraudService(session).create_flag(campaign_id=campaign.id, severity=6, description="x")


@pytest.mark.asyncio
async def test_click_burst_raises_one_flag_and_escalates(session):
    _, _, link = await _live_link(session)
    now = utcnow()
    fraud = FraudService(session)

    session.add_all(_clicks(link, 60, now=now))
    await session.flush()
    await fraud.check_clicks(link.id, now=now)
    await fraud.check_clicks(link.id, now=now)

    flags = await _flags(session)
    assert len(flags) == 1
    assert (flags[0].type, flags[0].severity) == (FraudType.CLICK_SPAM, 3)
    assert flags[0].evidence["click_count"] == 60

    session.add_all(_clicks(link, 50, now=now))
    await session.flush()
    await fraud.check_clicks(link.id, now=now)

    flags = await _flags(session)
    assert len(flags) == 1
    assert flags[0].severity == 4


@pytest.mark.asyncio
async def test_single_ip_abuse(session):
    _, _, link = await _live_link(session)
    now = utcnow()
    session.add_all(_clicks(link, 25, now=now, ips=1))
    await session.flush()

    await FraudService(session).check_clicks(link.id, now=now)

    (flag,) = await _flags(session)
    assert flag.severity == 4
    assert flag.evidence == {"ip": "10.0.0.0", "click_count": 25, "tracking_link_id": link.id}


@pytest.mark.asyncio
async def test_bot_ratio(session):
    _, _, link = await _live_link(session)
    now = utcnow()
    session.add_all(_clicks(link, 12, now=now, fraud=10))
    await session.flush()

    await FraudService(session).check_bot_ratio(link.id, now=now)

    (flag,) = await _flags(session)
    assert flag.type == FraudType.BOT_DETECTED
    assert flag.severity == 5
    assert (flag.evidence["total_clicks"], flag.evidence["fraud_clicks"]) == (12, 10)


@pytest.mark.asyncio
async def test_old_clicks_are_outside_the_window(session):
    _, _, link = await _live_link(session)
    now = utcnow()
    session.add_all(_clicks(link, 60, now=now))
    await session.flush()

    await FraudService(session).check_clicks(link.id, now=now + timedelta(days=2))

    assert await _flags(session) == []


@pytest.mark.asyncio
async def test_conversion_rate_mismatch(session):
    campaign, creator, _ = await _live_link(session)
    metrics = (
        await session.execute(
            select(CampaignMetrics).where(
                CampaignMetrics.campaign_id == campaign.id, CampaignMetrics.creator_id == creator.id
            )
        )
    ).scalar_one()
    metrics.verified_clicks = 20
    metrics.verified_conversions = 15
    await session.flush()

    await FraudService(session).check_conversions(campaign.id, creator.id)

    (flag,) = await _flags(session)
    assert flag.type == FraudType.CONVERSION_MISMATCH
    assert flag.severity == 5


@pytest.mark.asyncio
async def test_view_spike(session):
    brand = await make_user(session, "brand@example.com", UserRole.BRAND)
    creator = await make_user(session, "creator@example.com", UserRole.CREATOR)
    campaign = await make_campaign(session, brand, CampaignType.VIEW, live=True, payout_per_1k_views=40)
    await CampaignService(session).invite_creator(brand, campaign.id, creator.id)
    tracking = TrackingService(session)
    for views in (100, 1_000):
        await tracking.record_view_snapshot(
            campaign_id=campaign.id,
            creator_id=creator.id,
            platform=Platform.INSTAGRAM,
            post_url="https://ig.example/p/spike",
            view_count=views,
        )

    await FraudService(session).check_view_spikes(campaign.id, creator.id)

    (flag,) = await _flags(session)
    assert flag.type == FraudType.VIEW_SPIKE
    assert flag.severity == 3
    assert flag.evidence["previous_views"] == 100
    assert flag.evidence["current_views"] == 1_000


@pytest.mark.asyncio
async def test_sweep_targets_cover_live_links(session):
    _, _, link = await _live_link(session)
    targets = await FraudService(session).sweep_targets()
    assert targets.link_ids == [link.id]
    assert targets.conversion_pairs == []
    assert targets.view_pairs == []
