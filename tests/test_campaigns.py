from datetime import datetime, timedelta

import pytest
from sqlalchemy import select

from viral_payouts.api.schemas import CampaignCreateIn, CampaignUpdateIn
from viral_payouts.errors import BadRequestError, ConflictError, ForbiddenError
from viral_payouts.models import (
    BrandProfile,
    CampaignMetrics,
    CampaignStatus,
    CampaignType,
    ParticipationStatus,
    Platform,
    PromoCode,
    TrackingLink,
    UserRole,
    utcnow,
)
from viral_payouts.services.campaigns import CampaignService, generate_promo_code, slugify
from viral_payouts.services.escrow import EscrowService

from factories import fund_brand, make_campaign, make_user


def test_campaign_dates_are_stored_as_naive_utc():
    body = CampaignCreateIn(
        name="Monsoon Sale",
        type=CampaignType.CLICK,
        total_budget=30_000,
        start_date="2030-06-01T05:30:00+05:30",
        end_date="2030-07-01T00:00:00",
        payout_per_click=3,
        landing_page_url="https://shop.example.com/monsoon",
        target_platforms=["INSTAGRAM"],
    )
    assert body.start_date == datetime(2030, 6, 1)
    assert body.start_date.tzinfo is None
    assert body.end_date - body.start_date == timedelta(days=30)

    update = CampaignUpdateIn(end_date="2030-07-01T10:00:00-02:00")
    assert update.end_date == datetime(2030, 7, 1, 12)
    assert update.start_date is None


def test_slug_and_promo_code_formats():
    slug = slugify("Diwali Sale 2024!")
    assert slug.startswith("diwali-sale-2024-")
    assert len(slug) == len("diwali-sale-2024-") + 8

    code = generate_promo_code("FEST-{{CODE}}")
    assert code.startswith("FEST-") and len(code) == 11
    assert len(generate_promo_code(None)) == 6


@pytest.mark.asyncio
async def test_create_validates_budget_and_dates(session):
    brand = await make_user(session, "brand@example.com", UserRole.BRAND)
    with pytest.raises(BadRequestError, match="Minimum budget"):
        await make_campaign(session, brand, total_budget=10_000)
    now = utcnow()
    with pytest.raises(BadRequestError, match="End date"):
        await make_campaign(session, brand, start_date=now, end_date=now - timedelta(days=1))

    campaign = await make_campaign(session, brand)
    assert campaign.status == CampaignStatus.DRAFT
    assert campaign.duration == 30
    assert campaign.platform_commission_rate == 0.15


@pytest.mark.asyncio
async def test_lifecycle_from_draft_to_live_with_approved_creator(session):
    brand = await make_user(session, "brand@example.com", UserRole.BRAND)
    creator = await make_user(session, "creator@example.com", UserRole.CREATOR)
    campaigns = CampaignService(session)
    await fund_brand(session, brand, 60_000)
    campaign = await make_campaign(session, brand)

    with pytest.raises(BadRequestError, match="escrow"):
        await campaigns.publish(brand, campaign.id)
    await EscrowService(session).lock_funds(brand, campaign.id, 50_000)
    assert campaign.status == CampaignStatus.FUNDING
    await campaigns.publish(brand, campaign.id)
    assert campaign.status == CampaignStatus.LIVE
    assert campaign.published_at is not None
    profile = (await session.execute(select(BrandProfile).where(BrandProfile.user_id == brand.id))).scalar_one()
    assert profile.total_campaigns == 1

    with pytest.raises(BadRequestError, match="draft"):
        await campaigns.update(brand, campaign.id, name="Renamed")

    participation = await campaigns.apply(creator, campaign.id, [Platform.INSTAGRAM])
    assert participation.status == ParticipationStatus.APPLIED
    assert participation.selected_platforms == ["INSTAGRAM"]
    with pytest.raises(ConflictError):
        await campaigns.apply(creator, campaign.id, [Platform.INSTAGRAM])

    await campaigns.approve_participation(brand, participation.id, note="Welcome")
    assert participation.status == ParticipationStatus.APPROVED
    link = await session.get(TrackingLink, participation.tracking_link_id)
    assert link.slug.startswith(campaign.slug)
    assert link.destination_url == campaign.landing_page_url
    metrics = (
        await session.execute(select(CampaignMetrics).where(CampaignMetrics.campaign_id == campaign.id))
    ).scalar_one()
    assert metrics.creator_id == creator.id
    assert campaign.total_participants == 1
    with pytest.raises(BadRequestError, match="pending"):
        await campaigns.approve_participation(brand, participation.id)

    await campaigns.submit_content(
        creator, participation.id, content_url="https://instagram.com/p/abc", platform=Platform.INSTAGRAM
    )
    assert participation.status == ParticipationStatus.ACTIVE

    await campaigns.pause(brand, campaign.id)
    with pytest.raises(BadRequestError):
        await campaigns.pause(brand, campaign.id)
    await campaigns.resume(brand, campaign.id)
    assert campaign.status == CampaignStatus.LIVE


@pytest.mark.asyncio
async def test_invite_provisions_promo_code_for_conversion_campaign(session):
    brand = await make_user(session, "brand@example.com", UserRole.BRAND)
    creator = await make_user(session, "creator@example.com", UserRole.CREATOR)
    campaign = await make_campaign(
        session,
        brand,
        CampaignType.CONVERSION,
        payout_per_click=None,
        payout_per_sale=150,
        promo_code_format="SUMMER-{{CODE}}",
    )
    campaigns = CampaignService(session)

    participation = await campaigns.invite_creator(brand, campaign.id, creator.id)

    assert participation.status == ParticipationStatus.APPROVED
    assert participation.tracking_link_id is None
    code = await session.get(PromoCode, participation.promo_code_id)
    assert code.code.startswith("SUMMER-")
    with pytest.raises(ConflictError):
        await campaigns.invite_creator(brand, campaign.id, creator.id)


@pytest.mark.asyncio
async def test_only_owner_manages_campaign(session):
    brand = await make_user(session, "brand@example.com", UserRole.BRAND)
    other = await make_user(session, "other@example.com", UserRole.BRAND)
    campaign = await make_campaign(session, brand)
    with pytest.raises(ForbiddenError):
        await CampaignService(session).update(other, campaign.id, name="Hijacked")
    with pytest.raises(ForbiddenError):
        await CampaignService(session).brand_detail(other, campaign.id)


@pytest.mark.asyncio
async def test_duplicate_starts_a_fresh_draft(session):
    brand = await make_user(session, "brand@example.com", UserRole.BRAND)
    campaign = await make_campaign(session, brand, live=True)
    copy = await CampaignService(session).duplicate(brand, campaign.id)
    assert copy.id != campaign.id
    assert copy.name == "Summer Launch (Copy)"
    assert copy.status == CampaignStatus.DRAFT
    assert copy.total_budget == campaign.total_budget
    assert copy.slug != campaign.slug


@pytest.mark.asyncio
async def test_marketplace_lists_live_campaigns_with_filters(session):
    brand = await make_user(session, "brand@example.com", UserRole.BRAND)
    live = await make_campaign(session, brand, live=True, name="Sneaker Drop")
    await make_campaign(session, brand, name="Still Drafting")
    campaigns = CampaignService(session)

    views, next_cursor = await campaigns.marketplace()
    assert [view.campaign.id for view in views] == [live.id]
    assert views[0].brand.id == brand.id
    assert next_cursor is None

    assert (await campaigns.marketplace(platform=Platform.YOUTUBE))[0] == []
    assert len((await campaigns.marketplace(platform=Platform.INSTAGRAM))[0]) == 1
    assert len((await campaigns.marketplace(search="sneaker"))[0]) == 1
    assert (await campaigns.marketplace(type=CampaignType.VIEW))[0] == []


@pytest.mark.asyncio
async def test_toggle_saved(session):
    brand = await make_user(session, "brand@example.com", UserRole.BRAND)
    creator = await make_user(session, "creator@example.com", UserRole.CREATOR)
    campaign = await make_campaign(session, brand, live=True)
    campaigns = CampaignService(session)

    assert await campaigns.toggle_saved(creator, campaign.id) is True
    assert [view.campaign.id for view in await campaigns.saved(creator)] == [campaign.id]
    assert await campaigns.toggle_saved(creator, campaign.id) is False
    assert await campaigns.saved(creator) == []
