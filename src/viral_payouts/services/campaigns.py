"""Campaign lifecycle, participations and the public marketplace."""

from __future__ import annotations

import logging
import re
import string
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Optional, Sequence

import shortuuid
from sqlalchemy import String, cast, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..errors import BadRequestError, ConflictError, ForbiddenError, NotFoundError
from ..models import (
    BrandProfile,
    Campaign,
    CampaignDailyAnalytics,
    CampaignMetrics,
    CampaignParticipation,
    CampaignStatus,
    CampaignType,
    Escrow,
    EscrowStatus,
    FraudFlag,
    ParticipationStatus,
    Platform,
    PromoCode,
    SavedCampaign,
    TrackingLink,
    User,
    UserRole,
    utcnow,
)
from .pagination import paginate

logger = logging.getLogger(__name__)

_slug_suffix = shortuuid.ShortUUID(alphabet=string.digits + string.ascii_lowercase)
_promo_chars = shortuuid.ShortUUID(alphabet=string.ascii_uppercase + string.digits)

EDITABLE_FIELDS = frozenset(
    {
        "name",
        "description",
        "cover_image",
        "product_name",
        "campaign_brief",
        "content_guidelines",
        "assets_link",
        "rules",
        "target_platforms",
        "target_audience",
        "target_categories",
        "total_budget",
        "payout_per_1k_views",
        "oauth_required",
        "payout_per_click",
        "landing_page_url",
        "payout_per_sale",
        "promo_code_format",
        "max_payout_per_creator",
        "start_date",
        "end_date",
        "duration",
    }
)

COPIED_FIELDS = EDITABLE_FIELDS - {"name", "start_date", "end_date"} | {"type", "platform_commission_rate"}


def slugify(name: str) -> str:
    base = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
    return f"{base or 'campaign'}-{_slug_suffix.random(length=8)}"


def generate_promo_code(fmt: str | None) -> str:
    code = _promo_chars.random(length=6)
    return fmt.replace("{{CODE}}", code) if fmt else code


@dataclass(slots=True)
class CampaignView:
    campaign: Campaign
    brand: User | None = None
    brand_profile: BrandProfile | None = None
    escrow: Escrow | None = None
    participant_count: int = 0


@dataclass(slots=True)
class CampaignDetail:
    campaign: Campaign
    escrow: Escrow | None
    participations: list[CampaignParticipation] = field(default_factory=list)
    metrics: list[CampaignMetrics] = field(default_factory=list)
    daily: list[CampaignDailyAnalytics] = field(default_factory=list)
    fraud_flags: list[FraudFlag] = field(default_factory=list)
    tracking_links: dict[int, TrackingLink] = field(default_factory=dict)
    promo_codes: dict[int, PromoCode] = field(default_factory=dict)


@dataclass(slots=True)
class ParticipationView:
    participation: CampaignParticipation
    campaign: Campaign
    tracking_link: TrackingLink | None = None
    promo_code: PromoCode | None = None
    metrics: CampaignMetrics | None = None


class CampaignService:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, campaign_id: int) -> Campaign:
        campaign = await self.session.get(Campaign, campaign_id)
        if not campaign:
            raise NotFoundError("Campaign not found")
        return campaign

    async def get_owned(self, user: User, campaign_id: int) -> Campaign:
        campaign = await self.session.get(Campaign, campaign_id)
        if not campaign or campaign.brand_id != user.id:
            raise ForbiddenError()
        return campaign

    async def get_escrow(self, campaign_id: int) -> Escrow | None:
        stmt = select(Escrow).where(Escrow.campaign_id == campaign_id)
        return (await self.session.execute(stmt)).scalar_one_or_none()

    async def create(self, user: User, **data: Any) -> Campaign:
        budget = data.get("total_budget") or 0
        if budget < settings.minimum_campaign_budget:
            raise BadRequestError(f"Minimum budget is Rs. {settings.minimum_campaign_budget:,}")
        if data["end_date"] <= data["start_date"]:
            raise BadRequestError("End date must be after start date")
        values = {key: value for key, value in data.items() if key in EDITABLE_FIELDS}
        if not values.get("duration"):
            values["duration"] = max((data["end_date"] - data["start_date"]).days, 1)
        for key in ("target_platforms", "target_audience", "target_categories"):
            values[key] = [getattr(item, "value", item) for item in values.get(key) or []]
        campaign = Campaign(
            brand_id=user.id,
            slug=slugify(data["name"]),
            type=data["type"],
            status=CampaignStatus.DRAFT,
            platform_commission_rate=(
                data.get("platform_commission_rate")
                if data.get("platform_commission_rate") is not None
                else settings.default_commission_rate
            ),
            oauth_required=bool(values.pop("oauth_required", False)),
            spent_budget=0,
            **values,
        )
        self.session.add(campaign)
        await self.session.flush()
        logger.info("Brand %s created campaign %s", user.id, campaign.id)
        return campaign

    async def update(self, user: User, campaign_id: int, **data: Any) -> Campaign:
        campaign = await self.get_owned(user, campaign_id)
        if campaign.status != CampaignStatus.DRAFT:
            raise BadRequestError("Only draft campaigns can be edited")
        budget = data.get("total_budget")
        if budget is not None and budget < settings.minimum_campaign_budget:
            raise BadRequestError(f"Minimum budget is Rs. {settings.minimum_campaign_budget:,}")
        for key, value in data.items():
            if key not in EDITABLE_FIELDS or value is None:
                continue
            if key in ("target_platforms", "target_audience", "target_categories"):
                value = [getattr(item, "value", item) for item in value]
            setattr(campaign, key, value)
        await self.session.flush()
        return campaign

    async def publish(self, user: User, campaign_id: int) -> Campaign:
        campaign = await self.get_owned(user, campaign_id)
        if not campaign.name or campaign.total_budget < settings.minimum_campaign_budget:
            raise BadRequestError(
                f"Please complete all required fields. Minimum budget is Rs. {settings.minimum_campaign_budget:,}"
            )
        escrow = await self.get_escrow(campaign.id)
        if not escrow or escrow.status != EscrowStatus.LOCKED:
            raise BadRequestError("Campaign budget must be funded in escrow before publishing")
        campaign.status = CampaignStatus.LIVE
        campaign.published_at = utcnow()
        profile = (
            await self.session.execute(select(BrandProfile).where(BrandProfile.user_id == user.id))
        ).scalar_one_or_none()
        if profile:
            profile.total_campaigns += 1
        await self.session.flush()
        logger.info("Campaign %s is live", campaign.id)
        return campaign

    async def pause(self, user: User, campaign_id: int) -> Campaign:
        campaign = await self.get_owned(user, campaign_id)
        if campaign.status != CampaignStatus.LIVE:
            raise BadRequestError("Only live campaigns can be paused")
        campaign.status = CampaignStatus.PAUSED
        await self.session.flush()
        return campaign

    async def resume(self, user: User, campaign_id: int) -> Campaign:
        campaign = await self.get_owned(user, campaign_id)
        if campaign.status != CampaignStatus.PAUSED:
            raise BadRequestError("Only paused campaigns can be resumed")
        campaign.status = CampaignStatus.LIVE
        await self.session.flush()
        return campaign

    async def duplicate(self, user: User, campaign_id: int) -> Campaign:
        source = await self.get_owned(user, campaign_id)
        now = utcnow()
        copy = Campaign(
            brand_id=user.id,
            slug=slugify(f"{source.name} copy"),
            name=f"{source.name} (Copy)",
            status=CampaignStatus.DRAFT,
            start_date=now,
            end_date=now + timedelta(days=source.duration),
            spent_budget=0,
            **{key: getattr(source, key) for key in COPIED_FIELDS},
        )
        self.session.add(copy)
        await self.session.flush()
        return copy

    async def _participant_counts(self, campaign_ids: Sequence[int]) -> dict[int, int]:
        if not campaign_ids:
            return {}
        stmt = (
            select(CampaignParticipation.campaign_id, func.count(CampaignParticipation.id))
            .where(CampaignParticipation.campaign_id.in_(list(campaign_ids)))
            .group_by(CampaignParticipation.campaign_id)
        )
        return {campaign_id: count for campaign_id, count in (await self.session.execute(stmt)).all()}

    async def _views(self, campaigns: Sequence[Campaign], *, with_escrow: bool = False) -> list[CampaignView]:
        ids = [campaign.id for campaign in campaigns]
        counts = await self._participant_counts(ids)
        brand_ids = {campaign.brand_id for campaign in campaigns}
        brands: dict[int, User] = {}
        profiles: dict[int, BrandProfile] = {}
        escrows: dict[int, Escrow] = {}
        if brand_ids:
            for brand in (await self.session.execute(select(User).where(User.id.in_(brand_ids)))).scalars():
                brands[brand.id] = brand
            stmt = select(BrandProfile).where(BrandProfile.user_id.in_(brand_ids))
            for profile in (await self.session.execute(stmt)).scalars():
                profiles[profile.user_id] = profile
        if with_escrow and ids:
            for escrow in (await self.session.execute(select(Escrow).where(Escrow.campaign_id.in_(ids)))).scalars():
                escrows[escrow.campaign_id] = escrow
        return [
            CampaignView(
                campaign=campaign,
                brand=brands.get(campaign.brand_id),
                brand_profile=profiles.get(campaign.brand_id),
                escrow=escrows.get(campaign.id),
                participant_count=counts.get(campaign.id, 0),
            )
            for campaign in campaigns
        ]

    async def list_for_brand(self, user: User) -> list[CampaignView]:
        stmt = select(Campaign).where(Campaign.brand_id == user.id).order_by(Campaign.id.desc())
        campaigns = list((await self.session.execute(stmt)).scalars())
        return await self._views(campaigns, with_escrow=True)

    async def get_view(self, campaign_id: int) -> CampaignView:
        campaign = await self.get(campaign_id)
        return (await self._views([campaign], with_escrow=True))[0]

    async def brand_detail(self, user: User, campaign_id: int) -> CampaignDetail:
        campaign = await self.get_owned(user, campaign_id)
        participations = list(
            (
                await self.session.execute(
                    select(CampaignParticipation)
                    .where(CampaignParticipation.campaign_id == campaign.id)
                    .order_by(CampaignParticipation.id.desc())
                )
            ).scalars()
        )
        metrics = list(
            (
                await self.session.execute(
                    select(CampaignMetrics)
                    .where(CampaignMetrics.campaign_id == campaign.id)
                    .order_by(CampaignMetrics.earned_amount.desc())
                )
            ).scalars()
        )
        daily = list(
            (
                await self.session.execute(
                    select(CampaignDailyAnalytics)
                    .where(CampaignDailyAnalytics.campaign_id == campaign.id)
                    .order_by(CampaignDailyAnalytics.date.desc())
                    .limit(30)
                )
            ).scalars()
        )
        flags = list(
            (
                await self.session.execute(
                    select(FraudFlag)
                    .where(FraudFlag.campaign_id == campaign.id)
                    .order_by(FraudFlag.id.desc())
                )
            ).scalars()
        )
        links = (
            await self.session.execute(select(TrackingLink).where(TrackingLink.campaign_id == campaign.id))
        ).scalars()
        codes = (
            await self.session.execute(select(PromoCode).where(PromoCode.campaign_id == campaign.id))
        ).scalars()
        return CampaignDetail(
            campaign=campaign,
            escrow=await self.get_escrow(campaign.id),
            participations=participations,
            metrics=metrics,
            daily=daily,
            fraud_flags=flags,
            tracking_links={link.id: link for link in links},
            promo_codes={code.id: code for code in codes},
        )

    async def _find_participation(self, campaign_id: int, creator_id: int) -> CampaignParticipation | None:
        stmt = select(CampaignParticipation).where(
            CampaignParticipation.campaign_id == campaign_id,
            CampaignParticipation.creator_id == creator_id,
        )
        return (await self.session.execute(stmt)).scalar_one_or_none()

    async def _unique_promo_code(self, fmt: str | None) -> str:
        while True:
            code = generate_promo_code(fmt)
            exists = await self.session.execute(select(PromoCode.id).where(PromoCode.code == code))
            if exists.first() is None:
                return code

    async def _provision(self, campaign: Campaign, participation: CampaignParticipation) -> None:
        """Give an approved creator a tracking link or promo code and a metrics row."""

        if campaign.type == CampaignType.CLICK and campaign.landing_page_url:
            link = TrackingLink(
                campaign_id=campaign.id,
                creator_id=participation.creator_id,
                slug=f"{campaign.slug}-{_slug_suffix.random(length=6)}",
                destination_url=campaign.landing_page_url,
                is_active=True,
                click_count=0,
            )
            self.session.add(link)
            await self.session.flush()
            participation.tracking_link_id = link.id

        if campaign.type == CampaignType.CONVERSION:
            promo = PromoCode(
                campaign_id=campaign.id,
                creator_id=participation.creator_id,
                code=await self._unique_promo_code(campaign.promo_code_format),
                is_active=True,
                usage_count=0,
            )
            self.session.add(promo)
            await self.session.flush()
            participation.promo_code_id = promo.id

        stmt = select(CampaignMetrics.id).where(
            CampaignMetrics.campaign_id == campaign.id,
            CampaignMetrics.creator_id == participation.creator_id,
        )
        if (await self.session.execute(stmt)).first() is None:
            self.session.add(
                CampaignMetrics(
                    campaign_id=campaign.id,
                    creator_id=participation.creator_id,
                    verified_views=0,
                    verified_clicks=0,
                    verified_conversions=0,
                    earned_amount=0,
                    paid_amount=0,
                )
            )
        campaign.total_participants += 1
        await self.session.flush()

    async def invite_creator(self, user: User, campaign_id: int, creator_id: int) -> CampaignParticipation:
        campaign = await self.get_owned(user, campaign_id)
        if await self._find_participation(campaign.id, creator_id):
            raise ConflictError("Creator is already part of this campaign")
        creator = await self.session.get(User, creator_id)
        if not creator or creator.role != UserRole.CREATOR:
            raise NotFoundError("Creator not found")
        now = utcnow()
        participation = CampaignParticipation(
            campaign_id=campaign.id,
            creator_id=creator.id,
            status=ParticipationStatus.APPROVED,
            approved_at=now,
            selected_platforms=[],
        )
        self.session.add(participation)
        await self.session.flush()
        await self._provision(campaign, participation)
        logger.info("Creator %s invited to campaign %s", creator.id, campaign.id)
        return participation

    async def _reviewable(self, user: User, participation_id: int) -> tuple[CampaignParticipation, Campaign]:
        participation = await self.session.get(CampaignParticipation, participation_id)
        if not participation:
            raise NotFoundError("Participation not found")
        campaign = await self.get(participation.campaign_id)
        if campaign.brand_id != user.id:
            raise ForbiddenError()
        return participation, campaign

    async def approve_participation(
        self, user: User, participation_id: int, note: str | None = None
    ) -> CampaignParticipation:
        participation, campaign = await self._reviewable(user, participation_id)
        if participation.status != ParticipationStatus.APPLIED:
            raise BadRequestError("Can only approve pending applications")
        now = utcnow()
        participation.status = ParticipationStatus.APPROVED
        participation.approved_at = now
        participation.reviewed_at = now
        participation.review_note = note
        await self._provision(campaign, participation)
        return participation

    async def reject_participation(self, user: User, participation_id: int, reason: str) -> CampaignParticipation:
        participation, _ = await self._reviewable(user, participation_id)
        participation.status = ParticipationStatus.REJECTED
        participation.review_note = reason
        participation.reviewed_at = utcnow()
        await self.session.flush()
        return participation

    async def apply(self, user: User, campaign_id: int, platforms: Sequence[Platform]) -> CampaignParticipation:
        campaign = await self.session.get(Campaign, campaign_id)
        if not campaign or campaign.status != CampaignStatus.LIVE:
            raise BadRequestError("Campaign is not accepting applications")
        if await self._find_participation(campaign.id, user.id):
            raise ConflictError("You have already applied to this campaign")
        participation = CampaignParticipation(
            campaign_id=campaign.id,
            creator_id=user.id,
            platform=platforms[0] if platforms else None,
            selected_platforms=[platform.value for platform in platforms],
            status=ParticipationStatus.APPLIED,
        )
        self.session.add(participation)
        await self.session.flush()
        return participation

    async def submit_content(
        self,
        user: User,
        participation_id: int,
        *,
        content_url: str,
        platform: Platform,
        caption: Optional[str] = None,
    ) -> CampaignParticipation:
        participation = await self.session.get(CampaignParticipation, participation_id)
        if not participation or participation.creator_id != user.id:
            raise ForbiddenError()
        if participation.status not in (ParticipationStatus.APPROVED, ParticipationStatus.ACTIVE):
            raise BadRequestError("Cannot submit content at this stage")
        participation.content_url = content_url
        participation.platform = platform
        participation.caption = caption
        participation.status = ParticipationStatus.ACTIVE
        participation.submitted_at = utcnow()
        await self.session.flush()
        return participation

    async def _participation_view(self, participation: CampaignParticipation) -> ParticipationView:
        return ParticipationView(
            participation=participation,
            campaign=await self.get(participation.campaign_id),
            tracking_link=(
                await self.session.get(TrackingLink, participation.tracking_link_id)
                if participation.tracking_link_id
                else None
            ),
            promo_code=(
                await self.session.get(PromoCode, participation.promo_code_id)
                if participation.promo_code_id
                else None
            ),
        )

    async def my_participations(
        self, user: User, status: ParticipationStatus | None = None
    ) -> list[ParticipationView]:
        stmt = select(CampaignParticipation).where(CampaignParticipation.creator_id == user.id)
        if status:
            stmt = stmt.where(CampaignParticipation.status == status)
        stmt = stmt.order_by(CampaignParticipation.id.desc())
        rows = (await self.session.execute(stmt)).scalars()
        return [await self._participation_view(row) for row in rows]

    async def my_participation(self, user: User, participation_id: int) -> ParticipationView:
        participation = await self.session.get(CampaignParticipation, participation_id)
        if not participation or participation.creator_id != user.id:
            raise NotFoundError("Participation not found")
        view = await self._participation_view(participation)
        view.metrics = (
            await self.session.execute(
                select(CampaignMetrics).where(
                    CampaignMetrics.campaign_id == participation.campaign_id,
                    CampaignMetrics.creator_id == user.id,
                )
            )
        ).scalar_one_or_none()
        return view

    async def marketplace(
        self,
        *,
        type: CampaignType | None = None,
        platform: Platform | None = None,
        category: str | None = None,
        search: str | None = None,
        cursor: int | None = None,
        limit: int = 20,
        now: datetime | None = None,
    ) -> tuple[list[CampaignView], int | None]:
        stmt = select(Campaign).where(
            Campaign.status == CampaignStatus.LIVE,
            Campaign.end_date > (now or utcnow()),
        )
        if type:
            stmt = stmt.where(Campaign.type == type)
        if platform:
            stmt = stmt.where(cast(Campaign.target_platforms, String).like(f'%"{platform.value}"%'))
        if category:
            stmt = stmt.where(cast(Campaign.target_categories, String).like(f'%"{category}"%'))
        if search:
            pattern = f"%{search.lower()}%"
            stmt = stmt.where(
                or_(
                    func.lower(Campaign.name).like(pattern),
                    func.lower(Campaign.product_name).like(pattern),
                )
            )
        rows, next_cursor = await paginate(self.session, stmt, Campaign.id, limit=limit, cursor=cursor)
        return await self._views(rows), next_cursor

    async def toggle_saved(self, user: User, campaign_id: int) -> bool:
        await self.get(campaign_id)
        stmt = select(SavedCampaign).where(
            SavedCampaign.user_id == user.id,
            SavedCampaign.campaign_id == campaign_id,
        )
        existing = (await self.session.execute(stmt)).scalar_one_or_none()
        if existing:
            await self.session.delete(existing)
            await self.session.flush()
            return False
        self.session.add(SavedCampaign(user_id=user.id, campaign_id=campaign_id))
        await self.session.flush()
        return True

    async def saved(self, user: User) -> list[CampaignView]:
        stmt = (
            select(Campaign)
            .join(SavedCampaign, SavedCampaign.campaign_id == Campaign.id)
            .where(SavedCampaign.user_id == user.id)
            .order_by(SavedCampaign.id.desc())
        )
        campaigns = list((await self.session.execute(stmt)).scalars())
        return await self._views(campaigns)


__all__ = [
    "CampaignDetail",
    "CampaignService",
    "CampaignView",
    "ParticipationView",
    "generate_promo_code",
    "slugify",
]
