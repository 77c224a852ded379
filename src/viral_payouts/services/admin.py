"""Admin oversight of campaigns and users."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Sequence

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..errors import NotFoundError
from ..models import (
    BrandProfile,
    Campaign,
    CampaignDailyAnalytics,
    CampaignMetrics,
    CampaignParticipation,
    CampaignStatus,
    CreatorProfile,
    Escrow,
    FraudFlag,
    ParticipationStatus,
    PromoCode,
    TrackingLink,
    User,
    UserRole,
)
from .audit import record_admin_action
from .pagination import paginate

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class CampaignOversight:
    campaign: Campaign
    brand: User | None
    brand_profile: BrandProfile | None
    escrow: Escrow | None
    participations: list[CampaignParticipation] = field(default_factory=list)
    tracking_links: list[TrackingLink] = field(default_factory=list)
    promo_codes: list[PromoCode] = field(default_factory=list)
    metrics: list[CampaignMetrics] = field(default_factory=list)
    daily: list[CampaignDailyAnalytics] = field(default_factory=list)
    fraud_flags: list[FraudFlag] = field(default_factory=list)


@dataclass(slots=True)
class UserRow:
    user: User
    brand_profile: BrandProfile | None
    creator_profile: CreatorProfile | None


class AdminService:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def _all(self, stmt) -> list:
        return list((await self.session.execute(stmt)).scalars())

    async def list_campaigns(
        self,
        *,
        status: CampaignStatus | None = None,
        search: str | None = None,
        limit: int = 50,
        cursor: int | None = None,
    ) -> tuple[Sequence[Campaign], int | None]:
        stmt = select(Campaign)
        if status:
            stmt = stmt.where(Campaign.status == status)
        if search:
            pattern = f"%{search.lower()}%"
            stmt = stmt.where(or_(func.lower(Campaign.name).like(pattern), Campaign.slug.like(pattern)))
        return await paginate(self.session, stmt, Campaign.id, limit=limit, cursor=cursor)

    async def flag_counts(self, campaign_ids: Sequence[int]) -> dict[int, int]:
        if not campaign_ids:
            return {}
        stmt = (
            select(FraudFlag.campaign_id, func.count(FraudFlag.id))
            .where(FraudFlag.campaign_id.in_(list(campaign_ids)))
            .group_by(FraudFlag.campaign_id)
        )
        return dict((await self.session.execute(stmt)).all())

    async def campaign_oversight(self, campaign_id: int) -> CampaignOversight:
        campaign = await self.session.get(Campaign, campaign_id)
        if not campaign:
            raise NotFoundError("Campaign not found")
        return CampaignOversight(
            campaign=campaign,
            brand=await self.session.get(User, campaign.brand_id),
            brand_profile=(
                await self.session.execute(
                    select(BrandProfile).where(BrandProfile.user_id == campaign.brand_id)
                )
            ).scalar_one_or_none(),
            escrow=(
                await self.session.execute(select(Escrow).where(Escrow.campaign_id == campaign.id))
            ).scalar_one_or_none(),
            participations=await self._all(
                select(CampaignParticipation).where(CampaignParticipation.campaign_id == campaign.id)
            ),
            tracking_links=await self._all(select(TrackingLink).where(TrackingLink.campaign_id == campaign.id)),
            promo_codes=await self._all(select(PromoCode).where(PromoCode.campaign_id == campaign.id)),
            metrics=await self._all(select(CampaignMetrics).where(CampaignMetrics.campaign_id == campaign.id)),
            daily=await self._all(
                select(CampaignDailyAnalytics)
                .where(CampaignDailyAnalytics.campaign_id == campaign.id)
                .order_by(CampaignDailyAnalytics.date.desc())
                .limit(30)
            ),
            fraud_flags=await self._all(
                select(FraudFlag).where(FraudFlag.campaign_id == campaign.id).order_by(FraudFlag.id.desc())
            ),
        )

    async def freeze_creator(self, creator_id: int, *, reason: str, admin_id: int) -> User:
        creator = await self.session.get(User, creator_id)
        if not creator or creator.role != UserRole.CREATOR:
            raise NotFoundError("Creator not found")
        creator.is_active = False
        await self.session.execute(
            update(CampaignParticipation)
            .where(
                CampaignParticipation.creator_id == creator.id,
                CampaignParticipation.status.in_((ParticipationStatus.APPROVED, ParticipationStatus.ACTIVE)),
            )
            .values(status=ParticipationStatus.FROZEN)
        )
        await self.session.execute(
            update(TrackingLink).where(TrackingLink.creator_id == creator.id).values(is_active=False)
        )
        await self.session.execute(
            update(PromoCode).where(PromoCode.creator_id == creator.id).values(is_active=False)
        )
        await record_admin_action(
            self.session, admin_id=admin_id, action="freeze_creator",
            target_table="users", target_id=creator.id, reason=reason,
        )
        logger.warning("Creator %s frozen by admin %s: %s", creator.id, admin_id, reason)
        return creator

    async def pause_campaign(self, campaign_id: int, *, reason: str, admin_id: int) -> Campaign:
        campaign = await self.session.get(Campaign, campaign_id)
        if not campaign:
            raise NotFoundError("Campaign not found")
        campaign.status = CampaignStatus.PAUSED
        await record_admin_action(
            self.session, admin_id=admin_id, action="pause_campaign",
            target_table="campaigns", target_id=campaign.id, reason=reason,
        )
        await self.session.flush()
        return campaign

    async def list_users(
        self,
        *,
        role: UserRole | None = None,
        search: str | None = None,
        limit: int = 50,
        cursor: int | None = None,
    ) -> tuple[list[UserRow], int | None]:
        stmt = select(User)
        if role:
            stmt = stmt.where(User.role == role)
        if search:
            pattern = f"%{search.lower()}%"
            stmt = stmt.where(or_(func.lower(User.name).like(pattern), func.lower(User.email).like(pattern)))
        users, next_cursor = await paginate(self.session, stmt, User.id, limit=limit, cursor=cursor)
        ids = [user.id for user in users]
        brands: dict[int, BrandProfile] = {}
        creators: dict[int, CreatorProfile] = {}
        if ids:
            for profile in await self._all(select(BrandProfile).where(BrandProfile.user_id.in_(ids))):
                brands[profile.user_id] = profile
            for profile in await self._all(select(CreatorProfile).where(CreatorProfile.user_id.in_(ids))):
                creators[profile.user_id] = profile
        rows = [UserRow(user=user, brand_profile=brands.get(user.id), creator_profile=creators.get(user.id)) for user in users]
        return rows, next_cursor

    async def _verify(self, model, user_id: int, *, admin_id: int, label: str):
        profile = (await self.session.execute(select(model).where(model.user_id == user_id))).scalar_one_or_none()
        if not profile:
            raise NotFoundError(f"{label} profile not found")
        profile.is_verified = True
        await record_admin_action(
            self.session, admin_id=admin_id, action=f"verify_{label.lower()}",
            target_table=model.__tablename__, target_id=profile.id,
        )
        await self.session.flush()
        return profile

    async def verify_brand(self, user_id: int, *, admin_id: int) -> BrandProfile:
        return await self._verify(BrandProfile, user_id, admin_id=admin_id, label="Brand")

    async def verify_creator(self, user_id: int, *, admin_id: int) -> CreatorProfile:
        return await self._verify(CreatorProfile, user_id, admin_id=admin_id, label="Creator")


__all__ = ["AdminService", "CampaignOversight", "UserRow"]
