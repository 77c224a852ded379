"""Campaign management for brands, participation for creators, the marketplace."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ...db import get_session
from ...models import BrandProfile, CampaignType, ParticipationStatus, Platform, User
from ...services.campaigns import CampaignService, CampaignView, ParticipationView
from ..deps import get_current_user, require_brand, require_creator
from ..schemas import (
    ApplyIn,
    BrandSummaryOut,
    CampaignCardOut,
    CampaignCreateIn,
    CampaignDetailOut,
    CampaignOut,
    CampaignUpdateIn,
    InviteIn,
    Page,
    ParticipationDetailOut,
    ParticipationOut,
    RejectIn,
    ReviewIn,
    SavedOut,
    SubmitContentIn,
)

router = APIRouter(prefix="/api/campaigns", tags=["campaigns"])


def brand_summary(brand: User | None, profile: BrandProfile | None) -> BrandSummaryOut | None:
    if brand is None:
        return None
    return BrandSummaryOut(
        id=brand.id,
        name=brand.name,
        image=brand.image,
        company_name=profile.company_name if profile else None,
        is_verified=profile.is_verified if profile else False,
    )


def campaign_card(view: CampaignView) -> CampaignCardOut:
    return CampaignCardOut(
        campaign=CampaignOut.model_validate(view.campaign),
        brand=brand_summary(view.brand, view.brand_profile),
        escrow=view.escrow,
        participant_count=view.participant_count,
    )


def participation_detail(view: ParticipationView) -> ParticipationDetailOut:
    return ParticipationDetailOut.model_validate(view, from_attributes=True)


@router.get("/marketplace", response_model=Page[CampaignCardOut])
async def marketplace(
    type: Optional[CampaignType] = None,
    platform: Optional[Platform] = None,
    category: Optional[str] = None,
    search: Optional[str] = None,
    cursor: Optional[int] = None,
    limit: int = Query(default=20, ge=1, le=50),
    session: AsyncSession = Depends(get_session),
):
    views, next_cursor = await CampaignService(session).marketplace(
        type=type,
        platform=platform,
        category=category,
        search=search,
        cursor=cursor,
        limit=limit,
    )
    return Page[CampaignCardOut](items=[campaign_card(view) for view in views], next_cursor=next_cursor)


@router.get("/saved", response_model=list[CampaignCardOut])
async def saved_campaigns(user: User = Depends(get_current_user), session: AsyncSession = Depends(get_session)):
    return [campaign_card(view) for view in await CampaignService(session).saved(user)]


@router.get("/participations", response_model=list[ParticipationDetailOut])
async def my_participations(
    status: Optional[ParticipationStatus] = None,
    user: User = Depends(require_creator),
    session: AsyncSession = Depends(get_session),
):
    views = await CampaignService(session).my_participations(user, status)
    return [participation_detail(view) for view in views]


@router.get("/participations/{participation_id}", response_model=ParticipationDetailOut)
async def my_participation(
    participation_id: int,
    user: User = Depends(require_creator),
    session: AsyncSession = Depends(get_session),
):
    return participation_detail(await CampaignService(session).my_participation(user, participation_id))


@router.post("/participations/{participation_id}/approve", response_model=ParticipationOut)
async def approve_participation(
    participation_id: int,
    body: ReviewIn,
    user: User = Depends(require_brand),
    session: AsyncSession = Depends(get_session),
):
    return await CampaignService(session).approve_participation(user, participation_id, body.note)


@router.post("/participations/{participation_id}/reject", response_model=ParticipationOut)
async def reject_participation(
    participation_id: int,
    body: RejectIn,
    user: User = Depends(require_brand),
    session: AsyncSession = Depends(get_session),
):
    return await CampaignService(session).reject_participation(user, participation_id, body.reason)


@router.post("/participations/{participation_id}/submit", response_model=ParticipationOut)
async def submit_content(
    participation_id: int,
    body: SubmitContentIn,
    user: User = Depends(require_creator),
    session: AsyncSession = Depends(get_session),
):
    return await CampaignService(session).submit_content(
        user,
        participation_id,
        content_url=str(body.content_url),
        platform=body.platform,
        caption=body.caption,
    )


@router.post("", response_model=CampaignOut, status_code=201)
async def create_campaign(
    body: CampaignCreateIn,
    user: User = Depends(require_brand),
    session: AsyncSession = Depends(get_session),
):
    return await CampaignService(session).create(user, **body.model_dump())


@router.get("", response_model=list[CampaignCardOut])
async def brand_campaigns(user: User = Depends(require_brand), session: AsyncSession = Depends(get_session)):
    return [campaign_card(view) for view in await CampaignService(session).list_for_brand(user)]


@router.get("/{campaign_id}", response_model=CampaignCardOut)
async def get_campaign(campaign_id: int, session: AsyncSession = Depends(get_session)):
    return campaign_card(await CampaignService(session).get_view(campaign_id))


@router.get("/{campaign_id}/detail", response_model=CampaignDetailOut)
async def brand_campaign_detail(
    campaign_id: int,
    user: User = Depends(require_brand),
    session: AsyncSession = Depends(get_session),
):
    detail = await CampaignService(session).brand_detail(user, campaign_id)
    return CampaignDetailOut(
        campaign=CampaignOut.model_validate(detail.campaign),
        escrow=detail.escrow,
        participations=detail.participations,
        metrics=detail.metrics,
        daily=detail.daily,
        fraud_flags=detail.fraud_flags,
        tracking_links=list(detail.tracking_links.values()),
        promo_codes=list(detail.promo_codes.values()),
    )


@router.patch("/{campaign_id}", response_model=CampaignOut)
async def update_campaign(
    campaign_id: int,
    body: CampaignUpdateIn,
    user: User = Depends(require_brand),
    session: AsyncSession = Depends(get_session),
):
    return await CampaignService(session).update(user, campaign_id, **body.model_dump(exclude_unset=True))


@router.post("/{campaign_id}/publish", response_model=CampaignOut)
async def publish_campaign(
    campaign_id: int,
    user: User = Depends(require_brand),
    session: AsyncSession = Depends(get_session),
):
    return await CampaignService(session).publish(user, campaign_id)


@router.post("/{campaign_id}/pause", response_model=CampaignOut)
async def pause_campaign(
    campaign_id: int,
    user: User = Depends(require_brand),
    session: AsyncSession = Depends(get_session),
):
    return await CampaignService(session).pause(user, campaign_id)


@router.post("/{campaign_id}/resume", response_model=CampaignOut)
async def resume_campaign(
    campaign_id: int,
    user: User = Depends(require_brand),
    session: AsyncSession = Depends(get_session),
):
    return await CampaignService(session).resume(user, campaign_id)


@router.post("/{campaign_id}/duplicate", response_model=CampaignOut, status_code=201)
async def duplicate_campaign(
    campaign_id: int,
    user: User = Depends(require_brand),
    session: AsyncSession = Depends(get_session),
):
    return await CampaignService(session).duplicate(user, campaign_id)


@router.post("/{campaign_id}/invite", response_model=ParticipationOut, status_code=201)
async def invite_creator(
    campaign_id: int,
    body: InviteIn,
    user: User = Depends(require_brand),
    session: AsyncSession = Depends(get_session),
):
    return await CampaignService(session).invite_creator(user, campaign_id, body.creator_id)


@router.post("/{campaign_id}/apply", response_model=ParticipationOut, status_code=201)
async def apply_to_campaign(
    campaign_id: int,
    body: ApplyIn,
    user: User = Depends(require_creator),
    session: AsyncSession = Depends(get_session),
):
    return await CampaignService(session).apply(user, campaign_id, body.platforms)


@router.post("/{campaign_id}/save", response_model=SavedOut)
async def toggle_save_campaign(
    campaign_id: int,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    return SavedOut(saved=await CampaignService(session).toggle_saved(user, campaign_id))
