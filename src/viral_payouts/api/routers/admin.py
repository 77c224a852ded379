"""Admin back office: payouts, fraud review, oversight and users."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ...db import get_session
from ...models import CampaignStatus, FraudFlagStatus, FraudType, User, UserRole
from ...services.admin import AdminService
from ...services.fraud import FraudService
from ...services.payouts import PayoutService
from ...services.tracking import TrackingService
from ..deps import require_admin
from ..schemas import (
    BatchApproveIn,
    BrandProfileOut,
    CampaignOut,
    CampaignOversightOut,
    CampaignRowOut,
    CountOut,
    CreatorLinkOut,
    CreatorProfileOut,
    FraudFlagIn,
    FraudFlagOut,
    Page,
    PayoutOut,
    ReasonIn,
    ResolveFlagIn,
    TrackingLinkOut,
    UserOut,
    UserRowOut,
    ViewSnapshotIn,
    ViewSnapshotOut,
)
from .campaigns import brand_summary

router = APIRouter(prefix="/api/admin", tags=["admin"])


@router.get("/payouts/pending", response_model=Page[PayoutOut])
async def get_pending_payouts(
    cursor: Optional[int] = None,
    limit: int = Query(default=50, ge=1, le=100),
    admin: User = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    items, next_cursor = await PayoutService(session).list_pending_approval(limit=limit, cursor=cursor)
    return Page[PayoutOut](items=items, next_cursor=next_cursor)


@router.get("/payouts/pending/count", response_model=CountOut)
async def count_pending_payouts(admin: User = Depends(require_admin), session: AsyncSession = Depends(get_session)):
    return CountOut(count=await PayoutService(session).count_pending_approval())


@router.post("/payouts/batch-approve", response_model=CountOut)
async def batch_approve_payouts(
    body: BatchApproveIn,
    admin: User = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    return CountOut(count=await PayoutService(session).batch_approve(body.payout_ids, admin_id=admin.id))


@router.post("/payouts/{payout_id}/approve", response_model=PayoutOut)
async def approve_payout(
    payout_id: int,
    admin: User = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    return await PayoutService(session).approve(payout_id, admin_id=admin.id)


@router.post("/payouts/{payout_id}/reject", response_model=PayoutOut)
async def reject_payout(
    payout_id: int,
    body: ReasonIn,
    admin: User = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    return await PayoutService(session).reject(payout_id, admin_id=admin.id, reason=body.reason)


@router.post("/payouts/{payout_id}/reverse", response_model=PayoutOut)
async def reverse_payout(
    payout_id: int,
    body: ReasonIn,
    admin: User = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    return await PayoutService(session).reverse(payout_id, admin_id=admin.id, reason=body.reason)


@router.get("/fraud-flags", response_model=Page[FraudFlagOut])
async def get_fraud_flags(
    status: Optional[FraudFlagStatus] = None,
    type: Optional[FraudType] = None,
    min_severity: Optional[int] = Query(default=None, ge=1, le=5),
    cursor: Optional[int] = None,
    limit: int = Query(default=50, ge=1, le=100),
    admin: User = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    items, next_cursor = await FraudService(session).list_flags(
        status=status, type=type, min_severity=min_severity, limit=limit, cursor=cursor
    )
    return Page[FraudFlagOut](items=items, next_cursor=next_cursor)


@router.post("/fraud-flags", response_model=FraudFlagOut, status_code=201)
async def create_fraud_flag(
    body: FraudFlagIn,
    admin: User = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    return await FraudService(session).create_flag(
        campaign_id=body.campaign_id,
        type=body.type,
        severity=body.severity,
        description=body.description,
        creator_id=body.creator_id,
        evidence=body.evidence,
        admin_id=admin.id,
    )


@router.post("/fraud-flags/{flag_id}/resolve", response_model=FraudFlagOut)
async def resolve_fraud_flag(
    flag_id: int,
    body: ResolveFlagIn,
    admin: User = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    return await FraudService(session).resolve(flag_id, status=body.status, note=body.note, admin_id=admin.id)


@router.get("/campaigns", response_model=Page[CampaignRowOut])
async def list_campaigns(
    status: Optional[CampaignStatus] = None,
    search: Optional[str] = None,
    cursor: Optional[int] = None,
    limit: int = Query(default=50, ge=1, le=100),
    admin: User = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    service = AdminService(session)
    campaigns, next_cursor = await service.list_campaigns(status=status, search=search, limit=limit, cursor=cursor)
    counts = await service.flag_counts([campaign.id for campaign in campaigns])
    items = [
        CampaignRowOut(campaign=CampaignOut.model_validate(campaign), fraud_flag_count=counts.get(campaign.id, 0))
        for campaign in campaigns
    ]
    return Page[CampaignRowOut](items=items, next_cursor=next_cursor)


@router.get("/campaigns/{campaign_id}", response_model=CampaignOversightOut)
async def get_campaign_oversight(
    campaign_id: int,
    admin: User = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    oversight = await AdminService(session).campaign_oversight(campaign_id)
    return CampaignOversightOut(
        campaign=CampaignOut.model_validate(oversight.campaign),
        brand=brand_summary(oversight.brand, oversight.brand_profile),
        escrow=oversight.escrow,
        participations=oversight.participations,
        tracking_links=oversight.tracking_links,
        promo_codes=oversight.promo_codes,
        metrics=oversight.metrics,
        daily=oversight.daily,
        fraud_flags=oversight.fraud_flags,
    )


@router.get("/campaigns/{campaign_id}/tracking-links", response_model=list[CreatorLinkOut])
async def get_campaign_tracking_links(
    campaign_id: int,
    admin: User = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    rows = await TrackingService(session).campaign_links(campaign_id)
    return [
        CreatorLinkOut(
            link=TrackingLinkOut.model_validate(link),
            creator_id=creator.id,
            creator_name=creator.name,
            display_name=profile.display_name if profile else None,
        )
        for link, creator, profile in rows
    ]


@router.post("/campaigns/{campaign_id}/pause", response_model=CampaignOut)
async def admin_pause_campaign(
    campaign_id: int,
    body: ReasonIn,
    admin: User = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    return await AdminService(session).pause_campaign(campaign_id, reason=body.reason, admin_id=admin.id)


@router.post("/creators/{creator_id}/freeze", response_model=UserOut)
async def freeze_creator(
    creator_id: int,
    body: ReasonIn,
    admin: User = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    return await AdminService(session).freeze_creator(creator_id, reason=body.reason, admin_id=admin.id)


@router.post("/view-snapshots", response_model=ViewSnapshotOut, status_code=201)
async def record_view_snapshot(
    body: ViewSnapshotIn,
    admin: User = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    return await TrackingService(session).record_view_snapshot(**body.model_dump())


@router.get("/users", response_model=Page[UserRowOut])
async def list_users(
    role: Optional[UserRole] = None,
    search: Optional[str] = None,
    cursor: Optional[int] = None,
    limit: int = Query(default=50, ge=1, le=100),
    admin: User = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    rows, next_cursor = await AdminService(session).list_users(role=role, search=search, limit=limit, cursor=cursor)
    items = [UserRowOut.model_validate(row, from_attributes=True) for row in rows]
    return Page[UserRowOut](items=items, next_cursor=next_cursor)


@router.post("/users/{user_id}/verify-brand", response_model=BrandProfileOut)
async def verify_brand(
    user_id: int,
    admin: User = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    return await AdminService(session).verify_brand(user_id, admin_id=admin.id)


@router.post("/users/{user_id}/verify-creator", response_model=CreatorProfileOut)
async def verify_creator(
    user_id: int,
    admin: User = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    return await AdminService(session).verify_creator(user_id, admin_id=admin.id)
