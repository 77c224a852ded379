"""Click redirects, conversion postbacks and tracking queries."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ...db import get_session
from ...errors import ForbiddenError
from ...models import Campaign, User
from ...services.campaigns import CampaignService
from ...services.tracking import TrackingService
from ..deps import get_current_user, require_brand
from ..schemas import (
    ClickEventOut,
    ClickStatsOut,
    ConversionEventOut,
    ConversionIn,
    Page,
    ViewSnapshotOut,
)

router = APIRouter(tags=["tracking"])


def client_ip(request: Request) -> Optional[str]:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


async def _visible_campaign(session: AsyncSession, user: User, campaign_id: int) -> Campaign:
    campaign = await CampaignService(session).get(campaign_id)
    if campaign.brand_id != user.id and not user.is_admin:
        raise ForbiddenError()
    return campaign


@router.get("/t/{slug}")
async def follow_tracking_link(slug: str, request: Request, session: AsyncSession = Depends(get_session)):
    result = await TrackingService(session).record_click(
        slug,
        ip=client_ip(request),
        user_agent=request.headers.get("user-agent"),
        referer=request.headers.get("referer"),
    )
    return RedirectResponse(result.destination_url, status_code=302)


@router.post("/api/tracking/conversions", response_model=ConversionEventOut, status_code=201)
async def record_conversion(
    body: ConversionIn,
    user: User = Depends(require_brand),
    session: AsyncSession = Depends(get_session),
):
    return await TrackingService(session).record_conversion(
        user,
        promo_code=body.promo_code,
        order_id=body.order_id,
        order_value=body.order_value,
    )


@router.get("/api/tracking/campaigns/{campaign_id}/clicks", response_model=Page[ClickEventOut])
async def get_click_events(
    campaign_id: int,
    tracking_link_id: Optional[int] = None,
    creator_id: Optional[int] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    cursor: Optional[int] = None,
    limit: int = Query(default=100, ge=1, le=500),
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    await _visible_campaign(session, user, campaign_id)
    items, next_cursor = await TrackingService(session).click_events(
        campaign_id=campaign_id,
        tracking_link_id=tracking_link_id,
        creator_id=creator_id,
        start=start,
        end=end,
        limit=limit,
        cursor=cursor,
    )
    return Page[ClickEventOut](items=items, next_cursor=next_cursor)


@router.get("/api/tracking/campaigns/{campaign_id}/views", response_model=list[ViewSnapshotOut])
async def get_view_snapshots(
    campaign_id: int,
    creator_id: Optional[int] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    limit: int = Query(default=100, ge=1, le=500),
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    await _visible_campaign(session, user, campaign_id)
    return await TrackingService(session).view_snapshots(
        campaign_id, creator_id=creator_id, start=start, end=end, limit=limit
    )


@router.get("/api/tracking/campaigns/{campaign_id}/conversions", response_model=Page[ConversionEventOut])
async def get_conversion_events(
    campaign_id: int,
    creator_id: Optional[int] = None,
    promo_code_id: Optional[int] = None,
    cursor: Optional[int] = None,
    limit: int = Query(default=100, ge=1, le=500),
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    await _visible_campaign(session, user, campaign_id)
    items, next_cursor = await TrackingService(session).conversion_events(
        campaign_id=campaign_id,
        creator_id=creator_id,
        promo_code_id=promo_code_id,
        limit=limit,
        cursor=cursor,
    )
    return Page[ConversionEventOut](items=items, next_cursor=next_cursor)


@router.get("/api/tracking/campaigns/{campaign_id}/stats", response_model=ClickStatsOut)
async def get_click_stats(
    campaign_id: int,
    creator_id: Optional[int] = None,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    await _visible_campaign(session, user, campaign_id)
    return await TrackingService(session).click_stats(campaign_id, creator_id)
