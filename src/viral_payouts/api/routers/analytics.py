"""Dashboards for brands, creators and admins."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ...db import get_session
from ...models import User
from ...services.analytics import AnalyticsService
from ..deps import get_current_user, require_admin, require_brand, require_creator

router = APIRouter(prefix="/api/analytics", tags=["analytics"])


@router.get("/dashboard")
async def get_dashboard_stats(
    admin: User = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
) -> dict[str, Any]:
    return await AnalyticsService(session).dashboard_stats()


@router.get("/brand")
async def get_brand_analytics(
    user: User = Depends(require_brand),
    session: AsyncSession = Depends(get_session),
) -> dict[str, Any]:
    return await AnalyticsService(session).brand_analytics(user)


@router.get("/creator")
async def get_creator_analytics(
    user: User = Depends(require_creator),
    session: AsyncSession = Depends(get_session),
) -> dict[str, Any]:
    return await AnalyticsService(session).creator_analytics(user)


@router.get("/admin")
async def get_admin_analytics(
    admin: User = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
) -> dict[str, Any]:
    return await AnalyticsService(session).admin_analytics()


@router.get("/campaigns/{campaign_id}")
async def get_campaign_analytics(
    campaign_id: int,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> dict[str, Any]:
    return await AnalyticsService(session).campaign_analytics(user, campaign_id)
