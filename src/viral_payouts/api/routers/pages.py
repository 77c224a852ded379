"""Page routes. Each returns the data its page renders."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from ...access import dashboard_path
from ...db import get_session
from ...models import User
from ...services.analytics import AnalyticsService
from ..deps import get_current_user, require_admin, require_brand, require_creator, session_claims

router = APIRouter(tags=["pages"], include_in_schema=False)


@router.get("/")
async def home(request: Request) -> dict[str, Any]:
    return {"page": "home", "dashboard": dashboard_path(session_claims(request))}


@router.get("/login")
async def login_page(request: Request) -> dict[str, Any]:
    return {"page": "login", "callback_url": request.query_params.get("callbackUrl")}


@router.get("/signup")
async def signup_page() -> dict[str, Any]:
    return {"page": "signup"}


@router.get("/choose-role")
async def choose_role_page(user: User = Depends(get_current_user)) -> dict[str, Any]:
    return {"page": "choose-role", "role": user.role.value if user.role else None}


@router.get("/brand/onboarding")
async def brand_onboarding_page(user: User = Depends(require_brand)) -> dict[str, Any]:
    return {"page": "brand-onboarding", "name": user.name}


@router.get("/creator/onboarding")
async def creator_onboarding_page(user: User = Depends(require_creator)) -> dict[str, Any]:
    return {"page": "creator-onboarding", "name": user.name}


@router.get("/brand/dashboard")
async def brand_dashboard(
    user: User = Depends(require_brand),
    session: AsyncSession = Depends(get_session),
) -> dict[str, Any]:
    return {"page": "brand-dashboard", **await AnalyticsService(session).brand_analytics(user)}


@router.get("/creator/dashboard")
async def creator_dashboard(
    user: User = Depends(require_creator),
    session: AsyncSession = Depends(get_session),
) -> dict[str, Any]:
    return {"page": "creator-dashboard", **await AnalyticsService(session).creator_analytics(user)}


@router.get("/admin")
async def admin_dashboard(
    admin: User = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
) -> dict[str, Any]:
    return {"page": "admin-dashboard", **await AnalyticsService(session).dashboard_stats()}
