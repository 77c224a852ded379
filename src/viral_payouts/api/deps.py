"""Request dependencies: current user, role guards and the gateway client."""

from __future__ import annotations

from fastapi import Depends, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..db import get_session
from ..errors import ForbiddenError, UnauthorizedError
from ..models import User, UserRole
from ..security import SessionClaims, create_session_token, decode_session_token
from ..services.razorpay import RazorpayClient, get_razorpay_client


def session_claims(request: Request) -> SessionClaims | None:
    return decode_session_token(request.cookies.get(settings.session.cookie_name))


async def get_current_user(
    request: Request,
    session: AsyncSession = Depends(get_session),
) -> User:
    claims = session_claims(request)
    if claims is None:
        raise UnauthorizedError()
    user = await session.get(User, claims.user_id)
    if user is None or not user.is_active:
        raise UnauthorizedError()
    return user


async def require_brand(user: User = Depends(get_current_user)) -> User:
    if user.role != UserRole.BRAND:
        raise ForbiddenError("Brand access required")
    return user


async def require_creator(user: User = Depends(get_current_user)) -> User:
    if user.role != UserRole.CREATOR:
        raise ForbiddenError("Creator access required")
    return user


async def require_admin(user: User = Depends(get_current_user)) -> User:
    if not user.is_admin:
        raise ForbiddenError("Admin access required")
    return user


def get_gateway() -> RazorpayClient:
    return get_razorpay_client()


def set_session_cookie(response: Response, user: User) -> None:
    """Issue a fresh cookie; called whenever role or onboarding state changes."""

    response.set_cookie(
        settings.session.cookie_name,
        create_session_token(SessionClaims.for_user(user)),
        max_age=settings.session.ttl_hours * 3600,
        httponly=True,
        secure=settings.session.secure_cookie,
        samesite="lax",
        path="/",
    )


def clear_session_cookie(response: Response) -> None:
    response.delete_cookie(settings.session.cookie_name, path="/")


__all__ = [
    "clear_session_cookie",
    "get_current_user",
    "get_gateway",
    "require_admin",
    "require_brand",
    "require_creator",
    "session_claims",
    "set_session_cookie",
]
