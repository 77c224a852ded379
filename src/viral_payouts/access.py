"""Role-based redirects for page routes."""

from __future__ import annotations

from urllib.parse import urlencode

from .models import UserRole
from .security import SessionClaims

PUBLIC_PATHS = {"/", "/marketplace", "/health", "/docs", "/openapi.json", "/redoc"}
PUBLIC_PREFIXES = ("/login", "/signup", "/api/", "/t/", "/static/")


def is_public_path(path: str) -> bool:
    return path in PUBLIC_PATHS or path.startswith(PUBLIC_PREFIXES)


def dashboard_path(claims: SessionClaims | None) -> str:
    """Landing page for a session, onboarding first."""

    if claims is None:
        return "/login"
    if claims.role is None:
        return "/choose-role"
    if not claims.is_onboarded:
        return "/brand/onboarding" if claims.role == UserRole.BRAND else "/creator/onboarding"
    return "/brand/dashboard" if claims.role == UserRole.BRAND else "/creator/dashboard"


def _other_role_home(role: UserRole | None, own: UserRole) -> str:
    if role is None:
        return "/choose-role"
    if own == UserRole.BRAND:
        return "/creator/dashboard"
    return "/brand/dashboard"


def resolve_redirect(path: str, claims: SessionClaims | None) -> str | None:
    """Return where the request must be sent instead, or ``None`` to let it through."""

    if is_public_path(path):
        return None

    if claims is None:
        return "/login?" + urlencode({"callbackUrl": path})

    for role, prefix in ((UserRole.BRAND, "/brand"), (UserRole.CREATOR, "/creator")):
        if path.startswith(prefix):
            if claims.role != role:
                return _other_role_home(claims.role, role)
            onboarding = f"{prefix}/onboarding"
            if not claims.is_onboarded and not path.startswith(onboarding):
                return onboarding
            return None

    if path.startswith("/admin"):
        if not claims.is_admin:
            return "/brand/dashboard" if claims.role == UserRole.BRAND else "/creator/dashboard"
        return None

    if path == "/onboarding":
        if claims.role is None:
            return "/choose-role"
        return "/brand/onboarding" if claims.role == UserRole.BRAND else "/creator/onboarding"

    return None


__all__ = ["dashboard_path", "is_public_path", "resolve_redirect"]
