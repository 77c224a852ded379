"""Password hashing, session tokens and gateway signatures."""

from __future__ import annotations

import hashlib
import hmac
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from jose import JWTError, jwt
from passlib.context import CryptContext

from .config import settings
from .models import User, UserRole

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str | None) -> bool:
    if not password_hash:
        return False
    return pwd_context.verify(password, password_hash)


@dataclass(slots=True, frozen=True)
class SessionClaims:
    """What the session cookie carries for route-level access checks."""

    user_id: int
    role: UserRole | None
    is_admin: bool
    is_onboarded: bool

    @classmethod
    def for_user(cls, user: User) -> "SessionClaims":
        return cls(
            user_id=user.id,
            role=user.role,
            is_admin=user.is_admin,
            is_onboarded=user.is_onboarded,
        )


def create_session_token(claims: SessionClaims, *, expires_delta: timedelta | None = None) -> str:
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(hours=settings.session.ttl_hours)
    )
    payload: dict[str, Any] = {
        "sub": str(claims.user_id),
        "role": claims.role.value if claims.role else None,
        "isAdmin": claims.is_admin,
        "isOnboarded": claims.is_onboarded,
        "exp": expire,
    }
    return jwt.encode(
        payload,
        settings.session.secret.get_secret_value(),
        algorithm=settings.session.algorithm,
    )


def decode_session_token(token: str | None) -> SessionClaims | None:
    """Return the claims of a valid token, ``None`` for missing or bad tokens."""

    if not token:
        return None
    try:
        payload = jwt.decode(
            token,
            settings.session.secret.get_secret_value(),
            algorithms=[settings.session.algorithm],
        )
        role = payload.get("role")
        return SessionClaims(
            user_id=int(payload["sub"]),
            role=UserRole(role) if role else None,
            is_admin=bool(payload.get("isAdmin")),
            is_onboarded=bool(payload.get("isOnboarded")),
        )
    except (JWTError, KeyError, ValueError):
        return None


def hmac_sha256_hex(secret: str, message: str | bytes) -> str:
    if isinstance(message, str):
        message = message.encode()
    return hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()


def verify_webhook_signature(body: bytes, signature: str | None, secret: str | None = None) -> bool:
    if not signature:
        return False
    secret = secret or settings.razorpay.webhook_secret.get_secret_value()
    return hmac.compare_digest(hmac_sha256_hex(secret, body), signature)


def verify_payment_signature(
    *,
    order_id: str,
    payment_id: str,
    signature: str,
    secret: str | None = None,
) -> bool:
    secret = secret or settings.razorpay.key_secret.get_secret_value()
    expected = hmac_sha256_hex(secret, f"{order_id}|{payment_id}")
    return hmac.compare_digest(expected, signature)


__all__ = [
    "SessionClaims",
    "create_session_token",
    "decode_session_token",
    "hash_password",
    "hmac_sha256_hex",
    "verify_password",
    "verify_payment_signature",
    "verify_webhook_signature",
]
