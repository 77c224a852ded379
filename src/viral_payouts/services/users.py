"""User service layer: one-time passwords, registration and roles."""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional
from urllib.parse import quote

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..errors import (
    BadRequestError,
    ConflictError,
    NotFoundError,
    TooManyRequestsError,
    UnauthorizedError,
)
from ..models import (
    BrandProfile,
    CreatorProfile,
    OneTimePassword,
    OTPType,
    Transaction,
    User,
    UserRole,
    Wallet,
    utcnow,
)
from ..security import hash_password, verify_password
from .rate_limit import RateLimitRule, otp_limiter
from .wallets import WalletService, wallet_type_for

logger = logging.getLogger(__name__)

DEVELOPMENT_OTP = "123456"


def _generate_otp() -> str:
    if settings.is_development:
        return DEVELOPMENT_OTP
    return str(100000 + secrets.randbelow(900000))


def _normalize_identifier(identifier: str) -> str:
    identifier = identifier.strip()
    return identifier.lower() if "@" in identifier else identifier


def _avatar_url(name: str) -> str:
    return f"https://ui-avatars.com/api/?name={quote(name)}&background=7847eb&color=fff"


class InvalidOTPError(BadRequestError):
    """Wrong code. The attempt counter has been bumped and must be committed."""


@dataclass(slots=True)
class CurrentUser:
    user: User
    brand_profile: BrandProfile | None
    creator_profile: CreatorProfile | None
    wallet: Wallet | None


class OTPService:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def send(self, identifier: str, type: OTPType) -> OneTimePassword:
        identifier = _normalize_identifier(identifier)
        if type == OTPType.LOGIN:
            stmt = select(User.id).where((User.email == identifier) | (User.phone == identifier))
            if (await self.session.execute(stmt)).first() is None:
                raise NotFoundError("No account found for this identifier")
        rule = RateLimitRule(
            window_seconds=settings.otp_send_window_seconds,
            max_events=settings.otp_sends_per_window,
        )
        if not otp_limiter.check(f"otp:{identifier}", rule):
            raise TooManyRequestsError("Too many codes requested. Try again later")

        await self.session.execute(
            delete(OneTimePassword).where(
                OneTimePassword.identifier == identifier,
                OneTimePassword.type == type,
            )
        )
        otp = OneTimePassword(
            identifier=identifier,
            code=_generate_otp(),
            type=type,
            expires_at=utcnow() + timedelta(minutes=settings.otp_ttl_minutes),
            attempts=0,
            verified=False,
        )
        self.session.add(otp)
        await self.session.flush()
        if settings.is_development:
            logger.info("OTP for %s: %s", identifier, otp.code)
        return otp

    async def verify(self, identifier: str, code: str, type: OTPType) -> OneTimePassword:
        stmt = (
            select(OneTimePassword)
            .where(
                OneTimePassword.identifier == _normalize_identifier(identifier),
                OneTimePassword.type == type,
                OneTimePassword.verified.is_(False),
                OneTimePassword.expires_at > utcnow(),
            )
            .order_by(OneTimePassword.id.desc())
            .limit(1)
        )
        otp = (await self.session.execute(stmt)).scalar_one_or_none()
        if not otp:
            raise BadRequestError("Invalid or expired OTP")
        if otp.attempts >= settings.otp_max_attempts:
            raise TooManyRequestsError("Too many attempts. Please request a new OTP")
        if not secrets.compare_digest(otp.code, code):
            otp.attempts += 1
            await self.session.flush()
            raise InvalidOTPError("Invalid OTP")
        otp.verified = True
        await self.session.flush()
        return otp

    async def consume(self, otp_id: int, identifier: str, message: str) -> None:
        otp = await self.session.get(OneTimePassword, otp_id)
        if not otp or not otp.verified or otp.identifier != identifier:
            raise BadRequestError(message)
        await self.session.delete(otp)


class UserService:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self.otps = OTPService(session)
        self.wallets = WalletService(session)

    async def get(self, user_id: int) -> User | None:
        return await self.session.get(User, user_id)

    async def get_by_email(self, email: str) -> User | None:
        stmt = select(User).where(User.email == email.strip().lower())
        return (await self.session.execute(stmt)).scalar_one_or_none()

    async def register_with_email(self, *, email: str, password: str, name: str, otp_id: int) -> User:
        email = email.strip().lower()
        if await self.get_by_email(email):
            raise ConflictError("Email already registered")
        await self.otps.consume(otp_id, email, "Please verify your email first")
        user = User(
            email=email,
            password_hash=hash_password(password),
            name=name,
            image=_avatar_url(name),
            email_verified_at=utcnow(),
        )
        self.session.add(user)
        await self.session.flush()
        logger.info("Registered user %s by email", user.id)
        return user

    async def register_with_phone(self, *, phone: str, country_code: str, name: str, otp_id: int) -> User:
        phone = phone.strip()
        stmt = select(User.id).where(User.phone == phone)
        if (await self.session.execute(stmt)).first() is not None:
            raise ConflictError("Phone number already registered")
        await self.otps.consume(otp_id, phone, "Please verify your phone number first")
        user = User(
            phone=phone,
            country_code=country_code,
            name=name,
            image=_avatar_url(name),
            phone_verified_at=utcnow(),
        )
        self.session.add(user)
        await self.session.flush()
        logger.info("Registered user %s by phone", user.id)
        return user

    async def login(self, *, email: str, password: str) -> User:
        user = await self.get_by_email(email)
        if not user or not verify_password(password, user.password_hash):
            raise UnauthorizedError("Invalid email or password")
        if not user.is_active:
            raise UnauthorizedError("Account is disabled")
        return user

    async def login_with_otp(self, *, identifier: str, code: str) -> User:
        identifier = _normalize_identifier(identifier)
        await self.otps.verify(identifier, code, OTPType.LOGIN)
        stmt = select(User).where((User.email == identifier) | (User.phone == identifier))
        user = (await self.session.execute(stmt)).scalar_one_or_none()
        if not user:
            raise NotFoundError("No account found for this identifier")
        if not user.is_active:
            raise UnauthorizedError("Account is disabled")
        return user

    async def _ensure_profile(self, user: User, role: UserRole) -> BrandProfile | CreatorProfile:
        model = BrandProfile if role == UserRole.BRAND else CreatorProfile
        stmt = select(model).where(model.user_id == user.id)
        profile = (await self.session.execute(stmt)).scalar_one_or_none()
        if profile is None:
            profile = model(user_id=user.id)
            self.session.add(profile)
            await self.session.flush()
        return profile

    async def _ensure_wallet(self, user: User, role: UserRole) -> Wallet:
        """Create the wallet, or retype it while no money has touched it."""

        wallet_type = wallet_type_for(role)
        wallet = await self.wallets.get_or_create(user.id, wallet_type)
        if wallet.type != wallet_type:
            stmt = select(Transaction.id).where(Transaction.wallet_id == wallet.id).limit(1)
            if (await self.session.execute(stmt)).first() is None:
                wallet.type = wallet_type
        return wallet

    async def choose_role(self, user: User, role: UserRole) -> User:
        user.role = role
        await self._ensure_profile(user, role)
        await self._ensure_wallet(user, role)
        await self.session.flush()
        return user

    async def switch_role(self, user: User, role: UserRole) -> User:
        """Change the active role. The wallet and its balances stay as they are."""

        user.role = role
        await self._ensure_profile(user, role)
        await self.session.flush()
        logger.info("User %s switched to %s", user.id, role.value)
        return user

    async def complete_onboarding(
        self,
        user: User,
        *,
        name: str,
        username: str,
        role: UserRole,
        company_name: Optional[str] = None,
        industry: Optional[str] = None,
        website: Optional[str] = None,
        bio: Optional[str] = None,
        instagram_handle: Optional[str] = None,
        youtube_handle: Optional[str] = None,
    ) -> User:
        username = username.strip().lower()
        stmt = select(User.id).where(func.lower(User.username) == username, User.id != user.id)
        if (await self.session.execute(stmt)).first() is not None:
            raise ConflictError("Username is already taken")

        user.name = name
        user.username = username
        user.is_onboarded = True
        await self.choose_role(user, role)

        profile = await self._ensure_profile(user, role)
        if isinstance(profile, BrandProfile):
            profile.company_name = company_name
            profile.industry = industry
            if website:
                profile.website = website
        else:
            profile.display_name = name
            profile.bio = bio
            profile.instagram_handle = instagram_handle
            if youtube_handle:
                profile.youtube_handle = youtube_handle
        await self.session.flush()
        logger.info("User %s onboarded as %s", user.id, role.value)
        return user

    async def get_current_user(self, user: User) -> CurrentUser:
        brand = (
            await self.session.execute(select(BrandProfile).where(BrandProfile.user_id == user.id))
        ).scalar_one_or_none()
        creator = (
            await self.session.execute(select(CreatorProfile).where(CreatorProfile.user_id == user.id))
        ).scalar_one_or_none()
        return CurrentUser(
            user=user,
            brand_profile=brand,
            creator_profile=creator,
            wallet=await self.wallets.get(user.id),
        )

    async def upsert_admin(self, *, email: str, password: str, name: str) -> User:
        user = await self.get_by_email(email)
        if user is None:
            user = User(
                email=email.strip().lower(),
                name=name,
                image=_avatar_url(name),
                role=UserRole.BRAND,
                is_onboarded=True,
            )
            self.session.add(user)
            await self.session.flush()
            await self._ensure_profile(user, UserRole.BRAND)
            await self._ensure_wallet(user, UserRole.BRAND)
        user.password_hash = hash_password(password)
        user.is_admin = True
        user.is_active = True
        user.email_verified_at = user.email_verified_at or utcnow()
        await self.session.flush()
        return user


__all__ = ["CurrentUser", "DEVELOPMENT_OTP", "InvalidOTPError", "OTPService", "UserService"]
