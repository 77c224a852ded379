"""User-centric models."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampMixin


class UserRole(str, Enum):
    BRAND = "BRAND"
    CREATOR = "CREATOR"


class CreatorTier(str, Enum):
    BRONZE = "BRONZE"
    SILVER = "SILVER"
    GOLD = "GOLD"
    PLATINUM = "PLATINUM"


class OTPType(str, Enum):
    EMAIL_VERIFICATION = "EMAIL_VERIFICATION"
    PHONE_VERIFICATION = "PHONE_VERIFICATION"
    LOGIN = "LOGIN"


class User(TimestampMixin, Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), unique=True, index=True)
    phone: Mapped[Optional[str]] = mapped_column(String(32), unique=True, index=True)
    country_code: Mapped[Optional[str]] = mapped_column(String(4))
    password_hash: Mapped[Optional[str]] = mapped_column(String(255))
    name: Mapped[str] = mapped_column(String(128), default="")
    username: Mapped[Optional[str]] = mapped_column(String(30), unique=True, index=True)
    image: Mapped[Optional[str]] = mapped_column(Text)
    role: Mapped[Optional[UserRole]] = mapped_column()
    is_admin: Mapped[bool] = mapped_column(default=False)
    is_onboarded: Mapped[bool] = mapped_column(default=False)
    is_active: Mapped[bool] = mapped_column(default=True)
    email_verified_at: Mapped[Optional[datetime]] = mapped_column()
    phone_verified_at: Mapped[Optional[datetime]] = mapped_column()


class BrandProfile(TimestampMixin, Base):
    __tablename__ = "brand_profiles"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), unique=True, index=True)
    company_name: Mapped[Optional[str]] = mapped_column(String(255))
    industry: Mapped[Optional[str]] = mapped_column(String(128))
    website: Mapped[Optional[str]] = mapped_column(Text)
    company_logo: Mapped[Optional[str]] = mapped_column(Text)
    is_verified: Mapped[bool] = mapped_column(default=False)
    total_campaigns: Mapped[int] = mapped_column(Integer, default=0)


class CreatorProfile(TimestampMixin, Base):
    __tablename__ = "creator_profiles"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), unique=True, index=True)
    display_name: Mapped[Optional[str]] = mapped_column(String(128))
    bio: Mapped[Optional[str]] = mapped_column(Text)
    instagram_handle: Mapped[Optional[str]] = mapped_column(String(64))
    instagram_followers: Mapped[int] = mapped_column(Integer, default=0)
    youtube_handle: Mapped[Optional[str]] = mapped_column(String(64))
    youtube_subscribers: Mapped[int] = mapped_column(Integer, default=0)
    tier: Mapped[CreatorTier] = mapped_column(default=CreatorTier.BRONZE)
    total_earnings: Mapped[int] = mapped_column(Integer, default=0)
    total_campaigns: Mapped[int] = mapped_column(Integer, default=0)
    is_verified: Mapped[bool] = mapped_column(default=False)


class OneTimePassword(TimestampMixin, Base):
    __tablename__ = "one_time_passwords"

    id: Mapped[int] = mapped_column(primary_key=True)
    identifier: Mapped[str] = mapped_column(String(255), index=True)
    code: Mapped[str] = mapped_column(String(8))
    type: Mapped[OTPType]
    expires_at: Mapped[datetime] = mapped_column()
    attempts: Mapped[int] = mapped_column(Integer, default=0)
    verified: Mapped[bool] = mapped_column(default=False)


__all__ = [
    "User",
    "UserRole",
    "BrandProfile",
    "CreatorProfile",
    "CreatorTier",
    "OneTimePassword",
    "OTPType",
]
