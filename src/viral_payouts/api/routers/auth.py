"""Sign-up, login and onboarding."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from ...db import get_session
from ...models import User
from ...services.users import InvalidOTPError, OTPService, UserService
from ..deps import clear_session_cookie, get_current_user, set_session_cookie
from ..schemas import (
    CurrentUserOut,
    EmailRegisterIn,
    LoginIn,
    OnboardingIn,
    OTPLoginIn,
    OTPOut,
    OTPSendIn,
    OTPVerifyIn,
    PhoneRegisterIn,
    RoleIn,
    UserOut,
)

router = APIRouter(prefix="/api/auth", tags=["auth"])

# A wrong code raises InvalidOTPError after bumping the attempt counter; the
# counter is committed before the error unwinds the request transaction.


async def _current(session: AsyncSession, user: User) -> CurrentUserOut:
    current = await UserService(session).get_current_user(user)
    return CurrentUserOut.model_validate(current, from_attributes=True)


@router.post("/otp/send", response_model=OTPOut)
async def send_otp(body: OTPSendIn, session: AsyncSession = Depends(get_session)):
    otp = await OTPService(session).send(body.identifier, body.type)
    return OTPOut(otp_id=otp.id, expires_at=otp.expires_at)


@router.post("/otp/verify", response_model=OTPOut)
async def verify_otp(body: OTPVerifyIn, session: AsyncSession = Depends(get_session)):
    try:
        otp = await OTPService(session).verify(body.identifier, body.code, body.type)
    except InvalidOTPError:
        await session.commit()
        raise
    return OTPOut(otp_id=otp.id, expires_at=otp.expires_at)


@router.post("/register/email", response_model=UserOut, status_code=201)
async def register_with_email(
    body: EmailRegisterIn,
    response: Response,
    session: AsyncSession = Depends(get_session),
):
    user = await UserService(session).register_with_email(
        email=body.email,
        password=body.password,
        name=body.name,
        otp_id=body.otp_id,
    )
    set_session_cookie(response, user)
    return user


@router.post("/register/phone", response_model=UserOut, status_code=201)
async def register_with_phone(
    body: PhoneRegisterIn,
    response: Response,
    session: AsyncSession = Depends(get_session),
):
    user = await UserService(session).register_with_phone(
        phone=body.phone,
        country_code=body.country_code,
        name=body.name,
        otp_id=body.otp_id,
    )
    set_session_cookie(response, user)
    return user


@router.post("/login", response_model=UserOut)
async def login(body: LoginIn, response: Response, session: AsyncSession = Depends(get_session)):
    user = await UserService(session).login(email=body.email, password=body.password)
    set_session_cookie(response, user)
    return user


@router.post("/login/otp", response_model=UserOut)
async def login_with_otp(body: OTPLoginIn, response: Response, session: AsyncSession = Depends(get_session)):
    try:
        user = await UserService(session).login_with_otp(identifier=body.identifier, code=body.code)
    except InvalidOTPError:
        await session.commit()
        raise
    set_session_cookie(response, user)
    return user


@router.post("/logout")
async def logout(response: Response) -> dict[str, bool]:
    clear_session_cookie(response)
    return {"success": True}


@router.get("/me", response_model=CurrentUserOut)
async def me(user: User = Depends(get_current_user), session: AsyncSession = Depends(get_session)):
    return await _current(session, user)


@router.post("/choose-role", response_model=CurrentUserOut)
async def choose_role(
    body: RoleIn,
    response: Response,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    user = await UserService(session).choose_role(user, body.role)
    set_session_cookie(response, user)
    return await _current(session, user)


@router.post("/onboarding", response_model=CurrentUserOut)
async def complete_onboarding(
    body: OnboardingIn,
    response: Response,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    user = await UserService(session).complete_onboarding(
        user,
        name=body.name,
        username=body.username,
        role=body.role,
        company_name=body.company_name,
        industry=body.industry,
        website=str(body.website) if body.website else None,
        bio=body.bio,
        instagram_handle=body.instagram_handle,
        youtube_handle=body.youtube_handle,
    )
    set_session_cookie(response, user)
    return await _current(session, user)


@router.post("/switch-role", response_model=CurrentUserOut)
async def switch_role(
    body: RoleIn,
    response: Response,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    user = await UserService(session).switch_role(user, body.role)
    set_session_cookie(response, user)
    return await _current(session, user)
