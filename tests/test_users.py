import pytest
from sqlalchemy import select

from viral_payouts.errors import (
    BadRequestError,
    ConflictError,
    NotFoundError,
    TooManyRequestsError,
    UnauthorizedError,
)
from viral_payouts.models import CreatorProfile, OTPType, UserRole, WalletType
from viral_payouts.services.payouts import PayoutService
from viral_payouts.services.users import DEVELOPMENT_OTP, OTPService, UserService
from viral_payouts.services.wallets import WalletService

from factories import credit_creator, fund_brand, make_user


async def _register(session, email="new@example.com", password="hunter22"):
    otp = await OTPService(session).send(email, OTPType.EMAIL_VERIFICATION)
    await OTPService(session).verify(email, DEVELOPMENT_OTP, OTPType.EMAIL_VERIFICATION)
    return await UserService(session).register_with_email(
        email=email, password=password, name="New User", otp_id=otp.id
    )


@pytest.mark.asyncio
async def test_otp_attempts_are_limited(session):
    otps = OTPService(session)
    await otps.send("someone@example.com", OTPType.EMAIL_VERIFICATION)

    for _ in range(3):
        with pytest.raises(BadRequestError, match="Invalid OTP"):
            await otps.verify("someone@example.com", "000000", OTPType.EMAIL_VERIFICATION)
    with pytest.raises(TooManyRequestsError):
        await otps.verify("someone@example.com", DEVELOPMENT_OTP, OTPType.EMAIL_VERIFICATION)


@pytest.mark.asyncio
async def test_otp_sends_are_rate_limited(session):
    otps = OTPService(session)
    for _ in range(5):
        await otps.send("+919800000000", OTPType.PHONE_VERIFICATION)
    with pytest.raises(TooManyRequestsError):
        await otps.send("+919800000000", OTPType.PHONE_VERIFICATION)


@pytest.mark.asyncio
async def test_login_otp_needs_an_account(session):
    with pytest.raises(NotFoundError):
        await OTPService(session).send("ghost@example.com", OTPType.LOGIN)


@pytest.mark.asyncio
async def test_register_with_verified_email_then_login(session):
    user = await _register(session)
    assert user.role is None
    assert not user.is_onboarded
    assert user.email_verified_at is not None

    users = UserService(session)
    assert (await users.login(email="NEW@example.com", password="hunter22")).id == user.id
    with pytest.raises(UnauthorizedError):
        await users.login(email="new@example.com", password="wrong")

    with pytest.raises(ConflictError):
        await users.register_with_email(email="new@example.com", password="x", name="Dup", otp_id=1)


@pytest.mark.asyncio
async def test_registration_requires_verified_otp(session):
    otp = await OTPService(session).send("unverified@example.com", OTPType.EMAIL_VERIFICATION)
    with pytest.raises(BadRequestError, match="verify your email"):
        await UserService(session).register_with_email(
            email="unverified@example.com", password="hunter22", name="U", otp_id=otp.id
        )


@pytest.mark.asyncio
async def test_login_with_otp(session):
    user = await _register(session, email="otp@example.com")
    await OTPService(session).send("otp@example.com", OTPType.LOGIN)
    logged_in = await UserService(session).login_with_otp(identifier="otp@example.com", code=DEVELOPMENT_OTP)
    assert logged_in.id == user.id


@pytest.mark.asyncio
async def test_onboarding_sets_role_profile_and_unique_username(session):
    first = await _register(session, email="first@example.com")
    second = await _register(session, email="second@example.com")
    users = UserService(session)

    await users.complete_onboarding(
        first, name="First Creator", username="Alice_1", role=UserRole.CREATOR, bio="Travel vlogs"
    )
    assert first.is_onboarded
    assert first.username == "alice_1"
    assert first.role == UserRole.CREATOR
    profile = (await session.execute(select(CreatorProfile).where(CreatorProfile.user_id == first.id))).scalar_one()
    assert (profile.display_name, profile.bio) == ("First Creator", "Travel vlogs")
    assert (await WalletService(session).get(first.id)).type == WalletType.CREATOR

    with pytest.raises(ConflictError):
        await users.complete_onboarding(second, name="Second", username="ALICE_1", role=UserRole.BRAND)


@pytest.mark.asyncio
async def test_upsert_admin_is_repeatable(session):
    users = UserService(session)
    admin = await users.upsert_admin(email="Admin@Example.com", password="first-pass", name="Admin")
    again = await users.upsert_admin(email="admin@example.com", password="second-pass", name="Admin")

    assert admin.id == again.id
    assert again.is_admin and again.is_onboarded
    assert again.role == UserRole.BRAND
    assert (await users.login(email="admin@example.com", password="second-pass")).id == admin.id


@pytest.mark.asyncio
async def test_switch_role_keeps_the_wallet(session):
    user = await make_user(session, "switch@example.com", UserRole.BRAND)
    await fund_brand(session, user, 5_000)
    users = UserService(session)

    await users.switch_role(user, UserRole.CREATOR)

    current = await users.get_current_user(user)
    assert user.role == UserRole.CREATOR
    assert current.brand_profile is not None
    assert current.creator_profile is not None
    assert current.wallet.type == WalletType.BRAND
    assert current.wallet.available_balance == 5_000
    with pytest.raises(NotFoundError, match="Creator wallet"):
        await PayoutService(session).request_withdrawal(user, amount=5_000, payment_method_id=1)


@pytest.mark.asyncio
async def test_choose_role_retypes_only_an_unused_wallet(session):
    user = await make_user(session, "undecided@example.com", UserRole.BRAND)
    users = UserService(session)

    await users.choose_role(user, UserRole.CREATOR)
    assert (await WalletService(session).get(user.id)).type == WalletType.CREATOR

    await credit_creator(session, user, 300)
    await users.choose_role(user, UserRole.BRAND)
    assert (await WalletService(session).get(user.id)).type == WalletType.CREATOR


@pytest.mark.asyncio
async def test_email_identifiers_are_case_insensitive(session):
    otp = await OTPService(session).send("  Mixed.Case@Example.com ", OTPType.EMAIL_VERIFICATION)
    assert otp.identifier == "mixed.case@example.com"
    await OTPService(session).verify("MIXED.case@example.com", DEVELOPMENT_OTP, OTPType.EMAIL_VERIFICATION)
    user = await UserService(session).register_with_email(
        email="Mixed.Case@Example.com", password="hunter22", name="Mixed", otp_id=otp.id
    )

    await OTPService(session).send("MIXED.CASE@example.com", OTPType.LOGIN)
    logged_in = await UserService(session).login_with_otp(identifier="Mixed.Case@example.com", code=DEVELOPMENT_OTP)
    assert logged_in.id == user.id
