"""Builders shared by the test modules."""

from datetime import timedelta

from viral_payouts.config import settings
from viral_payouts.models import (
    CampaignStatus,
    CampaignType,
    PaymentMethodType,
    TransactionType,
    User,
    UserRole,
    utcnow,
)
from viral_payouts.security import SessionClaims, create_session_token
from viral_payouts.services.campaigns import CampaignService
from viral_payouts.services.razorpay import RazorpayAPIError, to_paise
from viral_payouts.services.users import UserService
from viral_payouts.services.wallets import WalletService


BROWSER_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


class FakeGateway:
    key_id = "rzp_test_fake"

    def __init__(self, payout_status: str = "processing") -> None:
        self.payout_status = payout_status
        self.error: str | None = None
        self.orders: dict[str, dict] = {}
        self.payouts: list[dict] = []

    async def create_order(self, *, amount, receipt, notes=None):
        if self.error:
            raise RazorpayAPIError(self.error)
        order = {
            "id": f"order_{len(self.orders) + 1}",
            "amount": to_paise(amount),
            "currency": "INR",
            "receipt": receipt,
            "notes": notes or {},
        }
        self.orders[order["id"]] = order
        return order

    async def fetch_order(self, order_id):
        if order_id not in self.orders:
            raise RazorpayAPIError(f"order {order_id} not found")
        return self.orders[order_id]

    async def create_payout(self, *, fund_account_id, amount, reference_id, purpose="payout", narration=None):
        if self.error:
            raise RazorpayAPIError(self.error)
        self.payouts.append({"fund_account_id": fund_account_id, "amount": amount, "reference_id": reference_id})
        return {"id": f"pout_{reference_id}", "status": self.payout_status}


async def make_user(session, email, role=UserRole.CREATOR, *, is_admin=False, onboarded=True):
    user = User(
        email=email,
        name=email.split("@")[0].title(),
        is_admin=is_admin,
        is_onboarded=onboarded,
        is_active=True,
    )
    session.add(user)
    await session.flush()
    if role is not None:
        await UserService(session).choose_role(user, role)
    return user


async def fund_brand(session, brand, amount, order_id="order_seed"):
    wallets = WalletService(session)
    wallet = await wallets.get(brand.id)
    await wallets.credit_funding(wallet, amount=amount, order_id=order_id, user_id=brand.id)
    return wallet


async def credit_creator(session, creator, amount):
    wallets = WalletService(session)
    wallet = await wallets.get(creator.id)
    await wallets.post(wallet, amount=amount, type=TransactionType.EARNING, description="Seed earnings")
    return wallet


async def add_fund_account(session, user, fund_account_id="fa_test_1"):
    return await WalletService(session).add_payment_method(
        user,
        type=PaymentMethodType.UPI,
        details={"vpa": "creator@upi", "fund_account_id": fund_account_id},
        is_primary=True,
    )


async def make_campaign(session, brand, type=CampaignType.CLICK, *, live=False, **overrides):
    now = utcnow()
    data = {
        "name": "Summer Launch",
        "type": type,
        "total_budget": 50_000,
        "start_date": now,
        "end_date": now + timedelta(days=30),
        "landing_page_url": "https://shop.example.com/summer",
        "payout_per_click": 2,
        "target_platforms": ["INSTAGRAM"],
    }
    data.update(overrides)
    campaign = await CampaignService(session).create(brand, **data)
    if live:
        campaign.status = CampaignStatus.LIVE
        await session.flush()
    return campaign


def session_cookie(user):
    return {settings.session.cookie_name: create_session_token(SessionClaims.for_user(user))}
