import json

import pytest
from sqlalchemy import select

from viral_payouts.config import settings
from viral_payouts.models import OneTimePassword, Payout, PayoutStatus, TrackingLink, UserRole
from viral_payouts.security import hmac_sha256_hex
from viral_payouts.services.campaigns import CampaignService
from viral_payouts.services.payouts import PayoutService
from viral_payouts.services.wallets import WalletService

from factories import BROWSER_UA, add_fund_account, credit_creator, make_campaign, make_user, session_cookie


def signed(event):
    body = json.dumps(event).encode()
    signature = hmac_sha256_hex(settings.razorpay.webhook_secret.get_secret_value(), body)
    return {"content": body, "headers": {"x-razorpay-signature": signature, "content-type": "application/json"}}


def captured(order_id, amount_paise, notes=None):
    return {
        "event": "payment.captured",
        "payload": {
            "payment": {
                "entity": {"id": "pay_1", "order_id": order_id, "amount": amount_paise, "notes": notes or {}}
            }
        },
    }


async def _seed_user(factory, email, role, **kwargs):
    async with factory() as session:
        user = await make_user(session, email, role, **kwargs)
        await session.commit()
    return user


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")
    assert response.json() == {"status": "ok"}


@pytest.mark.asyncio
async def test_errors_render_as_json(client):
    response = await client.get("/api/auth/me")
    assert response.status_code == 401
    assert response.json() == {"error": "Unauthorized", "code": "UNAUTHORIZED"}


@pytest.mark.asyncio
async def test_pages_redirect_by_session(client, factory):
    response = await client.get("/brand/dashboard")
    assert response.status_code == 307
    assert response.headers["location"] == "/login?callbackUrl=%2Fbrand%2Fdashboard"

    creator = await _seed_user(factory, "creator@example.com", UserRole.CREATOR)
    client.cookies.update(session_cookie(creator))
    response = await client.get("/brand/dashboard")
    assert response.headers["location"] == "/creator/dashboard"

    response = await client.get("/creator/dashboard")
    assert response.status_code == 200
    assert response.json()["page"] == "creator-dashboard"


@pytest.mark.asyncio
async def test_signup_flow_sets_session_cookie(client):
    identifier = "newbrand@example.com"
    response = await client.post("/api/auth/otp/send", json={"identifier": identifier, "type": "EMAIL_VERIFICATION"})
    assert response.status_code == 200
    response = await client.post(
        "/api/auth/otp/verify",
        json={"identifier": identifier, "type": "EMAIL_VERIFICATION", "code": "123456"},
    )
    otp_id = response.json()["otp_id"]

    response = await client.post(
        "/api/auth/register/email",
        json={"email": identifier, "password": "hunter2222", "name": "New Brand", "otp_id": otp_id},
    )
    assert response.status_code == 201
    assert response.json()["role"] is None
    assert settings.session.cookie_name in response.cookies

    response = await client.post("/api/auth/choose-role", json={"role": "BRAND"})
    assert response.status_code == 200
    assert response.json()["wallet"]["type"] == "BRAND"

    response = await client.get("/brand/dashboard")
    assert response.headers["location"] == "/brand/onboarding"

    response = await client.post("/api/auth/logout")
    assert response.json() == {"success": True}


@pytest.mark.asyncio
async def test_create_order_guards_and_success(client, factory, gateway):
    response = await client.post("/api/razorpay/order", json={"amount": 5_000})
    assert response.status_code == 401

    creator = await _seed_user(factory, "creator@example.com", UserRole.CREATOR)
    client.cookies.update(session_cookie(creator))
    response = await client.post("/api/razorpay/order", json={"amount": 5_000})
    assert response.status_code == 403

    brand = await _seed_user(factory, "brand@example.com", UserRole.BRAND)
    client.cookies.update(session_cookie(brand))
    response = await client.post("/api/razorpay/order", json={"amount": 500})
    assert response.status_code == 400

    response = await client.post("/api/razorpay/order", json={"amount": 5_000})
    assert response.status_code == 200
    assert response.json() == {"orderId": "order_1", "amount": 500_000, "currency": "INR", "keyId": "rzp_test_fake"}
    assert gateway.orders["order_1"]["notes"]["userId"] == str(brand.id)

    gateway.error = "gateway down"
    response = await client.post("/api/razorpay/order", json={"amount": 5_000})
    assert response.status_code == 500
    assert response.json() == {"error": "Failed to create order"}


@pytest.mark.asyncio
async def test_webhook_rejects_bad_signature(client):
    response = await client.post(
        "/api/razorpay/webhook",
        content=b"{}",
        headers={"x-razorpay-signature": "deadbeef"},
    )
    assert response.status_code == 400
    assert response.json() == {"error": "Invalid signature"}


@pytest.mark.asyncio
async def test_payment_captured_credits_wallet_once(client, factory, gateway):
    brand = await _seed_user(factory, "brand@example.com", UserRole.BRAND)
    client.cookies.update(session_cookie(brand))
    order = (await client.post("/api/razorpay/order", json={"amount": 2_500})).json()
    client.cookies.clear()

    # Notes missing on the payment are read back from the order.
    for _ in range(2):
        response = await client.post("/api/razorpay/webhook", **signed(captured(order["orderId"], 250_000)))
        assert response.json() == {"status": "ok"}

    async with factory() as session:
        wallet = await WalletService(session).get(brand.id)
        assert wallet.available_balance == 2_500
        assert (await WalletService(session).reconcile(wallet)).balanced


@pytest.mark.asyncio
async def test_payout_webhooks_settle_payout(client, factory):
    async with factory() as session:
        admin = await make_user(session, "admin@example.com", UserRole.BRAND, is_admin=True)
        creator = await make_user(session, "creator@example.com", UserRole.CREATOR)
        await credit_creator(session, creator, 5_000)
        method = await add_fund_account(session, creator)
        payouts = PayoutService(session)
        payout = await payouts.request_withdrawal(creator, amount=2_000, payment_method_id=method.id)
        await payouts.approve(payout.id, admin_id=admin.id)
        payout.status = PayoutStatus.PROCESSING
        await session.commit()

    event = {
        "event": "payout.failed",
        "payload": {
            "payout": {
                "entity": {
                    "id": "pout_9",
                    "reference_id": str(payout.id),
                    "status_details": {"description": "Invalid beneficiary"},
                }
            }
        },
    }
    for _ in range(2):
        response = await client.post("/api/razorpay/webhook", **signed(event))
        assert response.status_code == 200

    async with factory() as session:
        stored = await session.get(Payout, payout.id)
        wallet = await WalletService(session).get(creator.id)
        assert stored.status == PayoutStatus.FAILED
        assert stored.failed_reason == "Invalid beneficiary"
        assert (wallet.available_balance, wallet.pending_balance) == (5_000, 0)


@pytest.mark.asyncio
async def test_tracking_link_redirects_and_counts(client, factory):
    async with factory() as session:
        brand = await make_user(session, "brand@example.com", UserRole.BRAND)
        creator = await make_user(session, "creator@example.com", UserRole.CREATOR)
        campaign = await make_campaign(session, brand, live=True)
        participation = await CampaignService(session).invite_creator(brand, campaign.id, creator.id)
        link = await session.get(TrackingLink, participation.tracking_link_id)
        await session.commit()

    headers = {"x-forwarded-for": "203.0.113.7, 10.0.0.1", "user-agent": BROWSER_UA}
    response = await client.get(f"/t/{link.slug}", headers=headers)
    assert response.status_code == 302
    assert response.headers["location"] == "https://shop.example.com/summer"

    response = await client.get("/t/no-such-link")
    assert response.status_code == 404
    assert response.json()["code"] == "NOT_FOUND"

    client.cookies.update(session_cookie(brand))
    response = await client.get(f"/api/tracking/campaigns/{campaign.id}/stats")
    assert response.json()["total_clicks"] == 1


@pytest.mark.asyncio
async def test_brand_creates_campaign_and_admin_only_routes(client, factory):
    brand = await _seed_user(factory, "brand@example.com", UserRole.BRAND)
    client.cookies.update(session_cookie(brand))
    response = await client.post(
        "/api/campaigns",
        json={
            "name": "Monsoon Sale",
            "type": "CLICK",
            "total_budget": 30_000,
            "start_date": "2030-06-01T00:00:00",
            "end_date": "2030-07-01T00:00:00",
            "payout_per_click": 3,
            "landing_page_url": "https://shop.example.com/monsoon",
            "target_platforms": ["INSTAGRAM"],
        },
    )
    assert response.status_code == 201
    body = response.json()
    assert (body["status"], body["duration"]) == ("DRAFT", 30)

    response = await client.get("/api/admin/payouts/pending/count")
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_failed_otp_attempts_are_kept_between_requests(client, factory):
    payload = {"identifier": "attempts@example.com", "type": "EMAIL_VERIFICATION"}
    await client.post("/api/auth/otp/send", json=payload)

    statuses = [
        (await client.post("/api/auth/otp/verify", json={**payload, "code": "000000"})).status_code
        for _ in range(3)
    ]
    assert statuses == [400, 400, 400]

    response = await client.post("/api/auth/otp/verify", json={**payload, "code": "123456"})
    assert response.status_code == 429
    async with factory() as session:
        otp = (await session.execute(select(OneTimePassword))).scalar_one()
    assert otp.attempts == 3
    assert not otp.verified


@pytest.mark.asyncio
async def test_checkout_funding_credits_the_order_amount(client, factory):
    brand = await _seed_user(factory, "brand@example.com", UserRole.BRAND)
    client.cookies.update(session_cookie(brand))
    order = (await client.post("/api/razorpay/order", json={"amount": 1_000})).json()
    body = {
        "razorpay_order_id": order["orderId"],
        "razorpay_payment_id": "pay_77",
        "razorpay_signature": hmac_sha256_hex(
            settings.razorpay.key_secret.get_secret_value(), f"{order['orderId']}|pay_77"
        ),
    }

    response = await client.post("/api/wallet/brand/funding", json={**body, "amount": 1_000_000})
    assert response.status_code == 400

    response = await client.post("/api/wallet/brand/funding", json={**body, "amount": 1_000})
    assert response.status_code == 200
    assert response.json()["available_balance"] == 1_000

    # The webhook for the same order does not credit it again.
    await client.post("/api/razorpay/webhook", **signed(captured(order["orderId"], 100_000)))
    async with factory() as session:
        assert (await WalletService(session).get(brand.id)).available_balance == 1_000
