import pytest

from viral_payouts.config import settings
from viral_payouts.errors import BadRequestError, ConflictError, ForbiddenError, NotFoundError
from viral_payouts.models import EscrowStatus, TransactionType, UserRole, WalletType
from viral_payouts.security import hmac_sha256_hex
from viral_payouts.services.escrow import EscrowService, Release
from viral_payouts.services.payouts import PayoutService
from viral_payouts.services.wallets import WalletService

from factories import add_fund_account, fund_brand, make_campaign, make_user


@pytest.mark.asyncio
async def test_funding_is_credited_once_per_order(session):
    brand = await make_user(session, "brand@example.com", UserRole.BRAND)
    wallets = WalletService(session)
    wallet = await wallets.get(brand.id)

    first = await wallets.credit_funding(wallet, amount=5_000, order_id="order_a", user_id=brand.id)
    again = await wallets.credit_funding(wallet, amount=5_000, order_id="order_a", user_id=brand.id)

    assert first.id == again.id
    assert first.type == TransactionType.CAMPAIGN_FUND
    assert wallet.available_balance == 5_000


def _checkout_signature(order_id, payment_id):
    return hmac_sha256_hex(settings.razorpay.key_secret.get_secret_value(), f"{order_id}|{payment_id}")


@pytest.mark.asyncio
async def test_record_brand_funding_checks_minimum_and_signature(session, gateway):
    brand = await make_user(session, "brand@example.com", UserRole.BRAND)
    wallets = WalletService(session)
    with pytest.raises(BadRequestError):
        await wallets.record_brand_funding(
            brand, amount=500, payment_id="pay_1", order_id="order_1", signature="x", gateway=gateway
        )
    with pytest.raises(BadRequestError, match="signature"):
        await wallets.record_brand_funding(
            brand, amount=5_000, payment_id="pay_1", order_id="order_1", signature="bad", gateway=gateway
        )
    with pytest.raises(BadRequestError, match="Unknown payment order"):
        await wallets.record_brand_funding(
            brand,
            amount=5_000,
            payment_id="pay_1",
            order_id="order_1",
            signature=_checkout_signature("order_1", "pay_1"),
            gateway=gateway,
        )


@pytest.mark.asyncio
async def test_record_brand_funding_credits_the_order_amount(session, gateway):
    brand = await make_user(session, "brand@example.com", UserRole.BRAND)
    other = await make_user(session, "other@example.com", UserRole.BRAND)
    order = await gateway.create_order(amount=1_000, receipt="r", notes={"userId": str(brand.id)})
    signature = _checkout_signature(order["id"], "pay_1")
    wallets = WalletService(session)

    with pytest.raises(BadRequestError, match="does not match"):
        await wallets.record_brand_funding(
            brand, amount=1_000_000, payment_id="pay_1", order_id=order["id"], signature=signature, gateway=gateway
        )
    with pytest.raises(ForbiddenError):
        await wallets.record_brand_funding(
            other, amount=1_000, payment_id="pay_1", order_id=order["id"], signature=signature, gateway=gateway
        )

    wallet = await wallets.record_brand_funding(
        brand, amount=1_000, payment_id="pay_1", order_id=order["id"], signature=signature, gateway=gateway
    )
    assert wallet.available_balance == 1_000
    assert (await wallets.get(other.id)).available_balance == 0


@pytest.mark.asyncio
async def test_money_movements_keep_wallets_reconciled(session):
    admin = await make_user(session, "admin@example.com", UserRole.BRAND, is_admin=True)
    brand = await make_user(session, "brand@example.com", UserRole.BRAND)
    creator = await make_user(session, "creator@example.com", UserRole.CREATOR)
    wallets = WalletService(session)
    escrows = EscrowService(session)

    brand_wallet = await fund_brand(session, brand, 100_000)
    campaign = await make_campaign(session, brand)
    escrow = await escrows.lock_funds(brand, campaign.id, 50_000)
    assert brand_wallet.available_balance == 50_000
    assert brand_wallet.escrow_balance == 50_000
    assert escrow.commission_amount == 7_500

    await escrows.release(escrow.id, [Release(creator_id=creator.id, amount=10_000)], admin_id=admin.id)
    creator_wallet = await wallets.get(creator.id)
    assert escrow.status == EscrowStatus.PARTIALLY_RELEASED
    assert creator_wallet.available_balance == 10_000
    assert creator_wallet.lifetime_earnings == 10_000
    assert brand_wallet.escrow_balance == 40_000
    assert campaign.spent_budget == 10_000

    method = await add_fund_account(session, creator)
    payouts = PayoutService(session)
    payout = await payouts.request_withdrawal(creator, amount=4_000, payment_method_id=method.id)
    assert creator_wallet.available_balance == 6_000
    assert creator_wallet.pending_balance == 4_000

    await payouts.reject(payout.id, admin_id=admin.id, reason="KYC missing")
    assert creator_wallet.available_balance == 10_000
    assert creator_wallet.pending_balance == 0

    await escrows.refund(escrow.id, admin_id=admin.id, reason="Campaign cancelled")
    assert brand_wallet.available_balance == 90_000
    assert brand_wallet.escrow_balance == 0

    for wallet in (brand_wallet, creator_wallet):
        report = await wallets.reconcile(wallet)
        assert report.balanced, report


@pytest.mark.asyncio
async def test_escrow_rules(session):
    admin = await make_user(session, "admin@example.com", UserRole.BRAND, is_admin=True)
    brand = await make_user(session, "brand@example.com", UserRole.BRAND)
    creator = await make_user(session, "creator@example.com", UserRole.CREATOR)
    await fund_brand(session, brand, 30_000)
    campaign = await make_campaign(session, brand, total_budget=25_000)
    escrows = EscrowService(session)

    with pytest.raises(BadRequestError, match="Insufficient"):
        await escrows.lock_funds(brand, campaign.id, 40_000)
    escrow = await escrows.lock_funds(brand, campaign.id, 25_000)
    with pytest.raises(ConflictError):
        await escrows.lock_funds(brand, campaign.id, 1_000)

    with pytest.raises(BadRequestError, match="exceeds"):
        await escrows.release(escrow.id, [Release(creator_id=creator.id, amount=30_000)], admin_id=admin.id)
    with pytest.raises(NotFoundError):
        await escrows.release(escrow.id, [Release(creator_id=brand.id, amount=1_000)], admin_id=admin.id)

    await escrows.release(escrow.id, [Release(creator_id=creator.id, amount=25_000)], admin_id=admin.id)
    assert escrow.status == EscrowStatus.FULLY_RELEASED
    with pytest.raises(BadRequestError, match="closed"):
        await escrows.refund(escrow.id, admin_id=admin.id)


@pytest.mark.asyncio
async def test_withdrawal_validation(session):
    creator = await make_user(session, "creator@example.com", UserRole.CREATOR)
    method = await add_fund_account(session, creator)
    payouts = PayoutService(session)

    with pytest.raises(BadRequestError, match="Minimum"):
        await payouts.request_withdrawal(creator, amount=50, payment_method_id=method.id)
    with pytest.raises(BadRequestError, match="Insufficient"):
        await payouts.request_withdrawal(creator, amount=500, payment_method_id=method.id)


@pytest.mark.asyncio
async def test_payment_methods_single_primary_and_guarded_delete(session):
    creator = await make_user(session, "creator@example.com", UserRole.CREATOR)
    wallets = WalletService(session)
    first = await add_fund_account(session, creator, "fa_1")
    second = await add_fund_account(session, creator, "fa_2")
    await session.refresh(first)
    assert not first.is_primary and second.is_primary

    await wallets.update_payment_method(creator.id, first.id, is_primary=True)
    await session.refresh(second)
    assert first.is_primary and not second.is_primary

    wallet = await wallets.get(creator.id)
    assert wallet.type == WalletType.CREATOR
    await wallets.post(wallet, amount=1_000, type=TransactionType.EARNING)
    await PayoutService(session).request_withdrawal(creator, amount=500, payment_method_id=first.id)
    with pytest.raises(BadRequestError, match="pending payouts"):
        await wallets.delete_payment_method(creator.id, first.id)
    await wallets.delete_payment_method(creator.id, second.id)
    assert [m.id for m in await wallets.list_payment_methods(wallet.id)] == [first.id]
