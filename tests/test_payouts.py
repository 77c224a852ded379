import pytest
from sqlalchemy import select

from viral_payouts.errors import BadRequestError, NotFoundError
from viral_payouts.models import AdminAction, ApprovalStatus, PayoutStatus, UserRole
from viral_payouts.services.payouts import PayoutService, quote_withdrawal
from viral_payouts.services.wallets import WalletService

from factories import FakeGateway, add_fund_account, credit_creator, make_user


async def _setup(session, *, fund_account_id="fa_test_1"):
    admin = await make_user(session, "admin@example.com", UserRole.BRAND, is_admin=True)
    creator = await make_user(session, "creator@example.com", UserRole.CREATOR)
    wallet = await credit_creator(session, creator, 50_000)
    method = await add_fund_account(session, creator, fund_account_id)
    return admin, creator, wallet, method


def test_tds_applies_above_threshold():
    assert quote_withdrawal(20_000).tds_amount == 0
    quote = quote_withdrawal(25_000)
    assert (quote.tds_amount, quote.net_amount) == (2_500, 22_500)


@pytest.mark.asyncio
async def test_payout_is_approved_only_once(session):
    admin, creator, _, method = await _setup(session)
    payouts = PayoutService(session)
    payout = await payouts.request_withdrawal(creator, amount=1_000, payment_method_id=method.id)

    approved = await payouts.approve(payout.id, admin_id=admin.id)
    assert approved.approval_status == ApprovalStatus.APPROVED
    with pytest.raises(BadRequestError, match="already processed"):
        await payouts.approve(payout.id, admin_id=admin.id)
    with pytest.raises(BadRequestError):
        await payouts.reject(payout.id, admin_id=admin.id, reason="late")
    with pytest.raises(NotFoundError):
        await payouts.approve(9_999, admin_id=admin.id)

    actions = (await session.execute(select(AdminAction.action))).scalars().all()
    assert actions == ["approve_payout"]


@pytest.mark.asyncio
async def test_batch_approve_counts_only_pending(session):
    admin, creator, _, method = await _setup(session)
    payouts = PayoutService(session)
    first = await payouts.request_withdrawal(creator, amount=1_000, payment_method_id=method.id)
    second = await payouts.request_withdrawal(creator, amount=2_000, payment_method_id=method.id)
    await payouts.approve(first.id, admin_id=admin.id)

    assert await payouts.count_pending_approval() == 1
    assert await payouts.batch_approve([first.id, second.id], admin_id=admin.id) == 1
    assert await payouts.count_pending_approval() == 0


@pytest.mark.asyncio
async def test_execute_completes_processed_payout(session):
    admin, creator, wallet, method = await _setup(session)
    gateway = FakeGateway(payout_status="processed")
    payouts = PayoutService(session, gateway)
    payout = await payouts.request_withdrawal(creator, amount=25_000, payment_method_id=method.id)
    await payouts.approve(payout.id, admin_id=admin.id)

    await payouts.execute(payout.id)

    assert payout.status == PayoutStatus.COMPLETED
    assert payout.razorpay_payout_id == f"pout_{payout.id}"
    assert gateway.payouts == [{"fund_account_id": "fa_test_1", "amount": 22_500, "reference_id": str(payout.id)}]
    assert (wallet.available_balance, wallet.pending_balance) == (25_000, 0)
    assert (await WalletService(session).reconcile(wallet)).balanced


@pytest.mark.asyncio
async def test_unapproved_payout_is_not_executed(session):
    _, creator, _, method = await _setup(session)
    gateway = FakeGateway()
    payouts = PayoutService(session, gateway)
    payout = await payouts.request_withdrawal(creator, amount=1_000, payment_method_id=method.id)

    await payouts.execute(payout.id)

    assert payout.status == PayoutStatus.PENDING
    assert gateway.payouts == []
    assert await payouts.executable_ids() == []


@pytest.mark.asyncio
async def test_gateway_callbacks_settle_processing_payout_once(session):
    admin, creator, wallet, method = await _setup(session)
    payouts = PayoutService(session, FakeGateway(payout_status="processing"))
    payout = await payouts.request_withdrawal(creator, amount=5_000, payment_method_id=method.id)
    await payouts.approve(payout.id, admin_id=admin.id)
    await payouts.execute(payout.id)
    assert payout.status == PayoutStatus.PROCESSING

    await payouts.mark_failed(str(payout.id), "pout_x", "Beneficiary bank down")
    await payouts.mark_failed(str(payout.id), "pout_x", "Beneficiary bank down")
    await payouts.mark_processed(str(payout.id), "pout_x")

    assert payout.status == PayoutStatus.FAILED
    assert payout.failed_reason == "Beneficiary bank down"
    assert (wallet.available_balance, wallet.pending_balance) == (50_000, 0)
    assert (await WalletService(session).reconcile(wallet)).balanced
    assert await payouts.mark_processed("not-a-number", None) is None


@pytest.mark.asyncio
async def test_missing_fund_account_or_gateway_error_fails_and_refunds(session):
    admin, creator, wallet, method = await _setup(session, fund_account_id="")
    gateway = FakeGateway()
    payouts = PayoutService(session, gateway)
    payout = await payouts.request_withdrawal(creator, amount=3_000, payment_method_id=method.id)
    await payouts.approve(payout.id, admin_id=admin.id)
    await payouts.execute(payout.id)
    assert payout.status == PayoutStatus.FAILED
    assert payout.failed_reason == "No payment method configured"

    other = await add_fund_account(session, creator, "fa_ok")
    gateway.error = "Insufficient balance in payout account"
    payout = await payouts.request_withdrawal(creator, amount=3_000, payment_method_id=other.id)
    await payouts.approve(payout.id, admin_id=admin.id)
    await payouts.execute(payout.id)
    assert payout.status == PayoutStatus.FAILED
    assert payout.failed_reason == "Insufficient balance in payout account"

    assert (wallet.available_balance, wallet.pending_balance) == (50_000, 0)
    assert (await WalletService(session).reconcile(wallet)).balanced


@pytest.mark.asyncio
async def test_reverse_only_completed_payouts(session):
    admin, creator, wallet, method = await _setup(session)
    payouts = PayoutService(session, FakeGateway(payout_status="processed"))
    payout = await payouts.request_withdrawal(creator, amount=10_000, payment_method_id=method.id)
    with pytest.raises(BadRequestError, match="completed"):
        await payouts.reverse(payout.id, admin_id=admin.id, reason="chargeback")

    await payouts.approve(payout.id, admin_id=admin.id)
    await payouts.execute(payout.id)
    await payouts.reverse(payout.id, admin_id=admin.id, reason="chargeback")

    assert payout.status == PayoutStatus.FAILED
    assert payout.failed_reason == "Reversed: chargeback"
    assert (wallet.available_balance, wallet.pending_balance) == (50_000, 0)
    assert (await WalletService(session).reconcile(wallet)).balanced
