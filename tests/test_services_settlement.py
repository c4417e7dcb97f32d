"""
Tests for the escrow settlement worker (auto-complete and auto-reject sweeps).
"""
from datetime import timedelta
import pytest
from sqlalchemy import select, func, delete
from app.models import (
    ApplicationStatus,
    OrderStatus,
    RestaurantPayout,
    Transaction,
    TransactionType,
    Payee,
    WalletAccount,
)
from app.services.settlement_service import SettlementService, SweepResult
from app.utils.clock import as_utc


async def count_transactions(session):
    return (await session.execute(select(func.count(Transaction.id)))).scalar()


@pytest.fixture
def settlement(session, notifier):
    return SettlementService(session, notifier=notifier)


def after_date(order, hours):
    return as_utc(order.date_time) + timedelta(hours=hours)


# ========================
# Auto-complete
# ========================

@pytest.mark.asyncio
async def test_auto_complete_settles_both_charges(session, make_user, matched_order, settlement, order_service, wallet_of):
    creator = await make_user()
    applicant = await make_user()
    order = await matched_order(creator, applicant)

    result = await settlement.run_settlement_sweep(now=after_date(order, 5))

    assert result.processed == 1
    assert result.errors == []
    order = await order_service.get_order(order.id)
    assert order.status == OrderStatus.COMPLETED
    assert order.auto_completed is True
    assert order.completed_at is not None

    for user in (creator, applicant):
        wallet = await wallet_of(user.id)
        assert wallet.balance == 400_000
        assert wallet.escrow == 0

    payments = (await session.execute(
        select(Transaction).where(
            Transaction.related_id == order.id,
            Transaction.type == TransactionType.DATE_PAYMENT,
        )
    )).scalars().all()
    assert sorted(tx.amount for tx in payments) == [100_000, 100_000]
    assert {tx.payee for tx in payments} == {Payee.PLATFORM}

    payout = (await session.execute(
        select(RestaurantPayout).where(RestaurantPayout.date_order_id == order.id)
    )).scalars().one()
    assert payout.amount == 170_000


@pytest.mark.asyncio
async def test_auto_complete_waits_for_grace_period(make_user, matched_order, settlement, order_service):
    creator = await make_user()
    applicant = await make_user()
    order = await matched_order(creator, applicant)

    result = await settlement.run_settlement_sweep(now=after_date(order, 3))

    assert result.processed == 0
    order = await order_service.get_order(order.id)
    assert order.status == OrderStatus.MATCHED


@pytest.mark.asyncio
async def test_second_sweep_is_a_no_op(session, make_user, matched_order, settlement, wallet_of):
    creator = await make_user()
    applicant = await make_user()
    order = await matched_order(creator, applicant)
    now = after_date(order, 5)

    await settlement.run_settlement_sweep(now=now)
    tx_count = await count_transactions(session)
    result = await settlement.run_settlement_sweep(now=now)

    assert result.processed == 0
    assert await count_transactions(session) == tx_count
    assert (await wallet_of(creator.id)).balance == 400_000


@pytest.mark.asyncio
async def test_stale_snapshot_loses_the_race(session, make_user, matched_order, settlement, notifier):
    creator = await make_user()
    applicant = await make_user()
    order = await matched_order(creator, applicant)
    now = after_date(order, 5)

    # Both runs picked up the order while it was still matched
    assert await settlement.complete_order(order, now=now) is True
    tx_count = await count_transactions(session)
    notifier.notify_many.reset_mock()

    assert await settlement.complete_order(order, now=now) is False
    assert await count_transactions(session) == tx_count
    notifier.notify_many.assert_not_called()


@pytest.mark.asyncio
async def test_one_failing_order_does_not_stop_the_sweep(session, make_user, matched_order, settlement, order_service):
    creator_a = await make_user()
    applicant_a = await make_user()
    creator_b = await make_user()
    applicant_b = await make_user()
    broken = await matched_order(creator_a, applicant_a)
    healthy = await matched_order(creator_b, applicant_b)

    # Settling requires the wallet row
    await session.execute(delete(WalletAccount).where(WalletAccount.user_id == applicant_a.id))
    await session.commit()

    now = max(after_date(broken, 5), after_date(healthy, 5))
    broken_id, healthy_id = broken.id, healthy.id
    result = await settlement.run_settlement_sweep(now=now)

    assert result.processed == 1
    assert len(result.errors) == 1
    assert str(broken_id) in result.errors[0]
    assert (await order_service.get_order(broken_id)).status == OrderStatus.MATCHED
    assert (await order_service.get_order(healthy_id)).status == OrderStatus.COMPLETED


@pytest.mark.asyncio
async def test_completion_asks_both_parties_for_reviews(make_user, matched_order, settlement, notifier):
    creator = await make_user()
    applicant = await make_user()
    order = await matched_order(creator, applicant)
    notifier.notify.reset_mock()

    await settlement.run_settlement_sweep(now=after_date(order, 5))

    review_requests = [
        c.args for c in notifier.notify.call_args_list if c.args[1] == "review_request"
    ]
    assert sorted(args[0] for args in review_requests) == sorted([creator.id, applicant.id])


@pytest.mark.asyncio
async def test_referral_failure_does_not_undo_completion(make_user, matched_order, settlement, order_service):
    creator = await make_user()
    applicant = await make_user()
    order = await matched_order(creator, applicant)

    async def boom(user_id):
        raise RuntimeError("referral store down")

    settlement.referrals.on_first_completion = boom

    result = await settlement.run_settlement_sweep(now=after_date(order, 5))

    assert result.processed == 1
    assert result.errors == []
    assert (await order_service.get_order(order.id)).status == OrderStatus.COMPLETED


# ========================
# Auto-reject
# ========================

@pytest.mark.asyncio
async def test_auto_reject_expires_and_releases_prepay(make_user, create_order, order_service, settlement, wallet_of, notifier):
    creator = await make_user()
    applicant = await make_user()
    order = await create_order(creator, prepay=True)
    application = await order_service.applications.apply(order.id, applicant.id)

    result = await settlement.run_settlement_sweep(now=as_utc(order.expires_at) + timedelta(hours=5))

    assert result.processed == 1
    order = await order_service.get_order(order.id)
    assert order.status == OrderStatus.EXPIRED
    assert order.expired_at is not None
    wallet = await wallet_of(creator.id)
    assert wallet.balance == 500_000
    assert wallet.escrow == 0
    application = await order_service.applications.get_application(application.id)
    assert application.status == ApplicationStatus.REJECTED
    expired = [c.args for c in notifier.notify.call_args_list if c.args[1] == "date_expired"]
    assert [args[0] for args in expired] == [creator.id]
    assert notifier.notify_many.call_args.args[0] == [applicant.id]


@pytest.mark.asyncio
async def test_auto_reject_waits_for_grace_period(make_user, create_order, order_service, settlement):
    creator = await make_user()
    order = await create_order(creator)

    result = await settlement.run_settlement_sweep(now=as_utc(order.expires_at) + timedelta(hours=1))

    assert result.processed == 0
    assert (await order_service.get_order(order.id)).status == OrderStatus.ACTIVE


@pytest.mark.asyncio
async def test_expire_order_after_match_is_skipped(make_user, matched_order, settlement, order_service):
    creator = await make_user()
    applicant = await make_user()
    order = await matched_order(creator, applicant)
    order_id = order.id

    assert await settlement.expire_order(order) is False
    assert (await order_service.get_order(order_id)).status == OrderStatus.MATCHED


def test_sweep_result_merge():
    total = SweepResult(processed=1, errors=["a"])
    total.merge(SweepResult(processed=2, errors=["b"], skipped=1))

    assert total.processed == 3
    assert total.skipped == 1
    assert total.to_dict() == {"processed": 3, "errors": ["a", "b"]}
