import pytest
from sqlalchemy import select
from app.models import ReferralReward, RewardStatus, Transaction, TransactionType
from app.services.referral_service import ReferralService
from app.services.settlement_service import SettlementService


@pytest.fixture
def complete(session, notifier, move_date):
    async def _complete(order):
        await move_date(order.id, hours=-6)
        return await SettlementService(session, notifier=notifier).complete_order(order)
    return _complete


async def referral_bonuses(session):
    result = await session.execute(
        select(Transaction).where(Transaction.type == TransactionType.REFERRAL_BONUS)
    )
    return result.scalars().all()


@pytest.mark.asyncio
async def test_first_completion_pays_both_sides(session, make_user, matched_order, complete, wallet_of):
    referrer = await make_user(balance=0)
    creator = await make_user()
    applicant = await make_user(referred_by=referrer.id)
    order = await matched_order(creator, applicant)

    await complete(order)

    assert (await wallet_of(referrer.id)).balance == 50_000
    assert (await wallet_of(applicant.id)).balance == 400_000 + 30_000
    reward = await ReferralService(session).get_reward(referrer.id, applicant.id)
    assert reward.status == RewardStatus.COMPLETED
    assert reward.completed_at is not None
    bonuses = await referral_bonuses(session)
    assert {tx.related_id for tx in bonuses} == {reward.id}


@pytest.mark.asyncio
async def test_second_completion_pays_nothing(session, make_user, matched_order, complete, wallet_of):
    referrer = await make_user(balance=0)
    creator = await make_user(balance=1_000_000)
    applicant = await make_user(referred_by=referrer.id)

    await complete(await matched_order(creator, applicant))
    await complete(await matched_order(creator, applicant))

    assert (await wallet_of(referrer.id)).balance == 50_000
    assert len(await referral_bonuses(session)) == 2
    rewards = (await session.execute(select(ReferralReward))).scalars().all()
    assert len(rewards) == 1


@pytest.mark.asyncio
async def test_unreferred_user_gets_no_bonus(session, make_user, matched_order, complete):
    creator = await make_user()
    applicant = await make_user()

    await complete(await matched_order(creator, applicant))

    assert await referral_bonuses(session) == []


@pytest.mark.asyncio
async def test_trigger_is_idempotent(session, make_user, matched_order, complete, notifier):
    referrer = await make_user(balance=0)
    creator = await make_user()
    applicant = await make_user(referred_by=referrer.id)
    await complete(await matched_order(creator, applicant))

    service = ReferralService(session, notifier=notifier)
    assert await service.on_first_completion(applicant.id) is None
    assert len(await referral_bonuses(session)) == 2
