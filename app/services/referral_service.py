import logging
import uuid
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, or_
from sqlalchemy.exc import IntegrityError
from app.core.config import settings
from app.config.constants import NOTIFY_SYSTEM
from app.models.date_order import DateOrder, OrderStatus
from app.models.referral import ReferralReward, RewardStatus
from app.models.user import User
from app.models.wallet import TransactionType
from app.services.wallet_service import WalletLedger
from app.utils.clock import utcnow

logger = logging.getLogger(__name__)


class ReferralService:
    def __init__(self, session: AsyncSession, notifier=None, ledger: WalletLedger = None):
        self.session = session
        self.notifier = notifier
        self.ledger = ledger or WalletLedger(session)

    async def completed_order_count(self, user_id: uuid.UUID) -> int:
        result = await self.session.execute(
            select(func.count(DateOrder.id)).where(
                DateOrder.status == OrderStatus.COMPLETED,
                or_(DateOrder.creator_id == user_id, DateOrder.matched_user_id == user_id),
            )
        )
        return result.scalar() or 0

    async def get_reward(self, referrer_id: uuid.UUID, referred_id: uuid.UUID) -> Optional[ReferralReward]:
        result = await self.session.execute(
            select(ReferralReward).where(
                ReferralReward.referrer_id == referrer_id,
                ReferralReward.referred_id == referred_id,
            )
        )
        return result.scalars().first()

    async def on_first_completion(self, user_id: uuid.UUID) -> Optional[ReferralReward]:
        """Pay the one-time referral bonus after the user's first completed date.

        Returns the reward when it was paid by this call, None otherwise.
        """
        user = await self.session.get(User, user_id)
        if not user or not user.referred_by:
            return None
        referrer_id = user.referred_by

        # Inclusive of the order that just completed
        if await self.completed_order_count(user_id) != 1:
            return None

        reward = await self.get_reward(referrer_id, user_id)
        if reward and reward.status == RewardStatus.COMPLETED:
            logger.info(f"Referral reward for {user_id} already processed")
            return None

        try:
            if not reward:
                reward = ReferralReward(
                    referrer_id=referrer_id,
                    referred_id=user_id,
                    referrer_reward=settings.REFERRER_REWARD,
                    referred_reward=settings.REFERRED_REWARD,
                    status=RewardStatus.PENDING,
                )
                self.session.add(reward)
                await self.session.flush()

            await self.ledger.credit(
                referrer_id, reward.referrer_reward, reward.id,
                TransactionType.REFERRAL_BONUS,
                description=f"Referral bonus: {user.name or 'new member'}",
            )
            await self.ledger.credit(
                user_id, reward.referred_reward, reward.id,
                TransactionType.REFERRAL_BONUS,
                description="Welcome bonus for joining via referral",
            )
            reward.status = RewardStatus.COMPLETED
            reward.completed_at = utcnow()
            await self.session.commit()
        except IntegrityError:
            # A concurrent trigger for the same pair won
            await self.session.rollback()
            logger.info(f"Referral reward for {user_id} processed concurrently, skipping")
            return None
        except Exception:
            await self.session.rollback()
            raise

        logger.info(f"Referral reward paid: referrer={referrer_id} referred={user_id}")

        if self.notifier:
            await self.notifier.notify(
                referrer_id, NOTIFY_SYSTEM, "Referral bonus!",
                f"You received {reward.referrer_reward:,} VND because {user.name or 'your friend'} completed their first date!",
                {"rewardId": reward.id},
            )
            await self.notifier.notify(
                user_id, NOTIFY_SYSTEM, "Welcome bonus!",
                f"You received {reward.referred_reward:,} VND from the referral program.",
                {"rewardId": reward.id},
            )
        return reward
