import uuid
import enum
from sqlalchemy import Column, ForeignKey, DateTime, BigInteger, UniqueConstraint, Uuid
from app.db.base import Base
from app.models.enum_column import enum_column_type
from app.utils.clock import utcnow


class RewardStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"


class ReferralReward(Base):
    __tablename__ = "referral_rewards"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    referrer_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    referred_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)

    referrer_reward = Column(BigInteger, nullable=False)
    referred_reward = Column(BigInteger, nullable=False)
    status = Column(enum_column_type(RewardStatus, "reward_status"), default=RewardStatus.PENDING, nullable=False)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    completed_at = Column(DateTime(timezone=True))

    __table_args__ = (
        UniqueConstraint('referrer_id', 'referred_id', name='uq_referral_pair'),
    )
