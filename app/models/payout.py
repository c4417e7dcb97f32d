import uuid
import enum
from sqlalchemy import Column, ForeignKey, DateTime, BigInteger, Uuid
from app.db.base import Base
from app.models.enum_column import enum_column_type
from app.utils.clock import utcnow


class PayoutStatus(str, enum.Enum):
    PENDING = "pending"


class RestaurantPayout(Base):
    """Restaurant's pending payout for one completed date order."""
    __tablename__ = "restaurant_payouts"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    date_order_id = Column(Uuid, ForeignKey("date_orders.id"), nullable=False, unique=True)
    restaurant_id = Column(Uuid, nullable=False, index=True)

    amount = Column(BigInteger, nullable=False)
    status = Column(enum_column_type(PayoutStatus, "payout_status"), default=PayoutStatus.PENDING, nullable=False)

    created_at = Column(DateTime(timezone=True), default=utcnow)
