import uuid
import enum
from sqlalchemy import Column, String, Text, Index, ForeignKey, DateTime, Boolean, Integer, BigInteger, Uuid
from app.db.base import Base
from app.models.enum_column import enum_column_type
from app.config.constants import DEFAULT_MAX_APPLICANTS
from app.utils.clock import utcnow


class OrderStatus(str, enum.Enum):
    ACTIVE = "active"        # Waiting for applicants
    MATCHED = "matched"      # Applicant accepted, both charges in escrow
    COMPLETED = "completed"  # Date happened, escrow settled
    EXPIRED = "expired"      # Nobody was matched in time
    CANCELLED = "cancelled"  # Creator cancelled before matching
    NO_SHOW = "no_show"      # One party did not show up

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({
    OrderStatus.COMPLETED,
    OrderStatus.EXPIRED,
    OrderStatus.CANCELLED,
    OrderStatus.NO_SHOW,
})


ALLOWED_TRANSITIONS = {
    OrderStatus.ACTIVE: frozenset({OrderStatus.MATCHED, OrderStatus.EXPIRED, OrderStatus.CANCELLED}),
    OrderStatus.MATCHED: frozenset({OrderStatus.COMPLETED, OrderStatus.NO_SHOW}),
    OrderStatus.COMPLETED: frozenset(),
    OrderStatus.EXPIRED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
    OrderStatus.NO_SHOW: frozenset(),
}


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[OrderStatus(current)]


class PaymentSplit(str, enum.Enum):
    SPLIT = "split"
    CREATOR_PAYS = "creator_pays"
    APPLICANT_PAYS = "applicant_pays"


class DateOrder(Base):
    __tablename__ = "date_orders"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    creator_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    restaurant_id = Column(Uuid, nullable=False, index=True)
    combo_id = Column(Uuid, nullable=False)

    date_time = Column(DateTime(timezone=True), nullable=False)
    description = Column(Text)
    payment_split = Column(enum_column_type(PaymentSplit, "payment_split"), default=PaymentSplit.SPLIT, nullable=False)

    # Pricing, frozen when the order is created (integer VND)
    combo_price = Column(BigInteger, default=0, nullable=False)
    creator_charge = Column(BigInteger, nullable=False)
    applicant_charge = Column(BigInteger, nullable=False)
    restaurant_payout = Column(BigInteger, nullable=False)

    status = Column(enum_column_type(OrderStatus, "order_status"), default=OrderStatus.ACTIVE, nullable=False)
    matched_user_id = Column(Uuid, ForeignKey("users.id"), nullable=True, index=True)
    matched_at = Column(DateTime(timezone=True))
    completed_at = Column(DateTime(timezone=True))
    auto_completed = Column(Boolean, default=False, nullable=False)

    max_applicants = Column(Integer, default=DEFAULT_MAX_APPLICANTS, nullable=False)
    applicant_count = Column(Integer, default=0, server_default="0", nullable=False)

    # End of the match window
    expires_at = Column(DateTime(timezone=True), nullable=False)
    cancelled_at = Column(DateTime(timezone=True))
    expired_at = Column(DateTime(timezone=True))

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index('ix_date_order_status_date', 'status', 'date_time'),
        Index('ix_date_order_status_expires', 'status', 'expires_at'),
        Index('ix_date_order_creator_status', 'creator_id', 'status'),
    )

    def is_party(self, user_id: uuid.UUID) -> bool:
        return user_id is not None and user_id in (self.creator_id, self.matched_user_id)

    def counterpart_of(self, user_id: uuid.UUID):
        if user_id == self.creator_id:
            return self.matched_user_id
        if user_id == self.matched_user_id:
            return self.creator_id
        return None
