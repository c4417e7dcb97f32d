import uuid
from sqlalchemy import Column, Text, ForeignKey, DateTime, Boolean, Integer, UniqueConstraint, CheckConstraint, Uuid
from app.db.base import Base
from app.utils.clock import utcnow


class PersonReview(Base):
    """Post-date review of the other party."""
    __tablename__ = "person_reviews"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    date_order_id = Column(Uuid, ForeignKey("date_orders.id"), nullable=False, index=True)
    reviewer_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    reviewee_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)

    rating = Column(Integer, nullable=False)
    comment = Column(Text, default="")
    want_to_meet_again = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        UniqueConstraint('date_order_id', 'reviewer_id', name='uq_review_order_reviewer'),
        CheckConstraint('rating >= 1 AND rating <= 5', name='ck_review_rating_range'),
    )


class Connection(Base):
    """Mutual identity reveal between two users. Written once, never updated.

    The pair is stored ordered (user1_id < user2_id) so the unique constraint
    covers the unordered pair.
    """
    __tablename__ = "connections"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user1_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    user2_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    date_order_id = Column(Uuid, ForeignKey("date_orders.id"), nullable=True)

    connected_at = Column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        UniqueConstraint('user1_id', 'user2_id', name='uq_connection_pair'),
    )


def ordered_pair(a: uuid.UUID, b: uuid.UUID) -> tuple:
    return (a, b) if str(a) < str(b) else (b, a)
