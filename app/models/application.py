import uuid
import enum
from sqlalchemy import Column, Text, Index, ForeignKey, DateTime, Uuid, text
from app.db.base import Base
from app.models.enum_column import enum_column_type
from app.utils.clock import utcnow


class ApplicationStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class Application(Base):
    """An applicant's request to be matched with a date order. Never deleted."""
    __tablename__ = "date_order_applications"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    order_id = Column(Uuid, ForeignKey("date_orders.id"), nullable=False, index=True)
    applicant_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)

    message = Column(Text, default="")
    status = Column(
        enum_column_type(ApplicationStatus, "application_status"),
        default=ApplicationStatus.PENDING,
        nullable=False,
    )

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index('ix_application_order_status', 'order_id', 'status'),
        # One live (pending or accepted) application per applicant and order
        Index(
            'uq_application_live', 'order_id', 'applicant_id',
            unique=True,
            postgresql_where=text("status IN ('pending', 'accepted')"),
            sqlite_where=text("status IN ('pending', 'accepted')"),
        ),
    )
