import uuid
from sqlalchemy import Column, String, Text, Index, ForeignKey, DateTime, Boolean, JSON, Uuid
from app.db.base import Base
from app.utils.clock import utcnow


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)

    type = Column(String(50), nullable=False)
    title = Column(String(255), nullable=False)
    message = Column(Text)
    data = Column(JSON, default=dict)
    is_read = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        Index('ix_notification_user_read', 'user_id', 'is_read'),
    )
