import uuid
import enum
from sqlalchemy import Column, String, ForeignKey, DateTime, Uuid
from app.db.base import Base
from app.models.enum_column import enum_column_type
from app.utils.clock import utcnow


class VipTier(str, enum.Enum):
    FREE = "free"
    VIP = "vip"
    SVIP = "svip"


class User(Base):
    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(255))
    vip_tier = Column(enum_column_type(VipTier, "vip_tier"), default=VipTier.FREE, nullable=False)

    # Real photo is only shown to connected users; the public avatar is generated
    avatar_url = Column(String(1024))
    public_avatar_url = Column(String(1024))

    referred_by = Column(Uuid, ForeignKey("users.id"), nullable=True, index=True)

    created_at = Column(DateTime(timezone=True), default=utcnow)
