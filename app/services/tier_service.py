import uuid
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from app.core.config import settings
from app.models.user import User, VipTier


class TierService:
    """VIP tier lookup, used only to cap how many active orders a creator may hold."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_tier(self, user_id: uuid.UUID) -> VipTier:
        result = await self.session.execute(select(User.vip_tier).where(User.id == user_id))
        tier = result.scalar_one_or_none()
        return VipTier(tier) if tier else VipTier.FREE

    @staticmethod
    def active_order_cap(tier: VipTier) -> int:
        caps = {
            VipTier.FREE: settings.ACTIVE_ORDER_CAP_FREE,
            VipTier.VIP: settings.ACTIVE_ORDER_CAP_VIP,
            VipTier.SVIP: settings.ACTIVE_ORDER_CAP_SVIP,
        }
        return caps[VipTier(tier)]
