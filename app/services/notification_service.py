import logging
import uuid
from typing import Iterable, Optional
from app.models.notification import Notification

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    """Fire-and-forget in-app notifications.

    Writes through its own session so a failed notification can never roll
    back (or block) the order/settlement transaction that triggered it.
    Callers notify only after their own commit.
    """

    def __init__(self, session_factory=None):
        if session_factory is None:
            from app.db.session import AsyncSessionLocal
            session_factory = AsyncSessionLocal
        self.session_factory = session_factory

    async def notify(
        self,
        user_id: uuid.UUID,
        type: str,
        title: str,
        message: str,
        data: Optional[dict] = None,
    ) -> bool:
        try:
            async with self.session_factory() as session:
                session.add(Notification(
                    user_id=user_id,
                    type=type,
                    title=title,
                    message=message,
                    data={k: str(v) for k, v in (data or {}).items()},
                ))
                await session.commit()
            logger.info(f"Notification '{type}' sent to {user_id}")
            return True
        except Exception:
            logger.exception(f"Failed to send notification '{type}' to {user_id}")
            return False

    async def notify_many(
        self,
        user_ids: Iterable[uuid.UUID],
        type: str,
        title: str,
        message: str,
        data: Optional[dict] = None,
    ) -> int:
        sent = 0
        for user_id in user_ids:
            if await self.notify(user_id, type, title, message, data):
                sent += 1
        return sent
