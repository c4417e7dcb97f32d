import uuid
import pytest
from unittest.mock import MagicMock
from sqlalchemy import select
from app.models import Notification
from app.services.notification_service import NotificationDispatcher


@pytest.mark.asyncio
async def test_notify_writes_through_own_session(session, session_maker, make_user):
    user = await make_user()
    order_id = uuid.uuid4()
    dispatcher = NotificationDispatcher(session_factory=session_maker)

    assert await dispatcher.notify(user.id, "date_matched", "Matched", "See you there", {"orderId": order_id})

    notification = (await session.execute(select(Notification))).scalars().one()
    assert notification.user_id == user.id
    assert notification.type == "date_matched"
    assert notification.data == {"orderId": str(order_id)}
    assert notification.is_read is False


@pytest.mark.asyncio
async def test_notify_failure_is_logged_not_raised(caplog):
    factory = MagicMock(side_effect=RuntimeError("db down"))
    dispatcher = NotificationDispatcher(session_factory=factory)

    assert await dispatcher.notify(uuid.uuid4(), "system", "Hi", "Hello") is False
    assert "Failed to send notification" in caplog.text


@pytest.mark.asyncio
async def test_notify_many_counts_successes(session_maker, make_user):
    users = [await make_user() for _ in range(3)]
    dispatcher = NotificationDispatcher(session_factory=session_maker)

    sent = await dispatcher.notify_many([u.id for u in users], "system", "Hi", "Hello")
    assert sent == 3
