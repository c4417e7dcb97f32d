import logging
import uuid
from dataclasses import dataclass
from typing import List, Optional, Tuple
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, or_
from sqlalchemy.exc import IntegrityError
from app.core.errors import OrderNotFound, PermissionDenied, StateConflict, DuplicateReview, ValidationError
from app.config.constants import (
    MIN_REVIEW_RATING,
    MAX_REVIEW_RATING,
    MAX_REVIEW_COMMENT_LENGTH,
    NOTIFY_CONNECTION,
)
from app.models.date_order import DateOrder, OrderStatus
from app.models.review import PersonReview, Connection, ordered_pair
from app.models.user import User

logger = logging.getLogger(__name__)


@dataclass
class ReviewOutcome:
    review: PersonReview
    connection_created: bool
    connection: Optional[Connection] = None


class RevealService:
    """Consent gate for revealing real identities after a completed date.

    A Connection exists only when both parties of a completed order said they
    want to meet again.
    """

    def __init__(self, session: AsyncSession, notifier=None):
        self.session = session
        self.notifier = notifier

    async def submit_review(
        self,
        order_id: uuid.UUID,
        reviewer_id: uuid.UUID,
        reviewee_id: uuid.UUID,
        want_to_meet_again: bool,
        rating: int = MAX_REVIEW_RATING,
        comment: str = "",
    ) -> ReviewOutcome:
        order = await self.session.get(DateOrder, order_id, populate_existing=True)
        if not order:
            raise OrderNotFound(order_id=order_id)
        if order.status != OrderStatus.COMPLETED:
            raise StateConflict("Reviews open once the date is completed", order_id=order_id)
        if not order.is_party(reviewer_id) or reviewee_id != order.counterpart_of(reviewer_id):
            raise PermissionDenied("Only the two parties of a date can review each other")
        if not MIN_REVIEW_RATING <= rating <= MAX_REVIEW_RATING:
            raise ValidationError(f"Rating must be between {MIN_REVIEW_RATING} and {MAX_REVIEW_RATING}")

        if await self.get_review(order_id, reviewer_id):
            raise DuplicateReview(order_id=order_id)

        review = PersonReview(
            date_order_id=order_id,
            reviewer_id=reviewer_id,
            reviewee_id=reviewee_id,
            rating=rating,
            comment=(comment or "")[:MAX_REVIEW_COMMENT_LENGTH],
            want_to_meet_again=bool(want_to_meet_again),
        )
        self.session.add(review)
        try:
            await self.session.commit()
        except IntegrityError:
            await self.session.rollback()
            raise DuplicateReview(order_id=order_id)

        connection, created = await self.ensure_connection(order)
        return ReviewOutcome(review=review, connection_created=created, connection=connection)

    async def get_review(self, order_id: uuid.UUID, reviewer_id: uuid.UUID) -> Optional[PersonReview]:
        result = await self.session.execute(
            select(PersonReview).where(
                PersonReview.date_order_id == order_id,
                PersonReview.reviewer_id == reviewer_id,
            )
        )
        return result.scalars().first()

    async def ensure_connection(self, order: DateOrder) -> Tuple[Optional[Connection], bool]:
        """Create the Connection once both parties want to meet again.

        Safe to call any number of times; both review submissions race to
        call it. Returns (connection or None, created_by_this_call).
        """
        result = await self.session.execute(
            select(PersonReview.reviewer_id).where(
                PersonReview.date_order_id == order.id,
                PersonReview.want_to_meet_again.is_(True),
            )
        )
        consenting = set(result.scalars().all())
        if not {order.creator_id, order.matched_user_id} <= consenting:
            return None, False

        user1_id, user2_id = ordered_pair(order.creator_id, order.matched_user_id)
        existing = await self.get_connection(user1_id, user2_id)
        if existing:
            return existing, False

        connection = Connection(user1_id=user1_id, user2_id=user2_id, date_order_id=order.id)
        self.session.add(connection)
        try:
            await self.session.commit()
        except IntegrityError:
            await self.session.rollback()
            return await self.get_connection(user1_id, user2_id), False

        logger.info(f"Connection created between {user1_id} and {user2_id} (order {order.id})")
        if self.notifier:
            await self.notifier.notify_many(
                [user1_id, user2_id], NOTIFY_CONNECTION, "It's mutual!",
                "You both want to meet again. Real profiles are now visible to each other.",
                {"orderId": order.id, "connectionId": connection.id},
            )
        return connection, True

    async def get_connection(self, user_a: uuid.UUID, user_b: uuid.UUID) -> Optional[Connection]:
        user1_id, user2_id = ordered_pair(user_a, user_b)
        result = await self.session.execute(
            select(Connection).where(Connection.user1_id == user1_id, Connection.user2_id == user2_id)
        )
        return result.scalars().first()

    async def has_connection(self, user_a: uuid.UUID, user_b: uuid.UUID) -> bool:
        return await self.get_connection(user_a, user_b) is not None

    async def list_connections(self, user_id: uuid.UUID) -> List[Connection]:
        stmt = (
            select(Connection)
            .where(or_(Connection.user1_id == user_id, Connection.user2_id == user_id))
            .order_by(Connection.connected_at.desc())
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def resolve_avatar(self, viewer_id: uuid.UUID, target: User) -> Optional[str]:
        """Real avatar for the user themself and their connections, public avatar otherwise."""
        if viewer_id == target.id or await self.has_connection(viewer_id, target.id):
            return target.avatar_url or target.public_avatar_url
        return target.public_avatar_url
