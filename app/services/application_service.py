import logging
import uuid
from typing import List
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from app.core.errors import OrderNotFound, OrderNotOpen, DuplicateApplication, SelfApplication
from app.config.constants import MAX_APPLICATION_MESSAGE_LENGTH, NOTIFY_APPLICATION_RECEIVED
from app.models.application import Application, ApplicationStatus
from app.models.date_order import DateOrder, OrderStatus
from app.utils.clock import as_utc, utcnow

logger = logging.getLogger(__name__)

LIVE_STATUSES = (ApplicationStatus.PENDING, ApplicationStatus.ACCEPTED)


class ApplicationService:
    def __init__(self, session: AsyncSession, notifier=None):
        self.session = session
        self.notifier = notifier

    async def apply(self, order_id: uuid.UUID, applicant_id: uuid.UUID, message: str = "") -> Application:
        order = await self.session.get(DateOrder, order_id, populate_existing=True)
        if not order:
            raise OrderNotFound(order_id=order_id)
        if order.status != OrderStatus.ACTIVE:
            raise OrderNotOpen(order_id=order_id, status=order.status.value)
        now = utcnow()
        if as_utc(order.expires_at) <= now:
            raise OrderNotOpen("The match window for this order has closed", order_id=order_id)
        if applicant_id == order.creator_id:
            raise SelfApplication(order_id=order_id)
        if await self.get_live_application(order_id, applicant_id):
            raise DuplicateApplication(order_id=order_id, applicant_id=applicant_id)

        try:
            # Reserve a slot; fails if the order closed or filled up meanwhile
            result = await self.session.execute(
                update(DateOrder)
                .where(
                    DateOrder.id == order_id,
                    DateOrder.status == OrderStatus.ACTIVE,
                    DateOrder.expires_at > now,
                    DateOrder.applicant_count < DateOrder.max_applicants,
                )
                .values(applicant_count=DateOrder.applicant_count + 1, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise OrderNotOpen("Order is full or no longer open", order_id=order_id)

            application = Application(
                order_id=order_id,
                applicant_id=applicant_id,
                message=(message or "")[:MAX_APPLICATION_MESSAGE_LENGTH],
                status=ApplicationStatus.PENDING,
            )
            self.session.add(application)
            await self.session.commit()
        except IntegrityError:
            await self.session.rollback()
            raise DuplicateApplication(order_id=order_id, applicant_id=applicant_id)
        except Exception:
            await self.session.rollback()
            raise

        await self.session.refresh(application)
        logger.info(f"User {applicant_id} applied to order {order_id}")

        if self.notifier:
            await self.notifier.notify(
                order.creator_id,
                NOTIFY_APPLICATION_RECEIVED,
                "New applicant",
                "Someone wants to join your date. Review your applicants.",
                {"orderId": order_id, "applicationId": application.id},
            )
        return application

    async def get_application(self, application_id: uuid.UUID) -> Application | None:
        return await self.session.get(Application, application_id, populate_existing=True)

    async def get_live_application(self, order_id: uuid.UUID, applicant_id: uuid.UUID) -> Application | None:
        result = await self.session.execute(
            select(Application).where(
                Application.order_id == order_id,
                Application.applicant_id == applicant_id,
                Application.status.in_(LIVE_STATUSES),
            )
        )
        return result.scalars().first()

    async def list_for(self, order_id: uuid.UUID) -> List[Application]:
        """Applications of an order, newest first."""
        stmt = (
            select(Application)
            .where(Application.order_id == order_id)
            .order_by(Application.created_at.desc(), Application.id.desc())
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def list_for_applicant(self, applicant_id: uuid.UUID, limit: int = 50) -> List[Application]:
        stmt = (
            select(Application)
            .where(Application.applicant_id == applicant_id)
            .order_by(Application.created_at.desc(), Application.id.desc())
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def pending_applicant_ids(self, order_id: uuid.UUID, exclude_id: uuid.UUID = None) -> List[uuid.UUID]:
        stmt = select(Application.applicant_id).where(
            Application.order_id == order_id,
            Application.status == ApplicationStatus.PENDING,
        )
        if exclude_id:
            stmt = stmt.where(Application.id != exclude_id)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def reject_pending(self, order_id: uuid.UUID, exclude_id: uuid.UUID = None) -> List[uuid.UUID]:
        """Bulk-reject pending applications of an order. Runs inside the caller's transaction."""
        applicant_ids = await self.pending_applicant_ids(order_id, exclude_id)
        stmt = update(Application).where(
            Application.order_id == order_id,
            Application.status == ApplicationStatus.PENDING,
        )
        if exclude_id:
            stmt = stmt.where(Application.id != exclude_id)
        await self.session.execute(
            stmt.values(status=ApplicationStatus.REJECTED, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        return applicant_ids
