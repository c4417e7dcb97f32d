import logging
import uuid
from datetime import datetime
from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, func, or_
from app.core.errors import (
    InvalidSchedule,
    LimitExceeded,
    OrderNotFound,
    OrderNotOpen,
    ApplicationNotFound,
    PermissionDenied,
    StateConflict,
    ValidationError,
)
from app.config.constants import (
    DEFAULT_MAX_APPLICANTS,
    MAX_ORDER_DESCRIPTION_LENGTH,
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    NOTIFY_APPLICATION_ACCEPTED,
    NOTIFY_APPLICATION_REJECTED,
    NOTIFY_ORDER_CANCELLED,
    NOTIFY_NO_SHOW,
)
from app.models.application import Application, ApplicationStatus
from app.models.date_order import DateOrder, OrderStatus, PaymentSplit, can_transition
from app.models.user import User
from app.models.wallet import Payee
from app.services.application_service import ApplicationService
from app.services.pricing_service import PricingQuote
from app.services.settlement_service import SettlementService
from app.services.tier_service import TierService
from app.services.wallet_service import WalletLedger
from app.utils.clock import utcnow, as_utc

logger = logging.getLogger(__name__)


class DateOrderService:
    """State machine of a date order.

    active -> matched -> completed | no_show
    active -> expired | cancelled

    Every transition is a compare-and-set on the expected prior status, so
    racing callers (two accepts, an accept and the settlement worker) resolve
    to exactly one winner; the others get StateConflict.
    """

    def __init__(
        self,
        session: AsyncSession,
        notifier=None,
        ledger: WalletLedger = None,
        tiers: TierService = None,
    ):
        self.session = session
        self.notifier = notifier
        self.ledger = ledger or WalletLedger(session)
        self.tiers = tiers or TierService(session)
        self.applications = ApplicationService(session, notifier=notifier)
        self.settlement = SettlementService(session, notifier=notifier, ledger=self.ledger)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_order(self, order_id: uuid.UUID) -> DateOrder:
        order = await self.session.get(DateOrder, order_id, populate_existing=True)
        if not order:
            raise OrderNotFound(order_id=order_id)
        return order

    async def count_active_orders(self, creator_id: uuid.UUID) -> int:
        result = await self.session.execute(
            select(func.count(DateOrder.id)).where(
                DateOrder.creator_id == creator_id,
                DateOrder.status == OrderStatus.ACTIVE,
            )
        )
        return result.scalar() or 0

    async def list_open_orders(self, limit: int = DEFAULT_PAGE_SIZE, offset: int = 0) -> List[DateOrder]:
        stmt = (
            select(DateOrder)
            .where(DateOrder.status == OrderStatus.ACTIVE, DateOrder.expires_at > utcnow())
            .order_by(DateOrder.date_time.asc())
            .limit(min(limit, MAX_PAGE_SIZE))
            .offset(offset)
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def list_user_orders(self, user_id: uuid.UUID, status: Optional[OrderStatus] = None) -> List[DateOrder]:
        stmt = select(DateOrder).where(
            or_(DateOrder.creator_id == user_id, DateOrder.matched_user_id == user_id)
        )
        if status:
            stmt = stmt.where(DateOrder.status == OrderStatus(status))
        stmt = stmt.order_by(DateOrder.date_time.desc())
        result = await self.session.execute(stmt)
        return result.scalars().all()

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def create_order(
        self,
        creator_id: uuid.UUID,
        restaurant_id: uuid.UUID,
        combo_id: uuid.UUID,
        date_time: datetime,
        quote: PricingQuote,
        description: str = None,
        payment_split: PaymentSplit = PaymentSplit.SPLIT,
        max_applicants: int = DEFAULT_MAX_APPLICANTS,
        expires_at: datetime = None,
        prepay: bool = False,
    ) -> DateOrder:
        now = utcnow()
        date_time = as_utc(date_time)
        if date_time <= now:
            raise InvalidSchedule(date_time=date_time.isoformat())
        if expires_at is not None:
            expires_at = as_utc(expires_at)
            if expires_at <= now or expires_at > date_time:
                raise InvalidSchedule("Match window must close in the future and before the date")
        else:
            expires_at = date_time
        if max_applicants < 1:
            raise ValidationError("max_applicants must be at least 1")

        try:
            # Serialises concurrent creates by the same user (no-op on SQLite)
            result = await self.session.execute(
                select(User).where(User.id == creator_id).with_for_update()
            )
            if result.scalars().first() is None:
                raise ValidationError("Unknown creator", creator_id=creator_id)

            tier = await self.tiers.get_tier(creator_id)
            cap = self.tiers.active_order_cap(tier)
            if await self.count_active_orders(creator_id) >= cap:
                raise LimitExceeded(tier=tier.value, cap=cap)

            order = DateOrder(
                creator_id=creator_id,
                restaurant_id=restaurant_id,
                combo_id=combo_id,
                date_time=date_time,
                description=(description or "")[:MAX_ORDER_DESCRIPTION_LENGTH],
                payment_split=PaymentSplit(payment_split),
                combo_price=quote.combo_price,
                creator_charge=quote.creator_charge,
                applicant_charge=quote.applicant_charge,
                restaurant_payout=quote.restaurant_payout,
                status=OrderStatus.ACTIVE,
                max_applicants=max_applicants,
                applicant_count=0,
                expires_at=expires_at,
            )
            self.session.add(order)
            await self.session.flush()

            if prepay and order.creator_charge > 0:
                # Provisional hold; the accept-time hold becomes a no-op
                await self.ledger.hold(creator_id, order.creator_charge, order.id)

            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        await self.session.refresh(order)
        logger.info(f"Date order {order.id} created by {creator_id} (prepay={prepay})")
        return order

    async def accept_application(
        self,
        order_id: uuid.UUID,
        application_id: uuid.UUID,
        actor_id: uuid.UUID,
    ) -> DateOrder:
        """Match one applicant and move both charges into escrow, all or nothing."""
        order = await self.get_order(order_id)
        if order.creator_id != actor_id:
            raise PermissionDenied("Only the order creator can accept applicants")
        if not can_transition(order.status, OrderStatus.MATCHED):
            raise StateConflict("Order is no longer open", order_id=order_id)
        if as_utc(order.expires_at) <= utcnow():
            raise OrderNotOpen("The match window for this order has closed", order_id=order_id)

        application = await self.applications.get_application(application_id)
        if application is None or application.order_id != order_id:
            raise ApplicationNotFound(application_id=application_id)
        applicant_id = application.applicant_id

        try:
            now = utcnow()
            result = await self.session.execute(
                update(DateOrder)
                .where(
                    DateOrder.id == order_id,
                    DateOrder.status == OrderStatus.ACTIVE,
                    DateOrder.expires_at > now,
                )
                .values(
                    status=OrderStatus.MATCHED,
                    matched_user_id=applicant_id,
                    matched_at=now,
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise StateConflict("Order is no longer open", order_id=order_id)

            result = await self.session.execute(
                update(Application)
                .where(
                    Application.id == application_id,
                    Application.order_id == order_id,
                    Application.status == ApplicationStatus.PENDING,
                )
                .values(status=ApplicationStatus.ACCEPTED, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise StateConflict("Application is no longer pending", application_id=application_id)

            rejected_ids = await self.applications.reject_pending(order_id, exclude_id=application_id)

            if order.creator_charge > 0:
                await self.ledger.hold(order.creator_id, order.creator_charge, order_id)
            if order.applicant_charge > 0:
                await self.ledger.hold(applicant_id, order.applicant_charge, order_id)

            await self.session.commit()
        except StateConflict:
            await self.session.rollback()
            logger.info(f"Accept on order {order_id} lost a race, nothing changed")
            raise
        except Exception:
            await self.session.rollback()
            raise

        order = await self.get_order(order_id)
        logger.info(f"Date order {order_id} matched with {applicant_id}")

        if self.notifier:
            await self.notifier.notify(
                applicant_id, NOTIFY_APPLICATION_ACCEPTED, "You've been matched!",
                "Your application was accepted. See you at the restaurant!",
                {"orderId": order_id},
            )
            await self.notifier.notify_many(
                rejected_ids, NOTIFY_APPLICATION_REJECTED, "Application not selected",
                "The creator chose someone else for this date.",
                {"orderId": order_id},
            )
        return order

    async def cancel_order(self, order_id: uuid.UUID, actor_id: uuid.UUID) -> DateOrder:
        order = await self.get_order(order_id)
        if order.creator_id != actor_id:
            raise PermissionDenied("Only the order creator can cancel it")
        if not can_transition(order.status, OrderStatus.CANCELLED):
            raise StateConflict("Only active orders can be cancelled", order_id=order_id)

        try:
            now = utcnow()
            result = await self.session.execute(
                update(DateOrder)
                .where(DateOrder.id == order_id, DateOrder.status == OrderStatus.ACTIVE)
                .values(status=OrderStatus.CANCELLED, cancelled_at=now, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise StateConflict("Only active orders can be cancelled", order_id=order_id)

            # Only prepaid orders have escrow at this point
            await self.settlement.release_provisional_hold(order)
            rejected_ids = await self.applications.reject_pending(order_id)
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        logger.info(f"Date order {order_id} cancelled by {actor_id}")
        if self.notifier:
            await self.notifier.notify_many(
                rejected_ids, NOTIFY_ORDER_CANCELLED, "Date cancelled",
                "The date you applied to was cancelled by its creator.",
                {"orderId": order_id},
            )
        return await self.get_order(order_id)

    async def confirm_completion(self, order_id: uuid.UUID, actor_id: uuid.UUID) -> DateOrder:
        """A party confirms the date happened; settles like the auto-complete path."""
        order = await self.get_order(order_id)
        if not order.is_party(actor_id):
            raise PermissionDenied("Only the matched parties can confirm the date")
        if not can_transition(order.status, OrderStatus.COMPLETED):
            raise StateConflict("Only matched orders can be completed", order_id=order_id)
        if as_utc(order.date_time) > utcnow():
            raise InvalidSchedule("The date has not happened yet")

        if not await self.settlement.complete_order(order, auto_completed=False):
            raise StateConflict("Order was already settled", order_id=order_id)
        return await self.get_order(order_id)

    async def report_no_show(self, order_id: uuid.UUID, reporter_id: uuid.UUID) -> DateOrder:
        """The reporter showed up, the other party did not.

        The reporter's escrow is refunded and the absent party's escrow is
        settled to the platform.
        """
        order = await self.get_order(order_id)
        if not order.is_party(reporter_id):
            raise PermissionDenied("Only the matched parties can report a no-show")
        absent_id = order.counterpart_of(reporter_id)

        try:
            now = utcnow()
            result = await self.session.execute(
                update(DateOrder)
                .where(
                    DateOrder.id == order_id,
                    DateOrder.status == OrderStatus.MATCHED,
                    DateOrder.date_time <= now,
                )
                .values(status=OrderStatus.NO_SHOW, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                current = await self.get_order(order_id)
                if current.status == OrderStatus.MATCHED:
                    raise InvalidSchedule("The date has not happened yet")
                raise StateConflict("Only matched orders can be reported", order_id=order_id)

            refund = await self.ledger.held_amount(reporter_id, order_id)
            if refund > 0:
                await self.ledger.release(reporter_id, refund, order_id)
            penalty = await self.ledger.held_amount(absent_id, order_id)
            if penalty > 0:
                await self.ledger.settle(absent_id, penalty, order_id, Payee.PLATFORM)

            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        logger.info(f"Date order {order_id}: {reporter_id} reported a no-show by {absent_id}")
        if self.notifier:
            await self.notifier.notify(
                absent_id, NOTIFY_NO_SHOW, "Missed date",
                "Your date reported that you did not show up. Your payment was not refunded.",
                {"orderId": order_id},
            )
            await self.notifier.notify(
                reporter_id, NOTIFY_NO_SHOW, "No-show recorded",
                f"We're sorry your date didn't show up. {refund:,} VND was returned to your wallet.",
                {"orderId": order_id},
            )
        return await self.get_order(order_id)
