"""
Escrow settlement worker.

Runs on a schedule (hourly) and drives overdue orders to a terminal state:

1. Auto-complete: matched orders whose date is more than
   AUTO_COMPLETE_AFTER_HOURS in the past. Both escrowed charges are settled,
   the restaurant payout is recorded, both parties are asked for a review
   and the referral trigger fires for each of them.
2. Auto-reject: active orders whose match window closed more than
   AUTO_REJECT_AFTER_HOURS ago. Any provisional hold is released, pending
   applications are rejected and the order expires.

Each order is processed in its own transaction. The status change is a
compare-and-set on the expected prior status, and every wallet mutation goes
through the idempotent WalletLedger, so overlapping or repeated runs are
harmless: the loser of the race sees zero affected rows and moves on.
"""
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update
from app.core.config import settings
from app.config.constants import (
    NOTIFY_ORDER_COMPLETED,
    NOTIFY_REVIEW_REQUEST,
    NOTIFY_ORDER_EXPIRED,
    NOTIFY_APPLICATION_REJECTED,
)
from app.models.date_order import DateOrder, OrderStatus
from app.models.payout import RestaurantPayout, PayoutStatus
from app.models.wallet import Payee
from app.services.application_service import ApplicationService
from app.services.referral_service import ReferralService
from app.services.wallet_service import WalletLedger
from app.utils.clock import utcnow

logger = logging.getLogger(__name__)


@dataclass
class SweepResult:
    processed: int = 0
    errors: List[str] = field(default_factory=list)
    skipped: int = 0

    def merge(self, other: "SweepResult") -> "SweepResult":
        self.processed += other.processed
        self.errors.extend(other.errors)
        self.skipped += other.skipped
        return self

    def to_dict(self) -> dict:
        return {"processed": self.processed, "errors": list(self.errors)}


class SettlementService:
    def __init__(
        self,
        session: AsyncSession,
        notifier=None,
        ledger: WalletLedger = None,
        referrals: ReferralService = None,
    ):
        self.session = session
        self.notifier = notifier
        self.ledger = ledger or WalletLedger(session)
        self.referrals = referrals or ReferralService(session, notifier=notifier, ledger=self.ledger)
        self.applications = ApplicationService(session, notifier=notifier)

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    async def find_overdue_matched(self, now: datetime, limit: int = None) -> List[uuid.UUID]:
        cutoff = now - timedelta(hours=settings.AUTO_COMPLETE_AFTER_HOURS)
        stmt = (
            select(DateOrder.id)
            .where(DateOrder.status == OrderStatus.MATCHED, DateOrder.date_time < cutoff)
            .order_by(DateOrder.date_time.asc())
            .limit(limit or settings.SETTLEMENT_BATCH_LIMIT)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def find_stale_active(self, now: datetime, limit: int = None) -> List[uuid.UUID]:
        cutoff = now - timedelta(hours=settings.AUTO_REJECT_AFTER_HOURS)
        stmt = (
            select(DateOrder.id)
            .where(DateOrder.status == OrderStatus.ACTIVE, DateOrder.expires_at < cutoff)
            .order_by(DateOrder.expires_at.asc())
            .limit(limit or settings.SETTLEMENT_BATCH_LIMIT)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def complete_order(self, order: DateOrder, auto_completed: bool = True, now: datetime = None) -> bool:
        """Settle escrow and mark a matched order completed.

        Returns False (and changes nothing) when the order is no longer
        matched, i.e. another run or a user action got there first.
        """
        now = now or utcnow()
        try:
            result = await self.session.execute(
                update(DateOrder)
                .where(DateOrder.id == order.id, DateOrder.status == OrderStatus.MATCHED)
                .values(
                    status=OrderStatus.COMPLETED,
                    completed_at=now,
                    auto_completed=auto_completed,
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                await self.session.rollback()
                return False

            if order.creator_charge > 0:
                await self.ledger.settle(order.creator_id, order.creator_charge, order.id, Payee.PLATFORM)
            if order.applicant_charge > 0:
                await self.ledger.settle(order.matched_user_id, order.applicant_charge, order.id, Payee.PLATFORM)
            await self._record_restaurant_payout(order)

            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        logger.info(f"Date order {order.id} completed (auto={auto_completed})")
        await self._after_completion(order)
        return True

    async def expire_order(self, order: DateOrder, now: datetime = None) -> bool:
        """Expire an active order nobody was matched to and release any provisional hold."""
        now = now or utcnow()
        try:
            result = await self.session.execute(
                update(DateOrder)
                .where(DateOrder.id == order.id, DateOrder.status == OrderStatus.ACTIVE)
                .values(status=OrderStatus.EXPIRED, expired_at=now, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                await self.session.rollback()
                return False

            refunded = await self.release_provisional_hold(order)
            rejected_ids = await self.applications.reject_pending(order.id)
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        logger.info(f"Date order {order.id} expired, refunded creator {refunded}")

        if self.notifier:
            refund_note = f" {refunded:,} VND was returned to your wallet." if refunded else ""
            await self.notifier.notify(
                order.creator_id, NOTIFY_ORDER_EXPIRED, "Date order expired",
                f"Your date order expired without a match.{refund_note}",
                {"orderId": order.id},
            )
            await self.notifier.notify_many(
                rejected_ids, NOTIFY_APPLICATION_REJECTED, "Date order closed",
                "The date you applied to has expired.",
                {"orderId": order.id},
            )
        return True

    async def release_provisional_hold(self, order: DateOrder) -> int:
        """Release the creator's outstanding hold on an unmatched order, if any."""
        held = await self.ledger.held_amount(order.creator_id, order.id)
        if held > 0:
            await self.ledger.release(order.creator_id, held, order.id)
        return held

    async def _record_restaurant_payout(self, order: DateOrder) -> Optional[RestaurantPayout]:
        if order.restaurant_payout <= 0:
            return None
        result = await self.session.execute(
            select(RestaurantPayout).where(RestaurantPayout.date_order_id == order.id)
        )
        payout = result.scalars().first()
        if payout:
            return payout
        payout = RestaurantPayout(
            date_order_id=order.id,
            restaurant_id=order.restaurant_id,
            amount=order.restaurant_payout,
            status=PayoutStatus.PENDING,
        )
        self.session.add(payout)
        await self.session.flush()
        return payout

    async def _after_completion(self, order: DateOrder):
        parties = [order.creator_id, order.matched_user_id]

        if self.notifier:
            await self.notifier.notify_many(
                parties, NOTIFY_ORDER_COMPLETED, "Date completed",
                "Your date is complete and the payment has been settled.",
                {"orderId": order.id},
            )
            for user_id in parties:
                await self.notifier.notify(
                    user_id, NOTIFY_REVIEW_REQUEST, "How was your date?",
                    "Leave a review and tell us if you'd like to meet again.",
                    {"orderId": order.id, "revieweeId": order.counterpart_of(user_id)},
                )

        for user_id in parties:
            try:
                await self.referrals.on_first_completion(user_id)
            except Exception:
                logger.exception(f"Referral trigger failed for user {user_id} on order {order.id}")

    # ------------------------------------------------------------------
    # Sweep
    # ------------------------------------------------------------------

    async def run_auto_complete(self, now: datetime = None) -> SweepResult:
        now = now or utcnow()
        summary = SweepResult()
        order_ids = await self.find_overdue_matched(now)
        logger.info(f"Auto-complete: {len(order_ids)} matched orders past their date")

        for order_id in order_ids:
            try:
                order = await self.session.get(DateOrder, order_id, populate_existing=True)
                if order is None or not await self.complete_order(order, auto_completed=True, now=now):
                    summary.skipped += 1
                    continue
                summary.processed += 1
            except Exception as e:
                summary.errors.append(f"Date order {order_id}: {e}")
                logger.exception(f"Auto-complete failed for date order {order_id}")
        return summary

    async def run_auto_reject(self, now: datetime = None) -> SweepResult:
        now = now or utcnow()
        summary = SweepResult()
        order_ids = await self.find_stale_active(now)
        logger.info(f"Auto-reject: {len(order_ids)} active orders past their match window")

        for order_id in order_ids:
            try:
                order = await self.session.get(DateOrder, order_id, populate_existing=True)
                if order is None or not await self.expire_order(order, now=now):
                    summary.skipped += 1
                    continue
                summary.processed += 1
            except Exception as e:
                summary.errors.append(f"Date order {order_id}: {e}")
                logger.exception(f"Auto-reject failed for date order {order_id}")
        return summary

    async def run_settlement_sweep(self, now: datetime = None) -> SweepResult:
        now = now or utcnow()
        logger.info(f"Settlement sweep started at {now.isoformat()}")

        summary = SweepResult()
        summary.merge(await self.run_auto_complete(now))
        summary.merge(await self.run_auto_reject(now))

        if summary.errors:
            logger.warning(
                f"Settlement sweep finished with errors. Processed: {summary.processed}, "
                f"Errors: {len(summary.errors)}"
            )
        else:
            logger.info(f"Settlement sweep finished. Processed: {summary.processed}, Skipped: {summary.skipped}")
        return summary
