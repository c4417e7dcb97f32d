"""Date order endpoints consumed by the web and mobile clients."""
import logging
import uuid
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, Header, Query
from sqlalchemy.ext.asyncio import AsyncSession
from app.db.session import get_db
from app.schemas.orders import (
    CreateOrderRequest,
    ApplyRequest,
    ReviewRequest,
    DateOrderOut,
    ApplicationOut,
    ReviewOut,
    TransactionOut,
)
from app.services.application_service import ApplicationService
from app.services.date_order_service import DateOrderService
from app.services.notification_service import NotificationDispatcher
from app.services.pricing_service import PricingResolver
from app.services.reveal_service import RevealService
from app.services.tier_service import TierService
from app.services.wallet_service import WalletLedger
from app.models.user import VipTier

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/orders", tags=["orders"])


# ========================
# Dependencies
# ========================

def get_caller_id(x_user_id: Optional[str] = Header(None)) -> uuid.UUID:
    """Authenticated caller, injected by the auth gateway in front of this API."""
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Authentication required")
    try:
        return uuid.UUID(x_user_id)
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid caller identity")


def get_notifier() -> NotificationDispatcher:
    return NotificationDispatcher()


def get_pricing() -> PricingResolver:
    return PricingResolver()


# ========================
# Orders
# ========================

@router.post("", response_model=DateOrderOut, status_code=201)
async def create_order(
    body: CreateOrderRequest,
    caller_id: uuid.UUID = Depends(get_caller_id),
    session: AsyncSession = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_notifier),
    pricing: PricingResolver = Depends(get_pricing),
):
    tier = await TierService(session).get_tier(caller_id)
    quote = pricing.quote(
        body.combo_price,
        body.payment_split,
        creator_is_vip=tier != VipTier.FREE,
    )

    service = DateOrderService(session, notifier=notifier)
    return await service.create_order(
        creator_id=caller_id,
        restaurant_id=body.restaurant_id,
        combo_id=body.combo_id,
        date_time=body.date_time,
        quote=quote,
        description=body.description,
        payment_split=body.payment_split,
        max_applicants=body.max_applicants,
        expires_at=body.expires_at,
        prepay=body.prepay,
    )


@router.get("", response_model=List[DateOrderOut])
async def list_open_orders(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    session: AsyncSession = Depends(get_db),
):
    return await DateOrderService(session).list_open_orders(limit=limit, offset=offset)


@router.get("/mine", response_model=List[DateOrderOut])
async def list_my_orders(
    caller_id: uuid.UUID = Depends(get_caller_id),
    session: AsyncSession = Depends(get_db),
):
    return await DateOrderService(session).list_user_orders(caller_id)


@router.get("/applications/mine", response_model=List[ApplicationOut])
async def list_my_applications(
    caller_id: uuid.UUID = Depends(get_caller_id),
    session: AsyncSession = Depends(get_db),
):
    return await ApplicationService(session).list_for_applicant(caller_id)


@router.get("/{order_id}", response_model=DateOrderOut)
async def get_order(order_id: uuid.UUID, session: AsyncSession = Depends(get_db)):
    return await DateOrderService(session).get_order(order_id)


@router.post("/{order_id}/cancel", response_model=DateOrderOut)
async def cancel_order(
    order_id: uuid.UUID,
    caller_id: uuid.UUID = Depends(get_caller_id),
    session: AsyncSession = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_notifier),
):
    return await DateOrderService(session, notifier=notifier).cancel_order(order_id, caller_id)


@router.post("/{order_id}/complete", response_model=DateOrderOut)
async def confirm_completion(
    order_id: uuid.UUID,
    caller_id: uuid.UUID = Depends(get_caller_id),
    session: AsyncSession = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_notifier),
):
    return await DateOrderService(session, notifier=notifier).confirm_completion(order_id, caller_id)


@router.post("/{order_id}/no-show", response_model=DateOrderOut)
async def report_no_show(
    order_id: uuid.UUID,
    caller_id: uuid.UUID = Depends(get_caller_id),
    session: AsyncSession = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_notifier),
):
    return await DateOrderService(session, notifier=notifier).report_no_show(order_id, caller_id)


# ========================
# Applications
# ========================

@router.post("/{order_id}/applications", response_model=ApplicationOut, status_code=201)
async def apply_to_order(
    order_id: uuid.UUID,
    body: ApplyRequest,
    caller_id: uuid.UUID = Depends(get_caller_id),
    session: AsyncSession = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_notifier),
):
    return await ApplicationService(session, notifier=notifier).apply(order_id, caller_id, body.message)


@router.get("/{order_id}/applications", response_model=List[ApplicationOut])
async def list_applications(
    order_id: uuid.UUID,
    caller_id: uuid.UUID = Depends(get_caller_id),
    session: AsyncSession = Depends(get_db),
):
    order = await DateOrderService(session).get_order(order_id)
    if order.creator_id != caller_id:
        raise HTTPException(status_code=403, detail="Only the creator can see applicants")
    return await ApplicationService(session).list_for(order_id)


@router.get("/{order_id}/transactions", response_model=List[TransactionOut])
async def list_order_transactions(
    order_id: uuid.UUID,
    caller_id: uuid.UUID = Depends(get_caller_id),
    session: AsyncSession = Depends(get_db),
):
    """The caller's own wallet movements for one of their orders."""
    order = await DateOrderService(session).get_order(order_id)
    if not order.is_party(caller_id):
        raise HTTPException(status_code=403, detail="Only the parties can see order payments")
    return await WalletLedger(session).transactions_for(order_id, user_id=caller_id)


@router.post("/{order_id}/applications/{application_id}/accept", response_model=DateOrderOut)
async def accept_application(
    order_id: uuid.UUID,
    application_id: uuid.UUID,
    caller_id: uuid.UUID = Depends(get_caller_id),
    session: AsyncSession = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_notifier),
):
    service = DateOrderService(session, notifier=notifier)
    return await service.accept_application(order_id, application_id, caller_id)


# ========================
# Reviews
# ========================

@router.post("/{order_id}/reviews", response_model=ReviewOut, status_code=201)
async def submit_post_date_review(
    order_id: uuid.UUID,
    body: ReviewRequest,
    caller_id: uuid.UUID = Depends(get_caller_id),
    session: AsyncSession = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_notifier),
):
    outcome = await RevealService(session, notifier=notifier).submit_review(
        order_id,
        reviewer_id=caller_id,
        reviewee_id=body.reviewee_id,
        want_to_meet_again=body.want_to_meet_again,
        rating=body.rating,
        comment=body.comment,
    )
    return ReviewOut(
        review_id=outcome.review.id,
        connection_created=outcome.connection_created,
        connection_id=outcome.connection.id if outcome.connection else None,
    )
