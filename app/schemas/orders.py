import uuid
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field
from app.config.constants import (
    DEFAULT_MAX_APPLICANTS,
    MAX_APPLICATION_MESSAGE_LENGTH,
    MAX_ORDER_DESCRIPTION_LENGTH,
    MAX_REVIEW_COMMENT_LENGTH,
    MIN_REVIEW_RATING,
    MAX_REVIEW_RATING,
)
from app.models.application import ApplicationStatus
from app.models.date_order import OrderStatus, PaymentSplit
from app.models.wallet import Payee, TransactionType


class CreateOrderRequest(BaseModel):
    restaurant_id: uuid.UUID
    combo_id: uuid.UUID
    date_time: datetime
    description: Optional[str] = Field(None, max_length=MAX_ORDER_DESCRIPTION_LENGTH)
    payment_split: PaymentSplit = PaymentSplit.SPLIT
    max_applicants: int = Field(DEFAULT_MAX_APPLICANTS, ge=1, le=50)
    expires_at: Optional[datetime] = None
    prepay: bool = False

    # Charges and payout are always derived from the combo price server-side
    combo_price: int = Field(..., ge=0)


class ApplyRequest(BaseModel):
    message: str = Field("", max_length=MAX_APPLICATION_MESSAGE_LENGTH)


class ReviewRequest(BaseModel):
    reviewee_id: uuid.UUID
    want_to_meet_again: bool
    rating: int = Field(MAX_REVIEW_RATING, ge=MIN_REVIEW_RATING, le=MAX_REVIEW_RATING)
    comment: str = Field("", max_length=MAX_REVIEW_COMMENT_LENGTH)


class DateOrderOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    creator_id: uuid.UUID
    restaurant_id: uuid.UUID
    combo_id: uuid.UUID
    date_time: datetime
    description: Optional[str] = None
    payment_split: PaymentSplit
    combo_price: int
    creator_charge: int
    applicant_charge: int
    restaurant_payout: int
    status: OrderStatus
    matched_user_id: Optional[uuid.UUID] = None
    matched_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    auto_completed: bool = False
    max_applicants: int
    applicant_count: int
    expires_at: datetime


class ApplicationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    order_id: uuid.UUID
    applicant_id: uuid.UUID
    message: Optional[str] = ""
    status: ApplicationStatus
    created_at: Optional[datetime] = None


class TransactionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    type: TransactionType
    amount: int
    payee: Optional[Payee] = None
    created_at: Optional[datetime] = None


class ReviewOut(BaseModel):
    review_id: uuid.UUID
    connection_created: bool
    connection_id: Optional[uuid.UUID] = None


class SweepOut(BaseModel):
    processed: int
    errors: List[str]
