import uuid
import enum
from sqlalchemy import Column, String, Text, Index, ForeignKey, DateTime, BigInteger, CheckConstraint, Uuid
from app.db.base import Base
from app.models.enum_column import enum_column_type
from app.config.constants import CURRENCY
from app.utils.clock import utcnow


class TransactionType(str, enum.Enum):
    ESCROW_HOLD = "escrow_hold"
    DATE_PAYMENT = "date_payment"
    REFUND = "refund"
    REFERRAL_BONUS = "referral_bonus"


class TransactionStatus(str, enum.Enum):
    COMPLETED = "completed"


class Payee(str, enum.Enum):
    PLATFORM = "platform"
    RESTAURANT = "restaurant"


class WalletAccount(Base):
    """Available and escrowed funds of one user (integer VND).

    Only app.services.wallet_service.WalletLedger writes balance/escrow.
    """
    __tablename__ = "wallet_accounts"

    user_id = Column(Uuid, ForeignKey("users.id"), primary_key=True)
    balance = Column(BigInteger, default=0, server_default="0", nullable=False)
    escrow = Column(BigInteger, default=0, server_default="0", nullable=False)
    currency = Column(String(3), default=CURRENCY, nullable=False)

    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __table_args__ = (
        CheckConstraint("balance >= 0", name="ck_wallet_balance_non_negative"),
        CheckConstraint("escrow >= 0", name="ck_wallet_escrow_non_negative"),
    )


class Transaction(Base):
    """Append-only ledger entry; also the idempotency record of wallet operations."""
    __tablename__ = "transactions"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)

    type = Column(enum_column_type(TransactionType, "transaction_type"), nullable=False)
    amount = Column(BigInteger, nullable=False)
    status = Column(
        enum_column_type(TransactionStatus, "transaction_status"),
        default=TransactionStatus.COMPLETED,
        nullable=False,
    )
    payee = Column(enum_column_type(Payee, "payee"), nullable=True)

    # DateOrder id for escrow operations, ReferralReward id for bonuses
    related_id = Column(Uuid, nullable=True, index=True)
    idempotency_key = Column(String(255), nullable=False, unique=True)
    description = Column(Text)

    created_at = Column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        Index('ix_transaction_user_related', 'user_id', 'related_id'),
    )
