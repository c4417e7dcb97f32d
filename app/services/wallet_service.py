import logging
import uuid
from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, case
from app.core.errors import InsufficientFunds, WalletNotFound
from app.models.wallet import WalletAccount, Transaction, TransactionType, TransactionStatus, Payee
from app.utils.clock import utcnow

logger = logging.getLogger(__name__)


class WalletLedger:
    """The only writer of WalletAccount.balance / WalletAccount.escrow.

    Every operation is keyed by (type, user_id, related_id). Repeating an
    operation with the same key returns the Transaction written the first time
    and changes nothing, so the settlement worker can be re-run after a crash.

    Balance changes are single conditional UPDATE statements, which keeps each
    per-user update atomic in the database regardless of which order is being
    processed. The ledger never commits: the calling service owns the
    transaction boundary.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    @staticmethod
    def idempotency_key(tx_type: TransactionType, user_id: uuid.UUID, related_id: uuid.UUID) -> str:
        return f"{TransactionType(tx_type).value}:{user_id}:{related_id}"

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    async def get_account(self, user_id: uuid.UUID) -> Optional[WalletAccount]:
        return await self.session.get(WalletAccount, user_id, populate_existing=True)

    async def get_or_create_account(self, user_id: uuid.UUID) -> WalletAccount:
        account = await self.get_account(user_id)
        if account:
            return account
        account = WalletAccount(user_id=user_id, balance=0, escrow=0)
        self.session.add(account)
        await self.session.flush()
        return account

    # ------------------------------------------------------------------
    # Escrow operations
    # ------------------------------------------------------------------

    async def hold(self, user_id: uuid.UUID, amount: int, order_id: uuid.UUID) -> Transaction:
        """Move `amount` from available balance into escrow for an order."""
        amount = self._check_amount(amount)
        key = self.idempotency_key(TransactionType.ESCROW_HOLD, user_id, order_id)
        existing = await self.find_transaction(key)
        if existing:
            logger.info(f"Hold {key} already recorded, skipping")
            return existing

        result = await self.session.execute(
            update(WalletAccount)
            .where(WalletAccount.user_id == user_id, WalletAccount.balance >= amount)
            .values(
                balance=WalletAccount.balance - amount,
                escrow=WalletAccount.escrow + amount,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            account = await self.get_account(user_id)
            if account is None:
                raise WalletNotFound(user_id=user_id)
            raise InsufficientFunds(
                user_id=user_id, required=amount, available=account.balance
            )

        return await self._record(
            key, user_id, TransactionType.ESCROW_HOLD, amount, order_id,
            description="Escrow hold for date order",
        )

    async def release(self, user_id: uuid.UUID, amount: int, order_id: uuid.UUID) -> Transaction:
        """Return escrowed funds to the available balance (refund)."""
        amount = self._check_amount(amount)
        key = self.idempotency_key(TransactionType.REFUND, user_id, order_id)
        existing = await self.find_transaction(key)
        if existing:
            logger.info(f"Release {key} already recorded, skipping")
            return existing

        await self._check_escrow_cover(user_id, amount, order_id, "release")
        await self.session.execute(
            update(WalletAccount)
            .where(WalletAccount.user_id == user_id)
            .values(
                escrow=self._floored_escrow(amount),
                balance=WalletAccount.balance + amount,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        return await self._record(
            key, user_id, TransactionType.REFUND, amount, order_id,
            description="Escrow released back to wallet",
        )

    async def settle(
        self,
        user_id: uuid.UUID,
        amount: int,
        order_id: uuid.UUID,
        payee: Payee = Payee.PLATFORM,
    ) -> Transaction:
        """Pay escrowed funds out to an external payee (platform or restaurant)."""
        amount = self._check_amount(amount)
        key = self.idempotency_key(TransactionType.DATE_PAYMENT, user_id, order_id)
        existing = await self.find_transaction(key)
        if existing:
            logger.info(f"Settlement {key} already recorded, skipping")
            return existing

        await self._check_escrow_cover(user_id, amount, order_id, "settle")
        await self.session.execute(
            update(WalletAccount)
            .where(WalletAccount.user_id == user_id)
            .values(escrow=self._floored_escrow(amount), updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        return await self._record(
            key, user_id, TransactionType.DATE_PAYMENT, amount, order_id,
            payee=Payee(payee),
            description=f"Date payment to {Payee(payee).value}",
        )

    async def credit(
        self,
        user_id: uuid.UUID,
        amount: int,
        related_id: uuid.UUID,
        tx_type: TransactionType = TransactionType.REFERRAL_BONUS,
        description: str = None,
    ) -> Transaction:
        """Direct balance credit with no preceding hold (bonuses, top-ups)."""
        amount = self._check_amount(amount)
        key = self.idempotency_key(tx_type, user_id, related_id)
        existing = await self.find_transaction(key)
        if existing:
            logger.info(f"Credit {key} already recorded, skipping")
            return existing

        await self.get_or_create_account(user_id)
        await self.session.execute(
            update(WalletAccount)
            .where(WalletAccount.user_id == user_id)
            .values(balance=WalletAccount.balance + amount, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        return await self._record(key, user_id, tx_type, amount, related_id, description=description)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def find_transaction(self, key: str) -> Optional[Transaction]:
        result = await self.session.execute(
            select(Transaction).where(Transaction.idempotency_key == key)
        )
        return result.scalars().first()

    async def transactions_for(self, related_id: uuid.UUID, user_id: uuid.UUID = None) -> List[Transaction]:
        stmt = select(Transaction).where(Transaction.related_id == related_id)
        if user_id:
            stmt = stmt.where(Transaction.user_id == user_id)
        stmt = stmt.order_by(Transaction.created_at.asc())
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def held_amount(self, user_id: uuid.UUID, order_id: uuid.UUID) -> int:
        """Escrow still outstanding for this user and order (0 once released or settled)."""
        keys = {
            tx_type: self.idempotency_key(tx_type, user_id, order_id)
            for tx_type in (TransactionType.ESCROW_HOLD, TransactionType.REFUND, TransactionType.DATE_PAYMENT)
        }
        result = await self.session.execute(
            select(Transaction).where(Transaction.idempotency_key.in_(keys.values()))
        )
        by_type = {TransactionType(tx.type): tx for tx in result.scalars().all()}
        hold = by_type.get(TransactionType.ESCROW_HOLD)
        if not hold:
            return 0
        if TransactionType.REFUND in by_type or TransactionType.DATE_PAYMENT in by_type:
            return 0
        return hold.amount

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _check_amount(amount) -> int:
        if isinstance(amount, bool) or int(amount) != amount or amount <= 0:
            raise ValueError(f"Amount must be a positive whole number, got {amount!r}")
        return int(amount)

    @staticmethod
    def _floored_escrow(amount: int):
        return case(
            (WalletAccount.escrow >= amount, WalletAccount.escrow - amount),
            else_=0,
        )

    async def _check_escrow_cover(self, user_id, amount, order_id, operation):
        account = await self.get_account(user_id)
        if account is None:
            raise WalletNotFound(user_id=user_id)
        if account.escrow < amount:
            # An upstream bug (e.g. a hold that never happened); floor and keep going
            logger.error(
                f"Escrow invariant violation on {operation}: user={user_id} order={order_id} "
                f"escrow={account.escrow} amount={amount}, flooring at 0"
            )

    async def _record(
        self,
        key: str,
        user_id: uuid.UUID,
        tx_type: TransactionType,
        amount: int,
        related_id: uuid.UUID,
        payee: Payee = None,
        description: str = None,
    ) -> Transaction:
        tx = Transaction(
            user_id=user_id,
            type=tx_type,
            amount=amount,
            status=TransactionStatus.COMPLETED,
            payee=payee,
            related_id=related_id,
            idempotency_key=key,
            description=description,
        )
        self.session.add(tx)
        await self.session.flush()
        logger.info(f"Ledger {tx_type.value}: user={user_id} amount={amount} related={related_id}")
        return tx
