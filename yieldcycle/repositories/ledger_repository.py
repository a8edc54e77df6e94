"""
Ledger repository.

Data access layer for LedgerEntry and LedgerTransaction models.
All balance changes are atomic in-place updates.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from yieldcycle.config.business_constants import ZERO
from yieldcycle.models.enums import STORED_BUCKETS, LedgerDirection
from yieldcycle.models.ledger_entry import LedgerEntry
from yieldcycle.models.ledger_transaction import LedgerTransaction
from yieldcycle.repositories.base import BaseRepository
from yieldcycle.utils.money import round_money


class LedgerRepository(BaseRepository[LedgerEntry]):
    """Ledger repository with balance-specific operations."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize ledger repository."""
        super().__init__(LedgerEntry, session)

    async def get_entry(self, user_id: str, bucket: str) -> LedgerEntry | None:
        """Get balance row for (user, bucket)."""
        return await self.get_by(user_id=user_id, bucket=str(bucket))

    async def get_entries(self, user_id: str) -> dict[str, LedgerEntry]:
        """Get all stored bucket rows of a user keyed by bucket."""
        stmt = select(LedgerEntry).where(LedgerEntry.user_id == user_id)
        result = await self.session.execute(stmt)
        return {entry.bucket: entry for entry in result.scalars().all()}

    async def ensure_entries(self, user_id: str) -> int:
        """
        Create missing zero-balance rows for every stored bucket.

        Each insert runs in a savepoint, so a concurrent initializer only
        loses its own duplicate row.

        Returns:
            Number of rows created
        """
        existing = await self.get_entries(user_id)
        created = 0

        for bucket in STORED_BUCKETS:
            if bucket.value in existing:
                continue
            try:
                async with self.session.begin_nested():
                    self.session.add(
                        LedgerEntry(
                            user_id=user_id,
                            bucket=bucket.value,
                            balance=ZERO,
                            lifetime_credits=ZERO,
                            lifetime_debits=ZERO,
                        )
                    )
                created += 1
            except IntegrityError:
                continue

        return created

    async def increment(
        self,
        user_id: str,
        bucket: str,
        amount: Decimal,
        now: datetime,
    ) -> Decimal | None:
        """
        Atomically add amount to a balance.

        Returns:
            Balance after the credit, or None if the row does not exist
        """
        stmt = (
            update(LedgerEntry)
            .where(
                LedgerEntry.user_id == user_id,
                LedgerEntry.bucket == str(bucket),
            )
            .values(
                balance=LedgerEntry.balance + amount,
                lifetime_credits=LedgerEntry.lifetime_credits + amount,
                last_transaction_at=now,
                updated_at=now,
            )
            .returning(LedgerEntry.balance)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        balance = result.scalar_one_or_none()
        return None if balance is None else round_money(balance)

    async def decrement(
        self,
        user_id: str,
        bucket: str,
        amount: Decimal,
        now: datetime,
    ) -> Decimal | None:
        """
        Atomically subtract amount from a balance, guarded by balance >= amount.

        Returns:
            Balance after the debit, or None if the row is missing or the
            balance is insufficient
        """
        stmt = (
            update(LedgerEntry)
            .where(
                LedgerEntry.user_id == user_id,
                LedgerEntry.bucket == str(bucket),
                LedgerEntry.balance >= amount,
            )
            .values(
                balance=LedgerEntry.balance - amount,
                lifetime_debits=LedgerEntry.lifetime_debits + amount,
                last_transaction_at=now,
                updated_at=now,
            )
            .returning(LedgerEntry.balance)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        balance = result.scalar_one_or_none()
        return None if balance is None else round_money(balance)

    async def add_transaction(
        self,
        user_id: str,
        bucket: str,
        direction: LedgerDirection,
        amount: Decimal,
        balance_after: Decimal,
        now: datetime,
        reference_type: str | None = None,
        reference_id: str | None = None,
        description: str | None = None,
    ) -> LedgerTransaction:
        """Append a movement to the transaction log."""
        tx = LedgerTransaction(
            user_id=user_id,
            bucket=str(bucket),
            direction=direction.value,
            amount=amount,
            balance_after=balance_after,
            reference_type=reference_type,
            reference_id=reference_id,
            description=description,
            created_at=now,
        )
        self.session.add(tx)
        await self.session.flush()
        return tx

    async def get_transactions(
        self,
        user_id: str,
        bucket: str | None = None,
        limit: int = 100,
    ) -> list[LedgerTransaction]:
        """
        Get movement history, newest first.

        Args:
            user_id: User id
            bucket: Optional bucket filter
            limit: Max rows

        Returns:
            Ledger transactions
        """
        stmt = select(LedgerTransaction).where(
            LedgerTransaction.user_id == user_id
        )
        if bucket is not None:
            stmt = stmt.where(LedgerTransaction.bucket == str(bucket))
        stmt = stmt.order_by(
            LedgerTransaction.created_at.desc(), LedgerTransaction.id.desc()
        ).limit(limit)

        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_transactions_by_reference(
        self, reference_type: str, reference_id: str
    ) -> list[LedgerTransaction]:
        """Get movements caused by one deposit, record or accrual."""
        stmt = (
            select(LedgerTransaction)
            .where(
                LedgerTransaction.reference_type == reference_type,
                LedgerTransaction.reference_id == reference_id,
            )
            .order_by(LedgerTransaction.id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
