"""
Ledger service.

Per-user bucket balances. Every credit and debit is an atomic in-place
update plus one LedgerTransaction row, executed inside the caller's
transaction (the service never commits).
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from yieldcycle.config.business_constants import ZERO
from yieldcycle.config.operational_constants import DEFAULT_HISTORY_LIMIT
from yieldcycle.models.enums import (
    INCOME_BUCKETS,
    STORED_BUCKETS,
    LedgerBucket,
    LedgerDirection,
)
from yieldcycle.models.ledger_transaction import LedgerTransaction
from yieldcycle.repositories.ledger_repository import LedgerRepository
from yieldcycle.utils.datetime_utils import utc_now
from yieldcycle.utils.exceptions import (
    InsufficientBalance,
    NotFound,
    ValidationError,
)
from yieldcycle.utils.money import positive_money, round_money
from yieldcycle.utils.validation import validate_identifier


@dataclass
class BucketBalance:
    """Balance view of one bucket."""

    bucket: LedgerBucket
    balance: Decimal = ZERO
    lifetime_credits: Decimal = ZERO
    lifetime_debits: Decimal = ZERO
    last_transaction_at: datetime | None = None


@dataclass
class LedgerSummary:
    """All four buckets of a user. TOTAL is projected at read time."""

    user_id: str
    buckets: dict[LedgerBucket, BucketBalance] = field(default_factory=dict)

    def balance(self, bucket: LedgerBucket) -> Decimal:
        """Balance of one bucket."""
        return self.buckets[bucket].balance

    @property
    def total(self) -> Decimal:
        """PERIODIC_INCOME + COMMISSION."""
        return self.buckets[LedgerBucket.TOTAL].balance


def _parse_bucket(bucket: LedgerBucket | str) -> LedgerBucket:
    try:
        return LedgerBucket(bucket)
    except ValueError as exc:
        raise ValidationError(f"Unknown ledger bucket: {bucket!r}") from exc


def _stored_bucket(bucket: LedgerBucket | str) -> LedgerBucket:
    """Resolve a bucket that can be credited or debited."""
    resolved = _parse_bucket(bucket)
    if resolved not in STORED_BUCKETS:
        raise ValidationError(
            f"{resolved.value} is derived and cannot be credited or debited"
        )
    return resolved


class LedgerService:
    """Bucket balances of users."""

    def __init__(self, session: AsyncSession) -> None:
        """
        Initialize ledger service.

        Args:
            session: Async database session (transaction owned by caller)
        """
        self.session = session
        self.ledger_repo = LedgerRepository(session)

    async def initialize_user(self, user_id: str) -> None:
        """Create zero-balance rows for all stored buckets (idempotent)."""
        user_id = validate_identifier(user_id)
        created = await self.ledger_repo.ensure_entries(user_id)
        if created:
            logger.debug(
                "Ledger initialized",
                extra={"user_id": user_id, "buckets_created": created},
            )

    async def credit(
        self,
        user_id: str,
        bucket: LedgerBucket | str,
        amount: Decimal | int | str,
        reference_type: str | None = None,
        reference_id: str | None = None,
        description: str | None = None,
    ) -> Decimal:
        """
        Add amount to a stored bucket.

        Missing ledger rows are created on first credit.

        Args:
            user_id: Balance owner
            bucket: PRINCIPAL, PERIODIC_INCOME or COMMISSION
            amount: Positive amount
            reference_type: What caused the movement
            reference_id: Id of the cause
            description: Free text

        Returns:
            Balance after the credit

        Raises:
            ValidationError: TOTAL bucket or non-positive amount
        """
        target = _stored_bucket(bucket)
        amount = positive_money(amount)
        now = utc_now()

        balance = await self.ledger_repo.increment(user_id, target, amount, now)
        if balance is None:
            await self.ledger_repo.ensure_entries(user_id)
            balance = await self.ledger_repo.increment(
                user_id, target, amount, now
            )

        await self.ledger_repo.add_transaction(
            user_id=user_id,
            bucket=target,
            direction=LedgerDirection.CREDIT,
            amount=amount,
            balance_after=balance,
            now=now,
            reference_type=reference_type,
            reference_id=reference_id,
            description=description,
        )

        logger.debug(
            "Ledger credited",
            extra={
                "user_id": user_id,
                "bucket": target.value,
                "amount": str(amount),
                "balance": str(balance),
            },
        )
        return balance

    async def debit(
        self,
        user_id: str,
        bucket: LedgerBucket | str,
        amount: Decimal | int | str,
        reference_type: str | None = None,
        reference_id: str | None = None,
        description: str | None = None,
    ) -> Decimal:
        """
        Subtract amount from a stored bucket.

        Returns:
            Balance after the debit

        Raises:
            ValidationError: TOTAL bucket or non-positive amount
            NotFound: User has no ledger rows
            InsufficientBalance: amount exceeds the balance
        """
        target = _stored_bucket(bucket)
        amount = positive_money(amount)
        now = utc_now()

        balance = await self.ledger_repo.decrement(user_id, target, amount, now)
        if balance is None:
            entry = await self.ledger_repo.get_entry(user_id, target)
            if entry is None:
                raise NotFound(f"Ledger of {user_id} not initialized")
            raise InsufficientBalance(
                user_id, target.value, amount, round_money(entry.balance)
            )

        await self.ledger_repo.add_transaction(
            user_id=user_id,
            bucket=target,
            direction=LedgerDirection.DEBIT,
            amount=amount,
            balance_after=balance,
            now=now,
            reference_type=reference_type,
            reference_id=reference_id,
            description=description,
        )

        logger.debug(
            "Ledger debited",
            extra={
                "user_id": user_id,
                "bucket": target.value,
                "amount": str(amount),
                "balance": str(balance),
            },
        )
        return balance

    async def get_balance(
        self, user_id: str, bucket: LedgerBucket | str
    ) -> Decimal:
        """
        Get balance of one bucket. TOTAL is PERIODIC_INCOME + COMMISSION.

        Users without ledger rows have zero balances.
        """
        target = _parse_bucket(bucket)
        entries = await self.ledger_repo.get_entries(user_id)

        if target == LedgerBucket.TOTAL:
            return round_money(
                sum(
                    (
                        Decimal(entries[b.value].balance)
                        for b in INCOME_BUCKETS
                        if b.value in entries
                    ),
                    ZERO,
                )
            )

        entry = entries.get(target.value)
        return round_money(entry.balance) if entry else ZERO

    async def get_summary(self, user_id: str) -> LedgerSummary:
        """Get all four buckets with TOTAL projected."""
        entries = await self.ledger_repo.get_entries(user_id)
        summary = LedgerSummary(user_id=user_id)

        for bucket in STORED_BUCKETS:
            entry = entries.get(bucket.value)
            if entry is None:
                summary.buckets[bucket] = BucketBalance(bucket=bucket)
                continue
            summary.buckets[bucket] = BucketBalance(
                bucket=bucket,
                balance=round_money(entry.balance),
                lifetime_credits=round_money(entry.lifetime_credits),
                lifetime_debits=round_money(entry.lifetime_debits),
                last_transaction_at=entry.last_transaction_at,
            )

        income = [summary.buckets[b] for b in INCOME_BUCKETS]
        stamps = [b.last_transaction_at for b in income if b.last_transaction_at]
        summary.buckets[LedgerBucket.TOTAL] = BucketBalance(
            bucket=LedgerBucket.TOTAL,
            balance=round_money(sum((b.balance for b in income), ZERO)),
            lifetime_credits=round_money(
                sum((b.lifetime_credits for b in income), ZERO)
            ),
            lifetime_debits=round_money(
                sum((b.lifetime_debits for b in income), ZERO)
            ),
            last_transaction_at=max(stamps) if stamps else None,
        )
        return summary

    async def get_transactions(
        self,
        user_id: str,
        bucket: LedgerBucket | str | None = None,
        limit: int = DEFAULT_HISTORY_LIMIT,
    ) -> list[LedgerTransaction]:
        """Get movement history, newest first."""
        target = _stored_bucket(bucket) if bucket is not None else None
        return await self.ledger_repo.get_transactions(user_id, target, limit)
