"""
Commission distribution engine.

Reads the depositor's upline once, then fans out one short transaction per
ancestor. Retries of the same deposit are idempotent: every unit either
creates its record or finds it already there.
"""

from dataclasses import dataclass, field
from decimal import Decimal

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from yieldcycle.config.business_constants import ZERO
from yieldcycle.config.settings import settings
from yieldcycle.models.commission_record import CommissionRecord
from yieldcycle.models.enums import CommissionStatus
from yieldcycle.repositories.commission_repository import CommissionRepository
from yieldcycle.services.audit import AuditSink, LoguruAuditSink, emit
from yieldcycle.services.commission.commission_calculator import (
    CommissionShare,
    distribution_batch_id,
    plan_distribution,
)
from yieldcycle.services.commission.lifecycle import CommissionLifecycle
from yieldcycle.services.genealogy.chain_manager import GenealogyChainManager
from yieldcycle.utils.concurrency import gather_bounded
from yieldcycle.utils.exceptions import is_integrity_fault
from yieldcycle.utils.money import positive_money, round_money
from yieldcycle.utils.validation import validate_identifier


@dataclass
class DistributionResult:
    """Result of distributing one deposit's commissions."""

    batch_id: str
    source_user_id: str
    source_deposit_id: str
    source_amount: Decimal
    created: int = 0
    skipped: int = 0
    failed: int = 0
    processed: int = 0
    process_failed: int = 0
    total_amount: Decimal = ZERO
    errors: list[str] = field(default_factory=list)
    stopped: bool = False

    @property
    def success(self) -> bool:
        """True when no unit failed to distribute or to process."""
        return self.failed == 0 and self.process_failed == 0 and not self.stopped


@dataclass
class BatchProcessResult:
    """Result of processing a distribution batch."""

    batch_id: str
    processed: int = 0
    skipped: int = 0
    failed: int = 0
    total_amount: Decimal = ZERO
    errors: list[str] = field(default_factory=list)


class CommissionEngine:
    """
    Distributes and settles multi-level commissions.

    Each unit of work opens its own session from ``session_maker``.
    """

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        audit_sink: AuditSink | None = None,
        concurrency: int | None = None,
        auto_process: bool | None = None,
    ) -> None:
        """
        Initialize commission engine.

        Args:
            session_maker: Session factory
            audit_sink: Audit event sink (defaults to LoguruAuditSink)
            concurrency: Max parallel ancestor units
            auto_process: Process each batch right after distribution
        """
        self.session_maker = session_maker
        self.audit_sink = audit_sink or LoguruAuditSink("commission")
        self.concurrency = concurrency or settings.commission_fanout_concurrency
        self.auto_process = (
            settings.commission_auto_process
            if auto_process is None
            else auto_process
        )

    async def distribute(
        self,
        source_user_id: str,
        source_deposit_id: str,
        source_amount: Decimal | int | str,
    ) -> DistributionResult:
        """
        Create commission records for every cached ancestor of the depositor.

        Args:
            source_user_id: Depositor
            source_deposit_id: Deposit id (idempotency key)
            source_amount: Deposit amount

        Returns:
            DistributionResult with created/skipped/failed counts

        Raises:
            ValidationError: Bad input (before any write)
            NotFound: Depositor has no genealogy node
        """
        source_user_id = validate_identifier(source_user_id)
        source_deposit_id = validate_identifier(
            source_deposit_id, "source_deposit_id"
        )
        amount = positive_money(source_amount, "source_amount")
        batch_id = distribution_batch_id(source_deposit_id)

        result = DistributionResult(
            batch_id=batch_id,
            source_user_id=source_user_id,
            source_deposit_id=source_deposit_id,
            source_amount=amount,
        )

        if settings.emergency_stop_commissions:
            logger.warning(
                "Commission distribution skipped: emergency stop active",
                extra={"deposit_id": source_deposit_id},
            )
            result.stopped = True
            return result

        # Read phase: finished and closed before any write
        async with self.session_maker() as session:
            ancestors = await GenealogyChainManager(session).get_ancestors(
                source_user_id
            )
            is_new_member = not await CommissionRepository(
                session
            ).has_other_deposit_from_source(source_user_id, source_deposit_id)

        shares = plan_distribution(ancestors, amount)
        if not shares:
            logger.debug(
                "No upline for depositor, nothing to distribute",
                extra={"user_id": source_user_id, "deposit_id": source_deposit_id},
            )
            return result

        async def apply(share: CommissionShare) -> bool:
            return await self._apply_share(
                share,
                source_user_id=source_user_id,
                source_deposit_id=source_deposit_id,
                source_amount=amount,
                batch_id=batch_id,
                is_new_member=is_new_member,
            )

        outcomes = await gather_bounded(shares, apply, self.concurrency)

        for share, outcome in zip(shares, outcomes, strict=True):
            if isinstance(outcome, BaseException):
                result.failed += 1
                result.errors.append(
                    f"level {share.level} ({share.recipient_user_id}): "
                    f"{type(outcome).__name__}: {outcome}"
                )
                log = logger.error if is_integrity_fault(outcome) else logger.warning
                log(
                    f"Commission unit failed: {outcome}",
                    extra={
                        "deposit_id": source_deposit_id,
                        "level": share.level,
                        "recipient": share.recipient_user_id,
                    },
                )
            elif outcome:
                result.created += 1
                result.total_amount += share.amount
            else:
                result.skipped += 1

        result.total_amount = round_money(result.total_amount)

        logger.info(
            "Commissions distributed",
            extra={
                "deposit_id": source_deposit_id,
                "batch_id": batch_id,
                "created": result.created,
                "skipped": result.skipped,
                "failed": result.failed,
                "total_amount": str(result.total_amount),
            },
        )
        await emit(
            self.audit_sink,
            "commission.distributed",
            batch_id=batch_id,
            source_user_id=source_user_id,
            source_deposit_id=source_deposit_id,
            source_amount=amount,
            created=result.created,
            skipped=result.skipped,
            failed=result.failed,
            total_amount=result.total_amount,
        )

        if self.auto_process:
            processed = await self.process(batch_id)
            result.processed = processed.processed
            result.process_failed = processed.failed
            result.errors.extend(processed.errors)

        return result

    async def _apply_share(
        self,
        share: CommissionShare,
        source_user_id: str,
        source_deposit_id: str,
        source_amount: Decimal,
        batch_id: str,
        is_new_member: bool,
    ) -> bool:
        """
        One ancestor unit: insert the PENDING record and roll up the team
        delta in a single transaction.

        Returns:
            True if created, False if the record already existed
        """
        CommissionRecord.validate_rate(share.level, share.rate)

        async with self.session_maker() as session:
            async with session.begin():
                record = await CommissionRepository(session).try_insert(
                    recipient_user_id=share.recipient_user_id,
                    source_user_id=source_user_id,
                    source_deposit_id=source_deposit_id,
                    level=share.level,
                    rate=share.rate,
                    source_amount=source_amount,
                    amount=share.amount,
                    status=CommissionStatus.PENDING.value,
                    distribution_batch_id=batch_id,
                )
                if record is None:
                    return False

                # Level 1 was counted when the referral link was created
                team_size_delta = 1 if is_new_member and share.level >= 2 else 0
                await GenealogyChainManager(session).apply_team_delta(
                    share.recipient_user_id,
                    volume_delta=source_amount,
                    team_size_delta=team_size_delta,
                )
        return True

    async def process(self, batch_id: str) -> BatchProcessResult:
        """
        Move every PENDING record of a batch to PROCESSED and credit it.

        Args:
            batch_id: Distribution batch id

        Returns:
            BatchProcessResult
        """
        result = BatchProcessResult(batch_id=batch_id)

        async with self.session_maker() as session:
            records = await CommissionRepository(session).get_by_batch(
                batch_id, CommissionStatus.PENDING
            )

        if not records:
            return result

        outcomes = await gather_bounded(
            records, self._process_record, self.concurrency
        )

        for record, outcome in zip(records, outcomes, strict=True):
            if isinstance(outcome, BaseException):
                result.failed += 1
                result.errors.append(
                    f"record {record.id}: {type(outcome).__name__}: {outcome}"
                )
                logger.error(
                    f"Commission processing failed: {outcome}",
                    extra={"record_id": record.id, "batch_id": batch_id},
                )
            elif outcome:
                result.processed += 1
                result.total_amount += round_money(record.amount)
            else:
                result.skipped += 1

        result.total_amount = round_money(result.total_amount)

        logger.info(
            "Commission batch processed",
            extra={
                "batch_id": batch_id,
                "processed": result.processed,
                "skipped": result.skipped,
                "failed": result.failed,
                "total_amount": str(result.total_amount),
            },
        )
        await emit(
            self.audit_sink,
            "commission.processed",
            batch_id=batch_id,
            processed=result.processed,
            total_amount=result.total_amount,
        )
        return result

    async def _process_record(self, record: CommissionRecord) -> bool:
        async with self.session_maker() as session:
            async with session.begin():
                return await CommissionLifecycle(session).process(record)

    async def _apply_lifecycle(
        self, record_id: int, action: str
    ) -> CommissionRecord:
        async with self.session_maker() as session:
            async with session.begin():
                lifecycle = CommissionLifecycle(session)
                record = await lifecycle.get_record(record_id)
                previous = record.status
                await getattr(lifecycle, action)(record)
                await session.refresh(record)

        logger.info(
            f"Commission {action}",
            extra={
                "record_id": record_id,
                "from_status": previous,
                "to_status": record.status,
            },
        )
        return record

    async def mark_paid(self, record_id: int) -> CommissionRecord:
        """PROCESSED -> PAID."""
        return await self._apply_lifecycle(record_id, "mark_paid")

    async def reverse(self, record_id: int) -> CommissionRecord:
        """PROCESSED -> PENDING with the ledger credit rolled back."""
        return await self._apply_lifecycle(record_id, "reverse")

    async def cancel(self, record_id: int) -> CommissionRecord:
        """PENDING/PROCESSED -> CANCELLED."""
        return await self._apply_lifecycle(record_id, "cancel")

    async def mark_batch_paid(self, batch_id: str) -> int:
        """
        Mark every PROCESSED record of a batch as PAID.

        Returns:
            Number of records paid by this call
        """
        paid = 0
        async with self.session_maker() as session:
            async with session.begin():
                lifecycle = CommissionLifecycle(session)
                records = await lifecycle.commission_repo.get_by_batch(
                    batch_id, CommissionStatus.PROCESSED
                )
                for record in records:
                    if await lifecycle.mark_paid(record):
                        paid += 1

        logger.info(
            "Commission batch paid",
            extra={"batch_id": batch_id, "paid": paid},
        )
        return paid
