"""
Deposit service.

Deposit registry: registration, confirmation/activation with the PRINCIPAL
credit, and status changes. Mutating methods commit their own unit of work.
"""

from decimal import Decimal
from typing import Any

from loguru import logger
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from yieldcycle.config.business_constants import ZERO
from yieldcycle.models.deposit import Deposit
from yieldcycle.models.enums import DepositStatus, LedgerBucket, ReferenceType
from yieldcycle.repositories.deposit_repository import DepositRepository
from yieldcycle.services.ledger_service import LedgerService
from yieldcycle.utils.datetime_utils import utc_now
from yieldcycle.utils.db_decorators import with_rollback_on_error
from yieldcycle.utils.exceptions import DuplicateError, NotFound, ValidationError
from yieldcycle.utils.money import positive_money, round_money
from yieldcycle.utils.validation import validate_identifier


class DepositService:
    """Deposit registry operations."""

    def __init__(self, session: AsyncSession) -> None:
        """
        Initialize deposit service.

        Args:
            session: Async database session
        """
        self.session = session
        self.deposit_repo = DepositRepository(session)
        self.ledger = LedgerService(session)

    async def get_deposit(self, deposit_id: str, for_update: bool = False) -> Deposit:
        """
        Get deposit.

        Raises:
            NotFound: If deposit is missing
        """
        deposit = await self.deposit_repo.get_by_id(deposit_id, for_update=for_update)
        if deposit is None:
            raise NotFound(f"Deposit {deposit_id} not found")
        return deposit

    async def _register(
        self, deposit_id: str, user_id: str, amount: Decimal
    ) -> Deposit:
        existing = await self.deposit_repo.get_by_id(deposit_id, for_update=True)
        if existing is not None:
            if existing.user_id != user_id or round_money(existing.amount) != amount:
                raise DuplicateError(
                    f"Deposit {deposit_id} already registered with "
                    f"different owner or amount"
                )
            return existing

        deposit = Deposit(
            id=deposit_id,
            user_id=user_id,
            amount=amount,
            status=DepositStatus.PENDING.value,
            months_active=0,
            total_earnings=ZERO,
        )
        try:
            async with self.session.begin_nested():
                self.session.add(deposit)
        except IntegrityError as exc:
            raise DuplicateError(f"Deposit {deposit_id} already exists") from exc

        logger.info(
            "Deposit registered",
            extra={
                "deposit_id": deposit_id,
                "user_id": user_id,
                "amount": str(amount),
            },
        )
        return deposit

    @with_rollback_on_error
    async def register(
        self, deposit_id: str, user_id: str, amount: Decimal | int | str
    ) -> Deposit:
        """
        Register a PENDING deposit (idempotent for identical data).

        Raises:
            ValidationError: Bad ids or non-positive amount
            DuplicateError: Same id with different owner or amount
        """
        deposit_id = validate_identifier(deposit_id, "deposit_id")
        user_id = validate_identifier(user_id)
        amount = positive_money(amount)

        deposit = await self._register(deposit_id, user_id, amount)
        await self.session.commit()
        return deposit

    async def _activate(self, deposit: Deposit) -> bool:
        """
        Bring a PENDING or CONFIRMED deposit to ACTIVE and credit PRINCIPAL.

        Returns:
            True if activated now, False if it was already past confirmation
        """
        now = utc_now()
        status = deposit.status

        if status == DepositStatus.PENDING:
            if not await self.deposit_repo.transition(
                deposit.id,
                DepositStatus.PENDING,
                DepositStatus.CONFIRMED,
                confirmed_at=now,
            ):
                return False
            status = DepositStatus.CONFIRMED

        if status != DepositStatus.CONFIRMED:
            if status == DepositStatus.FAILED:
                deposit.ensure_transition(DepositStatus.CONFIRMED)
            return False

        if not await self.deposit_repo.transition(
            deposit.id,
            DepositStatus.CONFIRMED,
            DepositStatus.ACTIVE,
            activated_at=now,
        ):
            return False

        await self.ledger.credit(
            deposit.user_id,
            LedgerBucket.PRINCIPAL,
            deposit.amount,
            reference_type=ReferenceType.DEPOSIT.value,
            reference_id=deposit.id,
            description=f"Deposit {deposit.id} confirmed",
        )
        return True

    @with_rollback_on_error
    async def confirm(self, deposit_id: str) -> tuple[Deposit, bool]:
        """
        Confirm and activate a deposit, crediting PRINCIPAL once.

        Returns:
            (deposit, True if activated by this call)

        Raises:
            NotFound: Deposit is missing
            InvalidStatusTransition: Deposit is FAILED
        """
        deposit = await self.get_deposit(deposit_id, for_update=True)
        activated = await self._activate(deposit)
        await self.session.refresh(deposit)
        await self.session.commit()

        if activated:
            logger.info(
                "Deposit activated",
                extra={
                    "deposit_id": deposit.id,
                    "user_id": deposit.user_id,
                    "amount": str(deposit.amount),
                },
            )
        return deposit, activated

    @with_rollback_on_error
    async def record_confirmed(
        self, user_id: str, deposit_id: str, amount: Decimal | int | str
    ) -> tuple[Deposit, bool]:
        """
        Register (if needed) and activate a confirmed deposit in one
        transaction.

        Returns:
            (deposit, True if activated by this call)
        """
        deposit_id = validate_identifier(deposit_id, "deposit_id")
        user_id = validate_identifier(user_id)
        amount = positive_money(amount)

        deposit = await self._register(deposit_id, user_id, amount)
        activated = await self._activate(deposit)
        await self.session.refresh(deposit)
        await self.session.commit()

        logger.info(
            "Deposit confirmation recorded",
            extra={
                "deposit_id": deposit_id,
                "user_id": user_id,
                "activated": activated,
                "status": deposit.status,
            },
        )
        return deposit, activated

    async def _simple_transition(
        self,
        deposit_id: str,
        target: DepositStatus,
        **values: Any,
    ) -> Deposit:
        deposit = await self.get_deposit(deposit_id, for_update=True)
        deposit.ensure_transition(target)
        await self.deposit_repo.transition(
            deposit.id, DepositStatus(deposit.status), target, **values
        )
        await self.session.refresh(deposit)
        await self.session.commit()

        logger.info(
            "Deposit status changed",
            extra={"deposit_id": deposit_id, "status": deposit.status},
        )
        return deposit

    @with_rollback_on_error
    async def fail(self, deposit_id: str, reason: str) -> Deposit:
        """PENDING -> FAILED."""
        if not reason:
            raise ValidationError("Failure reason is required")
        return await self._simple_transition(
            deposit_id, DepositStatus.FAILED, failure_reason=reason
        )

    @with_rollback_on_error
    async def set_dormant(self, deposit_id: str) -> Deposit:
        """ACTIVE -> DORMANT (stops accrual)."""
        return await self._simple_transition(deposit_id, DepositStatus.DORMANT)

    @with_rollback_on_error
    async def reactivate(self, deposit_id: str) -> Deposit:
        """DORMANT -> ACTIVE."""
        return await self._simple_transition(deposit_id, DepositStatus.ACTIVE)

    async def get_user_deposits(
        self, user_id: str, status: str | None = None
    ) -> list[Deposit]:
        """Get deposits of a user."""
        return await self.deposit_repo.get_user_deposits(user_id, status)
