'''
Per (student, tutor) credit accounting.

Every mutation takes a row lock on the ledger first, so two concurrent
requests for the same pair are applied one after the other.
'''
from typing import Annotated, Optional
from uuid import UUID
from fastapi import Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..database.engine import get_db_session
from ..database import models as db_models
from ..models.ledger import LedgerSummary
from ..common.clock import Clock, get_clock
from ..common.exceptions import InsufficientCreditsError, ValidationError
from ..common.logger import log


class CreditLedgerService:
    """
    Owns the four balance transitions:
      reserve:      available -> reserved
      consume:      reserved  -> used
      release:      reserved  -> available
      debit_direct: available -> used
    plus refund_direct (used -> available) for ad-hoc cancellations and
    add_purchased_credits for settled purchases.
    """
    def __init__(
        self,
        db: Annotated[AsyncSession, Depends(get_db_session)],
        clock: Annotated[Clock, Depends(get_clock)]
    ):
        self.db = db
        self.clock = clock

    # --- Internal Fetchers ---

    async def _get_ledger_internal(
        self,
        student_id: UUID,
        tutor_id: UUID,
        for_update: bool = False
    ) -> Optional[db_models.CreditLedgers]:
        stmt = select(db_models.CreditLedgers).filter(
            db_models.CreditLedgers.student_id == student_id,
            db_models.CreditLedgers.tutor_id == tutor_id
        )
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.db.execute(stmt)
        return result.scalars().first()

    async def _lock_ledger(self, student_id: UUID, tutor_id: UUID, amount: int) -> Optional[db_models.CreditLedgers]:
        if amount < 0:
            raise ValidationError(f"Credit amounts cannot be negative, got {amount}.")
        return await self._get_ledger_internal(student_id, tutor_id, for_update=True)

    async def _touch(self, ledger: db_models.CreditLedgers) -> db_models.CreditLedgers:
        ledger.updated_at = self.clock.now()
        await self.db.flush()
        return ledger

    # --- Balance Transitions ---

    async def reserve(self, student_id: UUID, tutor_id: UUID, amount: int) -> db_models.CreditLedgers:
        ledger = await self._lock_ledger(student_id, tutor_id, amount)
        available = ledger.available if ledger else 0
        if available < amount:
            log.warning(f"Reserve of {amount} refused for student {student_id} / tutor {tutor_id}: only {available} available.")
            raise InsufficientCreditsError(required=amount, available=available)
        ledger.reserved += amount
        log.info(f"Reserved {amount} credits for student {student_id} with tutor {tutor_id}.")
        return await self._touch(ledger)

    async def consume(self, student_id: UUID, tutor_id: UUID, amount: int) -> db_models.CreditLedgers:
        ledger = await self._lock_ledger(student_id, tutor_id, amount)
        reserved = ledger.reserved if ledger else 0
        if reserved < amount:
            raise InsufficientCreditsError(
                required=amount, available=reserved,
                message=f"Cannot consume {amount} credits: only {reserved} reserved."
            )
        ledger.reserved -= amount
        ledger.used += amount
        log.info(f"Consumed {amount} reserved credits for student {student_id} with tutor {tutor_id}.")
        return await self._touch(ledger)

    async def release(self, student_id: UUID, tutor_id: UUID, amount: int) -> db_models.CreditLedgers:
        ledger = await self._lock_ledger(student_id, tutor_id, amount)
        reserved = ledger.reserved if ledger else 0
        if reserved < amount:
            raise InsufficientCreditsError(
                required=amount, available=reserved,
                message=f"Cannot release {amount} credits: only {reserved} reserved."
            )
        ledger.reserved -= amount
        log.info(f"Released {amount} reserved credits for student {student_id} with tutor {tutor_id}.")
        return await self._touch(ledger)

    async def debit_direct(self, student_id: UUID, tutor_id: UUID, amount: int) -> db_models.CreditLedgers:
        ledger = await self._lock_ledger(student_id, tutor_id, amount)
        available = ledger.available if ledger else 0
        if available < amount:
            log.warning(f"Debit of {amount} refused for student {student_id} / tutor {tutor_id}: only {available} available.")
            raise InsufficientCreditsError(required=amount, available=available)
        ledger.used += amount
        log.info(f"Debited {amount} credits for student {student_id} with tutor {tutor_id}.")
        return await self._touch(ledger)

    async def refund_direct(self, student_id: UUID, tutor_id: UUID, amount: int) -> db_models.CreditLedgers:
        """Reverses an earlier debit_direct."""
        ledger = await self._lock_ledger(student_id, tutor_id, amount)
        used = ledger.used if ledger else 0
        if used < amount:
            raise InsufficientCreditsError(
                required=amount, available=used,
                message=f"Cannot refund {amount} credits: only {used} used."
            )
        ledger.used -= amount
        log.info(f"Refunded {amount} credits to student {student_id} with tutor {tutor_id}.")
        return await self._touch(ledger)

    async def add_purchased_credits(self, student_id: UUID, tutor_id: UUID, amount: int) -> db_models.CreditLedgers:
        if amount <= 0:
            raise ValidationError(f"Purchased amount must be positive, got {amount}.")
        ledger = await self._get_ledger_internal(student_id, tutor_id, for_update=True)
        if ledger is None:
            ledger = db_models.CreditLedgers(
                student_id=student_id,
                tutor_id=tutor_id,
                total_purchased=0,
                used=0,
                reserved=0
            )
            self.db.add(ledger)
        ledger.total_purchased += amount
        log.info(f"Added {amount} purchased credits for student {student_id} with tutor {tutor_id}.")
        return await self._touch(ledger)

    # --- Read Methods ---

    async def get_summary(self, student_id: UUID, tutor_id: UUID) -> LedgerSummary:
        ledger = await self._get_ledger_internal(student_id, tutor_id)
        if ledger is None:
            return LedgerSummary(
                student_id=student_id, tutor_id=tutor_id,
                total_purchased=0, used=0, reserved=0, available=0
            )
        return LedgerSummary.model_validate(ledger)

    async def list_summaries_for_student(self, student_id: UUID) -> list[LedgerSummary]:
        stmt = select(db_models.CreditLedgers).filter(
            db_models.CreditLedgers.student_id == student_id
        ).order_by(db_models.CreditLedgers.tutor_id)
        result = await self.db.execute(stmt)
        return [LedgerSummary.model_validate(ledger) for ledger in result.scalars().all()]
