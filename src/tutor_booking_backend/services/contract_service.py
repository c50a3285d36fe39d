'''
Recurring contracts: proposal, edit, tutor response and cancellation.
'''
from datetime import date, time
from typing import Annotated, Optional
from uuid import UUID
from fastapi import Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..database.engine import get_db_session
from ..database import models as db_models
from ..database.db_enums import (
    UserRole,
    CancelledByEnum,
    ContractStatusEnum,
    OccurrenceStatusEnum,
    OPEN_SESSION_STATUSES
)
from ..models import contracts as contract_models
from ..models.token import Actor
from ..models.notifications import NotificationType
from ..core.recurrence import expand_occurrences, validate_weekdays
from ..common.config import settings
from ..common.clock import Clock, get_clock
from ..common.exceptions import (
    NotFoundError,
    ValidationError,
    SlotUnavailableError,
    InsufficientCreditsError,
    InvalidStateTransitionError
)
from ..common.logger import log
from .tutor_service import TutorService
from .slot_service import SlotService
from .ledger_service import CreditLedgerService
from .session_service import SessionService
from .notification_service import NotificationService, get_notification_service
from .security import authorize_roles


class ContractService:
    """
    PENDING -> ACCEPTED | REJECTED, ACCEPTED -> CANCELLED | COMPLETED.
    Nothing touches the ledger until acceptance, which reserves the credits
    of every still-valid occurrence in one go.
    """
    def __init__(
        self,
        db: Annotated[AsyncSession, Depends(get_db_session)],
        tutor_service: Annotated[TutorService, Depends(TutorService)],
        slot_service: Annotated[SlotService, Depends(SlotService)],
        ledger_service: Annotated[CreditLedgerService, Depends(CreditLedgerService)],
        session_service: Annotated[SessionService, Depends(SessionService)],
        notification_service: Annotated[NotificationService, Depends(get_notification_service)],
        clock: Annotated[Clock, Depends(get_clock)]
    ):
        self.db = db
        self.tutor_service = tutor_service
        self.slot_service = slot_service
        self.ledger_service = ledger_service
        self.session_service = session_service
        self.notification_service = notification_service
        self.clock = clock

    # --- 1. Authorization Helpers ---

    def _authorize_party(self, contract: db_models.Contracts, actor: Actor):
        if actor.role == UserRole.ADMIN.value or actor.user_id in (contract.student_id, contract.tutor_id):
            return
        log.warning(f"SECURITY: User {actor.user_id} tried to access contract {contract.id} without permission.")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You do not have permission to access this contract."
        )

    # --- 2. Internal Fetchers ---

    async def _get_contract_internal(self, contract_id: UUID, for_update: bool = False) -> db_models.Contracts:
        stmt = select(db_models.Contracts).options(
            selectinload(db_models.Contracts.occurrences)
        ).filter(db_models.Contracts.id == contract_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        result = await self.db.execute(stmt)
        contract = result.scalars().first()
        if contract is None:
            raise NotFoundError(f"Contract {contract_id} not found.")
        return contract

    async def _lock_contract(self, contract_id: UUID) -> db_models.Contracts:
        """
        Takes the tutor row before the contract row, the same order the
        session lifecycle follows, so contract and session operations on one
        tutor queue up instead of deadlocking.
        """
        stmt = select(db_models.Contracts.tutor_id).filter(db_models.Contracts.id == contract_id)
        tutor_id = (await self.db.execute(stmt)).scalar_one_or_none()
        if tutor_id is None:
            raise NotFoundError(f"Contract {contract_id} not found.")
        await self.tutor_service.get_tutor(tutor_id, for_update=True)
        return await self._get_contract_internal(contract_id, for_update=True)

    async def _reload(self, contract: db_models.Contracts) -> db_models.Contracts:
        """Re-reads the contract with its occurrences so it can be serialized."""
        await self.db.flush()
        await self.db.refresh(contract, ['occurrences'])
        return contract

    def _notify(self, event_type: NotificationType, contract: db_models.Contracts, recipient_id: UUID, **payload):
        self.notification_service.notify(
            event_type,
            recipients=(recipient_id,),
            occurred_at=self.clock.now(),
            contract_id=contract.id,
            **payload
        )

    # --- 3. Schedule planning ---

    async def _plan_occurrences(
        self,
        student_id: UUID,
        tutor_id: UUID,
        start_date: date,
        end_date: date,
        weekdays: list[int],
        start_time: time,
        slot_count: int
    ) -> tuple[list, int, int]:
        """
        Expands the schedule and runs the non-binding credit pre-check.
        Returns (instants, credit_factor, total_credits).
        """
        if slot_count < 1:
            raise ValidationError("slot_count must be at least 1.")
        instants = expand_occurrences(
            start_date, end_date, weekdays, start_time, max_days=settings.MAX_CONTRACT_DAYS
        )
        tutor = await self.tutor_service.get_tutor(tutor_id, require_approved=True)
        credit_factor = self.tutor_service.get_pricing(tutor).credit_factor
        total_credits = len(instants) * slot_count * credit_factor

        summary = await self.ledger_service.get_summary(student_id, tutor_id)
        if summary.available < total_credits:
            log.warning(f"Contract pre-check failed for student {student_id}: {total_credits} needed, {summary.available} available.")
            raise InsufficientCreditsError(required=total_credits, available=summary.available)
        return instants, credit_factor, total_credits

    # --- 4. Core Operations ---

    async def propose_contract(
        self,
        student_id: UUID,
        tutor_id: UUID,
        start_date: date,
        end_date: date,
        weekdays: list[int],
        start_time: time,
        slot_count: int,
        topic: Optional[str] = None,
        course_id: Optional[str] = None
    ) -> db_models.Contracts:
        if student_id == tutor_id:
            raise ValidationError("A tutor cannot propose a contract with themselves.")
        weekdays = validate_weekdays(weekdays)
        instants, credit_factor, total_credits = await self._plan_occurrences(
            student_id, tutor_id, start_date, end_date, weekdays, start_time, slot_count
        )

        contract = db_models.Contracts(
            tutor_id=tutor_id,
            student_id=student_id,
            start_date=start_date,
            end_date=end_date,
            weekdays=weekdays,
            start_time=instants[0].time(),
            slot_count=slot_count,
            credit_factor=credit_factor,
            total_credits=total_credits,
            used_credits=0,
            reserved_credits=0,
            status=ContractStatusEnum.PENDING.value,
            topic=topic,
            course_id=course_id,
            created_at=self.clock.now(),
            occurrences=[
                db_models.ContractOccurrences(scheduled_at=instant, status=OccurrenceStatusEnum.PLANNED.value)
                for instant in instants
            ]
        )
        self.db.add(contract)
        await self.db.flush()

        log.info(f"Student {student_id} proposed contract {contract.id} to tutor {tutor_id}: {len(instants)} occurrence(s), {total_credits} credits.")
        self._notify(NotificationType.CONTRACT_PROPOSED, contract, tutor_id, total_credits=total_credits)
        return contract

    async def edit_contract(
        self,
        contract_id: UUID,
        student_id: UUID,
        changes: contract_models.ContractEditInput
    ) -> db_models.Contracts:
        """Re-plans a PENDING contract from scratch. The ledger is never touched."""
        contract = await self._lock_contract(contract_id)
        if contract.student_id != student_id:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Only the proposing student can edit this contract."
            )
        if contract.status != ContractStatusEnum.PENDING.value:
            raise InvalidStateTransitionError(f"Only PENDING contracts can be edited; this one is {contract.status}.")

        updates = changes.model_dump(exclude_unset=True)

        def pick(field):
            value = updates.get(field)
            return getattr(contract, field) if value is None else value

        start_date = pick('start_date')
        end_date = pick('end_date')
        weekdays = validate_weekdays(pick('weekdays'))
        start_time = pick('start_time')
        slot_count = pick('slot_count')

        instants, credit_factor, total_credits = await self._plan_occurrences(
            contract.student_id, contract.tutor_id, start_date, end_date, weekdays, start_time, slot_count
        )

        contract.start_date = start_date
        contract.end_date = end_date
        contract.weekdays = weekdays
        contract.start_time = instants[0].time()
        contract.slot_count = slot_count
        contract.credit_factor = credit_factor
        contract.total_credits = total_credits
        if 'topic' in updates:
            contract.topic = updates['topic']

        contract.occurrences.clear()
        await self.db.flush()
        contract.occurrences.extend(
            db_models.ContractOccurrences(scheduled_at=instant, status=OccurrenceStatusEnum.PLANNED.value)
            for instant in instants
        )
        await self.db.flush()
        log.info(f"Contract {contract.id} re-planned: {len(instants)} occurrence(s), {total_credits} credits.")
        return contract

    async def respond_to_contract(
        self,
        contract_id: UUID,
        accept: bool,
        reason: Optional[str] = None
    ) -> contract_models.ContractResponseResult:
        contract = await self._lock_contract(contract_id)
        if contract.status != ContractStatusEnum.PENDING.value:
            raise InvalidStateTransitionError(f"Contract {contract.id} has already been answered ({contract.status}).")

        if not accept:
            contract.status = ContractStatusEnum.REJECTED.value
            contract.rejection_reason = reason
            contract.responded_at = self.clock.now()
            await self.db.flush()
            log.info(f"Contract {contract.id} rejected by tutor {contract.tutor_id}.")
            self._notify(NotificationType.CONTRACT_REJECTED, contract, contract.student_id, reason=reason)
            return contract_models.ContractResponseResult(
                contract=contract_models.ContractRead.model_validate(contract),
                sessions_created=0,
                skipped=[]
            )

        tutor = await self.tutor_service.lock_tutor(contract.tutor_id)
        pricing = self.tutor_service.get_pricing(tutor)

        valid, skipped = [], []
        for occurrence in contract.occurrences:
            if await self.slot_service.is_bookable(contract.tutor_id, occurrence.scheduled_at, contract.slot_count):
                valid.append(occurrence)
            else:
                occurrence.status = OccurrenceStatusEnum.SKIPPED.value
                occurrence.skip_reason = "Slot no longer available"
                skipped.append(occurrence)
                log.warning(f"Contract {contract.id}: skipping occurrence {occurrence.scheduled_at.isoformat()}, slot no longer available.")

        if not valid:
            raise SlotUnavailableError("None of the contract's occurrences are still available.")

        share = contract.slot_count * contract.credit_factor
        reserved = share * len(valid)
        await self.ledger_service.reserve(contract.student_id, contract.tutor_id, reserved)

        for occurrence in valid:
            session = await self.session_service.create_contract_session(
                contract, occurrence.scheduled_at, pricing.base_interval_minutes
            )
            occurrence.status = OccurrenceStatusEnum.BOOKED.value
            occurrence.session_id = session.id

        contract.total_credits = reserved
        contract.reserved_credits = reserved
        contract.used_credits = 0
        contract.status = ContractStatusEnum.ACCEPTED.value
        contract.responded_at = self.clock.now()
        await self.db.flush()

        log.info(f"Contract {contract.id} accepted: {len(valid)} session(s) created, {len(skipped)} skipped, {reserved} credits reserved.")
        self._notify(
            NotificationType.CONTRACT_ACCEPTED, contract, contract.student_id,
            sessions_created=len(valid), skipped=len(skipped), reserved_credits=reserved
        )
        return contract_models.ContractResponseResult(
            contract=contract_models.ContractRead.model_validate(contract),
            sessions_created=len(valid),
            skipped=[contract_models.ContractOccurrenceRead.model_validate(o) for o in skipped]
        )

    async def cancel_contract(
        self,
        contract_id: UUID,
        reason: str,
        cancelled_by: CancelledByEnum
    ) -> db_models.Contracts:
        """
        PENDING: just CANCELLED. ACCEPTED: every open child session is
        cancelled, each releasing its own share of the reservation.
        """
        if not reason:
            raise ValidationError("A cancellation reason is required.")
        contract = await self._lock_contract(contract_id)
        if contract.status not in (ContractStatusEnum.PENDING.value, ContractStatusEnum.ACCEPTED.value):
            raise InvalidStateTransitionError(f"Contract {contract.id} cannot be cancelled from {contract.status}.")

        was_accepted = contract.status == ContractStatusEnum.ACCEPTED.value
        # Flip first so the per-session cancellations do not settle it as COMPLETED.
        contract.status = ContractStatusEnum.CANCELLED.value
        contract.cancellation_reason = reason
        contract.cancelled_at = self.clock.now()

        cancelled_sessions = 0
        if was_accepted:
            stmt = select(db_models.TutoringSessions.id).filter(
                db_models.TutoringSessions.contract_id == contract.id,
                db_models.TutoringSessions.status.in_(OPEN_SESSION_STATUSES)
            ).order_by(db_models.TutoringSessions.scheduled_at)
            session_ids = (await self.db.execute(stmt)).scalars().all()
            for session_id in session_ids:
                await self.session_service.cancel_session(
                    session_id, cancelled_by, reason=f"Contract cancelled: {reason}", notify=False
                )
                cancelled_sessions += 1

        await self.db.flush()
        log.info(f"Contract {contract.id} cancelled by {CancelledByEnum(cancelled_by).value}; {cancelled_sessions} session(s) cancelled.")
        other_party = contract.tutor_id if cancelled_by == CancelledByEnum.STUDENT else contract.student_id
        self._notify(
            NotificationType.CONTRACT_CANCELLED, contract, other_party,
            reason=reason, sessions_cancelled=cancelled_sessions
        )
        return contract

    async def list_contracts_orm(
        self,
        actor: Actor,
        status_filter: Optional[ContractStatusEnum] = None
    ) -> list[db_models.Contracts]:
        stmt = select(db_models.Contracts).options(
            selectinload(db_models.Contracts.occurrences)
        ).order_by(db_models.Contracts.start_date)
        if actor.role == UserRole.STUDENT.value:
            stmt = stmt.filter(db_models.Contracts.student_id == actor.user_id)
        elif actor.role == UserRole.TUTOR.value:
            stmt = stmt.filter(db_models.Contracts.tutor_id == actor.user_id)
        if status_filter is not None:
            stmt = stmt.filter(db_models.Contracts.status == ContractStatusEnum(status_filter).value)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    # --- 5. API-Facing Methods ---

    async def propose_contract_for_api(
        self,
        data: contract_models.ContractProposeInput,
        actor: Actor
    ) -> contract_models.ContractRead:
        authorize_roles(actor, [UserRole.STUDENT])
        contract = await self.propose_contract(
            student_id=actor.user_id,
            tutor_id=data.tutor_id,
            start_date=data.start_date,
            end_date=data.end_date,
            weekdays=data.weekdays,
            start_time=data.start_time,
            slot_count=data.slot_count,
            topic=data.topic,
            course_id=data.course_id
        )
        return contract_models.ContractRead.model_validate(await self._reload(contract))

    async def edit_contract_for_api(
        self,
        contract_id: UUID,
        data: contract_models.ContractEditInput,
        actor: Actor
    ) -> contract_models.ContractRead:
        authorize_roles(actor, [UserRole.STUDENT])
        contract = await self.edit_contract(contract_id, actor.user_id, data)
        return contract_models.ContractRead.model_validate(await self._reload(contract))

    async def get_contract_for_api(self, contract_id: UUID, actor: Actor) -> contract_models.ContractRead:
        contract = await self._get_contract_internal(contract_id)
        self._authorize_party(contract, actor)
        return contract_models.ContractRead.model_validate(contract)

    async def list_contracts_for_api(
        self,
        actor: Actor,
        status_filter: Optional[ContractStatusEnum] = None
    ) -> list[contract_models.ContractRead]:
        contracts = await self.list_contracts_orm(actor, status_filter)
        return [contract_models.ContractRead.model_validate(c) for c in contracts]

    async def respond_to_contract_for_api(
        self,
        contract_id: UUID,
        data: contract_models.ContractRespondInput,
        actor: Actor
    ) -> contract_models.ContractResponseResult:
        authorize_roles(actor, [UserRole.TUTOR])
        contract = await self._get_contract_internal(contract_id)
        if contract.tutor_id != actor.user_id:
            log.warning(f"SECURITY: Tutor {actor.user_id} tried to respond to contract {contract.id} addressed to {contract.tutor_id}.")
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Only the contract's tutor can respond to it."
            )
        return await self.respond_to_contract(contract_id, data.accept, data.reason)

    async def cancel_contract_for_api(
        self,
        contract_id: UUID,
        data: contract_models.ContractCancelInput,
        actor: Actor
    ) -> contract_models.ContractRead:
        contract = await self._get_contract_internal(contract_id)
        self._authorize_party(contract, actor)
        if actor.role == UserRole.ADMIN.value:
            cancelled_by = CancelledByEnum.SYSTEM
        elif actor.user_id == contract.tutor_id:
            cancelled_by = CancelledByEnum.TUTOR
        else:
            cancelled_by = CancelledByEnum.STUDENT
        contract = await self.cancel_contract(contract_id, data.reason, cancelled_by)
        return contract_models.ContractRead.model_validate(await self._reload(contract))
