'''
Session lifecycle: ad-hoc booking, cancellation, start, completion,
no-show and rating, with the matching ledger and contract bookkeeping.
'''
from datetime import datetime, timezone
from typing import Annotated, Optional
from uuid import UUID
from fastapi import Depends, HTTPException, status
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from ..database.engine import get_db_session
from ..database import models as db_models
from ..database.db_enums import (
    UserRole,
    SessionStatusEnum,
    CancelledByEnum,
    ContractStatusEnum,
    OPEN_SESSION_STATUSES
)
from ..models import sessions as session_models
from ..models.token import Actor
from ..models.notifications import NotificationType
from ..common.clock import Clock, get_clock
from ..common.exceptions import (
    NotFoundError,
    SlotUnavailableError,
    InvalidStateTransitionError,
    ValidationError
)
from ..common.logger import log
from .tutor_service import TutorService
from .slot_service import SlotService
from .ledger_service import CreditLedgerService
from .notification_service import NotificationService, get_notification_service
from .security import authorize_roles


class SessionService:
    """
    Every state change here runs inside the caller's transaction. If any
    step fails the request rolls back whole, so a session never exists
    without its ledger movement and vice versa.
    """
    def __init__(
        self,
        db: Annotated[AsyncSession, Depends(get_db_session)],
        tutor_service: Annotated[TutorService, Depends(TutorService)],
        slot_service: Annotated[SlotService, Depends(SlotService)],
        ledger_service: Annotated[CreditLedgerService, Depends(CreditLedgerService)],
        notification_service: Annotated[NotificationService, Depends(get_notification_service)],
        clock: Annotated[Clock, Depends(get_clock)]
    ):
        self.db = db
        self.tutor_service = tutor_service
        self.slot_service = slot_service
        self.ledger_service = ledger_service
        self.notification_service = notification_service
        self.clock = clock

    # --- 1. Authorization Helpers ---

    def _authorize_participant(self, session: db_models.TutoringSessions, actor: Actor):
        if actor.role == UserRole.ADMIN.value:
            return
        if actor.user_id in (session.student_id, session.tutor_id):
            return
        log.warning(f"SECURITY: User {actor.user_id} tried to access session {session.id} without permission.")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You do not have permission to access this session."
        )

    def _authorize_tutor(self, session: db_models.TutoringSessions, actor: Actor):
        if actor.role == UserRole.ADMIN.value:
            return
        if actor.role == UserRole.TUTOR.value and session.tutor_id == actor.user_id:
            return
        log.warning(f"SECURITY: User {actor.user_id} tried to act as tutor on session {session.id}.")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only the session's tutor can perform this action."
        )

    # --- 2. Internal Fetchers ---

    async def _get_session_internal(self, session_id: UUID, for_update: bool = False) -> db_models.TutoringSessions:
        stmt = select(db_models.TutoringSessions).filter(db_models.TutoringSessions.id == session_id)
        if for_update:
            # An authorization read earlier in the request may have cached this row.
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        result = await self.db.execute(stmt)
        session = result.scalars().first()
        if session is None:
            raise NotFoundError(f"Session {session_id} not found.")
        return session

    async def _lock_session(self, session_id: UUID) -> db_models.TutoringSessions:
        """
        Lock order for every session mutation: the tutor row, then the session
        row, then the ledger and contract rows.
        """
        stmt = select(db_models.TutoringSessions.tutor_id).filter(db_models.TutoringSessions.id == session_id)
        tutor_id = (await self.db.execute(stmt)).scalar_one_or_none()
        if tutor_id is None:
            raise NotFoundError(f"Session {session_id} not found.")
        await self.tutor_service.get_tutor(tutor_id, for_update=True)
        return await self._get_session_internal(session_id, for_update=True)

    async def _get_contract_for_update(self, contract_id: UUID) -> db_models.Contracts:
        stmt = select(db_models.Contracts).filter(db_models.Contracts.id == contract_id).with_for_update()
        result = await self.db.execute(stmt)
        contract = result.scalars().first()
        if contract is None:
            raise NotFoundError(f"Contract {contract_id} not found.")
        return contract

    def _require_open(self, session: db_models.TutoringSessions, action: str):
        if session.status not in OPEN_SESSION_STATUSES:
            raise InvalidStateTransitionError(
                f"Cannot {action} session {session.id}: it is already {session.status}."
            )

    def _notify(self, event_type: NotificationType, session: db_models.TutoringSessions, **payload):
        self.notification_service.notify(
            event_type,
            recipients=(session.student_id, session.tutor_id),
            occurred_at=self.clock.now(),
            session_id=session.id,
            contract_id=session.contract_id,
            scheduled_at=session.scheduled_at.isoformat(),
            **payload
        )

    # --- 3. Contract bookkeeping ---

    async def settle_contract_if_resolved(self, contract: db_models.Contracts) -> bool:
        """
        Moves an ACCEPTED contract to COMPLETED once none of its sessions is
        still open. Returns True if the contract was completed.
        """
        if contract.status != ContractStatusEnum.ACCEPTED.value:
            return False
        await self.db.flush()
        stmt = select(func.count(db_models.TutoringSessions.id)).filter(
            db_models.TutoringSessions.contract_id == contract.id,
            db_models.TutoringSessions.status.in_(OPEN_SESSION_STATUSES)
        )
        open_count = (await self.db.execute(stmt)).scalar_one()
        if open_count:
            return False
        contract.status = ContractStatusEnum.COMPLETED.value
        contract.completed_at = self.clock.now()
        log.info(f"Contract {contract.id} completed: every occurrence is resolved.")
        return True

    async def _release_contract_share(self, session: db_models.TutoringSessions):
        await self.ledger_service.release(session.student_id, session.tutor_id, session.credits_charged)
        contract = await self._get_contract_for_update(session.contract_id)
        contract.reserved_credits -= session.credits_charged
        return contract

    async def _consume_contract_share(self, session: db_models.TutoringSessions):
        await self.ledger_service.consume(session.student_id, session.tutor_id, session.credits_charged)
        contract = await self._get_contract_for_update(session.contract_id)
        contract.reserved_credits -= session.credits_charged
        contract.used_credits += session.credits_charged
        return contract

    # --- 4. Core Lifecycle Operations ---

    async def book_session(
        self,
        tutor_id: UUID,
        student_id: UUID,
        scheduled_at: datetime,
        slot_count: int,
        topic: Optional[str] = None,
        course_id: Optional[str] = None
    ) -> db_models.TutoringSessions:
        """
        Books an ad-hoc session. Availability is re-derived under the tutor
        lock, so a slot seen free by two students is only granted once.
        """
        if slot_count < 1:
            raise ValidationError("slot_count must be at least 1.")
        if scheduled_at.tzinfo is None:
            raise ValidationError("scheduled_at must carry a timezone.")
        if tutor_id == student_id:
            raise ValidationError("A tutor cannot book a session with themselves.")
        scheduled_at = scheduled_at.astimezone(timezone.utc)

        tutor = await self.tutor_service.lock_tutor(tutor_id)
        pricing = self.tutor_service.get_pricing(tutor)

        if not await self.slot_service.is_bookable(tutor_id, scheduled_at, slot_count):
            log.warning(f"Booking refused: {scheduled_at.isoformat()} x{slot_count} is not free for tutor {tutor_id}.")
            raise SlotUnavailableError("The requested slot is no longer available.")

        credits = slot_count * pricing.credit_factor
        await self.ledger_service.debit_direct(student_id, tutor_id, credits)

        session = db_models.TutoringSessions(
            tutor_id=tutor_id,
            student_id=student_id,
            scheduled_at=scheduled_at,
            slot_count=slot_count,
            base_interval_minutes=pricing.base_interval_minutes,
            credits_charged=credits,
            status=SessionStatusEnum.SCHEDULED.value,
            topic=topic,
            course_id=course_id,
            credits_refunded=0,
            created_at=self.clock.now()
        )
        self.db.add(session)
        await self.db.flush()

        log.info(f"Booked session {session.id}: student {student_id} with tutor {tutor_id} at {scheduled_at.isoformat()} for {credits} credits.")
        self._notify(NotificationType.SESSION_BOOKED, session, credits_charged=credits)
        return session

    async def create_contract_session(
        self,
        contract: db_models.Contracts,
        scheduled_at: datetime,
        base_interval_minutes: int
    ) -> db_models.TutoringSessions:
        """
        Creates one of a contract's sessions. Its credits were reserved in
        bulk on acceptance, so there is no ledger movement here.
        """
        session = db_models.TutoringSessions(
            tutor_id=contract.tutor_id,
            student_id=contract.student_id,
            contract_id=contract.id,
            scheduled_at=scheduled_at,
            slot_count=contract.slot_count,
            base_interval_minutes=base_interval_minutes,
            credits_charged=contract.slot_count * contract.credit_factor,
            status=SessionStatusEnum.SCHEDULED.value,
            topic=contract.topic,
            course_id=contract.course_id,
            credits_refunded=0,
            created_at=self.clock.now()
        )
        self.db.add(session)
        await self.db.flush()
        return session

    async def cancel_session(
        self,
        session_id: UUID,
        cancelled_by: CancelledByEnum,
        reason: Optional[str] = None,
        notify: bool = True
    ) -> db_models.TutoringSessions:
        """
        Cancels an open session and returns its credits in full: a contract
        session releases its reservation, an ad-hoc one reverses its debit.
        """
        session = await self._lock_session(session_id)
        self._require_open(session, "cancel")

        contract = None
        if session.contract_id is not None:
            contract = await self._release_contract_share(session)
        else:
            await self.ledger_service.refund_direct(session.student_id, session.tutor_id, session.credits_charged)

        session.status = SessionStatusEnum.CANCELLED.value
        session.cancelled_at = self.clock.now()
        session.cancelled_by = CancelledByEnum(cancelled_by).value
        session.cancellation_reason = reason
        session.credits_refunded = session.credits_charged

        if contract is not None:
            await self.settle_contract_if_resolved(contract)
        await self.db.flush()

        log.info(f"Cancelled session {session.id} (by {session.cancelled_by}); refunded {session.credits_refunded} credits.")
        if notify:
            self._notify(
                NotificationType.SESSION_CANCELLED, session,
                cancelled_by=session.cancelled_by, credits_refunded=session.credits_refunded
            )
        return session

    async def start_session(self, session_id: UUID) -> db_models.TutoringSessions:
        session = await self._lock_session(session_id)
        if session.status != SessionStatusEnum.SCHEDULED.value:
            raise InvalidStateTransitionError(f"Cannot start session {session.id}: it is {session.status}.")
        session.status = SessionStatusEnum.IN_PROGRESS.value
        session.started_at = self.clock.now()
        await self.db.flush()
        log.info(f"Session {session.id} started.")
        return session

    async def complete_session(
        self,
        session_id: UUID,
        actual_duration_minutes: Optional[int] = None,
        tutor_notes: Optional[str] = None
    ) -> db_models.TutoringSessions:
        """Finalizes a session. For a contract session the reservation becomes usage."""
        session = await self._lock_session(session_id)
        self._require_open(session, "complete")

        contract = None
        if session.contract_id is not None:
            contract = await self._consume_contract_share(session)

        now = self.clock.now()
        session.status = SessionStatusEnum.COMPLETED.value
        session.ended_at = now
        if actual_duration_minutes is None and session.started_at is not None:
            actual_duration_minutes = int((now - session.started_at).total_seconds() // 60)
        session.actual_duration_minutes = actual_duration_minutes
        if tutor_notes is not None:
            session.tutor_notes = tutor_notes

        if contract is not None:
            await self.settle_contract_if_resolved(contract)
        await self.db.flush()

        log.info(f"Session {session.id} completed.")
        self._notify(NotificationType.SESSION_COMPLETED, session)
        return session

    async def mark_no_show(self, session_id: UUID) -> db_models.TutoringSessions:
        """
        Terminal and non-refundable. A contract session's reservation is
        consumed; an ad-hoc session was already debited.
        """
        session = await self._lock_session(session_id)
        self._require_open(session, "mark as no-show")

        contract = None
        if session.contract_id is not None:
            contract = await self._consume_contract_share(session)

        session.status = SessionStatusEnum.NO_SHOW.value
        session.ended_at = self.clock.now()
        session.credits_refunded = 0

        if contract is not None:
            await self.settle_contract_if_resolved(contract)
        await self.db.flush()
        log.info(f"Session {session.id} marked as no-show.")
        return session

    async def rate_session(
        self,
        session_id: UUID,
        student_id: UUID,
        rating: int,
        feedback: Optional[str] = None
    ) -> db_models.TutoringSessions:
        if not 1 <= rating <= 5:
            raise ValidationError("Rating must be between 1 and 5.")
        session = await self._get_session_internal(session_id, for_update=True)
        if session.student_id != student_id:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Only the session's student can rate it."
            )
        if session.status != SessionStatusEnum.COMPLETED.value:
            raise InvalidStateTransitionError("Only completed sessions can be rated.")
        if session.rating is not None:
            raise InvalidStateTransitionError("This session has already been rated.")
        session.rating = rating
        session.feedback = feedback
        session.rated_at = self.clock.now()
        await self.db.flush()
        return session

    async def list_sessions_orm(
        self,
        actor: Actor,
        status_filter: Optional[SessionStatusEnum] = None,
        upcoming_only: bool = False
    ) -> list[db_models.TutoringSessions]:
        stmt = select(db_models.TutoringSessions).order_by(db_models.TutoringSessions.scheduled_at)
        if actor.role == UserRole.STUDENT.value:
            stmt = stmt.filter(db_models.TutoringSessions.student_id == actor.user_id)
        elif actor.role == UserRole.TUTOR.value:
            stmt = stmt.filter(db_models.TutoringSessions.tutor_id == actor.user_id)
        if status_filter is not None:
            stmt = stmt.filter(db_models.TutoringSessions.status == SessionStatusEnum(status_filter).value)
        if upcoming_only:
            stmt = stmt.filter(db_models.TutoringSessions.scheduled_at >= self.clock.now())
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    # --- 5. API-Facing Methods ---

    async def book_session_for_api(self, data: session_models.SessionBookInput, actor: Actor) -> session_models.SessionRead:
        authorize_roles(actor, [UserRole.STUDENT])
        session = await self.book_session(
            tutor_id=data.tutor_id,
            student_id=actor.user_id,
            scheduled_at=data.scheduled_at,
            slot_count=data.slot_count,
            topic=data.topic,
            course_id=data.course_id
        )
        return session_models.SessionRead.model_validate(session)

    async def get_session_for_api(self, session_id: UUID, actor: Actor) -> session_models.SessionRead:
        session = await self._get_session_internal(session_id)
        self._authorize_participant(session, actor)
        return session_models.SessionRead.model_validate(session)

    async def list_sessions_for_api(
        self,
        actor: Actor,
        status_filter: Optional[SessionStatusEnum] = None,
        upcoming_only: bool = False
    ) -> list[session_models.SessionRead]:
        sessions = await self.list_sessions_orm(actor, status_filter, upcoming_only)
        return [session_models.SessionRead.model_validate(s) for s in sessions]

    async def cancel_session_for_api(
        self,
        session_id: UUID,
        data: session_models.SessionCancelInput,
        actor: Actor
    ) -> session_models.SessionRead:
        session = await self._get_session_internal(session_id)
        self._authorize_participant(session, actor)
        if actor.role == UserRole.ADMIN.value:
            cancelled_by = CancelledByEnum.SYSTEM
        elif actor.user_id == session.tutor_id:
            cancelled_by = CancelledByEnum.TUTOR
        else:
            cancelled_by = CancelledByEnum.STUDENT
        session = await self.cancel_session(session_id, cancelled_by, data.reason)
        return session_models.SessionRead.model_validate(session)

    async def start_session_for_api(self, session_id: UUID, actor: Actor) -> session_models.SessionRead:
        session = await self._get_session_internal(session_id)
        self._authorize_tutor(session, actor)
        session = await self.start_session(session_id)
        return session_models.SessionRead.model_validate(session)

    async def complete_session_for_api(
        self,
        session_id: UUID,
        data: session_models.SessionCompleteInput,
        actor: Actor
    ) -> session_models.SessionRead:
        session = await self._get_session_internal(session_id)
        self._authorize_tutor(session, actor)
        session = await self.complete_session(session_id, data.actual_duration_minutes, data.tutor_notes)
        return session_models.SessionRead.model_validate(session)

    async def mark_no_show_for_api(self, session_id: UUID, actor: Actor) -> session_models.SessionRead:
        session = await self._get_session_internal(session_id)
        self._authorize_tutor(session, actor)
        session = await self.mark_no_show(session_id)
        return session_models.SessionRead.model_validate(session)

    async def rate_session_for_api(
        self,
        session_id: UUID,
        data: session_models.SessionRateInput,
        actor: Actor
    ) -> session_models.SessionRead:
        authorize_roles(actor, [UserRole.STUDENT])
        session = await self.rate_session(session_id, actor.user_id, data.rating, data.feedback)
        return session_models.SessionRead.model_validate(session)
