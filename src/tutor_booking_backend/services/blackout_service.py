'''
Cancels the sessions that fall inside a newly declared unavailability period.
'''
from datetime import datetime
from typing import Annotated, Optional
from uuid import UUID
from fastapi import Depends
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..database.engine import get_db_session
from ..database import models as db_models
from ..database.db_enums import CancelledByEnum, OPEN_SESSION_STATUSES
from ..models.availability import BlackoutReport, FailedCancellation
from ..models.sessions import SessionRead
from ..models.notifications import NotificationType
from ..common.clock import Clock, get_clock
from ..common.exceptions import BookingEngineError
from ..common.logger import log
from .session_service import SessionService
from .notification_service import NotificationService, get_notification_service


class BlackoutReconciler:
    """
    Each affected session is cancelled inside its own SAVEPOINT. One failed
    cancellation is rolled back on its own and reported; the others stand.
    """
    def __init__(
        self,
        db: Annotated[AsyncSession, Depends(get_db_session)],
        session_service: Annotated[SessionService, Depends(SessionService)],
        notification_service: Annotated[NotificationService, Depends(get_notification_service)],
        clock: Annotated[Clock, Depends(get_clock)]
    ):
        self.db = db
        self.session_service = session_service
        self.notification_service = notification_service
        self.clock = clock

    async def find_affected_sessions(
        self,
        tutor_id: UUID,
        start_at: datetime,
        end_at: datetime
    ) -> list[db_models.TutoringSessions]:
        """Open sessions of tutor_id that start inside [start_at, end_at)."""
        stmt = select(db_models.TutoringSessions).filter(
            db_models.TutoringSessions.tutor_id == tutor_id,
            db_models.TutoringSessions.status.in_(OPEN_SESSION_STATUSES),
            db_models.TutoringSessions.scheduled_at >= start_at,
            db_models.TutoringSessions.scheduled_at < end_at
        ).order_by(db_models.TutoringSessions.scheduled_at)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def reconcile(
        self,
        tutor_id: UUID,
        start_at: datetime,
        end_at: datetime,
        reason: Optional[str] = None
    ) -> BlackoutReport:
        affected = await self.find_affected_sessions(tutor_id, start_at, end_at)
        log.info(f"Reconciling blackout for tutor {tutor_id}: {len(affected)} session(s) in [{start_at.isoformat()}, {end_at.isoformat()}).")

        report = BlackoutReport()
        cancellation_reason = f"Tutor unavailable: {reason}" if reason else "Tutor unavailable"
        for affected_session in affected:
            session_id = affected_session.id
            try:
                async with self.db.begin_nested():
                    cancelled = await self.session_service.cancel_session(
                        session_id,
                        cancelled_by=CancelledByEnum.SYSTEM,
                        reason=cancellation_reason,
                        notify=False
                    )
                    cancelled_read = SessionRead.model_validate(cancelled)
            except (BookingEngineError, SQLAlchemyError) as e:
                log.error(f"Blackout cancellation failed for session {session_id}: {e}", exc_info=True)
                report.failed.append(FailedCancellation(session_id=session_id, error=str(e)))
                continue

            report.cancelled.append(cancelled_read)
            self.notification_service.notify(
                NotificationType.BLACKOUT_CANCELLATION,
                recipients=(cancelled_read.student_id,),
                occurred_at=self.clock.now(),
                session_id=cancelled_read.id,
                contract_id=cancelled_read.contract_id,
                scheduled_at=cancelled_read.scheduled_at.isoformat(),
                credits_refunded=cancelled_read.credits_refunded
            )

        if report.failed:
            log.warning(f"Blackout for tutor {tutor_id}: {len(report.failed)} cancellation(s) failed and can be retried.")
        return report
