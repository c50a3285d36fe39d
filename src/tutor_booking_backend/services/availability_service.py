'''
Weekly availability templates and unavailability (blackout) periods.
'''
from datetime import datetime, timezone
from typing import Annotated, Optional
from uuid import UUID
from fastapi import Depends
from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from ..database.engine import get_db_session
from ..database import models as db_models
from ..database.db_enums import UserRole, UnavailabilityStatusEnum
from ..models import availability as availability_models
from ..models.sessions import SessionRead
from ..models.token import Actor
from ..core.intervals import Interval, validate_day_intervals
from ..core.presets import resolve_preset, resolve_date_range
from ..common.config import settings
from ..common.clock import Clock, get_clock
from ..common.exceptions import NotFoundError, ValidationError, InvalidStateTransitionError
from ..common.logger import log
from .tutor_service import TutorService
from .blackout_service import BlackoutReconciler
from .security import authorize_roles


class AvailabilityService:
    def __init__(
        self,
        db: Annotated[AsyncSession, Depends(get_db_session)],
        tutor_service: Annotated[TutorService, Depends(TutorService)],
        blackout_reconciler: Annotated[BlackoutReconciler, Depends(BlackoutReconciler)],
        clock: Annotated[Clock, Depends(get_clock)]
    ):
        self.db = db
        self.tutor_service = tutor_service
        self.blackout_reconciler = blackout_reconciler
        self.clock = clock

    # --- Weekly template ---

    async def get_template(self, tutor_id: UUID) -> availability_models.AvailabilityTemplateRead:
        await self.tutor_service.get_tutor(tutor_id)
        stmt = select(db_models.AvailabilityIntervals).filter(
            db_models.AvailabilityIntervals.tutor_id == tutor_id
        ).order_by(
            db_models.AvailabilityIntervals.day_of_week,
            db_models.AvailabilityIntervals.start_minute
        )
        result = await self.db.execute(stmt)
        return availability_models.AvailabilityTemplateRead(
            tutor_id=tutor_id,
            intervals=[
                availability_models.AvailabilityIntervalRead.model_validate(interval)
                for interval in result.scalars().all()
            ]
        )

    async def set_template(
        self,
        tutor_id: UUID,
        intervals: list[availability_models.AvailabilityIntervalInput]
    ) -> availability_models.AvailabilityTemplateRead:
        """
        Replace-all. Validation runs before anything is deleted, so a bad
        payload leaves the previous template untouched. Existing sessions
        are not affected.
        """
        ordered = validate_day_intervals(
            (i.day_of_week, i.start_minute, i.end_minute) for i in intervals
        )
        await self.tutor_service.get_tutor(tutor_id, for_update=True)

        await self.db.execute(
            delete(db_models.AvailabilityIntervals).where(db_models.AvailabilityIntervals.tutor_id == tutor_id)
        )
        self.db.add_all([
            db_models.AvailabilityIntervals(
                tutor_id=tutor_id,
                day_of_week=day_of_week,
                start_minute=start_minute,
                end_minute=end_minute
            )
            for day_of_week, start_minute, end_minute in ordered
        ])
        await self.db.flush()
        log.info(f"Replaced availability template for tutor {tutor_id} with {len(ordered)} interval(s).")
        return await self.get_template(tutor_id)

    # --- Unavailability periods ---

    def resolve_range(self, data: availability_models.UnavailabilityInput) -> Interval:
        """Turns exactly one of preset / instant range / date range into UTC instants."""
        now = self.clock.now()
        forms = [
            data.preset is not None,
            data.start_at is not None or data.end_at is not None,
            data.start_date is not None or data.end_date is not None,
        ]
        if sum(forms) != 1:
            raise ValidationError("Provide exactly one of: preset, start_at/end_at, or start_date/end_date.")

        if data.preset is not None:
            start_at, end_at = resolve_preset(data.preset.value, now, settings.FIRST_DAY_OF_WEEK)
        elif data.start_at is not None or data.end_at is not None:
            if data.start_at is None or data.end_at is None:
                raise ValidationError("Both start_at and end_at are required.")
            if data.start_at.tzinfo is None or data.end_at.tzinfo is None:
                raise ValidationError("start_at and end_at must carry a timezone.")
            start_at = data.start_at.astimezone(timezone.utc)
            end_at = data.end_at.astimezone(timezone.utc)
        else:
            if data.start_date is None or data.end_date is None:
                raise ValidationError("Both start_date and end_date are required.")
            start_at, end_at = resolve_date_range(data.start_date, data.end_date)

        if start_at >= end_at:
            raise ValidationError("An unavailability period must start before it ends.")
        if end_at <= now:
            raise ValidationError("An unavailability period cannot end in the past.")
        return start_at, end_at

    async def preview_unavailable(
        self,
        tutor_id: UUID,
        data: availability_models.UnavailabilityInput
    ) -> availability_models.AffectedSessionsPreview:
        """Read-only: the sessions a declaration would cancel, for confirmation."""
        start_at, end_at = self.resolve_range(data)
        await self.tutor_service.get_tutor(tutor_id)
        sessions = await self.blackout_reconciler.find_affected_sessions(tutor_id, start_at, end_at)
        return availability_models.AffectedSessionsPreview(
            start_at=start_at,
            end_at=end_at,
            sessions=[SessionRead.model_validate(s) for s in sessions]
        )

    async def declare_unavailable(
        self,
        tutor_id: UUID,
        data: availability_models.UnavailabilityInput
    ) -> availability_models.UnavailabilityDeclared:
        """Stores the period, then hands the covered sessions to the reconciler."""
        start_at, end_at = self.resolve_range(data)
        await self.tutor_service.get_tutor(tutor_id, for_update=True)

        reason = data.reason or "personal"
        period = db_models.UnavailabilityPeriods(
            tutor_id=tutor_id,
            start_at=start_at,
            end_at=end_at,
            status=UnavailabilityStatusEnum.ACTIVE.value,
            reason=reason,
            created_at=self.clock.now()
        )
        self.db.add(period)
        await self.db.flush()
        log.info(f"Tutor {tutor_id} declared unavailability {period.id} [{start_at.isoformat()}, {end_at.isoformat()}).")

        report = await self.blackout_reconciler.reconcile(tutor_id, start_at, end_at, reason)
        return availability_models.UnavailabilityDeclared(
            period=availability_models.UnavailabilityPeriodRead.model_validate(period),
            report=report
        )

    async def resume(self, tutor_id: UUID, period_id: UUID) -> db_models.UnavailabilityPeriods:
        """Ends a period early. Sessions it already cancelled stay cancelled."""
        stmt = select(db_models.UnavailabilityPeriods).filter(
            db_models.UnavailabilityPeriods.id == period_id,
            db_models.UnavailabilityPeriods.tutor_id == tutor_id
        ).with_for_update()
        result = await self.db.execute(stmt)
        period = result.scalars().first()
        if period is None:
            raise NotFoundError(f"Unavailability period {period_id} not found.")
        if period.status != UnavailabilityStatusEnum.ACTIVE.value:
            raise InvalidStateTransitionError(f"Unavailability period {period_id} has already ended.")
        period.status = UnavailabilityStatusEnum.ENDED.value
        period.ended_at = self.clock.now()
        await self.db.flush()
        log.info(f"Tutor {tutor_id} resumed availability (period {period_id} ended).")
        return period

    async def _expire_elapsed_periods(self, tutor_id: UUID, now: datetime):
        stmt = select(db_models.UnavailabilityPeriods).filter(
            db_models.UnavailabilityPeriods.tutor_id == tutor_id,
            db_models.UnavailabilityPeriods.status == UnavailabilityStatusEnum.ACTIVE.value,
            db_models.UnavailabilityPeriods.end_at <= now
        )
        result = await self.db.execute(stmt)
        expired = result.scalars().all()
        for period in expired:
            period.status = UnavailabilityStatusEnum.ENDED.value
            period.ended_at = period.end_at
        if expired:
            await self.db.flush()
            log.info(f"Marked {len(expired)} elapsed unavailability period(s) as ENDED for tutor {tutor_id}.")

    async def get_unavailability_overview(self, tutor_id: UUID) -> availability_models.UnavailabilityOverview:
        """The period in force right now (if any) and the ones still to come."""
        now = self.clock.now()
        await self._expire_elapsed_periods(tutor_id, now)
        stmt = select(db_models.UnavailabilityPeriods).filter(
            db_models.UnavailabilityPeriods.tutor_id == tutor_id,
            db_models.UnavailabilityPeriods.status == UnavailabilityStatusEnum.ACTIVE.value
        ).order_by(db_models.UnavailabilityPeriods.start_at)
        result = await self.db.execute(stmt)

        current: Optional[availability_models.UnavailabilityPeriodRead] = None
        upcoming = []
        for period in result.scalars().all():
            read = availability_models.UnavailabilityPeriodRead.model_validate(period)
            if period.start_at <= now and current is None:
                current = read
            elif period.start_at > now:
                upcoming.append(read)
        return availability_models.UnavailabilityOverview(current=current, upcoming=upcoming)

    # --- API-Facing Methods (tutor acts on their own calendar) ---

    async def set_template_for_api(
        self,
        data: availability_models.AvailabilityTemplateInput,
        actor: Actor
    ) -> availability_models.AvailabilityTemplateRead:
        authorize_roles(actor, [UserRole.TUTOR])
        return await self.set_template(actor.user_id, data.intervals)

    async def preview_unavailable_for_api(
        self,
        data: availability_models.UnavailabilityInput,
        actor: Actor
    ) -> availability_models.AffectedSessionsPreview:
        authorize_roles(actor, [UserRole.TUTOR])
        return await self.preview_unavailable(actor.user_id, data)

    async def declare_unavailable_for_api(
        self,
        data: availability_models.UnavailabilityInput,
        actor: Actor
    ) -> availability_models.UnavailabilityDeclared:
        authorize_roles(actor, [UserRole.TUTOR])
        return await self.declare_unavailable(actor.user_id, data)

    async def resume_for_api(self, period_id: UUID, actor: Actor) -> availability_models.UnavailabilityPeriodRead:
        authorize_roles(actor, [UserRole.TUTOR])
        period = await self.resume(actor.user_id, period_id)
        return availability_models.UnavailabilityPeriodRead.model_validate(period)

    async def get_unavailability_overview_for_api(self, actor: Actor) -> availability_models.UnavailabilityOverview:
        authorize_roles(actor, [UserRole.TUTOR])
        return await self.get_unavailability_overview(actor.user_id)
