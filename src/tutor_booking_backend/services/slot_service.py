'''
Bookable slot generation for one tutor on one calendar day.
'''
from datetime import date, datetime, timedelta, timezone
from typing import Annotated, Optional
from uuid import UUID
from fastapi import Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..database.engine import get_db_session
from ..database import models as db_models
from ..database.db_enums import SessionStatusEnum, UnavailabilityStatusEnum
from ..models.slots import BookableSlot, SlotListing
from ..core import intervals as iv
from ..common.clock import Clock, get_clock
from ..common.exceptions import ValidationError
from ..common.logger import log
from .tutor_service import TutorService


class SlotService:
    """
    Pipeline per template interval: turn it into UTC instants, subtract
    blackouts and existing sessions, cut the remainder on the tutor's base
    grid (anchored at the interval start) and drop anything before
    now + min_notice. Slots are always computed, never stored.
    """
    def __init__(
        self,
        db: Annotated[AsyncSession, Depends(get_db_session)],
        tutor_service: Annotated[TutorService, Depends(TutorService)],
        clock: Annotated[Clock, Depends(get_clock)]
    ):
        self.db = db
        self.tutor_service = tutor_service
        self.clock = clock

    # --- Blocked time fetchers ---

    async def _get_template_intervals(self, tutor_id: UUID, day_of_week: int) -> list[db_models.AvailabilityIntervals]:
        stmt = select(db_models.AvailabilityIntervals).filter(
            db_models.AvailabilityIntervals.tutor_id == tutor_id,
            db_models.AvailabilityIntervals.day_of_week == day_of_week
        ).order_by(db_models.AvailabilityIntervals.start_minute)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def _get_blackout_periods(self, tutor_id: UUID, window: iv.Interval) -> list[db_models.UnavailabilityPeriods]:
        stmt = select(db_models.UnavailabilityPeriods).filter(
            db_models.UnavailabilityPeriods.tutor_id == tutor_id,
            db_models.UnavailabilityPeriods.status == UnavailabilityStatusEnum.ACTIVE.value,
            db_models.UnavailabilityPeriods.start_at < window[1],
            db_models.UnavailabilityPeriods.end_at > window[0]
        )
        stmt = stmt.order_by(db_models.UnavailabilityPeriods.end_at)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def _get_blackouts(self, tutor_id: UUID, window: iv.Interval) -> list[iv.Interval]:
        return [(period.start_at, period.end_at) for period in await self._get_blackout_periods(tutor_id, window)]

    async def _get_booked_windows(
        self,
        tutor_id: UUID,
        window: iv.Interval,
        exclude_session_id: Optional[UUID] = None
    ) -> list[iv.Interval]:
        # A session that started the previous evening can still run into this window.
        stmt = select(db_models.TutoringSessions).filter(
            db_models.TutoringSessions.tutor_id == tutor_id,
            db_models.TutoringSessions.status != SessionStatusEnum.CANCELLED.value,
            db_models.TutoringSessions.scheduled_at >= window[0] - timedelta(days=1),
            db_models.TutoringSessions.scheduled_at < window[1]
        )
        result = await self.db.execute(stmt)
        booked = []
        for session in result.scalars().all():
            if session.id == exclude_session_id:
                continue
            occupied = (session.scheduled_at, session.end_at)
            if iv.overlaps(occupied, window):
                booked.append(occupied)
        return booked

    # --- Generation ---

    async def generate_slots(self, tutor_id: UUID, on_date: date) -> list[BookableSlot]:
        """Single-interval slots for on_date, ascending and de-duplicated."""
        tutor = await self.tutor_service.get_tutor(tutor_id, require_approved=True)
        pricing = self.tutor_service.get_pricing(tutor)
        step = timedelta(minutes=pricing.base_interval_minutes)

        templates = await self._get_template_intervals(tutor_id, on_date.weekday())
        if not templates:
            log.info(f"Tutor {tutor_id} has no availability on {on_date.isoformat()} (weekday {on_date.weekday()}).")
            return []

        day_window = iv.day_bounds(on_date)
        blocked = await self._get_blackouts(tutor_id, day_window)
        blocked += await self._get_booked_windows(tutor_id, day_window)
        earliest = self.clock.now() + timedelta(minutes=pricing.min_notice_minutes)

        starts: set[datetime] = set()
        for template in templates:
            window = (
                iv.minute_of_day_to_instant(on_date, template.start_minute),
                iv.minute_of_day_to_instant(on_date, template.end_minute)
            )
            for segment in iv.subtract_intervals(window, blocked):
                starts.update(
                    start for start in iv.quantize(segment, window[0], step)
                    if start >= earliest
                )

        return [
            BookableSlot(tutor_id=tutor_id, start_at=start, base_interval_minutes=pricing.base_interval_minutes)
            for start in sorted(starts)
        ]

    async def generate_slots_for_duration(self, tutor_id: UUID, on_date: date, slot_count: int) -> list[BookableSlot]:
        """
        Starts on on_date at which slot_count consecutive base intervals are
        all free. A run may continue past midnight into the next day's slots.
        """
        if slot_count < 1:
            raise ValidationError("slot_count must be at least 1.")
        slots = await self.generate_slots(tutor_id, on_date)
        if not slots:
            return []
        step = timedelta(minutes=slots[0].base_interval_minutes)
        pool = [slot.start_at for slot in slots]
        if pool[-1] + step * (slot_count - 1) >= iv.day_bounds(on_date)[1]:
            next_day = await self.generate_slots(tutor_id, on_date + timedelta(days=1))
            pool += [slot.start_at for slot in next_day]
        keep = set(iv.contiguous_starts(pool, step, slot_count))
        return [slot for slot in slots if slot.start_at in keep]

    async def is_bookable(self, tutor_id: UUID, start_at: datetime, slot_count: int) -> bool:
        """
        Re-derives the slot list for start_at's day (plus the next day when
        the run crosses midnight) and checks membership.
        Called at commit time under the tutor lock.
        """
        if start_at.tzinfo is None:
            raise ValidationError("scheduled_at must carry a timezone.")
        start_at = start_at.astimezone(timezone.utc)
        slots = await self.generate_slots_for_duration(tutor_id, start_at.date(), slot_count)
        return any(slot.start_at == start_at for slot in slots)

    # --- API-Facing Method ---

    async def get_slot_listing_for_api(self, tutor_id: UUID, on_date: date, slot_count: int = 1) -> SlotListing:
        slots = await self.generate_slots_for_duration(tutor_id, on_date, slot_count)
        tutor = await self.tutor_service.get_tutor(tutor_id)
        pricing = self.tutor_service.get_pricing(tutor)
        blackouts = await self._get_blackout_periods(tutor_id, iv.day_bounds(on_date))
        log.info(f"Generated {len(slots)} slot(s) of {slot_count} interval(s) for tutor {tutor_id} on {on_date.isoformat()}.")
        return SlotListing(
            tutor_id=tutor_id,
            on_date=on_date,
            slot_count=slot_count,
            base_interval_minutes=pricing.base_interval_minutes,
            credits_per_session=slot_count * pricing.credit_factor,
            slots=slots,
            blocked=bool(blackouts),
            blocked_until=blackouts[-1].end_at if blackouts else None,
            blocked_reason=blackouts[-1].reason if blackouts else None
        )
