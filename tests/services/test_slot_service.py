import pytest
from datetime import timedelta
from sqlalchemy.ext.asyncio import AsyncSession

from src.tutor_booking_backend.database import models as db_models
from src.tutor_booking_backend.database.db_enums import SessionStatusEnum, UnavailabilityStatusEnum
from src.tutor_booking_backend.services.slot_service import SlotService
from src.tutor_booking_backend.common.clock import FixedClock
from src.tutor_booking_backend.common.exceptions import NotFoundError, ValidationError
from tests.constants import MONDAY, TUESDAY, TEST_STUDENT_ID, TEST_OTHER_TUTOR_ID, at
from tests.database.factories import (
    TutorProfileFactory,
    AvailabilityIntervalFactory,
    UnavailabilityPeriodFactory,
    TutoringSessionFactory
)


def starts_of(slots) -> list:
    return [slot.start_at for slot in slots]


@pytest.fixture
async def monday_tutor_orm(db_session: AsyncSession) -> db_models.TutorProfiles:
    """Monday 09:00-10:00 UTC only, 20 minute grid."""
    tutor = TutorProfileFactory.build(id=TEST_OTHER_TUTOR_ID, credit_factor=2)
    db_session.add(tutor)
    await db_session.flush()
    db_session.add(AvailabilityIntervalFactory.build(tutor_id=tutor.id, day_of_week=0, start_minute=540, end_minute=600))
    await db_session.flush()
    return tutor


@pytest.mark.anyio
class TestSlotGeneration:

    async def test_single_hour_yields_three_slots(
        self,
        slot_service: SlotService,
        monday_tutor_orm: db_models.TutorProfiles
    ):
        slots = await slot_service.generate_slots(monday_tutor_orm.id, MONDAY)
        assert starts_of(slots) == [at(MONDAY, 9), at(MONDAY, 9, 20), at(MONDAY, 9, 40)]
        assert all(slot.base_interval_minutes == 20 for slot in slots)

    async def test_two_interval_request_needs_room_for_both(
        self,
        slot_service: SlotService,
        monday_tutor_orm: db_models.TutorProfiles
    ):
        slots = await slot_service.generate_slots_for_duration(monday_tutor_orm.id, MONDAY, 2)
        assert starts_of(slots) == [at(MONDAY, 9), at(MONDAY, 9, 20)]

    async def test_day_without_template_is_empty(
        self,
        slot_service: SlotService,
        monday_tutor_orm: db_models.TutorProfiles
    ):
        assert await slot_service.generate_slots(monday_tutor_orm.id, TUESDAY) == []

    async def test_generation_is_idempotent(
        self,
        slot_service: SlotService,
        test_tutor_orm: db_models.TutorProfiles
    ):
        first = await slot_service.generate_slots(test_tutor_orm.id, MONDAY)
        second = await slot_service.generate_slots(test_tutor_orm.id, MONDAY)
        assert first == second
        assert len(first) == 9

    async def test_active_blackout_is_subtracted(
        self,
        db_session: AsyncSession,
        slot_service: SlotService,
        test_tutor_orm: db_models.TutorProfiles
    ):
        db_session.add(UnavailabilityPeriodFactory.build(
            tutor_id=test_tutor_orm.id, start_at=at(MONDAY, 10), end_at=at(MONDAY, 11)
        ))
        await db_session.flush()

        slots = await slot_service.generate_slots(test_tutor_orm.id, MONDAY)
        assert starts_of(slots) == [
            at(MONDAY, 9), at(MONDAY, 9, 20), at(MONDAY, 9, 40),
            at(MONDAY, 11), at(MONDAY, 11, 20), at(MONDAY, 11, 40),
        ]

    async def test_ended_blackout_is_ignored(
        self,
        db_session: AsyncSession,
        slot_service: SlotService,
        test_tutor_orm: db_models.TutorProfiles
    ):
        db_session.add(UnavailabilityPeriodFactory.build(
            tutor_id=test_tutor_orm.id, start_at=at(MONDAY, 9), end_at=at(MONDAY, 12),
            status=UnavailabilityStatusEnum.ENDED.value
        ))
        await db_session.flush()
        assert len(await slot_service.generate_slots(test_tutor_orm.id, MONDAY)) == 9

    async def test_overlapping_blackouts_are_merged(
        self,
        db_session: AsyncSession,
        slot_service: SlotService,
        test_tutor_orm: db_models.TutorProfiles
    ):
        db_session.add_all([
            UnavailabilityPeriodFactory.build(tutor_id=test_tutor_orm.id, start_at=at(MONDAY, 9), end_at=at(MONDAY, 10, 30)),
            UnavailabilityPeriodFactory.build(tutor_id=test_tutor_orm.id, start_at=at(MONDAY, 10), end_at=at(MONDAY, 11, 30)),
        ])
        await db_session.flush()
        slots = await slot_service.generate_slots(test_tutor_orm.id, MONDAY)
        assert starts_of(slots) == [at(MONDAY, 11, 40)]

    async def test_booked_sessions_block_their_whole_duration(
        self,
        db_session: AsyncSession,
        slot_service: SlotService,
        test_tutor_orm: db_models.TutorProfiles
    ):
        db_session.add(TutoringSessionFactory.build(
            tutor_id=test_tutor_orm.id, student_id=TEST_STUDENT_ID,
            scheduled_at=at(MONDAY, 9, 20), slot_count=2, credits_charged=2
        ))
        await db_session.flush()

        slots = await slot_service.generate_slots(test_tutor_orm.id, MONDAY)
        assert at(MONDAY, 9) in starts_of(slots)
        assert at(MONDAY, 9, 20) not in starts_of(slots)
        assert at(MONDAY, 9, 40) not in starts_of(slots)
        assert at(MONDAY, 10) in starts_of(slots)

        pairs = await slot_service.generate_slots_for_duration(test_tutor_orm.id, MONDAY, 2)
        assert at(MONDAY, 9) not in starts_of(pairs)

    async def test_cancelled_sessions_do_not_block(
        self,
        db_session: AsyncSession,
        slot_service: SlotService,
        test_tutor_orm: db_models.TutorProfiles
    ):
        db_session.add(TutoringSessionFactory.build(
            tutor_id=test_tutor_orm.id, student_id=TEST_STUDENT_ID,
            scheduled_at=at(MONDAY, 9), status=SessionStatusEnum.CANCELLED.value
        ))
        await db_session.flush()
        assert at(MONDAY, 9) in starts_of(await slot_service.generate_slots(test_tutor_orm.id, MONDAY))

    async def test_minimum_notice_is_applied(
        self,
        slot_service: SlotService,
        clock: FixedClock,
        test_tutor_orm: db_models.TutorProfiles
    ):
        clock.instant = at(MONDAY, 8, 30)
        slots = await slot_service.generate_slots(test_tutor_orm.id, MONDAY)
        assert starts_of(slots)[0] == at(MONDAY, 9, 40)

    async def test_unknown_tutor(self, slot_service: SlotService):
        with pytest.raises(NotFoundError):
            await slot_service.generate_slots(TEST_OTHER_TUTOR_ID, MONDAY)

    async def test_is_bookable(
        self,
        slot_service: SlotService,
        test_tutor_orm: db_models.TutorProfiles
    ):
        assert await slot_service.is_bookable(test_tutor_orm.id, at(MONDAY, 11, 20), 2)
        assert not await slot_service.is_bookable(test_tutor_orm.id, at(MONDAY, 11, 40), 2)
        assert not await slot_service.is_bookable(test_tutor_orm.id, at(MONDAY, 9, 10), 1)
        with pytest.raises(ValidationError):
            await slot_service.is_bookable(test_tutor_orm.id, at(MONDAY, 9).replace(tzinfo=None), 1)

    async def test_slot_listing_for_api(
        self,
        slot_service: SlotService,
        monday_tutor_orm: db_models.TutorProfiles
    ):
        listing = await slot_service.get_slot_listing_for_api(monday_tutor_orm.id, MONDAY, 2)
        assert listing.credits_per_session == 4
        assert listing.starts == [at(MONDAY, 9), at(MONDAY, 9, 20)]

    async def test_slot_listing_reports_a_blackout_on_the_date(
        self,
        db_session: AsyncSession,
        slot_service: SlotService,
        monday_tutor_orm: db_models.TutorProfiles
    ):
        db_session.add(UnavailabilityPeriodFactory.build(
            tutor_id=monday_tutor_orm.id, start_at=at(MONDAY, 9, 20), end_at=at(MONDAY, 9, 40),
            reason="Conference"
        ))
        await db_session.flush()

        listing = await slot_service.get_slot_listing_for_api(monday_tutor_orm.id, MONDAY)
        assert listing.blocked is True
        assert listing.blocked_until == at(MONDAY, 9, 40)
        assert listing.blocked_reason == "Conference"
        assert listing.starts == [at(MONDAY, 9), at(MONDAY, 9, 40)]

        clear = await slot_service.get_slot_listing_for_api(monday_tutor_orm.id, TUESDAY)
        assert clear.blocked is False
        assert clear.blocked_until is None
        assert clear.blocked_reason is None

    async def test_run_may_continue_past_midnight(
        self,
        db_session: AsyncSession,
        slot_service: SlotService,
        monday_tutor_orm: db_models.TutorProfiles
    ):
        db_session.add_all([
            AvailabilityIntervalFactory.build(tutor_id=monday_tutor_orm.id, day_of_week=0, start_minute=1380, end_minute=1440),
            AvailabilityIntervalFactory.build(tutor_id=monday_tutor_orm.id, day_of_week=1, start_minute=0, end_minute=60),
        ])
        await db_session.flush()

        slots = await slot_service.generate_slots_for_duration(monday_tutor_orm.id, MONDAY, 2)
        assert starts_of(slots) == [
            at(MONDAY, 9), at(MONDAY, 9, 20),
            at(MONDAY, 23), at(MONDAY, 23, 20), at(MONDAY, 23, 40),
        ]
        assert await slot_service.is_bookable(monday_tutor_orm.id, at(MONDAY, 23, 40), 2)
        assert not await slot_service.is_bookable(monday_tutor_orm.id, at(TUESDAY, 0, 40), 2)
