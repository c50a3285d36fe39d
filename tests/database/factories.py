import factory
import uuid
from factory.alchemy import SQLAlchemyModelFactory
from factory.faker import Faker

from src.tutor_booking_backend.database import models as db_models
from src.tutor_booking_backend.database.db_enums import (
    TutorStatusEnum,
    SessionStatusEnum,
    UnavailabilityStatusEnum
)
from tests.constants import TEST_NOW

# The ORM runs on an AsyncSession, which factory_boy cannot drive, so the
# factories are only ever used with .build() and the test adds the rows itself.

class BaseFactory(SQLAlchemyModelFactory):
    class Meta:
        abstract = True
        sqlalchemy_session_persistence = None


class TutorProfileFactory(BaseFactory):
    id = factory.LazyFunction(uuid.uuid4)
    status = TutorStatusEnum.APPROVED.value
    display_name = Faker("name")
    credit_factor = 1
    base_interval_minutes = 20
    min_notice_minutes = 60
    created_at = TEST_NOW

    class Meta:
        model = db_models.TutorProfiles


class AvailabilityIntervalFactory(BaseFactory):
    id = factory.LazyFunction(uuid.uuid4)
    day_of_week = 0
    start_minute = 9 * 60
    end_minute = 10 * 60

    class Meta:
        model = db_models.AvailabilityIntervals


class UnavailabilityPeriodFactory(BaseFactory):
    id = factory.LazyFunction(uuid.uuid4)
    status = UnavailabilityStatusEnum.ACTIVE.value
    reason = Faker("sentence", nb_words=3)
    created_at = TEST_NOW

    class Meta:
        model = db_models.UnavailabilityPeriods


class CreditLedgerFactory(BaseFactory):
    id = factory.LazyFunction(uuid.uuid4)
    total_purchased = 0
    used = 0
    reserved = 0
    updated_at = TEST_NOW

    class Meta:
        model = db_models.CreditLedgers


class TutoringSessionFactory(BaseFactory):
    id = factory.LazyFunction(uuid.uuid4)
    slot_count = 1
    base_interval_minutes = 20
    credits_charged = 1
    credits_refunded = 0
    status = SessionStatusEnum.SCHEDULED.value
    topic = Faker("word")
    created_at = TEST_NOW

    class Meta:
        model = db_models.TutoringSessions
