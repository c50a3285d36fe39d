'''
Static enums mirroring the ENUM types declared on the database columns.
'''
import enum


class ListableEnum(str, enum.Enum):
    """A custom Enum base class that can list all member values."""
    @classmethod
    def get_all_names(cls) -> list[str]:
        return [member.value for member in cls]


class UserRole(ListableEnum):
    STUDENT = 'student'
    TUTOR = 'tutor'
    ADMIN = 'admin'


class TutorStatusEnum(ListableEnum):
    PENDING = 'PENDING'
    APPROVED = 'APPROVED'
    SUSPENDED = 'SUSPENDED'


class UnavailabilityStatusEnum(ListableEnum):
    ACTIVE = 'ACTIVE'
    ENDED = 'ENDED'


class UnavailabilityPresetEnum(ListableEnum):
    TODAY = 'today'
    TOMORROW = 'tomorrow'
    THIS_WEEK = 'this_week'
    THIS_MONTH = 'this_month'


class SessionStatusEnum(ListableEnum):
    SCHEDULED = 'SCHEDULED'
    IN_PROGRESS = 'IN_PROGRESS'
    COMPLETED = 'COMPLETED'
    CANCELLED = 'CANCELLED'
    NO_SHOW = 'NO_SHOW'


class CancelledByEnum(ListableEnum):
    STUDENT = 'student'
    TUTOR = 'tutor'
    SYSTEM = 'system'


class ContractStatusEnum(ListableEnum):
    PENDING = 'PENDING'
    ACCEPTED = 'ACCEPTED'
    REJECTED = 'REJECTED'
    CANCELLED = 'CANCELLED'
    COMPLETED = 'COMPLETED'


class OccurrenceStatusEnum(ListableEnum):
    PLANNED = 'PLANNED'
    BOOKED = 'BOOKED'
    SKIPPED = 'SKIPPED'


# Sessions that still hold their time window and may be cancelled.
OPEN_SESSION_STATUSES = (SessionStatusEnum.SCHEDULED.value, SessionStatusEnum.IN_PROGRESS.value)
