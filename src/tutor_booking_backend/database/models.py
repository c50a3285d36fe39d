from typing import Optional

from sqlalchemy import CheckConstraint, Date, Enum, ForeignKeyConstraint, Index, Integer, JSON, PrimaryKeyConstraint, Text, Time, UniqueConstraint, Uuid, func, text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
import datetime
import uuid

from .types import UTCDateTime


class Base(DeclarativeBase):
    pass


class TutorProfiles(Base):
    """
    Scheduling-relevant view of a tutor. Rows are written by the tutor
    onboarding / pricing collaborators; the engine only reads them and uses
    the row as the per-tutor lock.
    """
    __tablename__ = 'tutor_profiles'
    __table_args__ = (
        CheckConstraint('credit_factor > 0', name='positive_credit_factor'),
        CheckConstraint('base_interval_minutes > 0', name='positive_base_interval'),
        CheckConstraint('min_notice_minutes >= 0', name='non_negative_min_notice'),
        PrimaryKeyConstraint('id', name='tutor_profiles_pkey')
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    status: Mapped[str] = mapped_column(Enum('PENDING', 'APPROVED', 'SUSPENDED', name='tutor_status_enum'), default='APPROVED', server_default=text("'APPROVED'"))
    credit_factor: Mapped[Optional[int]] = mapped_column(Integer)
    base_interval_minutes: Mapped[Optional[int]] = mapped_column(Integer)
    min_notice_minutes: Mapped[Optional[int]] = mapped_column(Integer)
    display_name: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[Optional[datetime.datetime]] = mapped_column(UTCDateTime, server_default=func.now())

    availability_intervals: Mapped[list['AvailabilityIntervals']] = relationship(
        'AvailabilityIntervals',
        back_populates='tutor',
        cascade='all, delete-orphan'
    )
    unavailability_periods: Mapped[list['UnavailabilityPeriods']] = relationship('UnavailabilityPeriods', back_populates='tutor')
    credit_ledgers: Mapped[list['CreditLedgers']] = relationship('CreditLedgers', back_populates='tutor')


class AvailabilityIntervals(Base):
    __tablename__ = 'availability_intervals'
    __table_args__ = (
        CheckConstraint('day_of_week >= 0 AND day_of_week <= 6', name='availability_intervals_day_of_week_check'),
        CheckConstraint('start_minute >= 0 AND start_minute < end_minute AND end_minute <= 1440', name='availability_intervals_minutes_check'),
        ForeignKeyConstraint(['tutor_id'], ['tutor_profiles.id'], ondelete='CASCADE', name='availability_intervals_tutor_id_fkey'),
        PrimaryKeyConstraint('id', name='availability_intervals_pkey'),
        Index('idx_availability_intervals_tutor_day', 'tutor_id', 'day_of_week')
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    tutor_id: Mapped[uuid.UUID] = mapped_column(Uuid)
    day_of_week: Mapped[int] = mapped_column(Integer)  # 0=Monday .. 6=Sunday
    start_minute: Mapped[int] = mapped_column(Integer)  # minutes after 00:00 UTC
    end_minute: Mapped[int] = mapped_column(Integer)

    tutor: Mapped['TutorProfiles'] = relationship('TutorProfiles', back_populates='availability_intervals')


class UnavailabilityPeriods(Base):
    __tablename__ = 'unavailability_periods'
    __table_args__ = (
        CheckConstraint('end_at > start_at', name='unavailability_periods_range_check'),
        ForeignKeyConstraint(['tutor_id'], ['tutor_profiles.id'], ondelete='CASCADE', name='unavailability_periods_tutor_id_fkey'),
        PrimaryKeyConstraint('id', name='unavailability_periods_pkey'),
        Index('idx_unavailability_periods_tutor_status', 'tutor_id', 'status')
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    tutor_id: Mapped[uuid.UUID] = mapped_column(Uuid)
    start_at: Mapped[datetime.datetime] = mapped_column(UTCDateTime)
    end_at: Mapped[datetime.datetime] = mapped_column(UTCDateTime)
    status: Mapped[str] = mapped_column(Enum('ACTIVE', 'ENDED', name='unavailability_status_enum'), default='ACTIVE', server_default=text("'ACTIVE'"))
    reason: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[Optional[datetime.datetime]] = mapped_column(UTCDateTime, server_default=func.now())
    ended_at: Mapped[Optional[datetime.datetime]] = mapped_column(UTCDateTime)

    tutor: Mapped['TutorProfiles'] = relationship('TutorProfiles', back_populates='unavailability_periods')


class CreditLedgers(Base):
    __tablename__ = 'credit_ledgers'
    __table_args__ = (
        CheckConstraint(
            'used >= 0 AND reserved >= 0 AND total_purchased >= 0 AND used + reserved <= total_purchased',
            name='credit_ledgers_balance_check'
        ),
        ForeignKeyConstraint(['tutor_id'], ['tutor_profiles.id'], ondelete='CASCADE', name='credit_ledgers_tutor_id_fkey'),
        PrimaryKeyConstraint('id', name='credit_ledgers_pkey'),
        UniqueConstraint('student_id', 'tutor_id', name='credit_ledgers_student_id_tutor_id_key'),
        Index('idx_credit_ledgers_student_id', 'student_id')
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    student_id: Mapped[uuid.UUID] = mapped_column(Uuid)
    tutor_id: Mapped[uuid.UUID] = mapped_column(Uuid)
    total_purchased: Mapped[int] = mapped_column(Integer, default=0, server_default=text('0'))
    used: Mapped[int] = mapped_column(Integer, default=0, server_default=text('0'))
    reserved: Mapped[int] = mapped_column(Integer, default=0, server_default=text('0'))
    updated_at: Mapped[Optional[datetime.datetime]] = mapped_column(UTCDateTime, server_default=func.now())

    tutor: Mapped['TutorProfiles'] = relationship('TutorProfiles', back_populates='credit_ledgers')

    @property
    def available(self) -> int:
        return self.total_purchased - self.used - self.reserved


class Contracts(Base):
    __tablename__ = 'contracts'
    __table_args__ = (
        CheckConstraint('used_credits >= 0 AND reserved_credits >= 0 AND used_credits + reserved_credits <= total_credits', name='contracts_credit_check'),
        CheckConstraint('slot_count > 0', name='contracts_positive_slot_count'),
        CheckConstraint('end_date >= start_date', name='contracts_date_range_check'),
        ForeignKeyConstraint(['tutor_id'], ['tutor_profiles.id'], ondelete='CASCADE', name='contracts_tutor_id_fkey'),
        PrimaryKeyConstraint('id', name='contracts_pkey'),
        Index('idx_contracts_student_id', 'student_id'),
        Index('idx_contracts_tutor_id', 'tutor_id')
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    tutor_id: Mapped[uuid.UUID] = mapped_column(Uuid)
    student_id: Mapped[uuid.UUID] = mapped_column(Uuid)
    start_date: Mapped[datetime.date] = mapped_column(Date)
    end_date: Mapped[datetime.date] = mapped_column(Date)
    weekdays: Mapped[list] = mapped_column(JSON)
    start_time: Mapped[datetime.time] = mapped_column(Time)
    slot_count: Mapped[int] = mapped_column(Integer)
    credit_factor: Mapped[int] = mapped_column(Integer)
    total_credits: Mapped[int] = mapped_column(Integer, default=0)
    used_credits: Mapped[int] = mapped_column(Integer, default=0)
    reserved_credits: Mapped[int] = mapped_column(Integer, default=0)
    status: Mapped[str] = mapped_column(Enum('PENDING', 'ACCEPTED', 'REJECTED', 'CANCELLED', 'COMPLETED', name='contract_status_enum'), default='PENDING', server_default=text("'PENDING'"))
    topic: Mapped[Optional[str]] = mapped_column(Text)
    course_id: Mapped[Optional[str]] = mapped_column(Text)
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text)
    cancellation_reason: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[Optional[datetime.datetime]] = mapped_column(UTCDateTime, server_default=func.now())
    responded_at: Mapped[Optional[datetime.datetime]] = mapped_column(UTCDateTime)
    cancelled_at: Mapped[Optional[datetime.datetime]] = mapped_column(UTCDateTime)
    completed_at: Mapped[Optional[datetime.datetime]] = mapped_column(UTCDateTime)

    occurrences: Mapped[list['ContractOccurrences']] = relationship(
        'ContractOccurrences',
        back_populates='contract',
        cascade='all, delete-orphan',
        order_by='ContractOccurrences.scheduled_at'
    )
    sessions: Mapped[list['TutoringSessions']] = relationship(
        'TutoringSessions',
        back_populates='contract',
        order_by='TutoringSessions.scheduled_at'
    )


class TutoringSessions(Base):
    __tablename__ = 'tutoring_sessions'
    __table_args__ = (
        CheckConstraint('slot_count > 0', name='tutoring_sessions_positive_slot_count'),
        CheckConstraint('credits_charged >= 0 AND credits_refunded >= 0', name='tutoring_sessions_credit_check'),
        CheckConstraint('rating IS NULL OR (rating >= 1 AND rating <= 5)', name='tutoring_sessions_rating_check'),
        ForeignKeyConstraint(['tutor_id'], ['tutor_profiles.id'], ondelete='CASCADE', name='tutoring_sessions_tutor_id_fkey'),
        ForeignKeyConstraint(['contract_id'], ['contracts.id'], ondelete='SET NULL', name='tutoring_sessions_contract_id_fkey'),
        PrimaryKeyConstraint('id', name='tutoring_sessions_pkey'),
        Index('idx_tutoring_sessions_tutor_scheduled', 'tutor_id', 'scheduled_at'),
        Index('idx_tutoring_sessions_student_id', 'student_id'),
        Index('idx_tutoring_sessions_status', 'status')
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    tutor_id: Mapped[uuid.UUID] = mapped_column(Uuid)
    student_id: Mapped[uuid.UUID] = mapped_column(Uuid)
    contract_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid)
    scheduled_at: Mapped[datetime.datetime] = mapped_column(UTCDateTime)
    slot_count: Mapped[int] = mapped_column(Integer)
    base_interval_minutes: Mapped[int] = mapped_column(Integer)
    credits_charged: Mapped[int] = mapped_column(Integer)
    status: Mapped[str] = mapped_column(Enum('SCHEDULED', 'IN_PROGRESS', 'COMPLETED', 'CANCELLED', 'NO_SHOW', name='session_status_enum'), default='SCHEDULED', server_default=text("'SCHEDULED'"))
    topic: Mapped[Optional[str]] = mapped_column(Text)
    course_id: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[Optional[datetime.datetime]] = mapped_column(UTCDateTime, server_default=func.now())
    started_at: Mapped[Optional[datetime.datetime]] = mapped_column(UTCDateTime)
    ended_at: Mapped[Optional[datetime.datetime]] = mapped_column(UTCDateTime)
    actual_duration_minutes: Mapped[Optional[int]] = mapped_column(Integer)
    cancelled_at: Mapped[Optional[datetime.datetime]] = mapped_column(UTCDateTime)
    cancelled_by: Mapped[Optional[str]] = mapped_column(Enum('student', 'tutor', 'system', name='cancelled_by_enum'))
    cancellation_reason: Mapped[Optional[str]] = mapped_column(Text)
    credits_refunded: Mapped[int] = mapped_column(Integer, default=0, server_default=text('0'))
    tutor_notes: Mapped[Optional[str]] = mapped_column(Text)
    rating: Mapped[Optional[int]] = mapped_column(Integer)
    feedback: Mapped[Optional[str]] = mapped_column(Text)
    rated_at: Mapped[Optional[datetime.datetime]] = mapped_column(UTCDateTime)

    contract: Mapped[Optional['Contracts']] = relationship('Contracts', back_populates='sessions')

    @property
    def duration_minutes(self) -> int:
        return self.slot_count * self.base_interval_minutes

    @property
    def end_at(self) -> datetime.datetime:
        return self.scheduled_at + datetime.timedelta(minutes=self.duration_minutes)


class ContractOccurrences(Base):
    __tablename__ = 'contract_occurrences'
    __table_args__ = (
        ForeignKeyConstraint(['contract_id'], ['contracts.id'], ondelete='CASCADE', name='contract_occurrences_contract_id_fkey'),
        ForeignKeyConstraint(['session_id'], ['tutoring_sessions.id'], ondelete='SET NULL', name='contract_occurrences_session_id_fkey'),
        PrimaryKeyConstraint('id', name='contract_occurrences_pkey'),
        UniqueConstraint('contract_id', 'scheduled_at', name='contract_occurrences_contract_id_scheduled_at_key')
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    contract_id: Mapped[uuid.UUID] = mapped_column(Uuid)
    scheduled_at: Mapped[datetime.datetime] = mapped_column(UTCDateTime)
    status: Mapped[str] = mapped_column(Enum('PLANNED', 'BOOKED', 'SKIPPED', name='occurrence_status_enum'), default='PLANNED', server_default=text("'PLANNED'"))
    session_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid)
    skip_reason: Mapped[Optional[str]] = mapped_column(Text)

    contract: Mapped['Contracts'] = relationship('Contracts', back_populates='occurrences')
