'''
Availability API Models
'''
from typing import Optional
from datetime import date, datetime
from uuid import UUID
from pydantic import BaseModel, ConfigDict, Field, computed_field

from ..database.db_enums import UnavailabilityStatusEnum, UnavailabilityPresetEnum
from .sessions import SessionRead

# --- Input Models ---

class AvailabilityIntervalInput(BaseModel):
    day_of_week: int = Field(..., ge=0, le=6, description="0=Monday, 6=Sunday")
    start_minute: int = Field(..., ge=0, le=1440, description="Minutes after 00:00 UTC")
    end_minute: int = Field(..., ge=0, le=1440, description="Minutes after 00:00 UTC, 1440 = midnight")

class AvailabilityTemplateInput(BaseModel):
    """Replace-all payload for a tutor's weekly template."""
    intervals: list[AvailabilityIntervalInput]

class UnavailabilityInput(BaseModel):
    """
    Either a preset, an explicit [start_at, end_at) instant range, or a
    whole-day [start_date, end_date] range.
    """
    preset: Optional[UnavailabilityPresetEnum] = None
    start_at: Optional[datetime] = None
    end_at: Optional[datetime] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    reason: Optional[str] = None

# --- Output Models ---

class AvailabilityIntervalRead(BaseModel):
    day_of_week: int
    start_minute: int
    end_minute: int

    @computed_field
    @property
    def start_time(self) -> str:
        return f"{self.start_minute // 60:02d}:{self.start_minute % 60:02d}"

    @computed_field
    @property
    def end_time(self) -> str:
        return f"{self.end_minute // 60:02d}:{self.end_minute % 60:02d}"

    model_config = ConfigDict(from_attributes=True)

class AvailabilityTemplateRead(BaseModel):
    tutor_id: UUID
    intervals: list[AvailabilityIntervalRead]

class UnavailabilityPeriodRead(BaseModel):
    id: UUID
    tutor_id: UUID
    start_at: datetime
    end_at: datetime
    status: UnavailabilityStatusEnum
    reason: Optional[str] = None
    ended_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

class UnavailabilityOverview(BaseModel):
    current: Optional[UnavailabilityPeriodRead] = None
    upcoming: list[UnavailabilityPeriodRead]

class AffectedSessionsPreview(BaseModel):
    start_at: datetime
    end_at: datetime
    sessions: list[SessionRead]

class FailedCancellation(BaseModel):
    session_id: UUID
    error: str
    retryable: bool = True

class BlackoutReport(BaseModel):
    """Aggregated, per-session outcome of reconciling a blackout."""
    cancelled: list[SessionRead] = []
    failed: list[FailedCancellation] = []

    @computed_field
    @property
    def credits_refunded(self) -> int:
        return sum(session.credits_refunded for session in self.cancelled)

class UnavailabilityDeclared(BaseModel):
    period: UnavailabilityPeriodRead
    report: BlackoutReport
