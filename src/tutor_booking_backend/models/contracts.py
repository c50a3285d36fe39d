'''
Recurring Contract API Models
'''
from typing import Optional
from datetime import date, datetime, time
from uuid import UUID
from pydantic import BaseModel, ConfigDict, Field

from ..database.db_enums import ContractStatusEnum, OccurrenceStatusEnum

# --- Input Models ---

class ContractProposeInput(BaseModel):
    tutor_id: UUID
    start_date: date
    end_date: date
    weekdays: list[int] = Field(..., min_length=1, description="0=Monday, 6=Sunday")
    start_time: time = Field(..., description="Time of day of every occurrence; UTC unless it carries an offset")
    slot_count: int = Field(1, ge=1)
    topic: Optional[str] = None
    course_id: Optional[str] = None

class ContractEditInput(BaseModel):
    """Any omitted field keeps its current value."""
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    weekdays: Optional[list[int]] = None
    start_time: Optional[time] = None
    slot_count: Optional[int] = Field(None, ge=1)
    topic: Optional[str] = None

class ContractRespondInput(BaseModel):
    accept: bool
    reason: Optional[str] = None

class ContractCancelInput(BaseModel):
    reason: str = Field(..., min_length=1)

# --- Output Models ---

class ContractOccurrenceRead(BaseModel):
    scheduled_at: datetime
    status: OccurrenceStatusEnum
    session_id: Optional[UUID] = None
    skip_reason: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)

class ContractRead(BaseModel):
    id: UUID
    tutor_id: UUID
    student_id: UUID
    start_date: date
    end_date: date
    weekdays: list[int]
    start_time: time
    slot_count: int
    credit_factor: int
    total_credits: int
    used_credits: int
    reserved_credits: int
    status: ContractStatusEnum
    topic: Optional[str] = None
    course_id: Optional[str] = None
    rejection_reason: Optional[str] = None
    cancellation_reason: Optional[str] = None
    occurrences: list[ContractOccurrenceRead]

    model_config = ConfigDict(from_attributes=True)

class ContractResponseResult(BaseModel):
    """Outcome of a tutor's response, including occurrences skipped on acceptance."""
    contract: ContractRead
    sessions_created: int
    skipped: list[ContractOccurrenceRead]
