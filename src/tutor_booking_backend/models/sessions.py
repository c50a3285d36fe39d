'''
Session API Models
'''
from typing import Optional
from datetime import datetime
from uuid import UUID
from pydantic import BaseModel, ConfigDict, Field

from ..database.db_enums import SessionStatusEnum, CancelledByEnum

# --- Input Models ---

class SessionBookInput(BaseModel):
    tutor_id: UUID
    scheduled_at: datetime
    slot_count: int = Field(1, ge=1)
    topic: Optional[str] = None
    course_id: Optional[str] = None

class SessionCancelInput(BaseModel):
    reason: Optional[str] = None

class SessionCompleteInput(BaseModel):
    actual_duration_minutes: Optional[int] = Field(None, ge=0)
    tutor_notes: Optional[str] = None

class SessionRateInput(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    feedback: Optional[str] = None

# --- Output Models ---

class SessionRead(BaseModel):
    id: UUID
    tutor_id: UUID
    student_id: UUID
    contract_id: Optional[UUID] = None
    scheduled_at: datetime
    end_at: datetime
    slot_count: int
    duration_minutes: int
    credits_charged: int
    status: SessionStatusEnum
    topic: Optional[str] = None
    course_id: Optional[str] = None
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    actual_duration_minutes: Optional[int] = None
    cancelled_at: Optional[datetime] = None
    cancelled_by: Optional[CancelledByEnum] = None
    cancellation_reason: Optional[str] = None
    credits_refunded: int = 0
    tutor_notes: Optional[str] = None
    rating: Optional[int] = None
    feedback: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)
