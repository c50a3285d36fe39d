'''
Slot API Models
'''
from datetime import date, datetime
from typing import Optional
from uuid import UUID
from pydantic import BaseModel, ConfigDict, computed_field


class BookableSlot(BaseModel):
    """A candidate session start. Derived on every query, never persisted."""
    tutor_id: UUID
    start_at: datetime
    base_interval_minutes: int

    model_config = ConfigDict(frozen=True)

class SlotListing(BaseModel):
    tutor_id: UUID
    on_date: date
    slot_count: int
    base_interval_minutes: int
    credits_per_session: int
    slots: list[BookableSlot]
    # Set when declared unavailability overlaps the date; slots holds what is left.
    blocked: bool = False
    blocked_until: Optional[datetime] = None
    blocked_reason: Optional[str] = None

    @computed_field
    @property
    def starts(self) -> list[datetime]:
        return [slot.start_at for slot in self.slots]

class TutorPricing(BaseModel):
    """Per-tutor values supplied by the pricing collaborator."""
    credit_factor: int
    base_interval_minutes: int
    min_notice_minutes: int

    model_config = ConfigDict(frozen=True)
