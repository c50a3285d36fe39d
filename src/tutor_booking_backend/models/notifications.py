'''
Notification event model handed to the dispatch collaborator.
'''
from enum import Enum
from datetime import datetime
from typing import Any, Optional
from uuid import UUID
from pydantic import BaseModel, Field


class NotificationType(str, Enum):
    SESSION_BOOKED = "SESSION_BOOKED"
    SESSION_CANCELLED = "SESSION_CANCELLED"
    SESSION_COMPLETED = "SESSION_COMPLETED"
    CONTRACT_PROPOSED = "CONTRACT_PROPOSED"
    CONTRACT_ACCEPTED = "CONTRACT_ACCEPTED"
    CONTRACT_REJECTED = "CONTRACT_REJECTED"
    CONTRACT_CANCELLED = "CONTRACT_CANCELLED"
    BLACKOUT_CANCELLATION = "BLACKOUT_CANCELLATION"

class NotificationEvent(BaseModel):
    event_type: NotificationType
    recipient_id: UUID
    occurred_at: datetime
    session_id: Optional[UUID] = None
    contract_id: Optional[UUID] = None
    payload: dict[str, Any] = Field(default_factory=dict)
