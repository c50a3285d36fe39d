'''
Credit Ledger API Models
'''
from uuid import UUID
from pydantic import BaseModel, ConfigDict, Field


class LedgerSummary(BaseModel):
    student_id: UUID
    tutor_id: UUID
    total_purchased: int
    used: int
    reserved: int
    available: int

    model_config = ConfigDict(from_attributes=True)

class CreditPurchaseInput(BaseModel):
    """Posted by the payment collaborator once a purchase has settled."""
    student_id: UUID
    tutor_id: UUID
    amount: int = Field(..., gt=0)
