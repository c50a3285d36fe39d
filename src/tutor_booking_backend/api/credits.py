'''
API endpoints for credit balances and settled purchases.
'''
from typing import Annotated, List, Optional
from uuid import UUID
from fastapi import APIRouter, Depends, HTTPException, status

from ..database.db_enums import UserRole
from ..models import ledger as ledger_models
from ..models.token import Actor
from ..services.security import verify_token_and_get_actor, authorize_roles
from ..services.ledger_service import CreditLedgerService


class CreditsAPI:
    """
    A class to encapsulate ledger read endpoints and the purchase hook.
    """
    def __init__(self):
        self.router = APIRouter(
            prefix="/credits",
            tags=["Credits"]
        )
        self._register_routes()

    def _register_routes(self):
        self.router.add_api_route(
                "/ledger",
                self.get_ledger_summary,
                methods=["GET"],
                response_model=ledger_models.LedgerSummary)
        self.router.add_api_route(
                "/ledgers",
                self.list_ledgers,
                methods=["GET"],
                response_model=List[ledger_models.LedgerSummary])
        self.router.add_api_route(
                "/purchases",
                self.record_purchase,
                methods=["POST"],
                status_code=status.HTTP_201_CREATED,
                response_model=ledger_models.LedgerSummary)

    async def get_ledger_summary(
        self,
        tutor_id: UUID,
        current_user: Annotated[Actor, Depends(verify_token_and_get_actor)],
        ledger_service: Annotated[CreditLedgerService, Depends(CreditLedgerService)],
        student_id: Optional[UUID] = None
    ):
        """
        Balance of one (student, tutor) pair. Students see their own; tutors
        and admins pass student_id.
        """
        if current_user.role == UserRole.STUDENT.value:
            student_id = current_user.user_id
        elif current_user.role == UserRole.TUTOR.value and tutor_id != current_user.user_id:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Tutors can only view ledgers for their own students."
            )
        if student_id is None:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail="student_id is required."
            )
        return await ledger_service.get_summary(student_id, tutor_id)

    async def list_ledgers(
        self,
        current_user: Annotated[Actor, Depends(verify_token_and_get_actor)],
        ledger_service: Annotated[CreditLedgerService, Depends(CreditLedgerService)]
    ):
        """Every balance the calling student holds, one per tutor."""
        authorize_roles(current_user, [UserRole.STUDENT])
        return await ledger_service.list_summaries_for_student(current_user.user_id)

    async def record_purchase(
        self,
        purchase: ledger_models.CreditPurchaseInput,
        current_user: Annotated[Actor, Depends(verify_token_and_get_actor)],
        ledger_service: Annotated[CreditLedgerService, Depends(CreditLedgerService)]
    ):
        """Called by the payment collaborator once a purchase has settled."""
        authorize_roles(current_user, [UserRole.ADMIN])
        ledger = await ledger_service.add_purchased_credits(purchase.student_id, purchase.tutor_id, purchase.amount)
        return ledger_models.LedgerSummary.model_validate(ledger)


# Instantiate the class and export its router
credits_api = CreditsAPI()
router = credits_api.router
