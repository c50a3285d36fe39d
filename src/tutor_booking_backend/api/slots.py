'''
API endpoint for computed, bookable slots.
'''
from datetime import date
from typing import Annotated
from uuid import UUID
from fastapi import APIRouter, Depends, Query

from ..models.slots import SlotListing
from ..models.token import Actor
from ..services.security import verify_token_and_get_actor
from ..services.slot_service import SlotService


class SlotsAPI:
    """
    A class to encapsulate the slot listing endpoint.
    """
    def __init__(self):
        self.router = APIRouter(
            prefix="/tutors",
            tags=["Slots"]
        )
        self._register_routes()

    def _register_routes(self):
        self.router.add_api_route(
                "/{tutor_id}/slots",
                self.list_slots,
                methods=["GET"],
                response_model=SlotListing)

    async def list_slots(
        self,
        tutor_id: UUID,
        current_user: Annotated[Actor, Depends(verify_token_and_get_actor)],
        slot_service: Annotated[SlotService, Depends(SlotService)],
        on_date: Annotated[date, Query(alias="date")],
        slot_count: Annotated[int, Query(ge=1)] = 1
    ) -> SlotListing:
        """
        Lists the starts on the given UTC date at which slot_count consecutive
        base intervals are free.
        """
        return await slot_service.get_slot_listing_for_api(tutor_id, on_date, slot_count)


# Instantiate the class and export its router
slots_api = SlotsAPI()
router = slots_api.router
