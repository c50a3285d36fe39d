'''
API endpoints for a tutor's weekly template and unavailability periods.
'''
from typing import Annotated
from uuid import UUID
from fastapi import APIRouter, Depends, status

from ..models import availability as availability_models
from ..models.token import Actor
from ..services.security import verify_token_and_get_actor
from ..services.availability_service import AvailabilityService


class AvailabilityAPI:
    def __init__(self):
        self.router = APIRouter(
            prefix="/availability",
            tags=["Availability"]
        )
        self._register_routes()

    def _register_routes(self):
        self.router.add_api_route(
                "/template",
                self.set_template,
                methods=["PUT"],
                response_model=availability_models.AvailabilityTemplateRead)
        self.router.add_api_route(
                "/unavailability",
                self.get_unavailability,
                methods=["GET"],
                response_model=availability_models.UnavailabilityOverview)
        self.router.add_api_route(
                "/unavailability/preview",
                self.preview_unavailability,
                methods=["POST"],
                response_model=availability_models.AffectedSessionsPreview)
        self.router.add_api_route(
                "/unavailability",
                self.declare_unavailability,
                methods=["POST"],
                status_code=status.HTTP_201_CREATED,
                response_model=availability_models.UnavailabilityDeclared)
        self.router.add_api_route(
                "/unavailability/{period_id}",
                self.resume_availability,
                methods=["DELETE"],
                response_model=availability_models.UnavailabilityPeriodRead)
        self.router.add_api_route(
                "/{tutor_id}/template",
                self.get_template,
                methods=["GET"],
                response_model=availability_models.AvailabilityTemplateRead)

    async def get_template(
        self,
        tutor_id: UUID,
        current_user: Annotated[Actor, Depends(verify_token_and_get_actor)],
        availability_service: Annotated[AvailabilityService, Depends(AvailabilityService)]
    ):
        return await availability_service.get_template(tutor_id)

    async def set_template(
        self,
        template: availability_models.AvailabilityTemplateInput,
        current_user: Annotated[Actor, Depends(verify_token_and_get_actor)],
        availability_service: Annotated[AvailabilityService, Depends(AvailabilityService)]
    ):
        """Replaces the calling tutor's whole weekly template."""
        return await availability_service.set_template_for_api(template, current_user)

    async def get_unavailability(
        self,
        current_user: Annotated[Actor, Depends(verify_token_and_get_actor)],
        availability_service: Annotated[AvailabilityService, Depends(AvailabilityService)]
    ):
        return await availability_service.get_unavailability_overview_for_api(current_user)

    async def preview_unavailability(
        self,
        period: availability_models.UnavailabilityInput,
        current_user: Annotated[Actor, Depends(verify_token_and_get_actor)],
        availability_service: Annotated[AvailabilityService, Depends(AvailabilityService)]
    ):
        """Lists the sessions a declaration would cancel. Nothing is written."""
        return await availability_service.preview_unavailable_for_api(period, current_user)

    async def declare_unavailability(
        self,
        period: availability_models.UnavailabilityInput,
        current_user: Annotated[Actor, Depends(verify_token_and_get_actor)],
        availability_service: Annotated[AvailabilityService, Depends(AvailabilityService)]
    ):
        """
        Stores the period and cancels every session starting inside it. The
        report lists per-session failures, which can be retried.
        """
        return await availability_service.declare_unavailable_for_api(period, current_user)

    async def resume_availability(
        self,
        period_id: UUID,
        current_user: Annotated[Actor, Depends(verify_token_and_get_actor)],
        availability_service: Annotated[AvailabilityService, Depends(AvailabilityService)]
    ):
        return await availability_service.resume_for_api(period_id, current_user)


# Instantiate the class and export its router
availability_api = AvailabilityAPI()
router = availability_api.router
