'''
API endpoints for booking and managing tutoring sessions.
'''
from typing import Annotated, List, Optional
from uuid import UUID
from fastapi import APIRouter, Depends, Query, status

from ..database.db_enums import SessionStatusEnum
from ..models import sessions as session_models
from ..models.token import Actor
from ..services.security import verify_token_and_get_actor
from ..services.session_service import SessionService


class SessionsAPI:
    """
    A class to encapsulate the session lifecycle endpoints.
    """
    def __init__(self):
        self.router = APIRouter(
            prefix="/sessions",
            tags=["Sessions"]
        )
        self._register_routes()

    def _register_routes(self):
        self.router.add_api_route(
                "/",
                self.book_session,
                methods=["POST"],
                status_code=status.HTTP_201_CREATED,
                response_model=session_models.SessionRead)
        self.router.add_api_route(
                "/",
                self.list_sessions,
                methods=["GET"],
                response_model=List[session_models.SessionRead])
        self.router.add_api_route(
                "/{session_id}",
                self.get_session,
                methods=["GET"],
                response_model=session_models.SessionRead)
        self.router.add_api_route(
                "/{session_id}/cancel",
                self.cancel_session,
                methods=["PATCH"],
                response_model=session_models.SessionRead)
        self.router.add_api_route(
                "/{session_id}/start",
                self.start_session,
                methods=["PATCH"],
                response_model=session_models.SessionRead)
        self.router.add_api_route(
                "/{session_id}/complete",
                self.complete_session,
                methods=["PATCH"],
                response_model=session_models.SessionRead)
        self.router.add_api_route(
                "/{session_id}/no-show",
                self.mark_no_show,
                methods=["PATCH"],
                response_model=session_models.SessionRead)
        self.router.add_api_route(
                "/{session_id}/rate",
                self.rate_session,
                methods=["POST"],
                response_model=session_models.SessionRead)

    async def book_session(
        self,
        booking: session_models.SessionBookInput,
        current_user: Annotated[Actor, Depends(verify_token_and_get_actor)],
        session_service: Annotated[SessionService, Depends(SessionService)]
    ):
        """
        Books an ad-hoc session for the calling student. Credits are debited
        immediately.
        """
        return await session_service.book_session_for_api(booking, current_user)

    async def list_sessions(
        self,
        current_user: Annotated[Actor, Depends(verify_token_and_get_actor)],
        session_service: Annotated[SessionService, Depends(SessionService)],
        status_filter: Annotated[Optional[SessionStatusEnum], Query(alias="status")] = None,
        upcoming: bool = False
    ):
        return await session_service.list_sessions_for_api(current_user, status_filter, upcoming)

    async def get_session(
        self,
        session_id: UUID,
        current_user: Annotated[Actor, Depends(verify_token_and_get_actor)],
        session_service: Annotated[SessionService, Depends(SessionService)]
    ):
        return await session_service.get_session_for_api(session_id, current_user)

    async def cancel_session(
        self,
        session_id: UUID,
        cancellation: session_models.SessionCancelInput,
        current_user: Annotated[Actor, Depends(verify_token_and_get_actor)],
        session_service: Annotated[SessionService, Depends(SessionService)]
    ):
        return await session_service.cancel_session_for_api(session_id, cancellation, current_user)

    async def start_session(
        self,
        session_id: UUID,
        current_user: Annotated[Actor, Depends(verify_token_and_get_actor)],
        session_service: Annotated[SessionService, Depends(SessionService)]
    ):
        return await session_service.start_session_for_api(session_id, current_user)

    async def complete_session(
        self,
        session_id: UUID,
        completion: session_models.SessionCompleteInput,
        current_user: Annotated[Actor, Depends(verify_token_and_get_actor)],
        session_service: Annotated[SessionService, Depends(SessionService)]
    ):
        return await session_service.complete_session_for_api(session_id, completion, current_user)

    async def mark_no_show(
        self,
        session_id: UUID,
        current_user: Annotated[Actor, Depends(verify_token_and_get_actor)],
        session_service: Annotated[SessionService, Depends(SessionService)]
    ):
        """Credits are not returned for missed sessions."""
        return await session_service.mark_no_show_for_api(session_id, current_user)

    async def rate_session(
        self,
        session_id: UUID,
        rating: session_models.SessionRateInput,
        current_user: Annotated[Actor, Depends(verify_token_and_get_actor)],
        session_service: Annotated[SessionService, Depends(SessionService)]
    ):
        return await session_service.rate_session_for_api(session_id, rating, current_user)


# Instantiate the class and export its router
sessions_api = SessionsAPI()
router = sessions_api.router
