'''
Read access to tutor profiles and the pricing configuration attached to them.
'''
from typing import Annotated
from uuid import UUID
from fastapi import Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..database.engine import get_db_session
from ..database import models as db_models
from ..database.db_enums import TutorStatusEnum
from ..models.slots import TutorPricing
from ..common.config import settings
from ..common.exceptions import NotFoundError
from ..common.logger import log


class TutorService:
    """
    Fetches tutor rows and resolves their pricing. The tutor row doubles as
    the per-tutor lock for every schedule-mutating operation.
    """
    def __init__(self, db: Annotated[AsyncSession, Depends(get_db_session)]):
        self.db = db

    async def get_tutor(
        self,
        tutor_id: UUID,
        for_update: bool = False,
        require_approved: bool = False
    ) -> db_models.TutorProfiles:
        stmt = select(db_models.TutorProfiles).filter(db_models.TutorProfiles.id == tutor_id)
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.db.execute(stmt)
        tutor = result.scalars().first()
        if tutor is None:
            log.warning(f"Tried to fetch non-existent tutor id: {tutor_id}")
            raise NotFoundError("Tutor not found.")
        if require_approved and tutor.status != TutorStatusEnum.APPROVED.value:
            log.warning(f"Tutor {tutor_id} is not bookable (status: {tutor.status}).")
            raise NotFoundError("Tutor not found.")
        return tutor

    async def lock_tutor(self, tutor_id: UUID) -> db_models.TutorProfiles:
        """Takes the exclusive per-tutor lock for the rest of the transaction."""
        return await self.get_tutor(tutor_id, for_update=True, require_approved=True)

    def get_pricing(self, tutor: db_models.TutorProfiles) -> TutorPricing:
        return TutorPricing(
            credit_factor=tutor.credit_factor or settings.DEFAULT_CREDIT_FACTOR,
            base_interval_minutes=tutor.base_interval_minutes or settings.DEFAULT_BASE_INTERVAL_MINUTES,
            min_notice_minutes=(
                tutor.min_notice_minutes
                if tutor.min_notice_minutes is not None
                else settings.DEFAULT_MIN_NOTICE_MINUTES
            ),
        )
