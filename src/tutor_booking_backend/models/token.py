'''

'''
from pydantic import BaseModel
from datetime import datetime
from uuid import UUID

from ..database.db_enums import UserRole

class Token(BaseModel):
    access_token: str
    token_type: str

class TokenPayload(BaseModel):
    sub: UUID # 'sub' is standard JWT claim for subject (the user's id)
    role: UserRole
    exp: datetime

class Actor(BaseModel):
    """The already-authenticated caller, as asserted by the identity service."""
    user_id: UUID
    role: UserRole
