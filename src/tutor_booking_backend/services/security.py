'''
Token handling for callers authenticated by the external identity service.
'''
from datetime import datetime, timedelta, timezone
from typing import Optional, Annotated, Iterable
from uuid import UUID
from jose import JWTError, jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer

from ..common.config import settings
from ..models.token import TokenPayload, Actor
from ..database.db_enums import UserRole
from ..common.logger import log

# --- JWT Handling ---
class JWTHandler:
    @staticmethod
    def create_access_token(
        user_id: UUID,
        role: UserRole,
        expires_delta: Optional[timedelta] = None
    ) -> str:
        if expires_delta is None:
            expires_delta = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)

        expire = datetime.now(timezone.utc) + expires_delta
        to_encode = {"sub": str(user_id), "role": UserRole(role).value, "exp": expire}
        return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)

    @staticmethod
    def decode_token(token: str) -> TokenPayload | None:
        try:
            payload = jwt.decode(
                token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM]
            )
            return TokenPayload(**payload)
        except (JWTError, ValueError) as e:  # pydantic validation errors are ValueErrors
            log.warning(f"JWT decode/validation error: {e}")
            return None

# --- JWT Verification Dependency Function ---
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")

async def verify_token_and_get_actor(
    token: Annotated[str, Depends(oauth2_scheme)]
) -> Actor:
    """
    Dependency that verifies the bearer token and returns the caller. Users
    live in the identity service, so the token's claims are the whole story.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    token_data = JWTHandler.decode_token(token)
    if not token_data or not token_data.sub:
        log.warning("JWT decode failed or invalid token structure.")
        raise credentials_exception

    log.info(f"JWT verified successfully for user: {token_data.sub} (Role: {token_data.role.value})")
    return Actor(user_id=token_data.sub, role=token_data.role)


def authorize_roles(actor: Actor, allowed_roles: Iterable[UserRole]) -> None:
    """Raises 403 unless the caller holds one of allowed_roles."""
    allowed = {UserRole(role).value for role in allowed_roles}
    if UserRole(actor.role).value not in allowed:
        log.warning(f"SECURITY: User {actor.user_id} (Role: {actor.role}) attempted an action restricted to {sorted(allowed)}.")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You do not have permission to perform this action."
        )
