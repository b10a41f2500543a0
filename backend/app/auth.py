"""Bearer token verification.

Tokens are issued by the auth service; here we only check the signature and
pull out the user id. Usage:

    @router.get("/mine")
    async def mine(user_id: str = Depends(get_current_user_id)):
        ...
"""
import logging

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import ExpiredSignatureError, JWTError, jwt

from app.config import settings

logger = logging.getLogger(__name__)

security = HTTPBearer()


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user_id(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> str:
    """Verify the bearer token and return the requester id.

    The id comes from the ``userId`` claim, falling back to ``sub``.
    """
    try:
        payload = jwt.decode(
            credentials.credentials,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
        )
    except ExpiredSignatureError:
        raise _unauthorized("Token has expired")
    except JWTError as e:
        logger.debug(f"Rejected bearer token: {e}")
        raise _unauthorized("Invalid authentication token")

    user_id = payload.get("userId") or payload.get("sub")
    if not user_id:
        raise _unauthorized("Token does not identify a user")
    return str(user_id)
