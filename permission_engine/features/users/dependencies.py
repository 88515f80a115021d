"""
FastAPI dependencies for authentication.
"""
from typing import Annotated
import jwt
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from permission_engine.core import config
from permission_engine.utils import get_logger


log = get_logger(__name__)

security = HTTPBearer()


def verify_jwt_token(token: str) -> dict:
    """
    Verify a bearer token and return its payload.

    Raises:
        HTTPException: 503 if no signing secret is configured, 401 if the token
        is invalid or expired
    """
    if not config.JWT_SECRET:
        log.error("JWT_SECRET is not configured, rejecting authenticated request")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Authentication is not configured",
        )
    try:
        return jwt.decode(token, config.JWT_SECRET, algorithms=[config.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except jwt.InvalidTokenError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid token: {str(e)}",
            headers={"WWW-Authenticate": "Bearer"},
        )


async def get_current_user_id(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
) -> str:
    """
    Get the authenticated user's id from the bearer token's `sub` claim.

    Usage:
        @router.get("/me")
        async def get_me(user_id: str = Depends(get_current_user_id)):
            ...
    """
    payload = verify_jwt_token(credentials.credentials)
    user_id = payload.get("sub")
    if not user_id or not isinstance(user_id, str):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
        )
    return user_id


def get_authorization_header(request: Request) -> str:
    """
    Extract authorization header for rate limiting.
    Used with slowapi Limiter.
    """
    auth = request.headers.get("Authorization", "")
    return auth or "anonymous"
