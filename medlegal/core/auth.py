"""Bearer-token authentication dependency.

Tokens are issued by the firm's identity service and signed with a shared
secret; this module only verifies them.
"""

from typing import Optional
from uuid import UUID

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from medlegal.core.config import settings
from medlegal.schemas.auth import CurrentUser, JWTClaims
from medlegal.utils.logging import get_logger

LOGGER = get_logger(__name__)

security = HTTPBearer(auto_error=False)


def decode_token(token: str) -> JWTClaims:
    """Verify the signature and expiry of a token and return its claims.

    Raises:
        jwt.InvalidTokenError: If the token is invalid or expired
    """
    auth = settings.auth
    options = {"require": ["exp", "sub"], "verify_aud": bool(auth.jwt_audience)}
    payload = jwt.decode(
        token,
        auth.jwt_secret,
        algorithms=[auth.jwt_algorithm],
        audience=auth.jwt_audience,
        options=options,
    )
    return JWTClaims(**payload)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> CurrentUser:
    """Get the current authenticated user from the bearer token.

    Raises:
        HTTPException: 401 if the token is missing, invalid or expired
    """
    if not credentials:
        LOGGER.warning("No authorization credentials provided")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization header missing",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        claims = decode_token(credentials.credentials)
        user = CurrentUser(id=UUID(claims.sub), email=claims.email, role=claims.role)
    except (jwt.InvalidTokenError, ValueError) as e:
        LOGGER.warning(f"Invalid token: {e}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication token",
            headers={"WWW-Authenticate": "Bearer"},
        ) from e

    LOGGER.debug(f"Authenticated user: {user.id}")
    return user
