"""Authentication dependencies for FastAPI routes.

Tokens are issued elsewhere; this module only verifies the Bearer JWT and
turns its claims into a CurrentUser carrying the caller's tenant.
"""

from typing import Optional

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from legal_intel.core.config import settings
from legal_intel.schemas.auth import CurrentUser
from legal_intel.utils.logging import get_logger

LOGGER = get_logger(__name__)

# HTTP Bearer token scheme
security = HTTPBearer(auto_error=False)


def decode_token(token: str) -> CurrentUser:
    """Verify a token and map its claims.

    Raises:
        jwt.InvalidTokenError: If the signature, audience or expiry is invalid,
            or the ``sub``/``tenant_id`` claims are missing
    """
    if not settings.auth.jwt_secret:
        raise jwt.InvalidTokenError("JWT_SECRET is not configured")

    payload = jwt.decode(
        token,
        settings.auth.jwt_secret,
        algorithms=[settings.auth.jwt_algorithm],
        audience=settings.auth.jwt_audience,
        options={"require": ["sub", "exp", "tenant_id"]},
    )
    try:
        return CurrentUser(
            id=payload["sub"],
            tenant_id=payload["tenant_id"],
            email=payload.get("email"),
            role=payload.get("role") or "user",
        )
    except ValueError as e:
        raise jwt.InvalidTokenError(f"Malformed identity claims: {e}") from e


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> CurrentUser:
    """Get the current authenticated user from the JWT.

    Raises:
        HTTPException: 401 if the token is missing or invalid
    """
    if not credentials:
        LOGGER.warning("No authorization credentials provided")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization header missing",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        user = decode_token(credentials.credentials)
    except jwt.InvalidTokenError as e:
        LOGGER.warning(f"Invalid token: {e}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication token",
            headers={"WWW-Authenticate": "Bearer"},
        ) from e

    LOGGER.debug(f"Authenticated user: {user.id} (tenant {user.tenant_id})")
    return user
