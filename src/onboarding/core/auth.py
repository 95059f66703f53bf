"""
Authentication Module

Provides authentication dependencies for FastAPI endpoints.
The bearer token identifies the caller; roles and tenant membership are
resolved afterwards by the identity lookup, never trusted from the token.

SECURITY NOTE:
- Development mode auth bypass is ONLY enabled when PYTHON_ENV=development
- Production environments MUST set PYTHON_ENV=production to disable test tokens
"""

import logging
import os
from dataclasses import dataclass
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from onboarding.core.config import settings
from onboarding.core.security import decode_token

logger = logging.getLogger(__name__)

security = HTTPBearer(
    auto_error=False,
    description="JWT Bearer token for authentication",
)


@dataclass
class CurrentUser:
    """
    The authenticated caller, populated from JWT claims.

    Attributes:
        id: User's unique identifier (UUID)
        email: User's email address
        role: Role claim as issued; informational only
    """

    id: UUID
    email: str = ""
    role: str | None = None

    def __str__(self) -> str:
        return f"CurrentUser(id={self.id}, role={self.role})"


def _is_dev_mode_safe() -> bool:
    """
    Check if development mode is safe to enable.

    Requires settings.is_development, not settings.is_production, and a
    PYTHON_ENV environment variable that is neither production nor staging.
    """
    env_var = os.getenv("PYTHON_ENV", "").lower()

    is_safe = (
        settings.is_development
        and not settings.is_production
        and env_var != "production"
        and env_var != "staging"
    )

    if is_safe:
        logger.warning(
            "SECURITY: Development auth mode is ENABLED. This MUST NOT be used in production!"
        )

    return is_safe


_DEVELOPMENT_MODE = _is_dev_mode_safe()


def _unauthorized(error: str, message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"error": error, "message": message},
        headers={"WWW-Authenticate": "Bearer"},
    )


async def _validate_jwt_token(token: str) -> CurrentUser:
    """
    Validate a bearer token and extract the caller.

    In development mode a bare UUID is accepted as the user id.

    Raises:
        HTTPException 401: If token is invalid, expired or has bad claims
    """
    if _DEVELOPMENT_MODE:
        try:
            return CurrentUser(id=UUID(token), email=f"dev-{token[:8]}@onboarding.dev")
        except ValueError:
            pass

    payload = decode_token(token)

    if payload is None:
        logger.warning("Invalid or expired JWT token")
        raise _unauthorized("INVALID_TOKEN", "Invalid or expired authentication token.")

    if payload.get("type", "access") != "access":
        logger.warning(f"Invalid token type: {payload.get('type')}")
        raise _unauthorized("INVALID_TOKEN_TYPE", "This endpoint requires an access token.")

    try:
        user_id_str = payload.get("sub")
        if not user_id_str:
            raise ValueError("Missing 'sub' claim in token")

        return CurrentUser(
            id=UUID(user_id_str),
            email=payload.get("email", ""),
            role=payload.get("role"),
        )
    except ValueError as e:
        logger.warning(f"Invalid token claims: {e}")
        raise _unauthorized(
            "INVALID_TOKEN_CLAIMS", "Token contains invalid or missing claims."
        ) from e


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> CurrentUser:
    """
    FastAPI dependency returning the authenticated caller.

    Raises:
        HTTPException 401: If the token is missing or invalid
    """
    if credentials is None:
        raise _unauthorized("NOT_AUTHENTICATED", "Authentication is required.")

    user = await _validate_jwt_token(credentials.credentials)
    logger.debug(f"Authenticated user: {user.id}")
    return user


async def get_optional_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> CurrentUser | None:
    """
    Optional authentication dependency.

    Returns the caller if a valid token is provided, or None otherwise.
    Used by public endpoints (token redemption) that behave the same for
    anonymous and signed-in callers apart from tenant scoping.
    """
    if not credentials:
        return None

    try:
        return await _validate_jwt_token(credentials.credentials)
    except HTTPException:
        return None


__all__ = [
    "CurrentUser",
    "get_current_user",
    "get_optional_user",
]
