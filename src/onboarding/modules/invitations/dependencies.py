"""
Invitations Router Helpers

FastAPI dependencies and service-error translation shared by the invitation
and parent-invite routers.
"""

import logging

from fastapi import Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from onboarding.core.config import settings
from onboarding.core.database import get_db
from onboarding.modules.invitations.errors import (
    REDEMPTION_ERRORS,
    InvitationServiceError,
    StorageError,
)
from onboarding.modules.invitations.service import InvitationService, build_invitation_service

logger = logging.getLogger(__name__)

INVALID_INVITE = "INVALID_INVITE"
INVALID_INVITE_MESSAGE = "This invite code is invalid, expired or already used."


async def get_invitation_service(db: AsyncSession = Depends(get_db)) -> InvitationService:
    """Request-scoped InvitationService."""
    return build_invitation_service(db)


def service_error_to_http(e: InvitationServiceError, public: bool = False) -> HTTPException:
    """
    Convert a service error into the API's error response.

    For public code endpoints (public=True) unknown, expired and used-up
    codes share one response so callers cannot probe which codes exist,
    unless EXPOSE_INVITE_FAILURE_REASON is enabled. Storage failures always
    become the generic 500 response.
    """
    if public and isinstance(e, REDEMPTION_ERRORS) and not settings.expose_invite_failure_reason:
        return HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": INVALID_INVITE, "message": INVALID_INVITE_MESSAGE},
        )

    if isinstance(e, StorageError):
        logger.error(f"Invitation storage failure: {e.message}")
        return internal_error()

    if e.status_code >= 500:
        logger.error(f"Invitation service error: {e.error_code}: {e.message}")
    else:
        logger.warning(f"Invitation request rejected: {e.error_code}: {e.message}")

    return HTTPException(
        status_code=e.status_code,
        detail={"error": e.error_code, "message": e.message},
    )


def internal_error() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail={
            "error": "INTERNAL_ERROR",
            "message": "An unexpected error occurred. Please try again later.",
        },
    )
