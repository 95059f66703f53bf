"""
Messaging Router

- GET /messaging/can-open - Whether the caller may open a conversation with a user
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from onboarding.core.auth import CurrentUser, get_current_user
from onboarding.core.database import get_db
from onboarding.modules.invitations.collaborators import SqlIdentityLookup
from onboarding.modules.messaging.authorizer import can_open
from onboarding.modules.messaging.schemas import CanOpenResponse
from onboarding.modules.roles.models import Role

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get(
    "/can-open",
    response_model=CanOpenResponse,
    summary="Check Conversation Permission",
)
async def check_can_open(
    other_user_id: UUID = Query(..., description="User the caller wants to talk to"),
    is_group: bool = Query(False, description="Whether the conversation is a group"),
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> CanOpenResponse:
    """
    Whether the caller may open a new conversation with `other_user_id`.

    Roles are read from the identity store; users in another school are
    reported as not found.
    """
    identity = SqlIdentityLookup(db)

    actor = await identity.lookup(current_user.id)
    if actor is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": "NOT_AUTHENTICATED", "message": "Unknown or inactive user."},
        )

    other = await identity.lookup(other_user_id)
    if other is None or (actor.role is not Role.SUPER_ADMIN and other.tenant_id != actor.tenant_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": "USER_NOT_FOUND", "message": "User not found."},
        )

    allowed = can_open(actor.role, other.role, is_group)
    logger.debug(f"can_open {actor.user_id} -> {other.user_id} (group={is_group}): {allowed}")

    return CanOpenResponse(
        other_user_id=other.user_id,
        is_group=is_group,
        allowed=allowed,
        actor_role=actor.role,
        other_role=other.role,
    )
