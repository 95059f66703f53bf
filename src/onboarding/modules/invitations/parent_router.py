"""
Parent Invites Router

API endpoints for linking parent accounts to students.

Endpoints:
- POST /parent-invites - Issue a parent invite for a student (school admins)
- GET /parent-invites/tenants/{tenant_id} - List a school's parent invites
- POST /parent-invites/redeem - Link the calling parent to the student
- POST /parent-invites/{code}/revoke - Revoke a parent invite
- DELETE /parent-invites/tenants/{tenant_id}/expired - Delete expired parent invites
"""

from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status

from onboarding.core.auth import CurrentUser, get_current_user
from onboarding.core.config import settings
from onboarding.core.rate_limit import enforce_rate_limit
from onboarding.modules.invitations.dependencies import (
    get_invitation_service,
    service_error_to_http,
)
from onboarding.modules.invitations.schemas import (
    CleanupResponse,
    ParentInviteCreate,
    ParentInviteCreateResponse,
    ParentInviteListResponse,
    ParentInviteResponse,
    ParentLinkResponse,
    ParentRedeemRequest,
)
from onboarding.modules.invitations.service import InvitationService, InvitationServiceError

router = APIRouter()


@router.post(
    "",
    response_model=ParentInviteCreateResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Issue Parent Invite",
)
async def create_parent_invite(
    data: ParentInviteCreate,
    current_user: CurrentUser = Depends(get_current_user),
    service: InvitationService = Depends(get_invitation_service),
) -> ParentInviteCreateResponse:
    """
    Issue a code a parent redeems to be linked to a student.

    Raises:
        HTTPException 403: If the caller may not invite parents into this school
        HTTPException 422: If the student is not a student of the school
    """
    try:
        code = await service.generate_parent_invite(
            actor_id=current_user.id,
            student_id=data.student_id,
            tenant_id=data.tenant_id,
            expires_at=data.expires_at,
            usage_limit=data.usage_limit,
        )
    except InvitationServiceError as e:
        raise service_error_to_http(e) from e

    return ParentInviteCreateResponse(
        code=code,
        student_id=data.student_id,
        tenant_id=data.tenant_id,
        usage_limit=data.usage_limit,
        expires_at=data.expires_at,
    )


@router.get(
    "/tenants/{tenant_id}",
    response_model=ParentInviteListResponse,
    summary="List School Parent Invites",
)
async def list_parent_invites(
    tenant_id: UUID,
    pending_only: bool = Query(False, description="Only invites with uses left"),
    current_user: CurrentUser = Depends(get_current_user),
    service: InvitationService = Depends(get_invitation_service),
) -> ParentInviteListResponse:
    try:
        invites = await service.list_parent_invites(
            tenant_id, current_user.id, pending_only=pending_only
        )
    except InvitationServiceError as e:
        raise service_error_to_http(e) from e

    return ParentInviteListResponse(
        invites=[ParentInviteResponse.model_validate(invite) for invite in invites],
        total=len(invites),
    )


@router.post(
    "/redeem",
    response_model=ParentLinkResponse,
    summary="Redeem Parent Invite",
)
async def redeem_parent_invite(
    request: Request,
    data: ParentRedeemRequest,
    current_user: CurrentUser = Depends(get_current_user),
    service: InvitationService = Depends(get_invitation_service),
) -> ParentLinkResponse:
    """Link the calling parent account to the invite's student. Rate limited per client."""
    await enforce_rate_limit(
        request,
        "parent_invite_redeem",
        settings.invite_redeem_rate_limit,
        settings.invite_redeem_rate_window_seconds,
    )

    try:
        grant = await service.redeem_parent_invite(data.code.strip(), current_user.id)
    except InvitationServiceError as e:
        raise service_error_to_http(e, public=True) from e

    return ParentLinkResponse(
        student_id=grant.student_id,
        tenant_id=grant.tenant_id,
        parent_id=grant.parent_id,
    )


@router.post(
    "/{code}/revoke",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Revoke Parent Invite",
)
async def revoke_parent_invite(
    code: str,
    current_user: CurrentUser = Depends(get_current_user),
    service: InvitationService = Depends(get_invitation_service),
) -> None:
    try:
        await service.revoke_parent_invite(code, current_user.id)
    except InvitationServiceError as e:
        raise service_error_to_http(e) from e


@router.delete(
    "/tenants/{tenant_id}/expired",
    response_model=CleanupResponse,
    summary="Delete Expired Parent Invites",
)
async def delete_expired_parent_invites(
    tenant_id: UUID,
    current_user: CurrentUser = Depends(get_current_user),
    service: InvitationService = Depends(get_invitation_service),
) -> CleanupResponse:
    try:
        deleted = await service.cleanup_expired_parent_invites(tenant_id, current_user.id)
    except InvitationServiceError as e:
        raise service_error_to_http(e) from e

    return CleanupResponse(deleted=deleted)
