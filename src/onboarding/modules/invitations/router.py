"""
Invitations Router

API endpoints for issuing and redeeming invitation tokens.

Endpoints:
- GET /invitations/invitable-roles - Roles the caller may invite
- POST /invitations - Issue a token
- GET /invitations/mine - Tokens issued by the caller
- GET /invitations/tenants/{tenant_id} - All tokens of a school (school admins)
- POST /invitations/validate - Check a code without consuming it (public)
- POST /invitations/redeem - Consume a code (public)
- POST /invitations/{code}/revoke - Revoke a code
- DELETE /invitations/tenants/{tenant_id}/expired - Delete expired tokens (school admins)

Security:
- Roles and school membership come from the identity lookup, not from token claims
- validate / redeem are rate limited per client IP
- validate / redeem answer unknown, expired and used-up codes identically
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Request, status

from onboarding.core.auth import CurrentUser, get_current_user, get_optional_user
from onboarding.core.config import settings
from onboarding.core.rate_limit import enforce_rate_limit
from onboarding.modules.invitations.dependencies import (
    get_invitation_service,
    internal_error,
    service_error_to_http,
)
from onboarding.modules.invitations.schemas import (
    CleanupResponse,
    InvitableRolesResponse,
    InviteCodeRequest,
    InviteTokenCreate,
    InviteTokenCreateResponse,
    InviteTokenListResponse,
    InviteTokenResponse,
    InviteValidationResponse,
    RedemptionResponse,
)
from onboarding.modules.invitations.service import (
    InvitationService,
    InvitationServiceError,
    RedemptionContext,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _redemption_context(data: InviteCodeRequest, user: CurrentUser | None) -> RedemptionContext:
    return RedemptionContext(
        redeemer_id=user.id if user else None,
        tenant_id=data.tenant_id,
    )


@router.get(
    "/invitable-roles",
    response_model=InvitableRolesResponse,
    summary="List Invitable Roles",
)
async def list_invitable_roles(
    current_user: CurrentUser = Depends(get_current_user),
    service: InvitationService = Depends(get_invitation_service),
) -> InvitableRolesResponse:
    """Roles the caller may issue invitation tokens for, highest authority first."""
    try:
        roles = await service.invitable_roles_for(current_user.id)
        return InvitableRolesResponse(roles=roles)
    except InvitationServiceError as e:
        raise service_error_to_http(e) from e


@router.post(
    "",
    response_model=InviteTokenCreateResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Issue Invitation Token",
    description="""
Issue an invitation token for a role.

**Who may invite whom:**
- SuperAdmin: BigAdmin
- BigAdmin: Admin, Teacher
- Admin: Teacher, Parent
- Teacher: Student (for a class the teacher teaches; `class_id` required)

Only SuperAdmins may omit `tenant_id`; everyone else invites into their own school.
""",
    responses={
        403: {
            "description": "Role, school or class not allowed",
            "content": {
                "application/json": {
                    "example": {
                        "detail": {
                            "error": "PERMISSION_DENIED",
                            "message": "Your role cannot generate invites for the admin role.",
                        }
                    }
                }
            },
        },
        503: {"description": "No unique code could be generated"},
    },
)
async def create_invitation(
    data: InviteTokenCreate,
    current_user: CurrentUser = Depends(get_current_user),
    service: InvitationService = Depends(get_invitation_service),
) -> InviteTokenCreateResponse:
    """
    Issue an invitation token.

    Raises:
        HTTPException 403: If the caller may not invite this role here
        HTTPException 422: If the parameters are invalid
        HTTPException 503: If code generation kept colliding
    """
    try:
        code = await service.generate_token(
            actor_id=current_user.id,
            target_role=data.role,
            tenant_id=data.tenant_id,
            class_id=data.class_id,
            expires_at=data.expires_at,
            usage_limit=data.usage_limit,
        )
    except InvitationServiceError as e:
        raise service_error_to_http(e) from e
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Unexpected error issuing invitation: {e}")
        raise internal_error() from e

    return InviteTokenCreateResponse(
        code=code,
        role=data.role,
        tenant_id=data.tenant_id,
        class_id=data.class_id,
        usage_limit=data.usage_limit,
        expires_at=data.expires_at,
    )


@router.get(
    "/mine",
    response_model=InviteTokenListResponse,
    summary="List My Invitation Tokens",
)
async def list_my_invitations(
    current_user: CurrentUser = Depends(get_current_user),
    service: InvitationService = Depends(get_invitation_service),
) -> InviteTokenListResponse:
    """Tokens issued by the caller, newest first."""
    try:
        tokens = await service.list_created_tokens(current_user.id)
    except InvitationServiceError as e:
        raise service_error_to_http(e) from e

    return InviteTokenListResponse(
        tokens=[InviteTokenResponse.model_validate(token) for token in tokens],
        total=len(tokens),
    )


@router.get(
    "/tenants/{tenant_id}",
    response_model=InviteTokenListResponse,
    summary="List School Invitation Tokens",
)
async def list_tenant_invitations(
    tenant_id: UUID,
    current_user: CurrentUser = Depends(get_current_user),
    service: InvitationService = Depends(get_invitation_service),
) -> InviteTokenListResponse:
    """All tokens of a school. Requires school admin privileges."""
    try:
        tokens = await service.list_tenant_tokens(tenant_id, current_user.id)
    except InvitationServiceError as e:
        raise service_error_to_http(e) from e

    return InviteTokenListResponse(
        tokens=[InviteTokenResponse.model_validate(token) for token in tokens],
        total=len(tokens),
    )


@router.post(
    "/validate",
    response_model=InviteValidationResponse,
    summary="Validate Invite Code",
    description="""
Check that an invite code can be redeemed, without consuming it.

Unknown, expired and used-up codes all return `400 INVALID_INVITE`.
Rate limited per client.
""",
)
async def validate_invitation(
    request: Request,
    data: InviteCodeRequest,
    current_user: CurrentUser | None = Depends(get_optional_user),
    service: InvitationService = Depends(get_invitation_service),
) -> InviteValidationResponse:
    await enforce_rate_limit(
        request,
        "invite_validate",
        settings.invite_redeem_rate_limit,
        settings.invite_redeem_rate_window_seconds,
    )

    try:
        token = await service.validate_token(data.code, _redemption_context(data, current_user))
    except InvitationServiceError as e:
        raise service_error_to_http(e, public=True) from e

    return InviteValidationResponse(
        valid=True,
        role=token.role,
        tenant_id=token.tenant_id,
        class_id=token.class_id,
        expires_at=token.expires_at,
        remaining_uses=token.remaining_uses,
    )


@router.post(
    "/redeem",
    response_model=RedemptionResponse,
    summary="Redeem Invite Code",
    description="""
Consume one use of an invite code and return the role it grants.

The caller's account is created or upgraded by the identity provider using
the returned grant. Unknown, expired and used-up codes all return
`400 INVALID_INVITE`. Rate limited per client.
""",
)
async def redeem_invitation(
    request: Request,
    data: InviteCodeRequest,
    current_user: CurrentUser | None = Depends(get_optional_user),
    service: InvitationService = Depends(get_invitation_service),
) -> RedemptionResponse:
    await enforce_rate_limit(
        request,
        "invite_redeem",
        settings.invite_redeem_rate_limit,
        settings.invite_redeem_rate_window_seconds,
    )

    try:
        grant = await service.redeem_token(data.code, _redemption_context(data, current_user))
    except InvitationServiceError as e:
        raise service_error_to_http(e, public=True) from e
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Unexpected error redeeming invitation: {e}")
        raise internal_error() from e

    return RedemptionResponse(
        granted_role=grant.granted_role,
        tenant_id=grant.tenant_id,
        class_id=grant.class_id,
    )


@router.post(
    "/{code}/revoke",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Revoke Invite Code",
)
async def revoke_invitation(
    code: str,
    current_user: CurrentUser = Depends(get_current_user),
    service: InvitationService = Depends(get_invitation_service),
) -> None:
    """Revoke a code. Allowed for its creator and the school's admins."""
    try:
        await service.revoke_token(code, current_user.id)
    except InvitationServiceError as e:
        raise service_error_to_http(e) from e


@router.delete(
    "/tenants/{tenant_id}/expired",
    response_model=CleanupResponse,
    summary="Delete Expired Invitation Tokens",
)
async def delete_expired_invitations(
    tenant_id: UUID,
    current_user: CurrentUser = Depends(get_current_user),
    service: InvitationService = Depends(get_invitation_service),
) -> CleanupResponse:
    """Delete a school's expired tokens. Requires school admin privileges."""
    try:
        deleted = await service.cleanup_expired(tenant_id, current_user.id)
    except InvitationServiceError as e:
        raise service_error_to_http(e) from e

    return CleanupResponse(deleted=deleted)
