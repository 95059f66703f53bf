"""
Invitations Schemas

Pydantic schemas for request validation and response serialization.
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from onboarding.modules.roles.models import Role

CODE_MAX_LENGTH = 64


class InviteTokenCreate(BaseModel):
    """Request body for POST /invitations."""

    role: Role
    tenant_id: UUID | None = None
    class_id: UUID | None = None
    expires_at: datetime | None = None
    usage_limit: int = Field(1, ge=1)

    @field_validator("role", mode="before")
    @classmethod
    def parse_role(cls, value):
        """Accept role names case-insensitively ("Teacher", " teacher ")."""
        if isinstance(value, str):
            return Role.parse(value)
        return value


class InviteTokenCreateResponse(BaseModel):
    code: str
    role: Role
    tenant_id: UUID | None
    class_id: UUID | None
    usage_limit: int
    expires_at: datetime | None


class InviteTokenResponse(BaseModel):
    """An issued token as shown to its creator or a school admin."""

    model_config = ConfigDict(from_attributes=True)

    code: str
    role: Role
    tenant_id: UUID | None
    class_id: UUID | None
    created_by: UUID | None
    usage_limit: int
    times_used: int
    expires_at: datetime | None
    created_at: datetime


class InviteTokenListResponse(BaseModel):
    tokens: list[InviteTokenResponse]
    total: int


class InviteCodeRequest(BaseModel):
    """Request body carrying an invite code (validate / redeem)."""

    code: str = Field(..., min_length=1, max_length=CODE_MAX_LENGTH)
    tenant_id: UUID | None = None

    @field_validator("code")
    @classmethod
    def strip_code(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("code must not be blank")
        return value


class InviteValidationResponse(BaseModel):
    valid: bool
    role: Role
    tenant_id: UUID | None
    class_id: UUID | None
    expires_at: datetime | None
    remaining_uses: int


class RedemptionResponse(BaseModel):
    granted_role: Role
    tenant_id: UUID | None
    class_id: UUID | None


class InvitableRolesResponse(BaseModel):
    roles: list[Role]


class CleanupResponse(BaseModel):
    deleted: int


class ParentInviteCreate(BaseModel):
    """Request body for POST /parent-invites."""

    student_id: UUID
    tenant_id: UUID
    expires_at: datetime | None = None
    usage_limit: int = Field(1, ge=1)


class ParentInviteCreateResponse(BaseModel):
    code: str
    student_id: UUID
    tenant_id: UUID
    usage_limit: int
    expires_at: datetime | None


class ParentInviteResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    code: str
    student_id: UUID
    tenant_id: UUID
    created_by: UUID
    usage_limit: int
    times_used: int
    expires_at: datetime | None
    used_at: datetime | None
    parent_id: UUID | None
    created_at: datetime


class ParentInviteListResponse(BaseModel):
    invites: list[ParentInviteResponse]
    total: int


class ParentRedeemRequest(BaseModel):
    code: str = Field(..., min_length=1, max_length=CODE_MAX_LENGTH)


class ParentLinkResponse(BaseModel):
    student_id: UUID
    tenant_id: UUID
    parent_id: UUID
