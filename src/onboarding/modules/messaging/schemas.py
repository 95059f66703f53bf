"""
Messaging Schemas
"""

from uuid import UUID

from pydantic import BaseModel

from onboarding.modules.roles.models import Role


class CanOpenResponse(BaseModel):
    other_user_id: UUID
    is_group: bool
    allowed: bool
    actor_role: Role | None
    other_role: Role | None
