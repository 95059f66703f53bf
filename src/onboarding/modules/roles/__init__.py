"""
Roles module - Role enumeration and hierarchy rules.
"""

from onboarding.modules.roles.models import Role
from onboarding.modules.roles.policy import (
    can_generate_invite_for,
    can_initiate_conversation,
    invitable_roles,
    is_tenant_admin,
    role_level,
)

__all__ = [
    "Role",
    "role_level",
    "can_initiate_conversation",
    "invitable_roles",
    "can_generate_invite_for",
    "is_tenant_admin",
]
