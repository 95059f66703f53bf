"""
Role Hierarchy Policy

Two independent rule tables over roles:

1. Hierarchy level (lower number = more authority). Decides who may open a
   direct conversation with whom.
2. Invitable-role adjacency. Decides which roles an actor may issue
   invitation tokens for.

The two are deliberately different: Admin may invite Parent even though
Teacher sits between them, and no role may invite its own level. Do not
derive one from the other.
"""

from types import MappingProxyType
from uuid import UUID

from onboarding.modules.roles.models import Role

UNKNOWN_ROLE_LEVEL = 999

ROLE_LEVELS: MappingProxyType[Role, int] = MappingProxyType(
    {
        Role.SUPER_ADMIN: 0,
        Role.BIG_ADMIN: 1,
        Role.ADMIN: 2,
        Role.TEACHER: 3,
        Role.PARENT: 4,
        Role.STUDENT: 5,
    }
)

INVITABLE_ROLES: MappingProxyType[Role, frozenset[Role]] = MappingProxyType(
    {
        Role.SUPER_ADMIN: frozenset({Role.BIG_ADMIN}),
        Role.BIG_ADMIN: frozenset({Role.ADMIN, Role.TEACHER}),
        Role.ADMIN: frozenset({Role.TEACHER, Role.PARENT}),
        Role.TEACHER: frozenset({Role.STUDENT}),
        Role.PARENT: frozenset(),
        Role.STUDENT: frozenset(),
    }
)

# Roles holding admin privilege over a tenant (SUPER_ADMIN over every tenant)
TENANT_ADMIN_ROLES = frozenset({Role.BIG_ADMIN, Role.ADMIN})


def role_level(role: Role | str | None) -> int:
    """
    Hierarchy level of a role.

    Unknown, missing or unparseable roles rank lowest (999) so comparisons
    stay total.
    """
    parsed = Role.parse_or_none(role)
    if parsed is None:
        return UNKNOWN_ROLE_LEVEL
    return ROLE_LEVELS[parsed]


def can_initiate_conversation(
    actor_role: Role | str | None, target_role: Role | str | None
) -> bool:
    """True iff the actor ranks at or above the target."""
    return role_level(actor_role) <= role_level(target_role)


def invitable_roles(actor_role: Role | str | None) -> frozenset[Role]:
    """Roles the actor may issue invitation tokens for."""
    parsed = Role.parse_or_none(actor_role)
    if parsed is None:
        return frozenset()
    return INVITABLE_ROLES[parsed]


def can_generate_invite_for(actor_role: Role | str | None, target_role: Role | str | None) -> bool:
    """True iff target_role is in the actor's invitable set."""
    target = Role.parse_or_none(target_role)
    if target is None:
        return False
    return target in invitable_roles(actor_role)


def is_tenant_admin(
    actor_role: Role | str | None,
    actor_tenant_id: UUID | None,
    tenant_id: UUID | None,
) -> bool:
    """
    Whether the actor holds admin privilege over `tenant_id`.

    SuperAdmins administer every tenant. BigAdmins and Admins administer only
    the tenant they belong to.
    """
    role = Role.parse_or_none(actor_role)
    if role is Role.SUPER_ADMIN:
        return True
    if role in TENANT_ADMIN_ROLES:
        return actor_tenant_id is not None and actor_tenant_id == tenant_id
    return False
