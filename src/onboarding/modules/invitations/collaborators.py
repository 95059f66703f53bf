"""
Invitation Collaborators

Interfaces the invitation service consumes from the rest of the system, with
default implementations reading the `users` and `class_subjects` tables.
"""

import logging
from dataclasses import dataclass
from typing import Protocol
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from onboarding.modules.classes.models import ClassSubject
from onboarding.modules.roles.models import Role
from onboarding.modules.users.repository import UserRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Identity:
    """A user's role and school, as known to the identity provider."""

    user_id: UUID
    role: Role | None
    tenant_id: UUID | None


class IdentityLookup(Protocol):
    async def lookup(self, user_id: UUID) -> Identity | None: ...


class ClassMembership(Protocol):
    async def teaches_class(self, teacher_id: UUID, class_id: UUID) -> bool: ...


class SqlIdentityLookup:
    """IdentityLookup over the `users` table. Inactive users are unknown."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def lookup(self, user_id: UUID) -> Identity | None:
        user = await UserRepository.get_by_id(self.db, user_id)
        if user is None or not user.is_active:
            return None

        role = Role.parse_or_none(user.role)
        if role is None:
            logger.warning(f"User {user_id} has unrecognized role {user.role!r}")

        return Identity(user_id=user.id, role=role, tenant_id=user.tenant_id)


class SqlClassMembership:
    """ClassMembership backed by teaching assignments in `class_subjects`."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def teaches_class(self, teacher_id: UUID, class_id: UUID) -> bool:
        result = await self.db.execute(
            select(ClassSubject.id)
            .where(ClassSubject.teacher_id == teacher_id, ClassSubject.class_id == class_id)
            .limit(1)
        )
        return result.scalar_one_or_none() is not None
