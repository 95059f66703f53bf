"""
User Models

Minimal mirror of the identity provider's user profiles. Account creation
and credentials live with the provider; this table only answers
"what role does this user hold, and in which school".
"""

import uuid

from sqlalchemy import Boolean, Enum, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from onboarding.modules.roles.models import Role
from onboarding.modules.shared import BaseModel


def role_column_type() -> Enum:
    """Enum column storing role values (e.g. "teacher") rather than member names."""
    return Enum(
        Role,
        name="user_role",
        values_callable=lambda roles: [role.value for role in roles],
        validate_strings=True,
    )


class User(BaseModel):
    """
    User profile.

    Multi-tenant: tenant_id (the school) is set for every role except
    SUPER_ADMIN, which is platform-level.
    """

    __tablename__ = "users"

    tenant_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True, index=True)

    email: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)

    role: Mapped[Role] = mapped_column(role_column_type(), nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<User(id={self.id}, role={self.role.value}, tenant_id={self.tenant_id})>"
