"""
Invitation Models

Database models for invitation tokens and parent-student link invites.

Both share the same usage semantics:
- A token may be redeemed at most `usage_limit` times (`times_used` counts)
- A token with `expires_at` in the past can no longer be redeemed
- Revocation forces `times_used = usage_limit`
- The database enforces 0 <= times_used <= usage_limit with CHECK constraints
"""

import uuid
from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, Index, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from onboarding.core.database import Base
from onboarding.modules.roles.models import Role
from onboarding.modules.shared import ensure_utc, utcnow
from onboarding.modules.users.models import role_column_type


class UsageLimitedMixin:
    """Usage and expiry predicates shared by both invite tables."""

    @property
    def is_active(self) -> bool:
        """True while redemptions remain."""
        return self.times_used < self.usage_limit

    @property
    def remaining_uses(self) -> int:
        return max(self.usage_limit - self.times_used, 0)

    def is_expired(self, now: datetime | None = None) -> bool:
        if self.expires_at is None:
            return False
        now = ensure_utc(now) if now is not None else utcnow()
        return now > ensure_utc(self.expires_at)

    def can_be_used(self, now: datetime | None = None) -> bool:
        return self.is_active and not self.is_expired(now)


class InviteToken(UsageLimitedMixin, Base):
    """
    Invitation token granting a role on redemption.

    tenant_id is NULL only for tokens issued by a SUPER_ADMIN and for the
    bootstrap token; created_by is NULL only for the bootstrap token.
    class_id is set for TEACHER -> STUDENT invites.
    """

    __tablename__ = "invite_tokens"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    code: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    role: Mapped[Role] = mapped_column(role_column_type(), nullable=False)

    tenant_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    class_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    created_by: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True, index=True)

    usage_limit: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    times_used: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    __table_args__ = (
        CheckConstraint("usage_limit > 0", name="ck_invite_tokens_usage_limit_positive"),
        CheckConstraint(
            "times_used >= 0 AND times_used <= usage_limit",
            name="ck_invite_tokens_times_used_bounds",
        ),
        Index("ix_invite_tokens_tenant_expires", "tenant_id", "expires_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<InviteToken(code={self.code[:4]}..., role={self.role.value}, "
            f"used={self.times_used}/{self.usage_limit})>"
        )


class ParentInvite(UsageLimitedMixin, Base):
    """
    Invite linking a parent account to a student.

    Redemption records the redeeming parent and time.
    """

    __tablename__ = "parent_invites"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    code: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)

    student_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    tenant_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    created_by: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)

    usage_limit: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    times_used: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    used_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    parent_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    __table_args__ = (
        CheckConstraint("usage_limit > 0", name="ck_parent_invites_usage_limit_positive"),
        CheckConstraint(
            "times_used >= 0 AND times_used <= usage_limit",
            name="ck_parent_invites_times_used_bounds",
        ),
        Index("ix_parent_invites_tenant_expires", "tenant_id", "expires_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<ParentInvite(code={self.code[:4]}..., student_id={self.student_id}, "
            f"used={self.times_used}/{self.usage_limit})>"
        )
