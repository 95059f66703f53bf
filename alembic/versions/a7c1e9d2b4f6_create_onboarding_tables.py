"""create onboarding tables

Revision ID: a7c1e9d2b4f6
Revises:
Create Date: 2026-10-19 09:00:00.000000

This migration:
1. Creates the user_role enum type shared by users and invite_tokens
2. Creates users (identity mirror) and class_subjects (teaching assignments)
3. Creates invite_tokens and parent_invites with usage CHECK constraints

The CHECK constraints back the conditional usage UPDATEs: times_used can
never exceed usage_limit even if a writer skips the condition.
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "a7c1e9d2b4f6"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

ROLE_VALUES = ("superadmin", "bigadmin", "admin", "teacher", "parent", "student")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    """Create users, class_subjects, invite_tokens and parent_invites."""
    user_role_enum = postgresql.ENUM(*ROLE_VALUES, name="user_role", create_type=False)
    user_role_enum.create(op.get_bind(), checkfirst=True)

    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), nullable=False),
        *_timestamps(),
        sa.Column("tenant_id", sa.Uuid(), nullable=True),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("first_name", sa.String(length=100), nullable=False),
        sa.Column("last_name", sa.String(length=100), nullable=False),
        sa.Column("role", user_role_enum, nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_users_tenant_id", "users", ["tenant_id"])
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "class_subjects",
        sa.Column("id", sa.Uuid(), nullable=False),
        *_timestamps(),
        sa.Column("tenant_id", sa.Uuid(), nullable=False),
        sa.Column("class_id", sa.Uuid(), nullable=False),
        sa.Column("teacher_id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_class_subjects_tenant_id", "class_subjects", ["tenant_id"])
    op.create_index(
        "ix_class_subjects_teacher_class", "class_subjects", ["teacher_id", "class_id"]
    )

    op.create_table(
        "invite_tokens",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("code", sa.String(length=64), nullable=False),
        sa.Column("role", user_role_enum, nullable=False),
        sa.Column("tenant_id", sa.Uuid(), nullable=True),
        sa.Column("class_id", sa.Uuid(), nullable=True),
        sa.Column("created_by", sa.Uuid(), nullable=True),
        sa.Column("usage_limit", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("times_used", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("code", name="uq_invite_tokens_code"),
        sa.CheckConstraint("usage_limit > 0", name="ck_invite_tokens_usage_limit_positive"),
        sa.CheckConstraint(
            "times_used >= 0 AND times_used <= usage_limit",
            name="ck_invite_tokens_times_used_bounds",
        ),
    )
    op.create_index("ix_invite_tokens_created_by", "invite_tokens", ["created_by"])
    op.create_index("ix_invite_tokens_tenant_expires", "invite_tokens", ["tenant_id", "expires_at"])

    op.create_table(
        "parent_invites",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("code", sa.String(length=64), nullable=False),
        sa.Column("student_id", sa.Uuid(), nullable=False),
        sa.Column("tenant_id", sa.Uuid(), nullable=False),
        sa.Column("created_by", sa.Uuid(), nullable=False),
        sa.Column("usage_limit", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("times_used", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("used_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("parent_id", sa.Uuid(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("code", name="uq_parent_invites_code"),
        sa.CheckConstraint("usage_limit > 0", name="ck_parent_invites_usage_limit_positive"),
        sa.CheckConstraint(
            "times_used >= 0 AND times_used <= usage_limit",
            name="ck_parent_invites_times_used_bounds",
        ),
    )
    op.create_index("ix_parent_invites_student_id", "parent_invites", ["student_id"])
    op.create_index(
        "ix_parent_invites_tenant_expires", "parent_invites", ["tenant_id", "expires_at"]
    )


def downgrade() -> None:
    """Drop all onboarding tables and the user_role enum."""
    op.drop_index("ix_parent_invites_tenant_expires", table_name="parent_invites")
    op.drop_index("ix_parent_invites_student_id", table_name="parent_invites")
    op.drop_table("parent_invites")

    op.drop_index("ix_invite_tokens_tenant_expires", table_name="invite_tokens")
    op.drop_index("ix_invite_tokens_created_by", table_name="invite_tokens")
    op.drop_table("invite_tokens")

    op.drop_index("ix_class_subjects_teacher_class", table_name="class_subjects")
    op.drop_index("ix_class_subjects_tenant_id", table_name="class_subjects")
    op.drop_table("class_subjects")

    op.drop_index("ix_users_email", table_name="users")
    op.drop_index("ix_users_tenant_id", table_name="users")
    op.drop_table("users")

    postgresql.ENUM(name="user_role").drop(op.get_bind(), checkfirst=True)
