"""
Issue Bootstrap Token

Issues the one-time SUPER_ADMIN invitation token used to set up the platform.
Redeeming it through POST /api/v1/invitations/redeem grants the SUPER_ADMIN role.

Refuses to run when an active SUPER_ADMIN already exists, unless --force.

Usage:
    python scripts/issue_bootstrap_token.py [--ttl-hours 24] [--force]
"""

import argparse
import asyncio
import sys
from datetime import timedelta

from sqlalchemy import select

from onboarding.core.config import configure_logging, settings
from onboarding.core.database import async_session_maker, close_db
from onboarding.modules.invitations.service import build_invitation_service
from onboarding.modules.roles.models import Role
from onboarding.modules.shared import utcnow
from onboarding.modules.users.models import User


async def issue_bootstrap_token(ttl_hours: int, force: bool) -> int:
    """Issue the token and print it. Returns the process exit code."""
    async with async_session_maker() as db:
        result = await db.execute(
            select(User.id).where(User.role == Role.SUPER_ADMIN, User.is_active.is_(True)).limit(1)
        )
        existing_admin = result.scalar_one_or_none()

        if existing_admin is not None and not force:
            print(f"A SUPER_ADMIN already exists (id {existing_admin}).")
            print("Use --force to issue a bootstrap token anyway.")
            return 1

        service = build_invitation_service(db)
        expires_at = utcnow() + timedelta(hours=ttl_hours)
        code = await service.issue_bootstrap_token(expires_at=expires_at)

    print("Bootstrap token issued successfully!")
    print(f"  Code:    {code}")
    print("  Role:    superadmin")
    print(f"  Expires: {expires_at.isoformat()}")
    print("\nThis code is single-use and is not shown again.")
    return 0


async def main() -> int:
    parser = argparse.ArgumentParser(description="Issue the one-time SUPER_ADMIN token.")
    parser.add_argument(
        "--ttl-hours",
        type=int,
        default=settings.bootstrap_token_ttl_hours,
        help="Hours until the token expires",
    )
    parser.add_argument("--force", action="store_true", help="Issue even if a SUPER_ADMIN exists")
    args = parser.parse_args()

    if args.ttl_hours < 1:
        parser.error("--ttl-hours must be at least 1")

    configure_logging()
    try:
        return await issue_bootstrap_token(args.ttl_hours, args.force)
    finally:
        await close_db()


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
