"""
Invitations Background Jobs

Periodic sweep deleting expired invitation tokens and parent invites.

- Runs every INVITE_CLEANUP_INTERVAL_HOURS (default 24)
- Works table by table and school by school, each in its own session, so
  one failing table or school does not stop the sweep
- Idempotent: re-running only finds what expired since
"""

import logging
from typing import Any

from apscheduler.triggers.interval import IntervalTrigger

from onboarding.core.config import settings
from onboarding.core.database import async_session_maker
from onboarding.core.scheduler import register_job
from onboarding.modules.invitations.repository import (
    InviteTokenRepository,
    ParentInviteRepository,
)
from onboarding.modules.shared import utcnow

logger = logging.getLogger(__name__)

JOB_ID_SWEEP_EXPIRED = "invitations_sweep_expired"

REPOSITORIES = {
    "invite_tokens": InviteTokenRepository,
    "parent_invites": ParentInviteRepository,
}


async def sweep_expired_invitations() -> dict[str, Any]:
    """
    Delete expired invite tokens and parent invites, tenant by tenant.

    Returns:
        Dict with per-table deletion counts and any per-tenant errors
    """
    now = utcnow()
    results: dict[str, Any] = {
        "as_of": now.isoformat(),
        "deleted": {table: 0 for table in REPOSITORIES},
        "errors": [],
    }

    logger.info("Starting expired invitation sweep...")

    for table, repository_cls in REPOSITORIES.items():
        try:
            async with async_session_maker() as db:
                tenant_ids = await repository_cls(db).tenants_with_expired(now)
        except Exception as e:
            logger.error(f"Error listing expired {table}: {e}", exc_info=True)
            results["errors"].append({"table": table, "tenant_id": None, "error": str(e)})
            continue

        for tenant_id in tenant_ids:
            try:
                async with async_session_maker() as db:
                    deleted = await repository_cls(db).delete_expired(tenant_id, now)
                results["deleted"][table] += deleted
            except Exception as e:
                logger.error(
                    f"Error sweeping {table} for tenant {tenant_id}: {e}",
                    exc_info=True,
                )
                results["errors"].append(
                    {"table": table, "tenant_id": str(tenant_id), "error": str(e)}
                )

    logger.info(
        f"Expired invitation sweep completed. "
        f"Tokens: {results['deleted']['invite_tokens']}, "
        f"parent invites: {results['deleted']['parent_invites']}, "
        f"errors: {len(results['errors'])}"
    )

    return results


def register_invitation_jobs() -> None:
    """
    Register invitation background jobs with the scheduler.

    Call during application startup, before the scheduler is started.
    """
    hours = settings.invite_cleanup_interval_hours

    register_job(
        job_id=JOB_ID_SWEEP_EXPIRED,
        func=sweep_expired_invitations,
        trigger=IntervalTrigger(hours=hours),
    )
    logger.info(f"Registered job: {JOB_ID_SWEEP_EXPIRED} (interval: {hours} hours)")
