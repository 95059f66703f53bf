"""
School Onboarding API - Main Application Entry Point

This module initializes and configures the FastAPI application including:
- Logging
- Database and Redis connections
- Background job scheduler (expired invitation sweep)
- CORS middleware
- API routing
- Health check endpoints
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Response, status
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from onboarding import __version__
from onboarding.api import api_router
from onboarding.core.config import configure_logging, settings
from onboarding.core.database import async_session_maker, close_db, init_db
from onboarding.core.redis import close_redis, get_redis, init_redis
from onboarding.core.scheduler import (
    list_registered_jobs,
    start_scheduler,
    stop_scheduler,
    trigger_job_manually,
)
from onboarding.modules.invitations.jobs import register_invitation_jobs

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    """
    Application lifespan manager.

    Handles startup and shutdown events including:
    - Redis connection
    - Database connection
    - Background job scheduler
    """
    configure_logging()
    logger.info(f"Starting School Onboarding API in {settings.python_env} mode...")

    # Redis is optional outside production (rate limiting falls back to memory)
    try:
        await init_redis()
        logger.info("[OK] Redis connected")
    except Exception as e:
        logger.error(f"[FAIL] Redis connection failed: {e}")
        if settings.is_production:
            raise

    try:
        await init_db()
        logger.info("[OK] Database connected")
    except Exception as e:
        logger.error(f"[FAIL] Database connection failed: {e}")
        if settings.is_production:
            raise

    try:
        register_invitation_jobs()
        await start_scheduler()
        logger.info("[OK] Background scheduler started")
    except Exception as e:
        logger.error(f"[FAIL] Background scheduler failed to start: {e}")
        if settings.is_production:
            raise

    yield  # Application runs here

    logger.info("Shutting down School Onboarding API...")

    # Stop the scheduler first (wait for running jobs)
    await stop_scheduler()
    logger.info("[OK] Background scheduler stopped")

    await close_redis()
    await close_db()
    logger.info("[OK] Cleanup complete")


app = FastAPI(
    title="School Onboarding API",
    description="Invitation tokens and role-hierarchy authorization for multi-school management",
    version=__version__,
    docs_url="/docs" if settings.is_development else None,
    redoc_url="/redoc" if settings.is_development else None,
    lifespan=lifespan,
)

app.include_router(api_router, prefix="/api/v1")

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health", tags=["Health"])
async def health_check() -> dict[str, str]:
    """Health check endpoint for container orchestration."""
    return {"status": "healthy"}


@app.get("/ready", tags=["Health"])
async def readiness_check(response: Response) -> dict[str, str]:
    """
    Readiness check endpoint.

    503 when the database is unreachable. Redis is reported but optional.
    """
    checks = {"status": "ready", "database": "connected", "redis": "not initialized"}

    try:
        async with async_session_maker() as session:
            await session.execute(text("SELECT 1"))
    except Exception as e:
        logger.warning(f"Readiness check: database unavailable: {e}")
        checks["status"] = "not ready"
        checks["database"] = "error"
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    client = await get_redis()
    if client is not None:
        try:
            await client.ping()
            checks["redis"] = "connected"
        except Exception as e:
            logger.warning(f"Readiness check: redis unavailable: {e}")
            checks["redis"] = "error"

    return checks


# ============================================
# Background Job Debug Endpoints
# ============================================
# Development only. In production, jobs run automatically on schedule.

if settings.is_development:

    @app.get("/debug/jobs", tags=["Debug"])
    async def list_jobs():
        """List all registered background jobs and their next run time."""
        return {"jobs": list_registered_jobs()}

    @app.post("/debug/jobs/{job_id}/trigger", tags=["Debug"])
    async def trigger_job(job_id: str):
        """
        Run a background job immediately, bypassing its schedule.

        Raises:
            HTTPException 400: If job_id is not registered
        """
        try:
            return await trigger_job_manually(job_id)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e)) from e
