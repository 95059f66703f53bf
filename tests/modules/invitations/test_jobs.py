"""
Tests for the expired-invitation sweep job.
"""

from datetime import UTC, datetime, timedelta
from uuid import uuid4

import pytest
import pytest_asyncio
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from onboarding.core import scheduler
from onboarding.core.database import Base
from onboarding.modules.invitations import jobs
from onboarding.modules.invitations.errors import StorageError
from onboarding.modules.invitations.models import InviteToken, ParentInvite
from onboarding.modules.invitations.repository import InviteTokenRepository
from onboarding.modules.roles.models import Role

CREATED = datetime(2020, 1, 1, tzinfo=UTC)


class UnreadableTokenRepository(InviteTokenRepository):
    async def tenants_with_expired(self, as_of):
        raise StorageError()


@pytest_asyncio.fixture
async def session_maker(monkeypatch):
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    maker = async_sessionmaker(engine, expire_on_commit=False)
    monkeypatch.setattr(jobs, "async_session_maker", maker)
    yield maker

    await engine.dispose()


class TestSweepExpiredInvitations:
    @pytest.mark.asyncio
    async def test_deletes_expired_rows_across_tenants(self, session_maker):
        past = datetime.now(UTC) - timedelta(days=1)
        future = datetime.now(UTC) + timedelta(days=1)
        tenant_a, tenant_b = uuid4(), uuid4()

        async with session_maker() as db:
            db.add_all(
                [
                    InviteToken(
                        code=f"Token{i:011d}",
                        role=Role.TEACHER,
                        tenant_id=tenant_id,
                        usage_limit=1,
                        times_used=0,
                        expires_at=expires_at,
                        created_at=CREATED,
                    )
                    for i, (tenant_id, expires_at) in enumerate(
                        [(tenant_a, past), (tenant_b, past), (None, past), (tenant_a, future)]
                    )
                ]
            )
            db.add(
                ParentInvite(
                    code="ParentExpired001",
                    student_id=uuid4(),
                    tenant_id=tenant_a,
                    created_by=uuid4(),
                    usage_limit=1,
                    times_used=0,
                    expires_at=past,
                    created_at=CREATED,
                )
            )
            await db.commit()

        result = await jobs.sweep_expired_invitations()

        assert result["deleted"] == {"invite_tokens": 3, "parent_invites": 1}
        assert result["errors"] == []

        again = await jobs.sweep_expired_invitations()
        assert again["deleted"] == {"invite_tokens": 0, "parent_invites": 0}

    @pytest.mark.asyncio
    async def test_failing_table_does_not_stop_the_sweep(self, session_maker, monkeypatch):
        monkeypatch.setitem(jobs.REPOSITORIES, "invite_tokens", UnreadableTokenRepository)
        async with session_maker() as db:
            db.add(
                ParentInvite(
                    code="ParentExpired002",
                    student_id=uuid4(),
                    tenant_id=uuid4(),
                    created_by=uuid4(),
                    usage_limit=1,
                    times_used=0,
                    expires_at=datetime.now(UTC) - timedelta(hours=1),
                    created_at=CREATED,
                )
            )
            await db.commit()

        result = await jobs.sweep_expired_invitations()

        assert result["deleted"] == {"invite_tokens": 0, "parent_invites": 1}
        assert len(result["errors"]) == 1
        assert result["errors"][0]["table"] == "invite_tokens"
        assert result["errors"][0]["tenant_id"] is None


class TestRegisterInvitationJobs:
    def test_registers_interval_job(self, monkeypatch):
        monkeypatch.setattr(scheduler, "_job_registry", {})
        monkeypatch.setattr(scheduler, "_scheduler", None)

        jobs.register_invitation_jobs()

        func, trigger = scheduler._job_registry[jobs.JOB_ID_SWEEP_EXPIRED]
        assert func is jobs.sweep_expired_invitations
        assert isinstance(trigger, IntervalTrigger)
