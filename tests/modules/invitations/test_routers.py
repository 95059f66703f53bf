"""
HTTP tests for the invitation and parent-invite routers.

The service runs over the in-memory stores from conftest; authentication is
replaced with a caller chosen per test.
"""

from uuid import UUID, uuid4

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from onboarding.api import api_router
from onboarding.core import rate_limit
from onboarding.core.auth import CurrentUser, get_current_user, get_optional_user
from onboarding.core.config import settings
from onboarding.modules.invitations.dependencies import get_invitation_service
from onboarding.modules.invitations.repository import InviteTokenRepository
from onboarding.modules.invitations.service import InvitationService
from onboarding.modules.roles.models import Role


class Caller:
    """Mutable holder for the authenticated user id."""

    def __init__(self):
        self.user_id: UUID | None = None

    def current(self) -> CurrentUser:
        return CurrentUser(id=self.user_id)

    def optional(self) -> CurrentUser | None:
        return CurrentUser(id=self.user_id) if self.user_id else None


@pytest.fixture(autouse=True)
def clear_rate_limits():
    rate_limit._memory_store.clear()
    yield
    rate_limit._memory_store.clear()


@pytest.fixture
def caller():
    return Caller()


@pytest.fixture
def client(service, caller):
    app = FastAPI()
    app.include_router(api_router, prefix="/api/v1")
    app.dependency_overrides[get_invitation_service] = lambda: service
    app.dependency_overrides[get_current_user] = caller.current
    app.dependency_overrides[get_optional_user] = caller.optional
    return TestClient(app)


def issue(client, caller, actor_id, **body) -> str:
    caller.user_id = actor_id
    response = client.post("/api/v1/invitations", json=body)
    assert response.status_code == 201, response.text
    return response.json()["code"]


class TestIssueEndpoint:
    """Tests for POST /invitations."""

    def test_admin_issues_teacher_token(self, client, caller, cast):
        caller.user_id = cast.admin
        response = client.post(
            "/api/v1/invitations",
            json={"role": "Teacher", "tenant_id": str(cast.tenant_a), "usage_limit": 3},
        )

        assert response.status_code == 201
        body = response.json()
        assert body["role"] == Role.TEACHER.value
        assert body["usage_limit"] == 3
        assert len(body["code"]) == 16

    def test_disallowed_role_is_forbidden(self, client, caller, cast):
        caller.user_id = cast.teacher
        response = client.post(
            "/api/v1/invitations", json={"role": "admin", "tenant_id": str(cast.tenant_a)}
        )

        assert response.status_code == 403
        assert response.json()["detail"]["error"] == "PERMISSION_DENIED"

    def test_unknown_caller_is_unauthenticated(self, client, caller):
        caller.user_id = uuid4()
        response = client.post("/api/v1/invitations", json={"role": "teacher"})

        assert response.status_code == 401

    def test_request_validation(self, client, caller, cast):
        caller.user_id = cast.admin
        assert client.post("/api/v1/invitations", json={"role": "janitor"}).status_code == 422
        response = client.post(
            "/api/v1/invitations",
            json={"role": "teacher", "tenant_id": str(cast.tenant_a), "usage_limit": 0},
        )
        assert response.status_code == 422

    def test_invitable_roles(self, client, caller, cast):
        caller.user_id = cast.big_admin
        response = client.get("/api/v1/invitations/invitable-roles")

        assert response.status_code == 200
        assert response.json()["roles"] == [Role.ADMIN.value, Role.TEACHER.value]


class TestPublicCodeEndpoints:
    """Tests for POST /invitations/validate and /invitations/redeem."""

    def test_validate_does_not_consume(self, client, caller, cast):
        code = issue(client, caller, cast.admin, role="teacher", tenant_id=str(cast.tenant_a))
        caller.user_id = None

        for _ in range(2):
            response = client.post("/api/v1/invitations/validate", json={"code": code})
            assert response.status_code == 200
            assert response.json()["remaining_uses"] == 1

    def test_redeem_then_reuse(self, client, caller, cast):
        code = issue(client, caller, cast.admin, role="teacher", tenant_id=str(cast.tenant_a))
        caller.user_id = None

        first = client.post("/api/v1/invitations/redeem", json={"code": f"  {code} "})
        second = client.post("/api/v1/invitations/redeem", json={"code": code})

        assert first.status_code == 200
        assert first.json()["granted_role"] == Role.TEACHER.value
        assert first.json()["tenant_id"] == str(cast.tenant_a)
        assert second.status_code == 400
        assert second.json()["detail"]["error"] == "INVALID_INVITE"

    def test_unknown_and_used_codes_look_the_same(self, client, caller, cast):
        code = issue(client, caller, cast.admin, role="teacher", tenant_id=str(cast.tenant_a))
        caller.user_id = None
        client.post("/api/v1/invitations/redeem", json={"code": code})

        used = client.post("/api/v1/invitations/validate", json={"code": code})
        unknown = client.post("/api/v1/invitations/validate", json={"code": "NoSuchCode000000"})

        assert used.status_code == unknown.status_code == 400
        assert used.json() == unknown.json()

    def test_failure_reason_exposed_when_configured(self, client, caller, monkeypatch):
        monkeypatch.setattr(settings, "expose_invite_failure_reason", True)
        caller.user_id = None

        response = client.post("/api/v1/invitations/redeem", json={"code": "NoSuchCode000000"})

        assert response.status_code == 404
        assert response.json()["detail"]["error"] == "INVALID_TOKEN"

    def test_rate_limited(self, client, caller, monkeypatch):
        monkeypatch.setattr(settings, "invite_redeem_rate_limit", 2)
        caller.user_id = None

        probe = {"code": "Probe00000000000"}
        statuses = [
            client.post("/api/v1/invitations/validate", json=probe).status_code for _ in range(3)
        ]

        assert statuses == [400, 400, 429]


class TestRevokeAndCleanupEndpoints:
    def test_creator_revokes(self, client, caller, cast):
        code = issue(client, caller, cast.admin, role="teacher", tenant_id=str(cast.tenant_a))

        response = client.post(f"/api/v1/invitations/{code}/revoke")

        assert response.status_code == 204
        caller.user_id = None
        assert client.post("/api/v1/invitations/redeem", json={"code": code}).status_code == 400

    def test_other_school_cannot_revoke(self, client, caller, cast):
        code = issue(client, caller, cast.admin, role="teacher", tenant_id=str(cast.tenant_a))
        caller.user_id = cast.admin_b

        response = client.post(f"/api/v1/invitations/{code}/revoke")

        assert response.status_code == 404

    def test_tenant_listing_requires_admin(self, client, caller, cast):
        issue(client, caller, cast.admin, role="teacher", tenant_id=str(cast.tenant_a))

        caller.user_id = cast.big_admin
        listed = client.get(f"/api/v1/invitations/tenants/{cast.tenant_a}")
        caller.user_id = cast.teacher
        denied = client.get(f"/api/v1/invitations/tenants/{cast.tenant_a}")

        assert listed.status_code == 200
        assert listed.json()["total"] == 1
        assert denied.status_code == 403

    def test_cleanup(self, client, caller, cast):
        caller.user_id = cast.admin
        response = client.delete(f"/api/v1/invitations/tenants/{cast.tenant_a}/expired")

        assert response.status_code == 200
        assert response.json() == {"deleted": 0}


class TestParentInviteEndpoints:
    def test_issue_and_redeem(self, client, caller, cast):
        caller.user_id = cast.admin
        created = client.post(
            "/api/v1/parent-invites",
            json={"student_id": str(cast.student), "tenant_id": str(cast.tenant_a)},
        )
        assert created.status_code == 201
        code = created.json()["code"]

        caller.user_id = cast.parent
        linked = client.post("/api/v1/parent-invites/redeem", json={"code": code})
        again = client.post("/api/v1/parent-invites/redeem", json={"code": code})

        assert linked.status_code == 200
        assert linked.json()["student_id"] == str(cast.student)
        assert linked.json()["parent_id"] == str(cast.parent)
        assert again.status_code == 400
        assert again.json()["detail"]["error"] == "INVALID_INVITE"

    def test_non_parent_cannot_redeem(self, client, caller, cast):
        caller.user_id = cast.admin
        created = client.post(
            "/api/v1/parent-invites",
            json={"student_id": str(cast.student), "tenant_id": str(cast.tenant_a)},
        )

        caller.user_id = cast.teacher
        response = client.post(
            "/api/v1/parent-invites/redeem", json={"code": created.json()["code"]}
        )

        assert response.status_code == 403


class TestStorageFailureResponses:
    """A broken database yields a generic 500 without driver details."""

    @pytest.fixture
    def broken_client(self, caller, identity, membership):
        # No tables: every statement fails inside the driver
        session_maker = async_sessionmaker(create_async_engine("sqlite+aiosqlite://"))

        async def service_without_tables():
            async with session_maker() as db:
                yield InvitationService(
                    store=InviteTokenRepository(db),
                    identity=identity,
                    class_membership=membership,
                )

        app = FastAPI()
        app.include_router(api_router, prefix="/api/v1")
        app.dependency_overrides[get_invitation_service] = service_without_tables
        app.dependency_overrides[get_optional_user] = caller.optional
        return TestClient(app)

    @pytest.mark.parametrize("path", ["/api/v1/invitations/redeem", "/api/v1/invitations/validate"])
    def test_public_endpoints_hide_storage_details(self, broken_client, path):
        response = broken_client.post(path, json={"code": "AbCdSecretCode99"})

        assert response.status_code == 500
        assert response.json()["detail"]["error"] == "INTERNAL_ERROR"
        assert "SQL" not in response.text
        assert "parameters" not in response.text
        assert "AbCdSecretCode99" not in response.text
