"""
Fixtures for invitation tests.

The in-memory stores mirror the SQL repository contract. Each atomic
operation yields to the event loop once *before* touching state and never
between its check and its mutation, so concurrent callers interleave the
way they would against a database without breaking atomicity.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from uuid import UUID, uuid4

import pytest

from onboarding.modules.invitations.collaborators import Identity
from onboarding.modules.invitations.generator import TokenGenerator
from onboarding.modules.invitations.models import InviteToken, ParentInvite
from onboarding.modules.invitations.repository import StoreOutcome
from onboarding.modules.invitations.service import InvitationService
from onboarding.modules.roles.models import Role


class InMemoryTokenStore:
    """InviteTokenStore over a dict keyed by code."""

    def __init__(self):
        self.tokens: dict[str, InviteToken] = {}
        self.create_attempts: list[str] = []
        self.increment_calls = 0

    async def create_if_absent(self, token: InviteToken) -> StoreOutcome:
        await asyncio.sleep(0)
        self.create_attempts.append(token.code)
        if token.code in self.tokens:
            return StoreOutcome.COLLISION
        self.tokens[token.code] = token
        return StoreOutcome.OK

    async def find_by_code(self, code: str, tenant_id: UUID | None = None) -> InviteToken | None:
        await asyncio.sleep(0)
        token = self.tokens.get(code)
        if token is None:
            return None
        if tenant_id is not None and token.tenant_id != tenant_id:
            return None
        return token

    async def atomic_increment_usage(
        self, code: str, as_of: datetime | None = None
    ) -> StoreOutcome:
        await asyncio.sleep(0)
        self.increment_calls += 1
        token = self.tokens.get(code)
        if token is None:
            return StoreOutcome.NOT_FOUND
        if as_of is not None and token.is_expired(as_of):
            return StoreOutcome.EXPIRED
        if token.times_used >= token.usage_limit:
            return StoreOutcome.LIMIT_REACHED
        token.times_used += 1
        return StoreOutcome.OK

    async def mark_revoked(self, code: str) -> StoreOutcome:
        await asyncio.sleep(0)
        token = self.tokens.get(code)
        if token is None:
            return StoreOutcome.NOT_FOUND
        token.times_used = token.usage_limit
        return StoreOutcome.OK

    async def delete_expired(self, tenant_id: UUID | None, as_of: datetime) -> int:
        await asyncio.sleep(0)
        expired = [
            code
            for code, token in self.tokens.items()
            if token.tenant_id == tenant_id
            and token.expires_at is not None
            and token.expires_at < as_of
        ]
        for code in expired:
            del self.tokens[code]
        return len(expired)

    async def list_by_creator(self, creator_id: UUID) -> list[InviteToken]:
        return [t for t in self.tokens.values() if t.created_by == creator_id]

    async def list_by_tenant(self, tenant_id: UUID) -> list[InviteToken]:
        return [t for t in self.tokens.values() if t.tenant_id == tenant_id]


class InMemoryParentInviteStore:
    """ParentInviteStore over a dict keyed by code."""

    def __init__(self):
        self.invites: dict[str, ParentInvite] = {}

    async def create_if_absent(self, invite: ParentInvite) -> StoreOutcome:
        await asyncio.sleep(0)
        if invite.code in self.invites:
            return StoreOutcome.COLLISION
        self.invites[invite.code] = invite
        return StoreOutcome.OK

    async def find_by_code(self, code: str) -> ParentInvite | None:
        await asyncio.sleep(0)
        return self.invites.get(code)

    async def atomic_redeem(self, code: str, parent_id: UUID, used_at: datetime) -> StoreOutcome:
        await asyncio.sleep(0)
        invite = self.invites.get(code)
        if invite is None:
            return StoreOutcome.NOT_FOUND
        if invite.is_expired(used_at):
            return StoreOutcome.EXPIRED
        if invite.times_used >= invite.usage_limit:
            return StoreOutcome.LIMIT_REACHED
        invite.times_used += 1
        invite.parent_id = parent_id
        invite.used_at = used_at
        return StoreOutcome.OK

    async def mark_revoked(self, code: str) -> StoreOutcome:
        invite = self.invites.get(code)
        if invite is None:
            return StoreOutcome.NOT_FOUND
        invite.times_used = invite.usage_limit
        return StoreOutcome.OK

    async def delete_expired(self, tenant_id: UUID, as_of: datetime) -> int:
        expired = [
            code
            for code, invite in self.invites.items()
            if invite.tenant_id == tenant_id
            and invite.expires_at is not None
            and invite.expires_at < as_of
        ]
        for code in expired:
            del self.invites[code]
        return len(expired)

    async def list_by_tenant(
        self, tenant_id: UUID, pending_only: bool = False
    ) -> list[ParentInvite]:
        return [
            invite
            for invite in self.invites.values()
            if invite.tenant_id == tenant_id and (not pending_only or invite.is_active)
        ]


class FakeIdentityLookup:
    """IdentityLookup over registered users."""

    def __init__(self):
        self.users: dict[UUID, Identity] = {}

    def add(self, role: Role | None, tenant_id: UUID | None = None) -> UUID:
        user_id = uuid4()
        self.users[user_id] = Identity(user_id=user_id, role=role, tenant_id=tenant_id)
        return user_id

    async def lookup(self, user_id: UUID) -> Identity | None:
        return self.users.get(user_id)


class FakeClassMembership:
    def __init__(self):
        self.assignments: set[tuple[UUID, UUID]] = set()

    def assign(self, teacher_id: UUID, class_id: UUID) -> None:
        self.assignments.add((teacher_id, class_id))

    async def teaches_class(self, teacher_id: UUID, class_id: UUID) -> bool:
        return (teacher_id, class_id) in self.assignments


class SequenceGenerator(TokenGenerator):
    """Hands out scripted codes first, then random ones."""

    def __init__(self, codes: list[str] | None = None):
        super().__init__()
        self.scripted = list(codes or [])
        self.issued: list[str] = []

    def generate_candidate(self, length: int | None = None) -> str:
        code = self.scripted.pop(0) if self.scripted else super().generate_candidate(length)
        self.issued.append(code)
        return code


@dataclass
class FakeClock:
    now: datetime = field(default_factory=lambda: datetime(2026, 3, 1, 8, 0, tzinfo=UTC))

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@dataclass
class Cast:
    """Users of two schools plus a platform SuperAdmin."""

    tenant_a: UUID
    tenant_b: UUID
    super_admin: UUID
    big_admin: UUID
    admin: UUID
    teacher: UUID
    other_teacher: UUID
    parent: UUID
    student: UUID
    admin_b: UUID
    parent_b: UUID


@pytest.fixture
def token_store():
    return InMemoryTokenStore()


@pytest.fixture
def parent_store():
    return InMemoryParentInviteStore()


@pytest.fixture
def identity():
    return FakeIdentityLookup()


@pytest.fixture
def membership():
    return FakeClassMembership()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def generator():
    return SequenceGenerator()


@pytest.fixture
def cast(identity):
    tenant_a = uuid4()
    tenant_b = uuid4()
    return Cast(
        tenant_a=tenant_a,
        tenant_b=tenant_b,
        super_admin=identity.add(Role.SUPER_ADMIN),
        big_admin=identity.add(Role.BIG_ADMIN, tenant_a),
        admin=identity.add(Role.ADMIN, tenant_a),
        teacher=identity.add(Role.TEACHER, tenant_a),
        other_teacher=identity.add(Role.TEACHER, tenant_a),
        parent=identity.add(Role.PARENT, tenant_a),
        student=identity.add(Role.STUDENT, tenant_a),
        admin_b=identity.add(Role.ADMIN, tenant_b),
        parent_b=identity.add(Role.PARENT, tenant_b),
    )


@pytest.fixture
def service(token_store, parent_store, identity, membership, generator, clock):
    return InvitationService(
        store=token_store,
        identity=identity,
        class_membership=membership,
        parent_store=parent_store,
        generator=generator,
        clock=clock,
    )
