"""
Invitation Service Layer

Business logic for onboarding accounts with invitation tokens.

This module implements:
1. Token Generation:
   - Resolve the actor's role and school through the identity lookup
   - Check the invitable-role hierarchy (who may invite whom)
   - Teacher -> Student invites are bound to a class the teacher teaches
   - Store the token under a fresh random code, retrying on collision

2. Redemption:
   - Look up the code (scoped to a school when the caller names one)
   - Reject expired codes before exhausted ones
   - Consume one use with the store's atomic conditional update

3. Revocation and Cleanup:
   - Creators and school admins may revoke (forced exhaustion)
   - School admins may delete expired tokens of their school

4. Parent Invites:
   - Admins link a parent account to a student with a single-use code

Security considerations:
- Codes come from the `secrets` CSPRNG (62-symbol alphabet, 16 chars)
- Permission and validation checks run before any mutation
- Tokens of another school are reported as invalid, never as forbidden
- Usage counters are never read-modified-written here
- Codes are never logged in full
"""

import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from onboarding.core.config import settings
from onboarding.modules.invitations.collaborators import (
    ClassMembership,
    Identity,
    IdentityLookup,
    SqlClassMembership,
    SqlIdentityLookup,
)
from onboarding.modules.invitations.errors import (
    GenerationExhaustedError,
    InvalidTokenError,
    InvitationServiceError,
    InviteValidationError,
    NotAuthenticatedError,
    PermissionDeniedError,
    StorageError,
    TokenExhaustedError,
    TokenExpiredError,
)
from onboarding.modules.invitations.generator import TokenGenerator
from onboarding.modules.invitations.models import InviteToken, ParentInvite
from onboarding.modules.invitations.repository import (
    InviteTokenRepository,
    InviteTokenStore,
    ParentInviteRepository,
    ParentInviteStore,
    StoreOutcome,
)
from onboarding.modules.roles.models import Role
from onboarding.modules.roles.policy import (
    can_generate_invite_for,
    invitable_roles,
    is_tenant_admin,
    role_level,
)
from onboarding.modules.shared import ensure_utc, utcnow

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 5

Clock = Callable[[], datetime]

__all__ = [
    "InvitationService",
    "InvitationServiceError",
    "PermissionDeniedError",
    "InviteValidationError",
    "NotAuthenticatedError",
    "InvalidTokenError",
    "TokenExpiredError",
    "TokenExhaustedError",
    "GenerationExhaustedError",
    "StorageError",
    "RedemptionContext",
    "RedemptionGrant",
    "ParentLinkGrant",
    "build_invitation_service",
]


def _code_prefix(code: str) -> str:
    """Loggable form of a code."""
    return f"{code[:4]}..."


@dataclass(frozen=True)
class RedemptionContext:
    """
    Who is redeeming, and in which school.

    When tenant_id is set, only tokens of that school are visible.
    """

    redeemer_id: UUID | None = None
    tenant_id: UUID | None = None


@dataclass(frozen=True)
class RedemptionGrant:
    """What a successful redemption entitles the redeemer to."""

    granted_role: Role
    tenant_id: UUID | None
    class_id: UUID | None


@dataclass(frozen=True)
class ParentLinkGrant:
    """A parent account linked to a student by a redeemed parent invite."""

    student_id: UUID
    tenant_id: UUID
    parent_id: UUID


class InvitationService:
    """
    Issues, redeems, revokes and cleans up invitation tokens.

    The service holds no state of its own besides its collaborators; one
    instance is built per request around a request-scoped session.
    """

    def __init__(
        self,
        store: InviteTokenStore,
        identity: IdentityLookup,
        class_membership: ClassMembership,
        parent_store: ParentInviteStore | None = None,
        generator: TokenGenerator | None = None,
        clock: Clock = utcnow,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ):
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {max_attempts}")

        self.store = store
        self.identity = identity
        self.class_membership = class_membership
        self.parent_store = parent_store
        self.generator = generator or TokenGenerator()
        self.clock = clock
        self.max_attempts = max_attempts

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _now(self) -> datetime:
        return ensure_utc(self.clock())

    async def _resolve_actor(self, actor_id: UUID | None) -> Identity:
        if actor_id is None:
            raise NotAuthenticatedError()

        actor = await self.identity.lookup(actor_id)
        if actor is None:
            logger.warning(f"Unknown or inactive actor {actor_id}")
            raise NotAuthenticatedError()
        return actor

    def _check_usage_and_expiry(
        self, usage_limit: int, expires_at: datetime | None
    ) -> datetime | None:
        """Validate usage limit and expiry, returning expiry as aware UTC."""
        if usage_limit < 1:
            raise InviteValidationError("usage_limit must be at least 1.")

        if expires_at is None:
            return None

        expires_at = ensure_utc(expires_at)
        if expires_at <= self._now():
            raise InviteValidationError("expires_at must be in the future.")
        return expires_at

    async def _store_with_fresh_code(
        self,
        build: Callable[[str], InviteToken | ParentInvite],
        create: Callable[[InviteToken | ParentInvite], Awaitable[StoreOutcome]],
    ) -> str:
        """
        Store a row under a freshly generated code.

        Every attempt draws a new candidate; a collision never reuses one.

        Raises:
            GenerationExhaustedError: If every attempt collided
        """
        for attempt in range(1, self.max_attempts + 1):
            code = self.generator.generate_candidate()
            outcome = await create(build(code))

            if outcome is StoreOutcome.OK:
                return code
            if outcome is not StoreOutcome.COLLISION:
                raise StorageError(f"Unexpected store outcome on create: {outcome.value}")

            logger.warning(f"Invite code collision (attempt {attempt}/{self.max_attempts})")

        logger.error(f"No unique invite code after {self.max_attempts} attempts")
        raise GenerationExhaustedError(self.max_attempts)

    def _check_revoke_rights(
        self, actor: Identity, created_by: UUID | None, tenant_id: UUID | None
    ) -> None:
        """
        Creators may always revoke. Otherwise the actor must administer the
        token's school; tokens of another school are reported as not found.
        """
        if created_by is not None and created_by == actor.user_id:
            return

        if actor.role is not Role.SUPER_ADMIN and actor.tenant_id != tenant_id:
            raise InvalidTokenError()

        if not is_tenant_admin(actor.role, actor.tenant_id, tenant_id):
            raise PermissionDeniedError("Only the creator or a school admin can revoke this code.")

    async def _require_tenant_admin(self, actor_id: UUID, tenant_id: UUID) -> Identity:
        actor = await self._resolve_actor(actor_id)
        if not is_tenant_admin(actor.role, actor.tenant_id, tenant_id):
            raise PermissionDeniedError("School admin privileges are required.")
        return actor

    def _require_parent_store(self) -> ParentInviteStore:
        if self.parent_store is None:
            raise RuntimeError("InvitationService was built without a parent invite store")
        return self.parent_store

    @staticmethod
    def _normalize_code(code: str) -> str:
        code = (code or "").strip()
        if not code:
            raise InvalidTokenError()
        return code

    # ------------------------------------------------------------------
    # Invitation tokens
    # ------------------------------------------------------------------

    async def generate_token(
        self,
        actor_id: UUID,
        target_role: Role | str,
        tenant_id: UUID | None,
        class_id: UUID | None = None,
        expires_at: datetime | None = None,
        usage_limit: int = 1,
    ) -> str:
        """
        Issue an invitation token for `target_role`.

        Returns:
            The new invite code

        Raises:
            NotAuthenticatedError: If the actor is unknown
            PermissionDeniedError: If the actor may not invite this role, into
                this school, or for this class
            InviteValidationError: If the parameters are invalid
            GenerationExhaustedError: If no unique code could be stored
        """
        actor = await self._resolve_actor(actor_id)

        target = Role.parse_or_none(target_role)
        if target is None:
            raise InviteValidationError(f"Unknown role: {target_role!r}")

        if not can_generate_invite_for(actor.role, target):
            logger.warning(
                f"User {actor.user_id} ({actor.role}) may not invite role {target.value}"
            )
            raise PermissionDeniedError(
                f"Your role cannot generate invites for the {target.value} role."
            )

        expires_at = self._check_usage_and_expiry(usage_limit, expires_at)

        if actor.role is not Role.SUPER_ADMIN:
            if tenant_id is None:
                raise InviteValidationError("tenant_id is required.")
            if actor.tenant_id != tenant_id:
                raise PermissionDeniedError("You can only invite into your own school.")

        if actor.role is Role.TEACHER and target is Role.STUDENT:
            if class_id is None:
                raise InviteValidationError("class_id is required for student invites.")
            if not await self.class_membership.teaches_class(actor.user_id, class_id):
                raise PermissionDeniedError("You can only invite students into classes you teach.")
        elif class_id is not None:
            raise InviteValidationError("class_id only applies to student invites from teachers.")

        created_at = self._now()

        def build(code: str) -> InviteToken:
            return InviteToken(
                code=code,
                role=target,
                tenant_id=tenant_id,
                class_id=class_id,
                created_by=actor.user_id,
                usage_limit=usage_limit,
                times_used=0,
                expires_at=expires_at,
                created_at=created_at,
            )

        code = await self._store_with_fresh_code(build, self.store.create_if_absent)
        logger.info(
            f"Invite token issued: code={_code_prefix(code)}, role={target.value}, "
            f"tenant={tenant_id}, by={actor.user_id}, limit={usage_limit}"
        )
        return code

    async def _load_usable_token(self, code: str, context: RedemptionContext) -> InviteToken:
        code = self._normalize_code(code)

        token = await self.store.find_by_code(code, tenant_id=context.tenant_id)
        if token is None:
            raise InvalidTokenError()

        # The store filters by tenant; check again so no store can leak across schools
        if context.tenant_id is not None and token.tenant_id != context.tenant_id:
            raise InvalidTokenError()

        if token.is_expired(self._now()):
            raise TokenExpiredError()

        if not token.is_active:
            raise TokenExhaustedError()

        return token

    async def validate_token(
        self, code: str, context: RedemptionContext | None = None
    ) -> InviteToken:
        """
        Check that a code could be redeemed right now, without consuming it.

        Raises:
            InvalidTokenError, TokenExpiredError, TokenExhaustedError
        """
        return await self._load_usable_token(code, context or RedemptionContext())

    async def redeem_token(
        self, code: str, context: RedemptionContext | None = None
    ) -> RedemptionGrant:
        """
        Consume one use of a code.

        Expiry is checked before exhaustion. The use itself is consumed by the
        store's conditional update, which also refuses a code that expired
        since it was read. Losing a race to the last use reports
        TokenExhaustedError and consumes nothing.

        Raises:
            InvalidTokenError: If the code does not exist (or was deleted meanwhile)
            TokenExpiredError: If the code is past its expiry
            TokenExhaustedError: If the code has no uses left
        """
        context = context or RedemptionContext()
        token = await self._load_usable_token(code, context)

        # Capture before the store touches the row
        grant = RedemptionGrant(
            granted_role=token.role,
            tenant_id=token.tenant_id,
            class_id=token.class_id,
        )

        outcome = await self.store.atomic_increment_usage(token.code, self._now())
        if outcome is StoreOutcome.EXPIRED:
            raise TokenExpiredError()
        if outcome is StoreOutcome.LIMIT_REACHED:
            raise TokenExhaustedError()
        if outcome is StoreOutcome.NOT_FOUND:
            raise InvalidTokenError()
        if outcome is not StoreOutcome.OK:
            raise StorageError(f"Unexpected store outcome on redeem: {outcome.value}")

        logger.info(
            f"Invite token redeemed: code={_code_prefix(token.code)}, "
            f"role={grant.granted_role.value}, redeemer={context.redeemer_id}"
        )
        return grant

    async def revoke_token(self, code: str, actor_id: UUID) -> None:
        """
        Revoke a code so it can no longer be redeemed.

        Allowed for the creator and for admins of the token's school.

        Raises:
            InvalidTokenError: If the code does not exist or belongs to another school
            PermissionDeniedError: If the actor may not revoke it
        """
        actor = await self._resolve_actor(actor_id)
        code = self._normalize_code(code)

        token = await self.store.find_by_code(code)
        if token is None:
            raise InvalidTokenError()

        self._check_revoke_rights(actor, token.created_by, token.tenant_id)

        if await self.store.mark_revoked(code) is StoreOutcome.NOT_FOUND:
            raise InvalidTokenError()

        logger.info(f"Invite token revoked: code={_code_prefix(code)}, by={actor.user_id}")

    async def cleanup_expired(self, tenant_id: UUID, actor_id: UUID) -> int:
        """
        Delete the school's expired tokens.

        Returns:
            Number of tokens deleted
        """
        actor = await self._require_tenant_admin(actor_id, tenant_id)
        deleted = await self.store.delete_expired(tenant_id, self._now())
        logger.info(
            f"Expired invite tokens deleted: tenant={tenant_id}, count={deleted}, "
            f"by={actor.user_id}"
        )
        return deleted

    async def invitable_roles_for(self, actor_id: UUID) -> list[Role]:
        """Roles the actor may invite, highest authority first."""
        actor = await self._resolve_actor(actor_id)
        return sorted(invitable_roles(actor.role), key=role_level)

    async def list_created_tokens(self, actor_id: UUID) -> Sequence[InviteToken]:
        actor = await self._resolve_actor(actor_id)
        return await self.store.list_by_creator(actor.user_id)

    async def list_tenant_tokens(self, tenant_id: UUID, actor_id: UUID) -> Sequence[InviteToken]:
        await self._require_tenant_admin(actor_id, tenant_id)
        return await self.store.list_by_tenant(tenant_id)

    async def issue_bootstrap_token(self, expires_at: datetime | None = None) -> str:
        """
        Issue the single-use SUPER_ADMIN token used to set up the platform.

        The token has no school and no creator. Only operators with direct
        access to the service (the bootstrap script) can call this.
        """
        expires_at = self._check_usage_and_expiry(1, expires_at)
        created_at = self._now()

        def build(code: str) -> InviteToken:
            return InviteToken(
                code=code,
                role=Role.SUPER_ADMIN,
                tenant_id=None,
                class_id=None,
                created_by=None,
                usage_limit=1,
                times_used=0,
                expires_at=expires_at,
                created_at=created_at,
            )

        code = await self._store_with_fresh_code(build, self.store.create_if_absent)
        logger.warning(f"Bootstrap SUPER_ADMIN token issued: code={_code_prefix(code)}")
        return code

    # ------------------------------------------------------------------
    # Parent invites
    # ------------------------------------------------------------------

    async def generate_parent_invite(
        self,
        actor_id: UUID,
        student_id: UUID,
        tenant_id: UUID,
        expires_at: datetime | None = None,
        usage_limit: int = 1,
    ) -> str:
        """
        Issue a code that links a parent account to a student.

        Raises:
            PermissionDeniedError: If the actor may not invite parents into this school
            InviteValidationError: If the student is not a student of the school
                or the parameters are invalid
        """
        store = self._require_parent_store()
        actor = await self._resolve_actor(actor_id)

        if not can_generate_invite_for(actor.role, Role.PARENT):
            raise PermissionDeniedError("Your role cannot generate parent invites.")

        expires_at = self._check_usage_and_expiry(usage_limit, expires_at)

        if actor.tenant_id is None or actor.tenant_id != tenant_id:
            raise PermissionDeniedError("You can only invite into your own school.")

        student = await self.identity.lookup(student_id)
        if student is None or student.role is not Role.STUDENT or student.tenant_id != tenant_id:
            raise InviteValidationError("student_id does not identify a student of this school.")

        created_at = self._now()

        def build(code: str) -> ParentInvite:
            return ParentInvite(
                code=code,
                student_id=student_id,
                tenant_id=tenant_id,
                created_by=actor.user_id,
                usage_limit=usage_limit,
                times_used=0,
                expires_at=expires_at,
                used_at=None,
                parent_id=None,
                created_at=created_at,
            )

        code = await self._store_with_fresh_code(build, store.create_if_absent)
        logger.info(
            f"Parent invite issued: code={_code_prefix(code)}, student={student_id}, "
            f"by={actor.user_id}"
        )
        return code

    async def redeem_parent_invite(self, code: str, parent_id: UUID) -> ParentLinkGrant:
        """
        Link the redeeming parent to the invite's student.

        Raises:
            NotAuthenticatedError: If the parent account is unknown
            InvalidTokenError: If the code does not exist or belongs to another school
            PermissionDeniedError: If the redeemer is not a parent
            TokenExpiredError, TokenExhaustedError
        """
        store = self._require_parent_store()
        parent = await self._resolve_actor(parent_id)
        code = self._normalize_code(code)

        invite = await store.find_by_code(code)
        if invite is None or parent.tenant_id != invite.tenant_id:
            raise InvalidTokenError()

        if parent.role is not Role.PARENT:
            raise PermissionDeniedError("Only parent accounts can redeem parent invites.")

        now = self._now()
        if invite.is_expired(now):
            raise TokenExpiredError()
        if not invite.is_active:
            raise TokenExhaustedError()

        grant = ParentLinkGrant(
            student_id=invite.student_id,
            tenant_id=invite.tenant_id,
            parent_id=parent.user_id,
        )

        outcome = await store.atomic_redeem(code, parent.user_id, now)
        if outcome is StoreOutcome.EXPIRED:
            raise TokenExpiredError()
        if outcome is StoreOutcome.LIMIT_REACHED:
            raise TokenExhaustedError()
        if outcome is StoreOutcome.NOT_FOUND:
            raise InvalidTokenError()
        if outcome is not StoreOutcome.OK:
            raise StorageError(f"Unexpected store outcome on redeem: {outcome.value}")

        logger.info(
            f"Parent invite redeemed: code={_code_prefix(code)}, "
            f"student={grant.student_id}, parent={grant.parent_id}"
        )
        return grant

    async def revoke_parent_invite(self, code: str, actor_id: UUID) -> None:
        store = self._require_parent_store()
        actor = await self._resolve_actor(actor_id)
        code = self._normalize_code(code)

        invite = await store.find_by_code(code)
        if invite is None:
            raise InvalidTokenError()

        self._check_revoke_rights(actor, invite.created_by, invite.tenant_id)

        if await store.mark_revoked(code) is StoreOutcome.NOT_FOUND:
            raise InvalidTokenError()

        logger.info(f"Parent invite revoked: code={_code_prefix(code)}, by={actor.user_id}")

    async def list_parent_invites(
        self, tenant_id: UUID, actor_id: UUID, pending_only: bool = False
    ) -> Sequence[ParentInvite]:
        store = self._require_parent_store()
        await self._require_tenant_admin(actor_id, tenant_id)
        return await store.list_by_tenant(tenant_id, pending_only=pending_only)

    async def cleanup_expired_parent_invites(self, tenant_id: UUID, actor_id: UUID) -> int:
        store = self._require_parent_store()
        actor = await self._require_tenant_admin(actor_id, tenant_id)
        deleted = await store.delete_expired(tenant_id, self._now())
        logger.info(
            f"Expired parent invites deleted: tenant={tenant_id}, count={deleted}, "
            f"by={actor.user_id}"
        )
        return deleted


def build_invitation_service(db: AsyncSession) -> InvitationService:
    """Wire an InvitationService to SQL-backed collaborators on one session."""
    return InvitationService(
        store=InviteTokenRepository(db),
        identity=SqlIdentityLookup(db),
        class_membership=SqlClassMembership(db),
        parent_store=ParentInviteRepository(db),
        generator=TokenGenerator(settings.invite_code_length),
        max_attempts=settings.invite_max_generation_attempts,
    )
