"""
Invitations Repository

Persistence for invitation tokens and parent invites.

Concurrency rules:
- Usage counters are only ever changed by a single conditional UPDATE
  (`... WHERE times_used < usage_limit`), so concurrent redemptions can never
  push times_used past usage_limit. Redemption UPDATEs also require the row
  to be unexpired, so expiry and usage are decided by the same statement.
  Reads are used to classify a zero-row result, never to decide the update.
- A duplicate code is reported as StoreOutcome.COLLISION, not raised; every
  other database failure is logged and raised as an opaque StorageError.
"""

import enum
import logging
from collections.abc import Sequence
from datetime import datetime
from typing import Protocol
from uuid import UUID

from sqlalchemy import delete, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from onboarding.modules.invitations.errors import StorageError
from onboarding.modules.invitations.models import InviteToken, ParentInvite
from onboarding.modules.shared import ensure_utc

logger = logging.getLogger(__name__)

UNIQUE_VIOLATION_SQLSTATE = "23505"


class StoreOutcome(str, enum.Enum):
    """Result of a store mutation."""

    OK = "ok"
    COLLISION = "collision"
    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    LIMIT_REACHED = "limit_reached"


class InviteTokenStore(Protocol):
    async def create_if_absent(self, token: InviteToken) -> StoreOutcome: ...

    async def find_by_code(
        self, code: str, tenant_id: UUID | None = None
    ) -> InviteToken | None: ...

    async def atomic_increment_usage(
        self, code: str, as_of: datetime | None = None
    ) -> StoreOutcome: ...

    async def mark_revoked(self, code: str) -> StoreOutcome: ...

    async def delete_expired(self, tenant_id: UUID | None, as_of: datetime) -> int: ...

    async def list_by_creator(self, creator_id: UUID) -> Sequence[InviteToken]: ...

    async def list_by_tenant(self, tenant_id: UUID) -> Sequence[InviteToken]: ...


class ParentInviteStore(Protocol):
    async def create_if_absent(self, invite: ParentInvite) -> StoreOutcome: ...

    async def find_by_code(self, code: str) -> ParentInvite | None: ...

    async def atomic_redeem(
        self, code: str, parent_id: UUID, used_at: datetime
    ) -> StoreOutcome: ...

    async def mark_revoked(self, code: str) -> StoreOutcome: ...

    async def delete_expired(self, tenant_id: UUID, as_of: datetime) -> int: ...

    async def list_by_tenant(
        self, tenant_id: UUID, pending_only: bool = False
    ) -> Sequence[ParentInvite]: ...


def is_unique_violation(error: IntegrityError) -> bool:
    """
    Whether an IntegrityError is a unique-constraint violation.

    asyncpg exposes the SQLSTATE on the driver error; SQLite only reports it
    in the message.
    """
    orig = error.orig
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate == UNIQUE_VIOLATION_SQLSTATE:
        return True
    return "UNIQUE constraint failed" in str(orig) or "duplicate key value" in str(orig)


class _CodeTableRepository:
    """Operations shared by both invite tables, keyed by `code`."""

    model: type[InviteToken] | type[ParentInvite]

    def __init__(self, db: AsyncSession):
        self.db = db

    def _storage_error(self, action: str, error: SQLAlchemyError) -> StorageError:
        """
        Log a database failure and return the opaque error for callers.

        Only the driver's own message is logged; SQLAlchemy's rendering would
        add the statement parameters, which include invite codes.
        """
        reason = getattr(error, "orig", None) or type(error).__name__
        logger.error(f"Failed to {action} {self.model.__tablename__}: {reason}")
        return StorageError()

    def _usable_at(self, as_of: datetime):
        """WHERE clause: the row has not expired at `as_of`."""
        return or_(self.model.expires_at.is_(None), self.model.expires_at >= as_of)

    async def _insert(self, row) -> StoreOutcome:
        self.db.add(row)
        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            if is_unique_violation(e):
                logger.debug(f"Invite code collision on {self.model.__tablename__}")
                return StoreOutcome.COLLISION
            raise self._storage_error("insert into", e) from e
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise self._storage_error("insert into", e) from e

        await self.db.refresh(row)
        return StoreOutcome.OK

    async def _execute_update(self, stmt) -> int:
        try:
            result = await self.db.execute(stmt.execution_options(synchronize_session=False))
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise self._storage_error("update", e) from e
        return result.rowcount

    async def _classify_miss(self, code: str, as_of: datetime | None = None) -> StoreOutcome:
        """
        Classify a conditional update that touched no rows.

        Expiry wins over exhaustion, matching the order callers check them in.
        """
        try:
            result = await self.db.execute(
                select(self.model.expires_at).where(self.model.code == code)
            )
        except SQLAlchemyError as e:
            raise self._storage_error("read", e) from e

        row = result.first()
        if row is None:
            return StoreOutcome.NOT_FOUND
        if as_of is not None and row.expires_at is not None:
            if ensure_utc(row.expires_at) < as_of:
                return StoreOutcome.EXPIRED
        return StoreOutcome.LIMIT_REACHED

    async def mark_revoked(self, code: str) -> StoreOutcome:
        """
        Exhaust a code in one atomic UPDATE (times_used = usage_limit).

        Idempotent: revoking an already exhausted code is OK.
        """
        stmt = (
            update(self.model)
            .where(self.model.code == code)
            .values(times_used=self.model.usage_limit)
        )
        updated = await self._execute_update(stmt)
        return StoreOutcome.OK if updated else StoreOutcome.NOT_FOUND

    async def _delete_expired(self, tenant_clause, as_of: datetime) -> int:
        stmt = delete(self.model).where(
            tenant_clause,
            self.model.expires_at.is_not(None),
            self.model.expires_at < as_of,
        )
        deleted = await self._execute_update(stmt)
        if deleted:
            logger.info(f"Deleted {deleted} expired rows from {self.model.__tablename__}")
        return deleted

    async def tenants_with_expired(self, as_of: datetime) -> list[UUID | None]:
        """Distinct tenant ids that currently hold expired rows."""
        try:
            result = await self.db.execute(
                select(self.model.tenant_id)
                .where(self.model.expires_at.is_not(None), self.model.expires_at < as_of)
                .distinct()
            )
        except SQLAlchemyError as e:
            raise self._storage_error("read", e) from e
        return list(result.scalars().all())


class InviteTokenRepository(_CodeTableRepository):
    """SQLAlchemy-backed InviteTokenStore."""

    model = InviteToken

    async def create_if_absent(self, token: InviteToken) -> StoreOutcome:
        """Insert a token; COLLISION if its code is already taken."""
        return await self._insert(token)

    async def find_by_code(self, code: str, tenant_id: UUID | None = None) -> InviteToken | None:
        """
        Get a token by code, optionally restricted to one tenant.

        Always reloads from the database so counters are current.
        """
        stmt = select(InviteToken).where(InviteToken.code == code)
        if tenant_id is not None:
            stmt = stmt.where(InviteToken.tenant_id == tenant_id)

        try:
            result = await self.db.execute(stmt.execution_options(populate_existing=True))
        except SQLAlchemyError as e:
            raise self._storage_error("read", e) from e
        return result.scalar_one_or_none()

    async def atomic_increment_usage(
        self, code: str, as_of: datetime | None = None
    ) -> StoreOutcome:
        """
        Consume one use of a token.

        With `as_of`, a token that has expired by then is not consumed.

        Returns:
            OK if a use was consumed, EXPIRED if the token expired before
            `as_of`, LIMIT_REACHED if it has no uses left, NOT_FOUND if the
            code does not exist
        """
        stmt = update(InviteToken).where(
            InviteToken.code == code, InviteToken.times_used < InviteToken.usage_limit
        )
        if as_of is not None:
            stmt = stmt.where(self._usable_at(as_of))

        stmt = stmt.values(times_used=InviteToken.times_used + 1)
        if await self._execute_update(stmt):
            return StoreOutcome.OK
        return await self._classify_miss(code, as_of)

    async def delete_expired(self, tenant_id: UUID | None, as_of: datetime) -> int:
        """Delete tokens of one tenant that expired before `as_of`."""
        if tenant_id is None:
            tenant_clause = InviteToken.tenant_id.is_(None)
        else:
            tenant_clause = InviteToken.tenant_id == tenant_id
        return await self._delete_expired(tenant_clause, as_of)

    async def list_by_creator(self, creator_id: UUID) -> list[InviteToken]:
        """Tokens issued by one user, newest first."""
        try:
            result = await self.db.execute(
                select(InviteToken)
                .where(InviteToken.created_by == creator_id)
                .order_by(InviteToken.created_at.desc())
            )
        except SQLAlchemyError as e:
            raise self._storage_error("list", e) from e
        return list(result.scalars().all())

    async def list_by_tenant(self, tenant_id: UUID) -> list[InviteToken]:
        """Tokens of one tenant, newest first."""
        try:
            result = await self.db.execute(
                select(InviteToken)
                .where(InviteToken.tenant_id == tenant_id)
                .order_by(InviteToken.created_at.desc())
            )
        except SQLAlchemyError as e:
            raise self._storage_error("list", e) from e
        return list(result.scalars().all())


class ParentInviteRepository(_CodeTableRepository):
    """SQLAlchemy-backed ParentInviteStore."""

    model = ParentInvite

    async def create_if_absent(self, invite: ParentInvite) -> StoreOutcome:
        return await self._insert(invite)

    async def find_by_code(self, code: str) -> ParentInvite | None:
        try:
            result = await self.db.execute(
                select(ParentInvite)
                .where(ParentInvite.code == code)
                .execution_options(populate_existing=True)
            )
        except SQLAlchemyError as e:
            raise self._storage_error("read", e) from e
        return result.scalar_one_or_none()

    async def atomic_redeem(self, code: str, parent_id: UUID, used_at: datetime) -> StoreOutcome:
        """
        Consume one use and record the redeeming parent in a single UPDATE.

        An invite that has expired by `used_at` is not consumed (EXPIRED).
        """
        stmt = (
            update(ParentInvite)
            .where(
                ParentInvite.code == code,
                ParentInvite.times_used < ParentInvite.usage_limit,
                self._usable_at(used_at),
            )
            .values(
                times_used=ParentInvite.times_used + 1,
                parent_id=parent_id,
                used_at=used_at,
            )
        )
        if await self._execute_update(stmt):
            return StoreOutcome.OK
        return await self._classify_miss(code, used_at)

    async def delete_expired(self, tenant_id: UUID, as_of: datetime) -> int:
        return await self._delete_expired(ParentInvite.tenant_id == tenant_id, as_of)

    async def list_by_tenant(
        self, tenant_id: UUID, pending_only: bool = False
    ) -> list[ParentInvite]:
        """
        Parent invites of one tenant, newest first.

        With pending_only, only invites that still have uses left.
        """
        stmt = select(ParentInvite).where(ParentInvite.tenant_id == tenant_id)
        if pending_only:
            stmt = stmt.where(ParentInvite.times_used < ParentInvite.usage_limit)

        try:
            result = await self.db.execute(stmt.order_by(ParentInvite.created_at.desc()))
        except SQLAlchemyError as e:
            raise self._storage_error("list", e) from e
        return list(result.scalars().all())
