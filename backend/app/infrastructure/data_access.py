"""SQL Data Access: the Data Access Port, administrative reader and identity directory over SQLAlchemy.

Invariants:
    - SqlDataAccess is bound to one caller; scoped reads apply the visibility policy:
        organizations: owned by caller OR caller is a member
        businesses:    owned by caller OR caller is a business member OR caller
                       belongs to the parent organization
    - Membership inserts are insert-or-ignore on the unique (entity, identity) key
    - claim_invite and decide_access_request are single conditional UPDATEs
    - Every call runs under asyncio.wait_for(timeout); timeouts and driver
      errors become UpstreamUnavailableError, constraint violations ConflictError
    - Rows leave this module as frozen core records, never as ORM objects

Design Decisions:
    - Dialect-native ON CONFLICT DO NOTHING (postgresql, sqlite) instead of
      read-then-write, so concurrent self-heal inserts are harmless
    - get_access_request and find_invite_by_code look up by unguessable key
      without scoping; the services apply role checks on the result
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import TypeVar

from sqlalchemy import func, or_, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.domain_types import (
    AccessRequestId,
    AccessRequestRecord,
    AccessRequestStatus,
    BusinessId,
    BusinessMembership,
    BusinessRecord,
    EntityKind,
    Identity,
    IdentityId,
    InviteId,
    InviteRecord,
    MemberRole,
    OrganizationId,
    OrganizationMembership,
    OrganizationRecord,
    as_utc,
)
from app.core.errors import ConflictError, ErrorContext, UpstreamUnavailableError
from app.core.repository_protocols import OwnedRecord
from app.models.access_request import AccessRequest
from app.models.business import Business
from app.models.business_member import BusinessMember
from app.models.invite import Invite
from app.models.organization import Organization
from app.models.organization_member import OrganizationMember
from app.models.profile import Profile

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_TIMEOUT_SECONDS: float = 5.0

PENDING_REQUEST_INDEX = "uq_access_request_pending"
PENDING_REQUEST_COLUMNS = "access_requests.business_id, access_requests.requester_email"


def _violates(error: IntegrityError, constraint: str, columns: str) -> bool:
    """PostgreSQL names the violated constraint; SQLite names its columns."""
    message = str(error.orig)
    return constraint in message or f"UNIQUE constraint failed: {columns}" in message


# ─── Row → Record ────────────────────────────────────────────────

def _organization(row: Organization) -> OrganizationRecord:
    return OrganizationRecord(
        id=row.id, name=row.name, owner_id=row.owner_id,
        created_at=as_utc(row.created_at), updated_at=as_utc(row.updated_at),
    )


def _organization_member(row: OrganizationMember) -> OrganizationMembership:
    return OrganizationMembership(
        organization_id=row.organization_id, identity_id=row.identity_id,
        role=MemberRole(row.role), created_at=as_utc(row.created_at),
    )


def _business(row: Business) -> BusinessRecord:
    return BusinessRecord(
        id=row.id, organization_id=row.organization_id, owner_id=row.owner_id,
        name=row.name, type=row.type, description=row.description,
        created_at=as_utc(row.created_at), updated_at=as_utc(row.updated_at),
    )


def _business_member(row: BusinessMember) -> BusinessMembership:
    return BusinessMembership(
        business_id=row.business_id, identity_id=row.identity_id,
        role=MemberRole(row.role), full_name=row.full_name, email=row.email,
        created_at=as_utc(row.created_at),
    )


def _invite(row: Invite) -> InviteRecord:
    return InviteRecord(
        id=row.id, organization_id=row.organization_id, email=row.email,
        role=MemberRole(row.role), code=row.code, created_by=row.created_by,
        created_at=as_utc(row.created_at), expires_at=as_utc(row.expires_at),
        used_at=as_utc(row.used_at), used_by=row.used_by,
    )


def _access_request(row: AccessRequest) -> AccessRequestRecord:
    return AccessRequestRecord(
        id=row.id, business_id=row.business_id,
        requester_name=row.requester_name, requester_email=row.requester_email,
        requester_message=row.requester_message,
        requested_role=MemberRole(row.requested_role),
        status=AccessRequestStatus(row.status),
        created_at=as_utc(row.created_at),
        requester_identity_id=row.requester_identity_id,
        decided_by=row.decided_by, decided_at=as_utc(row.decided_at),
        granted_identity_id=row.granted_identity_id,
        granted_at=as_utc(row.granted_at),
    )


_OWNED_MODELS = {
    EntityKind.ORGANIZATION: (Organization, _organization),
    EntityKind.BUSINESS: (Business, _business),
}


# ─── Bounded Store ───────────────────────────────────────────────

class _BoundedStore:
    """Shared timeout and error mapping for every store call."""

    def __init__(self, db: AsyncSession, timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS):
        self.db = db
        self.timeout_seconds = timeout_seconds

    async def _bounded(self, operation: str, work: Callable[[], Awaitable[T]]) -> T:
        try:
            return await asyncio.wait_for(work(), timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            logger.error(
                f"Store call timed out after {self.timeout_seconds}s",
                extra={"operation": operation},
            )
            raise UpstreamUnavailableError(
                f"timed out after {self.timeout_seconds}s", operation,
            )
        except IntegrityError as e:
            await self.db.rollback()
            logger.warning(
                f"Store rejected a conflicting write: {e.orig}",
                extra={"operation": operation},
            )
            raise ConflictError(
                "Write rejected by a store constraint", ErrorContext(operation=operation),
            )
        except SQLAlchemyError as e:
            logger.error(
                f"Store call failed: {e}", extra={"operation": operation},
            )
            raise UpstreamUnavailableError(type(e).__name__, operation)

    async def _insert_ignore(self, model, index_elements: list[str], values: dict) -> bool:
        """INSERT ... ON CONFLICT DO NOTHING; True when a row was created."""
        dialect = self.db.get_bind().dialect.name
        if dialect == "postgresql":
            stmt = postgresql.insert(model.__table__)
        elif dialect == "sqlite":
            stmt = sqlite.insert(model.__table__)
        else:
            raise NotImplementedError(f"insert-or-ignore not supported on {dialect}")
        stmt = stmt.values(**values).on_conflict_do_nothing(index_elements=index_elements)
        result = await self.db.execute(stmt)
        return result.rowcount == 1

    async def commit(self) -> None:
        await self._bounded("commit", self.db.commit)

    async def rollback(self) -> None:
        await self._bounded("rollback", self.db.rollback)


# ─── Caller-Scoped Port ──────────────────────────────────────────

class SqlDataAccess(_BoundedStore):
    """DataAccessPort implementation bound to a single caller."""

    def __init__(
        self,
        db: AsyncSession,
        caller: Identity,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    ):
        super().__init__(db, timeout_seconds)
        self.caller = caller

    # -- visibility ------------------------------------------------

    def _member_organization_ids(self):
        return select(OrganizationMember.organization_id).where(
            OrganizationMember.identity_id == self.caller.id,
        )

    def _member_business_ids(self):
        return select(BusinessMember.business_id).where(
            BusinessMember.identity_id == self.caller.id,
        )

    def _organization_visible(self):
        return or_(
            Organization.owner_id == self.caller.id,
            Organization.id.in_(self._member_organization_ids()),
        )

    def _business_visible(self):
        return or_(
            Business.owner_id == self.caller.id,
            Business.id.in_(self._member_business_ids()),
            Business.organization_id.in_(self._member_organization_ids()),
        )

    # -- organizations ---------------------------------------------

    async def list_organization_memberships(self) -> list[OrganizationMembership]:
        async def work():
            result = await self.db.execute(
                select(OrganizationMember)
                .where(OrganizationMember.identity_id == self.caller.id)
                .order_by(OrganizationMember.created_at),
            )
            return [_organization_member(r) for r in result.scalars().all()]
        return await self._bounded("list_organization_memberships", work)

    async def get_organization_membership(
        self, organization_id: OrganizationId,
    ) -> OrganizationMembership | None:
        async def work():
            result = await self.db.execute(
                select(OrganizationMember)
                .where(OrganizationMember.organization_id == organization_id)
                .where(OrganizationMember.identity_id == self.caller.id),
            )
            row = result.scalar_one_or_none()
            return _organization_member(row) if row else None
        return await self._bounded("get_organization_membership", work)

    async def get_organizations(
        self, organization_ids: list[OrganizationId],
    ) -> list[OrganizationRecord]:
        if not organization_ids:
            return []

        async def work():
            result = await self.db.execute(
                select(Organization)
                .where(Organization.id.in_(organization_ids))
                .where(self._organization_visible()),
            )
            return [_organization(r) for r in result.scalars().all()]
        return await self._bounded("get_organizations", work)

    async def create_organization(self, name: str) -> OrganizationRecord:
        async def work():
            row = Organization(name=name, owner_id=self.caller.id)
            self.db.add(row)
            await self.db.flush()
            return _organization(row)
        return await self._bounded("create_organization", work)

    async def add_organization_member(
        self, organization_id: OrganizationId, identity_id: IdentityId, role: MemberRole,
    ) -> bool:
        async def work():
            return await self._insert_ignore(
                OrganizationMember,
                ["organization_id", "identity_id"],
                {
                    "organization_id": organization_id,
                    "identity_id": identity_id,
                    "role": role.value,
                },
            )
        return await self._bounded("add_organization_member", work)

    # -- ownership (restricted path) -------------------------------

    async def list_owned(self, kind: EntityKind) -> list[OwnedRecord]:
        model, to_record = _OWNED_MODELS[kind]

        async def work():
            result = await self.db.execute(
                select(model)
                .where(model.owner_id == self.caller.id)
                .order_by(model.created_at),
            )
            return [to_record(r) for r in result.scalars().all()]
        return await self._bounded(f"list_owned_{kind.value}", work)

    async def count_owned(self, kind: EntityKind) -> int:
        model, _ = _OWNED_MODELS[kind]

        async def work():
            result = await self.db.execute(
                select(func.count()).select_from(model)
                .where(model.owner_id == self.caller.id),
            )
            return int(result.scalar_one())
        return await self._bounded(f"count_owned_{kind.value}", work)

    # -- businesses ------------------------------------------------

    async def list_business_memberships(self) -> list[BusinessMembership]:
        async def work():
            result = await self.db.execute(
                select(BusinessMember)
                .where(BusinessMember.identity_id == self.caller.id)
                .order_by(BusinessMember.created_at),
            )
            return [_business_member(r) for r in result.scalars().all()]
        return await self._bounded("list_business_memberships", work)

    async def get_business_membership(
        self, business_id: BusinessId,
    ) -> BusinessMembership | None:
        async def work():
            result = await self.db.execute(
                select(BusinessMember)
                .where(BusinessMember.business_id == business_id)
                .where(BusinessMember.identity_id == self.caller.id),
            )
            row = result.scalar_one_or_none()
            return _business_member(row) if row else None
        return await self._bounded("get_business_membership", work)

    async def get_businesses(self, business_ids: list[BusinessId]) -> list[BusinessRecord]:
        if not business_ids:
            return []

        async def work():
            result = await self.db.execute(
                select(Business)
                .where(Business.id.in_(business_ids))
                .where(self._business_visible()),
            )
            return [_business(r) for r in result.scalars().all()]
        return await self._bounded("get_businesses", work)

    async def get_business(self, business_id: BusinessId) -> BusinessRecord | None:
        """Directory-level lookup: any authenticated caller may learn a business exists."""
        async def work():
            row = await self.db.get(Business, business_id)
            return _business(row) if row else None
        return await self._bounded("get_business", work)

    async def list_organization_businesses(
        self, organization_id: OrganizationId,
    ) -> list[BusinessRecord]:
        async def work():
            result = await self.db.execute(
                select(Business)
                .where(Business.organization_id == organization_id)
                .where(self._business_visible())
                .order_by(Business.created_at),
            )
            return [_business(r) for r in result.scalars().all()]
        return await self._bounded("list_organization_businesses", work)

    async def create_business(
        self, organization_id: OrganizationId, name: str, type: str, description: str | None,
    ) -> BusinessRecord:
        async def work():
            row = Business(
                organization_id=organization_id, owner_id=self.caller.id,
                name=name, type=type, description=description,
            )
            self.db.add(row)
            await self.db.flush()
            return _business(row)
        return await self._bounded("create_business", work)

    async def add_business_member(
        self,
        business_id: BusinessId,
        identity_id: IdentityId,
        role: MemberRole,
        full_name: str | None,
        email: str | None,
    ) -> bool:
        async def work():
            return await self._insert_ignore(
                BusinessMember,
                ["business_id", "identity_id"],
                {
                    "business_id": business_id,
                    "identity_id": identity_id,
                    "role": role.value,
                    "full_name": full_name,
                    "email": email,
                },
            )
        return await self._bounded("add_business_member", work)

    # -- invites ---------------------------------------------------

    async def create_invite(
        self,
        organization_id: OrganizationId,
        email: str,
        role: MemberRole,
        code: str,
        expires_at: datetime,
    ) -> InviteRecord:
        async def work():
            row = Invite(
                organization_id=organization_id, email=email, role=role.value,
                code=code, created_by=self.caller.id, expires_at=expires_at,
            )
            self.db.add(row)
            await self.db.flush()
            return _invite(row)
        return await self._bounded("create_invite", work)

    async def find_invite_by_code(self, code: str) -> InviteRecord | None:
        async def work():
            result = await self.db.execute(
                select(Invite)
                .where(Invite.code == code)
                .execution_options(populate_existing=True),
            )
            row = result.scalar_one_or_none()
            return _invite(row) if row else None
        return await self._bounded("find_invite_by_code", work)

    async def list_invites(self, organization_id: OrganizationId) -> list[InviteRecord]:
        async def work():
            result = await self.db.execute(
                select(Invite)
                .where(Invite.organization_id == organization_id)
                .order_by(Invite.created_at.desc())
                .execution_options(populate_existing=True),
            )
            return [_invite(r) for r in result.scalars().all()]
        return await self._bounded("list_invites", work)

    async def claim_invite(self, invite_id: InviteId, used_at: datetime) -> bool:
        async def work():
            result = await self.db.execute(
                update(Invite)
                .where(Invite.id == invite_id)
                .where(Invite.used_at.is_(None))
                .values(used_at=used_at, used_by=self.caller.id)
                .execution_options(synchronize_session=False),
            )
            return result.rowcount == 1
        return await self._bounded("claim_invite", work)

    # -- access requests -------------------------------------------

    async def create_access_request(
        self,
        business_id: BusinessId,
        requester_name: str,
        requester_email: str,
        requester_message: str | None,
        requested_role: MemberRole,
        requester_identity_id: IdentityId | None,
    ) -> AccessRequestRecord:
        async def work():
            row = AccessRequest(
                business_id=business_id,
                requester_name=requester_name,
                requester_email=requester_email,
                requester_message=requester_message,
                requested_role=requested_role.value,
                requester_identity_id=requester_identity_id,
                status=AccessRequestStatus.PENDING.value,
            )
            self.db.add(row)
            try:
                await self.db.flush()
            except IntegrityError as e:
                if not _violates(e, PENDING_REQUEST_INDEX, PENDING_REQUEST_COLUMNS):
                    raise
                await self.db.rollback()
                raise ConflictError(
                    "A pending access request already exists for this email",
                    ErrorContext(business_id=str(business_id)),
                )
            return _access_request(row)
        return await self._bounded("create_access_request", work)

    async def get_access_request(
        self, request_id: AccessRequestId,
    ) -> AccessRequestRecord | None:
        async def work():
            row = await self.db.get(AccessRequest, request_id, populate_existing=True)
            return _access_request(row) if row else None
        return await self._bounded("get_access_request", work)

    async def find_pending_access_request(
        self, business_id: BusinessId, requester_email: str,
    ) -> AccessRequestRecord | None:
        async def work():
            result = await self.db.execute(
                select(AccessRequest)
                .where(AccessRequest.business_id == business_id)
                .where(AccessRequest.requester_email == requester_email)
                .where(AccessRequest.status == AccessRequestStatus.PENDING.value)
                .execution_options(populate_existing=True),
            )
            row = result.scalars().first()
            return _access_request(row) if row else None
        return await self._bounded("find_pending_access_request", work)

    async def list_access_requests(self, business_id: BusinessId) -> list[AccessRequestRecord]:
        async def work():
            result = await self.db.execute(
                select(AccessRequest)
                .where(AccessRequest.business_id == business_id)
                .order_by(AccessRequest.created_at.desc())
                .execution_options(populate_existing=True),
            )
            return [_access_request(r) for r in result.scalars().all()]
        return await self._bounded("list_access_requests", work)

    async def decide_access_request(
        self, request_id: AccessRequestId, status: AccessRequestStatus, decided_at: datetime,
    ) -> bool:
        async def work():
            result = await self.db.execute(
                update(AccessRequest)
                .where(AccessRequest.id == request_id)
                .where(AccessRequest.status == AccessRequestStatus.PENDING.value)
                .values(
                    status=status.value, decided_by=self.caller.id,
                    decided_at=decided_at, updated_at=decided_at,
                )
                .execution_options(synchronize_session=False),
            )
            return result.rowcount == 1
        return await self._bounded("decide_access_request", work)

    async def list_ungranted_approvals(self, requester_email: str) -> list[AccessRequestRecord]:
        # Requesters see only their own requests.
        if requester_email.lower() != (self.caller.email or "").lower():
            return []

        async def work():
            result = await self.db.execute(
                select(AccessRequest)
                .where(AccessRequest.requester_email == requester_email.lower())
                .where(AccessRequest.status == AccessRequestStatus.APPROVED.value)
                .where(AccessRequest.granted_identity_id.is_(None))
                .order_by(AccessRequest.decided_at)
                .execution_options(populate_existing=True),
            )
            return [_access_request(r) for r in result.scalars().all()]
        return await self._bounded("list_ungranted_approvals", work)

    async def mark_access_granted(
        self, request_id: AccessRequestId, identity_id: IdentityId, granted_at: datetime,
    ) -> None:
        async def work():
            await self.db.execute(
                update(AccessRequest)
                .where(AccessRequest.id == request_id)
                .where(AccessRequest.granted_identity_id.is_(None))
                .values(granted_identity_id=identity_id, granted_at=granted_at)
                .execution_options(synchronize_session=False),
            )
        await self._bounded("mark_access_granted", work)


# ─── Administrative (Unscoped) Reader ────────────────────────────

class SqlAdministrativeReader(_BoundedStore):
    """Unscoped listing for the consistency fallback only."""

    async def list_all(self, kind: EntityKind) -> list[OwnedRecord]:
        model, to_record = _OWNED_MODELS[kind]

        async def work():
            result = await self.db.execute(select(model).order_by(model.created_at))
            return [to_record(r) for r in result.scalars().all()]
        return await self._bounded(f"admin_list_{kind.value}", work)


# ─── Identity Directory ──────────────────────────────────────────

class SqlIdentityDirectory(_BoundedStore):
    """Privileged email → identity lookup over the profiles mirror."""

    async def find_by_email(self, email: str) -> Identity | None:
        async def work():
            result = await self.db.execute(
                select(Profile).where(Profile.email == email.strip().lower()),
            )
            row = result.scalar_one_or_none()
            if row is None:
                return None
            return Identity(
                id=row.identity_id, email=row.email, display_name=row.display_name,
            )
        return await self._bounded("find_identity_by_email", work)

    async def record_sign_in(self, identity: Identity) -> None:
        email = identity.email.strip().lower()

        async def work():
            holder = await self.db.execute(
                select(Profile)
                .where(Profile.email == email)
                .where(Profile.identity_id != identity.id),
            )
            if holder.scalar_one_or_none() is not None:
                raise ConflictError(
                    "Email is already bound to another identity",
                    ErrorContext(identity_id=identity.id),
                )
            row = await self.db.get(Profile, identity.id)
            if row is None:
                self.db.add(Profile(
                    identity_id=identity.id, email=email,
                    display_name=identity.display_name,
                ))
            else:
                row.email = email
                row.display_name = identity.display_name
            await self.db.flush()
        await self._bounded("record_sign_in", work)
