"""Boundary Protocols: the Data Access Port and the identity directory.

Invariants:
    - Core NEVER imports from shell; implementations are injected by services/api
    - DataAccessPort is bound to one caller; every read is scoped by that caller's visibility
    - AdministrativeReadPort is unscoped and consumed ONLY by the consistency fallback,
      which always filters its rows by owner_id == caller
    - Every method may raise UpstreamUnavailableError (store failure or timeout)

Design Decisions:
    - Protocol over ABC: structural subtyping, test fakes need no inheritance
    - Insert methods are insert-or-ignore and report whether a row was created
    - claim_invite / decide_access_request are single conditional writes that
      return False when another caller won
"""

from datetime import datetime
from typing import Protocol

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
)

OwnedRecord = OrganizationRecord | BusinessRecord


class DataAccessPort(Protocol):
    """Caller-scoped reads and writes over the tenancy collections."""

    caller: Identity

    # -- organizations ---------------------------------------------
    async def list_organization_memberships(self) -> list[OrganizationMembership]: ...
    async def get_organization_membership(
        self, organization_id: OrganizationId,
    ) -> OrganizationMembership | None: ...
    async def get_organizations(
        self, organization_ids: list[OrganizationId],
    ) -> list[OrganizationRecord]: ...
    async def create_organization(self, name: str) -> OrganizationRecord: ...
    async def add_organization_member(
        self, organization_id: OrganizationId, identity_id: IdentityId, role: MemberRole,
    ) -> bool: ...

    # -- ownership (restricted path) -------------------------------
    async def list_owned(self, kind: EntityKind) -> list[OwnedRecord]: ...
    async def count_owned(self, kind: EntityKind) -> int: ...

    # -- businesses ------------------------------------------------
    async def list_business_memberships(self) -> list[BusinessMembership]: ...
    async def get_business_membership(
        self, business_id: BusinessId,
    ) -> BusinessMembership | None: ...
    async def get_businesses(self, business_ids: list[BusinessId]) -> list[BusinessRecord]: ...
    async def get_business(self, business_id: BusinessId) -> BusinessRecord | None: ...
    async def list_organization_businesses(
        self, organization_id: OrganizationId,
    ) -> list[BusinessRecord]: ...
    async def create_business(
        self, organization_id: OrganizationId, name: str, type: str, description: str | None,
    ) -> BusinessRecord: ...
    async def add_business_member(
        self,
        business_id: BusinessId,
        identity_id: IdentityId,
        role: MemberRole,
        full_name: str | None,
        email: str | None,
    ) -> bool: ...

    # -- invites ---------------------------------------------------
    async def create_invite(
        self,
        organization_id: OrganizationId,
        email: str,
        role: MemberRole,
        code: str,
        expires_at: datetime,
    ) -> InviteRecord: ...
    async def find_invite_by_code(self, code: str) -> InviteRecord | None: ...
    async def list_invites(self, organization_id: OrganizationId) -> list[InviteRecord]: ...
    async def claim_invite(self, invite_id: InviteId, used_at: datetime) -> bool: ...

    # -- access requests -------------------------------------------
    async def create_access_request(
        self,
        business_id: BusinessId,
        requester_name: str,
        requester_email: str,
        requester_message: str | None,
        requested_role: MemberRole,
        requester_identity_id: IdentityId | None,
    ) -> AccessRequestRecord: ...
    async def get_access_request(
        self, request_id: AccessRequestId,
    ) -> AccessRequestRecord | None: ...
    async def find_pending_access_request(
        self, business_id: BusinessId, requester_email: str,
    ) -> AccessRequestRecord | None: ...
    async def list_access_requests(self, business_id: BusinessId) -> list[AccessRequestRecord]: ...
    async def decide_access_request(
        self, request_id: AccessRequestId, status: AccessRequestStatus, decided_at: datetime,
    ) -> bool: ...
    async def list_ungranted_approvals(self, requester_email: str) -> list[AccessRequestRecord]: ...
    async def mark_access_granted(
        self, request_id: AccessRequestId, identity_id: IdentityId, granted_at: datetime,
    ) -> None: ...

    # -- unit of work ----------------------------------------------
    async def commit(self) -> None: ...
    async def rollback(self) -> None: ...


class AdministrativeReadPort(Protocol):
    """Unscoped reads. Results MUST be owner-filtered by the consumer."""
    async def list_all(self, kind: EntityKind) -> list[OwnedRecord]: ...


class IdentityDirectory(Protocol):
    """Privileged identity lookup provided by the identity gateway."""
    async def find_by_email(self, email: str) -> Identity | None: ...
    async def record_sign_in(self, identity: Identity) -> None: ...
    async def commit(self) -> None: ...
