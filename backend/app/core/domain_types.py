"""Domain Types: ids, enums and immutable records shared across the tenancy core.

Invariants:
    - IdentityId is opaque (issued by the identity gateway); every other id is a UUID
    - Records are frozen: the core never mutates what the store returned
    - Every datetime inside a record is timezone-aware UTC
    - All valid states encoded as Enums, no raw string matching

Design Decisions:
    - NewType over wrapper classes: zero runtime cost, full type-checker support
    - str Enums: serialize to JSON without custom encoders
    - Records are plain dataclasses so core/ never imports the ORM
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import NewType
from uuid import UUID


# ─── Identity Types ──────────────────────────────────────────────

IdentityId = NewType("IdentityId", str)
OrganizationId = NewType("OrganizationId", UUID)
BusinessId = NewType("BusinessId", UUID)
InviteId = NewType("InviteId", UUID)
AccessRequestId = NewType("AccessRequestId", UUID)


# ─── Enums ───────────────────────────────────────────────────────

class MemberRole(str, Enum):
    """Role on an organization or business. Owner is never granted by invite or request."""
    OWNER = "owner"
    ADMIN = "admin"
    EMPLOYEE = "employee"


GRANTABLE_ROLES: frozenset[MemberRole] = frozenset({MemberRole.ADMIN, MemberRole.EMPLOYEE})
MANAGER_ROLES: frozenset[MemberRole] = frozenset({MemberRole.OWNER, MemberRole.ADMIN})


class AccessRequestStatus(str, Enum):
    """AccessRequest lifecycle. APPROVED and REJECTED are terminal."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class AccessDecision(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"


class EntityKind(str, Enum):
    """Owned entity kinds the consistency fallback can recover."""
    ORGANIZATION = "organization"
    BUSINESS = "business"


class MembershipSource(str, Enum):
    """Where a resolved role came from."""
    MEMBERSHIP = "membership"
    OWNERSHIP = "ownership"


class InvalidationReason(str, Enum):
    """Events that drop a cached membership snapshot."""
    SIGNED_IN = "signed_in"
    SIGNED_OUT = "signed_out"
    INVITE_REDEEMED = "invite_redeemed"
    BUSINESS_CREATED = "business_created"
    ORGANIZATION_CREATED = "organization_created"
    ACCESS_APPROVED = "access_approved"


# ─── Records ─────────────────────────────────────────────────────

def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes (SQLite drops tzinfo)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Identity:
    """Authenticated caller as supplied by the identity gateway."""
    id: IdentityId
    email: str
    display_name: str = ""


@dataclass(frozen=True)
class OrganizationRecord:
    id: OrganizationId
    name: str
    owner_id: IdentityId
    created_at: datetime
    updated_at: datetime


@dataclass(frozen=True)
class OrganizationMembership:
    organization_id: OrganizationId
    identity_id: IdentityId
    role: MemberRole
    created_at: datetime | None = None


@dataclass(frozen=True)
class BusinessRecord:
    id: BusinessId
    organization_id: OrganizationId
    owner_id: IdentityId
    name: str
    type: str
    description: str | None
    created_at: datetime
    updated_at: datetime


@dataclass(frozen=True)
class BusinessMembership:
    business_id: BusinessId
    identity_id: IdentityId
    role: MemberRole
    full_name: str | None = None
    email: str | None = None
    created_at: datetime | None = None


@dataclass(frozen=True)
class InviteRecord:
    id: InviteId
    organization_id: OrganizationId
    email: str
    role: MemberRole
    code: str
    created_by: IdentityId
    created_at: datetime
    expires_at: datetime
    used_at: datetime | None = None
    used_by: IdentityId | None = None


@dataclass(frozen=True)
class AccessRequestRecord:
    id: AccessRequestId
    business_id: BusinessId
    requester_name: str
    requester_email: str
    requester_message: str | None
    requested_role: MemberRole
    status: AccessRequestStatus
    created_at: datetime
    requester_identity_id: IdentityId | None = None
    decided_by: IdentityId | None = None
    decided_at: datetime | None = None
    granted_identity_id: IdentityId | None = None
    granted_at: datetime | None = None


# ─── Resolution Output ───────────────────────────────────────────

@dataclass(frozen=True)
class AccessibleOrganization:
    organization: OrganizationRecord
    role: MemberRole
    source: MembershipSource


@dataclass(frozen=True)
class AccessibleBusiness:
    business: BusinessRecord
    role: MemberRole
    source: MembershipSource


@dataclass(frozen=True)
class MembershipSnapshot:
    """What an identity may act on.

    degraded=True means the store was unreachable and nothing was resolved.
    partial=True means membership rows could not be read and only owned rows are listed.
    """
    identity_id: IdentityId
    organizations: tuple[AccessibleOrganization, ...] = ()
    businesses: tuple[AccessibleBusiness, ...] = ()
    degraded: bool = False
    partial: bool = False
    resolved_at: datetime = field(default_factory=utc_now)

    def organization_role(self, organization_id: OrganizationId) -> MemberRole | None:
        for entry in self.organizations:
            if entry.organization.id == organization_id:
                return entry.role
        return None

    def business_role(self, business_id: BusinessId) -> MemberRole | None:
        for entry in self.businesses:
            if entry.business.id == business_id:
                return entry.role
        return None
