"""Membership Schemas: the resolved membership snapshot as returned to the UI.

Design Decisions:
    - degraded is always present so the UI can render its retry affordance
    - from_attributes: built straight from frozen core records
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from app.core.domain_types import MemberRole, MembershipSource, MembershipSnapshot


class OrganizationSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    owner_id: str
    created_at: datetime | None = None


class BusinessSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    organization_id: UUID
    owner_id: str
    name: str
    type: str
    description: str | None = None
    created_at: datetime | None = None


class OrganizationAccess(BaseModel):
    """An organization the caller may act on, with its role and where that role came from."""
    model_config = ConfigDict(from_attributes=True)

    organization: OrganizationSummary
    role: MemberRole
    source: MembershipSource


class BusinessAccess(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    business: BusinessSummary
    role: MemberRole
    source: MembershipSource


class MembershipResponse(BaseModel):
    identity_id: str
    organizations: list[OrganizationAccess] = []
    businesses: list[BusinessAccess] = []
    degraded: bool = False
    partial: bool = False
    resolved_at: datetime | None = None

    @classmethod
    def from_snapshot(cls, snapshot: MembershipSnapshot) -> "MembershipResponse":
        return cls(
            identity_id=snapshot.identity_id,
            organizations=[
                OrganizationAccess.model_validate(o) for o in snapshot.organizations
            ],
            businesses=[BusinessAccess.model_validate(b) for b in snapshot.businesses],
            degraded=snapshot.degraded,
            partial=snapshot.partial,
            resolved_at=snapshot.resolved_at,
        )
