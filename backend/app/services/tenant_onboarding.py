"""Tenant Onboarding: organization and business creation, plus the business directory.

Invariants:
    - create_organization writes the organization and its owner membership in one commit
    - create_business requires owner/admin (or owner of record) on the parent organization,
      and writes the business with its owner BusinessMember in one commit
    - list_organization_businesses requires membership or ownership of the organization
"""

import logging
from dataclasses import dataclass

from app.core.domain_types import (
    BusinessRecord,
    InvalidationReason,
    MemberRole,
    OrganizationId,
    OrganizationRecord,
)
from app.core.enforce_input import optional_text, require_text
from app.core.enforce_roles import can_manage_organization, can_view_organization
from app.core.errors import ErrorContext, NotAuthorizedError
from app.core.membership_cache import RequestContext
from app.core.repository_protocols import DataAccessPort

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DirectoryEntry:
    """A business in the organization directory and the caller's role on it, if any."""
    business: BusinessRecord
    role: MemberRole | None


class TenantOnboarding:

    def __init__(self, port: DataAccessPort):
        self.port = port

    async def create_organization(self, ctx: RequestContext, name: str) -> OrganizationRecord:
        identity = ctx.require_identity()
        name, error = require_text(name, "name")
        if error:
            raise error

        organization = await self.port.create_organization(name)
        await self.port.add_organization_member(organization.id, identity.id, MemberRole.OWNER)
        await self.port.commit()
        ctx.cache.invalidate(identity.id, InvalidationReason.ORGANIZATION_CREATED)
        logger.info(
            "Organization created",
            extra={"identity_id": identity.id, "organization_id": organization.id},
        )
        return organization

    async def create_business(
        self,
        ctx: RequestContext,
        organization_id: OrganizationId,
        name: str,
        type: str,
        description: str | None = None,
    ) -> BusinessRecord:
        identity = ctx.require_identity()
        name, error = require_text(name, "name")
        if error:
            raise error
        type, error = require_text(type, "type", max_length=100)
        if error:
            raise error

        membership, organization = await self._organization_access(identity.id, organization_id)
        if not can_manage_organization(identity.id, membership, organization):
            raise NotAuthorizedError(
                "create businesses",
                ErrorContext(identity_id=identity.id, organization_id=str(organization_id)),
            )

        business = await self.port.create_business(
            organization_id, name, type, optional_text(description),
        )
        await self.port.add_business_member(
            business.id, identity.id, MemberRole.OWNER,
            identity.display_name or None, identity.email or None,
        )
        await self.port.commit()
        ctx.cache.invalidate(identity.id, InvalidationReason.BUSINESS_CREATED)
        logger.info(
            "Business created",
            extra={
                "identity_id": identity.id,
                "organization_id": organization_id,
                "business_id": business.id,
            },
        )
        return business

    async def list_organization_businesses(
        self, ctx: RequestContext, organization_id: OrganizationId,
    ) -> list[DirectoryEntry]:
        identity = ctx.require_identity()
        membership, organization = await self._organization_access(identity.id, organization_id)
        if not can_view_organization(identity.id, membership, organization):
            raise NotAuthorizedError(
                "view this organization",
                ErrorContext(identity_id=identity.id, organization_id=str(organization_id)),
            )

        businesses = await self.port.list_organization_businesses(organization_id)
        roles = {m.business_id: m.role for m in await self.port.list_business_memberships()}
        entries = []
        for business in businesses:
            role = roles.get(business.id)
            if role is None and business.owner_id == identity.id:
                role = MemberRole.OWNER
            entries.append(DirectoryEntry(business=business, role=role))
        return entries

    async def _organization_access(self, identity_id, organization_id):
        # An invisible organization and a foreign one look the same: NotAuthorized.
        membership = await self.port.get_organization_membership(organization_id)
        found = await self.port.get_organizations([organization_id])
        return membership, (found[0] if found else None)
