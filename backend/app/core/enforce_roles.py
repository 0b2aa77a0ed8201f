"""Role Enforcement: pure authorization predicates over membership and ownership.

Invariants:
    - A caller manages an organization iff it holds owner/admin there OR is its owner of record
    - A caller may decide access requests iff it holds any role on the business
      OR is the business's owner of record
    - Predicates never consult anything but their arguments
"""

from app.core.domain_types import (
    BusinessMembership,
    BusinessRecord,
    IdentityId,
    MANAGER_ROLES,
    OrganizationMembership,
    OrganizationRecord,
)


def can_manage_organization(
    identity_id: IdentityId,
    membership: OrganizationMembership | None,
    organization: OrganizationRecord | None,
) -> bool:
    """Issue invites, create businesses, list invites."""
    if membership is not None and membership.role in MANAGER_ROLES:
        return True
    return organization is not None and organization.owner_id == identity_id


def can_view_organization(
    identity_id: IdentityId,
    membership: OrganizationMembership | None,
    organization: OrganizationRecord | None,
) -> bool:
    if membership is not None:
        return True
    return organization is not None and organization.owner_id == identity_id


def can_decide_for_business(
    identity_id: IdentityId,
    membership: BusinessMembership | None,
    business: BusinessRecord | None,
) -> bool:
    if membership is not None:
        return True
    return business is not None and business.owner_id == identity_id
