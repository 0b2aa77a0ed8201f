"""Membership Merge: pure reconciliation of explicit memberships and demonstrated ownership.

Invariants:
    - filter_owned is the ONLY gate between unscoped rows and the caller:
      it keeps rows whose owner_id equals the caller, nothing else
    - merge_by_id keeps the preferred (restricted-path) row when both paths return an id
    - Explicit membership roles always win over ownership-inferred roles (no escalation)
    - Output lists contain each organization / business id at most once
"""

from collections.abc import Iterable, Sequence
from typing import TypeVar

from app.core.domain_types import (
    AccessibleBusiness,
    AccessibleOrganization,
    BusinessMembership,
    BusinessRecord,
    IdentityId,
    MemberRole,
    MembershipSource,
    OrganizationMembership,
    OrganizationRecord,
)

R = TypeVar("R", OrganizationRecord, BusinessRecord)


def filter_owned(records: Iterable[R], identity_id: IdentityId) -> list[R]:
    return [r for r in records if r.owner_id == identity_id]


def merge_by_id(preferred: Sequence[R], fallback: Sequence[R]) -> list[R]:
    """Union by primary key; preferred rows keep their fields and their order."""
    merged: dict = {r.id: r for r in preferred}
    for r in fallback:
        merged.setdefault(r.id, r)
    return list(merged.values())


def synthesize_owner_memberships(
    owned: Sequence[OrganizationRecord],
    memberships: Sequence[OrganizationMembership],
    identity_id: IdentityId,
) -> list[OrganizationMembership]:
    """In-memory owner rows for owned organizations with no membership row."""
    present = {m.organization_id for m in memberships}
    return [
        OrganizationMembership(
            organization_id=org.id, identity_id=identity_id, role=MemberRole.OWNER,
        )
        for org in owned
        if org.id not in present
    ]


def businesses_missing_owner_row(
    owned: Sequence[BusinessRecord], memberships: Sequence[BusinessMembership],
) -> list[BusinessRecord]:
    present = {m.business_id for m in memberships}
    return [b for b in owned if b.id not in present]


def build_organization_access(
    memberships: Sequence[OrganizationMembership],
    synthesized: Sequence[OrganizationMembership],
    organizations: Sequence[OrganizationRecord],
) -> list[AccessibleOrganization]:
    """Pair memberships with organization records; explicit rows first.

    Memberships whose organization record is absent are dropped.
    """
    by_id = {o.id: o for o in organizations}
    result: dict = {}
    tagged = [(m, MembershipSource.MEMBERSHIP) for m in memberships]
    tagged += [(m, MembershipSource.OWNERSHIP) for m in synthesized]
    for membership, source in tagged:
        org = by_id.get(membership.organization_id)
        if org is None or org.id in result:
            continue
        result[org.id] = AccessibleOrganization(
            organization=org, role=membership.role, source=source,
        )
    return list(result.values())


def build_business_access(
    memberships: Sequence[BusinessMembership],
    healed: Sequence[BusinessRecord],
    businesses: Sequence[BusinessRecord],
) -> list[AccessibleBusiness]:
    """Pair memberships with business records; self-healed owner rows appended."""
    by_id = {b.id: b for b in businesses}
    for b in healed:
        by_id.setdefault(b.id, b)
    result: dict = {}
    for membership in memberships:
        business = by_id.get(membership.business_id)
        if business is None or business.id in result:
            continue
        result[business.id] = AccessibleBusiness(
            business=business, role=membership.role, source=MembershipSource.MEMBERSHIP,
        )
    for business in healed:
        if business.id not in result:
            result[business.id] = AccessibleBusiness(
                business=business, role=MemberRole.OWNER, source=MembershipSource.OWNERSHIP,
            )
    return list(result.values())


def missing_ids(wanted: Iterable, records: Iterable) -> list:
    have = {r.id for r in records}
    return [i for i in dict.fromkeys(wanted) if i not in have]
