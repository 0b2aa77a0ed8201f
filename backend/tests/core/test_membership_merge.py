"""Membership Merge: tests for owner filtering, merge preference and access building.

Tests cover:
    - filter_owned never lets another identity's rows through
    - merge_by_id prefers restricted-path rows
    - synthesized / healed owner rows never override explicit roles
    - records that are not visible drop their memberships
"""

from dataclasses import replace

from app.core.domain_types import MemberRole, MembershipSource
from app.core.membership_merge import (
    build_business_access,
    build_organization_access,
    businesses_missing_owner_row,
    filter_owned,
    merge_by_id,
    missing_ids,
    synthesize_owner_memberships,
)
from tests.core.tenancy_fixtures import (
    make_business,
    make_business_membership,
    make_org,
    make_org_membership,
)


# ─── filter_owned / merge_by_id ──────────────────────────────────

def test_filter_owned_drops_other_owners():
    mine = make_org(owner_id="u-1")
    theirs = make_org(owner_id="u-2")
    assert filter_owned([mine, theirs], "u-1") == [mine]


def test_filter_owned_empty_input():
    assert filter_owned([], "u-1") == []


def test_merge_prefers_restricted_row():
    scoped = make_org(owner_id="u-1", name="Scoped")
    admin_copy = replace(scoped, name="Admin")
    extra = make_org(owner_id="u-1", name="Extra")

    merged = merge_by_id([scoped], [admin_copy, extra])

    assert [o.name for o in merged] == ["Scoped", "Extra"]


# ─── organizations ───────────────────────────────────────────────

def test_synthesizes_owner_row_only_where_missing():
    has_row = make_org(owner_id="u-1")
    no_row = make_org(owner_id="u-1")
    memberships = [make_org_membership(has_row.id, "u-1", MemberRole.ADMIN)]

    synthesized = synthesize_owner_memberships([has_row, no_row], memberships, "u-1")

    assert [m.organization_id for m in synthesized] == [no_row.id]
    assert synthesized[0].role is MemberRole.OWNER


def test_explicit_role_wins_over_synthesized_owner():
    org = make_org(owner_id="u-1")
    explicit = [make_org_membership(org.id, "u-1", MemberRole.EMPLOYEE)]
    synthesized = [make_org_membership(org.id, "u-1", MemberRole.OWNER)]

    access = build_organization_access(explicit, synthesized, [org])

    assert len(access) == 1
    assert access[0].role is MemberRole.EMPLOYEE
    assert access[0].source is MembershipSource.MEMBERSHIP


def test_membership_without_visible_record_is_dropped():
    org = make_org()
    orphan = make_org_membership(make_org().id, "u-1")

    access = build_organization_access([orphan], [], [org])

    assert access == []
    assert missing_ids([orphan.organization_id], [org]) == [orphan.organization_id]


# ─── businesses ──────────────────────────────────────────────────

def test_businesses_missing_owner_row():
    healthy = make_business(owner_id="u-1")
    broken = make_business(owner_id="u-1")
    memberships = [make_business_membership(healthy.id, "u-1")]

    assert businesses_missing_owner_row([healthy, broken], memberships) == [broken]


def test_healed_business_reported_as_owner_via_ownership():
    business = make_business(owner_id="u-1")

    access = build_business_access([], [business], [])

    assert len(access) == 1
    assert access[0].role is MemberRole.OWNER
    assert access[0].source is MembershipSource.OWNERSHIP


def test_business_access_is_deduplicated():
    business = make_business(owner_id="u-1")
    memberships = [
        make_business_membership(business.id, "u-1", MemberRole.ADMIN),
        make_business_membership(business.id, "u-1", MemberRole.OWNER),
    ]

    access = build_business_access(memberships, [business], [business])

    assert [(a.business.id, a.role) for a in access] == [(business.id, MemberRole.ADMIN)]
