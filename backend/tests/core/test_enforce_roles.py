"""Role Enforcement: tests for the organization and business authorization predicates."""

from app.core.domain_types import MemberRole
from app.core.enforce_roles import (
    can_decide_for_business,
    can_manage_organization,
    can_view_organization,
)
from tests.core.tenancy_fixtures import (
    make_business,
    make_business_membership,
    make_org,
    make_org_membership,
)


def test_owner_and_admin_manage_organization():
    org = make_org(owner_id="someone-else")
    for role in (MemberRole.OWNER, MemberRole.ADMIN):
        membership = make_org_membership(org.id, "u-1", role)
        assert can_manage_organization("u-1", membership, org)


def test_employee_cannot_manage_organization():
    org = make_org(owner_id="someone-else")
    membership = make_org_membership(org.id, "u-1", MemberRole.EMPLOYEE)
    assert not can_manage_organization("u-1", membership, org)


def test_owner_of_record_manages_without_member_row():
    org = make_org(owner_id="u-1")
    assert can_manage_organization("u-1", None, org)


def test_stranger_cannot_manage_or_view():
    org = make_org(owner_id="someone-else")
    assert not can_manage_organization("u-1", None, org)
    assert not can_manage_organization("u-1", None, None)
    assert not can_view_organization("u-1", None, org)


def test_any_member_can_view():
    org = make_org(owner_id="someone-else")
    membership = make_org_membership(org.id, "u-1", MemberRole.EMPLOYEE)
    assert can_view_organization("u-1", membership, None)


def test_business_member_of_any_role_decides():
    business = make_business(owner_id="someone-else")
    membership = make_business_membership(business.id, "u-1", MemberRole.EMPLOYEE)
    assert can_decide_for_business("u-1", membership, business)


def test_business_owner_of_record_decides():
    business = make_business(owner_id="u-1")
    assert can_decide_for_business("u-1", None, business)
    assert not can_decide_for_business("u-2", None, business)
