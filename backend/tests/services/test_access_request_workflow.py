"""Access Request Workflow: submission, decisions and who ends up with membership.

Invariants:
    - One pending request per (business, email); a decided request frees the slot
    - Decision checks: NotFound → NotAuthorized → AlreadyDecided
    - Approval writes membership for the requester only, with the requested role
    - An unresolvable requester gets no placeholder row; the grant lands on their
      next membership resolution
"""

from uuid import uuid4

import pytest

from app.core.domain_types import (
    AccessDecision,
    AccessRequestStatus,
    Identity,
    MemberRole,
    MembershipSnapshot,
)
from app.core.errors import (
    AlreadyDecidedError,
    ConflictError,
    InputValidationError,
    NotAuthorizedError,
    ResourceNotFoundError,
)
from app.services.access_request_workflow import AccessRequestWorkflow
from tests.services.identities import OWNER, REQUESTER, STRANGER
from tests.services.seed import (
    business_member_role,
    count_business_members,
    seed_business,
    seed_organization,
    seed_profile,
)

NEWCOMER = Identity(id="newcomer-1", email="new@example.com", display_name="Nina")


@pytest.fixture
async def business(test_db):
    org = await seed_organization(test_db, OWNER, with_member=True)
    return await seed_business(test_db, org.id, OWNER, with_member=True)


@pytest.fixture
def workflow_for(port_for, directory):
    def _workflow(identity):
        return AccessRequestWorkflow(port_for(identity), directory)
    return _workflow


async def _submit(workflow_for, ctx_for, identity, business_id, email=None, role="employee"):
    return await workflow_for(identity).submit(
        ctx_for(identity), business_id, identity.display_name,
        email or identity.email, "Please let me in", role,
    )


# ─── submit ──────────────────────────────────────────────────────

async def test_submit_creates_pending_request(business, workflow_for, ctx_for):
    request = await _submit(workflow_for, ctx_for, REQUESTER, business.id, role="admin")

    assert request.status is AccessRequestStatus.PENDING
    assert request.requester_email == REQUESTER.email
    assert request.requested_role is MemberRole.ADMIN
    assert request.requester_identity_id == REQUESTER.id


async def test_submit_on_behalf_records_no_identity(business, workflow_for, ctx_for):
    request = await _submit(workflow_for, ctx_for, OWNER, business.id, email=NEWCOMER.email)
    assert request.requester_identity_id is None


async def test_duplicate_pending_is_conflict(business, workflow_for, ctx_for):
    await _submit(workflow_for, ctx_for, REQUESTER, business.id)
    with pytest.raises(ConflictError):
        await _submit(workflow_for, ctx_for, REQUESTER, business.id)


async def test_pending_index_rejects_concurrent_duplicate(business, port_for):
    """Two writers that both passed the pending check: the index turns the loser into Conflict."""
    port = port_for(REQUESTER)
    await port.create_access_request(
        business.id, "Rita", REQUESTER.email, None, MemberRole.EMPLOYEE, REQUESTER.id,
    )
    await port.commit()

    with pytest.raises(ConflictError):
        await port.create_access_request(
            business.id, "Rita", REQUESTER.email, None, MemberRole.EMPLOYEE, REQUESTER.id,
        )


async def test_resubmit_allowed_after_decision(business, workflow_for, ctx_for):
    first = await _submit(workflow_for, ctx_for, REQUESTER, business.id)
    await workflow_for(OWNER).reject(ctx_for(OWNER), first.id)

    second = await _submit(workflow_for, ctx_for, REQUESTER, business.id)

    assert second.id != first.id
    assert second.status is AccessRequestStatus.PENDING


async def test_submit_unknown_business_not_found(workflow_for, ctx_for):
    with pytest.raises(ResourceNotFoundError):
        await _submit(workflow_for, ctx_for, REQUESTER, uuid4())


async def test_submit_validates_fields(business, workflow_for, ctx_for):
    workflow = workflow_for(REQUESTER)
    with pytest.raises(InputValidationError):
        await workflow.submit(ctx_for(REQUESTER), business.id, "  ", REQUESTER.email, None, "employee")
    with pytest.raises(InputValidationError):
        await workflow.submit(ctx_for(REQUESTER), business.id, "Rita", "nope", None, "employee")
    with pytest.raises(InputValidationError):
        await workflow.submit(ctx_for(REQUESTER), business.id, "Rita", REQUESTER.email, None, "owner")


# ─── approve ─────────────────────────────────────────────────────

async def test_approval_grants_requester_not_approver(
    test_db, business, workflow_for, ctx_for,
):
    request = await _submit(workflow_for, ctx_for, REQUESTER, business.id, role="admin")

    decided = await workflow_for(OWNER).approve(ctx_for(OWNER), request.id)

    assert decided.status is AccessRequestStatus.APPROVED
    assert decided.decided_by == OWNER.id
    assert decided.granted_identity_id == REQUESTER.id
    assert await business_member_role(test_db, business.id, REQUESTER.id) == "admin"
    assert await business_member_role(test_db, business.id, OWNER.id) == "owner"
    assert await count_business_members(test_db, business.id) == 2


async def test_approval_resolves_requester_through_directory(
    test_db, business, workflow_for, ctx_for,
):
    await seed_profile(test_db, NEWCOMER)
    request = await _submit(workflow_for, ctx_for, OWNER, business.id, email=NEWCOMER.email)

    decided = await workflow_for(OWNER).approve(ctx_for(OWNER), request.id)

    assert decided.granted_identity_id == NEWCOMER.id
    assert await business_member_role(test_db, business.id, NEWCOMER.id) == "employee"


async def test_unresolvable_requester_gets_deferred_grant(
    test_db, business, workflow_for, resolver_for, ctx_for,
):
    request = await _submit(workflow_for, ctx_for, OWNER, business.id, email=NEWCOMER.email)

    decided = await workflow_for(OWNER).approve(ctx_for(OWNER), request.id)

    assert decided.status is AccessRequestStatus.APPROVED
    assert decided.granted_identity_id is None
    assert await count_business_members(test_db, business.id) == 1

    snapshot = await resolver_for(NEWCOMER).resolve(ctx_for(NEWCOMER))

    assert snapshot.business_role(business.id) is MemberRole.EMPLOYEE
    assert await business_member_role(test_db, business.id, NEWCOMER.id) == "employee"
    granted = await workflow_for(OWNER).port.get_access_request(request.id)
    assert granted.granted_identity_id == NEWCOMER.id


async def test_approval_invalidates_requester_cache(business, workflow_for, ctx_for, cache):
    request = await _submit(workflow_for, ctx_for, REQUESTER, business.id)
    cache.put(REQUESTER, MembershipSnapshot(identity_id=REQUESTER.id))

    await workflow_for(OWNER).approve(ctx_for(OWNER), request.id)

    assert cache.get(REQUESTER.id) is None


# ─── reject / decision errors ────────────────────────────────────

async def test_reject_writes_no_membership(test_db, business, workflow_for, ctx_for):
    request = await _submit(workflow_for, ctx_for, REQUESTER, business.id)

    decided = await workflow_for(OWNER).decide(ctx_for(OWNER), request.id, AccessDecision.REJECT)

    assert decided.status is AccessRequestStatus.REJECTED
    assert await count_business_members(test_db, business.id, REQUESTER.id) == 0


async def test_second_decision_is_already_decided(business, workflow_for, ctx_for):
    request = await _submit(workflow_for, ctx_for, REQUESTER, business.id)
    workflow = workflow_for(OWNER)
    await workflow.approve(ctx_for(OWNER), request.id)

    with pytest.raises(AlreadyDecidedError):
        await workflow.reject(ctx_for(OWNER), request.id)
    with pytest.raises(AlreadyDecidedError):
        await workflow.approve(ctx_for(OWNER), request.id)


async def test_non_member_cannot_decide(test_db, business, workflow_for, ctx_for):
    request = await _submit(workflow_for, ctx_for, REQUESTER, business.id)

    with pytest.raises(NotAuthorizedError):
        await workflow_for(STRANGER).approve(ctx_for(STRANGER), request.id)
    assert await count_business_members(test_db, business.id, REQUESTER.id) == 0


async def test_requester_cannot_approve_own_request(business, workflow_for, ctx_for):
    request = await _submit(workflow_for, ctx_for, REQUESTER, business.id)
    with pytest.raises(NotAuthorizedError):
        await workflow_for(REQUESTER).approve(ctx_for(REQUESTER), request.id)


async def test_not_authorized_checked_before_already_decided(business, workflow_for, ctx_for):
    request = await _submit(workflow_for, ctx_for, REQUESTER, business.id)
    await workflow_for(OWNER).reject(ctx_for(OWNER), request.id)

    with pytest.raises(NotAuthorizedError):
        await workflow_for(STRANGER).approve(ctx_for(STRANGER), request.id)


async def test_unknown_request_not_found(workflow_for, ctx_for):
    with pytest.raises(ResourceNotFoundError):
        await workflow_for(OWNER).approve(ctx_for(OWNER), uuid4())


# ─── list ────────────────────────────────────────────────────────

async def test_members_list_requests(business, workflow_for, ctx_for):
    await _submit(workflow_for, ctx_for, REQUESTER, business.id)
    await _submit(workflow_for, ctx_for, STRANGER, business.id)

    listed = await workflow_for(OWNER).list_for_business(ctx_for(OWNER), business.id)

    assert {r.requester_email for r in listed} == {REQUESTER.email, STRANGER.email}


async def test_strangers_cannot_list_requests(business, workflow_for, ctx_for):
    with pytest.raises(NotAuthorizedError):
        await workflow_for(STRANGER).list_for_business(ctx_for(STRANGER), business.id)
