"""HTTP API: route wiring, identity headers and the error envelope.

Invariants:
    - Missing identity headers → 401 NOT_AUTHENTICATED envelope
    - Domain errors surface with their own status and code
    - Membership endpoint degrades instead of failing on store outage
"""

import pytest

from app.api.dependencies import get_membership_resolver
from app.main import app
from app.services.consistency_fallback import ConsistencyFallback
from app.services.membership_resolver import MembershipResolver
from tests.core.tenancy_fixtures import make_org
from tests.services.fake_store import FakeAdministrativeReader, FakePort, FakeStore
from tests.services.identities import OWNER, REQUESTER, STRANGER, identity_headers


async def _create_org_and_business(client):
    res = await client.post(
        "/api/v1/organizations", json={"name": "Acme"}, headers=identity_headers(OWNER),
    )
    assert res.status_code == 201
    org_id = res.json()["id"]
    res = await client.post(
        f"/api/v1/organizations/{org_id}/businesses",
        json={"name": "Bakery", "type": "food"},
        headers=identity_headers(OWNER),
    )
    assert res.status_code == 201
    return org_id, res.json()["id"]


# ─── health ──────────────────────────────────────────────────────

async def test_liveness(client):
    res = await client.get("/api/v1/health/")
    assert res.status_code == 200
    assert res.json()["status"] == "healthy"


async def test_readiness(client):
    res = await client.get("/api/v1/health/ready")
    assert res.status_code == 200
    assert res.json()["checks"]["database"] == "healthy"


# ─── authentication ──────────────────────────────────────────────

async def test_missing_identity_is_401(client):
    res = await client.get("/api/v1/memberships")
    assert res.status_code == 401
    assert res.json()["error"]["code"] == "NOT_AUTHENTICATED"


# ─── memberships ─────────────────────────────────────────────────

async def test_memberships_after_creation(client):
    org_id, business_id = await _create_org_and_business(client)

    res = await client.get("/api/v1/memberships", headers=identity_headers(OWNER))

    assert res.status_code == 200
    body = res.json()
    assert body["degraded"] is False
    assert [o["organization"]["id"] for o in body["organizations"]] == [org_id]
    assert body["businesses"][0]["business"]["id"] == business_id
    assert body["businesses"][0]["role"] == "owner"


async def test_memberships_degrade_on_store_outage(client):
    store = FakeStore()
    store.organizations.append(make_org(owner_id=OWNER.id))
    store.fail |= {
        "list_organization_memberships", "list_owned_organization", "admin_list_organization",
    }

    def failing_resolver():
        port = FakePort(store, OWNER)
        return MembershipResolver(port, ConsistencyFallback(port, FakeAdministrativeReader(store)))

    app.dependency_overrides[get_membership_resolver] = failing_resolver

    res = await client.get("/api/v1/memberships", headers=identity_headers(OWNER))

    assert res.status_code == 200
    assert res.json()["degraded"] is True
    assert res.json()["organizations"] == []


# ─── invites ─────────────────────────────────────────────────────

async def test_invite_issue_and_redeem(client):
    org_id, _ = await _create_org_and_business(client)

    res = await client.post(
        f"/api/v1/organizations/{org_id}/invites",
        json={"email": REQUESTER.email, "role": "employee"},
        headers=identity_headers(OWNER),
    )
    assert res.status_code == 201
    code = res.json()["code"]

    res = await client.post(
        "/api/v1/invites/redeem", json={"code": code}, headers=identity_headers(REQUESTER),
    )
    assert res.status_code == 200
    assert res.json()["role"] == "employee"

    res = await client.get("/api/v1/memberships", headers=identity_headers(REQUESTER))
    assert [o["organization"]["id"] for o in res.json()["organizations"]] == [org_id]

    res = await client.post(
        "/api/v1/invites/redeem", json={"code": code}, headers=identity_headers(STRANGER),
    )
    assert res.status_code == 409
    assert res.json()["error"]["code"] == "INVITE_ALREADY_USED"


async def test_invite_owner_role_rejected_by_schema(client):
    org_id, _ = await _create_org_and_business(client)
    res = await client.post(
        f"/api/v1/organizations/{org_id}/invites",
        json={"email": "a@example.com", "role": "owner"},
        headers=identity_headers(OWNER),
    )
    assert res.status_code == 400
    assert res.json()["error"]["code"] == "VALIDATION_ERROR"


async def test_invite_issue_forbidden_for_stranger(client):
    org_id, _ = await _create_org_and_business(client)
    res = await client.post(
        f"/api/v1/organizations/{org_id}/invites",
        json={"email": "a@example.com", "role": "admin"},
        headers=identity_headers(STRANGER),
    )
    assert res.status_code == 403
    assert res.json()["error"]["code"] == "NOT_AUTHORIZED"


async def test_redeem_unknown_code_is_404(client):
    res = await client.post(
        "/api/v1/invites/redeem", json={"code": "missing"}, headers=identity_headers(REQUESTER),
    )
    assert res.status_code == 404
    assert res.json()["error"]["code"] == "RESOURCE_NOT_FOUND"


# ─── access requests ─────────────────────────────────────────────

async def test_access_request_round_trip(client):
    _, business_id = await _create_org_and_business(client)
    payload = {
        "requester_name": "Rita",
        "requester_email": REQUESTER.email,
        "requested_role": "admin",
    }

    res = await client.post(
        f"/api/v1/businesses/{business_id}/access-requests",
        json=payload, headers=identity_headers(REQUESTER),
    )
    assert res.status_code == 201
    request_id = res.json()["id"]

    res = await client.post(
        f"/api/v1/businesses/{business_id}/access-requests",
        json=payload, headers=identity_headers(REQUESTER),
    )
    assert res.status_code == 409
    assert res.json()["error"]["code"] == "CONFLICT"

    res = await client.get(
        f"/api/v1/businesses/{business_id}/access-requests", headers=identity_headers(OWNER),
    )
    assert [r["id"] for r in res.json()] == [request_id]

    res = await client.post(
        f"/api/v1/access-requests/{request_id}/decision",
        json={"decision": "approve"}, headers=identity_headers(OWNER),
    )
    assert res.status_code == 200
    assert res.json()["status"] == "approved"
    assert res.json()["granted_identity_id"] == REQUESTER.id

    res = await client.post(
        f"/api/v1/access-requests/{request_id}/decision",
        json={"decision": "reject"}, headers=identity_headers(OWNER),
    )
    assert res.status_code == 409
    assert res.json()["error"]["code"] == "ALREADY_DECIDED"

    res = await client.get("/api/v1/memberships", headers=identity_headers(REQUESTER))
    roles = {b["business"]["id"]: b["role"] for b in res.json()["businesses"]}
    assert roles == {business_id: "admin"}


async def test_decision_by_stranger_is_403(client):
    _, business_id = await _create_org_and_business(client)
    res = await client.post(
        f"/api/v1/businesses/{business_id}/access-requests",
        json={"requester_name": "Rita", "requester_email": REQUESTER.email},
        headers=identity_headers(REQUESTER),
    )
    request_id = res.json()["id"]

    res = await client.post(
        f"/api/v1/access-requests/{request_id}/decision",
        json={"decision": "approve"}, headers=identity_headers(STRANGER),
    )
    assert res.status_code == 403


# ─── directory / session events ──────────────────────────────────

async def test_business_directory(client):
    org_id, business_id = await _create_org_and_business(client)
    res = await client.get(
        f"/api/v1/organizations/{org_id}/businesses", headers=identity_headers(OWNER),
    )
    assert res.status_code == 200
    entries = res.json()
    assert [(e["business"]["id"], e["role"]) for e in entries] == [(business_id, "owner")]


@pytest.mark.parametrize("event", ["signed_in", "signed_out"])
async def test_session_events(client, event):
    res = await client.post(
        "/api/v1/session/events", json={"event": event}, headers=identity_headers(REQUESTER),
    )
    assert res.status_code == 204


async def test_unknown_session_event_is_400(client):
    res = await client.post(
        "/api/v1/session/events", json={"event": "reset"}, headers=identity_headers(REQUESTER),
    )
    assert res.status_code == 400
