"""Store error mapping: every port call is bounded and driver errors never leak.

Invariants:
    - A call exceeding timeout_seconds → UpstreamUnavailableError naming the operation
    - Operational/driver errors → UpstreamUnavailableError
    - Constraint violations → ConflictError; only the pending-request index reads
      as a duplicate access request
    - The request-scoped session maps IntegrityError to ConflictError, not an outage
"""

import asyncio

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from app.core.domain_types import MemberRole
from app.core.errors import ConflictError, UpstreamUnavailableError
from app.infrastructure.data_access import SqlDataAccess, SqlIdentityDirectory
from app.infrastructure.database import DatabaseSessionManager
from tests.services.identities import OWNER, REQUESTER
from tests.services.seed import seed_business, seed_organization


def _integrity_error(message: str) -> IntegrityError:
    return IntegrityError("INSERT", {}, Exception(message))


# ─── timeouts ────────────────────────────────────────────────────

async def test_slow_call_times_out(test_db):
    port = SqlDataAccess(test_db, OWNER, timeout_seconds=0.01)

    with pytest.raises(UpstreamUnavailableError) as exc:
        await port._bounded("slow_read", lambda: asyncio.sleep(1))

    assert exc.value.operation == "slow_read"
    assert exc.value.http_status == 503


async def test_port_read_times_out(test_db, monkeypatch):
    async def hanging_execute(*args, **kwargs):
        await asyncio.sleep(1)

    monkeypatch.setattr(test_db, "execute", hanging_execute)
    port = SqlDataAccess(test_db, OWNER, timeout_seconds=0.01)

    with pytest.raises(UpstreamUnavailableError) as exc:
        await port.list_organization_memberships()
    assert exc.value.operation == "list_organization_memberships"


# ─── driver errors ───────────────────────────────────────────────

async def test_operational_error_is_upstream_unavailable(test_db):
    port = SqlDataAccess(test_db, OWNER)

    async def work():
        raise OperationalError("SELECT 1", {}, Exception("server closed the connection"))

    with pytest.raises(UpstreamUnavailableError) as exc:
        await port._bounded("list_business_memberships", work)
    assert exc.value.code == "UPSTREAM_UNAVAILABLE"


async def test_integrity_error_is_conflict(test_db):
    port = SqlDataAccess(test_db, OWNER)

    async def work():
        raise _integrity_error("UNIQUE constraint failed: profiles.email")

    with pytest.raises(ConflictError):
        await port._bounded("record_sign_in", work)


async def test_sign_in_email_race_is_conflict(test_db, monkeypatch):
    async def racing_flush(*args, **kwargs):
        raise _integrity_error("UNIQUE constraint failed: profiles.email")

    monkeypatch.setattr(test_db, "flush", racing_flush)

    with pytest.raises(ConflictError):
        await SqlIdentityDirectory(test_db).record_sign_in(REQUESTER)


# ─── access request constraints ──────────────────────────────────

async def _create_request(port, business_id):
    return await port.create_access_request(
        business_id, "Rita", REQUESTER.email, None, MemberRole.EMPLOYEE, None,
    )


async def test_duplicate_pending_request_is_conflict(test_db):
    org = await seed_organization(test_db, OWNER)
    business = await seed_business(test_db, org.id, OWNER)
    port = SqlDataAccess(test_db, REQUESTER)
    await _create_request(port, business.id)
    await port.commit()

    with pytest.raises(ConflictError) as exc:
        await _create_request(port, business.id)
    assert "pending access request" in exc.value.message


async def test_other_constraint_is_not_reported_as_duplicate(test_db, monkeypatch):
    org = await seed_organization(test_db, OWNER)
    business = await seed_business(test_db, org.id, OWNER)

    async def fk_flush(*args, **kwargs):
        raise _integrity_error(
            'insert or update on table "access_requests" violates foreign key '
            'constraint "access_requests_business_id_fkey"',
        )

    monkeypatch.setattr(test_db, "flush", fk_flush)
    port = SqlDataAccess(test_db, REQUESTER)

    with pytest.raises(ConflictError) as exc:
        await _create_request(port, business.id)
    assert "pending" not in exc.value.message


# ─── request-scoped session ──────────────────────────────────────

@pytest.fixture
async def manager():
    manager = DatabaseSessionManager("sqlite+aiosqlite:///:memory:")
    yield manager
    await manager.dispose()


async def test_session_maps_integrity_error_to_conflict(manager):
    with pytest.raises(ConflictError) as exc:
        async with manager.session():
            raise _integrity_error("UNIQUE constraint failed: profiles.email")
    assert exc.value.http_status == 409


async def test_session_maps_operational_error_to_upstream(manager):
    with pytest.raises(UpstreamUnavailableError):
        async with manager.session():
            raise OperationalError("SELECT 1", {}, Exception("connection reset"))
