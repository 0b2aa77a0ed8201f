"""API Dependencies: identity extraction and per-request service wiring.

Invariants:
    - Identity comes ONLY from the trusted gateway headers (X-Identity-Id/-Email/-Name)
    - Missing identity → NotAuthenticatedError (401) on every protected route
    - Each request gets its own SqlDataAccess bound to the caller and one AsyncSession
    - The MembershipCache lives on app.state and is shared across requests

Design Decisions:
    - FastAPI Depends chain instead of a middleware: routes declare exactly what they need
"""

from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import Settings, get_settings
from app.core.domain_types import Identity
from app.core.membership_cache import MembershipCache, RequestContext
from app.infrastructure.data_access import (
    SqlAdministrativeReader,
    SqlDataAccess,
    SqlIdentityDirectory,
)
from app.infrastructure.database import get_db
from app.services.access_request_workflow import AccessRequestWorkflow
from app.services.consistency_fallback import ConsistencyFallback
from app.services.identity_events import IdentityEvents
from app.services.invite_lifecycle import InviteLifecycleManager
from app.services.membership_resolver import MembershipResolver
from app.services.tenant_onboarding import TenantOnboarding


def get_membership_cache(request: Request) -> MembershipCache:
    cache = getattr(request.app.state, "membership_cache", None)
    if cache is None:
        cache = MembershipCache()
        request.app.state.membership_cache = cache
    return cache


def get_identity(
    x_identity_id: str | None = Header(None, max_length=64),
    x_identity_email: str | None = Header(None, max_length=320),
    x_identity_name: str | None = Header(None, max_length=200),
) -> Identity | None:
    identity_id = (x_identity_id or "").strip()
    if not identity_id:
        return None
    return Identity(
        id=identity_id,
        email=(x_identity_email or "").strip().lower(),
        display_name=(x_identity_name or "").strip(),
    )


def get_request_context(
    identity: Identity | None = Depends(get_identity),
    cache: MembershipCache = Depends(get_membership_cache),
) -> RequestContext:
    return RequestContext(identity=identity, cache=cache)


def get_caller_context(
    ctx: RequestContext = Depends(get_request_context),
) -> RequestContext:
    """RequestContext with a guaranteed identity (raises NotAuthenticatedError)."""
    ctx.require_identity()
    return ctx


def get_data_access(
    ctx: RequestContext = Depends(get_caller_context),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> SqlDataAccess:
    return SqlDataAccess(db, ctx.identity, settings.store_timeout_seconds)


def get_identity_directory(
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> SqlIdentityDirectory:
    return SqlIdentityDirectory(db, settings.store_timeout_seconds)


# ─── Services ───────────────────────────────────────────────────

def get_membership_resolver(
    port: SqlDataAccess = Depends(get_data_access),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> MembershipResolver:
    fallback = ConsistencyFallback(
        port, SqlAdministrativeReader(db, settings.store_timeout_seconds),
    )
    return MembershipResolver(
        port, fallback, self_heal_retry_delay_ms=settings.self_heal_retry_delay_ms,
    )


def get_invite_lifecycle(
    port: SqlDataAccess = Depends(get_data_access),
    settings: Settings = Depends(get_settings),
) -> InviteLifecycleManager:
    return InviteLifecycleManager(
        port, ttl_days=settings.invite_ttl_days, code_bytes=settings.invite_code_bytes,
    )


def get_access_request_workflow(
    port: SqlDataAccess = Depends(get_data_access),
    directory: SqlIdentityDirectory = Depends(get_identity_directory),
) -> AccessRequestWorkflow:
    return AccessRequestWorkflow(port, directory)


def get_tenant_onboarding(
    port: SqlDataAccess = Depends(get_data_access),
) -> TenantOnboarding:
    return TenantOnboarding(port)


def get_identity_events(
    directory: SqlIdentityDirectory = Depends(get_identity_directory),
) -> IdentityEvents:
    return IdentityEvents(directory)
