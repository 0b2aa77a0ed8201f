"""Memberships: the caller's resolved organizations and businesses.

Invariants:
    - Never fails on store unavailability: returns a degraded (empty) snapshot instead
    - refresh=true bypasses the cached snapshot
"""

from fastapi import APIRouter, Depends, Query

from app.api.dependencies import get_caller_context, get_membership_resolver
from app.core.membership_cache import RequestContext
from app.schemas.membership import MembershipResponse
from app.services.membership_resolver import MembershipResolver

router = APIRouter(prefix="/api/v1/memberships", tags=["memberships"])


@router.get("", response_model=MembershipResponse)
async def get_memberships(
    refresh: bool = Query(False),
    ctx: RequestContext = Depends(get_caller_context),
    resolver: MembershipResolver = Depends(get_membership_resolver),
):
    snapshot = await resolver.resolve_or_empty(ctx, refresh=refresh)
    return MembershipResponse.from_snapshot(snapshot)
