"""Membership Resolver: which organizations and businesses an identity may act on.

Invariants:
    - Returns only entities the identity owns or holds an explicit membership on
    - Organizations: owned organizations lacking a member row get an in-memory owner
      row (never persisted here)
    - Businesses: owned businesses lacking a member row get a PERSISTED owner row,
      written with insert-or-ignore; a duplicate insert is a no-op
    - Approved access requests awaiting materialization for the caller's email are
      granted before businesses are read
    - The self-heal write retries once on UpstreamUnavailableError, after a backoff;
      nothing else is retried
    - Never deletes rows, never changes an existing role
    - A failed business-membership read propagates; a failed organization-membership
      read falls back to owned rows and marks the snapshot partial
    - Snapshots are cached per identity; degraded and partial snapshots are not

Design Decisions:
    - Explicit RequestContext per call instead of ambient session state
    - resolve() propagates UpstreamUnavailableError; resolve_or_empty() converts it
      into an empty degraded snapshot for the UI's retry affordance
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime

from app.core.domain_types import (
    AccessRequestRecord,
    AccessibleBusiness,
    AccessibleOrganization,
    BusinessRecord,
    EntityKind,
    Identity,
    MemberRole,
    MembershipSnapshot,
    utc_now,
)
from app.core.enforce_access_requests import needs_grant
from app.core.errors import UpstreamUnavailableError
from app.core.membership_cache import RequestContext
from app.core.membership_merge import (
    build_business_access,
    build_organization_access,
    businesses_missing_owner_row,
    merge_by_id,
    missing_ids,
    synthesize_owner_memberships,
)
from app.core.repository_protocols import DataAccessPort
from app.services.consistency_fallback import ConsistencyFallback

logger = logging.getLogger(__name__)

MAX_SELF_HEAL_ATTEMPTS: int = 2


class MembershipResolver:
    """Resolves and caches the accessible set for the calling identity."""

    def __init__(
        self,
        port: DataAccessPort,
        fallback: ConsistencyFallback,
        self_heal_retry_delay_ms: int = 200,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.port = port
        self.fallback = fallback
        self.self_heal_retry_delay_ms = self_heal_retry_delay_ms
        self.clock = clock

    async def resolve(self, ctx: RequestContext, refresh: bool = False) -> MembershipSnapshot:
        identity = ctx.require_identity()
        if not refresh:
            cached = ctx.cache.get(identity.id)
            if cached is not None:
                return cached

        organizations, partial = await self._resolve_organizations(identity)
        await self._materialize_deferred_grants(identity)
        businesses = await self._resolve_businesses(identity)

        snapshot = MembershipSnapshot(
            identity_id=identity.id,
            organizations=tuple(organizations),
            businesses=tuple(businesses),
            partial=partial,
            resolved_at=self.clock(),
        )
        ctx.cache.put(identity, snapshot)
        logger.info(
            f"Resolved {len(organizations)} organization(s), "
            f"{len(businesses)} business(es)",
            extra={"identity_id": identity.id},
        )
        return snapshot

    async def resolve_or_empty(
        self, ctx: RequestContext, refresh: bool = False,
    ) -> MembershipSnapshot:
        """resolve(), degrading to an empty snapshot when the store is unavailable."""
        identity = ctx.require_identity()
        try:
            return await self.resolve(ctx, refresh=refresh)
        except UpstreamUnavailableError as e:
            logger.error(
                f"Membership resolution degraded: {e.message}",
                extra={"identity_id": identity.id, "error_code": e.code},
            )
            return MembershipSnapshot(
                identity_id=identity.id, degraded=True, resolved_at=self.clock(),
            )

    # ─── Organizations ─────────────────────────────────────────────

    async def _resolve_organizations(
        self, identity: Identity,
    ) -> tuple[list[AccessibleOrganization], bool]:
        """Organization access plus whether it fell back to owned rows only."""
        partial = False
        try:
            memberships = await self.port.list_organization_memberships()
        except UpstreamUnavailableError as e:
            logger.warning(
                f"Organization membership read failed: {e.message}",
                extra={"identity_id": identity.id, "operation": e.operation},
            )
            memberships = []
            partial = True

        owned = []
        synthesized = []
        if not memberships:
            owned = await self.fallback.owned(EntityKind.ORGANIZATION, identity)
            synthesized = synthesize_owner_memberships(owned, memberships, identity.id)

        records = await self.port.get_organizations(
            [m.organization_id for m in memberships],
        )
        records = merge_by_id(records, owned)
        for missing in missing_ids([m.organization_id for m in memberships], records):
            logger.warning(
                "Membership references an organization that is not visible",
                extra={"identity_id": identity.id, "organization_id": missing},
            )
        return build_organization_access(memberships, synthesized, records), partial

    # ─── Deferred Grants ───────────────────────────────────────────

    async def _materialize_deferred_grants(self, identity: Identity) -> None:
        if not identity.email:
            return
        approvals = await self.port.list_ungranted_approvals(identity.email.lower())
        for request in approvals:
            if not needs_grant(request):
                continue
            await self._write_with_retry(
                "materialize_grant", lambda r=request: self._grant(r, identity), identity,
            )

    async def _grant(self, request: AccessRequestRecord, identity: Identity) -> None:
        await self.port.add_business_member(
            request.business_id, identity.id, request.requested_role,
            request.requester_name, request.requester_email,
        )
        await self.port.mark_access_granted(request.id, identity.id, self.clock())
        await self.port.commit()
        logger.info(
            f"Materialized approved access as {request.requested_role.value}",
            extra={"identity_id": identity.id, "business_id": request.business_id},
        )

    # ─── Businesses ────────────────────────────────────────────────

    async def _resolve_businesses(self, identity: Identity) -> list[AccessibleBusiness]:
        memberships = await self.port.list_business_memberships()
        owned = await self.fallback.owned(EntityKind.BUSINESS, identity)
        healed: list[BusinessRecord] = []
        for business in businesses_missing_owner_row(owned, memberships):
            await self._write_with_retry(
                "self_heal_business_owner",
                lambda b=business: self._heal_owner_row(b, identity),
                identity,
            )
            healed.append(business)

        records = await self.port.get_businesses([m.business_id for m in memberships])
        records = merge_by_id(records, owned)
        return build_business_access(memberships, healed, records)

    async def _heal_owner_row(self, business: BusinessRecord, identity: Identity) -> None:
        created = await self.port.add_business_member(
            business.id, identity.id, MemberRole.OWNER,
            identity.display_name or None, identity.email or None,
        )
        await self.port.commit()
        if created:
            logger.info(
                "Self-healed missing owner membership",
                extra={"identity_id": identity.id, "business_id": business.id},
            )
        else:
            logger.debug(
                "Owner membership already present (concurrent heal)",
                extra={"identity_id": identity.id, "business_id": business.id},
            )

    async def _write_with_retry(
        self,
        operation: str,
        write: Callable[[], Awaitable[None]],
        identity: Identity,
    ) -> None:
        for attempt in range(1, MAX_SELF_HEAL_ATTEMPTS + 1):
            try:
                await write()
                return
            except UpstreamUnavailableError as e:
                await self.port.rollback()
                if attempt == MAX_SELF_HEAL_ATTEMPTS:
                    raise
                logger.warning(
                    f"{operation} failed, retrying: {e.message}",
                    extra={"identity_id": identity.id, "attempt": attempt},
                )
                await asyncio.sleep(self.self_heal_retry_delay_ms / 1000)
