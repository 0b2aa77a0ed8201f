"""Access Request Workflow: submit, approve, reject and list business access requests.

Invariants:
    - At most one PENDING request per (business, requester email): checked up front
      and enforced by the partial unique index for concurrent submitters
    - Decision checks run in order: NotFound → NotAuthorized → AlreadyDecided
    - The status change is a conditional UPDATE on status='pending'; a lost race
      surfaces as AlreadyDecidedError
    - Approval grants membership ONLY to the resolved requester identity; when the
      requester cannot be resolved yet, no membership is written and the grant is
      deferred to the requester's next membership resolution
    - Rejection has no membership side effect

Design Decisions:
    - Requester resolution order: requester_identity_id recorded at submission,
      then the privileged IdentityDirectory lookup by email
    - Cache invalidated by id AND by email, since approval may only know the email
"""

import logging
from collections.abc import Callable
from datetime import datetime

from app.core.domain_types import (
    AccessDecision,
    AccessRequestId,
    AccessRequestRecord,
    AccessRequestStatus,
    BusinessId,
    Identity,
    IdentityId,
    InvalidationReason,
    utc_now,
)
from app.core.enforce_access_requests import next_status
from app.core.enforce_input import (
    normalize_email,
    optional_text,
    parse_grantable_role,
    require_text,
)
from app.core.enforce_roles import can_decide_for_business
from app.core.errors import (
    AlreadyDecidedError,
    ConflictError,
    ErrorContext,
    NotAuthorizedError,
    ResourceNotFoundError,
)
from app.core.membership_cache import RequestContext
from app.core.repository_protocols import DataAccessPort, IdentityDirectory

logger = logging.getLogger(__name__)


class AccessRequestWorkflow:
    """pending → approved | rejected, with membership materialization on approval."""

    def __init__(
        self,
        port: DataAccessPort,
        directory: IdentityDirectory,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.port = port
        self.directory = directory
        self.clock = clock

    # ─── Submit ────────────────────────────────────────────────────

    async def submit(
        self,
        ctx: RequestContext,
        business_id: BusinessId,
        requester_name: str,
        requester_email: str,
        requester_message: str | None,
        requested_role: str,
    ) -> AccessRequestRecord:
        identity = ctx.require_identity()
        name, error = require_text(requester_name, "requester_name")
        if error:
            raise error
        email, error = normalize_email(requester_email)
        if error:
            raise error
        role, error = parse_grantable_role(requested_role)
        if error:
            raise error

        context = ErrorContext(identity_id=identity.id, business_id=str(business_id))
        if await self.port.get_business(business_id) is None:
            raise ResourceNotFoundError("Business", str(business_id), context)
        if await self.port.find_pending_access_request(business_id, email) is not None:
            raise ConflictError(
                "A pending access request already exists for this email", context,
            )

        caller_email = (identity.email or "").strip().lower()
        request = await self.port.create_access_request(
            business_id,
            name,
            email,
            optional_text(requester_message),
            role,
            identity.id if caller_email == email else None,
        )
        await self.port.commit()
        logger.info(
            f"Access request submitted for {role.value}",
            extra={"identity_id": identity.id, "business_id": business_id},
        )
        return request

    # ─── Decide ────────────────────────────────────────────────────

    async def approve(
        self, ctx: RequestContext, request_id: AccessRequestId,
    ) -> AccessRequestRecord:
        return await self.decide(ctx, request_id, AccessDecision.APPROVE)

    async def reject(
        self, ctx: RequestContext, request_id: AccessRequestId,
    ) -> AccessRequestRecord:
        return await self.decide(ctx, request_id, AccessDecision.REJECT)

    async def decide(
        self,
        ctx: RequestContext,
        request_id: AccessRequestId,
        decision: AccessDecision,
    ) -> AccessRequestRecord:
        identity = ctx.require_identity()
        request = await self._load_decidable(identity, request_id, decision)

        target, error = next_status(request, decision)
        if error:
            raise error

        decided_at = self.clock()
        if not await self.port.decide_access_request(request.id, target, decided_at):
            await self.port.rollback()
            current = await self.port.get_access_request(request.id)
            raise AlreadyDecidedError(
                current.status.value if current else "unknown",
                ErrorContext(identity_id=identity.id, business_id=str(request.business_id)),
            )

        granted_to = None
        if target is AccessRequestStatus.APPROVED:
            granted_to = await self._grant_if_resolvable(request, decided_at)
        await self.port.commit()

        logger.info(
            f"Access request {target.value}",
            extra={"identity_id": identity.id, "business_id": request.business_id},
        )
        if target is AccessRequestStatus.APPROVED:
            self._invalidate_requester(ctx, request, granted_to)
        return await self.port.get_access_request(request.id) or request

    async def _load_decidable(
        self,
        identity: Identity,
        request_id: AccessRequestId,
        decision: AccessDecision,
    ) -> AccessRequestRecord:
        request = await self.port.get_access_request(request_id)
        if request is None:
            raise ResourceNotFoundError(
                "AccessRequest", str(request_id), ErrorContext(identity_id=identity.id),
            )
        await self._require_business_role(
            identity.id, request.business_id, f"{decision.value} access requests",
        )
        return request

    async def _grant_if_resolvable(
        self, request: AccessRequestRecord, granted_at: datetime,
    ) -> IdentityId | None:
        requester_id = request.requester_identity_id
        if requester_id is None:
            requester = await self.directory.find_by_email(request.requester_email)
            requester_id = requester.id if requester else None
        if requester_id is None:
            logger.info(
                "Requester has no identity yet; grant deferred to next sign-in",
                extra={"business_id": request.business_id, "reason": "deferred_grant"},
            )
            return None

        await self.port.add_business_member(
            request.business_id, requester_id, request.requested_role,
            request.requester_name, request.requester_email,
        )
        await self.port.mark_access_granted(request.id, requester_id, granted_at)
        return requester_id

    def _invalidate_requester(
        self,
        ctx: RequestContext,
        request: AccessRequestRecord,
        granted_to: IdentityId | None,
    ) -> None:
        if granted_to is not None:
            ctx.cache.invalidate(granted_to, InvalidationReason.ACCESS_APPROVED)
        ctx.cache.invalidate_email(
            request.requester_email, InvalidationReason.ACCESS_APPROVED,
        )

    # ─── List ──────────────────────────────────────────────────────

    async def list_for_business(
        self, ctx: RequestContext, business_id: BusinessId,
    ) -> list[AccessRequestRecord]:
        identity = ctx.require_identity()
        await self._require_business_role(identity.id, business_id, "view access requests")
        return await self.port.list_access_requests(business_id)

    async def _require_business_role(
        self, identity_id: IdentityId, business_id: BusinessId, action: str,
    ) -> None:
        context = ErrorContext(identity_id=identity_id, business_id=str(business_id))
        membership = await self.port.get_business_membership(business_id)
        business = None
        if membership is None:
            business = await self.port.get_business(business_id)
            if business is None:
                raise ResourceNotFoundError("Business", str(business_id), context)
        if not can_decide_for_business(identity_id, membership, business):
            raise NotAuthorizedError(action, context)
