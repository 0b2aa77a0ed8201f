"""Invite Lifecycle: issue, redeem and list single-use organization invites.

Invariants:
    - issue: the authorization check (owner/admin or owner of record) precedes any write
    - redeem: NotFound → Expired → AlreadyUsed, checked in that order
    - The used_at claim is a conditional UPDATE; a caller that loses the race gets
      InviteAlreadyUsedError, never a second membership
    - Claim + membership insert commit together; a granted membership is never retracted
    - Redeeming into an organization the identity already belongs to succeeds with the
      existing membership (role unchanged) and still consumes the invite

Design Decisions:
    - Claim before insert inside one transaction: the only way two different
      identities racing on one code end up with at most one membership
"""

import logging
from collections.abc import Callable
from datetime import datetime

from app.core.domain_types import (
    InviteRecord,
    OrganizationId,
    OrganizationMembership,
    InvalidationReason,
    utc_now,
)
from app.core.enforce_input import normalize_email, parse_grantable_role, require_text
from app.core.enforce_invites import (
    INVITE_CODE_BYTES,
    INVITE_TTL_DAYS,
    check_redeemable,
    compute_expiry,
    generate_invite_code,
)
from app.core.enforce_roles import can_manage_organization
from app.core.errors import (
    ErrorContext,
    InviteAlreadyUsedError,
    NotAuthorizedError,
    ResourceNotFoundError,
)
from app.core.membership_cache import RequestContext
from app.core.repository_protocols import DataAccessPort

logger = logging.getLogger(__name__)


class InviteLifecycleManager:
    """Issues and redeems invite codes for organization membership."""

    def __init__(
        self,
        port: DataAccessPort,
        ttl_days: int = INVITE_TTL_DAYS,
        code_bytes: int = INVITE_CODE_BYTES,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.port = port
        self.ttl_days = ttl_days
        self.code_bytes = code_bytes
        self.clock = clock

    async def issue(
        self, ctx: RequestContext, organization_id: OrganizationId, email: str, role: str,
    ) -> InviteRecord:
        identity = ctx.require_identity()
        normalized, error = normalize_email(email)
        if error:
            raise error
        grant_role, error = parse_grantable_role(role)
        if error:
            raise error
        await self._require_manager(identity.id, organization_id, "issue invites")

        issued_at = self.clock()
        invite = await self.port.create_invite(
            organization_id,
            normalized,
            grant_role,
            generate_invite_code(self.code_bytes),
            compute_expiry(issued_at, self.ttl_days),
        )
        await self.port.commit()
        logger.info(
            f"Issued {grant_role.value} invite",
            extra={"identity_id": identity.id, "organization_id": organization_id},
        )
        return invite

    async def redeem(self, ctx: RequestContext, code: str) -> OrganizationMembership:
        identity = ctx.require_identity()
        code, error = require_text(code, "code", max_length=64)
        if error:
            raise error

        invite = await self.port.find_invite_by_code(code)
        if invite is None:
            raise ResourceNotFoundError("Invite", "code")
        blocked = check_redeemable(invite, self.clock())
        if blocked:
            raise blocked

        context = ErrorContext(
            identity_id=identity.id, organization_id=str(invite.organization_id),
        )
        if not await self.port.claim_invite(invite.id, self.clock()):
            await self.port.rollback()
            logger.info(
                "Invite claim lost to a concurrent redemption",
                extra={"identity_id": identity.id, "organization_id": invite.organization_id},
            )
            raise InviteAlreadyUsedError(context)

        created = await self.port.add_organization_member(
            invite.organization_id, identity.id, invite.role,
        )
        await self.port.commit()
        ctx.cache.invalidate(identity.id, InvalidationReason.INVITE_REDEEMED)

        membership = await self.port.get_organization_membership(invite.organization_id)
        if membership is None:
            membership = OrganizationMembership(
                organization_id=invite.organization_id,
                identity_id=identity.id,
                role=invite.role,
            )
        logger.info(
            "Invite redeemed" if created else "Invite redeemed by existing member",
            extra={"identity_id": identity.id, "organization_id": invite.organization_id},
        )
        return membership

    async def list_invites(
        self, ctx: RequestContext, organization_id: OrganizationId,
    ) -> list[InviteRecord]:
        identity = ctx.require_identity()
        await self._require_manager(identity.id, organization_id, "list invites")
        return await self.port.list_invites(organization_id)

    async def _require_manager(self, identity_id, organization_id, action: str) -> None:
        membership = await self.port.get_organization_membership(organization_id)
        organization = None
        if membership is None:
            found = await self.port.get_organizations([organization_id])
            organization = found[0] if found else None
        if not can_manage_organization(identity_id, membership, organization):
            raise NotAuthorizedError(
                action,
                ErrorContext(identity_id=identity_id, organization_id=str(organization_id)),
            )
