"""Identity Events: react to sign-in and sign-out reported by the identity gateway."""

import logging

from app.core.domain_types import InvalidationReason
from app.core.membership_cache import RequestContext
from app.core.repository_protocols import IdentityDirectory

logger = logging.getLogger(__name__)


class IdentityEvents:

    def __init__(self, directory: IdentityDirectory):
        self.directory = directory

    async def signed_in(self, ctx: RequestContext) -> None:
        """Mirror the identity into profiles, then drop any stale snapshot."""
        identity = ctx.require_identity()
        if identity.email:
            await self.directory.record_sign_in(identity)
            await self.directory.commit()
        ctx.cache.invalidate(identity.id, InvalidationReason.SIGNED_IN)
        logger.info("Identity signed in", extra={"identity_id": identity.id})

    async def signed_out(self, ctx: RequestContext) -> None:
        identity = ctx.require_identity()
        ctx.cache.invalidate(identity.id, InvalidationReason.SIGNED_OUT)
        logger.info("Identity signed out", extra={"identity_id": identity.id})
