"""Consistency Fallback: recover the caller's own owned rows when the scoped path comes up short.

Invariants:
    - Scoped (policy-restricted) path is always tried first
    - The administrative path runs only when the scoped path errored, or returned
      zero rows while the direct-owner count is nonzero (or unknown)
    - Administrative rows ALWAYS pass through filter_owned(caller) before use;
      another identity's rows can never leave this module
    - Merge prefers the scoped row's fields for ids present on both paths
    - Scoped failure + administrative failure raises UpstreamUnavailableError

Design Decisions:
    - Only consumer of AdministrativeReadPort: keeps the unscoped path narrow
"""

import logging

from app.core.domain_types import EntityKind, Identity
from app.core.errors import UpstreamUnavailableError
from app.core.membership_merge import filter_owned, merge_by_id
from app.core.repository_protocols import (
    AdministrativeReadPort,
    DataAccessPort,
    OwnedRecord,
)

logger = logging.getLogger(__name__)


class ConsistencyFallback:
    """Owned-entity reads with a narrowly scoped administrative fallback."""

    def __init__(self, port: DataAccessPort, admin: AdministrativeReadPort):
        self.port = port
        self.admin = admin

    async def owned(self, kind: EntityKind, identity: Identity) -> list[OwnedRecord]:
        """Entities of `kind` whose owner_id is the caller."""
        scoped: list[OwnedRecord] = []
        scoped_failed = False
        try:
            scoped = filter_owned(await self.port.list_owned(kind), identity.id)
        except UpstreamUnavailableError as e:
            scoped_failed = True
            logger.warning(
                f"Scoped owner read failed, trying fallback: {e.message}",
                extra={"identity_id": identity.id, "operation": e.operation},
            )

        if scoped:
            return scoped
        if not scoped_failed and await self._known_none_owned(kind, identity):
            return []
        return await self._administrative(kind, identity, scoped, scoped_failed)

    async def _known_none_owned(self, kind: EntityKind, identity: Identity) -> bool:
        """Cheap direct-owner check. An unknown count counts as 'maybe'."""
        try:
            return await self.port.count_owned(kind) == 0
        except UpstreamUnavailableError:
            return False

    async def _administrative(
        self,
        kind: EntityKind,
        identity: Identity,
        scoped: list[OwnedRecord],
        scoped_failed: bool,
    ) -> list[OwnedRecord]:
        try:
            rows = await self.admin.list_all(kind)
        except UpstreamUnavailableError:
            if scoped_failed:
                raise
            logger.warning(
                f"Administrative {kind.value} read failed; using scoped result",
                extra={"identity_id": identity.id},
            )
            return scoped
        recovered = filter_owned(rows, identity.id)
        if recovered:
            logger.info(
                f"Recovered {len(recovered)} owned {kind.value}(s) via administrative path",
                extra={"identity_id": identity.id, "reason": "fallback"},
            )
        return merge_by_id(scoped, recovered)
