"""Membership Cache: resolved snapshots for the lifetime of a process.

Invariants:
    - One snapshot per identity id; degraded and partial snapshots are never stored
    - Every invalidation names an InvalidationReason (logged for audit)
    - invalidate_email drops the snapshot of whichever identity carries that email

Design Decisions:
    - Explicit object on app.state, passed in RequestContext: no module-level dict
    - Email index kept alongside because approvals know the requester only by email
"""

import logging
from dataclasses import dataclass

from app.core.domain_types import (
    Identity,
    IdentityId,
    InvalidationReason,
    MembershipSnapshot,
)
from app.core.errors import NotAuthenticatedError

logger = logging.getLogger(__name__)


class MembershipCache:
    """Snapshot store keyed by identity id."""

    def __init__(self):
        self._snapshots: dict[IdentityId, MembershipSnapshot] = {}
        self._emails: dict[str, IdentityId] = {}

    def get(self, identity_id: IdentityId) -> MembershipSnapshot | None:
        return self._snapshots.get(identity_id)

    def put(self, identity: Identity, snapshot: MembershipSnapshot) -> None:
        if snapshot.degraded or snapshot.partial:
            return
        self._snapshots[identity.id] = snapshot
        if identity.email:
            self._emails[identity.email.lower()] = identity.id

    def invalidate(self, identity_id: IdentityId, reason: InvalidationReason) -> bool:
        dropped = self._snapshots.pop(identity_id, None) is not None
        logger.info(
            f"Membership cache invalidated ({reason.value})",
            extra={"identity_id": identity_id, "reason": reason.value},
        )
        return dropped

    def invalidate_email(self, email: str, reason: InvalidationReason) -> bool:
        identity_id = self._emails.get(email.lower())
        if identity_id is None:
            return False
        return self.invalidate(identity_id, reason)

    def clear(self) -> None:
        self._snapshots.clear()
        self._emails.clear()

    def __len__(self) -> int:
        return len(self._snapshots)


@dataclass
class RequestContext:
    """Explicit per-call context: who is calling and where resolved state lives."""
    identity: Identity | None
    cache: MembershipCache

    def require_identity(self) -> Identity:
        if self.identity is None:
            raise NotAuthenticatedError()
        return self.identity
