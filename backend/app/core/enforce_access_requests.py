"""Access Request Enforcement: the pending → approved | rejected state machine.

Invariants:
    - Only PENDING has outgoing transitions; APPROVED and REJECTED are terminal
    - Deciding a terminal request yields AlreadyDecidedError, never a silent no-op
"""

from app.core.domain_types import (
    AccessDecision,
    AccessRequestRecord,
    AccessRequestStatus,
)
from app.core.errors import AlreadyDecidedError, ErrorContext

_TRANSITIONS: dict[AccessRequestStatus, dict[AccessDecision, AccessRequestStatus]] = {
    AccessRequestStatus.PENDING: {
        AccessDecision.APPROVE: AccessRequestStatus.APPROVED,
        AccessDecision.REJECT: AccessRequestStatus.REJECTED,
    },
    AccessRequestStatus.APPROVED: {},
    AccessRequestStatus.REJECTED: {},
}


def is_terminal(status: AccessRequestStatus) -> bool:
    return not _TRANSITIONS[status]


def next_status(
    request: AccessRequestRecord, decision: AccessDecision,
) -> tuple[AccessRequestStatus | None, AlreadyDecidedError | None]:
    """Target status for a decision, or the error when the request is terminal."""
    target = _TRANSITIONS[request.status].get(decision)
    if target is None:
        return None, AlreadyDecidedError(
            request.status.value,
            ErrorContext(business_id=str(request.business_id)),
        )
    return target, None


def needs_grant(request: AccessRequestRecord) -> bool:
    """Approved request whose membership has not been materialized yet."""
    return (
        request.status is AccessRequestStatus.APPROVED
        and request.granted_identity_id is None
    )
