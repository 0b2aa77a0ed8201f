"""Invite Enforcement: code generation, expiry, and the redeemability check.

Invariants:
    - An invite is redeemable iff used_at is None and now < expires_at
    - Check order is fixed: expired before already-used, so a past-expiry
      invite always reports Expired regardless of used_at
    - Codes come from the OS CSPRNG and carry no email or timestamp material
"""

import secrets
from datetime import datetime, timedelta

from app.core.domain_types import InviteRecord, as_utc
from app.core.errors import (
    InviteAlreadyUsedError,
    InviteExpiredError,
    TenancyError,
    ErrorContext,
)

INVITE_TTL_DAYS: int = 7
INVITE_CODE_BYTES: int = 18


def generate_invite_code(num_bytes: int = INVITE_CODE_BYTES) -> str:
    return secrets.token_urlsafe(num_bytes)


def compute_expiry(issued_at: datetime, ttl_days: int = INVITE_TTL_DAYS) -> datetime:
    return as_utc(issued_at) + timedelta(days=ttl_days)


def check_redeemable(invite: InviteRecord, now: datetime) -> TenancyError | None:
    """Return the error that blocks redemption, or None."""
    context = ErrorContext(organization_id=str(invite.organization_id))
    expires_at = as_utc(invite.expires_at)
    if as_utc(now) >= expires_at:
        return InviteExpiredError(expires_at, context)
    if invite.used_at is not None:
        return InviteAlreadyUsedError(context)
    return None


def is_redeemable(invite: InviteRecord, now: datetime) -> bool:
    return check_redeemable(invite, now) is None
