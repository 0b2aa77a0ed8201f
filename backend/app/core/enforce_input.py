"""Input Enforcement: normalization and validation of caller-supplied fields.

Invariants:
    - Pure: returns (value, None) on success or (None, InputValidationError)
    - Emails are trimmed and lower-cased before any comparison or persistence
    - Only admin/employee are grantable through invites and access requests
"""

import re

from app.core.domain_types import GRANTABLE_ROLES, MemberRole
from app.core.errors import InputValidationError

_EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
MAX_NAME_LENGTH = 200
MAX_MESSAGE_LENGTH = 2000


def normalize_email(raw: str | None) -> tuple[str | None, InputValidationError | None]:
    email = (raw or "").strip().lower()
    if not email:
        return None, InputValidationError("Email is required", "email")
    if not _EMAIL_PATTERN.match(email):
        return None, InputValidationError(f"'{email}' is not a valid email", "email")
    return email, None


def require_text(
    raw: str | None, field: str, max_length: int = MAX_NAME_LENGTH,
) -> tuple[str | None, InputValidationError | None]:
    value = (raw or "").strip()
    if not value:
        return None, InputValidationError(f"{field} is required", field)
    if len(value) > max_length:
        return None, InputValidationError(
            f"{field} exceeds {max_length} characters", field,
        )
    return value, None


def optional_text(raw: str | None, max_length: int = MAX_MESSAGE_LENGTH) -> str | None:
    value = (raw or "").strip()
    return value[:max_length] or None


def parse_grantable_role(
    raw: str | MemberRole | None,
) -> tuple[MemberRole | None, InputValidationError | None]:
    """Parse a role that may be granted by invite or access request."""
    try:
        role = MemberRole(raw)
    except ValueError:
        return None, InputValidationError(f"Unknown role '{raw}'", "role")
    if role not in GRANTABLE_ROLES:
        return None, InputValidationError(
            f"Role '{role.value}' cannot be granted", "role",
        )
    return role, None
