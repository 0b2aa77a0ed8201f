"""Input Enforcement: tests for email, text and role normalization."""

from app.core.domain_types import MemberRole
from app.core.enforce_input import (
    normalize_email,
    optional_text,
    parse_grantable_role,
    require_text,
)


# ─── normalize_email ─────────────────────────────────────────────

def test_email_is_trimmed_and_lowercased():
    email, error = normalize_email("  Rita@Example.COM ")
    assert error is None
    assert email == "rita@example.com"


def test_empty_email_is_required():
    email, error = normalize_email("   ")
    assert email is None
    assert error.code == "VALIDATION_ERROR"
    assert error.field == "email"


def test_malformed_email_rejected():
    _, error = normalize_email("not-an-email")
    assert error is not None
    assert error.http_status == 400


# ─── require_text / optional_text ────────────────────────────────

def test_require_text_strips():
    value, error = require_text("  Rita  ", "requester_name")
    assert error is None
    assert value == "Rita"


def test_require_text_rejects_blank():
    value, error = require_text(None, "requester_name")
    assert value is None
    assert error.field == "requester_name"


def test_require_text_enforces_max_length():
    _, error = require_text("x" * 11, "name", max_length=10)
    assert error is not None
    assert "10" in error.message


def test_optional_text_blank_becomes_none():
    assert optional_text("   ") is None
    assert optional_text(None) is None
    assert optional_text(" hi ") == "hi"


# ─── parse_grantable_role ────────────────────────────────────────

def test_admin_and_employee_are_grantable():
    assert parse_grantable_role("admin") == (MemberRole.ADMIN, None)
    assert parse_grantable_role(MemberRole.EMPLOYEE) == (MemberRole.EMPLOYEE, None)


def test_owner_cannot_be_granted():
    role, error = parse_grantable_role("owner")
    assert role is None
    assert error.field == "role"


def test_unknown_role_rejected():
    role, error = parse_grantable_role("superuser")
    assert role is None
    assert "superuser" in error.message
