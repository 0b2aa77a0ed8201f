"""Invite Schemas: issuing and redeeming organization invites.

Invariants:
    - InviteCreate.role is restricted to grantable roles (admin, employee)
    - InviteRedeem.code is stripped and non-empty
"""

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.core.domain_types import MemberRole


class InviteCreate(BaseModel):
    email: str = Field(min_length=3, max_length=320)
    role: Literal["admin", "employee"]

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.strip().lower()


class InviteResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    organization_id: UUID
    email: str
    role: MemberRole
    code: str
    created_by: str
    created_at: datetime | None = None
    expires_at: datetime
    used_at: datetime | None = None
    used_by: str | None = None


class InviteRedeem(BaseModel):
    code: str = Field(min_length=1, max_length=64)

    @field_validator("code")
    @classmethod
    def strip_code(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("code cannot be empty or whitespace")
        return v


class OrganizationMembershipResponse(BaseModel):
    """The membership the redeemer now holds."""
    model_config = ConfigDict(from_attributes=True)

    organization_id: UUID
    identity_id: str
    role: MemberRole
