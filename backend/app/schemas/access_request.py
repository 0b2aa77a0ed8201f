"""Access Request Schemas: submission, decision and listing.

Invariants:
    - requester_name / requester_email required and stripped
    - requested_role limited to admin/employee
    - decision is approve | reject
"""

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.core.domain_types import AccessRequestStatus, MemberRole


class AccessRequestCreate(BaseModel):
    requester_name: str = Field(min_length=1, max_length=200)
    requester_email: str = Field(min_length=3, max_length=320)
    requester_message: str | None = Field(None, max_length=2000)
    requested_role: Literal["admin", "employee"] = "employee"

    @field_validator("requester_name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("requester_name cannot be empty or whitespace")
        return v

    @field_validator("requester_email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.strip().lower()


class AccessRequestDecision(BaseModel):
    decision: Literal["approve", "reject"]


class AccessRequestResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    business_id: UUID
    requester_name: str
    requester_email: str
    requester_message: str | None = None
    requested_role: MemberRole
    status: AccessRequestStatus
    created_at: datetime | None = None
    decided_by: str | None = None
    decided_at: datetime | None = None
    granted_identity_id: str | None = None
    granted_at: datetime | None = None
