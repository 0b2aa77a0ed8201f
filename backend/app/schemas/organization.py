"""Organization Schemas: organization/business creation and the business directory.

Invariants:
    - Names are 1-200 chars after stripping; business type 1-100 chars
"""

from pydantic import BaseModel, Field, field_validator

from app.core.domain_types import MemberRole
from app.schemas.membership import BusinessSummary


class OrganizationCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name cannot be empty or whitespace")
        return v


class BusinessCreate(BaseModel):
    """New business under an organization; the caller becomes its owner."""
    name: str = Field(min_length=1, max_length=200)
    type: str = Field(min_length=1, max_length=100)
    description: str | None = Field(None, max_length=2000)

    @field_validator("name", "type")
    @classmethod
    def strip_required(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("field cannot be empty or whitespace")
        return v


class DirectoryEntryResponse(BaseModel):
    """A business in the organization, with the caller's role (None: may request access)."""
    business: BusinessSummary
    role: MemberRole | None = None
