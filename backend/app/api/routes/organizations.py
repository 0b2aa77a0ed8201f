"""Organizations: creation, business creation and the organization's business directory.

Invariants:
    - Authorization lives in TenantOnboarding; routes only translate schemas
"""

from uuid import UUID

from fastapi import APIRouter, Depends, status

from app.api.dependencies import get_caller_context, get_tenant_onboarding
from app.core.membership_cache import RequestContext
from app.schemas.membership import BusinessSummary, OrganizationSummary
from app.schemas.organization import (
    BusinessCreate,
    DirectoryEntryResponse,
    OrganizationCreate,
)
from app.services.tenant_onboarding import TenantOnboarding

router = APIRouter(prefix="/api/v1/organizations", tags=["organizations"])


@router.post(
    "", response_model=OrganizationSummary, status_code=status.HTTP_201_CREATED,
)
async def create_organization(
    body: OrganizationCreate,
    ctx: RequestContext = Depends(get_caller_context),
    onboarding: TenantOnboarding = Depends(get_tenant_onboarding),
):
    organization = await onboarding.create_organization(ctx, body.name)
    return OrganizationSummary.model_validate(organization)


@router.post(
    "/{organization_id}/businesses",
    response_model=BusinessSummary,
    status_code=status.HTTP_201_CREATED,
)
async def create_business(
    organization_id: UUID,
    body: BusinessCreate,
    ctx: RequestContext = Depends(get_caller_context),
    onboarding: TenantOnboarding = Depends(get_tenant_onboarding),
):
    business = await onboarding.create_business(
        ctx, organization_id, body.name, body.type, body.description,
    )
    return BusinessSummary.model_validate(business)


@router.get(
    "/{organization_id}/businesses", response_model=list[DirectoryEntryResponse],
)
async def list_businesses(
    organization_id: UUID,
    ctx: RequestContext = Depends(get_caller_context),
    onboarding: TenantOnboarding = Depends(get_tenant_onboarding),
):
    """Every business in the organization, with the caller's role (None: may request access)."""
    entries = await onboarding.list_organization_businesses(ctx, organization_id)
    return [
        DirectoryEntryResponse(
            business=BusinessSummary.model_validate(e.business), role=e.role,
        )
        for e in entries
    ]
