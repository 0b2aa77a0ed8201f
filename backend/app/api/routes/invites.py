"""Invites: issue and list per organization, redeem by code."""

from uuid import UUID

from fastapi import APIRouter, Depends, status

from app.api.dependencies import get_caller_context, get_invite_lifecycle
from app.core.membership_cache import RequestContext
from app.schemas.invite import (
    InviteCreate,
    InviteRedeem,
    InviteResponse,
    OrganizationMembershipResponse,
)
from app.services.invite_lifecycle import InviteLifecycleManager

router = APIRouter(prefix="/api/v1", tags=["invites"])


@router.post(
    "/organizations/{organization_id}/invites",
    response_model=InviteResponse,
    status_code=status.HTTP_201_CREATED,
)
async def issue_invite(
    organization_id: UUID,
    body: InviteCreate,
    ctx: RequestContext = Depends(get_caller_context),
    invites: InviteLifecycleManager = Depends(get_invite_lifecycle),
):
    invite = await invites.issue(ctx, organization_id, body.email, body.role)
    return InviteResponse.model_validate(invite)


@router.get(
    "/organizations/{organization_id}/invites", response_model=list[InviteResponse],
)
async def list_invites(
    organization_id: UUID,
    ctx: RequestContext = Depends(get_caller_context),
    invites: InviteLifecycleManager = Depends(get_invite_lifecycle),
):
    return [
        InviteResponse.model_validate(i)
        for i in await invites.list_invites(ctx, organization_id)
    ]


@router.post("/invites/redeem", response_model=OrganizationMembershipResponse)
async def redeem_invite(
    body: InviteRedeem,
    ctx: RequestContext = Depends(get_caller_context),
    invites: InviteLifecycleManager = Depends(get_invite_lifecycle),
):
    membership = await invites.redeem(ctx, body.code)
    return OrganizationMembershipResponse.model_validate(membership)
