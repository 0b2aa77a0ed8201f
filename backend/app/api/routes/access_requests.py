"""Access Requests: submit and list per business, decide per request.

Invariants:
    - Decision dispatches approve|reject; checks and state transitions live in the workflow
"""

from uuid import UUID

from fastapi import APIRouter, Depends, status

from app.api.dependencies import get_access_request_workflow, get_caller_context
from app.core.domain_types import AccessDecision
from app.core.membership_cache import RequestContext
from app.schemas.access_request import (
    AccessRequestCreate,
    AccessRequestDecision,
    AccessRequestResponse,
)
from app.services.access_request_workflow import AccessRequestWorkflow

router = APIRouter(prefix="/api/v1", tags=["access-requests"])


@router.post(
    "/businesses/{business_id}/access-requests",
    response_model=AccessRequestResponse,
    status_code=status.HTTP_201_CREATED,
)
async def submit_access_request(
    business_id: UUID,
    body: AccessRequestCreate,
    ctx: RequestContext = Depends(get_caller_context),
    workflow: AccessRequestWorkflow = Depends(get_access_request_workflow),
):
    request = await workflow.submit(
        ctx,
        business_id,
        body.requester_name,
        body.requester_email,
        body.requester_message,
        body.requested_role,
    )
    return AccessRequestResponse.model_validate(request)


@router.get(
    "/businesses/{business_id}/access-requests",
    response_model=list[AccessRequestResponse],
)
async def list_access_requests(
    business_id: UUID,
    ctx: RequestContext = Depends(get_caller_context),
    workflow: AccessRequestWorkflow = Depends(get_access_request_workflow),
):
    return [
        AccessRequestResponse.model_validate(r)
        for r in await workflow.list_for_business(ctx, business_id)
    ]


@router.post(
    "/access-requests/{request_id}/decision", response_model=AccessRequestResponse,
)
async def decide_access_request(
    request_id: UUID,
    body: AccessRequestDecision,
    ctx: RequestContext = Depends(get_caller_context),
    workflow: AccessRequestWorkflow = Depends(get_access_request_workflow),
):
    request = await workflow.decide(ctx, request_id, AccessDecision(body.decision))
    return AccessRequestResponse.model_validate(request)
