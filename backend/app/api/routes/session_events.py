"""Session Events: sign-in/sign-out notifications from the UI's identity gateway."""

from fastapi import APIRouter, Depends, status

from app.api.dependencies import get_caller_context, get_identity_events
from app.core.membership_cache import RequestContext
from app.schemas.session_event import SessionEvent
from app.services.identity_events import IdentityEvents

router = APIRouter(prefix="/api/v1/session", tags=["session"])


@router.post("/events", status_code=status.HTTP_204_NO_CONTENT)
async def post_session_event(
    body: SessionEvent,
    ctx: RequestContext = Depends(get_caller_context),
    events: IdentityEvents = Depends(get_identity_events),
):
    if body.event == "signed_in":
        await events.signed_in(ctx)
    else:
        await events.signed_out(ctx)
