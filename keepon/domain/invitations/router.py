"""Session invitation router - trainer invitations and the public accept/decline links"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from fastapi.responses import HTMLResponse
from sqlalchemy.orm import Session

from ...auth import get_current_trainer
from ...database import get_db
from ...email_templates import (
    booked_page,
    declined_page,
    event_not_found_page,
    invitation_expired_page,
    max_capacity_page,
)
from ...models import Trainer
from ...shared.validators import validate_uuid
from .schemas import InvitationCreate, InvitationResponse
from .service import ACTION_ACCEPT, ACTION_DECLINE, InvitationOutcome, InvitationService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Session Invitations"])


def get_invitation_service(db: Session = Depends(get_db)) -> InvitationService:
    """Dependency injection for InvitationService"""
    return InvitationService(db)


@router.post("/sessionInvitations", response_model=InvitationResponse)
async def create_invitation(
    data: InvitationCreate,
    trainer: Trainer = Depends(get_current_trainer),
    service: InvitationService = Depends(get_invitation_service),
):
    booking = service.create_invitation(data.clientId, data.sessionId, trainer)
    return InvitationResponse(
        id=booking.id,
        clientId=booking.client_id,
        sessionId=booking.session_id,
        sentAt=booking.invite_time,
    )


@router.delete("/sessionInvitations/{invitation_id}", status_code=204)
async def delete_invitation(
    invitation_id: str,
    trainer: Trainer = Depends(get_current_trainer),
    service: InvitationService = Depends(get_invitation_service),
):
    service.delete_invitation(invitation_id, trainer)
    return Response(status_code=204)


def render_outcome(outcome: InvitationOutcome) -> str:
    details = outcome.details
    if outcome.kind == "expired":
        return invitation_expired_page(details.public_email)
    if outcome.kind == "full":
        return max_capacity_page(details.maximum_attendance or 0, details.public_email)
    if outcome.kind == "declined":
        return declined_page()
    if outcome.kind == "accepted":
        return booked_page(
            event_name=details.event_name,
            date_range=details.date_range,
            price_text=details.price_text,
            location=details.location,
            service_provider_name=details.service_provider_name,
        )
    return event_not_found_page()


@router.get("/api/sessionInvitationLinks/{invitation_id}", response_class=HTMLResponse)
def respond_to_invitation(
    invitation_id: str,
    action: Optional[str] = Query(None),
    service: InvitationService = Depends(get_invitation_service),
):
    """Public page behind the accept/decline buttons of an invitation email"""
    if not validate_uuid(invitation_id) or action not in (ACTION_ACCEPT, ACTION_DECLINE):
        logger.warning(f"⚠️ Bad invitation link: id={invitation_id!r} action={action!r}")
        return HTMLResponse(event_not_found_page(), status_code=400)

    try:
        outcome = service.respond(invitation_id, action)
    except Exception:
        logger.exception(f"❌ Failed to handle session invitation link {invitation_id} ({action})")
        return HTMLResponse(event_not_found_page())

    return HTMLResponse(render_outcome(outcome))


__all__ = ["router", "get_invitation_service"]
