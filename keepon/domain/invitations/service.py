"""Session invitation service - inviting clients and handling their accept/decline links"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from ...config import APP_EMAIL, APP_NAME, BASE_URL, NO_REPLY_EMAIL
from ...email_service import queue_mail
from ...email_templates import (
    capacity_reached_template,
    invitation_accepted_client_template,
    invitation_accepted_trainer_template,
    invitation_declined_trainer_template,
    session_invitation_template,
)
from ...errors import (
    AppointmentHasAlreadyStarted,
    ClientHasNoEmail,
    ClientOrSessionNotFound,
    CountryNotSupported,
    NotFound,
)
from ...models import Client, ClientSession, Trainer, TrainingSession
from ...shared.dates import format_date_range, utcnow
from ...shared.formatting import format_currency, format_money, join_names, trainer_display_name, trainer_public_email
from ...workflow.outbox import notify_user
from ..fees.transaction_fees import currency_for_country
from ..sessions.service import session_end

logger = logging.getLogger(__name__)

ACTION_ACCEPT = "accept"
ACTION_DECLINE = "decline"

RESPONDABLE_STATES = ("invited", "declined", "accepted")
ATTENDING_STATES = ("accepted", "confirmed")


class InvitationNotFound(NotFound):
    title = "Invitation not found"
    type = "/not-found"


def format_event_price(price: Optional[Decimal], trainer: Trainer) -> Optional[str]:
    if price is None:
        return None
    if Decimal(price) == 0:
        return "Free"
    try:
        return format_currency(price, currency_for_country(trainer.country))
    except CountryNotSupported:
        return format_money(price)


def invitation_link(invitation_id: str, action: str) -> str:
    return f"{BASE_URL}/api/sessionInvitationLinks/{invitation_id}?action={action}"


@dataclass
class InvitationDetails:
    """Everything the pages and mails show, captured before the transaction ends"""

    invitation_id: str
    client_id: str
    client_first_name: str
    client_email: Optional[str]
    client_full_name: str
    trainer_id: str
    trainer_user_id: str
    service_provider_email: str
    public_email: str
    service_provider_name: str
    event_name: str
    location: Optional[str]
    date_range: str
    price_text: Optional[str]
    maximum_attendance: Optional[int]


@dataclass
class InvitationOutcome:
    kind: str  # accepted, declined, expired, full, not-found
    details: Optional[InvitationDetails] = None


def _details(booking: ClientSession) -> InvitationDetails:
    session: TrainingSession = booking.session
    series = session.series
    client: Client = booking.client
    trainer: Trainer = session.trainer
    return InvitationDetails(
        invitation_id=booking.id,
        client_id=client.id,
        client_first_name=client.first_name,
        client_email=client.email,
        client_full_name=join_names(client.first_name, client.last_name) or "A client",
        trainer_id=trainer.id,
        trainer_user_id=trainer.user_id,
        service_provider_email=trainer.email,
        public_email=trainer_public_email(trainer),
        service_provider_name=trainer_display_name(trainer),
        event_name=series.name or "Group Appointment",
        location=session.location or series.location,
        date_range=format_date_range(session.start, session_end(session), trainer.timezone),
        price_text=format_event_price(series.price, trainer),
        maximum_attendance=session.maximum_attendance,
    )


class InvitationService:
    """Service layer for session invitations"""

    def __init__(self, db: Session):
        self.db = db

    def create_invitation(self, client_id: str, session_id: str, trainer: Trainer) -> ClientSession:
        """Invite a client to an appointment, or re-invite them, and email the links"""
        try:
            client = (
                self.db.query(Client)
                .filter(Client.id == client_id, Client.trainer_id == trainer.id)
                .first()
            )
            session = (
                self.db.query(TrainingSession)
                .filter(TrainingSession.id == session_id, TrainingSession.trainer_id == trainer.id)
                .first()
            )
            if not client or not session:
                raise ClientOrSessionNotFound(
                    "We could not find the specified client or session for the authenticated trainer."
                )
            if not client.email:
                raise ClientHasNoEmail("A client email address is required to send an invitation.")
            if session.start <= utcnow():
                raise AppointmentHasAlreadyStarted(
                    "This appointment has already started and invitations can no longer be sent."
                )

            now = utcnow()
            booking = (
                self.db.query(ClientSession)
                .filter(ClientSession.session_id == session.id, ClientSession.client_id == client.id)
                .with_for_update()
                .first()
            )
            if booking is None:
                booking = ClientSession(
                    trainer_id=trainer.id,
                    client=client,
                    session=session,
                    price=session.series.price,
                )
                self.db.add(booking)
            booking.state = "invited"
            booking.invite_time = now
            self.db.flush()

            details = _details(booking)
            sender_name = (trainer.business_name or "").strip() or f"{APP_NAME} Team"
            queue_mail(
                self.db,
                to_email=client.email,
                to_name=client.first_name,
                subject=f"{sender_name} has invited you to {details.event_name} @ {details.date_range}",
                mjml_content=session_invitation_template(
                    client_first_name=client.first_name,
                    service_provider_name=details.service_provider_name,
                    event_name=details.event_name,
                    date_range=details.date_range,
                    location=details.location,
                    price_text=details.price_text,
                    accept_url=invitation_link(booking.id, ACTION_ACCEPT),
                    decline_url=invitation_link(booking.id, ACTION_DECLINE),
                ),
                from_email=NO_REPLY_EMAIL,
                from_name=f"{sender_name} via {APP_NAME}",
                reply_to=trainer.email,
                trainer_id=trainer.id,
                client_id=client.id,
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(booking)
        logger.info(f"✉️ Invited client {client_id} to session {session_id} ({booking.id})")
        return booking

    def delete_invitation(self, invitation_id: str, trainer: Trainer) -> None:
        try:
            deleted = (
                self.db.query(ClientSession)
                .filter(
                    ClientSession.id == invitation_id,
                    ClientSession.trainer_id == trainer.id,
                    ClientSession.state == "invited",
                )
                .delete(synchronize_session=False)
            )
            if not deleted:
                raise InvitationNotFound()
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        logger.info(f"🗑️ Deleted invitation {invitation_id}")

    # ========================================================================
    # ACCEPT / DECLINE LINKS
    # ========================================================================

    def respond(self, invitation_id: str, action: str) -> InvitationOutcome:
        """Apply the client's answer from an emailed link. Answering twice has no side effects."""
        try:
            outcome = self._respond(invitation_id, action)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        logger.info(f"📨 Invitation {invitation_id} {action}: {outcome.kind}")
        return outcome

    def _respond(self, invitation_id: str, action: str) -> InvitationOutcome:
        booking = (
            self.db.query(ClientSession)
            .filter(ClientSession.id == invitation_id, ClientSession.state.in_(RESPONDABLE_STATES))
            .with_for_update(key_share=True)
            .first()
        )
        if not booking:
            return InvitationOutcome("not-found")

        details = _details(booking)
        now = utcnow()

        if booking.session.start < now:
            return InvitationOutcome("expired", details)

        if action == ACTION_ACCEPT:
            if booking.state != "accepted":
                if self._is_full(booking):
                    self._queue_capacity_reached(details)
                    return InvitationOutcome("full", details)

                booking.state = "accepted"
                booking.accept_time = now
                booking.decline_time = None
                self._queue_accepted(details)
            return InvitationOutcome("accepted", details)

        if booking.state != "declined":
            booking.state = "declined"
            booking.decline_time = now
            self._queue_declined(details)
        return InvitationOutcome("declined", details)

    def _is_full(self, booking: ClientSession) -> bool:
        maximum = booking.session.maximum_attendance
        if maximum is None:
            return False
        attending = (
            self.db.query(ClientSession)
            .filter(
                ClientSession.session_id == booking.session_id,
                ClientSession.state.in_(ATTENDING_STATES),
                ClientSession.id != booking.id,
            )
            .count()
        )
        return attending >= maximum

    def _queue_capacity_reached(self, details: InvitationDetails) -> None:
        queue_mail(
            self.db,
            to_email=details.service_provider_email,
            subject=f"{details.client_full_name} tried to accept an invitation but the appointment was full",
            mjml_content=capacity_reached_template(
                client_full_name=details.client_full_name,
                event_name=details.event_name,
                date_range=details.date_range,
                maximum_attendance=details.maximum_attendance,
            ),
            from_email=APP_EMAIL,
            from_name=f"{APP_NAME} Team",
            trainer_id=details.trainer_id,
            client_id=details.client_id,
        )

    def _queue_accepted(self, details: InvitationDetails) -> None:
        queue_mail(
            self.db,
            to_email=details.service_provider_email,
            subject=f"{details.client_full_name} accepted your invitation to {details.event_name} @ {details.date_range}",
            mjml_content=invitation_accepted_trainer_template(
                client_full_name=details.client_full_name,
                event_name=details.event_name,
                date_range=details.date_range,
                location=details.location,
                price_text=details.price_text,
            ),
            from_email=APP_EMAIL,
            from_name=f"{APP_NAME} Team",
            trainer_id=details.trainer_id,
            client_id=details.client_id,
        )

        if details.client_email:
            queue_mail(
                self.db,
                to_email=details.client_email,
                to_name=details.client_first_name,
                subject=f"You're booked in for {details.event_name}",
                mjml_content=invitation_accepted_client_template(
                    service_provider_name=details.service_provider_name,
                    event_name=details.event_name,
                    date_range=details.date_range,
                    location=details.location,
                    price_text=details.price_text,
                ),
                from_email=NO_REPLY_EMAIL,
                from_name=f"{details.service_provider_name} via {APP_NAME}",
                reply_to=details.service_provider_email,
                trainer_id=details.trainer_id,
                client_id=details.client_id,
            )

        notify_user(
            self.db,
            user_id=details.trainer_user_id,
            title="Invitation accepted",
            body=f"{details.client_full_name} accepted your invitation for: {details.event_name} @ {details.date_range}",
            message_type="success",
            notification_type="general",
            client_id=details.client_id,
        )

    def _queue_declined(self, details: InvitationDetails) -> None:
        queue_mail(
            self.db,
            to_email=details.service_provider_email,
            subject=f"{details.client_full_name} declined your invitation to {details.event_name} @ {details.date_range}",
            mjml_content=invitation_declined_trainer_template(
                client_full_name=details.client_full_name,
                event_name=details.event_name,
                date_range=details.date_range,
            ),
            from_email=APP_EMAIL,
            from_name=f"{APP_NAME} Team",
            trainer_id=details.trainer_id,
            client_id=details.client_id,
        )
        notify_user(
            self.db,
            user_id=details.trainer_user_id,
            title="Invitation declined",
            body=f"{details.client_full_name} declined your invitation for: {details.event_name} @ {details.date_range}",
            message_type="failure",
            notification_type="general",
            client_id=details.client_id,
        )
