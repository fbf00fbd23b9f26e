"""Session service - appointments, bookings and the rules around deleting them"""

import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session, selectinload

from ...errors import CantDeletePaidAppointment, ClientOrSessionNotFound, NotFound
from ...models import ClientSession, Sale, SessionSeries, Trainer, TrainingSession
from ..clients.service import ClientService
from ..sales.schemas import SaleCreate
from ..sales.service import SaleService
from .schemas import BookClientCreate, SessionSeriesCreate

logger = logging.getLogger(__name__)

# Payments that were redeemed rather than taken, the sale goes with the appointment
REDEEMED_PAYMENT_TYPES = ("creditPack", "subscription")


class SessionNotFound(NotFound):
    title = "Appointment not found"
    type = "/not-found"


def session_end(session: TrainingSession) -> datetime:
    return session.start + timedelta(minutes=session.duration_minutes)


def _sale_blocks_deletion(sale: Optional[Sale]) -> bool:
    if sale is None or sale.payment_status != "paid":
        return False
    return not any(p.payment_type in REDEEMED_PAYMENT_TYPES for p in sale.payments)


def _redeemed_sale(sale: Optional[Sale]) -> bool:
    return sale is not None and any(p.payment_type in REDEEMED_PAYMENT_TYPES for p in sale.payments)


class SessionService:
    """Service layer for sessions and bookings"""

    def __init__(self, db: Session):
        self.db = db

    def _query(self, trainer: Trainer):
        return (
            self.db.query(TrainingSession)
            .options(
                selectinload(TrainingSession.series),
                selectinload(TrainingSession.client_sessions),
            )
            .filter(TrainingSession.trainer_id == trainer.id)
        )

    def list_sessions(
        self, trainer: Trainer, start: Optional[datetime] = None, end: Optional[datetime] = None
    ) -> list[TrainingSession]:
        query = self._query(trainer)
        if start:
            query = query.filter(TrainingSession.start >= start)
        if end:
            query = query.filter(TrainingSession.start < end)
        return query.order_by(TrainingSession.start).all()

    def get_session(self, session_id: str, trainer: Trainer) -> TrainingSession:
        session = self._query(trainer).filter(TrainingSession.id == session_id).first()
        if not session:
            raise SessionNotFound("No appointment exists with the provided identifier.")
        return session

    def create_series(self, data: SessionSeriesCreate, trainer: Trainer) -> SessionSeries:
        try:
            series = SessionSeries(
                trainer_id=trainer.id,
                name=data.name,
                location=data.location,
                price=data.price,
                duration_minutes=data.durationMinutes,
                session_type=data.sessionType,
            )
            for start in sorted(data.starts):
                series.sessions.append(
                    TrainingSession(
                        trainer_id=trainer.id,
                        start=start,
                        duration_minutes=data.durationMinutes,
                        maximum_attendance=data.maximumAttendance,
                        location=data.location,
                    )
                )
            self.db.add(series)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(series)
        logger.info(f"🗓️ Created session series {series.id} with {len(series.sessions)} sessions")
        return series

    def book_client(self, session_id: str, data: BookClientCreate, trainer: Trainer) -> ClientSession:
        """Book a client straight in, optionally with a sale for the appointment price"""
        session = self.get_session(session_id, trainer)
        client = ClientService(self.db).get_client(data.clientId, trainer)
        series = session.series

        try:
            booking = (
                self.db.query(ClientSession)
                .filter(ClientSession.session_id == session.id, ClientSession.client_id == client.id)
                .with_for_update()
                .first()
            )
            if booking is None:
                booking = ClientSession(
                    trainer_id=trainer.id,
                    client_id=client.id,
                    session_id=session.id,
                    price=series.price,
                )
                self.db.add(booking)
            booking.state = "confirmed"

            if data.createSale and booking.sale_id is None:
                sale = SaleService(self.db).create_sale(
                    SaleCreate(
                        clientId=client.id,
                        name=series.name or "Appointment",
                        price=series.price if series.price is not None else Decimal(0),
                    ),
                    trainer,
                    commit=False,
                )
                booking.sale_id = sale.id

            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(booking)
        logger.info(f"📌 Booked client {client.id} into session {session.id}")
        return booking

    def delete_session(self, session_id: str, trainer: Trainer) -> int:
        """Delete an appointment.

        Refused when any attendee paid for it with money. Sales redeemed from a credit
        pack or subscription are deleted along with it.
        """
        try:
            session = (
                self.db.query(TrainingSession)
                .filter(TrainingSession.id == session_id, TrainingSession.trainer_id == trainer.id)
                .with_for_update()
                .first()
            )
            if not session:
                raise SessionNotFound("No appointment exists with the provided identifier.")

            sales = [cs.sale for cs in session.client_sessions]
            if any(_sale_blocks_deletion(sale) for sale in sales):
                raise CantDeletePaidAppointment(
                    title="One or more clients has paid for the appointment. Please refund first before deleting."
                )

            for sale in {s.id: s for s in sales if _redeemed_sale(s)}.values():
                self.db.delete(sale)
            self.db.delete(session)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"🗑️ Deleted session {session_id}")
        return 1

    def remove_client(self, session_id: str, client_id: str, trainer: Trainer) -> int:
        try:
            booking = (
                self.db.query(ClientSession)
                .join(TrainingSession, ClientSession.session_id == TrainingSession.id)
                .filter(
                    ClientSession.session_id == session_id,
                    ClientSession.client_id == client_id,
                    TrainingSession.trainer_id == trainer.id,
                )
                .with_for_update()
                .first()
            )
            if not booking:
                raise ClientOrSessionNotFound()

            if _sale_blocks_deletion(booking.sale):
                raise CantDeletePaidAppointment(
                    title="This client has paid for the appointment. Please refund first before removing them."
                )
            if _redeemed_sale(booking.sale):
                self.db.delete(booking.sale)
            self.db.delete(booking)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"➖ Removed client {client_id} from session {session_id}")
        return 1
