"""Session router - session series, appointments and bookings"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import get_current_trainer
from ...database import get_db
from ...models import ClientSession, SessionSeries, Trainer, TrainingSession
from ...shared.dates import to_naive_utc
from ...shared.formatting import format_money
from .schemas import (
    AttendeeResponse,
    BookClientCreate,
    DeleteResult,
    SessionResponse,
    SessionSeriesCreate,
    SessionSeriesResponse,
)
from .service import SessionService, session_end

router = APIRouter(tags=["Sessions"])


def get_session_service(db: Session = Depends(get_db)) -> SessionService:
    """Dependency injection for SessionService"""
    return SessionService(db)


def to_attendee_response(booking: ClientSession) -> AttendeeResponse:
    return AttendeeResponse(
        id=booking.id,
        clientId=booking.client_id,
        state=booking.state,
        saleId=booking.sale_id,
        price=format_money(booking.price),
        inviteTime=booking.invite_time,
        acceptTime=booking.accept_time,
        declineTime=booking.decline_time,
    )


def to_session_response(session: TrainingSession) -> SessionResponse:
    series = session.series
    return SessionResponse(
        id=session.id,
        sessionSeriesId=session.session_series_id,
        name=series.name,
        location=session.location or series.location,
        price=format_money(series.price),
        sessionType=series.session_type,
        start=session.start,
        end=session_end(session),
        durationMinutes=session.duration_minutes,
        maximumAttendance=session.maximum_attendance,
        attendees=[to_attendee_response(cs) for cs in session.client_sessions],
    )


def to_series_response(series: SessionSeries) -> SessionSeriesResponse:
    return SessionSeriesResponse(
        id=series.id,
        name=series.name,
        location=series.location,
        price=format_money(series.price),
        durationMinutes=series.duration_minutes,
        sessionType=series.session_type,
        sessions=[to_session_response(s) for s in series.sessions],
    )


@router.post("/sessionSeries", response_model=SessionSeriesResponse, status_code=201)
async def create_session_series(
    data: SessionSeriesCreate,
    trainer: Trainer = Depends(get_current_trainer),
    service: SessionService = Depends(get_session_service),
):
    return to_series_response(service.create_series(data, trainer))


@router.get("/sessions", response_model=list[SessionResponse])
async def list_sessions(
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
    trainer: Trainer = Depends(get_current_trainer),
    service: SessionService = Depends(get_session_service),
):
    sessions = service.list_sessions(trainer, to_naive_utc(start), to_naive_utc(end))
    return [to_session_response(s) for s in sessions]


@router.get("/sessions/{session_id}", response_model=SessionResponse)
async def get_session(
    session_id: str,
    trainer: Trainer = Depends(get_current_trainer),
    service: SessionService = Depends(get_session_service),
):
    return to_session_response(service.get_session(session_id, trainer))


@router.post("/sessions/{session_id}/clients", response_model=AttendeeResponse, status_code=201)
async def book_client(
    session_id: str,
    data: BookClientCreate,
    trainer: Trainer = Depends(get_current_trainer),
    service: SessionService = Depends(get_session_service),
):
    return to_attendee_response(service.book_client(session_id, data, trainer))


@router.delete("/sessions/{session_id}", response_model=DeleteResult)
async def delete_session(
    session_id: str,
    trainer: Trainer = Depends(get_current_trainer),
    service: SessionService = Depends(get_session_service),
):
    return DeleteResult(count=service.delete_session(session_id, trainer))


@router.delete("/sessions/{session_id}/clients/{client_id}", response_model=DeleteResult)
async def remove_client(
    session_id: str,
    client_id: str,
    trainer: Trainer = Depends(get_current_trainer),
    service: SessionService = Depends(get_session_service),
):
    return DeleteResult(count=service.remove_client(session_id, client_id, trainer))


__all__ = ["router", "get_session_service"]
