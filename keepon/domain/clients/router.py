"""Client router - FastAPI endpoints for client operations"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from ...auth import get_current_trainer
from ...database import get_db
from ...models import Client, Trainer
from .schemas import ClientCreate, ClientResponse, ClientStatus, ClientUpdate
from .service import ClientService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/clients", tags=["Clients"])


def get_client_service(db: Session = Depends(get_db)) -> ClientService:
    """Dependency injection for ClientService"""
    return ClientService(db)


def to_client_response(c: Client) -> ClientResponse:
    return ClientResponse(
        id=c.id,
        firstName=c.first_name,
        lastName=c.last_name,
        email=c.email,
        phone=c.phone,
        status=c.status,
        notes=c.notes,
        hasPaymentMethod=bool(c.stripe_customer_id),
        createdAt=c.created_at,
        updatedAt=c.updated_at,
    )


# ============================================================================
# CORE CRUD OPERATIONS
# ============================================================================


@router.get("", response_model=list[ClientResponse])
async def get_clients(
    status: Optional[ClientStatus] = Query(None),
    q: Optional[str] = Query(None),
    trainer: Trainer = Depends(get_current_trainer),
    service: ClientService = Depends(get_client_service),
):
    """Get all clients for the current trainer"""
    return [to_client_response(c) for c in service.get_clients(trainer, status, q)]


@router.get("/{client_id}", response_model=ClientResponse)
async def get_client(
    client_id: str,
    trainer: Trainer = Depends(get_current_trainer),
    service: ClientService = Depends(get_client_service),
):
    return to_client_response(service.get_client(client_id, trainer))


@router.post("", response_model=ClientResponse, status_code=201)
async def create_client(
    data: ClientCreate,
    trainer: Trainer = Depends(get_current_trainer),
    service: ClientService = Depends(get_client_service),
):
    return to_client_response(service.create_client(data, trainer))


@router.patch("/{client_id}", response_model=ClientResponse)
async def update_client(
    client_id: str,
    data: ClientUpdate,
    trainer: Trainer = Depends(get_current_trainer),
    service: ClientService = Depends(get_client_service),
):
    return to_client_response(service.update_client(client_id, data, trainer))


@router.delete("/{client_id}", status_code=204)
async def delete_client(
    client_id: str,
    trainer: Trainer = Depends(get_current_trainer),
    service: ClientService = Depends(get_client_service),
):
    service.delete_client(client_id, trainer)
    return Response(status_code=204)


__all__ = ["router", "get_client_service", "to_client_response"]
