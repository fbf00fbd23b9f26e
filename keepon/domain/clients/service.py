"""Client service - Business logic for client operations"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from ...errors import NotFound
from ...models import Client, Trainer
from .repository import ClientRepository
from .schemas import ClientCreate, ClientUpdate

logger = logging.getLogger(__name__)


class ClientNotFound(NotFound):
    title = "Client not found."
    type = "/client-not-found"


class ClientService:
    """Service layer for client business logic"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = ClientRepository()

    def get_clients(
        self, trainer: Trainer, status: Optional[str] = None, search: Optional[str] = None
    ) -> list[Client]:
        """Get all clients for a trainer"""
        return self.repo.get_clients(self.db, trainer.id, status, search)

    def get_client(self, client_id: str, trainer: Trainer) -> Client:
        """Get a specific client"""
        client = self.repo.get_client_by_id(self.db, client_id, trainer.id)
        if not client:
            raise ClientNotFound()
        return client

    def create_client(self, data: ClientCreate, trainer: Trainer) -> Client:
        logger.info(f"📥 Creating client for trainer_id: {trainer.id}")
        return self.repo.create_client(
            self.db,
            trainer.id,
            first_name=data.firstName,
            last_name=data.lastName,
            email=data.email,
            phone=data.phone,
            status=data.status,
            notes=data.notes,
        )

    def update_client(self, client_id: str, data: ClientUpdate, trainer: Trainer) -> Client:
        client = self.get_client(client_id, trainer)

        updates = {
            "first_name": data.firstName,
            "last_name": data.lastName,
            "email": data.email,
            "phone": data.phone,
            "status": data.status,
            "notes": data.notes,
        }
        return self.repo.update_client(self.db, client, **updates)

    def delete_client(self, client_id: str, trainer: Trainer) -> None:
        client = self.get_client(client_id, trainer)
        self.repo.delete_client(self.db, client)
        logger.info(f"🗑️ Deleted client {client_id} for trainer {trainer.id}")
