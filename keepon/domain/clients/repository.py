"""Client repository - Database operations for clients"""

from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from ...models import Client, User


class ClientRepository:
    """Repository for client database operations"""

    @staticmethod
    def get_clients(
        db: Session, trainer_id: str, status: Optional[str] = None, search: Optional[str] = None
    ) -> list[Client]:
        """Get all clients for a trainer"""
        query = db.query(Client).filter(Client.trainer_id == trainer_id)

        if status:
            query = query.filter(Client.status == status)
        if search:
            pattern = f"%{search.strip()}%"
            query = query.filter(
                or_(
                    Client.first_name.ilike(pattern),
                    Client.last_name.ilike(pattern),
                    Client.email.ilike(pattern),
                )
            )

        return query.order_by(Client.first_name, Client.last_name).all()

    @staticmethod
    def get_client_by_id(db: Session, client_id: str, trainer_id: str) -> Optional[Client]:
        """Get a specific client by ID"""
        return (
            db.query(Client)
            .filter(Client.id == client_id, Client.trainer_id == trainer_id)
            .first()
        )

    @staticmethod
    def create_client(db: Session, trainer_id: str, **client_data) -> Client:
        """Create a new client along with the user it logs in to the dashboard as"""
        user = User(email=client_data.get("email"), user_type="client")
        db.add(user)
        db.flush()

        client = Client(trainer_id=trainer_id, user_id=user.id, **client_data)
        db.add(client)
        db.commit()
        db.refresh(client)
        return client

    @staticmethod
    def update_client(db: Session, client: Client, **updates) -> Client:
        """Update a client with provided fields"""
        for key, value in updates.items():
            if value is not None and hasattr(client, key):
                setattr(client, key, value)
        if "email" in updates and updates["email"] is not None:
            client.user.email = updates["email"]

        db.commit()
        db.refresh(client)
        return client

    @staticmethod
    def delete_client(db: Session, client: Client) -> None:
        """Delete a client"""
        db.delete(client)
        db.commit()
