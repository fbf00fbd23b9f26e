"""Notification service - the trainer's in-app notification feed"""

import logging

from sqlalchemy.orm import Session

from ...errors import NotFound
from ...models import Notification, Trainer

logger = logging.getLogger(__name__)


class NotificationNotFound(NotFound):
    title = "Notification not found."
    type = "/notification-not-found"


class NotificationService:
    def __init__(self, db: Session):
        self.db = db

    def list_notifications(self, trainer: Trainer, unread_only: bool = False) -> list[Notification]:
        query = self.db.query(Notification).filter(Notification.user_id == trainer.user_id)
        if unread_only:
            query = query.filter(Notification.viewed.is_(False))
        return query.order_by(Notification.created_at.desc()).all()

    def mark_viewed(self, notification_id: str, trainer: Trainer) -> Notification:
        notification = (
            self.db.query(Notification)
            .filter(Notification.id == notification_id, Notification.user_id == trainer.user_id)
            .first()
        )
        if not notification:
            raise NotificationNotFound()

        notification.viewed = True
        self.db.commit()
        self.db.refresh(notification)
        return notification
