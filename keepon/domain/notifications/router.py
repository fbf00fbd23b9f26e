"""Notification router"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import get_current_trainer
from ...database import get_db
from ...models import Notification, Trainer
from .schemas import NotificationResponse
from .service import NotificationService

router = APIRouter(prefix="/notifications", tags=["Notifications"])


def get_notification_service(db: Session = Depends(get_db)) -> NotificationService:
    return NotificationService(db)


def to_notification_response(notification: Notification) -> NotificationResponse:
    return NotificationResponse(
        id=notification.id,
        title=notification.title,
        body=notification.body,
        messageType=notification.message_type,
        notificationType=notification.notification_type,
        clientId=notification.client_id,
        paymentPlanId=notification.payment_plan_id,
        viewed=notification.viewed,
        createdAt=notification.created_at,
    )


@router.get("", response_model=list[NotificationResponse])
async def list_notifications(
    unreadOnly: bool = Query(False),
    trainer: Trainer = Depends(get_current_trainer),
    service: NotificationService = Depends(get_notification_service),
):
    return [to_notification_response(n) for n in service.list_notifications(trainer, unreadOnly)]


@router.post("/{notification_id}/view", response_model=NotificationResponse)
async def view_notification(
    notification_id: str,
    trainer: Trainer = Depends(get_current_trainer),
    service: NotificationService = Depends(get_notification_service),
):
    return to_notification_response(service.mark_viewed(notification_id, trainer))


__all__ = ["router"]
