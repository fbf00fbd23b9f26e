"""Notification schemas"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class NotificationResponse(BaseModel):
    id: str
    title: str
    body: str
    messageType: str
    notificationType: str
    clientId: Optional[str]
    paymentPlanId: Optional[str]
    viewed: bool
    createdAt: datetime
