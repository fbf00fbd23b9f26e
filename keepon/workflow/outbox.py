"""Transactional outbox for background work.

Tasks are inserted with the caller's session so they commit (or roll back) together
with the state change that produced them. The worker picks them up afterwards.
"""

import logging
import random
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from ..models import WorkflowOutbox
from ..shared.dates import utcnow

logger = logging.getLogger(__name__)

STATUS_PENDING = "pending"
STATUS_RUNNING = "running"
STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"

DEFAULT_MAX_ATTEMPTS = 25
MAX_RETRY_DELAY_SECONDS = 3600

TASK_USER_NOTIFY = "user.notify"
TASK_MAIL_SEND = "mail.send"
TASK_CHARGE_OUTSTANDING = "payment-plan.charge-outstanding"


def enqueue_workflow_task(
    db: Session,
    task_type: str,
    payload: dict,
    dedupe_key: Optional[str] = None,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    available_at: Optional[datetime] = None,
    requeue_finished: bool = False,
) -> str:
    """Queue a task and return its id.

    A task with the same ``dedupe_key`` is never duplicated. When one already exists it
    is only touched, unless ``requeue_finished`` is set and it has already finished, in
    which case it is armed again with the new payload.
    """
    now = utcnow()

    if dedupe_key:
        existing = db.query(WorkflowOutbox).filter(WorkflowOutbox.dedupe_key == dedupe_key).first()
        if existing:
            if requeue_finished and existing.status in (STATUS_COMPLETED, STATUS_FAILED):
                existing.status = STATUS_PENDING
                existing.payload = payload
                existing.attempts = 0
                existing.max_attempts = max_attempts
                existing.available_at = available_at or now
                existing.last_error = None
                logger.info(f"🔁 Re-queued workflow task {task_type} ({dedupe_key})")
            existing.updated_at = now
            db.flush()
            return existing.id

    task = WorkflowOutbox(
        task_type=task_type,
        payload=payload,
        dedupe_key=dedupe_key,
        max_attempts=max_attempts,
        available_at=available_at or now,
        status=STATUS_PENDING,
    )
    db.add(task)
    db.flush()
    logger.debug(f"📬 Queued workflow task {task_type} ({task.id})")
    return task.id


def notify_user(
    db: Session,
    user_id: str,
    title: str,
    body: str,
    message_type: str = "default",
    notification_type: str = "general",
    client_id: Optional[str] = None,
    payment_plan_id: Optional[str] = None,
    dedupe_key: Optional[str] = None,
) -> str:
    """Queue an in-app notification for a user"""
    return enqueue_workflow_task(
        db,
        TASK_USER_NOTIFY,
        {
            "userId": user_id,
            "title": title,
            "body": body,
            "messageType": message_type,
            "notificationType": notification_type,
            "clientId": client_id,
            "paymentPlanId": payment_plan_id,
        },
        dedupe_key=dedupe_key,
    )


def retry_delay(attempts: int) -> timedelta:
    """Exponential backoff with jitter, between 5 seconds and an hour"""
    base = min(MAX_RETRY_DELAY_SECONDS, max(5, 2 ** max(0, attempts - 1)))
    jitter = 0.8 + random.random() * 0.4
    return timedelta(seconds=min(MAX_RETRY_DELAY_SECONDS, max(5, round(base * jitter))))
