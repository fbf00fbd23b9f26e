"""
Workflow outbox dispatcher
Claims due tasks, runs their handler and reschedules failures with backoff
"""

import logging
from typing import Callable, Optional

from sqlalchemy.orm import Session

from ..config import OUTBOX_BATCH_SIZE
from ..database import SessionLocal
from ..email_service import deliver_mail
from ..errors import (
    ChargeFailedBecauseNotVerified,
    NoPaymentMethodOnFile,
    StripeConfigurationMissing,
    StripePaymentsBlocked,
    StripePaymentsNotEnabled,
)
from ..models import Notification, WorkflowOutbox
from ..shared.dates import utcnow
from .outbox import (
    STATUS_COMPLETED,
    STATUS_FAILED,
    STATUS_PENDING,
    STATUS_RUNNING,
    TASK_CHARGE_OUTSTANDING,
    TASK_MAIL_SEND,
    TASK_USER_NOTIFY,
    retry_delay,
)

logger = logging.getLogger(__name__)


class NonRetryableTaskError(Exception):
    """The task failed in a way that retrying won't fix"""


def handle_user_notify(db: Session, payload: dict) -> None:
    db.add(
        Notification(
            user_id=payload["userId"],
            client_id=payload.get("clientId"),
            payment_plan_id=payload.get("paymentPlanId"),
            title=payload["title"],
            body=payload["body"],
            message_type=payload.get("messageType") or "default",
            notification_type=payload.get("notificationType") or "general",
        )
    )
    db.flush()


def handle_mail_send(db: Session, payload: dict) -> None:
    deliver_mail(db, payload["mailId"])


def handle_charge_outstanding(db: Session, payload: dict) -> None:
    import stripe

    from ..domain.payments.stripe_gateway import get_stripe_gateway
    from ..domain.plans.charging import charge_outstanding

    try:
        charge_outstanding(
            db,
            get_stripe_gateway(),
            payload["paymentPlanId"],
            for_scheduled_task=bool(payload.get("forScheduledTask")),
        )
    except (
        stripe.CardError,
        NoPaymentMethodOnFile,
        StripePaymentsBlocked,
        StripePaymentsNotEnabled,
        StripeConfigurationMissing,
        ChargeFailedBecauseNotVerified,
    ) as e:
        # The scheduler retries rejected payments on its own clock
        raise NonRetryableTaskError(str(e)) from e


TASK_HANDLERS: dict[str, Callable[[Session, dict], None]] = {
    TASK_USER_NOTIFY: handle_user_notify,
    TASK_MAIL_SEND: handle_mail_send,
    TASK_CHARGE_OUTSTANDING: handle_charge_outstanding,
}


def claim_tasks(db: Session, limit: int) -> list[str]:
    """Mark up to ``limit`` due tasks as running. Rows locked by another worker are skipped."""
    now = utcnow()
    tasks = (
        db.query(WorkflowOutbox)
        .filter(WorkflowOutbox.status == STATUS_PENDING, WorkflowOutbox.available_at <= now)
        .order_by(WorkflowOutbox.available_at, WorkflowOutbox.created_at)
        .limit(limit)
        .with_for_update(skip_locked=True)
        .all()
    )
    for task in tasks:
        task.status = STATUS_RUNNING
        task.attempts = (task.attempts or 0) + 1
    db.commit()
    return [task.id for task in tasks]


def _record_failure(db: Session, task_id: str, error: Exception) -> str:
    task = db.get(WorkflowOutbox, task_id)
    task.last_error = f"{type(error).__name__}: {error}"[:2000]
    if isinstance(error, NonRetryableTaskError) or task.attempts >= task.max_attempts:
        task.status = STATUS_FAILED
    else:
        task.status = STATUS_PENDING
        task.available_at = utcnow() + retry_delay(task.attempts)
    db.commit()
    return task.status


def run_task(task_id: str, session_factory: Callable[[], Session] = SessionLocal) -> bool:
    """Run one claimed task. Returns True when it completed."""
    db = session_factory()
    try:
        task = db.get(WorkflowOutbox, task_id)
        if task is None:
            return False
        task_type = task.task_type
        payload = dict(task.payload or {})

        handler = TASK_HANDLERS.get(task_type)
        try:
            if handler is None:
                raise NonRetryableTaskError(f"No handler for task type '{task_type}'")
            handler(db, payload)

            task = db.get(WorkflowOutbox, task_id)
            task.status = STATUS_COMPLETED
            task.last_error = None
            db.commit()
        except Exception as e:
            db.rollback()
            status = _record_failure(db, task_id, e)
            if status == STATUS_FAILED:
                logger.error(f"❌ Workflow task {task_type} ({task_id}) failed: {e}")
            else:
                logger.warning(f"⚠️ Workflow task {task_type} ({task_id}) will be retried: {e}")
            return False

        logger.info(f"✅ Workflow task {task_type} ({task_id}) completed")
        return True
    finally:
        db.close()


def process_outbox(
    session_factory: Callable[[], Session] = SessionLocal, limit: Optional[int] = None
) -> dict:
    """Claim and run one batch of due tasks"""
    db = session_factory()
    try:
        task_ids = claim_tasks(db, limit or OUTBOX_BATCH_SIZE)
    finally:
        db.close()

    completed = sum(1 for task_id in task_ids if run_task(task_id, session_factory))
    if task_ids:
        logger.info(f"📬 Processed {len(task_ids)} workflow tasks, {completed} completed")
    return {"claimed": len(task_ids), "completed": completed}
