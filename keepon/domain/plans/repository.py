"""Payment plan repository - Database operations for plans and their scheduled payments"""

from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session, selectinload

from ...models import PaymentPlan, PaymentPlanPayment

# Scheduled retries of rejected payments
RETRY_INTERVAL = timedelta(hours=16)
MAX_RETRY_COUNT = 10


class PaymentPlanRepository:
    """Repository for payment plan database operations"""

    @staticmethod
    def get_plans(db: Session, trainer_id: str, client_id: str) -> list[PaymentPlan]:
        return (
            db.query(PaymentPlan)
            .options(selectinload(PaymentPlan.payments))
            .filter(PaymentPlan.trainer_id == trainer_id, PaymentPlan.client_id == client_id)
            .order_by(PaymentPlan.created_at.desc())
            .all()
        )

    @staticmethod
    def get_plan(db: Session, plan_id: str, trainer_id: str) -> Optional[PaymentPlan]:
        return (
            db.query(PaymentPlan)
            .filter(PaymentPlan.id == plan_id, PaymentPlan.trainer_id == trainer_id)
            .first()
        )

    @staticmethod
    def get_client_plan(db: Session, plan_id: str, client_id: str) -> Optional[PaymentPlan]:
        return (
            db.query(PaymentPlan)
            .filter(PaymentPlan.id == plan_id, PaymentPlan.client_id == client_id)
            .first()
        )

    @staticmethod
    def lock_plan(
        db: Session,
        plan_id: str,
        trainer_id: str,
        client_id: Optional[str] = None,
    ) -> Optional[PaymentPlan]:
        query = db.query(PaymentPlan).filter(
            PaymentPlan.id == plan_id, PaymentPlan.trainer_id == trainer_id
        )
        if client_id:
            query = query.filter(PaymentPlan.client_id == client_id)
        return query.with_for_update().first()

    @staticmethod
    def due_filter(now: datetime, for_scheduled_task: bool):
        """Payments that should be charged now.

        Pending payments of an active, unexpired plan, or rejected ones. The scheduled
        job only retries a rejected payment every 16 hours, and at most 10 times.
        """
        rejected = PaymentPlanPayment.status == "rejected"
        if for_scheduled_task:
            rejected = and_(
                rejected,
                or_(
                    PaymentPlanPayment.last_retry_time.is_(None),
                    PaymentPlanPayment.last_retry_time <= now - RETRY_INTERVAL,
                ),
                PaymentPlanPayment.retry_count < MAX_RETRY_COUNT,
            )
        return and_(
            PaymentPlanPayment.date <= now,
            PaymentPlanPayment.amount_outstanding > 0,
            or_(
                and_(
                    PaymentPlanPayment.status == "pending",
                    PaymentPlan.status == "active",
                    PaymentPlan.end > now,
                ),
                rejected,
            ),
        )

    @classmethod
    def due_payments_query(cls, db: Session, plan_id: str, now: datetime, for_scheduled_task: bool):
        return (
            db.query(PaymentPlanPayment)
            .join(PaymentPlan, PaymentPlanPayment.payment_plan_id == PaymentPlan.id)
            .filter(
                PaymentPlanPayment.payment_plan_id == plan_id,
                cls.due_filter(now, for_scheduled_task),
            )
            .order_by(PaymentPlanPayment.date)
        )

    @classmethod
    def lock_due_payments(
        cls, db: Session, plan_id: str, now: datetime, for_scheduled_task: bool
    ) -> list[PaymentPlanPayment]:
        return cls.due_payments_query(db, plan_id, now, for_scheduled_task).with_for_update().all()

    @classmethod
    def plan_ids_with_due_payments(cls, db: Session, now: datetime) -> list[str]:
        rows = (
            db.query(PaymentPlanPayment.payment_plan_id)
            .join(PaymentPlan, PaymentPlanPayment.payment_plan_id == PaymentPlan.id)
            .filter(cls.due_filter(now, for_scheduled_task=True))
            .distinct()
            .all()
        )
        return [row[0] for row in rows]

    @staticmethod
    def end_expired_plans(db: Session, now: datetime) -> int:
        return (
            db.query(PaymentPlan)
            .filter(
                PaymentPlan.end <= now,
                or_(PaymentPlan.status.is_(None), PaymentPlan.status.notin_(["cancelled", "ended"])),
            )
            .update({PaymentPlan.status: "ended"}, synchronize_session=False)
        )
