"""Payment plan service - subscriptions, their payment schedule and client acceptance"""

import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...errors import NoPaymentMethodOnFile, SubscriptionIsCancelled, SubscriptionNotFound
from ...models import (
    Client,
    Mission,
    PaymentPlan,
    PaymentPlanAcceptance,
    PaymentPlanPayment,
    Reward,
    Trainer,
    WorkflowOutbox,
)
from ...shared.dates import utcnow
from ...shared.formatting import join_names
from ...workflow.outbox import STATUS_PENDING, TASK_CHARGE_OUTSTANDING, enqueue_workflow_task, notify_user
from ..accounts.service import MISSION_CREATE_ACTIVE_SUBSCRIPTION
from ..clients.service import ClientService
from .repository import PaymentPlanRepository
from .schemas import PaymentPlanCreate

logger = logging.getLogger(__name__)

FIRST_SUBSCRIPTION_REWARD = "3TextCredits"


def build_payment_schedule(start: datetime, end: datetime, weekly_interval: int) -> list[datetime]:
    """Payment dates every ``weekly_interval`` weeks from ``start``, stopping before ``end``"""
    step = timedelta(weeks=weekly_interval)
    dates = []
    current = start
    while current < end:
        dates.append(current)
        current += step
    return dates


def queue_outstanding_charge(db: Session, plan_id: str, for_scheduled_task: bool = False) -> str:
    """One charge task per plan; a finished one is armed again.

    A client retry widens a waiting scheduled task so recently rejected payments are
    charged too.
    """
    task_id = enqueue_workflow_task(
        db,
        TASK_CHARGE_OUTSTANDING,
        {"paymentPlanId": plan_id, "forScheduledTask": for_scheduled_task},
        dedupe_key=f"{TASK_CHARGE_OUTSTANDING}:{plan_id}",
        requeue_finished=True,
    )
    if not for_scheduled_task:
        task = db.get(WorkflowOutbox, task_id)
        if task.status == STATUS_PENDING and (task.payload or {}).get("forScheduledTask"):
            task.payload = {**task.payload, "forScheduledTask": False}
            db.flush()
    return task_id


class PaymentPlanService:
    """Service layer for payment plan business logic"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = PaymentPlanRepository()

    def list_plans(self, client_id: str, trainer: Trainer) -> list[PaymentPlan]:
        client = ClientService(self.db).get_client(client_id, trainer)
        return self.repo.get_plans(self.db, trainer.id, client.id)

    def get_plan(self, plan_id: str, trainer: Trainer) -> PaymentPlan:
        plan = self.repo.get_plan(self.db, plan_id, trainer.id)
        if not plan:
            raise SubscriptionNotFound()
        return plan

    def create_plan(self, client_id: str, data: PaymentPlanCreate, trainer: Trainer) -> PaymentPlan:
        client = ClientService(self.db).get_client(client_id, trainer)

        try:
            plan = PaymentPlan(
                trainer_id=trainer.id,
                client_id=client.id,
                name=data.name,
                status="pending",
                amount=data.amount,
                frequency_weekly_interval=data.frequencyWeeklyInterval,
                start=data.start,
                end=data.end,
            )
            for date in build_payment_schedule(data.start, data.end, data.frequencyWeeklyInterval):
                plan.payments.append(
                    PaymentPlanPayment(
                        trainer_id=trainer.id,
                        date=date,
                        amount=data.amount,
                        amount_outstanding=data.amount,
                        status="pending",
                    )
                )
            self.db.add(plan)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(plan)
        logger.info(f"📅 Created payment plan {plan.id} with {len(plan.payments)} payments for client {client.id}")
        return plan

    def cancel_plan(self, plan_id: str, trainer: Trainer) -> PaymentPlan:
        try:
            plan = self.repo.lock_plan(self.db, plan_id, trainer.id)
            if not plan:
                raise SubscriptionNotFound()

            plan.status = "cancelled"
            for payment in plan.payments:
                if payment.status == "pending":
                    payment.status = "cancelled"
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(plan)
        logger.info(f"🛑 Cancelled payment plan {plan.id}")
        return plan

    # ========================================================================
    # CLIENT DASHBOARD
    # ========================================================================

    def accept_plan(self, plan_id: str, client: Client, ip_address: Optional[str]) -> PaymentPlan:
        """Client agrees to the plan's terms.

        Activates the plan, records the acceptance, completes the trainer's first
        subscription mission and queues the first charge.
        """
        try:
            plan = self.repo.lock_plan(self.db, plan_id, client.trainer_id, client_id=client.id)
            if not plan:
                raise SubscriptionNotFound()
            if (plan.status or "").strip().lower() == "cancelled":
                raise SubscriptionIsCancelled("Cancelled subscriptions cannot be accepted.")
            if not client.stripe_customer_id:
                raise NoPaymentMethodOnFile("A saved payment method is required before accepting this subscription.")

            trainer = plan.trainer
            now = utcnow()

            mission = (
                self.db.query(Mission)
                .filter(
                    Mission.id == MISSION_CREATE_ACTIVE_SUBSCRIPTION,
                    Mission.trainer_id == trainer.id,
                    Mission.completed_at.is_(None),
                )
                .with_for_update()
                .first()
            )
            if mission:
                mission.completed_at = now

            if plan.status in (None, "pending"):
                plan.status = "active"
            plan.accepted_amount = plan.amount
            plan.accepted_end = plan.end

            notify_user(
                self.db,
                user_id=trainer.user_id,
                title=join_names(client.first_name, client.last_name),
                body=f"Terms Accepted\nAccepted the terms for Subscription: {plan.name or 'Subscription'}",
                message_type="success",
                notification_type="general",
                payment_plan_id=plan.id,
                dedupe_key=f"user.notify:planAccept:{plan.id}:termsAccepted",
            )

            self.db.add(
                PaymentPlanAcceptance(
                    payment_plan_id=plan.id,
                    trainer_id=trainer.id,
                    date=now,
                    ip_address=ip_address,
                    amount=plan.amount,
                    end=plan.end,
                )
            )

            if mission:
                reward = None
                if trainer.subscription_status != "subscribed":
                    reward = Reward(trainer_id=trainer.id, reward_type=FIRST_SUBSCRIPTION_REWARD)
                    self.db.add(reward)
                    self.db.flush()
                    mission.reward_id = reward.id

                notify_user(
                    self.db,
                    user_id=trainer.user_id,
                    title="You've sold your first subscription! 🎉",
                    body=(
                        "Yay for recurring income! Claim your reward for completing a mission! 🎁"
                        if reward
                        else "Yay, you've completed a mission!"
                    ),
                    message_type="success",
                    notification_type="general",
                    dedupe_key=f"user.notify:planAccept:{plan.id}:firstSubscription",
                )

            # The charge is retried by the scheduler, acceptance must not depend on it
            try:
                with self.db.begin_nested():
                    queue_outstanding_charge(self.db, plan.id)
            except SQLAlchemyError as e:
                logger.warning(f"⚠️ Failed to queue outstanding charge for accepted plan {plan.id}: {e}")

            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(plan)
        logger.info(f"✅ Client {client.id} accepted payment plan {plan.id} from {ip_address or 'unknown ip'}")
        return plan

    def retry_plan(self, plan_id: str, client: Client) -> int:
        """Queue a charge for whatever is outstanding and return how many payments that is"""
        try:
            plan = self.repo.get_client_plan(self.db, plan_id, client.id)
            if not plan:
                raise SubscriptionNotFound()

            attempted = self.repo.due_payments_query(
                self.db, plan.id, utcnow(), for_scheduled_task=False
            ).count()
            queue_outstanding_charge(self.db, plan.id)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"🔁 Client {client.id} retried {attempted} outstanding payments on plan {plan_id}")
        return attempted


def total_outstanding(payments: list[PaymentPlanPayment]) -> Decimal:
    return sum((Decimal(p.amount_outstanding) for p in payments), Decimal(0))
