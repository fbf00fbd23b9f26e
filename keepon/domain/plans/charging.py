"""
Charging of subscription payments
Runs from the workflow dispatcher (charge-outstanding tasks) and the hourly scheduler
"""

import json
import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional

import stripe
from sqlalchemy.orm import Session

from ...config import APP_NAME, FRONTEND_URL, NO_REPLY_EMAIL, STATEMENT_DESCRIPTOR_SUFFIX
from ...email_service import queue_mail
from ...email_templates import subscription_payment_failed_template
from ...errors import (
    ChargeFailedBecauseNotVerified,
    NoPaymentMethodOnFile,
    StripeConfigurationMissing,
    StripePaymentsBlocked,
    StripePaymentsNotEnabled,
)
from ...models import Client, PaymentPlan
from ...shared.dates import localize, utcnow
from ...shared.formatting import format_currency, join_names, trainer_display_name
from ...workflow.outbox import notify_user
from ..fees.transaction_fees import (
    calculate_fee,
    calculate_stripe_fee,
    currency_for_country,
    format_decimal,
    get_transaction_fee,
    require_currency_limits,
    to_minor_units,
)
from ..payments.stripe_gateway import StripeGateway, stripe_error_message
from .repository import PaymentPlanRepository
from .service import queue_outstanding_charge, total_outstanding

logger = logging.getLogger(__name__)

CONNECTED_ACCOUNT_TYPES = ("standard", "custom")
METADATA_VALUE_LIMIT = 500


class CustomerMissing(NoPaymentMethodOnFile):
    """The client's Stripe customer no longer exists"""


def payment_ids_metadata(payment_ids: list[str]) -> dict[str, str]:
    """Split payment ids over as many metadata values as needed to stay under Stripe's limit"""
    metadata = {}
    group: list[str] = []
    group_count = 0
    character_count = 0

    for payment_id in payment_ids:
        serialized = json.dumps(payment_id)
        if character_count + len(serialized) + len(group) + 2 > METADATA_VALUE_LIMIT:
            metadata[f"paymentPlanPaymentIds_{group_count}"] = json.dumps(group)
            group = []
            group_count += 1
            character_count = 0
        group.append(payment_id)
        character_count += len(serialized)

    metadata[f"paymentPlanPaymentIds_{group_count}"] = json.dumps(group)
    return metadata


def _format_payment_date(value: datetime, tz_name: Optional[str]) -> str:
    local = localize(value, tz_name)
    return f"{local:%b} {local.day}, {local.year}"


def _default_payment_method(gateway: StripeGateway, customer_id: str, stripe_account: Optional[str]):
    """First saved card of the customer. Any other cards are detached."""
    try:
        payment_methods = gateway.list_card_payment_methods(customer_id, stripe_account)
    except stripe.InvalidRequestError as e:
        if getattr(e, "code", None) == "resource_missing":
            raise CustomerMissing() from e
        raise

    if not payment_methods:
        return None

    first, *rest = payment_methods
    for method in rest:
        try:
            gateway.detach_payment_method(method.id, stripe_account)
        except stripe.StripeError as e:
            logger.warning(f"⚠️ Failed to detach payment method {method.id} from {customer_id}: {e}")

    if not getattr(first, "card", None):
        return None
    return first


def _charge(
    db: Session, gateway: StripeGateway, plan_id: str, now: datetime, for_scheduled_task: bool
) -> Optional[str]:
    payments = PaymentPlanRepository.lock_due_payments(db, plan_id, now, for_scheduled_task)
    if not payments:
        return None

    plan: PaymentPlan = payments[0].payment_plan
    trainer = plan.trainer
    client: Client = plan.client

    if not client.stripe_customer_id:
        raise NoPaymentMethodOnFile()
    if trainer.stripe_payments_blocked:
        raise StripePaymentsBlocked()
    account_id = trainer.stripe_account_id
    account_type = trainer.stripe_account_type
    if not account_id or account_type not in CONNECTED_ACCOUNT_TYPES:
        raise StripePaymentsNotEnabled()

    stripe_account = account_id if account_type == "standard" else None

    payment_method = _default_payment_method(gateway, client.stripe_customer_id, stripe_account)
    if payment_method is None:
        raise NoPaymentMethodOnFile()

    charge_country = trainer.country.strip().upper()
    card_country = (getattr(payment_method.card, "country", None) or charge_country).upper()
    currency = currency_for_country(charge_country)
    decimals = require_currency_limits(currency).smallest_unit_decimals
    fee = get_transaction_fee(card_country, charge_country, currency)

    total_amount = total_outstanding(payments)
    application_fee = Decimal(0)
    for payment in payments:
        payment_fee = calculate_fee(Decimal(payment.amount_outstanding), fee, decimals)
        application_fee += payment_fee
        payment.status = "paid"
        payment.amount_outstanding = 0
        payment.retry_count = (payment.retry_count or 0) + 1
        payment.last_retry_time = now
        payment.fee = payment_fee

    notify_user(
        db,
        user_id=trainer.user_id,
        title=join_names(client.first_name, client.last_name),
        body=(
            f"Payment Processed!\nPayment of {format_currency(total_amount, currency)} "
            f"has gone through for subscription: {plan.name}"
        ),
        message_type="success",
        notification_type="transaction",
        payment_plan_id=plan.id,
    )

    # Standard accounts pay Stripe's fee themselves
    if account_type == "standard":
        application_fee -= calculate_stripe_fee(total_amount, fee, decimals)

    payment_dates = ",".join(_format_payment_date(p.date, trainer.timezone) for p in payments)
    params = {
        "amount": to_minor_units(total_amount, decimals),
        "currency": currency.lower(),
        "confirm": True,
        "customer": client.stripe_customer_id,
        "description": f"{plan.name} Outstanding Payments for {payment_dates}",
        "metadata": {
            **payment_ids_metadata([p.id for p in payments]),
            "fixedFee": format_decimal(fee.fixed_fee),
            "percentageFee": format_decimal(fee.percentage_fee),
        },
        "off_session": True,
        "payment_method": payment_method.id,
        "statement_descriptor_suffix": STATEMENT_DESCRIPTOR_SUFFIX,
        "application_fee_amount": to_minor_units(application_fee, decimals),
        "error_on_requires_action": True,
    }
    if trainer.send_receipts and client.email:
        params["receipt_email"] = client.email
    if account_type != "standard":
        params["on_behalf_of"] = account_id
        params["transfer_data"] = {"destination": account_id}

    try:
        intent = gateway.create_payment_intent(params, stripe_account)
    except stripe.CardError:
        raise
    except stripe.StripeError as e:
        code = getattr(e, "code", None)
        if isinstance(e, stripe.InvalidRequestError) and code == "resource_missing":
            raise NoPaymentMethodOnFile() from e
        if code == "payouts_not_allowed":
            raise ChargeFailedBecauseNotVerified() from e
        raise

    for payment in payments:
        payment.stripe_payment_intent_id = intent.id
    db.flush()

    logger.info(
        f"💳 Charged {len(payments)} payments ({total_amount} {currency}) on plan {plan.id}, intent {intent.id}"
    )
    return intent.id


def _is_client_failure(error: Exception) -> bool:
    """Failures the client can fix by updating their card"""
    return isinstance(error, (stripe.CardError, NoPaymentMethodOnFile))


def _record_failed_charge(
    db: Session, plan_id: str, now: datetime, for_scheduled_task: bool, error: Exception
) -> None:
    """Mark the due payments rejected and tell both sides. Runs after the charge rolled back."""
    payments = PaymentPlanRepository.lock_due_payments(db, plan_id, now, for_scheduled_task)
    if not payments:
        return

    plan: PaymentPlan = payments[0].payment_plan
    trainer = plan.trainer
    client: Client = plan.client
    mail_client = _is_client_failure(error) and bool(client.email)

    if isinstance(error, CustomerMissing):
        logger.warning(f"⚠️ Stripe customer {client.stripe_customer_id} is gone, clearing it for client {client.id}")
        client.stripe_customer_id = None

    for payment in payments:
        payment.status = "rejected"
        payment.retry_count = (payment.retry_count or 0) + 1
        payment.last_retry_time = now

    if not _is_client_failure(error):
        body = f"A payment for Subscription: {plan.name} has failed. We will try again tomorrow"
    elif client.email:
        body = (
            f"A payment for Subscription: {plan.name} has failed. "
            "We've already let your client know and will try again tomorrow."
        )
    else:
        body = (
            f"A payment for Subscription: {plan.name} has failed. We couldn't notify your client because "
            "they don't have an email on file, but we will try again tomorrow."
        )
    notify_user(
        db,
        user_id=trainer.user_id,
        title=join_names(client.first_name, client.last_name),
        body=body,
        message_type="failure",
        notification_type="transaction",
        payment_plan_id=plan.id,
    )

    if mail_client:
        provider_name = trainer_display_name(trainer)
        reason = stripe_error_message(error) if isinstance(error, stripe.StripeError) else None
        queue_mail(
            db,
            to_email=client.email,
            to_name=client.first_name,
            subject=f"{provider_name} via {APP_NAME}: Subscription Payment Failed",
            mjml_content=subscription_payment_failed_template(
                service_provider_name=provider_name,
                reason=reason,
                dashboard_url=f"{FRONTEND_URL}/client-dashboard",
            ),
            from_email=NO_REPLY_EMAIL,
            from_name=f"{provider_name} via {APP_NAME}",
            trainer_id=trainer.id,
            client_id=client.id,
        )


def _notify_verification_required(db: Session, plan_id: str) -> None:
    plan = db.get(PaymentPlan, plan_id)
    notify_user(
        db,
        user_id=plan.trainer.user_id,
        title="Charge failed - Verification required",
        body=(
            "A card charge was attempted against one of your clients but failed because "
            "Stripe requires further verification."
        ),
        message_type="failure",
        notification_type="general",
        client_id=plan.client_id,
    )
    logger.warning(f"⚠️ Payouts not allowed for trainer {plan.trainer_id}, plan {plan_id} not charged")


def charge_outstanding(
    db: Session,
    gateway: Optional[StripeGateway],
    plan_id: str,
    for_scheduled_task: bool = False,
) -> Optional[str]:
    """Charge every due payment of a plan in one off-session payment intent.

    Returns the payment intent id, or None when nothing was due. Card declines and a
    missing card mark the payments rejected before the error is raised again. On the
    scheduled run every failure does, so the retry cap is reached whatever the cause.
    """
    if gateway is None:
        raise StripeConfigurationMissing()

    now = utcnow()
    try:
        intent_id = _charge(db, gateway, plan_id, now, for_scheduled_task)
        db.commit()
    except Exception as e:
        db.rollback()
        logger.warning(f"⚠️ Charge for plan {plan_id} failed: {type(e).__name__}: {e}")
        try:
            if isinstance(e, ChargeFailedBecauseNotVerified):
                _notify_verification_required(db, plan_id)
            if for_scheduled_task or _is_client_failure(e):
                _record_failed_charge(db, plan_id, now, for_scheduled_task, e)
            db.commit()
        except Exception:
            db.rollback()
            logger.exception(f"❌ Failed to record rejected charge for plan {plan_id}")
        raise

    return intent_id


def charge_payment_plans(db: Session) -> int:
    """Hourly job: end expired plans and queue a charge for every plan with due payments"""
    now = utcnow()
    try:
        ended = PaymentPlanRepository.end_expired_plans(db, now)
        plan_ids = PaymentPlanRepository.plan_ids_with_due_payments(db, now)
        for plan_id in plan_ids:
            queue_outstanding_charge(db, plan_id, for_scheduled_task=True)
        db.commit()
    except Exception:
        db.rollback()
        raise

    if ended or plan_ids:
        logger.info(f"📆 Ended {ended} payment plans, queued charges for {len(plan_ids)}")
    return len(plan_ids)
