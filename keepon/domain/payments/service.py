"""Sale payment service - manual payments, payment history and card payments"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional

import stripe
from sqlalchemy.orm import Session

from ...auth import Actor
from ...config import STATEMENT_DESCRIPTOR_SUFFIX
from ...errors import (
    Forbidden,
    PaymentAmountMismatch,
    SaleAlreadyPaid,
    SaleNotFound,
    ServiceProviderCantTakePayments,
    StripeActionRequired,
    StripeCardRequired,
    StripeConfigurationMissing,
    StripePaymentFailed,
    StripePaymentIntentMismatch,
    StripePaymentsDisabled,
    StripeRequestFailed,
)
from ...models import Client, Payment, Sale, Trainer
from ...shared.formatting import format_currency, join_names
from ...workflow.outbox import notify_user
from ..fees.transaction_fees import (
    ChargeBreakdown,
    calculate_charge,
    check_amount_in_range,
    currency_for_country,
    get_transaction_fee,
    require_currency_limits,
    round_to_currency,
)
from ..sales.repository import SaleRepository
from .schemas import CardPaymentCreate, ManualPaymentCreate
from .stripe_gateway import StripeGateway, is_destination_transfers_error, stripe_error_message

logger = logging.getLogger(__name__)

UNPAID_STATUSES = (None, "none", "requested")
CONNECTED_ACCOUNT_TYPES = ("standard", "custom")


class _DestinationNotVerified(Exception):
    """Raised inside the payment transaction, handled once it has been rolled back"""

    def __init__(self, trainer_user_id: str, client_id: str, body: str, payment_id: str):
        super().__init__(body)
        self.trainer_user_id = trainer_user_id
        self.client_id = client_id
        self.body = body
        self.payment_id = payment_id


def _charge_id(intent) -> Optional[str]:
    charge = getattr(intent, "latest_charge", None)
    if charge is None or isinstance(charge, str):
        return charge
    return getattr(charge, "id", None)


class SalePaymentService:
    """Service layer for sale payments"""

    def __init__(self, db: Session, gateway: Optional[StripeGateway] = None):
        self.db = db
        self.gateway = gateway
        self.sales = SaleRepository()

    # ========================================================================
    # HISTORY
    # ========================================================================

    def list_payments(
        self,
        actor: Actor,
        sale_id: Optional[str] = None,
        client_id: Optional[str] = None,
        payment_plan_id: Optional[str] = None,
        updated_after: Optional[datetime] = None,
    ) -> list[Payment]:
        if actor.is_client:
            if client_id and client_id != actor.client.id:
                raise Forbidden(title="You are not authorized to view sale payments for other clients")
            client_id = actor.client.id

        query = self.db.query(Payment).filter(Payment.trainer_id == actor.trainer_id)
        if client_id:
            query = query.filter(Payment.client_id == client_id)
        if sale_id:
            query = query.filter(Payment.sale_id == sale_id)
        if payment_plan_id:
            query = query.filter(Payment.payment_plan_id == payment_plan_id)
        if updated_after:
            query = query.filter(Payment.updated_at > updated_after)
        return query.order_by(Payment.transaction_time.desc()).all()

    # ========================================================================
    # MANUAL PAYMENTS
    # ========================================================================

    def create_manual_payment(self, data: ManualPaymentCreate, trainer: Trainer) -> Payment:
        """Record cash or electronic payment taken outside the app"""
        try:
            sale = self.sales.lock_sale(self.db, data.saleId, trainer_id=trainer.id)
            if not sale:
                raise SaleNotFound()
            if sale.payment_status not in UNPAID_STATUSES:
                raise SaleAlreadyPaid()
            if Decimal(sale.sale_product.price) != data.amount:
                raise PaymentAmountMismatch()

            payment = Payment(
                trainer_id=trainer.id,
                client_id=sale.client_id,
                sale_id=sale.id,
                payment_type="manual",
                amount=data.amount,
                currency=currency_for_country(trainer.country),
                manual_method=data.method,
                specific_method_name=data.specificMethodName,
            )
            self.db.add(payment)
            sale.payment_status = "paid"
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(payment)
        logger.info(f"💵 Manual {data.method} payment {payment.id} recorded for sale {sale.id}")
        return payment

    # ========================================================================
    # CARD PAYMENTS (client dashboard)
    # ========================================================================

    def create_card_payment(self, client: Client, data: CardPaymentCreate) -> tuple[Payment, ChargeBreakdown]:
        """Charge a sale to the client's card.

        Runs in one transaction with the sale row locked. Anything that fails rolls the
        payment back, except the trainer's "not verified" notification which is committed
        on its own afterwards.
        """
        try:
            payment, breakdown = self._charge_sale(client, data)
            self.db.commit()
        except _DestinationNotVerified as failure:
            self.db.rollback()
            notify_user(
                self.db,
                user_id=failure.trainer_user_id,
                title="Attempted payment failed!",
                body=failure.body,
                message_type="failure",
                notification_type="transaction",
                client_id=failure.client_id,
                dedupe_key=f"user.notify:salePaymentFailed:{failure.payment_id}",
            )
            self.db.commit()
            logger.warning(f"⚠️ Sale payment failed, service provider can't receive transfers: {failure.body}")
            raise ServiceProviderCantTakePayments() from None
        except stripe.StripeError as e:
            self.db.rollback()
            logger.warning(f"⚠️ Stripe rejected sale payment for sale {data.saleId}: {e}")
            raise StripeRequestFailed(stripe_error_message(e)) from e
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(payment)
        logger.info(
            f"💳 Card payment {payment.id} succeeded for sale {data.saleId} "
            f"(fee {breakdown.transaction_fee}, passed on: {breakdown.fee_passed_on})"
        )
        return payment, breakdown

    def _charge_sale(self, client: Client, data: CardPaymentCreate) -> tuple[Payment, ChargeBreakdown]:
        sale: Sale = self.sales.lock_sale(self.db, data.saleId, client_id=client.id)
        if not sale or not sale.sale_product:
            raise SaleNotFound()

        if sale.payment_status not in UNPAID_STATUSES:
            raise SaleAlreadyPaid()

        sale_product = sale.sale_product
        if Decimal(sale_product.price) != data.amount:
            raise PaymentAmountMismatch()

        trainer: Trainer = sale.trainer
        payment = Payment(
            trainer_id=trainer.id,
            client_id=client.id,
            sale_id=sale.id,
            payment_type="stripe",
            amount=data.amount,
            currency=data.currency,
        )
        self.db.add(payment)
        self.db.flush()

        if self.gateway is None:
            raise StripeConfigurationMissing()

        account_id = trainer.stripe_account_id
        account_type = trainer.stripe_account_type
        if trainer.stripe_payments_blocked or not account_id or account_type not in CONNECTED_ACCOUNT_TYPES:
            raise StripePaymentsDisabled()

        charge_country = trainer.country.strip().upper()
        currency = currency_for_country(charge_country)
        payment.currency = currency
        limits = require_currency_limits(currency)

        amount = round_to_currency(data.amount, limits.smallest_unit_decimals)
        check_amount_in_range(amount, limits)

        # Standard accounts own their customers; custom accounts charge on the platform
        stripe_account = account_id if account_type == "standard" else None

        customer_id = client.stripe_customer_id
        if not customer_id:
            customer = self.gateway.create_customer(
                email=client.email,
                description=f"Customer for {trainer.email}",
                metadata={"clientId": client.id},
                stripe_account=stripe_account,
            )
            customer_id = customer.id
            client.stripe_customer_id = customer_id
            logger.info(f"👤 Created Stripe customer {customer_id} for client {client.id}")

        if data.stripePaymentIntentId:
            existing_intent = self.gateway.retrieve_payment_intent(data.stripePaymentIntentId, stripe_account)
            payment_method = getattr(existing_intent, "payment_method", None)
            if payment_method is None or isinstance(payment_method, str):
                raise StripeCardRequired()
        else:
            existing_intent = None
            payment_method = self.gateway.retrieve_payment_method(data.stripePaymentMethodId, stripe_account)

        card = getattr(payment_method, "card", None)
        if not card:
            raise StripeCardRequired()

        card_country = (getattr(card, "country", None) or charge_country).upper()
        fee = get_transaction_fee(card_country, charge_country, currency)

        pass_on_fee = bool(sale.payment_request_pass_on_transaction_fee)
        breakdown = calculate_charge(amount, fee, limits, pass_on_fee)
        check_amount_in_range(breakdown.charge_amount, limits)

        client_name = join_names(client.first_name, client.last_name)
        formatted_amount = format_currency(breakdown.charge_amount, currency)
        notify_user(
            self.db,
            user_id=trainer.user_id,
            title=client_name,
            body=f"Payment Processed!\nPayment of {formatted_amount} has gone through for {sale_product.name}",
            message_type="success",
            notification_type="transaction",
            client_id=client.id,
            dedupe_key=f"user.notify:salePayment:{payment.id}",
        )

        try:
            if existing_intent is not None:
                if getattr(existing_intent, "amount", None) != breakdown.charge_amount_minor:
                    raise StripePaymentIntentMismatch("Payment intent amount does not match sale total")
                if getattr(existing_intent, "application_fee_amount", None) != breakdown.application_fee_minor:
                    raise StripePaymentIntentMismatch("Payment intent application fee does not match expected fee")
                intent = self.gateway.confirm_payment_intent(existing_intent.id, stripe_account)
            else:
                intent = self.gateway.create_payment_intent(
                    self._intent_params(
                        breakdown=breakdown,
                        currency=currency,
                        customer_id=customer_id,
                        payment_method_id=payment_method.id,
                        product_name=sale_product.name,
                        receipt_email=client.email,
                        account_id=account_id,
                        account_type=account_type,
                        setup_future_usage=data.setupFutureUsage,
                    ),
                    stripe_account,
                )
        except stripe.InvalidRequestError as e:
            if is_destination_transfers_error(e):
                raise _DestinationNotVerified(
                    trainer_user_id=trainer.user_id,
                    client_id=client.id,
                    body=(
                        f"{client_name} attempted to pay {formatted_amount} for {sale_product.name} "
                        "but it failed as you aren't verified."
                    ),
                    payment_id=payment.id,
                ) from e
            raise

        if intent.status == "requires_action":
            raise StripeActionRequired(getattr(intent, "client_secret", None) or "", intent.id)
        if intent.status != "succeeded":
            raise StripePaymentFailed(f"Payment intent status was {intent.status}")

        if pass_on_fee:
            payment.amount = breakdown.charge_amount
            sale_product.price = breakdown.charge_amount

        payment.fee = breakdown.transaction_fee
        payment.fee_passed_on = pass_on_fee
        payment.stripe_payment_intent_id = intent.id
        payment.stripe_charge_id = _charge_id(intent)
        sale.payment_status = "paid"
        self.db.flush()

        return payment, breakdown

    @staticmethod
    def _intent_params(
        *,
        breakdown: ChargeBreakdown,
        currency: str,
        customer_id: str,
        payment_method_id: str,
        product_name: str,
        receipt_email: Optional[str],
        account_id: str,
        account_type: str,
        setup_future_usage: bool,
    ) -> dict:
        params = {
            "amount": breakdown.charge_amount_minor,
            "currency": currency.lower(),
            "payment_method_types": ["card"],
            "customer": customer_id,
            "description": f"Payment for {product_name}",
            "statement_descriptor_suffix": STATEMENT_DESCRIPTOR_SUFFIX,
            "payment_method": payment_method_id,
            "application_fee_amount": breakdown.application_fee_minor,
            "confirmation_method": "manual",
            "confirm": True,
            "use_stripe_sdk": True,
            "payment_method_options": {
                "card": {"request_three_d_secure": "automatic" if account_type == "standard" else "any"}
            },
        }
        if receipt_email:
            params["receipt_email"] = receipt_email
        if account_type != "standard":
            params["on_behalf_of"] = account_id
            params["transfer_data"] = {"destination": account_id}
        if setup_future_usage:
            params["setup_future_usage"] = "off_session"
        return params
