"""
Stripe Connect gateway
Thin wrapper over the stripe SDK so services never touch the global api_key and
tests can swap in a fake through the get_stripe_gateway dependency
"""

import logging
from typing import Any, Optional

import stripe

from ...config import STRIPE_API_VERSION, STRIPE_SECRET_KEY

logger = logging.getLogger(__name__)

DESTINATION_CAPABILITY_ERROR_PREFIX = (
    "Your destination account needs to have at least one of the following capabilities enabled"
)


def is_destination_transfers_error(error: Exception) -> bool:
    """Stripe refuses destination charges until the connected account can receive transfers"""
    if not isinstance(error, stripe.InvalidRequestError):
        return False
    message = getattr(error, "user_message", None) or str(error)
    return DESTINATION_CAPABILITY_ERROR_PREFIX in message and "transfers" in message


def stripe_error_message(error: Exception) -> str:
    return getattr(error, "user_message", None) or str(error)


class StripeGateway:
    """Calls made on behalf of the platform, optionally on a connected account"""

    def __init__(self, api_key: str, api_version: Optional[str] = None):
        self.api_key = api_key
        self.api_version = api_version

    def _options(self, stripe_account: Optional[str]) -> dict[str, Any]:
        options: dict[str, Any] = {"api_key": self.api_key}
        if self.api_version:
            options["stripe_version"] = self.api_version
        if stripe_account:
            options["stripe_account"] = stripe_account
        return options

    # Customers

    def create_customer(
        self,
        email: Optional[str],
        description: str,
        metadata: dict[str, str],
        stripe_account: Optional[str] = None,
    ):
        return stripe.Customer.create(
            email=email,
            description=description,
            metadata=metadata,
            **self._options(stripe_account),
        )

    # Payment methods

    def retrieve_payment_method(self, payment_method_id: str, stripe_account: Optional[str] = None):
        return stripe.PaymentMethod.retrieve(payment_method_id, **self._options(stripe_account))

    def list_card_payment_methods(self, customer_id: str, stripe_account: Optional[str] = None) -> list:
        result = stripe.PaymentMethod.list(
            customer=customer_id, type="card", limit=100, **self._options(stripe_account)
        )
        return list(result.auto_paging_iter())

    def detach_payment_method(self, payment_method_id: str, stripe_account: Optional[str] = None):
        return stripe.PaymentMethod.detach(payment_method_id, **self._options(stripe_account))

    # Payment intents

    def retrieve_payment_intent(self, payment_intent_id: str, stripe_account: Optional[str] = None):
        return stripe.PaymentIntent.retrieve(
            payment_intent_id, expand=["payment_method"], **self._options(stripe_account)
        )

    def create_payment_intent(self, params: dict[str, Any], stripe_account: Optional[str] = None):
        return stripe.PaymentIntent.create(**params, **self._options(stripe_account))

    def confirm_payment_intent(self, payment_intent_id: str, stripe_account: Optional[str] = None):
        return stripe.PaymentIntent.confirm(payment_intent_id, **self._options(stripe_account))


def get_stripe_gateway() -> Optional[StripeGateway]:
    """FastAPI dependency - None when Stripe isn't configured for this deployment"""
    if not STRIPE_SECRET_KEY:
        logger.warning("⚠️ STRIPE_SECRET_KEY not set - card payments are unavailable")
        return None
    return StripeGateway(STRIPE_SECRET_KEY, STRIPE_API_VERSION)
