"""API errors and the shared error-body builder.

Every error response the API produces goes through ``build_error_response`` so that
clients can rely on one shape:

    {code, status, message, error: {statusCode, message}, type, title, detail}
"""

from typing import Any, Optional


def build_error_response(
    status: int,
    title: str,
    detail: Optional[str] = None,
    type: Optional[str] = None,
) -> dict:
    message = detail or title
    return {
        "code": status,
        "status": status,
        "message": message,
        "error": {"statusCode": status, "message": message},
        "type": type or "about:blank",
        "title": title,
        "detail": detail,
    }


class ApiError(Exception):
    """Base class for errors that map onto an HTTP response"""

    status_code = 500
    title = "Something on our end went wrong."
    type = "/internal-server-error"

    def __init__(
        self,
        detail: Optional[str] = None,
        *,
        title: Optional[str] = None,
        status_code: Optional[int] = None,
        type: Optional[str] = None,
        extra: Optional[dict[str, Any]] = None,
    ):
        if title is not None:
            self.title = title
        if status_code is not None:
            self.status_code = status_code
        if type is not None:
            self.type = type
        self.detail = detail
        self.extra = extra or {}
        super().__init__(detail or self.title)

    def to_dict(self) -> dict:
        body = build_error_response(self.status_code, self.title, self.detail, self.type)
        body.update(self.extra)
        return body


# ============================================================================
# GENERIC
# ============================================================================


class BadRequest(ApiError):
    status_code = 400
    title = "Invalid request"
    type = "/bad-request"


class Forbidden(ApiError):
    status_code = 403
    title = "You are not allowed to access this resource."
    type = "/forbidden"


class NotFound(ApiError):
    status_code = 404
    title = "Not found."
    type = "/not-found"


class Conflict(ApiError):
    status_code = 409
    title = "Conflict"
    type = "/conflict"


# ============================================================================
# AUTH
# ============================================================================


class NoAccessToken(ApiError):
    status_code = 401
    title = "No access token was provided"
    type = "/no-access-token"


class InvalidAccessToken(ApiError):
    status_code = 401
    title = "Your access token is invalid or expired."
    type = "/invalid-access-token"


class InvalidCredentials(ApiError):
    status_code = 401
    title = "Incorrect email or password."
    type = "/invalid-credentials"


class InvalidLoginCode(ApiError):
    status_code = 401
    title = "That code is invalid or has expired."
    type = "/invalid-login-code"


class EmailAlreadyInUse(Conflict):
    title = "An account with that email already exists."
    type = "/email-already-in-use"


# ============================================================================
# FEES / CURRENCY
# ============================================================================


class CountryNotSupported(ApiError):
    status_code = 409
    title = "Country not supported"
    type = "/country-not-supported"


class CurrencyNotSupported(ApiError):
    status_code = 409
    title = "Currency not supported"
    type = "/currency-not-supported"


class AmountOutOfRange(ApiError):
    status_code = 400
    title = "The payment amount is outside supported limits."
    type = "/amount-out-of-range"


class InvalidFeeConfiguration(ApiError):
    status_code = 500
    title = "Invalid fee configuration"
    type = "/invalid-fee-configuration"


# ============================================================================
# SALES & PAYMENTS
# ============================================================================


class SaleNotFound(NotFound):
    title = "Sale not found."
    type = "/sale-not-found"


class SaleAlreadyPaid(Conflict):
    title = "This payment request has already been paid."
    type = "/sale-already-paid"


class PaymentAmountMismatch(BadRequest):
    title = "Payment amount must match the total due."
    type = "/payment-amount-mismatch"


class CantDeleteSalePaidByCard(Conflict):
    title = "Sales paid by card can't be deleted."
    type = "/cant-delete-sale-paid-by-card"


class ClientHasNoEmail(Conflict):
    title = "This client doesn't have an email address."
    type = "/client-has-no-email"


class StripeConfigurationMissing(ApiError):
    status_code = 500
    title = "Payments are not configured."
    type = "/stripe-configuration-missing"


class StripePaymentsDisabled(Conflict):
    title = "This service provider can't take card payments right now."
    type = "/stripe-payments-disabled"


class StripeCardRequired(BadRequest):
    title = "Only card payments are supported."
    type = "/stripe-card-required"


class StripePaymentIntentMismatch(Conflict):
    title = "The payment doesn't match the amount due."
    type = "/stripe-payment-intent-mismatch"


class StripeActionRequired(ApiError):
    status_code = 402
    title = "Additional authentication is required to complete this payment."
    type = "/stripe-action-required"

    def __init__(self, client_secret: Optional[str], payment_intent_id: Optional[str] = None):
        super().__init__(
            extra={
                "requiresAction": True,
                "clientSecret": client_secret,
                "paymentIntentId": payment_intent_id,
            }
        )


class StripePaymentFailed(ApiError):
    status_code = 402
    title = "The payment failed."
    type = "/stripe-payment-failed"


class StripeRequestFailed(ApiError):
    status_code = 402
    title = "The payment provider rejected the request."
    type = "/stripe-error"


class ServiceProviderCantTakePayments(Conflict):
    title = "This service provider can't take payments yet."
    type = "/service-provider-cant-take-payments"


# ============================================================================
# SUBSCRIPTIONS
# ============================================================================


class SubscriptionNotFound(NotFound):
    title = "Subscription not found."
    type = "/subscription-not-found"


class SubscriptionIsCancelled(Conflict):
    title = "This subscription has been cancelled."
    type = "/subscription-is-cancelled"


class NoPaymentMethodOnFile(Conflict):
    title = "No payment method on file."
    type = "/no-payment-method-on-file"


class StripePaymentsBlocked(Conflict):
    title = "Card payments are blocked for this service provider."
    type = "/stripe-payments-blocked"


class StripePaymentsNotEnabled(Conflict):
    title = "Card payments are not enabled for this service provider."
    type = "/stripe-payments-not-enabled"


class ChargeFailedBecauseNotVerified(Conflict):
    title = "Charge failed - Verification required"
    type = "/charge-failed-not-verified"


# ============================================================================
# SESSIONS
# ============================================================================


class ClientOrSessionNotFound(NotFound):
    title = "Client or appointment not found."
    type = "/client-or-session-not-found"


class AppointmentHasAlreadyStarted(Conflict):
    title = "This appointment has already started."
    type = "/appointment-already-started"


class CantDeletePaidAppointment(Conflict):
    title = "Appointments with paid clients can't be deleted."
    type = "/cant-delete-paid-appointment"
