"""Transaction fee tables and the money arithmetic built on them.

All amounts are ``Decimal`` in major units (dollars, euros...). Conversions to
minor units for Stripe round half-up.
"""

import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Optional

from ...errors import (
    AmountOutOfRange,
    CountryNotSupported,
    CurrencyNotSupported,
    InvalidFeeConfiguration,
)

logger = logging.getLogger(__name__)


class CountryNotSupportedError(CountryNotSupported):
    pass


class CurrencyNotSupportedError(CurrencyNotSupported):
    pass


class AmountOutOfRangeError(AmountOutOfRange):
    pass


class InvalidFeeConfigurationError(InvalidFeeConfiguration):
    pass


@dataclass(frozen=True)
class FeeRate:
    percentage: Decimal  # fraction, e.g. 0.035
    fixed: Decimal
    stripe_percentage: Decimal
    stripe_fixed: Decimal


@dataclass(frozen=True)
class CountryFees:
    currency: str
    domestic: FeeRate
    international: FeeRate
    domestic_is_european: bool = False


@dataclass(frozen=True)
class TransactionFee:
    percentage_fee: Decimal
    fixed_fee: Decimal
    stripe_percentage_fee: Decimal
    stripe_fixed_fee: Decimal
    fee_type: str  # domestic, international, european, nonEuropean


@dataclass(frozen=True)
class CurrencyLimits:
    minimum_in_smallest_unit: int
    maximum_in_smallest_unit: int
    smallest_unit_decimals: int

    @property
    def minimum(self) -> Decimal:
        return Decimal(self.minimum_in_smallest_unit).scaleb(-self.smallest_unit_decimals)

    @property
    def maximum(self) -> Decimal:
        return Decimal(self.maximum_in_smallest_unit).scaleb(-self.smallest_unit_decimals)


@dataclass(frozen=True)
class ChargeBreakdown:
    amount: Decimal
    transaction_fee: Decimal
    charge_amount: Decimal
    charge_amount_minor: int
    application_fee_minor: int
    fee_passed_on: bool


def _rate(percent: str, fixed: str, stripe_percent: str, stripe_fixed: str) -> FeeRate:
    return FeeRate(
        percentage=Decimal(percent).scaleb(-2),
        fixed=Decimal(fixed),
        stripe_percentage=Decimal(stripe_percent).scaleb(-2),
        stripe_fixed=Decimal(stripe_fixed),
    )


def _euro_country() -> CountryFees:
    return CountryFees(
        currency="EUR",
        domestic=_rate("1.95", "0.3", "1.4", "0.25"),
        international=_rate("3.5", "0.3", "2.9", "0.25"),
        domestic_is_european=True,
    )


# Keyed by the charge country, i.e. the trainer's country
COUNTRY_FEES: dict[str, CountryFees] = {
    "AU": CountryFees("AUD", _rate("2.4", "0.4", "1.75", "0.3"), _rate("3.9", "0.4", "2.9", "0.3")),
    "CA": CountryFees("CAD", _rate("3.5", "0.4", "2.9", "0.3"), _rate("4.5", "0.4", "3.5", "0.3")),
    "US": CountryFees("USD", _rate("3.5", "0.4", "2.9", "0.3"), _rate("4.5", "0.4", "3.9", "0.3")),
    "GB": CountryFees(
        "GBP", _rate("1.95", "0.3", "1.4", "0.2"), _rate("3.5", "0.3", "2.9", "0.2"), True
    ),
    "NZ": CountryFees("NZD", _rate("3.5", "0.4", "2.9", "0.3"), _rate("3.5", "0.4", "2.9", "0.3")),
    "IE": _euro_country(),
    "DE": _euro_country(),
    "LU": _euro_country(),
    "NL": _euro_country(),
    "SG": CountryFees("SGD", _rate("3.9", "0.5", "3.4", "0.5"), _rate("3.9", "0.5", "3.4", "0.5")),
    "CH": CountryFees("CHF", _rate("3.4", "0.35", "2.9", "0.3"), _rate("3.4", "0.35", "2.9", "0.3")),
    "NO": CountryFees("NOK", _rate("2.9", "2.3", "2.4", "2"), _rate("3.4", "2.3", "2.9", "2")),
    "DK": CountryFees(
        "DKK", _rate("1.9", "1.9", "1.4", "1.8"), _rate("3.5", "1.9", "2.9", "1.8"), True
    ),
    "SE": CountryFees(
        "SEK", _rate("1.9", "1.9", "1.4", "1.8"), _rate("3.5", "1.9", "2.9", "1.8"), True
    ),
}

# Cards issued here get the domestic rate in domestic_is_european countries
EUROPEAN_CARD_COUNTRIES = frozenset(
    """
    AD AT BE BG HR CY CZ DK EE FO FI FR DE GI GR GL GG VA HU IS IE IM IL IT JE LV LI
    LT LU MK MT MC ME NL NO PL PT RO PM SM RS SK SI ES SJ SE TR GB
    """.split()
)

MAXIMUM_CHARGE_IN_SMALLEST_UNIT = 99999999

CURRENCY_CHARGE_LIMITS: dict[str, CurrencyLimits] = {
    "USD": CurrencyLimits(50, MAXIMUM_CHARGE_IN_SMALLEST_UNIT, 2),
    "AUD": CurrencyLimits(50, MAXIMUM_CHARGE_IN_SMALLEST_UNIT, 2),
    "BRL": CurrencyLimits(50, MAXIMUM_CHARGE_IN_SMALLEST_UNIT, 2),
    "CAD": CurrencyLimits(50, MAXIMUM_CHARGE_IN_SMALLEST_UNIT, 2),
    "CHF": CurrencyLimits(50, MAXIMUM_CHARGE_IN_SMALLEST_UNIT, 2),
    "DKK": CurrencyLimits(250, MAXIMUM_CHARGE_IN_SMALLEST_UNIT, 2),
    "EUR": CurrencyLimits(50, MAXIMUM_CHARGE_IN_SMALLEST_UNIT, 2),
    "GBP": CurrencyLimits(30, MAXIMUM_CHARGE_IN_SMALLEST_UNIT, 2),
    "HKD": CurrencyLimits(400, MAXIMUM_CHARGE_IN_SMALLEST_UNIT, 2),
    "JPY": CurrencyLimits(50, MAXIMUM_CHARGE_IN_SMALLEST_UNIT, 0),
    "MXN": CurrencyLimits(1000, MAXIMUM_CHARGE_IN_SMALLEST_UNIT, 2),
    "NOK": CurrencyLimits(300, MAXIMUM_CHARGE_IN_SMALLEST_UNIT, 2),
    "NZD": CurrencyLimits(50, MAXIMUM_CHARGE_IN_SMALLEST_UNIT, 2),
    "SEK": CurrencyLimits(300, MAXIMUM_CHARGE_IN_SMALLEST_UNIT, 2),
    "SGD": CurrencyLimits(50, MAXIMUM_CHARGE_IN_SMALLEST_UNIT, 2),
}


def _normalize_code(value: Optional[str]) -> str:
    return (value or "").strip().upper()


def get_country_fees(country: str) -> CountryFees:
    fees = COUNTRY_FEES.get(_normalize_code(country))
    if fees is None:
        raise CountryNotSupportedError(f"Country '{country}' is not supported for card payments.")
    return fees


def currency_for_country(country: str) -> str:
    return get_country_fees(country).currency


def get_transaction_fee(card_country: str, charge_country: str, currency: str) -> TransactionFee:
    """Pick the fee rate for a card from ``card_country`` charged in ``charge_country``."""
    card_country = _normalize_code(card_country)
    charge_country = _normalize_code(charge_country)
    currency = _normalize_code(currency)

    country_fees = get_country_fees(charge_country)
    if country_fees.currency != currency:
        raise CurrencyNotSupportedError(
            f"Currency '{currency}' is not supported in {charge_country}."
        )

    if country_fees.domestic_is_european:
        if card_country in EUROPEAN_CARD_COUNTRIES:
            rate, fee_type = country_fees.domestic, "european"
        else:
            rate, fee_type = country_fees.international, "nonEuropean"
    elif card_country == charge_country:
        rate, fee_type = country_fees.domestic, "domestic"
    else:
        rate, fee_type = country_fees.international, "international"

    return TransactionFee(
        percentage_fee=rate.percentage,
        fixed_fee=rate.fixed,
        stripe_percentage_fee=rate.stripe_percentage,
        stripe_fixed_fee=rate.stripe_fixed,
        fee_type=fee_type,
    )


def get_currency_limits(currency: str) -> Optional[CurrencyLimits]:
    return CURRENCY_CHARGE_LIMITS.get(_normalize_code(currency))


def require_currency_limits(currency: str) -> CurrencyLimits:
    limits = get_currency_limits(currency)
    if limits is None:
        raise CurrencyNotSupportedError(f"Currency '{currency}' is not supported.")
    return limits


def round_to_currency(amount: Decimal, decimals: int) -> Decimal:
    return Decimal(amount).quantize(Decimal(1).scaleb(-decimals), rounding=ROUND_HALF_UP)


def to_minor_units(amount: Decimal, decimals: int) -> int:
    return int(Decimal(amount).scaleb(decimals).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def format_decimal(value: Decimal) -> str:
    """Plain string without exponent or trailing zeros, e.g. '0.035', '100'"""
    if value == value.to_integral_value():
        return str(value.quantize(Decimal(1)))
    return format(value.normalize(), "f")


def format_fixed(value: Decimal, decimals: int) -> str:
    return format(round_to_currency(value, decimals), "f")


def parse_amount(value) -> Decimal:
    """Parse a money amount from user input. Negative and non-finite values are rejected."""
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError) as e:
        raise ValueError("amount must be a number") from e
    if not amount.is_finite():
        raise ValueError("amount must be finite")
    if amount < 0:
        raise ValueError("amount must be zero or more")
    return amount


def calculate_fee(amount: Decimal, fee: TransactionFee, decimals: int) -> Decimal:
    return round_to_currency(amount * fee.percentage_fee + fee.fixed_fee, decimals)


def calculate_stripe_fee(amount: Decimal, fee: TransactionFee, decimals: int) -> Decimal:
    return round_to_currency(amount * fee.stripe_percentage_fee + fee.stripe_fixed_fee, decimals)


def _pass_on_denominator(fee: TransactionFee) -> Decimal:
    denominator = Decimal(1) - fee.percentage_fee
    if denominator <= 0:
        logger.error(f"❌ Invalid percentage fee {fee.percentage_fee} for pass-on calculation")
        raise InvalidFeeConfigurationError("The percentage fee leaves nothing to charge.")
    return denominator


def calculate_pass_on(amount: Decimal, fee: TransactionFee, decimals: int) -> tuple[Decimal, Decimal]:
    """Total to charge so the trainer nets ``amount`` after our fee, and the surcharge."""
    total = round_to_currency((amount + fee.fixed_fee) / _pass_on_denominator(fee), decimals)
    return total, total - amount


def check_amount_in_range(amount: Decimal, limits: CurrencyLimits) -> None:
    if amount < limits.minimum or amount > limits.maximum:
        raise AmountOutOfRangeError(
            f"Amount must be between {format_decimal(limits.minimum)} and "
            f"{format_decimal(limits.maximum)}."
        )


def calculate_charge(
    amount: Decimal, fee: TransactionFee, limits: CurrencyLimits, pass_on_fee: bool
) -> ChargeBreakdown:
    """Work out what the card is charged and the application fee we keep.

    When the fee is passed on, the client pays the surcharge on top of ``amount``
    so the trainer still nets ``amount``.
    """
    decimals = limits.smallest_unit_decimals
    amount = round_to_currency(amount, decimals)

    if pass_on_fee:
        transaction_fee = round_to_currency(
            (amount + fee.fixed_fee) / _pass_on_denominator(fee) - amount, decimals
        )
        charge_amount = amount + transaction_fee
    else:
        transaction_fee = calculate_fee(amount, fee, decimals)
        charge_amount = amount

    return ChargeBreakdown(
        amount=amount,
        transaction_fee=transaction_fee,
        charge_amount=charge_amount,
        charge_amount_minor=to_minor_units(charge_amount, decimals),
        application_fee_minor=to_minor_units(transaction_fee, decimals),
        fee_passed_on=pass_on_fee,
    )
