"""Display helpers shared by notifications, mails and API responses"""

from decimal import Decimal
from typing import Optional

CURRENCY_SYMBOLS = {
    "AUD": "$",
    "CAD": "$",
    "NZD": "$",
    "SGD": "$",
    "USD": "$",
    "HKD": "$",
    "MXN": "$",
    "EUR": "€",
    "GBP": "£",
    "JPY": "¥",
    "BRL": "R$",
    "CHF": "CHF ",
    "DKK": "kr ",
    "NOK": "kr ",
    "SEK": "kr ",
}

ZERO_DECIMAL_CURRENCIES = {"JPY"}


def format_currency(amount: Decimal, currency: str) -> str:
    """e.g. '$1,234.50', '€12.00', '¥500'"""
    currency = (currency or "").upper()
    decimals = 0 if currency in ZERO_DECIMAL_CURRENCIES else 2
    symbol = CURRENCY_SYMBOLS.get(currency, f"{currency} ")
    amount = Decimal(amount)
    sign = "-" if amount < 0 else ""
    return f"{sign}{symbol}{abs(amount):,.{decimals}f}"


def format_money(amount: Optional[Decimal]) -> Optional[str]:
    """Two-decimal string used in API responses"""
    if amount is None:
        return None
    return f"{Decimal(amount):.2f}"


def join_names(*parts: Optional[str]) -> str:
    return " ".join(p.strip() for p in parts if p and p.strip())


def trainer_display_name(trainer) -> str:
    """Business name, falling back to the trainer's full name"""
    return trainer.business_name or join_names(trainer.first_name, trainer.last_name)


def trainer_public_email(trainer) -> str:
    return trainer.contact_email or trainer.email
