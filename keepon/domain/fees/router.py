"""Fee router - quote the transaction fee for an amount before charging it"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from ...auth import get_current_trainer
from ...errors import ApiError, BadRequest
from ...models import Trainer
from .schemas import TransactionFeeQuote
from .transaction_fees import (
    CountryNotSupportedError,
    calculate_fee,
    calculate_pass_on,
    format_decimal,
    format_fixed,
    get_transaction_fee,
    parse_amount,
    require_currency_limits,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Fees"])


@router.get("/transactionFee", response_model=TransactionFeeQuote)
async def get_transaction_fee_quote(
    amount: str = Query(...),
    currency: str = Query(..., min_length=3, max_length=3),
    cardCountry: Optional[str] = Query(None),
    trainer: Trainer = Depends(get_current_trainer),
):
    """What we'd charge on ``amount``, and what the client pays if the fee is passed on"""
    try:
        parsed_amount = parse_amount(amount)
    except ValueError as e:
        raise BadRequest(str(e), type="/invalid-query")

    card_country = (cardCountry or trainer.country).strip().upper()
    if len(card_country) < 2:
        raise BadRequest("cardCountry must be a 2 letter country code", type="/invalid-query")

    charge_country = trainer.country.strip().upper()
    limits = require_currency_limits(currency)

    try:
        fee = get_transaction_fee(card_country, charge_country, currency)
    except CountryNotSupportedError:
        # The trainer's country is set at sign up, so this is our data being wrong
        logger.error(f"❌ No fee table for trainer {trainer.id} country {charge_country}")
        raise ApiError(
            f"Country '{charge_country}' has no transaction fee configuration.",
            title="Unsupported country",
            status_code=500,
            type="/unsupported-country",
        )

    decimals = limits.smallest_unit_decimals
    total, surcharge = calculate_pass_on(parsed_amount, fee, decimals)

    return TransactionFeeQuote(
        amount=format_decimal(parsed_amount),
        passOnTotalAmount=format_decimal(total),
        passOnSurcharge=format_decimal(surcharge),
        fixedFee=format_decimal(fee.fixed_fee),
        percentFee=format_decimal(fee.percentage_fee),
        transactionFee=format_fixed(calculate_fee(parsed_amount, fee, decimals), decimals),
        cardCountry=card_country,
        chargeCountry=charge_country,
        feeType=fee.fee_type,
    )


__all__ = ["router"]
