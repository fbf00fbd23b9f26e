"""Transaction fee quote schema"""

from pydantic import BaseModel


class TransactionFeeQuote(BaseModel):
    amount: str
    passOnTotalAmount: str
    passOnSurcharge: str
    fixedFee: str
    percentFee: str
    transactionFee: str
    cardCountry: str
    chargeCountry: str
    feeType: str
