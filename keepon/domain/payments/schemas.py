"""Sale payment schemas"""

from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from ...shared.validators import validate_currency_code


class ManualPaymentCreate(BaseModel):
    saleId: str
    amount: Decimal = Field(ge=0, allow_inf_nan=False)
    currency: str
    type: Literal["manual"] = "manual"
    method: Literal["cash", "electronic"]
    specificMethodName: Optional[str] = None

    @field_validator("currency")
    @classmethod
    def check_currency(cls, v):
        return validate_currency_code(v)


class CardPaymentCreate(BaseModel):
    """Client dashboard card payment. Exactly one of the two Stripe ids is required."""

    saleId: str
    amount: Decimal = Field(ge=0, allow_inf_nan=False)
    currency: str
    stripePaymentMethodId: Optional[str] = None
    stripePaymentIntentId: Optional[str] = None
    setupFutureUsage: bool = False

    @field_validator("currency")
    @classmethod
    def check_currency(cls, v):
        return validate_currency_code(v)

    @model_validator(mode="after")
    def check_exactly_one_source(self):
        if bool(self.stripePaymentMethodId) == bool(self.stripePaymentIntentId):
            raise ValueError(
                "Provide exactly one of stripePaymentMethodId or stripePaymentIntentId"
            )
        return self


class CardPaymentResult(BaseModel):
    ok: bool = True
    paymentId: str
    saleId: str
    amount: str
    transactionFee: str
    feePassedOn: bool
    stripePaymentIntentId: str


class SalePaymentResponse(BaseModel):
    id: str
    saleId: Optional[str]
    clientId: str
    type: str
    amount: str
    amountRefunded: str
    currency: str
    method: Optional[str]
    specificMethodName: Optional[str]
    paymentPlanId: Optional[str]
    transactionFee: Optional[str]
    transactedAt: datetime
    createdAt: datetime
    updatedAt: datetime
