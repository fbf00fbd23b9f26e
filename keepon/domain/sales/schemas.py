"""Sale schemas"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from ...shared.dates import to_naive_utc


class SaleCreate(BaseModel):
    """A sale of one product (or an ad-hoc item when productId is omitted)"""

    clientId: str
    productId: Optional[str] = None
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    price: Optional[Decimal] = Field(default=None, ge=0, max_digits=12, decimal_places=2)
    note: Optional[str] = None
    dueTime: Optional[datetime] = None
    paymentRequestPassOnTransactionFee: bool = False

    @field_validator("dueTime")
    @classmethod
    def normalize_due_time(cls, v):
        return to_naive_utc(v)

    @model_validator(mode="after")
    def check_item(self):
        if not self.productId and (self.name is None or self.price is None):
            raise ValueError("Either productId or both name and price are required")
        return self


class PaymentRequestCreate(BaseModel):
    passOnTransactionFee: bool = False


class SaleProductResponse(BaseModel):
    id: str
    productId: Optional[str]
    name: str
    price: str
    productType: str


class SaleResponse(BaseModel):
    id: str
    clientId: str
    note: Optional[str]
    dueTime: Optional[datetime]
    paymentStatus: str
    paymentRequestTime: Optional[datetime]
    paymentRequestPassOnTransactionFee: bool
    currency: Optional[str]
    product: Optional[SaleProductResponse]
    createdAt: datetime
    updatedAt: datetime
