"""Payment plan (subscription) schemas"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from ...shared.dates import to_naive_utc


class PaymentPlanCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    amount: Decimal = Field(gt=0, max_digits=12, decimal_places=2)
    start: datetime
    end: datetime
    frequencyWeeklyInterval: int = Field(default=1, ge=1, le=52)

    @field_validator("start", "end")
    @classmethod
    def normalize_dates(cls, v):
        return to_naive_utc(v)

    @model_validator(mode="after")
    def check_range(self):
        if self.end <= self.start:
            raise ValueError("end must be after start")
        return self


class PaymentPlanPaymentResponse(BaseModel):
    id: str
    date: datetime
    amount: str
    amountOutstanding: str
    status: str
    retryCount: int
    lastRetryTime: Optional[datetime]
    transactionFee: Optional[str]


class PaymentPlanResponse(BaseModel):
    id: str
    clientId: str
    name: str
    status: Optional[str]
    amount: str
    currency: Optional[str]
    frequencyWeeklyInterval: int
    start: datetime
    end: datetime
    acceptedAmount: Optional[str]
    acceptedEnd: Optional[datetime]
    payments: list[PaymentPlanPaymentResponse]
    createdAt: datetime
    updatedAt: datetime


class RetryResult(BaseModel):
    attempted: int
    succeeded: bool = True
