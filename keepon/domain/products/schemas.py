from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, Field, model_validator

ProductType = Literal["service", "item", "creditPack"]


class ProductCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    price: Decimal = Field(ge=0, max_digits=12, decimal_places=2)
    productType: ProductType = "service"
    creditCount: Optional[int] = Field(default=None, gt=0)
    durationMinutes: Optional[int] = Field(default=None, gt=0)

    @model_validator(mode="after")
    def check_credit_pack(self):
        if self.productType == "creditPack" and not self.creditCount:
            raise ValueError("Credit packs need a creditCount")
        return self


class ProductUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    price: Optional[Decimal] = Field(default=None, ge=0, max_digits=12, decimal_places=2)
    creditCount: Optional[int] = Field(default=None, gt=0)
    durationMinutes: Optional[int] = Field(default=None, gt=0)


class ProductResponse(BaseModel):
    id: str
    name: str
    description: Optional[str]
    price: str
    productType: str
    creditCount: Optional[int]
    durationMinutes: Optional[int]
    createdAt: datetime
    updatedAt: datetime
