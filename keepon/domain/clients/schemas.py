"""Client domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, field_validator

from ...shared.validators import validate_email, validate_phone

ClientStatus = Literal["current", "lead", "past"]


class ClientCreate(BaseModel):
    """Schema for creating a new client"""

    firstName: str
    lastName: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    status: ClientStatus = "current"
    notes: Optional[str] = None

    @field_validator("firstName")
    @classmethod
    def check_first_name(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("First name is required")
        return v

    @field_validator("email")
    @classmethod
    def check_email(cls, v):
        return validate_email(v)

    @field_validator("phone")
    @classmethod
    def check_phone(cls, v):
        return validate_phone(v)


class ClientUpdate(BaseModel):
    """Schema for updating an existing client"""

    firstName: Optional[str] = None
    lastName: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    status: Optional[ClientStatus] = None
    notes: Optional[str] = None

    @field_validator("email")
    @classmethod
    def check_email(cls, v):
        return validate_email(v)

    @field_validator("phone")
    @classmethod
    def check_phone(cls, v):
        return validate_phone(v)


class ClientResponse(BaseModel):
    """Schema for client response"""

    id: str
    firstName: str
    lastName: Optional[str]
    email: Optional[str]
    phone: Optional[str]
    status: str
    notes: Optional[str]
    hasPaymentMethod: bool
    createdAt: datetime
    updatedAt: datetime

    class Config:
        from_attributes = True
