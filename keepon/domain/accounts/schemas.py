"""Account schemas - trainer sign up/login and client dashboard login"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator

from ...shared.validators import validate_country_code, validate_email, validate_timezone


class TrainerSignup(BaseModel):
    email: str
    password: str
    firstName: str
    lastName: Optional[str] = None
    businessName: Optional[str] = None
    country: str
    timezone: str = "UTC"
    locale: str = "en-US"

    @field_validator("email")
    @classmethod
    def check_email(cls, v):
        return validate_email(v)

    @field_validator("password")
    @classmethod
    def check_password(cls, v):
        if len(v) < 8:
            raise ValueError("Password must be at least 8 characters")
        return v

    @field_validator("country")
    @classmethod
    def check_country(cls, v):
        return validate_country_code(v)

    @field_validator("timezone")
    @classmethod
    def check_timezone(cls, v):
        return validate_timezone(v)


class LoginRequest(BaseModel):
    email: str
    password: str

    @field_validator("email")
    @classmethod
    def check_email(cls, v):
        return validate_email(v)


class TokenResponse(BaseModel):
    token: str
    userId: str
    trainerId: Optional[str] = None
    clientId: Optional[str] = None
    expiresAt: datetime


class TrainerUpdate(BaseModel):
    firstName: Optional[str] = None
    lastName: Optional[str] = None
    businessName: Optional[str] = None
    contactEmail: Optional[str] = None
    timezone: Optional[str] = None
    locale: Optional[str] = None
    sendReceipts: Optional[bool] = None

    @field_validator("contactEmail")
    @classmethod
    def check_email(cls, v):
        return validate_email(v)

    @field_validator("timezone")
    @classmethod
    def check_timezone(cls, v):
        return validate_timezone(v)


class TrainerResponse(BaseModel):
    id: str
    email: str
    firstName: str
    lastName: Optional[str]
    businessName: Optional[str]
    contactEmail: Optional[str]
    country: str
    currency: Optional[str]
    timezone: str
    locale: str
    sendReceipts: bool
    subscriptionStatus: str
    stripeAccountType: Optional[str]
    stripePaymentsBlocked: bool


# ============================================================================
# CLIENT DASHBOARD LOGIN
# ============================================================================


class ClientLoginCodeRequest(BaseModel):
    email: str

    @field_validator("email")
    @classmethod
    def check_email(cls, v):
        return validate_email(v)


class ClientLoginCodeCheck(BaseModel):
    email: str
    code: str

    @field_validator("email")
    @classmethod
    def check_email(cls, v):
        return validate_email(v)

    @field_validator("code")
    @classmethod
    def check_code(cls, v):
        v = v.strip()
        if not (len(v) == 6 and v.isdigit()):
            raise ValueError("Code must be 6 digits")
        return v


class ClientSessionCreate(ClientLoginCodeCheck):
    clientId: str


class ClientLoginOption(BaseModel):
    clientId: str
    firstName: str
    lastName: Optional[str]
    serviceProviderName: str
