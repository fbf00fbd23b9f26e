"""Session and booking schemas"""

from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator

from ...shared.dates import to_naive_utc


class SessionSeriesCreate(BaseModel):
    """A series of appointments sharing name, price and duration. One session per start."""

    name: Optional[str] = Field(default=None, max_length=255)
    location: Optional[str] = Field(default=None, max_length=255)
    price: Optional[Decimal] = Field(default=None, ge=0, max_digits=12, decimal_places=2)
    durationMinutes: int = Field(gt=0, le=24 * 60)
    sessionType: Literal["single", "group"] = "group"
    maximumAttendance: Optional[int] = Field(default=None, ge=1)
    starts: list[datetime] = Field(min_length=1, max_length=500)

    @field_validator("starts")
    @classmethod
    def normalize_starts(cls, v):
        return [to_naive_utc(s) for s in v]


class BookClientCreate(BaseModel):
    clientId: str
    createSale: bool = False


class AttendeeResponse(BaseModel):
    id: str
    clientId: str
    state: str
    saleId: Optional[str]
    price: Optional[str]
    inviteTime: Optional[datetime]
    acceptTime: Optional[datetime]
    declineTime: Optional[datetime]


class SessionResponse(BaseModel):
    id: str
    sessionSeriesId: str
    name: Optional[str]
    location: Optional[str]
    price: Optional[str]
    sessionType: str
    start: datetime
    end: datetime
    durationMinutes: int
    maximumAttendance: Optional[int]
    attendees: list[AttendeeResponse]


class SessionSeriesResponse(BaseModel):
    id: str
    name: Optional[str]
    location: Optional[str]
    price: Optional[str]
    durationMinutes: int
    sessionType: str
    sessions: list[SessionResponse]


class DeleteResult(BaseModel):
    count: int
