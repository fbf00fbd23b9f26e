"""Session invitation schemas"""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel


class InvitationCreate(BaseModel):
    clientId: str
    sessionId: str


class InvitationResponse(BaseModel):
    id: str
    clientId: str
    sessionId: str
    status: Literal["sent"] = "sent"
    sentAt: datetime
