"""Account router - trainer sign up/login/profile and client dashboard login"""

import logging

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from ...auth import get_current_trainer
from ...database import get_db
from ...errors import CountryNotSupported
from ...models import Trainer
from ..fees.transaction_fees import currency_for_country
from .schemas import (
    ClientLoginCodeCheck,
    ClientLoginCodeRequest,
    ClientLoginOption,
    ClientSessionCreate,
    LoginRequest,
    TokenResponse,
    TrainerResponse,
    TrainerSignup,
    TrainerUpdate,
)
from .service import AccountService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Accounts"])


def get_account_service(db: Session = Depends(get_db)) -> AccountService:
    """Dependency injection for AccountService"""
    return AccountService(db)


def trainer_currency(trainer: Trainer):
    try:
        return currency_for_country(trainer.country)
    except CountryNotSupported:
        return None


def to_trainer_response(trainer: Trainer) -> TrainerResponse:
    return TrainerResponse(
        id=trainer.id,
        email=trainer.email,
        firstName=trainer.first_name,
        lastName=trainer.last_name,
        businessName=trainer.business_name,
        contactEmail=trainer.contact_email,
        country=trainer.country,
        currency=trainer_currency(trainer),
        timezone=trainer.timezone,
        locale=trainer.locale,
        sendReceipts=trainer.send_receipts,
        subscriptionStatus=trainer.subscription_status,
        stripeAccountType=trainer.stripe_account_type,
        stripePaymentsBlocked=trainer.stripe_payments_blocked,
    )


# ============================================================================
# TRAINERS
# ============================================================================


@router.post("/trainers", response_model=TokenResponse, status_code=201)
async def sign_up(data: TrainerSignup, service: AccountService = Depends(get_account_service)):
    """Create a trainer account and log it in"""
    trainer, token = service.signup(data)
    return TokenResponse(
        token=token.id, userId=trainer.user_id, trainerId=trainer.id, expiresAt=token.expires_at
    )


@router.post("/members/login", response_model=TokenResponse)
async def log_in(data: LoginRequest, service: AccountService = Depends(get_account_service)):
    trainer, token = service.login(data)
    return TokenResponse(
        token=token.id, userId=trainer.user_id, trainerId=trainer.id, expiresAt=token.expires_at
    )


@router.get("/trainers/me", response_model=TrainerResponse)
async def get_me(trainer: Trainer = Depends(get_current_trainer)):
    return to_trainer_response(trainer)


@router.patch("/trainers/me", response_model=TrainerResponse)
async def update_me(
    data: TrainerUpdate,
    trainer: Trainer = Depends(get_current_trainer),
    service: AccountService = Depends(get_account_service),
):
    return to_trainer_response(service.update_trainer(trainer, data))


# ============================================================================
# CLIENT DASHBOARD LOGIN
# ============================================================================


@router.post("/clientDashboard/loginRequests", status_code=204)
async def request_login_code(
    data: ClientLoginCodeRequest, service: AccountService = Depends(get_account_service)
):
    """Email a login code. Always 204 so emails can't be probed."""
    service.request_client_login_code(data.email)
    return Response(status_code=204)


@router.post("/clientDashboard/logins", response_model=list[ClientLoginOption])
async def list_client_logins(
    data: ClientLoginCodeCheck, service: AccountService = Depends(get_account_service)
):
    """Which service providers this email is a client of"""
    clients = service.list_client_logins(data)
    return [
        ClientLoginOption(
            clientId=c.id,
            firstName=c.first_name,
            lastName=c.last_name,
            serviceProviderName=c.trainer.business_name
            or " ".join(p for p in (c.trainer.first_name, c.trainer.last_name) if p),
        )
        for c in clients
    ]


@router.post("/clientDashboard/sessions", response_model=TokenResponse, status_code=201)
async def create_client_session(
    data: ClientSessionCreate, service: AccountService = Depends(get_account_service)
):
    client, token = service.create_client_session(data)
    return TokenResponse(
        token=token.id, userId=client.user_id, clientId=client.id, expiresAt=token.expires_at
    )


__all__ = ["router", "get_account_service", "to_trainer_response"]
