"""Payment plan router - trainer plan management and client acceptance"""

from typing import Optional

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from ...auth import get_current_client, get_current_trainer
from ...database import get_db
from ...models import Client, PaymentPlan, Trainer
from ...shared.formatting import format_money
from ..accounts.router import trainer_currency
from .schemas import PaymentPlanCreate, PaymentPlanPaymentResponse, PaymentPlanResponse, RetryResult
from .service import PaymentPlanService

router = APIRouter(tags=["Payment Plans"])


def get_payment_plan_service(db: Session = Depends(get_db)) -> PaymentPlanService:
    """Dependency injection for PaymentPlanService"""
    return PaymentPlanService(db)


def client_ip(request: Request) -> Optional[str]:
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        first = forwarded_for.split(",")[0].strip()
        if first:
            return first
    real_ip = (request.headers.get("x-real-ip") or "").strip()
    if real_ip:
        return real_ip
    return request.client.host if request.client else None


def to_plan_response(plan: PaymentPlan) -> PaymentPlanResponse:
    return PaymentPlanResponse(
        id=plan.id,
        clientId=plan.client_id,
        name=plan.name,
        status=plan.status,
        amount=format_money(plan.amount),
        currency=trainer_currency(plan.trainer),
        frequencyWeeklyInterval=plan.frequency_weekly_interval,
        start=plan.start,
        end=plan.end,
        acceptedAmount=format_money(plan.accepted_amount),
        acceptedEnd=plan.accepted_end,
        payments=[
            PaymentPlanPaymentResponse(
                id=p.id,
                date=p.date,
                amount=format_money(p.amount),
                amountOutstanding=format_money(p.amount_outstanding),
                status=p.status,
                retryCount=p.retry_count,
                lastRetryTime=p.last_retry_time,
                transactionFee=format_money(p.fee),
            )
            for p in plan.payments
        ],
        createdAt=plan.created_at,
        updatedAt=plan.updated_at,
    )


@router.post("/clients/{client_id}/plans", response_model=PaymentPlanResponse, status_code=201)
async def create_plan(
    client_id: str,
    data: PaymentPlanCreate,
    trainer: Trainer = Depends(get_current_trainer),
    service: PaymentPlanService = Depends(get_payment_plan_service),
):
    return to_plan_response(service.create_plan(client_id, data, trainer))


@router.get("/clients/{client_id}/plans", response_model=list[PaymentPlanResponse])
async def list_plans(
    client_id: str,
    trainer: Trainer = Depends(get_current_trainer),
    service: PaymentPlanService = Depends(get_payment_plan_service),
):
    return [to_plan_response(p) for p in service.list_plans(client_id, trainer)]


@router.get("/plans/{plan_id}", response_model=PaymentPlanResponse)
async def get_plan(
    plan_id: str,
    trainer: Trainer = Depends(get_current_trainer),
    service: PaymentPlanService = Depends(get_payment_plan_service),
):
    return to_plan_response(service.get_plan(plan_id, trainer))


@router.post("/plans/{plan_id}/cancel", response_model=PaymentPlanResponse)
async def cancel_plan(
    plan_id: str,
    trainer: Trainer = Depends(get_current_trainer),
    service: PaymentPlanService = Depends(get_payment_plan_service),
):
    return to_plan_response(service.cancel_plan(plan_id, trainer))


@router.post("/clientDashboard/plans/{plan_id}/accept", response_model=PaymentPlanResponse)
async def accept_plan(
    plan_id: str,
    request: Request,
    client: Client = Depends(get_current_client),
    service: PaymentPlanService = Depends(get_payment_plan_service),
):
    return to_plan_response(service.accept_plan(plan_id, client, client_ip(request)))


@router.post("/clientDashboard/plans/{plan_id}/retry", response_model=RetryResult)
async def retry_plan(
    plan_id: str,
    client: Client = Depends(get_current_client),
    service: PaymentPlanService = Depends(get_payment_plan_service),
):
    """Charge outstanding and rejected payments now instead of waiting for the scheduler"""
    return RetryResult(attempted=service.retry_plan(plan_id, client))


__all__ = ["router", "get_payment_plan_service"]
