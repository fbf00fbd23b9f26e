"""Sale payment router - manual payments, payment history and client card payments"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import Actor, get_current_actor, get_current_client, get_current_trainer
from ...database import get_db
from ...models import Client, Payment, Trainer
from ...shared.dates import to_naive_utc
from ...shared.formatting import format_money
from ..fees.transaction_fees import format_decimal
from .schemas import CardPaymentCreate, CardPaymentResult, ManualPaymentCreate, SalePaymentResponse
from .service import SalePaymentService
from .stripe_gateway import StripeGateway, get_stripe_gateway

router = APIRouter(tags=["Sale Payments"])


def get_sale_payment_service(
    db: Session = Depends(get_db),
    gateway: Optional[StripeGateway] = Depends(get_stripe_gateway),
) -> SalePaymentService:
    """Dependency injection for SalePaymentService"""
    return SalePaymentService(db, gateway)


def to_sale_payment_response(payment: Payment) -> SalePaymentResponse:
    return SalePaymentResponse(
        id=payment.id,
        saleId=payment.sale_id,
        clientId=payment.client_id,
        type=payment.payment_type,
        amount=format_money(payment.amount),
        amountRefunded=format_money(payment.amount_refunded or 0),
        currency=payment.currency,
        method=payment.manual_method,
        specificMethodName=payment.specific_method_name,
        paymentPlanId=payment.payment_plan_id,
        transactionFee=format_money(payment.fee),
        transactedAt=payment.transaction_time,
        createdAt=payment.created_at,
        updatedAt=payment.updated_at,
    )


@router.post("/salePayments", response_model=SalePaymentResponse, status_code=201)
async def create_manual_payment(
    data: ManualPaymentCreate,
    trainer: Trainer = Depends(get_current_trainer),
    service: SalePaymentService = Depends(get_sale_payment_service),
):
    """Record a cash or electronic payment against a sale"""
    return to_sale_payment_response(service.create_manual_payment(data, trainer))


@router.get("/salePayments", response_model=list[SalePaymentResponse])
async def list_sale_payments(
    saleId: Optional[str] = Query(None),
    clientId: Optional[str] = Query(None),
    paymentPlanId: Optional[str] = Query(None),
    updatedAfter: Optional[datetime] = Query(None),
    actor: Actor = Depends(get_current_actor),
    service: SalePaymentService = Depends(get_sale_payment_service),
):
    payments = service.list_payments(
        actor,
        sale_id=saleId,
        client_id=clientId,
        payment_plan_id=paymentPlanId,
        updated_after=to_naive_utc(updatedAfter),
    )
    return [to_sale_payment_response(p) for p in payments]


@router.post("/clientDashboard/salePayments", response_model=CardPaymentResult)
async def create_card_payment(
    data: CardPaymentCreate,
    client: Client = Depends(get_current_client),
    service: SalePaymentService = Depends(get_sale_payment_service),
):
    payment, breakdown = service.create_card_payment(client, data)
    return CardPaymentResult(
        paymentId=payment.id,
        saleId=payment.sale_id,
        amount=format_decimal(breakdown.charge_amount),
        transactionFee=format_decimal(breakdown.transaction_fee),
        feePassedOn=breakdown.fee_passed_on,
        stripePaymentIntentId=payment.stripe_payment_intent_id,
    )


__all__ = ["router", "get_sale_payment_service"]
