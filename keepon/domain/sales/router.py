"""Sale router - FastAPI endpoints for sales"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from ...auth import get_current_trainer
from ...database import get_db
from ...errors import CountryNotSupported
from ...models import Sale, Trainer
from ...shared.formatting import format_money
from ..fees.transaction_fees import currency_for_country
from .schemas import PaymentRequestCreate, SaleCreate, SaleProductResponse, SaleResponse
from .service import SaleService

router = APIRouter(prefix="/sales", tags=["Sales"])


def get_sale_service(db: Session = Depends(get_db)) -> SaleService:
    """Dependency injection for SaleService"""
    return SaleService(db)


def to_sale_response(sale: Sale, trainer: Trainer) -> SaleResponse:
    try:
        currency = currency_for_country(trainer.country)
    except CountryNotSupported:
        currency = None

    sp = sale.sale_product
    return SaleResponse(
        id=sale.id,
        clientId=sale.client_id,
        note=sale.note,
        dueTime=sale.due_time,
        paymentStatus=sale.payment_status or "none",
        paymentRequestTime=sale.payment_request_time,
        paymentRequestPassOnTransactionFee=sale.payment_request_pass_on_transaction_fee,
        currency=currency,
        product=SaleProductResponse(
            id=sp.id,
            productId=sp.product_id,
            name=sp.name,
            price=format_money(sp.price),
            productType=sp.product_type,
        )
        if sp
        else None,
        createdAt=sale.created_at,
        updatedAt=sale.updated_at,
    )


@router.get("", response_model=list[SaleResponse])
async def list_sales(
    clientId: Optional[str] = Query(None),
    trainer: Trainer = Depends(get_current_trainer),
    service: SaleService = Depends(get_sale_service),
):
    return [to_sale_response(s, trainer) for s in service.list_sales(trainer, clientId)]


@router.get("/{sale_id}", response_model=SaleResponse)
async def get_sale(
    sale_id: str,
    trainer: Trainer = Depends(get_current_trainer),
    service: SaleService = Depends(get_sale_service),
):
    return to_sale_response(service.get_sale(sale_id, trainer), trainer)


@router.post("", response_model=SaleResponse, status_code=201)
async def create_sale(
    data: SaleCreate,
    trainer: Trainer = Depends(get_current_trainer),
    service: SaleService = Depends(get_sale_service),
):
    return to_sale_response(service.create_sale(data, trainer), trainer)


@router.delete("/{sale_id}", status_code=204)
async def delete_sale(
    sale_id: str,
    trainer: Trainer = Depends(get_current_trainer),
    service: SaleService = Depends(get_sale_service),
):
    """Delete a sale. Sales paid by card stay, they have money attached."""
    service.delete_sale(sale_id, trainer)
    return Response(status_code=204)


@router.post("/{sale_id}/paymentRequest", response_model=SaleResponse)
async def request_payment(
    sale_id: str,
    data: PaymentRequestCreate,
    trainer: Trainer = Depends(get_current_trainer),
    service: SaleService = Depends(get_sale_service),
):
    sale = service.request_payment(sale_id, data.passOnTransactionFee, trainer)
    return to_sale_response(sale, trainer)


__all__ = ["router", "get_sale_service"]
