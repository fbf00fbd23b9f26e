from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from ...auth import get_current_trainer
from ...database import get_db
from ...models import Product, Trainer
from ...shared.formatting import format_money
from .schemas import ProductCreate, ProductResponse, ProductType, ProductUpdate
from .service import ProductService

router = APIRouter(prefix="/products", tags=["Products"])


def get_product_service(db: Session = Depends(get_db)) -> ProductService:
    return ProductService(db)


def to_product_response(p: Product) -> ProductResponse:
    return ProductResponse(
        id=p.id,
        name=p.name,
        description=p.description,
        price=format_money(p.price),
        productType=p.product_type,
        creditCount=p.credit_count,
        durationMinutes=p.duration_minutes,
        createdAt=p.created_at,
        updatedAt=p.updated_at,
    )


@router.get("", response_model=list[ProductResponse])
async def list_products(
    type: Optional[ProductType] = Query(None),
    trainer: Trainer = Depends(get_current_trainer),
    service: ProductService = Depends(get_product_service),
):
    return [to_product_response(p) for p in service.list_products(trainer, type)]


@router.get("/{product_id}", response_model=ProductResponse)
async def get_product(
    product_id: str,
    trainer: Trainer = Depends(get_current_trainer),
    service: ProductService = Depends(get_product_service),
):
    return to_product_response(service.get_product(product_id, trainer))


@router.post("", response_model=ProductResponse, status_code=201)
async def create_product(
    data: ProductCreate,
    trainer: Trainer = Depends(get_current_trainer),
    service: ProductService = Depends(get_product_service),
):
    return to_product_response(service.create_product(data, trainer))


@router.patch("/{product_id}", response_model=ProductResponse)
async def update_product(
    product_id: str,
    data: ProductUpdate,
    trainer: Trainer = Depends(get_current_trainer),
    service: ProductService = Depends(get_product_service),
):
    return to_product_response(service.update_product(product_id, data, trainer))


@router.delete("/{product_id}", status_code=204)
async def delete_product(
    product_id: str,
    trainer: Trainer = Depends(get_current_trainer),
    service: ProductService = Depends(get_product_service),
):
    service.delete_product(product_id, trainer)
    return Response(status_code=204)
