"""Product service - the catalogue a trainer sells from"""

import logging

from sqlalchemy.orm import Session

from ...errors import NotFound
from ...models import Product, Trainer
from .schemas import ProductCreate, ProductUpdate

logger = logging.getLogger(__name__)


class ProductNotFound(NotFound):
    title = "Product not found."
    type = "/product-not-found"


class ProductService:
    def __init__(self, db: Session):
        self.db = db

    def list_products(self, trainer: Trainer, product_type: str = None) -> list[Product]:
        query = self.db.query(Product).filter(Product.trainer_id == trainer.id)
        if product_type:
            query = query.filter(Product.product_type == product_type)
        return query.order_by(Product.name).all()

    def get_product(self, product_id: str, trainer: Trainer) -> Product:
        product = (
            self.db.query(Product)
            .filter(Product.id == product_id, Product.trainer_id == trainer.id)
            .first()
        )
        if not product:
            raise ProductNotFound()
        return product

    def create_product(self, data: ProductCreate, trainer: Trainer) -> Product:
        product = Product(
            trainer_id=trainer.id,
            name=data.name.strip(),
            description=data.description,
            price=data.price,
            product_type=data.productType,
            credit_count=data.creditCount if data.productType == "creditPack" else None,
            duration_minutes=data.durationMinutes,
        )
        self.db.add(product)
        self.db.commit()
        self.db.refresh(product)
        logger.info(f"📦 Created {product.product_type} product {product.id} for trainer {trainer.id}")
        return product

    def update_product(self, product_id: str, data: ProductUpdate, trainer: Trainer) -> Product:
        product = self.get_product(product_id, trainer)
        updates = {
            "name": data.name,
            "description": data.description,
            "price": data.price,
            "duration_minutes": data.durationMinutes,
        }
        if product.product_type == "creditPack":
            updates["credit_count"] = data.creditCount
        for key, value in updates.items():
            if value is not None:
                setattr(product, key, value)
        self.db.commit()
        self.db.refresh(product)
        return product

    def delete_product(self, product_id: str, trainer: Trainer) -> None:
        # Sale products keep their own name/price copy, product_id goes NULL
        product = self.get_product(product_id, trainer)
        self.db.delete(product)
        self.db.commit()
