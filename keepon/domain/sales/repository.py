"""Sale repository - Database operations for sales"""

from typing import Optional

from sqlalchemy.orm import Session, joinedload

from ...models import Payment, Sale


class SaleRepository:
    """Repository for sale database operations"""

    @staticmethod
    def get_sales(db: Session, trainer_id: str, client_id: Optional[str] = None) -> list[Sale]:
        query = (
            db.query(Sale)
            .options(joinedload(Sale.sale_product))
            .filter(Sale.trainer_id == trainer_id)
        )
        if client_id:
            query = query.filter(Sale.client_id == client_id)
        return query.order_by(Sale.created_at.desc()).all()

    @staticmethod
    def get_sale(db: Session, sale_id: str, trainer_id: str) -> Optional[Sale]:
        return db.query(Sale).filter(Sale.id == sale_id, Sale.trainer_id == trainer_id).first()

    @staticmethod
    def lock_sale(
        db: Session,
        sale_id: str,
        trainer_id: Optional[str] = None,
        client_id: Optional[str] = None,
    ) -> Optional[Sale]:
        """SELECT ... FOR UPDATE on the sale row, scoped to a trainer and/or client"""
        query = db.query(Sale).filter(Sale.id == sale_id)
        if trainer_id:
            query = query.filter(Sale.trainer_id == trainer_id)
        if client_id:
            query = query.filter(Sale.client_id == client_id)
        return query.with_for_update().first()

    @staticmethod
    def has_card_payment(db: Session, sale_id: str) -> bool:
        return (
            db.query(Payment.id)
            .filter(Payment.sale_id == sale_id, Payment.payment_type == "stripe")
            .first()
            is not None
        )
