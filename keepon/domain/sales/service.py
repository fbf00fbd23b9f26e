"""Sale service - Business logic for sales and payment requests"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from ...config import FRONTEND_URL, NO_REPLY_EMAIL, APP_NAME
from ...email_service import queue_mail
from ...email_templates import payment_request_template
from ...errors import CantDeleteSalePaidByCard, ClientHasNoEmail, SaleAlreadyPaid, SaleNotFound
from ...models import Sale, SaleProduct, Trainer
from ...shared.dates import utcnow
from ...shared.formatting import format_currency, trainer_display_name, trainer_public_email
from ..clients.service import ClientService
from ..fees.transaction_fees import currency_for_country
from ..products.service import ProductService
from .repository import SaleRepository
from .schemas import SaleCreate

logger = logging.getLogger(__name__)

UNPAID_STATUSES = (None, "none", "requested")


class SaleService:
    """Service layer for sale business logic"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = SaleRepository()

    def list_sales(self, trainer: Trainer, client_id: Optional[str] = None) -> list[Sale]:
        return self.repo.get_sales(self.db, trainer.id, client_id)

    def get_sale(self, sale_id: str, trainer: Trainer) -> Sale:
        sale = self.repo.get_sale(self.db, sale_id, trainer.id)
        if not sale:
            raise SaleNotFound()
        return sale

    def create_sale(self, data: SaleCreate, trainer: Trainer, commit: bool = True) -> Sale:
        """Create a sale with its single sale product.

        Name and price come from the product unless the request overrides them.
        """
        client = ClientService(self.db).get_client(data.clientId, trainer)

        product = None
        if data.productId:
            product = ProductService(self.db).get_product(data.productId, trainer)

        sale = Sale(
            trainer_id=trainer.id,
            client_id=client.id,
            note=data.note,
            due_time=data.dueTime,
            payment_status="none",
            payment_request_pass_on_transaction_fee=data.paymentRequestPassOnTransactionFee,
        )
        sale.sale_product = SaleProduct(
            trainer_id=trainer.id,
            client_id=client.id,
            product_id=product.id if product else None,
            name=data.name or product.name,
            price=data.price if data.price is not None else product.price,
            product_type=product.product_type if product else "item",
        )
        self.db.add(sale)
        self.db.flush()

        if commit:
            self.db.commit()
            self.db.refresh(sale)
            logger.info(f"🧾 Created sale {sale.id} for client {client.id}")
        return sale

    def delete_sale(self, sale_id: str, trainer: Trainer) -> None:
        try:
            sale = self.repo.lock_sale(self.db, sale_id, trainer_id=trainer.id)
            if not sale:
                raise SaleNotFound()

            if sale.payment_status == "paid" and self.repo.has_card_payment(self.db, sale.id):
                logger.warning(f"⚠️ Refusing to delete card-paid sale {sale.id}")
                raise CantDeleteSalePaidByCard()

            self.db.delete(sale)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        logger.info(f"🗑️ Deleted sale {sale_id}")

    def request_payment(self, sale_id: str, pass_on_fee: bool, trainer: Trainer) -> Sale:
        """Mark a sale as requested and email the client a link to pay it"""
        try:
            sale = self.repo.lock_sale(self.db, sale_id, trainer_id=trainer.id)
            if not sale:
                raise SaleNotFound()
            if sale.payment_status not in UNPAID_STATUSES:
                raise SaleAlreadyPaid()

            client = sale.client
            if not client.email:
                raise ClientHasNoEmail()

            sale.payment_status = "requested"
            sale.payment_request_time = utcnow()
            sale.payment_request_pass_on_transaction_fee = pass_on_fee

            provider_name = trainer_display_name(trainer)
            amount_text = format_currency(sale.sale_product.price, currency_for_country(trainer.country))
            queue_mail(
                self.db,
                to_email=client.email,
                to_name=client.first_name,
                subject=f"{provider_name} has requested a payment of {amount_text}",
                mjml_content=payment_request_template(
                    client_first_name=client.first_name,
                    service_provider_name=provider_name,
                    item_name=sale.sale_product.name,
                    amount_text=amount_text,
                    pay_url=f"{FRONTEND_URL}/client-dashboard/sales/{sale.id}",
                ),
                from_email=NO_REPLY_EMAIL,
                from_name=f"{provider_name} via {APP_NAME}",
                reply_to=trainer_public_email(trainer),
                trainer_id=trainer.id,
                client_id=client.id,
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(sale)
        logger.info(f"💌 Payment requested for sale {sale.id} ({amount_text})")
        return sale
