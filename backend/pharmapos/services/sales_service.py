"""
Sales Service - Sale capture, tenders, suspension, cancellation and tax lines
"""
from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from sqlalchemy.orm import Session, joinedload
import logging

from pharmapos.core.config import settings
from pharmapos.core.database import run_in_transaction
from pharmapos.core.exceptions import InvalidAmount, InvalidInput, NotFound
from pharmapos.models import (
    PaymentMethod, Sale, SaleLineItem, SalePayment, SaleStatus, utcnow
)
from pharmapos.schemas import SaleCreate
from pharmapos.services.crm_service import CustomerService
from pharmapos.services.inventory_service import ProductService
from pharmapos.services.tax_service import ZERO, aggregate_totals, calculate_line, to_money
from pharmapos.services.tax_settings_service import TaxSettingsService
from pharmapos.services.tenant_service import BranchService

logger = logging.getLogger(__name__)


class SalesService:
    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, sale_id: int, tenant_id: int, branch_id: int = None) -> Optional[Sale]:
        query = self.db.query(Sale).options(
            joinedload(Sale.items),
            joinedload(Sale.payments)
        ).filter(
            Sale.id == sale_id,
            Sale.tenant_id == tenant_id
        )
        if branch_id:
            query = query.filter(Sale.branch_id == branch_id)
        return query.first()

    def get_sale(self, sale_id: int, tenant_id: int) -> Sale:
        sale = self.get_by_id(sale_id, tenant_id)
        if not sale:
            raise NotFound("Sale", sale_id)
        return sale

    def get_by_branch(self, branch_id: int, tenant_id: int, status: str = None) -> List[Sale]:
        query = self.db.query(Sale).filter(
            Sale.branch_id == branch_id,
            Sale.tenant_id == tenant_id
        )
        if status:
            query = query.filter(Sale.status == status)
        return query.order_by(Sale.created_at.desc(), Sale.id.desc()).all()

    def get_next_number(self, tenant_id: int) -> str:
        """Generate next sale number"""
        last_sale = self.db.query(Sale).filter(
            Sale.tenant_id == tenant_id
        ).order_by(Sale.id.desc()).first()

        if last_sale:
            try:
                num = int(last_sale.sale_number.replace("SALE-", ""))
                return f"SALE-{num + 1:06d}"
            except ValueError:
                pass

        return "SALE-000001"

    def _validate_tenders(self, sale_data: SaleCreate, total: Decimal):
        tendered = sum((Decimal(p.amount) for p in sale_data.payments), ZERO)
        tolerance = Decimal(str(settings.PAYMENT_TOLERANCE))

        if sale_data.is_credit_sale:
            if tendered > total:
                raise InvalidAmount(f"Tendered {tendered} exceeds credit sale total {total}")
            return

        if any(p.payment_method == PaymentMethod.CREDIT.value for p in sale_data.payments):
            raise InvalidInput("CREDIT tenders are only allowed on credit sales")
        if abs(tendered - total) > tolerance:
            raise InvalidAmount(f"Tendered {tendered} does not match sale total {total}")

    def create_sale(
        self,
        sale_data: SaleCreate,
        tenant_id: int,
        branch_id: int,
        cashier: str = None,
    ) -> Sale:
        """
        Price every line under the tenant's tax policy, aggregate the totals
        and persist the sale with its lines and tenders in one transaction.
        """
        def operation() -> Sale:
            branch = BranchService(self.db).get_by_id(branch_id, tenant_id)
            if not branch:
                raise NotFound("Branch", branch_id)

            if sale_data.customer_id:
                customer = CustomerService(self.db).get_customer(sale_data.customer_id)
                if customer.tenant_id != tenant_id:
                    raise InvalidInput(f"Customer {customer.id} does not belong to tenant {tenant_id}")

            policy = TaxSettingsService(self.db).get_policy(tenant_id)
            products = ProductService(self.db)

            lines = []
            for item in sale_data.items:
                product = products.get_product(item.product_id, tenant_id)
                lines.append((item, calculate_line(product, item.unit_price, item.quantity, policy)))

            totals = aggregate_totals([calc for _, calc in lines], sale_data.discount_amount)
            self._validate_tenders(sale_data, totals.total_amount)

            now = utcnow()
            sale = Sale(
                sale_number=self.get_next_number(tenant_id),
                subtotal=totals.subtotal,
                tax_amount=totals.tax_amount,
                discount_amount=totals.discount_amount,
                total_amount=totals.total_amount,
                is_credit_sale=sale_data.is_credit_sale,
                status=SaleStatus.COMPLETED.value,
                notes=sale_data.notes,
                cashier=cashier,
                customer_id=sale_data.customer_id,
                branch_id=branch.id,
                tenant_id=tenant_id,
                created_at=now,
                updated_at=now,
            )
            self.db.add(sale)

            for item, calc in lines:
                sale.items.append(SaleLineItem(
                    product_id=item.product_id,
                    quantity=item.quantity,
                    unit_price=to_money(item.unit_price),
                    tax_classification=calc.classification.value,
                    tax_rate=calc.effective_rate,
                    net_amount=calc.net_amount,
                    tax_amount=calc.tax_amount,
                    gross_amount=calc.gross_amount,
                ))

            for tender in sale_data.payments:
                sale.payments.append(SalePayment(
                    payment_method=getattr(tender.payment_method, "value", tender.payment_method),
                    amount=to_money(tender.amount),
                    reference_number=tender.reference_number,
                ))

            self.db.flush()
            logger.info(
                f"Sale {sale.sale_number} created for tenant {tenant_id}: subtotal={totals.subtotal}, "
                f"tax={totals.tax_amount}, discount={totals.discount_amount}, total={totals.total_amount}, "
                f"credit={sale.is_credit_sale}"
            )
            return sale

        return run_in_transaction(self.db, operation, name="Create sale")

    def suspend_sale(self, sale_id: int, tenant_id: int, notes: str = None) -> Sale:
        sale = self.get_sale(sale_id, tenant_id)
        if sale.status != SaleStatus.PENDING.value:
            raise InvalidInput(f"Only PENDING sales can be suspended; {sale.sale_number} is {sale.status}")

        sale.status = SaleStatus.SUSPENDED.value
        if notes:
            sale.notes = f"{sale.notes}\n{notes}" if sale.notes else notes
        sale.updated_at = utcnow()
        self.db.flush()
        logger.info(f"Sale {sale.sale_number} suspended")
        return sale

    def cancel_sale(self, sale_id: int, tenant_id: int, reason: str) -> Sale:
        sale = self.get_sale(sale_id, tenant_id)
        if sale.status in (SaleStatus.CANCELLED.value, SaleStatus.COMPLETED.value):
            raise InvalidInput(f"Sale {sale.sale_number} is {sale.status} and cannot be cancelled")

        sale.status = SaleStatus.CANCELLED.value
        note = f"Cancelled: {reason}"
        sale.notes = f"{sale.notes}\n{note}" if sale.notes else note
        sale.updated_at = utcnow()
        self.db.flush()
        logger.info(f"Sale {sale.sale_number} cancelled: {reason}")
        return sale

    def get_tax_lines(
        self,
        tenant_id: int,
        start: datetime = None,
        end: datetime = None,
        branch_id: int = None,
    ) -> List[dict]:
        """Stored line tax rows for VAT reporting; cancelled sales are excluded"""
        query = self.db.query(SaleLineItem, Sale).join(
            Sale, SaleLineItem.sale_id == Sale.id
        ).filter(
            Sale.tenant_id == tenant_id,
            Sale.status != SaleStatus.CANCELLED.value
        )
        if start:
            query = query.filter(Sale.created_at >= start)
        if end:
            query = query.filter(Sale.created_at <= end)
        if branch_id:
            query = query.filter(Sale.branch_id == branch_id)

        return [
            {
                "sale_id": sale.id,
                "sale_number": sale.sale_number,
                "sale_date": sale.created_at,
                "branch_id": sale.branch_id,
                "product_id": line.product_id,
                "tax_classification": line.tax_classification,
                "tax_rate": line.tax_rate,
                "net_amount": line.net_amount,
                "tax_amount": line.tax_amount,
                "gross_amount": line.gross_amount,
            }
            for line, sale in query.order_by(Sale.created_at, SaleLineItem.id).all()
        ]
