"""
Tests for sale capture, tenders, suspension, cancellation and tax lines.
"""
from datetime import timedelta
from decimal import Decimal

import pytest

from pharmapos.core.exceptions import InvalidAmount, InvalidInput, NotFound
from pharmapos.models import Customer, Product, SaleStatus, utcnow
from pharmapos.schemas import SaleCreate, SaleLineItemCreate, SalePaymentCreate
from pharmapos.services.sales_service import SalesService
from pharmapos.services.tax_settings_service import TaxSettingsService


def line(product, quantity=1, unit_price=None):
    return SaleLineItemCreate(
        product_id=product.id,
        quantity=quantity,
        unit_price=unit_price if unit_price is not None else product.sales_price,
    )


def cash(amount):
    return SalePaymentCreate(payment_method="CASH", amount=Decimal(amount))


class TestCreateSale:
    def test_mixed_classifications_exclusive(self, db, tenant, branch, standard_product, reduced_product):
        sale_data = SaleCreate(
            items=[line(standard_product, 2), line(reduced_product, 1)],
            payments=[cash("286.00")],
        )
        sale = SalesService(db).create_sale(sale_data, tenant.id, branch.id, cashier="cashier-1")

        assert sale.sale_number == "SALE-000001"
        assert sale.subtotal == Decimal("250.00")
        assert sale.tax_amount == Decimal("36.00")
        assert sale.total_amount == Decimal("286.00")
        assert sale.status == SaleStatus.COMPLETED.value
        assert sale.cashier == "cashier-1"

        by_product = {item.product_id: item for item in sale.items}
        standard_line = by_product[standard_product.id]
        assert standard_line.tax_classification == "STANDARD"
        assert standard_line.tax_rate == Decimal("16.00")
        assert standard_line.net_amount + standard_line.tax_amount == standard_line.gross_amount
        assert by_product[reduced_product.id].tax_amount == Decimal("4.00")

    def test_sale_numbers_increase_per_tenant(self, db, tenant, branch, standard_product):
        service = SalesService(db)
        first = service.create_sale(SaleCreate(items=[line(standard_product)], payments=[cash("116")]), tenant.id, branch.id)
        second = service.create_sale(SaleCreate(items=[line(standard_product)], payments=[cash("116")]), tenant.id, branch.id)
        assert (first.sale_number, second.sale_number) == ("SALE-000001", "SALE-000002")

    def test_product_override_rate(self, db, tenant, branch, override_product):
        sale = SalesService(db).create_sale(
            SaleCreate(items=[line(override_product)], payments=[cash("210.00")]),
            tenant.id, branch.id,
        )
        assert sale.tax_amount == Decimal("10.00")
        assert sale.items[0].tax_rate == Decimal("5.00")

    def test_inclusive_pricing(self, db, tenant, branch, standard_product):
        TaxSettingsService(db).update_policy(tenant.id, pricing_mode="INCLUSIVE")
        db.commit()

        sale = SalesService(db).create_sale(
            SaleCreate(items=[line(standard_product, 1, Decimal("116.00"))], payments=[cash("116.00")]),
            tenant.id, branch.id,
        )
        assert sale.subtotal == Decimal("100.00")
        assert sale.tax_amount == Decimal("16.00")
        assert sale.total_amount == Decimal("116.00")

    def test_tenant_not_charging_tax(self, db, tenant, branch, standard_product):
        TaxSettingsService(db).update_policy(tenant.id, charge_tax=False)
        db.commit()

        sale = SalesService(db).create_sale(
            SaleCreate(items=[line(standard_product, 3)], payments=[cash("300.00")]),
            tenant.id, branch.id,
        )
        assert sale.tax_amount == Decimal("0.00")
        assert sale.items[0].tax_rate == Decimal("0")

    def test_discount_applies_to_total_only(self, db, tenant, branch, standard_product):
        sale = SalesService(db).create_sale(
            SaleCreate(items=[line(standard_product)], discount_amount=Decimal("16.00"), payments=[cash("100.00")]),
            tenant.id, branch.id,
        )
        assert sale.tax_amount == Decimal("16.00")
        assert sale.discount_amount == Decimal("16.00")
        assert sale.total_amount == Decimal("100.00")

    def test_discount_larger_than_gross_clamps_to_zero(self, db, tenant, branch, standard_product):
        sale = SalesService(db).create_sale(
            SaleCreate(items=[line(standard_product)], discount_amount=Decimal("500.00"), is_credit_sale=True),
            tenant.id, branch.id,
        )
        assert sale.total_amount == Decimal("0.00")

    def test_non_credit_tenders_must_cover_total(self, db, tenant, branch, standard_product):
        with pytest.raises(InvalidAmount, match="does not match sale total"):
            SalesService(db).create_sale(
                SaleCreate(items=[line(standard_product)], payments=[cash("100.00")]),
                tenant.id, branch.id,
            )

    def test_credit_sale_tenders_cannot_exceed_total(self, db, tenant, branch, standard_product):
        with pytest.raises(InvalidAmount, match="exceeds credit sale total"):
            SalesService(db).create_sale(
                SaleCreate(items=[line(standard_product)], payments=[cash("200.00")], is_credit_sale=True),
                tenant.id, branch.id,
            )

    def test_credit_sale_tenders_get_no_tolerance(self, make_sale):
        with pytest.raises(InvalidAmount, match="exceeds credit sale total"):
            make_sale("600.00", payments=[{"payment_method": "CASH", "amount": Decimal("600.01")}])

    def test_credit_sale_tendered_in_full_is_accepted(self, make_sale):
        sale = make_sale("600.00", payments=[{"payment_method": "MPESA", "amount": Decimal("600.00")}])
        assert sale.total_amount == Decimal("600.00")

    def test_credit_tender_on_cash_sale_rejected(self, db, tenant, branch, standard_product):
        with pytest.raises(InvalidInput):
            SalesService(db).create_sale(
                SaleCreate(
                    items=[line(standard_product)],
                    payments=[SalePaymentCreate(payment_method="CREDIT", amount=Decimal("116.00"))],
                ),
                tenant.id, branch.id,
            )

    def test_product_from_another_tenant_not_found(self, db, tenant, branch, other_tenant):
        foreign = Product(name="Foreign", sales_price=Decimal("10"), tenant_id=other_tenant.id)
        db.add(foreign)
        db.commit()

        with pytest.raises(NotFound):
            SalesService(db).create_sale(
                SaleCreate(items=[line(foreign)], payments=[cash("11.60")]),
                tenant.id, branch.id,
            )

    def test_inactive_product_rejected(self, db, tenant, branch, standard_product):
        standard_product.is_active = False
        db.commit()

        with pytest.raises(InvalidInput, match="inactive"):
            SalesService(db).create_sale(
                SaleCreate(items=[line(standard_product)], payments=[cash("116.00")]),
                tenant.id, branch.id,
            )

    def test_customer_from_another_tenant_rejected(self, db, tenant, branch, other_tenant, standard_product):
        stranger = Customer(name="Stranger", tenant_id=other_tenant.id)
        db.add(stranger)
        db.commit()

        with pytest.raises(InvalidInput, match="does not belong"):
            SalesService(db).create_sale(
                SaleCreate(items=[line(standard_product)], is_credit_sale=True, customer_id=stranger.id),
                tenant.id, branch.id,
            )

    def test_failed_sale_writes_nothing(self, db, tenant, branch, standard_product):
        with pytest.raises(InvalidAmount):
            SalesService(db).create_sale(
                SaleCreate(items=[line(standard_product)], payments=[cash("1.00")]),
                tenant.id, branch.id,
            )
        assert SalesService(db).get_by_branch(branch.id, tenant.id) == []


class TestSaleLifecycle:
    def test_suspend_pending_sale(self, db, tenant, make_sale, customer, credit_service, expected_date):
        sale = make_sale()
        credit_service.create_account(tenant.id, sale.id, customer.id, expected_date)
        assert sale.status == SaleStatus.PENDING.value

        suspended = SalesService(db).suspend_sale(sale.id, tenant.id, notes="Customer stepped out")
        db.commit()
        assert suspended.status == SaleStatus.SUSPENDED.value
        assert "Customer stepped out" in suspended.notes

    def test_only_pending_sales_can_be_suspended(self, db, tenant, make_sale):
        sale = make_sale()
        with pytest.raises(InvalidInput, match="Only PENDING"):
            SalesService(db).suspend_sale(sale.id, tenant.id)

    def test_cancel_appends_reason(self, db, tenant, make_sale, customer, credit_service, expected_date):
        sale = make_sale()
        credit_service.create_account(tenant.id, sale.id, customer.id, expected_date)

        cancelled = SalesService(db).cancel_sale(sale.id, tenant.id, "Wrong items scanned")
        db.commit()
        assert cancelled.status == SaleStatus.CANCELLED.value
        assert cancelled.notes.endswith("Cancelled: Wrong items scanned")

        with pytest.raises(InvalidInput):
            SalesService(db).cancel_sale(sale.id, tenant.id, "again")

    def test_completed_sale_cannot_be_cancelled(self, db, tenant, make_sale):
        sale = make_sale()
        with pytest.raises(InvalidInput, match="COMPLETED"):
            SalesService(db).cancel_sale(sale.id, tenant.id, "changed mind")

    def test_sale_of_another_tenant_not_found(self, db, make_sale, other_tenant):
        sale = make_sale()
        with pytest.raises(NotFound):
            SalesService(db).get_sale(sale.id, other_tenant.id)


class TestTaxLines:
    def test_tax_lines_cover_non_cancelled_sales(self, db, tenant, branch, standard_product, reduced_product,
                                                 make_sale, customer, credit_service, expected_date):
        service = SalesService(db)
        service.create_sale(
            SaleCreate(items=[line(standard_product, 2), line(reduced_product, 1)], payments=[cash("286.00")]),
            tenant.id, branch.id,
        )
        pending = make_sale()
        credit_service.create_account(tenant.id, pending.id, customer.id, expected_date)
        service.cancel_sale(pending.id, tenant.id, "void")
        db.commit()

        rows = service.get_tax_lines(tenant.id)
        assert len(rows) == 2
        assert {row["tax_classification"] for row in rows} == {"STANDARD", "REDUCED"}
        assert sum(row["tax_amount"] for row in rows) == Decimal("36.00")

    def test_tax_lines_date_range(self, db, tenant, branch, standard_product):
        SalesService(db).create_sale(
            SaleCreate(items=[line(standard_product)], payments=[cash("116.00")]),
            tenant.id, branch.id,
        )
        future = utcnow() + timedelta(days=1)
        assert SalesService(db).get_tax_lines(tenant.id, start=future) == []
        assert len(SalesService(db).get_tax_lines(tenant.id, end=future)) == 1
