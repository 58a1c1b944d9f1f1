"""
Pytest fixtures for the settlement test suite.

Every test gets a fresh in-memory SQLite database on a single shared
connection, so service calls and API requests see the same data.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("TX_RETRY_BASE_DELAY_MS", "0")

from datetime import date, datetime
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from pharmapos.core.database import Base, configure_sqlite, get_db
from pharmapos.main import app
from pharmapos.models import Customer, Product, TaxClassification
from pharmapos.schemas import SaleCreate, SaleLineItemCreate, SalePaymentCreate
from pharmapos.services.credit_service import CreditService
from pharmapos.services.sales_service import SalesService
from pharmapos.services.tax_settings_service import tax_policy_cache
from pharmapos.services.tenant_service import BranchService, TenantService

# Fixed "now" for credit tests; expected payment dates are chosen around it
NOW = datetime(2025, 1, 10, 9, 30)
TODAY = NOW.date()


@pytest.fixture(autouse=True)
def clear_tax_policy_cache():
    tax_policy_cache.clear()
    yield
    tax_policy_cache.clear()


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    configure_sqlite(engine)
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()
    yield session
    session.close()


@pytest.fixture
def client(db):
    def override_get_db():
        try:
            yield db
        finally:
            db.rollback()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def tenant(db):
    tenant = TenantService(db).create("Uzima Pharmacy")
    db.commit()
    return tenant


@pytest.fixture
def other_tenant(db):
    tenant = TenantService(db).create("Afya Chemists")
    db.commit()
    return tenant


@pytest.fixture
def branch(db, tenant):
    return BranchService(db).get_default(tenant.id)


@pytest.fixture
def headers(tenant):
    return {"X-Tenant-ID": str(tenant.id), "X-Operator": "cashier-1"}


@pytest.fixture
def customer(db, tenant):
    customer = Customer(name="Jane Wanjiku", phone="0712345678", tenant_id=tenant.id)
    db.add(customer)
    db.commit()
    return customer


def _product(db, tenant, name, price, classification, override=None):
    product = Product(
        name=name,
        sales_price=Decimal(price),
        tax_classification=classification.value,
        tax_rate_override=Decimal(override) if override is not None else None,
        tenant_id=tenant.id,
    )
    db.add(product)
    db.commit()
    return product


@pytest.fixture
def standard_product(db, tenant):
    return _product(db, tenant, "Paracetamol 500mg x100", "100.00", TaxClassification.STANDARD)


@pytest.fixture
def reduced_product(db, tenant):
    return _product(db, tenant, "Infant Formula 400g", "50.00", TaxClassification.REDUCED)


@pytest.fixture
def exempt_product(db, tenant):
    return _product(db, tenant, "Insulin Pen", "1000.00", TaxClassification.EXEMPT)


@pytest.fixture
def override_product(db, tenant):
    return _product(db, tenant, "Sunscreen SPF50", "200.00", TaxClassification.STANDARD, override="5.00")


@pytest.fixture
def make_sale(db, tenant, branch, exempt_product):
    """Create a sale of exempt items, so the total equals unit_price * quantity"""
    def _make(unit_price="600.00", quantity=1, is_credit_sale=True, payments=None, customer_id=None):
        sale_data = SaleCreate(
            items=[SaleLineItemCreate(product_id=exempt_product.id, quantity=quantity, unit_price=Decimal(unit_price))],
            payments=[SalePaymentCreate(**p) for p in (payments or [])],
            is_credit_sale=is_credit_sale,
            customer_id=customer_id,
        )
        return SalesService(db).create_sale(sale_data, tenant.id, branch.id, cashier="cashier-1")
    return _make


@pytest.fixture
def credit_service(db):
    return CreditService(db, clock=lambda: NOW)


@pytest.fixture
def expected_date():
    return date(2025, 1, 31)
