"""
SQLAlchemy Models for the POS Settlement System
"""
from datetime import datetime, timezone
from decimal import Decimal
from sqlalchemy import (
    Column, Integer, String, Text, Boolean, DateTime, Date, Numeric,
    ForeignKey, Index, UniqueConstraint, CheckConstraint, event
)
from sqlalchemy.orm import relationship
import enum

from pharmapos.core.database import Base
from pharmapos.core.exceptions import InvalidAmount


def utcnow() -> datetime:
    """Naive UTC timestamp, the storage convention for every DateTime column"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# ==================== ENUMS ====================

class TaxClassification(enum.Enum):
    STANDARD = "STANDARD"
    REDUCED = "REDUCED"
    ZERO = "ZERO"
    EXEMPT = "EXEMPT"


class PricingMode(enum.Enum):
    INCLUSIVE = "INCLUSIVE"  # Listed price already contains tax
    EXCLUSIVE = "EXCLUSIVE"  # Tax added on top


class SaleStatus(enum.Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    SUSPENDED = "SUSPENDED"
    REFUNDED = "REFUNDED"


class CreditStatus(enum.Enum):
    ACTIVE = "ACTIVE"
    OVERDUE = "OVERDUE"
    PAID = "PAID"
    CLOSED = "CLOSED"
    SUSPENDED = "SUSPENDED"


class PaymentMethod(enum.Enum):
    CASH = "CASH"
    TILL = "TILL"
    MPESA = "MPESA"
    CARD = "CARD"
    BANK_TRANSFER = "BANK_TRANSFER"
    CREDIT = "CREDIT"


# ==================== TENANCY ====================

class Tenant(Base):
    """Tenant/Company operating one or more branches"""
    __tablename__ = 'tenants'

    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False, unique=True)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    branches = relationship("Branch", back_populates="tenant", cascade="all, delete-orphan")
    customers = relationship("Customer", back_populates="tenant", cascade="all, delete-orphan")
    products = relationship("Product", back_populates="tenant", cascade="all, delete-orphan")
    tax_policy = relationship("TenantTaxPolicy", back_populates="tenant", uselist=False, cascade="all, delete-orphan")


class Branch(Base):
    """Tenant branch/location"""
    __tablename__ = 'branches'

    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False)
    code = Column(String(10), nullable=False)
    is_default = Column(Boolean, default=False)
    is_active = Column(Boolean, default=True)
    tenant_id = Column(Integer, ForeignKey('tenants.id', ondelete='CASCADE'), nullable=False)
    created_at = Column(DateTime, default=utcnow)

    # Relationships
    tenant = relationship("Tenant", back_populates="branches")
    sales = relationship("Sale", back_populates="branch")

    __table_args__ = (
        UniqueConstraint('tenant_id', 'code', name='uq_branch_code'),
        Index('ix_branches_tenant_id', 'tenant_id'),
    )


class TenantTaxPolicy(Base):
    """Per-tenant tax policy, created lazily with safe defaults"""
    __tablename__ = 'tenant_tax_policies'

    id = Column(Integer, primary_key=True)
    tenant_id = Column(Integer, ForeignKey('tenants.id', ondelete='CASCADE'), nullable=False, unique=True)
    charge_tax = Column(Boolean, nullable=False, default=True)
    default_rate = Column(Numeric(5, 2), nullable=False, default=Decimal("16.00"))
    reduced_rate = Column(Numeric(5, 2), nullable=True)  # None -> configured default
    pricing_mode = Column(String(20), nullable=False, default=PricingMode.EXCLUSIVE.value)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, nullable=True)

    tenant = relationship("Tenant", back_populates="tax_policy")

    __table_args__ = (
        CheckConstraint('default_rate >= 0 AND default_rate <= 100', name='ck_tax_policy_default_rate'),
    )


# ==================== CATALOG & CRM ====================

class Customer(Base):
    """Customer"""
    __tablename__ = 'customers'

    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False)
    phone = Column(String(50), nullable=True)
    email = Column(String(255), nullable=True)
    is_active = Column(Boolean, default=True)
    tenant_id = Column(Integer, ForeignKey('tenants.id', ondelete='CASCADE'), nullable=False)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    tenant = relationship("Tenant", back_populates="customers")
    credit_accounts = relationship("CreditAccount", back_populates="customer")

    __table_args__ = (
        Index('ix_customers_tenant_id', 'tenant_id'),
    )


class Product(Base):
    """Catalog product with its tax profile"""
    __tablename__ = 'products'

    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False)
    sku = Column(String(100), nullable=True)
    sales_price = Column(Numeric(15, 2), default=Decimal("0.00"))
    tax_classification = Column(String(20), nullable=False, default=TaxClassification.STANDARD.value)
    tax_rate_override = Column(Numeric(5, 2), nullable=True)
    is_active = Column(Boolean, default=True)
    tenant_id = Column(Integer, ForeignKey('tenants.id', ondelete='CASCADE'), nullable=False)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    tenant = relationship("Tenant", back_populates="products")
    sale_line_items = relationship("SaleLineItem", back_populates="product")

    __table_args__ = (
        Index('ix_products_tenant_id', 'tenant_id'),
        Index('ix_products_sku', 'sku'),
    )


# ==================== SALES ====================

class Sale(Base):
    """Sale captured at the point of sale"""
    __tablename__ = 'sales'

    id = Column(Integer, primary_key=True)
    sale_number = Column(String(50), nullable=False)
    subtotal = Column(Numeric(15, 2), nullable=False, default=Decimal("0.00"))
    tax_amount = Column(Numeric(15, 2), nullable=False, default=Decimal("0.00"))
    discount_amount = Column(Numeric(15, 2), nullable=False, default=Decimal("0.00"))
    total_amount = Column(Numeric(15, 2), nullable=False, default=Decimal("0.00"))
    is_credit_sale = Column(Boolean, nullable=False, default=False)
    status = Column(String(20), nullable=False, default=SaleStatus.COMPLETED.value)
    notes = Column(Text, nullable=True)
    cashier = Column(String(100), nullable=True)
    customer_id = Column(Integer, ForeignKey('customers.id', ondelete='SET NULL'), nullable=True)
    branch_id = Column(Integer, ForeignKey('branches.id', ondelete='CASCADE'), nullable=False)
    tenant_id = Column(Integer, ForeignKey('tenants.id', ondelete='CASCADE'), nullable=False)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow)

    # Relationships
    branch = relationship("Branch", back_populates="sales")
    customer = relationship("Customer")
    items = relationship("SaleLineItem", back_populates="sale", cascade="all, delete-orphan")
    payments = relationship("SalePayment", back_populates="sale", cascade="all, delete-orphan",
                            order_by="SalePayment.id")
    credit_account = relationship("CreditAccount", back_populates="sale", uselist=False)

    __table_args__ = (
        UniqueConstraint('sale_number', 'tenant_id', name='uq_sale_number'),
        Index('ix_sales_tenant_id', 'tenant_id'),
        Index('ix_sales_branch_id', 'branch_id'),
    )


class SaleLineItem(Base):
    """Sale line with its settled tax calculation (append-only)"""
    __tablename__ = 'sale_line_items'

    id = Column(Integer, primary_key=True)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(15, 2), nullable=False)
    tax_classification = Column(String(20), nullable=False)
    tax_rate = Column(Numeric(5, 2), nullable=False)
    net_amount = Column(Numeric(15, 2), nullable=False)
    tax_amount = Column(Numeric(15, 2), nullable=False)
    gross_amount = Column(Numeric(15, 2), nullable=False)
    product_id = Column(Integer, ForeignKey('products.id', ondelete='RESTRICT'), nullable=False)
    sale_id = Column(Integer, ForeignKey('sales.id', ondelete='CASCADE'), nullable=False)
    created_at = Column(DateTime, default=utcnow)

    # Relationships
    product = relationship("Product", back_populates="sale_line_items")
    sale = relationship("Sale", back_populates="items")

    __table_args__ = (
        CheckConstraint('quantity >= 1', name='ck_sale_line_quantity'),
    )


class SalePayment(Base):
    """Tender received at sale time"""
    __tablename__ = 'sale_payments'

    id = Column(Integer, primary_key=True)
    payment_method = Column(String(30), nullable=False, default=PaymentMethod.CASH.value)
    amount = Column(Numeric(15, 2), nullable=False)
    reference_number = Column(String(100), nullable=True)
    sale_id = Column(Integer, ForeignKey('sales.id', ondelete='CASCADE'), nullable=False)
    created_at = Column(DateTime, default=utcnow)

    sale = relationship("Sale", back_populates="payments")


# ==================== CREDIT LEDGER ====================

class CreditAccount(Base):
    """Customer credit ledger tracking the outstanding balance of one sale"""
    __tablename__ = 'credit_accounts'

    id = Column(Integer, primary_key=True)
    credit_number = Column(String(50), nullable=False)
    total_amount = Column(Numeric(15, 2), nullable=False)
    paid_amount = Column(Numeric(15, 2), nullable=False, default=Decimal("0.00"))
    remaining_amount = Column(Numeric(15, 2), nullable=False)
    expected_payment_date = Column(Date, nullable=False)
    status = Column(String(20), nullable=False, default=CreditStatus.ACTIVE.value)
    notes = Column(Text, nullable=True)
    created_by = Column(String(100), nullable=True)
    sale_id = Column(Integer, ForeignKey('sales.id', ondelete='CASCADE'), nullable=False, unique=True)
    customer_id = Column(Integer, ForeignKey('customers.id', ondelete='RESTRICT'), nullable=False)
    branch_id = Column(Integer, ForeignKey('branches.id', ondelete='CASCADE'), nullable=False)
    tenant_id = Column(Integer, ForeignKey('tenants.id', ondelete='CASCADE'), nullable=False)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, nullable=True)
    closed_at = Column(DateTime, nullable=True)

    # Relationships
    sale = relationship("Sale", back_populates="credit_account")
    customer = relationship("Customer", back_populates="credit_accounts")
    branch = relationship("Branch")
    payments = relationship("CreditPayment", back_populates="credit_account",
                            cascade="all, delete-orphan", order_by="CreditPayment.id")

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        UniqueConstraint('tenant_id', 'credit_number', name='uq_credit_number'),
        CheckConstraint('paid_amount >= 0', name='ck_credit_paid_non_negative'),
        CheckConstraint('remaining_amount >= 0', name='ck_credit_remaining_non_negative'),
        CheckConstraint(
            # Whole cents; SQLite stores Numeric values as REAL
            'ROUND(paid_amount * 100) + ROUND(remaining_amount * 100) = ROUND(total_amount * 100)',
            name='ck_credit_balance'
        ),
        Index('ix_credit_accounts_tenant_id', 'tenant_id'),
        Index('ix_credit_accounts_customer_id', 'customer_id'),
    )

    def balance_violation(self):
        """Describe how the balance invariant is broken, or None when it holds"""
        paid = Decimal(self.paid_amount or 0)
        remaining = Decimal(self.remaining_amount or 0)
        total = Decimal(self.total_amount or 0)
        if paid < 0:
            return f"paid amount {paid} is negative"
        if remaining < 0:
            return f"remaining amount {remaining} is negative"
        if paid + remaining != total:
            return f"paid {paid} + remaining {remaining} does not equal total {total}"
        return None


class CreditPayment(Base):
    """Installment received against a credit account (append-only)"""
    __tablename__ = 'credit_payments'

    id = Column(Integer, primary_key=True)
    payment_number = Column(String(50), nullable=False, unique=True)
    amount = Column(Numeric(15, 2), nullable=False)
    payment_method = Column(String(30), nullable=False)
    reference_number = Column(String(100), nullable=True)
    notes = Column(Text, nullable=True)
    received_by = Column(String(100), nullable=True)
    payment_date = Column(DateTime, nullable=False, default=utcnow)
    credit_account_id = Column(Integer, ForeignKey('credit_accounts.id', ondelete='CASCADE'), nullable=False)
    created_at = Column(DateTime, default=utcnow)

    credit_account = relationship("CreditAccount", back_populates="payments")

    __table_args__ = (
        CheckConstraint('amount > 0', name='ck_credit_payment_positive'),
        Index('ix_credit_payments_account_id', 'credit_account_id'),
    )


# ==================== LEDGER GUARDS ====================

@event.listens_for(CreditAccount, "before_insert")
@event.listens_for(CreditAccount, "before_update")
def _check_credit_balance(mapper, connection, target):
    violation = target.balance_violation()
    if violation:
        raise InvalidAmount(f"Credit account {target.credit_number}: {violation}")


@event.listens_for(CreditPayment, "before_update")
def _reject_credit_payment_update(mapper, connection, target):
    raise InvalidAmount(f"Credit payment {target.payment_number} is append-only and cannot be modified")


@event.listens_for(CreditPayment, "before_delete")
def _reject_credit_payment_delete(mapper, connection, target):
    raise InvalidAmount(f"Credit payment {target.payment_number} is append-only and cannot be deleted")
