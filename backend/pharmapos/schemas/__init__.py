"""
Pydantic Schemas for API Validation
"""
from pydantic import BaseModel, EmailStr, Field, ConfigDict, model_validator
from typing import List, Optional
from datetime import datetime, date
from decimal import Decimal
from enum import Enum


# ==================== ENUMS ====================

class TaxClassificationEnum(str, Enum):
    STANDARD = "STANDARD"
    REDUCED = "REDUCED"
    ZERO = "ZERO"
    EXEMPT = "EXEMPT"


class PricingModeEnum(str, Enum):
    INCLUSIVE = "INCLUSIVE"
    EXCLUSIVE = "EXCLUSIVE"


class PaymentMethodEnum(str, Enum):
    CASH = "CASH"
    TILL = "TILL"
    MPESA = "MPESA"
    CARD = "CARD"
    BANK_TRANSFER = "BANK_TRANSFER"
    CREDIT = "CREDIT"


class CreditStatusEnum(str, Enum):
    ACTIVE = "ACTIVE"
    OVERDUE = "OVERDUE"
    PAID = "PAID"
    CLOSED = "CLOSED"
    SUSPENDED = "SUSPENDED"


# ==================== TENANT SCHEMAS ====================

class TenantCreate(BaseModel):
    name: str = Field(..., min_length=2, max_length=255)
    branch_name: str = Field("Main Branch", min_length=2, max_length=255)


class BranchCreate(BaseModel):
    name: str = Field(..., min_length=2, max_length=255)
    is_default: bool = False


class BranchResponse(BaseModel):
    id: int
    name: str
    code: str
    is_default: bool
    is_active: bool
    tenant_id: int

    model_config = ConfigDict(from_attributes=True)


class TenantResponse(BaseModel):
    id: int
    name: str
    is_active: bool
    created_at: datetime
    branches: List[BranchResponse] = []

    model_config = ConfigDict(from_attributes=True)


# ==================== TAX SETTINGS SCHEMAS ====================

class TaxSettingsUpdate(BaseModel):
    charge_tax: Optional[bool] = None
    default_rate: Optional[Decimal] = None
    reduced_rate: Optional[Decimal] = None
    pricing_mode: Optional[PricingModeEnum] = None


class TaxSettingsResponse(BaseModel):
    tenant_id: int
    charge_tax: bool
    default_rate: Decimal
    reduced_rate: Decimal
    pricing_mode: PricingModeEnum


# ==================== CATALOG SCHEMAS ====================

class ProductBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    sku: Optional[str] = Field(None, max_length=100)
    sales_price: Decimal = Field(default=Decimal("0.00"), ge=0)
    tax_classification: TaxClassificationEnum = TaxClassificationEnum.STANDARD
    tax_rate_override: Optional[Decimal] = Field(None, ge=0, le=100)


class ProductCreate(ProductBase):
    pass


class ProductTaxProfileUpdate(BaseModel):
    tax_classification: TaxClassificationEnum
    tax_rate_override: Optional[Decimal] = Field(None, ge=0, le=100)


class ProductResponse(ProductBase):
    id: int
    is_active: bool
    tenant_id: int
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


# ==================== CUSTOMER SCHEMAS ====================

class CustomerBase(BaseModel):
    name: str = Field(..., min_length=2, max_length=255)
    phone: Optional[str] = Field(None, max_length=50)
    email: Optional[EmailStr] = None


class CustomerCreate(CustomerBase):
    pass


class CustomerResponse(CustomerBase):
    id: int
    is_active: bool
    tenant_id: int
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


# ==================== SALE SCHEMAS ====================

class SaleLineItemCreate(BaseModel):
    product_id: int
    quantity: int = Field(..., ge=1)
    unit_price: Decimal = Field(..., ge=0)


class SaleLineItemResponse(BaseModel):
    id: int
    product_id: int
    quantity: int
    unit_price: Decimal
    tax_classification: str
    tax_rate: Decimal
    net_amount: Decimal
    tax_amount: Decimal
    gross_amount: Decimal

    model_config = ConfigDict(from_attributes=True)


class SalePaymentCreate(BaseModel):
    payment_method: PaymentMethodEnum = PaymentMethodEnum.CASH
    amount: Decimal = Field(..., gt=0)
    reference_number: Optional[str] = Field(None, max_length=100)


class SalePaymentResponse(BaseModel):
    id: int
    payment_method: str
    amount: Decimal
    reference_number: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class SaleCreate(BaseModel):
    items: List[SaleLineItemCreate] = Field(..., min_length=1)
    payments: List[SalePaymentCreate] = []
    discount_amount: Decimal = Field(default=Decimal("0.00"), ge=0)
    is_credit_sale: bool = False
    customer_id: Optional[int] = None
    notes: Optional[str] = None


class SaleResponse(BaseModel):
    id: int
    sale_number: str
    tenant_id: int
    branch_id: int
    customer_id: Optional[int] = None
    subtotal: Decimal
    tax_amount: Decimal
    discount_amount: Decimal
    total_amount: Decimal
    is_credit_sale: bool
    status: str
    notes: Optional[str] = None
    cashier: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class SaleWithItems(SaleResponse):
    items: List[SaleLineItemResponse] = []
    payments: List[SalePaymentResponse] = []


class SuspendSaleRequest(BaseModel):
    notes: Optional[str] = None


class CancelSaleRequest(BaseModel):
    reason: str = Field(..., min_length=1)


class TaxLineResponse(BaseModel):
    sale_id: int
    sale_number: str
    sale_date: datetime
    branch_id: int
    product_id: int
    tax_classification: str
    tax_rate: Decimal
    net_amount: Decimal
    tax_amount: Decimal
    gross_amount: Decimal


# ==================== CREDIT SCHEMAS ====================

class CreditAccountCreate(BaseModel):
    sale_id: int
    customer_id: int
    expected_payment_date: date
    paid_amount: Optional[Decimal] = None  # Upfront payment, None means nothing paid
    payment_method: Optional[PaymentMethodEnum] = None
    notes: Optional[str] = None


class CreditPaymentCreate(BaseModel):
    credit_account_id: int
    amount: Decimal
    payment_method: PaymentMethodEnum
    reference_number: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = None


class CreditPaymentResponse(BaseModel):
    id: int
    payment_number: str
    credit_account_id: int
    amount: Decimal
    payment_method: str
    reference_number: Optional[str] = None
    notes: Optional[str] = None
    received_by: Optional[str] = None
    payment_date: datetime

    model_config = ConfigDict(from_attributes=True)


class CreditAccountResponse(BaseModel):
    id: int
    credit_number: str
    sale_id: int
    customer_id: int
    branch_id: int
    total_amount: Decimal
    paid_amount: Decimal
    remaining_amount: Decimal
    expected_payment_date: date
    status: str
    notes: Optional[str] = None
    created_by: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class CreditAccountWithPayments(CreditAccountResponse):
    payments: List[CreditPaymentResponse] = []


class CreditAccountSummary(BaseModel):
    id: int
    credit_number: str
    customer_id: int
    customer_name: str
    customer_phone: Optional[str] = None
    total_amount: Decimal
    paid_amount: Decimal
    remaining_amount: Decimal
    expected_payment_date: date
    status: str
    created_at: datetime
    is_overdue: bool


class CreditAccountStatusUpdate(BaseModel):
    status: CreditStatusEnum
    notes: Optional[str] = None


class GatewayConfirmation(BaseModel):
    sale_id: Optional[int] = None
    credit_account_id: Optional[int] = None
    amount: Decimal
    payment_method: PaymentMethodEnum = PaymentMethodEnum.MPESA
    reference_number: str = Field(..., min_length=1, max_length=100)

    @model_validator(mode="after")
    def check_target(self):
        if self.sale_id is None and self.credit_account_id is None:
            raise ValueError("Either sale_id or credit_account_id is required")
        return self
