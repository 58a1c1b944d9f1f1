"""
Credit API Routes - Credit accounts, payments and gateway confirmations
"""
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import List, Optional

from pharmapos.core.database import get_db
from pharmapos.core.tenant import TenantContext, get_tenant_context
from pharmapos.schemas import (
    CreditAccountCreate, CreditAccountResponse, CreditAccountStatusUpdate,
    CreditAccountSummary, CreditAccountWithPayments, CreditPaymentCreate,
    CreditPaymentResponse, CreditStatusEnum, GatewayConfirmation
)
from pharmapos.services.credit_service import CreditService
from pharmapos.services.gateway_service import GatewayService

router = APIRouter(prefix="/credit", tags=["Credit"])


# ==================== ACCOUNTS ====================

@router.post("/accounts", response_model=CreditAccountResponse, status_code=status.HTTP_201_CREATED)
def create_credit_account(
    account_data: CreditAccountCreate,
    db: Session = Depends(get_db),
    context: TenantContext = Depends(get_tenant_context)
):
    """Open a credit account for a credit sale, with an optional upfront payment"""
    return CreditService(db).create_account(
        context.tenant_id,
        account_data.sale_id,
        account_data.customer_id,
        account_data.expected_payment_date,
        paid_amount=account_data.paid_amount,
        payment_method=account_data.payment_method,
        notes=account_data.notes,
        operator=context.operator,
    )


@router.get("/accounts", response_model=List[CreditAccountSummary])
async def list_credit_accounts(
    customer_id: Optional[int] = None,
    status: Optional[CreditStatusEnum] = None,
    branch_id: Optional[int] = None,
    overdue: Optional[bool] = None,
    db: Session = Depends(get_db),
    context: TenantContext = Depends(get_tenant_context)
):
    credit_service = CreditService(db)
    accounts = credit_service.list_accounts(
        context.tenant_id,
        customer_id=customer_id,
        status=status,
        branch_id=branch_id,
        overdue=overdue,
    )
    return [credit_service.summarize(account) for account in accounts]


@router.get("/accounts/{account_id}", response_model=CreditAccountWithPayments)
async def get_credit_account(
    account_id: int,
    db: Session = Depends(get_db),
    context: TenantContext = Depends(get_tenant_context)
):
    """Credit account with its payment history, newest first"""
    credit_service = CreditService(db)
    account = credit_service.get_account(account_id, context.tenant_id)
    account_dict = CreditAccountResponse.model_validate(account).model_dump()
    account_dict["payments"] = [
        CreditPaymentResponse.model_validate(payment)
        for payment in credit_service.get_payments(account.id)
    ]
    return CreditAccountWithPayments(**account_dict)


@router.put("/accounts/{account_id}/status", response_model=CreditAccountResponse)
def update_credit_account_status(
    account_id: int,
    status_data: CreditAccountStatusUpdate,
    db: Session = Depends(get_db),
    context: TenantContext = Depends(get_tenant_context)
):
    """Close, suspend or reactivate a credit account"""
    return CreditService(db).update_account_status(
        context.tenant_id,
        account_id,
        status_data.status,
        notes=status_data.notes,
    )


# ==================== PAYMENTS ====================

@router.post("/payments", response_model=CreditPaymentResponse, status_code=status.HTTP_201_CREATED)
def record_credit_payment(
    payment_data: CreditPaymentCreate,
    db: Session = Depends(get_db),
    context: TenantContext = Depends(get_tenant_context)
):
    return CreditService(db).record_payment(
        context.tenant_id,
        payment_data.credit_account_id,
        payment_data.amount,
        payment_data.payment_method,
        reference_number=payment_data.reference_number,
        notes=payment_data.notes,
        operator=context.operator,
    )


@router.post("/gateway-confirmations", response_model=CreditPaymentResponse)
def apply_gateway_confirmation(
    confirmation: GatewayConfirmation,
    db: Session = Depends(get_db),
    context: TenantContext = Depends(get_tenant_context)
):
    """Apply a payment confirmed by an external gateway; redeliveries are idempotent"""
    return GatewayService(db).apply_confirmation(
        context.tenant_id,
        confirmation.amount,
        confirmation.payment_method,
        confirmation.reference_number,
        sale_id=confirmation.sale_id,
        credit_account_id=confirmation.credit_account_id,
    )
