"""
CRM API Routes - Customers
"""
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import List

from pharmapos.core.database import get_db
from pharmapos.core.exceptions import NotFound
from pharmapos.core.tenant import TenantContext, get_tenant_context
from pharmapos.schemas import CreditAccountSummary, CustomerCreate, CustomerResponse
from pharmapos.services.credit_service import CreditService
from pharmapos.services.crm_service import CustomerService

router = APIRouter(prefix="/crm", tags=["CRM"])


@router.get("/customers", response_model=List[CustomerResponse])
async def list_customers(
    include_inactive: bool = False,
    db: Session = Depends(get_db),
    context: TenantContext = Depends(get_tenant_context)
):
    return CustomerService(db).get_by_tenant(context.tenant_id, include_inactive)


@router.post("/customers", response_model=CustomerResponse, status_code=status.HTTP_201_CREATED)
async def create_customer(
    customer_data: CustomerCreate,
    db: Session = Depends(get_db),
    context: TenantContext = Depends(get_tenant_context)
):
    customer = CustomerService(db).create(customer_data, context.tenant_id)
    db.commit()
    db.refresh(customer)
    return customer


@router.get("/customers/{customer_id}", response_model=CustomerResponse)
async def get_customer(
    customer_id: int,
    db: Session = Depends(get_db),
    context: TenantContext = Depends(get_tenant_context)
):
    customer = CustomerService(db).get_by_id(customer_id, context.tenant_id)
    if not customer:
        raise NotFound("Customer", customer_id)
    return customer


@router.get("/customers/{customer_id}/credit-accounts", response_model=List[CreditAccountSummary])
async def get_customer_credit_accounts(
    customer_id: int,
    db: Session = Depends(get_db),
    context: TenantContext = Depends(get_tenant_context)
):
    """All credit accounts of a customer with their overdue flag"""
    if not CustomerService(db).get_by_id(customer_id, context.tenant_id):
        raise NotFound("Customer", customer_id)
    credit_service = CreditService(db)
    accounts = credit_service.list_accounts(context.tenant_id, customer_id=customer_id)
    return [credit_service.summarize(account) for account in accounts]
