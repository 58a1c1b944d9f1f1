"""
Sales API Routes
"""
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import List, Optional
from datetime import datetime

from pharmapos.core.database import get_db
from pharmapos.core.tenant import TenantContext, get_tenant_context
from pharmapos.schemas import (
    CancelSaleRequest, SaleCreate, SaleResponse, SaleWithItems,
    SuspendSaleRequest, TaxLineResponse
)
from pharmapos.services.sales_service import SalesService

router = APIRouter(prefix="/sales", tags=["Sales"])


@router.get("", response_model=List[SaleResponse])
async def list_sales(
    status: Optional[str] = None,
    db: Session = Depends(get_db),
    context: TenantContext = Depends(get_tenant_context)
):
    """List sales of the current branch"""
    return SalesService(db).get_by_branch(context.branch_id, context.tenant_id, status)


@router.post("", response_model=SaleWithItems, status_code=status.HTTP_201_CREATED)
def create_sale(
    sale_data: SaleCreate,
    db: Session = Depends(get_db),
    context: TenantContext = Depends(get_tenant_context)
):
    """Capture a sale; totals and line taxes are computed server-side"""
    return SalesService(db).create_sale(
        sale_data,
        context.tenant_id,
        context.branch_id,
        cashier=context.operator
    )


@router.get("/tax-lines", response_model=List[TaxLineResponse])
async def get_tax_lines(
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    branch_id: Optional[int] = None,
    db: Session = Depends(get_db),
    context: TenantContext = Depends(get_tenant_context)
):
    """Per-line tax rows for VAT reporting"""
    return SalesService(db).get_tax_lines(context.tenant_id, start, end, branch_id)


@router.get("/{sale_id}", response_model=SaleWithItems)
async def get_sale(
    sale_id: int,
    db: Session = Depends(get_db),
    context: TenantContext = Depends(get_tenant_context)
):
    return SalesService(db).get_sale(sale_id, context.tenant_id)


@router.post("/{sale_id}/suspend", response_model=SaleResponse)
async def suspend_sale(
    sale_id: int,
    suspend_data: SuspendSaleRequest = None,
    db: Session = Depends(get_db),
    context: TenantContext = Depends(get_tenant_context)
):
    sale = SalesService(db).suspend_sale(sale_id, context.tenant_id, suspend_data.notes if suspend_data else None)
    db.commit()
    return sale


@router.post("/{sale_id}/cancel", response_model=SaleResponse)
async def cancel_sale(
    sale_id: int,
    cancel_data: CancelSaleRequest,
    db: Session = Depends(get_db),
    context: TenantContext = Depends(get_tenant_context)
):
    sale = SalesService(db).cancel_sale(sale_id, context.tenant_id, cancel_data.reason)
    db.commit()
    return sale
