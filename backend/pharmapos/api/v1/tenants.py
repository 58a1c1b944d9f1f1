"""
Tenant API Routes - Tenants and Branches
"""
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import List

from pharmapos.core.database import get_db
from pharmapos.core.exceptions import NotFound
from pharmapos.schemas import BranchCreate, BranchResponse, TenantCreate, TenantResponse
from pharmapos.services.tenant_service import TenantService, BranchService

router = APIRouter(prefix="/tenants", tags=["Tenants"])


@router.post("", response_model=TenantResponse, status_code=status.HTTP_201_CREATED)
async def create_tenant(
    tenant_data: TenantCreate,
    db: Session = Depends(get_db)
):
    """Create a tenant together with its default branch"""
    tenant = TenantService(db).create(tenant_data.name, tenant_data.branch_name)
    db.commit()
    db.refresh(tenant)
    return tenant


@router.get("", response_model=List[TenantResponse])
async def list_tenants(
    db: Session = Depends(get_db)
):
    return TenantService(db).get_all()


@router.get("/{tenant_id}", response_model=TenantResponse)
async def get_tenant(
    tenant_id: int,
    db: Session = Depends(get_db)
):
    tenant = TenantService(db).get_by_id(tenant_id)
    if not tenant:
        raise NotFound("Tenant", tenant_id)
    return tenant


@router.post("/{tenant_id}/branches", response_model=BranchResponse, status_code=status.HTTP_201_CREATED)
async def create_branch(
    tenant_id: int,
    branch_data: BranchCreate,
    db: Session = Depends(get_db)
):
    if not TenantService(db).get_by_id(tenant_id):
        raise NotFound("Tenant", tenant_id)
    branch = BranchService(db).create(branch_data.name, tenant_id, branch_data.is_default)
    db.commit()
    return branch
