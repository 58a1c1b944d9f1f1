"""
Inventory API Routes - Products and their tax profiles
"""
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import List

from pharmapos.core.database import get_db
from pharmapos.core.exceptions import NotFound
from pharmapos.core.tenant import TenantContext, get_tenant_context
from pharmapos.schemas import ProductCreate, ProductResponse, ProductTaxProfileUpdate
from pharmapos.services.inventory_service import ProductService

router = APIRouter(prefix="/inventory", tags=["Inventory"])


@router.get("/products", response_model=List[ProductResponse])
async def list_products(
    include_inactive: bool = False,
    db: Session = Depends(get_db),
    context: TenantContext = Depends(get_tenant_context)
):
    return ProductService(db).get_by_tenant(context.tenant_id, include_inactive)


@router.post("/products", response_model=ProductResponse, status_code=status.HTTP_201_CREATED)
async def create_product(
    product_data: ProductCreate,
    db: Session = Depends(get_db),
    context: TenantContext = Depends(get_tenant_context)
):
    product = ProductService(db).create(product_data, context.tenant_id)
    db.commit()
    db.refresh(product)
    return product


@router.get("/products/{product_id}", response_model=ProductResponse)
async def get_product(
    product_id: int,
    db: Session = Depends(get_db),
    context: TenantContext = Depends(get_tenant_context)
):
    product = ProductService(db).get_by_id(product_id, context.tenant_id)
    if not product:
        raise NotFound("Product", product_id)
    return product


@router.put("/products/{product_id}/tax-profile", response_model=ProductResponse)
async def update_tax_profile(
    product_id: int,
    profile: ProductTaxProfileUpdate,
    db: Session = Depends(get_db),
    context: TenantContext = Depends(get_tenant_context)
):
    """Change a product's tax classification and rate override"""
    product = ProductService(db).update_tax_profile(product_id, context.tenant_id, profile)
    db.commit()
    db.refresh(product)
    return product
