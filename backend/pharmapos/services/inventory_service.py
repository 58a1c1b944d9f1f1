"""
Inventory Service - Product catalog and tax profiles
"""
from typing import Optional, List
from sqlalchemy.orm import Session
from pharmapos.core.exceptions import InvalidInput, NotFound
from pharmapos.models import Product, TaxClassification
from pharmapos.schemas import ProductCreate, ProductTaxProfileUpdate


class ProductService:
    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, product_id: int, tenant_id: int = None) -> Optional[Product]:
        query = self.db.query(Product).filter(Product.id == product_id)
        if tenant_id:
            query = query.filter(Product.tenant_id == tenant_id)
        return query.first()

    def get_product(self, product_id: int, tenant_id: int) -> Product:
        """Catalog lookup used by sale capture; unknown or foreign products fail"""
        product = self.get_by_id(product_id, tenant_id)
        if not product:
            raise NotFound("Product", product_id)
        if not product.is_active:
            raise InvalidInput(f"Product '{product.name}' ({product_id}) is inactive and cannot be sold")
        return product

    def is_sku_unique(self, sku: str, tenant_id: int, exclude_product_id: int = None) -> bool:
        """Check if SKU is unique within the tenant"""
        if not sku:
            return True  # Empty SKU is allowed
        query = self.db.query(Product).filter(
            Product.sku == sku,
            Product.tenant_id == tenant_id
        )
        if exclude_product_id:
            query = query.filter(Product.id != exclude_product_id)
        return query.first() is None

    def get_by_tenant(self, tenant_id: int, include_inactive: bool = False) -> List[Product]:
        query = self.db.query(Product).filter(Product.tenant_id == tenant_id)
        if not include_inactive:
            query = query.filter(Product.is_active == True)
        return query.order_by(Product.name).all()

    def create(self, product_data: ProductCreate, tenant_id: int) -> Product:
        if product_data.sku and not self.is_sku_unique(product_data.sku, tenant_id):
            raise InvalidInput(f"Product with SKU '{product_data.sku}' already exists for this tenant")

        product = Product(
            name=product_data.name,
            sku=product_data.sku,
            sales_price=product_data.sales_price,
            tax_classification=TaxClassification(product_data.tax_classification.value).value,
            tax_rate_override=product_data.tax_rate_override,
            tenant_id=tenant_id
        )
        self.db.add(product)
        self.db.flush()
        return product

    def update_tax_profile(self, product_id: int, tenant_id: int, profile: ProductTaxProfileUpdate) -> Product:
        """Explicit catalog edit of a product's classification and rate override"""
        product = self.get_by_id(product_id, tenant_id)
        if not product:
            raise NotFound("Product", product_id)

        product.tax_classification = profile.tax_classification.value
        product.tax_rate_override = profile.tax_rate_override
        self.db.flush()
        return product
