"""
Tenant Service - Tenants and Branches
"""
from typing import Optional, List
from sqlalchemy.orm import Session
from pharmapos.core.exceptions import InvalidInput
from pharmapos.models import Tenant, Branch


class TenantService:
    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, tenant_id: int) -> Optional[Tenant]:
        return self.db.query(Tenant).filter(Tenant.id == tenant_id).first()

    def get_all(self) -> List[Tenant]:
        return self.db.query(Tenant).order_by(Tenant.name).all()

    def get_by_name(self, name: str) -> Optional[Tenant]:
        return self.db.query(Tenant).filter(Tenant.name == name).first()

    def create(self, name: str, branch_name: str = "Main Branch") -> Tenant:
        """Create a tenant with its default branch. Tax policy is created on first sale."""
        if self.get_by_name(name):
            raise InvalidInput(f"Tenant '{name}' already exists")

        tenant = Tenant(name=name)
        self.db.add(tenant)
        self.db.flush()

        BranchService(self.db).create(branch_name, tenant.id, is_default=True)
        return tenant


class BranchService:
    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, branch_id: int, tenant_id: int = None) -> Optional[Branch]:
        query = self.db.query(Branch).filter(Branch.id == branch_id)
        if tenant_id:
            query = query.filter(Branch.tenant_id == tenant_id)
        return query.first()

    def get_default(self, tenant_id: int) -> Optional[Branch]:
        return self.db.query(Branch).filter(
            Branch.tenant_id == tenant_id,
            Branch.is_default == True
        ).first()

    def create(self, name: str, tenant_id: int, is_default: bool = False) -> Branch:
        # If this branch is set as default, remove default from other branches
        if is_default:
            self.db.query(Branch).filter(
                Branch.tenant_id == tenant_id
            ).update({"is_default": False})

        count = self.db.query(Branch).filter(Branch.tenant_id == tenant_id).count()
        branch = Branch(
            name=name,
            code=f"B{count + 1:03d}",
            tenant_id=tenant_id,
            is_default=is_default,
            is_active=True
        )
        self.db.add(branch)
        self.db.flush()
        return branch
