"""
Tenant Context - Resolves the tenant, branch and operator of a request
"""
from dataclasses import dataclass
from typing import Optional
from fastapi import Depends, Header
from sqlalchemy.orm import Session

from pharmapos.core.database import get_db
from pharmapos.core.exceptions import InvalidInput, NotFound


@dataclass
class TenantContext:
    tenant_id: int
    branch_id: int
    operator: Optional[str] = None


def _parse_id(value: str, header: str) -> int:
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        raise InvalidInput(f"{header} must be an integer, got {value!r}")
    if parsed < 1:
        raise InvalidInput(f"{header} must be positive, got {parsed}")
    return parsed


async def get_tenant_context(
    x_tenant_id: Optional[str] = Header(None),
    x_branch_id: Optional[str] = Header(None),
    x_operator: Optional[str] = Header(None),
    db: Session = Depends(get_db)
) -> TenantContext:
    """
    Dependency that resolves the request's tenant scope from headers.
    The branch defaults to the tenant's default branch.
    """
    from pharmapos.services.tenant_service import BranchService, TenantService

    if not x_tenant_id:
        raise InvalidInput("X-Tenant-ID header is required")
    tenant_id = _parse_id(x_tenant_id, "X-Tenant-ID")

    tenant = TenantService(db).get_by_id(tenant_id)
    if not tenant or not tenant.is_active:
        raise NotFound("Tenant", tenant_id)

    branch_service = BranchService(db)
    if x_branch_id:
        branch_id = _parse_id(x_branch_id, "X-Branch-ID")
        branch = branch_service.get_by_id(branch_id, tenant_id)
        if not branch:
            raise NotFound("Branch", branch_id)
    else:
        branch = branch_service.get_default(tenant_id)
        if not branch:
            raise NotFound("Default branch of tenant", tenant_id)

    return TenantContext(
        tenant_id=tenant_id,
        branch_id=branch.id,
        operator=x_operator or None,
    )
