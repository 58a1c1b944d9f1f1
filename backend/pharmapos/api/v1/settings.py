"""
Settings API Routes - Tenant tax policy
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from pharmapos.core.database import get_db
from pharmapos.core.tenant import TenantContext, get_tenant_context
from pharmapos.schemas import TaxSettingsResponse, TaxSettingsUpdate
from pharmapos.services.tax_service import TaxPolicy
from pharmapos.services.tax_settings_service import TaxSettingsService

router = APIRouter(prefix="/settings", tags=["Settings"])


def _to_response(policy: TaxPolicy) -> TaxSettingsResponse:
    return TaxSettingsResponse(
        tenant_id=policy.tenant_id,
        charge_tax=policy.charge_tax,
        default_rate=policy.default_rate,
        reduced_rate=policy.effective_reduced_rate,
        pricing_mode=policy.pricing_mode.value,
    )


# ==================== TAX ====================

@router.get("/tax", response_model=TaxSettingsResponse)
async def get_tax_settings(
    db: Session = Depends(get_db),
    context: TenantContext = Depends(get_tenant_context)
):
    """Get the tenant's tax policy, creating the default on first access"""
    policy = TaxSettingsService(db).get_policy(context.tenant_id)
    db.commit()
    return _to_response(policy)


@router.put("/tax", response_model=TaxSettingsResponse)
async def update_tax_settings(
    tax_data: TaxSettingsUpdate,
    db: Session = Depends(get_db),
    context: TenantContext = Depends(get_tenant_context)
):
    """Update the tenant's tax policy"""
    policy = TaxSettingsService(db).update_policy(
        context.tenant_id,
        charge_tax=tax_data.charge_tax,
        default_rate=tax_data.default_rate,
        reduced_rate=tax_data.reduced_rate,
        pricing_mode=tax_data.pricing_mode,
    )
    db.commit()
    return _to_response(policy)
