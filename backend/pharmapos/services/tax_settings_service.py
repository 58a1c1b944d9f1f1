"""
Tax Settings Service - Tenant tax policy persistence and caching
"""
from decimal import Decimal
from typing import Dict, Optional, Tuple
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
import logging
import threading
import time

from pharmapos.core.config import settings
from pharmapos.core.exceptions import InvalidInput
from pharmapos.models import PricingMode, TenantTaxPolicy, utcnow
from pharmapos.services.tax_service import TaxPolicy

logger = logging.getLogger(__name__)


class TaxPolicyCache:
    """
    Thread-safe per-tenant cache of policy snapshots with a TTL.
    Updates through TaxSettingsService invalidate the tenant's entry;
    other processes converge within one TTL window.
    """

    def __init__(self, ttl_seconds: int = None):
        self.ttl_seconds = settings.TAX_POLICY_CACHE_TTL_SECONDS if ttl_seconds is None else ttl_seconds
        self._entries: Dict[int, Tuple[float, TaxPolicy]] = {}
        self._lock = threading.Lock()

    def get(self, tenant_id: int) -> Optional[TaxPolicy]:
        with self._lock:
            entry = self._entries.get(tenant_id)
            if entry is None:
                return None
            stored_at, policy = entry
            if time.monotonic() - stored_at >= self.ttl_seconds:
                del self._entries[tenant_id]
                return None
            return policy

    def put(self, tenant_id: int, policy: TaxPolicy):
        if self.ttl_seconds <= 0:
            return
        with self._lock:
            self._entries[tenant_id] = (time.monotonic(), policy)

    def invalidate(self, tenant_id: int):
        with self._lock:
            self._entries.pop(tenant_id, None)

    def clear(self):
        with self._lock:
            self._entries.clear()


# Singleton instance
tax_policy_cache = TaxPolicyCache()


def _snapshot(row: TenantTaxPolicy) -> TaxPolicy:
    return TaxPolicy(
        charge_tax=bool(row.charge_tax),
        default_rate=Decimal(row.default_rate),
        pricing_mode=PricingMode(row.pricing_mode),
        reduced_rate=Decimal(row.reduced_rate) if row.reduced_rate is not None else None,
        tenant_id=row.tenant_id,
    )


class TaxSettingsService:
    def __init__(self, db: Session, cache: TaxPolicyCache = None):
        self.db = db
        self.cache = cache or tax_policy_cache

    def get_row(self, tenant_id: int) -> TenantTaxPolicy:
        """Load the tenant's policy row, creating it with defaults on first use"""
        row = self.db.query(TenantTaxPolicy).filter(TenantTaxPolicy.tenant_id == tenant_id).first()
        if row:
            return row

        defaults = TaxPolicy.default(tenant_id)
        savepoint = self.db.begin_nested()
        try:
            row = TenantTaxPolicy(
                tenant_id=tenant_id,
                charge_tax=defaults.charge_tax,
                default_rate=defaults.default_rate,
                reduced_rate=None,
                pricing_mode=defaults.pricing_mode.value,
            )
            self.db.add(row)
            self.db.flush()
            savepoint.commit()
            logger.info(f"Created default tax policy for tenant {tenant_id}")
            return row
        except IntegrityError:
            # Another request created it first
            savepoint.rollback()
            return self.db.query(TenantTaxPolicy).filter(TenantTaxPolicy.tenant_id == tenant_id).one()

    def get_policy(self, tenant_id: int) -> TaxPolicy:
        policy = self.cache.get(tenant_id)
        if policy is not None:
            return policy
        policy = _snapshot(self.get_row(tenant_id))
        self.cache.put(tenant_id, policy)
        return policy

    def update_policy(
        self,
        tenant_id: int,
        charge_tax: Optional[bool] = None,
        default_rate: Optional[Decimal] = None,
        reduced_rate: Optional[Decimal] = None,
        pricing_mode=None,
    ) -> TaxPolicy:
        row = self.get_row(tenant_id)

        if charge_tax is not None:
            row.charge_tax = charge_tax
        if default_rate is not None:
            row.default_rate = self._validate_rate(default_rate, "Default tax rate")
        if reduced_rate is not None:
            row.reduced_rate = self._validate_rate(reduced_rate, "Reduced tax rate")
        if pricing_mode is not None:
            value = getattr(pricing_mode, "value", pricing_mode)
            try:
                row.pricing_mode = PricingMode(str(value).upper()).value
            except ValueError:
                raise InvalidInput(f"Invalid pricing mode: {value}. Must be INCLUSIVE or EXCLUSIVE")

        row.updated_at = utcnow()
        self.db.flush()
        self.cache.invalidate(tenant_id)
        logger.info(
            f"Tax policy updated for tenant {tenant_id}: charge_tax={row.charge_tax}, "
            f"default_rate={row.default_rate}, reduced_rate={row.reduced_rate}, mode={row.pricing_mode}"
        )
        return _snapshot(row)

    @staticmethod
    def _validate_rate(rate, label: str) -> Decimal:
        rate = Decimal(str(rate))
        if rate < 0 or rate > 100:
            raise InvalidInput(f"{label} must be between 0 and 100, got {rate}")
        return rate
