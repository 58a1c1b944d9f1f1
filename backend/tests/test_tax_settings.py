"""
Tests for tenant tax policy persistence and the policy cache.
"""
from decimal import Decimal

import pytest

from pharmapos.core.exceptions import InvalidInput
from pharmapos.models import PricingMode, TenantTaxPolicy
from pharmapos.services.tax_service import TaxPolicy
from pharmapos.services.tax_settings_service import TaxPolicyCache, TaxSettingsService


class TestTaxSettingsService:
    def test_default_policy_created_on_first_access(self, db, tenant):
        assert db.query(TenantTaxPolicy).count() == 0

        policy = TaxSettingsService(db).get_policy(tenant.id)
        db.commit()

        assert policy.charge_tax is True
        assert policy.default_rate == Decimal("16.00")
        assert policy.pricing_mode == PricingMode.EXCLUSIVE
        assert policy.effective_reduced_rate == Decimal("8.00")
        assert db.query(TenantTaxPolicy).filter_by(tenant_id=tenant.id).count() == 1

    def test_second_access_reuses_row(self, db, tenant):
        service = TaxSettingsService(db, cache=TaxPolicyCache(ttl_seconds=0))
        first = service.get_row(tenant.id)
        second = service.get_row(tenant.id)
        assert first.id == second.id

    def test_update_changes_policy_and_invalidates_cache(self, db, tenant):
        cache = TaxPolicyCache(ttl_seconds=300)
        service = TaxSettingsService(db, cache=cache)
        service.get_policy(tenant.id)
        assert cache.get(tenant.id) is not None

        updated = service.update_policy(
            tenant.id,
            default_rate=Decimal("14"),
            reduced_rate=Decimal("5"),
            pricing_mode="inclusive",
        )
        db.commit()

        assert cache.get(tenant.id) is None
        assert updated.default_rate == Decimal("14")
        assert updated.effective_reduced_rate == Decimal("5")
        assert service.get_policy(tenant.id).pricing_mode == PricingMode.INCLUSIVE

    def test_disable_tax(self, db, tenant):
        service = TaxSettingsService(db)
        service.update_policy(tenant.id, charge_tax=False)
        db.commit()
        assert service.get_policy(tenant.id).charge_tax is False

    @pytest.mark.parametrize("field,value", [
        ("default_rate", Decimal("-1")),
        ("default_rate", Decimal("100.01")),
        ("reduced_rate", Decimal("150")),
    ])
    def test_out_of_range_rates_rejected(self, db, tenant, field, value):
        with pytest.raises(InvalidInput):
            TaxSettingsService(db).update_policy(tenant.id, **{field: value})

    def test_unknown_pricing_mode_rejected(self, db, tenant):
        with pytest.raises(InvalidInput):
            TaxSettingsService(db).update_policy(tenant.id, pricing_mode="GROSS")


class TestTaxPolicyCache:
    def test_put_and_get(self):
        cache = TaxPolicyCache(ttl_seconds=60)
        policy = TaxPolicy.default(tenant_id=1)
        cache.put(1, policy)
        assert cache.get(1) is policy
        assert cache.get(2) is None

    def test_zero_ttl_disables_caching(self):
        cache = TaxPolicyCache(ttl_seconds=0)
        cache.put(1, TaxPolicy.default(tenant_id=1))
        assert cache.get(1) is None

    def test_entries_expire(self, monkeypatch):
        cache = TaxPolicyCache(ttl_seconds=10)
        clock = [1000.0]
        monkeypatch.setattr("pharmapos.services.tax_settings_service.time.monotonic", lambda: clock[0])

        cache.put(1, TaxPolicy.default(tenant_id=1))
        clock[0] += 9
        assert cache.get(1) is not None
        clock[0] += 2
        assert cache.get(1) is None

    def test_invalidate_and_clear(self):
        cache = TaxPolicyCache(ttl_seconds=60)
        cache.put(1, TaxPolicy.default(tenant_id=1))
        cache.put(2, TaxPolicy.default(tenant_id=2))
        cache.invalidate(1)
        assert cache.get(1) is None
        assert cache.get(2) is not None
        cache.clear()
        assert cache.get(2) is None
