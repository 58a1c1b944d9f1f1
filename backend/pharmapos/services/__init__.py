# Services Package
from pharmapos.services.tenant_service import TenantService, BranchService
from pharmapos.services.crm_service import CustomerService
from pharmapos.services.inventory_service import ProductService
from pharmapos.services.tax_service import (
    TaxPolicy, LineTaxCalculation, SaleTotals,
    resolve_tax_rule, calculate_tax, calculate_line, aggregate_totals
)
from pharmapos.services.tax_settings_service import TaxSettingsService, TaxPolicyCache, tax_policy_cache
from pharmapos.services import status_sync
from pharmapos.services.credit_service import CreditService
from pharmapos.services.gateway_service import GatewayService
from pharmapos.services.sales_service import SalesService

__all__ = [
    'TenantService',
    'BranchService',
    'CustomerService',
    'ProductService',
    'TaxPolicy',
    'LineTaxCalculation',
    'SaleTotals',
    'resolve_tax_rule',
    'calculate_tax',
    'calculate_line',
    'aggregate_totals',
    'TaxSettingsService',
    'TaxPolicyCache',
    'tax_policy_cache',
    'status_sync',
    'CreditService',
    'GatewayService',
    'SalesService',
]
