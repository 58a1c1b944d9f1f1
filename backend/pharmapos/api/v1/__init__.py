# API v1 Package
from pharmapos.api.v1 import tenants, settings, inventory, crm, sales, credit

__all__ = [
    'tenants',
    'settings',
    'inventory',
    'crm',
    'sales',
    'credit',
]
