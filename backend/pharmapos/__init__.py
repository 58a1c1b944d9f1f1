"""
PharmaPOS - Sale settlement and credit ledger backend
"""
__version__ = "1.0.0"
