"""
Sale-Credit Status Synchronizer

Mirrors credit account status onto the owning sale. Stateless; it runs inside
the credit ledger's transaction and only writes when the status changes.
"""
from decimal import Decimal
from typing import Optional
import logging

from pharmapos.models import CreditStatus, Sale, SaleStatus, utcnow

logger = logging.getLogger(__name__)


def _set_sale_status(sale: Sale, new_status: SaleStatus, reason: str) -> bool:
    if sale.status == new_status.value:
        return False
    old_status = sale.status
    sale.status = new_status.value
    sale.updated_at = utcnow()
    logger.info(f"Sale {sale.sale_number} status {old_status} -> {new_status.value} ({reason})")
    return True


def on_account_created(sale: Sale, paid_amount: Decimal, total_amount: Decimal) -> bool:
    """
    A COMPLETED sale stays COMPLETED only when the account opened fully paid;
    otherwise it waits in PENDING. Any other sale status is left alone.
    """
    if sale.status != SaleStatus.COMPLETED.value:
        return False
    target = SaleStatus.COMPLETED if paid_amount >= total_amount else SaleStatus.PENDING
    return _set_sale_status(sale, target, "credit account opened")


def on_payment(sale: Sale, previous_status: Optional[str], account_status: str) -> bool:
    """Complete the sale when the account has just transitioned into PAID"""
    just_paid = (
        account_status == CreditStatus.PAID.value
        and previous_status != CreditStatus.PAID.value
    )
    if not just_paid:
        return False
    return _set_sale_status(sale, SaleStatus.COMPLETED, "credit account fully paid")


def synchronize(
    sale: Sale,
    account_status: str,
    account_paid_amount: Decimal,
    account_total: Decimal,
    previous_status: Optional[str] = None,
    on_creation: bool = False,
) -> bool:
    """
    Apply the creation rule or the payment rule to ``sale``.
    Returns True when the sale row was changed.
    """
    if on_creation:
        return on_account_created(sale, account_paid_amount, account_total)
    return on_payment(sale, previous_status, account_status)
