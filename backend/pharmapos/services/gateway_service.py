"""
Gateway Service - Applies payment confirmations from external gateways (M-Pesa, card)
"""
from sqlalchemy.orm import Session
import logging

from pharmapos.core.exceptions import InvalidInput, NotFound
from pharmapos.models import CreditPayment
from pharmapos.services.credit_service import CreditService

logger = logging.getLogger(__name__)


class GatewayService:
    def __init__(self, db: Session, credit_service: CreditService = None):
        self.db = db
        self.credit = credit_service or CreditService(db)

    def resolve_account_id(self, tenant_id: int, sale_id: int = None, credit_account_id: int = None) -> int:
        if credit_account_id:
            return self.credit.get_account(credit_account_id, tenant_id).id
        if sale_id:
            account = self.credit.get_by_sale(sale_id, tenant_id)
            if not account:
                raise NotFound("Credit account for sale", sale_id)
            return account.id
        raise InvalidInput("A gateway confirmation needs a sale_id or a credit_account_id")

    def apply_confirmation(
        self,
        tenant_id: int,
        amount,
        payment_method,
        reference_number: str,
        sale_id: int = None,
        credit_account_id: int = None,
    ) -> CreditPayment:
        """
        Route a confirmed gateway payment into the credit ledger.
        A redelivered confirmation returns the payment recorded the first time.
        """
        if not reference_number:
            raise InvalidInput("Gateway confirmations must carry a reference number")

        account_id = self.resolve_account_id(tenant_id, sale_id, credit_account_id)
        logger.info(f"Gateway confirmation {reference_number} for credit account {account_id}: {amount}")
        return self.credit.record_payment(
            tenant_id,
            account_id,
            amount,
            payment_method,
            reference_number=reference_number,
            notes=f"Gateway confirmation {reference_number}",
            operator="gateway",
            reuse_reference=True,
        )
