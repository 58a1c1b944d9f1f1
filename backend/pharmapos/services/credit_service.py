"""
Credit Service - Credit accounts, payments and the account status machine

Every mutating operation runs through run_in_transaction: the account row is
re-read under lock (and version-checked on write), validated, updated together
with its payment and the owning sale, then committed as one unit.
"""
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Callable, List, Optional, Tuple
from sqlalchemy.orm import Session, joinedload
import logging
import time
import uuid

from pharmapos.core.database import run_in_transaction
from pharmapos.core.exceptions import (
    AccountNotPayable, DuplicateCreditAccount, InvalidAmount, InvalidInput,
    NotFound, OverpaymentRejected
)
from pharmapos.models import (
    CreditAccount, CreditPayment, CreditStatus, Customer, PaymentMethod, Sale, utcnow
)
from pharmapos.services import status_sync
from pharmapos.services.crm_service import CustomerService

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

# Statuses only an administrator sets; the automatic transition never leaves them
STICKY_STATUSES = (CreditStatus.CLOSED.value, CreditStatus.SUSPENDED.value)


def generate_payment_number() -> str:
    """PAY-<epoch millis>-<8 hex chars>; uniqueness is enforced by the table"""
    timestamp = int(time.time() * 1000)
    return f"PAY-{timestamp}-{uuid.uuid4().hex[:8].upper()}"


def next_status(current: str, remaining: Decimal, expected_payment_date: date, today: date) -> str:
    """The automatic status transition evaluated after every balance change"""
    if current in STICKY_STATUSES:
        return current
    if remaining <= 0:
        return CreditStatus.PAID.value
    if today > expected_payment_date:
        return CreditStatus.OVERDUE.value
    return CreditStatus.ACTIVE.value


def _parse_amount(value, label: str = "Payment amount") -> Decimal:
    if value is None or isinstance(value, bool):
        raise InvalidAmount(f"{label} is required")
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise InvalidAmount(f"{label} must be a number, got {value!r}")
    if not amount.is_finite():
        raise InvalidAmount(f"{label} must be a finite number, got {value!r}")
    if amount != amount.quantize(CENT):
        raise InvalidAmount(f"{label} {amount} has more than two decimal places")
    return amount.quantize(CENT)


def _parse_method(value) -> PaymentMethod:
    value = getattr(value, "value", value)
    try:
        return PaymentMethod(str(value).upper())
    except ValueError:
        raise InvalidInput(f"Unknown payment method {value!r}")


class CreditService:
    def __init__(self, db: Session, clock: Callable[[], datetime] = None):
        self.db = db
        self._clock = clock or utcnow

    def now(self) -> datetime:
        return self._clock()

    def today(self) -> date:
        return self._clock().date()

    # ==================== QUERIES ====================

    def get_by_id(self, account_id: int, tenant_id: int = None) -> Optional[CreditAccount]:
        query = self.db.query(CreditAccount).options(
            joinedload(CreditAccount.customer)
        ).filter(CreditAccount.id == account_id)
        if tenant_id:
            query = query.filter(CreditAccount.tenant_id == tenant_id)
        return query.first()

    def get_account(self, account_id: int, tenant_id: int) -> CreditAccount:
        account = self.get_by_id(account_id, tenant_id)
        if not account:
            raise NotFound("Credit account", account_id)
        return account

    def get_by_sale(self, sale_id: int, tenant_id: int) -> Optional[CreditAccount]:
        return self.db.query(CreditAccount).filter(
            CreditAccount.sale_id == sale_id,
            CreditAccount.tenant_id == tenant_id
        ).first()

    def get_payments(self, account_id: int) -> List[CreditPayment]:
        """Payment history, newest first"""
        return self.db.query(CreditPayment).filter(
            CreditPayment.credit_account_id == account_id
        ).order_by(CreditPayment.payment_date.desc(), CreditPayment.id.desc()).all()

    def list_accounts(
        self,
        tenant_id: int,
        customer_id: int = None,
        status: str = None,
        branch_id: int = None,
        overdue: bool = None,
        expected_from: date = None,
        expected_to: date = None,
    ) -> List[CreditAccount]:
        query = self.db.query(CreditAccount).options(
            joinedload(CreditAccount.customer)
        ).filter(CreditAccount.tenant_id == tenant_id)
        if customer_id:
            query = query.filter(CreditAccount.customer_id == customer_id)
        if status:
            query = query.filter(CreditAccount.status == getattr(status, "value", status))
        if branch_id:
            query = query.filter(CreditAccount.branch_id == branch_id)
        if expected_from:
            query = query.filter(CreditAccount.expected_payment_date >= expected_from)
        if expected_to:
            query = query.filter(CreditAccount.expected_payment_date <= expected_to)
        accounts = query.order_by(CreditAccount.created_at.desc(), CreditAccount.id.desc()).all()
        if overdue is not None:
            accounts = [a for a in accounts if self.is_overdue(a) == overdue]
        return accounts

    def is_overdue(self, account: CreditAccount) -> bool:
        if account.status == CreditStatus.OVERDUE.value:
            return True
        return (
            account.status == CreditStatus.ACTIVE.value
            and account.expected_payment_date < self.today()
        )

    def summarize(self, account: CreditAccount) -> dict:
        customer: Customer = account.customer
        return {
            "id": account.id,
            "credit_number": account.credit_number,
            "customer_id": account.customer_id,
            "customer_name": customer.name if customer else "N/A",
            "customer_phone": customer.phone if customer else None,
            "total_amount": account.total_amount,
            "paid_amount": account.paid_amount,
            "remaining_amount": account.remaining_amount,
            "expected_payment_date": account.expected_payment_date,
            "status": account.status,
            "created_at": account.created_at,
            "is_overdue": self.is_overdue(account),
        }

    # ==================== STATUS MACHINE ====================

    def _apply_status_transition(self, account: CreditAccount) -> Tuple[str, str]:
        previous = account.status
        new = next_status(previous, Decimal(account.remaining_amount), account.expected_payment_date, self.today())
        if new != previous:
            account.status = new
            if (new == CreditStatus.PAID.value and account.closed_at is None
                    and previous in (CreditStatus.ACTIVE.value, CreditStatus.OVERDUE.value)):
                account.closed_at = self.now()
            logger.info(f"Credit account {account.credit_number} status {previous} -> {new}")
        return previous, new

    def _set_balance(self, account: CreditAccount, paid: Decimal, remaining: Decimal):
        total = Decimal(account.total_amount)
        if paid < 0 or remaining < 0 or paid + remaining != total:
            raise InvalidAmount(
                f"Credit account {account.credit_number}: paid {paid} + remaining {remaining} "
                f"must equal total {total} with neither negative"
            )
        account.paid_amount = paid
        account.remaining_amount = remaining

    # ==================== MUTATIONS ====================

    def _lock_sale(self, sale_id: int, tenant_id: int) -> Sale:
        sale = self.db.query(Sale).filter(
            Sale.id == sale_id,
            Sale.tenant_id == tenant_id
        ).with_for_update().populate_existing().first()
        if not sale:
            raise NotFound("Sale", sale_id)
        return sale

    def _lock_account(self, account_id: int, tenant_id: int) -> CreditAccount:
        account = self.db.query(CreditAccount).filter(
            CreditAccount.id == account_id,
            CreditAccount.tenant_id == tenant_id
        ).with_for_update().populate_existing().first()
        if not account:
            raise NotFound("Credit account", account_id)
        return account

    def _next_credit_number(self, sale: Sale) -> str:
        prefix = f"CR-{sale.branch.code}-"
        count = self.db.query(CreditAccount).filter(
            CreditAccount.tenant_id == sale.tenant_id,
            CreditAccount.credit_number.like(f"{prefix}%")
        ).count()
        return f"{prefix}{count + 1:06d}"

    def create_account(
        self,
        tenant_id: int,
        sale_id: int,
        customer_id: int,
        expected_payment_date: date,
        paid_amount=None,
        payment_method=None,
        notes: str = None,
        operator: str = None,
    ) -> CreditAccount:
        """
        Open a credit account for a finalized credit sale.

        The remaining balance is always derived here as total - paid. An
        upfront payment is recorded as the first ledger entry; nothing is
        recorded when nothing was paid.
        """
        def operation() -> CreditAccount:
            sale = self._lock_sale(sale_id, tenant_id)
            if not sale.is_credit_sale:
                raise InvalidInput(f"Sale {sale.sale_number} is not a credit sale")

            if self.db.query(CreditAccount.id).filter(CreditAccount.sale_id == sale.id).first():
                raise DuplicateCreditAccount(sale.id)

            customer = CustomerService(self.db).get_customer(customer_id)
            if customer.tenant_id != sale.tenant_id:
                raise InvalidInput(
                    f"Customer {customer_id} does not belong to tenant {sale.tenant_id} of sale {sale.sale_number}"
                )

            total = Decimal(sale.total_amount)
            paid = ZERO if paid_amount is None else _parse_amount(paid_amount, "Paid amount")
            if paid < 0:
                raise InvalidAmount(f"Paid amount {paid} cannot be negative")
            if paid > total:
                raise InvalidAmount(f"Paid amount {paid} exceeds sale total {total}")

            now = self.now()
            account = CreditAccount(
                credit_number=self._next_credit_number(sale),
                sale_id=sale.id,
                customer_id=customer.id,
                branch_id=sale.branch_id,
                tenant_id=sale.tenant_id,
                total_amount=total,
                expected_payment_date=expected_payment_date,
                status=CreditStatus.ACTIVE.value,
                notes=notes,
                created_by=operator,
                created_at=now,
            )
            self._set_balance(account, paid, total - paid)
            self._apply_status_transition(account)
            self.db.add(account)
            self.db.flush()

            if paid > 0:
                method = _parse_method(payment_method) if payment_method else self._upfront_method(sale)
                self.db.add(CreditPayment(
                    payment_number=generate_payment_number(),
                    credit_account=account,
                    amount=paid,
                    payment_method=method.value,
                    reference_number=uuid.uuid4().hex,
                    notes="Full upfront payment" if paid == total else "Initial partial payment",
                    received_by=operator,
                    payment_date=now,
                ))

            status_sync.synchronize(sale, account.status, paid, total, on_creation=True)
            self.db.flush()

            logger.info(
                f"Opened credit account {account.credit_number} for sale {sale.sale_number}: "
                f"total={total}, paid={paid}, remaining={account.remaining_amount}, status={account.status}"
            )
            return account

        return run_in_transaction(self.db, operation, name=f"Create credit account for sale {sale_id}")

    @staticmethod
    def _upfront_method(sale: Sale) -> PaymentMethod:
        for tender in sale.payments:
            if tender.payment_method != PaymentMethod.CREDIT.value:
                return PaymentMethod(tender.payment_method)
        return PaymentMethod.CASH

    def record_payment(
        self,
        tenant_id: int,
        account_id: int,
        amount,
        payment_method,
        reference_number: str = None,
        notes: str = None,
        operator: str = None,
        reuse_reference: bool = False,
    ) -> CreditPayment:
        """
        Append a payment and move the balance. With ``reuse_reference`` a
        payment already carrying ``reference_number`` on this account is
        returned as-is instead of being applied twice.
        """
        def operation() -> CreditPayment:
            account = self._lock_account(account_id, tenant_id)

            if reuse_reference and reference_number:
                existing = self.db.query(CreditPayment).filter(
                    CreditPayment.credit_account_id == account.id,
                    CreditPayment.reference_number == reference_number
                ).first()
                if existing:
                    logger.info(
                        f"Payment reference {reference_number} already applied to "
                        f"{account.credit_number} as {existing.payment_number}"
                    )
                    return existing

            value = _parse_amount(amount)
            if value <= 0:
                raise InvalidAmount(f"Payment amount {value} must be greater than zero")
            if account.status in STICKY_STATUSES:
                logger.warning(f"Payment of {value} refused: {account.credit_number} is {account.status}")
                raise AccountNotPayable(account.id, account.status)
            remaining = Decimal(account.remaining_amount)
            if value > remaining:
                logger.warning(
                    f"Payment of {value} on {account.credit_number} exceeds remaining balance {remaining}"
                )
                raise OverpaymentRejected(value, remaining)
            method = _parse_method(payment_method)

            now = self.now()
            payment = CreditPayment(
                payment_number=generate_payment_number(),
                credit_account=account,
                amount=value,
                payment_method=method.value,
                reference_number=reference_number,
                notes=notes,
                received_by=operator,
                payment_date=now,
            )
            self.db.add(payment)

            self._set_balance(account, Decimal(account.paid_amount) + value, remaining - value)
            previous, new = self._apply_status_transition(account)
            account.updated_at = now

            if new == CreditStatus.PAID.value and previous != CreditStatus.PAID.value:
                status_sync.synchronize(
                    account.sale, new, account.paid_amount, account.total_amount,
                    previous_status=previous
                )
            self.db.flush()

            logger.info(
                f"Recorded payment {payment.payment_number} of {value} ({method.value}) on "
                f"{account.credit_number}: paid={account.paid_amount}, "
                f"remaining={account.remaining_amount}, status={account.status}"
            )
            return payment

        return run_in_transaction(self.db, operation, name=f"Record payment on credit account {account_id}")

    def update_account_status(
        self,
        tenant_id: int,
        account_id: int,
        status,
        notes: str = None,
    ) -> CreditAccount:
        """
        Administrative status change: close, suspend, or reactivate a
        suspended account (which is then re-evaluated automatically). PAID and
        CLOSED accounts are final.
        """
        target = getattr(status, "value", status)
        if target in (CreditStatus.PAID.value, CreditStatus.OVERDUE.value):
            raise InvalidInput(f"Status {target} is derived from the balance and cannot be set directly")
        if target not in (CreditStatus.CLOSED.value, CreditStatus.SUSPENDED.value, CreditStatus.ACTIVE.value):
            raise InvalidInput(f"Unknown credit status {target!r}")

        def operation() -> CreditAccount:
            account = self._lock_account(account_id, tenant_id)
            if account.status == CreditStatus.CLOSED.value:
                raise InvalidInput(f"Credit account {account.credit_number} is CLOSED and cannot change status")
            if account.status == CreditStatus.PAID.value:
                raise InvalidInput(f"Credit account {account.credit_number} is fully PAID and cannot change status")

            previous = account.status
            now = self.now()
            if target == CreditStatus.ACTIVE.value:
                if previous != CreditStatus.SUSPENDED.value:
                    raise InvalidInput(
                        f"Only SUSPENDED accounts can be reactivated; {account.credit_number} is {previous}"
                    )
                account.status = CreditStatus.ACTIVE.value
                _, new = self._apply_status_transition(account)
                if new == CreditStatus.PAID.value:
                    status_sync.synchronize(
                        account.sale, new, account.paid_amount, account.total_amount,
                        previous_status=previous
                    )
            else:
                account.status = target
                if target == CreditStatus.CLOSED.value:
                    account.closed_at = now

            if notes is not None:
                account.notes = notes
            account.updated_at = now
            self.db.flush()
            logger.info(f"Credit account {account.credit_number} status set {previous} -> {account.status}")
            return account

        return run_in_transaction(self.db, operation, name=f"Update status of credit account {account_id}")
