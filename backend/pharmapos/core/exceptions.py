"""
Settlement Error Taxonomy

Every error carries a machine-readable ``code`` and the HTTP status the API
layer answers with. Messages always name the precondition that failed along
with the concrete values involved.

    SettlementError (ValueError)
    |
    +-- InvalidInput
    +-- InvalidAmount
    |   +-- OverpaymentRejected
    +-- DuplicateCreditAccount
    +-- AccountNotPayable
    +-- NotFound
    +-- ConcurrencyConflict
"""


class SettlementError(ValueError):
    """Base class for all sale settlement and credit ledger errors."""

    code: str = "SETTLEMENT_ERROR"
    status_code: int = 400

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict:
        return {"detail": self.message, "code": self.code}


class InvalidInput(SettlementError):
    """Malformed or out-of-range arguments."""

    code = "INVALID_INPUT"


class InvalidAmount(SettlementError):
    """Amount violates a domain rule (negative, exceeds total, ...)."""

    code = "INVALID_AMOUNT"


class OverpaymentRejected(InvalidAmount):
    """Payment larger than the remaining balance. The whole payment is rejected."""

    code = "OVERPAYMENT_REJECTED"

    def __init__(self, amount, remaining):
        self.amount = amount
        self.remaining = remaining
        super().__init__(
            f"Payment amount {amount} exceeds remaining balance {remaining}"
        )


class DuplicateCreditAccount(SettlementError):
    code = "DUPLICATE_CREDIT_ACCOUNT"
    status_code = 409

    def __init__(self, sale_id):
        self.sale_id = sale_id
        super().__init__(f"Sale {sale_id} is already associated with a credit account")


class AccountNotPayable(SettlementError):
    code = "ACCOUNT_NOT_PAYABLE"
    status_code = 409

    def __init__(self, account_id, status: str):
        self.account_id = account_id
        self.status = status
        super().__init__(
            f"Credit account {account_id} is {status} and cannot accept payments"
        )


class NotFound(SettlementError):
    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, entity: str, entity_id):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found")


class ConcurrencyConflict(SettlementError):
    """Concurrent writers kept colliding after all retries were spent."""

    code = "CONCURRENCY_CONFLICT"
    status_code = 409

    def __init__(self, operation: str, attempts: int):
        self.operation = operation
        self.attempts = attempts
        super().__init__(
            f"{operation} could not be applied after {attempts} attempts "
            f"because of concurrent updates; nothing was changed, please retry"
        )
