"""
Tax Service - Rule resolution, line-item tax calculation and sale totals

All functions here are pure: the tenant's tax policy is loaded by the caller
(see tax_settings_service) and passed in explicitly.
"""
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_EVEN, InvalidOperation
from typing import Iterable, List, Optional, Tuple
import logging

from pharmapos.core.config import settings
from pharmapos.core.exceptions import InvalidInput
from pharmapos.models import PricingMode, TaxClassification

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
HUNDRED = Decimal("100")


def to_money(value) -> Decimal:
    """Round to the currency's minor unit using banker's rounding"""
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_EVEN)


def _to_decimal(value, field: str) -> Decimal:
    if isinstance(value, bool):
        raise InvalidInput(f"{field} must be a number, got {value!r}")
    try:
        return value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise InvalidInput(f"{field} must be a number, got {value!r}")


@dataclass(frozen=True)
class TaxPolicy:
    """Immutable snapshot of a tenant's tax policy"""
    charge_tax: bool
    default_rate: Decimal
    pricing_mode: PricingMode
    reduced_rate: Optional[Decimal] = None
    tenant_id: Optional[int] = None

    @classmethod
    def default(cls, tenant_id: int = None) -> "TaxPolicy":
        return cls(
            charge_tax=True,
            default_rate=settings.DEFAULT_TAX_RATE,
            pricing_mode=PricingMode(settings.DEFAULT_PRICING_MODE.upper()),
            reduced_rate=None,
            tenant_id=tenant_id,
        )

    @property
    def effective_reduced_rate(self) -> Decimal:
        if self.reduced_rate is None:
            return settings.DEFAULT_REDUCED_TAX_RATE
        return self.reduced_rate


@dataclass(frozen=True)
class LineTaxCalculation:
    net_amount: Decimal
    tax_amount: Decimal
    gross_amount: Decimal
    effective_rate: Decimal
    classification: Optional[TaxClassification] = None


@dataclass(frozen=True)
class SaleTotals:
    subtotal: Decimal
    tax_amount: Decimal
    gross_amount: Decimal
    discount_amount: Decimal
    total_amount: Decimal


def _classification_of(product) -> TaxClassification:
    value = getattr(product, "tax_classification", None) or TaxClassification.STANDARD
    if isinstance(value, TaxClassification):
        return value
    try:
        return TaxClassification(str(value).upper())
    except ValueError:
        raise InvalidInput(f"Unknown tax classification {value!r}")


def resolve_tax_rule(product, policy: Optional[TaxPolicy] = None) -> Tuple[Decimal, TaxClassification]:
    """
    Determine the effective rate and classification for a product.

    An absent policy is treated as the default policy. When the tenant does not
    charge tax the rate is forced to zero; otherwise a product override wins,
    then the classification decides.
    """
    policy = policy or TaxPolicy.default()
    classification = _classification_of(product)

    if not policy.charge_tax:
        return ZERO, classification

    override = getattr(product, "tax_rate_override", None)
    if override is not None:
        return Decimal(override), classification

    if classification == TaxClassification.STANDARD:
        return Decimal(policy.default_rate), classification
    if classification == TaxClassification.REDUCED:
        return Decimal(policy.effective_reduced_rate), classification
    # ZERO and EXEMPT
    return ZERO, classification


def calculate_tax(unit_price, quantity: int, rate, pricing_mode) -> LineTaxCalculation:
    """
    Net, tax and gross for one line.

    Tax is rounded half-to-even to the cent and the complementary amount is
    derived from the rounded tax, so net + tax == gross holds exactly.
    """
    unit_price = _to_decimal(unit_price, "unit price")
    rate = _to_decimal(rate, "tax rate")

    if unit_price < 0:
        raise InvalidInput(f"Unit price {unit_price} cannot be negative")
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise InvalidInput(f"Quantity must be a whole number, got {quantity!r}")
    if quantity < 1:
        raise InvalidInput(f"Quantity {quantity} must be at least 1")
    if rate < 0:
        raise InvalidInput(f"Tax rate {rate} cannot be negative")

    if not isinstance(pricing_mode, PricingMode):
        try:
            pricing_mode = PricingMode(str(pricing_mode).upper())
        except ValueError:
            raise InvalidInput(f"Pricing mode must be INCLUSIVE or EXCLUSIVE, got {pricing_mode!r}")

    extended = to_money(unit_price * quantity)

    if pricing_mode == PricingMode.EXCLUSIVE:
        net = extended
        tax = to_money(net * rate / HUNDRED)
        gross = net + tax
    else:
        gross = extended
        tax = to_money(gross * rate / (HUNDRED + rate))
        net = gross - tax

    return LineTaxCalculation(
        net_amount=net,
        tax_amount=tax,
        gross_amount=gross,
        effective_rate=rate,
    )


def calculate_line(product, unit_price, quantity: int, policy: Optional[TaxPolicy] = None) -> LineTaxCalculation:
    """Resolve the product's rule under ``policy`` and calculate the line"""
    policy = policy or TaxPolicy.default()
    rate, classification = resolve_tax_rule(product, policy)
    calc = calculate_tax(unit_price, quantity, rate, policy.pricing_mode)
    return LineTaxCalculation(
        net_amount=calc.net_amount,
        tax_amount=calc.tax_amount,
        gross_amount=calc.gross_amount,
        effective_rate=calc.effective_rate,
        classification=classification,
    )


def aggregate_totals(line_calcs: Iterable[LineTaxCalculation], discount=ZERO) -> SaleTotals:
    """
    Combine line calculations into sale totals.

    The discount only reduces the final total; line taxes are left as
    calculated. A discount larger than the gross sum clamps the total to zero.
    """
    discount = _to_decimal(discount if discount is not None else ZERO, "discount")
    if discount < 0:
        raise InvalidInput(f"Discount {discount} cannot be negative")

    line_calcs: List[LineTaxCalculation] = list(line_calcs)
    subtotal = sum((c.net_amount for c in line_calcs), ZERO)
    tax_amount = sum((c.tax_amount for c in line_calcs), ZERO)
    gross_sum = sum((c.gross_amount for c in line_calcs), ZERO)

    discount = to_money(discount)
    if discount > gross_sum:
        logger.warning(f"Discount {discount} exceeds gross total {gross_sum}; total clamped to zero")

    total = max(ZERO, gross_sum - discount)

    return SaleTotals(
        subtotal=subtotal,
        tax_amount=tax_amount,
        gross_amount=gross_sum,
        discount_amount=discount,
        total_amount=total,
    )
