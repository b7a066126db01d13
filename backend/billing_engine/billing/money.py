"""Monetary arithmetic — every amount is a Decimal rounded half-up to cents."""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
HUNDRED = Decimal("100")


def to_money(value: Decimal | int | float | str) -> Decimal:
    """Round to the currency's minor unit using round-half-up.

    Floats are routed through ``str`` so ``10.005`` stays ``10.005``.
    """
    if isinstance(value, float):
        value = str(value)
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class InvoiceAmounts:
    """Tax breakdown of one invoice."""

    subtotal: Decimal
    tax_rate: Decimal
    tax_amount: Decimal
    total: Decimal


def compute_invoice_amounts(subtotal: Decimal, tax_rate: Decimal) -> InvoiceAmounts:
    """Split a subtotal into tax and total.

    The subtotal is rounded to cents first, which makes
    ``total == round(subtotal * (1 + tax_rate / 100))`` hold exactly for the
    stored subtotal.
    """
    if tax_rate < 0:
        raise ValueError(f"tax rate must be non-negative, got {tax_rate}")
    rounded = to_money(subtotal)
    if rounded < 0:
        raise ValueError(f"subtotal must be non-negative, got {subtotal}")
    tax_amount = to_money(rounded * tax_rate / HUNDRED)
    return InvoiceAmounts(
        subtotal=rounded,
        tax_rate=Decimal(tax_rate).quantize(CENT),
        tax_amount=tax_amount,
        total=rounded + tax_amount,
    )
