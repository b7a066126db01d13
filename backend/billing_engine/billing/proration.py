"""Proration of plan changes within the current billing cycle."""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from billing_engine.billing.money import to_money


@dataclass(frozen=True)
class ProrationQuote:
    """Result of pricing a plan change.

    A positive ``charge`` is billed immediately; a negative one is a credit
    carried into the next cycle invoice.
    """

    old_price: Decimal
    new_price: Decimal
    days_remaining: int
    days_in_cycle: int
    charge: Decimal

    @property
    def is_credit(self) -> bool:
        return self.charge < 0


def days_remaining_in_cycle(effective: date, next_billing: date) -> int:
    """Whole days from ``effective`` up to ``next_billing``, never negative."""
    return max((next_billing - effective).days, 0)


def compute_proration(
    old_price: Decimal,
    new_price: Decimal,
    days_remaining: int,
    days_in_cycle: int = 30,
) -> ProrationQuote:
    """``(new - old) * remaining / cycle``, rounded half-up to cents.

    ``ROUND_HALF_UP`` rounds away from zero, so an upgrade and the matching
    downgrade give the same magnitude with opposite signs.
    """
    if days_in_cycle <= 0:
        raise ValueError(f"days_in_cycle must be positive, got {days_in_cycle}")
    remaining = min(max(days_remaining, 0), days_in_cycle)
    difference = Decimal(new_price) - Decimal(old_price)
    charge = to_money(difference * remaining / Decimal(days_in_cycle))
    return ProrationQuote(
        old_price=to_money(old_price),
        new_price=to_money(new_price),
        days_remaining=remaining,
        days_in_cycle=days_in_cycle,
        charge=charge,
    )
