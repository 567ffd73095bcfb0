"""
Inclusive tax split.

Totals already contain tax. With the rate in basis points the split is
pure integer arithmetic:

    subtotal = floor(total * 10000 / (10000 + bps))
    tax      = total - subtotal

which equals floor(total / (1 + percent / 100)) exactly, so subtotal + tax
always reproduces the total.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

BPS_DENOMINATOR = 10_000


@dataclass(frozen=True)
class TaxSplit:
    total: int
    subtotal: int
    tax: int
    rate_bps: int

    @property
    def rate_percent(self) -> float:
        return self.rate_bps / 100


def split_inclusive_tax(total: int, rate_bps: int) -> TaxSplit:
    if total < 0:
        raise ValueError("total must be non-negative")
    if rate_bps < 0:
        raise ValueError("tax rate must be non-negative")
    subtotal = (total * BPS_DENOMINATOR) // (BPS_DENOMINATOR + rate_bps)
    return TaxSplit(total=total, subtotal=subtotal, tax=total - subtotal, rate_bps=rate_bps)


def percent_to_bps(percent) -> int:
    """10 -> 1000, "8.25" -> 825. Rejects rates finer than a basis point."""
    bps = Decimal(str(percent)) * 100
    if bps != bps.to_integral_value():
        raise ValueError(f"Tax rate {percent}% is finer than one basis point")
    return int(bps)


def resolve_tax_rate_bps(store, default_bps: int) -> int:
    if store is None or store.tax_rate_bps is None:
        return default_bps
    return store.tax_rate_bps
