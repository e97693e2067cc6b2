"""
Rounding -- currency-aware quantization and guarded division.

Every share the engines produce passes through one of these helpers, so
precision is always derived from the currency's minor unit rather than from
a hardcoded epsilon.
"""

from __future__ import annotations

from collections.abc import Sequence
from decimal import ROUND_HALF_UP, Decimal

from settlement_kernel.domain.values import Currency, Money
from settlement_kernel.exceptions import DivisionByZeroError


def safe_divide(numerator: Decimal | int, denominator: Decimal | int) -> Decimal:
    """
    Divide two exact numbers.

    Raises:
        DivisionByZeroError: If denominator is zero. Decimal would otherwise
            raise decimal.DivisionByZero or return Infinity under a
            non-trapping context.
    """
    if denominator == 0:
        raise DivisionByZeroError("safe_divide", f"{numerator} / 0")
    return Decimal(numerator) / Decimal(denominator)


def quantize_to_currency(
    value: Decimal,
    currency: Currency,
    rounding: str = ROUND_HALF_UP,
) -> Decimal:
    """Quantize a raw Decimal to the currency's minor unit."""
    return value.quantize(currency.minor_unit, rounding=rounding)


def to_minor_units_rounded(
    value: Decimal,
    currency: Currency,
    rounding: str = ROUND_HALF_UP,
) -> int:
    """
    Re-quantize an intermediate value (e.g. ``rate * subtotal``) to minor units.

    Unlike Money.to_minor_units this accepts inexact values; the rounding
    step is explicit at the call site.
    """
    scaled = value.scaleb(currency.decimal_places)
    return int(scaled.quantize(Decimal(1), rounding=rounding))


def floor_ratio_units(units: int, numerator: Decimal, denominator: Decimal) -> int:
    """
    ``floor(units * numerator / denominator)`` computed exactly.

    Weights may be fractional Decimals; both are turned into exact integer
    ratios so the floor never depends on the decimal context precision.
    """
    if denominator == 0:
        raise DivisionByZeroError("floor_ratio_units", "total weight is zero")
    num_n, num_d = Decimal(numerator).as_integer_ratio()
    den_n, den_d = Decimal(denominator).as_integer_ratio()
    return (units * num_n * den_d) // (num_d * den_n)


def minor_unit_tolerance(currency: Currency, units: int) -> Money:
    """Tolerance of ``units`` minor units expressed as Money."""
    return Money.from_minor_units(units, currency)


# ---------------------------------------------------------------------------
# Remainder distribution over integer minor units
# ---------------------------------------------------------------------------


def equal_units(units: int, count: int) -> list[int]:
    """
    Split ``units`` into ``count`` near-equal integer parts.

    The first ``units % count`` parts get one extra unit, so parts differ by
    at most one and always sum to ``units``.
    """
    if count <= 0:
        raise DivisionByZeroError("equal_units", "no participants to split between")
    base, remainder = divmod(units, count)
    return [base + 1 if i < remainder else base for i in range(count)]


def weighted_units(units: int, weights: Sequence[Decimal]) -> list[int]:
    """
    Floor every weighted part but the last; the last takes the residual.
    """
    total = sum(weights, Decimal(0))
    if not weights or total == 0:
        raise DivisionByZeroError("weighted_units", "total weight is zero")
    parts = [floor_ratio_units(units, w, total) for w in weights[:-1]]
    parts.append(units - sum(parts))
    return parts


def proportional_units(units: int, bases: Sequence[int | Decimal]) -> list[int]:
    """
    Spread ``units`` in proportion to ``bases`` without drift.

    Each part is floored, then leftover units are handed out one at a time,
    in order, to the entries with a non-zero base. All-zero bases fall back
    to ``equal_units``.
    """
    if not bases:
        raise DivisionByZeroError("proportional_units", "no participants to split between")
    total = sum((Decimal(b) for b in bases), Decimal(0))
    if total == 0:
        return equal_units(units, len(bases))
    parts = [floor_ratio_units(units, Decimal(b), total) for b in bases]
    leftover = units - sum(parts)
    eligible = [i for i, b in enumerate(bases) if b != 0]
    # floor() loses less than one unit per non-zero base
    for i in eligible[:leftover]:
        parts[i] += 1
    return parts
