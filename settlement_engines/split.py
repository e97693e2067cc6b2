"""
Module: settlement_engines.split
Responsibility:
    Compute each participant's exact share of an expense for equal and
    weighted splits, and route itemized expenses to the itemized engine.
    ``SplitCalculator.shares_for`` is the single share routine used by both
    settlement and transfer breakdown.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import settlement_kernel and sibling engine modules.

Invariants enforced:
    - Conservation: shares always sum to the expense amount exactly.
    - Equal shares differ by at most one minor unit; the extra units go to
      the first participants in insertion order.
    - Weighted shares are floored for all but the last participant, who
      takes the residual.
    - Determinism: same input order, bit-identical output.

Failure modes:
    - DivisionByZeroError on zero participants or zero total weight.
    - ValidationError on negative amounts, negative weights or duplicate
      participants.
    - ValueError if the amount is not a whole number of minor units.

Usage:
    from settlement_engines.split import split_equal, SplitCalculator
    from settlement_kernel.domain.values import Money

    shares = split_equal(Money.of("100.00", "USD"), ["alice", "bob", "carol"])
    # {"alice": 33.34 USD, "bob": 33.33 USD, "carol": 33.33 USD}
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from decimal import Decimal

from settlement_engines.itemized import ItemizedAllocationEngine
from settlement_engines.tracer import traced_engine
from settlement_kernel.domain.expense import (
    Expense,
    ParticipantId,
    ParticipantWeights,
    SplitType,
)
from settlement_kernel.domain.rounding import (
    equal_units,
    proportional_units,
    weighted_units,
)
from settlement_kernel.domain.values import Money
from settlement_kernel.exceptions import ValidationError
from settlement_kernel.logging_config import get_logger

logger = get_logger("engines.split")

Shares = dict[ParticipantId, Money]


def _as_weights(
    participants: ParticipantWeights | Mapping[ParticipantId, Decimal | int | str],
) -> ParticipantWeights:
    if isinstance(participants, ParticipantWeights):
        return participants
    return ParticipantWeights.of(participants)


def _check_amount(amount: Money) -> int:
    if amount.is_negative:
        raise ValidationError("amount", f"cannot be negative, got {amount}")
    return amount.to_minor_units()


@traced_engine("split_equal", "1.0", fingerprint_fields=("amount", "participants"))
def split_equal(
    amount: Money,
    participants: Sequence[ParticipantId] | ParticipantWeights,
) -> Shares:
    """
    Split ``amount`` evenly, handing leftover minor units to the first
    participants.

    Weights, if a ParticipantWeights is passed, are ignored; only the
    participant order matters.
    """
    ids = participants.ids if isinstance(participants, ParticipantWeights) else tuple(participants)
    if len(set(ids)) != len(ids):
        raise ValidationError("participants", f"duplicate participants in {ids}")
    units = _check_amount(amount)
    parts = equal_units(units, len(ids))
    return {pid: Money.from_minor_units(part, amount.currency) for pid, part in zip(ids, parts)}


@traced_engine("split_weighted", "1.0", fingerprint_fields=("amount", "weights"))
def split_weighted(
    amount: Money,
    weights: ParticipantWeights | Mapping[ParticipantId, Decimal | int | str],
) -> Shares:
    """
    Split ``amount`` by weight: ``floor(amount * w / total)`` for every
    participant but the last, who gets ``amount - sum(previous)``.
    """
    weights = _as_weights(weights)
    units = _check_amount(amount)
    parts = weighted_units(units, [w for _, w in weights.items()])
    return {pid: Money.from_minor_units(part, amount.currency) for pid, part in zip(weights.ids, parts)}


def distribute_proportionally(
    amount: Money,
    bases: Mapping[ParticipantId, Money | Decimal | int],
) -> Shares:
    """
    Spread ``amount`` in proportion to ``bases`` with remainder distribution.

    Used for extras (tax, tip, fees, discounts) where every participant with
    a non-zero base should receive part of the leftover units. All-zero
    bases fall back to an even split.
    """
    ids = list(bases)
    raw = [b.amount if isinstance(b, Money) else Decimal(b) for b in bases.values()]
    if any(b < 0 for b in raw):
        raise ValidationError("bases", "proportional bases cannot be negative")
    units = _check_amount(amount)
    parts = proportional_units(units, raw)
    return {pid: Money.from_minor_units(part, amount.currency) for pid, part in zip(ids, parts)}


class SplitCalculator:
    """
    Per-expense share routine shared by settlement and breakdown.

    Contract:
        ``shares_for(expense)`` returns an ordered participant -> Money map
        that sums to ``expense.amount``. Itemized expenses use their
        persisted ``participant_amounts`` when present so that settlement
        never disagrees with what was stored on creation.
    Non-goals:
        - Does not cache; the same expense is recomputed on every call.
    """

    def __init__(self, itemized_engine: ItemizedAllocationEngine | None = None):
        self._itemized = itemized_engine or ItemizedAllocationEngine()

    @classmethod
    def from_settings(cls, settings) -> SplitCalculator:
        return cls(itemized_engine=ItemizedAllocationEngine.from_settings(settings))

    @property
    def itemized_engine(self) -> ItemizedAllocationEngine:
        return self._itemized

    def shares_for(self, expense: Expense) -> Shares:
        match expense.split_type:
            case SplitType.EQUAL:
                return split_equal(expense.amount, expense.participants)
            case SplitType.WEIGHTED:
                return split_weighted(expense.amount, expense.participants)
            case SplitType.ITEMIZED:
                persisted = expense.persisted_amounts
                if persisted is not None:
                    logger.debug("itemized_shares_from_persisted", extra={
                        "expense_id": expense.id,
                        "participant_count": len(persisted),
                    })
                    return persisted
                return dict(self._itemized.allocate(expense).participant_amounts)
            case _:
                raise ValidationError("split_type", f"unknown split type {expense.split_type!r}")
