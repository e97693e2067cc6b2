"""
Module: settlement_engines.itemized
Responsibility:
    Allocate an itemized (receipt) expense across participants: per-item
    ownership, staged extras (discounts, tax, fees, tip) distributed over
    participants, reconciliation against the expense amount, and a full
    per-participant audit trail.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import settlement_kernel and sibling engine modules.

Invariants enforced:
    - All arithmetic runs on integer minor units; every extra total is
      rounded half-up to minor units once, at the point it is computed.
    - Extras are computed in a fixed order: before-tax discounts, tax,
      fees (list order), tip, after-tax discounts. A percentage extra may
      only reference a receipt stage that exists when it is computed.
    - Conservation: the returned participant amounts sum to the expense
      amount exactly. A residual up to
      ``base_tolerance_units + tolerance_units_per_extra * extras.count``
      minor units is assigned to the allocation rule's remainder recipient.
    - Inclusive tax is recorded in the breakdown but never added.

Failure modes:
    - ValidationError on a non-itemized expense, an extra computed from a
      stage that does not exist yet, prices that are not whole minor units,
      or discounts larger than the subtotal they reduce.
    - ReconciliationError when the computed total drifts beyond tolerance.
      The result is discarded, never returned.

Audit relevance:
    ``ItemizedAllocationResult.apply_to(expense)`` returns the expense with
    ``participant_amounts`` and ``participant_breakdown`` filled in; those are
    the canonical record the persistence layer stores on creation or edit.

Usage:
    from settlement_engines.itemized import ItemizedAllocationEngine

    engine = ItemizedAllocationEngine()
    result = engine.allocate(expense)
    stored = result.apply_to(expense)
"""

from __future__ import annotations

import time
from dataclasses import dataclass, replace
from decimal import Decimal

from settlement_engines.tracer import traced_engine
from settlement_kernel.domain.expense import (
    AllocationRule,
    DiscountExtra,
    DiscountTiming,
    Expense,
    ExtraMode,
    Extras,
    ExtrasSplit,
    FeeExtra,
    ItemContribution,
    ParticipantBreakdown,
    ParticipantId,
    PercentBase,
    RemainderRecipient,
    SplitType,
    TaxExtra,
    TaxInclusion,
    TipExtra,
)
from settlement_kernel.domain.rounding import (
    equal_units,
    proportional_units,
    safe_divide,
    to_minor_units_rounded,
    weighted_units,
)
from settlement_kernel.domain.values import Currency, Money
from settlement_kernel.exceptions import ReconciliationError, ValidationError
from settlement_kernel.logging_config import LogContext, get_logger

logger = get_logger("engines.itemized")

_ALL_BASES = tuple(PercentBase)

# Stages a percentage extra may be computed against, by its position in the
# extras order.
_ALLOWED_BASES: dict[str, tuple[PercentBase, ...]] = {
    "discount_before_tax": (PercentBase.ITEM_SUBTOTAL,),
    "tax": (PercentBase.ITEM_SUBTOTAL, PercentBase.POST_DISCOUNT_SUBTOTAL),
    "fee": (
        PercentBase.ITEM_SUBTOTAL,
        PercentBase.POST_DISCOUNT_SUBTOTAL,
        PercentBase.POST_TAX_SUBTOTAL,
    ),
    "tip": _ALL_BASES,
    "discount_after_tax": _ALL_BASES,
}

Extra = TaxExtra | TipExtra | FeeExtra | DiscountExtra


@dataclass(frozen=True)
class ItemizedAllocationResult:
    """
    Outcome of one itemized allocation.

    Contract:
        Frozen result; ``participant_amounts`` is ordered by first
        appearance of each participant across the line items.
    Guarantees:
        - ``sum(participant_amounts) == expense.amount`` exactly.
        - ``|rounding_residual| <= tolerance``.
    Non-goals:
        - Does not persist anything; see ``apply_to``.
    """

    expense_id: str
    currency: Currency
    participant_amounts: tuple[tuple[ParticipantId, Money], ...]
    breakdowns: tuple[ParticipantBreakdown, ...]
    items_subtotal: Money
    extras_totals: tuple[tuple[str, Money], ...]
    rounding_residual: Money
    residual_recipient: ParticipantId
    tolerance: Money
    warnings: tuple[str, ...] = ()

    @property
    def amounts(self) -> dict[ParticipantId, Money]:
        return dict(self.participant_amounts)

    @property
    def total(self) -> Money:
        return Money.sum((amount for _, amount in self.participant_amounts), self.currency)

    @property
    def has_warnings(self) -> bool:
        return bool(self.warnings)

    def breakdown_for(self, participant_id: ParticipantId) -> ParticipantBreakdown | None:
        for breakdown in self.breakdowns:
            if breakdown.participant_id == participant_id:
                return breakdown
        return None

    def apply_to(self, expense: Expense) -> Expense:
        """Return ``expense`` carrying this result as its canonical amounts."""
        if expense.id != self.expense_id:
            raise ValidationError(
                "expense", f"result belongs to {self.expense_id}, not {expense.id}"
            )
        return replace(
            expense,
            participant_amounts=self.participant_amounts,
            participant_breakdown=self.breakdowns,
        )


@dataclass
class _Ledger:
    """Mutable per-participant minor-unit accumulator used during one run."""

    order: list[ParticipantId]
    items: dict[ParticipantId, int]
    contributions: dict[ParticipantId, list[ItemContribution]]

    def bases(self) -> list[int]:
        return [self.items[pid] for pid in self.order]


class ItemizedAllocationEngine:
    """
    Allocate itemized expenses with staged extras.

    Contract:
        Pure and deterministic. No I/O, no clock access.
    Guarantees:
        - Extras are spread ``PROPORTIONAL`` to each participant's item
          subtotal (leftover units to non-zero bases in order) or ``EVEN``
          (leftover units to the first participants).
        - The reconciliation residual goes to the first listed participant,
          the participant with the largest total, or the payer.
    Non-goals:
        - Does not decide whether persisted amounts are stale; callers
          re-run the engine on creation and edit only.
    """

    def __init__(
        self,
        base_tolerance_units: int = 1,
        tolerance_units_per_extra: int = 1,
        default_rule: AllocationRule | None = None,
    ):
        if base_tolerance_units < 0 or tolerance_units_per_extra < 0:
            raise ValueError("Tolerance units cannot be negative")
        self._base_tolerance_units = base_tolerance_units
        self._tolerance_units_per_extra = tolerance_units_per_extra
        self._default_rule = default_rule or AllocationRule()

    @classmethod
    def from_settings(cls, settings) -> ItemizedAllocationEngine:
        """Build from an ``EngineSettings``-shaped object."""
        return cls(
            base_tolerance_units=settings.itemized_base_tolerance_units,
            tolerance_units_per_extra=settings.itemized_tolerance_units_per_extra,
            default_rule=AllocationRule(
                extras_split=ExtrasSplit(settings.extras_split),
                remainder_to=RemainderRecipient(settings.remainder_to),
            ),
        )

    def tolerance_units(self, extras: Extras | None) -> int:
        count = extras.count if extras is not None else 0
        return self._base_tolerance_units + self._tolerance_units_per_extra * count

    @traced_engine("itemized_allocation", "1.0", fingerprint_fields=("expense", "allocation"))
    def allocate(
        self,
        expense: Expense,
        allocation: AllocationRule | None = None,
    ) -> ItemizedAllocationResult:
        """
        Allocate an itemized expense.

        Args:
            expense: An ITEMIZED expense with at least one line item.
            allocation: Rule override; defaults to the expense's own rule,
                then to the engine default.

        Returns:
            ItemizedAllocationResult whose amounts sum to expense.amount.

        Raises:
            ValidationError: On invalid input (see module docstring).
            ReconciliationError: If the residual exceeds tolerance.
        """
        if expense.split_type != SplitType.ITEMIZED:
            raise ValidationError(
                "split_type", f"expected itemized expense, got {expense.split_type.value}"
            )
        rule = allocation or expense.allocation or self._default_rule
        extras = expense.extras or Extras()
        currency = expense.currency

        with LogContext.bind(
            trip_id=expense.trip_id, expense_id=expense.id, currency=currency.code
        ):
            t0 = time.monotonic()
            logger.info("itemized_allocation_started", extra={
                "amount": str(expense.amount.amount),
                "item_count": len(expense.items),
                "extras_count": extras.count,
                "extras_split": rule.extras_split.value,
                "remainder_to": rule.remainder_to.value,
            })

            _check_bases(extras)
            ledger = _split_items(expense)
            result = self._allocate_extras(expense, extras, rule, ledger)

            duration_ms = round((time.monotonic() - t0) * 1000, 2)
            logger.info("itemized_allocation_completed", extra={
                "participant_count": len(result.participant_amounts),
                "items_subtotal": str(result.items_subtotal.amount),
                "rounding_residual": str(result.rounding_residual.amount),
                "residual_recipient": result.residual_recipient,
                "warning_count": len(result.warnings),
                "duration_ms": duration_ms,
            })
            return result

    def _allocate_extras(
        self,
        expense: Expense,
        extras: Extras,
        rule: AllocationRule,
        ledger: _Ledger,
    ) -> ItemizedAllocationResult:
        currency = expense.currency
        order = ledger.order
        subtotal = sum(ledger.items.values())

        def spread(units: int) -> dict[ParticipantId, int]:
            if rule.extras_split == ExtrasSplit.EVEN:
                parts = equal_units(units, len(order))
            else:
                parts = proportional_units(units, ledger.bases())
            return dict(zip(order, parts))

        stages: dict[PercentBase, int] = {PercentBase.ITEM_SUBTOTAL: subtotal}
        extras_totals: list[tuple[str, Money]] = []

        def record(label: str, units: int) -> None:
            extras_totals.append((label, Money.from_minor_units(units, currency)))

        # 1. Before-tax discounts
        discount_units: dict[str, dict[ParticipantId, int]] = {}
        before_total = 0
        for discount in extras.discounts:
            if discount.timing == DiscountTiming.BEFORE_TAX:
                units = _extra_units(discount, stages, currency, f"discount[{discount.id}]")
                discount_units[discount.id] = spread(units)
                before_total += units
                record(f"discount:{discount.id}", units)
        stages[PercentBase.POST_DISCOUNT_SUBTOTAL] = _non_negative_stage(
            subtotal - before_total, "discounts", "before-tax discounts exceed the item subtotal"
        )

        # 2. Tax
        tax_units = 0
        included_units = 0
        if extras.tax is not None:
            units = _extra_units(extras.tax, stages, currency, "tax")
            if extras.tax.inclusion == TaxInclusion.INCLUSIVE:
                included_units = units
            else:
                tax_units = units
            record("tax", units)
        tax_shares = spread(tax_units)
        included_shares = spread(included_units)
        stages[PercentBase.POST_TAX_SUBTOTAL] = stages[PercentBase.POST_DISCOUNT_SUBTOTAL] + tax_units

        # 3. Fees, in list order
        fee_units: dict[str, dict[ParticipantId, int]] = {}
        fees_total = 0
        for fee in extras.fees:
            units = _extra_units(fee, stages, currency, f"fee[{fee.id}]")
            fee_units[fee.id] = spread(units)
            fees_total += units
            record(f"fee:{fee.id}", units)
        stages[PercentBase.POST_FEES_SUBTOTAL] = stages[PercentBase.POST_TAX_SUBTOTAL] + fees_total

        # 4. Tip
        tip_units = 0
        if extras.tip is not None:
            tip_units = _extra_units(extras.tip, stages, currency, "tip")
            record("tip", tip_units)
        tip_shares = spread(tip_units)

        # 5. After-tax discounts
        after_total = 0
        for discount in extras.discounts:
            if discount.timing == DiscountTiming.AFTER_TAX:
                units = _extra_units(discount, stages, currency, f"discount[{discount.id}]")
                discount_units[discount.id] = spread(units)
                after_total += units
                record(f"discount:{discount.id}", units)
        _non_negative_stage(
            stages[PercentBase.POST_FEES_SUBTOTAL] + tip_units - after_total,
            "discounts",
            "discounts exceed the receipt total",
        )

        totals: dict[ParticipantId, int] = {}
        for pid in order:
            totals[pid] = (
                ledger.items[pid]
                + tax_shares[pid]
                + sum(shares[pid] for shares in fee_units.values())
                + tip_shares[pid]
                - sum(shares[pid] for shares in discount_units.values())
            )

        expected = _exact_units(expense.amount, "amount")
        computed = sum(totals.values())
        residual = expected - computed
        tolerance = self.tolerance_units(extras)
        if abs(residual) > tolerance:
            logger.error("itemized_reconciliation_failed", extra={
                "expected": str(expense.amount.amount),
                "computed": str(Money.from_minor_units(computed, currency).amount),
                "residual_units": residual,
                "tolerance_units": tolerance,
            })
            raise ReconciliationError(
                expense_id=expense.id,
                expected=str(expense.amount.amount),
                actual=str(Money.from_minor_units(computed, currency).amount),
                tolerance=str(Money.from_minor_units(tolerance, currency).amount),
                currency=currency.code,
            )

        recipient = _residual_recipient(rule.remainder_to, order, totals, expense.payer)
        totals[recipient] += residual

        def money(units: int) -> Money:
            return Money.from_minor_units(units, currency)

        breakdowns = tuple(
            ParticipantBreakdown(
                participant_id=pid,
                items=tuple(ledger.contributions[pid]),
                items_subtotal=money(ledger.items[pid]),
                tax=money(tax_shares[pid]),
                included_tax=money(included_shares[pid]),
                tip=money(tip_shares[pid]),
                fees=tuple((fee.id, money(fee_units[fee.id][pid])) for fee in extras.fees),
                discounts=tuple(
                    (d.id, money(discount_units[d.id][pid])) for d in extras.discounts
                ),
                rounding_adjustment=money(residual if pid == recipient else 0),
                total=money(totals[pid]),
            )
            for pid in order
        )

        reported_tax = included_units if included_units else tax_units
        warnings = _advisory_warnings(expense, money(subtotal), money(reported_tax))

        return ItemizedAllocationResult(
            expense_id=expense.id,
            currency=currency,
            participant_amounts=tuple((pid, money(totals[pid])) for pid in order),
            breakdowns=breakdowns,
            items_subtotal=money(subtotal),
            extras_totals=tuple(extras_totals),
            rounding_residual=money(residual),
            residual_recipient=recipient,
            tolerance=money(tolerance),
            warnings=warnings,
        )


def _exact_units(value: Money, label: str) -> int:
    try:
        return value.to_minor_units()
    except ValueError as e:
        raise ValidationError(label, str(e)) from e


def _non_negative_stage(units: int, label: str, reason: str) -> int:
    if units < 0:
        raise ValidationError(label, reason)
    return units


def _check_bases(extras: Extras) -> None:
    """Reject percentage extras that reference a stage not yet computed."""
    checks: list[tuple[str, str, Extra]] = []
    for discount in extras.discounts:
        slot = "discount_before_tax" if discount.timing == DiscountTiming.BEFORE_TAX else "discount_after_tax"
        checks.append((slot, f"discount[{discount.id}]", discount))
    if extras.tax is not None:
        checks.append(("tax", "tax", extras.tax))
    checks.extend(("fee", f"fee[{fee.id}]", fee) for fee in extras.fees)
    if extras.tip is not None:
        checks.append(("tip", "tip", extras.tip))

    for slot, label, extra in checks:
        if extra.mode == ExtraMode.PERCENT and extra.base not in _ALLOWED_BASES[slot]:
            raise ValidationError(
                f"{label}.base",
                f"{extra.base.value} is not available when this extra is computed",
            )


def _split_items(expense: Expense) -> _Ledger:
    """Split every line item among its assignees in minor units."""
    ledger = _Ledger(order=[], items={}, contributions={})
    for item in expense.items:
        units = _exact_units(item.subtotal, f"item[{item.id}].subtotal")
        assignment = item.assignment
        if assignment.weights is not None:
            parts = weighted_units(units, [w for _, w in assignment.weights.items()])
        else:
            parts = equal_units(units, len(assignment.participants))

        for pid, part in zip(assignment.participants, parts):
            if pid not in ledger.items:
                ledger.order.append(pid)
                ledger.items[pid] = 0
                ledger.contributions[pid] = []
            ledger.items[pid] += part
            ledger.contributions[pid].append(
                ItemContribution(
                    item_id=item.id,
                    item_name=item.name,
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                    assignee_count=len(assignment.participants),
                    amount=Money.from_minor_units(part, expense.currency),
                )
            )
    return ledger


def _extra_units(
    extra: Extra,
    stages: dict[PercentBase, int],
    currency: Currency,
    label: str,
) -> int:
    """Total of one extra in minor units, rounded half-up once."""
    if extra.mode == ExtraMode.AMOUNT:
        return _exact_units(extra.amount, f"{label}.amount")

    base = Money.from_minor_units(stages[extra.base], currency).amount
    rate = extra.rate
    if isinstance(extra, TaxExtra) and extra.inclusion == TaxInclusion.INCLUSIVE:
        # Tax already contained in the base: base * r / (1 + r)
        return to_minor_units_rounded(safe_divide(base * rate, Decimal(1) + rate), currency)
    return to_minor_units_rounded(base * rate, currency)


def _residual_recipient(
    mode: RemainderRecipient,
    order: list[ParticipantId],
    totals: dict[ParticipantId, int],
    payer: ParticipantId,
) -> ParticipantId:
    match mode:
        case RemainderRecipient.LARGEST_SHARE:
            # max() keeps the first of equal totals
            return max(order, key=lambda pid: totals[pid])
        case RemainderRecipient.PAYER if payer in totals:
            return payer
        case _:
            return order[0]


def _advisory_warnings(expense: Expense, subtotal: Money, tax: Money) -> tuple[str, ...]:
    warnings: list[str] = []
    if expense.expected_subtotal is not None and expense.expected_subtotal.amount != subtotal.amount:
        warnings.append(
            f"Receipt subtotal {expense.expected_subtotal} differs from computed item subtotal {subtotal}"
        )
    if expense.expected_tax is not None and expense.expected_tax.amount != tax.amount:
        warnings.append(
            f"Receipt tax {expense.expected_tax} differs from computed tax {tax}"
        )
    for message in warnings:
        logger.warning("itemized_advisory_mismatch", extra={"detail": message})
    return tuple(warnings)
