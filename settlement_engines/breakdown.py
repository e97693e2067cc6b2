"""
Module: settlement_engines.breakdown
Responsibility:
    Explain a single transfer: which expenses created the debt between its
    two participants and by how much.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Shares come from the same ``SplitCalculator.shares_for`` the settlement
    calculator used, so an explanation can never disagree with the numbers
    that produced the transfer.

Invariants enforced:
    - ``net_contribution`` is the direct debt between the pair created by
      one expense: ``+from_owes`` when ``to`` paid, ``-to_owes`` when
      ``from`` paid, zero when someone else paid.
    - ``sum(net_contribution) + indirect_amount == transfer.amount``.
      ``indirect_amount`` is zero for pairwise-net transfers; for greedy
      transfers it is the part routed through other participants.
    - Entries are ordered by ``|net_contribution|`` descending; equal
      magnitudes keep input order.

Usage:
    calculator = TransferBreakdownCalculator.for_settlement(settlement_calculator)
    # or TransferBreakdownCalculator.from_settings(get_active_config())
    breakdown = calculator.breakdown(result.transfers[0], expenses)
    for entry in breakdown.entries:
        print(entry.expense.description, entry.net_contribution, entry.explanation)
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from settlement_engines.settlement import SettlementCalculator
from settlement_engines.split import SplitCalculator
from settlement_engines.tracer import traced_engine
from settlement_kernel.domain.expense import Expense
from settlement_kernel.domain.settlement import MinimalTransfer, SettlementTransfer
from settlement_kernel.domain.values import Money
from settlement_kernel.logging_config import LogContext, get_logger

logger = get_logger("engines.breakdown")


@dataclass(frozen=True)
class ExpenseBreakdown:
    """One expense's effect on a transfer."""

    expense: Expense
    from_paid: Money
    from_owes: Money
    to_paid: Money
    to_owes: Money
    net_contribution: Money
    explanation: str


@dataclass(frozen=True)
class TransferBreakdown:
    transfer: SettlementTransfer
    entries: tuple[ExpenseBreakdown, ...]
    total_contribution: Money
    indirect_amount: Money

    @property
    def is_fully_direct(self) -> bool:
        """True when the related expenses alone account for the amount."""
        return self.indirect_amount.is_zero


def _explain(contribution: Money) -> str:
    if contribution.is_positive:
        return f"Contributes {contribution} to transfer"
    if contribution.is_negative:
        return f"Reduces transfer by {abs(contribution)}"
    return "No net effect on transfer"


class TransferBreakdownCalculator:
    """Re-derives per-expense contributions behind a transfer."""

    def __init__(self, split_calculator: SplitCalculator | None = None):
        self._splits = split_calculator or SplitCalculator()

    @classmethod
    def from_settings(cls, settings) -> TransferBreakdownCalculator:
        """Build from an ``EngineSettings``-shaped object."""
        return cls(split_calculator=SplitCalculator.from_settings(settings))

    @classmethod
    def for_settlement(cls, calculator: SettlementCalculator) -> TransferBreakdownCalculator:
        """Share the split rules of the calculator that produced the transfers."""
        return cls(split_calculator=calculator.split_calculator)

    @property
    def split_calculator(self) -> SplitCalculator:
        return self._splits

    @traced_engine("transfer_breakdown", "1.0", fingerprint_fields=("transfer", "expenses"))
    def breakdown(
        self,
        transfer: SettlementTransfer | MinimalTransfer,
        expenses: Sequence[Expense],
    ) -> TransferBreakdown:
        if isinstance(transfer, MinimalTransfer):
            transfer = transfer.transfer
        debtor = transfer.from_participant
        creditor = transfer.to_participant
        currency = transfer.currency
        zero = Money.zero(currency)

        with LogContext.bind(currency=currency.code):
            logger.info("transfer_breakdown_started", extra={
                "from_participant": debtor,
                "to_participant": creditor,
                "amount": str(transfer.amount.amount),
            })

            entries: list[ExpenseBreakdown] = []
            for expense in expenses:
                if expense.currency != currency:
                    continue
                if not (expense.involves(debtor) or expense.involves(creditor)):
                    continue

                shares = self._splits.shares_for(expense)
                from_paid = expense.amount if expense.payer == debtor else zero
                to_paid = expense.amount if expense.payer == creditor else zero
                from_owes = shares.get(debtor, zero)
                to_owes = shares.get(creditor, zero)

                if expense.payer == creditor:
                    contribution = from_owes
                elif expense.payer == debtor:
                    contribution = -to_owes
                else:
                    contribution = zero

                entries.append(ExpenseBreakdown(
                    expense=expense,
                    from_paid=from_paid,
                    from_owes=from_owes,
                    to_paid=to_paid,
                    to_owes=to_owes,
                    net_contribution=contribution,
                    explanation=_explain(contribution),
                ))

            # Stable even with reverse=True: equal magnitudes keep input order
            entries.sort(key=lambda e: abs(e.net_contribution.amount), reverse=True)
            total = Money.sum((e.net_contribution for e in entries), currency)
            indirect = transfer.amount - total

            logger.info("transfer_breakdown_completed", extra={
                "entry_count": len(entries),
                "total_contribution": str(total.amount),
                "indirect_amount": str(indirect.amount),
            })
            return TransferBreakdown(
                transfer=transfer,
                entries=tuple(entries),
                total_contribution=total,
                indirect_amount=indirect,
            )
