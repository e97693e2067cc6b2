"""
Module: settlement_engines.settlement
Responsibility:
    Aggregate a trip's expenses into per-participant paid/owed/net
    summaries for one currency, verify that net balances sum to zero, and
    turn the balances into pairwise transfers.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Shares come exclusively from ``SplitCalculator.shares_for`` so the
    transfer breakdown can re-derive exactly the same numbers.

Invariants enforced:
    - Balance: sum(net) == 0 within
      ``participant_count * balance_tolerance_units_per_participant`` minor
      units, else BalanceInvariantViolation.
    - Currency independence: each run uses only the expenses of one
      currency; amounts are never mixed or converted.
    - Determinism: greedy matching breaks ties on the lexicographically
      smaller participant id; pairwise-net output is ordered by
      (from, to).

Failure modes:
    - BalanceInvariantViolation when shares do not reconcile. This is an
      engine defect; the computation is discarded.
    - Errors from SplitCalculator propagate unchanged.

Usage:
    from settlement_engines.settlement import SettlementCalculator
    from settlement_kernel.domain.values import Currency

    calculator = SettlementCalculator()
    result = calculator.calculate("trip-1", expenses, Currency("USD"))
    for transfer in result.transfers:
        print(transfer.from_participant, "->", transfer.to_participant, transfer.amount)

Greedy matching is not guaranteed to find the globally smallest number of
transfers. It finishes in at most N-1 transfers and O(N log N) time.
"""

from __future__ import annotations

import heapq
import time
from collections.abc import Iterable, Sequence

from settlement_engines.split import SplitCalculator
from settlement_engines.tracer import traced_engine
from settlement_kernel.domain.expense import Expense, ParticipantId
from settlement_kernel.domain.settlement import (
    MinimalTransfer,
    PersonSummary,
    SettlementResult,
    SettlementTransfer,
    TransferKey,
    TransferStatus,
    TransferStrategy,
)
from settlement_kernel.domain.values import Currency, Money
from settlement_kernel.exceptions import BalanceInvariantViolation
from settlement_kernel.logging_config import LogContext, get_logger

logger = get_logger("engines.settlement")


def _in_currency(expenses: Iterable[Expense], currency: Currency) -> list[Expense]:
    return [e for e in expenses if e.currency == currency]


class SettlementCalculator:
    """
    Compute balances and settlement transfers for a trip.

    Contract:
        Stateless between calls; instances only hold configuration.
    Guarantees:
        - Applying every returned transfer drives each participant's net
          balance to zero.
        - No transfer has a zero amount or the same sender and receiver.
    Non-goals:
        - Does not track settled status; see ``merge_transfer_statuses``.
        - Does not attempt flow-based exact minimization.
    """

    def __init__(
        self,
        split_calculator: SplitCalculator | None = None,
        balance_tolerance_units_per_participant: int = 1,
        default_strategy: TransferStrategy = TransferStrategy.GREEDY_MINIMAL,
    ):
        if balance_tolerance_units_per_participant < 0:
            raise ValueError("Tolerance units cannot be negative")
        self._splits = split_calculator or SplitCalculator()
        self._tolerance_units = balance_tolerance_units_per_participant
        self._default_strategy = default_strategy

    @classmethod
    def from_settings(cls, settings) -> SettlementCalculator:
        """Build from an ``EngineSettings``-shaped object."""
        return cls(
            split_calculator=SplitCalculator.from_settings(settings),
            balance_tolerance_units_per_participant=settings.balance_tolerance_units_per_participant,
            default_strategy=TransferStrategy(settings.transfer_strategy),
        )

    @property
    def split_calculator(self) -> SplitCalculator:
        return self._splits

    # ------------------------------------------------------------------
    # Summaries
    # ------------------------------------------------------------------

    def person_summaries(
        self,
        expenses: Sequence[Expense],
        currency: Currency,
        trip_id: str | None = None,
    ) -> tuple[PersonSummary, ...]:
        """
        Paid, owed and net per participant, in order of first appearance.

        Raises:
            BalanceInvariantViolation: If net balances do not sum to zero
                within tolerance.
        """
        paid: dict[ParticipantId, int] = {}
        owed: dict[ParticipantId, int] = {}

        for expense in _in_currency(expenses, currency):
            paid.setdefault(expense.payer, 0)
            owed.setdefault(expense.payer, 0)
            paid[expense.payer] += expense.amount.to_minor_units()
            for pid, share in self._splits.shares_for(expense).items():
                paid.setdefault(pid, 0)
                owed.setdefault(pid, 0)
                owed[pid] += share.to_minor_units()

        net_total = sum(paid[pid] - owed[pid] for pid in paid)
        tolerance = len(paid) * self._tolerance_units
        if abs(net_total) > tolerance:
            logger.error("balance_invariant_violated", extra={
                "net_total_units": net_total,
                "tolerance_units": tolerance,
                "participant_count": len(paid),
            })
            raise BalanceInvariantViolation(
                trip_id=trip_id,
                total=str(Money.from_minor_units(net_total, currency).amount),
                tolerance=str(Money.from_minor_units(tolerance, currency).amount),
                currency=currency.code,
            )

        return tuple(
            PersonSummary(
                participant_id=pid,
                total_paid=Money.from_minor_units(paid[pid], currency),
                total_owed=Money.from_minor_units(owed[pid], currency),
                net=Money.from_minor_units(paid[pid] - owed[pid], currency),
            )
            for pid in paid
        )

    # ------------------------------------------------------------------
    # Transfer strategies
    # ------------------------------------------------------------------

    def minimal_transfers(
        self,
        summaries: Sequence[PersonSummary],
    ) -> tuple[SettlementTransfer, ...]:
        """
        Greedy largest-debtor / largest-creditor matching.

        Heap entries are ``(-outstanding_units, participant_id)`` so the
        largest magnitude pops first and equal magnitudes pop in id order.
        """
        if not summaries:
            return ()
        currency = summaries[0].net.currency

        debtors: list[tuple[int, ParticipantId]] = []
        creditors: list[tuple[int, ParticipantId]] = []
        for summary in summaries:
            units = summary.net.to_minor_units()
            if units < 0:
                debtors.append((units, summary.participant_id))
            elif units > 0:
                creditors.append((-units, summary.participant_id))
        heapq.heapify(debtors)
        heapq.heapify(creditors)

        transfers: list[SettlementTransfer] = []
        while debtors and creditors:
            debt, debtor = heapq.heappop(debtors)
            credit, creditor = heapq.heappop(creditors)
            units = min(-debt, -credit)
            transfers.append(
                SettlementTransfer(debtor, creditor, Money.from_minor_units(units, currency))
            )
            if -debt > units:
                heapq.heappush(debtors, (debt + units, debtor))
            if -credit > units:
                heapq.heappush(creditors, (credit + units, creditor))

        return tuple(transfers)

    def pairwise_net_transfers(
        self,
        expenses: Sequence[Expense],
        currency: Currency,
    ) -> tuple[SettlementTransfer, ...]:
        """
        Each participant repays each payer their share; opposite debts
        between the same two people cancel out.
        """
        owes: dict[tuple[ParticipantId, ParticipantId], int] = {}
        for expense in _in_currency(expenses, currency):
            for pid, share in self._splits.shares_for(expense).items():
                if pid == expense.payer:
                    continue
                key = (pid, expense.payer)
                owes[key] = owes.get(key, 0) + share.to_minor_units()

        transfers: list[SettlementTransfer] = []
        seen: set[frozenset[ParticipantId]] = set()
        for debtor, creditor in sorted(owes):
            pair = frozenset((debtor, creditor))
            if pair in seen:
                continue
            seen.add(pair)
            units = owes.get((debtor, creditor), 0) - owes.get((creditor, debtor), 0)
            if units > 0:
                transfers.append(
                    SettlementTransfer(debtor, creditor, Money.from_minor_units(units, currency))
                )
            elif units < 0:
                transfers.append(
                    SettlementTransfer(creditor, debtor, Money.from_minor_units(-units, currency))
                )

        return tuple(sorted(transfers, key=lambda t: (t.from_participant, t.to_participant)))

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    @traced_engine("settlement", "1.0", fingerprint_fields=("trip_id", "expenses", "currency", "strategy"))
    def calculate(
        self,
        trip_id: str | None,
        expenses: Sequence[Expense],
        currency: Currency | str,
        strategy: TransferStrategy | None = None,
    ) -> SettlementResult:
        """
        Settle one currency of a trip.

        Args:
            trip_id: Trip identifier, used for logging and error context.
            expenses: All trip expenses; other currencies are ignored.
            currency: Currency to settle.
            strategy: Transfer strategy; defaults to the engine default.

        Returns:
            SettlementResult with summaries and transfers.
        """
        if isinstance(currency, str):
            currency = Currency(currency)
        strategy = strategy or self._default_strategy

        with LogContext.bind(trip_id=trip_id, currency=currency.code):
            t0 = time.monotonic()
            selected = _in_currency(expenses, currency)
            logger.info("settlement_started", extra={
                "expense_count": len(selected),
                "strategy": strategy.value,
            })

            summaries = self.person_summaries(selected, currency, trip_id=trip_id)
            match strategy:
                case TransferStrategy.GREEDY_MINIMAL:
                    transfers = self.minimal_transfers(summaries)
                case TransferStrategy.PAIRWISE_NET:
                    transfers = self.pairwise_net_transfers(selected, currency)
                case _:
                    logger.error("settlement_unknown_strategy", extra={"strategy": str(strategy)})
                    raise ValueError(f"Unknown transfer strategy: {strategy}")

            result = SettlementResult(
                trip_id=trip_id,
                currency=currency,
                strategy=strategy,
                summaries=summaries,
                transfers=transfers,
            )

            duration_ms = round((time.monotonic() - t0) * 1000, 2)
            logger.info("settlement_completed", extra={
                "participant_count": len(summaries),
                "transfer_count": len(transfers),
                "total_transferred": str(result.total_transferred.amount),
                "duration_ms": duration_ms,
            })
            return result

    def calculate_all(
        self,
        trip_id: str | None,
        expenses: Sequence[Expense],
        strategy: TransferStrategy | None = None,
    ) -> tuple[SettlementResult, ...]:
        """One independent settlement per currency, ordered by currency code."""
        codes = sorted({e.currency.code for e in expenses})
        logger.debug("settlement_currencies", extra={"currencies": codes})
        return tuple(
            self.calculate(trip_id, expenses, Currency(code), strategy) for code in codes
        )


def merge_transfer_statuses(
    transfers: Iterable[SettlementTransfer],
    statuses: Iterable[TransferStatus],
) -> tuple[MinimalTransfer, ...]:
    """
    Attach externally stored settled flags to freshly computed transfers.

    Statuses are matched on ``(from, to, currency)``. Statuses without a
    matching transfer are stale and dropped; transfers without a status are
    unsettled. Nothing is mutated.
    """
    by_key: dict[TransferKey, TransferStatus] = {}
    for status in statuses:
        by_key[status.key] = status

    merged: list[MinimalTransfer] = []
    for transfer in transfers:
        status = by_key.pop(transfer.key, None)
        if status is None:
            merged.append(MinimalTransfer(transfer))
        else:
            merged.append(MinimalTransfer(transfer, settled=status.settled, settled_at=status.settled_at))

    if by_key:
        logger.debug("transfer_statuses_stale", extra={
            "stale_keys": [list(key) for key in sorted(by_key)],
        })
    return tuple(merged)
