"""
Module: settlement_engines
Responsibility:
    Package entrypoint that re-exports the public symbols of the pure
    calculation engines. This is the canonical import surface for callers.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import settlement_kernel (and sibling engine modules).
    MUST NOT read configuration files; callers pass settings in through
    ``from_settings`` constructors.

Invariants enforced:
    - Purity: engines never read the clock, files or the network.
    - Decimal-only arithmetic: money is Money over Decimal, shares are
      computed in integer minor units; floats are rejected.
    - Determinism: identical inputs in identical order always produce
      identical outputs.

Audit relevance:
    Every engine invocation is traced via the ``@traced_engine`` decorator
    (see ``settlement_engines.tracer``), emitting SETTLEMENT_ENGINE_TRACE
    log records with engine name, version, input fingerprint and duration.

Usage:
    from settlement_engines import SettlementCalculator, TransferBreakdownCalculator

    calculator = SettlementCalculator()
    for result in calculator.calculate_all("trip-1", expenses):
        ...
"""

from settlement_engines.breakdown import (
    ExpenseBreakdown,
    TransferBreakdown,
    TransferBreakdownCalculator,
)
from settlement_engines.itemized import (
    ItemizedAllocationEngine,
    ItemizedAllocationResult,
)
from settlement_engines.settlement import (
    SettlementCalculator,
    merge_transfer_statuses,
)
from settlement_engines.split import (
    SplitCalculator,
    distribute_proportionally,
    split_equal,
    split_weighted,
)
from settlement_engines.tracer import compute_input_fingerprint, traced_engine
from settlement_engines.validation import (
    SettlementValidationReport,
    SettlementValidator,
    ValidationIssue,
)

__all__ = [
    # Split
    "split_equal",
    "split_weighted",
    "distribute_proportionally",
    "SplitCalculator",
    # Itemized
    "ItemizedAllocationEngine",
    "ItemizedAllocationResult",
    # Settlement
    "SettlementCalculator",
    "merge_transfer_statuses",
    # Validation
    "SettlementValidator",
    "SettlementValidationReport",
    "ValidationIssue",
    # Breakdown
    "TransferBreakdownCalculator",
    "TransferBreakdown",
    "ExpenseBreakdown",
    # Tracing
    "traced_engine",
    "compute_input_fingerprint",
]
