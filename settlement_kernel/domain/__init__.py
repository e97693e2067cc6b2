"""
Pure domain layer.

This module contains immutable value objects and records with NO
dependencies on:
- Persistence
- Time/clock
- I/O

All domain objects are immutable and deterministic.
"""

from settlement_kernel.domain.currency import CurrencyInfo, CurrencyRegistry
from settlement_kernel.domain.expense import (
    AllocationRule,
    DiscountExtra,
    DiscountTiming,
    Expense,
    ExtraMode,
    Extras,
    ExtrasSplit,
    FeeExtra,
    ItemAssignment,
    ItemContribution,
    LineItem,
    ParticipantBreakdown,
    ParticipantId,
    ParticipantWeights,
    PercentBase,
    RemainderRecipient,
    SplitType,
    TaxExtra,
    TaxInclusion,
    TipExtra,
)
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

__all__ = [
    # Value objects
    "Currency",
    "Money",
    "CurrencyInfo",
    "CurrencyRegistry",
    # Expenses
    "ParticipantId",
    "ParticipantWeights",
    "SplitType",
    "Expense",
    "LineItem",
    "ItemAssignment",
    # Extras
    "ExtraMode",
    "PercentBase",
    "TaxInclusion",
    "DiscountTiming",
    "TaxExtra",
    "TipExtra",
    "FeeExtra",
    "DiscountExtra",
    "Extras",
    "ExtrasSplit",
    "RemainderRecipient",
    "AllocationRule",
    # Audit trail
    "ItemContribution",
    "ParticipantBreakdown",
    # Settlement
    "TransferStrategy",
    "TransferKey",
    "PersonSummary",
    "SettlementTransfer",
    "TransferStatus",
    "MinimalTransfer",
    "SettlementResult",
]
