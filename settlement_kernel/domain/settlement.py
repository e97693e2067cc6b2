"""
Settlement -- balance summaries and transfer records.

Responsibility:
    Output records of a settlement run: per-participant summaries,
    immutable engine transfers, and the externally owned settled status
    that a persistence layer merges back in.

Architecture position:
    Kernel > Domain -- pure data, zero I/O. Produced by
    settlement_engines.settlement; read by the presentation layer.

Invariants enforced:
    - PersonSummary.net == total_paid - total_owed.
    - SettlementTransfer.amount > 0 and from_participant != to_participant.
    - Settled status lives in TransferStatus, never on the engine's
      SettlementTransfer. A MinimalTransfer is a read-only merge of both.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from settlement_kernel.domain.expense import ParticipantId
from settlement_kernel.domain.values import Currency, Money
from settlement_kernel.exceptions import ValidationError

TransferKey = tuple[ParticipantId, ParticipantId, str]


class TransferStrategy(str, Enum):
    """How net balances are turned into transfers."""

    GREEDY_MINIMAL = "greedy_minimal"  # Largest debtor pays largest creditor
    PAIRWISE_NET = "pairwise_net"  # Each participant repays each payer, netted per pair


@dataclass(frozen=True)
class PersonSummary:
    """Paid, owed and net totals of one participant in one currency."""

    participant_id: ParticipantId
    total_paid: Money
    total_owed: Money
    net: Money

    @property
    def is_creditor(self) -> bool:
        return self.net.is_positive

    @property
    def is_debtor(self) -> bool:
        return self.net.is_negative


@dataclass(frozen=True)
class SettlementTransfer:
    """
    One debtor-to-creditor payment computed by the engine.

    Immutable; carries no settled flag.
    """

    from_participant: ParticipantId
    to_participant: ParticipantId
    amount: Money

    def __post_init__(self) -> None:
        if self.from_participant == self.to_participant:
            raise ValidationError("transfer", f"{self.from_participant} cannot pay themselves")
        if not self.amount.is_positive:
            raise ValidationError("transfer.amount", f"must be positive, got {self.amount}")

    @property
    def currency(self) -> Currency:
        return self.amount.currency

    @property
    def key(self) -> TransferKey:
        """Identity used to carry settled status across recomputation."""
        return (self.from_participant, self.to_participant, self.amount.currency.code)


@dataclass(frozen=True)
class TransferStatus:
    """Externally owned settled flag for a ``(from, to, currency)`` pair."""

    from_participant: ParticipantId
    to_participant: ParticipantId
    currency: Currency
    settled: bool = False
    settled_at: datetime | None = None

    def __post_init__(self) -> None:
        if isinstance(self.currency, str):
            object.__setattr__(self, "currency", Currency(self.currency))

    @property
    def key(self) -> TransferKey:
        return (self.from_participant, self.to_participant, self.currency.code)


@dataclass(frozen=True)
class MinimalTransfer:
    """Read-only view of an engine transfer merged with its settled status."""

    transfer: SettlementTransfer
    settled: bool = False
    settled_at: datetime | None = None

    @property
    def from_participant(self) -> ParticipantId:
        return self.transfer.from_participant

    @property
    def to_participant(self) -> ParticipantId:
        return self.transfer.to_participant

    @property
    def amount(self) -> Money:
        return self.transfer.amount

    @property
    def currency(self) -> Currency:
        return self.transfer.currency

    @property
    def key(self) -> TransferKey:
        return self.transfer.key


@dataclass(frozen=True)
class SettlementResult:
    """Summaries and transfers of one trip in one currency."""

    trip_id: str | None
    currency: Currency
    strategy: TransferStrategy
    summaries: tuple[PersonSummary, ...]
    transfers: tuple[SettlementTransfer, ...]

    @property
    def total_transferred(self) -> Money:
        return Money.sum((t.amount for t in self.transfers), self.currency)

    @property
    def is_settled(self) -> bool:
        """True when nobody owes anything."""
        return not self.transfers

    def summary_for(self, participant_id: ParticipantId) -> PersonSummary | None:
        for summary in self.summaries:
            if summary.participant_id == participant_id:
                return summary
        return None

    def transfers_for(self, participant_id: ParticipantId) -> tuple[SettlementTransfer, ...]:
        return tuple(
            t for t in self.transfers
            if participant_id in (t.from_participant, t.to_participant)
        )
