"""
EngineSettings schema.

Typed, frozen form of the engine settings YAML. The loader parses YAML
into this type; engines read it through their ``from_settings``
constructors.
"""

from __future__ import annotations

from dataclasses import dataclass

from settlement_kernel.domain.expense import ExtrasSplit, RemainderRecipient
from settlement_kernel.domain.settlement import TransferStrategy


@dataclass(frozen=True)
class EngineSettings:
    """Tolerances and default strategies for the settlement engines."""

    config_id: str = "default"
    version: int = 1

    # Itemized reconciliation: base + per_extra * number of extras (minor units)
    itemized_base_tolerance_units: int = 1
    itemized_tolerance_units_per_extra: int = 1

    # Balance invariant: participant count * per_participant (minor units)
    balance_tolerance_units_per_participant: int = 1

    transfer_strategy: TransferStrategy = TransferStrategy.GREEDY_MINIMAL
    remainder_to: RemainderRecipient = RemainderRecipient.FIRST_LISTED
    extras_split: ExtrasSplit = ExtrasSplit.PROPORTIONAL

    checksum: str = ""

    def __post_init__(self) -> None:
        for name in (
            "itemized_base_tolerance_units",
            "itemized_tolerance_units_per_extra",
            "balance_tolerance_units_per_participant",
        ):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise ValueError(f"{name} must be a non-negative integer, got {value!r}")
        if self.version < 1:
            raise ValueError(f"version must be >= 1, got {self.version}")
