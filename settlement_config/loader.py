"""
Configuration Loader (``settlement_config.loader``).

Responsibility
--------------
Loads the engine settings YAML file and parses it into the typed
``settlement_config.schema.EngineSettings`` dataclass. Callers use
``settlement_config.get_active_config()``; this module is its
implementation and test tooling.

Invariants enforced
-------------------
* Unknown keys are rejected instead of silently ignored.
* Enum values must be one of the documented names.
* ``compute_checksum`` produces a deterministic SHA-256 hash for
  configuration identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown keys, bad enum names or bad tolerances  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from enum import Enum
from pathlib import Path
from typing import Any

import yaml

from settlement_config.schema import EngineSettings
from settlement_kernel.domain.expense import ExtrasSplit, RemainderRecipient
from settlement_kernel.domain.settlement import TransferStrategy

_TOP_LEVEL_KEYS = frozenset({"config_id", "version", "itemized", "settlement"})
_ITEMIZED_KEYS = frozenset({
    "base_tolerance_units",
    "tolerance_units_per_extra",
    "remainder_to",
    "extras_split",
})
_SETTLEMENT_KEYS = frozenset({
    "balance_tolerance_units_per_participant",
    "transfer_strategy",
})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the document is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a mapping at the top level, got {type(data).__name__}")
    return data


def _section(data: dict[str, Any], name: str, allowed: frozenset[str]) -> dict[str, Any]:
    section = data.get(name) or {}
    if not isinstance(section, dict):
        raise ValueError(f"'{name}' must be a mapping")
    unknown = set(section) - allowed
    if unknown:
        raise ValueError(f"Unknown keys in '{name}': {sorted(unknown)}")
    return section


def _enum(enum_type: type[Enum], value: Any, key: str) -> Any:
    try:
        return enum_type(value)
    except ValueError as e:
        choices = ", ".join(m.value for m in enum_type)
        raise ValueError(f"Invalid {key} {value!r}; expected one of: {choices}") from e


def parse_engine_settings(data: dict[str, Any]) -> EngineSettings:
    """
    Parse ``EngineSettings`` from a dict.

    Missing keys take the schema defaults; the checksum covers the raw
    document.
    """
    unknown = set(data) - _TOP_LEVEL_KEYS
    if unknown:
        raise ValueError(f"Unknown top-level keys: {sorted(unknown)}")

    itemized = _section(data, "itemized", _ITEMIZED_KEYS)
    settlement = _section(data, "settlement", _SETTLEMENT_KEYS)
    defaults = EngineSettings()

    return EngineSettings(
        config_id=str(data.get("config_id", defaults.config_id)),
        version=int(data.get("version", defaults.version)),
        itemized_base_tolerance_units=itemized.get(
            "base_tolerance_units", defaults.itemized_base_tolerance_units
        ),
        itemized_tolerance_units_per_extra=itemized.get(
            "tolerance_units_per_extra", defaults.itemized_tolerance_units_per_extra
        ),
        balance_tolerance_units_per_participant=settlement.get(
            "balance_tolerance_units_per_participant",
            defaults.balance_tolerance_units_per_participant,
        ),
        transfer_strategy=_enum(
            TransferStrategy,
            settlement.get("transfer_strategy", defaults.transfer_strategy.value),
            "transfer_strategy",
        ),
        remainder_to=_enum(
            RemainderRecipient,
            itemized.get("remainder_to", defaults.remainder_to.value),
            "remainder_to",
        ),
        extras_split=_enum(
            ExtrasSplit,
            itemized.get("extras_split", defaults.extras_split.value),
            "extras_split",
        ),
        checksum=compute_checksum(data),
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of canonical JSON serialization.

    Identical ``data`` always produces identical checksums; key order in
    the YAML file does not matter.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
