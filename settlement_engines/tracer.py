"""
settlement_engines.tracer -- Engine invocation tracer emitting SETTLEMENT_ENGINE_TRACE.

Responsibility:
    Provide a lightweight decorator (``@traced_engine``) that wraps pure
    engine invocations with structured trace logging.  The trace captures
    engine_name, engine_version, input_fingerprint (deterministic SHA-256
    hash of selected inputs), and duration_ms.

Architecture position:
    Engines -- infrastructure support for the pure calculation layer.
    Does NOT introduce I/O into engines; emits a log record only.

Invariants enforced:
    - Determinism: _canonicalize produces stable string representations
      of Decimal, Money, dataclass records and containers; dict keys are
      sorted; the hash is SHA-256 truncated to 16 hex chars.
    - Engine purity: the decorator only reads arguments and emits a log
      record; it does not mutate inputs or inject side effects.

Failure modes:
    - Fingerprint fields that are not bound on a call are recorded as
      "null".
    - Exceptions raised by the engine propagate unchanged; no trace
      record is emitted for a failed invocation.

Usage:
    from settlement_engines.tracer import traced_engine

    @traced_engine("split_equal", "1.0", fingerprint_fields=("amount", "participants"))
    def split_equal(amount, participants):
        ...
"""

from __future__ import annotations

import functools
import hashlib
import inspect
import logging
import time
from collections.abc import Callable, Mapping
from dataclasses import fields, is_dataclass
from decimal import Decimal
from enum import Enum
from typing import Any

_logger = logging.getLogger("settlement_kernel.engines.tracer")

TRACE_TYPE = "SETTLEMENT_ENGINE_TRACE"


def _canonicalize(value: Any) -> str:
    """Produce a stable string representation of a value for fingerprinting.

    Handles None, int, Decimal, str, enums, mappings (sorted keys),
    sequences (order-preserved) and frozen dataclass records (field order).
    Unknown types fall back to ``str(value)``.
    """
    if value is None:
        return "null"
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, (int, Decimal)):
        return str(value)
    if isinstance(value, str):
        return value
    if isinstance(value, Mapping):
        items = sorted(value.items(), key=lambda kv: str(kv[0]))
        return "{" + ",".join(f"{k}:{_canonicalize(v)}" for k, v in items) + "}"
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(_canonicalize(v) for v in value) + "]"
    if type(value).__name__ in ("Money", "Currency"):
        return str(value)
    if is_dataclass(value) and not isinstance(value, type):
        parts = (f"{f.name}:{_canonicalize(getattr(value, f.name))}" for f in fields(value))
        return type(value).__name__ + "(" + ",".join(parts) + ")"
    return str(value)


def compute_input_fingerprint(
    fingerprint_fields: tuple[str, ...],
    arguments: Mapping[str, Any],
) -> str:
    """Compute a deterministic SHA-256 fingerprint of selected input fields.

    Only the fields listed in fingerprint_fields are included. Missing
    fields are recorded as "null". The result is a hex digest prefix (16 chars).
    """
    parts: list[str] = []
    for field_name in fingerprint_fields:
        val = arguments.get(field_name)
        parts.append(f"{field_name}={_canonicalize(val)}")
    canonical = "|".join(parts)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
) -> Callable:
    """Decorator that emits SETTLEMENT_ENGINE_TRACE for pure engine invocations.

    Args:
        engine_name: Engine identifier (e.g., "split_equal").
        engine_version: Engine version (e.g., "1.0").
        fingerprint_fields: Parameter names (positional or keyword) to
            include in the input fingerprint hash.

    Returns:
        Decorator function.
    """

    def decorator(func: Callable) -> Callable:
        signature = inspect.signature(func)

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            fp = ""
            if fingerprint_fields:
                try:
                    bound = signature.bind(*args, **kwargs)
                except TypeError:
                    # Let the call itself raise the argument error.
                    return func(*args, **kwargs)
                fp = compute_input_fingerprint(fingerprint_fields, bound.arguments)

            t0 = time.monotonic()
            result = func(*args, **kwargs)
            duration_ms = round((time.monotonic() - t0) * 1000, 2)

            _logger.info(
                TRACE_TYPE,
                extra={
                    "trace_type": TRACE_TYPE,
                    "engine_name": engine_name,
                    "engine_version": engine_version,
                    "input_fingerprint": fp,
                    "duration_ms": duration_ms,
                    "function": func.__qualname__,
                },
            )
            return result

        return wrapper

    return decorator
