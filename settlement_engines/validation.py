"""
Module: settlement_engines.validation
Responsibility:
    Independently check a settlement result before it is shown or
    persisted: money is conserved, transfers reference known participants,
    and applying the transfers settles every balance.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Consumes SettlementResult; never recomputes shares.

Invariants enforced:
    - Non-raising: every problem is collected into the report so callers
      see all issues at once.

Usage:
    report = SettlementValidator().validate(result)
    if not report.is_valid:
        for issue in report.issues:
            print(issue.code, issue.message)
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass

from settlement_kernel.domain.settlement import (
    MinimalTransfer,
    SettlementResult,
    SettlementTransfer,
)
from settlement_kernel.domain.values import Money
from settlement_kernel.logging_config import get_logger

logger = get_logger("engines.validation")


@dataclass(frozen=True)
class ValidationIssue:
    code: str
    message: str


@dataclass(frozen=True)
class SettlementValidationReport:
    is_valid: bool
    issues: tuple[ValidationIssue, ...]

    @property
    def codes(self) -> tuple[str, ...]:
        return tuple(issue.code for issue in self.issues)

    def __str__(self) -> str:
        if self.is_valid:
            return "SettlementValidationReport: VALID"
        lines = "\n".join(f"  - [{i.code}] {i.message}" for i in self.issues)
        return f"SettlementValidationReport: INVALID\n{lines}"


class SettlementValidator:
    """Checks a SettlementResult and reports every inconsistency found."""

    def __init__(self, balance_tolerance_units_per_participant: int = 1):
        self._tolerance_units = balance_tolerance_units_per_participant

    def validate(
        self,
        result: SettlementResult,
        transfers: Sequence[SettlementTransfer | MinimalTransfer] | None = None,
    ) -> SettlementValidationReport:
        """
        Validate ``result``.

        Args:
            result: Output of SettlementCalculator.calculate.
            transfers: Transfers to check against the balances; defaults to
                ``result.transfers``.
        """
        transfers = result.transfers if transfers is None else transfers
        issues: list[ValidationIssue] = []
        issues.extend(self._check_conservation(result))
        issues.extend(self._check_transfers(result, transfers))
        issues.extend(self._check_duplicates(transfers))
        issues.extend(self._check_balances(result, transfers))

        report = SettlementValidationReport(is_valid=not issues, issues=tuple(issues))
        if issues:
            logger.warning("settlement_validation_failed", extra={
                "trip_id": result.trip_id,
                "currency": result.currency.code,
                "issue_codes": list(report.codes),
            })
        return report

    def _check_conservation(self, result: SettlementResult) -> list[ValidationIssue]:
        total = Money.sum((s.net for s in result.summaries), result.currency)
        tolerance = Money.from_minor_units(
            len(result.summaries) * self._tolerance_units, result.currency
        )
        if abs(total) > tolerance:
            return [ValidationIssue(
                "CONSERVATION_VIOLATED",
                f"Sum of balances is {total}, expected 0 (tolerance {tolerance})",
            )]
        return []

    def _check_transfers(self, result, transfers) -> list[ValidationIssue]:
        known = {s.participant_id for s in result.summaries}
        issues: list[ValidationIssue] = []
        for t in transfers:
            label = f"{t.from_participant}->{t.to_participant}"
            for role, pid in (("payer", t.from_participant), ("receiver", t.to_participant)):
                if pid not in known:
                    issues.append(ValidationIssue(
                        "UNKNOWN_PARTICIPANT", f"Transfer {label} has unknown {role}: {pid}"
                    ))
            if t.from_participant == t.to_participant:
                issues.append(ValidationIssue(
                    "SELF_TRANSFER", f"Transfer {label} has the same payer and receiver"
                ))
            if t.amount.currency != result.currency:
                issues.append(ValidationIssue(
                    "CURRENCY_MISMATCH",
                    f"Transfer {label} is in {t.amount.currency}, settlement is in {result.currency}",
                ))
            elif not t.amount.is_positive:
                issues.append(ValidationIssue(
                    "NON_POSITIVE_AMOUNT", f"Transfer {label} has amount {t.amount}"
                ))
        return issues

    def _check_duplicates(self, transfers) -> list[ValidationIssue]:
        pairs = Counter((t.from_participant, t.to_participant) for t in transfers)
        return [
            ValidationIssue(
                "DUPLICATE_TRANSFER", f"{count} transfers found for pair {src}->{dst}"
            )
            for (src, dst), count in pairs.items()
            if count > 1
        ]

    def _check_balances(self, result, transfers) -> list[ValidationIssue]:
        """Every participant's transfers must exactly cover their net balance."""
        issues: list[ValidationIssue] = []
        for summary in result.summaries:
            pid = summary.participant_id
            flow = Money.zero(result.currency)
            for t in transfers:
                if t.amount.currency != result.currency:
                    continue
                if t.from_participant == pid:
                    flow = flow + t.amount
                if t.to_participant == pid:
                    flow = flow - t.amount
            remaining = summary.net + flow
            if not remaining.is_zero:
                issues.append(ValidationIssue(
                    "UNSETTLED_BALANCE",
                    f"{pid} has net {summary.net} but transfers leave {remaining}",
                ))
        return issues
