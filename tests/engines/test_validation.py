"""
Tests for the settlement validator.

Hand-built transfers use SimpleNamespace so that records the domain types
would refuse to construct (self transfers, zero amounts) can still be fed
to the validator.
"""

from types import SimpleNamespace

import pytest

from settlement_engines.settlement import SettlementCalculator, merge_transfer_statuses
from settlement_engines.validation import SettlementValidator
from settlement_kernel.domain.settlement import (
    PersonSummary,
    SettlementResult,
    SettlementTransfer,
    TransferStrategy,
)
from settlement_kernel.domain.values import Currency
from tests.builders import equal_expense, money, usd


def raw_transfer(src, dst, amount):
    return SimpleNamespace(from_participant=src, to_participant=dst, amount=amount)


@pytest.fixture
def simple_result():
    """a paid 30.00 for a, b and c: a +20, b -10, c -10."""
    expenses = [equal_expense("e1", "a", "30.00", ["a", "b", "c"])]
    return SettlementCalculator().calculate("trip-1", expenses, "USD")


class TestSettlementValidator:
    def setup_method(self):
        self.validator = SettlementValidator()

    def test_calculated_result_is_valid(self, simple_result):
        report = self.validator.validate(simple_result)

        assert report.is_valid
        assert report.issues == ()
        assert str(report) == "SettlementValidationReport: VALID"

    @pytest.mark.parametrize("strategy", list(TransferStrategy))
    def test_both_strategies_validate(self, dinner_trip, strategy):
        result = SettlementCalculator().calculate("trip-1", dinner_trip, "USD", strategy=strategy)
        assert self.validator.validate(result).is_valid

    def test_merged_transfers_validate(self, simple_result):
        merged = merge_transfer_statuses(simple_result.transfers, [])
        assert self.validator.validate(simple_result, merged).is_valid

    def test_missing_transfer_leaves_balance(self, simple_result):
        report = self.validator.validate(simple_result, simple_result.transfers[:1])

        assert not report.is_valid
        assert report.codes == ("UNSETTLED_BALANCE", "UNSETTLED_BALANCE")
        assert "INVALID" in str(report)

    def test_unknown_participant(self, simple_result):
        transfers = list(simple_result.transfers) + [raw_transfer("zed", "a", usd("1.00"))]
        report = self.validator.validate(simple_result, transfers)
        assert "UNKNOWN_PARTICIPANT" in report.codes

    def test_self_transfer(self, simple_result):
        transfers = list(simple_result.transfers) + [raw_transfer("b", "b", usd("1.00"))]
        report = self.validator.validate(simple_result, transfers)
        assert "SELF_TRANSFER" in report.codes

    def test_currency_mismatch(self, simple_result):
        transfers = list(simple_result.transfers) + [raw_transfer("c", "b", money("1.00", "EUR"))]
        report = self.validator.validate(simple_result, transfers)

        assert "CURRENCY_MISMATCH" in report.codes
        assert "UNSETTLED_BALANCE" not in report.codes

    def test_non_positive_amount(self, simple_result):
        transfers = list(simple_result.transfers) + [raw_transfer("c", "b", usd("0.00"))]
        report = self.validator.validate(simple_result, transfers)
        assert report.codes == ("NON_POSITIVE_AMOUNT",)

    def test_duplicate_pair(self, simple_result):
        transfers = [
            SettlementTransfer("b", "a", usd("5.00")),
            SettlementTransfer("b", "a", usd("5.00")),
            SettlementTransfer("c", "a", usd("10.00")),
        ]
        report = self.validator.validate(simple_result, transfers)
        assert report.codes == ("DUPLICATE_TRANSFER",)

    def test_conservation_violated(self):
        result = SettlementResult(
            trip_id="trip-1",
            currency=Currency("USD"),
            strategy=TransferStrategy.GREEDY_MINIMAL,
            summaries=(
                PersonSummary("a", usd("10.00"), usd("0.00"), usd("10.00")),
                PersonSummary("b", usd("0.00"), usd("5.00"), usd("-5.00")),
            ),
            transfers=(SettlementTransfer("b", "a", usd("5.00")),),
        )
        report = self.validator.validate(result)

        assert report.codes[0] == "CONSERVATION_VIOLATED"
        assert "UNSETTLED_BALANCE" in report.codes

    def test_collects_every_issue(self, simple_result):
        transfers = [raw_transfer("b", "b", usd("0.00")), raw_transfer("q", "a", usd("1.00"))]
        report = self.validator.validate(simple_result, transfers)
        assert {"SELF_TRANSFER", "NON_POSITIVE_AMOUNT", "UNKNOWN_PARTICIPANT", "UNSETTLED_BALANCE"} <= set(
            report.codes
        )

    def test_failure_logged(self, simple_result, captured_logs):
        self.validator.validate(simple_result, ())

        warnings = [r for r in captured_logs() if r["message"] == "settlement_validation_failed"]
        assert warnings[0]["level"] == "WARNING"
        assert warnings[0]["issue_codes"] == ["UNSETTLED_BALANCE"] * 3
