"""
Tests for transfer breakdowns.

A breakdown lists the expenses that created direct debt between the two
people in a transfer. For pairwise-net transfers the entries account for the
whole amount; greedy transfers can also carry debt routed through others.
"""

from settlement_config import EngineSettings
from settlement_engines.breakdown import TransferBreakdownCalculator
from settlement_engines.settlement import SettlementCalculator, merge_transfer_statuses
from settlement_kernel.domain.expense import RemainderRecipient
from settlement_kernel.domain.settlement import (
    SettlementTransfer,
    TransferStatus,
    TransferStrategy,
)
from tests.builders import equal_expense, itemized_expense, line_item, money, usd


class TestTransferBreakdown:
    def setup_method(self):
        self.calculator = TransferBreakdownCalculator()

    def test_pairwise_transfer_is_fully_explained(self, dinner_trip):
        transfer = SettlementTransfer("bob", "alice", usd("36.67"))
        breakdown = self.calculator.breakdown(transfer, dinner_trip)

        assert [e.expense.id for e in breakdown.entries] == ["e1", "e4", "e2", "e3"]
        assert [e.net_contribution for e in breakdown.entries] == [
            usd("30.00"), usd("16.67"), usd("-10.00"), usd("0.00"),
        ]
        assert breakdown.total_contribution == usd("36.67")
        assert breakdown.is_fully_direct

    def test_entry_fields(self, dinner_trip):
        breakdown = self.calculator.breakdown(SettlementTransfer("bob", "alice", usd("36.67")), dinner_trip)
        by_id = {e.expense.id: e for e in breakdown.entries}

        e1 = by_id["e1"]
        assert e1.to_paid == usd("90.00")
        assert e1.from_paid.is_zero
        assert e1.from_owes == usd("30.00")
        assert e1.to_owes == usd("30.00")

        e2 = by_id["e2"]
        assert e2.from_paid == usd("30.00")
        assert e2.to_owes == usd("10.00")

    def test_explanations(self, dinner_trip):
        breakdown = self.calculator.breakdown(SettlementTransfer("bob", "alice", usd("36.67")), dinner_trip)
        by_id = {e.expense.id: e.explanation for e in breakdown.entries}

        assert by_id["e1"] == "Contributes 30.00 USD to transfer"
        assert by_id["e2"] == "Reduces transfer by 10.00 USD"
        assert by_id["e3"] == "No net effect on transfer"

    def test_greedy_transfer_reports_indirect_amount(self, dinner_trip):
        result = SettlementCalculator().calculate("trip-1", dinner_trip, "USD")
        bob_to_alice = result.transfers[0]
        assert bob_to_alice.amount == usd("56.67")

        breakdown = self.calculator.breakdown(bob_to_alice, dinner_trip)

        assert breakdown.total_contribution == usd("36.67")
        assert breakdown.indirect_amount == usd("20.00")
        assert not breakdown.is_fully_direct
        assert breakdown.total_contribution + breakdown.indirect_amount == bob_to_alice.amount

    def test_every_pairwise_transfer_is_direct(self, dinner_trip):
        result = SettlementCalculator().calculate(
            "trip-1", dinner_trip, "USD", strategy=TransferStrategy.PAIRWISE_NET
        )
        for transfer in result.transfers:
            breakdown = self.calculator.breakdown(transfer, dinner_trip)
            assert breakdown.total_contribution == transfer.amount
            assert breakdown.indirect_amount.is_zero

    def test_unrelated_and_foreign_expenses_excluded(self, dinner_trip):
        expenses = dinner_trip + [
            equal_expense("x1", "dave", "10.00", ["dave", "erin"]),
            equal_expense("x2", "alice", "50.00", ["alice", "bob"], currency="EUR"),
        ]
        breakdown = self.calculator.breakdown(SettlementTransfer("bob", "alice", usd("36.67")), expenses)
        assert {e.expense.id for e in breakdown.entries} == {"e1", "e2", "e3", "e4"}

    def test_equal_magnitudes_keep_input_order(self):
        expenses = [
            equal_expense("first", "a", "20.00", ["a", "b"]),
            equal_expense("second", "a", "20.00", ["a", "b"]),
        ]
        breakdown = self.calculator.breakdown(SettlementTransfer("b", "a", usd("20.00")), expenses)
        assert [e.expense.id for e in breakdown.entries] == ["first", "second"]

    def test_accepts_transfer_with_status(self, dinner_trip):
        transfer = SettlementTransfer("carol", "alice", usd("36.66"))
        merged = merge_transfer_statuses([transfer], [TransferStatus("carol", "alice", "USD", settled=True)])

        breakdown = self.calculator.breakdown(merged[0], dinner_trip)

        assert breakdown.transfer == transfer
        assert breakdown.total_contribution == usd("36.66")

    def test_other_currency_transfer(self, two_currency_trip):
        breakdown = self.calculator.breakdown(
            SettlementTransfer("carol", "bob", money("30.00", "EUR")), two_currency_trip
        )
        assert [e.expense.id for e in breakdown.entries] == ["r1"]
        assert breakdown.is_fully_direct

    def test_emits_trace(self, dinner_trip, captured_logs):
        self.calculator.breakdown(SettlementTransfer("bob", "alice", usd("36.67")), dinner_trip)

        traces = [r for r in captured_logs() if r["message"] == "SETTLEMENT_ENGINE_TRACE"]
        assert traces[-1]["engine_name"] == "transfer_breakdown"


class TestBreakdownSettings:
    """Breakdowns must split itemized expenses with the settlement's own rules."""

    settings = EngineSettings(
        remainder_to=RemainderRecipient.LARGEST_SHARE,
        transfer_strategy=TransferStrategy.PAIRWISE_NET,
    )

    def odd_cent_receipt(self):
        # 10.00 of items against 10.01 paid: the cent goes to the largest share (bob)
        return [itemized_expense(
            "r1", "carol", "10.01",
            [line_item("i1", "Platter", "10.00", ["alice", "bob"], weights={"alice": 1, "bob": 3})],
        )]

    def bob_to_carol(self, calculator, expenses):
        result = calculator.calculate("trip-1", expenses, "USD")
        return next(t for t in result.transfers if t.from_participant == "bob")

    def test_from_settings_matches_settlement(self):
        expenses = self.odd_cent_receipt()
        transfer = self.bob_to_carol(SettlementCalculator.from_settings(self.settings), expenses)
        assert transfer.amount == usd("7.51")

        breakdown = TransferBreakdownCalculator.from_settings(self.settings).breakdown(transfer, expenses)

        assert breakdown.total_contribution == usd("7.51")
        assert breakdown.entries[0].from_owes == usd("7.51")
        assert breakdown.indirect_amount.is_zero

    def test_for_settlement_shares_split_calculator(self):
        settlement = SettlementCalculator.from_settings(self.settings)
        calculator = TransferBreakdownCalculator.for_settlement(settlement)
        expenses = self.odd_cent_receipt()

        breakdown = calculator.breakdown(self.bob_to_carol(settlement, expenses), expenses)

        assert calculator.split_calculator is settlement.split_calculator
        assert breakdown.is_fully_direct

    def test_default_rules_disagree(self):
        expenses = self.odd_cent_receipt()
        transfer = self.bob_to_carol(SettlementCalculator.from_settings(self.settings), expenses)

        breakdown = TransferBreakdownCalculator().breakdown(transfer, expenses)

        assert breakdown.total_contribution == usd("7.50")
        assert breakdown.indirect_amount == usd("0.01")
