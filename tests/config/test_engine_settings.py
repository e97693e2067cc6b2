"""Tests for loading engine settings from YAML and wiring them into engines."""

from __future__ import annotations

import pytest
import yaml

from settlement_config import DEFAULT_CONFIG_PATH, EngineSettings, get_active_config
from settlement_config.loader import compute_checksum, load_yaml_file, parse_engine_settings
from settlement_engines.itemized import ItemizedAllocationEngine
from settlement_engines.settlement import SettlementCalculator
from settlement_engines.split import SplitCalculator
from settlement_kernel.domain.expense import ExtrasSplit, RemainderRecipient
from settlement_kernel.domain.settlement import TransferStrategy
from settlement_kernel.exceptions import ReconciliationError
from tests.builders import itemized_expense, line_item, usd


def write_yaml(tmp_path, data, name="settings.yaml"):
    path = tmp_path / name
    path.write_text(yaml.safe_dump(data))
    return path


class TestDefaults:
    def test_packaged_defaults_load(self):
        settings = get_active_config()

        assert settings.config_id == "settlement-defaults"
        assert settings.version == 1
        assert settings.itemized_base_tolerance_units == 1
        assert settings.itemized_tolerance_units_per_extra == 1
        assert settings.balance_tolerance_units_per_participant == 1
        assert settings.transfer_strategy == TransferStrategy.GREEDY_MINIMAL
        assert settings.remainder_to == RemainderRecipient.FIRST_LISTED
        assert settings.extras_split == ExtrasSplit.PROPORTIONAL
        assert len(settings.checksum) == 64

    def test_defaults_file_matches_schema_defaults(self):
        settings = get_active_config()
        schema = EngineSettings()
        assert settings.itemized_base_tolerance_units == schema.itemized_base_tolerance_units
        assert settings.transfer_strategy == schema.transfer_strategy

    def test_default_path_exists(self):
        assert DEFAULT_CONFIG_PATH.exists()

    def test_settings_are_frozen(self):
        with pytest.raises(AttributeError):
            get_active_config().version = 2


class TestLoader:
    def test_overrides_from_file(self, tmp_path):
        path = write_yaml(tmp_path, {
            "config_id": "strict",
            "version": 3,
            "itemized": {"base_tolerance_units": 0, "remainder_to": "payer", "extras_split": "even"},
            "settlement": {"transfer_strategy": "pairwise_net"},
        })
        settings = get_active_config(path)

        assert settings.config_id == "strict"
        assert settings.version == 3
        assert settings.itemized_base_tolerance_units == 0
        assert settings.itemized_tolerance_units_per_extra == 1
        assert settings.remainder_to == RemainderRecipient.PAYER
        assert settings.extras_split == ExtrasSplit.EVEN
        assert settings.transfer_strategy == TransferStrategy.PAIRWISE_NET

    def test_empty_file_gives_defaults(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        settings = get_active_config(path)
        assert settings.config_id == "default"
        assert settings.transfer_strategy == TransferStrategy.GREEDY_MINIMAL

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_config(tmp_path / "nope.yaml")

    def test_non_mapping_document(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- 1\n- 2\n")
        with pytest.raises(ValueError, match="mapping"):
            load_yaml_file(path)

    def test_malformed_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("itemized: [unclosed\n")
        with pytest.raises(yaml.YAMLError):
            get_active_config(path)

    def test_unknown_top_level_key(self):
        with pytest.raises(ValueError, match="Unknown top-level keys"):
            parse_engine_settings({"currency_rates": {}})

    def test_unknown_section_key(self):
        with pytest.raises(ValueError, match="Unknown keys in 'itemized'"):
            parse_engine_settings({"itemized": {"random_remainder": True}})

    def test_section_must_be_mapping(self):
        with pytest.raises(ValueError, match="must be a mapping"):
            parse_engine_settings({"settlement": "greedy_minimal"})

    def test_bad_enum_lists_choices(self):
        with pytest.raises(ValueError, match="expected one of: greedy_minimal, pairwise_net"):
            parse_engine_settings({"settlement": {"transfer_strategy": "optimal"}})

    @pytest.mark.parametrize("value", [-1, True, "2"])
    def test_bad_tolerance(self, value):
        with pytest.raises(ValueError, match="non-negative integer"):
            parse_engine_settings({"settlement": {"balance_tolerance_units_per_participant": value}})

    def test_version_must_be_positive(self):
        with pytest.raises(ValueError, match="version"):
            parse_engine_settings({"version": 0})


class TestChecksum:
    def test_key_order_does_not_matter(self):
        first = {"config_id": "a", "itemized": {"base_tolerance_units": 1, "extras_split": "even"}}
        second = {"itemized": {"extras_split": "even", "base_tolerance_units": 1}, "config_id": "a"}
        assert compute_checksum(first) == compute_checksum(second)

    def test_content_changes_checksum(self):
        assert compute_checksum({"version": 1}) != compute_checksum({"version": 2})

    def test_same_file_same_checksum(self, tmp_path):
        path = write_yaml(tmp_path, {"config_id": "x"})
        assert get_active_config(path).checksum == get_active_config(path).checksum


class TestConfigTrace:
    def test_load_emits_trace(self, captured_logs):
        settings = get_active_config()

        traces = [r for r in captured_logs() if r["message"] == "SETTLEMENT_CONFIG_TRACE"]
        assert len(traces) == 1
        assert traces[0]["config_id"] == "settlement-defaults"
        assert traces[0]["checksum"] == settings.checksum
        assert traces[0]["transfer_strategy"] == "greedy_minimal"


class TestEngineWiring:
    def test_itemized_engine_uses_tolerances(self, tmp_path):
        path = write_yaml(tmp_path, {"itemized": {"base_tolerance_units": 0, "tolerance_units_per_extra": 0}})
        engine = ItemizedAllocationEngine.from_settings(get_active_config(path))
        expense = itemized_expense("e1", "a", "10.01", [line_item("i1", "Tea", "10.00", ["a"])])

        assert engine.tolerance_units(None) == 0
        with pytest.raises(ReconciliationError):
            engine.allocate(expense)

    def test_itemized_engine_uses_default_rule(self, tmp_path):
        path = write_yaml(tmp_path, {"itemized": {"remainder_to": "largest_share"}})
        engine = ItemizedAllocationEngine.from_settings(get_active_config(path))
        expense = itemized_expense(
            "e1", "a", "30.01",
            [line_item("i1", "X", "10.00", ["a"]), line_item("i2", "Y", "20.00", ["b"])],
        )
        assert engine.allocate(expense).residual_recipient == "b"

    def test_split_calculator_shares_itemized_engine(self):
        calculator = SplitCalculator.from_settings(get_active_config())
        assert isinstance(calculator.itemized_engine, ItemizedAllocationEngine)

    def test_settlement_calculator_uses_strategy(self, tmp_path, dinner_trip):
        path = write_yaml(tmp_path, {"settlement": {"transfer_strategy": "pairwise_net"}})
        calculator = SettlementCalculator.from_settings(get_active_config(path))

        result = calculator.calculate("trip-1", dinner_trip, "USD")

        assert result.strategy == TransferStrategy.PAIRWISE_NET
        assert result.total_transferred == usd("93.33")
