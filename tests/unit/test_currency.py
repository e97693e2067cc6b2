"""
Unit tests for the ISO 4217 registry and the Currency value object.
"""

from decimal import Decimal

import pytest

from settlement_kernel.domain.currency import CurrencyRegistry
from settlement_kernel.domain.values import Currency


class TestCurrencyRegistry:
    def test_known_codes_are_valid(self):
        for code in ("USD", "EUR", "JPY", "VND", "KWD", "CLF"):
            assert CurrencyRegistry.is_valid(code)

    def test_lowercase_is_valid(self):
        assert CurrencyRegistry.is_valid("usd")

    def test_unknown_codes_are_invalid(self):
        assert not CurrencyRegistry.is_valid("XYZ")
        assert not CurrencyRegistry.is_valid("")
        assert not CurrencyRegistry.is_valid(None)

    @pytest.mark.parametrize(
        "code, places",
        [("USD", 2), ("EUR", 2), ("JPY", 0), ("VND", 0), ("KWD", 3), ("BHD", 3), ("CLF", 4)],
    )
    def test_decimal_places(self, code, places):
        assert CurrencyRegistry.get_decimal_places(code) == places

    def test_decimal_places_unknown_raises(self):
        with pytest.raises(ValueError, match="Invalid ISO 4217"):
            CurrencyRegistry.get_decimal_places("XYZ")

    def test_minor_unit(self):
        assert CurrencyRegistry.get_minor_unit("USD") == Decimal("0.01")
        assert CurrencyRegistry.get_minor_unit("JPY") == Decimal("1")
        assert CurrencyRegistry.get_minor_unit("KWD") == Decimal("0.001")

    def test_info_minor_unit(self):
        assert CurrencyRegistry.get_info("USD").minor_unit == Decimal("0.01")
        assert CurrencyRegistry.get_info("VND").minor_unit == Decimal("1")
        assert CurrencyRegistry.get_info("CLF").minor_unit == Decimal("0.0001")

    def test_validate_normalizes(self):
        assert CurrencyRegistry.validate(" eur ") == "EUR"

    def test_validate_rejects_wrong_length(self):
        with pytest.raises(ValueError, match="3 characters"):
            CurrencyRegistry.validate("EURO")

    def test_validate_rejects_unknown(self):
        with pytest.raises(ValueError, match="Invalid ISO 4217"):
            CurrencyRegistry.validate("ABC")

    def test_all_codes_is_frozen(self):
        codes = CurrencyRegistry.all_codes()
        assert isinstance(codes, frozenset)
        assert "USD" in codes


class TestCurrency:
    def test_code_is_normalized(self):
        assert Currency("usd").code == "USD"
        assert str(Currency("usd")) == "USD"

    def test_invalid_code_rejected(self):
        with pytest.raises(ValueError, match="Invalid ISO 4217"):
            Currency("ZZZ")

    def test_properties(self):
        kwd = Currency("KWD")
        assert kwd.decimal_places == 3
        assert kwd.minor_unit == Decimal("0.001")
        assert kwd.name == "Kuwaiti Dinar"

    def test_equality_and_hash(self):
        assert Currency("USD") == Currency("usd")
        assert len({Currency("USD"), Currency("usd")}) == 1
