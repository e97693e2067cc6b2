"""Currency -- ISO 4217 registry and minor-unit precision."""

from dataclasses import dataclass
from decimal import Decimal
from typing import ClassVar


@dataclass(frozen=True)
class CurrencyInfo:
    """Minor-unit metadata for a single ISO 4217 currency."""

    code: str
    decimal_places: int
    name: str

    @property
    def minor_unit(self) -> Decimal:
        """Smallest indivisible amount (0.01 for USD, 1 for VND)."""
        return Decimal(1).scaleb(-self.decimal_places)


def _table(decimal_places: int, entries: str) -> dict[str, CurrencyInfo]:
    table: dict[str, CurrencyInfo] = {}
    for line in entries.strip().splitlines():
        code, name = line.strip().split(" ", 1)
        table[code] = CurrencyInfo(code, decimal_places, name)
    return table


class CurrencyRegistry:
    """Registry of ISO 4217 currencies keyed by code."""

    _CURRENCIES: ClassVar[dict[str, CurrencyInfo]] = {
        **_table(0, """
            BIF Burundian Franc
            CLP Chilean Peso
            DJF Djiboutian Franc
            GNF Guinean Franc
            ISK Icelandic Krona
            JPY Japanese Yen
            KMF Comorian Franc
            KRW South Korean Won
            PYG Paraguayan Guarani
            RWF Rwandan Franc
            UGX Ugandan Shilling
            UYI Uruguay Peso en Unidades Indexadas
            VND Vietnamese Dong
            VUV Vanuatu Vatu
            XAF Central African CFA Franc
            XOF West African CFA Franc
            XPF CFP Franc
        """),
        **_table(2, """
            AED UAE Dirham
            ARS Argentine Peso
            AUD Australian Dollar
            BDT Bangladeshi Taka
            BGN Bulgarian Lev
            BRL Brazilian Real
            CAD Canadian Dollar
            CHF Swiss Franc
            CNY Chinese Yuan
            COP Colombian Peso
            CZK Czech Koruna
            DKK Danish Krone
            EGP Egyptian Pound
            EUR Euro
            GBP Pound Sterling
            HKD Hong Kong Dollar
            HUF Hungarian Forint
            IDR Indonesian Rupiah
            ILS Israeli New Shekel
            INR Indian Rupee
            KES Kenyan Shilling
            KHR Cambodian Riel
            LAK Lao Kip
            LKR Sri Lankan Rupee
            MAD Moroccan Dirham
            MMK Myanmar Kyat
            MXN Mexican Peso
            MYR Malaysian Ringgit
            NGN Nigerian Naira
            NOK Norwegian Krone
            NPR Nepalese Rupee
            NZD New Zealand Dollar
            PEN Peruvian Sol
            PHP Philippine Peso
            PKR Pakistani Rupee
            PLN Polish Zloty
            QAR Qatari Riyal
            RON Romanian Leu
            RUB Russian Ruble
            SAR Saudi Riyal
            SEK Swedish Krona
            SGD Singapore Dollar
            THB Thai Baht
            TRY Turkish Lira
            TWD New Taiwan Dollar
            UAH Ukrainian Hryvnia
            USD US Dollar
            UYU Uruguayan Peso
            ZAR South African Rand
        """),
        **_table(3, """
            BHD Bahraini Dinar
            IQD Iraqi Dinar
            JOD Jordanian Dinar
            KWD Kuwaiti Dinar
            LYD Libyan Dinar
            OMR Omani Rial
            TND Tunisian Dinar
        """),
        **_table(4, """
            CLF Chilean Unidad de Fomento
            UYW Unidad Previsional
        """),
    }

    @classmethod
    def is_valid(cls, code: str) -> bool:
        """Check if a currency code is a known ISO 4217 code."""
        if not code or not isinstance(code, str):
            return False
        return code.upper().strip() in cls._CURRENCIES

    @classmethod
    def get_info(cls, code: str) -> CurrencyInfo | None:
        if not code or not isinstance(code, str):
            return None
        return cls._CURRENCIES.get(code.upper().strip())

    @classmethod
    def get_decimal_places(cls, code: str) -> int:
        """Decimal places for a currency; unknown codes are rejected."""
        info = cls.get_info(code)
        if info is None:
            raise ValueError(f"Invalid ISO 4217 currency code: {code!r}")
        return info.decimal_places

    @classmethod
    def get_minor_unit(cls, code: str) -> Decimal:
        """Smallest indivisible amount for a currency."""
        return Decimal(1).scaleb(-cls.get_decimal_places(code))

    @classmethod
    def validate(cls, code: str) -> str:
        """Validate and normalize a currency code."""
        if not code or not isinstance(code, str):
            raise ValueError(f"Invalid currency code: {code!r}")

        normalized = code.upper().strip()

        if len(normalized) != 3:
            raise ValueError(f"Currency code must be 3 characters: {code!r}")

        if normalized not in cls._CURRENCIES:
            raise ValueError(f"Invalid ISO 4217 currency code: {code!r}")

        return normalized

    @classmethod
    def all_codes(cls) -> frozenset[str]:
        return frozenset(cls._CURRENCIES)
