"""
Values -- Immutable, self-validating money value objects.

Responsibility:
    Provides the foundational value types for every split and settlement
    computation: Currency and Money. Money pairs an exact Decimal with its
    Currency and converts losslessly to and from integer minor units.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Imported by every other domain module and by all engines.

Invariants enforced:
    - Monetary amounts are Decimal, never float.
    - Currency codes are validated against CurrencyRegistry at construction.
    - Arithmetic and comparison never mix currencies.
    - to_minor_units() is lossless: it refuses amounts that are not exact
      multiples of the currency's minor unit instead of rounding silently.

Failure modes:
    - TypeError on float amounts or non-Currency currencies.
    - ValueError on unparseable amounts, invalid codes, or inexact minor units.
    - CurrencyMismatchError when arithmetic mixes currencies.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from settlement_kernel.domain.currency import CurrencyRegistry
from settlement_kernel.exceptions import CurrencyMismatchError


@dataclass(frozen=True, slots=True)
class Currency:
    """
    ISO 4217 currency code value object.

    Contract:
        Wraps a three-letter ISO 4217 code, upper-cased and stripped on
        construction. Invalid codes are rejected immediately.

    Non-goals:
        - Does NOT carry exchange rates; currencies are settled independently.
    """

    code: str

    def __post_init__(self) -> None:
        normalized = self.code.upper().strip() if isinstance(self.code, str) else ""
        if not CurrencyRegistry.is_valid(normalized):
            raise ValueError(f"Invalid ISO 4217 currency code: {self.code}")
        object.__setattr__(self, "code", normalized)

    @property
    def decimal_places(self) -> int:
        """Minor-unit scale: 0 for VND, 2 for USD, 3 for KWD."""
        return CurrencyRegistry.get_decimal_places(self.code)

    @property
    def minor_unit(self) -> Decimal:
        """Smallest indivisible amount in this currency."""
        return CurrencyRegistry.get_minor_unit(self.code)

    @property
    def name(self) -> str:
        info = CurrencyRegistry.get_info(self.code)
        return info.name if info else self.code

    def __str__(self) -> str:
        return self.code

    def __repr__(self) -> str:
        return f"Currency({self.code!r})"


def _coerce_currency(currency: str | Currency) -> Currency:
    if isinstance(currency, Currency):
        return currency
    if isinstance(currency, str):
        return Currency(currency)
    raise TypeError(f"currency must be Currency or str, got {type(currency)}")


def _coerce_decimal(value: Decimal | int | str, what: str) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        raise TypeError(f"{what} must not be a float: {value!r}")
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise ValueError(f"Invalid {what}: {value!r}") from e


@dataclass(frozen=True, slots=True)
class Money:
    """
    Monetary amount value object.

    Contract:
        Pairs a Decimal amount with its Currency -- they are never separated.

    Guarantees:
        - Immutable and hashable.
        - amount is always a finite Decimal (never float).
        - Same-currency constraint on every binary operation.

    Non-goals:
        - Does NOT auto-round; callers use round() or the minor-unit helpers.
        - Does NOT format for display.
    """

    amount: Decimal
    currency: Currency

    def __post_init__(self) -> None:
        amount = _coerce_decimal(self.amount, "amount")
        if not amount.is_finite():
            raise ValueError(f"Invalid amount: {self.amount}")
        object.__setattr__(self, "amount", amount)
        object.__setattr__(self, "currency", _coerce_currency(self.currency))

    @classmethod
    def of(cls, amount: Decimal | str | int, currency: str | Currency) -> Money:
        """
        Factory method for creating Money.

        Raises:
            TypeError: If amount is a float.
            ValueError: If amount cannot be parsed or currency is invalid.
        """
        return cls(amount=_coerce_decimal(amount, "amount"), currency=_coerce_currency(currency))

    @classmethod
    def zero(cls, currency: str | Currency) -> Money:
        currency = _coerce_currency(currency)
        return cls(amount=Decimal(0).quantize(currency.minor_unit), currency=currency)

    @classmethod
    def from_minor_units(cls, units: int, currency: str | Currency) -> Money:
        """
        Build Money from an integer count of minor units.

        ``from_minor_units(1050, "USD")`` is 10.50 USD; ``from_minor_units(1050,
        "VND")`` is 1050 VND. The result carries exactly the currency's scale.
        """
        if isinstance(units, bool) or not isinstance(units, int):
            raise TypeError(f"minor units must be int, got {type(units)}")
        currency = _coerce_currency(currency)
        amount = Decimal(units).scaleb(-currency.decimal_places)
        return cls(amount=amount.quantize(currency.minor_unit), currency=currency)

    @classmethod
    def sum(cls, values: Iterable[Money], currency: str | Currency) -> Money:
        """Sum Money values of one currency; empty input is zero."""
        total = cls.zero(currency)
        for value in values:
            total = total + value
        return total

    def to_minor_units(self) -> int:
        """
        Exact integer count of minor units.

        Raises:
            ValueError: If the amount is not an exact multiple of the minor
                unit (e.g. 10.005 USD). Use rounding.to_minor_units_rounded
                to re-quantize intermediate values explicitly.
        """
        scaled = self.amount.scaleb(self.currency.decimal_places)
        if scaled != scaled.to_integral_value():
            raise ValueError(
                f"{self.amount} is not a whole number of {self.currency.code} minor units"
            )
        return int(scaled)

    @property
    def is_zero(self) -> bool:
        return self.amount == 0

    @property
    def is_positive(self) -> bool:
        return self.amount > 0

    @property
    def is_negative(self) -> bool:
        return self.amount < 0

    def round(self, rounding: str = ROUND_HALF_UP) -> Money:
        """Round to the currency's decimal places."""
        rounded = self.amount.quantize(self.currency.minor_unit, rounding=rounding)
        return Money(amount=rounded, currency=self.currency)

    def _check_currency(self, other: Money, operation: str) -> None:
        if self.currency != other.currency:
            raise CurrencyMismatchError(operation, self.currency.code, other.currency.code)

    def __add__(self, other: Money) -> Money:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other, "add")
        return Money(amount=self.amount + other.amount, currency=self.currency)

    def __sub__(self, other: Money) -> Money:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other, "subtract")
        return Money(amount=self.amount - other.amount, currency=self.currency)

    def __neg__(self) -> Money:
        return Money(amount=-self.amount, currency=self.currency)

    def __abs__(self) -> Money:
        return Money(amount=abs(self.amount), currency=self.currency)

    def __mul__(self, factor: Decimal | int) -> Money:
        if isinstance(factor, bool) or not isinstance(factor, (Decimal, int)):
            return NotImplemented
        return Money(amount=self.amount * factor, currency=self.currency)

    def __rmul__(self, factor: Decimal | int) -> Money:
        return self.__mul__(factor)

    def __lt__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other, "compare")
        return self.amount < other.amount

    def __le__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other, "compare")
        return self.amount <= other.amount

    def __gt__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other, "compare")
        return self.amount > other.amount

    def __ge__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other, "compare")
        return self.amount >= other.amount

    def __str__(self) -> str:
        return f"{self.amount} {self.currency.code}"

    def __repr__(self) -> str:
        return f"Money({self.amount!r}, {self.currency!r})"
