"""
Expense -- immutable expense, line item and extras records.

Responsibility:
    Defines the plain records the engines consume: who paid what, for whom,
    and by which split rule. Itemized (receipt) expenses additionally carry
    line items, extras (tax, tip, fees, discounts) and an allocation rule.

Architecture position:
    Kernel > Domain -- pure data, zero I/O. Supplied by an external
    persistence layer; the engines never mutate these records.

Invariants enforced:
    - amount > 0.
    - EQUAL and WEIGHTED expenses have at least one participant.
    - EQUAL weights are all 1; WEIGHTED weights are all > 0.
    - Every line item is assigned to at least one participant.
    - Percentage extras are fractions in [0, 1]; fixed extras are >= 0.
    - Every monetary field of an expense shares the expense currency.

Failure modes:
    - ValidationError on any violated invariant, raised at construction so
      invalid records never reach an engine.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from datetime import date as date_type
from decimal import Decimal, InvalidOperation
from enum import Enum

from settlement_kernel.domain.values import Currency, Money
from settlement_kernel.exceptions import ValidationError

ParticipantId = str

MAX_DESCRIPTION_LENGTH = 200


def _to_weight(value: Decimal | int | str, participant_id: str) -> Decimal:
    if isinstance(value, bool) or isinstance(value, float):
        raise ValidationError(
            f"weight[{participant_id}]", f"must be Decimal, int or str, got {value!r}"
        )
    try:
        weight = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise ValidationError(f"weight[{participant_id}]", f"not a number: {value!r}") from e
    if not weight.is_finite():
        raise ValidationError(f"weight[{participant_id}]", f"not finite: {value!r}")
    return weight


@dataclass(frozen=True)
class ParticipantWeights:
    """
    Ordered participant -> weight container.

    Insertion order is significant: equal-split remainders go to the first
    participants and weighted-split residuals to the last one.
    """

    entries: tuple[tuple[ParticipantId, Decimal], ...] = ()

    def __post_init__(self) -> None:
        seen: set[str] = set()
        normalized: list[tuple[str, Decimal]] = []
        for participant_id, raw_weight in self.entries:
            if not isinstance(participant_id, str) or not participant_id:
                raise ValidationError("participants", f"invalid participant id {participant_id!r}")
            if participant_id in seen:
                raise ValidationError("participants", f"duplicate participant {participant_id!r}")
            seen.add(participant_id)
            weight = _to_weight(raw_weight, participant_id)
            if weight < 0:
                raise ValidationError(f"weight[{participant_id}]", "cannot be negative")
            normalized.append((participant_id, weight))
        object.__setattr__(self, "entries", tuple(normalized))

    @classmethod
    def of(cls, weights: Mapping[ParticipantId, Decimal | int | str]) -> ParticipantWeights:
        return cls(tuple(weights.items()))

    @classmethod
    def equal(cls, participant_ids: Iterable[ParticipantId]) -> ParticipantWeights:
        return cls(tuple((pid, Decimal(1)) for pid in participant_ids))

    @property
    def ids(self) -> tuple[ParticipantId, ...]:
        return tuple(pid for pid, _ in self.entries)

    @property
    def total(self) -> Decimal:
        return sum((w for _, w in self.entries), Decimal(0))

    def weight_of(self, participant_id: ParticipantId) -> Decimal:
        for pid, weight in self.entries:
            if pid == participant_id:
                return weight
        raise KeyError(participant_id)

    def items(self) -> tuple[tuple[ParticipantId, Decimal], ...]:
        return self.entries

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[ParticipantId]:
        return iter(self.ids)

    def __contains__(self, participant_id: object) -> bool:
        return any(pid == participant_id for pid, _ in self.entries)


class SplitType(str, Enum):
    """How an expense is divided among its participants."""

    EQUAL = "equal"
    WEIGHTED = "weighted"
    ITEMIZED = "itemized"


class ExtraMode(str, Enum):
    """Whether an extra is a fraction of a base or a fixed amount."""

    PERCENT = "percent"
    AMOUNT = "amount"


class TaxInclusion(str, Enum):
    EXCLUSIVE = "exclusive"  # Added on top of item prices
    INCLUSIVE = "inclusive"  # Already contained in item prices


class DiscountTiming(str, Enum):
    BEFORE_TAX = "before_tax"
    AFTER_TAX = "after_tax"


class PercentBase(str, Enum):
    """Receipt stage a percentage extra is computed against."""

    ITEM_SUBTOTAL = "item_subtotal"
    POST_DISCOUNT_SUBTOTAL = "post_discount_subtotal"
    POST_TAX_SUBTOTAL = "post_tax_subtotal"
    POST_FEES_SUBTOTAL = "post_fees_subtotal"


class ExtrasSplit(str, Enum):
    """How an extra's total is spread over participants."""

    PROPORTIONAL = "proportional"  # By share of the item subtotal
    EVEN = "even"  # Same amount per participant


class RemainderRecipient(str, Enum):
    """Who absorbs the reconciliation residual of an itemized expense."""

    FIRST_LISTED = "first_listed"
    LARGEST_SHARE = "largest_share"
    PAYER = "payer"


def _to_rate(value: Decimal | int | str, label: str) -> Decimal:
    if isinstance(value, bool) or isinstance(value, float):
        raise ValidationError(f"{label}.rate", f"must be Decimal, int or str, got {value!r}")
    try:
        rate = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise ValidationError(f"{label}.rate", f"not a number: {value!r}") from e
    if not rate.is_finite():
        raise ValidationError(f"{label}.rate", f"not finite: {value!r}")
    return rate


def _check_extra(
    label: str,
    mode: ExtraMode,
    rate: Decimal | None,
    amount: Money | None,
) -> None:
    if mode == ExtraMode.PERCENT:
        if rate is None:
            raise ValidationError(f"{label}.rate", "percentage extra requires a rate")
        if amount is not None:
            raise ValidationError(f"{label}.amount", "percentage extra cannot carry an amount")
        if not isinstance(rate, Decimal):
            raise ValidationError(f"{label}.rate", f"must be a Decimal, got {type(rate).__name__}")
        if not Decimal(0) <= rate <= Decimal(1):
            raise ValidationError(f"{label}.rate", f"must be within [0, 1], got {rate}")
    elif mode == ExtraMode.AMOUNT:
        if amount is None:
            raise ValidationError(f"{label}.amount", "fixed extra requires an amount")
        if rate is not None:
            raise ValidationError(f"{label}.rate", "fixed extra cannot carry a rate")
        if amount.is_negative:
            raise ValidationError(f"{label}.amount", f"cannot be negative, got {amount}")
    else:
        raise ValidationError(f"{label}.mode", f"unknown mode {mode!r}")


@dataclass(frozen=True)
class TaxExtra:
    """Receipt tax, either a rate on a base or a fixed amount."""

    mode: ExtraMode
    rate: Decimal | None = None
    amount: Money | None = None
    inclusion: TaxInclusion = TaxInclusion.EXCLUSIVE
    base: PercentBase = PercentBase.POST_DISCOUNT_SUBTOTAL

    def __post_init__(self) -> None:
        _check_extra("tax", self.mode, self.rate, self.amount)

    @classmethod
    def percent(
        cls,
        rate: Decimal | str,
        inclusion: TaxInclusion = TaxInclusion.EXCLUSIVE,
        base: PercentBase = PercentBase.POST_DISCOUNT_SUBTOTAL,
    ) -> TaxExtra:
        return cls(ExtraMode.PERCENT, rate=_to_rate(rate, "tax"), inclusion=inclusion, base=base)

    @classmethod
    def fixed(cls, amount: Money, inclusion: TaxInclusion = TaxInclusion.EXCLUSIVE) -> TaxExtra:
        return cls(ExtraMode.AMOUNT, amount=amount, inclusion=inclusion)


@dataclass(frozen=True)
class TipExtra:
    """Gratuity; zero is allowed."""

    mode: ExtraMode
    rate: Decimal | None = None
    amount: Money | None = None
    base: PercentBase = PercentBase.ITEM_SUBTOTAL

    def __post_init__(self) -> None:
        _check_extra("tip", self.mode, self.rate, self.amount)

    @classmethod
    def percent(cls, rate: Decimal | str, base: PercentBase = PercentBase.ITEM_SUBTOTAL) -> TipExtra:
        return cls(ExtraMode.PERCENT, rate=_to_rate(rate, "tip"), base=base)

    @classmethod
    def fixed(cls, amount: Money) -> TipExtra:
        return cls(ExtraMode.AMOUNT, amount=amount)


@dataclass(frozen=True)
class FeeExtra:
    """Named surcharge such as a delivery fee or service charge."""

    id: str
    name: str
    mode: ExtraMode
    rate: Decimal | None = None
    amount: Money | None = None
    base: PercentBase = PercentBase.ITEM_SUBTOTAL

    def __post_init__(self) -> None:
        if not self.id or not self.id.strip():
            raise ValidationError("fee.id", "cannot be empty")
        if not self.name or not self.name.strip():
            raise ValidationError(f"fee[{self.id}].name", "cannot be empty")
        _check_extra(f"fee[{self.id}]", self.mode, self.rate, self.amount)


@dataclass(frozen=True)
class DiscountExtra:
    """Named reduction such as a coupon, applied before or after tax."""

    id: str
    name: str
    mode: ExtraMode
    rate: Decimal | None = None
    amount: Money | None = None
    timing: DiscountTiming = DiscountTiming.BEFORE_TAX
    base: PercentBase = PercentBase.ITEM_SUBTOTAL

    def __post_init__(self) -> None:
        if not self.id or not self.id.strip():
            raise ValidationError("discount.id", "cannot be empty")
        if not self.name or not self.name.strip():
            raise ValidationError(f"discount[{self.id}].name", "cannot be empty")
        _check_extra(f"discount[{self.id}]", self.mode, self.rate, self.amount)


@dataclass(frozen=True)
class Extras:
    """Tax, tip, fees and discounts of one receipt. All optional."""

    tax: TaxExtra | None = None
    tip: TipExtra | None = None
    fees: tuple[FeeExtra, ...] = ()
    discounts: tuple[DiscountExtra, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "fees", tuple(self.fees))
        object.__setattr__(self, "discounts", tuple(self.discounts))
        for label, extras in (("fees", self.fees), ("discounts", self.discounts)):
            ids = [extra.id for extra in extras]
            if len(ids) != len(set(ids)):
                raise ValidationError(label, f"duplicate ids in {ids}")

    @property
    def count(self) -> int:
        """Number of configured extras; drives the reconciliation tolerance."""
        return (
            (1 if self.tax is not None else 0)
            + (1 if self.tip is not None else 0)
            + len(self.fees)
            + len(self.discounts)
        )

    def fixed_amounts(self) -> list[tuple[str, Money]]:
        found: list[tuple[str, Money]] = []
        if self.tax is not None and self.tax.amount is not None:
            found.append(("tax", self.tax.amount))
        if self.tip is not None and self.tip.amount is not None:
            found.append(("tip", self.tip.amount))
        for fee in self.fees:
            if fee.amount is not None:
                found.append((f"fee[{fee.id}]", fee.amount))
        for discount in self.discounts:
            if discount.amount is not None:
                found.append((f"discount[{discount.id}]", discount.amount))
        return found


@dataclass(frozen=True)
class AllocationRule:
    """Strategy selector for spreading extras and the reconciliation residual."""

    extras_split: ExtrasSplit = ExtrasSplit.PROPORTIONAL
    remainder_to: RemainderRecipient = RemainderRecipient.FIRST_LISTED


@dataclass(frozen=True)
class ItemAssignment:
    """
    Participants sharing one line item.

    Without ``weights`` the item is split evenly. With ``weights`` (custom
    shares or per-person quantities) it is split proportionally; the keys
    must match ``participants`` exactly.
    """

    participants: tuple[ParticipantId, ...]
    weights: ParticipantWeights | None = None

    def __post_init__(self) -> None:
        participants = tuple(self.participants)
        if not participants:
            raise ValidationError("assignment.participants", "item must be assigned to at least one participant")
        if len(set(participants)) != len(participants):
            raise ValidationError("assignment.participants", f"duplicate participants in {participants}")
        object.__setattr__(self, "participants", participants)

        weights = self.weights
        if weights is not None and not isinstance(weights, ParticipantWeights):
            weights = ParticipantWeights.of(weights)
            object.__setattr__(self, "weights", weights)
        if weights is not None:
            if set(weights.ids) != set(participants):
                raise ValidationError("assignment.weights", "weight keys must match the assigned participants")
            if any(w <= 0 for _, w in weights.items()):
                raise ValidationError("assignment.weights", "all weights must be positive")
            # Participant order governs remainder placement.
            object.__setattr__(
                self,
                "weights",
                ParticipantWeights(tuple((pid, weights.weight_of(pid)) for pid in participants)),
            )


@dataclass(frozen=True)
class LineItem:
    """One receipt line: quantity x unit price, shared by its assignees."""

    id: str
    name: str
    quantity: int
    unit_price: Money
    assignment: ItemAssignment

    def __post_init__(self) -> None:
        if not self.name or not self.name.strip():
            raise ValidationError(f"item[{self.id}].name", "cannot be empty")
        if isinstance(self.quantity, bool) or not isinstance(self.quantity, int) or self.quantity <= 0:
            raise ValidationError(f"item[{self.id}].quantity", f"must be a positive integer, got {self.quantity!r}")
        if self.unit_price.is_negative:
            raise ValidationError(f"item[{self.id}].unit_price", "cannot be negative")

    @property
    def subtotal(self) -> Money:
        return self.unit_price * self.quantity


@dataclass(frozen=True)
class ItemContribution:
    """One participant's share of one line item."""

    item_id: str
    item_name: str
    quantity: int
    unit_price: Money
    assignee_count: int
    amount: Money


@dataclass(frozen=True)
class ParticipantBreakdown:
    """Audit trail of how one participant's itemized amount was built."""

    participant_id: ParticipantId
    items: tuple[ItemContribution, ...]
    items_subtotal: Money
    tax: Money
    included_tax: Money
    tip: Money
    fees: tuple[tuple[str, Money], ...]
    discounts: tuple[tuple[str, Money], ...]
    rounding_adjustment: Money
    total: Money

    @property
    def fees_total(self) -> Money:
        return Money.sum((amount for _, amount in self.fees), self.total.currency)

    @property
    def discounts_total(self) -> Money:
        return Money.sum((amount for _, amount in self.discounts), self.total.currency)

    @property
    def extras_allocated(self) -> dict[str, Money]:
        """Flat ``tax`` / ``tip`` / ``fee_<id>`` / ``discount_<id>`` view."""
        allocated: dict[str, Money] = {"tax": self.tax, "tip": self.tip}
        for fee_id, amount in self.fees:
            allocated[f"fee_{fee_id}"] = amount
        for discount_id, amount in self.discounts:
            allocated[f"discount_{discount_id}"] = amount
        return allocated


@dataclass(frozen=True)
class Expense:
    """
    A single payment made by one participant on behalf of others.

    Contract:
        Immutable record supplied by the caller. For ITEMIZED expenses,
        ``participant_amounts`` is the persisted canonical result of the
        itemized engine; when present it is used as-is for settlement.
    """

    id: str
    payer: ParticipantId
    amount: Money
    split_type: SplitType
    participants: ParticipantWeights = field(default_factory=ParticipantWeights)
    trip_id: str | None = None
    date: date_type | None = None
    description: str | None = None
    category_id: str | None = None
    items: tuple[LineItem, ...] = ()
    extras: Extras | None = None
    allocation: AllocationRule | None = None
    participant_amounts: tuple[tuple[ParticipantId, Money], ...] | None = None
    participant_breakdown: tuple[ParticipantBreakdown, ...] | None = None
    # Printed on the receipt; advisory only.
    expected_subtotal: Money | None = None
    expected_tax: Money | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.participants, ParticipantWeights):
            object.__setattr__(self, "participants", ParticipantWeights.of(self.participants))
        object.__setattr__(self, "items", tuple(self.items))
        if isinstance(self.participant_amounts, Mapping):
            object.__setattr__(self, "participant_amounts", tuple(self.participant_amounts.items()))
        if self.participant_breakdown is not None:
            object.__setattr__(self, "participant_breakdown", tuple(self.participant_breakdown))
        self._validate()

    def _validate(self) -> None:
        if not self.payer:
            raise ValidationError("payer", "cannot be empty")
        if not isinstance(self.amount, Money):
            raise ValidationError("amount", f"must be Money, got {type(self.amount).__name__}")
        if not self.amount.is_positive:
            raise ValidationError("amount", f"must be greater than 0, got {self.amount}")
        if self.description is not None and len(self.description) > MAX_DESCRIPTION_LENGTH:
            raise ValidationError("description", f"cannot exceed {MAX_DESCRIPTION_LENGTH} characters")

        if self.split_type == SplitType.EQUAL:
            if not self.participants:
                raise ValidationError("participants", "at least one participant is required")
            if any(w != 1 for _, w in self.participants.items()):
                raise ValidationError("participants", "equal split requires all weights to be 1")
        elif self.split_type == SplitType.WEIGHTED:
            if not self.participants:
                raise ValidationError("participants", "at least one participant is required")
            if any(w <= 0 for _, w in self.participants.items()):
                raise ValidationError("participants", "weighted split requires all weights to be greater than 0")
        elif self.split_type == SplitType.ITEMIZED:
            if not self.items:
                raise ValidationError("items", "itemized split requires at least one item")
            self._validate_itemized_currency()
        else:
            raise ValidationError("split_type", f"unknown split type {self.split_type!r}")

    def _validate_itemized_currency(self) -> None:
        currency = self.amount.currency
        for item in self.items:
            if item.unit_price.currency != currency:
                raise ValidationError(
                    f"item[{item.id}].unit_price",
                    f"currency {item.unit_price.currency} differs from expense currency {currency}",
                )
        if self.extras is not None:
            for label, amount in self.extras.fixed_amounts():
                if amount.currency != currency:
                    raise ValidationError(
                        f"{label}.amount",
                        f"currency {amount.currency} differs from expense currency {currency}",
                    )
        for label, advisory in (("expected_subtotal", self.expected_subtotal), ("expected_tax", self.expected_tax)):
            if advisory is not None and advisory.currency != currency:
                raise ValidationError(
                    label, f"currency {advisory.currency} differs from expense currency {currency}"
                )
        for participant_id, amount in self.participant_amounts or ():
            if amount.currency != currency:
                raise ValidationError(
                    f"participant_amounts[{participant_id}]",
                    f"currency {amount.currency} differs from expense currency {currency}",
                )

    @property
    def currency(self) -> Currency:
        return self.amount.currency

    @property
    def persisted_amounts(self) -> dict[ParticipantId, Money] | None:
        """Persisted itemized amounts as an ordered dict, or None."""
        if not self.participant_amounts:
            return None
        return dict(self.participant_amounts)

    def involves(self, participant_id: ParticipantId) -> bool:
        """True if the participant paid for or is named on this expense."""
        if self.payer == participant_id:
            return True
        if participant_id in self.participants:
            return True
        if self.split_type == SplitType.ITEMIZED:
            if any(pid == participant_id for pid, _ in self.participant_amounts or ()):
                return True
            return any(participant_id in item.assignment.participants for item in self.items)
        return False
