"""
Typed exception hierarchy for the settlement engine.

Every error has a typed class (catch by type, not by message), a ``code``
class attribute (machine-readable, API-safe) and structured attributes
carrying the data needed to report it.

    SettlementEngineError (base)
    |
    +-- ValidationError             malformed input, caught before computation
    +-- DivisionByZeroError         degenerate split (no participants, zero weight)
    +-- CurrencyMismatchError       operation mixed two currencies
    +-- ReconciliationError         allocated shares do not add up to the amount
    +-- BalanceInvariantViolation   net balances do not sum to zero

Category        | Code                          | When Raised
----------------|-------------------------------|---------------------------------------
Validation      | VALIDATION_ERROR              | Non-positive amount, empty participant
                |                               | set, bad weight, unassigned line item,
                |                               | out-of-range extra rate
Arithmetic      | DIVISION_BY_ZERO              | Zero total weight / zero participants
Currency        | CURRENCY_MISMATCH             | Money arithmetic across currencies
Reconciliation  | RECONCILIATION_ERROR          | Itemized total drifted beyond tolerance
Balance         | BALANCE_INVARIANT_VIOLATION   | Sum of net balances is not zero

ValidationError is a user-input problem. DivisionByZeroError points at an
upstream check that should have rejected the input first. The last two are
engine defects: the computation is discarded and never returned with wrong
numbers. Nothing here is transient, so nothing is retried.

Handling pattern:

    try:
        result = calculator.calculate(trip_id, expenses, currency)
    except ValidationError as e:
        api_response(code=e.code, field=e.field, reason=e.reason)
    except BalanceInvariantViolation as e:
        alert_engineering(e.code, total=e.total, currency=e.currency)
"""


class SettlementEngineError(Exception):
    """
    Base exception for all settlement engine errors.

    All subclasses carry a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "SETTLEMENT_ENGINE_ERROR"


class ValidationError(SettlementEngineError):
    """Input rejected before any computation took place."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid {field}: {reason}")


class DivisionByZeroError(SettlementEngineError):
    """A split was asked to divide by zero participants or zero total weight."""

    code: str = "DIVISION_BY_ZERO"

    def __init__(self, operation: str, detail: str = ""):
        self.operation = operation
        self.detail = detail
        message = f"Division by zero in {operation}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class CurrencyMismatchError(SettlementEngineError, ValueError):
    """Two monetary values in different currencies were combined."""

    code: str = "CURRENCY_MISMATCH"

    def __init__(self, operation: str, left: str, right: str):
        self.operation = operation
        self.left = left
        self.right = right
        super().__init__(
            f"Cannot {operation} Money with different currencies: {left} and {right}"
        )


class ReconciliationError(SettlementEngineError):
    """
    Allocated participant amounts do not reconcile with the expense amount.

    Indicates an allocation bug or an inconsistent receipt, never a rounding
    artefact within tolerance.
    """

    code: str = "RECONCILIATION_ERROR"

    def __init__(
        self,
        expense_id: str | None,
        expected: str,
        actual: str,
        tolerance: str,
        currency: str,
    ):
        self.expense_id = expense_id
        self.expected = expected
        self.actual = actual
        self.tolerance = tolerance
        self.currency = currency
        super().__init__(
            f"Allocated total {actual} {currency} does not reconcile with "
            f"amount {expected} {currency} (tolerance {tolerance}) "
            f"for expense {expense_id}"
        )


class BalanceInvariantViolation(SettlementEngineError):
    """Net balances across a trip do not sum to zero for a currency."""

    code: str = "BALANCE_INVARIANT_VIOLATION"

    def __init__(self, trip_id: str | None, total: str, tolerance: str, currency: str):
        self.trip_id = trip_id
        self.total = total
        self.tolerance = tolerance
        self.currency = currency
        super().__init__(
            f"Net balances for trip {trip_id} sum to {total} {currency}, "
            f"expected 0 (tolerance {tolerance})"
        )
