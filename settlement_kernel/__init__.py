"""
Settlement Kernel

Exact-money foundation for the expense-splitting and settlement engine:
- ISO 4217 currencies with minor-unit precision
- Decimal-only Money value objects with lossless minor-unit conversion
- Immutable expense, line item and extras records
- Typed exception hierarchy
- Structured JSON logging
"""

__version__ = "0.1.0"
