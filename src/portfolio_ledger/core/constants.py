"""Application-wide constants for the ledger.

Values that operators may want to tune live in ``core.config.Settings``;
the ones here are fixed by the data model or the storage schema.
"""

from decimal import Decimal


class LedgerConstants:
    """Constants for transaction storage and validation."""

    # Column widths from the portfolio_transactions table
    MAX_SYMBOL_LENGTH = 10
    MAX_NOTES_LENGTH = 500  # Longer notes are truncated, not rejected

    # Scale of portfolio_transactions.total_amount
    AMOUNT_PRECISION = Decimal("0.0001")

    # Portfolio metadata limits
    MAX_PORTFOLIO_NAME_LENGTH = 255
    CURRENCY_CODE_LENGTH = 3
    DEFAULT_CURRENCY = "USD"


class RebalanceConstants:
    """Constants for rebalancing suggestions."""

    # Suggested share counts are floored to this precision
    QUANTITY_PRECISION = Decimal("0.0001")

    # Percentages in responses are rounded to this precision
    PERCENT_PRECISION = Decimal("0.0001")

    MIN_TARGET_PERCENT = Decimal("0")
    MAX_TARGET_PERCENT = Decimal("100")


class APIConstants:
    """Constants for API behavior, limits, and defaults."""

    # Pagination defaults for list endpoints
    DEFAULT_PAGE_SIZE = 100
    MAX_PAGE_SIZE = 1000
