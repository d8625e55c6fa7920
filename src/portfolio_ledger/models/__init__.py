"""ORM models.

Importing this package registers every table on ``Base.metadata``.
"""

from portfolio_ledger.models.holding_target import HoldingTarget
from portfolio_ledger.models.portfolio import Portfolio
from portfolio_ledger.models.transaction import PortfolioTransaction, TransactionType
from portfolio_ledger.models.user import User

__all__ = [
    "HoldingTarget",
    "Portfolio",
    "PortfolioTransaction",
    "TransactionType",
    "User",
]
