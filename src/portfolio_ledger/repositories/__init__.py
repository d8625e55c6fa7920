"""Repository layer for database operations.

This package centralizes all database access. Repositories flush but never
commit; services wrap their writes in ``db.session.transactional``.

Repositories:
    - BaseRepository: Generic CRUD operations for any model
    - UserRepository: User lookups for authentication
    - PortfolioRepository: Ownership-scoped portfolio queries and row locks
    - TransactionRepository: Append-only ledger store
    - HoldingTargetRepository: Per-symbol target allocations

Usage:
    >>> from portfolio_ledger.repositories import TransactionRepository
    >>> from portfolio_ledger.models import PortfolioTransaction
    >>>
    >>> ledger = TransactionRepository(PortfolioTransaction, db)
    >>> entries = await ledger.list_entries(portfolio_id)
"""

from portfolio_ledger.repositories.base import BaseRepository
from portfolio_ledger.repositories.holding_target import HoldingTargetRepository
from portfolio_ledger.repositories.portfolio import PortfolioRepository
from portfolio_ledger.repositories.transaction import LedgerView, TransactionRepository
from portfolio_ledger.repositories.user import UserRepository

__all__ = [
    "BaseRepository",
    "HoldingTargetRepository",
    "LedgerView",
    "PortfolioRepository",
    "TransactionRepository",
    "UserRepository",
]
