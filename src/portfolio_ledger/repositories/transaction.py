"""Ledger store: append-only persistence of portfolio transactions.

Entries are never updated or deleted one by one. A correction is a new,
offsetting entry; the only removal path is ``remove_all``, which runs in the
same unit of work as the portfolio delete.
"""

import logging
from collections.abc import AsyncIterator
from uuid import UUID

from sqlalchemy import Select, delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from portfolio_ledger.core.exceptions import PersistenceError
from portfolio_ledger.db.base import ensure_utc
from portfolio_ledger.models.transaction import PortfolioTransaction
from portfolio_ledger.repositories.base import BaseRepository
from portfolio_ledger.schemas.transaction import TransactionDraft, TransactionFilters

logger = logging.getLogger(__name__)


def _ledger_query(
    portfolio_id: UUID,
    filters: TransactionFilters | None,
    *,
    newest_first: bool = False,
) -> Select:
    stmt = select(PortfolioTransaction).where(PortfolioTransaction.portfolio_id == portfolio_id)

    if filters is not None:
        if filters.transaction_type is not None:
            stmt = stmt.where(PortfolioTransaction.transaction_type == filters.transaction_type)
        if filters.symbol:
            stmt = stmt.where(PortfolioTransaction.symbol == filters.symbol.upper())
        if filters.start_date is not None:
            stmt = stmt.where(
                PortfolioTransaction.transaction_date >= ensure_utc(filters.start_date)
            )
        if filters.end_date is not None:
            stmt = stmt.where(PortfolioTransaction.transaction_date <= ensure_utc(filters.end_date))

    if newest_first:
        return stmt.order_by(
            PortfolioTransaction.transaction_date.desc(), PortfolioTransaction.sequence.desc()
        )
    return stmt.order_by(
        PortfolioTransaction.transaction_date.asc(), PortfolioTransaction.sequence.asc()
    )


class LedgerView:
    """Lazy, restartable view over a portfolio's ledger.

    No query runs until iteration starts, and every ``async for`` re-runs it,
    so two passes over the same view both see the committed ledger at the
    time they begin.

    Example:
        >>> view = repo.iter_entries(portfolio_id)
        >>> async for entry in view:
        ...     print(entry.sequence, entry.transaction_type)
    """

    def __init__(self, db: AsyncSession, stmt: Select):
        self._db = db
        self._stmt = stmt

    async def __aiter__(self) -> AsyncIterator[PortfolioTransaction]:
        try:
            result = await self._db.execute(self._stmt)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to read ledger: {e}") from e
        for entry in result.scalars():
            yield entry

    async def to_list(self) -> list[PortfolioTransaction]:
        return [entry async for entry in self]


class TransactionRepository(BaseRepository[PortfolioTransaction]):
    """Repository for PortfolioTransaction rows.

    Example:
        >>> ledger = TransactionRepository(PortfolioTransaction, db)
        >>> entry = await ledger.append(portfolio_id, draft)
        >>> entries = await ledger.list_entries(portfolio_id)
    """

    async def next_sequence(self, portfolio_id: UUID) -> int:
        """Next per-portfolio insertion sequence number (starts at 1)."""
        result = await self.db.execute(
            select(func.max(PortfolioTransaction.sequence)).where(
                PortfolioTransaction.portfolio_id == portfolio_id
            )
        )
        current = result.scalar_one_or_none()
        return (current or 0) + 1

    async def append(self, portfolio_id: UUID, draft: TransactionDraft) -> PortfolioTransaction:
        """Persist a validated draft as a new ledger entry.

        Assigns id, created_at and the next sequence. The caller must hold the
        portfolio write lock so two appends cannot claim the same sequence.

        Args:
            portfolio_id: Portfolio the entry belongs to
            draft: Structurally valid draft from ``TransactionValidator``

        Returns:
            The persisted entry (flushed, not committed)

        Raises:
            PersistenceError: If the insert fails
        """
        try:
            sequence = await self.next_sequence(portfolio_id)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to read ledger: {e}") from e

        entry = await self.create(
            obj_in={
                **draft.model_dump(),
                "portfolio_id": portfolio_id,
                "sequence": sequence,
            }
        )
        logger.debug(
            f"Appended {entry.transaction_type.value} #{sequence} to portfolio {portfolio_id}"
        )
        return entry

    async def list_entries(
        self,
        portfolio_id: UUID,
        filters: TransactionFilters | None = None,
        *,
        newest_first: bool = False,
    ) -> list[PortfolioTransaction]:
        """List ledger entries, oldest first unless ``newest_first`` is set.

        Args:
            portfolio_id: Portfolio whose ledger to read
            filters: Optional type / symbol / inclusive date range filters
            newest_first: Reverse the order for display

        Returns:
            Entries ordered by (transaction_date, sequence)

        Raises:
            PersistenceError: If the query fails
        """
        stmt = _ledger_query(portfolio_id, filters, newest_first=newest_first)
        try:
            result = await self.db.execute(stmt)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to read ledger: {e}") from e
        return list(result.scalars().all())

    def iter_entries(
        self,
        portfolio_id: UUID,
        filters: TransactionFilters | None = None,
    ) -> LedgerView:
        """Lazy, oldest-first view of the ledger. See ``LedgerView``."""
        return LedgerView(self.db, _ledger_query(portfolio_id, filters))

    async def remove_all(self, portfolio_id: UUID) -> int:
        """Delete every entry of a portfolio. Only used when the portfolio goes too.

        Returns:
            Number of rows removed
        """
        try:
            result = await self.db.execute(
                delete(PortfolioTransaction).where(
                    PortfolioTransaction.portfolio_id == portfolio_id
                )
            )
            await self.db.flush()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to remove ledger: {e}") from e
        return result.rowcount or 0
