"""Portfolio repository for ownership-scoped portfolio queries."""

from uuid import UUID

from sqlalchemy import select, update

from portfolio_ledger.models.portfolio import Portfolio
from portfolio_ledger.repositories.base import BaseRepository


class PortfolioRepository(BaseRepository[Portfolio]):
    """Repository for Portfolio model.

    Example:
        >>> repo = PortfolioRepository(Portfolio, db)
        >>> portfolios = await repo.list_for_owner(user.id)
    """

    async def get_for_update(self, portfolio_id: UUID) -> Portfolio | None:
        """Load a portfolio and take a row lock on it.

        The lock is held until the surrounding transaction ends, so any
        validation done afterwards sees the ledger as of this moment.
        SQLite ignores ``FOR UPDATE``; there ``portfolio_write_lock`` is what
        serializes writers.

        Args:
            portfolio_id: Portfolio primary key

        Returns:
            Portfolio if found, None otherwise
        """
        result = await self.db.execute(
            select(Portfolio).where(Portfolio.id == portfolio_id).with_for_update()
        )
        return result.scalar_one_or_none()

    async def list_for_owner(
        self,
        owner_id: int,
        *,
        skip: int = 0,
        limit: int = 100,
    ) -> list[Portfolio]:
        """List an owner's portfolios, default first, then oldest first.

        Args:
            owner_id: Owning user's id
            skip: Number of records to skip (offset)
            limit: Maximum number of records to return

        Returns:
            List of portfolios
        """
        result = await self.db.execute(
            select(Portfolio)
            .where(Portfolio.owner_id == owner_id)
            .order_by(Portfolio.is_default.desc(), Portfolio.created_at.asc())
            .offset(skip)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def clear_default(self, owner_id: int, *, exclude_id: UUID | None = None) -> None:
        """Unset ``is_default`` on every portfolio of an owner.

        Runs before a portfolio is flagged default so the partial unique
        index on (owner_id) WHERE is_default never sees two rows.

        Args:
            owner_id: Owning user's id
            exclude_id: Portfolio to leave untouched
        """
        stmt = (
            update(Portfolio)
            .where(Portfolio.owner_id == owner_id, Portfolio.is_default.is_(True))
            .values(is_default=False)
            .execution_options(synchronize_session="fetch")
        )
        if exclude_id is not None:
            stmt = stmt.where(Portfolio.id != exclude_id)
        await self.db.execute(stmt)
        await self.db.flush()
