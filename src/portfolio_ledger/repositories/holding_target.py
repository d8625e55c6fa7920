"""Repository for per-symbol target allocations."""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import delete, select

from portfolio_ledger.models.holding_target import HoldingTarget
from portfolio_ledger.repositories.base import BaseRepository


class HoldingTargetRepository(BaseRepository[HoldingTarget]):
    """Repository for HoldingTarget model."""

    async def get_for_symbol(self, portfolio_id: UUID, symbol: str) -> HoldingTarget | None:
        result = await self.db.execute(
            select(HoldingTarget).where(
                HoldingTarget.portfolio_id == portfolio_id,
                HoldingTarget.symbol == symbol,
            )
        )
        return result.scalar_one_or_none()

    async def targets_by_symbol(self, portfolio_id: UUID) -> dict[str, Decimal]:
        """Map of symbol to target allocation percent for a portfolio."""
        result = await self.db.execute(
            select(HoldingTarget.symbol, HoldingTarget.target_allocation_percent).where(
                HoldingTarget.portfolio_id == portfolio_id
            )
        )
        return {symbol: Decimal(percent) for symbol, percent in result.all()}

    async def set_target(
        self,
        portfolio_id: UUID,
        symbol: str,
        percent: Decimal | None,
    ) -> HoldingTarget | None:
        """Upsert or clear a symbol's target.

        Args:
            portfolio_id: Portfolio the target belongs to
            symbol: Upper-cased ticker symbol
            percent: Target percent, or None to clear it

        Returns:
            The stored target, or None when it was cleared
        """
        existing = await self.get_for_symbol(portfolio_id, symbol)

        if percent is None:
            if existing is not None:
                await self.db.delete(existing)
                await self.db.flush()
            return None

        if existing is None:
            return await self.create(
                obj_in={
                    "portfolio_id": portfolio_id,
                    "symbol": symbol,
                    "target_allocation_percent": percent,
                }
            )
        return await self.update(db_obj=existing, obj_in={"target_allocation_percent": percent})

    async def remove_all(self, portfolio_id: UUID) -> int:
        result = await self.db.execute(
            delete(HoldingTarget).where(HoldingTarget.portfolio_id == portfolio_id)
        )
        await self.db.flush()
        return result.rowcount or 0
