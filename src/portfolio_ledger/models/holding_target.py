"""Target allocation per held symbol, used by the rebalancing engine."""

import uuid
from decimal import Decimal

from sqlalchemy import ForeignKey, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from portfolio_ledger.core.constants import LedgerConstants
from portfolio_ledger.db.base import Base, TimestampMixin


class HoldingTarget(Base, TimestampMixin):
    """Desired share of portfolio value for one symbol (10.00 = 10%)."""

    __tablename__ = "portfolio_holding_targets"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    portfolio_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("portfolios.id", ondelete="CASCADE"), index=True
    )
    symbol: Mapped[str] = mapped_column(String(LedgerConstants.MAX_SYMBOL_LENGTH))
    target_allocation_percent: Mapped[Decimal] = mapped_column(Numeric(5, 2))

    portfolio: Mapped["Portfolio"] = relationship(  # noqa: F821
        "Portfolio", back_populates="targets"
    )

    __table_args__ = (
        UniqueConstraint("portfolio_id", "symbol", name="uq_portfolio_holding_targets_symbol"),
    )
