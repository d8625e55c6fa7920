"""Ledger entry model.

Rows are append-only. ``total_amount`` is stored as the non-negative magnitude
the caller submitted; the cash direction comes from ``transaction_type`` and
is applied only by ``services.projector.BalanceProjector``.
"""

import enum
import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, Enum, ForeignKey, Index, Integer, Numeric, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from portfolio_ledger.core.constants import LedgerConstants
from portfolio_ledger.db.base import Base, CreatedAtMixin


class TransactionType(str, enum.Enum):
    """Kinds of ledger movement."""

    BUY = "BUY"
    SELL = "SELL"
    DEPOSIT = "DEPOSIT"
    WITHDRAW = "WITHDRAW"
    DIVIDEND = "DIVIDEND"

    @property
    def is_trade(self) -> bool:
        return self in (TransactionType.BUY, TransactionType.SELL)

    @property
    def is_cash_only(self) -> bool:
        return self in (TransactionType.DEPOSIT, TransactionType.WITHDRAW)


class PortfolioTransaction(Base, CreatedAtMixin):
    """Immutable ledger entry for a portfolio."""

    __tablename__ = "portfolio_transactions"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4, index=True)
    portfolio_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("portfolios.id", ondelete="CASCADE"), index=True
    )
    # Per-portfolio insertion order; breaks ties between equal transaction dates
    sequence: Mapped[int] = mapped_column(Integer)
    transaction_type: Mapped[TransactionType] = mapped_column(
        Enum(TransactionType, name="portfolio_transaction_type"), index=True
    )
    symbol: Mapped[str | None] = mapped_column(
        String(LedgerConstants.MAX_SYMBOL_LENGTH), nullable=True, index=True
    )
    quantity: Mapped[Decimal | None] = mapped_column(Numeric(18, 8), nullable=True)
    price_per_unit: Mapped[Decimal | None] = mapped_column(Numeric(18, 4), nullable=True)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(18, 4))
    fees: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"))
    transaction_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    portfolio: Mapped["Portfolio"] = relationship(  # noqa: F821
        "Portfolio", back_populates="transactions"
    )

    __table_args__ = (
        UniqueConstraint("portfolio_id", "sequence", name="uq_portfolio_transactions_sequence"),
        Index("ix_portfolio_transactions_portfolio_date", "portfolio_id", "transaction_date"),
    )
