"""Portfolio model: an owner's container for a ledger of transactions."""

import uuid

from sqlalchemy import Boolean, ForeignKey, Index, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from portfolio_ledger.core.constants import LedgerConstants
from portfolio_ledger.db.base import Base, TimestampMixin


class Portfolio(Base, TimestampMixin):
    """Investment portfolio owned by a single user."""

    __tablename__ = "portfolios"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4, index=True)
    owner_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    name: Mapped[str] = mapped_column(String(LedgerConstants.MAX_PORTFOLIO_NAME_LENGTH))
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    currency: Mapped[str] = mapped_column(
        String(LedgerConstants.CURRENCY_CODE_LENGTH), default=LedgerConstants.DEFAULT_CURRENCY
    )
    is_default: Mapped[bool] = mapped_column(Boolean, default=False)

    # Relationships
    owner: Mapped["User"] = relationship("User", back_populates="portfolios")  # noqa: F821
    transactions: Mapped[list["PortfolioTransaction"]] = relationship(  # noqa: F821
        "PortfolioTransaction",
        back_populates="portfolio",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    targets: Mapped[list["HoldingTarget"]] = relationship(  # noqa: F821
        "HoldingTarget",
        back_populates="portfolio",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    # At most one default portfolio per owner
    __table_args__ = (
        Index(
            "uq_portfolios_owner_default",
            "owner_id",
            unique=True,
            postgresql_where=text("is_default"),
            sqlite_where=text("is_default"),
        ),
    )
