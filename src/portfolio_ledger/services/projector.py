"""Balance projector: derives cash and holdings by folding the ledger.

Nothing about a portfolio's balance is stored. Every read of cash or holdings
is a left fold of ``apply`` over the ledger in (transaction_date, sequence)
order, which makes ``apply`` the single place where the meaning of each
transaction type is defined:

    BUY       cash -= total_amount      holding += quantity
    SELL      cash += total_amount      holding -= quantity
    DEPOSIT   cash += total_amount
    WITHDRAW  cash -= total_amount
    DIVIDEND  cash += total_amount

For BUY and SELL, total_amount is the gross quantity x price_per_unit.
Fees are always taken out of cash on top of that, exactly once.
"""

import logging
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from types import MappingProxyType
from typing import Protocol, TypeVar
from uuid import UUID

from portfolio_ledger.db.base import ensure_utc
from portfolio_ledger.models.transaction import TransactionType
from portfolio_ledger.repositories.transaction import TransactionRepository
from portfolio_ledger.schemas.transaction import TransactionFilters

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


class LedgerEntry(Protocol):
    """Anything shaped like a ledger row: persisted entries and drafts alike."""

    transaction_type: TransactionType
    symbol: str | None
    quantity: Decimal | None
    total_amount: Decimal
    fees: Decimal
    transaction_date: datetime


EntryT = TypeVar("EntryT", bound=LedgerEntry)


@dataclass(frozen=True)
class Projection:
    """Cash balance and per-symbol quantities at some point in the ledger.

    Symbols whose quantity nets to zero are dropped from ``holdings``.
    """

    cash_balance: Decimal = ZERO
    holdings: Mapping[str, Decimal] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "holdings", MappingProxyType(dict(self.holdings)))

    def quantity(self, symbol: str) -> Decimal:
        return self.holdings.get(symbol, ZERO)


def cash_delta(entry: LedgerEntry) -> Decimal:
    """Signed effect of an entry on cash, fees included."""
    amount = entry.total_amount or ZERO
    fees = entry.fees or ZERO
    if entry.transaction_type in (TransactionType.BUY, TransactionType.WITHDRAW):
        return -amount - fees
    return amount - fees


def net_deposit_delta(entry: LedgerEntry) -> Decimal:
    """Signed effect of an entry on the money the owner has put in."""
    if entry.transaction_type == TransactionType.DEPOSIT:
        return entry.total_amount
    if entry.transaction_type == TransactionType.WITHDRAW:
        return -entry.total_amount
    return ZERO


def holding_delta(entry: LedgerEntry) -> Decimal:
    """Signed effect of an entry on its symbol's quantity."""
    if entry.transaction_type == TransactionType.BUY:
        return entry.quantity or ZERO
    if entry.transaction_type == TransactionType.SELL:
        return -(entry.quantity or ZERO)
    return ZERO


class BalanceProjector:
    """Folds ledger entries into projections.

    The pure methods (``apply``, ``fold``, ``replay``, ``order``) work on any
    iterable of entries. ``project_as_of`` needs a ledger store to read from.

    Example:
        >>> projector = BalanceProjector(ledger)
        >>> projection = await projector.project_as_of(portfolio_id)
        >>> projection.cash_balance, dict(projection.holdings)
        (Decimal('500.0000'), {'XYZ': Decimal('10.00000000')})
    """

    def __init__(self, ledger: TransactionRepository | None = None):
        self.ledger = ledger

    @staticmethod
    def apply(projection: Projection, entry: LedgerEntry) -> Projection:
        """Return the projection that results from applying one entry."""
        holdings = dict(projection.holdings)

        delta = holding_delta(entry)
        if delta and entry.symbol:
            quantity = holdings.get(entry.symbol, ZERO) + delta
            if quantity == ZERO:
                holdings.pop(entry.symbol, None)
            else:
                holdings[entry.symbol] = quantity

        return Projection(
            cash_balance=projection.cash_balance + cash_delta(entry),
            holdings=holdings,
        )

    @staticmethod
    def order(entries: Iterable[EntryT]) -> list[EntryT]:
        """Sort by transaction date ascending, keeping insertion order on ties."""
        return sorted(
            entries,
            key=lambda e: (ensure_utc(e.transaction_date), getattr(e, "sequence", 0) or 0),
        )

    def replay(
        self,
        entries: Iterable[LedgerEntry],
        start: Projection | None = None,
    ) -> Iterator[Projection]:
        """Yield the running projection after each entry, in the given order."""
        state = start or Projection()
        for entry in entries:
            state = self.apply(state, entry)
            yield state

    def fold(
        self,
        entries: Iterable[LedgerEntry],
        start: Projection | None = None,
    ) -> Projection:
        """Projection after applying every entry, in the given order."""
        state = start or Projection()
        for state in self.replay(entries, start):
            pass
        return state

    async def project_as_of(
        self,
        portfolio_id: UUID,
        as_of: datetime | None = None,
    ) -> Projection:
        """Project cash and holdings from every entry dated at or before ``as_of``.

        Args:
            portfolio_id: Portfolio whose ledger to fold
            as_of: Inclusive cut-off; None means the whole ledger

        Returns:
            The folded projection
        """
        if self.ledger is None:
            raise RuntimeError("BalanceProjector.project_as_of needs a ledger store")

        state = Projection()
        count = 0
        async for entry in self.ledger.iter_entries(
            portfolio_id, TransactionFilters(end_date=as_of)
        ):
            state = self.apply(state, entry)
            count += 1

        logger.debug(f"Projected portfolio {portfolio_id} from {count} entries")
        return state
