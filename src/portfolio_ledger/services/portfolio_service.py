"""Service layer for portfolios and their ledgers.

Every public function takes the owner's user id and resolves the portfolio
through ``get_owned_portfolio``, so a portfolio belonging to someone else is
never read or written. Writes run inside ``transactional`` while holding the
portfolio write lock.
"""

import logging
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from portfolio_ledger.core.constants import LedgerConstants, RebalanceConstants
from portfolio_ledger.core.exceptions import (
    PortfolioAccessError,
    PortfolioNotFoundError,
    PortfolioValidationError,
    ValidationCode,
)
from portfolio_ledger.db.base import utcnow
from portfolio_ledger.db.session import portfolio_write_lock, read_only_transaction, transactional
from portfolio_ledger.models.holding_target import HoldingTarget
from portfolio_ledger.models.portfolio import Portfolio
from portfolio_ledger.models.transaction import PortfolioTransaction
from portfolio_ledger.repositories.holding_target import HoldingTargetRepository
from portfolio_ledger.repositories.portfolio import PortfolioRepository
from portfolio_ledger.repositories.transaction import TransactionRepository
from portfolio_ledger.schemas.holding import HoldingView, TargetAllocationResponse
from portfolio_ledger.schemas.portfolio import PortfolioCreate, PortfolioSummary, PortfolioUpdate
from portfolio_ledger.schemas.transaction import TransactionCreate, TransactionFilters
from portfolio_ledger.services.pricing import PriceProvider
from portfolio_ledger.services.projector import ZERO, BalanceProjector, net_deposit_delta
from portfolio_ledger.services.validator import TransactionValidator, ValidationMode
from portfolio_ledger.services.valuation import (
    HUNDRED,
    fetch_quotes,
    round_percent,
    value_projection,
)

logger = logging.getLogger(__name__)


def _check_name(name: str | None) -> str:
    if name is None or not name.strip():
        raise PortfolioValidationError(
            "name is required", field="name", code=ValidationCode.REQUIRED
        )
    name = name.strip()
    if len(name) > LedgerConstants.MAX_PORTFOLIO_NAME_LENGTH:
        raise PortfolioValidationError(
            f"name must be {LedgerConstants.MAX_PORTFOLIO_NAME_LENGTH} characters or less",
            field="name",
            code=ValidationCode.TOO_LONG,
        )
    return name


def _check_currency(currency: str | None) -> str:
    code = (currency or "").strip().upper()
    if len(code) != LedgerConstants.CURRENCY_CODE_LENGTH or not code.isalpha():
        raise PortfolioValidationError(
            "currency must be a 3-letter code", field="currency", code=ValidationCode.INVALID_VALUE
        )
    return code


async def get_owned_portfolio(
    db: AsyncSession,
    portfolio_id: UUID,
    owner_id: int,
    *,
    for_update: bool = False,
) -> Portfolio:
    """Load a portfolio and make sure it belongs to ``owner_id``.

    Args:
        db: Database session
        portfolio_id: Portfolio primary key
        owner_id: Requesting user's id
        for_update: Take a row lock (writers only)

    Returns:
        The portfolio

    Raises:
        PortfolioNotFoundError: No such portfolio
        PortfolioAccessError: Portfolio belongs to another user
    """
    repo = PortfolioRepository(Portfolio, db)
    portfolio = await (repo.get_for_update(portfolio_id) if for_update else repo.get(portfolio_id))
    if portfolio is None:
        raise PortfolioNotFoundError(portfolio_id)
    if portfolio.owner_id != owner_id:
        logger.warning(f"User {owner_id} denied access to portfolio {portfolio_id}")
        raise PortfolioAccessError()
    return portfolio


# ============================================================================
# Portfolio CRUD
# ============================================================================


async def create_portfolio(db: AsyncSession, owner_id: int, data: PortfolioCreate) -> Portfolio:
    """Create a portfolio for an owner.

    If ``is_default`` is set, the owner's other portfolios lose the flag in
    the same unit of work.

    Raises:
        PortfolioValidationError: Name missing or too long, bad currency code
    """
    values = {
        "owner_id": owner_id,
        "name": _check_name(data.name),
        "description": data.description,
        "currency": _check_currency(data.currency),
        "is_default": data.is_default,
    }
    repo = PortfolioRepository(Portfolio, db)

    async with transactional(db):
        if data.is_default:
            await repo.clear_default(owner_id)
        portfolio = await repo.create(obj_in=values)

    logger.info(f"Created portfolio {portfolio.id} for user {owner_id}")
    return portfolio


async def list_portfolios(
    db: AsyncSession,
    owner_id: int,
    *,
    skip: int = 0,
    limit: int = 100,
) -> list[Portfolio]:
    """List an owner's portfolios, default first, then oldest first."""
    async with read_only_transaction(db):
        repo = PortfolioRepository(Portfolio, db)
        return await repo.list_for_owner(owner_id, skip=skip, limit=limit)


async def get_portfolio(db: AsyncSession, portfolio_id: UUID, owner_id: int) -> Portfolio:
    return await get_owned_portfolio(db, portfolio_id, owner_id)


async def update_portfolio(
    db: AsyncSession,
    portfolio_id: UUID,
    owner_id: int,
    data: PortfolioUpdate,
) -> Portfolio:
    """Apply a partial update to a portfolio's metadata.

    Raises:
        PortfolioNotFoundError: No such portfolio
        PortfolioAccessError: Portfolio belongs to another user
        PortfolioValidationError: Invalid name or currency
    """
    changes = data.model_dump(exclude_unset=True)
    if "name" in changes:
        changes["name"] = _check_name(changes["name"])
    if "currency" in changes:
        changes["currency"] = _check_currency(changes["currency"])
    if changes.get("is_default") is None:
        changes.pop("is_default", None)

    repo = PortfolioRepository(Portfolio, db)
    async with portfolio_write_lock(portfolio_id):
        async with transactional(db):
            portfolio = await get_owned_portfolio(db, portfolio_id, owner_id, for_update=True)
            if changes.get("is_default"):
                await repo.clear_default(owner_id, exclude_id=portfolio_id)
            if changes:
                portfolio = await repo.update(db_obj=portfolio, obj_in=changes)

    return portfolio


async def delete_portfolio(db: AsyncSession, portfolio_id: UUID, owner_id: int) -> None:
    """Delete a portfolio together with its ledger and target allocations.

    Raises:
        PortfolioNotFoundError: No such portfolio
        PortfolioAccessError: Portfolio belongs to another user
    """
    async with portfolio_write_lock(portfolio_id):
        async with transactional(db):
            await get_owned_portfolio(db, portfolio_id, owner_id, for_update=True)
            removed = await TransactionRepository(PortfolioTransaction, db).remove_all(
                portfolio_id
            )
            await HoldingTargetRepository(HoldingTarget, db).remove_all(portfolio_id)
            await PortfolioRepository(Portfolio, db).delete(id=portfolio_id)

    logger.info(f"Deleted portfolio {portfolio_id} and {removed} ledger entries")


# ============================================================================
# Ledger
# ============================================================================


async def add_transaction(
    db: AsyncSession,
    portfolio_id: UUID,
    owner_id: int,
    payload: TransactionCreate,
    *,
    validator: TransactionValidator | None = None,
) -> PortfolioTransaction:
    """Validate a transaction in strict mode and append it to the ledger.

    A transaction submitted without a date is recorded at the current time.
    The portfolio stays locked from the balance check until commit, so two
    concurrent purchases cannot both spend the same cash.

    Args:
        db: Database session
        portfolio_id: Target portfolio
        owner_id: Requesting user's id
        payload: Submitted transaction
        validator: Validator to use (default: ``TransactionValidator()``)

    Returns:
        The persisted ledger entry

    Raises:
        PortfolioNotFoundError: No such portfolio
        PortfolioAccessError: Portfolio belongs to another user
        PortfolioValidationError: Structural rule broken
        InsufficientFundsError: Not enough cash or units
        PersistenceError: Storage failure
    """
    validator = validator or TransactionValidator()
    if payload.transaction_date is None or not str(payload.transaction_date).strip():
        payload = payload.model_copy(update={"transaction_date": utcnow()})

    ledger = TransactionRepository(PortfolioTransaction, db)
    async with portfolio_write_lock(portfolio_id):
        async with transactional(db):
            await get_owned_portfolio(db, portfolio_id, owner_id, for_update=True)
            history = await ledger.list_entries(portfolio_id)
            draft = validator.validate(payload, history, ValidationMode.STRICT)
            entry = await ledger.append(portfolio_id, draft)

    logger.info(
        f"Recorded {entry.transaction_type.value} {entry.symbol or ''} "
        f"{entry.total_amount} in portfolio {portfolio_id} (#{entry.sequence})"
    )
    return entry


async def list_transactions(
    db: AsyncSession,
    portfolio_id: UUID,
    owner_id: int,
    filters: TransactionFilters | None = None,
) -> list[PortfolioTransaction]:
    """List a portfolio's ledger, newest first."""
    async with read_only_transaction(db):
        await get_owned_portfolio(db, portfolio_id, owner_id)
        ledger = TransactionRepository(PortfolioTransaction, db)
        return await ledger.list_entries(portfolio_id, filters, newest_first=True)


# ============================================================================
# Holdings, targets and summary
# ============================================================================


async def get_holdings(
    db: AsyncSession,
    portfolio_id: UUID,
    owner_id: int,
    provider: PriceProvider,
) -> list[HoldingView]:
    """Projected holdings with target, price, weight and drift."""
    async with read_only_transaction(db):
        await get_owned_portfolio(db, portfolio_id, owner_id)
        ledger = TransactionRepository(PortfolioTransaction, db)
        projection = await BalanceProjector(ledger).project_as_of(portfolio_id)
        targets = await HoldingTargetRepository(HoldingTarget, db).targets_by_symbol(portfolio_id)

    quotes = await fetch_quotes(provider, projection.holdings)
    return value_projection(projection, quotes, targets).holdings


async def set_target_allocation(
    db: AsyncSession,
    portfolio_id: UUID,
    owner_id: int,
    symbol: str,
    percent: Decimal | None,
) -> TargetAllocationResponse:
    """Set or clear the target allocation of a currently held symbol.

    Raises:
        PortfolioValidationError: Percent outside 0..100, or the symbol is
            not currently held (code ``NOT_FOUND``)
    """
    symbol = symbol.strip().upper()
    if percent is not None and not (
        RebalanceConstants.MIN_TARGET_PERCENT <= percent <= RebalanceConstants.MAX_TARGET_PERCENT
    ):
        raise PortfolioValidationError(
            "target_allocation_percent must be between 0 and 100",
            field="target_allocation_percent",
            code=ValidationCode.INVALID_VALUE,
        )

    ledger = TransactionRepository(PortfolioTransaction, db)
    targets = HoldingTargetRepository(HoldingTarget, db)
    async with portfolio_write_lock(portfolio_id):
        async with transactional(db):
            await get_owned_portfolio(db, portfolio_id, owner_id, for_update=True)
            projection = await BalanceProjector(ledger).project_as_of(portfolio_id)
            if projection.quantity(symbol) <= ZERO:
                raise PortfolioValidationError(
                    f"Holding not found: {symbol}", field="symbol", code=ValidationCode.NOT_FOUND
                )
            target = await targets.set_target(portfolio_id, symbol, percent)

    return TargetAllocationResponse(
        symbol=symbol,
        target_allocation_percent=target.target_allocation_percent if target else None,
    )


async def get_summary(
    db: AsyncSession,
    portfolio_id: UUID,
    owner_id: int,
    provider: PriceProvider,
    *,
    as_of: datetime | None = None,
) -> PortfolioSummary:
    """Cash, holdings value, equity and return on net deposits."""
    async with read_only_transaction(db):
        portfolio = await get_owned_portfolio(db, portfolio_id, owner_id)
        ledger = TransactionRepository(PortfolioTransaction, db)
        entries = await ledger.list_entries(portfolio_id, TransactionFilters(end_date=as_of))

    projector = BalanceProjector()
    projection = projector.fold(entries)
    net_deposits = sum((net_deposit_delta(entry) for entry in entries), ZERO)

    quotes = await fetch_quotes(provider, projection.holdings)
    valuation = value_projection(projection, quotes)
    total_return = valuation.total_value - net_deposits

    return PortfolioSummary(
        portfolio_id=portfolio.id,
        currency=portfolio.currency,
        cash_balance=valuation.cash_balance,
        holdings_value=valuation.holdings_value,
        total_equity=valuation.total_value,
        holdings_count=len(projection.holdings),
        net_deposits=net_deposits,
        total_return=total_return,
        total_return_percent=(
            round_percent(total_return / net_deposits * HUNDRED) if net_deposits > ZERO else None
        ),
        unpriced_symbols=valuation.unpriced_symbols,
    )
