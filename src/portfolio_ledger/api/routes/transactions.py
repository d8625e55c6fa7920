"""Ledger endpoints: list, add and bulk import transactions."""

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Request, status

from portfolio_ledger.core.config import settings
from portfolio_ledger.core.deps import CurrentActiveUser, DbSession
from portfolio_ledger.core.rate_limit import limiter
from portfolio_ledger.models.transaction import PortfolioTransaction, TransactionType
from portfolio_ledger.schemas.transaction import (
    ImportResult,
    TransactionCreate,
    TransactionFilters,
    TransactionImportRequest,
    TransactionResponse,
)
from portfolio_ledger.services import portfolio_service
from portfolio_ledger.services.bulk_import import BulkImportCoordinator

router = APIRouter()


@router.get("", response_model=list[TransactionResponse])
async def list_transactions(
    portfolio_id: UUID,
    current_user: CurrentActiveUser,
    db: DbSession,
    transaction_type: TransactionType | None = None,
    symbol: str | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
) -> list[PortfolioTransaction]:
    """
    List a portfolio's transactions, newest first.

    Args:
        transaction_type: Only this type
        symbol: Only this symbol (case-insensitive)
        start_date: Inclusive lower bound on transaction_date
        end_date: Inclusive upper bound on transaction_date
    """
    filters = TransactionFilters(
        transaction_type=transaction_type,
        symbol=symbol,
        start_date=start_date,
        end_date=end_date,
    )
    return await portfolio_service.list_transactions(db, portfolio_id, current_user.id, filters)


@router.post("", response_model=TransactionResponse, status_code=status.HTTP_201_CREATED)
async def add_transaction(
    portfolio_id: UUID,
    transaction_in: TransactionCreate,
    current_user: CurrentActiveUser,
    db: DbSession,
) -> PortfolioTransaction:
    """
    Record one transaction.

    The transaction is checked against the portfolio's balance at its date:
    a BUY or WITHDRAW needs the cash, a SELL needs the units.

    Raises:
        PortfolioValidationError: 400 with ``field`` and ``code``
        InsufficientFundsError: 400 with ``shortfall``
    """
    return await portfolio_service.add_transaction(
        db, portfolio_id, current_user.id, transaction_in
    )


@router.post("/import", response_model=ImportResult, status_code=status.HTTP_201_CREATED)
@limiter.limit(settings.IMPORT_RATE_LIMIT)
async def import_transactions(
    request: Request,
    portfolio_id: UUID,
    import_in: TransactionImportRequest,
    current_user: CurrentActiveUser,
    db: DbSession,
) -> ImportResult:
    """
    Import a batch of historical transactions, all or nothing.

    Raises:
        BatchImportError: 400 naming the failing row; nothing is imported
    """
    coordinator = BulkImportCoordinator(db)
    return await coordinator.import_batch(portfolio_id, current_user.id, import_in.transactions)
