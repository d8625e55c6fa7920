"""Bulk import coordinator: all-or-nothing loading of historical transactions.

Every row is checked against the structural rules in
``ValidationMode.HISTORICAL_REPLAY`` first, and every failing row is reported
together. Intermediate balances are not checked, since imported history often
starts mid-stream. Only a batch with no failing rows is sorted by transaction
date (stable on submission order) and appended.
"""

import logging
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from portfolio_ledger.core.config import settings
from portfolio_ledger.core.exceptions import (
    BatchImportError,
    PortfolioValidationError,
    RowError,
    ValidationCode,
)
from portfolio_ledger.db.session import portfolio_write_lock, transactional
from portfolio_ledger.models.transaction import PortfolioTransaction
from portfolio_ledger.repositories.transaction import TransactionRepository
from portfolio_ledger.schemas.transaction import ImportResult, TransactionCreate, TransactionDraft
from portfolio_ledger.services.portfolio_service import get_owned_portfolio
from portfolio_ledger.services.validator import TransactionValidator, ValidationMode

logger = logging.getLogger(__name__)


class BulkImportCoordinator:
    """Imports a batch of transactions into one portfolio atomically.

    Example:
        >>> coordinator = BulkImportCoordinator(db)
        >>> result = await coordinator.import_batch(portfolio_id, user.id, rows)
        >>> result.imported
        42
    """

    def __init__(
        self,
        db: AsyncSession,
        validator: TransactionValidator | None = None,
        max_rows: int | None = None,
    ):
        self.db = db
        self.validator = validator or TransactionValidator()
        self.max_rows = settings.MAX_IMPORT_ROWS if max_rows is None else max_rows
        self.ledger = TransactionRepository(PortfolioTransaction, db)

    def _check_batch(self, rows: list[TransactionCreate]) -> None:
        if not rows:
            raise PortfolioValidationError(
                "transactions must contain at least one row",
                field="transactions",
                code=ValidationCode.EMPTY_BATCH,
            )
        if len(rows) > self.max_rows:
            raise PortfolioValidationError(
                f"transactions must contain at most {self.max_rows} rows (got {len(rows)})",
                field="transactions",
                code=ValidationCode.BATCH_TOO_LARGE,
            )

    def _check_rows(self, rows: list[TransactionCreate]) -> list[TransactionDraft]:
        """Validate every row, collecting one error per failing row.

        Raises:
            BatchImportError: At least one row failed
        """
        drafts: list[TransactionDraft] = []
        errors: list[RowError] = []
        for row_number, row in enumerate(rows, start=1):
            try:
                drafts.append(self.validator.validate(row, (), ValidationMode.HISTORICAL_REPLAY))
            except PortfolioValidationError as e:
                errors.append(RowError.from_error(row_number, e))

        if errors:
            raise BatchImportError(errors=errors, would_have_imported=len(drafts))
        return drafts

    async def import_batch(
        self,
        portfolio_id: UUID,
        owner_id: int,
        rows: list[TransactionCreate],
    ) -> ImportResult:
        """Validate and append every row, or none of them.

        Args:
            portfolio_id: Target portfolio
            owner_id: Requesting user's id
            rows: Transactions in submission order

        Returns:
            Number of rows imported

        Raises:
            PortfolioValidationError: Empty or oversized batch
            PortfolioNotFoundError: No such portfolio
            PortfolioAccessError: Portfolio belongs to another user
            BatchImportError: One or more rows failed; lists each by its
                1-based submission index, with the count of rows that passed
            PersistenceError: Storage failure (batch rolled back)
        """
        self._check_batch(rows)

        async with portfolio_write_lock(portfolio_id):
            async with transactional(self.db):
                await get_owned_portfolio(self.db, portfolio_id, owner_id, for_update=True)

                drafts = self._check_rows(rows)
                for draft in sorted(drafts, key=lambda d: d.transaction_date):
                    await self.ledger.append(portfolio_id, draft)

        logger.info(f"Imported {len(drafts)} transactions into portfolio {portfolio_id}")
        return ImportResult(imported=len(drafts))
