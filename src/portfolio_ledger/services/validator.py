"""Transaction validator: structural and business rules for ledger drafts.

Two layers of checks run, in order:

1. ``check_structure`` - per-type field rules. These never depend on the
   ledger and always run.
2. ``check_funds`` - cash and holdings must stay non-negative once the draft
   is placed at its date in the history. Skipped in
   ``ValidationMode.HISTORICAL_REPLAY``, which bulk import uses to load
   history whose intermediate states were never checked at the source.

Every failure is a ``PortfolioValidationError`` (or its
``InsufficientFundsError`` subclass) naming the offending field and a
``ValidationCode``.
"""

import enum
import logging
from collections.abc import Iterable
from datetime import datetime
from decimal import Decimal, InvalidOperation

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from portfolio_ledger.core.config import settings
from portfolio_ledger.core.constants import LedgerConstants
from portfolio_ledger.core.exceptions import (
    InsufficientFundsError,
    PortfolioValidationError,
    ValidationCode,
)
from portfolio_ledger.db.base import ensure_utc
from portfolio_ledger.models.transaction import TransactionType
from portfolio_ledger.schemas.transaction import TransactionCreate, TransactionDraft
from portfolio_ledger.services.projector import (
    ZERO,
    BalanceProjector,
    LedgerEntry,
    cash_delta,
    holding_delta,
)

logger = logging.getLogger(__name__)

TYPE_NAMES = ", ".join(t.value for t in TransactionType)

_DATETIME = TypeAdapter(datetime)


class ValidationMode(str, enum.Enum):
    """How much of the rule set a draft is held to."""

    STRICT = "strict"
    HISTORICAL_REPLAY = "historical_replay"

    @property
    def checks_funds(self) -> bool:
        return self is ValidationMode.STRICT


def _invalid(field: str, message: str, code: ValidationCode) -> PortfolioValidationError:
    return PortfolioValidationError(message, field=field, code=code)


def _blank(value: object) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _number(value: Decimal | str | None, field: str) -> Decimal | None:
    """Parse a submitted amount. Blank strings count as missing."""
    if _blank(value):
        return None
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value).strip())
    except InvalidOperation:
        raise _invalid(field, f"{field} must be a number", ValidationCode.INVALID_VALUE) from None


def _instant(value: datetime | str | None, field: str) -> datetime | None:
    if _blank(value):
        return None
    if isinstance(value, datetime):
        return value
    try:
        return _DATETIME.validate_python(str(value).strip())
    except PydanticValidationError:
        raise _invalid(
            field, f"{field} must be an ISO 8601 date or datetime", ValidationCode.INVALID_VALUE
        ) from None


def _positive(value: Decimal | None, field: str, type_name: str) -> Decimal:
    if value is None:
        raise _invalid(field, f"{field} is required for {type_name}", ValidationCode.REQUIRED)
    if not value.is_finite() or value <= ZERO:
        raise _invalid(
            field,
            f"{field} must be a positive number for {type_name}",
            ValidationCode.INVALID_VALUE,
        )
    return value


def _absent(value: object, field: str, type_name: str) -> None:
    if not _blank(value):
        raise _invalid(field, f"{field} is not allowed for {type_name}", ValidationCode.NOT_ALLOWED)


def _first_negative(values: list[Decimal], dates: list[datetime]) -> datetime:
    return next(when for value, when in zip(values, dates, strict=True) if value < ZERO)


class TransactionValidator:
    """Validates transaction drafts against the per-type rules and the ledger.

    The validator has no side effects; it only reads the history it is
    given.

    Example:
        >>> validator = TransactionValidator()
        >>> draft = validator.validate(payload, history, ValidationMode.STRICT)
        >>> await ledger.append(portfolio_id, draft)
    """

    def __init__(
        self,
        projector: BalanceProjector | None = None,
        tolerance: Decimal | None = None,
    ):
        self.projector = projector or BalanceProjector()
        self.tolerance = settings.TOTAL_AMOUNT_TOLERANCE if tolerance is None else tolerance

    def check_structure(self, payload: TransactionCreate) -> TransactionDraft:
        """Apply the per-type field rules and normalize the draft.

        Symbols are upper-cased, dates converted to UTC (naive values are
        taken as UTC), fees default to zero and notes are truncated. Amounts
        may arrive as strings; unparseable ones fail with ``INVALID_VALUE``.

        A BUY or SELL may state ``total_amount`` with or without its fees;
        the draft always carries the gross ``quantity x price_per_unit`` so
        the fees are charged exactly once, from the ``fees`` field.

        Args:
            payload: Raw submitted transaction

        Returns:
            The normalized draft

        Raises:
            PortfolioValidationError: On the first rule broken
        """
        if payload.transaction_type is None or not str(payload.transaction_type).strip():
            raise _invalid(
                "transaction_type", "transaction_type is required", ValidationCode.REQUIRED
            )
        try:
            tx_type = TransactionType(str(payload.transaction_type).strip().upper())
        except ValueError:
            raise _invalid(
                "transaction_type",
                f"transaction_type must be one of: {TYPE_NAMES}",
                ValidationCode.INVALID_ENUM,
            ) from None

        name = tx_type.value
        symbol = payload.symbol.strip().upper() if payload.symbol else None
        symbol = symbol or None

        if tx_type.is_cash_only:
            _absent(symbol, "symbol", name)
        elif symbol is None:
            raise _invalid("symbol", f"symbol is required for {name}", ValidationCode.REQUIRED)
        elif len(symbol) > LedgerConstants.MAX_SYMBOL_LENGTH:
            raise _invalid(
                "symbol",
                f"symbol must be {LedgerConstants.MAX_SYMBOL_LENGTH} characters or less",
                ValidationCode.TOO_LONG,
            )

        quantity = price = None
        if tx_type.is_trade:
            quantity = _positive(_number(payload.quantity, "quantity"), "quantity", name)
            price = _positive(
                _number(payload.price_per_unit, "price_per_unit"), "price_per_unit", name
            )
        else:
            _absent(payload.quantity, "quantity", name)
            _absent(payload.price_per_unit, "price_per_unit", name)

        total = _number(payload.total_amount, "total_amount")
        if total is None:
            raise _invalid("total_amount", "total_amount is required", ValidationCode.REQUIRED)
        if not total.is_finite() or total < ZERO or (not tx_type.is_trade and total == ZERO):
            message = (
                "total_amount must be a non-negative number"
                if tx_type.is_trade
                else "total_amount must be a positive number"
            )
            raise _invalid("total_amount", message, ValidationCode.INVALID_VALUE)

        fees = _number(payload.fees, "fees")
        if fees is None:
            fees = ZERO
        if not fees.is_finite() or fees < ZERO:
            raise _invalid("fees", "fees must be zero or positive", ValidationCode.INVALID_VALUE)

        if tx_type.is_trade:
            gross = quantity * price
            candidates = (gross, gross + fees, gross - fees)
            if all(abs(total - c) > self.tolerance for c in candidates):
                raise _invalid(
                    "total_amount",
                    f"total_amount {total} does not match quantity x price_per_unit "
                    f"({gross}) with or without fees ({fees})",
                    ValidationCode.INCONSISTENT_TOTAL,
                )
            total = gross.quantize(LedgerConstants.AMOUNT_PRECISION)

        transaction_date = _instant(payload.transaction_date, "transaction_date")
        if transaction_date is None:
            raise _invalid(
                "transaction_date", "transaction_date is required", ValidationCode.REQUIRED
            )

        notes = payload.notes
        if notes is not None and len(notes) > LedgerConstants.MAX_NOTES_LENGTH:
            notes = notes[: LedgerConstants.MAX_NOTES_LENGTH]

        return TransactionDraft(
            transaction_type=tx_type,
            symbol=symbol,
            quantity=quantity,
            price_per_unit=price,
            total_amount=total,
            fees=fees,
            transaction_date=ensure_utc(transaction_date),
            notes=notes,
        )

    def check_funds(self, draft: TransactionDraft, history: Iterable[LedgerEntry]) -> None:
        """Reject a draft that would overdraw cash or sell more than is held.

        The draft is placed at its date in the ordered history (after any
        entries with the same date) and every state from there to the end of
        the ledger is checked, so a backdated withdrawal cannot starve a
        later purchase.

        Args:
            draft: Structurally valid draft
            history: Existing ledger entries of the portfolio, any order

        Raises:
            InsufficientFundsError: Cash or holding would go negative
        """
        ordered = self.projector.order(history)
        as_of = draft.transaction_date
        before = [e for e in ordered if ensure_utc(e.transaction_date) <= as_of]
        after = [e for e in ordered if ensure_utc(e.transaction_date) > as_of]

        start = self.projector.fold(before)
        states = [self.projector.apply(start, draft)]
        states.extend(self.projector.replay(after, states[0]))
        dates = [as_of] + [ensure_utc(e.transaction_date) for e in after]

        cash_change = cash_delta(draft)
        if cash_change < ZERO:
            balances = [state.cash_balance for state in states]
            if min(balances) < ZERO:
                raise InsufficientFundsError(
                    required=-cash_change,
                    available=start.cash_balance,
                    shortfall=-min(balances),
                    violated_at=_first_negative(balances, dates),
                )

        units_change = holding_delta(draft)
        if units_change < ZERO and draft.symbol:
            held = [state.quantity(draft.symbol) for state in states]
            if min(held) < ZERO:
                raise InsufficientFundsError(
                    required=-units_change,
                    available=start.quantity(draft.symbol),
                    shortfall=-min(held),
                    symbol=draft.symbol,
                    violated_at=_first_negative(held, dates),
                )

    def validate(
        self,
        payload: TransactionCreate,
        history: Iterable[LedgerEntry],
        mode: ValidationMode = ValidationMode.STRICT,
    ) -> TransactionDraft:
        """Run the structure checks, then the funds checks unless ``mode`` skips them.

        Returns:
            The normalized draft

        Raises:
            PortfolioValidationError: Structural rule broken
            InsufficientFundsError: Funds rule broken (STRICT only)
        """
        draft = self.check_structure(payload)
        if mode.checks_funds:
            self.check_funds(draft, history)
        return draft
