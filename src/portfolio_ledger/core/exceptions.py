"""Centralized exception hierarchy and handlers for the application.

Every error the ledger can surface is an ``AppException`` subclass tagged with
an ``ErrorKind``. The kind set is closed: callers that need to branch on the
failure can match on ``exc.kind`` instead of probing ``isinstance`` chains, and
``to_payload()`` exposes the structured fields (field, code, shortfall, row
indexes) so a client can highlight the offending input without parsing the
message.

Exception Hierarchy:
    AppException (base)
    ├── ValidationError (400)
    │   └── PortfolioValidationError (400)
    │       ├── InsufficientFundsError (400)
    │       └── BatchImportError (400)
    ├── AuthenticationError (401)
    ├── ForbiddenError (403)
    │   └── PortfolioAccessError (403)
    ├── NotFoundError (404)
    │   └── PortfolioNotFoundError (404)
    ├── ConflictError (409)
    ├── PersistenceError (500)
    └── ExternalAPIError (503)

Usage in Services:
    from portfolio_ledger.core.exceptions import PortfolioValidationError

    if draft.quantity is None:
        raise PortfolioValidationError(
            "quantity is required for BUY",
            field="quantity",
            code=ValidationCode.REQUIRED,
        )

The exception handler converts these to HTTP responses of the form:
    {"success": false, "detail": "...", "error_code": "...", ...payload}

Bodies FastAPI cannot parse get the same shape, with status 422 and
``error_code`` ``REQUEST_VALIDATION_ERROR``.
"""

import enum
import logging
from collections.abc import Sequence
from dataclasses import asdict, dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class ErrorKind(str, enum.Enum):
    """Closed set of error kinds surfaced to callers."""

    VALIDATION = "validation"
    AUTHENTICATION = "authentication"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    PERSISTENCE = "persistence"
    EXTERNAL_API = "external_api"
    PORTFOLIO_NOT_FOUND = "portfolio_not_found"
    PORTFOLIO_VALIDATION = "portfolio_validation"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    BATCH_IMPORT = "batch_import"
    INTERNAL = "internal"


class ValidationCode(str, enum.Enum):
    """Machine-readable validation codes attached to field errors."""

    REQUIRED = "REQUIRED"
    INVALID_VALUE = "INVALID_VALUE"
    INVALID_ENUM = "INVALID_ENUM"
    NOT_ALLOWED = "NOT_ALLOWED"
    INCONSISTENT_TOTAL = "INCONSISTENT_TOTAL"
    TOO_LONG = "TOO_LONG"
    NOT_FOUND = "NOT_FOUND"
    INSUFFICIENT_FUNDS = "INSUFFICIENT_FUNDS"
    INSUFFICIENT_HOLDINGS = "INSUFFICIENT_HOLDINGS"
    EMPTY_BATCH = "EMPTY_BATCH"
    BATCH_TOO_LARGE = "BATCH_TOO_LARGE"


class AppException(Exception):
    """
    Base exception class for all application errors.

    Attributes:
        status_code: HTTP status code for this error type
        detail: User-facing error message
        error_code: Machine-readable error code (optional)
        kind: Tag identifying the error family
    """

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    detail: str = "Internal server error"
    error_code: str | None = None
    kind: ErrorKind = ErrorKind.INTERNAL

    def __init__(
        self,
        detail: str | None = None,
        *,
        error_code: str | None = None,
    ) -> None:
        """
        Initialize the exception.

        Args:
            detail: Custom error message (overrides class default)
            error_code: Machine-readable error identifier
        """
        self.detail = detail or self.__class__.detail
        self.error_code = error_code or self.__class__.error_code
        super().__init__(self.detail)

    def to_payload(self) -> dict[str, Any]:
        """Structured fields merged into the error response body."""
        return {}


class ValidationError(AppException):
    """
    Raised when input validation fails.

    Maps to HTTP 400 Bad Request.
    """

    status_code = status.HTTP_400_BAD_REQUEST
    detail = "Validation error"
    error_code = "VALIDATION_ERROR"
    kind = ErrorKind.VALIDATION


class AuthenticationError(AppException):
    """
    Raised when authentication fails.

    Maps to HTTP 401 Unauthorized.
    """

    status_code = status.HTTP_401_UNAUTHORIZED
    detail = "Authentication failed"
    error_code = "AUTHENTICATION_ERROR"
    kind = ErrorKind.AUTHENTICATION


class ForbiddenError(AppException):
    """
    Raised when an authenticated user acts on a resource they do not own.

    Maps to HTTP 403 Forbidden.
    """

    status_code = status.HTTP_403_FORBIDDEN
    detail = "Not authorized to access this resource"
    error_code = "FORBIDDEN"
    kind = ErrorKind.FORBIDDEN


class NotFoundError(AppException):
    """
    Raised when a requested resource is not found.

    Maps to HTTP 404 Not Found.
    """

    status_code = status.HTTP_404_NOT_FOUND
    detail = "Resource not found"
    error_code = "NOT_FOUND"
    kind = ErrorKind.NOT_FOUND


class ConflictError(AppException):
    """
    Raised when there's a conflict in the operation.

    Used for duplicate entries such as an already registered username.
    Maps to HTTP 409 Conflict.
    """

    status_code = status.HTTP_409_CONFLICT
    detail = "Resource conflict"
    error_code = "CONFLICT"
    kind = ErrorKind.CONFLICT


class PersistenceError(AppException):
    """
    Raised when the storage layer fails to read or write ledger data.

    Never swallowed: retries, if any, belong to the transport boundary.
    Maps to HTTP 500 Internal Server Error.
    """

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    detail = "Storage failure"
    error_code = "PERSISTENCE_ERROR"
    kind = ErrorKind.PERSISTENCE


class ExternalAPIError(AppException):
    """
    Raised when an external API call fails.

    Used when the market data provider is unavailable or returns errors.
    Maps to HTTP 503 Service Unavailable.
    """

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    detail = "External service unavailable"
    error_code = "EXTERNAL_API_ERROR"
    kind = ErrorKind.EXTERNAL_API


class PortfolioNotFoundError(NotFoundError):
    """Raised when the referenced portfolio does not exist."""

    detail = "Portfolio not found"
    error_code = "PORTFOLIO_NOT_FOUND"
    kind = ErrorKind.PORTFOLIO_NOT_FOUND

    def __init__(self, portfolio_id: Any) -> None:
        self.portfolio_id = portfolio_id
        super().__init__(f"Portfolio not found: {portfolio_id}")

    def to_payload(self) -> dict[str, Any]:
        return {"portfolio_id": str(self.portfolio_id)}


class PortfolioAccessError(ForbiddenError):
    """Raised when a portfolio belongs to a different owner."""

    detail = "Not authorized to access this portfolio"


class PortfolioValidationError(ValidationError):
    """
    Raised when a portfolio or transaction breaks a structural or business rule.

    Attributes:
        field: Name of the offending input field (snake_case)
        code: Stable machine-readable code from ``ValidationCode``
    """

    error_code = "PORTFOLIO_VALIDATION_ERROR"
    kind = ErrorKind.PORTFOLIO_VALIDATION

    def __init__(
        self,
        detail: str,
        *,
        field: str | None = None,
        code: ValidationCode | str | None = None,
    ) -> None:
        self.field = field
        self.code = ValidationCode(code) if code is not None else None
        super().__init__(detail)

    def to_payload(self) -> dict[str, Any]:
        return {
            "field": self.field,
            "code": self.code.value if self.code else None,
        }


class InsufficientFundsError(PortfolioValidationError):
    """
    Raised when a transaction would overdraw cash or sell more than is held.

    The cash variant names the shortfall in currency; the holdings variant
    names the symbol and the shortfall in units.

    Attributes:
        required: Amount (or units) the transaction takes out
        available: Balance (or units held) at the transaction's own date
        shortfall: How far the balance drops below zero at its lowest point
        violated_at: Date of the first state that goes negative. Later than
            the transaction's date when a backdated entry starves an
            existing one.
    """

    error_code = "INSUFFICIENT_FUNDS"
    kind = ErrorKind.INSUFFICIENT_FUNDS

    def __init__(
        self,
        *,
        required: Decimal,
        available: Decimal,
        shortfall: Decimal | None = None,
        symbol: str | None = None,
        violated_at: datetime | None = None,
    ) -> None:
        self.required = required
        self.available = available
        self.shortfall = required - available if shortfall is None else shortfall
        self.symbol = symbol
        self.violated_at = violated_at

        when = f" on {violated_at.date().isoformat()}" if violated_at else ""
        if symbol is None:
            message = (
                f"Insufficient funds: required {required}, available {available} "
                f"(shortfall {self.shortfall}{when})"
            )
            super().__init__(
                message, field="total_amount", code=ValidationCode.INSUFFICIENT_FUNDS
            )
        else:
            message = (
                f"Insufficient holdings of {symbol}: required {required}, "
                f"available {available} (shortfall {self.shortfall}{when})"
            )
            super().__init__(
                message, field="quantity", code=ValidationCode.INSUFFICIENT_HOLDINGS
            )

    @property
    def is_holdings_shortfall(self) -> bool:
        return self.symbol is not None

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        payload.update(
            {
                "symbol": self.symbol,
                "shortfall": str(self.shortfall),
                "required": str(self.required),
                "available": str(self.available),
                "violated_at": self.violated_at.isoformat() if self.violated_at else None,
            }
        )
        return payload


@dataclass(frozen=True)
class RowError:
    """A single row-level failure inside a bulk import."""

    row: int
    field: str | None
    code: str | None
    message: str

    @classmethod
    def from_error(cls, row: int, error: "PortfolioValidationError") -> "RowError":
        return cls(
            row=row,
            field=error.field,
            code=error.code.value if error.code else None,
            message=error.detail,
        )


class BatchImportError(PortfolioValidationError):
    """
    Raised when a bulk import aborts.

    Carries one ``RowError`` per failing row, in submission order. The
    top-level ``row``, ``field`` and ``code`` repeat the first of them. The
    whole batch has been rolled back by the time this is raised;
    ``would_have_imported`` counts the rows that passed.
    """

    error_code = "BATCH_IMPORT_ERROR"
    kind = ErrorKind.BATCH_IMPORT

    def __init__(self, *, errors: Sequence[RowError], would_have_imported: int) -> None:
        if not errors:
            raise ValueError("BatchImportError needs at least one row error")

        self.errors = sorted(errors, key=lambda error: error.row)
        self.would_have_imported = would_have_imported
        first = self.errors[0]
        self.row = first.row

        detail = f"Import failed at row {first.row}: {first.message}."
        if len(self.errors) > 1:
            others = ", ".join(str(error.row) for error in self.errors[1:])
            detail += f" Rows {others} also failed."
        detail += (
            f" {would_have_imported} transactions would have been imported "
            "but all changes have been rolled back."
        )
        super().__init__(detail, field=first.field, code=first.code)

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        payload.update(
            {
                "row": self.row,
                "imported": 0,
                "would_have_imported": self.would_have_imported,
                "errors": [asdict(error) for error in self.errors],
            }
        )
        return payload


async def app_exception_handler(
    request: Request,
    exc: AppException,
) -> JSONResponse:
    """
    Handle application exceptions and convert to HTTP responses.

    Response Format:
        {
            "success": false,
            "detail": "User-facing error message",
            "error_code": "MACHINE_READABLE_CODE",
            ...exc.to_payload()
        }

    Logging:
        - Server errors (5xx): full stack trace
        - Client errors (4xx): message only
    """
    log_extra = {
        "status_code": exc.status_code,
        "error_code": exc.error_code,
        "error_kind": exc.kind.value,
        "request_path": request.url.path,
    }
    if exc.status_code >= 500:
        logger.error(
            f"{exc.__class__.__name__}: {exc.detail}",
            exc_info=True,
            extra=log_extra,
        )
    else:
        logger.warning(f"{exc.__class__.__name__}: {exc.detail}", extra=log_extra)

    response_body: dict[str, Any] = {"success": False, "detail": exc.detail}
    if exc.error_code:
        response_body["error_code"] = exc.error_code
    response_body.update(exc.to_payload())

    return JSONResponse(
        status_code=exc.status_code,
        content=response_body,
    )


UNPROCESSABLE_STATUS = 422

_PYDANTIC_CODES = {
    "missing": ValidationCode.REQUIRED,
    "enum": ValidationCode.INVALID_ENUM,
    "literal_error": ValidationCode.INVALID_ENUM,
    "string_too_long": ValidationCode.TOO_LONG,
    "too_long": ValidationCode.TOO_LONG,
}


def _request_row_error(error: dict[str, Any]) -> dict[str, Any]:
    # loc is (source, field, ...); union members append their type tag after the field
    loc = list(error.get("loc", ()))
    field = loc[1] if len(loc) > 1 and isinstance(loc[1], str) else None
    row = None
    # Bulk import rows are reported 1-based, like BatchImportError
    if len(loc) > 2 and loc[:2] == ["body", "transactions"] and isinstance(loc[2], int):
        row = loc[2] + 1
        field = loc[3] if len(loc) > 3 and isinstance(loc[3], str) else field

    item: dict[str, Any] = {
        "field": field,
        "code": _PYDANTIC_CODES.get(error.get("type", ""), ValidationCode.INVALID_VALUE).value,
        "message": error.get("msg", "Invalid value"),
    }
    if row is not None:
        item["row"] = row
    return item


async def request_validation_exception_handler(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    """
    Convert request parsing failures into the application's error format.

    Response Format:
        {
            "success": false,
            "detail": "field: message",
            "error_code": "REQUEST_VALIDATION_ERROR",
            "field": "...",
            "code": "REQUIRED | INVALID_VALUE | INVALID_ENUM | TOO_LONG",
            "row": 3,              # only for bulk import rows
            "errors": [...]        # one entry per failure
        }
    """
    errors: list[dict[str, Any]] = []
    seen: set[tuple[Any, Any]] = set()
    for error in map(_request_row_error, exc.errors()):
        key = (error.get("row"), error["field"])
        if key not in seen:
            seen.add(key)
            errors.append(error)
    first = errors[0] if errors else {"field": None, "code": None, "message": "Invalid request"}
    detail = f"{first['field']}: {first['message']}" if first["field"] else first["message"]

    logger.warning(
        f"RequestValidationError: {detail}",
        extra={
            "status_code": UNPROCESSABLE_STATUS,
            "error_code": "REQUEST_VALIDATION_ERROR",
            "error_kind": ErrorKind.VALIDATION.value,
            "request_path": request.url.path,
        },
    )

    response_body: dict[str, Any] = {
        "success": False,
        "detail": detail,
        "error_code": "REQUEST_VALIDATION_ERROR",
        "field": first["field"],
        "code": first["code"],
    }
    if "row" in first:
        response_body["row"] = first["row"]
    response_body["errors"] = errors

    return JSONResponse(
        status_code=UNPROCESSABLE_STATUS,
        content=response_body,
    )
