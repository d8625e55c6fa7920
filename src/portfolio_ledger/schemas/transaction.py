"""Ledger transaction schemas.

``TransactionCreate`` is the raw draft as a client submits it: every field is
optional and loosely typed so that ``TransactionValidator`` can report the
exact field and rule that was broken. ``TransactionDraft`` is what the
validator hands back once the structure checks pass; only drafts reach the
ledger store.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from portfolio_ledger.models.transaction import TransactionType


class TransactionCreate(BaseModel):
    """Schema for submitting a transaction."""

    transaction_type: str | None = None
    symbol: str | None = None
    quantity: Decimal | str | None = None
    price_per_unit: Decimal | str | None = None
    total_amount: Decimal | str | None = None
    fees: Decimal | str | None = None
    transaction_date: datetime | str | None = None
    notes: str | None = None


class TransactionDraft(BaseModel):
    """Structurally valid, normalized transaction ready to be appended."""

    model_config = ConfigDict(frozen=True)

    transaction_type: TransactionType
    symbol: str | None = None
    quantity: Decimal | None = None
    price_per_unit: Decimal | None = None
    total_amount: Decimal
    fees: Decimal = Decimal("0")
    transaction_date: datetime
    notes: str | None = None


class TransactionFilters(BaseModel):
    """Filters for listing ledger entries. Date bounds are inclusive."""

    transaction_type: TransactionType | None = None
    symbol: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None


class TransactionResponse(BaseModel):
    """Schema for a persisted ledger entry."""

    id: UUID
    portfolio_id: UUID
    sequence: int
    transaction_type: TransactionType
    symbol: str | None
    quantity: Decimal | None
    price_per_unit: Decimal | None
    total_amount: Decimal
    fees: Decimal
    transaction_date: datetime
    notes: str | None
    created_at: datetime

    model_config = {"from_attributes": True}


class TransactionImportRequest(BaseModel):
    """Bulk import payload."""

    transactions: list[TransactionCreate] = Field(default_factory=list)


class ImportResult(BaseModel):
    """Outcome of a successful bulk import."""

    imported: int
