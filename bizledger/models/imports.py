"""
CSV Import Models

A CSV import goes through three shapes:
1. Raw records (dict of header -> cell text) read from the file
2. CsvNormalizedRow: typed values, one per valid row
3. Transaction: persisted, after names are resolved to ids

Row errors are collected, never raised, so the user sees every problem
in a file at once.
"""

from datetime import date
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from bizledger.models.finance import TransactionDirection


class HeaderCheckResult(BaseModel):
    ok: bool
    missing: list[str] = Field(default_factory=list)
    unexpected: list[str] = Field(default_factory=list)


class CsvNormalizedRow(BaseModel):
    """
    One candidate transaction read from a CSV row.

    The typed values are optional so a hand-built candidate can be run
    through schema validation too.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    row_number: int = Field(..., ge=1, description="1-based line number in the file")
    occurred_at: Optional[date] = None
    direction: Optional[TransactionDirection] = None
    amount: Optional[Decimal] = None
    account_name: Optional[str] = None
    category_name: Optional[str] = None
    counterparty: Optional[str] = None
    note: Optional[str] = None
    currency: Optional[str] = None


class CsvRowValidationResult(BaseModel):
    row_number: int
    issues: list[str]


class CsvValidationSummary(BaseModel):
    normalized: list[CsvNormalizedRow] = Field(default_factory=list)
    errors: list[CsvRowValidationResult] = Field(default_factory=list)

    @property
    def total_rows(self) -> int:
        return len(self.normalized) + len(self.errors)

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)


class ImportResult(BaseModel):
    batch_id: UUID
    imported: int = 0
    skipped: int = 0
    warnings: list[str] = Field(default_factory=list)
    transaction_ids: list[UUID] = Field(default_factory=list)
    category_ids: list[UUID] = Field(
        default_factory=list,
        description="Categories touched by the import, for budget recompute"
    )
