"""
Accounting Models for BizLedger

KUDiR (the income and expense ledger kept by small businesses on the
simplified tax system) is built from numbered entries. Entries are either
typed in by hand or generated from paid primary documents.

DESIGN DECISION: An entry records income OR expense, never a net amount.
Numbering is sequential per company: a new entry takes the highest
number in use plus one.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, model_validator


class DocumentType(str, Enum):
    INVOICE = "invoice"
    ACT = "act"
    INVOICE_UPD = "invoice_upd"
    WAYBILL = "waybill"
    PAYMENT_ORDER = "payment_order"


# Documents that the company issues to customers; payment against them is income
INCOME_DOCUMENT_TYPES = frozenset({
    DocumentType.INVOICE,
    DocumentType.ACT,
    DocumentType.INVOICE_UPD,
})


class DocumentPaymentStatus(str, Enum):
    UNPAID = "unpaid"
    PAID = "paid"
    PARTIAL = "partial"


class EntryType(str, Enum):
    INCOME = "income"
    EXPENSE = "expense"
    ALL = "all"


class AccountingDocument(BaseModel):
    """A primary accounting document (invoice, act, waybill, ...)."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    company_id: UUID
    document_type: DocumentType
    document_number: str = Field(..., min_length=1, max_length=100)
    document_date: date
    payment_status: DocumentPaymentStatus = DocumentPaymentStatus.UNPAID
    payment_date: Optional[date] = None
    total_amount: Decimal = Field(..., ge=0, decimal_places=2)
    counterparty_name: Optional[str] = Field(default=None, max_length=500)
    tender_id: Optional[UUID] = None

    @model_validator(mode='after')
    def validate_payment(self) -> 'AccountingDocument':
        if self.payment_status == DocumentPaymentStatus.PAID and self.payment_date is None:
            raise ValueError("Paid document must have a payment date")
        return self


class KudirEntry(BaseModel):
    """One numbered line of the KUDiR ledger."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    company_id: UUID
    entry_number: int = Field(..., ge=1)
    entry_date: date
    document_id: Optional[UUID] = None
    document_number: Optional[str] = None
    document_date: Optional[date] = None
    description: str = Field(..., min_length=1, max_length=1000)
    income: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=2)
    expense: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=2)
    counterparty_name: Optional[str] = None
    tender_id: Optional[UUID] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)

    @model_validator(mode='after')
    def validate_amounts(self) -> 'KudirEntry':
        if self.income <= 0 and self.expense <= 0:
            raise ValueError("Entry must record income or expense")
        return self

    @property
    def is_income(self) -> bool:
        return self.income > 0


class KudirFilters(BaseModel):
    """Filters for listing ledger entries."""

    year: Optional[int] = Field(default=None, ge=2000, le=2100)
    quarter: Optional[int] = Field(default=None, ge=1, le=4)
    month: Optional[int] = Field(default=None, ge=1, le=12)
    entry_type: EntryType = EntryType.ALL
    search: Optional[str] = None

    @model_validator(mode='after')
    def validate_period(self) -> 'KudirFilters':
        if (self.quarter or self.month) and self.year is None:
            raise ValueError("Quarter and month filters require a year")
        if self.quarter and self.month:
            raise ValueError("Use either a quarter or a month filter, not both")
        return self


class KudirSummary(BaseModel):
    period: str  # "Q1".."Q4" or the year
    total_income: Decimal = Decimal("0")
    total_expense: Decimal = Decimal("0")
    profit: Decimal = Decimal("0")
    entries_count: int = 0


class KudirExport(BaseModel):
    year: int
    entries: list[KudirEntry]
    quarters: list[KudirSummary]
    summary: KudirSummary
