"""
KUDiR Ledger Service

KUDiR is the book of income and expenses kept under the simplified tax
system. Each entry is numbered sequentially per company and records
either income or expense for one date.

Entries come from two places:
- manual entries typed in by the accountant
- sync_from_documents(), which turns paid primary documents of a year
  into entries, once per document

Period boundaries use real calendar month ends, so a February filter
in a leap year includes the 29th.
"""

import calendar
from datetime import date
from decimal import Decimal
from typing import Optional
from uuid import UUID

import structlog

from bizledger.models.accounting import (
    INCOME_DOCUMENT_TYPES,
    AccountingDocument,
    DocumentPaymentStatus,
    DocumentType,
    EntryType,
    KudirEntry,
    KudirExport,
    KudirFilters,
    KudirSummary,
)
from bizledger.services.storage import AccountingStorageInterface

logger = structlog.get_logger(__name__)


def month_bounds(year: int, month: int) -> tuple[date, date]:
    """First and last day of a calendar month."""
    return date(year, month, 1), date(year, month, calendar.monthrange(year, month)[1])


def quarter_bounds(year: int, quarter: int) -> tuple[date, date]:
    """First and last day of a calendar quarter (1-4)."""
    if not 1 <= quarter <= 4:
        raise ValueError(f"Quarter must be 1-4, got {quarter}")
    first_month = (quarter - 1) * 3 + 1
    start, _ = month_bounds(year, first_month)
    _, end = month_bounds(year, first_month + 2)
    return start, end


def quarter_of(day: date) -> int:
    return (day.month - 1) // 3 + 1


def document_description(document: AccountingDocument) -> str:
    """Ledger line text for a paid document, e.g. 'Invoice No.17 from ACME'."""
    if document.document_type == DocumentType.INVOICE:
        label = "Invoice"
    elif document.document_type == DocumentType.ACT:
        label = "Act"
    else:
        label = "Document"
    text = f"{label} No.{document.document_number}"
    if document.counterparty_name:
        text += f" from {document.counterparty_name}"
    return text


def summarize_entries(period: str, entries: list[KudirEntry]) -> KudirSummary:
    income = sum((e.income for e in entries), Decimal("0"))
    expense = sum((e.expense for e in entries), Decimal("0"))
    return KudirSummary(
        period=period,
        total_income=income,
        total_expense=expense,
        profit=income - expense,
        entries_count=len(entries),
    )


def filter_entries(entries: list[KudirEntry], filters: KudirFilters) -> list[KudirEntry]:
    """Apply the non-date filters (type and description search)."""
    result = entries
    if filters.entry_type == EntryType.INCOME:
        result = [e for e in result if e.income > 0]
    elif filters.entry_type == EntryType.EXPENSE:
        result = [e for e in result if e.expense > 0]
    if filters.search:
        needle = filters.search.strip().lower()
        result = [e for e in result if needle in e.description.lower()]
    return result


class KudirService:
    """Listing, summaries, manual entries and document sync for the ledger."""

    def __init__(self, storage: AccountingStorageInterface):
        self._storage = storage

    async def list_entries(
        self,
        company_id: UUID,
        filters: Optional[KudirFilters] = None,
    ) -> list[KudirEntry]:
        """
        List a company's entries ordered by date, then number.

        The period filter narrows the storage query; type and search
        filters are applied afterwards.
        """
        filters = filters or KudirFilters()
        date_from = date_to = None
        if filters.year is not None:
            if filters.quarter:
                date_from, date_to = quarter_bounds(filters.year, filters.quarter)
            elif filters.month:
                date_from, date_to = month_bounds(filters.year, filters.month)
            else:
                date_from, date_to = date(filters.year, 1, 1), date(filters.year, 12, 31)

        entries = await self._storage.list_kudir_entries(company_id, date_from, date_to)
        entries = filter_entries(entries, filters)
        entries.sort(key=lambda e: (e.entry_date, e.entry_number))
        return entries

    async def quarter_summaries(self, company_id: UUID, year: int) -> list[KudirSummary]:
        """Four summaries, Q1 to Q4, empty quarters included."""
        entries = await self.list_entries(company_id, KudirFilters(year=year))
        by_quarter: dict[int, list[KudirEntry]] = {q: [] for q in range(1, 5)}
        for entry in entries:
            by_quarter[quarter_of(entry.entry_date)].append(entry)
        return [summarize_entries(f"Q{q}", by_quarter[q]) for q in range(1, 5)]

    async def year_summary(self, company_id: UUID, year: int) -> KudirSummary:
        quarters = await self.quarter_summaries(company_id, year)
        return KudirSummary(
            period=str(year),
            total_income=sum((q.total_income for q in quarters), Decimal("0")),
            total_expense=sum((q.total_expense for q in quarters), Decimal("0")),
            profit=sum((q.profit for q in quarters), Decimal("0")),
            entries_count=sum(q.entries_count for q in quarters),
        )

    async def create_entry(
        self,
        company_id: UUID,
        entry_date: date,
        description: str,
        income: Decimal = Decimal("0"),
        expense: Decimal = Decimal("0"),
        document_number: Optional[str] = None,
        document_date: Optional[date] = None,
        counterparty_name: Optional[str] = None,
        tender_id: Optional[UUID] = None,
    ) -> KudirEntry:
        """
        Add a manual entry with the next free number.

        Raises:
            ValueError: If neither income nor expense is positive
        """
        entry = KudirEntry(
            company_id=company_id,
            entry_number=await self._storage.get_last_kudir_number(company_id) + 1,
            entry_date=entry_date,
            description=description,
            income=income,
            expense=expense,
            document_number=document_number,
            document_date=document_date,
            counterparty_name=counterparty_name,
            tender_id=tender_id,
        )
        await self._storage.save_kudir_entry(entry)
        logger.info(
            "kudir_entry_created",
            company_id=str(company_id),
            entry_number=entry.entry_number,
        )
        return entry

    async def delete_entry(self, company_id: UUID, entry_id: UUID) -> bool:
        """Delete an entry of this company; entries of other companies are untouched."""
        deleted = await self._storage.delete_kudir_entry(company_id, entry_id)
        if deleted:
            logger.info("kudir_entry_deleted", company_id=str(company_id), entry_id=str(entry_id))
        return deleted

    async def sync_from_documents(self, company_id: UUID, year: int) -> list[KudirEntry]:
        """
        Create entries for paid documents of a year that have none yet.

        Documents are processed in payment-date order so the new entry
        numbers follow the calendar.

        Returns:
            The created entries (empty when everything was already synced)
        """
        start, end = date(year, 1, 1), date(year, 12, 31)
        documents = [
            d for d in await self._storage.list_documents(
                company_id, payment_status=DocumentPaymentStatus.PAID
            )
            if d.payment_date is not None and start <= d.payment_date <= end
            and d.total_amount > 0
        ]
        linked = await self._storage.kudir_document_ids(company_id)
        pending = sorted(
            (d for d in documents if d.id not in linked),
            key=lambda d: (d.payment_date, d.document_number),
        )
        if not pending:
            return []

        next_number = await self._storage.get_last_kudir_number(company_id) + 1
        created = []
        for document in pending:
            is_income = document.document_type in INCOME_DOCUMENT_TYPES
            entry = KudirEntry(
                company_id=company_id,
                entry_number=next_number,
                entry_date=document.payment_date,
                document_id=document.id,
                document_number=document.document_number,
                document_date=document.document_date,
                description=document_description(document),
                income=document.total_amount if is_income else Decimal("0"),
                expense=Decimal("0") if is_income else document.total_amount,
                counterparty_name=document.counterparty_name,
                tender_id=document.tender_id,
            )
            await self._storage.save_kudir_entry(entry)
            created.append(entry)
            next_number += 1

        logger.info(
            "kudir_synced",
            company_id=str(company_id),
            year=year,
            created=len(created),
        )
        return created

    async def export_data(self, company_id: UUID, year: int) -> KudirExport:
        """Everything needed to print or export a year's ledger."""
        quarters = await self.quarter_summaries(company_id, year)
        return KudirExport(
            year=year,
            entries=await self.list_entries(company_id, KudirFilters(year=year)),
            quarters=quarters,
            summary=await self.year_summary(company_id, year),
        )
