"""
Main Orchestrator for BizLedger

This module ties the services together and defines the end-to-end flows:
1. Import (CSV text -> parse -> validate -> import -> budget recompute)
2. Budget monitoring (budget alerts, spending anomalies, summary)
3. KUDiR (manual entries, sync from paid documents)
4. Reporting (Excel finance report, KUDiR workbook, tender reports)

DESIGN DECISION: Services stay free of audit concerns; every flow step
that changes data or leaves the system is audited here, under one
correlation id per user action.
"""

from datetime import date
from decimal import Decimal
from typing import NamedTuple, Optional
from uuid import UUID

import structlog

from bizledger.agents import CategorySuggestion, SuggestionSource, TransactionCategorizer
from bizledger.audit import AuditLogger, create_correlation_id
from bizledger.config import get_settings
from bizledger.config.settings import AppSettings
from bizledger.models.accounting import KudirEntry, KudirExport
from bizledger.models.finance import BudgetUsage
from bizledger.models.imports import CsvNormalizedRow, CsvValidationSummary, ImportResult
from bizledger.models.notification import BudgetAlert, BudgetsSummary, SpendingAlert
from bizledger.models.tender import (
    GuaranteesReport,
    ManagerPerformanceReport,
    TenderDashboard,
)
from bizledger.services.accounting import KudirService
from bizledger.services.budgets import BudgetService
from bizledger.services.export import (
    build_finance_report_data,
    generate_finance_report,
    generate_kudir_workbook,
)
from bizledger.services.imports import (
    CsvImportError,
    TransactionImporter,
    parse_bank_statement,
    parse_csv_text,
)
from bizledger.services.notifications import SpendingMonitor
from bizledger.services.storage import (
    AccountingStorageInterface,
    GoogleSheetsAccountingStorage,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerStorage,
    GoogleSheetsTenderStorage,
    InMemoryStorage,
    LedgerStorageInterface,
    TenderStorageInterface,
)
from bizledger.services.tenders import TenderReportService

logger = structlog.get_logger(__name__)

CSV_ENCODINGS = ("utf-8-sig", "cp1251")


def decode_upload(content: bytes) -> str:
    """Decode an uploaded CSV; bank exports are often in cp1251."""
    for encoding in CSV_ENCODINGS:
        try:
            return content.decode(encoding)
        except UnicodeDecodeError:
            continue
    raise CsvImportError("File is not valid UTF-8 or Windows-1251 text")


class ImportFlow:
    """
    Orchestrates the CSV import flow.

    Flow:
    1. Preview -> check size, decode, parse and validate every row
    2. Review -> the user sees valid rows and per-row errors
    3. Import -> valid rows are stored as one batch
    4. Recompute -> budgets of the touched categories are refreshed

    Nothing is stored until import_rows() is called with the rows the
    user accepted.
    """

    def __init__(
        self,
        ledger_storage: LedgerStorageInterface,
        importer: Optional[TransactionImporter] = None,
        budget_service: Optional[BudgetService] = None,
        categorizer: Optional[TransactionCategorizer] = None,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[AppSettings] = None,
    ):
        self._storage = ledger_storage
        self._settings = settings or get_settings().app
        self._importer = importer or TransactionImporter(ledger_storage)
        self._budget_service = budget_service or BudgetService(ledger_storage, self._settings)
        self._categorizer = categorizer
        self._audit_logger = audit_logger or AuditLogger()

    async def preview(
        self,
        company_id: UUID,
        content: bytes,
        filename: str,
        bank_statement: bool = False,
        correlation_id: Optional[UUID] = None,
    ) -> CsvValidationSummary:
        """
        Parse and validate an uploaded file without storing anything.

        Raises:
            CsvImportError: If the file is too large, undecodable or structurally broken
        """
        correlation_id = correlation_id or create_correlation_id()

        try:
            if len(content) > self._settings.max_upload_size_bytes:
                raise CsvImportError(
                    f"File is larger than {self._settings.max_upload_size_mb} MB"
                )
            text = decode_upload(content)
            if bank_statement:
                summary = parse_bank_statement(text)
            else:
                summary = parse_csv_text(text, max_rows=self._settings.max_import_rows)
        except CsvImportError as e:
            await self._audit_logger.log_import_rejected(
                company_id=company_id,
                filename=filename,
                reason=str(e),
                correlation_id=correlation_id,
            )
            raise

        if summary.has_errors:
            await self._audit_logger.log_validation_failed(
                company_id=company_id,
                error_rows=len(summary.errors),
                issues=[e.model_dump() for e in summary.errors[:20]],
                correlation_id=correlation_id,
            )
        return summary

    async def import_rows(
        self,
        company_id: UUID,
        rows: list[CsvNormalizedRow],
        default_account_id: Optional[UUID] = None,
        correlation_id: Optional[UUID] = None,
        today: Optional[date] = None,
    ) -> tuple[ImportResult, list[BudgetUsage]]:
        """
        Store the accepted rows and refresh the affected budgets.

        Returns:
            (import_result, recomputed_budget_usages)
        """
        correlation_id = correlation_id or create_correlation_id()

        result = await self._importer.import_rows(
            company_id, rows, default_account_id=default_account_id, today=today
        )
        await self._audit_logger.log_transactions_imported(
            company_id=company_id,
            batch_id=result.batch_id,
            imported=result.imported,
            skipped=result.skipped,
            correlation_id=correlation_id,
        )

        usages: list[BudgetUsage] = []
        if result.category_ids:
            usages = await self._budget_service.recompute_all(company_id, result.category_ids)
            for usage in usages:
                await self._audit_logger.log_budget_recomputed(
                    company_id=company_id,
                    budget_id=usage.budget_id,
                    spent=str(usage.spent),
                    percentage=round(usage.percentage, 2),
                    correlation_id=correlation_id,
                )
        return result, usages

    async def suggest_category(
        self,
        company_id: UUID,
        description: str,
        correlation_id: Optional[UUID] = None,
    ) -> Optional[CategorySuggestion]:
        """Suggest a category for one description; None when AI is not configured."""
        if self._categorizer is None:
            return None
        correlation_id = correlation_id or create_correlation_id()

        categories = await self._storage.list_categories(company_id)
        history = await self._storage.list_transactions(company_id)
        suggestion = await self._categorizer.suggest(description, categories, history)

        if suggestion.error:
            await self._audit_logger.log_external_service_error(
                service="gemini",
                error_message=suggestion.error,
                correlation_id=correlation_id,
            )
        if suggestion.source != SuggestionSource.FALLBACK:
            await self._audit_logger.log_category_suggested(
                company_id=company_id,
                category_name=suggestion.category_name,
                confidence=suggestion.confidence,
                source=suggestion.source,
                correlation_id=correlation_id,
            )
        return suggestion


class BudgetMonitorFlow:
    """Budget alerts, spending anomalies and the budgets summary."""

    def __init__(
        self,
        ledger_storage: LedgerStorageInterface,
        budget_service: Optional[BudgetService] = None,
        spending_monitor: Optional[SpendingMonitor] = None,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[AppSettings] = None,
    ):
        settings = settings or get_settings().app
        self._budget_service = budget_service or BudgetService(ledger_storage, settings)
        self._spending_monitor = spending_monitor or SpendingMonitor(ledger_storage, settings)
        self._audit_logger = audit_logger or AuditLogger()

    @property
    def budget_service(self) -> BudgetService:
        return self._budget_service

    async def check(
        self,
        company_id: UUID,
        today: Optional[date] = None,
        correlation_id: Optional[UUID] = None,
    ) -> tuple[list[BudgetAlert], list[SpendingAlert], BudgetsSummary]:
        """
        Run every budget and spending check for a company.

        Returns:
            (budget_alerts, spending_alerts, budgets_summary)
        """
        correlation_id = correlation_id or create_correlation_id()
        today = today or date.today()

        alerts = await self._budget_service.detect_budget_alerts(company_id, today)
        for alert in alerts:
            await self._audit_logger.log_budget_alert(
                company_id=company_id,
                budget_id=alert.budget_id,
                alert_type=alert.type.value,
                percentage=alert.percentage,
                correlation_id=correlation_id,
            )

        anomalies = await self._spending_monitor.detect(company_id, today)
        for anomaly in anomalies:
            await self._audit_logger.log_spending_anomaly(
                company_id=company_id,
                alert_type=anomaly.type.value,
                category_name=anomaly.category_name,
                correlation_id=correlation_id,
            )

        summary = await self._budget_service.get_budgets_summary(company_id, today)
        return alerts, anomalies, summary


class KudirFlow:
    """KUDiR entry changes, audited."""

    def __init__(
        self,
        accounting_storage: AccountingStorageInterface,
        kudir_service: Optional[KudirService] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._service = kudir_service or KudirService(accounting_storage)
        self._audit_logger = audit_logger or AuditLogger()

    @property
    def service(self) -> KudirService:
        return self._service

    async def create_entry(
        self,
        company_id: UUID,
        entry_date: date,
        description: str,
        income: Decimal = Decimal("0"),
        expense: Decimal = Decimal("0"),
        correlation_id: Optional[UUID] = None,
        **details,
    ) -> KudirEntry:
        entry = await self._service.create_entry(
            company_id, entry_date, description, income=income, expense=expense, **details
        )
        await self._audit_logger.log_kudir_entry_created(
            company_id=company_id,
            entry_id=entry.id,
            entry_number=entry.entry_number,
            amount=str(entry.income if entry.is_income else entry.expense),
            correlation_id=correlation_id,
        )
        return entry

    async def delete_entry(
        self,
        company_id: UUID,
        entry_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> bool:
        deleted = await self._service.delete_entry(company_id, entry_id)
        if deleted:
            await self._audit_logger.log_kudir_entry_deleted(
                company_id=company_id,
                entry_id=entry_id,
                correlation_id=correlation_id,
            )
        return deleted

    async def sync(
        self,
        company_id: UUID,
        year: int,
        correlation_id: Optional[UUID] = None,
    ) -> list[KudirEntry]:
        created = await self._service.sync_from_documents(company_id, year)
        await self._audit_logger.log_kudir_synced(
            company_id=company_id,
            year=year,
            created=len(created),
            correlation_id=correlation_id,
        )
        return created


class ReportingFlow:
    """Excel exports and tender reports."""

    def __init__(
        self,
        ledger_storage: LedgerStorageInterface,
        tender_storage: TenderStorageInterface,
        accounting_storage: AccountingStorageInterface,
        kudir_service: Optional[KudirService] = None,
        tender_reports: Optional[TenderReportService] = None,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[AppSettings] = None,
    ):
        self._ledger = ledger_storage
        self._kudir = kudir_service or KudirService(accounting_storage)
        self._tender_reports = tender_reports or TenderReportService(tender_storage, settings)
        self._audit_logger = audit_logger or AuditLogger()

    async def finance_report(
        self,
        company_id: UUID,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        correlation_id: Optional[UUID] = None,
    ) -> bytes:
        """Excel finance report for a company and an optional period."""
        data = build_finance_report_data(
            transactions=await self._ledger.list_transactions(
                company_id, date_from=date_from, date_to=date_to
            ),
            accounts=await self._ledger.list_accounts(company_id),
            categories=await self._ledger.list_categories(company_id),
            budgets=await self._ledger.list_budgets(company_id),
            date_from=date_from,
            date_to=date_to,
        )
        content = generate_finance_report(data)
        await self._audit_logger.log_report_exported(
            company_id=company_id,
            report="finance",
            size_bytes=len(content),
            correlation_id=correlation_id,
        )
        return content

    async def kudir_export(self, company_id: UUID, year: int) -> KudirExport:
        return await self._kudir.export_data(company_id, year)

    async def kudir_workbook(
        self,
        company_id: UUID,
        year: int,
        correlation_id: Optional[UUID] = None,
    ) -> bytes:
        export = await self._kudir.export_data(company_id, year)
        content = generate_kudir_workbook(export.entries, export.summary, export.quarters)
        await self._audit_logger.log_report_exported(
            company_id=company_id,
            report=f"kudir_{year}",
            size_bytes=len(content),
            correlation_id=correlation_id,
        )
        return content

    async def tender_dashboard(
        self,
        company_id: UUID,
        today: Optional[date] = None,
        viewer_id: Optional[UUID] = None,
        can_view_all: bool = True,
    ) -> TenderDashboard:
        return await self._tender_reports.dashboard(
            company_id, today=today, viewer_id=viewer_id, can_view_all=can_view_all
        )

    async def manager_performance(
        self,
        company_id: UUID,
        today: Optional[date] = None,
    ) -> ManagerPerformanceReport:
        return await self._tender_reports.manager_performance(company_id, today)

    async def guarantees_report(
        self,
        company_id: UUID,
        today: Optional[date] = None,
    ) -> GuaranteesReport:
        return await self._tender_reports.guarantees(company_id, today)


class AppComponents(NamedTuple):
    import_flow: ImportFlow
    budget_flow: BudgetMonitorFlow
    kudir_flow: KudirFlow
    reporting_flow: ReportingFlow
    ledger_storage: LedgerStorageInterface
    tender_storage: TenderStorageInterface
    accounting_storage: AccountingStorageInterface
    sheets_client: Optional[GoogleSheetsClient]


def create_categorizer() -> Optional[TransactionCategorizer]:
    """Gemini categorizer, or None when the API key is not configured."""
    try:
        return TransactionCategorizer()
    except Exception as e:
        logger.warning("categorizer_unavailable", error=str(e))
        return None


def create_app_components(
    storage_backend: Optional[str] = None,
    categorizer: Optional[TransactionCategorizer] = None,
) -> AppComponents:
    """
    Factory function to create all application components.

    Args:
        storage_backend: "sheets" or "memory"; defaults to the configured backend.
                    Falls back to memory when Sheets is not configured.
        categorizer: Categorizer to use; one is built from settings when omitted

    Returns:
        AppComponents with every flow wired to the same storage
    """
    settings = get_settings().app
    backend = storage_backend or settings.storage_backend
    sheets_client = None

    if backend == "sheets":
        try:
            sheets_client = GoogleSheetsClient()
            ledger = GoogleSheetsLedgerStorage(sheets_client)
            tenders = GoogleSheetsTenderStorage(sheets_client)
            accounting = GoogleSheetsAccountingStorage(sheets_client)
            audit_logger = AuditLogger(GoogleSheetsAuditStorage(sheets_client))
        except Exception as e:
            # Storage not configured - continue in memory
            logger.warning("sheets_storage_unavailable", error=str(e))
            backend = "memory"
            sheets_client = None

    if backend == "memory":
        memory = InMemoryStorage()
        ledger = tenders = accounting = memory
        audit_logger = AuditLogger(memory)
    elif backend != "sheets":
        raise ValueError(f"Unknown storage backend: {backend}")

    categorizer = categorizer or create_categorizer()
    budget_service = BudgetService(ledger, settings)
    kudir_service = KudirService(accounting)

    return AppComponents(
        import_flow=ImportFlow(
            ledger,
            budget_service=budget_service,
            categorizer=categorizer,
            audit_logger=audit_logger,
            settings=settings,
        ),
        budget_flow=BudgetMonitorFlow(
            ledger,
            budget_service=budget_service,
            audit_logger=audit_logger,
            settings=settings,
        ),
        kudir_flow=KudirFlow(accounting, kudir_service=kudir_service, audit_logger=audit_logger),
        reporting_flow=ReportingFlow(
            ledger,
            tenders,
            accounting,
            kudir_service=kudir_service,
            audit_logger=audit_logger,
            settings=settings,
        ),
        ledger_storage=ledger,
        tender_storage=tenders,
        accounting_storage=accounting,
        sheets_client=sheets_client,
    )
