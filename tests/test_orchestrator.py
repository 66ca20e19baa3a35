"""Integration tests for the flows against the in-memory backend."""

import asyncio
import io
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from openpyxl import load_workbook

from bizledger.agents import SuggestionSource, TransactionCategorizer
from bizledger.config.settings import AppSettings
from bizledger.models.accounting import AccountingDocument, DocumentPaymentStatus, DocumentType
from bizledger.models.audit import AuditEventType
from bizledger.models.finance import Budget
from bizledger.models.notification import BudgetAlertType, SpendingAlertType
from bizledger.orchestrator import ImportFlow, create_app_components, decode_upload
from bizledger.services.imports import CsvImportError
from bizledger.services.storage import InMemoryStorage

TODAY = date(2024, 6, 15)

CSV = (
    "date,amount,direction,account,category,note\n"
    "2024-06-03,450,expense,Main account,Office,Paper\n"
    "2024-06-04,120.50,expense,,Fuel,Gas\n"
    "2024-06-05,abc,expense,,,Broken\n"
).encode("utf-8")


def seeded_components(model, account, categories, company_id):
    parts = create_app_components("memory", categorizer=TransactionCategorizer(model))

    async def seed():
        await parts.ledger_storage.save_account(account)
        for category in categories.values():
            await parts.ledger_storage.save_category(category)
        await parts.ledger_storage.save_budget(Budget(
            company_id=company_id,
            category_id=categories["office"].id,
            limit_amount=Decimal("500"),
            period_start=date(2024, 6, 1),
            period_end=date(2024, 6, 30),
        ))
    asyncio.run(seed())
    return parts


@pytest.fixture
def components(stub_model, account, categories, company_id):
    model = stub_model('{"category": "Office", "confidence": 0.8, "reasoning": "Paper"}')
    return seeded_components(model, account, categories, company_id)


def event_types(storage, correlation_id):
    events = asyncio.run(storage.get_events_by_correlation_id(correlation_id))
    return [e.event_type for e in events]


class TestDecodeUpload:
    """Tests for upload decoding."""

    def test_utf8_with_bom(self):
        """Test the byte order mark is dropped."""
        assert decode_upload("﻿date".encode("utf-8")) == "date"

    def test_windows_1251(self):
        """Test bank exports in Windows-1251 are read."""
        assert decode_upload("Дата;Сумма".encode("cp1251")) == "Дата;Сумма"


class TestImportFlow:
    """Tests for preview, import and budget recompute."""

    def test_preview_then_import(self, components, company_id, account, categories):
        """Test the whole import recomputes the touched budget and is audited."""
        storage = components.ledger_storage
        correlation_id = uuid4()
        flow = components.import_flow

        summary = asyncio.run(flow.preview(company_id, CSV, "june.csv", correlation_id=correlation_id))
        result, usages = asyncio.run(flow.import_rows(
            company_id, summary.normalized, default_account_id=account.id,
            correlation_id=correlation_id, today=TODAY,
        ))
        budget = asyncio.run(storage.list_budgets(company_id))[0]

        assert len(summary.normalized) == 2
        assert summary.errors[0].row_number == 4
        assert result.imported == 2
        assert [u.category_id for u in usages] == [categories["office"].id]
        assert budget.spent_amount == Decimal("450")
        assert event_types(storage, correlation_id) == [
            AuditEventType.VALIDATION_FAILED,
            AuditEventType.TRANSACTIONS_IMPORTED,
            AuditEventType.BUDGET_RECOMPUTED,
        ]

    def test_rejected_file_is_audited(self, components, company_id):
        """Test a structurally broken file raises and leaves an audit trail."""
        correlation_id = uuid4()
        with pytest.raises(CsvImportError):
            asyncio.run(components.import_flow.preview(
                company_id, b"when,how much\n1,2\n", "bad.csv", correlation_id=correlation_id
            ))
        assert event_types(components.ledger_storage, correlation_id) == [
            AuditEventType.IMPORT_REJECTED
        ]

    def test_oversized_upload(self, company_id):
        """Test uploads above the size limit are refused before parsing."""
        flow = ImportFlow(InMemoryStorage(), settings=AppSettings(max_upload_size_mb=1))
        with pytest.raises(CsvImportError, match="larger than 1 MB"):
            asyncio.run(flow.preview(company_id, b"x" * (1024 * 1024 + 1), "big.csv"))

    def test_suggest_category(self, components, company_id, categories):
        """Test an AI suggestion is audited."""
        correlation_id = uuid4()
        suggestion = asyncio.run(components.import_flow.suggest_category(
            company_id, "Printer paper", correlation_id=correlation_id
        ))
        assert suggestion.category_id == categories["office"].id
        assert suggestion.source == SuggestionSource.LLM
        assert event_types(components.ledger_storage, correlation_id) == [
            AuditEventType.CATEGORY_SUGGESTED
        ]

    def test_suggest_category_failure_is_audited(self, stub_model, account, categories, company_id):
        """Test a failing model is logged as an external service error."""
        parts = seeded_components(
            stub_model(error=RuntimeError("timeout")), account, categories, company_id
        )
        correlation_id = uuid4()

        suggestion = asyncio.run(parts.import_flow.suggest_category(
            company_id, "Paper", correlation_id=correlation_id
        ))

        assert suggestion.source == SuggestionSource.FALLBACK
        assert event_types(parts.ledger_storage, correlation_id) == [
            AuditEventType.EXTERNAL_SERVICE_ERROR
        ]


class TestBudgetMonitorFlow:
    """Tests for the budget and spending checks."""

    def test_check(self, components, company_id, categories, tx_factory):
        """Test budget alerts, anomalies and the summary come back together."""
        storage = components.ledger_storage
        asyncio.run(storage.save_transactions([
            tx_factory(450, date(2024, 6, 3), categories["office"]),
        ]))
        correlation_id = uuid4()

        alerts, anomalies, summary = asyncio.run(components.budget_flow.check(
            company_id, TODAY, correlation_id=correlation_id
        ))

        assert [a.type for a in alerts] == [BudgetAlertType.CRITICAL]
        assert [a.type for a in anomalies] == [SpendingAlertType.UNUSUAL_CATEGORY]
        assert summary.total_budgets == 1
        assert event_types(storage, correlation_id) == [
            AuditEventType.BUDGET_ALERT_RAISED,
            AuditEventType.SPENDING_ANOMALY_DETECTED,
        ]


class TestKudirAndReporting:
    """Tests for KUDiR changes and the Excel exports."""

    def test_kudir_flow_and_workbook(self, components, company_id):
        """Test entry changes are audited and the workbook is produced."""
        accounting = components.accounting_storage
        correlation_id = uuid4()
        asyncio.run(accounting.save_document(AccountingDocument(
            company_id=company_id,
            document_type=DocumentType.ACT,
            document_number="A-7",
            document_date=date(2024, 3, 1),
            payment_status=DocumentPaymentStatus.PAID,
            payment_date=date(2024, 3, 10),
            total_amount=Decimal("900"),
        )))

        async def run():
            flow = components.kudir_flow
            manual = await flow.create_entry(
                company_id, date(2024, 1, 5), "Cash sale", income=Decimal("100"),
                correlation_id=correlation_id, counterparty_name="Walk-in",
            )
            synced = await flow.sync(company_id, 2024, correlation_id=correlation_id)
            extra = await flow.create_entry(
                company_id, date(2024, 4, 1), "Typo", expense=Decimal("1"),
                correlation_id=correlation_id,
            )
            await flow.delete_entry(company_id, extra.id, correlation_id=correlation_id)
            content = await components.reporting_flow.kudir_workbook(
                company_id, 2024, correlation_id=correlation_id
            )
            return manual, synced, content

        manual, synced, content = asyncio.run(run())

        assert manual.counterparty_name == "Walk-in"
        assert [e.entry_number for e in synced] == [2]
        ledger = load_workbook(io.BytesIO(content))["KUDiR"]
        assert ledger["D4"].value == "Cash sale"
        assert ledger["D5"].value == "Act No.A-7"
        assert event_types(components.ledger_storage, correlation_id) == [
            AuditEventType.KUDIR_ENTRY_CREATED,
            AuditEventType.KUDIR_SYNCED,
            AuditEventType.KUDIR_ENTRY_CREATED,
            AuditEventType.KUDIR_ENTRY_DELETED,
            AuditEventType.REPORT_EXPORTED,
        ]

    def test_finance_report(self, components, company_id, categories, tx_factory):
        """Test the finance report contains the period's transactions."""
        asyncio.run(components.ledger_storage.save_transactions([
            tx_factory(450, date(2024, 6, 3), categories["office"]),
            tx_factory(10, date(2024, 5, 3), categories["office"]),
        ]))

        content = asyncio.run(components.reporting_flow.finance_report(
            company_id, date(2024, 6, 1), date(2024, 6, 30)
        ))
        wb = load_workbook(io.BytesIO(content))

        assert wb["Transactions"].max_row == 2
        assert wb["Budgets"]["C2"].value == 450

    def test_tender_reports_for_empty_company(self, components, company_id):
        """Test tender reports work before any tender is recorded."""
        flow = components.reporting_flow
        dashboard = asyncio.run(flow.tender_dashboard(company_id, TODAY))
        performance = asyncio.run(flow.manager_performance(company_id, TODAY))
        guarantees = asyncio.run(flow.guarantees_report(company_id, TODAY))

        assert dashboard.overview.total_tenders == 0
        assert performance.managers == []
        assert guarantees.guarantees == []


class TestCreateAppComponents:
    """Tests for the component factory."""

    def test_memory_backend_shares_storage(self, stub_model):
        """Test every role uses one in-memory backend."""
        parts = create_app_components("memory", categorizer=TransactionCategorizer(stub_model()))
        assert parts.ledger_storage is parts.tender_storage is parts.accounting_storage
        assert parts.sheets_client is None

    def test_unknown_backend(self, stub_model):
        """Test an unknown backend name is refused."""
        with pytest.raises(ValueError, match="Unknown storage backend"):
            create_app_components("postgres", categorizer=TransactionCategorizer(stub_model()))
