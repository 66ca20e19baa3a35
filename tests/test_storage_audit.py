"""Tests for the in-memory backend and the audit logger."""

import asyncio
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from bizledger.audit import AuditLogger, create_correlation_id
from bizledger.models.accounting import KudirEntry
from bizledger.models.audit import AuditEventBuilder, AuditEventType, AuditSeverity
from bizledger.models.finance import Account, TransactionDirection
from bizledger.models.tender import Tender
from bizledger.services.storage import DuplicateError, InMemoryStorage


class TestInMemoryStorage:
    """Tests for InMemoryStorage semantics shared by all backends."""

    def test_company_isolation(self, storage, company_id, account, tx_factory):
        """Test one company never sees another company's records."""
        other = Account(company_id=uuid4(), name="Other")

        async def run():
            await storage.save_account(account)
            await storage.save_account(other)
            await storage.save_transactions([tx_factory(10)])
            return (
                await storage.list_accounts(company_id),
                await storage.list_transactions(other.company_id),
            )

        accounts, foreign_transactions = asyncio.run(run())

        assert [a.name for a in accounts] == ["Main account"]
        assert foreign_transactions == []

    def test_duplicate_batch_is_rejected_whole(self, storage, tx_factory):
        """Test a duplicate id leaves nothing of the batch behind."""
        existing = tx_factory(10)
        fresh = tx_factory(20)

        async def run():
            await storage.save_transactions([existing])
            with pytest.raises(DuplicateError):
                await storage.save_transactions([fresh, existing])
            return await storage.list_transactions(existing.company_id)

        assert [t.id for t in asyncio.run(run())] == [existing.id]

    def test_list_transactions_filters_and_orders(self, storage, company_id, categories, tx_factory):
        """Test date, category and direction filters, newest first."""
        office = categories["office"]
        transactions = [
            tx_factory(10, date(2024, 6, 1), office),
            tx_factory(20, date(2024, 6, 20), office),
            tx_factory(30, date(2024, 7, 1), office),
            tx_factory(40, date(2024, 6, 5), categories["fuel"]),
            tx_factory(50, date(2024, 6, 6), office, direction=TransactionDirection.INCOME),
        ]

        async def run():
            await storage.save_transactions(transactions)
            return await storage.list_transactions(
                company_id,
                date_from=date(2024, 6, 1),
                date_to=date(2024, 6, 30),
                category_id=office.id,
                direction=TransactionDirection.EXPENSE,
            )

        result = asyncio.run(run())

        assert [t.amount for t in result] == [Decimal("20"), Decimal("10")]

    def test_stored_records_are_copies(self, storage, company_id, account):
        """Test mutating a returned record does not change storage."""
        async def run():
            await storage.save_account(account)
            (loaded,) = await storage.list_accounts(company_id)
            loaded.name = "Changed"
            return await storage.list_accounts(company_id)

        assert asyncio.run(run())[0].name == "Main account"

    def test_kudir_number_must_be_unique(self, storage, company_id):
        """Test two entries of a company cannot share a number."""
        def entry(number):
            return KudirEntry(
                company_id=company_id,
                entry_number=number,
                entry_date=date(2024, 1, 1),
                description="Sale",
                income=Decimal("1"),
            )

        async def run():
            await storage.save_kudir_entry(entry(1))
            with pytest.raises(DuplicateError):
                await storage.save_kudir_entry(entry(1))
            return await storage.get_last_kudir_number(company_id)

        assert asyncio.run(run()) == 1

    def test_deleted_tenders_are_hidden(self, storage, company_id):
        """Test soft-deleted tenders only show up when asked for."""
        async def run():
            await storage.save_tender(Tender(company_id=company_id, purchase_number="1"))
            await storage.save_tender(Tender(company_id=company_id, purchase_number="2", deleted=True))
            return (
                await storage.list_tenders(company_id),
                await storage.list_tenders(company_id, include_deleted=True),
            )

        visible, everything = asyncio.run(run())

        assert [t.purchase_number for t in visible] == ["1"]
        assert len(everything) == 2

    def test_transaction_exists(self, storage, company_id, tx_factory):
        """Test the duplicate lookup matches date, amount, direction and note."""
        tx = tx_factory(99, date(2024, 6, 1), note="Coffee")

        async def run():
            await storage.save_transactions([tx])
            same = await storage.transaction_exists(
                company_id, date(2024, 6, 1), Decimal("99"), TransactionDirection.EXPENSE, "Coffee"
            )
            different_note = await storage.transaction_exists(
                company_id, date(2024, 6, 1), Decimal("99"), TransactionDirection.EXPENSE, None
            )
            return same, different_note

        assert asyncio.run(run()) == (True, False)


class FailingStorage(InMemoryStorage):
    async def append_event(self, event):
        raise RuntimeError("sheet unavailable")


class TestAuditLogger:
    """Tests for AuditLogger."""

    def test_events_are_persisted_with_correlation(self, storage, company_id):
        """Test events of one action can be found by correlation id."""
        audit = AuditLogger(storage)
        correlation_id = create_correlation_id()

        async def run():
            await audit.log_transactions_imported(company_id, uuid4(), 3, 1, correlation_id)
            await audit.log_report_exported(company_id, "finance", 2048, correlation_id)
            await audit.log_kudir_synced(company_id, 2024, 2)
            return (
                await storage.get_events_by_correlation_id(correlation_id),
                await storage.get_recent_events(company_id),
            )

        related, recent = asyncio.run(run())

        assert [e.event_type for e in related] == [
            AuditEventType.TRANSACTIONS_IMPORTED,
            AuditEventType.REPORT_EXPORTED,
        ]
        assert len(recent) == 3

    def test_storage_failure_does_not_raise(self):
        """Test a broken audit backend never breaks the caller."""
        audit = AuditLogger(FailingStorage())
        assert asyncio.run(audit.log_report_exported(uuid4(), "finance", 10)) is None

    def test_log_returns_false_on_storage_failure(self):
        """Test log() reports the failed write."""
        audit = AuditLogger(FailingStorage())
        event = AuditEventBuilder.system_error("boom", "it broke")
        assert asyncio.run(audit.log(event)) is False
        assert event.severity == AuditSeverity.ERROR

    def test_without_storage_only_logs_locally(self):
        """Test a logger without storage succeeds."""
        event = AuditEventBuilder.external_service_error("gemini", "timeout")
        assert asyncio.run(AuditLogger().log(event)) is True
