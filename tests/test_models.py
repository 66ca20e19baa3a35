"""
Tests for BizLedger

Test strategy:
1. Unit tests for individual components (models, validators, aggregations)
2. Integration tests for flows against the in-memory backend
3. No real API calls in tests (the LLM is replaced by a stub)
"""

import pytest
from datetime import date
from decimal import Decimal
from uuid import uuid4

from bizledger.models.accounting import (
    AccountingDocument,
    DocumentPaymentStatus,
    DocumentType,
    KudirEntry,
    KudirFilters,
)
from bizledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from bizledger.models.finance import (
    Account,
    Budget,
    Transaction,
    TransactionDirection,
    ValidationIssue,
    ValidationResult,
)
from bizledger.models.tender import StageCategory, Tender, TenderStage


class TestFinanceModels:
    """Tests for finance-related Pydantic models."""

    def test_account_strips_whitespace_and_uppercases_currency(self):
        """Test Account normalizes name and currency."""
        account = Account(company_id=uuid4(), name="  Cash desk  ", currency="rub")
        assert account.name == "Cash desk"
        assert account.currency == "RUB"

    def test_transaction_rejects_non_positive_amount(self):
        """Test that zero and negative amounts are rejected."""
        for amount in ("0", "-10"):
            with pytest.raises(ValueError):
                Transaction(
                    company_id=uuid4(),
                    account_id=uuid4(),
                    direction=TransactionDirection.EXPENSE,
                    amount=Decimal(amount),
                    occurred_at=date(2024, 1, 1),
                )

    def test_transaction_month_key(self):
        """Test month_key formats the transaction month."""
        tx = Transaction(
            company_id=uuid4(),
            account_id=uuid4(),
            direction=TransactionDirection.INCOME,
            amount=Decimal("10.50"),
            occurred_at=date(2024, 3, 9),
        )
        assert tx.month_key == "2024-03"

    def test_budget_period_validation(self):
        """Test budget period end cannot be before start."""
        with pytest.raises(ValueError, match="Budget period end cannot be before start"):
            Budget(
                company_id=uuid4(),
                category_id=uuid4(),
                limit_amount=Decimal("100"),
                period_start=date(2024, 2, 1),
                period_end=date(2024, 1, 1),
            )

    def test_budget_covers_is_inclusive(self):
        """Test both period bounds are inside the budget."""
        budget = Budget(
            company_id=uuid4(),
            category_id=uuid4(),
            limit_amount=Decimal("100"),
            period_start=date(2024, 1, 1),
            period_end=date(2024, 1, 31),
        )
        assert budget.covers(date(2024, 1, 1))
        assert budget.covers(date(2024, 1, 31))
        assert not budget.covers(date(2024, 2, 1))


class TestAccountingModels:
    """Tests for KUDiR and document models."""

    def test_entry_requires_income_or_expense(self):
        """Test an entry with no amounts is rejected."""
        with pytest.raises(ValueError, match="Entry must record income or expense"):
            KudirEntry(
                company_id=uuid4(),
                entry_number=1,
                entry_date=date(2024, 1, 1),
                description="Empty",
            )

    def test_paid_document_requires_payment_date(self):
        """Test a paid document must say when it was paid."""
        with pytest.raises(ValueError, match="Paid document must have a payment date"):
            AccountingDocument(
                company_id=uuid4(),
                document_type=DocumentType.INVOICE,
                document_number="17",
                document_date=date(2024, 1, 1),
                payment_status=DocumentPaymentStatus.PAID,
                total_amount=Decimal("100"),
            )

    def test_filters_require_year_for_quarter(self):
        """Test quarter and month filters need a year."""
        with pytest.raises(ValueError, match="require a year"):
            KudirFilters(quarter=1)

    def test_filters_reject_quarter_and_month(self):
        """Test quarter and month filters are exclusive."""
        with pytest.raises(ValueError, match="not both"):
            KudirFilters(year=2024, quarter=1, month=2)


class TestTenderModels:
    """Tests for tender models."""

    def test_effective_contract_value_falls_back_to_nmck(self):
        """Test NMCK is used while no contract price is recorded."""
        tender = Tender(company_id=uuid4(), purchase_number="001", nmck=Decimal("500"))
        assert tender.effective_contract_value == Decimal("500")

        tender.contract_price = Decimal("450")
        assert tender.effective_contract_value == Decimal("450")

    def test_stage_category(self):
        """Test stage_category reads the stage, None without one."""
        tender = Tender(company_id=uuid4(), purchase_number="001")
        assert tender.stage_category is None

        tender.stage = TenderStage(name="Contract", category=StageCategory.REALIZATION)
        assert tender.stage_category == StageCategory.REALIZATION


class TestAuditModels:
    """Tests for audit-related models."""

    def test_audit_event_creation(self):
        """Test AuditEvent model creation."""
        event = AuditEvent(
            event_type=AuditEventType.TRANSACTIONS_IMPORTED,
            description="Imported",
        )
        assert event.severity == AuditSeverity.INFO
        assert event.company_id is None

    def test_audit_event_to_log_dict(self):
        """Test conversion to log dictionary."""
        company_id = uuid4()
        event = AuditEvent(
            event_type=AuditEventType.REPORT_EXPORTED,
            company_id=company_id,
            description="Report exported",
            details={"report": "finance"},
        )
        log_dict = event.to_log_dict()
        assert log_dict["event_type"] == "report_exported"
        assert log_dict["company_id"] == str(company_id)
        assert log_dict["details"]["report"] == "finance"

    def test_audit_event_to_sheets_row(self):
        """Test conversion to sheets row."""
        event = AuditEvent(
            event_type=AuditEventType.KUDIR_SYNCED,
            description="Synced",
            is_user_action=True,
        )
        row = event.to_sheets_row()
        assert len(row) == 12
        assert row[2] == "kudir_synced"
        assert row[11] == "True"

    def test_audit_event_builder_transactions_imported(self):
        """Test AuditEventBuilder.transactions_imported."""
        company_id, batch_id, correlation_id = uuid4(), uuid4(), uuid4()
        event = AuditEventBuilder.transactions_imported(
            company_id=company_id,
            batch_id=batch_id,
            imported=5,
            skipped=2,
            correlation_id=correlation_id,
        )
        assert event.event_type == AuditEventType.TRANSACTIONS_IMPORTED
        assert event.entity_id == batch_id
        assert event.correlation_id == correlation_id
        assert event.details == {"imported": 5, "skipped": 2}
        assert event.is_user_action is True

    def test_audit_event_builder_external_service_error(self):
        """Test external service errors are error severity."""
        event = AuditEventBuilder.external_service_error("gemini", "timeout")
        assert event.severity == AuditSeverity.ERROR
        assert event.error_message == "timeout"


class TestValidationResult:
    """Tests for ValidationResult model."""

    def test_validation_result_has_errors(self):
        """Test has_errors property."""
        result = ValidationResult(
            schema_valid=False,
            semantic_valid=False,
            is_valid=False,
            issues=[
                ValidationIssue(
                    field="amount",
                    issue_type="missing",
                    message="Amount required",
                    severity="error",
                ),
            ],
        )
        assert result.has_errors is True
        assert result.error_count == 1

    def test_validation_result_duplicate_warning(self):
        """Test that warnings don't count as errors and duplicates are flagged."""
        result = ValidationResult(
            schema_valid=True,
            semantic_valid=True,
            is_valid=True,
            issues=[
                ValidationIssue(
                    field="amount",
                    issue_type="potential_duplicate",
                    message="Looks like a duplicate",
                    severity="warning",
                ),
            ],
        )
        assert result.has_errors is False
        assert result.is_duplicate is True

    def test_issue_severity_pattern(self):
        """Test unknown severities are rejected."""
        with pytest.raises(ValueError):
            ValidationIssue(field="x", issue_type="y", message="z", severity="fatal")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
