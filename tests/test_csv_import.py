"""Tests for CSV parsing, row validation and the transaction importer."""

import asyncio
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from bizledger.models.finance import Account, TransactionDirection
from bizledger.models.imports import CsvNormalizedRow
from bizledger.services.imports import (
    CsvImportError,
    TransactionImporter,
    check_headers,
    group_by_description,
    normalize_header,
    parse_bank_statement,
    parse_csv_text,
)
from bizledger.validation import TransactionValidator

TODAY = date(2024, 6, 15)


def bank_line(day, amount, category, description):
    cells = [""] * 12
    cells[1], cells[4], cells[9], cells[11] = day, amount, category, description
    return ";".join(f'"{c}"' for c in cells)


def row(number, amount="100.00", occurred_at=date(2024, 6, 1), **kwargs):
    kwargs.setdefault("direction", TransactionDirection.EXPENSE)
    return CsvNormalizedRow(
        row_number=number,
        occurred_at=occurred_at,
        amount=Decimal(amount) if amount is not None else None,
        **kwargs,
    )


class TestHeaders:
    """Tests for header normalization and checks."""

    def test_normalize_aliases(self):
        """Test localized and spaced headers map to template names."""
        assert normalize_header(" Дата ") == "date"
        assert normalize_header("Account Name") == "account"
        assert normalize_header("DESCRIPTION") == "note"

    def test_check_headers(self):
        """Test missing and unexpected columns are both reported."""
        result = check_headers(["date", "amount", "colour"])
        assert result.ok is False
        assert result.missing == ["direction"]
        assert result.unexpected == ["colour"]


class TestParseCsvText:
    """Tests for template CSV parsing."""

    @pytest.mark.parametrize("amount", ["NaN", "nan", "sNaN", "Infinity"])
    @pytest.mark.parametrize("direction", ["", "expense"])
    def test_non_finite_amount_is_a_row_error(self, amount, direction):
        """Test NaN and infinite amounts are reported on their row, not raised."""
        text = (
            "date,amount,direction\n"
            f"2024-06-01,{amount},{direction}\n"
            "2024-06-02,10,expense\n"
        )

        summary = parse_csv_text(text)

        assert len(summary.normalized) == 1
        assert summary.errors[0].row_number == 2
        assert f"Invalid amount '{amount}'" in summary.errors[0].issues

    def test_valid_and_invalid_rows(self):
        """Test valid rows are normalized and bad rows carry their line number."""
        text = (
            "Дата;Сумма;Тип;Категория\n"
            "2024-06-01;1 234,50;расход;Office\n"
            "01.06.2024;abc;доход;\n"
            ";;;\n"
            "2024-06-02;10;gift;\n"
        )

        summary = parse_csv_text(text)

        assert len(summary.normalized) == 1
        first = summary.normalized[0]
        assert first.amount == Decimal("1234.50")
        assert first.direction == TransactionDirection.EXPENSE
        assert first.category_name == "Office"
        assert [e.row_number for e in summary.errors] == [3, 5]
        assert summary.errors[0].issues == ["Invalid amount 'abc'"]
        assert summary.errors[1].issues == ["Unknown direction 'gift'"]
        assert summary.total_rows == 3

    def test_negative_amount_without_direction_is_expense(self):
        """Test a signed amount stands in for a missing direction."""
        summary = parse_csv_text("date,amount,direction\n2024-06-01,-500,\n")
        assert summary.normalized[0].direction == TransactionDirection.EXPENSE
        assert summary.normalized[0].amount == Decimal("500.00")

    def test_missing_fields_are_all_reported(self):
        """Test every problem of a row is listed."""
        summary = parse_csv_text("date,amount,direction\n,,\n2024-13-45,0,\n")
        assert summary.errors[0].issues == [
            "Invalid date '2024-13-45' (expected YYYY-MM-DD or DD.MM.YYYY)",
            "Amount must not be zero",
            "Direction is required",
        ]

    def test_wrong_headers_reject_the_file(self):
        """Test a file with wrong headers is refused as a whole."""
        with pytest.raises(CsvImportError, match="missing columns: direction"):
            parse_csv_text("date,amount,colour\n2024-06-01,1,red\n")

    def test_empty_file(self):
        """Test an empty file is refused."""
        with pytest.raises(CsvImportError, match="File is empty"):
            parse_csv_text("   \n")

    def test_row_limit(self):
        """Test files over the row limit are refused."""
        text = "date,amount,direction\n" + "2024-06-01,1,expense\n" * 3
        with pytest.raises(CsvImportError, match="limit is 2"):
            parse_csv_text(text, max_rows=2)


class TestBankStatement:
    """Tests for bank statement exports."""

    def test_signed_amounts_and_skipped_rows(self):
        """Test sign gives direction and rows without description are skipped."""
        text = "\n".join([
            bank_line("Date", "Amount", "Category", "Description"),
            bank_line("01.06.2024 10:15", "-1 500,00", "Fuel", "Gas station"),
            bank_line("02.06.2024", "25000", "", "Payment from client"),
            bank_line("03.06.2024", "-10", "", ""),
            bank_line("xx.06.2024", "-10", "", "Broken"),
        ])

        summary = parse_bank_statement(text)

        assert [r.note for r in summary.normalized] == ["Gas station", "Payment from client"]
        fuel, income = summary.normalized
        assert fuel.occurred_at == date(2024, 6, 1)
        assert fuel.amount == Decimal("1500.00")
        assert fuel.direction == TransactionDirection.EXPENSE
        assert fuel.category_name == "Fuel"
        assert income.direction == TransactionDirection.INCOME
        assert income.category_name is None
        assert summary.errors[0].row_number == 5

    def test_group_by_description(self):
        """Test the biggest group of same-payee rows comes first."""
        rows = [
            row(2, note="Cafe"),
            row(3, note="Taxi"),
            row(4, note="Taxi "),
        ]
        groups = group_by_description(rows)
        assert list(groups) == ["Taxi", "Cafe"]
        assert len(groups["Taxi"]) == 2


class TestTransactionValidator:
    """Tests for the two-stage validator."""

    def test_schema_errors_stop_semantic_checks(self, company_id):
        """Test a row without an amount fails stage 1 only."""
        result = asyncio.run(TransactionValidator().validate(company_id, row(2, amount=None), today=TODAY))
        assert result.schema_valid is False
        assert result.semantic_valid is False
        assert [i.field for i in result.issues] == ["amount"]

    def test_future_and_large_amount_warnings(self, company_id):
        """Test suspicious values are warnings, not errors."""
        candidate = row(2, amount="150000000", occurred_at=date(2024, 7, 30))
        result = asyncio.run(TransactionValidator().validate(company_id, candidate, today=TODAY))
        assert result.is_valid is True
        assert {i.issue_type for i in result.issues} == {"future_date", "suspicious_value"}
        assert len(result.warnings) == 2

    def test_stored_duplicate_is_flagged(self, storage, company_id, tx_factory):
        """Test a row matching a stored transaction is a potential duplicate."""
        asyncio.run(storage.save_transactions([tx_factory(100, date(2024, 6, 1))]))
        result = asyncio.run(TransactionValidator(storage).validate(company_id, row(2), today=TODAY))
        assert result.is_duplicate is True


class TestTransactionImporter:
    """Tests for resolving and persisting import rows."""

    def _seed(self, storage, account, categories):
        async def seed():
            await storage.save_account(account)
            for category in categories.values():
                await storage.save_category(category)
        asyncio.run(seed())

    def test_import_resolves_names(self, storage, company_id, account, categories):
        """Test account and category names resolve case-insensitively."""
        self._seed(storage, account, categories)
        rows = [
            row(2, account_name="main ACCOUNT", category_name="office", note="Paper"),
            row(3, amount="40.00", category_name="Unknown", note="Snacks"),
        ]

        result = asyncio.run(TransactionImporter(storage).import_rows(
            company_id, rows, default_account_id=account.id, today=TODAY
        ))
        stored = asyncio.run(storage.list_transactions(company_id))

        assert result.imported == 2
        assert result.skipped == 0
        assert result.category_ids == [categories["office"].id]
        assert "Row 3: unknown category 'Unknown', left uncategorized" in result.warnings
        assert {t.import_batch_id for t in stored} == {result.batch_id}
        assert all(t.account_id == account.id for t in stored)

    def test_duplicates_are_skipped(self, storage, company_id, account, categories, tx_factory):
        """Test rows matching stored data or an earlier row are skipped."""
        self._seed(storage, account, categories)
        asyncio.run(storage.save_transactions([tx_factory(100, date(2024, 6, 1), note="Rent")]))
        rows = [
            row(2, note="Rent"),
            row(3, amount="55.00", note="Taxi"),
            row(4, amount="55.00", note="Taxi"),
        ]

        result = asyncio.run(TransactionImporter(storage).import_rows(
            company_id, rows, default_account_id=account.id, today=TODAY
        ))

        assert result.imported == 1
        assert result.skipped == 2
        assert result.warnings == [
            "Row 2: duplicate of an existing transaction, skipped",
            "Row 4: duplicate of an existing transaction, skipped",
        ]

    def test_rows_without_account_are_skipped(self, storage, company_id, account, categories):
        """Test a row needs a known account or a default account."""
        self._seed(storage, account, categories)
        rows = [row(2, account_name="Safe"), row(3, amount="5.00")]

        result = asyncio.run(TransactionImporter(storage).import_rows(company_id, rows, today=TODAY))

        assert result.imported == 0
        assert result.warnings == [
            "Row 2: unknown account 'Safe'",
            "Row 3: no account given and no default account set",
        ]

    def test_unknown_account_falls_back_with_warning(self, storage, company_id, account, categories):
        """Test a row naming a missing account is booked to the default account and says so."""
        self._seed(storage, account, categories)

        result = asyncio.run(TransactionImporter(storage).import_rows(
            company_id, [row(2, account_name="Safe")], default_account_id=account.id, today=TODAY
        ))
        stored = asyncio.run(storage.list_transactions(company_id))

        assert result.imported == 1
        assert result.warnings == [
            "Row 2: unknown account 'Safe', booked to the default account"
        ]
        assert stored[0].account_id == account.id

    def test_foreign_default_account_is_refused(self, storage, company_id, account, categories):
        """Test the default account must belong to the company."""
        self._seed(storage, account, categories)
        foreign = Account(company_id=uuid4(), name="Foreign")
        with pytest.raises(ValueError, match="does not belong"):
            asyncio.run(TransactionImporter(storage).import_rows(
                company_id, [row(2)], default_account_id=foreign.id, today=TODAY
            ))
