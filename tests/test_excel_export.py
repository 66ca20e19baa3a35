"""Tests for finance report aggregation and the Excel writers."""

import io
from datetime import date, datetime
from decimal import Decimal

from openpyxl import load_workbook

from bizledger.models.accounting import KudirEntry, KudirSummary
from bizledger.models.finance import Account, Budget, TransactionDirection
from bizledger.services.export import (
    build_finance_report_data,
    generate_finance_report,
    generate_kudir_workbook,
)


def read(content: bytes):
    return load_workbook(io.BytesIO(content))


class TestBuildFinanceReportData:
    """Tests for the report aggregation."""

    def _data(self, company_id, account, categories, tx_factory, **period):
        office, fuel, sales = categories["office"], categories["fuel"], categories["sales"]
        archived = Account(company_id=company_id, name="Old safe", archived=True)
        transactions = [
            tx_factory(300, date(2024, 6, 5), office, note="Paper"),
            tx_factory(100, date(2024, 6, 7), office),
            tx_factory(600, date(2024, 6, 9), fuel),
            tx_factory(2000, date(2024, 6, 10), sales, direction=TransactionDirection.INCOME),
            tx_factory(50, date(2024, 6, 11)),
            tx_factory(999, date(2024, 7, 1), office),
        ]
        budget = Budget(
            company_id=company_id,
            category_id=office.id,
            limit_amount=Decimal("500"),
            period_start=date(2024, 6, 1),
            period_end=date(2024, 7, 31),
        )
        return build_finance_report_data(
            transactions, [account, archived], categories.values(), [budget], **period
        )

    def test_period_filter_and_totals(self, company_id, account, categories, tx_factory):
        """Test the period bounds, summary totals and newest-first order."""
        data = self._data(company_id, account, categories, tx_factory,
                          date_from=date(2024, 6, 1), date_to=date(2024, 6, 30))

        assert data.period_label == "01.06.2024 - 30.06.2024"
        assert data.summary.total_income == Decimal("2000")
        assert data.summary.total_expense == Decimal("1050")
        assert data.summary.balance == Decimal("950")
        assert data.summary.transaction_count == 5
        assert data.transactions[0].occurred_at == date(2024, 6, 11)
        assert data.transactions[0].category == "Uncategorized"
        assert [a.name for a in data.accounts] == ["Main account"]

    def test_category_totals(self, company_id, account, categories, tx_factory):
        """Test expense categories are ranked with shares and averages."""
        data = self._data(company_id, account, categories, tx_factory, date_to=date(2024, 6, 30))
        totals = {c.category: c for c in data.categories}

        assert data.categories[0].category == "Fuel"
        assert totals["Office"].total == Decimal("400")
        assert totals["Office"].count == 2
        assert totals["Office"].average == Decimal("200.00")
        assert totals["Fuel"].percentage == 57.1
        assert "Sales" not in totals
        assert data.summary.category_count == 3

    def test_budget_rows_follow_selected_transactions(self, company_id, account, categories, tx_factory):
        """Test budget usage is computed from the reported period only."""
        june = self._data(company_id, account, categories, tx_factory,
                          date_from=date(2024, 6, 1), date_to=date(2024, 6, 30))
        everything = self._data(company_id, account, categories, tx_factory)

        assert june.budgets[0].spent == Decimal("400")
        assert june.budgets[0].percentage == 80
        assert everything.period_label == "All time"
        assert everything.budgets[0].spent == Decimal("1399")
        assert everything.budgets[0].remaining == Decimal("-899")


class TestFinanceWorkbook:
    """Tests for the finance workbook layout."""

    def test_sheets_and_cells(self, company_id, account, categories, tx_factory):
        """Test each sheet carries its header and values."""
        data = TestBuildFinanceReportData()._data(
            company_id, account, categories, tx_factory,
            date_from=date(2024, 6, 1), date_to=date(2024, 6, 30),
        )

        wb = read(generate_finance_report(data))

        assert wb.sheetnames == ["Summary", "Transactions", "Categories", "Budgets"]

        summary = wb["Summary"]
        assert summary["A1"].value == "Financial summary"
        assert summary["B2"].value == "01.06.2024 - 30.06.2024"
        assert summary["A5"].value == "Income"
        assert summary["B5"].value == 2000
        assert summary["B8"].value == 5

        transactions = wb["Transactions"]
        assert [c.value for c in transactions[1]] == ["Date", "Type", "Amount", "Category", "Account", "Note"]
        assert transactions["A2"].value == datetime(2024, 6, 11)
        assert transactions["B2"].value == "Expense"
        assert transactions.max_row == 6

        assert wb["Categories"]["A2"].value == "Fuel"
        budgets = wb["Budgets"]
        assert budgets["E2"].value == 80
        assert budgets["F2"].value == "01.06.2024 - 31.07.2024"

    def test_formula_like_text_stays_text(self, account, categories, tx_factory):
        """Test an imported note starting with "=" is written as a string, not a formula."""
        note = '=HYPERLINK("http://example.com","x")'
        data = build_finance_report_data(
            [tx_factory(10, date(2024, 6, 5), categories["office"], note=note)],
            [account], categories.values(), [],
        )

        cell = read(generate_finance_report(data))["Transactions"]["F2"]

        assert cell.data_type == "s"
        assert cell.value == note

    def test_empty_report(self):
        """Test a report without data still has all sheets."""
        wb = read(generate_finance_report(build_finance_report_data([], [], [], [])))
        assert wb["Summary"]["B5"].value == 0
        assert wb["Transactions"].max_row == 1


class TestKudirWorkbook:
    """Tests for the KUDiR workbook."""

    def test_entries_totals_and_quarters(self, company_id):
        """Test entries, the total row and computed quarter totals."""
        entries = [
            KudirEntry(company_id=company_id, entry_number=1, entry_date=date(2024, 2, 1),
                       description="Invoice No.17", document_number="17",
                       document_date=date(2024, 1, 20), income=Decimal("1000"),
                       counterparty_name="ACME"),
            KudirEntry(company_id=company_id, entry_number=2, entry_date=date(2024, 5, 3),
                       description="Rent", expense=Decimal("300")),
        ]
        summary = KudirSummary(period="2024", total_income=Decimal("1000"),
                               total_expense=Decimal("300"), profit=Decimal("700"),
                               entries_count=2)

        wb = read(generate_kudir_workbook(entries, summary))

        ledger = wb["KUDiR"]
        assert ledger["A1"].value == "Income and expense ledger, 2024"
        assert ledger["A3"].value == "No."
        assert ledger["C4"].value == "17 from 20.01.2024"
        assert ledger["F4"].value == 1000
        assert ledger["G4"].value is None
        assert ledger["G5"].value == 300
        assert ledger["A6"].value == "Total"
        assert ledger["F6"].value == 1000

        quarters = wb["Quarters"]
        assert [quarters.cell(row=r, column=1).value for r in range(2, 7)] == ["Q1", "Q2", "Q3", "Q4", "2024"]
        assert quarters["D2"].value == 1000
        assert quarters["D3"].value == -300
        assert quarters["E6"].value == 2

    def test_formula_like_description_stays_text(self, company_id):
        """Test a KUDiR description such as "@SUM(A1)" is not turned into a formula."""
        entry = KudirEntry(company_id=company_id, entry_number=1, entry_date=date(2024, 2, 1),
                           description="@SUM(A1)", income=Decimal("10"))
        summary = KudirSummary(period="2024", total_income=Decimal("10"),
                               total_expense=Decimal("0"), profit=Decimal("10"),
                               entries_count=1)

        cell = read(generate_kudir_workbook([entry], summary))["KUDiR"]["D4"]

        assert cell.data_type == "s"
        assert cell.value == "@SUM(A1)"
