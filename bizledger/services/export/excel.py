"""
Excel Report Generation

Writes finance and KUDiR workbooks with openpyxl and returns the file
as bytes, ready for a download button or an e-mail attachment.

The aggregation (build_finance_report_data) is kept apart from the
writing so the numbers can be tested without opening a workbook.
"""

import io
from collections import defaultdict
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional

import structlog
from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

from bizledger.models.accounting import KudirEntry, KudirSummary
from bizledger.models.finance import (
    Account,
    Budget,
    Category,
    Transaction,
    TransactionDirection,
)
from bizledger.models.report import (
    AccountRow,
    BudgetRow,
    CategoryTotal,
    FinanceReportData,
    FinanceSummary,
    TransactionRow,
)
from bizledger.services.accounting.kudir import quarter_of, summarize_entries
from bizledger.services.budgets.service import calculate_budget_usage, round_percent

logger = structlog.get_logger(__name__)

UNCATEGORIZED = "Uncategorized"
UNKNOWN_ACCOUNT = "Unknown"

DIRECTION_LABELS = {
    TransactionDirection.INCOME: "Income",
    TransactionDirection.EXPENSE: "Expense",
    TransactionDirection.TRANSFER: "Transfer",
}

MONEY_FORMAT = "#,##0.00"
DATE_FORMAT = "DD.MM.YYYY"

# Text starting with these is read as a formula by spreadsheet apps
FORMULA_PREFIXES = ("=", "+", "-", "@")

HEADER_FONT = Font(bold=True, color="FFFFFF")
HEADER_FILL = PatternFill("solid", fgColor="3B82F6")
TOTAL_FONT = Font(bold=True)
TOTAL_FILL = PatternFill("solid", fgColor="E2EFDA")
TITLE_FONT = Font(bold=True, size=16)
_THIN = Side(style="thin", color="9E9E9E")
BORDER = Border(left=_THIN, right=_THIN, top=_THIN, bottom=_THIN)

CENTS = Decimal("0.01")


# =============================================================================
# AGGREGATION
# =============================================================================

def _cents(value: Decimal) -> Decimal:
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


def summarize_categories(rows: list[TransactionRow]) -> list[CategoryTotal]:
    """Expense totals per category, largest first."""
    totals: dict[str, Decimal] = defaultdict(Decimal)
    counts: dict[str, int] = defaultdict(int)
    for row in rows:
        if row.direction != TransactionDirection.EXPENSE:
            continue
        totals[row.category] += abs(row.amount)
        counts[row.category] += 1

    grand_total = sum(totals.values(), Decimal("0"))
    result = [
        CategoryTotal(
            category=name,
            total=total,
            count=counts[name],
            average=_cents(total / counts[name]),
            percentage=round(float(total / grand_total * 100), 1) if grand_total else 0.0,
        )
        for name, total in totals.items()
    ]
    result.sort(key=lambda c: c.total, reverse=True)
    return result


def build_finance_report_data(
    transactions: Iterable[Transaction],
    accounts: Iterable[Account],
    categories: Iterable[Category],
    budgets: Iterable[Budget],
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
) -> FinanceReportData:
    """
    Aggregate one company's finance data into report rows.

    Transactions outside [date_from, date_to] are left out. Budget usage
    is computed from the transactions that remain, so the Budgets sheet
    agrees with the Transactions sheet.

    Returns:
        FinanceReportData with transactions newest first
    """
    category_names = {c.id: c.name for c in categories}
    account_list = [a for a in accounts if not a.archived]
    account_names = {a.id: a.name for a in account_list}

    selected = [
        tx for tx in transactions
        if (date_from is None or tx.occurred_at >= date_from)
        and (date_to is None or tx.occurred_at <= date_to)
    ]
    selected.sort(key=lambda tx: tx.occurred_at, reverse=True)

    rows = [
        TransactionRow(
            occurred_at=tx.occurred_at,
            direction=tx.direction,
            amount=tx.amount,
            category=category_names.get(tx.category_id, UNCATEGORIZED),
            account=account_names.get(tx.account_id, UNKNOWN_ACCOUNT),
            note=tx.note or "",
        )
        for tx in selected
    ]

    income = sum(
        (abs(r.amount) for r in rows if r.direction == TransactionDirection.INCOME),
        Decimal("0"),
    )
    expense = sum(
        (abs(r.amount) for r in rows if r.direction == TransactionDirection.EXPENSE),
        Decimal("0"),
    )
    category_totals = summarize_categories(rows)

    budget_rows = []
    for budget in budgets:
        usage = calculate_budget_usage(budget, selected)
        budget_rows.append(BudgetRow(
            category=category_names.get(budget.category_id, UNCATEGORIZED),
            limit_amount=budget.limit_amount,
            spent=usage.spent,
            remaining=usage.remaining,
            percentage=round_percent(usage.percentage),
            period_start=budget.period_start,
            period_end=budget.period_end,
        ))

    if date_from or date_to:
        start = date_from.strftime("%d.%m.%Y") if date_from else "..."
        end = date_to.strftime("%d.%m.%Y") if date_to else "..."
        period_label = f"{start} - {end}"
    else:
        period_label = "All time"

    return FinanceReportData(
        period_label=period_label,
        date_from=date_from,
        date_to=date_to,
        summary=FinanceSummary(
            total_income=income,
            total_expense=expense,
            balance=income - expense,
            transaction_count=len(rows),
            category_count=len(category_totals),
        ),
        accounts=[
            AccountRow(name=a.name, type=a.type, balance=a.balance, currency=a.currency)
            for a in account_list
        ],
        transactions=rows,
        categories=category_totals,
        budgets=budget_rows,
    )


# =============================================================================
# WORKBOOK HELPERS
# =============================================================================

def excel_autosize(ws, max_width: int = 60):
    """Fit each column to its longest value."""
    for col in ws.columns:
        max_len = 0
        col_letter = get_column_letter(col[0].column)
        for cell in col:
            v = "" if cell.value is None else str(cell.value)
            max_len = max(max_len, len(v))
        ws.column_dimensions[col_letter].width = min(max_len + 2, max_width)


def _write_header(ws, row: int, headers: list[str]):
    for column, title in enumerate(headers, start=1):
        cell = ws.cell(row=row, column=column, value=title)
        cell.font = HEADER_FONT
        cell.fill = HEADER_FILL
        cell.border = BORDER
        cell.alignment = Alignment(horizontal="center", vertical="center")


def _write_row(ws, row: int, values: list, money_columns=(), date_columns=()):
    for column, value in enumerate(values, start=1):
        if isinstance(value, Decimal):
            value = float(value)
        cell = ws.cell(row=row, column=column, value=value)
        if isinstance(value, str) and value.startswith(FORMULA_PREFIXES):
            cell.data_type = "s"
        cell.border = BORDER
        if column in money_columns:
            cell.number_format = MONEY_FORMAT
        elif column in date_columns:
            cell.number_format = DATE_FORMAT


def _style_total(ws, row: int, columns: int):
    for column in range(1, columns + 1):
        cell = ws.cell(row=row, column=column)
        cell.font = TOTAL_FONT
        cell.fill = TOTAL_FILL


def _title(ws, text: str, last_column: str):
    ws.merge_cells(f"A1:{last_column}1")
    ws["A1"] = text
    ws["A1"].font = TITLE_FONT
    ws["A1"].alignment = Alignment(horizontal="center", vertical="center")
    ws.row_dimensions[1].height = 28


def _to_bytes(wb: Workbook) -> bytes:
    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


# =============================================================================
# FINANCE REPORT
# =============================================================================

def _summary_sheet(ws, data: FinanceReportData):
    ws.title = "Summary"
    _title(ws, "Financial summary", "D")
    ws["A2"] = "Period:"
    ws["A2"].font = TOTAL_FONT
    ws["B2"] = data.period_label

    _write_header(ws, 4, ["Metric", "Value"])
    metrics = [
        ("Income", data.summary.total_income),
        ("Expenses", data.summary.total_expense),
        ("Balance", data.summary.balance),
        ("Transactions", data.summary.transaction_count),
        ("Categories", data.summary.category_count),
    ]
    for offset, (label, value) in enumerate(metrics, start=5):
        money = (2,) if isinstance(value, Decimal) else ()
        _write_row(ws, offset, [label, value], money_columns=money)

    row = 5 + len(metrics) + 1
    ws.cell(row=row, column=1, value="Accounts").font = TOTAL_FONT
    _write_header(ws, row + 1, ["Account", "Type", "Balance", "Currency"])
    for offset, account in enumerate(data.accounts, start=row + 2):
        _write_row(
            ws, offset,
            [account.name, account.type.value, account.balance, account.currency],
            money_columns=(3,),
        )
    excel_autosize(ws)


def _transactions_sheet(ws, data: FinanceReportData):
    _write_header(ws, 1, ["Date", "Type", "Amount", "Category", "Account", "Note"])
    for offset, tx in enumerate(data.transactions, start=2):
        _write_row(
            ws, offset,
            [
                tx.occurred_at,
                DIRECTION_LABELS[tx.direction],
                tx.amount,
                tx.category,
                tx.account,
                tx.note,
            ],
            money_columns=(3,),
            date_columns=(1,),
        )
    ws.freeze_panes = "A2"
    excel_autosize(ws)


def _categories_sheet(ws, data: FinanceReportData):
    _write_header(ws, 1, ["Category", "Total", "Count", "Average", "Share, %"])
    for offset, item in enumerate(data.categories, start=2):
        _write_row(
            ws, offset,
            [item.category, item.total, item.count, item.average, item.percentage],
            money_columns=(2, 4),
        )
    excel_autosize(ws)


def _budgets_sheet(ws, data: FinanceReportData):
    _write_header(ws, 1, ["Category", "Limit", "Spent", "Remaining", "Used, %", "Period"])
    for offset, item in enumerate(data.budgets, start=2):
        period = f"{item.period_start:%d.%m.%Y} - {item.period_end:%d.%m.%Y}"
        _write_row(
            ws, offset,
            [item.category, item.limit_amount, item.spent, item.remaining, item.percentage, period],
            money_columns=(2, 3, 4),
        )
        if item.percentage >= 100:
            ws.cell(row=offset, column=5).font = Font(bold=True, color="C00000")
    excel_autosize(ws)


def generate_finance_report(data: FinanceReportData) -> bytes:
    """
    Write the finance workbook.

    Sheets: Summary, Transactions, Categories, Budgets.

    Returns:
        The .xlsx file content
    """
    wb = Workbook()
    _summary_sheet(wb.active, data)
    _transactions_sheet(wb.create_sheet("Transactions"), data)
    _categories_sheet(wb.create_sheet("Categories"), data)
    _budgets_sheet(wb.create_sheet("Budgets"), data)

    content = _to_bytes(wb)
    logger.info(
        "finance_report_generated",
        transactions=len(data.transactions),
        size_bytes=len(content),
    )
    return content


# =============================================================================
# KUDIR WORKBOOK
# =============================================================================

def generate_kudir_workbook(
    entries: list[KudirEntry],
    summary: KudirSummary,
    quarters: Optional[list[KudirSummary]] = None,
) -> bytes:
    """
    Write the KUDiR ledger and its quarterly totals.

    Args:
        entries: Ledger entries in print order
        summary: Totals for the whole period; its `period` names the title
        quarters: Quarter totals; computed from the entries when omitted

    Returns:
        The .xlsx file content
    """
    if quarters is None:
        by_quarter: dict[int, list[KudirEntry]] = {q: [] for q in range(1, 5)}
        for entry in entries:
            by_quarter[quarter_of(entry.entry_date)].append(entry)
        quarters = [summarize_entries(f"Q{q}", by_quarter[q]) for q in range(1, 5)]

    wb = Workbook()
    ws = wb.active
    ws.title = "KUDiR"
    _title(ws, f"Income and expense ledger, {summary.period}", "G")

    headers = ["No.", "Date", "Document", "Description", "Counterparty", "Income", "Expense"]
    _write_header(ws, 3, headers)
    row = 4
    for entry in entries:
        document = entry.document_number or ""
        if entry.document_number and entry.document_date:
            document = f"{entry.document_number} from {entry.document_date:%d.%m.%Y}"
        _write_row(
            ws, row,
            [
                entry.entry_number,
                entry.entry_date,
                document,
                entry.description,
                entry.counterparty_name or "",
                entry.income if entry.income > 0 else None,
                entry.expense if entry.expense > 0 else None,
            ],
            money_columns=(6, 7),
            date_columns=(2,),
        )
        row += 1

    _write_row(
        ws, row,
        ["Total", None, None, None, None, summary.total_income, summary.total_expense],
        money_columns=(6, 7),
    )
    _style_total(ws, row, len(headers))
    ws.freeze_panes = "A4"
    excel_autosize(ws)

    qs = wb.create_sheet("Quarters")
    _write_header(qs, 1, ["Period", "Income", "Expense", "Profit", "Entries"])
    for offset, quarter in enumerate(quarters, start=2):
        _write_row(
            qs, offset,
            [quarter.period, quarter.total_income, quarter.total_expense,
             quarter.profit, quarter.entries_count],
            money_columns=(2, 3, 4),
        )
    total_row = len(quarters) + 2
    _write_row(
        qs, total_row,
        [summary.period, summary.total_income, summary.total_expense,
         summary.profit, summary.entries_count],
        money_columns=(2, 3, 4),
    )
    _style_total(qs, total_row, 5)
    excel_autosize(qs)

    content = _to_bytes(wb)
    logger.info("kudir_workbook_generated", entries=len(entries), size_bytes=len(content))
    return content
