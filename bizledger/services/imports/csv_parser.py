"""
CSV Parsing and Row Validation

Two input shapes are supported:

1. The generic template: a header row with date, amount and direction
   (plus optional account, category, counterparty, note, currency).
   Headers are normalized, so "Дата", " DATE " and "date" all match.
2. A bank statement export: ";"-separated, quoted, with fixed column
   positions and signed amounts.

Nothing here touches storage. Rows are turned into CsvNormalizedRow
objects or per-row error lists; resolving names to ids is the importer's job.
"""

import csv
import io
import re
from collections import defaultdict
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Iterable, Optional

from bizledger.models.finance import TransactionDirection
from bizledger.models.imports import (
    CsvNormalizedRow,
    CsvRowValidationResult,
    CsvValidationSummary,
    HeaderCheckResult,
)

REQUIRED_HEADERS = ("date", "amount", "direction")
OPTIONAL_HEADERS = ("account", "category", "counterparty", "note", "currency")

HEADER_ALIASES = {
    "дата": "date",
    "дата_операции": "date",
    "occurred_at": "date",
    "сумма": "amount",
    "сумма_операции": "amount",
    "тип": "direction",
    "направление": "direction",
    "type": "direction",
    "счет": "account",
    "счёт": "account",
    "account_name": "account",
    "категория": "category",
    "category_name": "category",
    "контрагент": "counterparty",
    "комментарий": "note",
    "описание": "note",
    "description": "note",
    "comment": "note",
    "валюта": "currency",
}

DIRECTION_ALIASES = {
    "income": TransactionDirection.INCOME,
    "in": TransactionDirection.INCOME,
    "доход": TransactionDirection.INCOME,
    "приход": TransactionDirection.INCOME,
    "expense": TransactionDirection.EXPENSE,
    "out": TransactionDirection.EXPENSE,
    "расход": TransactionDirection.EXPENSE,
    "transfer": TransactionDirection.TRANSFER,
    "перевод": TransactionDirection.TRANSFER,
}

DATE_FORMATS = ("%Y-%m-%d", "%d.%m.%Y")

# Bank statement export column positions
BANK_DATE_COLUMN = 1
BANK_AMOUNT_COLUMN = 4
BANK_CATEGORY_COLUMN = 9
BANK_DESCRIPTION_COLUMN = 11

CENTS = Decimal("0.01")


class CsvImportError(Exception):
    """The file as a whole cannot be imported (no header, wrong headers, empty)."""
    pass


def normalize_header(header: str) -> str:
    """Trim, lower-case and snake_case a header, then map known aliases."""
    key = re.sub(r"[\s\-]+", "_", header.strip().lower().lstrip("﻿"))
    return HEADER_ALIASES.get(key, key)


def check_headers(headers: Iterable[str]) -> HeaderCheckResult:
    """Compare normalized headers against the import template."""
    normalized = [normalize_header(h) for h in headers if h and h.strip()]
    present = set(normalized)
    known = set(REQUIRED_HEADERS) | set(OPTIONAL_HEADERS)

    missing = [h for h in REQUIRED_HEADERS if h not in present]
    unexpected = [h for h in normalized if h not in known]
    return HeaderCheckResult(
        ok=not missing and not unexpected,
        missing=missing,
        unexpected=unexpected,
    )


def parse_amount(raw: str) -> Decimal:
    """
    Parse a money cell: "1 234,50", "-500", "1234.5".

    Raises:
        ValueError: If the cell is not a number
    """
    cleaned = re.sub(r"\s", "", raw.replace("\xa0", "")).replace(",", ".")
    if not cleaned:
        raise ValueError("empty amount")
    try:
        value = Decimal(cleaned)
        if not value.is_finite():
            raise ValueError(f"not a finite number: {raw!r}")
        return value.quantize(CENTS)
    except InvalidOperation:
        raise ValueError(f"not a number: {raw!r}")


def parse_date(raw: str) -> date:
    """Parse YYYY-MM-DD or DD.MM.YYYY, ignoring a trailing time part."""
    value = raw.strip().split(" ")[0]
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(value, fmt).date()
        except ValueError:
            continue
    raise ValueError(f"unrecognized date: {raw!r}")


def parse_direction(raw: str) -> Optional[TransactionDirection]:
    return DIRECTION_ALIASES.get(raw.strip().lower())


def _validate_record(record: dict[str, str], row_number: int) -> tuple[Optional[CsvNormalizedRow], list[str]]:
    issues = []

    def get(key: str) -> str:
        return (record.get(key) or "").strip()

    occurred_at = None
    if not get("date"):
        issues.append("Date is required")
    else:
        try:
            occurred_at = parse_date(get("date"))
        except ValueError:
            issues.append(f"Invalid date '{get('date')}' (expected YYYY-MM-DD or DD.MM.YYYY)")

    amount = None
    if not get("amount"):
        issues.append("Amount is required")
    else:
        try:
            amount = parse_amount(get("amount"))
            if amount == 0:
                issues.append("Amount must not be zero")
        except ValueError:
            issues.append(f"Invalid amount '{get('amount')}'")

    direction = None
    if get("direction"):
        direction = parse_direction(get("direction"))
        if direction is None:
            issues.append(f"Unknown direction '{get('direction')}'")
    elif amount is not None and amount < 0:
        # A signed amount with no direction is a bank-style expense
        direction = TransactionDirection.EXPENSE
    else:
        issues.append("Direction is required")

    if issues:
        return None, issues

    return CsvNormalizedRow(
        row_number=row_number,
        occurred_at=occurred_at,
        direction=direction,
        amount=abs(amount),
        account_name=get("account") or None,
        category_name=get("category") or None,
        counterparty=get("counterparty") or None,
        note=get("note") or None,
        currency=get("currency").upper() or None,
    ), []


def validate_csv_records(
    records: list[dict[str, str]],
    start_row: int = 2,
) -> CsvValidationSummary:
    """
    Validate raw records keyed by normalized header.

    Args:
        records: One dict per data row
        start_row: File line number of the first record (header is line 1)

    Returns:
        Normalized rows for valid records and an issue list per invalid record
    """
    summary = CsvValidationSummary()
    for offset, record in enumerate(records):
        row_number = start_row + offset
        if not any((v or "").strip() for v in record.values()):
            continue  # blank line
        row, issues = _validate_record(record, row_number)
        if row is not None:
            summary.normalized.append(row)
        else:
            summary.errors.append(CsvRowValidationResult(row_number=row_number, issues=issues))
    return summary


def sniff_delimiter(sample: str) -> str:
    """";" when the header line has at least as many semicolons as commas."""
    first_line = sample.splitlines()[0] if sample else ""
    return ";" if first_line.count(";") >= first_line.count(",") and ";" in first_line else ","


def read_csv_records(text: str) -> tuple[list[str], list[dict[str, str]]]:
    """
    Read a template CSV into (raw headers, records keyed by normalized header).

    Raises:
        CsvImportError: If the file is empty or has no header row
    """
    text = text.lstrip("﻿")
    if not text.strip():
        raise CsvImportError("File is empty")

    reader = csv.reader(io.StringIO(text), delimiter=sniff_delimiter(text))
    rows = list(reader)
    headers = rows[0]
    if not any(h.strip() for h in headers):
        raise CsvImportError("File has no header row")

    keys = [normalize_header(h) for h in headers]
    records = []
    for row in rows[1:]:
        records.append({
            key: (row[i] if i < len(row) else "")
            for i, key in enumerate(keys)
            if key
        })
    return headers, records


def parse_csv_text(text: str, max_rows: Optional[int] = None) -> CsvValidationSummary:
    """
    Read, check headers and validate a template CSV in one go.

    Raises:
        CsvImportError: On a missing header, wrong headers or too many rows
    """
    headers, records = read_csv_records(text)

    header_check = check_headers(headers)
    if not header_check.ok:
        problems = []
        if header_check.missing:
            problems.append(f"missing columns: {', '.join(header_check.missing)}")
        if header_check.unexpected:
            problems.append(f"unexpected columns: {', '.join(header_check.unexpected)}")
        raise CsvImportError("; ".join(problems))

    if max_rows is not None and len(records) > max_rows:
        raise CsvImportError(f"File has {len(records)} rows, the limit is {max_rows}")

    return validate_csv_records(records)


def parse_bank_statement(text: str) -> CsvValidationSummary:
    """
    Parse a bank statement export.

    Rows without a date or description are skipped. A positive amount is
    income, a negative one expense; the bank's own category is kept as
    the category name so the user can map it.
    """
    summary = CsvValidationSummary()
    reader = csv.reader(io.StringIO(text.lstrip("﻿").strip()), delimiter=";", quotechar='"')
    for line_number, values in enumerate(reader, start=1):
        if line_number == 1:
            continue  # header

        def cell(index: int) -> str:
            return values[index].strip() if index < len(values) else ""

        date_str = cell(BANK_DATE_COLUMN)
        description = cell(BANK_DESCRIPTION_COLUMN)
        if not date_str or not description:
            continue

        issues = []
        occurred_at = amount = None
        try:
            occurred_at = parse_date(date_str)
        except ValueError:
            issues.append(f"Invalid date '{date_str}'")
        try:
            amount = parse_amount(cell(BANK_AMOUNT_COLUMN) or "0")
            if amount == 0:
                issues.append("Amount must not be zero")
        except ValueError:
            issues.append(f"Invalid amount '{cell(BANK_AMOUNT_COLUMN)}'")

        if issues:
            summary.errors.append(CsvRowValidationResult(row_number=line_number, issues=issues))
            continue

        summary.normalized.append(CsvNormalizedRow(
            row_number=line_number,
            occurred_at=occurred_at,
            direction=TransactionDirection.INCOME if amount > 0 else TransactionDirection.EXPENSE,
            amount=abs(amount),
            category_name=cell(BANK_CATEGORY_COLUMN) or None,
            note=description,
        ))
    return summary


def group_by_description(rows: list[CsvNormalizedRow]) -> dict[str, list[CsvNormalizedRow]]:
    """
    Group statement rows sharing a description, largest groups first.

    Lets the user assign one category to every payment to the same payee.
    """
    groups: dict[str, list[CsvNormalizedRow]] = defaultdict(list)
    for row in rows:
        groups[(row.note or "").strip()].append(row)
    return dict(sorted(groups.items(), key=lambda item: len(item[1]), reverse=True))
