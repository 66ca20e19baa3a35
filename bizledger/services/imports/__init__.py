"""CSV import package."""

from bizledger.services.imports.csv_parser import (
    CsvImportError,
    check_headers,
    group_by_description,
    normalize_header,
    parse_bank_statement,
    parse_csv_text,
    read_csv_records,
    validate_csv_records,
)
from bizledger.services.imports.importer import TransactionImporter

__all__ = [
    "CsvImportError",
    "TransactionImporter",
    "check_headers",
    "group_by_description",
    "normalize_header",
    "parse_bank_statement",
    "parse_csv_text",
    "read_csv_records",
    "validate_csv_records",
]
