"""Excel export package."""

from bizledger.services.export.excel import (
    build_finance_report_data,
    excel_autosize,
    generate_finance_report,
    generate_kudir_workbook,
)

__all__ = [
    "build_finance_report_data",
    "excel_autosize",
    "generate_finance_report",
    "generate_kudir_workbook",
]
