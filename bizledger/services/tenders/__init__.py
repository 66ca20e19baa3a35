"""Tender reporting package."""

from bizledger.services.tenders.dashboard import build_dashboard, visible_tenders
from bizledger.services.tenders.guarantees import build_guarantees_report, parse_duration_days
from bizledger.services.tenders.performance import build_manager_performance
from bizledger.services.tenders.service import TenderReportService

__all__ = [
    "TenderReportService",
    "build_dashboard",
    "build_guarantees_report",
    "build_manager_performance",
    "parse_duration_days",
    "visible_tenders",
]
