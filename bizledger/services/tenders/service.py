"""Loads a company's tender rows and runs the report builders."""

from datetime import date
from typing import Optional
from uuid import UUID

import structlog

from bizledger.config import get_settings
from bizledger.config.settings import AppSettings
from bizledger.models.tender import (
    GuaranteesReport,
    ManagerPerformanceReport,
    TenderDashboard,
)
from bizledger.services.storage import TenderStorageInterface
from bizledger.services.tenders.dashboard import build_dashboard
from bizledger.services.tenders.guarantees import build_guarantees_report
from bizledger.services.tenders.performance import build_manager_performance

logger = structlog.get_logger(__name__)


class TenderReportService:
    """Dashboard, manager performance and guarantees for one company."""

    def __init__(
        self,
        tender_storage: TenderStorageInterface,
        settings: Optional[AppSettings] = None,
    ):
        self._storage = tender_storage
        self._settings = settings or get_settings().app

    async def dashboard(
        self,
        company_id: UUID,
        today: Optional[date] = None,
        viewer_id: Optional[UUID] = None,
        can_view_all: bool = True,
    ) -> TenderDashboard:
        tenders = await self._storage.list_tenders(company_id)
        tasks = await self._storage.list_tasks(company_id)
        employees = await self._storage.list_employees(company_id)
        logger.info(
            "tender_dashboard_built",
            company_id=str(company_id),
            tenders=len(tenders),
            restricted=not can_view_all,
        )
        return build_dashboard(
            tenders,
            tasks,
            employees,
            today=today,
            viewer_id=viewer_id,
            can_view_all=can_view_all,
            list_size=self._settings.dashboard_list_size,
        )

    async def manager_performance(
        self,
        company_id: UUID,
        today: Optional[date] = None,
    ) -> ManagerPerformanceReport:
        tenders = await self._storage.list_tenders(company_id)
        employees = await self._storage.list_employees(company_id)
        return build_manager_performance(tenders, employees, today)

    async def guarantees(
        self,
        company_id: UUID,
        today: Optional[date] = None,
    ) -> GuaranteesReport:
        tenders = await self._storage.list_tenders(company_id)
        return build_guarantees_report(tenders, today, self._settings)
