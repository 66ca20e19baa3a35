"""
Manager Performance Report

Ranks the employees who execute tenders. A tender counts for its
executor; tenders without an executor are not attributed to anyone.

Metrics per manager:
- win_rate: won / (won + lost), like the dashboard
- avg_deal_size: contract value per won tender
- avg_savings_percent: how far below NMCK the won contracts were signed
- efficiency: finished (won or lost) tenders as a share of all assigned
- trend: tenders won in the last 30 days against the 30 days before

A tender's win date is its results date, or its creation date when no
results date was recorded.
"""

from datetime import date, timedelta
from decimal import Decimal
from typing import Iterable, Optional
from uuid import UUID

from bizledger.models.tender import (
    Employee,
    ManagerPerformance,
    ManagerPerformanceReport,
    PerformanceTrend,
    TeamOverview,
    Tender,
    TenderStatus,
)
from bizledger.services.tenders.dashboard import UNKNOWN_EMPLOYEE, win_rate

TREND_WINDOW_DAYS = 30


def _won_on(tender: Tender) -> date:
    return tender.results_date or tender.created_at.date()


def _trend(won: list[Tender], today: date) -> PerformanceTrend:
    recent_start = today - timedelta(days=TREND_WINDOW_DAYS)
    previous_start = recent_start - timedelta(days=TREND_WINDOW_DAYS)
    recent = sum(1 for t in won if recent_start < _won_on(t) <= today)
    previous = sum(1 for t in won if previous_start < _won_on(t) <= recent_start)
    if recent > previous:
        return PerformanceTrend.UP
    if recent < previous:
        return PerformanceTrend.DOWN
    return PerformanceTrend.STABLE


def _manager_performance(
    manager_id: UUID,
    employee: Optional[Employee],
    tenders: list[Tender],
    today: date,
) -> ManagerPerformance:
    won = [t for t in tenders if t.status == TenderStatus.WON]
    lost = sum(1 for t in tenders if t.status == TenderStatus.LOST)
    active = sum(1 for t in tenders if t.status == TenderStatus.ACTIVE)

    contract_total = sum((t.effective_contract_value for t in won), Decimal("0"))
    won_nmck = sum((t.nmck for t in won), Decimal("0"))
    savings = (
        round(float((won_nmck - contract_total) / won_nmck * 100), 1)
        if won_nmck > 0 else 0.0
    )

    return ManagerPerformance(
        manager_id=manager_id,
        name=employee.full_name if employee else UNKNOWN_EMPLOYEE,
        position=employee.position if employee else None,
        total_tenders=len(tenders),
        won_tenders=len(won),
        lost_tenders=lost,
        active_tenders=active,
        win_rate=win_rate(len(won), lost),
        total_nmck=sum((t.nmck for t in tenders), Decimal("0")),
        total_contract_price=contract_total,
        avg_deal_size=(contract_total / len(won)).quantize(Decimal("0.01")) if won else Decimal("0"),
        avg_savings_percent=savings,
        efficiency=round((len(won) + lost) / len(tenders) * 100, 1),
        trend=_trend(won, today),
    )


def _team_overview(managers: list[ManagerPerformance]) -> TeamOverview:
    if not managers:
        return TeamOverview()

    finished = [m for m in managers if m.won_tenders + m.lost_tenders > 0]
    best = max(finished, key=lambda m: (m.win_rate, m.won_tenders), default=None)

    return TeamOverview(
        total_managers=len(managers),
        total_tenders=sum(m.total_tenders for m in managers),
        total_won=sum(m.won_tenders for m in managers),
        avg_win_rate=round(sum(m.win_rate for m in managers) / len(managers), 1),
        total_contract_value=sum((m.total_contract_price for m in managers), Decimal("0")),
        best_manager=best,
    )


def build_manager_performance(
    tenders: Iterable[Tender],
    employees: Iterable[Employee],
    today: Optional[date] = None,
) -> ManagerPerformanceReport:
    """
    Build the manager performance report.

    Managers are ranked by win rate, then by won count, then by contract
    value; rank 1 is the best.
    """
    today = today or date.today()
    staff = {e.id: e for e in employees}

    by_executor: dict[UUID, list[Tender]] = {}
    for tender in tenders:
        if tender.deleted or tender.executor_id is None:
            continue
        by_executor.setdefault(tender.executor_id, []).append(tender)

    managers = [
        _manager_performance(manager_id, staff.get(manager_id), rows, today)
        for manager_id, rows in by_executor.items()
    ]
    managers.sort(
        key=lambda m: (m.win_rate, m.won_tenders, m.total_contract_price),
        reverse=True,
    )
    for rank, manager in enumerate(managers, start=1):
        manager.rank = rank

    return ManagerPerformanceReport(managers=managers, team=_team_overview(managers))
