"""
Tender Dashboard

Builds the tender overview shown on the dashboard page from already
loaded rows. Nothing here touches storage; TenderReportService does the
loading and passes the rows in.

DESIGN DECISION: Visibility is applied before any aggregation, so every
number on a restricted viewer's dashboard is computed over their own
tenders only.
"""

from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Iterable, Optional
from uuid import UUID

from bizledger.models.tender import (
    DashboardOverview,
    DeadlineItem,
    Employee,
    GroupStat,
    ManagerStat,
    MonthlyTenderStat,
    StageCategory,
    TaskStatus,
    TaskSummary,
    Tender,
    TenderDashboard,
    TenderStatus,
    TenderTask,
)

DEFAULT_STAGE_NAME = "New"
DEFAULT_STAGE_COLOR = "#6b7280"
DEFAULT_TYPE_NAME = "Other"
UNKNOWN_EMPLOYEE = "Unknown"

MONTHS_SHOWN = 12
LIST_SIZE = 5


def win_rate(won: int, lost: int) -> float:
    """Won share of finished tenders, in percent."""
    finished = won + lost
    return round(won / finished * 100, 1) if finished else 0.0


def last_month_keys(today: date, count: int = MONTHS_SHOWN) -> list[str]:
    """YYYY-MM keys of the last `count` months, oldest first, ending with today's month."""
    index = today.year * 12 + today.month - 1
    return [
        f"{i // 12:04d}-{i % 12 + 1:02d}"
        for i in range(index - count + 1, index + 1)
    ]


def visible_tenders(
    tenders: Iterable[Tender],
    viewer_id: Optional[UUID] = None,
    can_view_all: bool = True,
) -> list[Tender]:
    """Drop deleted tenders and, for restricted viewers, other people's tenders."""
    result = [t for t in tenders if not t.deleted]
    if can_view_all:
        return result
    if viewer_id is None:
        return []
    return [t for t in result if viewer_id in (t.manager_id, t.executor_id)]


def _percent(part: int, total: int) -> float:
    return round(part / total * 100, 1) if total else 0.0


def calculate_overview(tenders: list[Tender]) -> DashboardOverview:
    won = [t for t in tenders if t.status == TenderStatus.WON]
    lost_count = sum(1 for t in tenders if t.status == TenderStatus.LOST)
    pending = sum(
        1 for t in tenders
        if (t.stage_category or StageCategory.NEW) in (StageCategory.NEW, StageCategory.ANALYSIS)
    )

    total_contract = sum((t.effective_contract_value for t in won), Decimal("0"))
    savings = sum((t.nmck - t.effective_contract_value for t in won), Decimal("0"))
    average = (total_contract / len(won)).quantize(Decimal("0.01")) if won else Decimal("0")

    return DashboardOverview(
        total_tenders=len(tenders),
        active_tenders=sum(1 for t in tenders if t.status == TenderStatus.ACTIVE),
        won_tenders=len(won),
        lost_tenders=lost_count,
        pending_tenders=pending,
        total_nmck=sum((t.nmck for t in tenders), Decimal("0")),
        total_contract_price=total_contract,
        win_rate=win_rate(len(won), lost_count),
        total_savings=savings,
        avg_contract_value=average,
    )


def _group(tenders: list[Tender], key) -> list[GroupStat]:
    counts: dict[str, int] = defaultdict(int)
    nmck: dict[str, Decimal] = defaultdict(Decimal)
    colors: dict[str, Optional[str]] = {}
    for tender in tenders:
        name, color = key(tender)
        counts[name] += 1
        nmck[name] += tender.nmck
        colors.setdefault(name, color)

    stats = [
        GroupStat(
            name=name,
            color=colors[name],
            count=count,
            nmck=nmck[name],
            percent=_percent(count, len(tenders)),
        )
        for name, count in counts.items()
    ]
    stats.sort(key=lambda s: s.count, reverse=True)
    return stats


def calculate_by_stage(tenders: list[Tender]) -> list[GroupStat]:
    def key(t: Tender):
        if t.stage is None:
            return DEFAULT_STAGE_NAME, DEFAULT_STAGE_COLOR
        return t.stage.name, t.stage.color
    return _group(tenders, key)


def calculate_by_type(tenders: list[Tender]) -> list[GroupStat]:
    return _group(tenders, lambda t: (t.type.name if t.type else DEFAULT_TYPE_NAME, None))


def calculate_monthly(tenders: list[Tender], today: date) -> list[MonthlyTenderStat]:
    months = {key: MonthlyTenderStat(month=key) for key in last_month_keys(today)}
    for tender in tenders:
        stat = months.get(tender.created_at.strftime("%Y-%m"))
        if stat is None:
            continue
        stat.count += 1
        stat.nmck += tender.nmck
        if tender.status == TenderStatus.WON:
            stat.won += 1
            stat.contract_value += tender.effective_contract_value
        elif tender.status == TenderStatus.LOST:
            stat.lost += 1
    return list(months.values())


def calculate_top_managers(
    tenders: list[Tender],
    employees: Iterable[Employee],
    limit: int = LIST_SIZE,
) -> list[ManagerStat]:
    names = {e.id: e.full_name for e in employees}
    stats: dict[UUID, ManagerStat] = {}
    for tender in tenders:
        if tender.manager_id is None:
            continue
        stat = stats.get(tender.manager_id)
        if stat is None:
            stat = stats[tender.manager_id] = ManagerStat(
                manager_id=tender.manager_id,
                name=names.get(tender.manager_id, UNKNOWN_EMPLOYEE),
            )
        stat.total += 1
        if tender.status == TenderStatus.WON:
            stat.won += 1
            stat.contract_value += tender.effective_contract_value
        elif tender.status == TenderStatus.LOST:
            stat.lost += 1
        elif tender.status == TenderStatus.ACTIVE:
            stat.active += 1

    for stat in stats.values():
        stat.win_rate = win_rate(stat.won, stat.lost)

    ranked = sorted(stats.values(), key=lambda s: (s.won, s.contract_value), reverse=True)
    return ranked[:limit]


def recent_tenders(tenders: list[Tender], limit: int = LIST_SIZE) -> list[Tender]:
    return sorted(tenders, key=lambda t: t.created_at, reverse=True)[:limit]


def upcoming_deadlines(
    tenders: list[Tender],
    today: date,
    limit: int = LIST_SIZE,
) -> list[DeadlineItem]:
    items = [
        DeadlineItem(
            tender_id=t.id,
            purchase_number=t.purchase_number,
            subject=t.subject,
            deadline=t.submission_deadline,
            days_left=(t.submission_deadline - today).days,
        )
        for t in tenders
        if t.status == TenderStatus.ACTIVE
        and t.submission_deadline is not None
        and t.submission_deadline >= today
    ]
    items.sort(key=lambda i: i.days_left)
    return items[:limit]


def summarize_tasks(tasks: Iterable[TenderTask], today: date) -> TaskSummary:
    summary = TaskSummary()
    for task in tasks:
        summary.total += 1
        if task.status == TaskStatus.PENDING:
            summary.pending += 1
        elif task.status == TaskStatus.IN_PROGRESS:
            summary.in_progress += 1
        elif task.status == TaskStatus.COMPLETED:
            summary.completed += 1

        finished = task.status in (TaskStatus.COMPLETED, TaskStatus.CANCELLED)
        if task.due_date is not None and task.due_date < today and not finished:
            summary.overdue += 1
    return summary


def build_dashboard(
    tenders: Iterable[Tender],
    tasks: Iterable[TenderTask],
    employees: Iterable[Employee],
    today: Optional[date] = None,
    viewer_id: Optional[UUID] = None,
    can_view_all: bool = True,
    list_size: int = LIST_SIZE,
) -> TenderDashboard:
    """
    Build the tender dashboard for one company.

    Args:
        tenders: The company's tenders; deleted ones are skipped
        tasks: The company's tender tasks
        employees: The company's employees, for manager names
        today: Reference date for deadlines, overdue tasks and the monthly window
        viewer_id: Employee looking at the dashboard
        can_view_all: False restricts the view to the viewer's own tenders and tasks
        list_size: Length of the manager, recent and deadline lists

    Returns:
        TenderDashboard; empty when a restricted viewer is unknown
    """
    today = today or date.today()
    rows = visible_tenders(tenders, viewer_id, can_view_all)

    if can_view_all:
        own_tasks = list(tasks)
    elif viewer_id is None:
        own_tasks = []
    else:
        own_tasks = [t for t in tasks if t.assigned_to == viewer_id]

    return TenderDashboard(
        overview=calculate_overview(rows),
        by_stage=calculate_by_stage(rows),
        by_type=calculate_by_type(rows),
        monthly=calculate_monthly(rows, today),
        top_managers=calculate_top_managers(rows, employees, list_size),
        recent_tenders=recent_tenders(rows, list_size),
        upcoming_deadlines=upcoming_deadlines(rows, today, list_size),
        task_summary=summarize_tasks(own_tasks, today),
    )
