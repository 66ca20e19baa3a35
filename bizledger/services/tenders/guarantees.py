"""
Guarantees Report

Tracks money frozen as security for tender applications and signed
contracts.

- Application security is held until the results are announced. Without
  a results date it is assumed to be held for 30 days after the
  submission deadline. It is returned when the tender is lost or archived.
- Contract security exists only once the contract is won or in
  realization. It is held for the contract duration (the digits of the
  free-text `contract_duration`, in days) counted from the results date,
  or for one year when no duration was recorded.
"""

import re
from datetime import date, timedelta
from decimal import Decimal
from typing import Iterable, Optional

from bizledger.config import get_settings
from bizledger.config.settings import AppSettings
from bizledger.models.tender import (
    Guarantee,
    GuaranteeOverview,
    GuaranteesReport,
    GuaranteeStatus,
    GuaranteeType,
    GuaranteeTypeTotal,
    MonthlyGuaranteeStat,
    StageCategory,
    Tender,
    TenderStatus,
)

APPLICATION_HOLD_DAYS = 30
EXPIRING_LIST_SIZE = 10

GUARANTEE_TYPE_LABELS = {
    GuaranteeType.APPLICATION: "Application security",
    GuaranteeType.CONTRACT: "Contract security",
}

_DIGITS = re.compile(r"(\d+)")


def parse_duration_days(text: Optional[str]) -> Optional[int]:
    """First run of digits in a free-text duration, e.g. '180 days' -> 180."""
    if not text:
        return None
    match = _DIGITS.search(text)
    return int(match.group(1)) if match else None


def _add_year(day: date) -> date:
    try:
        return day.replace(year=day.year + 1)
    except ValueError:
        # 29 February
        return day.replace(year=day.year + 1, day=28)


def _status(days_left: Optional[int], expiring_days: int) -> GuaranteeStatus:
    if days_left is None:
        return GuaranteeStatus.ACTIVE
    if days_left < 0:
        return GuaranteeStatus.EXPIRED
    if days_left <= expiring_days:
        return GuaranteeStatus.EXPIRING
    return GuaranteeStatus.ACTIVE


def application_guarantee(
    tender: Tender,
    today: date,
    expiring_days: int,
) -> Optional[Guarantee]:
    if not tender.application_security:
        return None

    if tender.results_date is not None:
        end = tender.results_date
    elif tender.submission_deadline is not None:
        end = tender.submission_deadline + timedelta(days=APPLICATION_HOLD_DAYS)
    else:
        end = None
    days_left = (end - today).days if end else None

    if tender.status == TenderStatus.LOST or tender.stage_category == StageCategory.ARCHIVE:
        status = GuaranteeStatus.RETURNED
    else:
        status = _status(days_left, expiring_days)

    return Guarantee(
        tender_id=tender.id,
        purchase_number=tender.purchase_number,
        subject=tender.subject,
        type=GuaranteeType.APPLICATION,
        amount=tender.application_security,
        start_date=tender.created_at.date(),
        end_date=end,
        days_left=days_left,
        status=status,
    )


def contract_guarantee(
    tender: Tender,
    today: date,
    expiring_days: int,
) -> Optional[Guarantee]:
    if not tender.contract_security:
        return None
    if tender.status != TenderStatus.WON and tender.stage_category != StageCategory.REALIZATION:
        return None

    end = None
    if tender.results_date is not None:
        duration = parse_duration_days(tender.contract_duration)
        if duration is not None:
            end = tender.results_date + timedelta(days=duration)
        else:
            end = _add_year(tender.results_date)
    days_left = (end - today).days if end else None

    return Guarantee(
        tender_id=tender.id,
        purchase_number=tender.purchase_number,
        subject=tender.subject,
        type=GuaranteeType.CONTRACT,
        amount=tender.contract_security,
        start_date=tender.results_date or tender.created_at.date(),
        end_date=end,
        days_left=days_left,
        status=_status(days_left, expiring_days),
    )


def _overview(guarantees: list[Guarantee]) -> GuaranteeOverview:
    overview = GuaranteeOverview()
    for g in guarantees:
        overview.total_count += 1
        overview.total_amount += g.amount
        if g.status == GuaranteeStatus.ACTIVE:
            overview.active_count += 1
            overview.active_amount += g.amount
        elif g.status == GuaranteeStatus.EXPIRING:
            overview.expiring_count += 1
            overview.expiring_amount += g.amount
        elif g.status == GuaranteeStatus.EXPIRED:
            overview.expired_count += 1
        else:
            overview.returned_count += 1
    return overview


def _by_type(guarantees: list[Guarantee]) -> list[GuaranteeTypeTotal]:
    totals = []
    for kind in (GuaranteeType.APPLICATION, GuaranteeType.CONTRACT):
        rows = [g for g in guarantees if g.type == kind]
        if rows:
            totals.append(GuaranteeTypeTotal(
                type=kind,
                label=GUARANTEE_TYPE_LABELS[kind],
                count=len(rows),
                amount=sum((g.amount for g in rows), Decimal("0")),
            ))
    return totals


def _monthly(guarantees: list[Guarantee]) -> list[MonthlyGuaranteeStat]:
    months: dict[str, MonthlyGuaranteeStat] = {}
    for g in guarantees:
        if g.start_date is None:
            continue
        key = g.start_date.strftime("%Y-%m")
        stat = months.setdefault(key, MonthlyGuaranteeStat(month=key))
        stat.count += 1
        stat.amount += g.amount
    return [months[key] for key in sorted(months)]


def _days_left_key(g: Guarantee):
    return (g.days_left is None, g.days_left or 0)


def build_guarantees_report(
    tenders: Iterable[Tender],
    today: Optional[date] = None,
    settings: Optional[AppSettings] = None,
) -> GuaranteesReport:
    """
    Build the guarantees report for one company's tenders.

    Args:
        tenders: The company's tenders; deleted ones are skipped
        today: Reference date for days left
        settings: Expiry warning windows, defaults to the application settings

    Returns:
        GuaranteesReport with every guarantee sorted by days left
    """
    today = today or date.today()
    settings = settings or get_settings().app

    guarantees = []
    for tender in tenders:
        if tender.deleted:
            continue
        application = application_guarantee(
            tender, today, settings.application_security_expiring_days
        )
        contract = contract_guarantee(
            tender, today, settings.contract_security_expiring_days
        )
        guarantees.extend(g for g in (application, contract) if g is not None)

    guarantees.sort(key=_days_left_key)
    expiring = [g for g in guarantees if g.status == GuaranteeStatus.EXPIRING]

    return GuaranteesReport(
        overview=_overview(guarantees),
        by_type=_by_type(guarantees),
        expiring=expiring[:EXPIRING_LIST_SIZE],
        monthly=_monthly(guarantees),
        guarantees=guarantees,
    )
