"""
Tender Models for BizLedger

A tender is a procurement opportunity the company bids on. It moves
through configurable pipeline stages; each stage belongs to one of a
fixed set of stage categories so reports can reason about "new",
"in realization" or "archived" tenders regardless of how a company
names its stages.

Report models (dashboard, manager performance, guarantees) live here
too: they are pure outputs, computed on demand and never stored.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field


class TenderStatus(str, Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    WON = "won"
    LOST = "lost"
    CANCELLED = "cancelled"


class StageCategory(str, Enum):
    """Fixed grouping of company-defined pipeline stages."""
    NEW = "new"
    ANALYSIS = "analysis"
    SUBMISSION = "submission"
    REALIZATION = "realization"
    ARCHIVE = "archive"


class TaskStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class TenderStage(BaseModel):
    """A pipeline stage as configured by the company."""
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=100)
    color: str = Field(default="#6b7280")
    category: StageCategory = StageCategory.NEW
    is_final: bool = False


class TenderType(BaseModel):
    """Procurement procedure type (auction, request for quotes, ...)."""
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=100)


class Employee(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    company_id: UUID
    full_name: str = Field(..., min_length=1, max_length=200)
    position: Optional[str] = None


class Tender(BaseModel):
    """
    A procurement opportunity.

    nmck is the initial maximum contract price announced by the customer;
    contract_price is what the contract was actually signed for.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    company_id: UUID
    purchase_number: str = Field(..., min_length=1, max_length=100)
    customer: Optional[str] = Field(default=None, max_length=500)
    subject: Optional[str] = Field(default=None, max_length=2000)

    nmck: Decimal = Field(default=Decimal("0"), ge=0)
    contract_price: Optional[Decimal] = Field(default=None, ge=0)

    status: TenderStatus = TenderStatus.ACTIVE
    stage: Optional[TenderStage] = None
    type: Optional[TenderType] = None

    submission_deadline: Optional[date] = None
    results_date: Optional[date] = None
    contract_duration: Optional[str] = Field(
        default=None,
        description="Free text such as '180 days'; the digits are the duration in days"
    )

    application_security: Optional[Decimal] = Field(default=None, ge=0)
    contract_security: Optional[Decimal] = Field(default=None, ge=0)

    manager_id: Optional[UUID] = None
    executor_id: Optional[UUID] = None

    created_at: datetime = Field(default_factory=datetime.utcnow)
    deleted: bool = False

    @property
    def effective_contract_value(self) -> Decimal:
        """Signed contract price, falling back to NMCK when not recorded."""
        return self.contract_price if self.contract_price is not None else self.nmck

    @property
    def stage_category(self) -> Optional[StageCategory]:
        return self.stage.category if self.stage else None


class TenderTask(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    company_id: UUID
    tender_id: UUID
    title: str = Field(default="", max_length=500)
    status: TaskStatus = TaskStatus.PENDING
    assigned_to: Optional[UUID] = None
    due_date: Optional[date] = None


# =============================================================================
# DASHBOARD MODELS
# =============================================================================

class DashboardOverview(BaseModel):
    total_tenders: int = 0
    active_tenders: int = 0
    won_tenders: int = 0
    lost_tenders: int = 0
    pending_tenders: int = 0
    total_nmck: Decimal = Decimal("0")
    total_contract_price: Decimal = Decimal("0")
    win_rate: float = 0.0
    total_savings: Decimal = Decimal("0")
    avg_contract_value: Decimal = Decimal("0")


class GroupStat(BaseModel):
    """Tender count and NMCK for one stage or type."""
    name: str
    color: Optional[str] = None
    count: int
    nmck: Decimal
    percent: float


class MonthlyTenderStat(BaseModel):
    month: str  # YYYY-MM
    count: int = 0
    won: int = 0
    lost: int = 0
    nmck: Decimal = Decimal("0")
    contract_value: Decimal = Decimal("0")


class ManagerStat(BaseModel):
    manager_id: UUID
    name: str
    total: int = 0
    won: int = 0
    lost: int = 0
    active: int = 0
    win_rate: float = 0.0
    contract_value: Decimal = Decimal("0")


class DeadlineItem(BaseModel):
    tender_id: UUID
    purchase_number: str
    subject: Optional[str] = None
    deadline: date
    days_left: int


class TaskSummary(BaseModel):
    total: int = 0
    pending: int = 0
    in_progress: int = 0
    completed: int = 0
    overdue: int = 0


class TenderDashboard(BaseModel):
    overview: DashboardOverview
    by_stage: list[GroupStat] = Field(default_factory=list)
    by_type: list[GroupStat] = Field(default_factory=list)
    monthly: list[MonthlyTenderStat] = Field(default_factory=list)
    top_managers: list[ManagerStat] = Field(default_factory=list)
    recent_tenders: list[Tender] = Field(default_factory=list)
    upcoming_deadlines: list[DeadlineItem] = Field(default_factory=list)
    task_summary: TaskSummary = Field(default_factory=TaskSummary)


# =============================================================================
# MANAGER PERFORMANCE MODELS
# =============================================================================

class PerformanceTrend(str, Enum):
    UP = "up"
    DOWN = "down"
    STABLE = "stable"


class ManagerPerformance(BaseModel):
    manager_id: UUID
    name: str
    position: Optional[str] = None
    total_tenders: int = 0
    won_tenders: int = 0
    lost_tenders: int = 0
    active_tenders: int = 0
    win_rate: float = 0.0
    total_nmck: Decimal = Decimal("0")
    total_contract_price: Decimal = Decimal("0")
    avg_deal_size: Decimal = Decimal("0")
    avg_savings_percent: float = 0.0
    efficiency: float = Field(
        default=0.0,
        description="Share of finished tenders among all assigned, in percent"
    )
    trend: PerformanceTrend = PerformanceTrend.STABLE
    rank: int = 0


class TeamOverview(BaseModel):
    total_managers: int = 0
    total_tenders: int = 0
    total_won: int = 0
    avg_win_rate: float = 0.0
    total_contract_value: Decimal = Decimal("0")
    best_manager: Optional[ManagerPerformance] = None


class ManagerPerformanceReport(BaseModel):
    managers: list[ManagerPerformance] = Field(default_factory=list)
    team: TeamOverview = Field(default_factory=TeamOverview)


# =============================================================================
# GUARANTEE MODELS
# =============================================================================

class GuaranteeType(str, Enum):
    APPLICATION = "application"
    CONTRACT = "contract"


class GuaranteeStatus(str, Enum):
    ACTIVE = "active"
    EXPIRING = "expiring"
    EXPIRED = "expired"
    RETURNED = "returned"


class Guarantee(BaseModel):
    """Money frozen as security for an application or a signed contract."""
    tender_id: UUID
    purchase_number: str
    subject: Optional[str] = None
    type: GuaranteeType
    amount: Decimal
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    days_left: Optional[int] = None
    status: GuaranteeStatus


class GuaranteeOverview(BaseModel):
    total_count: int = 0
    total_amount: Decimal = Decimal("0")
    active_count: int = 0
    active_amount: Decimal = Decimal("0")
    expiring_count: int = 0
    expiring_amount: Decimal = Decimal("0")
    expired_count: int = 0
    returned_count: int = 0


class GuaranteeTypeTotal(BaseModel):
    type: GuaranteeType
    label: str
    count: int
    amount: Decimal


class MonthlyGuaranteeStat(BaseModel):
    month: str
    count: int = 0
    amount: Decimal = Decimal("0")


class GuaranteesReport(BaseModel):
    overview: GuaranteeOverview = Field(default_factory=GuaranteeOverview)
    by_type: list[GuaranteeTypeTotal] = Field(default_factory=list)
    expiring: list[Guarantee] = Field(default_factory=list)
    monthly: list[MonthlyGuaranteeStat] = Field(default_factory=list)
    guarantees: list[Guarantee] = Field(default_factory=list)
