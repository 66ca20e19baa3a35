"""
Data Models Package

This package contains all Pydantic models used in BizLedger.
All data flowing through the system must conform to these schemas.
"""

from bizledger.models.finance import (
    Account,
    AccountType,
    Budget,
    BudgetStatus,
    BudgetUsage,
    Category,
    CategoryKind,
    Transaction,
    TransactionDirection,
    ValidationIssue,
    ValidationResult,
)
from bizledger.models.tender import (
    Employee,
    GuaranteeStatus,
    GuaranteeType,
    GuaranteesReport,
    ManagerPerformanceReport,
    StageCategory,
    TaskStatus,
    Tender,
    TenderDashboard,
    TenderStage,
    TenderStatus,
    TenderTask,
    TenderType,
)
from bizledger.models.accounting import (
    AccountingDocument,
    DocumentPaymentStatus,
    DocumentType,
    EntryType,
    KudirEntry,
    KudirExport,
    KudirFilters,
    KudirSummary,
)
from bizledger.models.notification import (
    AlertSeverity,
    BudgetAlert,
    BudgetAlertType,
    BudgetForecast,
    BudgetsSummary,
    SpendingAlert,
    SpendingAlertType,
)
from bizledger.models.imports import (
    CsvNormalizedRow,
    CsvValidationSummary,
    HeaderCheckResult,
    ImportResult,
)
from bizledger.models.report import (
    FinanceReportData,
    FinanceSummary,
)
from bizledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Finance models
    "Account",
    "AccountType",
    "Budget",
    "BudgetStatus",
    "BudgetUsage",
    "Category",
    "CategoryKind",
    "Transaction",
    "TransactionDirection",
    "ValidationIssue",
    "ValidationResult",
    # Tender models
    "Employee",
    "GuaranteeStatus",
    "GuaranteeType",
    "GuaranteesReport",
    "ManagerPerformanceReport",
    "StageCategory",
    "TaskStatus",
    "Tender",
    "TenderDashboard",
    "TenderStage",
    "TenderStatus",
    "TenderTask",
    "TenderType",
    # Accounting models
    "AccountingDocument",
    "DocumentPaymentStatus",
    "DocumentType",
    "EntryType",
    "KudirEntry",
    "KudirExport",
    "KudirFilters",
    "KudirSummary",
    # Notification models
    "AlertSeverity",
    "BudgetAlert",
    "BudgetAlertType",
    "BudgetForecast",
    "BudgetsSummary",
    "SpendingAlert",
    "SpendingAlertType",
    # Import models
    "CsvNormalizedRow",
    "CsvValidationSummary",
    "HeaderCheckResult",
    "ImportResult",
    # Report models
    "FinanceReportData",
    "FinanceSummary",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
