"""
Audit Models for BizLedger

Every significant action in the system is logged for audit purposes.
This provides:
1. Complete traceability of imports, ledger changes and exports
2. Debugging information when things go wrong
3. Accountability per company

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Transactions
    TRANSACTIONS_IMPORTED = "transactions_imported"
    IMPORT_REJECTED = "import_rejected"
    VALIDATION_FAILED = "validation_failed"

    # Budgets and alerts
    BUDGET_RECOMPUTED = "budget_recomputed"
    BUDGET_ALERT_RAISED = "budget_alert_raised"
    SPENDING_ANOMALY_DETECTED = "spending_anomaly_detected"

    # KUDiR ledger
    KUDIR_ENTRY_CREATED = "kudir_entry_created"
    KUDIR_ENTRY_DELETED = "kudir_entry_deleted"
    KUDIR_SYNCED = "kudir_synced"

    # Reports
    REPORT_EXPORTED = "report_exported"

    # AI
    CATEGORY_SUGGESTED = "category_suggested"

    # System events
    SYSTEM_ERROR = "system_error"
    EXTERNAL_SERVICE_ERROR = "external_service_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every significant action creates one of these.
    """

    event_id: UUID = Field(default_factory=uuid4)
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the event occurred (UTC)"
    )

    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    company_id: Optional[UUID] = Field(
        default=None,
        description="Company the event belongs to; None for system-wide events"
    )
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'transaction', 'budget', 'kudir_entry')"
    )
    entity_id: Optional[UUID] = None

    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., all events of one import)"
    )

    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)

    error_code: Optional[str] = None
    error_message: Optional[str] = None

    is_user_action: bool = False

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "company_id": str(self.company_id) if self.company_id else None,
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, company_id, entity_type,
         entity_id, correlation_id, description, details_json, error_message,
         is_user_action]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            str(self.company_id) if self.company_id else "",
            self.entity_type or "",
            str(self.entity_id) if self.entity_id else "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
            str(self.is_user_action),
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.transactions_imported(company_id, batch_id, 12, 1, cid)
        event = AuditEventBuilder.kudir_synced(company_id, 2024, 5, cid)
    """

    @staticmethod
    def transactions_imported(
        company_id: UUID,
        batch_id: UUID,
        imported: int,
        skipped: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTIONS_IMPORTED,
            company_id=company_id,
            entity_type="import_batch",
            entity_id=batch_id,
            correlation_id=correlation_id,
            description=f"Imported {imported} transactions ({skipped} skipped)",
            details={
                "imported": imported,
                "skipped": skipped,
            },
            is_user_action=True,
        )

    @staticmethod
    def import_rejected(
        company_id: UUID,
        filename: str,
        reason: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.IMPORT_REJECTED,
            severity=AuditSeverity.WARNING,
            company_id=company_id,
            entity_type="import_file",
            correlation_id=correlation_id,
            description=f"CSV import rejected: {filename}",
            error_message=reason,
            details={"filename": filename},
            is_user_action=True,
        )

    @staticmethod
    def validation_failed(
        company_id: UUID,
        error_rows: int,
        issues: list[dict],
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VALIDATION_FAILED,
            severity=AuditSeverity.WARNING,
            company_id=company_id,
            entity_type="import_file",
            correlation_id=correlation_id,
            description=f"CSV validation failed on {error_rows} rows",
            details={
                # A handful is enough to diagnose; the UI shows the full list
                "issues": issues[:20],
            },
        )

    @staticmethod
    def budget_recomputed(
        company_id: UUID,
        budget_id: UUID,
        spent: str,
        percentage: float,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BUDGET_RECOMPUTED,
            company_id=company_id,
            entity_type="budget",
            entity_id=budget_id,
            correlation_id=correlation_id,
            description=f"Budget usage recomputed: {percentage:.0f}%",
            details={"spent": spent, "percentage": percentage},
        )

    @staticmethod
    def budget_alert_raised(
        company_id: UUID,
        budget_id: UUID,
        alert_type: str,
        percentage: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BUDGET_ALERT_RAISED,
            severity=AuditSeverity.WARNING,
            company_id=company_id,
            entity_type="budget",
            entity_id=budget_id,
            correlation_id=correlation_id,
            description=f"Budget alert {alert_type} at {percentage}%",
            details={"alert_type": alert_type, "percentage": percentage},
        )

    @staticmethod
    def spending_anomaly_detected(
        company_id: UUID,
        alert_type: str,
        category_name: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SPENDING_ANOMALY_DETECTED,
            company_id=company_id,
            entity_type="category",
            correlation_id=correlation_id,
            description=f"Spending anomaly {alert_type}: {category_name}",
            details={"alert_type": alert_type, "category": category_name},
        )

    @staticmethod
    def kudir_entry_created(
        company_id: UUID,
        entry_id: UUID,
        entry_number: int,
        amount: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.KUDIR_ENTRY_CREATED,
            company_id=company_id,
            entity_type="kudir_entry",
            entity_id=entry_id,
            correlation_id=correlation_id,
            description=f"KUDiR entry No.{entry_number} created",
            details={"entry_number": entry_number, "amount": amount},
            is_user_action=True,
        )

    @staticmethod
    def kudir_entry_deleted(
        company_id: UUID,
        entry_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.KUDIR_ENTRY_DELETED,
            severity=AuditSeverity.WARNING,
            company_id=company_id,
            entity_type="kudir_entry",
            entity_id=entry_id,
            correlation_id=correlation_id,
            description="KUDiR entry deleted",
            is_user_action=True,
        )

    @staticmethod
    def kudir_synced(
        company_id: UUID,
        year: int,
        created: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.KUDIR_SYNCED,
            company_id=company_id,
            entity_type="kudir",
            correlation_id=correlation_id,
            description=f"KUDiR {year} synced from documents: {created} entries created",
            details={"year": year, "created": created},
            is_user_action=True,
        )

    @staticmethod
    def report_exported(
        company_id: UUID,
        report: str,
        size_bytes: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.REPORT_EXPORTED,
            company_id=company_id,
            entity_type="report",
            correlation_id=correlation_id,
            description=f"Report exported: {report}",
            details={"report": report, "size_bytes": size_bytes},
            is_user_action=True,
        )

    @staticmethod
    def category_suggested(
        company_id: UUID,
        category_name: str,
        confidence: float,
        source: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CATEGORY_SUGGESTED,
            company_id=company_id,
            entity_type="category",
            correlation_id=correlation_id,
            description=f"Category suggested: {category_name} ({confidence:.0%}, {source})",
            details={
                "category": category_name,
                "confidence": confidence,
                "source": source,
            },
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )

    @staticmethod
    def external_service_error(
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"External service error: {service}",
            error_message=error_message,
            details={"service": service},
            correlation_id=correlation_id,
        )
