"""
Audit Logger

DESIGN DECISION: Every significant action in the system is logged.
This provides:
1. Complete traceability per company
2. Debugging capability
3. A history accountants can review

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (doesn't crash the app if logging fails)
- Supports correlation IDs to trace related events
"""

from typing import Optional
from uuid import UUID, uuid4

import structlog

from bizledger.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from bizledger.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. The audit storage backend (for persistence and user visibility)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger(__name__)

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Audit persistence must never break the main flow
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_transactions_imported(
        self,
        company_id: UUID,
        batch_id: UUID,
        imported: int,
        skipped: int,
        correlation_id: UUID,
    ) -> None:
        """Log a completed CSV import."""
        await self.log(AuditEventBuilder.transactions_imported(
            company_id=company_id,
            batch_id=batch_id,
            imported=imported,
            skipped=skipped,
            correlation_id=correlation_id,
        ))

    async def log_import_rejected(
        self,
        company_id: UUID,
        filename: str,
        reason: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.import_rejected(
            company_id=company_id,
            filename=filename,
            reason=reason,
            correlation_id=correlation_id,
        ))

    async def log_validation_failed(
        self,
        company_id: UUID,
        error_rows: int,
        issues: list[dict],
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.validation_failed(
            company_id=company_id,
            error_rows=error_rows,
            issues=issues,
            correlation_id=correlation_id,
        ))

    async def log_budget_recomputed(
        self,
        company_id: UUID,
        budget_id: UUID,
        spent: str,
        percentage: float,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.budget_recomputed(
            company_id=company_id,
            budget_id=budget_id,
            spent=spent,
            percentage=percentage,
            correlation_id=correlation_id,
        ))

    async def log_budget_alert(
        self,
        company_id: UUID,
        budget_id: UUID,
        alert_type: str,
        percentage: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.budget_alert_raised(
            company_id=company_id,
            budget_id=budget_id,
            alert_type=alert_type,
            percentage=percentage,
            correlation_id=correlation_id,
        ))

    async def log_spending_anomaly(
        self,
        company_id: UUID,
        alert_type: str,
        category_name: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.spending_anomaly_detected(
            company_id=company_id,
            alert_type=alert_type,
            category_name=category_name,
            correlation_id=correlation_id,
        ))

    async def log_kudir_entry_created(
        self,
        company_id: UUID,
        entry_id: UUID,
        entry_number: int,
        amount: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.kudir_entry_created(
            company_id=company_id,
            entry_id=entry_id,
            entry_number=entry_number,
            amount=amount,
            correlation_id=correlation_id,
        ))

    async def log_kudir_entry_deleted(
        self,
        company_id: UUID,
        entry_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.kudir_entry_deleted(
            company_id=company_id,
            entry_id=entry_id,
            correlation_id=correlation_id,
        ))

    async def log_kudir_synced(
        self,
        company_id: UUID,
        year: int,
        created: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.kudir_synced(
            company_id=company_id,
            year=year,
            created=created,
            correlation_id=correlation_id,
        ))

    async def log_report_exported(
        self,
        company_id: UUID,
        report: str,
        size_bytes: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.report_exported(
            company_id=company_id,
            report=report,
            size_bytes=size_bytes,
            correlation_id=correlation_id,
        ))

    async def log_category_suggested(
        self,
        company_id: UUID,
        category_name: str,
        confidence: float,
        source: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.category_suggested(
            company_id=company_id,
            category_name=category_name,
            confidence=confidence,
            source=source,
            correlation_id=correlation_id,
        ))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        await self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        ))

    async def log_external_service_error(
        self,
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log external service error."""
        await self.log(AuditEventBuilder.external_service_error(
            service=service,
            error_message=error_message,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g., a CSV import).
    Pass it through all subsequent operations.
    """
    return uuid4()
