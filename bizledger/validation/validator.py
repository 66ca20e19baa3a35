"""
Two-Stage Validation Pipeline

DESIGN DECISION: Validation happens in two distinct stages:

STAGE 1 - SCHEMA VALIDATION:
- Required value presence (amount, date, direction)
- Amount is positive
- This catches malformed import rows

STAGE 2 - SEMANTIC VALIDATION:
- Future date detection
- Very old date detection
- Absurd amount detection
- Duplicate detection against stored transactions

Stage 2 is skipped when stage 1 fails, and it is the only stage that
needs storage access.

IMPORTANT: Validation NEVER silently fixes issues.
It reports them so the user can decide.
"""

from datetime import date, timedelta
from decimal import Decimal
from typing import Optional
from uuid import UUID

import structlog

from bizledger.config import get_settings
from bizledger.models.finance import (
    TransactionDirection,
    ValidationIssue,
    ValidationResult,
)
from bizledger.models.imports import CsvNormalizedRow
from bizledger.services.storage import LedgerStorageInterface, StorageError

logger = structlog.get_logger(__name__)


class TransactionValidator:
    """
    Validates candidate transactions through a two-stage pipeline.

    Stage 1: Schema validation (can run without storage)
    Stage 2: Semantic validation (may need storage for duplicate checks)
    """

    def __init__(
        self,
        ledger_storage: Optional[LedgerStorageInterface] = None,
    ):
        """
        Initialize validator.

        Args:
            ledger_storage: Storage interface for duplicate checking.
                            If None, duplicate checking is skipped.
        """
        self._storage = ledger_storage
        self._settings = get_settings().app

    def _validate_schema(
        self,
        row: CsvNormalizedRow,
    ) -> tuple[bool, list[ValidationIssue]]:
        """Stage 1. Returns (is_valid, list_of_issues)."""
        issues = []

        if row.amount is None:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="missing",
                message="Amount is required",
                severity="error",
            ))
        elif row.amount <= 0:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="invalid_value",
                message="Amount must be greater than zero",
                severity="error",
            ))

        if row.occurred_at is None:
            issues.append(ValidationIssue(
                field="date",
                issue_type="missing",
                message="Transaction date is required",
                severity="error",
            ))

        if row.direction is None:
            issues.append(ValidationIssue(
                field="direction",
                issue_type="missing",
                message="Direction (income/expense/transfer) is required",
                severity="error",
            ))

        is_valid = not any(issue.severity == "error" for issue in issues)
        return is_valid, issues

    def _validate_semantic(
        self,
        row: CsvNormalizedRow,
        today: date,
    ) -> tuple[bool, list[ValidationIssue]]:
        """
        Stage 2 checks that need no storage.

        Everything here is a warning: the values are plausible but unusual.
        """
        issues = []

        max_future_date = today + timedelta(days=self._settings.future_date_tolerance_days)
        if row.occurred_at > max_future_date:
            issues.append(ValidationIssue(
                field="date",
                issue_type="future_date",
                message=f"Transaction date ({row.occurred_at}) is in the future",
                severity="warning",
                suggested_fix="Please verify the date is correct",
            ))

        min_reasonable_date = today - timedelta(days=365 * 5)
        if row.occurred_at < min_reasonable_date:
            issues.append(ValidationIssue(
                field="date",
                issue_type="suspicious_date",
                message=f"Transaction date ({row.occurred_at}) seems unusually old",
                severity="warning",
                suggested_fix="Check the date format of the file",
            ))

        max_amount = Decimal(str(self._settings.max_transaction_amount))
        if row.amount > max_amount:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="suspicious_value",
                message=f"Amount ({row.amount:,.2f}) seems unusually high",
                severity="warning",
                suggested_fix="Check that kopecks were not read as rubles",
            ))

        is_valid = not any(issue.severity == "error" for issue in issues)
        return is_valid, issues

    async def _check_duplicates(
        self,
        company_id: UUID,
        row: CsvNormalizedRow,
    ) -> list[ValidationIssue]:
        """Check for a matching stored transaction."""
        if self._storage is None:
            return []

        try:
            exists = await self._storage.transaction_exists(
                company_id=company_id,
                occurred_at=row.occurred_at,
                amount=row.amount,
                direction=TransactionDirection(row.direction),
                note=row.note,
            )
        except StorageError as e:
            # A storage hiccup downgrades to "not checked", never to "not a duplicate"
            logger.warning("duplicate_check_failed", row=row.row_number, error=str(e))
            return [ValidationIssue(
                field="duplicate",
                issue_type="duplicate_check_skipped",
                message="Could not check for duplicates",
                severity="info",
            )]

        if exists:
            return [ValidationIssue(
                field="duplicate",
                issue_type="potential_duplicate",
                message=(
                    f"A {row.direction.value} of {row.amount} on {row.occurred_at} "
                    "already exists"
                ),
                severity="warning",
                suggested_fix="Remove the row if it was imported before",
            )]
        return []

    async def validate(
        self,
        company_id: UUID,
        row: CsvNormalizedRow,
        check_duplicates: bool = True,
        today: Optional[date] = None,
    ) -> ValidationResult:
        """
        Run full two-stage validation pipeline.

        Args:
            company_id: Company the row would be imported into
            row: The normalized candidate transaction
            check_duplicates: Whether to check for duplicates (requires storage)
            today: Reference date for date checks

        Returns:
            ValidationResult with all issues found
        """
        today = today or date.today()
        all_issues = []

        schema_valid, schema_issues = self._validate_schema(row)
        all_issues.extend(schema_issues)

        semantic_valid = False
        if schema_valid:
            semantic_valid, semantic_issues = self._validate_semantic(row, today)
            all_issues.extend(semantic_issues)

            if check_duplicates:
                all_issues.extend(await self._check_duplicates(company_id, row))

        warnings = [issue.message for issue in all_issues if issue.severity == "warning"]

        return ValidationResult(
            row_number=row.row_number,
            schema_valid=schema_valid,
            semantic_valid=semantic_valid,
            is_valid=schema_valid and semantic_valid,
            issues=all_issues,
            warnings=warnings,
        )
