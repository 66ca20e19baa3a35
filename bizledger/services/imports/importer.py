"""
Transaction Importer

Turns validated CSV rows into stored transactions for one company.

Every row goes through the two-stage TransactionValidator before it is
written. Rows are skipped (never corrected) when:
- schema validation fails
- an identical transaction is already stored, or appears earlier in the file
- no account can be resolved

All transactions from one call share an import_batch_id so a bad import
can be traced and reverted as a unit.
"""

from datetime import date
from typing import Optional
from uuid import UUID, uuid4

import structlog

from bizledger.models.finance import Transaction
from bizledger.models.imports import CsvNormalizedRow, ImportResult
from bizledger.services.storage import LedgerStorageInterface
from bizledger.validation import TransactionValidator

logger = structlog.get_logger(__name__)


class TransactionImporter:
    """Resolves names to ids, validates and persists import rows."""

    def __init__(
        self,
        ledger_storage: LedgerStorageInterface,
        validator: Optional[TransactionValidator] = None,
    ):
        self._storage = ledger_storage
        self._validator = validator or TransactionValidator(ledger_storage)

    async def import_rows(
        self,
        company_id: UUID,
        rows: list[CsvNormalizedRow],
        default_account_id: Optional[UUID] = None,
        today: Optional[date] = None,
    ) -> ImportResult:
        """
        Import normalized rows.

        Args:
            company_id: Company that owns the new transactions
            rows: Rows that passed CSV validation
            default_account_id: Account used when a row names none
            today: Reference date for date sanity checks

        Returns:
            ImportResult with counts, per-row warnings and the created ids
        """
        result = ImportResult(batch_id=uuid4())

        accounts = {a.name.lower(): a for a in await self._storage.list_accounts(company_id)}
        accounts_by_id = {a.id: a for a in accounts.values()}
        categories = {c.name.lower(): c for c in await self._storage.list_categories(company_id)}

        if default_account_id is not None and default_account_id not in accounts_by_id:
            raise ValueError(f"Default account {default_account_id} does not belong to the company")

        seen_in_file = set()
        to_save: list[Transaction] = []

        for row in rows:
            prefix = f"Row {row.row_number}"
            validation = await self._validator.validate(company_id, row, today=today)

            if not validation.schema_valid:
                result.skipped += 1
                errors = "; ".join(i.message for i in validation.issues if i.severity == "error")
                result.warnings.append(f"{prefix}: {errors}")
                continue

            key = (row.occurred_at, row.amount, row.direction, row.note or "")
            if validation.is_duplicate or key in seen_in_file:
                result.skipped += 1
                result.warnings.append(f"{prefix}: duplicate of an existing transaction, skipped")
                continue

            account = None
            if row.account_name:
                account = accounts.get(row.account_name.lower())
                if account is None and default_account_id is None:
                    result.skipped += 1
                    result.warnings.append(f"{prefix}: unknown account '{row.account_name}'")
                    continue
                if account is None:
                    result.warnings.append(
                        f"{prefix}: unknown account '{row.account_name}', booked to the default account"
                    )
            if account is None:
                if default_account_id is None:
                    result.skipped += 1
                    result.warnings.append(f"{prefix}: no account given and no default account set")
                    continue
                account = accounts_by_id[default_account_id]

            category_id = None
            if row.category_name:
                category = categories.get(row.category_name.lower())
                if category is None:
                    result.warnings.append(
                        f"{prefix}: unknown category '{row.category_name}', left uncategorized"
                    )
                else:
                    category_id = category.id

            result.warnings.extend(
                f"{prefix}: {message}" for message in validation.warnings
            )

            seen_in_file.add(key)
            to_save.append(Transaction(
                company_id=company_id,
                account_id=account.id,
                category_id=category_id,
                direction=row.direction,
                amount=row.amount,
                currency=row.currency or account.currency,
                occurred_at=row.occurred_at,
                counterparty=row.counterparty,
                note=row.note,
                import_batch_id=result.batch_id,
            ))

        if to_save:
            result.imported = await self._storage.save_transactions(to_save)
            result.transaction_ids = [tx.id for tx in to_save]
            result.category_ids = sorted(
                {tx.category_id for tx in to_save if tx.category_id is not None},
                key=str,
            )

        logger.info(
            "transactions_imported",
            company_id=str(company_id),
            batch_id=str(result.batch_id),
            imported=result.imported,
            skipped=result.skipped,
        )
        return result
