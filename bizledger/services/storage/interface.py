"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Swap Google Sheets for a real database later
2. Use in-memory storage for testing and local runs
3. Keep business logic decoupled from storage implementation

Every read takes the company_id explicitly. Implementations must never
return a record that belongs to another company.

The interface is intentionally simple - we're not building a full ORM.
Filtering beyond company scoping and date ranges is done by the services.
"""

from abc import ABC, abstractmethod
from datetime import date
from decimal import Decimal
from typing import Optional
from uuid import UUID

from bizledger.models.accounting import (
    AccountingDocument,
    DocumentPaymentStatus,
    KudirEntry,
)
from bizledger.models.audit import AuditEvent
from bizledger.models.finance import (
    Account,
    Budget,
    Category,
    Transaction,
    TransactionDirection,
)
from bizledger.models.tender import Employee, Tender, TenderTask


class LedgerStorageInterface(ABC):
    """
    Abstract interface for accounts, categories, transactions and budgets.
    """

    @abstractmethod
    async def save_account(self, account: Account) -> bool:
        """
        Save a new account.

        Raises:
            DuplicateError: If an account with this id already exists
        """
        pass

    @abstractmethod
    async def list_accounts(self, company_id: UUID) -> list[Account]:
        pass

    @abstractmethod
    async def save_category(self, category: Category) -> bool:
        pass

    @abstractmethod
    async def list_categories(self, company_id: UUID) -> list[Category]:
        pass

    @abstractmethod
    async def save_transactions(self, transactions: list[Transaction]) -> int:
        """
        Persist a batch of new transactions.

        Args:
            transactions: Transactions to save, possibly for one import batch

        Returns:
            Number of transactions written

        Raises:
            StorageError: If the batch could not be written
        """
        pass

    @abstractmethod
    async def list_transactions(
        self,
        company_id: UUID,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        category_id: Optional[UUID] = None,
        direction: Optional[TransactionDirection] = None,
    ) -> list[Transaction]:
        """
        List a company's transactions with optional filters.

        Args:
            company_id: Owning company
            date_from: Transactions on or after this date
            date_to: Transactions on or before this date
            category_id: Only this category
            direction: Only this direction

        Returns:
            Matching transactions, newest first
        """
        pass

    @abstractmethod
    async def transaction_exists(
        self,
        company_id: UUID,
        occurred_at: date,
        amount: Decimal,
        direction: TransactionDirection,
        note: Optional[str],
    ) -> bool:
        """
        Check if a matching transaction already exists (duplicate detection).

        Two transactions match when date, amount, direction and note are equal.
        """
        pass

    @abstractmethod
    async def save_budget(self, budget: Budget) -> bool:
        pass

    @abstractmethod
    async def update_budget(self, budget: Budget) -> bool:
        """
        Update an existing budget.

        Raises:
            NotFoundError: If the budget doesn't exist for its company
        """
        pass

    @abstractmethod
    async def get_budget(self, company_id: UUID, budget_id: UUID) -> Optional[Budget]:
        pass

    @abstractmethod
    async def list_budgets(self, company_id: UUID) -> list[Budget]:
        pass


class TenderStorageInterface(ABC):
    """Abstract interface for tenders, their tasks and the employees on them."""

    @abstractmethod
    async def save_tender(self, tender: Tender) -> bool:
        pass

    @abstractmethod
    async def list_tenders(
        self,
        company_id: UUID,
        include_deleted: bool = False,
    ) -> list[Tender]:
        """List a company's tenders, newest first."""
        pass

    @abstractmethod
    async def save_task(self, task: TenderTask) -> bool:
        pass

    @abstractmethod
    async def list_tasks(self, company_id: UUID) -> list[TenderTask]:
        pass

    @abstractmethod
    async def save_employee(self, employee: Employee) -> bool:
        pass

    @abstractmethod
    async def list_employees(self, company_id: UUID) -> list[Employee]:
        pass


class AccountingStorageInterface(ABC):
    """Abstract interface for primary documents and KUDiR entries."""

    @abstractmethod
    async def save_document(self, document: AccountingDocument) -> bool:
        pass

    @abstractmethod
    async def list_documents(
        self,
        company_id: UUID,
        payment_status: Optional[DocumentPaymentStatus] = None,
    ) -> list[AccountingDocument]:
        pass

    @abstractmethod
    async def save_kudir_entry(self, entry: KudirEntry) -> bool:
        """
        Save a ledger entry.

        Raises:
            DuplicateError: If the company already has an entry with this number
        """
        pass

    @abstractmethod
    async def list_kudir_entries(
        self,
        company_id: UUID,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> list[KudirEntry]:
        """List ledger entries ordered by date, then entry number."""
        pass

    @abstractmethod
    async def delete_kudir_entry(self, company_id: UUID, entry_id: UUID) -> bool:
        """
        Delete an entry owned by the company.

        Returns:
            True if an entry was removed
        """
        pass

    @abstractmethod
    async def get_last_kudir_number(self, company_id: UUID) -> int:
        """Highest entry number used by the company, 0 if none."""
        pass

    @abstractmethod
    async def kudir_document_ids(self, company_id: UUID) -> set[UUID]:
        """Ids of the documents that already have a ledger entry."""
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a correlation ID (e.g., one CSV import).

        Returns:
            List of related events in chronological order
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        company_id: Optional[UUID] = None,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events, newest first.

        Args:
            company_id: Restrict to one company's events
            limit: Maximum number of events to return
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
