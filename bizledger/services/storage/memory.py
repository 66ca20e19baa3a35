"""
In-Memory Storage Implementation

Keeps every table in process-local dicts. Used by the test suite and by
the "memory" storage backend for local demos; nothing survives a restart.

Records are deep-copied on the way in and out so callers mutating a
returned model never change what is stored.
"""

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
from bizledger.services.storage.interface import (
    AccountingStorageInterface,
    AuditStorageInterface,
    DuplicateError,
    LedgerStorageInterface,
    NotFoundError,
    TenderStorageInterface,
)


def _insert(table: dict, record) -> bool:
    if record.id in table:
        raise DuplicateError(f"{type(record).__name__} already exists: {record.id}")
    table[record.id] = record.model_copy(deep=True)
    return True


def _owned(table: dict, company_id: UUID) -> list:
    return [
        record.model_copy(deep=True)
        for record in table.values()
        if record.company_id == company_id
    ]


class InMemoryStorage(
    LedgerStorageInterface,
    TenderStorageInterface,
    AccountingStorageInterface,
    AuditStorageInterface,
):
    """All storage interfaces backed by plain dictionaries."""

    def __init__(self):
        self._accounts: dict[UUID, Account] = {}
        self._categories: dict[UUID, Category] = {}
        self._transactions: dict[UUID, Transaction] = {}
        self._budgets: dict[UUID, Budget] = {}
        self._tenders: dict[UUID, Tender] = {}
        self._tasks: dict[UUID, TenderTask] = {}
        self._employees: dict[UUID, Employee] = {}
        self._documents: dict[UUID, AccountingDocument] = {}
        self._kudir: dict[UUID, KudirEntry] = {}
        self._events: list[AuditEvent] = []

    # ----- ledger -----

    async def save_account(self, account: Account) -> bool:
        return _insert(self._accounts, account)

    async def list_accounts(self, company_id: UUID) -> list[Account]:
        return sorted(_owned(self._accounts, company_id), key=lambda a: a.name.lower())

    async def save_category(self, category: Category) -> bool:
        return _insert(self._categories, category)

    async def list_categories(self, company_id: UUID) -> list[Category]:
        return sorted(_owned(self._categories, company_id), key=lambda c: c.name.lower())

    async def save_transactions(self, transactions: list[Transaction]) -> int:
        # Check the whole batch first so a duplicate never leaves half a batch behind
        seen = set()
        for tx in transactions:
            if tx.id in self._transactions or tx.id in seen:
                raise DuplicateError(f"Transaction already exists: {tx.id}")
            seen.add(tx.id)
        for tx in transactions:
            self._transactions[tx.id] = tx.model_copy(deep=True)
        return len(transactions)

    async def list_transactions(
        self,
        company_id: UUID,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        category_id: Optional[UUID] = None,
        direction: Optional[TransactionDirection] = None,
    ) -> list[Transaction]:
        result = []
        for tx in _owned(self._transactions, company_id):
            if date_from and tx.occurred_at < date_from:
                continue
            if date_to and tx.occurred_at > date_to:
                continue
            if category_id and tx.category_id != category_id:
                continue
            if direction and tx.direction != direction:
                continue
            result.append(tx)
        result.sort(key=lambda t: (t.occurred_at, t.created_at), reverse=True)
        return result

    async def transaction_exists(
        self,
        company_id: UUID,
        occurred_at: date,
        amount: Decimal,
        direction: TransactionDirection,
        note: Optional[str],
    ) -> bool:
        return any(
            tx.company_id == company_id
            and tx.occurred_at == occurred_at
            and tx.amount == amount
            and tx.direction == direction
            and (tx.note or "") == (note or "")
            for tx in self._transactions.values()
        )

    async def save_budget(self, budget: Budget) -> bool:
        return _insert(self._budgets, budget)

    async def update_budget(self, budget: Budget) -> bool:
        stored = self._budgets.get(budget.id)
        if stored is None or stored.company_id != budget.company_id:
            raise NotFoundError(f"Budget not found: {budget.id}")
        self._budgets[budget.id] = budget.model_copy(deep=True)
        return True

    async def get_budget(self, company_id: UUID, budget_id: UUID) -> Optional[Budget]:
        budget = self._budgets.get(budget_id)
        if budget is None or budget.company_id != company_id:
            return None
        return budget.model_copy(deep=True)

    async def list_budgets(self, company_id: UUID) -> list[Budget]:
        return sorted(_owned(self._budgets, company_id), key=lambda b: b.period_start)

    # ----- tenders -----

    async def save_tender(self, tender: Tender) -> bool:
        return _insert(self._tenders, tender)

    async def list_tenders(
        self,
        company_id: UUID,
        include_deleted: bool = False,
    ) -> list[Tender]:
        tenders = [
            t for t in _owned(self._tenders, company_id)
            if include_deleted or not t.deleted
        ]
        tenders.sort(key=lambda t: t.created_at, reverse=True)
        return tenders

    async def save_task(self, task: TenderTask) -> bool:
        return _insert(self._tasks, task)

    async def list_tasks(self, company_id: UUID) -> list[TenderTask]:
        return _owned(self._tasks, company_id)

    async def save_employee(self, employee: Employee) -> bool:
        return _insert(self._employees, employee)

    async def list_employees(self, company_id: UUID) -> list[Employee]:
        return _owned(self._employees, company_id)

    # ----- accounting -----

    async def save_document(self, document: AccountingDocument) -> bool:
        return _insert(self._documents, document)

    async def list_documents(
        self,
        company_id: UUID,
        payment_status: Optional[DocumentPaymentStatus] = None,
    ) -> list[AccountingDocument]:
        docs = [
            d for d in _owned(self._documents, company_id)
            if payment_status is None or d.payment_status == payment_status
        ]
        docs.sort(key=lambda d: d.document_date)
        return docs

    async def save_kudir_entry(self, entry: KudirEntry) -> bool:
        if any(
            e.company_id == entry.company_id and e.entry_number == entry.entry_number
            for e in self._kudir.values()
        ):
            raise DuplicateError(f"KUDiR entry number already used: {entry.entry_number}")
        return _insert(self._kudir, entry)

    async def list_kudir_entries(
        self,
        company_id: UUID,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> list[KudirEntry]:
        entries = [
            e for e in _owned(self._kudir, company_id)
            if (date_from is None or e.entry_date >= date_from)
            and (date_to is None or e.entry_date <= date_to)
        ]
        entries.sort(key=lambda e: (e.entry_date, e.entry_number))
        return entries

    async def delete_kudir_entry(self, company_id: UUID, entry_id: UUID) -> bool:
        entry = self._kudir.get(entry_id)
        if entry is None or entry.company_id != company_id:
            return False
        del self._kudir[entry_id]
        return True

    async def get_last_kudir_number(self, company_id: UUID) -> int:
        numbers = [e.entry_number for e in self._kudir.values() if e.company_id == company_id]
        return max(numbers, default=0)

    async def kudir_document_ids(self, company_id: UUID) -> set[UUID]:
        return {
            e.document_id for e in self._kudir.values()
            if e.company_id == company_id and e.document_id is not None
        }

    # ----- audit -----

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event.model_copy(deep=True))
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self._events if e.correlation_id == correlation_id]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        company_id: Optional[UUID] = None,
        limit: int = 100,
    ) -> list[AuditEvent]:
        events = [
            e for e in self._events
            if company_id is None or e.company_id == company_id
        ]
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
