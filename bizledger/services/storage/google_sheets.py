"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is used as the hosted storage backend because:
1. Accountants can view and fix the data directly in Sheets
2. No database setup required
3. Easy to export/migrate later

TRADEOFFS:
- Not suitable for high-volume data (a small company's ledger is fine)
- No transactions (we handle this with careful ordering)
- Limited query capabilities (we filter in Python)

Each table is one worksheet with a fixed header row. Scalar fields are
written as their string form; nested models (tender stage and type) are
JSON-encoded. Rows that fail to parse are skipped on read so one bad
manual edit cannot take a whole report down.
"""

import json
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, Type, TypeVar
from uuid import UUID

import gspread
import structlog
from google.oauth2.service_account import Credentials
from pydantic import BaseModel, ValidationError
from tenacity import retry, stop_after_attempt, wait_exponential

from bizledger.config import get_settings
from bizledger.models.accounting import (
    AccountingDocument,
    DocumentPaymentStatus,
    KudirEntry,
)
from bizledger.models.audit import AuditEvent, AuditEventType, AuditSeverity
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
    ConnectionError,
    DuplicateError,
    LedgerStorageInterface,
    NotFoundError,
    StorageError,
    TenderStorageInterface,
)

logger = structlog.get_logger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


ACCOUNT_COLUMNS = ["id", "company_id", "name", "type", "balance", "currency", "archived"]

CATEGORY_COLUMNS = ["id", "company_id", "name", "kind"]

TRANSACTION_COLUMNS = [
    "id",
    "company_id",
    "account_id",
    "category_id",
    "direction",
    "amount",
    "currency",
    "occurred_at",
    "counterparty",
    "note",
    "import_batch_id",
    "created_at",
]

BUDGET_COLUMNS = [
    "id",
    "company_id",
    "category_id",
    "name",
    "limit_amount",
    "spent_amount",
    "currency",
    "period_start",
    "period_end",
]

TENDER_COLUMNS = [
    "id",
    "company_id",
    "purchase_number",
    "customer",
    "subject",
    "nmck",
    "contract_price",
    "status",
    "stage",
    "type",
    "submission_deadline",
    "results_date",
    "contract_duration",
    "application_security",
    "contract_security",
    "manager_id",
    "executor_id",
    "created_at",
    "deleted",
]

TASK_COLUMNS = ["id", "company_id", "tender_id", "title", "status", "assigned_to", "due_date"]

EMPLOYEE_COLUMNS = ["id", "company_id", "full_name", "position"]

DOCUMENT_COLUMNS = [
    "id",
    "company_id",
    "document_type",
    "document_number",
    "document_date",
    "payment_status",
    "payment_date",
    "total_amount",
    "counterparty_name",
    "tender_id",
]

KUDIR_COLUMNS = [
    "id",
    "company_id",
    "entry_number",
    "entry_date",
    "document_id",
    "document_number",
    "document_date",
    "description",
    "income",
    "expense",
    "counterparty_name",
    "tender_id",
    "created_at",
]

AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "company_id",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
    "is_user_action",
]


def _to_cell(value) -> str:
    """Render one field value as a sheet cell."""
    if value is None:
        return ""
    if isinstance(value, BaseModel):
        return json.dumps(value.model_dump(mode="json"))
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return str(value)


def model_to_row(model: BaseModel, columns: list[str]) -> list[str]:
    return [_to_cell(getattr(model, column)) for column in columns]


def row_to_model(
    model_cls: Type[ModelT],
    columns: list[str],
    row: list[str],
    json_columns: tuple[str, ...] = (),
) -> ModelT:
    """
    Build a model from a sheet row.

    Empty cells are left out so model defaults apply; missing trailing
    cells (gspread trims them) are treated as empty.
    """
    data = {}
    for index, column in enumerate(columns):
        cell = row[index] if index < len(row) else ""
        if cell == "":
            continue
        data[column] = json.loads(cell) if column in json_columns else cell
    return model_cls.model_validate(data)


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = get_settings().google_sheets

    @property
    def settings(self):
        return self._settings

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def get_worksheet(self, title: str, columns: list[str], rows: int = 1000) -> gspread.Worksheet:
        """Get or create a worksheet, writing the header row on creation."""
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet


class _SheetsTable:
    """Shared read/append helpers over one worksheet per table."""

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _sheet(self, title: str, columns: list[str]) -> gspread.Worksheet:
        return self._client.get_worksheet(title, columns)

    def _read(
        self,
        title: str,
        columns: list[str],
        model_cls: Type[ModelT],
        company_id: Optional[UUID] = None,
        json_columns: tuple[str, ...] = (),
    ) -> list[ModelT]:
        """Read every parseable row, optionally keeping one company's rows."""
        try:
            all_rows = self._sheet(title, columns).get_all_values()[1:]  # Skip header
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to read {title}: {e}")

        records = []
        for row in all_rows:
            if not row or not row[0]:
                continue
            if company_id is not None and (len(row) < 2 or row[1] != str(company_id)):
                continue
            try:
                records.append(row_to_model(model_cls, columns, row, json_columns))
            except (ValidationError, ValueError) as e:
                logger.warning("sheet_row_skipped", sheet=title, row_id=row[0], error=str(e))
        return records

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def _append(self, title: str, columns: list[str], rows: list[list[str]]) -> int:
        if not rows:
            return 0
        try:
            self._sheet(title, columns).append_rows(rows, value_input_option="RAW")
        except Exception as e:
            raise StorageError(f"Failed to write {title}: {e}")
        return len(rows)

    def _find_row_index(self, title: str, columns: list[str], record_id: UUID) -> Optional[int]:
        """1-based sheet row index of a record, None if absent."""
        all_rows = self._sheet(title, columns).get_all_values()
        for idx, row in enumerate(all_rows[1:], start=2):  # Row 1 is the header
            if row and row[0] == str(record_id):
                return idx
        return None

    def _insert_unique(self, title: str, columns: list[str], model: BaseModel) -> bool:
        if self._find_row_index(title, columns, model.id) is not None:
            raise DuplicateError(f"{type(model).__name__} already exists: {model.id}")
        self._append(title, columns, [model_to_row(model, columns)])
        return True


class GoogleSheetsLedgerStorage(_SheetsTable, LedgerStorageInterface):
    """Accounts, categories, transactions and budgets in Google Sheets."""

    async def save_account(self, account: Account) -> bool:
        return self._insert_unique(self._client.settings.accounts_sheet_name, ACCOUNT_COLUMNS, account)

    async def list_accounts(self, company_id: UUID) -> list[Account]:
        accounts = self._read(
            self._client.settings.accounts_sheet_name, ACCOUNT_COLUMNS, Account, company_id
        )
        return sorted(accounts, key=lambda a: a.name.lower())

    async def save_category(self, category: Category) -> bool:
        return self._insert_unique(
            self._client.settings.categories_sheet_name, CATEGORY_COLUMNS, category
        )

    async def list_categories(self, company_id: UUID) -> list[Category]:
        categories = self._read(
            self._client.settings.categories_sheet_name, CATEGORY_COLUMNS, Category, company_id
        )
        return sorted(categories, key=lambda c: c.name.lower())

    async def save_transactions(self, transactions: list[Transaction]) -> int:
        rows = [model_to_row(tx, TRANSACTION_COLUMNS) for tx in transactions]
        return self._append(self._client.settings.transactions_sheet_name, TRANSACTION_COLUMNS, rows)

    async def list_transactions(
        self,
        company_id: UUID,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        category_id: Optional[UUID] = None,
        direction: Optional[TransactionDirection] = None,
    ) -> list[Transaction]:
        transactions = []
        for tx in self._read(
            self._client.settings.transactions_sheet_name,
            TRANSACTION_COLUMNS,
            Transaction,
            company_id,
        ):
            if date_from and tx.occurred_at < date_from:
                continue
            if date_to and tx.occurred_at > date_to:
                continue
            if category_id and tx.category_id != category_id:
                continue
            if direction and tx.direction != direction:
                continue
            transactions.append(tx)

        # Sort by date descending (newest first)
        transactions.sort(key=lambda t: (t.occurred_at, t.created_at), reverse=True)
        return transactions

    async def transaction_exists(
        self,
        company_id: UUID,
        occurred_at: date,
        amount: Decimal,
        direction: TransactionDirection,
        note: Optional[str],
    ) -> bool:
        same_day = await self.list_transactions(
            company_id,
            date_from=occurred_at,
            date_to=occurred_at,
            direction=direction,
        )
        return any(
            tx.amount == amount and (tx.note or "") == (note or "")
            for tx in same_day
        )

    async def save_budget(self, budget: Budget) -> bool:
        return self._insert_unique(self._client.settings.budgets_sheet_name, BUDGET_COLUMNS, budget)

    async def update_budget(self, budget: Budget) -> bool:
        title = self._client.settings.budgets_sheet_name
        try:
            existing = await self.get_budget(budget.company_id, budget.id)
            if existing is None:
                raise NotFoundError(f"Budget not found: {budget.id}")
            idx = self._find_row_index(title, BUDGET_COLUMNS, budget.id)
            self._sheet(title, BUDGET_COLUMNS).update(
                range_name=f"A{idx}",
                values=[model_to_row(budget, BUDGET_COLUMNS)],
            )
            return True
        except NotFoundError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update budget: {e}")

    async def get_budget(self, company_id: UUID, budget_id: UUID) -> Optional[Budget]:
        for budget in await self.list_budgets(company_id):
            if budget.id == budget_id:
                return budget
        return None

    async def list_budgets(self, company_id: UUID) -> list[Budget]:
        budgets = self._read(
            self._client.settings.budgets_sheet_name, BUDGET_COLUMNS, Budget, company_id
        )
        return sorted(budgets, key=lambda b: b.period_start)


class GoogleSheetsTenderStorage(_SheetsTable, TenderStorageInterface):
    """Tenders, tasks and employees in Google Sheets."""

    async def save_tender(self, tender: Tender) -> bool:
        return self._insert_unique(self._client.settings.tenders_sheet_name, TENDER_COLUMNS, tender)

    async def list_tenders(
        self,
        company_id: UUID,
        include_deleted: bool = False,
    ) -> list[Tender]:
        tenders = [
            t for t in self._read(
                self._client.settings.tenders_sheet_name,
                TENDER_COLUMNS,
                Tender,
                company_id,
                json_columns=("stage", "type"),
            )
            if include_deleted or not t.deleted
        ]
        tenders.sort(key=lambda t: t.created_at, reverse=True)
        return tenders

    async def save_task(self, task: TenderTask) -> bool:
        return self._insert_unique(self._client.settings.tender_tasks_sheet_name, TASK_COLUMNS, task)

    async def list_tasks(self, company_id: UUID) -> list[TenderTask]:
        return self._read(
            self._client.settings.tender_tasks_sheet_name, TASK_COLUMNS, TenderTask, company_id
        )

    async def save_employee(self, employee: Employee) -> bool:
        return self._insert_unique(
            self._client.settings.employees_sheet_name, EMPLOYEE_COLUMNS, employee
        )

    async def list_employees(self, company_id: UUID) -> list[Employee]:
        return self._read(
            self._client.settings.employees_sheet_name, EMPLOYEE_COLUMNS, Employee, company_id
        )


class GoogleSheetsAccountingStorage(_SheetsTable, AccountingStorageInterface):
    """Primary documents and KUDiR entries in Google Sheets."""

    async def save_document(self, document: AccountingDocument) -> bool:
        return self._insert_unique(
            self._client.settings.documents_sheet_name, DOCUMENT_COLUMNS, document
        )

    async def list_documents(
        self,
        company_id: UUID,
        payment_status: Optional[DocumentPaymentStatus] = None,
    ) -> list[AccountingDocument]:
        docs = [
            d for d in self._read(
                self._client.settings.documents_sheet_name,
                DOCUMENT_COLUMNS,
                AccountingDocument,
                company_id,
            )
            if payment_status is None or d.payment_status == payment_status
        ]
        docs.sort(key=lambda d: d.document_date)
        return docs

    async def save_kudir_entry(self, entry: KudirEntry) -> bool:
        existing = await self.list_kudir_entries(entry.company_id)
        if any(e.entry_number == entry.entry_number for e in existing):
            raise DuplicateError(f"KUDiR entry number already used: {entry.entry_number}")
        return self._insert_unique(self._client.settings.kudir_sheet_name, KUDIR_COLUMNS, entry)

    async def list_kudir_entries(
        self,
        company_id: UUID,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> list[KudirEntry]:
        entries = [
            e for e in self._read(
                self._client.settings.kudir_sheet_name, KUDIR_COLUMNS, KudirEntry, company_id
            )
            if (date_from is None or e.entry_date >= date_from)
            and (date_to is None or e.entry_date <= date_to)
        ]
        entries.sort(key=lambda e: (e.entry_date, e.entry_number))
        return entries

    async def delete_kudir_entry(self, company_id: UUID, entry_id: UUID) -> bool:
        title = self._client.settings.kudir_sheet_name
        try:
            all_rows = self._sheet(title, KUDIR_COLUMNS).get_all_values()
            for idx, row in enumerate(all_rows[1:], start=2):
                if row and row[0] == str(entry_id) and len(row) > 1 and row[1] == str(company_id):
                    self._sheet(title, KUDIR_COLUMNS).delete_rows(idx)
                    return True
            return False
        except Exception as e:
            raise StorageError(f"Failed to delete KUDiR entry: {e}")

    async def get_last_kudir_number(self, company_id: UUID) -> int:
        entries = await self.list_kudir_entries(company_id)
        return max((e.entry_number for e in entries), default=0)

    async def kudir_document_ids(self, company_id: UUID) -> set[UUID]:
        return {
            e.document_id
            for e in await self.list_kudir_entries(company_id)
            if e.document_id is not None
        }


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _sheet(self) -> gspread.Worksheet:
        return self._client.get_worksheet(
            self._client.settings.audit_sheet_name, AUDIT_COLUMNS, rows=5000
        )

    def _row_to_event(self, row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        def safe_get(index: int, default: str = "") -> str:
            try:
                return row[index] if row[index] else default
            except IndexError:
                return default

        return AuditEvent(
            event_id=UUID(safe_get(0)),
            timestamp=datetime.fromisoformat(safe_get(1)),
            event_type=AuditEventType(safe_get(2)),
            severity=AuditSeverity(safe_get(3)),
            company_id=UUID(safe_get(4)) if safe_get(4) else None,
            entity_type=safe_get(5) or None,
            entity_id=UUID(safe_get(6)) if safe_get(6) else None,
            correlation_id=UUID(safe_get(7)) if safe_get(7) else None,
            description=safe_get(8),
            details=json.loads(safe_get(9)) if safe_get(9) else {},
            error_message=safe_get(10) or None,
            is_user_action=safe_get(11).lower() == "true",
        )

    def _all_events(self) -> list[AuditEvent]:
        try:
            all_rows = self._sheet().get_all_values()[1:]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

        events = []
        for row in all_rows:
            if not row or not row[0]:
                continue
            try:
                events.append(self._row_to_event(row))
            except (ValueError, ValidationError):
                continue
        return events

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def append_event(self, event: AuditEvent) -> bool:
        try:
            self._sheet().append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except Exception as e:
            raise StorageError(f"Failed to write audit event: {e}")

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self._all_events() if e.correlation_id == correlation_id]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        company_id: Optional[UUID] = None,
        limit: int = 100,
    ) -> list[AuditEvent]:
        events = [
            e for e in self._all_events()
            if company_id is None or e.company_id == company_id
        ]
        # Sort newest first
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
