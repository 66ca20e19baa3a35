"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
Google Sheets is the hosted backend; the in-memory backend serves tests and
local runs. Both are interchangeable behind the interfaces.
"""

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
from bizledger.services.storage.memory import InMemoryStorage
from bizledger.services.storage.google_sheets import (
    GoogleSheetsAccountingStorage,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerStorage,
    GoogleSheetsTenderStorage,
)

__all__ = [
    # Interfaces
    "AccountingStorageInterface",
    "AuditStorageInterface",
    "LedgerStorageInterface",
    "TenderStorageInterface",
    # Exceptions
    "ConnectionError",
    "DuplicateError",
    "NotFoundError",
    "StorageError",
    # In-memory implementation
    "InMemoryStorage",
    # Google Sheets implementation
    "GoogleSheetsAccountingStorage",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsLedgerStorage",
    "GoogleSheetsTenderStorage",
]
