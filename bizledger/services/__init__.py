"""
Services package.

Only storage is re-exported here. Domain services are imported from
their own subpackages.
"""

from bizledger.services.storage import (
    AccountingStorageInterface,
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    GoogleSheetsAccountingStorage,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerStorage,
    GoogleSheetsTenderStorage,
    InMemoryStorage,
    LedgerStorageInterface,
    NotFoundError,
    StorageError,
    TenderStorageInterface,
)

__all__ = [
    # Storage interfaces
    "AccountingStorageInterface",
    "AuditStorageInterface",
    "LedgerStorageInterface",
    "TenderStorageInterface",
    # Storage implementations
    "GoogleSheetsAccountingStorage",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsLedgerStorage",
    "GoogleSheetsTenderStorage",
    "InMemoryStorage",
    # Storage errors
    "ConnectionError",
    "DuplicateError",
    "NotFoundError",
    "StorageError",
]
