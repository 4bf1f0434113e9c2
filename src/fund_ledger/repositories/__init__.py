from fund_ledger.repositories.interfaces import (
    AccountRepository,
    Database,
    EntityRepository,
    FundRepository,
    ImportJobRepository,
    JournalEntryRepository,
    SavedReportRepository,
)
from fund_ledger.repositories.memory import InMemoryImportJobRepository
from fund_ledger.repositories.sqlite import (
    SQLiteAccountRepository,
    SQLiteDatabase,
    SQLiteEntityRepository,
    SQLiteFundRepository,
    SQLiteImportJobRepository,
    SQLiteJournalEntryRepository,
    SQLiteSavedReportRepository,
)

__all__ = [
    "AccountRepository",
    "Database",
    "EntityRepository",
    "FundRepository",
    "ImportJobRepository",
    "InMemoryImportJobRepository",
    "JournalEntryRepository",
    "SavedReportRepository",
    "SQLiteAccountRepository",
    "SQLiteDatabase",
    "SQLiteEntityRepository",
    "SQLiteFundRepository",
    "SQLiteImportJobRepository",
    "SQLiteJournalEntryRepository",
    "SQLiteSavedReportRepository",
]
