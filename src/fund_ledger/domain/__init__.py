from fund_ledger.domain.entities import Account, Entity, Fund
from fund_ledger.domain.imports import ImportJob, RollbackResult
from fund_ledger.domain.journal import JournalEntry, JournalEntryLine, LedgerLine
from fund_ledger.domain.reports import SavedReport
from fund_ledger.domain.value_objects import (
    BALANCE_TOLERANCE,
    AccountType,
    FundType,
    ImportJobStatus,
    JournalEntryStatus,
    NormalBalance,
    RecordStatus,
)

__all__ = [
    "BALANCE_TOLERANCE",
    "Account",
    "AccountType",
    "Entity",
    "Fund",
    "FundType",
    "ImportJob",
    "ImportJobStatus",
    "JournalEntry",
    "JournalEntryLine",
    "JournalEntryStatus",
    "LedgerLine",
    "NormalBalance",
    "RecordStatus",
    "RollbackResult",
    "SavedReport",
]
