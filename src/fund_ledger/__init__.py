from fund_ledger.domain.entities import Account, Entity, Fund
from fund_ledger.domain.journal import JournalEntry, JournalEntryLine

__all__ = [
    "Account",
    "Entity",
    "Fund",
    "JournalEntry",
    "JournalEntryLine",
]

__version__ = "0.1.0"
