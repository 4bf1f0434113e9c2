"""SQLite implementations of repository interfaces."""

from __future__ import annotations

import contextlib
import json
import sqlite3
import threading
from collections.abc import Iterable, Iterator, Sequence
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
from typing import Any
from uuid import UUID

from fund_ledger.domain.entities import Account, Entity, Fund
from fund_ledger.domain.imports import ImportJob
from fund_ledger.domain.journal import JournalEntry, JournalEntryLine, LedgerLine
from fund_ledger.domain.reports import SavedReport
from fund_ledger.domain.value_objects import (
    AccountType,
    FundType,
    ImportJobStatus,
    JournalEntryStatus,
    RecordStatus,
    to_amount,
)
from fund_ledger.exceptions import ReportExecutionError
from fund_ledger.repositories.interfaces import (
    AccountRepository,
    Database,
    EntityRepository,
    FundRepository,
    ImportJobRepository,
    JournalEntryRepository,
    SavedReportRepository,
)

SCHEMA = """
-- Entities table
CREATE TABLE IF NOT EXISTS entities (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    code TEXT NOT NULL UNIQUE,
    parent_entity_id TEXT,
    is_consolidated INTEGER NOT NULL DEFAULT 0,
    fiscal_year_start TEXT NOT NULL DEFAULT '01-01',
    base_currency TEXT NOT NULL DEFAULT 'USD',
    status TEXT NOT NULL DEFAULT 'Active',
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    FOREIGN KEY (parent_entity_id) REFERENCES entities(id)
);
CREATE INDEX IF NOT EXISTS idx_entities_parent ON entities(parent_entity_id);

-- Accounts table (balance is NUMERIC so report filters compare numerically)
CREATE TABLE IF NOT EXISTS accounts (
    id TEXT PRIMARY KEY,
    entity_id TEXT NOT NULL,
    code TEXT NOT NULL,
    name TEXT NOT NULL,
    account_type TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    balance NUMERIC NOT NULL DEFAULT 0,
    status TEXT NOT NULL DEFAULT 'Active',
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    UNIQUE(entity_id, code),
    FOREIGN KEY (entity_id) REFERENCES entities(id)
);
CREATE INDEX IF NOT EXISTS idx_accounts_code ON accounts(code);

-- Funds table
CREATE TABLE IF NOT EXISTS funds (
    id TEXT PRIMARY KEY,
    entity_id TEXT NOT NULL,
    code TEXT NOT NULL,
    name TEXT NOT NULL,
    fund_type TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    balance NUMERIC NOT NULL DEFAULT 0,
    status TEXT NOT NULL DEFAULT 'Active',
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    UNIQUE(entity_id, code),
    FOREIGN KEY (entity_id) REFERENCES entities(id)
);

-- Journal entries table
CREATE TABLE IF NOT EXISTS journal_entries (
    id TEXT PRIMARY KEY,
    entity_id TEXT NOT NULL,
    entry_date TEXT NOT NULL,
    reference_number TEXT NOT NULL UNIQUE,
    description TEXT NOT NULL DEFAULT '',
    total_amount NUMERIC NOT NULL DEFAULT 0,
    status TEXT NOT NULL DEFAULT 'Draft',
    is_inter_entity INTEGER NOT NULL DEFAULT 0,
    target_entity_id TEXT,
    matching_transaction_id TEXT,
    import_id TEXT,
    created_by TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    FOREIGN KEY (entity_id) REFERENCES entities(id),
    FOREIGN KEY (target_entity_id) REFERENCES entities(id)
);
CREATE INDEX IF NOT EXISTS idx_journal_entries_entity ON journal_entries(entity_id);
CREATE INDEX IF NOT EXISTS idx_journal_entries_date ON journal_entries(entry_date);
CREATE INDEX IF NOT EXISTS idx_journal_entries_import ON journal_entries(import_id);

-- Journal entry lines table
CREATE TABLE IF NOT EXISTS journal_entry_lines (
    id TEXT PRIMARY KEY,
    journal_entry_id TEXT NOT NULL,
    line_number INTEGER NOT NULL,
    account_id TEXT NOT NULL,
    fund_id TEXT,
    debit_amount NUMERIC NOT NULL DEFAULT 0 CHECK (debit_amount >= 0),
    credit_amount NUMERIC NOT NULL DEFAULT 0 CHECK (credit_amount >= 0),
    description TEXT NOT NULL DEFAULT '',
    FOREIGN KEY (journal_entry_id) REFERENCES journal_entries(id) ON DELETE CASCADE,
    FOREIGN KEY (account_id) REFERENCES accounts(id),
    FOREIGN KEY (fund_id) REFERENCES funds(id)
);
CREATE INDEX IF NOT EXISTS idx_lines_entry ON journal_entry_lines(journal_entry_id);
CREATE INDEX IF NOT EXISTS idx_lines_account ON journal_entry_lines(account_id);
CREATE INDEX IF NOT EXISTS idx_lines_fund ON journal_entry_lines(fund_id);

-- Posted entries may only move to Void; Void entries never change.
CREATE TRIGGER IF NOT EXISTS trg_journal_entries_immutable
BEFORE UPDATE ON journal_entries
WHEN OLD.status <> 'Draft' AND NOT (OLD.status = 'Posted' AND NEW.status = 'Void')
BEGIN
    SELECT RAISE(ABORT, 'posted journal entries are immutable');
END;

-- Import jobs table
CREATE TABLE IF NOT EXISTS import_jobs (
    id TEXT PRIMARY KEY,
    status TEXT NOT NULL,
    file_name TEXT,
    total_records INTEGER NOT NULL DEFAULT 0,
    processed_records INTEGER NOT NULL DEFAULT 0,
    total_rows INTEGER NOT NULL DEFAULT 0,
    entries_created INTEGER NOT NULL DEFAULT 0,
    progress INTEGER NOT NULL DEFAULT 0,
    errors TEXT NOT NULL DEFAULT '[]',
    started_at TEXT NOT NULL,
    completed_at TEXT,
    rolled_back_at TEXT
);
CREATE INDEX IF NOT EXISTS idx_import_jobs_started ON import_jobs(started_at);

-- Saved custom report definitions
CREATE TABLE IF NOT EXISTS saved_reports (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    definition TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
"""


def _to_datetime(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _to_uuid(value: str | None) -> UUID | None:
    return UUID(value) if value else None


class SQLiteDatabase(Database):
    """SQLite database connection manager.

    One connection is shared by every repository. ``transaction()`` opens a
    unit of work on it; repository writes join the enclosing unit, so a
    service can group several writes and have them commit or roll back
    together.
    """

    paramstyle = "qmark"
    supports_ilike = False

    def __init__(
        self, path: str | Path = ":memory:", check_same_thread: bool = True
    ) -> None:
        self._path = str(path)
        self._check_same_thread = check_same_thread
        self._connection: sqlite3.Connection | None = None
        self._lock = threading.RLock()
        self._depth = 0

    @property
    def path(self) -> str:
        return self._path

    def get_connection(self) -> sqlite3.Connection:
        """Get or create the database connection."""
        if self._connection is None:
            self._connection = sqlite3.connect(
                self._path, check_same_thread=self._check_same_thread
            )
            self._connection.row_factory = sqlite3.Row
            self._connection.execute("PRAGMA foreign_keys = ON")
        return self._connection

    def initialize(self) -> None:
        """Create all database tables."""
        conn = self.get_connection()
        conn.executescript(SCHEMA)
        conn.commit()

    @contextlib.contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            conn = self.get_connection()
            self._depth += 1
            try:
                yield conn
            except BaseException:
                self._depth -= 1
                if self._depth == 0:
                    conn.rollback()
                raise
            else:
                self._depth -= 1
                if self._depth == 0:
                    conn.commit()

    def fetch_all(self, sql: str, params: Sequence[Any]) -> list[dict[str, Any]]:
        # sqlite3 cannot bind Decimal; NUMERIC affinity converts the text back.
        bound = [str(p) if isinstance(p, Decimal) else p for p in params]
        try:
            rows = self.get_connection().execute(sql, bound).fetchall()
        except sqlite3.Error as e:
            raise ReportExecutionError(
                f"Report query failed: {e}", context={"sql": sql}
            ) from e
        return [dict(row) for row in rows]

    def close(self) -> None:
        """Close the database connection."""
        if self._connection is not None:
            self._connection.close()
            self._connection = None


class SQLiteEntityRepository(EntityRepository):
    """SQLite implementation of EntityRepository."""

    def __init__(self, database: SQLiteDatabase) -> None:
        self._db = database

    def add(self, entity: Entity) -> None:
        with self._db.transaction() as conn:
            conn.execute(
                """
                INSERT INTO entities (id, name, code, parent_entity_id, is_consolidated,
                                      fiscal_year_start, base_currency, status,
                                      created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    str(entity.id),
                    entity.name,
                    entity.code,
                    str(entity.parent_entity_id) if entity.parent_entity_id else None,
                    1 if entity.is_consolidated else 0,
                    entity.fiscal_year_start,
                    entity.base_currency,
                    entity.status.value,
                    entity.created_at.isoformat(),
                    entity.updated_at.isoformat(),
                ),
            )

    def get(self, entity_id: UUID) -> Entity | None:
        conn = self._db.get_connection()
        row = conn.execute(
            "SELECT * FROM entities WHERE id = ?", (str(entity_id),)
        ).fetchone()
        if row is None:
            return None
        return self._row_to_entity(row)

    def get_by_code(self, code: str) -> Entity | None:
        conn = self._db.get_connection()
        row = conn.execute("SELECT * FROM entities WHERE code = ?", (code,)).fetchone()
        if row is None:
            return None
        return self._row_to_entity(row)

    def list_all(self) -> Iterable[Entity]:
        conn = self._db.get_connection()
        rows = conn.execute("SELECT * FROM entities ORDER BY name").fetchall()
        return [self._row_to_entity(row) for row in rows]

    def list_children(self, parent_entity_id: UUID) -> Iterable[Entity]:
        conn = self._db.get_connection()
        rows = conn.execute(
            "SELECT * FROM entities WHERE parent_entity_id = ? ORDER BY name",
            (str(parent_entity_id),),
        ).fetchall()
        return [self._row_to_entity(row) for row in rows]

    def update(self, entity: Entity) -> None:
        with self._db.transaction() as conn:
            conn.execute(
                """
                UPDATE entities SET
                    name = ?,
                    code = ?,
                    parent_entity_id = ?,
                    is_consolidated = ?,
                    fiscal_year_start = ?,
                    base_currency = ?,
                    status = ?,
                    updated_at = ?
                WHERE id = ?
                """,
                (
                    entity.name,
                    entity.code,
                    str(entity.parent_entity_id) if entity.parent_entity_id else None,
                    1 if entity.is_consolidated else 0,
                    entity.fiscal_year_start,
                    entity.base_currency,
                    entity.status.value,
                    entity.updated_at.isoformat(),
                    str(entity.id),
                ),
            )

    def delete(self, entity_id: UUID) -> None:
        with self._db.transaction() as conn:
            conn.execute("DELETE FROM entities WHERE id = ?", (str(entity_id),))

    def _row_to_entity(self, row: sqlite3.Row) -> Entity:
        return Entity(
            id=UUID(row["id"]),
            name=row["name"],
            code=row["code"],
            parent_entity_id=_to_uuid(row["parent_entity_id"]),
            is_consolidated=bool(row["is_consolidated"]),
            fiscal_year_start=row["fiscal_year_start"],
            base_currency=row["base_currency"],
            status=RecordStatus(row["status"]),
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )


class SQLiteAccountRepository(AccountRepository):
    """SQLite implementation of AccountRepository."""

    def __init__(self, database: SQLiteDatabase) -> None:
        self._db = database

    def add(self, account: Account) -> None:
        with self._db.transaction() as conn:
            conn.execute(
                """
                INSERT INTO accounts (id, entity_id, code, name, account_type, description,
                                      balance, status, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    str(account.id),
                    str(account.entity_id),
                    account.code,
                    account.name,
                    account.account_type.value,
                    account.description,
                    str(account.balance),
                    account.status.value,
                    account.created_at.isoformat(),
                    account.updated_at.isoformat(),
                ),
            )

    def get(self, account_id: UUID) -> Account | None:
        conn = self._db.get_connection()
        row = conn.execute(
            "SELECT * FROM accounts WHERE id = ?", (str(account_id),)
        ).fetchone()
        if row is None:
            return None
        return self._row_to_account(row)

    def get_by_code(self, entity_id: UUID, code: str) -> Account | None:
        conn = self._db.get_connection()
        row = conn.execute(
            "SELECT * FROM accounts WHERE entity_id = ? AND code = ?",
            (str(entity_id), code),
        ).fetchone()
        if row is None:
            return None
        return self._row_to_account(row)

    def find_by_code(self, code: str) -> Iterable[Account]:
        conn = self._db.get_connection()
        rows = conn.execute(
            "SELECT * FROM accounts WHERE code = ? ORDER BY entity_id", (code,)
        ).fetchall()
        return [self._row_to_account(row) for row in rows]

    def list_by_entity(self, entity_id: UUID) -> Iterable[Account]:
        conn = self._db.get_connection()
        rows = conn.execute(
            "SELECT * FROM accounts WHERE entity_id = ? ORDER BY code",
            (str(entity_id),),
        ).fetchall()
        return [self._row_to_account(row) for row in rows]

    def list_all(self) -> Iterable[Account]:
        conn = self._db.get_connection()
        rows = conn.execute("SELECT * FROM accounts ORDER BY code").fetchall()
        return [self._row_to_account(row) for row in rows]

    def update(self, account: Account) -> None:
        with self._db.transaction() as conn:
            conn.execute(
                """
                UPDATE accounts SET
                    code = ?,
                    name = ?,
                    account_type = ?,
                    description = ?,
                    status = ?,
                    updated_at = ?
                WHERE id = ?
                """,
                (
                    account.code,
                    account.name,
                    account.account_type.value,
                    account.description,
                    account.status.value,
                    account.updated_at.isoformat(),
                    str(account.id),
                ),
            )

    def delete(self, account_id: UUID) -> None:
        with self._db.transaction() as conn:
            conn.execute("DELETE FROM accounts WHERE id = ?", (str(account_id),))

    def adjust_balance(self, account_id: UUID, delta: Decimal) -> None:
        with self._db.transaction() as conn:
            conn.execute(
                "UPDATE accounts SET balance = ROUND(balance + ?, 2) WHERE id = ?",
                (str(delta), str(account_id)),
            )

    def _row_to_account(self, row: sqlite3.Row) -> Account:
        return Account(
            id=UUID(row["id"]),
            entity_id=UUID(row["entity_id"]),
            code=row["code"],
            name=row["name"],
            account_type=AccountType(row["account_type"]),
            description=row["description"],
            balance=to_amount(row["balance"]),
            status=RecordStatus(row["status"]),
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )


class SQLiteFundRepository(FundRepository):
    """SQLite implementation of FundRepository."""

    def __init__(self, database: SQLiteDatabase) -> None:
        self._db = database

    def add(self, fund: Fund) -> None:
        with self._db.transaction() as conn:
            conn.execute(
                """
                INSERT INTO funds (id, entity_id, code, name, fund_type, description,
                                   balance, status, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    str(fund.id),
                    str(fund.entity_id),
                    fund.code,
                    fund.name,
                    fund.fund_type.value,
                    fund.description,
                    str(fund.balance),
                    fund.status.value,
                    fund.created_at.isoformat(),
                    fund.updated_at.isoformat(),
                ),
            )

    def get(self, fund_id: UUID) -> Fund | None:
        conn = self._db.get_connection()
        row = conn.execute(
            "SELECT * FROM funds WHERE id = ?", (str(fund_id),)
        ).fetchone()
        if row is None:
            return None
        return self._row_to_fund(row)

    def get_by_code(self, entity_id: UUID, code: str) -> Fund | None:
        conn = self._db.get_connection()
        row = conn.execute(
            "SELECT * FROM funds WHERE entity_id = ? AND code = ?",
            (str(entity_id), code),
        ).fetchone()
        if row is None:
            return None
        return self._row_to_fund(row)

    def list_by_entity(self, entity_id: UUID) -> Iterable[Fund]:
        conn = self._db.get_connection()
        rows = conn.execute(
            "SELECT * FROM funds WHERE entity_id = ? ORDER BY code",
            (str(entity_id),),
        ).fetchall()
        return [self._row_to_fund(row) for row in rows]

    def list_all(self) -> Iterable[Fund]:
        conn = self._db.get_connection()
        rows = conn.execute("SELECT * FROM funds ORDER BY code").fetchall()
        return [self._row_to_fund(row) for row in rows]

    def update(self, fund: Fund) -> None:
        with self._db.transaction() as conn:
            conn.execute(
                """
                UPDATE funds SET
                    code = ?,
                    name = ?,
                    fund_type = ?,
                    description = ?,
                    status = ?,
                    updated_at = ?
                WHERE id = ?
                """,
                (
                    fund.code,
                    fund.name,
                    fund.fund_type.value,
                    fund.description,
                    fund.status.value,
                    fund.updated_at.isoformat(),
                    str(fund.id),
                ),
            )

    def delete(self, fund_id: UUID) -> None:
        with self._db.transaction() as conn:
            conn.execute("DELETE FROM funds WHERE id = ?", (str(fund_id),))

    def adjust_balance(self, fund_id: UUID, delta: Decimal) -> None:
        with self._db.transaction() as conn:
            conn.execute(
                "UPDATE funds SET balance = ROUND(balance + ?, 2) WHERE id = ?",
                (str(delta), str(fund_id)),
            )

    def _row_to_fund(self, row: sqlite3.Row) -> Fund:
        return Fund(
            id=UUID(row["id"]),
            entity_id=UUID(row["entity_id"]),
            code=row["code"],
            name=row["name"],
            fund_type=FundType(row["fund_type"]),
            description=row["description"],
            balance=to_amount(row["balance"]),
            status=RecordStatus(row["status"]),
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )


class SQLiteJournalEntryRepository(JournalEntryRepository):
    """SQLite implementation of JournalEntryRepository."""

    def __init__(self, database: SQLiteDatabase) -> None:
        self._db = database

    def add(self, entry: JournalEntry) -> None:
        with self._db.transaction() as conn:
            conn.execute(
                """
                INSERT INTO journal_entries (id, entity_id, entry_date, reference_number,
                                             description, total_amount, status,
                                             is_inter_entity, target_entity_id,
                                             matching_transaction_id, import_id,
                                             created_by, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    str(entry.id),
                    str(entry.entity_id),
                    entry.entry_date.isoformat(),
                    entry.reference_number,
                    entry.description,
                    str(entry.total_amount),
                    entry.status.value,
                    1 if entry.is_inter_entity else 0,
                    str(entry.target_entity_id) if entry.target_entity_id else None,
                    str(entry.matching_transaction_id)
                    if entry.matching_transaction_id
                    else None,
                    str(entry.import_id) if entry.import_id else None,
                    entry.created_by,
                    entry.created_at.isoformat(),
                    entry.updated_at.isoformat(),
                ),
            )
            self._insert_lines(conn, entry)

    def _insert_lines(self, conn: sqlite3.Connection, entry: JournalEntry) -> None:
        conn.executemany(
            """
            INSERT INTO journal_entry_lines (id, journal_entry_id, line_number, account_id,
                                             fund_id, debit_amount, credit_amount, description)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            [
                (
                    str(line.id),
                    str(entry.id),
                    number,
                    str(line.account_id),
                    str(line.fund_id) if line.fund_id else None,
                    str(line.debit_amount),
                    str(line.credit_amount),
                    line.description,
                )
                for number, line in enumerate(entry.lines, start=1)
            ],
        )

    def get(self, entry_id: UUID) -> JournalEntry | None:
        conn = self._db.get_connection()
        row = conn.execute(
            "SELECT * FROM journal_entries WHERE id = ?", (str(entry_id),)
        ).fetchone()
        if row is None:
            return None
        return self._row_to_entry(row)

    def get_by_reference(self, reference_number: str) -> JournalEntry | None:
        conn = self._db.get_connection()
        row = conn.execute(
            "SELECT * FROM journal_entries WHERE reference_number = ?",
            (reference_number,),
        ).fetchone()
        if row is None:
            return None
        return self._row_to_entry(row)

    def list_all(self) -> Iterable[JournalEntry]:
        conn = self._db.get_connection()
        rows = conn.execute(
            "SELECT * FROM journal_entries ORDER BY entry_date DESC, reference_number"
        ).fetchall()
        return [self._row_to_entry(row) for row in rows]

    def list_by_entity(self, entity_id: UUID) -> Iterable[JournalEntry]:
        conn = self._db.get_connection()
        rows = conn.execute(
            """
            SELECT * FROM journal_entries WHERE entity_id = ?
            ORDER BY entry_date DESC, reference_number
            """,
            (str(entity_id),),
        ).fetchall()
        return [self._row_to_entry(row) for row in rows]

    def list_inter_entity(self, entity_id: UUID | None = None) -> Iterable[JournalEntry]:
        conn = self._db.get_connection()
        if entity_id is None:
            rows = conn.execute(
                """
                SELECT * FROM journal_entries WHERE is_inter_entity = 1
                ORDER BY entry_date DESC, reference_number
                """
            ).fetchall()
        else:
            rows = conn.execute(
                """
                SELECT * FROM journal_entries
                WHERE is_inter_entity = 1 AND (entity_id = ? OR target_entity_id = ?)
                ORDER BY entry_date DESC, reference_number
                """,
                (str(entity_id), str(entity_id)),
            ).fetchall()
        return [self._row_to_entry(row) for row in rows]

    def list_by_import(self, import_id: UUID) -> Iterable[JournalEntry]:
        conn = self._db.get_connection()
        rows = conn.execute(
            "SELECT * FROM journal_entries WHERE import_id = ? ORDER BY created_at",
            (str(import_id),),
        ).fetchall()
        return [self._row_to_entry(row) for row in rows]

    def update(self, entry: JournalEntry) -> None:
        with self._db.transaction() as conn:
            # Lines first: the immutability trigger fires once the header leaves Draft.
            conn.execute(
                "DELETE FROM journal_entry_lines WHERE journal_entry_id = ?",
                (str(entry.id),),
            )
            self._insert_lines(conn, entry)
            conn.execute(
                """
                UPDATE journal_entries SET
                    entry_date = ?,
                    reference_number = ?,
                    description = ?,
                    total_amount = ?,
                    status = ?,
                    is_inter_entity = ?,
                    target_entity_id = ?,
                    matching_transaction_id = ?,
                    updated_at = ?
                WHERE id = ?
                """,
                (
                    entry.entry_date.isoformat(),
                    entry.reference_number,
                    entry.description,
                    str(entry.total_amount),
                    entry.status.value,
                    1 if entry.is_inter_entity else 0,
                    str(entry.target_entity_id) if entry.target_entity_id else None,
                    str(entry.matching_transaction_id)
                    if entry.matching_transaction_id
                    else None,
                    entry.updated_at.isoformat(),
                    str(entry.id),
                ),
            )

    def delete(self, entry_id: UUID) -> None:
        with self._db.transaction() as conn:
            conn.execute("DELETE FROM journal_entries WHERE id = ?", (str(entry_id),))

    def delete_by_import(self, import_id: UUID) -> int:
        with self._db.transaction() as conn:
            cursor = conn.execute(
                "DELETE FROM journal_entries WHERE import_id = ?", (str(import_id),)
            )
            return cursor.rowcount

    def count_by_entity(self, entity_id: UUID) -> int:
        conn = self._db.get_connection()
        row = conn.execute(
            """
            SELECT COUNT(*) FROM journal_entries
            WHERE entity_id = ? OR target_entity_id = ?
            """,
            (str(entity_id), str(entity_id)),
        ).fetchone()
        return int(row[0])

    def count_lines_for_account(self, account_id: UUID) -> int:
        conn = self._db.get_connection()
        row = conn.execute(
            "SELECT COUNT(*) FROM journal_entry_lines WHERE account_id = ?",
            (str(account_id),),
        ).fetchone()
        return int(row[0])

    def count_lines_for_fund(self, fund_id: UUID) -> int:
        conn = self._db.get_connection()
        row = conn.execute(
            "SELECT COUNT(*) FROM journal_entry_lines WHERE fund_id = ?",
            (str(fund_id),),
        ).fetchone()
        return int(row[0])

    def list_posted_lines(
        self,
        *,
        account_id: UUID | None = None,
        fund_id: UUID | None = None,
        entity_id: UUID | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> list[LedgerLine]:
        clauses = ["je.status = ?"]
        params: list[Any] = [JournalEntryStatus.POSTED.value]
        if account_id is not None:
            clauses.append("l.account_id = ?")
            params.append(str(account_id))
        if fund_id is not None:
            clauses.append("l.fund_id = ?")
            params.append(str(fund_id))
        if entity_id is not None:
            clauses.append("je.entity_id = ?")
            params.append(str(entity_id))
        if start_date is not None:
            clauses.append("je.entry_date >= ?")
            params.append(start_date.isoformat())
        if end_date is not None:
            clauses.append("je.entry_date <= ?")
            params.append(end_date.isoformat())

        conn = self._db.get_connection()
        rows = conn.execute(
            f"""
            SELECT l.*, je.entity_id, je.entry_date, je.reference_number,
                   je.description AS entry_description
            FROM journal_entry_lines l
            JOIN journal_entries je ON je.id = l.journal_entry_id
            WHERE {" AND ".join(clauses)}
            ORDER BY je.entry_date, je.reference_number, l.line_number
            """,
            params,
        ).fetchall()
        return [
            LedgerLine(
                entry_id=UUID(row["journal_entry_id"]),
                entity_id=UUID(row["entity_id"]),
                entry_date=date.fromisoformat(row["entry_date"]),
                reference_number=row["reference_number"],
                entry_description=row["entry_description"],
                account_id=UUID(row["account_id"]),
                fund_id=_to_uuid(row["fund_id"]),
                debit_amount=to_amount(row["debit_amount"]),
                credit_amount=to_amount(row["credit_amount"]),
                description=row["description"],
            )
            for row in rows
        ]

    def _get_lines(self, entry_id: str) -> list[JournalEntryLine]:
        conn = self._db.get_connection()
        rows = conn.execute(
            """
            SELECT * FROM journal_entry_lines WHERE journal_entry_id = ?
            ORDER BY line_number
            """,
            (entry_id,),
        ).fetchall()
        return [
            JournalEntryLine(
                id=UUID(row["id"]),
                journal_entry_id=UUID(row["journal_entry_id"]),
                account_id=UUID(row["account_id"]),
                fund_id=_to_uuid(row["fund_id"]),
                debit_amount=to_amount(row["debit_amount"]),
                credit_amount=to_amount(row["credit_amount"]),
                description=row["description"],
            )
            for row in rows
        ]

    def _row_to_entry(self, row: sqlite3.Row) -> JournalEntry:
        return JournalEntry(
            id=UUID(row["id"]),
            entity_id=UUID(row["entity_id"]),
            entry_date=date.fromisoformat(row["entry_date"]),
            reference_number=row["reference_number"],
            description=row["description"],
            total_amount=to_amount(row["total_amount"]),
            status=JournalEntryStatus(row["status"]),
            is_inter_entity=bool(row["is_inter_entity"]),
            target_entity_id=_to_uuid(row["target_entity_id"]),
            matching_transaction_id=_to_uuid(row["matching_transaction_id"]),
            import_id=_to_uuid(row["import_id"]),
            created_by=row["created_by"],
            lines=self._get_lines(row["id"]),
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )


class SQLiteImportJobRepository(ImportJobRepository):
    """Durable import job history."""

    def __init__(self, database: SQLiteDatabase) -> None:
        self._db = database

    def add(self, job: ImportJob) -> None:
        with self._db.transaction() as conn:
            conn.execute(
                """
                INSERT INTO import_jobs (id, status, file_name, total_records,
                                         processed_records, total_rows, entries_created,
                                         progress, errors, started_at, completed_at,
                                         rolled_back_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (str(job.id), *self._values(job)),
            )

    def get(self, import_id: UUID) -> ImportJob | None:
        conn = self._db.get_connection()
        row = conn.execute(
            "SELECT * FROM import_jobs WHERE id = ?", (str(import_id),)
        ).fetchone()
        if row is None:
            return None
        return self._row_to_job(row)

    def update(self, job: ImportJob) -> None:
        with self._db.transaction() as conn:
            conn.execute(
                """
                UPDATE import_jobs SET
                    status = ?,
                    file_name = ?,
                    total_records = ?,
                    processed_records = ?,
                    total_rows = ?,
                    entries_created = ?,
                    progress = ?,
                    errors = ?,
                    started_at = ?,
                    completed_at = ?,
                    rolled_back_at = ?
                WHERE id = ?
                """,
                (*self._values(job), str(job.id)),
            )

    def list_all(self) -> Iterable[ImportJob]:
        conn = self._db.get_connection()
        rows = conn.execute(
            "SELECT * FROM import_jobs ORDER BY started_at DESC"
        ).fetchall()
        return [self._row_to_job(row) for row in rows]

    @staticmethod
    def _values(job: ImportJob) -> tuple[Any, ...]:
        return (
            job.status.value,
            job.file_name,
            job.total_records,
            job.processed_records,
            job.total_rows,
            job.entries_created,
            job.progress,
            json.dumps(job.errors),
            job.started_at.isoformat(),
            job.completed_at.isoformat() if job.completed_at else None,
            job.rolled_back_at.isoformat() if job.rolled_back_at else None,
        )

    def _row_to_job(self, row: sqlite3.Row) -> ImportJob:
        return ImportJob(
            id=UUID(row["id"]),
            status=ImportJobStatus(row["status"]),
            file_name=row["file_name"],
            total_records=row["total_records"],
            processed_records=row["processed_records"],
            total_rows=row["total_rows"],
            entries_created=row["entries_created"],
            progress=row["progress"],
            errors=json.loads(row["errors"]),
            started_at=datetime.fromisoformat(row["started_at"]),
            completed_at=_to_datetime(row["completed_at"]),
            rolled_back_at=_to_datetime(row["rolled_back_at"]),
        )


class SQLiteSavedReportRepository(SavedReportRepository):
    """SQLite implementation of SavedReportRepository."""

    def __init__(self, database: SQLiteDatabase) -> None:
        self._db = database

    def add(self, report: SavedReport) -> None:
        with self._db.transaction() as conn:
            conn.execute(
                """
                INSERT INTO saved_reports (id, name, description, definition,
                                           created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    str(report.id),
                    report.name,
                    report.description,
                    json.dumps(report.definition),
                    report.created_at.isoformat(),
                    report.updated_at.isoformat(),
                ),
            )

    def get(self, report_id: UUID) -> SavedReport | None:
        conn = self._db.get_connection()
        row = conn.execute(
            "SELECT * FROM saved_reports WHERE id = ?", (str(report_id),)
        ).fetchone()
        if row is None:
            return None
        return self._row_to_report(row)

    def list_all(self) -> Iterable[SavedReport]:
        conn = self._db.get_connection()
        rows = conn.execute(
            "SELECT * FROM saved_reports ORDER BY created_at DESC"
        ).fetchall()
        return [self._row_to_report(row) for row in rows]

    def delete(self, report_id: UUID) -> None:
        with self._db.transaction() as conn:
            conn.execute("DELETE FROM saved_reports WHERE id = ?", (str(report_id),))

    def _row_to_report(self, row: sqlite3.Row) -> SavedReport:
        return SavedReport(
            id=UUID(row["id"]),
            name=row["name"],
            description=row["description"],
            definition=json.loads(row["definition"]),
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )
