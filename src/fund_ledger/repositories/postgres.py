"""PostgreSQL implementations of repository interfaces."""

from __future__ import annotations

import contextlib
import json
import threading
from collections.abc import Iterable, Iterator, Sequence
from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

import psycopg2
import psycopg2.extras

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
CREATE TABLE IF NOT EXISTS entities (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    code TEXT NOT NULL UNIQUE,
    parent_entity_id TEXT REFERENCES entities(id),
    is_consolidated BOOLEAN NOT NULL DEFAULT FALSE,
    fiscal_year_start TEXT NOT NULL DEFAULT '01-01',
    base_currency TEXT NOT NULL DEFAULT 'USD',
    status TEXT NOT NULL DEFAULT 'Active',
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_entities_parent ON entities(parent_entity_id);

CREATE TABLE IF NOT EXISTS accounts (
    id TEXT PRIMARY KEY,
    entity_id TEXT NOT NULL REFERENCES entities(id),
    code TEXT NOT NULL,
    name TEXT NOT NULL,
    account_type TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    balance NUMERIC(15, 2) NOT NULL DEFAULT 0,
    status TEXT NOT NULL DEFAULT 'Active',
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    UNIQUE (entity_id, code)
);
CREATE INDEX IF NOT EXISTS idx_accounts_code ON accounts(code);

CREATE TABLE IF NOT EXISTS funds (
    id TEXT PRIMARY KEY,
    entity_id TEXT NOT NULL REFERENCES entities(id),
    code TEXT NOT NULL,
    name TEXT NOT NULL,
    fund_type TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    balance NUMERIC(15, 2) NOT NULL DEFAULT 0,
    status TEXT NOT NULL DEFAULT 'Active',
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    UNIQUE (entity_id, code)
);

CREATE TABLE IF NOT EXISTS journal_entries (
    id TEXT PRIMARY KEY,
    entity_id TEXT NOT NULL REFERENCES entities(id),
    entry_date DATE NOT NULL,
    reference_number TEXT NOT NULL UNIQUE,
    description TEXT NOT NULL DEFAULT '',
    total_amount NUMERIC(15, 2) NOT NULL DEFAULT 0,
    status TEXT NOT NULL DEFAULT 'Draft',
    is_inter_entity BOOLEAN NOT NULL DEFAULT FALSE,
    target_entity_id TEXT REFERENCES entities(id),
    matching_transaction_id TEXT,
    import_id TEXT,
    created_by TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_journal_entries_entity ON journal_entries(entity_id);
CREATE INDEX IF NOT EXISTS idx_journal_entries_date ON journal_entries(entry_date);
CREATE INDEX IF NOT EXISTS idx_journal_entries_import ON journal_entries(import_id);

CREATE TABLE IF NOT EXISTS journal_entry_lines (
    id TEXT PRIMARY KEY,
    journal_entry_id TEXT NOT NULL REFERENCES journal_entries(id) ON DELETE CASCADE,
    line_number INTEGER NOT NULL,
    account_id TEXT NOT NULL REFERENCES accounts(id),
    fund_id TEXT REFERENCES funds(id),
    debit_amount NUMERIC(15, 2) NOT NULL DEFAULT 0 CHECK (debit_amount >= 0),
    credit_amount NUMERIC(15, 2) NOT NULL DEFAULT 0 CHECK (credit_amount >= 0),
    description TEXT NOT NULL DEFAULT ''
);
CREATE INDEX IF NOT EXISTS idx_lines_entry ON journal_entry_lines(journal_entry_id);
CREATE INDEX IF NOT EXISTS idx_lines_account ON journal_entry_lines(account_id);
CREATE INDEX IF NOT EXISTS idx_lines_fund ON journal_entry_lines(fund_id);

CREATE OR REPLACE FUNCTION journal_entries_immutable() RETURNS trigger AS $$
BEGIN
    IF OLD.status <> 'Draft' AND NOT (OLD.status = 'Posted' AND NEW.status = 'Void') THEN
        RAISE EXCEPTION 'posted journal entries are immutable';
    END IF;
    RETURN NEW;
END;
$$ LANGUAGE plpgsql;

DROP TRIGGER IF EXISTS trg_journal_entries_immutable ON journal_entries;
CREATE TRIGGER trg_journal_entries_immutable
    BEFORE UPDATE ON journal_entries
    FOR EACH ROW EXECUTE FUNCTION journal_entries_immutable();

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

CREATE TABLE IF NOT EXISTS saved_reports (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    definition TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
"""

_TABLES = (
    "saved_reports",
    "import_jobs",
    "journal_entry_lines",
    "journal_entries",
    "funds",
    "accounts",
    "entities",
)


def _to_datetime(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _to_uuid(value: str | None) -> UUID | None:
    return UUID(value) if value else None


def _to_date(value: date | str) -> date:
    if isinstance(value, date):
        return value
    return date.fromisoformat(value)


class PostgresDatabase(Database):
    """PostgreSQL database connection manager."""

    paramstyle = "format"
    supports_ilike = True

    def __init__(self, connection_string: str) -> None:
        self._connection_string = connection_string
        self._connection: psycopg2.extensions.connection | None = None
        self._lock = threading.RLock()
        self._depth = 0

    def get_connection(self) -> psycopg2.extensions.connection:
        """Get or create the database connection."""
        if self._connection is None or self._connection.closed:
            self._connection = psycopg2.connect(
                self._connection_string,
                cursor_factory=psycopg2.extras.RealDictCursor,
            )
        return self._connection

    def initialize(self) -> None:
        """Create all database tables."""
        conn = self.get_connection()
        with conn.cursor() as cur:
            cur.execute(SCHEMA)
        conn.commit()

    @contextlib.contextmanager
    def transaction(self) -> Iterator[psycopg2.extensions.connection]:
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
        conn = self.get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(sql, tuple(params))
                rows = cur.fetchall()
        except psycopg2.Error as e:
            if self._depth == 0:
                conn.rollback()
            raise ReportExecutionError(
                f"Report query failed: {e}", context={"sql": sql}
            ) from e
        return [dict(row) for row in rows]

    def drop_all(self) -> None:
        """Drop every ledger table. Used to reset test databases."""
        with self.transaction() as conn, conn.cursor() as cur:
            for table in _TABLES:
                cur.execute(f"DROP TABLE IF EXISTS {table} CASCADE")
            cur.execute("DROP FUNCTION IF EXISTS journal_entries_immutable() CASCADE")

    def close(self) -> None:
        """Close the database connection."""
        if self._connection is not None and not self._connection.closed:
            self._connection.close()
        self._connection = None


class PostgresEntityRepository(EntityRepository):
    """PostgreSQL implementation of EntityRepository."""

    def __init__(self, database: PostgresDatabase) -> None:
        self._db = database

    def add(self, entity: Entity) -> None:
        with self._db.transaction() as conn, conn.cursor() as cur:
            cur.execute(
                """
                INSERT INTO entities (id, name, code, parent_entity_id, is_consolidated,
                                      fiscal_year_start, base_currency, status,
                                      created_at, updated_at)
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                """,
                (
                    str(entity.id),
                    entity.name,
                    entity.code,
                    str(entity.parent_entity_id) if entity.parent_entity_id else None,
                    entity.is_consolidated,
                    entity.fiscal_year_start,
                    entity.base_currency,
                    entity.status.value,
                    entity.created_at.isoformat(),
                    entity.updated_at.isoformat(),
                ),
            )

    def get(self, entity_id: UUID) -> Entity | None:
        conn = self._db.get_connection()
        with conn.cursor() as cur:
            cur.execute("SELECT * FROM entities WHERE id = %s", (str(entity_id),))
            row = cur.fetchone()
        if row is None:
            return None
        return self._row_to_entity(row)

    def get_by_code(self, code: str) -> Entity | None:
        conn = self._db.get_connection()
        with conn.cursor() as cur:
            cur.execute("SELECT * FROM entities WHERE code = %s", (code,))
            row = cur.fetchone()
        if row is None:
            return None
        return self._row_to_entity(row)

    def list_all(self) -> Iterable[Entity]:
        conn = self._db.get_connection()
        with conn.cursor() as cur:
            cur.execute("SELECT * FROM entities ORDER BY name")
            rows = cur.fetchall()
        return [self._row_to_entity(row) for row in rows]

    def list_children(self, parent_entity_id: UUID) -> Iterable[Entity]:
        conn = self._db.get_connection()
        with conn.cursor() as cur:
            cur.execute(
                "SELECT * FROM entities WHERE parent_entity_id = %s ORDER BY name",
                (str(parent_entity_id),),
            )
            rows = cur.fetchall()
        return [self._row_to_entity(row) for row in rows]

    def update(self, entity: Entity) -> None:
        with self._db.transaction() as conn, conn.cursor() as cur:
            cur.execute(
                """
                UPDATE entities SET
                    name = %s,
                    code = %s,
                    parent_entity_id = %s,
                    is_consolidated = %s,
                    fiscal_year_start = %s,
                    base_currency = %s,
                    status = %s,
                    updated_at = %s
                WHERE id = %s
                """,
                (
                    entity.name,
                    entity.code,
                    str(entity.parent_entity_id) if entity.parent_entity_id else None,
                    entity.is_consolidated,
                    entity.fiscal_year_start,
                    entity.base_currency,
                    entity.status.value,
                    entity.updated_at.isoformat(),
                    str(entity.id),
                ),
            )

    def delete(self, entity_id: UUID) -> None:
        with self._db.transaction() as conn, conn.cursor() as cur:
            cur.execute("DELETE FROM entities WHERE id = %s", (str(entity_id),))

    def _row_to_entity(self, row: dict[str, Any]) -> Entity:
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


class PostgresAccountRepository(AccountRepository):
    """PostgreSQL implementation of AccountRepository."""

    def __init__(self, database: PostgresDatabase) -> None:
        self._db = database

    def add(self, account: Account) -> None:
        with self._db.transaction() as conn, conn.cursor() as cur:
            cur.execute(
                """
                INSERT INTO accounts (id, entity_id, code, name, account_type, description,
                                      balance, status, created_at, updated_at)
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                """,
                (
                    str(account.id),
                    str(account.entity_id),
                    account.code,
                    account.name,
                    account.account_type.value,
                    account.description,
                    account.balance,
                    account.status.value,
                    account.created_at.isoformat(),
                    account.updated_at.isoformat(),
                ),
            )

    def get(self, account_id: UUID) -> Account | None:
        return self._fetch_one("SELECT * FROM accounts WHERE id = %s", (str(account_id),))

    def get_by_code(self, entity_id: UUID, code: str) -> Account | None:
        return self._fetch_one(
            "SELECT * FROM accounts WHERE entity_id = %s AND code = %s",
            (str(entity_id), code),
        )

    def find_by_code(self, code: str) -> Iterable[Account]:
        return self._fetch_many(
            "SELECT * FROM accounts WHERE code = %s ORDER BY entity_id", (code,)
        )

    def list_by_entity(self, entity_id: UUID) -> Iterable[Account]:
        return self._fetch_many(
            "SELECT * FROM accounts WHERE entity_id = %s ORDER BY code",
            (str(entity_id),),
        )

    def list_all(self) -> Iterable[Account]:
        return self._fetch_many("SELECT * FROM accounts ORDER BY code", ())

    def update(self, account: Account) -> None:
        with self._db.transaction() as conn, conn.cursor() as cur:
            cur.execute(
                """
                UPDATE accounts SET
                    code = %s,
                    name = %s,
                    account_type = %s,
                    description = %s,
                    status = %s,
                    updated_at = %s
                WHERE id = %s
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
        with self._db.transaction() as conn, conn.cursor() as cur:
            cur.execute("DELETE FROM accounts WHERE id = %s", (str(account_id),))

    def adjust_balance(self, account_id: UUID, delta: Decimal) -> None:
        with self._db.transaction() as conn, conn.cursor() as cur:
            cur.execute(
                "UPDATE accounts SET balance = balance + %s WHERE id = %s",
                (delta, str(account_id)),
            )

    def _fetch_one(self, sql: str, params: tuple[Any, ...]) -> Account | None:
        conn = self._db.get_connection()
        with conn.cursor() as cur:
            cur.execute(sql, params)
            row = cur.fetchone()
        if row is None:
            return None
        return self._row_to_account(row)

    def _fetch_many(self, sql: str, params: tuple[Any, ...]) -> list[Account]:
        conn = self._db.get_connection()
        with conn.cursor() as cur:
            cur.execute(sql, params)
            rows = cur.fetchall()
        return [self._row_to_account(row) for row in rows]

    def _row_to_account(self, row: dict[str, Any]) -> Account:
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


class PostgresFundRepository(FundRepository):
    """PostgreSQL implementation of FundRepository."""

    def __init__(self, database: PostgresDatabase) -> None:
        self._db = database

    def add(self, fund: Fund) -> None:
        with self._db.transaction() as conn, conn.cursor() as cur:
            cur.execute(
                """
                INSERT INTO funds (id, entity_id, code, name, fund_type, description,
                                   balance, status, created_at, updated_at)
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                """,
                (
                    str(fund.id),
                    str(fund.entity_id),
                    fund.code,
                    fund.name,
                    fund.fund_type.value,
                    fund.description,
                    fund.balance,
                    fund.status.value,
                    fund.created_at.isoformat(),
                    fund.updated_at.isoformat(),
                ),
            )

    def get(self, fund_id: UUID) -> Fund | None:
        return self._fetch_one("SELECT * FROM funds WHERE id = %s", (str(fund_id),))

    def get_by_code(self, entity_id: UUID, code: str) -> Fund | None:
        return self._fetch_one(
            "SELECT * FROM funds WHERE entity_id = %s AND code = %s",
            (str(entity_id), code),
        )

    def list_by_entity(self, entity_id: UUID) -> Iterable[Fund]:
        return self._fetch_many(
            "SELECT * FROM funds WHERE entity_id = %s ORDER BY code", (str(entity_id),)
        )

    def list_all(self) -> Iterable[Fund]:
        return self._fetch_many("SELECT * FROM funds ORDER BY code", ())

    def update(self, fund: Fund) -> None:
        with self._db.transaction() as conn, conn.cursor() as cur:
            cur.execute(
                """
                UPDATE funds SET
                    code = %s,
                    name = %s,
                    fund_type = %s,
                    description = %s,
                    status = %s,
                    updated_at = %s
                WHERE id = %s
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
        with self._db.transaction() as conn, conn.cursor() as cur:
            cur.execute("DELETE FROM funds WHERE id = %s", (str(fund_id),))

    def adjust_balance(self, fund_id: UUID, delta: Decimal) -> None:
        with self._db.transaction() as conn, conn.cursor() as cur:
            cur.execute(
                "UPDATE funds SET balance = balance + %s WHERE id = %s",
                (delta, str(fund_id)),
            )

    def _fetch_one(self, sql: str, params: tuple[Any, ...]) -> Fund | None:
        conn = self._db.get_connection()
        with conn.cursor() as cur:
            cur.execute(sql, params)
            row = cur.fetchone()
        if row is None:
            return None
        return self._row_to_fund(row)

    def _fetch_many(self, sql: str, params: tuple[Any, ...]) -> list[Fund]:
        conn = self._db.get_connection()
        with conn.cursor() as cur:
            cur.execute(sql, params)
            rows = cur.fetchall()
        return [self._row_to_fund(row) for row in rows]

    def _row_to_fund(self, row: dict[str, Any]) -> Fund:
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


class PostgresJournalEntryRepository(JournalEntryRepository):
    """PostgreSQL implementation of JournalEntryRepository."""

    def __init__(self, database: PostgresDatabase) -> None:
        self._db = database

    def add(self, entry: JournalEntry) -> None:
        with self._db.transaction() as conn, conn.cursor() as cur:
            cur.execute(
                """
                INSERT INTO journal_entries (id, entity_id, entry_date, reference_number,
                                             description, total_amount, status,
                                             is_inter_entity, target_entity_id,
                                             matching_transaction_id, import_id,
                                             created_by, created_at, updated_at)
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                """,
                (
                    str(entry.id),
                    str(entry.entity_id),
                    entry.entry_date,
                    entry.reference_number,
                    entry.description,
                    entry.total_amount,
                    entry.status.value,
                    entry.is_inter_entity,
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
            self._insert_lines(cur, entry)

    def _insert_lines(self, cur: Any, entry: JournalEntry) -> None:
        psycopg2.extras.execute_batch(
            cur,
            """
            INSERT INTO journal_entry_lines (id, journal_entry_id, line_number, account_id,
                                             fund_id, debit_amount, credit_amount, description)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
            """,
            [
                (
                    str(line.id),
                    str(entry.id),
                    number,
                    str(line.account_id),
                    str(line.fund_id) if line.fund_id else None,
                    line.debit_amount,
                    line.credit_amount,
                    line.description,
                )
                for number, line in enumerate(entry.lines, start=1)
            ],
        )

    def get(self, entry_id: UUID) -> JournalEntry | None:
        rows = self._fetch("SELECT * FROM journal_entries WHERE id = %s", (str(entry_id),))
        return rows[0] if rows else None

    def get_by_reference(self, reference_number: str) -> JournalEntry | None:
        rows = self._fetch(
            "SELECT * FROM journal_entries WHERE reference_number = %s",
            (reference_number,),
        )
        return rows[0] if rows else None

    def list_all(self) -> Iterable[JournalEntry]:
        return self._fetch(
            "SELECT * FROM journal_entries ORDER BY entry_date DESC, reference_number", ()
        )

    def list_by_entity(self, entity_id: UUID) -> Iterable[JournalEntry]:
        return self._fetch(
            """
            SELECT * FROM journal_entries WHERE entity_id = %s
            ORDER BY entry_date DESC, reference_number
            """,
            (str(entity_id),),
        )

    def list_inter_entity(self, entity_id: UUID | None = None) -> Iterable[JournalEntry]:
        if entity_id is None:
            return self._fetch(
                """
                SELECT * FROM journal_entries WHERE is_inter_entity
                ORDER BY entry_date DESC, reference_number
                """,
                (),
            )
        return self._fetch(
            """
            SELECT * FROM journal_entries
            WHERE is_inter_entity AND (entity_id = %s OR target_entity_id = %s)
            ORDER BY entry_date DESC, reference_number
            """,
            (str(entity_id), str(entity_id)),
        )

    def list_by_import(self, import_id: UUID) -> Iterable[JournalEntry]:
        return self._fetch(
            "SELECT * FROM journal_entries WHERE import_id = %s ORDER BY created_at",
            (str(import_id),),
        )

    def update(self, entry: JournalEntry) -> None:
        with self._db.transaction() as conn, conn.cursor() as cur:
            cur.execute(
                "DELETE FROM journal_entry_lines WHERE journal_entry_id = %s",
                (str(entry.id),),
            )
            self._insert_lines(cur, entry)
            cur.execute(
                """
                UPDATE journal_entries SET
                    entry_date = %s,
                    reference_number = %s,
                    description = %s,
                    total_amount = %s,
                    status = %s,
                    is_inter_entity = %s,
                    target_entity_id = %s,
                    matching_transaction_id = %s,
                    updated_at = %s
                WHERE id = %s
                """,
                (
                    entry.entry_date,
                    entry.reference_number,
                    entry.description,
                    entry.total_amount,
                    entry.status.value,
                    entry.is_inter_entity,
                    str(entry.target_entity_id) if entry.target_entity_id else None,
                    str(entry.matching_transaction_id)
                    if entry.matching_transaction_id
                    else None,
                    entry.updated_at.isoformat(),
                    str(entry.id),
                ),
            )

    def delete(self, entry_id: UUID) -> None:
        with self._db.transaction() as conn, conn.cursor() as cur:
            cur.execute("DELETE FROM journal_entries WHERE id = %s", (str(entry_id),))

    def delete_by_import(self, import_id: UUID) -> int:
        with self._db.transaction() as conn, conn.cursor() as cur:
            cur.execute(
                "DELETE FROM journal_entries WHERE import_id = %s", (str(import_id),)
            )
            return cur.rowcount

    def count_by_entity(self, entity_id: UUID) -> int:
        return self._count(
            """
            SELECT COUNT(*) AS n FROM journal_entries
            WHERE entity_id = %s OR target_entity_id = %s
            """,
            (str(entity_id), str(entity_id)),
        )

    def count_lines_for_account(self, account_id: UUID) -> int:
        return self._count(
            "SELECT COUNT(*) AS n FROM journal_entry_lines WHERE account_id = %s",
            (str(account_id),),
        )

    def count_lines_for_fund(self, fund_id: UUID) -> int:
        return self._count(
            "SELECT COUNT(*) AS n FROM journal_entry_lines WHERE fund_id = %s",
            (str(fund_id),),
        )

    def list_posted_lines(
        self,
        *,
        account_id: UUID | None = None,
        fund_id: UUID | None = None,
        entity_id: UUID | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> list[LedgerLine]:
        clauses = ["je.status = %s"]
        params: list[Any] = [JournalEntryStatus.POSTED.value]
        if account_id is not None:
            clauses.append("l.account_id = %s")
            params.append(str(account_id))
        if fund_id is not None:
            clauses.append("l.fund_id = %s")
            params.append(str(fund_id))
        if entity_id is not None:
            clauses.append("je.entity_id = %s")
            params.append(str(entity_id))
        if start_date is not None:
            clauses.append("je.entry_date >= %s")
            params.append(start_date)
        if end_date is not None:
            clauses.append("je.entry_date <= %s")
            params.append(end_date)

        conn = self._db.get_connection()
        with conn.cursor() as cur:
            cur.execute(
                f"""
                SELECT l.*, je.entity_id, je.entry_date, je.reference_number,
                       je.description AS entry_description
                FROM journal_entry_lines l
                JOIN journal_entries je ON je.id = l.journal_entry_id
                WHERE {" AND ".join(clauses)}
                ORDER BY je.entry_date, je.reference_number, l.line_number
                """,
                tuple(params),
            )
            rows = cur.fetchall()
        return [
            LedgerLine(
                entry_id=UUID(row["journal_entry_id"]),
                entity_id=UUID(row["entity_id"]),
                entry_date=_to_date(row["entry_date"]),
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

    def _count(self, sql: str, params: tuple[Any, ...]) -> int:
        conn = self._db.get_connection()
        with conn.cursor() as cur:
            cur.execute(sql, params)
            row = cur.fetchone()
        return int(row["n"])

    def _fetch(self, sql: str, params: tuple[Any, ...]) -> list[JournalEntry]:
        conn = self._db.get_connection()
        with conn.cursor() as cur:
            cur.execute(sql, params)
            rows = cur.fetchall()
        return [self._row_to_entry(row) for row in rows]

    def _get_lines(self, entry_id: str) -> list[JournalEntryLine]:
        conn = self._db.get_connection()
        with conn.cursor() as cur:
            cur.execute(
                """
                SELECT * FROM journal_entry_lines WHERE journal_entry_id = %s
                ORDER BY line_number
                """,
                (entry_id,),
            )
            rows = cur.fetchall()
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

    def _row_to_entry(self, row: dict[str, Any]) -> JournalEntry:
        return JournalEntry(
            id=UUID(row["id"]),
            entity_id=UUID(row["entity_id"]),
            entry_date=_to_date(row["entry_date"]),
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


class PostgresImportJobRepository(ImportJobRepository):
    """Durable import job history."""

    def __init__(self, database: PostgresDatabase) -> None:
        self._db = database

    def add(self, job: ImportJob) -> None:
        with self._db.transaction() as conn, conn.cursor() as cur:
            cur.execute(
                """
                INSERT INTO import_jobs (id, status, file_name, total_records,
                                         processed_records, total_rows, entries_created,
                                         progress, errors, started_at, completed_at,
                                         rolled_back_at)
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                """,
                (str(job.id), *self._values(job)),
            )

    def get(self, import_id: UUID) -> ImportJob | None:
        conn = self._db.get_connection()
        with conn.cursor() as cur:
            cur.execute("SELECT * FROM import_jobs WHERE id = %s", (str(import_id),))
            row = cur.fetchone()
        if row is None:
            return None
        return self._row_to_job(row)

    def update(self, job: ImportJob) -> None:
        with self._db.transaction() as conn, conn.cursor() as cur:
            cur.execute(
                """
                UPDATE import_jobs SET
                    status = %s,
                    file_name = %s,
                    total_records = %s,
                    processed_records = %s,
                    total_rows = %s,
                    entries_created = %s,
                    progress = %s,
                    errors = %s,
                    started_at = %s,
                    completed_at = %s,
                    rolled_back_at = %s
                WHERE id = %s
                """,
                (*self._values(job), str(job.id)),
            )

    def list_all(self) -> Iterable[ImportJob]:
        conn = self._db.get_connection()
        with conn.cursor() as cur:
            cur.execute("SELECT * FROM import_jobs ORDER BY started_at DESC")
            rows = cur.fetchall()
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

    def _row_to_job(self, row: dict[str, Any]) -> ImportJob:
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


class PostgresSavedReportRepository(SavedReportRepository):
    """PostgreSQL implementation of SavedReportRepository."""

    def __init__(self, database: PostgresDatabase) -> None:
        self._db = database

    def add(self, report: SavedReport) -> None:
        with self._db.transaction() as conn, conn.cursor() as cur:
            cur.execute(
                """
                INSERT INTO saved_reports (id, name, description, definition,
                                           created_at, updated_at)
                VALUES (%s, %s, %s, %s, %s, %s)
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
        with conn.cursor() as cur:
            cur.execute("SELECT * FROM saved_reports WHERE id = %s", (str(report_id),))
            row = cur.fetchone()
        if row is None:
            return None
        return self._row_to_report(row)

    def list_all(self) -> Iterable[SavedReport]:
        conn = self._db.get_connection()
        with conn.cursor() as cur:
            cur.execute("SELECT * FROM saved_reports ORDER BY created_at DESC")
            rows = cur.fetchall()
        return [self._row_to_report(row) for row in rows]

    def delete(self, report_id: UUID) -> None:
        with self._db.transaction() as conn, conn.cursor() as cur:
            cur.execute("DELETE FROM saved_reports WHERE id = %s", (str(report_id),))

    def _row_to_report(self, row: dict[str, Any]) -> SavedReport:
        return SavedReport(
            id=UUID(row["id"]),
            name=row["name"],
            description=row["description"],
            definition=json.loads(row["definition"]),
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )
