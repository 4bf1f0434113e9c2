from abc import ABC, abstractmethod
from collections.abc import Iterable, Sequence
from contextlib import AbstractContextManager
from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID

from fund_ledger.domain.entities import Account, Entity, Fund
from fund_ledger.domain.imports import ImportJob
from fund_ledger.domain.journal import JournalEntry, LedgerLine
from fund_ledger.domain.reports import SavedReport


class Database(ABC):
    """A connection holder that provides units of work and raw report reads."""

    # DB-API paramstyle used when compiling report queries for this backend.
    paramstyle: str = "qmark"
    supports_ilike: bool = False

    @abstractmethod
    def initialize(self) -> None:
        pass

    @abstractmethod
    def transaction(self) -> AbstractContextManager[Any]:
        """Open a unit of work; nested calls join the outermost one."""
        pass

    @abstractmethod
    def fetch_all(self, sql: str, params: Sequence[Any]) -> list[dict[str, Any]]:
        pass

    @abstractmethod
    def close(self) -> None:
        pass


class EntityRepository(ABC):
    @abstractmethod
    def add(self, entity: Entity) -> None:
        pass

    @abstractmethod
    def get(self, entity_id: UUID) -> Entity | None:
        pass

    @abstractmethod
    def get_by_code(self, code: str) -> Entity | None:
        pass

    @abstractmethod
    def list_all(self) -> Iterable[Entity]:
        pass

    @abstractmethod
    def list_children(self, parent_entity_id: UUID) -> Iterable[Entity]:
        pass

    @abstractmethod
    def update(self, entity: Entity) -> None:
        pass

    @abstractmethod
    def delete(self, entity_id: UUID) -> None:
        pass


class AccountRepository(ABC):
    @abstractmethod
    def add(self, account: Account) -> None:
        pass

    @abstractmethod
    def get(self, account_id: UUID) -> Account | None:
        pass

    @abstractmethod
    def get_by_code(self, entity_id: UUID, code: str) -> Account | None:
        pass

    @abstractmethod
    def find_by_code(self, code: str) -> Iterable[Account]:
        """Accounts with this code across all entities."""
        pass

    @abstractmethod
    def list_by_entity(self, entity_id: UUID) -> Iterable[Account]:
        pass

    @abstractmethod
    def list_all(self) -> Iterable[Account]:
        pass

    @abstractmethod
    def update(self, account: Account) -> None:
        pass

    @abstractmethod
    def delete(self, account_id: UUID) -> None:
        pass

    @abstractmethod
    def adjust_balance(self, account_id: UUID, delta: Decimal) -> None:
        pass


class FundRepository(ABC):
    @abstractmethod
    def add(self, fund: Fund) -> None:
        pass

    @abstractmethod
    def get(self, fund_id: UUID) -> Fund | None:
        pass

    @abstractmethod
    def get_by_code(self, entity_id: UUID, code: str) -> Fund | None:
        pass

    @abstractmethod
    def list_by_entity(self, entity_id: UUID) -> Iterable[Fund]:
        pass

    @abstractmethod
    def list_all(self) -> Iterable[Fund]:
        pass

    @abstractmethod
    def update(self, fund: Fund) -> None:
        pass

    @abstractmethod
    def delete(self, fund_id: UUID) -> None:
        pass

    @abstractmethod
    def adjust_balance(self, fund_id: UUID, delta: Decimal) -> None:
        pass


class JournalEntryRepository(ABC):
    @abstractmethod
    def add(self, entry: JournalEntry) -> None:
        """Insert the entry header and all of its lines."""
        pass

    @abstractmethod
    def get(self, entry_id: UUID) -> JournalEntry | None:
        pass

    @abstractmethod
    def get_by_reference(self, reference_number: str) -> JournalEntry | None:
        pass

    @abstractmethod
    def list_all(self) -> Iterable[JournalEntry]:
        pass

    @abstractmethod
    def list_by_entity(self, entity_id: UUID) -> Iterable[JournalEntry]:
        pass

    @abstractmethod
    def list_inter_entity(self, entity_id: UUID | None = None) -> Iterable[JournalEntry]:
        pass

    @abstractmethod
    def list_by_import(self, import_id: UUID) -> Iterable[JournalEntry]:
        pass

    @abstractmethod
    def update(self, entry: JournalEntry) -> None:
        """Rewrite the header and replace the lines."""
        pass

    @abstractmethod
    def delete(self, entry_id: UUID) -> None:
        pass

    @abstractmethod
    def delete_by_import(self, import_id: UUID) -> int:
        """Delete every entry stamped with ``import_id``; returns the count."""
        pass

    @abstractmethod
    def count_by_entity(self, entity_id: UUID) -> int:
        pass

    @abstractmethod
    def count_lines_for_account(self, account_id: UUID) -> int:
        pass

    @abstractmethod
    def count_lines_for_fund(self, fund_id: UUID) -> int:
        pass

    @abstractmethod
    def list_posted_lines(
        self,
        *,
        account_id: UUID | None = None,
        fund_id: UUID | None = None,
        entity_id: UUID | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> list[LedgerLine]:
        """Lines of Posted entries matching every given filter, oldest first."""
        pass


class ImportJobRepository(ABC):
    @abstractmethod
    def add(self, job: ImportJob) -> None:
        pass

    @abstractmethod
    def get(self, import_id: UUID) -> ImportJob | None:
        pass

    @abstractmethod
    def update(self, job: ImportJob) -> None:
        pass

    @abstractmethod
    def list_all(self) -> Iterable[ImportJob]:
        """All jobs, most recently started first."""
        pass


class SavedReportRepository(ABC):
    @abstractmethod
    def add(self, report: SavedReport) -> None:
        pass

    @abstractmethod
    def get(self, report_id: UUID) -> SavedReport | None:
        pass

    @abstractmethod
    def list_all(self) -> Iterable[SavedReport]:
        pass

    @abstractmethod
    def delete(self, report_id: UUID) -> None:
        pass
