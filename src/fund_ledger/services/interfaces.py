from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING, Any
from uuid import UUID

from fund_ledger.domain.entities import Account, Entity, Fund
from fund_ledger.domain.journal import JournalEntry, JournalEntryLine
from fund_ledger.domain.reports import SavedReport
from fund_ledger.domain.value_objects import AccountType

if TYPE_CHECKING:
    from fund_ledger.services.report_compiler import ReportDefinition
    from fund_ledger.services.report_fields import FieldDescriptor


def _zero_by_type() -> dict[AccountType, Decimal]:
    return {account_type: Decimal("0.00") for account_type in AccountType}


@dataclass
class FundBalance:
    fund_id: UUID
    total_debits: Decimal = Decimal("0.00")
    total_credits: Decimal = Decimal("0.00")

    @property
    def balance(self) -> Decimal:
        return self.total_debits - self.total_credits


@dataclass
class EntityBalance:
    """Posted-line totals for one entity (or a consolidation group).

    ``by_type`` holds each account type's balance signed by its normal
    balance, so assets and expenses are positive when debited and the
    remaining types are positive when credited.
    """

    entity_id: UUID
    by_type: dict[AccountType, Decimal] = field(default_factory=_zero_by_type)
    total_debits: Decimal = Decimal("0.00")
    total_credits: Decimal = Decimal("0.00")
    entity_ids: list[UUID] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.entity_ids:
            self.entity_ids = [self.entity_id]

    @property
    def net_assets(self) -> Decimal:
        return self.by_type[AccountType.ASSET] - self.by_type[AccountType.LIABILITY]

    @property
    def change_in_net_assets(self) -> Decimal:
        return self.by_type[AccountType.REVENUE] - self.by_type[AccountType.EXPENSE]

    def combine(self, other: EntityBalance) -> EntityBalance:
        """Sum two balances, keeping this one's entity as the group head."""
        return EntityBalance(
            entity_id=self.entity_id,
            by_type={t: self.by_type[t] + other.by_type[t] for t in AccountType},
            total_debits=self.total_debits + other.total_debits,
            total_credits=self.total_credits + other.total_credits,
            entity_ids=[*self.entity_ids, *other.entity_ids],
        )


class LedgerService(ABC):
    @abstractmethod
    def create_entity(self, entity: Entity) -> Entity:
        pass

    @abstractmethod
    def get_entity(self, entity_id: UUID) -> Entity:
        pass

    @abstractmethod
    def list_entities(self) -> list[Entity]:
        pass

    @abstractmethod
    def update_entity(self, entity: Entity) -> Entity:
        pass

    @abstractmethod
    def delete_entity(self, entity_id: UUID) -> None:
        pass

    @abstractmethod
    def create_account(self, account: Account) -> Account:
        pass

    @abstractmethod
    def get_account(self, account_id: UUID) -> Account:
        pass

    @abstractmethod
    def list_accounts(self, entity_id: UUID | None = None) -> list[Account]:
        pass

    @abstractmethod
    def update_account(self, account: Account) -> Account:
        pass

    @abstractmethod
    def delete_account(self, account_id: UUID) -> None:
        pass

    @abstractmethod
    def create_fund(self, fund: Fund) -> Fund:
        pass

    @abstractmethod
    def get_fund(self, fund_id: UUID) -> Fund:
        pass

    @abstractmethod
    def list_funds(self, entity_id: UUID | None = None) -> list[Fund]:
        pass

    @abstractmethod
    def update_fund(self, fund: Fund) -> Fund:
        pass

    @abstractmethod
    def delete_fund(self, fund_id: UUID) -> None:
        pass

    @abstractmethod
    def create_journal_entry(self, entry: JournalEntry) -> JournalEntry:
        pass

    @abstractmethod
    def get_journal_entry(self, entry_id: UUID) -> JournalEntry:
        pass

    @abstractmethod
    def list_journal_entries(self, entity_id: UUID | None = None) -> list[JournalEntry]:
        pass

    @abstractmethod
    def get_journal_entry_lines(self, entry_id: UUID) -> list[JournalEntryLine]:
        pass

    @abstractmethod
    def update_journal_entry(self, entry: JournalEntry) -> JournalEntry:
        pass

    @abstractmethod
    def delete_journal_entry(self, entry_id: UUID) -> None:
        pass

    @abstractmethod
    def post_journal_entry(self, entry_id: UUID) -> JournalEntry:
        pass

    @abstractmethod
    def void_journal_entry(self, entry_id: UUID) -> JournalEntry:
        pass

    @abstractmethod
    def get_account_balance(
        self, account_id: UUID, as_of_date: date | None = None
    ) -> Decimal:
        pass

    @abstractmethod
    def get_fund_balance(
        self, fund_id: UUID, as_of_date: date | None = None
    ) -> FundBalance:
        pass

    @abstractmethod
    def get_entity_balance(
        self, entity_id: UUID, as_of_date: date | None = None
    ) -> EntityBalance:
        pass

    @abstractmethod
    def get_consolidated_balance(
        self, entity_id: UUID, as_of_date: date | None = None
    ) -> EntityBalance:
        pass


class ReportingService(ABC):
    @abstractmethod
    def fund_balance(
        self, fund_id: UUID, as_of_date: date | None = None
    ) -> dict[str, Any]:
        pass

    @abstractmethod
    def fund_activity(
        self,
        fund_id: UUID,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> dict[str, Any]:
        pass

    @abstractmethod
    def fund_statement(
        self, fund_id: UUID, as_of_date: date | None = None
    ) -> dict[str, Any]:
        pass

    @abstractmethod
    def funds_comparison(self, fund_ids: list[UUID]) -> dict[str, Any]:
        pass

    @abstractmethod
    def journal_lines(
        self,
        fund_id: UUID | None = None,
        entity_id: UUID | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> dict[str, Any]:
        pass

    @abstractmethod
    def custom_fields(self, data_source: str) -> list[FieldDescriptor]:
        pass

    @abstractmethod
    def preview(self, definition: ReportDefinition) -> dict[str, Any]:
        pass

    @abstractmethod
    def save_report(
        self, name: str, definition: ReportDefinition, description: str = ""
    ) -> SavedReport:
        pass

    @abstractmethod
    def list_saved_reports(self) -> list[SavedReport]:
        pass

    @abstractmethod
    def get_saved_report(self, report_id: UUID) -> SavedReport:
        pass

    @abstractmethod
    def delete_saved_report(self, report_id: UUID) -> None:
        pass

    @abstractmethod
    def query_suggestions(self) -> list[str]:
        pass

    @abstractmethod
    def answer_query(self, query: str) -> dict[str, Any]:
        pass
