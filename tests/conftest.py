from collections.abc import Iterator
from datetime import date
from decimal import Decimal

import pytest

from fund_ledger.config import Environment, Settings
from fund_ledger.container import Container
from fund_ledger.domain.entities import Account, Entity, Fund
from fund_ledger.domain.journal import JournalEntry, JournalEntryLine
from fund_ledger.domain.value_objects import AccountType, FundType, JournalEntryStatus
from fund_ledger.repositories.sqlite import SQLiteDatabase
from fund_ledger.services.import_execution import ImportExecutionCoordinator
from fund_ledger.services.ledger import LedgerServiceImpl
from fund_ledger.services.reporting import ReportingServiceImpl
from fund_ledger.services.transfers import InterEntityTransferService


@pytest.fixture
def settings() -> Settings:
    return Settings(environment=Environment.TESTING, import_max_rows=1000)


@pytest.fixture
def db() -> Iterator[SQLiteDatabase]:
    """In-memory database shared across threads for API background tasks."""
    database = SQLiteDatabase(":memory:", check_same_thread=False)
    database.initialize()
    yield database
    database.close()


@pytest.fixture
def container(settings: Settings, db: SQLiteDatabase) -> Container:
    return Container(settings=settings, database=db)


@pytest.fixture
def ledger_service(container: Container) -> LedgerServiceImpl:
    return container.ledger_service


@pytest.fixture
def transfer_service(container: Container) -> InterEntityTransferService:
    return container.transfer_service


@pytest.fixture
def reporting_service(container: Container) -> ReportingServiceImpl:
    return container.reporting_service


@pytest.fixture
def coordinator(container: Container) -> ImportExecutionCoordinator:
    return container.import_coordinator


@pytest.fixture
def org(ledger_service: LedgerServiceImpl) -> dict[str, Entity]:
    """A consolidated parent with one child and one grandchild."""
    parent = ledger_service.create_entity(
        Entity(name="The Principle Foundation", code="TPF", is_consolidated=True)
    )
    child = ledger_service.create_entity(
        Entity(
            name="TPF Educational Services",
            code="TPF-ES",
            parent_entity_id=parent.id,
            is_consolidated=True,
        )
    )
    grandchild = ledger_service.create_entity(
        Entity(name="TPF-ES Scholarships", code="TPF-ES-SCH", parent_entity_id=child.id)
    )
    return {"parent": parent, "child": child, "grandchild": grandchild}


def _chart(ledger: LedgerServiceImpl, entity: Entity) -> dict[str, Account]:
    specs = [
        ("cash", "1000", "Operating Cash", AccountType.ASSET),
        ("due_from", "1900", "Due From Related Entities", AccountType.ASSET),
        ("payable", "2000", "Accounts Payable", AccountType.LIABILITY),
        ("net_assets", "3000", "Net Assets", AccountType.EQUITY),
        ("revenue", "4000", "Contributions", AccountType.REVENUE),
        ("expense", "5000", "Program Expenses", AccountType.EXPENSE),
    ]
    return {
        key: ledger.create_account(
            Account(entity_id=entity.id, code=code, name=name, account_type=account_type)
        )
        for key, code, name, account_type in specs
    }


@pytest.fixture
def accounts(
    ledger_service: LedgerServiceImpl, org: dict[str, Entity]
) -> dict[str, Account]:
    """Chart of accounts for the parent entity."""
    return _chart(ledger_service, org["parent"])


@pytest.fixture
def child_accounts(
    ledger_service: LedgerServiceImpl, org: dict[str, Entity]
) -> dict[str, Account]:
    return _chart(ledger_service, org["child"])


@pytest.fixture
def funds(ledger_service: LedgerServiceImpl, org: dict[str, Entity]) -> dict[str, Fund]:
    parent = org["parent"]
    return {
        "general": ledger_service.create_fund(
            Fund(entity_id=parent.id, code="GEN", name="General Fund")
        ),
        "scholarship": ledger_service.create_fund(
            Fund(
                entity_id=parent.id,
                code="SCH",
                name="Scholarship Fund",
                fund_type=FundType.TEMPORARILY_RESTRICTED,
            )
        ),
    }


def make_entry(
    entity: Entity,
    reference: str,
    debit: Account,
    credit: Account,
    amount: str,
    *,
    fund: Fund | None = None,
    entry_date: date = date(2024, 1, 15),
    posted: bool = False,
    description: str = "",
) -> JournalEntry:
    """Two-line entry debiting one account and crediting another."""
    value = Decimal(amount)
    return JournalEntry(
        entity_id=entity.id,
        entry_date=entry_date,
        reference_number=reference,
        description=description,
        status=JournalEntryStatus.POSTED if posted else JournalEntryStatus.DRAFT,
        lines=[
            JournalEntryLine(
                account_id=debit.id,
                fund_id=fund.id if fund else None,
                debit_amount=value,
            ),
            JournalEntryLine(
                account_id=credit.id,
                fund_id=fund.id if fund else None,
                credit_amount=value,
            ),
        ],
    )


@pytest.fixture
def entry_factory():
    return make_entry
