"""Tests for the PostgreSQL backend.

The shared service fixtures from conftest run against PostgreSQL here by
overriding the ``db`` fixture.
"""

import os
from collections.abc import Iterator
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

POSTGRES_URL = os.environ.get("POSTGRES_URL")
SKIP_POSTGRES = POSTGRES_URL is None

pytestmark = pytest.mark.skipif(
    SKIP_POSTGRES, reason="PostgreSQL not available (POSTGRES_URL env var not set)"
)

if not SKIP_POSTGRES:
    import psycopg2

    from fund_ledger.domain.entities import Entity
    from fund_ledger.domain.imports import ImportJob
    from fund_ledger.domain.value_objects import ImportJobStatus, JournalEntryStatus
    from fund_ledger.exceptions import (
        DuplicateCodeError,
        DuplicateReferenceError,
        ReportExecutionError,
    )
    from fund_ledger.repositories.postgres import (
        PostgresDatabase,
        PostgresEntityRepository,
        PostgresImportJobRepository,
        PostgresJournalEntryRepository,
    )
    from fund_ledger.services.report_compiler import ReportDefinition
    from fund_ledger.services.transfers import TransferRequest


@pytest.fixture
def db() -> Iterator["PostgresDatabase"]:
    """Fresh PostgreSQL schema for each test."""
    assert POSTGRES_URL is not None
    database = PostgresDatabase(POSTGRES_URL)
    database.drop_all()
    database.initialize()
    yield database
    database.close()


class TestEntities:
    def test_round_trip(self, ledger_service, org):
        stored = ledger_service.get_entity(org["child"].id)

        assert stored.code == "TPF-ES"
        assert stored.parent_entity_id == org["parent"].id
        assert stored.is_consolidated is True

    def test_duplicate_code(self, ledger_service, org):
        with pytest.raises(DuplicateCodeError):
            ledger_service.create_entity(Entity(name="Copy", code="TPF"))


class TestJournalEntries:
    def test_post_updates_balances(self, ledger_service, org, accounts, funds, entry_factory):
        entry = ledger_service.create_journal_entry(
            entry_factory(
                org["parent"],
                "JE-1",
                accounts["cash"],
                accounts["revenue"],
                "1250.50",
                fund=funds["general"],
                posted=True,
            )
        )

        stored = ledger_service.get_journal_entry(entry.id)
        assert stored.status == JournalEntryStatus.POSTED
        assert stored.total_debits == Decimal("1250.50")
        assert ledger_service.get_account(accounts["cash"].id).balance == Decimal("1250.50")
        assert ledger_service.get_account_balance(accounts["revenue"].id) == Decimal("1250.50")

    def test_duplicate_reference(self, ledger_service, org, accounts, entry_factory):
        ledger_service.create_journal_entry(
            entry_factory(org["parent"], "JE-1", accounts["cash"], accounts["revenue"], "10")
        )
        with pytest.raises(DuplicateReferenceError):
            ledger_service.create_journal_entry(
                entry_factory(org["parent"], "JE-1", accounts["cash"], accounts["revenue"], "10")
            )

    def test_posted_rows_are_immutable_in_storage(
        self, db, ledger_service, org, accounts, entry_factory
    ):
        entry = ledger_service.create_journal_entry(
            entry_factory(
                org["parent"], "JE-1", accounts["cash"], accounts["revenue"], "10", posted=True
            )
        )

        with pytest.raises(psycopg2.Error), db.transaction() as conn, conn.cursor() as cur:
            cur.execute(
                "UPDATE journal_entries SET description = %s WHERE id = %s",
                ("edited", str(entry.id)),
            )

    def test_void(self, ledger_service, org, accounts, entry_factory):
        entry = ledger_service.create_journal_entry(
            entry_factory(
                org["parent"], "JE-1", accounts["cash"], accounts["revenue"], "75", posted=True
            )
        )

        voided = ledger_service.void_journal_entry(entry.id)

        assert voided.status == JournalEntryStatus.VOID
        assert ledger_service.get_account(accounts["cash"].id).balance == Decimal("0")


class TestTransfers:
    def test_matched_pair(self, transfer_service, ledger_service, org, accounts, child_accounts):
        transfer = transfer_service.create_transfer(
            TransferRequest(
                source_entity_id=org["parent"].id,
                target_entity_id=org["child"].id,
                amount=Decimal("500.00"),
                transfer_date=date(2024, 3, 31),
                source_transfer_account_code="1900",
                target_transfer_account_code="2000",
                source_cash_account_code="1000",
                target_cash_account_code="1000",
                reference_number="IE-2024Q1",
            )
        )

        assert transfer.is_matched
        assert transfer.target_entry.reference_number == "IE-2024Q1-TGT"
        assert ledger_service.get_account(child_accounts["cash"].id).balance == Decimal("500.00")


class TestReports:
    def test_preview_runs_on_postgres(self, reporting_service, ledger_service, org, funds):
        result = reporting_service.preview(
            ReportDefinition.from_dict(
                {
                    "dataSource": "funds",
                    "fields": ["code", "name"],
                    "filters": [{"field": "name", "operator": "ILIKE", "value": "scholar"}],
                }
            )
        )

        assert [row["code"] for row in result["data"]] == ["SCH"]

    def test_query_failure_is_wrapped(self, db):
        with pytest.raises(ReportExecutionError):
            db.fetch_all("SELECT * FROM no_such_table", [])

        assert db.fetch_all("SELECT 1 AS one", []) == [{"one": 1}]


class TestImportJobs:
    def test_round_trip(self, db):
        repo = PostgresImportJobRepository(db)
        job = ImportJob(file_name="je.csv", total_rows=4)
        repo.add(job)

        job.errors.append("Row 3: skipped, missing accountCode")
        job.complete(2)
        repo.update(job)

        stored = repo.get(job.id)
        assert stored.status == ImportJobStatus.COMPLETED
        assert stored.entries_created == 2
        assert stored.errors == ["Row 3: skipped, missing accountCode"]
        assert repo.get(uuid4()) is None

    def test_container_wires_postgres_repositories(self, container):
        assert isinstance(container.entity_repository, PostgresEntityRepository)
        assert isinstance(container.journal_repository, PostgresJournalEntryRepository)
        assert isinstance(container.import_job_repository, PostgresImportJobRepository)
