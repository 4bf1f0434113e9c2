"""Tests for the fund-ledger command line."""

from pathlib import Path

import pytest

from fund_ledger import __version__
from fund_ledger.cli import main, open_container
from fund_ledger.domain.entities import Account, Entity
from fund_ledger.domain.value_objects import AccountType

BALANCED = (
    "Transaction ID,Date,Entity Code,Account Code,Description,Debit,Credit\n"
    "TX1,2024-01-15,TPF,1000,Gift,500.00,0.00\n"
    "TX1,2024-01-15,TPF,4000,Gift,0.00,500.00\n"
    "TX2,2024-01-20,TPF,5000,Printing,120.00,0.00\n"
    "TX2,2024-01-20,TPF,1000,Printing,0.00,120.00\n"
)

UNBALANCED = BALANCED.replace("0.00,120.00", "0.00,100.00")


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "ledger.db"


@pytest.fixture
def seeded_db(db_path: Path) -> Path:
    """Initialized database with one entity and its cash and revenue accounts."""
    assert main(["-d", str(db_path), "init"]) == 0
    with open_container(db_path) as container:
        ledger = container.ledger_service
        entity = ledger.create_entity(Entity(name="The Principle Foundation", code="TPF"))
        for code, name, account_type in (
            ("1000", "Operating Cash", AccountType.ASSET),
            ("4000", "Contributions", AccountType.REVENUE),
        ):
            ledger.create_account(
                Account(entity_id=entity.id, code=code, name=name, account_type=account_type)
            )
    return db_path


@pytest.fixture
def csv_file(tmp_path: Path):
    def write(content: str, name: str = "je.csv") -> Path:
        path = tmp_path / name
        path.write_text(content, encoding="utf-8")
        return path

    return write


class TestBasics:
    def test_no_command_prints_help(self, capsys):
        assert main([]) == 0
        assert "fund-ledger" in capsys.readouterr().out

    def test_version(self, capsys):
        assert main(["version"]) == 0
        assert f"Nonprofit Fund Ledger v{__version__}" in capsys.readouterr().out


class TestInit:
    def test_creates_database(self, db_path, capsys):
        assert main(["-d", str(db_path), "init"]) == 0

        assert db_path.exists()
        assert f"Initialized database at {db_path}" in capsys.readouterr().out

    def test_refuses_to_overwrite(self, db_path, capsys):
        main(["-d", str(db_path), "init"])

        assert main(["-d", str(db_path), "init"]) == 1
        assert "Database already exists" in capsys.readouterr().out

    def test_force_recreates(self, seeded_db, capsys):
        assert main(["-d", str(seeded_db), "init", "--force"]) == 0

        main(["-d", str(seeded_db), "status"])
        assert "Entities: 0" in capsys.readouterr().out


class TestStatus:
    def test_missing_database(self, db_path, capsys):
        assert main(["-d", str(db_path), "status"]) == 1
        assert "Database not found" in capsys.readouterr().out

    def test_lists_entities(self, seeded_db, capsys):
        assert main(["-d", str(seeded_db), "status"]) == 0

        out = capsys.readouterr().out
        assert "Entities: 1" in out
        assert "The Principle Foundation (TPF)" in out
        assert "2 accounts, 0 funds, 0 entries" in out
        assert "Imports: 0" in out


class TestAnalyze:
    def test_balanced_file(self, csv_file, capsys):
        assert main(["analyze", str(csv_file(BALANCED))]) == 0

        out = capsys.readouterr().out
        assert "Rows: 4" in out
        assert "Transactions: 2" in out
        assert "Dates: 2024-01-15 to 2024-01-20" in out
        assert "debit: Debit" in out

    def test_unbalanced_file_fails(self, csv_file, capsys):
        assert main(["analyze", str(csv_file(UNBALANCED))]) == 1
        assert "CRITICAL: Found 1 unbalanced" in capsys.readouterr().out

    def test_json_output(self, csv_file, capsys):
        assert main(["analyze", "--json", str(csv_file(BALANCED))]) == 0

        out = capsys.readouterr().out
        assert '"volumeEstimates"' in out
        assert '"importConfig"' in out

    def test_missing_file(self, tmp_path, capsys):
        assert main(["analyze", str(tmp_path / "nope.csv")]) == 1
        assert "File not found" in capsys.readouterr().out

    def test_unmappable_file(self, csv_file, capsys):
        assert main(["analyze", str(csv_file("Foo,Bar\n1,2\n"))]) == 1
        assert "Required import columns could not be mapped" in capsys.readouterr().out


class TestImportAndRollback:
    def _job_ids(self, db_path: Path) -> list[str]:
        with open_container(db_path) as container:
            return [str(job.id) for job in container.import_coordinator.list_jobs()]

    def test_import_with_auto_create(self, seeded_db, csv_file, capsys):
        code = main(["-d", str(seeded_db), "import", str(csv_file(BALANCED)), "--auto-create"])

        out = capsys.readouterr().out
        assert code == 0
        assert ": completed" in out
        assert "Entries created: 2" in out

        with open_container(seeded_db) as container:
            codes = [a.code for a in container.ledger_service.list_accounts()]
        assert "5000" in codes

    def test_import_without_auto_create_fails(self, seeded_db, csv_file, capsys):
        code = main(["-d", str(seeded_db), "import", str(csv_file(BALANCED))])

        out = capsys.readouterr().out
        assert code == 1
        assert ": failed" in out
        assert "Row 4: Account code '5000' not found" in out

    def test_unknown_default_entity(self, seeded_db, csv_file, capsys):
        code = main(
            ["-d", str(seeded_db), "import", str(csv_file(BALANCED)), "--entity", "NOPE"]
        )

        assert code == 1
        assert "Entity code not found: NOPE" in capsys.readouterr().out

    def test_import_requires_database(self, db_path, csv_file, capsys):
        assert main(["-d", str(db_path), "import", str(csv_file(BALANCED))]) == 1
        assert "Database not found" in capsys.readouterr().out

    def test_history_and_rollback(self, seeded_db, csv_file, capsys):
        main(["-d", str(seeded_db), "import", str(csv_file(BALANCED)), "--auto-create"])
        (import_id,) = self._job_ids(seeded_db)
        capsys.readouterr()

        assert main(["-d", str(seeded_db), "history"]) == 0
        history = capsys.readouterr().out
        assert import_id in history
        assert "completed" in history

        assert main(["-d", str(seeded_db), "rollback", import_id]) == 0
        assert f"Rolled back import {import_id}: 2 entries deleted" in capsys.readouterr().out

        with open_container(seeded_db) as container:
            assert container.ledger_service.list_journal_entries() == []

    def test_empty_history(self, seeded_db, capsys):
        assert main(["-d", str(seeded_db), "history"]) == 0
        assert "No imports found" in capsys.readouterr().out

    def test_rollback_invalid_id(self, seeded_db, capsys):
        assert main(["-d", str(seeded_db), "rollback", "not-a-uuid"]) == 1
        assert "Invalid import id" in capsys.readouterr().out

    def test_rollback_unknown_id(self, seeded_db, capsys):
        unknown = "00000000-0000-0000-0000-000000000000"
        assert main(["-d", str(seeded_db), "rollback", unknown]) == 1
        assert "Import job not found" in capsys.readouterr().out
