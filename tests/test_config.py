"""Tests for settings loading and logging setup."""

import os
from datetime import date
from decimal import Decimal
from pathlib import Path
from uuid import uuid4

import pytest
import structlog
from pydantic import ValidationError

from fund_ledger.config import (
    MAX_REPORT_ROWS,
    DatabaseType,
    Environment,
    ImportJobStore,
    LogLevel,
    Settings,
    get_settings,
)
from fund_ledger.domain.value_objects import JournalEntryStatus
from fund_ledger.logging_config import (
    LogContext,
    bind_context,
    clear_context,
    get_console_processors,
    get_json_processors,
    stringify_ledger_values,
    unbind_context,
)


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    """Run without FLG_ variables or a stray .env file."""
    for key in list(os.environ):
        if key.startswith("FLG_"):
            monkeypatch.delenv(key)
    monkeypatch.chdir(tmp_path)


class TestSettings:
    def test_defaults(self, clean_env):
        settings = Settings()

        assert settings.environment == Environment.DEVELOPMENT
        assert settings.database_type == DatabaseType.SQLITE
        assert settings.sqlite_path == Path("fund_ledger.db")
        assert settings.log_level == LogLevel.INFO
        assert settings.log_format == "console"
        assert settings.import_job_store == ImportJobStore.DATABASE
        assert settings.import_created_by == "AccuFund Import"
        assert settings.report_row_limit == MAX_REPORT_ROWS
        assert settings.is_development

    def test_environment_overrides(self, clean_env, monkeypatch):
        monkeypatch.setenv("FLG_ENVIRONMENT", "testing")
        monkeypatch.setenv("FLG_LOG_LEVEL", "DEBUG")
        monkeypatch.setenv("FLG_IMPORT_JOB_STORE", "memory")
        monkeypatch.setenv("FLG_IMPORT_MAX_ROWS", "250")

        settings = Settings()

        assert settings.is_testing
        assert settings.log_level == LogLevel.DEBUG
        assert settings.import_job_store == ImportJobStore.MEMORY
        assert settings.import_max_rows == 250

    def test_dotenv_file(self, clean_env, tmp_path):
        (tmp_path / ".env").write_text("FLG_API_PORT=9100\n", encoding="utf-8")
        assert Settings().api_port == 9100

    def test_debug_forced_in_development(self, clean_env):
        assert Settings(environment=Environment.DEVELOPMENT, debug=False).debug is True
        assert Settings(environment=Environment.PRODUCTION, debug=False).debug is False

    def test_postgres_requires_url(self, clean_env):
        with pytest.raises(ValidationError, match="database_url is required"):
            Settings(database_type=DatabaseType.POSTGRES)

    def test_production_logs_json_by_default(self, clean_env):
        assert Settings(environment=Environment.PRODUCTION).log_format == "json"
        assert (
            Settings(environment=Environment.PRODUCTION, log_format="console").log_format
            == "console"
        )
        assert Settings(environment=Environment.STAGING).log_format == "console"

    def test_report_row_limit_bounds(self, clean_env):
        assert Settings(report_row_limit=25).report_row_limit == 25
        with pytest.raises(ValidationError):
            Settings(report_row_limit=MAX_REPORT_ROWS + 1)
        with pytest.raises(ValidationError):
            Settings(report_row_limit=0)

    def test_import_max_rows_must_be_positive(self, clean_env):
        with pytest.raises(ValidationError):
            Settings(import_max_rows=0)

    def test_effective_database_url(self, clean_env):
        sqlite = Settings(sqlite_path=Path("/tmp/ledger.db"))
        postgres = Settings(
            database_type=DatabaseType.POSTGRES,
            database_url="postgresql://ledger@localhost/fund_ledger",
        )

        assert sqlite.effective_database_url == "sqlite:////tmp/ledger.db"
        assert postgres.effective_database_url == "postgresql://ledger@localhost/fund_ledger"

    def test_get_settings_is_cached(self, clean_env):
        get_settings.cache_clear()
        try:
            assert get_settings() is get_settings()
        finally:
            get_settings.cache_clear()


class TestLogging:
    @pytest.fixture(autouse=True)
    def _reset_context(self):
        clear_context()
        yield
        clear_context()

    def test_processor_chains(self):
        assert isinstance(get_json_processors()[-1], structlog.processors.JSONRenderer)
        assert isinstance(get_console_processors()[-1], structlog.dev.ConsoleRenderer)

    def test_ledger_values_are_stringified(self):
        entry_id = uuid4()
        event = stringify_ledger_values(
            None,
            "info",
            {
                "event": "journal_entry_posted",
                "entry_id": entry_id,
                "total": Decimal("250.00"),
                "entry_date": date(2024, 1, 15),
                "status": JournalEntryStatus.POSTED,
                "lines": 2,
            },
        )

        assert event == {
            "event": "journal_entry_posted",
            "entry_id": str(entry_id),
            "total": "250.00",
            "entry_date": "2024-01-15",
            "status": "Posted",
            "lines": 2,
        }

    def test_bind_and_unbind_context(self):
        bind_context(request_id="abc")
        assert structlog.contextvars.get_contextvars() == {"request_id": "abc"}

        unbind_context("request_id")
        assert structlog.contextvars.get_contextvars() == {}

    def test_log_context_restores_on_exit(self):
        bind_context(request_id="abc")

        with LogContext(import_id="42"):
            assert structlog.contextvars.get_contextvars() == {
                "request_id": "abc",
                "import_id": "42",
            }

        assert structlog.contextvars.get_contextvars() == {"request_id": "abc"}
