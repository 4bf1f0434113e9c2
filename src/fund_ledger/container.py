"""Dependency injection container for the Nonprofit Fund Ledger.

Provides lazy, cached construction of the database, repositories and
services from Settings, so the API, the CLI and tests share one wiring.

Usage:
    from fund_ledger.container import Container, get_container

    container = get_container()
    ledger = container.ledger_service
"""

from functools import cached_property, lru_cache
from typing import TYPE_CHECKING, TypeVar

from fund_ledger.config import DatabaseType, ImportJobStore, Settings, get_settings
from fund_ledger.logging_config import get_logger
from fund_ledger.repositories.interfaces import (
    AccountRepository,
    Database,
    EntityRepository,
    FundRepository,
    ImportJobRepository,
    JournalEntryRepository,
    SavedReportRepository,
)

if TYPE_CHECKING:
    from fund_ledger.services.import_analysis import ImportAnalyzer
    from fund_ledger.services.import_execution import ImportExecutionCoordinator
    from fund_ledger.services.ledger import LedgerServiceImpl
    from fund_ledger.services.reporting import ReportingServiceImpl
    from fund_ledger.services.transfers import InterEntityTransferService

logger = get_logger(__name__)

R = TypeVar("R")


class Container:
    """Dependency injection container.

    Services are instantiated on first access and cached for reuse. Tests
    can pass an already-initialized database:

        container = Container(settings, database=SQLiteDatabase(":memory:"))
    """

    def __init__(
        self,
        settings: Settings | None = None,
        database: Database | None = None,
    ) -> None:
        """Initialize the container.

        Args:
            settings: Application settings. If None, loads from environment.
            database: Optional pre-built database, initialized by the caller.
        """
        self._settings = settings or get_settings()
        if database is not None:
            self.__dict__["database"] = database
        logger.debug(
            "container_created",
            database_type=self._settings.database_type.value,
            environment=self._settings.environment.value,
        )

    @property
    def settings(self) -> Settings:
        return self._settings

    @cached_property
    def database(self) -> Database:
        """Get the database, initializing its schema on first access."""
        if self._settings.database_type == DatabaseType.POSTGRES:
            return self._create_postgres_database()
        return self._create_sqlite_database()

    def _create_sqlite_database(self) -> Database:
        from fund_ledger.repositories.sqlite import SQLiteDatabase

        db_path = str(self._settings.sqlite_path)
        logger.info("initializing_sqlite_database", path=db_path)

        # API requests and background imports run on worker threads.
        db = SQLiteDatabase(db_path, check_same_thread=False)
        db.initialize()
        return db

    def _create_postgres_database(self) -> Database:
        from fund_ledger.repositories.postgres import PostgresDatabase

        url = self._settings.database_url
        if not url:
            raise ValueError("database_url must be set when database_type is postgres")

        logger.info(
            "initializing_postgres_database",
            # Don't log the full URL as it may contain credentials
            host=url.split("@")[-1].split("/")[0] if "@" in url else "localhost",
        )

        db = PostgresDatabase(url)
        db.initialize()
        return db

    @cached_property
    def _repository_classes(self) -> dict[type, type]:
        """Concrete repository class for each interface on the open backend."""
        from fund_ledger.repositories import sqlite

        if isinstance(self.database, sqlite.SQLiteDatabase):
            return {
                EntityRepository: sqlite.SQLiteEntityRepository,
                AccountRepository: sqlite.SQLiteAccountRepository,
                FundRepository: sqlite.SQLiteFundRepository,
                JournalEntryRepository: sqlite.SQLiteJournalEntryRepository,
                SavedReportRepository: sqlite.SQLiteSavedReportRepository,
                ImportJobRepository: sqlite.SQLiteImportJobRepository,
            }

        from fund_ledger.repositories import postgres

        return {
            EntityRepository: postgres.PostgresEntityRepository,
            AccountRepository: postgres.PostgresAccountRepository,
            FundRepository: postgres.PostgresFundRepository,
            JournalEntryRepository: postgres.PostgresJournalEntryRepository,
            SavedReportRepository: postgres.PostgresSavedReportRepository,
            ImportJobRepository: postgres.PostgresImportJobRepository,
        }

    def _repository(self, interface: type[R]) -> R:
        return self._repository_classes[interface](self.database)

    @cached_property
    def entity_repository(self) -> EntityRepository:
        return self._repository(EntityRepository)

    @cached_property
    def account_repository(self) -> AccountRepository:
        return self._repository(AccountRepository)

    @cached_property
    def fund_repository(self) -> FundRepository:
        return self._repository(FundRepository)

    @cached_property
    def journal_repository(self) -> JournalEntryRepository:
        return self._repository(JournalEntryRepository)

    @cached_property
    def saved_report_repository(self) -> SavedReportRepository:
        return self._repository(SavedReportRepository)

    @cached_property
    def import_job_repository(self) -> ImportJobRepository:
        """Durable job table by default; a process-local dict when configured."""
        if self._settings.import_job_store == ImportJobStore.MEMORY:
            from fund_ledger.repositories.memory import InMemoryImportJobRepository

            return InMemoryImportJobRepository()
        return self._repository(ImportJobRepository)

    @cached_property
    def ledger_service(self) -> "LedgerServiceImpl":
        from fund_ledger.services.ledger import LedgerServiceImpl

        return LedgerServiceImpl(
            database=self.database,
            entity_repo=self.entity_repository,
            account_repo=self.account_repository,
            fund_repo=self.fund_repository,
            journal_repo=self.journal_repository,
        )

    @cached_property
    def transfer_service(self) -> "InterEntityTransferService":
        from fund_ledger.services.transfers import InterEntityTransferService

        return InterEntityTransferService(
            database=self.database,
            ledger_service=self.ledger_service,
            entity_repo=self.entity_repository,
            account_repo=self.account_repository,
            fund_repo=self.fund_repository,
            journal_repo=self.journal_repository,
        )

    @cached_property
    def reporting_service(self) -> "ReportingServiceImpl":
        from fund_ledger.services.reporting import ReportingServiceImpl

        return ReportingServiceImpl(
            database=self.database,
            fund_repo=self.fund_repository,
            account_repo=self.account_repository,
            journal_repo=self.journal_repository,
            saved_report_repo=self.saved_report_repository,
            row_limit=self._settings.report_row_limit,
        )

    @cached_property
    def import_analyzer(self) -> "ImportAnalyzer":
        from fund_ledger.services.import_analysis import ImportAnalyzer

        return ImportAnalyzer()

    @cached_property
    def import_coordinator(self) -> "ImportExecutionCoordinator":
        from fund_ledger.services.import_execution import ImportExecutionCoordinator

        return ImportExecutionCoordinator(
            database=self.database,
            ledger_service=self.ledger_service,
            entity_repo=self.entity_repository,
            account_repo=self.account_repository,
            fund_repo=self.fund_repository,
            journal_repo=self.journal_repository,
            job_repo=self.import_job_repository,
            analyzer=self.import_analyzer,
            settings=self._settings,
        )

    def close(self) -> None:
        """Close the database if it was opened.

        Should be called during application shutdown.
        """
        database = self.__dict__.get("database")
        if database is not None:
            logger.info("closing_database_connection")
            database.close()

    def __enter__(self) -> "Container":
        return self

    def __exit__(self, *args: object) -> None:
        self.close()


@lru_cache
def get_container() -> Container:
    """Get the global container singleton.

    For testing, build a Container with custom settings instead and
    override this dependency.
    """
    return Container()


def reset_container() -> None:
    """Close and forget the global container."""
    if get_container.cache_info().currsize:
        get_container().close()
    get_container.cache_clear()
