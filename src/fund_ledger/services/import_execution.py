"""Execution of analyzed import batches as posted journal entries."""

import threading
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from uuid import UUID

from fund_ledger.config import Settings, get_settings
from fund_ledger.domain.entities import Account, Entity, Fund
from fund_ledger.domain.imports import ImportJob, RollbackResult
from fund_ledger.domain.journal import JournalEntry, JournalEntryLine
from fund_ledger.domain.value_objects import (
    AccountType,
    FundType,
    ImportJobStatus,
    JournalEntryStatus,
)
from fund_ledger.exceptions import (
    AccountNotFoundError,
    EntityNotFoundError,
    FundLedgerError,
    FundNotFoundError,
    ImportCancelledError,
    ImportInProgressError,
    ImportJobNotFoundError,
    ImportNotRunningError,
    InvalidImportRowError,
    ValidationError,
)
from fund_ledger.logging_config import LogContext, get_logger
from fund_ledger.repositories.interfaces import (
    AccountRepository,
    Database,
    EntityRepository,
    FundRepository,
    ImportJobRepository,
    JournalEntryRepository,
)
from fund_ledger.services.import_analysis import (
    ColumnMapping,
    ImportAnalyzer,
    ImportConfig,
    ImportLine,
    ImportSettings,
    MissingDataRow,
    parse_date,
    parse_number,
)
from fund_ledger.services.ledger import LedgerServiceImpl

logger = get_logger(__name__)

AMOUNT_FIELDS = ("debit", "credit")
INTERRUPTED_MESSAGE = "Import interrupted before it finished"


@dataclass
class ImportBatch:
    headers: list[str]
    rows: list[list[str]]
    mapping: ColumnMapping | dict[str, str | None] | None = None
    file_name: str | None = None
    date_format: str | None = None
    settings: ImportSettings = field(default_factory=ImportSettings)
    default_entity_id: UUID | None = None

    @classmethod
    def from_config(
        cls,
        headers: list[str],
        rows: list[list[str]],
        config: ImportConfig,
        file_name: str | None = None,
        default_entity_id: UUID | None = None,
    ) -> "ImportBatch":
        return cls(
            headers=headers,
            rows=rows,
            mapping=config.column_mapping,
            file_name=file_name,
            date_format=config.date_format,
            settings=config.import_settings,
            default_entity_id=default_entity_id,
        )


class _MasterRecords:
    """Per-run lookup cache for entities, accounts and funds by code."""

    def __init__(self) -> None:
        self.entities: dict[str, Entity] = {}
        self.accounts: dict[tuple[UUID, str], Account] = {}
        self.funds: dict[tuple[UUID, str], Fund] = {}


class ImportExecutionCoordinator:
    """Runs import batches as one all-or-nothing unit of work per batch.

    Each transaction in the file becomes a Posted journal entry stamped with
    the job's import id, so a completed import can later be rolled back as a
    whole. Jobs are tracked through the injected ImportJobRepository.
    """

    def __init__(
        self,
        database: Database,
        ledger_service: LedgerServiceImpl,
        entity_repo: EntityRepository,
        account_repo: AccountRepository,
        fund_repo: FundRepository,
        journal_repo: JournalEntryRepository,
        job_repo: ImportJobRepository,
        analyzer: ImportAnalyzer | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._db = database
        self._ledger = ledger_service
        self._entity_repo = entity_repo
        self._account_repo = account_repo
        self._fund_repo = fund_repo
        self._journal_repo = journal_repo
        self._job_repo = job_repo
        self._analyzer = analyzer or ImportAnalyzer()
        self._settings = settings or get_settings()
        self._cancel_events: dict[UUID, threading.Event] = {}
        self._lock = threading.Lock()

    def start(self, batch: ImportBatch) -> ImportJob:
        """Check a batch and register a processing job for it.

        Raises:
            ValidationError: If the batch is empty or over the row limit
            MissingRequiredColumnsError: If the mapping lacks required columns
            EntityNotFoundError: If the default entity does not exist
        """
        if not batch.rows:
            raise ValidationError("Import file has no data rows")
        if len(batch.rows) > self._settings.import_max_rows:
            raise ValidationError(
                f"Import has {len(batch.rows)} rows; the limit is "
                f"{self._settings.import_max_rows}",
                context={"rows": len(batch.rows), "limit": self._settings.import_max_rows},
            )
        self._analyzer.resolve_mapping(batch.headers, batch.mapping)
        if batch.default_entity_id is not None and self._entity_repo.get(
            batch.default_entity_id
        ) is None:
            raise EntityNotFoundError(batch.default_entity_id)

        job = ImportJob(file_name=batch.file_name, total_rows=len(batch.rows))
        self._job_repo.add(job)
        with self._lock:
            self._cancel_events[job.id] = threading.Event()
        logger.info(
            "import_started",
            import_id=str(job.id),
            file_name=batch.file_name,
            rows=len(batch.rows),
        )
        return job

    def execute(self, job_id: UUID, batch: ImportBatch) -> ImportJob:
        """Write every transaction of a started batch, or none of them.

        Failures never escape: the unit of work is rolled back and the job is
        marked failed with the error message, anchored to its file row.
        """
        job = self.get_job(job_id)
        with LogContext(import_id=str(job_id)):
            return self._execute(job, batch)

    def _execute(self, job: ImportJob, batch: ImportBatch) -> ImportJob:
        job_id = job.id
        with self._lock:
            cancel_event = self._cancel_events.setdefault(job_id, threading.Event())

        try:
            mapping = self._analyzer.resolve_mapping(batch.headers, batch.mapping)
            lines = self._analyzer.to_lines(batch.headers, batch.rows, mapping)
            lines = self._drop_incomplete_rows(job, lines, mapping, batch.settings)
            groups = self._analyzer.group_transactions(lines)
            job.total_records = len(groups)
            job.record_progress(0)
            self._job_repo.update(job)

            records = _MasterRecords()
            created = 0
            with self._db.transaction():
                for processed, (transaction_id, tx_lines) in enumerate(groups.items(), 1):
                    if cancel_event.is_set():
                        raise ImportCancelledError(job_id)
                    entry = self._build_entry(job_id, transaction_id, tx_lines, batch, records)
                    self._ledger.create_journal_entry(entry)
                    created += 1
                    job.record_progress(processed)
                    self._job_repo.update(job)
        except FundLedgerError as e:
            job.fail(str(e))
            self._job_repo.update(job)
            logger.warning("import_failed", error=str(e), error_code=e.error_code)
            return job
        except Exception as e:
            job.fail(f"Unexpected error: {e}")
            self._job_repo.update(job)
            logger.exception("import_failed_unexpectedly", error=str(e))
            return job
        finally:
            with self._lock:
                self._cancel_events.pop(job_id, None)

        job.complete(created)
        self._job_repo.update(job)
        logger.info(
            "import_completed",
            entries_created=created,
            warnings=len(job.errors),
        )
        return job

    def run(self, batch: ImportBatch) -> ImportJob:
        """Start and execute a batch synchronously."""
        job = self.start(batch)
        return self.execute(job.id, batch)

    def cancel(self, job_id: UUID) -> ImportJob:
        """Signal a processing import to stop before its next transaction.

        A processing job this coordinator never started, such as one left
        behind by a restart, has no executor to signal. It is marked failed
        at once so it can be rolled back.

        Raises:
            ImportJobNotFoundError: If the job does not exist
            ImportNotRunningError: If the job is not processing
        """
        job = self.get_job(job_id)
        if not job.is_processing:
            raise ImportNotRunningError(job_id, job.status.value)
        with self._lock:
            event = self._cancel_events.get(job_id)
        if event is None:
            job.fail(INTERRUPTED_MESSAGE)
            self._job_repo.update(job)
            logger.warning("import_interrupted", import_id=str(job_id))
            return job
        event.set()
        logger.info("import_cancel_requested", import_id=str(job_id))
        return job

    def rollback(self, job_id: UUID) -> RollbackResult:
        """Delete every journal entry written by an import.

        Running balances of the import's posted entries are reversed in the
        same unit of work. Rolling back an already rolled-back job deletes
        nothing and reports zero entries.

        Raises:
            ImportJobNotFoundError: If the job does not exist
            ImportInProgressError: If the job is still processing
        """
        job = self.get_job(job_id)
        if job.is_processing:
            raise ImportInProgressError(job_id)
        if job.status == ImportJobStatus.ROLLED_BACK:
            logger.info("import_rollback_skipped", import_id=str(job_id))
            return RollbackResult(import_id=job_id, deleted_entries=0, status=job.status)

        with self._db.transaction():
            for entry in self._journal_repo.list_by_import(job_id):
                if entry.status == JournalEntryStatus.POSTED:
                    self._ledger.apply_running_balances(entry, reverse=True)
            deleted = self._journal_repo.delete_by_import(job_id)
            job.mark_rolled_back()
            self._job_repo.update(job)

        logger.info("import_rolled_back", import_id=str(job_id), deleted_entries=deleted)
        return RollbackResult(import_id=job_id, deleted_entries=deleted, status=job.status)

    def get_job(self, job_id: UUID) -> ImportJob:
        job = self._job_repo.get(job_id)
        if job is None:
            raise ImportJobNotFoundError(job_id)
        return job

    def list_jobs(self) -> list[ImportJob]:
        return list(self._job_repo.list_all())

    def _drop_incomplete_rows(
        self,
        job: ImportJob,
        lines: list[ImportLine],
        mapping: ColumnMapping,
        settings: ImportSettings,
    ) -> list[ImportLine]:
        missing = self._incomplete_rows(lines, mapping)
        if not missing:
            return lines
        if not settings.skip_rows_with_missing_data:
            first = missing[0]
            raise InvalidImportRowError(
                f"Missing required data: {', '.join(first.missing_fields)}",
                row=first.row,
            )

        # A transaction is skipped whole, never line by line
        by_row = {line.row_number: line for line in lines}
        skipped_transactions: dict[str, list[int]] = {}
        for item in missing:
            job.errors.append(
                f"Row {item.row}: skipped, missing {', '.join(item.missing_fields)}"
            )
            transaction_id = by_row[item.row].transaction_id
            if transaction_id:
                skipped_transactions.setdefault(transaction_id, [])
        for line in lines:
            if line.transaction_id in skipped_transactions:
                skipped_transactions[line.transaction_id].append(line.row_number)
        for transaction_id, rows in skipped_transactions.items():
            job.errors.append(
                f"Transaction {transaction_id}: skipped, rows "
                + ", ".join(str(row) for row in rows)
            )
        skipped_rows = {item.row for item in missing}
        remaining = [
            line
            for line in lines
            if line.row_number not in skipped_rows
            and line.transaction_id not in skipped_transactions
        ]
        if not remaining:
            raise ValidationError("No complete transactions left to import")
        return remaining

    def _incomplete_rows(
        self, lines: list[ImportLine], mapping: ColumnMapping
    ) -> list[MissingDataRow]:
        """Rows that cannot be written, where one blank amount cell counts as 0."""
        incomplete: list[MissingDataRow] = []
        for item in self._analyzer.find_missing_data(lines, mapping):
            fields = [name for name in item.missing_fields if name not in AMOUNT_FIELDS]
            if set(AMOUNT_FIELDS) <= set(item.missing_fields):
                fields.append("debit or credit")
            if fields:
                incomplete.append(MissingDataRow(row=item.row, missing_fields=fields))
        return incomplete

    def _build_entry(
        self,
        job_id: UUID,
        transaction_id: str,
        lines: list[ImportLine],
        batch: ImportBatch,
        records: _MasterRecords,
    ) -> JournalEntry:
        first = lines[0]
        entity = self._resolve_entity(lines, batch, records)
        entry_date = self._parse_entry_date(first, batch.date_format)
        auto_create = batch.settings.auto_create_master_records

        entry_lines: list[JournalEntryLine] = []
        for line in lines:
            account = self._resolve_account(entity, line, records, auto_create)
            fund = self._resolve_fund(entity, line, records, auto_create)
            entry_lines.append(
                JournalEntryLine(
                    account_id=account.id,
                    fund_id=fund.id if fund else None,
                    debit_amount=self._parse_amount(line.debit, line.row_number),
                    credit_amount=self._parse_amount(line.credit, line.row_number),
                    description=line.description,
                    source_row=line.row_number,
                )
            )

        description = next((line.description for line in lines if line.description), "")
        return JournalEntry(
            entity_id=entity.id,
            entry_date=entry_date,
            reference_number=transaction_id,
            description=description,
            status=JournalEntryStatus.POSTED,
            import_id=job_id,
            created_by=self._settings.import_created_by,
            lines=entry_lines,
        )

    def _resolve_entity(
        self, lines: list[ImportLine], batch: ImportBatch, records: _MasterRecords
    ) -> Entity:
        codes = {line.entity_code for line in lines if line.entity_code}
        if len(codes) > 1:
            raise InvalidImportRowError(
                f"Transaction {lines[0].transaction_id} spans several entities: "
                + ", ".join(sorted(codes)),
                row=lines[0].row_number,
            )
        if codes:
            code = codes.pop()
            entity = records.entities.get(code) or self._entity_repo.get_by_code(code)
            if entity is None:
                raise EntityNotFoundError(code=code, row=lines[0].row_number)
            records.entities[code] = entity
            return entity

        if batch.default_entity_id is not None:
            key = str(batch.default_entity_id)
            entity = records.entities.get(key) or self._entity_repo.get(batch.default_entity_id)
            if entity is None:
                raise EntityNotFoundError(batch.default_entity_id)
            records.entities[key] = entity
            return entity

        code = lines[0].account_code
        owners = {account.entity_id for account in self._account_repo.find_by_code(code)}
        if not owners:
            raise AccountNotFoundError(code=code, row=lines[0].row_number)
        if len(owners) > 1:
            raise InvalidImportRowError(
                f"Account code '{code}' exists in several entities; "
                "map an entity code column or choose a default entity",
                row=lines[0].row_number,
            )
        entity_id = owners.pop()
        entity = self._entity_repo.get(entity_id)
        if entity is None:
            raise EntityNotFoundError(entity_id, row=lines[0].row_number)
        return entity

    def _resolve_account(
        self,
        entity: Entity,
        line: ImportLine,
        records: _MasterRecords,
        auto_create: bool,
    ) -> Account:
        key = (entity.id, line.account_code)
        account = records.accounts.get(key) or self._account_repo.get_by_code(
            entity.id, line.account_code
        )
        if account is None:
            if not auto_create:
                raise AccountNotFoundError(
                    code=line.account_code, entity_id=entity.id, row=line.row_number
                )
            account_type = AccountType.from_code(line.account_code)
            if account_type is None:
                raise InvalidImportRowError(
                    f"Cannot infer an account type for code '{line.account_code}'",
                    row=line.row_number,
                )
            account = self._ledger.create_account(
                Account(
                    entity_id=entity.id,
                    code=line.account_code,
                    name=line.account_code,
                    account_type=account_type,
                )
            )
            logger.info(
                "import_account_created",
                entity_id=str(entity.id),
                code=account.code,
                account_type=account_type.value,
            )
        records.accounts[key] = account
        return account

    def _resolve_fund(
        self,
        entity: Entity,
        line: ImportLine,
        records: _MasterRecords,
        auto_create: bool,
    ) -> Fund | None:
        if not line.fund_code:
            return None
        key = (entity.id, line.fund_code)
        fund = records.funds.get(key) or self._fund_repo.get_by_code(
            entity.id, line.fund_code
        )
        if fund is None:
            if not auto_create:
                raise FundNotFoundError(
                    code=line.fund_code, entity_id=entity.id, row=line.row_number
                )
            fund = self._ledger.create_fund(
                Fund(
                    entity_id=entity.id,
                    code=line.fund_code,
                    name=line.fund_code,
                    fund_type=FundType.UNRESTRICTED,
                )
            )
            logger.info("import_fund_created", entity_id=str(entity.id), code=fund.code)
        records.funds[key] = fund
        return fund

    @staticmethod
    def _parse_entry_date(line: ImportLine, date_format: str | None) -> date:
        parsed = parse_date(line.entry_date, date_format)
        if parsed is None:
            raise InvalidImportRowError(
                f"Invalid entry date '{line.entry_date}'", row=line.row_number
            )
        return parsed

    @staticmethod
    def _parse_amount(value: str, row: int) -> Decimal:
        if not value:
            return Decimal("0.00")
        amount = parse_number(value)
        if amount is None:
            raise InvalidImportRowError(f"Invalid amount '{value}'", row=row)
        if amount < 0:
            raise InvalidImportRowError(f"Negative amount '{value}'", row=row)
        return amount
