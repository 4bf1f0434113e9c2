from dataclasses import dataclass, field
from datetime import UTC, datetime
from uuid import UUID, uuid4

from fund_ledger.domain.value_objects import ImportJobStatus


def _utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass
class ImportJob:
    id: UUID = field(default_factory=uuid4)
    status: ImportJobStatus = ImportJobStatus.PROCESSING
    file_name: str | None = None
    total_records: int = 0
    processed_records: int = 0
    total_rows: int = 0
    entries_created: int = 0
    progress: int = 0
    errors: list[str] = field(default_factory=list)
    started_at: datetime = field(default_factory=_utc_now)
    completed_at: datetime | None = None
    rolled_back_at: datetime | None = None

    @property
    def is_processing(self) -> bool:
        return self.status == ImportJobStatus.PROCESSING

    @property
    def can_roll_back(self) -> bool:
        return self.status in (ImportJobStatus.COMPLETED, ImportJobStatus.FAILED)

    def record_progress(self, processed: int) -> None:
        self.processed_records = processed
        if self.total_records:
            self.progress = processed * 100 // self.total_records
        else:
            self.progress = 100

    def complete(self, entries_created: int) -> None:
        self.status = ImportJobStatus.COMPLETED
        self.entries_created = entries_created
        self.progress = 100
        self.completed_at = _utc_now()

    def fail(self, message: str) -> None:
        self.status = ImportJobStatus.FAILED
        self.entries_created = 0
        self.errors.append(message)
        self.completed_at = _utc_now()

    def mark_rolled_back(self) -> None:
        self.status = ImportJobStatus.ROLLED_BACK
        self.rolled_back_at = _utc_now()


@dataclass(frozen=True)
class RollbackResult:
    import_id: UUID
    deleted_entries: int
    status: ImportJobStatus
