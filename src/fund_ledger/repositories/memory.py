"""Process-local repository implementations.

Job records kept here vanish when the process exits; use the database-backed
repository when history must survive restarts or be shared across workers.
"""

import threading
from collections.abc import Iterable
from copy import deepcopy
from uuid import UUID

from fund_ledger.domain.imports import ImportJob
from fund_ledger.repositories.interfaces import ImportJobRepository


class InMemoryImportJobRepository(ImportJobRepository):
    """Import job store backed by a dict."""

    def __init__(self) -> None:
        self._jobs: dict[UUID, ImportJob] = {}
        self._lock = threading.Lock()

    def add(self, job: ImportJob) -> None:
        with self._lock:
            self._jobs[job.id] = deepcopy(job)

    def get(self, import_id: UUID) -> ImportJob | None:
        with self._lock:
            job = self._jobs.get(import_id)
            return deepcopy(job) if job is not None else None

    def update(self, job: ImportJob) -> None:
        with self._lock:
            self._jobs[job.id] = deepcopy(job)

    def list_all(self) -> Iterable[ImportJob]:
        with self._lock:
            jobs = [deepcopy(job) for job in self._jobs.values()]
        return sorted(jobs, key=lambda job: job.started_at, reverse=True)
