"""Domain exception hierarchy for the fund ledger.

All domain-specific exceptions inherit from FundLedgerError and fall into
one of five families that callers (the API layer, the import coordinator)
dispatch on:

- ValidationError: malformed input, rejected before any I/O
- BalanceError: debits and credits disagree
- NotFoundError: a referenced record does not exist
- DependencyError: a delete would orphan dependent records
- ImportStateError: an import job operation is not allowed in its state
"""

from typing import Any
from uuid import UUID


def _anchor(message: str, row: int | None) -> str:
    if row is None:
        return message
    return f"Row {row}: {message}"


class FundLedgerError(Exception):
    """Base exception for all fund ledger errors.

    Includes an error_code and HTTP status for API responses and
    a context dict with structured details.
    """

    error_code: str = "FUND_LEDGER_ERROR"
    status_code: int = 500

    def __init__(
        self,
        message: str,
        *,
        error_code: str | None = None,
        status_code: int | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if error_code:
            self.error_code = error_code
        if status_code:
            self.status_code = status_code
        self.context = context or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error": self.error_code,
            "message": self.message,
            "context": self.context,
        }


# =============================================================================
# Validation Errors
# =============================================================================


class ValidationError(FundLedgerError):
    """Raised when input fails validation before any write is attempted."""

    error_code = "VALIDATION_ERROR"
    status_code = 422


class UnknownDataSourceError(ValidationError):
    """Raised when a report definition names a data source that does not exist."""

    error_code = "UNKNOWN_DATA_SOURCE"

    def __init__(self, data_source: str) -> None:
        super().__init__(
            f"Unknown report data source: {data_source}",
            context={"data_source": data_source},
        )


class UnknownFieldError(ValidationError):
    """Raised when a report definition references a field outside the allow-list."""

    error_code = "UNKNOWN_FIELD"

    def __init__(self, data_source: str, field_name: str) -> None:
        super().__init__(
            f"Field '{field_name}' is not available for data source '{data_source}'",
            context={"data_source": data_source, "field": field_name},
        )


class InvalidOperatorError(ValidationError):
    """Raised when a report filter uses an operator outside the allow-list."""

    error_code = "INVALID_OPERATOR"

    def __init__(self, operator: str) -> None:
        super().__init__(
            f"Unsupported filter operator: {operator}",
            context={"operator": operator},
        )


class InvalidReportDefinitionError(ValidationError):
    """Raised when a report definition is structurally invalid."""

    error_code = "INVALID_REPORT_DEFINITION"


class MissingRequiredColumnsError(ValidationError):
    """Raised when an import file cannot be mapped to the required columns."""

    error_code = "MISSING_REQUIRED_COLUMNS"

    def __init__(self, missing: list[str]) -> None:
        super().__init__(
            "Required import columns could not be mapped: " + ", ".join(missing),
            context={"missing_columns": missing},
        )


class InvalidImportRowError(ValidationError):
    """Raised when an import row carries a value that cannot be used."""

    error_code = "INVALID_IMPORT_ROW"

    def __init__(self, message: str, *, row: int | None = None) -> None:
        super().__init__(_anchor(message, row), context={"row": row})
        self.row = row


class HierarchyCycleError(ValidationError):
    """Raised when an entity would become its own ancestor."""

    error_code = "ENTITY_HIERARCHY_CYCLE"

    def __init__(self, entity_id: UUID | str, parent_entity_id: UUID | str) -> None:
        super().__init__(
            f"Entity {entity_id} cannot have {parent_entity_id} as parent: "
            "the hierarchy would contain a cycle",
            context={
                "entity_id": str(entity_id),
                "parent_entity_id": str(parent_entity_id),
            },
        )


class DuplicateCodeError(ValidationError):
    """Raised when a code is already taken within its scope."""

    error_code = "DUPLICATE_CODE"
    status_code = 409

    def __init__(self, kind: str, code: str, entity_id: UUID | str | None = None) -> None:
        scope = f" in entity {entity_id}" if entity_id is not None else ""
        super().__init__(
            f"{kind.capitalize()} code '{code}' already exists{scope}",
            context={
                "kind": kind,
                "code": code,
                "entity_id": str(entity_id) if entity_id is not None else None,
            },
        )


class DuplicateReferenceError(ValidationError):
    """Raised when a journal entry reference number is already in use."""

    error_code = "DUPLICATE_REFERENCE"
    status_code = 409

    def __init__(self, reference_number: str, *, row: int | None = None) -> None:
        super().__init__(
            _anchor(f"Reference number '{reference_number}' already exists", row),
            context={"reference_number": reference_number, "row": row},
        )
        self.row = row


# =============================================================================
# Balance Errors
# =============================================================================


class BalanceError(FundLedgerError):
    """Raised when debits and credits do not agree."""

    error_code = "BALANCE_ERROR"
    status_code = 422


class UnbalancedJournalEntryError(BalanceError):
    """Raised when a journal entry's debits don't equal its credits."""

    error_code = "UNBALANCED_JOURNAL_ENTRY"

    def __init__(
        self,
        debit_total: str,
        credit_total: str,
        *,
        reference: str | None = None,
        row: int | None = None,
    ) -> None:
        label = f"Journal entry {reference}" if reference else "Journal entry"
        super().__init__(
            _anchor(
                f"{label} is unbalanced: debits={debit_total}, credits={credit_total}",
                row,
            ),
            context={
                "reference": reference,
                "debit_total": debit_total,
                "credit_total": credit_total,
                "row": row,
            },
        )
        self.row = row


# =============================================================================
# Not Found Errors
# =============================================================================


class NotFoundError(FundLedgerError):
    """Raised when a referenced record does not exist."""

    error_code = "NOT_FOUND"
    status_code = 404


class EntityNotFoundError(NotFoundError):
    """Raised when an entity cannot be found."""

    error_code = "ENTITY_NOT_FOUND"

    def __init__(
        self,
        entity_id: UUID | str | None = None,
        *,
        code: str | None = None,
        row: int | None = None,
    ) -> None:
        if code is not None:
            message = f"Entity code '{code}' not found"
        else:
            message = f"Entity not found: {entity_id}"
        super().__init__(
            _anchor(message, row),
            context={
                "entity_id": str(entity_id) if entity_id is not None else None,
                "code": code,
                "row": row,
            },
        )
        self.row = row


class AccountNotFoundError(NotFoundError):
    """Raised when an account cannot be found by id or code."""

    error_code = "ACCOUNT_NOT_FOUND"

    def __init__(
        self,
        account_id: UUID | str | None = None,
        *,
        code: str | None = None,
        entity_id: UUID | str | None = None,
        row: int | None = None,
    ) -> None:
        if code is not None:
            message = f"Account code '{code}' not found"
        else:
            message = f"Account not found: {account_id}"
        super().__init__(
            _anchor(message, row),
            context={
                "account_id": str(account_id) if account_id is not None else None,
                "code": code,
                "entity_id": str(entity_id) if entity_id is not None else None,
                "row": row,
            },
        )
        self.row = row


class FundNotFoundError(NotFoundError):
    """Raised when a fund cannot be found by id or code."""

    error_code = "FUND_NOT_FOUND"

    def __init__(
        self,
        fund_id: UUID | str | None = None,
        *,
        code: str | None = None,
        entity_id: UUID | str | None = None,
        row: int | None = None,
    ) -> None:
        if code is not None:
            message = f"Fund code '{code}' not found"
        else:
            message = f"Fund not found: {fund_id}"
        super().__init__(
            _anchor(message, row),
            context={
                "fund_id": str(fund_id) if fund_id is not None else None,
                "code": code,
                "entity_id": str(entity_id) if entity_id is not None else None,
                "row": row,
            },
        )
        self.row = row


class JournalEntryNotFoundError(NotFoundError):
    """Raised when a journal entry cannot be found."""

    error_code = "JOURNAL_ENTRY_NOT_FOUND"

    def __init__(self, entry_id: UUID | str) -> None:
        super().__init__(
            f"Journal entry not found: {entry_id}",
            context={"journal_entry_id": str(entry_id)},
        )


class ImportJobNotFoundError(NotFoundError):
    """Raised when an import job cannot be found."""

    error_code = "IMPORT_JOB_NOT_FOUND"

    def __init__(self, import_id: UUID | str) -> None:
        super().__init__(
            f"Import job not found: {import_id}",
            context={"import_id": str(import_id)},
        )


class SavedReportNotFoundError(NotFoundError):
    """Raised when a saved report definition cannot be found."""

    error_code = "SAVED_REPORT_NOT_FOUND"

    def __init__(self, report_id: UUID | str) -> None:
        super().__init__(
            f"Saved report not found: {report_id}",
            context={"report_id": str(report_id)},
        )


# =============================================================================
# Dependency Errors
# =============================================================================


class DependencyError(FundLedgerError):
    """Raised when a delete would leave dependent records behind."""

    error_code = "DEPENDENCY_ERROR"
    status_code = 409


class EntityHasDependentsError(DependencyError):
    """Raised when deleting an entity that still owns other records."""

    error_code = "ENTITY_HAS_DEPENDENTS"

    def __init__(self, entity_id: UUID | str, dependents: dict[str, int]) -> None:
        summary = ", ".join(f"{count} {kind}" for kind, count in dependents.items())
        super().__init__(
            f"Entity {entity_id} cannot be deleted while it has dependents: {summary}",
            context={"entity_id": str(entity_id), "dependents": dependents},
        )


class AccountInUseError(DependencyError):
    """Raised when deleting an account referenced by journal entry lines."""

    error_code = "ACCOUNT_IN_USE"

    def __init__(self, account_id: UUID | str) -> None:
        super().__init__(
            f"Account {account_id} is referenced by journal entry lines",
            context={"account_id": str(account_id)},
        )


class FundInUseError(DependencyError):
    """Raised when deleting a fund referenced by journal entry lines."""

    error_code = "FUND_IN_USE"

    def __init__(self, fund_id: UUID | str) -> None:
        super().__init__(
            f"Fund {fund_id} is referenced by journal entry lines",
            context={"fund_id": str(fund_id)},
        )


# =============================================================================
# Journal Entry State Errors
# =============================================================================


class JournalEntryStateError(FundLedgerError):
    """Base exception for journal entry lifecycle violations."""

    error_code = "JOURNAL_ENTRY_STATE_ERROR"
    status_code = 409


class InvalidStatusTransitionError(JournalEntryStateError):
    """Raised when a journal entry status change is not allowed."""

    error_code = "INVALID_STATUS_TRANSITION"

    def __init__(self, entry_id: UUID | str, current: str, requested: str) -> None:
        super().__init__(
            f"Journal entry {entry_id} cannot move from {current} to {requested}",
            context={
                "journal_entry_id": str(entry_id),
                "current_status": current,
                "requested_status": requested,
            },
        )


class JournalEntryLockedError(JournalEntryStateError):
    """Raised when modifying a journal entry that is no longer a draft."""

    error_code = "JOURNAL_ENTRY_LOCKED"

    def __init__(self, entry_id: UUID | str, status: str) -> None:
        super().__init__(
            f"Journal entry {entry_id} is {status} and can no longer be modified",
            context={"journal_entry_id": str(entry_id), "status": status},
        )


# =============================================================================
# Import State Errors
# =============================================================================


class ImportStateError(FundLedgerError):
    """Raised when an import job operation is not allowed in the job's state."""

    error_code = "IMPORT_STATE_ERROR"
    status_code = 409


class ImportInProgressError(ImportStateError):
    """Raised when rolling back an import that is still processing."""

    error_code = "IMPORT_IN_PROGRESS"

    def __init__(self, import_id: UUID | str) -> None:
        super().__init__(
            f"Import {import_id} is still processing and cannot be rolled back",
            context={"import_id": str(import_id)},
        )


class ImportNotRunningError(ImportStateError):
    """Raised when cancelling an import that is not processing."""

    error_code = "IMPORT_NOT_RUNNING"

    def __init__(self, import_id: UUID | str, status: str) -> None:
        super().__init__(
            f"Import {import_id} is {status} and cannot be cancelled",
            context={"import_id": str(import_id), "status": status},
        )


class ImportCancelledError(ImportStateError):
    """Raised inside a running import when its cancel signal is observed."""

    error_code = "IMPORT_CANCELLED"

    def __init__(self, import_id: UUID | str) -> None:
        super().__init__(
            "Import cancelled",
            context={"import_id": str(import_id)},
        )


# =============================================================================
# Database Errors
# =============================================================================


class DatabaseError(FundLedgerError):
    """Base exception for storage failures."""

    error_code = "DATABASE_ERROR"
    status_code = 500


class ReportExecutionError(DatabaseError):
    """Raised when a compiled report query fails to execute."""

    error_code = "REPORT_EXECUTION_ERROR"
