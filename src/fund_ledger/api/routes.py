"""API routes for the Nonprofit Fund Ledger."""

from dataclasses import replace
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any
from uuid import UUID

from fastapi import (
    APIRouter,
    BackgroundTasks,
    Depends,
    File,
    Query,
    Response,
    UploadFile,
    status,
)
from pydantic.alias_generators import to_camel

from fund_ledger import __version__
from fund_ledger.api.schemas import (
    AccountBalanceResponse,
    AccountCreate,
    AccountResponse,
    AccountUpdate,
    CustomReportResponse,
    EntityBalanceResponse,
    EntityCreate,
    EntityResponse,
    EntityUpdate,
    FundCreate,
    FundResponse,
    FundUpdate,
    HealthResponse,
    ImportAcceptedResponse,
    ImportJobResponse,
    ImportProcessRequest,
    ImportValidateRequest,
    ImportValidateResponse,
    JournalEntryCreate,
    JournalEntryResponse,
    JournalEntryUpdate,
    JournalLineCreate,
    JournalLineResponse,
    ReportDefinitionSchema,
    ReportFieldResponse,
    ReportQueryRequest,
    ReportQueryResponse,
    ReportQuerySuggestions,
    ReportResponse,
    RollbackResponse,
    SavedReportCreate,
    SavedReportResponse,
    TransferCreate,
    TransferResponse,
    ValidationSummarySchema,
)
from fund_ledger.container import Container, get_container
from fund_ledger.domain.entities import Account, Entity, Fund
from fund_ledger.domain.imports import ImportJob
from fund_ledger.domain.journal import JournalEntry, JournalEntryLine
from fund_ledger.domain.reports import SavedReport
from fund_ledger.domain.value_objects import (
    AccountType,
    FundType,
    JournalEntryStatus,
    RecordStatus,
)
from fund_ledger.exceptions import ValidationError
from fund_ledger.parsers.tabular import parse_upload
from fund_ledger.services.import_analysis import ColumnMapping
from fund_ledger.services.import_execution import ImportBatch
from fund_ledger.services.transfers import InterEntityTransfer, TransferRequest

# Create routers
health_router = APIRouter(tags=["health"])
entity_router = APIRouter(prefix="/entities", tags=["entities"])
account_router = APIRouter(prefix="/accounts", tags=["accounts"])
fund_router = APIRouter(prefix="/funds", tags=["funds"])
journal_router = APIRouter(prefix="/journal-entries", tags=["journal-entries"])
journal_line_router = APIRouter(prefix="/journal-entry-lines", tags=["journal-entries"])
inter_entity_router = APIRouter(prefix="/inter-entity", tags=["inter-entity"])
report_router = APIRouter(prefix="/reports", tags=["reports"])
custom_report_router = APIRouter(prefix="/reports/custom", tags=["custom-reports"])
query_router = APIRouter(prefix="/nlq", tags=["report-queries"])
import_router = APIRouter(prefix="/import", tags=["import"])

ContainerDep = Annotated[Container, Depends(get_container)]
EntityIdQuery = Annotated[UUID | None, Query(alias="entityId")]
AsOfDateQuery = Annotated[date | None, Query(alias="asOfDate")]


# Helper functions
def _money(value: Decimal) -> str:
    return f"{value:.2f}"


def _entity_to_response(entity: Entity) -> EntityResponse:
    return EntityResponse(
        id=entity.id,
        name=entity.name,
        code=entity.code,
        parent_entity_id=entity.parent_entity_id,
        is_consolidated=entity.is_consolidated,
        fiscal_year_start=entity.fiscal_year_start,
        base_currency=entity.base_currency,
        status=entity.status.value,
        created_at=entity.created_at,
        updated_at=entity.updated_at,
    )


def _account_to_response(account: Account) -> AccountResponse:
    return AccountResponse(
        id=account.id,
        entity_id=account.entity_id,
        code=account.code,
        name=account.name,
        account_type=account.account_type.value,
        description=account.description,
        balance=_money(account.balance),
        status=account.status.value,
        created_at=account.created_at,
        updated_at=account.updated_at,
    )


def _fund_to_response(fund: Fund) -> FundResponse:
    return FundResponse(
        id=fund.id,
        entity_id=fund.entity_id,
        code=fund.code,
        name=fund.name,
        fund_type=fund.fund_type.value,
        description=fund.description,
        balance=_money(fund.balance),
        status=fund.status.value,
        created_at=fund.created_at,
        updated_at=fund.updated_at,
    )


def _line_to_response(line: JournalEntryLine) -> JournalLineResponse:
    return JournalLineResponse(
        id=line.id,
        account_id=line.account_id,
        fund_id=line.fund_id,
        debit_amount=_money(line.debit_amount),
        credit_amount=_money(line.credit_amount),
        description=line.description,
    )


def _entry_to_response(entry: JournalEntry) -> JournalEntryResponse:
    return JournalEntryResponse(
        id=entry.id,
        entity_id=entry.entity_id,
        entry_date=entry.entry_date,
        reference_number=entry.reference_number,
        description=entry.description,
        status=entry.status.value,
        total_amount=_money(entry.total_amount),
        is_inter_entity=entry.is_inter_entity,
        target_entity_id=entry.target_entity_id,
        matching_transaction_id=entry.matching_transaction_id,
        import_id=entry.import_id,
        created_by=entry.created_by,
        created_at=entry.created_at,
        updated_at=entry.updated_at,
        lines=[_line_to_response(line) for line in entry.lines],
    )


def _transfer_to_response(transfer: InterEntityTransfer) -> TransferResponse:
    return TransferResponse(
        reference_number=transfer.reference_number,
        amount=_money(transfer.amount),
        is_matched=transfer.is_matched,
        source_entry=_entry_to_response(transfer.source_entry),
        target_entry=(
            _entry_to_response(transfer.target_entry) if transfer.target_entry else None
        ),
    )


def _job_to_response(job: ImportJob) -> ImportJobResponse:
    return ImportJobResponse(
        id=job.id,
        status=job.status.value,
        file_name=job.file_name,
        total_records=job.total_records,
        processed_records=job.processed_records,
        total_rows=job.total_rows,
        entries_created=job.entries_created,
        progress=job.progress,
        errors=list(job.errors),
        started_at=job.started_at,
        completed_at=job.completed_at,
        rolled_back_at=job.rolled_back_at,
    )


def _saved_report_to_response(report: SavedReport) -> SavedReportResponse:
    return SavedReportResponse(
        id=report.id,
        name=report.name,
        description=report.description,
        definition=report.definition,
        created_at=report.created_at,
        updated_at=report.updated_at,
    )


def _lines_from_payload(lines: list[JournalLineCreate]) -> list[JournalEntryLine]:
    return [
        JournalEntryLine(
            account_id=line.account_id,
            fund_id=line.fund_id,
            debit_amount=line.debit_amount,
            credit_amount=line.credit_amount,
            description=line.description,
        )
        for line in lines
    ]


def _serialize_value(value: Any) -> Any:
    """Serialize report values for JSON response, camelCasing nested keys."""
    if isinstance(value, Decimal):
        return _money(value)
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {to_camel(str(k)): _serialize_value(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_serialize_value(item) for item in value]
    return value


def _report_to_response(report: dict[str, Any]) -> ReportResponse:
    return ReportResponse(
        report_name=report["report_name"],
        data=_serialize_value(report.get("data", [])),
        totals=_serialize_value(report.get("totals", {})),
        fund=_serialize_value(report["fund"]) if "fund" in report else None,
        as_of_date=report.get("as_of_date"),
        start_date=report.get("start_date"),
        end_date=report.get("end_date"),
    )


# Health endpoint
@health_router.get("/health", response_model=HealthResponse)
def health_check() -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse(status="healthy", version=__version__)


# Entity endpoints
@entity_router.post("", response_model=EntityResponse, status_code=status.HTTP_201_CREATED)
def create_entity(payload: EntityCreate, container: ContainerDep) -> EntityResponse:
    """Create a new entity, optionally under a parent."""
    entity = Entity(
        name=payload.name,
        code=payload.code,
        parent_entity_id=payload.parent_entity_id,
        is_consolidated=payload.is_consolidated,
        fiscal_year_start=payload.fiscal_year_start,
        base_currency=payload.base_currency,
    )
    return _entity_to_response(container.ledger_service.create_entity(entity))


@entity_router.get("", response_model=list[EntityResponse])
def list_entities(container: ContainerDep) -> list[EntityResponse]:
    return [_entity_to_response(e) for e in container.ledger_service.list_entities()]


@entity_router.get("/{entity_id}", response_model=EntityResponse)
def get_entity(entity_id: UUID, container: ContainerDep) -> EntityResponse:
    return _entity_to_response(container.ledger_service.get_entity(entity_id))


@entity_router.put("/{entity_id}", response_model=EntityResponse)
def update_entity(
    entity_id: UUID, payload: EntityUpdate, container: ContainerDep
) -> EntityResponse:
    ledger = container.ledger_service
    changes = payload.model_dump(exclude_unset=True)
    if "status" in changes:
        changes["status"] = RecordStatus(changes["status"])
    entity = replace(ledger.get_entity(entity_id), **changes)
    return _entity_to_response(ledger.update_entity(entity))


@entity_router.delete("/{entity_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_entity(entity_id: UUID, container: ContainerDep) -> Response:
    container.ledger_service.delete_entity(entity_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@entity_router.get("/{entity_id}/balance", response_model=EntityBalanceResponse)
def entity_balance(
    entity_id: UUID,
    container: ContainerDep,
    as_of_date: AsOfDateQuery = None,
    consolidated: bool = Query(default=False),
) -> EntityBalanceResponse:
    """Balance by account type, optionally rolled up with direct children."""
    ledger = container.ledger_service
    if consolidated:
        balance = ledger.get_consolidated_balance(entity_id, as_of_date)
    else:
        balance = ledger.get_entity_balance(entity_id, as_of_date)
    return EntityBalanceResponse(
        entity_id=entity_id,
        consolidated=consolidated,
        as_of_date=as_of_date,
        entity_ids=balance.entity_ids,
        by_type={t.value: _money(v) for t, v in balance.by_type.items()},
        total_debits=_money(balance.total_debits),
        total_credits=_money(balance.total_credits),
        net_assets=_money(balance.net_assets),
        change_in_net_assets=_money(balance.change_in_net_assets),
    )


# Account endpoints
@account_router.post("", response_model=AccountResponse, status_code=status.HTTP_201_CREATED)
def create_account(payload: AccountCreate, container: ContainerDep) -> AccountResponse:
    account = Account(
        entity_id=payload.entity_id,
        code=payload.code,
        name=payload.name,
        account_type=AccountType(payload.account_type),
        description=payload.description,
    )
    return _account_to_response(container.ledger_service.create_account(account))


@account_router.get("", response_model=list[AccountResponse])
def list_accounts(
    container: ContainerDep, entity_id: EntityIdQuery = None
) -> list[AccountResponse]:
    """List accounts, optionally filtered by entityId."""
    return [
        _account_to_response(a) for a in container.ledger_service.list_accounts(entity_id)
    ]


@account_router.get("/{account_id}", response_model=AccountResponse)
def get_account(account_id: UUID, container: ContainerDep) -> AccountResponse:
    return _account_to_response(container.ledger_service.get_account(account_id))


@account_router.put("/{account_id}", response_model=AccountResponse)
def update_account(
    account_id: UUID, payload: AccountUpdate, container: ContainerDep
) -> AccountResponse:
    ledger = container.ledger_service
    changes = payload.model_dump(exclude_unset=True)
    if "account_type" in changes:
        changes["account_type"] = AccountType(changes["account_type"])
    if "status" in changes:
        changes["status"] = RecordStatus(changes["status"])
    account = replace(ledger.get_account(account_id), **changes)
    return _account_to_response(ledger.update_account(account))


@account_router.delete("/{account_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_account(account_id: UUID, container: ContainerDep) -> Response:
    container.ledger_service.delete_account(account_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@account_router.get("/{account_id}/balance", response_model=AccountBalanceResponse)
def account_balance(
    account_id: UUID, container: ContainerDep, as_of_date: AsOfDateQuery = None
) -> AccountBalanceResponse:
    balance = container.ledger_service.get_account_balance(account_id, as_of_date)
    return AccountBalanceResponse(
        account_id=account_id, as_of_date=as_of_date, balance=_money(balance)
    )


# Fund endpoints
@fund_router.post("", response_model=FundResponse, status_code=status.HTTP_201_CREATED)
def create_fund(payload: FundCreate, container: ContainerDep) -> FundResponse:
    fund = Fund(
        entity_id=payload.entity_id,
        code=payload.code,
        name=payload.name,
        fund_type=FundType(payload.fund_type),
        description=payload.description,
    )
    return _fund_to_response(container.ledger_service.create_fund(fund))


@fund_router.get("", response_model=list[FundResponse])
def list_funds(container: ContainerDep, entity_id: EntityIdQuery = None) -> list[FundResponse]:
    return [_fund_to_response(f) for f in container.ledger_service.list_funds(entity_id)]


@fund_router.get("/{fund_id}", response_model=FundResponse)
def get_fund(fund_id: UUID, container: ContainerDep) -> FundResponse:
    return _fund_to_response(container.ledger_service.get_fund(fund_id))


@fund_router.put("/{fund_id}", response_model=FundResponse)
def update_fund(fund_id: UUID, payload: FundUpdate, container: ContainerDep) -> FundResponse:
    ledger = container.ledger_service
    changes = payload.model_dump(exclude_unset=True)
    if "fund_type" in changes:
        changes["fund_type"] = FundType(changes["fund_type"])
    if "status" in changes:
        changes["status"] = RecordStatus(changes["status"])
    fund = replace(ledger.get_fund(fund_id), **changes)
    return _fund_to_response(ledger.update_fund(fund))


@fund_router.delete("/{fund_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_fund(fund_id: UUID, container: ContainerDep) -> Response:
    container.ledger_service.delete_fund(fund_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# Journal entry endpoints
@journal_router.post(
    "", response_model=JournalEntryResponse, status_code=status.HTTP_201_CREATED
)
def create_journal_entry(
    payload: JournalEntryCreate, container: ContainerDep
) -> JournalEntryResponse:
    """Create a Draft journal entry, or post it directly with post=true."""
    entry = JournalEntry(
        entity_id=payload.entity_id,
        entry_date=payload.entry_date,
        reference_number=payload.reference_number,
        description=payload.description,
        status=JournalEntryStatus.POSTED if payload.post else JournalEntryStatus.DRAFT,
        lines=_lines_from_payload(payload.lines),
    )
    return _entry_to_response(container.ledger_service.create_journal_entry(entry))


@journal_router.get("", response_model=list[JournalEntryResponse])
def list_journal_entries(
    container: ContainerDep, entity_id: EntityIdQuery = None
) -> list[JournalEntryResponse]:
    return [
        _entry_to_response(e)
        for e in container.ledger_service.list_journal_entries(entity_id)
    ]


@journal_router.get("/{entry_id}", response_model=JournalEntryResponse)
def get_journal_entry(entry_id: UUID, container: ContainerDep) -> JournalEntryResponse:
    return _entry_to_response(container.ledger_service.get_journal_entry(entry_id))


@journal_router.get("/{entry_id}/lines", response_model=list[JournalLineResponse])
def get_journal_entry_lines(
    entry_id: UUID, container: ContainerDep
) -> list[JournalLineResponse]:
    return [
        _line_to_response(line)
        for line in container.ledger_service.get_journal_entry_lines(entry_id)
    ]


@journal_router.put("/{entry_id}", response_model=JournalEntryResponse)
def update_journal_entry(
    entry_id: UUID, payload: JournalEntryUpdate, container: ContainerDep
) -> JournalEntryResponse:
    """Edit a Draft entry; lines, when given, replace the existing lines."""
    ledger = container.ledger_service
    entry = ledger.get_journal_entry(entry_id)
    entry.ensure_editable()
    if payload.entry_date is not None:
        entry.entry_date = payload.entry_date
    if payload.reference_number is not None:
        entry.reference_number = payload.reference_number
    if payload.description is not None:
        entry.description = payload.description
    if payload.lines is not None:
        entry.replace_lines(_lines_from_payload(payload.lines))
    return _entry_to_response(ledger.update_journal_entry(entry))


@journal_router.delete("/{entry_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_journal_entry(entry_id: UUID, container: ContainerDep) -> Response:
    container.ledger_service.delete_journal_entry(entry_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@journal_router.post("/{entry_id}/post", response_model=JournalEntryResponse)
def post_journal_entry(entry_id: UUID, container: ContainerDep) -> JournalEntryResponse:
    return _entry_to_response(container.ledger_service.post_journal_entry(entry_id))


@journal_router.post("/{entry_id}/void", response_model=JournalEntryResponse)
def void_journal_entry(entry_id: UUID, container: ContainerDep) -> JournalEntryResponse:
    return _entry_to_response(container.ledger_service.void_journal_entry(entry_id))


# Inter-entity endpoints
@inter_entity_router.post(
    "/transfer", response_model=TransferResponse, status_code=status.HTTP_201_CREATED
)
def create_transfer(payload: TransferCreate, container: ContainerDep) -> TransferResponse:
    """Record a transfer as a matched pair of journal entries."""
    request = TransferRequest(**payload.model_dump())
    return _transfer_to_response(container.transfer_service.create_transfer(request))


@inter_entity_router.get("/transfers", response_model=list[TransferResponse])
def list_transfers(
    container: ContainerDep, entity_id: EntityIdQuery = None
) -> list[TransferResponse]:
    return [
        _transfer_to_response(t)
        for t in container.transfer_service.list_transfers(entity_id)
    ]


# Fund report endpoints
@report_router.get("/fund-balance/{fund_id}", response_model=ReportResponse)
def fund_balance_report(
    fund_id: UUID, container: ContainerDep, as_of_date: AsOfDateQuery = None
) -> ReportResponse:
    return _report_to_response(container.reporting_service.fund_balance(fund_id, as_of_date))


@report_router.get("/fund-activity/{fund_id}", response_model=ReportResponse)
def fund_activity_report(
    fund_id: UUID,
    container: ContainerDep,
    start_date: Annotated[date | None, Query(alias="startDate")] = None,
    end_date: Annotated[date | None, Query(alias="endDate")] = None,
) -> ReportResponse:
    report = container.reporting_service.fund_activity(fund_id, start_date, end_date)
    return _report_to_response(report)


@report_router.get("/fund-statement/{fund_id}", response_model=ReportResponse)
def fund_statement_report(
    fund_id: UUID, container: ContainerDep, as_of_date: AsOfDateQuery = None
) -> ReportResponse:
    report = container.reporting_service.fund_statement(fund_id, as_of_date)
    return _report_to_response(report)


@report_router.get("/funds-comparison", response_model=ReportResponse)
def funds_comparison_report(
    container: ContainerDep,
    fund_ids: Annotated[str, Query(alias="fundIds")],
) -> ReportResponse:
    """Compare balances of the comma-separated fundIds."""
    try:
        ids = [UUID(part.strip()) for part in fund_ids.split(",") if part.strip()]
    except ValueError as e:
        raise ValidationError(f"Invalid fund id list: {fund_ids}") from e
    if not ids:
        raise ValidationError("fundIds must name at least one fund")
    return _report_to_response(container.reporting_service.funds_comparison(ids))


# Custom report endpoints
@custom_report_router.get("/fields/{data_source}", response_model=list[ReportFieldResponse])
def custom_report_fields(
    data_source: str, container: ContainerDep
) -> list[ReportFieldResponse]:
    return [
        ReportFieldResponse(name=f.name, label=f.label, field_type=f.field_type.value)
        for f in container.reporting_service.custom_fields(data_source)
    ]


@custom_report_router.post("/preview", response_model=CustomReportResponse)
def preview_custom_report(
    payload: ReportDefinitionSchema, container: ContainerDep
) -> CustomReportResponse:
    """Run a report definition against the allow-listed fields (max 500 rows)."""
    result = container.reporting_service.preview(payload.to_definition())
    return CustomReportResponse(
        report_name=result["report_name"],
        data_source=result["data_source"],
        columns=result["columns"],
        data=[
            {key: _serialize_value(value) for key, value in row.items()}
            for row in result["data"]
        ],
        row_count=result["row_count"],
        row_limit=result["row_limit"],
    )


@custom_report_router.get("/saved", response_model=list[SavedReportResponse])
def list_saved_reports(container: ContainerDep) -> list[SavedReportResponse]:
    return [
        _saved_report_to_response(r)
        for r in container.reporting_service.list_saved_reports()
    ]


@custom_report_router.post(
    "/saved", response_model=SavedReportResponse, status_code=status.HTTP_201_CREATED
)
def save_custom_report(
    payload: SavedReportCreate, container: ContainerDep
) -> SavedReportResponse:
    report = container.reporting_service.save_report(
        name=payload.name,
        definition=payload.definition.to_definition(),
        description=payload.description,
    )
    return _saved_report_to_response(report)


@custom_report_router.get("/saved/{report_id}", response_model=SavedReportResponse)
def get_saved_report(report_id: UUID, container: ContainerDep) -> SavedReportResponse:
    return _saved_report_to_response(container.reporting_service.get_saved_report(report_id))


@custom_report_router.delete("/saved/{report_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_saved_report(report_id: UUID, container: ContainerDep) -> Response:
    container.reporting_service.delete_saved_report(report_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# Journal entry line listing
@journal_line_router.get("", response_model=ReportResponse)
def list_journal_entry_lines(
    container: ContainerDep,
    fund_id: Annotated[UUID | None, Query(alias="fundId")] = None,
    entity_id: EntityIdQuery = None,
    start_date: Annotated[date | None, Query(alias="startDate")] = None,
    end_date: Annotated[date | None, Query(alias="endDate")] = None,
) -> ReportResponse:
    """Posted journal entry lines filtered by fund, entity and date range."""
    report = container.reporting_service.journal_lines(
        fund_id=fund_id, entity_id=entity_id, start_date=start_date, end_date=end_date
    )
    return _report_to_response(report)


# Plain-language report query endpoints
@query_router.get("/suggestions", response_model=ReportQuerySuggestions)
def report_query_suggestions(container: ContainerDep) -> ReportQuerySuggestions:
    return ReportQuerySuggestions(
        suggestions=container.reporting_service.query_suggestions()
    )


@query_router.post("/query", response_model=ReportQueryResponse)
def answer_report_query(
    payload: ReportQueryRequest, container: ContainerDep
) -> ReportQueryResponse:
    """Answer a question such as "show me expenses" with an allow-listed report."""
    answer = container.reporting_service.answer_query(payload.query)
    return ReportQueryResponse(
        original_query=answer["original_query"],
        explanation=answer["explanation"],
        matched_pattern=answer["matched_pattern"],
        report_definition=_serialize_value(answer["report_definition"]),
        columns=answer["columns"],
        results=[
            {key: _serialize_value(value) for key, value in row.items()}
            for row in answer["results"]
        ],
        result_count=answer["result_count"],
    )


# Import endpoints
@import_router.post("/analyze")
def analyze_import(
    container: ContainerDep,
    file: UploadFile = File(...),
) -> dict[str, Any]:
    """Analyze an uploaded CSV or Excel file without importing it."""
    table = parse_upload(file.filename or "upload.csv", file.file.read())
    analysis = container.import_analyzer.analyze(
        table.headers,
        table.rows,
        file_name=table.file_name,
        file_size=table.file_size,
        source_format=table.source_format,
    )
    return {
        "analysis": analysis.to_dict(),
        "importConfig": analysis.import_config.to_dict(),
        "headers": table.headers,
        "previewRows": table.preview(container.settings.import_preview_rows),
        "totalRows": table.row_count,
    }


@import_router.post("/validate", response_model=ImportValidateResponse)
def validate_import(
    payload: ImportValidateRequest, container: ContainerDep
) -> ImportValidateResponse:
    summary = container.import_analyzer.validate(payload.headers, payload.rows, payload.mapping)
    return ImportValidateResponse(
        is_valid=summary.is_valid,
        issues=summary.issues,
        summary=ValidationSummarySchema(
            total_rows=summary.total_rows,
            unique_transactions=summary.unique_transactions,
            unbalanced_transactions=summary.unbalanced_transactions,
            missing_data=summary.missing_data,
        ),
    )


@import_router.post(
    "/process",
    response_model=ImportAcceptedResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
def process_import(
    payload: ImportProcessRequest,
    background_tasks: BackgroundTasks,
    container: ContainerDep,
) -> ImportAcceptedResponse:
    """Register an import job and run it in the background."""
    batch = ImportBatch(
        headers=payload.headers,
        rows=payload.rows,
        mapping=ColumnMapping.from_dict(payload.mapping),
        file_name=payload.file_name,
        date_format=payload.date_format,
        settings=payload.import_settings.to_settings(),
        default_entity_id=payload.default_entity_id,
    )
    coordinator = container.import_coordinator
    job = coordinator.start(batch)
    background_tasks.add_task(coordinator.execute, job.id, batch)
    return ImportAcceptedResponse(import_id=job.id, status=job.status.value)


@import_router.get("/status/{import_id}", response_model=ImportJobResponse)
def import_status(import_id: UUID, container: ContainerDep) -> ImportJobResponse:
    return _job_to_response(container.import_coordinator.get_job(import_id))


@import_router.get("/history", response_model=list[ImportJobResponse])
def import_history(container: ContainerDep) -> list[ImportJobResponse]:
    return [_job_to_response(job) for job in container.import_coordinator.list_jobs()]


@import_router.post("/rollback/{import_id}", response_model=RollbackResponse)
def rollback_import(import_id: UUID, container: ContainerDep) -> RollbackResponse:
    """Delete every journal entry written by an import."""
    result = container.import_coordinator.rollback(import_id)
    return RollbackResponse(
        import_id=result.import_id,
        deleted_entries=result.deleted_entries,
        status=result.status.value,
    )


@import_router.post("/cancel/{import_id}", response_model=ImportJobResponse)
def cancel_import(import_id: UUID, container: ContainerDep) -> ImportJobResponse:
    return _job_to_response(container.import_coordinator.cancel(import_id))
