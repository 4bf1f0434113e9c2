"""Pydantic v2 schemas for API request/response models."""

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from fund_ledger.services.import_analysis import ImportSettings
from fund_ledger.services.report_compiler import (
    ReportDefinition,
    ReportFilter,
    ReportSort,
)


class CamelModel(BaseModel):
    """Base for import and report payloads, which use camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class HealthResponse(BaseModel):
    status: str
    version: str | None = None


# Entity Schemas
class EntityCreate(BaseModel):
    """Schema for creating an entity."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=255)
    code: str = Field(..., min_length=1, max_length=50)
    parent_entity_id: UUID | None = None
    is_consolidated: bool = False
    fiscal_year_start: str = Field(default="01-01", pattern=r"^\d{2}-\d{2}$")
    base_currency: str = Field(default="USD", min_length=3, max_length=3)


class EntityUpdate(BaseModel):
    """Schema for updating an entity; omitted fields keep their value."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str | None = Field(default=None, min_length=1, max_length=255)
    code: str | None = Field(default=None, min_length=1, max_length=50)
    parent_entity_id: UUID | None = None
    is_consolidated: bool | None = None
    fiscal_year_start: str | None = Field(default=None, pattern=r"^\d{2}-\d{2}$")
    base_currency: str | None = Field(default=None, min_length=3, max_length=3)
    status: str | None = Field(default=None, pattern=r"^(Active|Inactive)$")


class EntityResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    code: str
    parent_entity_id: UUID | None
    is_consolidated: bool
    fiscal_year_start: str
    base_currency: str
    status: str
    created_at: datetime
    updated_at: datetime


class EntityBalanceResponse(BaseModel):
    entity_id: UUID
    consolidated: bool
    as_of_date: date | None
    entity_ids: list[UUID]
    by_type: dict[str, str]
    total_debits: str
    total_credits: str
    net_assets: str
    change_in_net_assets: str


# Account Schemas
_ACCOUNT_TYPES = r"^(Asset|Liability|Equity|Revenue|Expense)$"
_FUND_TYPES = r"^(Unrestricted|Temporarily Restricted|Permanently Restricted)$"


class AccountCreate(BaseModel):
    """Schema for creating an account."""

    model_config = ConfigDict(str_strip_whitespace=True)

    entity_id: UUID
    code: str = Field(..., min_length=1, max_length=50)
    name: str = Field(..., min_length=1, max_length=255)
    account_type: str = Field(..., pattern=_ACCOUNT_TYPES)
    description: str = ""


class AccountUpdate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    code: str | None = Field(default=None, min_length=1, max_length=50)
    name: str | None = Field(default=None, min_length=1, max_length=255)
    account_type: str | None = Field(default=None, pattern=_ACCOUNT_TYPES)
    description: str | None = None
    status: str | None = Field(default=None, pattern=r"^(Active|Inactive)$")


class AccountResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    entity_id: UUID
    code: str
    name: str
    account_type: str
    description: str
    balance: str
    status: str
    created_at: datetime
    updated_at: datetime


class AccountBalanceResponse(BaseModel):
    account_id: UUID
    as_of_date: date | None
    balance: str


# Fund Schemas
class FundCreate(BaseModel):
    """Schema for creating a fund."""

    model_config = ConfigDict(str_strip_whitespace=True)

    entity_id: UUID
    code: str = Field(..., min_length=1, max_length=50)
    name: str = Field(..., min_length=1, max_length=255)
    fund_type: str = Field(default="Unrestricted", pattern=_FUND_TYPES)
    description: str = ""


class FundUpdate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    code: str | None = Field(default=None, min_length=1, max_length=50)
    name: str | None = Field(default=None, min_length=1, max_length=255)
    fund_type: str | None = Field(default=None, pattern=_FUND_TYPES)
    description: str | None = None
    status: str | None = Field(default=None, pattern=r"^(Active|Inactive)$")


class FundResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    entity_id: UUID
    code: str
    name: str
    fund_type: str
    description: str
    balance: str
    status: str
    created_at: datetime
    updated_at: datetime


# Journal Entry Schemas
class JournalLineCreate(BaseModel):
    account_id: UUID
    fund_id: UUID | None = None
    debit_amount: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=2)
    credit_amount: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=2)
    description: str = ""


class JournalEntryCreate(BaseModel):
    """Schema for creating a journal entry; set post to post it immediately."""

    entity_id: UUID
    entry_date: date
    reference_number: str = Field(..., min_length=1, max_length=100)
    description: str = ""
    lines: list[JournalLineCreate] = Field(..., min_length=1)
    post: bool = False


class JournalEntryUpdate(BaseModel):
    entry_date: date | None = None
    reference_number: str | None = Field(default=None, min_length=1, max_length=100)
    description: str | None = None
    lines: list[JournalLineCreate] | None = Field(default=None, min_length=1)


class JournalLineResponse(BaseModel):
    id: UUID
    account_id: UUID
    fund_id: UUID | None
    debit_amount: str
    credit_amount: str
    description: str


class JournalEntryResponse(BaseModel):
    id: UUID
    entity_id: UUID
    entry_date: date
    reference_number: str
    description: str
    status: str
    total_amount: str
    is_inter_entity: bool
    target_entity_id: UUID | None
    matching_transaction_id: UUID | None
    import_id: UUID | None
    created_by: str | None
    created_at: datetime
    updated_at: datetime
    lines: list[JournalLineResponse]


# Inter-entity Schemas
class TransferCreate(BaseModel):
    """Schema for an inter-entity transfer between two entities."""

    model_config = ConfigDict(str_strip_whitespace=True)

    source_entity_id: UUID
    target_entity_id: UUID
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    transfer_date: date
    description: str = ""
    source_transfer_account_code: str = Field(..., min_length=1)
    target_transfer_account_code: str = Field(..., min_length=1)
    source_cash_account_code: str = Field(..., min_length=1)
    target_cash_account_code: str = Field(..., min_length=1)
    source_fund_code: str | None = None
    target_fund_code: str | None = None
    reference_number: str | None = None
    post: bool = True


class TransferResponse(BaseModel):
    reference_number: str
    amount: str
    is_matched: bool
    source_entry: JournalEntryResponse
    target_entry: JournalEntryResponse | None


# Report Schemas
class ReportFieldResponse(CamelModel):
    name: str
    label: str
    field_type: str


class ReportFilterSchema(CamelModel):
    field: str
    operator: str
    value: Any = None


class ReportSortSchema(CamelModel):
    field: str
    direction: str = "ASC"


class ReportDefinitionSchema(CamelModel):
    data_source: str
    fields: list[str]
    filters: list[ReportFilterSchema] = Field(default_factory=list)
    group_by: str | None = None
    sort_by: list[ReportSortSchema] = Field(default_factory=list)
    limit: int | None = None

    def to_definition(self) -> ReportDefinition:
        return ReportDefinition(
            data_source=self.data_source,
            fields=list(self.fields),
            filters=[
                ReportFilter(field=f.field, operator=f.operator, value=f.value)
                for f in self.filters
            ],
            group_by=self.group_by,
            sort_by=[ReportSort(field=s.field, direction=s.direction) for s in self.sort_by],
            limit=self.limit,
        )


class SavedReportCreate(CamelModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: str = ""
    definition: ReportDefinitionSchema


class SavedReportResponse(CamelModel):
    id: UUID
    name: str
    description: str
    definition: dict[str, Any]
    created_at: datetime
    updated_at: datetime


class ReportResponse(CamelModel):
    report_name: str
    data: list[dict[str, Any]] = Field(default_factory=list)
    totals: dict[str, Any] = Field(default_factory=dict)
    fund: dict[str, Any] | None = None
    as_of_date: date | None = None
    start_date: date | None = None
    end_date: date | None = None


class CustomReportResponse(CamelModel):
    report_name: str
    data_source: str
    columns: list[str]
    data: list[dict[str, Any]]
    row_count: int
    row_limit: int


class ReportQueryRequest(CamelModel):
    query: str = ""


class ReportQueryResponse(CamelModel):
    original_query: str
    explanation: str
    matched_pattern: str
    report_definition: dict[str, Any]
    columns: list[str]
    results: list[dict[str, Any]]
    result_count: int


class ReportQuerySuggestions(CamelModel):
    suggestions: list[str]


# Import Schemas
class ImportSettingsSchema(CamelModel):
    skip_rows_with_missing_data: bool = False
    auto_create_master_records: bool = False
    transaction_grouping_column: str | None = None

    def to_settings(self) -> ImportSettings:
        return ImportSettings(
            skip_rows_with_missing_data=self.skip_rows_with_missing_data,
            auto_create_master_records=self.auto_create_master_records,
            transaction_grouping_column=self.transaction_grouping_column,
        )


class ImportValidateRequest(CamelModel):
    headers: list[str] = Field(..., min_length=1)
    rows: list[list[str]]
    mapping: dict[str, str | None] = Field(default_factory=dict)


class ImportProcessRequest(ImportValidateRequest):
    file_name: str | None = None
    date_format: str | None = None
    import_settings: ImportSettingsSchema = Field(default_factory=ImportSettingsSchema)
    default_entity_id: UUID | None = None


class ValidationSummarySchema(CamelModel):
    total_rows: int
    unique_transactions: int
    unbalanced_transactions: int
    missing_data: int


class ImportValidateResponse(CamelModel):
    is_valid: bool
    issues: list[str]
    summary: ValidationSummarySchema


class ImportAcceptedResponse(CamelModel):
    import_id: UUID
    status: str


class ImportJobResponse(CamelModel):
    id: UUID
    status: str
    file_name: str | None
    total_records: int
    processed_records: int
    total_rows: int
    entries_created: int
    progress: int
    errors: list[str]
    started_at: datetime
    completed_at: datetime | None
    rolled_back_at: datetime | None


class RollbackResponse(CamelModel):
    import_id: UUID
    deleted_entries: int
    status: str
