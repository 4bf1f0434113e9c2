"""Allow-listed fields that custom reports may select, filter, group and sort.

Nothing outside this registry ever reaches generated SQL as an identifier:
report definitions refer to fields by name and the compiler looks up the
SQL expression here.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType

from fund_ledger.exceptions import UnknownDataSourceError


class DataSource(str, Enum):
    JOURNAL_ENTRY_LINES = "journal_entry_lines"
    JOURNAL_ENTRIES = "journal_entries"
    FUNDS = "funds"
    ACCOUNTS = "accounts"

    @classmethod
    def parse(cls, value: "str | DataSource") -> "DataSource":
        try:
            return cls(value)
        except ValueError as e:
            raise UnknownDataSourceError(str(value)) from e


class FieldType(str, Enum):
    STRING = "string"
    NUMBER = "number"
    DATE = "date"
    BOOLEAN = "boolean"


@dataclass(frozen=True)
class FieldDescriptor:
    name: str
    sql: str
    field_type: FieldType
    label: str


@dataclass(frozen=True)
class DataSourceSchema:
    from_clause: str
    fields: Mapping[str, FieldDescriptor]

    @classmethod
    def build(cls, from_clause: str, *fields: FieldDescriptor) -> "DataSourceSchema":
        return cls(
            from_clause=from_clause,
            fields=MappingProxyType({f.name: f for f in fields}),
        )


def _field(name: str, sql: str, field_type: FieldType, label: str) -> FieldDescriptor:
    return FieldDescriptor(name=name, sql=sql, field_type=field_type, label=label)


S, N, D, B = FieldType.STRING, FieldType.NUMBER, FieldType.DATE, FieldType.BOOLEAN

_JOURNAL_ENTRY_LINES = DataSourceSchema.build(
    "journal_entry_lines jl"
    " JOIN journal_entries je ON je.id = jl.journal_entry_id"
    " JOIN accounts a ON a.id = jl.account_id"
    " LEFT JOIN funds f ON f.id = jl.fund_id"
    " JOIN entities e ON e.id = je.entity_id",
    _field("entry_date", "je.entry_date", D, "Entry Date"),
    _field("reference_number", "je.reference_number", S, "Reference"),
    _field("description", "je.description", S, "Entry Description"),
    _field("entry_status", "je.status", S, "Entry Status"),
    _field("debit_amount", "jl.debit_amount", N, "Debit"),
    _field("credit_amount", "jl.credit_amount", N, "Credit"),
    _field("line_description", "jl.description", S, "Line Description"),
    _field("account_code", "a.code", S, "Account Code"),
    _field("account_name", "a.name", S, "Account Name"),
    _field("account_type", "a.account_type", S, "Account Type"),
    _field("fund_code", "f.code", S, "Fund Code"),
    _field("fund_name", "f.name", S, "Fund Name"),
    _field("fund_type", "f.fund_type", S, "Fund Type"),
    _field("entity_name", "e.name", S, "Entity Name"),
    _field("entity_code", "e.code", S, "Entity Code"),
)

_JOURNAL_ENTRIES = DataSourceSchema.build(
    "journal_entries je JOIN entities e ON e.id = je.entity_id",
    _field("entry_date", "je.entry_date", D, "Entry Date"),
    _field("reference_number", "je.reference_number", S, "Reference"),
    _field("description", "je.description", S, "Description"),
    _field("total_amount", "je.total_amount", N, "Total Amount"),
    _field("status", "je.status", S, "Status"),
    _field("is_inter_entity", "je.is_inter_entity", B, "Inter-Entity"),
    _field("entity_code", "e.code", S, "Entity Code"),
    _field("entity_name", "e.name", S, "Entity Name"),
)

_FUNDS = DataSourceSchema.build(
    "funds f JOIN entities e ON e.id = f.entity_id",
    _field("code", "f.code", S, "Fund Code"),
    _field("name", "f.name", S, "Fund Name"),
    _field("type", "f.fund_type", S, "Fund Type"),
    _field("balance", "f.balance", N, "Balance"),
    _field("status", "f.status", S, "Status"),
    _field("description", "f.description", S, "Description"),
    _field("entity_name", "e.name", S, "Entity Name"),
)

_ACCOUNTS = DataSourceSchema.build(
    "accounts a JOIN entities e ON e.id = a.entity_id",
    _field("code", "a.code", S, "Account Code"),
    _field("name", "a.name", S, "Account Name"),
    _field("type", "a.account_type", S, "Account Type"),
    _field("balance", "a.balance", N, "Balance"),
    _field("status", "a.status", S, "Status"),
    _field("entity_name", "e.name", S, "Entity Name"),
)

REGISTRY: Mapping[DataSource, DataSourceSchema] = MappingProxyType(
    {
        DataSource.JOURNAL_ENTRY_LINES: _JOURNAL_ENTRY_LINES,
        DataSource.JOURNAL_ENTRIES: _JOURNAL_ENTRIES,
        DataSource.FUNDS: _FUNDS,
        DataSource.ACCOUNTS: _ACCOUNTS,
    }
)

_missing = set(DataSource) - set(REGISTRY)
if _missing:
    raise RuntimeError(
        f"Report field registry has no schema for: {sorted(m.value for m in _missing)}"
    )


def get_schema(source: str | DataSource) -> DataSourceSchema:
    return REGISTRY[DataSource.parse(source)]


def available_fields(source: str | DataSource) -> list[FieldDescriptor]:
    return list(get_schema(source).fields.values())
