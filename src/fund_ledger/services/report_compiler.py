"""Compile custom report definitions into parameterized SQL.

Identifiers come only from the field registry; every filter value is bound
as a parameter in the backend's DB-API paramstyle.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any

from fund_ledger.config import MAX_REPORT_ROWS
from fund_ledger.exceptions import (
    InvalidOperatorError,
    InvalidReportDefinitionError,
    UnknownFieldError,
)
from fund_ledger.services.report_fields import (
    DataSource,
    DataSourceSchema,
    FieldDescriptor,
    FieldType,
    get_schema,
)


class FilterOperator(str, Enum):
    EQ = "="
    NE = "!="
    GT = ">"
    LT = "<"
    GE = ">="
    LE = "<="
    LIKE = "LIKE"
    ILIKE = "ILIKE"
    IN = "IN"

    @classmethod
    def parse(cls, value: "str | FilterOperator") -> "FilterOperator":
        if isinstance(value, FilterOperator):
            return value
        normalized = str(value).strip().upper()
        for member in cls:
            if member.value == normalized:
                return member
        raise InvalidOperatorError(str(value))


class ParamStyle(str, Enum):
    QMARK = "qmark"
    FORMAT = "format"
    NUMERIC = "numeric"

    def placeholder(self, position: int) -> str:
        if self is ParamStyle.FORMAT:
            return "%s"
        if self is ParamStyle.NUMERIC:
            return f"${position}"
        return "?"


_TRUE = {"true", "1", "yes", "y"}
_FALSE = {"false", "0", "no", "n"}


@dataclass
class ReportFilter:
    field: str
    operator: str
    value: Any


@dataclass
class ReportSort:
    field: str
    direction: str = "ASC"


@dataclass
class ReportDefinition:
    data_source: str
    fields: list[str]
    filters: list[ReportFilter] = field(default_factory=list)
    group_by: str | None = None
    sort_by: list[ReportSort] = field(default_factory=list)
    limit: int | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ReportDefinition":
        """Build a definition from a stored or submitted mapping.

        Both snake_case and camelCase keys are accepted.
        """
        if not isinstance(data, dict):
            raise InvalidReportDefinitionError("Report definition must be an object")

        def pick(*keys: str) -> Any:
            for key in keys:
                if key in data:
                    return data[key]
            return None

        try:
            filters = [
                ReportFilter(field=f["field"], operator=f["operator"], value=f.get("value"))
                for f in pick("filters") or []
            ]
            sort_by = [
                ReportSort(field=s["field"], direction=s.get("direction", "ASC"))
                for s in pick("sort_by", "sortBy") or []
            ]
        except (KeyError, TypeError, AttributeError) as e:
            raise InvalidReportDefinitionError(
                f"Malformed report definition: {e}"
            ) from e
        return cls(
            data_source=pick("data_source", "dataSource") or "",
            fields=list(pick("fields") or []),
            filters=filters,
            group_by=pick("group_by", "groupBy"),
            sort_by=sort_by,
            limit=pick("limit"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "data_source": self.data_source,
            "fields": list(self.fields),
            "filters": [
                {"field": f.field, "operator": f.operator, "value": f.value}
                for f in self.filters
            ],
            "group_by": self.group_by,
            "sort_by": [{"field": s.field, "direction": s.direction} for s in self.sort_by],
            "limit": self.limit,
        }


@dataclass(frozen=True)
class CompiledQuery:
    sql: str
    params: tuple[Any, ...]
    columns: tuple[str, ...] = ()


class ReportQueryCompiler:
    """Translate a ReportDefinition into a single SELECT statement.

    Args:
        paramstyle: DB-API paramstyle of the target connection
        supports_ilike: Whether the backend understands ILIKE; when False an
            ILIKE filter is rendered as LIKE
        row_limit: Upper bound on returned rows, never above MAX_REPORT_ROWS
    """

    def __init__(
        self,
        paramstyle: str | ParamStyle = ParamStyle.QMARK,
        supports_ilike: bool = False,
        row_limit: int = MAX_REPORT_ROWS,
    ) -> None:
        self._paramstyle = ParamStyle(paramstyle)
        self._supports_ilike = supports_ilike
        self._row_limit = max(1, min(row_limit, MAX_REPORT_ROWS))

    @property
    def row_limit(self) -> int:
        return self._row_limit

    def compile(self, definition: ReportDefinition) -> CompiledQuery:
        """Validate a definition against the registry and render it.

        Raises:
            UnknownDataSourceError: If the data source is not registered
            UnknownFieldError: If any referenced field is not allow-listed
            InvalidOperatorError: If a filter operator is not allow-listed
            InvalidReportDefinitionError: For empty selections, bad values,
                bad sort directions or limits
        """
        source = DataSource.parse(definition.data_source)
        schema = get_schema(source)

        if not definition.fields:
            raise InvalidReportDefinitionError(
                "Report definition must select at least one field",
                context={"data_source": source.value},
            )
        selected = [
            self._resolve(schema, source, name) for name in dict.fromkeys(definition.fields)
        ]

        params: list[Any] = []
        where = [
            self._render_filter(schema, source, report_filter, params)
            for report_filter in definition.filters
        ]

        grouped: list[FieldDescriptor] = []
        if definition.group_by:
            group_field = self._resolve(schema, source, definition.group_by)
            grouped = list({f.name: f for f in [group_field, *selected]}.values())

        order = [self._render_sort(schema, source, s, grouped) for s in definition.sort_by]

        sql = "SELECT " + ", ".join(f"{f.sql} AS {f.name}" for f in selected)
        sql += f" FROM {schema.from_clause}"
        if where:
            sql += " WHERE " + " AND ".join(where)
        if grouped:
            sql += " GROUP BY " + ", ".join(f.sql for f in grouped)
        if order:
            sql += " ORDER BY " + ", ".join(order)
        sql += f" LIMIT {self._effective_limit(definition.limit)}"

        return CompiledQuery(
            sql=sql,
            params=tuple(params),
            columns=tuple(f.name for f in selected),
        )

    def _resolve(
        self, schema: DataSourceSchema, source: DataSource, name: str
    ) -> FieldDescriptor:
        descriptor = schema.fields.get(name) if isinstance(name, str) else None
        if descriptor is None:
            raise UnknownFieldError(source.value, str(name))
        return descriptor

    def _render_filter(
        self,
        schema: DataSourceSchema,
        source: DataSource,
        report_filter: ReportFilter,
        params: list[Any],
    ) -> str:
        descriptor = self._resolve(schema, source, report_filter.field)
        operator = FilterOperator.parse(report_filter.operator)

        if report_filter.value is None:
            raise InvalidReportDefinitionError(
                f"Filter on '{descriptor.name}' requires a value",
                context={"field": descriptor.name},
            )

        if operator is FilterOperator.IN:
            values = report_filter.value
            if isinstance(values, str):
                values = values.split(",")
            elif not isinstance(values, (list, tuple)):
                values = [values]
            items = [v.strip() if isinstance(v, str) else v for v in values]
            items = [v for v in items if v != "" and v is not None]
            if not items:
                raise InvalidReportDefinitionError(
                    f"IN filter on '{descriptor.name}' needs at least one value",
                    context={"field": descriptor.name},
                )
            placeholders = []
            for item in items:
                params.append(self._coerce(descriptor, item))
                placeholders.append(self._paramstyle.placeholder(len(params)))
            return f"{descriptor.sql} IN ({', '.join(placeholders)})"

        if operator in (FilterOperator.LIKE, FilterOperator.ILIKE):
            if descriptor.field_type is not FieldType.STRING:
                raise InvalidReportDefinitionError(
                    f"{operator.value} only applies to text fields, not '{descriptor.name}'",
                    context={"field": descriptor.name, "operator": operator.value},
                )
            params.append(f"%{report_filter.value}%")
            keyword = (
                "ILIKE"
                if operator is FilterOperator.ILIKE and self._supports_ilike
                else "LIKE"
            )
            return f"{descriptor.sql} {keyword} {self._paramstyle.placeholder(len(params))}"

        params.append(self._coerce(descriptor, report_filter.value))
        return (
            f"{descriptor.sql} {operator.value} {self._paramstyle.placeholder(len(params))}"
        )

    def _render_sort(
        self,
        schema: DataSourceSchema,
        source: DataSource,
        sort: ReportSort,
        grouped: list[FieldDescriptor],
    ) -> str:
        descriptor = self._resolve(schema, source, sort.field)
        direction = str(sort.direction or "ASC").strip().upper()
        if direction not in ("ASC", "DESC"):
            raise InvalidReportDefinitionError(
                f"Sort direction must be ASC or DESC, got '{sort.direction}'",
                context={"field": descriptor.name},
            )
        if grouped and descriptor not in grouped:
            raise InvalidReportDefinitionError(
                f"Cannot sort by '{descriptor.name}' because it is not grouped",
                context={"field": descriptor.name},
            )
        return f"{descriptor.sql} {direction}"

    def _effective_limit(self, requested: Any) -> int:
        if requested is None:
            return self._row_limit
        if isinstance(requested, bool):
            raise InvalidReportDefinitionError("Limit must be a positive integer")
        try:
            limit = int(requested)
        except (TypeError, ValueError) as e:
            raise InvalidReportDefinitionError("Limit must be a positive integer") from e
        if limit < 1:
            raise InvalidReportDefinitionError("Limit must be a positive integer")
        return min(limit, self._row_limit)

    @staticmethod
    def _coerce(descriptor: FieldDescriptor, value: Any) -> Any:
        field_type = descriptor.field_type
        try:
            if field_type is FieldType.NUMBER:
                if isinstance(value, bool):
                    raise ValueError("boolean is not a number")
                number = Decimal(str(value).strip())
                if not number.is_finite():
                    raise ValueError(f"not a finite number: {value}")
                return number
            if field_type is FieldType.DATE:
                if isinstance(value, datetime):
                    return value.date().isoformat()
                if isinstance(value, date):
                    return value.isoformat()
                return date.fromisoformat(str(value).strip()).isoformat()
            if field_type is FieldType.BOOLEAN:
                if isinstance(value, bool):
                    return value
                text = str(value).strip().lower()
                if text in _TRUE:
                    return True
                if text in _FALSE:
                    return False
                raise ValueError(f"not a boolean: {value}")
        except (InvalidOperation, ValueError) as e:
            raise InvalidReportDefinitionError(
                f"Invalid {field_type.value} value for '{descriptor.name}': {value!r}",
                context={"field": descriptor.name},
            ) from e
        return str(value)
