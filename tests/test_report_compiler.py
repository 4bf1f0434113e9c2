"""Tests for the field registry and the report query compiler."""

from decimal import Decimal

import pytest

from fund_ledger.exceptions import (
    InvalidOperatorError,
    InvalidReportDefinitionError,
    UnknownDataSourceError,
    UnknownFieldError,
)
from fund_ledger.services.report_compiler import (
    FilterOperator,
    ReportDefinition,
    ReportFilter,
    ReportQueryCompiler,
    ReportSort,
)
from fund_ledger.services.report_fields import (
    REGISTRY,
    DataSource,
    FieldType,
    available_fields,
    get_schema,
)


@pytest.fixture
def compiler() -> ReportQueryCompiler:
    return ReportQueryCompiler()


def _definition(**overrides) -> ReportDefinition:
    values = dict(data_source="funds", fields=["code", "name", "balance"])
    values.update(overrides)
    return ReportDefinition(**values)


class TestRegistry:
    def test_every_data_source_is_registered(self):
        assert set(REGISTRY) == set(DataSource)

    def test_unknown_source(self):
        with pytest.raises(UnknownDataSourceError):
            get_schema("donors")

    def test_field_types(self):
        fields = {f.name: f for f in available_fields("journal_entry_lines")}

        assert fields["debit_amount"].field_type is FieldType.NUMBER
        assert fields["entry_date"].field_type is FieldType.DATE
        assert fields["fund_code"].sql == "f.code"

    def test_registry_is_read_only(self):
        with pytest.raises(TypeError):
            get_schema("funds").fields["secret"] = None  # type: ignore[index]


class TestFilterOperator:
    @pytest.mark.parametrize("raw", ["=", "like", " ilike ", "in", ">="])
    def test_parse(self, raw):
        assert FilterOperator.parse(raw).value == raw.strip().upper()

    def test_rejects_unknown(self):
        with pytest.raises(InvalidOperatorError):
            FilterOperator.parse("; DROP TABLE funds")


class TestCompile:
    def test_select_with_default_limit(self, compiler):
        query = compiler.compile(_definition())

        assert query.sql == (
            "SELECT f.code AS code, f.name AS name, f.balance AS balance"
            " FROM funds f JOIN entities e ON e.id = f.entity_id LIMIT 500"
        )
        assert query.params == ()
        assert query.columns == ("code", "name", "balance")

    def test_duplicate_fields_are_selected_once(self, compiler):
        query = compiler.compile(_definition(fields=["code", "code"]))
        assert query.columns == ("code",)

    def test_requires_fields(self, compiler):
        with pytest.raises(InvalidReportDefinitionError, match="at least one field"):
            compiler.compile(_definition(fields=[]))

    def test_unknown_source(self, compiler):
        with pytest.raises(UnknownDataSourceError):
            compiler.compile(_definition(data_source="pg_catalog.pg_user"))

    def test_unknown_field(self, compiler):
        with pytest.raises(UnknownFieldError):
            compiler.compile(_definition(fields=["code", "1; DROP TABLE funds"]))

    def test_field_from_another_source_is_unknown(self, compiler):
        with pytest.raises(UnknownFieldError):
            compiler.compile(_definition(fields=["debit_amount"]))

    def test_comparison_filters_are_bound(self, compiler):
        query = compiler.compile(
            _definition(
                filters=[
                    ReportFilter("balance", ">", "100.5"),
                    ReportFilter("type", "=", "unrestricted"),
                ]
            )
        )

        assert " WHERE f.balance > ? AND f.fund_type = ?" in query.sql
        assert query.params == (Decimal("100.5"), "unrestricted")

    def test_value_is_never_inlined(self, compiler):
        hostile = "x' OR '1'='1"
        query = compiler.compile(_definition(filters=[ReportFilter("name", "=", hostile)]))

        assert hostile not in query.sql
        assert query.params == (hostile,)

    def test_in_with_list(self, compiler):
        query = compiler.compile(
            _definition(filters=[ReportFilter("code", "IN", ["GEN", "SCH"])])
        )

        assert "f.code IN (?, ?)" in query.sql
        assert query.params == ("GEN", "SCH")

    def test_in_with_comma_string(self, compiler):
        query = compiler.compile(
            _definition(filters=[ReportFilter("code", "in", "GEN, SCH ,")])
        )
        assert query.params == ("GEN", "SCH")

    def test_empty_in_rejected(self, compiler):
        with pytest.raises(InvalidReportDefinitionError, match="at least one value"):
            compiler.compile(_definition(filters=[ReportFilter("code", "IN", " , ")]))

    def test_missing_filter_value(self, compiler):
        with pytest.raises(InvalidReportDefinitionError, match="requires a value"):
            compiler.compile(_definition(filters=[ReportFilter("code", "=", None)]))

    def test_like_wraps_value(self, compiler):
        query = compiler.compile(
            _definition(filters=[ReportFilter("name", "LIKE", "Scholar")])
        )

        assert "f.name LIKE ?" in query.sql
        assert query.params == ("%Scholar%",)

    def test_ilike_falls_back_to_like(self, compiler):
        query = compiler.compile(_definition(filters=[ReportFilter("name", "ILIKE", "gen")]))
        assert "f.name LIKE ?" in query.sql
        assert "ILIKE" not in query.sql

    def test_ilike_kept_when_supported(self):
        compiler = ReportQueryCompiler(paramstyle="format", supports_ilike=True)
        query = compiler.compile(_definition(filters=[ReportFilter("name", "ILIKE", "gen")]))
        assert "f.name ILIKE %s" in query.sql

    def test_like_on_number_rejected(self, compiler):
        with pytest.raises(InvalidReportDefinitionError, match="text fields"):
            compiler.compile(_definition(filters=[ReportFilter("balance", "LIKE", "1")]))

    def test_unknown_operator(self, compiler):
        with pytest.raises(InvalidOperatorError):
            compiler.compile(_definition(filters=[ReportFilter("code", "BETWEEN", "A")]))

    @pytest.mark.parametrize("value", ["abc", "NaN", "Infinity", True])
    def test_number_values_must_be_finite_numbers(self, compiler, value):
        with pytest.raises(InvalidReportDefinitionError, match="Invalid number"):
            compiler.compile(_definition(filters=[ReportFilter("balance", ">", value)]))

    def test_date_values_are_normalized(self, compiler):
        query = compiler.compile(
            ReportDefinition(
                data_source="journal_entries",
                fields=["reference_number"],
                filters=[ReportFilter("entry_date", ">=", " 2024-01-01 ")],
            )
        )
        assert query.params == ("2024-01-01",)

    def test_bad_date_rejected(self, compiler):
        with pytest.raises(InvalidReportDefinitionError, match="Invalid date"):
            compiler.compile(
                ReportDefinition(
                    data_source="journal_entries",
                    fields=["reference_number"],
                    filters=[ReportFilter("entry_date", "=", "01/15/2024")],
                )
            )

    def test_boolean_values(self, compiler):
        query = compiler.compile(
            ReportDefinition(
                data_source="journal_entries",
                fields=["reference_number"],
                filters=[ReportFilter("is_inter_entity", "=", "yes")],
            )
        )
        assert query.params == (True,)

    def test_sort(self, compiler):
        query = compiler.compile(
            _definition(sort_by=[ReportSort("balance", "desc"), ReportSort("code")])
        )
        assert " ORDER BY f.balance DESC, f.code ASC LIMIT" in query.sql

    def test_bad_sort_direction(self, compiler):
        with pytest.raises(InvalidReportDefinitionError, match="ASC or DESC"):
            compiler.compile(_definition(sort_by=[ReportSort("code", "sideways")]))

    def test_group_by_includes_selected_fields(self, compiler):
        query = compiler.compile(
            _definition(fields=["type"], group_by="status", sort_by=[ReportSort("type")])
        )
        assert " GROUP BY f.status, f.fund_type ORDER BY f.fund_type ASC" in query.sql

    def test_sort_outside_group_rejected(self, compiler):
        with pytest.raises(InvalidReportDefinitionError, match="not grouped"):
            compiler.compile(
                _definition(fields=["type"], group_by="type", sort_by=[ReportSort("name")])
            )

    @pytest.mark.parametrize(("requested", "expected"), [(10, 10), (5000, 500), ("25", 25)])
    def test_limit_is_clamped(self, compiler, requested, expected):
        query = compiler.compile(_definition(limit=requested))
        assert query.sql.endswith(f"LIMIT {expected}")

    @pytest.mark.parametrize("requested", [0, -1, "ten", True])
    def test_invalid_limit(self, compiler, requested):
        with pytest.raises(InvalidReportDefinitionError, match="positive integer"):
            compiler.compile(_definition(limit=requested))

    def test_configured_row_limit_never_exceeds_maximum(self):
        assert ReportQueryCompiler(row_limit=10_000).row_limit == 500
        assert ReportQueryCompiler(row_limit=50).row_limit == 50


class TestParamStyles:
    def test_format(self):
        compiler = ReportQueryCompiler(paramstyle="format")
        query = compiler.compile(
            _definition(filters=[ReportFilter("code", "IN", ["A", "B"])])
        )
        assert "f.code IN (%s, %s)" in query.sql

    def test_numeric_positions_continue_across_filters(self):
        compiler = ReportQueryCompiler(paramstyle="numeric")
        query = compiler.compile(
            _definition(
                filters=[
                    ReportFilter("code", "IN", ["A", "B"]),
                    ReportFilter("balance", ">", 0),
                ]
            )
        )
        assert "f.code IN ($1, $2) AND f.balance > $3" in query.sql


class TestReportDefinition:
    def test_from_camel_case_dict(self):
        definition = ReportDefinition.from_dict(
            {
                "dataSource": "accounts",
                "fields": ["code"],
                "filters": [{"field": "type", "operator": "=", "value": "asset"}],
                "sortBy": [{"field": "code", "direction": "DESC"}],
                "groupBy": None,
                "limit": 20,
            }
        )

        assert definition.data_source == "accounts"
        assert definition.filters[0].value == "asset"
        assert definition.sort_by[0].direction == "DESC"
        assert definition.limit == 20

    def test_to_dict_round_trips_through_from_dict(self):
        definition = _definition(
            filters=[ReportFilter("code", "=", "GEN")], sort_by=[ReportSort("name")]
        )
        assert ReportDefinition.from_dict(definition.to_dict()) == definition

    def test_malformed_filter(self):
        with pytest.raises(InvalidReportDefinitionError, match="Malformed"):
            ReportDefinition.from_dict({"dataSource": "funds", "filters": [{"value": 1}]})

    def test_non_object(self):
        with pytest.raises(InvalidReportDefinitionError):
            ReportDefinition.from_dict(["funds"])  # type: ignore[arg-type]
