"""Tests for fund reports and custom reports."""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from fund_ledger.domain.journal import JournalEntry, JournalEntryLine
from fund_ledger.domain.value_objects import JournalEntryStatus
from fund_ledger.exceptions import (
    FundNotFoundError,
    InvalidReportDefinitionError,
    SavedReportNotFoundError,
    UnknownDataSourceError,
    UnknownFieldError,
    ValidationError,
)
from fund_ledger.services.report_compiler import (
    ReportDefinition,
    ReportFilter,
    ReportSort,
)


def _fund_line_entry(entity, reference, entry_date, debit, credit, amount, fund, posted=True):
    """Entry whose fund is carried only on the revenue or expense line."""
    value = Decimal(amount)
    debit_fund = fund if debit.account_type.value == "Expense" else None
    credit_fund = fund if credit.account_type.value == "Revenue" else None
    return JournalEntry(
        entity_id=entity.id,
        entry_date=entry_date,
        reference_number=reference,
        status=JournalEntryStatus.POSTED if posted else JournalEntryStatus.DRAFT,
        lines=[
            JournalEntryLine(
                account_id=debit.id,
                fund_id=debit_fund.id if debit_fund else None,
                debit_amount=value,
            ),
            JournalEntryLine(
                account_id=credit.id,
                fund_id=credit_fund.id if credit_fund else None,
                credit_amount=value,
            ),
        ],
    )


@pytest.fixture
def activity(ledger_service, org, accounts, funds):
    """A gift to the general fund, a program expense from it and one draft."""
    parent, general = org["parent"], funds["general"]
    for entry in (
        _fund_line_entry(
            parent, "JE-1", date(2024, 1, 10), accounts["cash"], accounts["revenue"],
            "1000", general,
        ),
        _fund_line_entry(
            parent, "JE-2", date(2024, 2, 10), accounts["expense"], accounts["cash"],
            "300", general,
        ),
        _fund_line_entry(
            parent, "JE-3", date(2024, 3, 5), accounts["expense"], accounts["cash"],
            "50", general, posted=False,
        ),
    ):
        ledger_service.create_journal_entry(entry)
    return funds


class TestFundReports:
    def test_fund_balance(self, reporting_service, activity):
        report = reporting_service.fund_balance(activity["general"].id)

        assert report["fund"]["code"] == "GEN"
        assert report["totals"] == {
            "total_debits": Decimal("300.00"),
            "total_credits": Decimal("1000.00"),
            "balance": Decimal("-700.00"),
        }

    def test_fund_balance_as_of(self, reporting_service, activity):
        report = reporting_service.fund_balance(activity["general"].id, date(2024, 1, 31))
        assert report["totals"]["balance"] == Decimal("-1000.00")

    def test_fund_balance_unknown_fund(self, reporting_service):
        with pytest.raises(FundNotFoundError):
            reporting_service.fund_balance(uuid4())

    def test_fund_activity_running_balance(self, reporting_service, activity):
        report = reporting_service.fund_activity(activity["general"].id)

        assert [row["reference_number"] for row in report["data"]] == ["JE-1", "JE-2"]
        assert [row["running_balance"] for row in report["data"]] == [
            Decimal("-1000.00"),
            Decimal("-700.00"),
        ]
        assert report["data"][0]["account_code"] == "4000"
        assert report["totals"]["opening_balance"] == Decimal("0.00")
        assert report["totals"]["closing_balance"] == Decimal("-700.00")

    def test_fund_activity_opening_balance(self, reporting_service, activity):
        report = reporting_service.fund_activity(
            activity["general"].id, start_date=date(2024, 2, 1)
        )

        assert len(report["data"]) == 1
        assert report["totals"]["opening_balance"] == Decimal("-1000.00")
        assert report["totals"]["total_debits"] == Decimal("300.00")
        assert report["totals"]["closing_balance"] == Decimal("-700.00")

    def test_fund_statement(self, reporting_service, activity):
        report = reporting_service.fund_statement(activity["general"].id)

        by_type = {row["account_type"]: row for row in report["data"]}
        assert set(by_type) == {"Revenue", "Expense"}
        assert by_type["Revenue"]["balance"] == Decimal("1000.00")
        assert by_type["Expense"]["balance"] == Decimal("300.00")
        assert report["totals"] == {
            "revenues": Decimal("1000.00"),
            "expenses": Decimal("300.00"),
            "net_change": Decimal("700.00"),
        }

    def test_funds_comparison(self, reporting_service, activity):
        report = reporting_service.funds_comparison(
            [activity["scholarship"].id, activity["general"].id]
        )

        assert [row["code"] for row in report["data"]] == ["SCH", "GEN"]
        assert report["totals"] == {
            "fund_count": 2,
            "total_balance": Decimal("-700.00"),
        }


class TestCustomReports:
    def test_custom_fields(self, reporting_service):
        names = [f.name for f in reporting_service.custom_fields("accounts")]
        assert names[0] == "code"
        assert "balance" in names

    def test_custom_fields_unknown_source(self, reporting_service):
        with pytest.raises(UnknownDataSourceError):
            reporting_service.custom_fields("users")

    def test_preview_reads_running_balances(self, reporting_service, activity):
        report = reporting_service.preview(
            ReportDefinition(
                data_source="funds",
                fields=["code", "balance"],
                sort_by=[ReportSort("code")],
            )
        )

        assert report["columns"] == ["code", "balance"]
        assert report["row_count"] == 2
        assert report["row_limit"] == 500
        assert [row["code"] for row in report["data"]] == ["GEN", "SCH"]
        assert Decimal(str(report["data"][0]["balance"])) == Decimal("-700")

    def test_preview_lines_with_filters(self, reporting_service, activity):
        report = reporting_service.preview(
            ReportDefinition(
                data_source="journal_entry_lines",
                fields=["reference_number", "account_code"],
                filters=[
                    ReportFilter("fund_code", "=", "GEN"),
                    ReportFilter("entry_status", "=", "Posted"),
                ],
                sort_by=[ReportSort("reference_number")],
            )
        )

        assert report["data"] == [
            {"reference_number": "JE-1", "account_code": "4000"},
            {"reference_number": "JE-2", "account_code": "5000"},
        ]

    def test_preview_respects_limit(self, reporting_service, activity):
        report = reporting_service.preview(
            ReportDefinition(data_source="journal_entries", fields=["reference_number"], limit=1)
        )
        assert report["row_count"] == 1

    def test_preview_hostile_value_matches_nothing(self, reporting_service, activity):
        report = reporting_service.preview(
            ReportDefinition(
                data_source="funds",
                fields=["code"],
                filters=[ReportFilter("name", "=", "x' OR '1'='1")],
            )
        )
        assert report["data"] == []

    def test_preview_rejects_unknown_field(self, reporting_service):
        with pytest.raises(UnknownFieldError):
            reporting_service.preview(
                ReportDefinition(data_source="funds", fields=["password"])
            )


class TestSavedReports:
    def test_save_get_and_delete(self, reporting_service):
        definition = ReportDefinition(data_source="accounts", fields=["code", "name"])

        saved = reporting_service.save_report("Chart of accounts", definition, "All accounts")

        fetched = reporting_service.get_saved_report(saved.id)
        assert fetched.name == "Chart of accounts"
        assert fetched.description == "All accounts"
        assert fetched.definition == definition.to_dict()
        assert fetched.data_source == "accounts"
        assert [r.id for r in reporting_service.list_saved_reports()] == [saved.id]

        reporting_service.delete_saved_report(saved.id)
        with pytest.raises(SavedReportNotFoundError):
            reporting_service.get_saved_report(saved.id)

    def test_invalid_definition_is_not_saved(self, reporting_service):
        with pytest.raises(UnknownFieldError):
            reporting_service.save_report(
                "Broken", ReportDefinition(data_source="funds", fields=["nope"])
            )
        assert reporting_service.list_saved_reports() == []

    def test_name_required(self, reporting_service):
        with pytest.raises(InvalidReportDefinitionError, match="name is required"):
            reporting_service.save_report(
                "  ", ReportDefinition(data_source="funds", fields=["code"])
            )

    def test_delete_unknown(self, reporting_service):
        with pytest.raises(SavedReportNotFoundError):
            reporting_service.delete_saved_report(uuid4())


class TestJournalLines:
    def test_posted_lines_only(self, reporting_service, activity):
        report = reporting_service.journal_lines()

        assert [line["reference_number"] for line in report["data"]] == [
            "JE-1", "JE-1", "JE-2", "JE-2",
        ]
        assert report["totals"] == {
            "line_count": 4,
            "total_debits": Decimal("1300.00"),
            "total_credits": Decimal("1300.00"),
        }

    def test_fund_filter_carries_codes(self, reporting_service, activity):
        report = reporting_service.journal_lines(fund_id=activity["general"].id)

        assert [line["account_code"] for line in report["data"]] == ["4000", "5000"]
        assert {line["fund_code"] for line in report["data"]} == {"GEN"}
        assert report["data"][1]["account_type"] == "Expense"
        assert report["data"][1]["fund_name"] == "General Fund"

    def test_entity_and_date_filters(self, reporting_service, activity, org):
        report = reporting_service.journal_lines(
            entity_id=org["parent"].id, start_date=date(2024, 2, 1), end_date=date(2024, 2, 28)
        )

        assert {line["reference_number"] for line in report["data"]} == {"JE-2"}
        assert report["start_date"] == date(2024, 2, 1)
        assert reporting_service.journal_lines(entity_id=org["child"].id)["data"] == []


class TestReportQueries:
    def test_balance_question(self, reporting_service, activity):
        answer = reporting_service.answer_query("What are the fund balances?")

        assert answer["matched_pattern"] == "fund_balances"
        assert answer["columns"] == ["name", "code", "type", "balance", "entity_name"]
        assert [row["name"] for row in answer["results"]] == [
            "General Fund",
            "Scholarship Fund",
        ]
        assert answer["result_count"] == 2
        assert answer["report_definition"]["data_source"] == "funds"

    def test_expense_question(self, reporting_service, activity):
        answer = reporting_service.answer_query("how much did we spend?")

        assert answer["matched_pattern"] == "expenses"
        assert answer["result_count"] == 2
        assert {row["account_name"] for row in answer["results"]} == {"Program Expenses"}

    def test_unmatched_question_lists_lines(self, reporting_service, activity):
        answer = reporting_service.answer_query("anything new?")

        assert answer["matched_pattern"] == "all_transactions"
        assert answer["result_count"] == 6
        assert answer["explanation"].endswith("Showing: all transactions")

    def test_blank_question(self, reporting_service):
        with pytest.raises(ValidationError, match="Query text is required"):
            reporting_service.answer_query("   ")

    def test_suggestions_name_funds(self, reporting_service, funds):
        suggestions = reporting_service.query_suggestions()

        assert suggestions[0] == "What are the fund balances?"
        assert "What is the balance for General Fund?" in suggestions
        assert "What is the balance for Scholarship Fund?" in suggestions
        assert len(suggestions) == 6
