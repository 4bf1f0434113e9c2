"""Reporting service implementation for fund reports and custom reports."""

from __future__ import annotations

from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID

from fund_ledger.config import MAX_REPORT_ROWS
from fund_ledger.domain.entities import Account, Fund
from fund_ledger.domain.reports import SavedReport
from fund_ledger.domain.value_objects import AccountType
from fund_ledger.exceptions import (
    FundNotFoundError,
    InvalidReportDefinitionError,
    SavedReportNotFoundError,
)
from fund_ledger.logging_config import get_logger
from fund_ledger.repositories.interfaces import (
    AccountRepository,
    Database,
    FundRepository,
    JournalEntryRepository,
    SavedReportRepository,
)
from fund_ledger.services.interfaces import ReportingService
from fund_ledger.services.report_compiler import ReportDefinition, ReportQueryCompiler
from fund_ledger.services.report_fields import FieldDescriptor, available_fields
from fund_ledger.services.report_queries import interpret_query, suggest_queries

logger = get_logger(__name__)

ZERO = Decimal("0.00")


def _fund_info(fund: Fund) -> dict[str, Any]:
    return {
        "id": fund.id,
        "entity_id": fund.entity_id,
        "code": fund.code,
        "name": fund.name,
        "fund_type": fund.fund_type.value,
        "status": fund.status.value,
    }


class ReportingServiceImpl(ReportingService):
    """Implementation of ReportingService for fund and custom reports.

    Fund reports aggregate posted journal entry lines only. Custom reports
    are compiled against the field registry and executed through the
    database's read path, capped at MAX_REPORT_ROWS rows.
    """

    def __init__(
        self,
        database: Database,
        fund_repo: FundRepository,
        account_repo: AccountRepository,
        journal_repo: JournalEntryRepository,
        saved_report_repo: SavedReportRepository,
        row_limit: int = MAX_REPORT_ROWS,
    ) -> None:
        self._db = database
        self._fund_repo = fund_repo
        self._account_repo = account_repo
        self._journal_repo = journal_repo
        self._saved_report_repo = saved_report_repo
        self._compiler = ReportQueryCompiler(
            paramstyle=database.paramstyle,
            supports_ilike=database.supports_ilike,
            row_limit=row_limit,
        )

    @property
    def compiler(self) -> ReportQueryCompiler:
        return self._compiler

    # ------------------------------------------------------------------
    # Fund reports
    # ------------------------------------------------------------------

    def fund_balance(self, fund_id: UUID, as_of_date: date | None = None) -> dict[str, Any]:
        """Total debits, total credits and balance (debits minus credits) of a fund."""
        fund = self._get_fund(fund_id)
        lines = self._journal_repo.list_posted_lines(fund_id=fund_id, end_date=as_of_date)
        total_debits = sum((line.debit_amount for line in lines), ZERO)
        total_credits = sum((line.credit_amount for line in lines), ZERO)
        return {
            "report_name": "Fund Balance",
            "as_of_date": as_of_date,
            "fund": _fund_info(fund),
            "totals": {
                "total_debits": total_debits,
                "total_credits": total_credits,
                "balance": total_debits - total_credits,
            },
        }

    def fund_activity(
        self,
        fund_id: UUID,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> dict[str, Any]:
        """Posted lines touching a fund in date order, with a running balance.

        When a start date is given the opening balance covers all posted
        activity before it.
        """
        fund = self._get_fund(fund_id)
        accounts = {a.id: a for a in self._account_repo.list_by_entity(fund.entity_id)}

        opening_balance = ZERO
        if start_date is not None:
            opening_balance = sum(
                (
                    line.net_amount
                    for line in self._journal_repo.list_posted_lines(fund_id=fund_id)
                    if line.entry_date < start_date
                ),
                ZERO,
            )

        running = opening_balance
        total_debits = ZERO
        total_credits = ZERO
        data: list[dict[str, Any]] = []
        for line in self._journal_repo.list_posted_lines(
            fund_id=fund_id, start_date=start_date, end_date=end_date
        ):
            running += line.net_amount
            total_debits += line.debit_amount
            total_credits += line.credit_amount
            account = accounts.get(line.account_id)
            data.append(
                {
                    "entry_id": line.entry_id,
                    "entry_date": line.entry_date,
                    "reference_number": line.reference_number,
                    "description": line.description or line.entry_description,
                    "account_code": account.code if account else None,
                    "account_name": account.name if account else None,
                    "debit_amount": line.debit_amount,
                    "credit_amount": line.credit_amount,
                    "running_balance": running,
                }
            )

        return {
            "report_name": "Fund Activity",
            "start_date": start_date,
            "end_date": end_date,
            "fund": _fund_info(fund),
            "data": data,
            "totals": {
                "opening_balance": opening_balance,
                "total_debits": total_debits,
                "total_credits": total_credits,
                "closing_balance": running,
            },
        }

    def fund_statement(self, fund_id: UUID, as_of_date: date | None = None) -> dict[str, Any]:
        """Fund activity by account type, with revenues, expenses and net change."""
        fund = self._get_fund(fund_id)
        account_types = {
            a.id: a.account_type for a in self._account_repo.list_by_entity(fund.entity_id)
        }

        by_type: dict[AccountType, dict[str, Decimal]] = defaultdict(
            lambda: {"total_debits": ZERO, "total_credits": ZERO, "balance": ZERO}
        )
        for line in self._journal_repo.list_posted_lines(fund_id=fund_id, end_date=as_of_date):
            account_type = account_types[line.account_id]
            bucket = by_type[account_type]
            bucket["total_debits"] += line.debit_amount
            bucket["total_credits"] += line.credit_amount
            bucket["balance"] += account_type.signed(line.debit_amount, line.credit_amount)

        data = [
            {"account_type": account_type.value, **by_type[account_type]}
            for account_type in AccountType
            if account_type in by_type
        ]
        revenues = by_type.get(AccountType.REVENUE, {}).get("balance", ZERO)
        expenses = by_type.get(AccountType.EXPENSE, {}).get("balance", ZERO)
        return {
            "report_name": "Fund Statement",
            "as_of_date": as_of_date,
            "fund": _fund_info(fund),
            "data": data,
            "totals": {
                "revenues": revenues,
                "expenses": expenses,
                "net_change": revenues - expenses,
            },
        }

    def funds_comparison(self, fund_ids: list[UUID]) -> dict[str, Any]:
        """Balance row for each requested fund, in request order."""
        data: list[dict[str, Any]] = []
        total = ZERO
        for fund_id in fund_ids:
            report = self.fund_balance(fund_id)
            total += report["totals"]["balance"]
            data.append({**report["fund"], **report["totals"]})
        return {
            "report_name": "Funds Comparison",
            "data": data,
            "totals": {"fund_count": len(data), "total_balance": total},
        }

    def journal_lines(
        self,
        fund_id: UUID | None = None,
        entity_id: UUID | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> dict[str, Any]:
        """Posted lines matching every given filter, with account and fund codes."""
        accounts: dict[UUID, Account | None] = {}
        funds: dict[UUID, Fund | None] = {}
        data: list[dict[str, Any]] = []
        total_debits = ZERO
        total_credits = ZERO
        for line in self._journal_repo.list_posted_lines(
            fund_id=fund_id, entity_id=entity_id, start_date=start_date, end_date=end_date
        ):
            if line.account_id not in accounts:
                accounts[line.account_id] = self._account_repo.get(line.account_id)
            account = accounts[line.account_id]
            fund = None
            if line.fund_id is not None:
                if line.fund_id not in funds:
                    funds[line.fund_id] = self._fund_repo.get(line.fund_id)
                fund = funds[line.fund_id]
            total_debits += line.debit_amount
            total_credits += line.credit_amount
            data.append(
                {
                    "entry_id": line.entry_id,
                    "entity_id": line.entity_id,
                    "entry_date": line.entry_date,
                    "reference_number": line.reference_number,
                    "entry_description": line.entry_description,
                    "account_id": line.account_id,
                    "account_code": account.code if account else None,
                    "account_name": account.name if account else None,
                    "account_type": account.account_type.value if account else None,
                    "fund_id": line.fund_id,
                    "fund_code": fund.code if fund else None,
                    "fund_name": fund.name if fund else None,
                    "fund_type": fund.fund_type.value if fund else None,
                    "debit_amount": line.debit_amount,
                    "credit_amount": line.credit_amount,
                    "description": line.description,
                }
            )
        return {
            "report_name": "Journal Entry Lines",
            "start_date": start_date,
            "end_date": end_date,
            "data": data,
            "totals": {
                "line_count": len(data),
                "total_debits": total_debits,
                "total_credits": total_credits,
            },
        }

    def _get_fund(self, fund_id: UUID) -> Fund:
        fund = self._fund_repo.get(fund_id)
        if fund is None:
            raise FundNotFoundError(fund_id)
        return fund

    # ------------------------------------------------------------------
    # Custom reports
    # ------------------------------------------------------------------

    def custom_fields(self, data_source: str) -> list[FieldDescriptor]:
        return available_fields(data_source)

    def preview(self, definition: ReportDefinition) -> dict[str, Any]:
        """Compile and run a custom report definition.

        Raises:
            ValidationError: If the definition references anything outside
                the field registry
            ReportExecutionError: If the database rejects the query
        """
        compiled = self._compiler.compile(definition)
        rows = self._db.fetch_all(compiled.sql, compiled.params)
        logger.info(
            "custom_report_executed",
            data_source=definition.data_source,
            field_count=len(compiled.columns),
            row_count=len(rows),
        )
        return {
            "report_name": "Custom Report",
            "data_source": definition.data_source,
            "columns": list(compiled.columns),
            "data": rows,
            "row_count": len(rows),
            "row_limit": self._compiler.row_limit,
        }

    def save_report(
        self,
        name: str,
        definition: ReportDefinition,
        description: str = "",
    ) -> SavedReport:
        if not name or not name.strip():
            raise InvalidReportDefinitionError("Saved report name is required")
        self._compiler.compile(definition)
        report = SavedReport(
            name=name.strip(),
            definition=definition.to_dict(),
            description=description,
        )
        self._saved_report_repo.add(report)
        logger.info(
            "saved_report_created",
            report_id=str(report.id),
            data_source=definition.data_source,
        )
        return report

    def list_saved_reports(self) -> list[SavedReport]:
        return list(self._saved_report_repo.list_all())

    def get_saved_report(self, report_id: UUID) -> SavedReport:
        report = self._saved_report_repo.get(report_id)
        if report is None:
            raise SavedReportNotFoundError(report_id)
        return report

    def delete_saved_report(self, report_id: UUID) -> None:
        self.get_saved_report(report_id)
        self._saved_report_repo.delete(report_id)
        logger.info("saved_report_deleted", report_id=str(report_id))

    # ------------------------------------------------------------------
    # Plain-language queries
    # ------------------------------------------------------------------

    def query_suggestions(self) -> list[str]:
        return suggest_queries(fund.name for fund in self._fund_repo.list_all())

    def answer_query(self, query: str) -> dict[str, Any]:
        """Answer a plain-language question through the custom report path.

        Raises:
            ValidationError: If the question is blank
        """
        interpretation = interpret_query(query)
        result = self.preview(interpretation.definition)
        logger.info(
            "report_query_answered",
            matched_pattern=interpretation.matched_pattern,
            row_count=result["row_count"],
        )
        return {
            "original_query": interpretation.query,
            "explanation": interpretation.explanation,
            "matched_pattern": interpretation.matched_pattern,
            "report_definition": interpretation.definition.to_dict(),
            "columns": result["columns"],
            "results": result["data"],
            "result_count": result["row_count"],
        }
