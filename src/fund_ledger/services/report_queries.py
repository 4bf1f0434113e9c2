"""Plain-language report questions mapped onto allow-listed report definitions.

A question is matched against a short list of keyword patterns. The first
pattern that matches supplies a report definition, which is compiled and
run like any other custom report. Questions that match nothing list
recent journal entry lines.
"""

import re
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from fund_ledger.exceptions import ValidationError
from fund_ledger.services.report_compiler import ReportDefinition

MAX_SUGGESTIONS = 8
FUND_SUGGESTIONS = 5

BASE_SUGGESTIONS = (
    "What are the fund balances?",
    "Show me transactions in Q1",
    "What are the expenses over $1000?",
    "Show me revenue this year",
)

SOURCE_LABELS = {
    "funds": "funds",
    "journal_entry_lines": "journal entry lines",
}


@dataclass(frozen=True)
class QueryPattern:
    name: str
    pattern: re.Pattern[str]
    showing: str
    definition: dict[str, Any]


PATTERNS = (
    QueryPattern(
        name="fund_balances",
        pattern=re.compile(r"balance", re.IGNORECASE),
        showing="fund balances",
        definition={
            "data_source": "funds",
            "fields": ["name", "code", "type", "balance", "entity_name"],
            "sort_by": [{"field": "name", "direction": "ASC"}],
        },
    ),
    QueryPattern(
        name="expenses",
        pattern=re.compile(r"expense|spend", re.IGNORECASE),
        showing="expense transactions",
        definition={
            "data_source": "journal_entry_lines",
            "fields": ["entry_date", "account_name", "fund_name", "debit_amount", "description"],
            "filters": [{"field": "account_type", "operator": "=", "value": "Expense"}],
            "sort_by": [{"field": "entry_date", "direction": "DESC"}],
        },
    ),
    QueryPattern(
        name="revenue",
        pattern=re.compile(r"revenue|income|donation", re.IGNORECASE),
        showing="revenue transactions",
        definition={
            "data_source": "journal_entry_lines",
            "fields": ["entry_date", "account_name", "fund_name", "credit_amount", "description"],
            "filters": [{"field": "account_type", "operator": "=", "value": "Revenue"}],
            "sort_by": [{"field": "entry_date", "direction": "DESC"}],
        },
    ),
)

ALL_TRANSACTIONS = QueryPattern(
    name="all_transactions",
    pattern=re.compile(""),
    showing="all transactions",
    definition={
        "data_source": "journal_entry_lines",
        "fields": [
            "entry_date",
            "reference_number",
            "description",
            "debit_amount",
            "credit_amount",
        ],
        "sort_by": [{"field": "entry_date", "direction": "DESC"}],
    },
)


@dataclass(frozen=True)
class QueryInterpretation:
    query: str
    matched_pattern: str
    explanation: str
    definition: ReportDefinition


def interpret_query(query: str | None) -> QueryInterpretation:
    """Pick the report definition that answers a plain-language question.

    Raises:
        ValidationError: If the question is blank
    """
    text = (query or "").strip()
    if not text:
        raise ValidationError("Query text is required")

    match = next((p for p in PATTERNS if p.pattern.search(text)), ALL_TRANSACTIONS)
    definition = ReportDefinition.from_dict(match.definition)
    explanation = (
        f'I interpreted your query as: "{text}"\n\n'
        f"Searching in: {SOURCE_LABELS[definition.data_source]}\n"
        f"Showing: {match.showing}"
    )
    return QueryInterpretation(
        query=text,
        matched_pattern=match.name,
        explanation=explanation,
        definition=definition,
    )


def suggest_queries(fund_names: Iterable[str]) -> list[str]:
    """Example questions, followed by balance questions for a few funds."""
    suggestions = list(BASE_SUGGESTIONS)
    for index, name in enumerate(fund_names):
        if index == FUND_SUGGESTIONS:
            break
        suggestions.append(f"What is the balance for {name}?")
    return suggestions[:MAX_SUGGESTIONS]
