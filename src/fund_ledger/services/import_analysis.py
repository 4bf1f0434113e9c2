"""Pre-import analysis of tabular journal exports.

Works on a header row plus string rows and reports column types, a suggested
column mapping, unbalanced transactions, rows with missing data, duplicate
transactions and the master records (entities, funds, accounts) the file
refers to. Nothing is written to the ledger here.
"""

import re
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any

from dateutil import parser as date_parser

from fund_ledger.exceptions import MissingRequiredColumnsError, ValidationError
from fund_ledger.logging_config import get_logger

logger = get_logger(__name__)

SAMPLE_SIZE = 100
TYPE_THRESHOLD = 0.7
UNBALANCED_EPSILON = Decimal("0.001")
# Amount columns are NUMERIC(15, 2)
MAX_AMOUNT = Decimal("1e13")
MIN_MAPPED_COLUMNS = 5

# Target field -> header aliases, matched case-insensitively after trimming.
COLUMN_ALIASES: dict[str, tuple[str, ...]] = {
    "transactionId": ("transaction id", "journal id", "reference", "ref", "entry no"),
    "entryDate": ("date", "transaction date", "entry date"),
    "debit": ("debit", "debit amount", "dr"),
    "credit": ("credit", "credit amount", "cr"),
    "accountCode": ("account code", "account #", "gl code", "account"),
    "fundCode": ("fund code", "fund", "fund id"),
    "entityCode": ("entity code", "entity", "location"),
    "description": ("description", "memo", "note", "details"),
}

MAPPING_KEYS = tuple(COLUMN_ALIASES)
GROUPING_REQUIRED = ("transactionId", "debit", "credit")
ROW_REQUIRED = ("transactionId", "entryDate", "debit", "credit", "accountCode")

DATE_FORMATS: dict[str, str] = {
    "YYYY-MM-DD": "%Y-%m-%d",
    "MM/DD/YYYY": "%m/%d/%Y",
    "MM-DD-YYYY": "%m-%d-%Y",
}
_DATE_PATTERNS = (
    (re.compile(r"^\d{4}-\d{2}-\d{2}$"), "YYYY-MM-DD"),
    (re.compile(r"^\d{1,2}/\d{1,2}/\d{4}$"), "MM/DD/YYYY"),
    (re.compile(r"^\d{1,2}-\d{1,2}-\d{4}$"), "MM-DD-YYYY"),
)
UNKNOWN_DATE_FORMAT = "unknown"


class ColumnType(str, Enum):
    NUMBER = "Number"
    DATE = "Date"
    STRING = "String"


class Severity(str, Enum):
    INFO = "INFO"
    WARNING = "WARNING"
    CRITICAL = "CRITICAL"


def _to_decimal(value: str | None) -> Decimal | None:
    if value is None:
        return None
    text = str(value).strip().replace(",", "").replace("$", "")
    if not text:
        return None
    try:
        number = Decimal(text)
    except InvalidOperation:
        return None
    return number if number.is_finite() else None


def parse_number(value: str | None) -> Decimal | None:
    """Parse an amount cell, allowing thousands separators and a leading $.

    Values too large for a ledger amount column are treated as non-numeric.
    """
    number = _to_decimal(value)
    if number is None or abs(number) >= MAX_AMOUNT:
        return None
    return number


def parse_date(value: str | None, date_format: str | None = None) -> date | None:
    """Parse a date cell, preferring the configured format when one is known."""
    text = (value or "").strip()
    if not text:
        return None
    pattern = DATE_FORMATS.get(date_format or "")
    candidates = [pattern] if pattern else []
    candidates += [p for p in DATE_FORMATS.values() if p != pattern]
    for candidate in candidates:
        try:
            return datetime.strptime(text, candidate).date()
        except ValueError:
            continue
    if _to_decimal(text) is not None:
        return None
    try:
        return date_parser.parse(text).date()
    except (ValueError, OverflowError):
        return None


def detect_date_format(value: str) -> str | None:
    for pattern, name in _DATE_PATTERNS:
        if pattern.match(value.strip()):
            return name
    return None


@dataclass
class ColumnMapping:
    transaction_id: str | None = None
    entry_date: str | None = None
    debit: str | None = None
    credit: str | None = None
    account_code: str | None = None
    fund_code: str | None = None
    entity_code: str | None = None
    description: str | None = None

    _KEYS = {
        "transactionId": "transaction_id",
        "entryDate": "entry_date",
        "debit": "debit",
        "credit": "credit",
        "accountCode": "account_code",
        "fundCode": "fund_code",
        "entityCode": "entity_code",
        "description": "description",
    }

    @classmethod
    def from_dict(cls, data: dict[str, str | None] | None) -> "ColumnMapping":
        mapping = cls()
        for key, value in (data or {}).items():
            attr = cls._KEYS.get(key) or (key if key in cls._KEYS.values() else None)
            if attr is None:
                raise ValidationError(
                    f"Unknown mapping target: {key}", context={"target": key}
                )
            setattr(mapping, attr, value or None)
        return mapping

    def to_dict(self) -> dict[str, str]:
        return {
            key: getattr(self, attr)
            for key, attr in self._KEYS.items()
            if getattr(self, attr)
        }

    def get(self, key: str) -> str | None:
        return getattr(self, self._KEYS[key])

    def merged_with(self, fallback: "ColumnMapping") -> "ColumnMapping":
        return ColumnMapping(
            **{
                attr: getattr(self, attr) or getattr(fallback, attr)
                for attr in self._KEYS.values()
            }
        )

    @property
    def mapped_count(self) -> int:
        return len(self.to_dict())


@dataclass
class ImportSettings:
    skip_rows_with_missing_data: bool = False
    auto_create_master_records: bool = False
    transaction_grouping_column: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "skipRowsWithMissingData": self.skip_rows_with_missing_data,
            "autoCreateMasterRecords": self.auto_create_master_records,
            "transactionGroupingColumn": self.transaction_grouping_column,
        }


@dataclass
class ImportConfig:
    column_mapping: ColumnMapping
    source_format: str = "csv"
    date_format: str = UNKNOWN_DATE_FORMAT
    import_settings: ImportSettings = field(default_factory=ImportSettings)

    def to_dict(self) -> dict[str, Any]:
        return {
            "sourceFormat": self.source_format,
            "columnMapping": self.column_mapping.to_dict(),
            "dateFormat": self.date_format,
            "importSettings": self.import_settings.to_dict(),
        }


@dataclass
class ColumnAnalysis:
    header: str
    data_type: ColumnType
    non_empty: int
    sample_values: list[str] = field(default_factory=list)


@dataclass
class ColumnsReport:
    columns: list[ColumnAnalysis]
    date_format: str = UNKNOWN_DATE_FORMAT

    @property
    def data_types(self) -> dict[str, str]:
        return {c.header: c.data_type.value for c in self.columns}


@dataclass
class ImportLine:
    row_number: int
    transaction_id: str
    entry_date: str = ""
    account_code: str = ""
    fund_code: str = ""
    entity_code: str = ""
    debit: str = ""
    credit: str = ""
    description: str = ""

    @property
    def debit_amount(self) -> Decimal:
        return parse_number(self.debit) or Decimal("0")

    @property
    def credit_amount(self) -> Decimal:
        return parse_number(self.credit) or Decimal("0")


@dataclass
class UnbalancedTransaction:
    transaction_id: str
    total_debits: Decimal
    total_credits: Decimal
    difference: Decimal
    rows: list[int]

    def to_dict(self) -> dict[str, Any]:
        return {
            "transactionId": self.transaction_id,
            "totalDebits": f"{self.total_debits:.2f}",
            "totalCredits": f"{self.total_credits:.2f}",
            "difference": f"{self.difference:.2f}",
            "rows": self.rows,
        }


@dataclass
class MissingDataRow:
    row: int
    missing_fields: list[str]

    def to_dict(self) -> dict[str, Any]:
        return {"row": self.row, "missingFields": self.missing_fields}


@dataclass
class DuplicateTransaction:
    transaction_id: str
    duplicate_of: str
    rows: list[int]

    def to_dict(self) -> dict[str, Any]:
        return {
            "transactionId": self.transaction_id,
            "duplicateOf": self.duplicate_of,
            "rows": self.rows,
        }


@dataclass
class MasterRecordManifest:
    entities: list[str] = field(default_factory=list)
    funds: list[str] = field(default_factory=list)
    accounts: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, list[str]]:
        return {"entities": self.entities, "funds": self.funds, "accounts": self.accounts}


@dataclass
class Recommendation:
    severity: Severity
    message: str

    def __str__(self) -> str:
        if self.severity is Severity.INFO:
            return self.message
        return f"{self.severity.value}: {self.message}"


@dataclass
class ImportAnalysis:
    file_name: str | None
    file_size: int | None
    total_rows: int
    date_range: tuple[str | None, str | None]
    columns: ColumnsReport
    suggested_mapping: ColumnMapping
    unique_transactions: int
    unbalanced: list[UnbalancedTransaction]
    missing_data: list[MissingDataRow]
    duplicates: list[DuplicateTransaction]
    manifest: MasterRecordManifest
    recommendations: list[Recommendation]
    import_config: ImportConfig

    @property
    def has_critical_issues(self) -> bool:
        return any(r.severity is Severity.CRITICAL for r in self.recommendations)

    def to_dict(self) -> dict[str, Any]:
        size = f"{self.file_size / 1024:.2f} KB" if self.file_size is not None else None
        unique_transactions = self.unique_transactions
        return {
            "summary": {
                "fileName": self.file_name,
                "fileSize": size,
                "totalRows": self.total_rows,
                "dateRange": {
                    "startDate": self.date_range[0],
                    "endDate": self.date_range[1],
                },
                "detectedDateFormat": self.columns.date_format,
            },
            "volumeEstimates": {
                "totalTransactionLines": self.total_rows,
                "uniqueTransactions": unique_transactions,
                "averageLinesPerTransaction": (
                    round(self.total_rows / unique_transactions, 2)
                    if unique_transactions
                    else 0
                ),
                "uniqueEntities": len(self.manifest.entities),
                "uniqueFunds": len(self.manifest.funds),
                "uniqueAccounts": len(self.manifest.accounts),
            },
            "dataQualityIssues": {
                "unbalancedTransactions": [u.to_dict() for u in self.unbalanced],
                "rowsWithMissingData": [m.to_dict() for m in self.missing_data],
                "duplicateTransactions": [d.to_dict() for d in self.duplicates],
            },
            "masterRecordManifest": self.manifest.to_dict(),
            "columnAnalysis": {
                "headers": [c.header for c in self.columns.columns],
                "detectedDataTypes": self.columns.data_types,
                "suggestedMapping": self.suggested_mapping.to_dict(),
            },
            "recommendations": [str(r) for r in self.recommendations],
        }


@dataclass
class ValidationSummary:
    is_valid: bool
    issues: list[str]
    total_rows: int
    unique_transactions: int
    unbalanced_transactions: int
    missing_data: int


class ImportAnalyzer:
    """Analyzes tabular journal exports before they are imported.

    All row numbers reported are 1-based file rows, so the first data row
    (after the header) is row 2.
    """

    def analyze_columns(self, headers: list[str], rows: list[list[str]]) -> ColumnsReport:
        """Classify each column as Number, Date or String from a row sample.

        A column is Number when more than 70% of its non-blank sampled values
        parse as numbers, otherwise Date when more than 70% parse as dates.
        """
        sample = rows[:SAMPLE_SIZE]
        date_format = UNKNOWN_DATE_FORMAT
        columns: list[ColumnAnalysis] = []
        for index, header in enumerate(headers):
            values = [
                row[index].strip()
                for row in sample
                if index < len(row) and row[index] and row[index].strip()
            ]
            numbers = 0
            dates = 0
            for value in values:
                if parse_number(value) is not None:
                    numbers += 1
                elif parse_date(value) is not None:
                    dates += 1
                    if date_format == UNKNOWN_DATE_FORMAT:
                        date_format = detect_date_format(value) or UNKNOWN_DATE_FORMAT

            data_type = ColumnType.STRING
            if values and numbers / len(values) > TYPE_THRESHOLD:
                data_type = ColumnType.NUMBER
            elif values and dates / len(values) > TYPE_THRESHOLD:
                data_type = ColumnType.DATE
            columns.append(
                ColumnAnalysis(
                    header=header,
                    data_type=data_type,
                    non_empty=len(values),
                    sample_values=values[:3],
                )
            )
        return ColumnsReport(columns=columns, date_format=date_format)

    def suggest_mapping(self, headers: list[str]) -> ColumnMapping:
        suggested: dict[str, str] = {}
        for target, aliases in COLUMN_ALIASES.items():
            for header in headers:
                if header.strip().lower() in aliases:
                    suggested[target] = header
                    break
        return ColumnMapping.from_dict(suggested)

    def resolve_mapping(
        self,
        headers: list[str],
        mapping: ColumnMapping | dict[str, str | None] | None = None,
    ) -> ColumnMapping:
        """Combine an explicit mapping with suggestions and check it.

        Explicit entries win; unmapped targets fall back to the suggestion.

        Raises:
            ValidationError: If the mapping names a header not in the file
            MissingRequiredColumnsError: If transaction id, debit or credit
                cannot be mapped
        """
        if isinstance(mapping, dict) or mapping is None:
            mapping = ColumnMapping.from_dict(mapping)
        resolved = mapping.merged_with(self.suggest_mapping(headers))

        for target, header in resolved.to_dict().items():
            if header not in headers:
                raise ValidationError(
                    f"Mapped column '{header}' for {target} is not in the file",
                    context={"target": target, "header": header},
                )
        missing = [key for key in GROUPING_REQUIRED if not resolved.get(key)]
        if missing:
            raise MissingRequiredColumnsError(missing)
        return resolved

    def to_lines(
        self, headers: list[str], rows: list[list[str]], mapping: ColumnMapping
    ) -> list[ImportLine]:
        index = {header: i for i, header in enumerate(headers)}

        def cell(row: list[str], key: str) -> str:
            header = mapping.get(key)
            if not header or index[header] >= len(row):
                return ""
            return (row[index[header]] or "").strip()

        return [
            ImportLine(
                row_number=position + 2,
                transaction_id=cell(row, "transactionId"),
                entry_date=cell(row, "entryDate"),
                account_code=cell(row, "accountCode"),
                fund_code=cell(row, "fundCode"),
                entity_code=cell(row, "entityCode"),
                debit=cell(row, "debit"),
                credit=cell(row, "credit"),
                description=cell(row, "description"),
            )
            for position, row in enumerate(rows)
        ]

    def group_transactions(self, lines: list[ImportLine]) -> dict[str, list[ImportLine]]:
        """Group lines by transaction id in first-seen order.

        Lines with a blank id are skipped; find_missing_data reports them.
        """
        groups: dict[str, list[ImportLine]] = {}
        for line in lines:
            if line.transaction_id:
                groups.setdefault(line.transaction_id, []).append(line)
        return groups

    def validate_balances(
        self, groups: dict[str, list[ImportLine]]
    ) -> list[UnbalancedTransaction]:
        issues: list[UnbalancedTransaction] = []
        for transaction_id, lines in groups.items():
            total_debits = sum((line.debit_amount for line in lines), Decimal("0"))
            total_credits = sum((line.credit_amount for line in lines), Decimal("0"))
            difference = total_debits - total_credits
            if abs(difference) > UNBALANCED_EPSILON:
                issues.append(
                    UnbalancedTransaction(
                        transaction_id=transaction_id,
                        total_debits=total_debits.quantize(Decimal("0.01")),
                        total_credits=total_credits.quantize(Decimal("0.01")),
                        difference=difference.quantize(Decimal("0.01")),
                        rows=[line.row_number for line in lines],
                    )
                )
        return issues

    def find_missing_data(
        self, lines: list[ImportLine], mapping: ColumnMapping
    ) -> list[MissingDataRow]:
        attrs = {
            "transactionId": "transaction_id",
            "entryDate": "entry_date",
            "debit": "debit",
            "credit": "credit",
            "accountCode": "account_code",
        }
        issues: list[MissingDataRow] = []
        for line in lines:
            missing = [
                key
                for key in ROW_REQUIRED
                if not mapping.get(key) or not getattr(line, attrs[key])
            ]
            if missing:
                issues.append(MissingDataRow(row=line.row_number, missing_fields=missing))
        return issues

    def find_duplicates(
        self, groups: dict[str, list[ImportLine]]
    ) -> list[DuplicateTransaction]:
        """Transactions whose lines repeat an earlier transaction exactly.

        Lines are compared on date, account, fund, debit and credit without
        regard to their order.
        """
        seen: dict[tuple[tuple[str, ...], ...], str] = {}
        duplicates: list[DuplicateTransaction] = []
        for transaction_id, lines in groups.items():
            signature = tuple(
                sorted(
                    (
                        line.entry_date,
                        line.account_code,
                        line.fund_code,
                        str(line.debit_amount.quantize(Decimal("0.01"))),
                        str(line.credit_amount.quantize(Decimal("0.01"))),
                    )
                    for line in lines
                )
            )
            original = seen.get(signature)
            if original is None:
                seen[signature] = transaction_id
                continue
            duplicates.append(
                DuplicateTransaction(
                    transaction_id=transaction_id,
                    duplicate_of=original,
                    rows=[line.row_number for line in lines],
                )
            )
        return duplicates

    def build_manifest(self, lines: list[ImportLine]) -> MasterRecordManifest:
        manifest = MasterRecordManifest()
        for line in lines:
            for code, bucket in (
                (line.entity_code, manifest.entities),
                (line.fund_code, manifest.funds),
                (line.account_code, manifest.accounts),
            ):
                if code and code not in bucket:
                    bucket.append(code)
        return manifest

    def date_range(
        self, lines: list[ImportLine], date_format: str | None = None
    ) -> tuple[str | None, str | None]:
        dates = [
            parsed
            for parsed in (parse_date(line.entry_date, date_format) for line in lines)
            if parsed is not None
        ]
        if not dates:
            return None, None
        return min(dates).isoformat(), max(dates).isoformat()

    def analyze(
        self,
        headers: list[str],
        rows: list[list[str]],
        mapping: ColumnMapping | dict[str, str | None] | None = None,
        file_name: str | None = None,
        file_size: int | None = None,
        source_format: str = "csv",
    ) -> ImportAnalysis:
        """Produce the full pre-import report for a file.

        Raises:
            MissingRequiredColumnsError: If transaction id, debit or credit
                cannot be mapped
        """
        columns = self.analyze_columns(headers, rows)
        suggested = self.suggest_mapping(headers)
        resolved = self.resolve_mapping(headers, mapping)

        lines = self.to_lines(headers, rows, resolved)
        groups = self.group_transactions(lines)
        unbalanced = self.validate_balances(groups)
        missing = self.find_missing_data(lines, resolved)
        duplicates = self.find_duplicates(groups)
        manifest = self.build_manifest(lines)

        recommendations = [
            Recommendation(Severity.INFO, f"Prepare to import {len(rows)} transaction lines.")
        ]
        for label, codes, hint in (
            ("entities", manifest.entities, "Ensure these exist in the system before import."),
            ("funds", manifest.funds, "Ensure these exist in the system before import."),
            (
                "accounts",
                manifest.accounts,
                "Ensure these exist in the chart of accounts for the respective entities.",
            ),
        ):
            if codes:
                recommendations.append(
                    Recommendation(Severity.INFO, f"Found {len(codes)} unique {label}. {hint}")
                )
        if missing:
            recommendations.append(
                Recommendation(
                    Severity.CRITICAL,
                    f"Found {len(missing)} rows with missing required data. "
                    "These rows must be fixed before import.",
                )
            )
        if unbalanced:
            recommendations.append(
                Recommendation(
                    Severity.CRITICAL,
                    f"Found {len(unbalanced)} unbalanced journal entries. "
                    "Debits do not equal credits. These must be fixed.",
                )
            )
        if duplicates:
            recommendations.append(
                Recommendation(
                    Severity.WARNING,
                    f"Found {len(duplicates)} transactions that repeat an earlier "
                    "transaction line for line. Confirm they are not double entries.",
                )
            )
        if suggested.mapped_count < MIN_MAPPED_COLUMNS:
            recommendations.append(
                Recommendation(
                    Severity.WARNING,
                    "Could not automatically map all critical columns (Date, Debit, "
                    "Credit, Account, Transaction ID). Manual mapping is required.",
                )
            )

        import_config = ImportConfig(
            column_mapping=resolved,
            source_format=source_format,
            date_format=columns.date_format,
            import_settings=ImportSettings(
                transaction_grouping_column=resolved.transaction_id
            ),
        )

        logger.info(
            "import_file_analyzed",
            file_name=file_name,
            total_rows=len(rows),
            unique_transactions=len(groups),
            unbalanced=len(unbalanced),
            missing_data=len(missing),
            duplicates=len(duplicates),
        )
        return ImportAnalysis(
            file_name=file_name,
            file_size=file_size,
            total_rows=len(rows),
            date_range=self.date_range(lines, columns.date_format),
            columns=columns,
            suggested_mapping=suggested,
            unique_transactions=len(groups),
            unbalanced=unbalanced,
            missing_data=missing,
            duplicates=duplicates,
            manifest=manifest,
            recommendations=recommendations,
            import_config=import_config,
        )

    def validate(
        self,
        headers: list[str],
        rows: list[list[str]],
        mapping: ColumnMapping | dict[str, str | None] | None = None,
    ) -> ValidationSummary:
        resolved = self.resolve_mapping(headers, mapping)
        lines = self.to_lines(headers, rows, resolved)
        groups = self.group_transactions(lines)
        unbalanced = self.validate_balances(groups)
        missing = self.find_missing_data(lines, resolved)

        issues = [
            f"Row {item.row}: missing {', '.join(item.missing_fields)}" for item in missing
        ]
        issues += [
            f"Row {item.rows[0]}: transaction {item.transaction_id} is unbalanced "
            f"(debits {item.total_debits:.2f}, credits {item.total_credits:.2f}, "
            f"difference {item.difference:.2f})"
            for item in unbalanced
        ]
        return ValidationSummary(
            is_valid=not issues,
            issues=issues,
            total_rows=len(rows),
            unique_transactions=len(groups),
            unbalanced_transactions=len(unbalanced),
            missing_data=len(missing),
        )
