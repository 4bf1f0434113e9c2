"""CSV and Excel readers producing header/row string tables for import."""

import csv
import io
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
from typing import Any

from openpyxl import load_workbook  # type: ignore[import-untyped]

from fund_ledger.exceptions import ValidationError

EXCEL_SUFFIXES = (".xlsx", ".xlsm")


@dataclass
class TabularData:
    headers: list[str]
    rows: list[list[str]] = field(default_factory=list)
    source_format: str = "csv"
    file_name: str | None = None
    file_size: int | None = None

    @property
    def row_count(self) -> int:
        return len(self.rows)

    def preview(self, limit: int = 10) -> list[list[str]]:
        return self.rows[:limit]


def _cell_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, float):
        return format(Decimal(str(value)).normalize(), "f")
    return str(value).strip()


def _normalize(raw_rows: list[list[Any]]) -> tuple[list[str], list[list[str]]]:
    rows = [[_cell_text(v) for v in row] for row in raw_rows]
    while rows and not any(rows[0]):
        rows.pop(0)
    if not rows:
        raise ValidationError("Import file is empty")

    headers = rows[0]
    while headers and not headers[-1]:
        headers.pop()
    if not headers:
        raise ValidationError("Import file has no header row")

    width = len(headers)
    data: list[list[str]] = []
    for row in rows[1:]:
        cells = (row + [""] * width)[:width]
        if any(cells):
            data.append(cells)
    return headers, data


def read_csv(content: bytes | str, file_name: str | None = None) -> TabularData:
    """Parse CSV text, tolerating a UTF-8 byte order mark."""
    if isinstance(content, bytes):
        try:
            text = content.decode("utf-8-sig")
        except UnicodeDecodeError as e:
            raise ValidationError(
                "CSV file must be UTF-8 encoded", context={"file_name": file_name}
            ) from e
        size = len(content)
    else:
        text = content.removeprefix("\ufeff")
        size = len(text.encode("utf-8"))

    headers, rows = _normalize(list(csv.reader(io.StringIO(text, newline=""))))
    return TabularData(
        headers=headers,
        rows=rows,
        source_format="csv",
        file_name=file_name,
        file_size=size,
    )


def read_excel(content: bytes, file_name: str | None = None) -> TabularData:
    """Parse the active worksheet of an Excel workbook."""
    try:
        wb = load_workbook(io.BytesIO(content), read_only=True, data_only=True)
    except Exception as e:
        raise ValidationError(
            f"Could not read Excel workbook: {e}", context={"file_name": file_name}
        ) from e

    try:
        ws = wb.active
        if ws is None:
            raise ValidationError("Excel workbook has no worksheet")
        raw_rows = [list(row) for row in ws.iter_rows(values_only=True)]
    finally:
        wb.close()

    headers, rows = _normalize(raw_rows)
    return TabularData(
        headers=headers,
        rows=rows,
        source_format="excel",
        file_name=file_name,
        file_size=len(content),
    )


def parse_upload(file_name: str, content: bytes) -> TabularData:
    """Dispatch on the file extension: Excel workbooks or CSV otherwise."""
    if Path(file_name or "").suffix.lower() in EXCEL_SUFFIXES:
        return read_excel(content, file_name)
    return read_csv(content, file_name)


def load_tabular(file_path: str) -> TabularData:
    path = Path(file_path)
    if not path.exists():
        raise FileNotFoundError(f"Import file not found: {file_path}")
    return parse_upload(path.name, path.read_bytes())
