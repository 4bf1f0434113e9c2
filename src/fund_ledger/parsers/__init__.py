"""File parsers for importing ledger transaction exports."""

from fund_ledger.parsers.tabular import (
    TabularData,
    load_tabular,
    parse_upload,
    read_csv,
    read_excel,
)

__all__ = [
    "TabularData",
    "load_tabular",
    "parse_upload",
    "read_csv",
    "read_excel",
]
