"""Reporting package — multi-format output generation."""

from .csv_export import INVENTORY_COLUMNS, export_csv, record_to_row
from .json_export import export_json
from .markdown_report import export_markdown

__all__ = [
    "INVENTORY_COLUMNS",
    "export_csv",
    "export_json",
    "export_markdown",
    "record_to_row",
]
