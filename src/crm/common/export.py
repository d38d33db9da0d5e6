"""Tabular export of CRM records to CSV, JSON, and XLSX.

Rows are plain dicts (``model_dump()`` of the read schemas). Column sets
pick and format the fields that appear in each export.
"""

from __future__ import annotations

import io
import json
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any

from openpyxl import Workbook
from openpyxl.styles import Font

NO_DATA_MESSAGE = "No data to export"

CSV_MEDIA_TYPE = "text/csv"
JSON_MEDIA_TYPE = "application/json"
XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


@dataclass(frozen=True)
class ExportColumn:
    key: str
    header: str
    formatter: Callable[[Any], str] | None = None


def format_cell(value: Any) -> str:
    """Default rendering for a cell with no column formatter."""
    if value is None:
        return ""
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return "; ".join(format_cell(v) for v in value)
    if isinstance(value, dict):
        return json.dumps(value, default=str)
    return str(value)


def _render(row: dict[str, Any], column: ExportColumn) -> str:
    value = row.get(column.key)
    if column.formatter is not None:
        return column.formatter(value)
    return format_cell(value)


def _quote(text: str) -> str:
    return '"' + text.replace('"', '""') + '"'


def export_to_csv(rows: Sequence[dict[str, Any]], columns: Sequence[ExportColumn]) -> str:
    """Header line then one line per row; every cell quoted, lines joined by ``\\n``."""
    if not rows:
        raise ValueError(NO_DATA_MESSAGE)
    lines = [",".join(_quote(c.header) for c in columns)]
    lines.extend(",".join(_quote(_render(row, c)) for c in columns) for row in rows)
    return "\n".join(lines)


def export_to_json(rows: Sequence[dict[str, Any]]) -> str:
    if not rows:
        raise ValueError(NO_DATA_MESSAGE)
    return json.dumps(list(rows), indent=2, default=format_cell)


def export_to_excel(
    rows: Sequence[dict[str, Any]],
    columns: Sequence[ExportColumn],
    sheet_title: str = "Export",
) -> bytes:
    """Build an XLSX workbook with a bold header row."""
    if not rows:
        raise ValueError(NO_DATA_MESSAGE)
    wb = Workbook()
    ws = wb.active
    ws.title = sheet_title[:31]
    ws.append([c.header for c in columns])
    for cell in ws[1]:
        cell.font = Font(bold=True)
    for row in rows:
        ws.append([_render(row, c) for c in columns])
    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


def export_filename(name: str, ext: str, today: date | None = None) -> str:
    return f"{name}_{(today or date.today()).isoformat()}.{ext}"


# ── Column sets ─────────────────────────────────────────────────────────────


def _money(value: Any) -> str:
    return f"${float(value or 0):.2f}"


def _short_date(value: Any) -> str:
    if not value:
        return ""
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return str(value)[:10]


CUSTOMER_COLUMNS: list[ExportColumn] = [
    ExportColumn("store_name", "Store Name"),
    ExportColumn("email", "Email"),
    ExportColumn("phone", "Phone"),
    ExportColumn("city", "City"),
    ExportColumn("province", "Province"),
    ExportColumn("postal_code", "Postal Code"),
    ExportColumn("status", "Status"),
    ExportColumn("type", "Type"),
    ExportColumn("created_at", "Created Date", _short_date),
]

DEAL_COLUMNS: list[ExportColumn] = [
    ExportColumn("title", "Deal Title"),
    ExportColumn("customer_name", "Customer", lambda v: v or ""),
    ExportColumn("value", "Value", _money),
    ExportColumn("stage", "Stage"),
    ExportColumn("probability", "Probability (%)", lambda v: f"{format_cell(v)}%"),
    ExportColumn("expected_close_date", "Expected Close Date", _short_date),
    ExportColumn("created_at", "Created Date", _short_date),
]

INVOICE_COLUMNS: list[ExportColumn] = [
    ExportColumn("invoice_number", "Invoice Number"),
    ExportColumn("customer_name", "Customer", lambda v: v or ""),
    ExportColumn("total", "Total", _money),
    ExportColumn("status", "Status"),
    ExportColumn("due_date", "Due Date", _short_date),
    ExportColumn("created_at", "Created Date", _short_date),
]

PRODUCT_COLUMNS: list[ExportColumn] = [
    ExportColumn("sku", "SKU"),
    ExportColumn("name", "Product Name"),
    ExportColumn("description", "Description"),
    ExportColumn("unit_price", "Unit Price", _money),
    ExportColumn("currency", "Currency"),
    ExportColumn("active", "Active", lambda v: "Yes" if v else "No"),
    ExportColumn("created_at", "Created Date", _short_date),
]

EXPORT_COLUMNS: dict[str, list[ExportColumn]] = {
    "customers": CUSTOMER_COLUMNS,
    "deals": DEAL_COLUMNS,
    "invoices": INVOICE_COLUMNS,
    "products": PRODUCT_COLUMNS,
}
