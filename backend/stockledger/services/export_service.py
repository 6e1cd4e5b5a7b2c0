# Overview: Spreadsheet export of stock reports (openpyxl workbooks as bytes).

"""
Workbook layout (every sheet):
- Row 1: report title with the window, merged across all columns
- Row 2: bold column headers
- Row 3+: data, money and quantity columns formatted "#,##0.00",
  movement dates written as real date cells
"""

from __future__ import annotations

from datetime import datetime
from io import BytesIO
from typing import Iterable, Sequence

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font
from openpyxl.utils import get_column_letter

from ..time_utils import parse_iso_datetime
from .reporting_service import movement_unit_price

XLSX_MIMETYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

NUMBER_FORMAT = "#,##0.00"
DATE_FORMAT = "yyyy-mm-dd hh:mm:ss"

EXPORT_TYPES = ("detailed", "summary")

# (header, row key, width, number format)
DETAILED_COLUMNS = [
    ("Date", "movement_date", 22, DATE_FORMAT),
    ("Product", "product_name", 30, None),
    ("Category", "product_category", 20, None),
    ("Quantity", "quantity_change", 14, NUMBER_FORMAT),
    ("Unit", "unit", 12, None),
    ("Unit Price", "unit_price", 14, NUMBER_FORMAT),
    ("Total Price", "total_price", 16, NUMBER_FORMAT),
    ("Kind", "movement_type", 12, None),
]

SUMMARY_COLUMNS = [
    ("Product", "product_name", 30, None),
    ("Category", "product_category", 20, None),
    ("Quantity", "quantity", 14, NUMBER_FORMAT),
    ("Unit", "unit", 12, None),
    ("Unit Price", "unit_price", 14, NUMBER_FORMAT),
    ("Total Price", "total_price", 16, NUMBER_FORMAT),
    ("Movements", "movement_count", 12, None),
]

STOCK_COLUMNS = [
    ("Product ID", "id", 12, None),
    ("Product", "name", 30, None),
    ("Category", "category", 20, None),
    ("Quantity", "current_quantity", 14, NUMBER_FORMAT),
    ("Unit", "unit", 12, None),
    ("Total Value", "total_value", 16, NUMBER_FORMAT),
    ("Movements", "movement_count", 12, None),
]


def export_filename(report_type: str, start: datetime, end: datetime) -> str:
    return f"stock-{report_type}-{start:%Y%m%d}-{end:%Y%m%d}.xlsx"


def _window_label(start: datetime, end: datetime) -> str:
    return f"{start:%Y-%m-%d} - {end:%Y-%m-%d}"


def _write_sheet(ws, title: str, columns: Sequence[tuple], rows: Iterable[dict]) -> int:
    """Fill ws with a title row, header row and data rows. Returns the next free row."""
    last_col = get_column_letter(len(columns))

    ws["A1"] = title
    ws["A1"].font = Font(bold=True, size=14)
    ws["A1"].alignment = Alignment(horizontal="center", vertical="center")
    ws.merge_cells(f"A1:{last_col}1")

    for idx, (header, _key, width, _format) in enumerate(columns, start=1):
        cell = ws.cell(row=2, column=idx, value=header)
        cell.font = Font(bold=True)
        cell.alignment = Alignment(horizontal="center", vertical="center")
        ws.column_dimensions[get_column_letter(idx)].width = width

    row_idx = 3
    for row in rows:
        for idx, (_header, key, _width, number_format) in enumerate(columns, start=1):
            value = row.get(key)
            if number_format == DATE_FORMAT and isinstance(value, str):
                value = parse_iso_datetime(value)
            cell = ws.cell(row=row_idx, column=idx, value=value)
            if number_format:
                cell.number_format = number_format
        row_idx += 1
    return row_idx


def _to_bytes(wb: Workbook) -> bytes:
    buf = BytesIO()
    wb.save(buf)
    return buf.getvalue()


def build_detailed_workbook(rows: Iterable[dict], start: datetime, end: datetime) -> bytes:
    """One sheet listing every movement in the window."""
    prepared = []
    for row in rows:
        item = dict(row)
        item["unit_price"] = movement_unit_price(row)
        prepared.append(item)

    wb = Workbook()
    ws = wb.active
    ws.title = "Movements"
    _write_sheet(ws, f"Stock Movements ({_window_label(start, end)})", DETAILED_COLUMNS, prepared)
    return _to_bytes(wb)


def build_summary_workbook(
    summary: dict,
    stock_rows: Iterable[dict],
    start: datetime,
    end: datetime,
) -> bytes:
    """
    Two sheets: "Summary" (per-product groups plus a grand total row) and
    "Stock" (current balance and windowed movement count per product).
    """
    wb = Workbook()
    ws = wb.active
    ws.title = "Summary"
    next_row = _write_sheet(
        ws, f"Stock Summary ({_window_label(start, end)})", SUMMARY_COLUMNS, summary["rows"]
    )

    totals = summary["totals"]
    ws.cell(row=next_row, column=1, value="Total").font = Font(bold=True)
    quantity_cell = ws.cell(row=next_row, column=3, value=totals["total_quantity"])
    quantity_cell.number_format = NUMBER_FORMAT
    quantity_cell.font = Font(bold=True)
    value_cell = ws.cell(row=next_row, column=6, value=totals["total_value"])
    value_cell.number_format = NUMBER_FORMAT
    value_cell.font = Font(bold=True)
    ws.cell(row=next_row, column=7, value=totals["movement_count"]).font = Font(bold=True)

    stock_ws = wb.create_sheet("Stock")
    _write_sheet(stock_ws, f"Stock Levels ({_window_label(start, end)})", STOCK_COLUMNS, stock_rows)
    return _to_bytes(wb)
