from __future__ import annotations

from typing import Dict, Iterable

import pandas as pd
from openpyxl import Workbook, load_workbook
from openpyxl.styles import Alignment, Font
from openpyxl.utils import get_column_letter

REPORT_SHEETS = (
    "Rebase Summary",
    "APY Tiers",
    "Fees",
    "Transfers",
    "Tranche Rollforward",
)

# columns that hold labels, counters or timestamps rather than amounts
_PLAIN_COLUMNS = {"metric", "value", "step", "line", "Tranche", "Tier", "Epoch"}


def _safe_sheet_name(name: str) -> str:
    return str(name)[:31]


def _write_df(ws, df: pd.DataFrame, start_row: int = 1, start_col: int = 1, number_format: str = "#,##0.00####"):
    bold = Font(bold=True)
    align = Alignment(vertical="top")

    for j, col_name in enumerate(df.columns, start=start_col):
        cell = ws.cell(row=start_row, column=j, value=str(col_name))
        cell.font = bold
        cell.alignment = align

    for i, row in enumerate(df.itertuples(index=False), start=start_row + 1):
        for j, (col_name, val) in enumerate(zip(df.columns, row), start=start_col):
            if hasattr(val, "item"):
                val = val.item()  # numpy scalar -> python
            cell = ws.cell(row=i, column=j, value=val)
            cell.alignment = align
            if isinstance(val, float) and col_name not in _PLAIN_COLUMNS:
                cell.number_format = number_format

    for j in range(start_col, start_col + len(df.columns)):
        max_len = 10
        for rr in range(start_row, start_row + 1 + len(df)):
            v = ws.cell(row=rr, column=j).value
            if v is not None:
                max_len = max(max_len, min(len(str(v)), 60))
        ws.column_dimensions[get_column_letter(j)].width = max_len + 2


def ensure_template(path: str, sheets: Iterable[str] = REPORT_SHEETS) -> None:
    """Creates an empty report workbook with one sheet per report table."""
    wb = Workbook()
    wb.remove(wb.active)
    for name in sheets:
        wb.create_sheet(_safe_sheet_name(name))
    wb.save(path)


def write_rebase_pack(template_path: str, output_path: str, dfs: Dict[str, pd.DataFrame]) -> None:
    wb = load_workbook(template_path)

    for sheet_name, df in dfs.items():
        safe = _safe_sheet_name(sheet_name)
        if safe not in wb.sheetnames:
            wb.create_sheet(safe)
        ws = wb[safe]
        ws.delete_rows(1, ws.max_row)
        _write_df(ws, df)

    wb.save(output_path)
