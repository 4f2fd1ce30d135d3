"""Adapter: clinic billing ``.xlsx`` workbook -> raw rows.

Contract
--------
- Reads the first worksheet (or ``sheet`` when given) with ``openpyxl`` in
  read-only, values-only mode.
- The header is the first row with at least one non-empty cell. Columns with
  an empty header cell are dropped.
- Cell values are passed through untouched, so ``datetime`` cells and serial
  numbers reach :func:`clinic_analytics.normalizers.parse_date` as-is.

Failure mode
------------
Raises :class:`~clinic_analytics.schema.MissingColumnsError` when the header
row lacks a required column, and ``ValueError`` for a sheet with no rows or an
unknown sheet name.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from os import PathLike
from typing import Any

from openpyxl import load_workbook

from ...schema import resolve_columns


def _header_cell(value: Any) -> str:
    return "" if value is None else str(value).strip()


def rows_from_grid(grid: Iterable[Sequence[Any]]) -> list[dict[str, Any]]:
    """Turn a grid of cell values into header-keyed row dicts.

    Short rows are padded with ``None``; cells past the last header column
    are ignored.
    """

    it = iter(grid)
    header: list[str] | None = None
    for cells in it:
        if any(_header_cell(c) for c in cells):
            header = [_header_cell(c) for c in cells]
            break
    if header is None:
        raise ValueError("worksheet has no header row")
    resolve_columns(header)

    rows: list[dict[str, Any]] = []
    for cells in it:
        values = list(cells)[: len(header)]
        values.extend([None] * (len(header) - len(values)))
        rows.append({h: v for h, v in zip(header, values, strict=True) if h})
    return rows


def read_rows(path: str | PathLike[str], *, sheet: str | None = None) -> list[dict[str, Any]]:
    """Read the workbook at ``path`` into raw row dicts."""

    wb = load_workbook(path, read_only=True, data_only=True)
    try:
        if sheet is None:
            ws = wb.worksheets[0]
        elif sheet in wb.sheetnames:
            ws = wb[sheet]
        else:
            raise ValueError(f"worksheet {sheet!r} not found (have: {', '.join(wb.sheetnames)})")
        return rows_from_grid(ws.iter_rows(values_only=True))
    finally:
        wb.close()


__all__ = ["read_rows", "rows_from_grid"]
