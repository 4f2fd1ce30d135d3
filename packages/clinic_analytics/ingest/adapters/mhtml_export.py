"""Adapter: MIME-HTML ("web archive") report export -> raw rows.

Some billing systems save their "Excel" report as an ``.xls`` file that is
really a MIME multipart document wrapping one HTML table. The HTML part is
usually quoted-printable encoded.

Contract
--------
- The ``text/html`` part is extracted with the stdlib :mod:`email` parser,
  which undoes the transfer encoding and charset. A file that is plain HTML
  (no MIME headers) is parsed directly.
- The first ``<table>`` is read with BeautifulSoup. Its first row is the
  header; every later row becomes a dict keyed by header text.
- A cell with ``rowspan="N"`` repeats its value in the same column of the
  next ``N - 1`` rows. A cell with ``colspan="N"`` occupies ``N`` columns;
  only the first carries the value.
- Cell text is whitespace-collapsed; non-breaking spaces become spaces.

Failure mode
------------
Raises ``ValueError`` when no HTML part or no table is found, and
:class:`~clinic_analytics.schema.MissingColumnsError` when the header lacks a
required column.
"""

from __future__ import annotations

import email
import re
from email import policy
from os import PathLike
from pathlib import Path
from typing import Any

from bs4 import BeautifulSoup, Tag

from ...schema import resolve_columns

_WS_RE = re.compile(r"\s+")
_MIME_MARKER = "mime-version:"


def extract_html(data: bytes) -> str:
    """Return the HTML document carried by an MHTML (or plain HTML) file."""

    head = data[:4096].decode("ascii", errors="ignore").lower()
    if _MIME_MARKER not in head:
        return data.decode("utf-8", errors="replace")

    msg = email.message_from_bytes(data, policy=policy.default)
    for part in msg.walk():
        if part.get_content_type() == "text/html":
            return part.get_content()
    raise ValueError("MIME document has no text/html part")


def _cell_text(cell: Tag) -> str:
    return _WS_RE.sub(" ", cell.get_text(" ").replace("\xa0", " ")).strip()


def _span(cell: Tag, attr: str) -> int:
    try:
        return max(1, int(str(cell.get(attr, "1")).strip()))
    except ValueError:
        return 1


def table_grid(table: Tag) -> list[list[str]]:
    """Expand ``table`` into a rectangular-ish grid of cell strings."""

    grid: list[list[str]] = []
    # column index -> (value, rows still to fill)
    carry: dict[int, tuple[str, int]] = {}

    for tr in table.find_all("tr"):
        row: list[str] = []
        col = 0
        cells = tr.find_all(["td", "th"], recursive=False)
        queue = list(cells)
        while queue or any(c >= col for c in carry):
            if col in carry:
                value, remaining = carry[col]
                row.append(value)
                if remaining <= 1:
                    del carry[col]
                else:
                    carry[col] = (value, remaining - 1)
                col += 1
                continue
            if not queue:
                # Gap before a carried column further right.
                row.append("")
                col += 1
                continue
            cell = queue.pop(0)
            text = _cell_text(cell)
            rowspan = _span(cell, "rowspan")
            for offset in range(_span(cell, "colspan")):
                row.append(text if offset == 0 else "")
                if rowspan > 1 and offset == 0:
                    carry[col] = (text, rowspan - 1)
                col += 1
        grid.append(row)
    return grid


def read_rows_from_html(html: str) -> list[dict[str, Any]]:
    soup = BeautifulSoup(html, "html.parser")
    table = soup.find("table")
    if not isinstance(table, Tag):
        raise ValueError("no <table> found in HTML export")

    grid = table_grid(table)
    if not grid:
        raise ValueError("HTML export table has no rows")
    header = grid[0]
    resolve_columns(header)

    rows: list[dict[str, Any]] = []
    for cells in grid[1:]:
        values = cells[: len(header)] + [""] * (len(header) - len(cells))
        rows.append({h: v for h, v in zip(header, values, strict=True) if h})
    return rows


def read_rows(path: str | PathLike[str]) -> list[dict[str, Any]]:
    """Read the MHTML/HTML export at ``path`` into raw row dicts."""

    return read_rows_from_html(extract_html(Path(path).read_bytes()))


__all__ = ["extract_html", "table_grid", "read_rows", "read_rows_from_html"]
