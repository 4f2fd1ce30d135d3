"""Adapter: clinic billing CSV export -> raw rows.

Contract
--------
- Input is a CSV file whose first line is the header row.
- Output rows are plain ``dict`` objects keyed by the header exactly as it
  appears in the file; values are the raw cell strings. No coercion happens
  here: dates and amounts are parsed by :mod:`clinic_analytics.normalizers`.

Encoding
--------
UTF-8 is assumed, with or without a byte-order mark. Files starting with a
UTF-16 byte-order mark (some spreadsheet "Unicode text" exports) are decoded
as UTF-16.

Failure mode
------------
Raises :class:`~clinic_analytics.schema.MissingColumnsError` when the header
row lacks a required column, and ``csv.Error`` when the file has no header.
"""

from __future__ import annotations

import csv
import io
from codecs import BOM_UTF16_BE, BOM_UTF16_LE
from os import PathLike
from pathlib import Path
from typing import Any

from ...schema import resolve_columns


def _decode(data: bytes) -> str:
    if data.startswith((BOM_UTF16_LE, BOM_UTF16_BE)):
        return data.decode("utf-16")
    return data.decode("utf-8-sig")


def read_rows_from_text(text: str) -> list[dict[str, Any]]:
    """Parse CSV ``text`` into row dicts after validating the header."""

    reader = csv.DictReader(io.StringIO(text, newline=""))
    headers = reader.fieldnames
    if not headers:
        raise csv.Error("CSV appears to have no header row")
    # Fail on the header, before any row is read.
    resolve_columns(headers)

    rows: list[dict[str, Any]] = []
    for rec in reader:
        # Extra trailing cells land under the ``None`` key; drop them.
        rows.append({k: v for k, v in rec.items() if k is not None})
    return rows


def read_rows(path: str | PathLike[str]) -> list[dict[str, Any]]:
    """Read the CSV export at ``path`` into raw row dicts."""

    return read_rows_from_text(_decode(Path(path).read_bytes()))


__all__ = ["read_rows", "read_rows_from_text"]
