"""Ingest utilities shared by CLI commands and the API.

Exposes a single helper that loads raw export rows from a file, choosing the
adapter by explicit format or by file extension. There is no content
sniffing: an ``.xls`` file is always treated as the MIME-HTML report format
the billing system produces under that name.
"""

from __future__ import annotations

from collections.abc import Callable
from os import PathLike
from pathlib import Path
from typing import Any

from ..logging_setup import get_logger

_logger = get_logger("clinic_analytics.ingest")

FORMATS: tuple[str, ...] = ("csv", "xlsx", "mhtml")

EXTENSION_FORMATS: dict[str, str] = {
    ".csv": "csv",
    ".xlsx": "xlsx",
    ".xlsm": "xlsx",
    ".xls": "mhtml",
    ".mhtml": "mhtml",
    ".mht": "mhtml",
    ".html": "mhtml",
    ".htm": "mhtml",
}


def detect_format(path: str | PathLike[str]) -> str:
    """Return the adapter name for ``path`` based on its extension."""

    suffix = Path(path).suffix.lower()
    fmt = EXTENSION_FORMATS.get(suffix)
    if fmt is None:
        raise ValueError(
            f"unsupported file extension {suffix or '(none)'!r}; "
            f"pass an explicit format ({', '.join(FORMATS)})"
        )
    return fmt


def _reader_for(fmt: str) -> Callable[[Path], list[dict[str, Any]]]:
    if fmt == "csv":
        from .adapters.csv_export import read_rows

        return read_rows
    if fmt == "xlsx":
        from .adapters.xlsx_export import read_rows

        return read_rows
    if fmt == "mhtml":
        from .adapters.mhtml_export import read_rows

        return read_rows
    raise ValueError(f"unsupported format {fmt!r}; expected one of: {', '.join(FORMATS)}")


def load_rows(path: str | PathLike[str], fmt: str | None = None) -> list[dict[str, Any]]:
    """Read raw rows from the export at ``path``.

    ``fmt`` is one of :data:`FORMATS`; when omitted it is derived from the
    file extension. Raises ``FileNotFoundError`` for a missing file and
    ``ValueError`` for an unsupported format.
    """

    p = Path(path)
    reader = _reader_for(fmt.lower() if fmt else detect_format(p))
    if not p.is_file():
        raise FileNotFoundError(f"export file not found: {p}")
    rows = reader(p)
    _logger.info("loaded %d raw rows from %s", len(rows), p.name)
    return rows


__all__ = ["FORMATS", "EXTENSION_FORMATS", "detect_format", "load_rows"]
