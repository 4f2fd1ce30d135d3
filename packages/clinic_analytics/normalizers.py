"""Raw export row -> Canonical Transaction View normalization.

This is the single place where export dates and amounts are coerced. The
failure policy is fixed:

- an unparseable date (or one before 2000) rejects the row; it never falls
  back to the current date;
- a missing patient or description rejects the row;
- a malformed amount becomes ``0.00`` and never raises.

Rejected rows are returned alongside the canonical rows so callers can report
a rejected tally.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from datetime import date, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from .ctv import CanonicalTransaction
from .logging_setup import get_logger
from .models import NormalizationResult, RawRow, RejectedRow, RejectReason
from .schema import DEFAULT_ALIASES, ColumnMapping, resolve_columns

_logger = get_logger("clinic_analytics.normalizers")

# Spreadsheet serial day 0 (1900 date system with the leap-year bug folded in).
SPREADSHEET_EPOCH = date(1899, 12, 30)
MIN_YEAR = 2000

_ZERO = Decimal("0.00")
_CENT = Decimal("0.01")
_SERIAL_RE = re.compile(r"^\d+(?:\.\d+)?$")
_MDY_RE = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{2}|\d{4})$")
_WS_RE = re.compile(r"\s+")

_TIPS_CHARGE_TYPE = "total_tips"


# ---------------------------------------------------------------------------
# Field parsers
# ---------------------------------------------------------------------------


def _from_serial(serial: float | int | Decimal) -> date | None:
    try:
        d = SPREADSHEET_EPOCH + timedelta(days=int(serial))
    except (OverflowError, ValueError):
        return None
    return d if d.year >= MIN_YEAR else None


def _from_mdy(text: str) -> date | None:
    m = _MDY_RE.match(text)
    if m is None:
        return None
    month, day, year = (int(g) for g in m.groups())
    if len(m.group(3)) == 2:
        year += 2000
    try:
        d = date(year, month, day)
    except ValueError:
        return None
    return d if d.year >= MIN_YEAR else None


def parse_date(value: Any) -> date | None:
    """Parse an export date cell; ``None`` when it cannot be trusted.

    Accepts ``date``/``datetime`` objects, spreadsheet serial numbers (numeric
    or numeric strings, fractional day ignored) counted from 1899-12-30, and
    ``M/D/YY`` or ``M/D/YYYY`` strings, optionally followed by a time. Two
    digit years map to 2000+YY. Dates before 2000 are treated as garbage.
    """

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value.date() if value.year >= MIN_YEAR else None
    if isinstance(value, date):
        return value if value.year >= MIN_YEAR else None
    if isinstance(value, int | float | Decimal):
        return _from_serial(value)

    s = str(value).strip()
    if not s:
        return None
    if _SERIAL_RE.match(s):
        return _from_serial(Decimal(s))
    return _from_mdy(s.split()[0])


def parse_amount(value: Any) -> Decimal:
    """Parse a currency cell into a 2dp ``Decimal``; malformed input -> ``0.00``.

    Strips ``$``, thousands separators and whitespace. A leading minus or
    surrounding parentheses mark a negative amount.
    """

    if value is None or isinstance(value, bool):
        return _ZERO
    if isinstance(value, Decimal):
        d = value
    elif isinstance(value, int | float):
        d = Decimal(str(value))
    else:
        s = str(value).strip()
        negative = False
        # Strip sign, currency symbol and parentheses in any order until stable.
        while True:
            changed = False
            if s.startswith("-"):
                negative = True
                s = s[1:].lstrip()
                changed = True
            if s.startswith("$"):
                s = s[1:].lstrip()
                changed = True
            if s.startswith("(") and s.endswith(")") and len(s) >= 2:
                negative = True
                s = s[1:-1].strip()
                changed = True
            if not changed:
                break
        s = s.replace(",", "").replace("$", "").strip()
        try:
            d = Decimal(s)
        except InvalidOperation:
            _logger.debug("amount %r is not numeric; using 0.00", value)
            return _ZERO
        if negative:
            d = -abs(d)

    if not d.is_finite():
        return _ZERO
    try:
        return d.quantize(_CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        # Too many digits for the decimal context.
        _logger.debug("amount %r is out of range; using 0.00", value)
        return _ZERO


def _clean_text(value: Any) -> str | None:
    if value is None:
        return None
    cleaned = _WS_RE.sub(" ", str(value)).strip()
    return cleaned or None


# ---------------------------------------------------------------------------
# Row normalization
# ---------------------------------------------------------------------------


def _is_blank(row: RawRow) -> bool:
    return all(v is None or (isinstance(v, str) and not v.strip()) for v in row.values())


def _cell(row: RawRow, column: str | None) -> Any:
    return row.get(column) if column is not None else None


def _resolve_date(row: RawRow, columns: tuple[str, ...]) -> date | None:
    for col in columns:
        raw = row.get(col)
        if raw is None or (isinstance(raw, str) and not raw.strip()):
            continue
        parsed = parse_date(raw)
        if parsed is not None:
            return parsed
    return None


def normalize_row(
    row: RawRow, mapping: ColumnMapping, *, idx: int
) -> CanonicalTransaction | RejectedRow:
    """Normalize one raw row, or return the reason it was rejected."""

    charge_type = _clean_text(_cell(row, mapping.charge_type))
    description = _clean_text(_cell(row, mapping.description))

    if (charge_type or "").lower() == _TIPS_CHARGE_TYPE or (
        description is not None and _TIPS_CHARGE_TYPE in description.lower()
    ):
        return RejectedRow(idx=idx, reason=RejectReason.TIPS_SUMMARY, raw=row)

    patient = _clean_text(_cell(row, mapping.patient))
    if patient is None:
        return RejectedRow(idx=idx, reason=RejectReason.MISSING_PATIENT, raw=row)
    if description is None:
        return RejectedRow(idx=idx, reason=RejectReason.MISSING_DESCRIPTION, raw=row)

    tx_date = _resolve_date(row, mapping.date)
    if tx_date is None:
        return RejectedRow(idx=idx, reason=RejectReason.INVALID_DATE, raw=row)

    return CanonicalTransaction(
        idx=idx,
        date=tx_date,
        patient=patient,
        description=description,
        amount=parse_amount(_cell(row, mapping.amount)),
        charge_type=charge_type,
    )


def normalize_rows(
    rows: Iterable[RawRow],
    *,
    mapping: ColumnMapping | None = None,
    aliases: Mapping[str, tuple[str, ...]] = DEFAULT_ALIASES,
) -> NormalizationResult:
    """Normalize a batch of raw rows, preserving input order.

    When ``mapping`` is omitted it is resolved once from the first row's keys.
    A batch lacking a required column is not fatal: every row is checked
    against the partial mapping, so a missing patient, description or date
    column rejects the rows and a missing amount column reads as ``0.00``.
    Fully blank rows (spreadsheet padding) are skipped and do not count as
    rejected.
    """

    batch = list(rows)
    transactions: list[CanonicalTransaction] = []
    rejected: list[RejectedRow] = []
    if not batch:
        return NormalizationResult(transactions=transactions, rejected=rejected)

    if mapping is None:
        mapping = resolve_columns(batch[0].keys(), aliases, strict=False)
    if mapping.missing:
        _logger.warning(
            "batch has no column for %s; affected rows are rejected or zeroed",
            ", ".join(mapping.missing),
        )

    for idx, row in enumerate(batch):
        if _is_blank(row):
            continue
        out = normalize_row(row, mapping, idx=idx)
        if isinstance(out, RejectedRow):
            _logger.debug("row %d rejected: %s", idx, out.reason)
            rejected.append(out)
        else:
            transactions.append(out)

    if rejected:
        by_reason: dict[str, int] = {}
        for r in rejected:
            key = str(r.reason)
            by_reason[key] = by_reason.get(key, 0) + 1
        _logger.info(
            "normalized %d rows: %d accepted, %d rejected %s",
            len(batch),
            len(transactions),
            len(rejected),
            by_reason,
        )
    return NormalizationResult(transactions=transactions, rejected=rejected)


__all__ = [
    "SPREADSHEET_EPOCH",
    "MIN_YEAR",
    "parse_date",
    "parse_amount",
    "normalize_row",
    "normalize_rows",
]
