"""Column schema: logical field -> accepted raw header aliases.

Exports name the same field differently ("Charge Desc" vs "Charge
Description", "Date" vs "Date Of Payment"). The mapping is resolved once per
file from its header row; rows are then read through the resolved
:class:`ColumnMapping` instead of guessing per row.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

DEFAULT_ALIASES: Mapping[str, tuple[str, ...]] = {
    "date": ("Date", "Date Of Payment", "Payment Date", "Service Date"),
    "patient": ("Patient", "Patient Name"),
    "description": ("Charge Desc", "Charge Description", "Service"),
    "amount": ("Calculated Payment (Line)", "Payment", "Amount"),
    "charge_type": ("Charge Type",),
}

REQUIRED_FIELDS: tuple[str, ...] = ("date", "patient", "description", "amount")


class MissingColumnsError(ValueError):
    """Raised when a header row has no alias for a required logical field."""

    def __init__(self, missing: Sequence[str], headers: Sequence[str]) -> None:
        self.missing = tuple(missing)
        self.headers = tuple(headers)
        super().__init__(
            "missing required columns: "
            + ", ".join(self.missing)
            + f" (available: {', '.join(self.headers) or 'none'})"
        )


def _header_key(header: str) -> str:
    return re.sub(r"\s+", " ", header).strip().casefold()


@dataclass(frozen=True, slots=True)
class ColumnMapping:
    """Resolved raw header names per logical field.

    ``date`` holds every present date alias in priority order; the normalizer
    tries them in turn. Fields absent from the header map to ``None`` (or an
    empty ``date`` tuple); only a non-strict resolve produces such gaps for
    required fields.
    """

    date: tuple[str, ...]
    patient: str | None
    description: str | None
    amount: str | None
    charge_type: str | None = None

    @property
    def missing(self) -> tuple[str, ...]:
        present = {
            "date": bool(self.date),
            "patient": self.patient is not None,
            "description": self.description is not None,
            "amount": self.amount is not None,
        }
        return tuple(f for f in REQUIRED_FIELDS if not present[f])


def resolve_columns(
    headers: Iterable[Any],
    aliases: Mapping[str, Sequence[str]] = DEFAULT_ALIASES,
    *,
    strict: bool = True,
) -> ColumnMapping:
    """Resolve ``aliases`` against an export's ``headers``.

    Matching ignores case and repeated/surrounding whitespace; the returned
    mapping carries the headers exactly as they appear in the file.

    With ``strict`` (the default, used by the file adapters) a missing
    required field raises :class:`MissingColumnsError`. Otherwise the gap is
    left in the mapping and the normalizer rejects the affected rows.
    """

    present: dict[str, str] = {}
    header_list: list[str] = []
    for h in headers:
        if not isinstance(h, str) or not h.strip():
            continue
        header_list.append(h)
        present.setdefault(_header_key(h), h)

    def _lookup(field: str) -> list[str]:
        return [present[k] for k in map(_header_key, aliases.get(field, ())) if k in present]

    resolved = {f: _lookup(f) for f in (*REQUIRED_FIELDS, "charge_type")}
    missing = [f for f in REQUIRED_FIELDS if not resolved[f]]
    if missing and strict:
        raise MissingColumnsError(missing, header_list)

    def _first(field: str) -> str | None:
        return resolved[field][0] if resolved[field] else None

    return ColumnMapping(
        date=tuple(dict.fromkeys(resolved["date"])),
        patient=_first("patient"),
        description=_first("description"),
        amount=_first("amount"),
        charge_type=_first("charge_type"),
    )


__all__ = [
    "DEFAULT_ALIASES",
    "REQUIRED_FIELDS",
    "ColumnMapping",
    "MissingColumnsError",
    "resolve_columns",
]
