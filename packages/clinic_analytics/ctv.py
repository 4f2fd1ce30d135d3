"""Canonical Transaction View (CTV) for clinic revenue exports.

A canonical transaction is one normalized export row with a typed date and
amount, ready for categorization.

Field order (exact):
    - idx: integer (0-based position of the row in the source batch, counted
      before rejected rows are dropped)
    - date: calendar date of the charge or payment
    - patient: free-text patient identifier
    - description: free-text charge description (the classification input)
    - amount: ``Decimal`` with two decimal places
    - charge_type: export ``Charge Type`` value when present, else ``None``
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

_WS_RE = re.compile(r"\s+")


def patient_key(patient: str) -> str:
    """Return the dedup key for a patient name.

    Collapses internal whitespace, trims, and casefolds so that
    ``"Jane  Doe"`` and ``"jane doe"`` count as one customer.
    """

    return _WS_RE.sub(" ", patient).strip().casefold()


@dataclass(frozen=True, slots=True)
class CanonicalTransaction:
    """A single canonicalized transaction row."""

    idx: int
    date: date
    patient: str
    description: str
    amount: Decimal
    charge_type: str | None = None

    @property
    def patient_key(self) -> str:
        return patient_key(self.patient)


__all__ = ["CanonicalTransaction", "patient_key"]
