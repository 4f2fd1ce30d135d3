"""Data models and type aliases for ``clinic_analytics``.

Raw rows are opaque mappings of export column name to cell value. Everything
downstream of the normalizer works on typed records defined here (and on
:class:`~clinic_analytics.ctv.CanonicalTransaction`).
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict

from .ctv import CanonicalTransaction

# ---------------------------------------------------------------------------
# Raw input
# ---------------------------------------------------------------------------

type RawRow = Mapping[str, Any]
"""A single export row: column name -> raw cell value.

Values may be strings (CSV/MHTML) or native spreadsheet values (numbers,
``datetime``) from ``.xlsx`` files.
"""


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class Category(StrEnum):
    BASE_INFUSION = "base_infusion"
    INFUSION_ADDON = "infusion_addon"
    STANDALONE_INJECTION = "standalone_injection"
    WEIGHT_LOSS_MEDICATION = "weight_loss_medication"
    MEMBERSHIP_OR_ADMIN = "membership_or_admin"
    OTHER = "other"


class MembershipType(StrEnum):
    INDIVIDUAL = "individual"
    FAMILY = "family"
    CONCIERGE = "concierge"
    CORPORATE = "corporate"
    FAMILY_CONCIERGE = "family_concierge"
    DRIP_CONCIERGE = "drip_concierge"
    UNKNOWN = "unknown"


class RejectReason(StrEnum):
    INVALID_DATE = "invalid_date"
    MISSING_PATIENT = "missing_patient"
    MISSING_DESCRIPTION = "missing_description"
    TIPS_SUMMARY = "tips_summary"


# ---------------------------------------------------------------------------
# Per-row records
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class RejectedRow:
    """A source row excluded from every total, kept for the rejected tally."""

    idx: int
    reason: RejectReason
    raw: RawRow


@dataclass(frozen=True, slots=True)
class CategorizedTransaction:
    transaction: CanonicalTransaction
    category: Category


@dataclass(frozen=True, slots=True)
class UnmappedService:
    """A transaction that matched no specific rule (category ``other``).

    Not an error: these are collected so the rule table can be extended.
    """

    idx: int
    date: date
    patient: str
    description: str
    amount: Decimal


@dataclass(frozen=True, slots=True)
class MembershipEvent:
    patient: str
    membership_type: MembershipType
    is_new: bool
    date: date
    description: str


@dataclass(frozen=True, slots=True)
class NormalizationResult:
    transactions: list[CanonicalTransaction]
    rejected: list[RejectedRow]

    @property
    def rejected_count(self) -> int:
        return len(self.rejected)


@dataclass(frozen=True, slots=True)
class CategorizationResult:
    items: list[CategorizedTransaction]
    unmapped: list[UnmappedService]


# ---------------------------------------------------------------------------
# Aggregates
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class WeeklyAggregate:
    """Immutable summary for one Monday..Sunday reporting week.

    Mapping fields are read-only views. Every :class:`Category` key is present
    in ``revenue_by_category`` and every :class:`MembershipType` key in the
    membership count mappings, zero-filled.
    """

    week_start: date
    week_end: date
    revenue_by_category: Mapping[Category, Decimal]
    total_revenue: Decimal
    unique_customers: int
    membership_counts: Mapping[MembershipType, int]
    new_membership_counts: Mapping[MembershipType, int]
    top_services: Mapping[Category, tuple[str, ...]]
    transaction_count: int = 0
    visit_counts: Mapping[str, int] = field(default_factory=dict)
    member_customers: int = 0
    non_member_customers: int = 0


@dataclass(frozen=True, slots=True)
class MonthlyAggregate:
    month_start: date
    month_end: date
    revenue_by_category: Mapping[Category, Decimal]
    total_revenue: Decimal
    unique_customers: int
    transaction_count: int = 0


@dataclass(frozen=True, slots=True)
class WeeklyReport:
    """Everything one import run produces for a week.

    ``unmapped`` lists the ``other``-category rows inside the week; ``rejected``
    lists every row of the batch the normalizer refused. ``out_of_range_count``
    counts valid rows dated outside the week.
    """

    aggregate: WeeklyAggregate
    unmapped: list[UnmappedService]
    rejected: list[RejectedRow]
    out_of_range_count: int = 0

    @property
    def rejected_count(self) -> int:
        return len(self.rejected)


# ---------------------------------------------------------------------------
# Serialized view
# ---------------------------------------------------------------------------


class WeeklySnapshot(BaseModel):
    """JSON view of a :class:`WeeklyAggregate`.

    Key order follows enum declaration order, so equal aggregates serialize to
    identical bytes.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    week_start: date
    week_end: date
    revenue_by_category: dict[str, Decimal]
    total_revenue: Decimal
    unique_customers: int
    membership_counts: dict[str, int]
    new_membership_counts: dict[str, int]
    top_services: dict[str, list[str]]
    transaction_count: int
    visit_counts: dict[str, int]
    member_customers: int
    non_member_customers: int

    @classmethod
    def from_aggregate(cls, agg: WeeklyAggregate) -> WeeklySnapshot:
        return cls(
            week_start=agg.week_start,
            week_end=agg.week_end,
            revenue_by_category={str(c): agg.revenue_by_category[c] for c in Category},
            total_revenue=agg.total_revenue,
            unique_customers=agg.unique_customers,
            membership_counts={str(t): agg.membership_counts[t] for t in MembershipType},
            new_membership_counts={
                str(t): agg.new_membership_counts[t] for t in MembershipType
            },
            top_services={str(c): list(v) for c, v in agg.top_services.items()},
            transaction_count=agg.transaction_count,
            visit_counts=dict(agg.visit_counts),
            member_customers=agg.member_customers,
            non_member_customers=agg.non_member_customers,
        )


__all__ = [
    "RawRow",
    "Category",
    "MembershipType",
    "RejectReason",
    "RejectedRow",
    "CategorizedTransaction",
    "UnmappedService",
    "MembershipEvent",
    "NormalizationResult",
    "CategorizationResult",
    "WeeklyAggregate",
    "MonthlyAggregate",
    "WeeklyReport",
    "WeeklySnapshot",
]
