"""Fold categorized transactions into weekly and monthly aggregates.

Public API:
    - :func:`monday_of`, :func:`week_bounds`, :func:`validate_week_span`
    - :func:`aggregate_week` and :func:`aggregate_month`
    - :func:`split_by_week`

Weeks run Monday..Sunday. Every aggregate is a full fold over its date range;
there is no incremental update path, so re-running on the same batch yields an
equal aggregate. Weekly and monthly figures are computed by independent folds.
"""

from __future__ import annotations

import calendar
from collections import Counter, defaultdict
from collections.abc import Iterable, Mapping, Sequence
from datetime import date, timedelta
from decimal import Decimal
from types import MappingProxyType

from .categorize import membership_event_for
from .ctv import patient_key
from .logging_setup import get_logger
from .models import (
    CategorizedTransaction,
    Category,
    MembershipEvent,
    MembershipType,
    MonthlyAggregate,
    WeeklyAggregate,
)

_logger = get_logger("clinic_analytics.aggregate")

DEFAULT_TOP_N = 3
DEFAULT_TOP_CATEGORIES: tuple[Category, ...] = (
    Category.BASE_INFUSION,
    Category.STANDALONE_INJECTION,
    Category.MEMBERSHIP_OR_ADMIN,
)

_WEEK_SPAN = timedelta(days=6)
_ZERO = Decimal("0.00")


class WeekSpanError(ValueError):
    """A computed week is not exactly one Monday..Sunday span."""


# ---- Week boundaries ---------------------------------------------------------


def monday_of(ref: date) -> date:
    """Monday of the week containing ``ref``; Sundays belong to the week before."""

    dow = ref.isoweekday() % 7  # 0=Sunday .. 6=Saturday
    if dow == 0:
        return ref - timedelta(days=6)
    return ref - timedelta(days=dow - 1)


def week_bounds(ref: date) -> tuple[date, date]:
    start = monday_of(ref)
    end = start + _WEEK_SPAN
    validate_week_span(start, end)
    return start, end


def validate_week_span(week_start: date, week_end: date) -> None:
    """Raise :class:`WeekSpanError` unless the span is Monday through Sunday."""

    if week_start.isoweekday() != 1:
        raise WeekSpanError(
            f"week_start {week_start.isoformat()} is a {week_start:%A}, expected Monday"
        )
    if week_end - week_start != _WEEK_SPAN:
        raise WeekSpanError(
            f"week {week_start.isoformat()}..{week_end.isoformat()} spans "
            f"{(week_end - week_start).days + 1} days, expected 7"
        )


def month_bounds(ref: date) -> tuple[date, date]:
    last_day = calendar.monthrange(ref.year, ref.month)[1]
    return ref.replace(day=1), ref.replace(day=last_day)


def split_by_week(
    items: Iterable[CategorizedTransaction],
) -> dict[date, list[CategorizedTransaction]]:
    """Group transactions by the Monday of their week, weeks in date order."""

    groups: dict[date, list[CategorizedTransaction]] = defaultdict(list)
    for item in items:
        groups[monday_of(item.transaction.date)].append(item)
    return {k: groups[k] for k in sorted(groups)}


# ---- Helpers -----------------------------------------------------------------


def _in_range(
    items: Iterable[CategorizedTransaction], start: date, end: date
) -> list[CategorizedTransaction]:
    return [i for i in items if start <= i.transaction.date <= end]


def _revenue(items: Sequence[CategorizedTransaction]) -> dict[Category, Decimal]:
    revenue: dict[Category, Decimal] = {c: _ZERO for c in Category}
    for item in items:
        revenue[item.category] += item.transaction.amount
    return revenue


def _top_services(
    items: Sequence[CategorizedTransaction], categories: Sequence[Category], top_n: int
) -> dict[Category, tuple[str, ...]]:
    top: dict[Category, tuple[str, ...]] = {}
    for category in categories:
        # Counter keeps first-seen order; sorted() is stable, so ties keep it too.
        counts = Counter(i.transaction.description for i in items if i.category is category)
        ranked = sorted(counts.items(), key=lambda kv: -kv[1])
        top[category] = tuple(desc for desc, _ in ranked[:top_n])
    return top


def _membership_events(items: Sequence[CategorizedTransaction]) -> list[MembershipEvent]:
    events = (membership_event_for(i) for i in items)
    return [ev for ev in events if ev is not None]


def _membership_counts(
    events: Sequence[MembershipEvent],
) -> tuple[dict[MembershipType, int], dict[MembershipType, int]]:
    """Per-type signup counts with each patient in exactly one bucket.

    A patient's bucket is the type of their first membership event in the
    batch; they count as new when any event of that type is marked new.
    """

    assigned: dict[str, MembershipType] = {}
    new_patients: set[str] = set()
    for ev in events:
        key = patient_key(ev.patient)
        mtype = assigned.setdefault(key, ev.membership_type)
        if ev.is_new and ev.membership_type is mtype:
            new_patients.add(key)

    counts = {t: 0 for t in MembershipType}
    new_counts = {t: 0 for t in MembershipType}
    for key, mtype in assigned.items():
        counts[mtype] += 1
        if key in new_patients:
            new_counts[mtype] += 1
    return counts, new_counts


def _is_member_row(description: str) -> bool:
    text = description.casefold()
    return "member" in text and "non-member" not in text


def _visit_counts(items: Sequence[CategorizedTransaction]) -> dict[str, int]:
    """Count infusion and injection visits, one per patient per day.

    A base infusion plus any add-ons on the same day is one infusion visit.
    """

    days: dict[tuple[str, date], set[Category]] = defaultdict(set)
    for item in items:
        days[(item.transaction.patient_key, item.transaction.date)].add(item.category)

    counts = {
        "infusion_weekday": 0,
        "infusion_weekend": 0,
        "injection_weekday": 0,
        "injection_weekend": 0,
    }
    for (_, day), categories in days.items():
        suffix = "weekend" if day.isoweekday() >= 6 else "weekday"
        if Category.BASE_INFUSION in categories:
            counts[f"infusion_{suffix}"] += 1
        if Category.STANDALONE_INJECTION in categories:
            counts[f"injection_{suffix}"] += 1
    return counts


# ---- Folds -------------------------------------------------------------------


def _resolve_week_start(
    items: Sequence[CategorizedTransaction],
    week_start: date | None,
    reference_date: date | None,
) -> date:
    if week_start is not None:
        return week_start
    if reference_date is not None:
        return monday_of(reference_date)
    if not items:
        raise ValueError("cannot infer the reporting week of an empty batch")
    # Anchor on the data, never on today.
    return monday_of(max(i.transaction.date for i in items))


def aggregate_week(
    items: Iterable[CategorizedTransaction],
    *,
    week_start: date | None = None,
    reference_date: date | None = None,
    top_n: int = DEFAULT_TOP_N,
    top_categories: Sequence[Category] = DEFAULT_TOP_CATEGORIES,
) -> WeeklyAggregate:
    """Fold one week of categorized transactions into a :class:`WeeklyAggregate`.

    The week is ``week_start`` when given (must be a Monday), else the week
    containing ``reference_date``, else the week of the latest transaction.
    Transactions outside ``[week_start, week_start + 6 days]`` are ignored.

    Raises :class:`WeekSpanError` when ``week_start`` is not a Monday.
    """

    batch = list(items)
    start = _resolve_week_start(batch, week_start, reference_date)
    end = start + _WEEK_SPAN
    validate_week_span(start, end)

    in_week = _in_range(batch, start, end)
    if len(in_week) != len(batch):
        _logger.info(
            "week %s..%s: %d of %d transactions fall outside the week",
            start.isoformat(),
            end.isoformat(),
            len(batch) - len(in_week),
            len(batch),
        )

    revenue = _revenue(in_week)
    customers = {i.transaction.patient_key for i in in_week}
    members = {
        i.transaction.patient_key for i in in_week if _is_member_row(i.transaction.description)
    }
    counts, new_counts = _membership_counts(_membership_events(in_week))

    return WeeklyAggregate(
        week_start=start,
        week_end=end,
        revenue_by_category=MappingProxyType(revenue),
        total_revenue=sum(revenue.values(), _ZERO),
        unique_customers=len(customers),
        membership_counts=MappingProxyType(counts),
        new_membership_counts=MappingProxyType(new_counts),
        top_services=MappingProxyType(_top_services(in_week, top_categories, top_n)),
        transaction_count=len(in_week),
        visit_counts=MappingProxyType(_visit_counts(in_week)),
        member_customers=len(members),
        non_member_customers=len(customers - members),
    )


def aggregate_month(
    items: Iterable[CategorizedTransaction], *, reference_date: date
) -> MonthlyAggregate:
    """Fold the calendar month containing ``reference_date``."""

    start, end = month_bounds(reference_date)
    in_month = _in_range(items, start, end)
    revenue = _revenue(in_month)
    return MonthlyAggregate(
        month_start=start,
        month_end=end,
        revenue_by_category=MappingProxyType(revenue),
        total_revenue=sum(revenue.values(), _ZERO),
        unique_customers=len({i.transaction.patient_key for i in in_month}),
        transaction_count=len(in_month),
    )


def revenue_summary(agg: WeeklyAggregate | MonthlyAggregate) -> Mapping[str, str]:
    """Category -> amount string, for log lines and console output."""

    return {str(c): f"{agg.revenue_by_category[c]:.2f}" for c in Category}


__all__ = [
    "DEFAULT_TOP_N",
    "DEFAULT_TOP_CATEGORIES",
    "WeekSpanError",
    "monday_of",
    "week_bounds",
    "validate_week_span",
    "month_bounds",
    "split_by_week",
    "aggregate_week",
    "aggregate_month",
    "revenue_summary",
]
