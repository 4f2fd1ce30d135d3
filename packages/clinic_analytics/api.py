"""Public API orchestration for the ``clinic_analytics`` package.

Each entry point runs the same pipeline over a batch of raw export rows:

    raw rows -> normalize -> categorize -> aggregate

The pipeline is pure: no I/O outside :func:`import_file` /
:func:`import_file_weeks` (which read the export) and no shared state, so the
same batch always produces an equal report. Persistence lives in
:mod:`clinic_analytics.persistence` and is never invoked from here.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from datetime import date
from os import PathLike

from .aggregate import (
    DEFAULT_TOP_N,
    aggregate_week,
    revenue_summary,
    split_by_week,
    week_bounds,
)
from .categorize import RULES, Rule, categorize_transactions
from .logging_setup import get_logger
from .models import (
    CategorizationResult,
    NormalizationResult,
    RawRow,
    RejectedRow,
    WeeklyAggregate,
    WeeklyReport,
    WeeklySnapshot,
)
from .normalizers import normalize_rows
from .schema import DEFAULT_ALIASES

_logger = get_logger("clinic_analytics.api")


def _prepare(
    raw_rows: Iterable[RawRow],
    *,
    rules: Sequence[Rule],
    aliases: Mapping[str, tuple[str, ...]],
) -> tuple[NormalizationResult, CategorizationResult]:
    normalized = normalize_rows(raw_rows, aliases=aliases)
    categorized = categorize_transactions(normalized.transactions, rules=rules)
    return normalized, categorized


def _report_for_week(
    categorized: CategorizationResult,
    *,
    rejected: Sequence[RejectedRow],
    week_start: date | None,
    reference_date: date | None,
    top_n: int,
) -> WeeklyReport:
    agg = aggregate_week(
        categorized.items,
        week_start=week_start,
        reference_date=reference_date,
        top_n=top_n,
    )
    in_week = [
        u for u in categorized.unmapped if agg.week_start <= u.date <= agg.week_end
    ]
    report = WeeklyReport(
        aggregate=agg,
        unmapped=in_week,
        rejected=list(rejected),
        out_of_range_count=len(categorized.items) - agg.transaction_count,
    )
    _logger.info(
        "week %s..%s: total=%.2f customers=%d unmapped=%d rejected=%d revenue=%s",
        agg.week_start.isoformat(),
        agg.week_end.isoformat(),
        agg.total_revenue,
        agg.unique_customers,
        len(report.unmapped),
        report.rejected_count,
        revenue_summary(agg),
    )
    return report


def build_weekly_report(
    raw_rows: Iterable[RawRow],
    *,
    week_start: date | None = None,
    reference_date: date | None = None,
    top_n: int = DEFAULT_TOP_N,
    rules: Sequence[Rule] = RULES,
    aliases: Mapping[str, tuple[str, ...]] = DEFAULT_ALIASES,
) -> WeeklyReport:
    """Build the report for one Monday..Sunday week from raw export rows.

    The week is chosen as in :func:`~clinic_analytics.aggregate.aggregate_week`:
    explicit ``week_start`` (a Monday), else the week of ``reference_date``,
    else the week of the latest valid transaction in the batch.

    Rows outside the week are left out of every figure and counted in
    :attr:`WeeklyReport.out_of_range_count`; they are not rejections.

    Raises
    ------
    WeekSpanError
        ``week_start`` is not a Monday.
    ValueError
        No week anchor was given and the batch has no valid rows.

    A batch missing a required column is not an error here: its rows are
    rejected (or their amounts zeroed) by the normalizer.
    """

    normalized, categorized = _prepare(raw_rows, rules=rules, aliases=aliases)
    return _report_for_week(
        categorized,
        rejected=normalized.rejected,
        week_start=week_start,
        reference_date=reference_date,
        top_n=top_n,
    )


def build_weekly_reports(
    raw_rows: Iterable[RawRow],
    *,
    top_n: int = DEFAULT_TOP_N,
    rules: Sequence[Rule] = RULES,
    aliases: Mapping[str, tuple[str, ...]] = DEFAULT_ALIASES,
) -> list[WeeklyReport]:
    """Build one report per week present in a multi-week export, oldest first.

    Rejected rows have no trustworthy date, so every report carries the
    batch-wide rejected list. An export with no valid rows yields ``[]``.
    """

    normalized, categorized = _prepare(raw_rows, rules=rules, aliases=aliases)
    reports: list[WeeklyReport] = []
    for monday, items in split_by_week(categorized.items).items():
        week_start, week_end = week_bounds(monday)
        week_only = CategorizationResult(
            items=items,
            unmapped=[u for u in categorized.unmapped if week_start <= u.date <= week_end],
        )
        reports.append(
            _report_for_week(
                week_only,
                rejected=normalized.rejected,
                week_start=week_start,
                reference_date=None,
                top_n=top_n,
            )
        )
    return reports


def import_file(
    path: str | PathLike[str],
    *,
    fmt: str | None = None,
    week_start: date | None = None,
    reference_date: date | None = None,
    top_n: int = DEFAULT_TOP_N,
) -> WeeklyReport:
    """Load an export file and build its weekly report."""

    from .ingest.utils import load_rows

    return build_weekly_report(
        load_rows(path, fmt),
        week_start=week_start,
        reference_date=reference_date,
        top_n=top_n,
    )


def import_file_weeks(
    path: str | PathLike[str],
    *,
    fmt: str | None = None,
    top_n: int = DEFAULT_TOP_N,
) -> list[WeeklyReport]:
    """Load a multi-week export file and build one report per week."""

    from .ingest.utils import load_rows

    return build_weekly_reports(load_rows(path, fmt), top_n=top_n)


def to_snapshot(aggregate: WeeklyAggregate) -> WeeklySnapshot:
    """Serializable view of ``aggregate`` (stable key order)."""

    return WeeklySnapshot.from_aggregate(aggregate)


__all__ = [
    "build_weekly_report",
    "build_weekly_reports",
    "import_file",
    "import_file_weeks",
    "to_snapshot",
]
