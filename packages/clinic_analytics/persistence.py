"""Persistence integration for clinic_analytics.

Functions here write weekly reports to the shared database owned by
``libs/db``. They rely on SQLAlchemy ORM models defined in
``db.models.analytics`` and on a session the caller provides (see
``db.client.session_scope``).

Scope:
- Replace the stored aggregate for a ``(week_start, week_end)`` key wholesale,
  together with that week's unmapped-service rows.
- Read a stored week back as a :class:`~clinic_analytics.models.WeeklySnapshot`.
- Group stored unmapped descriptions for auditing the rule table.

Concurrent imports of the same week must be serialized by the caller; the
unique constraint on the week key turns a lost race into an
``IntegrityError`` rather than a duplicate row.
"""

from __future__ import annotations

from datetime import date

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from db.models.analytics import UnmappedServiceRow, WeeklyAnalytics

from .aggregate import validate_week_span
from .logging_setup import get_logger
from .models import Category, WeeklyReport, WeeklySnapshot

_logger = get_logger("clinic_analytics.persistence")


def save_weekly_report(
    session: Session, report: WeeklyReport, *, source_name: str | None = None
) -> WeeklyAnalytics:
    """Store ``report`` as the one row for its week, replacing any earlier import.

    The week span is validated before anything is written; a malformed span
    raises :class:`~clinic_analytics.aggregate.WeekSpanError` and leaves the
    database untouched.
    """

    agg = report.aggregate
    validate_week_span(agg.week_start, agg.week_end)

    existing = session.scalars(
        select(WeeklyAnalytics.id).where(
            WeeklyAnalytics.week_start == agg.week_start,
            WeeklyAnalytics.week_end == agg.week_end,
        )
    ).all()
    if existing:
        session.execute(
            delete(UnmappedServiceRow).where(UnmappedServiceRow.weekly_id.in_(existing))
        )
        session.execute(delete(WeeklyAnalytics).where(WeeklyAnalytics.id.in_(existing)))
        session.flush()
        _logger.info("replacing stored week %s..%s", agg.week_start, agg.week_end)

    revenue = agg.revenue_by_category
    row = WeeklyAnalytics(
        week_start=agg.week_start,
        week_end=agg.week_end,
        revenue_base_infusion=revenue[Category.BASE_INFUSION],
        revenue_infusion_addon=revenue[Category.INFUSION_ADDON],
        revenue_standalone_injection=revenue[Category.STANDALONE_INJECTION],
        revenue_weight_loss_medication=revenue[Category.WEIGHT_LOSS_MEDICATION],
        revenue_membership_or_admin=revenue[Category.MEMBERSHIP_OR_ADMIN],
        revenue_other=revenue[Category.OTHER],
        total_revenue=agg.total_revenue,
        unique_customers=agg.unique_customers,
        transaction_count=agg.transaction_count,
        member_customers=agg.member_customers,
        non_member_customers=agg.non_member_customers,
        rejected_count=report.rejected_count,
        unmapped_count=len(report.unmapped),
        payload=WeeklySnapshot.from_aggregate(agg).model_dump(mode="json"),
        source_name=source_name,
    )
    row.unmapped = [
        UnmappedServiceRow(
            week_start=agg.week_start,
            row_idx=u.idx,
            service_date=u.date,
            patient=u.patient,
            description=u.description,
            amount=u.amount,
        )
        for u in report.unmapped
    ]
    session.add(row)
    session.flush()
    return row


def load_weekly_snapshot(session: Session, week_start: date) -> WeeklySnapshot | None:
    """Return the stored snapshot for the week starting ``week_start``, if any."""

    payload = session.scalars(
        select(WeeklyAnalytics.payload).where(WeeklyAnalytics.week_start == week_start)
    ).first()
    if payload is None:
        return None
    return WeeklySnapshot.model_validate(payload)


def list_unmapped(
    session: Session, *, week_start: date | None = None, limit: int = 20
) -> list[tuple[str, int]]:
    """Stored unmapped descriptions with occurrence counts, most frequent first."""

    n = func.count(UnmappedServiceRow.id)
    stmt = select(UnmappedServiceRow.description, n).group_by(UnmappedServiceRow.description)
    if week_start is not None:
        stmt = stmt.where(UnmappedServiceRow.week_start == week_start)
    stmt = stmt.order_by(n.desc(), UnmappedServiceRow.description).limit(limit)
    return [(desc, int(count)) for desc, count in session.execute(stmt).all()]


__all__ = [
    "save_weekly_report",
    "load_weekly_snapshot",
    "list_unmapped",
]
