from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    JSON,
    BigInteger,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

# SQLite only autoincrements INTEGER PRIMARY KEY columns.
_PK = BigInteger().with_variant(Integer(), "sqlite")
_MONEY = Numeric(14, 2)


class Base(DeclarativeBase):
    pass


# ---------------------------
# Core: ca_weekly_analytics
# ---------------------------


class WeeklyAnalytics(Base):
    """One persisted weekly aggregate, keyed by its Monday..Sunday span.

    Rows are replaced wholesale on re-import; they are never patched field by
    field. ``payload`` holds the full serialized snapshot, the typed columns
    mirror the headline figures for querying.
    """

    __tablename__ = "ca_weekly_analytics"

    id: Mapped[int] = mapped_column(_PK, primary_key=True, autoincrement=True)
    week_start: Mapped[date] = mapped_column(Date, nullable=False)
    week_end: Mapped[date] = mapped_column(Date, nullable=False)

    revenue_base_infusion: Mapped[Decimal] = mapped_column(_MONEY, nullable=False)
    revenue_infusion_addon: Mapped[Decimal] = mapped_column(_MONEY, nullable=False)
    revenue_standalone_injection: Mapped[Decimal] = mapped_column(_MONEY, nullable=False)
    revenue_weight_loss_medication: Mapped[Decimal] = mapped_column(_MONEY, nullable=False)
    revenue_membership_or_admin: Mapped[Decimal] = mapped_column(_MONEY, nullable=False)
    revenue_other: Mapped[Decimal] = mapped_column(_MONEY, nullable=False)
    total_revenue: Mapped[Decimal] = mapped_column(_MONEY, nullable=False)

    unique_customers: Mapped[int] = mapped_column(Integer, nullable=False)
    transaction_count: Mapped[int] = mapped_column(Integer, nullable=False)
    member_customers: Mapped[int] = mapped_column(Integer, nullable=False)
    non_member_customers: Mapped[int] = mapped_column(Integer, nullable=False)
    rejected_count: Mapped[int] = mapped_column(Integer, nullable=False)
    unmapped_count: Mapped[int] = mapped_column(Integer, nullable=False)

    # Full WeeklySnapshot JSON (membership counts, top services, visits).
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    source_name: Mapped[str | None] = mapped_column(String, nullable=True)
    imported_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    unmapped: Mapped[list[UnmappedServiceRow]] = relationship(
        back_populates="weekly",
        cascade="all, delete-orphan",
        order_by="UnmappedServiceRow.row_idx",
    )

    __table_args__ = (
        UniqueConstraint("week_start", "week_end", name="uq_ca_weekly_span"),
        CheckConstraint("week_end > week_start", name="ck_ca_weekly_span_order"),
    )


# ---------------------------
# Audit: ca_unmapped_services
# ---------------------------


class UnmappedServiceRow(Base):
    """A charge description that matched no service rule in a persisted week."""

    __tablename__ = "ca_unmapped_services"

    id: Mapped[int] = mapped_column(_PK, primary_key=True, autoincrement=True)
    weekly_id: Mapped[int] = mapped_column(
        ForeignKey("ca_weekly_analytics.id", ondelete="CASCADE"), nullable=False, index=True
    )
    week_start: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    row_idx: Mapped[int] = mapped_column(Integer, nullable=False)
    service_date: Mapped[date] = mapped_column(Date, nullable=False)
    patient: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    amount: Mapped[Decimal] = mapped_column(_MONEY, nullable=False)

    weekly: Mapped[WeeklyAnalytics] = relationship(back_populates="unmapped")


__all__ = [
    "Base",
    "WeeklyAnalytics",
    "UnmappedServiceRow",
]
