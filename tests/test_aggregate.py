from __future__ import annotations

import dataclasses
import random
from datetime import date, timedelta
from decimal import Decimal

import pytest

from clinic_analytics.aggregate import (
    WeekSpanError,
    aggregate_month,
    aggregate_week,
    monday_of,
    split_by_week,
    validate_week_span,
    week_bounds,
)
from clinic_analytics.api import to_snapshot
from clinic_analytics.categorize import categorize_transactions
from clinic_analytics.ctv import CanonicalTransaction
from clinic_analytics.models import Category, MembershipType

MON = date(2025, 8, 25)
SUN = date(2025, 8, 31)


def _items(*specs: tuple[date, str, str, str]):
    txs = [
        CanonicalTransaction(idx=i, date=d, patient=p, description=desc, amount=Decimal(amt))
        for i, (d, p, desc, amt) in enumerate(specs)
    ]
    return categorize_transactions(txs).items


# ---- Week boundaries ---------------------------------------------------------


def test_sunday_reference_belongs_to_the_preceding_monday():
    assert week_bounds(date(2025, 8, 31)) == (date(2025, 8, 25), date(2025, 8, 31))


@pytest.mark.parametrize("offset", range(7))
def test_every_day_of_the_week_maps_to_its_monday(offset):
    assert monday_of(MON + timedelta(days=offset)) == MON


def test_next_monday_starts_a_new_week():
    assert monday_of(MON + timedelta(days=7)) == MON + timedelta(days=7)


def test_week_bounds_always_monday_to_sunday():
    d = date(2024, 12, 20)
    for _ in range(60):
        start, end = week_bounds(d)
        assert start.isoweekday() == 1 and end.isoweekday() == 7
        assert (end - start).days == 6
        assert start <= d <= end
        d += timedelta(days=1)


@pytest.mark.parametrize(
    ("start", "end"),
    [
        (date(2025, 8, 26), date(2025, 9, 1)),  # Tuesday start
        (MON, date(2025, 9, 1)),  # eight days
        (MON, date(2025, 8, 30)),  # six days
        (date(2025, 8, 24), date(2025, 8, 30)),  # Sunday..Saturday
    ],
)
def test_validate_week_span_fails_fast(start, end):
    with pytest.raises(WeekSpanError):
        validate_week_span(start, end)


def test_aggregate_rejects_non_monday_week_start():
    with pytest.raises(WeekSpanError):
        aggregate_week([], week_start=date(2025, 8, 26))


def test_week_span_error_is_a_value_error():
    assert issubclass(WeekSpanError, ValueError)


# ---- Weekly fold -------------------------------------------------------------


def test_revenue_and_customers():
    items = _items(
        (MON, "Jane Doe", "Hydration Infusion", "150.00"),
        (MON, "jane  doe", "NAD+ Add-on (Member)", "75.00"),
        (SUN, "John Smith", "B12 Injection (Member)", "25.00"),
        (SUN, "Ann Lee", "Mystery Service", "40.00"),
        (SUN + timedelta(days=1), "Late Larry", "Hydration Infusion", "150.00"),
        (MON - timedelta(days=1), "Early Eve", "Hydration Infusion", "150.00"),
    )
    agg = aggregate_week(items, week_start=MON)

    assert (agg.week_start, agg.week_end) == (MON, SUN)
    assert agg.revenue_by_category == {
        Category.BASE_INFUSION: Decimal("150.00"),
        Category.INFUSION_ADDON: Decimal("75.00"),
        Category.STANDALONE_INJECTION: Decimal("25.00"),
        Category.WEIGHT_LOSS_MEDICATION: Decimal("0.00"),
        Category.MEMBERSHIP_OR_ADMIN: Decimal("0.00"),
        Category.OTHER: Decimal("40.00"),
    }
    assert agg.total_revenue == Decimal("290.00")
    assert agg.unique_customers == 3
    assert agg.transaction_count == 4
    assert agg.member_customers == 2
    assert agg.non_member_customers == 1


def test_total_equals_sum_of_categories_and_of_amounts():
    rng = random.Random(7)
    descriptions = [
        "Hydration Infusion",
        "Zinc",
        "B12 Injection",
        "Semaglutide",
        "Lab Panel",
        "Mystery",
    ]
    specs = [
        (
            MON + timedelta(days=rng.randrange(7)),
            f"Patient {rng.randrange(10)}",
            rng.choice(descriptions),
            f"{rng.randrange(-5000, 50000) / 100:.2f}",
        )
        for _ in range(200)
    ]
    items = _items(*specs)
    agg = aggregate_week(items, week_start=MON)
    assert agg.total_revenue == sum(agg.revenue_by_category.values(), Decimal("0.00"))
    assert agg.total_revenue == sum((i.transaction.amount for i in items), Decimal("0.00"))
    assert agg.unique_customers <= len({s[1] for s in specs})


def test_revenue_is_independent_of_row_order():
    items = _items(
        (MON, "A", "Hydration Infusion", "10.00"),
        (MON, "B", "Zinc", "5.00"),
        (SUN, "C", "Mystery", "1.00"),
        (SUN, "A", "Semaglutide", "100.00"),
    )
    a = aggregate_week(items, week_start=MON)
    b = aggregate_week(list(reversed(items)), week_start=MON)
    assert a.revenue_by_category == b.revenue_by_category
    assert a.unique_customers == b.unique_customers


def test_idempotent_snapshot_bytes():
    items = _items(
        (MON, "Jane Doe", "Hydration Infusion", "150.00"),
        (SUN, "Mary Major", "OFFICE VISIT Membership - Family (NEW)", "199.00"),
    )
    first = to_snapshot(aggregate_week(items, week_start=MON)).model_dump_json()
    second = to_snapshot(aggregate_week(items, week_start=MON)).model_dump_json()
    assert first == second


def test_membership_patient_counted_once_per_week():
    items = _items(
        (MON, "Mary Major", "OFFICE VISIT Membership - Family (NEW)", "199.00"),
        (SUN, "mary major", "Family Membership", "199.00"),
        (MON, "Tom Tran", "Concierge Membership", "300.00"),
        (MON, "Ivy Ng", "Individual Membership", "99.00"),
        (SUN, "Ivy Ng", "Individual Membership (NEW)", "99.00"),
    )
    agg = aggregate_week(items, week_start=MON)

    assert agg.membership_counts[MembershipType.FAMILY] == 1
    assert agg.membership_counts[MembershipType.CONCIERGE] == 1
    assert agg.membership_counts[MembershipType.INDIVIDUAL] == 1
    assert sum(agg.membership_counts.values()) == 3
    assert agg.new_membership_counts[MembershipType.FAMILY] == 1
    assert agg.new_membership_counts[MembershipType.INDIVIDUAL] == 1
    assert agg.new_membership_counts[MembershipType.CONCIERGE] == 0
    assert set(agg.membership_counts) == set(MembershipType)


def test_member_pricing_suffix_is_not_a_signup():
    items = _items((MON, "John Smith", "B12 Injection (Member)", "25.00"))
    agg = aggregate_week(items, week_start=MON)
    assert sum(agg.membership_counts.values()) == 0


def test_top_services_by_frequency_with_stable_ties():
    items = _items(
        (MON, "A", "Energy Infusion", "1"),
        (MON, "B", "Hydration Infusion", "1"),
        (MON, "C", "Hydration Infusion", "1"),
        (MON, "D", "Immunity Infusion", "1"),
        (MON, "E", "Lux Beauty", "1"),
        (MON, "F", "B12 Injection", "1"),
    )
    agg = aggregate_week(items, week_start=MON, top_n=3)
    assert agg.top_services[Category.BASE_INFUSION] == (
        "Hydration Infusion",
        "Energy Infusion",
        "Immunity Infusion",
    )
    assert agg.top_services[Category.STANDALONE_INJECTION] == ("B12 Injection",)
    assert agg.top_services[Category.MEMBERSHIP_OR_ADMIN] == ()


def test_visits_are_counted_per_patient_per_day():
    sat = MON + timedelta(days=5)
    items = _items(
        (MON, "Jane", "Hydration Infusion", "150"),
        (MON, "Jane", "Zinc", "20"),
        (MON, "Jane", "Toradol", "20"),
        (sat, "Jane", "Energy Infusion", "175"),
        (MON, "John", "B12 Injection", "25"),
        (SUN, "John", "B12 Injection", "25"),
        (SUN, "John", "Vitamin D Injection", "25"),
    )
    agg = aggregate_week(items, week_start=MON)
    assert dict(agg.visit_counts) == {
        "infusion_weekday": 1,
        "infusion_weekend": 1,
        "injection_weekday": 1,
        "injection_weekend": 1,
    }


def test_week_defaults_to_latest_transaction_not_today():
    items = _items(
        (MON, "A", "Hydration Infusion", "10"),
        (date(2025, 9, 2), "B", "Hydration Infusion", "10"),
    )
    agg = aggregate_week(items)
    assert agg.week_start == date(2025, 9, 1)
    assert agg.transaction_count == 1


def test_reference_date_selects_the_week():
    items = _items((MON, "A", "Hydration Infusion", "10"))
    agg = aggregate_week(items, reference_date=SUN)
    assert agg.week_start == MON and agg.transaction_count == 1


def test_empty_week_is_zero_filled():
    agg = aggregate_week([], week_start=MON)
    assert agg.total_revenue == Decimal("0.00")
    assert set(agg.revenue_by_category) == set(Category)
    assert agg.unique_customers == 0


def test_empty_batch_without_anchor_raises():
    with pytest.raises(ValueError, match="empty batch"):
        aggregate_week([])


def test_aggregate_is_read_only():
    agg = aggregate_week(_items((MON, "A", "Zinc", "1")), week_start=MON)
    with pytest.raises(TypeError):
        agg.revenue_by_category[Category.OTHER] = Decimal("1")  # type: ignore[index]
    with pytest.raises(dataclasses.FrozenInstanceError):
        agg.total_revenue = Decimal("0")  # type: ignore[misc]


# ---- Multi-week and monthly ----------------------------------------------------


def test_split_by_week_orders_weeks():
    items = _items(
        (date(2025, 9, 3), "A", "Zinc", "1"),
        (MON, "B", "Zinc", "1"),
        (SUN, "C", "Zinc", "1"),
    )
    groups = split_by_week(items)
    assert list(groups) == [MON, date(2025, 9, 1)]
    assert [i.transaction.patient for i in groups[MON]] == ["B", "C"]


def test_monthly_fold_is_independent_of_weeks():
    items = _items(
        (date(2025, 8, 1), "A", "Hydration Infusion", "100.00"),
        (date(2025, 8, 31), "B", "Zinc", "10.00"),
        (date(2025, 9, 1), "C", "Zinc", "10.00"),
    )
    month = aggregate_month(items, reference_date=date(2025, 8, 15))
    assert (month.month_start, month.month_end) == (date(2025, 8, 1), date(2025, 8, 31))
    assert month.total_revenue == Decimal("110.00")
    assert month.revenue_by_category[Category.BASE_INFUSION] == Decimal("100.00")
    assert month.unique_customers == 2
    assert month.transaction_count == 2
