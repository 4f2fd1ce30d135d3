from __future__ import annotations

from datetime import date, datetime, timedelta
from decimal import Decimal

import pytest

from clinic_analytics.ctv import CanonicalTransaction
from clinic_analytics.models import RejectedRow, RejectReason
from clinic_analytics.normalizers import (
    SPREADSHEET_EPOCH,
    normalize_row,
    normalize_rows,
    parse_amount,
    parse_date,
)
from clinic_analytics.schema import MissingColumnsError, resolve_columns

HEADERS = ["Date", "Patient", "Charge Desc", "Calculated Payment (Line)"]


def _row(d, patient, desc, amount) -> dict[str, object]:
    return dict(zip(HEADERS, [d, patient, desc, amount], strict=True))


# ---- Dates -------------------------------------------------------------------


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("8/22/25", date(2025, 8, 22)),
        ("08/22/2025", date(2025, 8, 22)),
        ("8/22/2025 10:15 AM", date(2025, 8, 22)),
        (datetime(2025, 8, 22, 9, 30), date(2025, 8, 22)),
        (date(2025, 8, 22), date(2025, 8, 22)),
        (45527, date(2024, 8, 23)),
        (45527.75, date(2024, 8, 23)),
        ("45527", date(2024, 8, 23)),
    ],
)
def test_parse_date_accepts_export_encodings(raw, expected):
    assert parse_date(raw) == expected


def test_serial_dates_count_from_spreadsheet_epoch():
    assert parse_date(45527) == SPREADSHEET_EPOCH + timedelta(days=45527)
    assert SPREADSHEET_EPOCH == date(1899, 12, 30)


@pytest.mark.parametrize(
    "raw",
    [None, "", "   ", "n/a", "13/45/25", "2/30/2025", "1/1/1999", 0, 100, True, "2025-08-22"],
)
def test_parse_date_rejects_garbage_without_defaulting(raw):
    assert parse_date(raw) is None


# ---- Amounts -----------------------------------------------------------------


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("$150.00", Decimal("150.00")),
        ("$1,234.5", Decimal("1234.50")),
        (" 75 ", Decimal("75.00")),
        ("(25.00)", Decimal("-25.00")),
        ("($25.00)", Decimal("-25.00")),
        ("-$10", Decimal("-10.00")),
        ("$-10", Decimal("-10.00")),
        (12.345, Decimal("12.35")),
        (40, Decimal("40.00")),
        (Decimal("1.005"), Decimal("1.01")),
    ],
)
def test_parse_amount(raw, expected):
    assert parse_amount(raw) == expected


@pytest.mark.parametrize(
    "raw",
    [None, "", "free", "$", "NaN", "Infinity", True, "1e50", "1e999999999", "$" + "9" * 29, 1e300],
)
def test_malformed_amount_is_zero(raw):
    assert parse_amount(raw) == Decimal("0.00")


# ---- Rows --------------------------------------------------------------------


def test_scenario_row_normalizes_to_canonical_transaction():
    mapping = resolve_columns(HEADERS)
    out = normalize_row(
        _row("8/22/25", "Jane Doe", "Semaglutide Injection (Member)", "$150.00"),
        mapping,
        idx=0,
    )
    assert out == CanonicalTransaction(
        idx=0,
        date=date(2025, 8, 22),
        patient="Jane Doe",
        description="Semaglutide Injection (Member)",
        amount=Decimal("150.00"),
    )


def test_text_fields_are_whitespace_collapsed():
    mapping = resolve_columns(HEADERS)
    row = _row("8/22/25", "  Jane   Doe ", "Hydration\n Infusion", "1")
    out = normalize_row(row, mapping, idx=3)
    assert isinstance(out, CanonicalTransaction)
    assert out.patient == "Jane Doe"
    assert out.description == "Hydration Infusion"


def test_normalize_rows_rejects_and_counts():
    rows = [
        _row("8/25/25", "Jane Doe", "Hydration Infusion", "$150.00"),
        _row("", "Jane Doe", "Hydration Infusion", "$150.00"),
        _row("8/25/25", "", "Hydration Infusion", "$150.00"),
        _row("8/25/25", "Jane Doe", "  ", "$150.00"),
        _row(None, None, None, None),  # spreadsheet padding
        _row("8/25/25", "John Smith", "B12 Injection", "oops"),
    ]
    result = normalize_rows(rows)

    assert [t.idx for t in result.transactions] == [0, 5]
    assert result.transactions[1].amount == Decimal("0.00")
    assert [(r.idx, r.reason) for r in result.rejected] == [
        (1, RejectReason.INVALID_DATE),
        (2, RejectReason.MISSING_PATIENT),
        (3, RejectReason.MISSING_DESCRIPTION),
    ]
    assert result.rejected_count == 3


def test_tips_summary_rows_are_rejected():
    headers = [*HEADERS, "Charge Type"]
    mapping = resolve_columns(headers)
    tips = dict(zip(headers, ["8/31/25", "", "Tips", "$20.00", "TOTAL_TIPS"], strict=True))
    out = normalize_row(tips, mapping, idx=7)
    assert isinstance(out, RejectedRow)
    assert out.reason is RejectReason.TIPS_SUMMARY

    by_desc = dict(zip(headers, ["8/31/25", "x", "total_tips", "$5", ""], strict=True))
    assert normalize_row(by_desc, mapping, idx=8).reason is RejectReason.TIPS_SUMMARY


def test_date_aliases_are_tried_in_order():
    headers = ["Date", "Date Of Payment", "Patient", "Charge Desc", "Payment"]
    rows = [
        dict(zip(headers, ["", "8/26/25", "Jane", "Hydration", "1"], strict=True)),
        dict(zip(headers, ["8/25/25", "8/26/25", "Jane", "Hydration", "1"], strict=True)),
    ]
    result = normalize_rows(rows)
    assert [t.date for t in result.transactions] == [date(2025, 8, 26), date(2025, 8, 25)]


def test_resolve_columns_is_case_and_space_insensitive():
    headers = ["date of payment", " PATIENT NAME ", "Charge  Description", "Amount"]
    mapping = resolve_columns(headers)
    assert mapping.date == ("date of payment",)
    assert mapping.patient == " PATIENT NAME "
    assert mapping.description == "Charge  Description"
    assert mapping.amount == "Amount"
    assert mapping.charge_type is None


def test_adapter_column_check_fails_fast():
    with pytest.raises(MissingColumnsError) as ei:
        resolve_columns(["Date", "Patient", "Amount"])
    assert ei.value.missing == ("description",)
    assert isinstance(ei.value, ValueError)


def test_lenient_resolution_reports_missing_fields():
    mapping = resolve_columns(["Date", "Charge Desc"], strict=False)
    assert mapping.patient is None and mapping.amount is None
    assert mapping.missing == ("patient", "amount")


def test_batch_without_patient_column_rejects_rows():
    result = normalize_rows(
        [{"Date": "8/25/25", "Charge Desc": "Zinc", "Calculated Payment (Line)": "$10"}]
    )
    assert result.transactions == []
    assert result.rejected_count == 1
    assert result.rejected[0].reason is RejectReason.MISSING_PATIENT


def test_batch_without_description_column_rejects_rows():
    result = normalize_rows([{"Date": "8/25/25", "Patient": "Jane", "Amount": "1"}])
    assert [(r.idx, r.reason) for r in result.rejected] == [
        (0, RejectReason.MISSING_DESCRIPTION)
    ]


def test_batch_without_date_column_rejects_rows():
    result = normalize_rows([{"Patient": "Jane", "Charge Desc": "Zinc", "Amount": "1"}])
    assert result.rejected[0].reason is RejectReason.INVALID_DATE


def test_batch_without_amount_column_zeroes_amounts():
    result = normalize_rows([{"Date": "8/25/25", "Patient": "Jane", "Charge Desc": "Zinc"}])
    assert result.rejected == []
    assert result.transactions[0].amount == Decimal("0.00")


def test_empty_batch():
    result = normalize_rows([])
    assert result.transactions == [] and result.rejected == []
