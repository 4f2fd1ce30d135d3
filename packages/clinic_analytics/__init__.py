"""Public interface for the ``clinic_analytics`` package.

This module exposes the package's API functions and public models/types as the
stable import surface. There is no runtime logic here, only symbol re-exports.
"""

from .aggregate import WeekSpanError, aggregate_month, aggregate_week, validate_week_span
from .api import (
    build_weekly_report,
    build_weekly_reports,
    import_file,
    import_file_weeks,
    to_snapshot,
)
from .categorize import RULES, Categorizer, Rule, categorize_transactions
from .ctv import CanonicalTransaction
from .models import (
    CategorizedTransaction,
    Category,
    MembershipType,
    MonthlyAggregate,
    RejectedRow,
    RejectReason,
    UnmappedService,
    WeeklyAggregate,
    WeeklyReport,
    WeeklySnapshot,
)
from .normalizers import normalize_rows
from .schema import MissingColumnsError, resolve_columns

__all__ = [
    # API
    "build_weekly_report",
    "build_weekly_reports",
    "import_file",
    "import_file_weeks",
    "to_snapshot",
    # Pipeline stages
    "normalize_rows",
    "resolve_columns",
    "Categorizer",
    "Rule",
    "RULES",
    "categorize_transactions",
    "aggregate_week",
    "aggregate_month",
    "validate_week_span",
    # Errors
    "WeekSpanError",
    "MissingColumnsError",
    # Models / types
    "CanonicalTransaction",
    "CategorizedTransaction",
    "Category",
    "MembershipType",
    "RejectReason",
    "RejectedRow",
    "UnmappedService",
    "WeeklyAggregate",
    "MonthlyAggregate",
    "WeeklyReport",
    "WeeklySnapshot",
]
