"""Shared SQLAlchemy models registry for the workspace database.

Currently includes the weekly analytics models used by ``clinic_analytics``.
"""

from .analytics import Base, UnmappedServiceRow, WeeklyAnalytics

__all__ = [
    "Base",
    "WeeklyAnalytics",
    "UnmappedServiceRow",
]
