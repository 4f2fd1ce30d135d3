"""db: shared database library (SQLAlchemy).

Public exports
--------------
- ``Base`` and ``metadata`` for schema creation
- ORM models in ``db.models.analytics`` (re-exported for convenience)
- Engine/session helpers in ``db.client``
"""

from __future__ import annotations

from .models.analytics import Base, UnmappedServiceRow, WeeklyAnalytics

metadata = Base.metadata

__all__ = [
    "Base",
    "metadata",
    "WeeklyAnalytics",
    "UnmappedServiceRow",
]
