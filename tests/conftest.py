"""Pytest configuration for test isolation.

Puts the workspace packages on ``sys.path`` so the suite runs from a plain
checkout (``packages/`` for ``clinic_analytics``, ``libs/db/src`` for ``db``,
and the repo root for ``tests.helpers``).

Environment variables the application reads (``DATABASE_URL`` and the log
level) are cleared for every test so a developer's ``.env`` or shell never
leaks into assertions; tests that need a database build their own SQLite file
under ``tmp_path``.
"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

_ROOT = Path(__file__).resolve().parents[1]
sys.path[:0] = [
    p
    for p in [str(_ROOT / "packages"), str(_ROOT / "libs" / "db" / "src"), str(_ROOT)]
    if p not in sys.path
]


@pytest.fixture(autouse=True)
def _isolate_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Clear app env vars and run each test from its own working directory.

    The CLI loads ``.env`` from the current directory, so ``chdir`` into the
    test's temporary directory keeps a stray repo-level ``.env`` out of play.
    """

    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.delenv("CLINIC_ANALYTICS_LOG_LEVEL", raising=False)
    monkeypatch.chdir(tmp_path)
