"""Logging for ``clinic_analytics``.

Every module logs through ``get_logger("clinic_analytics.<module>")``: the
normalizer reports rejected rows, the categorizer unmapped services, the
API one summary line per reporting week. Nothing is emitted until a host
calls :func:`configure_logging`; the ``clinic-analytics`` CLI does so once in
its root callback. The level comes from the caller or from
``CLINIC_ANALYTICS_LOG_LEVEL`` (a name such as ``DEBUG`` or a number).
"""

from __future__ import annotations

import logging
import os
import sys
from typing import IO

_PKG_LOGGER_NAME = "clinic_analytics"
_LEVEL_ENV = "CLINIC_ANALYTICS_LOG_LEVEL"
_CONFIGURED = False


def _level_from_str(value: str) -> int | None:
    value = value.strip().upper()
    if value.isdigit():
        return int(value)
    numeric = getattr(logging, value, None)
    return numeric if isinstance(numeric, int) else None


def _parse_level(level: int | str | None) -> int:
    if isinstance(level, int):
        return level
    if isinstance(level, str):
        parsed = _level_from_str(level)
        if parsed is not None:
            return parsed
    env_val = os.getenv(_LEVEL_ENV)
    if env_val:
        parsed = _level_from_str(env_val)
        if parsed is not None:
            return parsed
    return logging.INFO


def configure_logging(
    level: int | str | None = None,
    *,
    fmt: str | None = None,
    stream: IO[str] = sys.stderr,
) -> None:
    """Send ``clinic_analytics`` records to ``stream``; later calls are no-ops.

    ``level`` wins over ``CLINIC_ANALYTICS_LOG_LEVEL``; an unrecognized value
    in either place falls through to the next source, ending at ``INFO``.
    Records stop at the package logger so a host's root handlers do not print
    import summaries twice.
    """

    global _CONFIGURED
    if _CONFIGURED:
        return

    logger = logging.getLogger(_PKG_LOGGER_NAME)

    for h in list(logger.handlers):
        if isinstance(h, logging.NullHandler):
            logger.removeHandler(h)

    resolved = _parse_level(level)
    handler = logging.StreamHandler(stream)
    handler.setLevel(resolved)
    handler.setFormatter(
        logging.Formatter(fmt or "%(asctime)s %(name)s %(levelname)s %(message)s")
    )

    logger.setLevel(resolved)
    logger.addHandler(handler)
    logger.propagate = False

    _CONFIGURED = True


def get_logger(name: str) -> logging.Logger:
    """Logger for a ``clinic_analytics.*`` module; silent until configured."""

    pkg_logger = logging.getLogger(_PKG_LOGGER_NAME)
    if not _CONFIGURED and not pkg_logger.handlers:
        pkg_logger.addHandler(logging.NullHandler())
    return logging.getLogger(name)


__all__ = ["configure_logging", "get_logger"]
