"""Logging for the ``transaction_import`` package.

- ``configure_logging(...)``: attach one ``StreamHandler`` to the package
  logger (``"transaction_import"``). Entry points (the CLI) call it once.
- ``get_logger(name)``: return a module logger; until logging is configured
  the package logger carries a ``NullHandler`` so library use stays quiet.
- :class:`PersonalDataFilter`: redacts ``description=``/``amount=`` style
  fields from records above DEBUG.

Transaction descriptions and amounts are personal data. Modules log them only
at DEBUG, and the handler installed by :func:`configure_logging` carries a
:class:`PersonalDataFilter` so a stray INFO line cannot leak them. Hosts that
install their own handlers can attach the same filter.
"""

from __future__ import annotations

import logging
import os
import re
import sys
from typing import IO

_PKG_LOGGER_NAME = "transaction_import"
_LEVEL_ENV = "TRANSACTION_IMPORT_LOG_LEVEL"
_DEFAULT_FMT = "%(asctime)s %(name)s %(levelname)s %(message)s"
_CONFIGURED = False

# ``key=value`` / ``key="quoted value"`` pairs carrying statement contents.
_SENSITIVE_RE = re.compile(
    r"\b(description|desc|merchant|amount)=(\"[^\"]*\"|'[^']*'|\S+)",
    re.IGNORECASE,
)
REDACTED = "<redacted>"


def redact_personal_data(message: str) -> str:
    return _SENSITIVE_RE.sub(lambda m: f"{m.group(1)}={REDACTED}", message)


class PersonalDataFilter(logging.Filter):
    """Redact statement contents from records logged above DEBUG.

    The record is rewritten in place (message rendered, args cleared); it is
    never dropped.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if record.levelno <= logging.DEBUG:
            return True
        message = record.getMessage()
        redacted = redact_personal_data(message)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


def _level_from(value: int | str | None) -> int | None:
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        name = value.strip().upper()
        if name.isdigit():
            return int(name)
        numeric = getattr(logging, name, None)
        if isinstance(numeric, int):
            return numeric
    return None


def _parse_level(level: int | str | None) -> int:
    for candidate in (level, os.getenv(_LEVEL_ENV)):
        resolved = _level_from(candidate)
        if resolved is not None:
            return resolved
    return logging.INFO


def configure_logging(
    level: int | str | None = None,
    *,
    fmt: str | None = None,
    stream: IO[str] | None = None,
) -> None:
    """Configure the package logger exactly once.

    Parameters
    ----------
    level:
        ``int`` or level name. ``None`` (or an unknown name) falls back to
        ``TRANSACTION_IMPORT_LOG_LEVEL``, then ``INFO``.
    fmt:
        Format string; defaults to ``"%(asctime)s %(name)s %(levelname)s %(message)s"``.
    stream:
        Output stream, resolved at call time; defaults to ``sys.stderr``.
    """

    global _CONFIGURED
    if _CONFIGURED:
        return

    logger = logging.getLogger(_PKG_LOGGER_NAME)
    for h in list(logger.handlers):
        if isinstance(h, logging.NullHandler):
            logger.removeHandler(h)

    resolved = _parse_level(level)
    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setLevel(resolved)
    handler.setFormatter(logging.Formatter(fmt or _DEFAULT_FMT))
    handler.addFilter(PersonalDataFilter())

    logger.setLevel(resolved)
    logger.addHandler(handler)
    # Avoid double emission via the root logger.
    logger.propagate = False

    _CONFIGURED = True


def get_logger(name: str) -> logging.Logger:
    pkg_logger = logging.getLogger(_PKG_LOGGER_NAME)
    if not _CONFIGURED and not pkg_logger.handlers:
        pkg_logger.addHandler(logging.NullHandler())
    return logging.getLogger(name)


__all__ = [
    "PersonalDataFilter",
    "configure_logging",
    "get_logger",
    "redact_personal_data",
]
