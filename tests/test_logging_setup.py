# ruff: noqa: E402, I001
import io
import logging
import sys
from pathlib import Path

import pytest

# Make sure the workspace `packages/` dir is on sys.path so `transaction_import` is importable
_ROOT = Path(__file__).resolve().parents[1]
_PKG_DIR = _ROOT / "packages"
sys.path[:0] = [p for p in [str(_PKG_DIR), str(_ROOT)] if p not in sys.path]

import transaction_import.logging_setup as logging_setup
from transaction_import.logging_setup import (
    PersonalDataFilter,
    configure_logging,
    get_logger,
    redact_personal_data,
)


@pytest.fixture
def fresh_package_logger(monkeypatch: pytest.MonkeyPatch):
    """Let ``configure_logging`` run again and restore the package logger after."""

    logger = logging.getLogger("transaction_import")
    handlers, level, propagate = list(logger.handlers), logger.level, logger.propagate
    monkeypatch.setattr(logging_setup, "_CONFIGURED", False)
    logger.handlers = []
    yield logger
    logger.handlers = handlers
    logger.setLevel(level)
    logger.propagate = propagate


def test_redact_personal_data_masks_statement_fields():
    msg = 'dedupe:match description="ESSELUNGA MILANO" amount=45.20 row=3'
    assert redact_personal_data(msg) == (
        "dedupe:match description=<redacted> amount=<redacted> row=3"
    )
    assert redact_personal_data("pipeline:state from=detecting") == "pipeline:state from=detecting"


def _record(level: int, msg: str, *args) -> logging.LogRecord:
    return logging.LogRecord("transaction_import.x", level, __file__, 1, msg, args, None)


def test_filter_rewrites_info_records_and_keeps_debug():
    flt = PersonalDataFilter()

    info = _record(logging.INFO, "rules:match desc=%s batch=%d", "CONAD", 2)
    assert flt.filter(info) is True
    assert info.getMessage() == "rules:match desc=<redacted> batch=2"

    debug = _record(logging.DEBUG, "rules:match desc=%s", "CONAD")
    assert flt.filter(debug) is True
    assert debug.getMessage() == "rules:match desc=CONAD"


def test_configured_handler_redacts_above_debug(fresh_package_logger):
    stream = io.StringIO()
    configure_logging("DEBUG", fmt="%(levelname)s %(message)s", stream=stream)
    log = get_logger("transaction_import.test")

    log.info("fallback:item description=%s", "FARMACIA CENTRALE")
    log.debug("fallback:item description=%s", "FARMACIA CENTRALE")

    assert stream.getvalue().splitlines() == [
        "INFO fallback:item description=<redacted>",
        "DEBUG fallback:item description=FARMACIA CENTRALE",
    ]
    assert fresh_package_logger.propagate is False


def test_level_falls_back_to_environment(fresh_package_logger, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("TRANSACTION_IMPORT_LOG_LEVEL", "warning")
    configure_logging(stream=io.StringIO())
    assert fresh_package_logger.level == logging.WARNING
