"""Public entry points for the ``transaction_import`` package.

- :func:`import_transactions` runs delimited text through the full pipeline.
- :func:`import_file` does the same for a ``.csv``/``.txt`` or Excel file.
- :func:`categorize_transactions` classifies already-structured records
  without the detection/normalization/deduplication stages.

When ``settings`` is omitted they are read with
:meth:`ImportSettings.from_env`.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable, Mapping, Sequence
from os import PathLike
from typing import Any

from .config import ImportSettings
from .errors import FileTooLargeError, StructuralError
from .fallback import FallbackClassifier
from .logging_setup import get_logger
from .models import CanonicalTransaction, ImportReport, TransactionType
from .normalizers import parse_date, parse_signed_amount
from .pipeline import ImportPipeline, failed_report
from .sources import read_delimited_text, read_file

_logger = get_logger("transaction_import.api")

Reference = Iterable[CanonicalTransaction | Mapping[str, Any]]


def import_transactions(
    text: str,
    reference: Reference = (),
    *,
    settings: ImportSettings | None = None,
    cancel_event: threading.Event | None = None,
    classifier: FallbackClassifier | None = None,
) -> ImportReport:
    """Import a delimited-text bank export.

    Structural problems (empty input, oversize input, undetectable header, no
    valid rows) come back as a ``FAILED`` report with ``status_code`` 400;
    nothing is raised for them.
    """

    settings = settings or ImportSettings.from_env()
    size = len(text.encode("utf-8"))
    if size > settings.max_file_bytes:
        return failed_report(FileTooLargeError(size, settings.max_file_bytes))
    try:
        table = read_delimited_text(text)
    except StructuralError as e:
        return failed_report(e)
    return ImportPipeline(settings, classifier).run(table, reference, cancel_event=cancel_event)


def import_file(
    path: str | PathLike[str],
    reference: Reference = (),
    *,
    settings: ImportSettings | None = None,
    cancel_event: threading.Event | None = None,
    classifier: FallbackClassifier | None = None,
) -> ImportReport:
    """Import a ``.csv``/``.txt`` or ``.xlsx``/``.xlsm`` file from disk.

    ``OSError`` from opening the file propagates; structural problems are
    reported as in :func:`import_transactions`.
    """

    settings = settings or ImportSettings.from_env()
    try:
        table = read_file(path, max_bytes=settings.max_file_bytes)
    except StructuralError as e:
        return failed_report(e)
    return ImportPipeline(settings, classifier).run(table, reference, cancel_event=cancel_event)


def _to_transaction(pos: int, item: Any) -> CanonicalTransaction:
    if not isinstance(item, Mapping):
        raise ValueError(f"Invalid input: transaction {pos} must be an object")

    desc = item.get("description")
    if not isinstance(desc, str) or not desc.strip():
        raise ValueError(f"Invalid input: description missing/empty for transaction {pos}")

    raw_amount = item.get("amount")
    amount = None
    if raw_amount is not None and not isinstance(raw_amount, bool):
        amount = parse_signed_amount(str(raw_amount))
    if amount is None or amount == 0:
        raise ValueError(f"Invalid input: amount missing/invalid for transaction {pos}")

    parsed = parse_date(str(item.get("date") or ""))
    if parsed is None:
        raise ValueError(f"Invalid input: date missing/invalid for transaction {pos}")

    tx_type = item.get("type")
    if tx_type not in (TransactionType.INCOME.value, TransactionType.EXPENSE.value):
        tx_type = TransactionType.EXPENSE if amount < 0 else TransactionType.INCOME
    return CanonicalTransaction(
        row_number=pos,
        date=parsed.isoformat(),
        description=desc.strip(),
        amount=abs(amount),
        type=TransactionType(tx_type),
    )


def categorize_transactions(
    items: Sequence[Mapping[str, Any]],
    *,
    settings: ImportSettings | None = None,
    cancel_event: threading.Event | None = None,
    classifier: FallbackClassifier | None = None,
) -> list[CanonicalTransaction]:
    """Categorize records with ``description``, ``amount`` and ``date`` keys.

    Raises ``ValueError`` when ``items`` is not a non-empty list or an item is
    unusable, and :class:`ClassifierConfigError` when credentials are missing
    and ``settings.require_ai`` is set. Failed model batches degrade to
    ``Other`` with low confidence; the returned records keep input order.
    """

    if not isinstance(items, list) or not items:
        raise ValueError("Invalid transactions data: expected a non-empty list")

    settings = settings or ImportSettings.from_env()
    txs = [_to_transaction(pos, item) for pos, item in enumerate(items, start=1)]
    errors: list[str] = []
    ImportPipeline(settings, classifier).classify(txs, errors, cancel_event=cancel_event)
    for msg in errors:
        _logger.warning("categorize:error %s", msg)
    return txs


__all__ = ["categorize_transactions", "import_file", "import_transactions"]
