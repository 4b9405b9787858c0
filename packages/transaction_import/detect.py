"""Field detector: map a header row onto the date/description/amount columns.

Each semantic field has a list of alias substrings (English and Italian bank
exports). Fields are resolved in the fixed order date, description, amount;
for each field the leftmost header containing any alias wins, and a column
already claimed by an earlier field is skipped.
"""

from __future__ import annotations

from collections.abc import Sequence

from .errors import HeaderDetectionError
from .logging_setup import get_logger
from .models import ColumnMap, TransactionType

DATE_ALIASES: tuple[str, ...] = ("date", "data", "posting", "valuta")
DESCRIPTION_ALIASES: tuple[str, ...] = (
    "description",
    "descrizione",
    "details",
    "dettagli",
    "merchant",
    "payee",
    "causale",
    "beneficiario",
    "beneficiary",
)
AMOUNT_ALIASES: tuple[str, ...] = (
    "amount",
    "importo",
    "value",
    "valore",
    "debit",
    "credit",
    "dare",
    "avere",
)

_FIELD_ORDER: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("date", DATE_ALIASES),
    ("description", DESCRIPTION_ALIASES),
    ("amount", AMOUNT_ALIASES),
)

_CREDIT_ALIASES: tuple[str, ...] = ("credit", "avere")
_DEBIT_ALIASES: tuple[str, ...] = ("debit", "dare")

_logger = get_logger("transaction_import.detect")


def _find(headers: Sequence[str], aliases: Sequence[str], taken: set[int]) -> int | None:
    for i, h in enumerate(headers):
        if i in taken:
            continue
        if any(a in h for a in aliases):
            return i
    return None


def detect_columns(headers: Sequence[str]) -> ColumnMap:
    """Resolve the three required column indices or raise.

    ``headers`` are expected lower-cased and quote-stripped (see
    :func:`transaction_import.sources.normalize_header`); they are normalized
    again here so callers may pass raw header cells.

    Raises :class:`HeaderDetectionError` carrying the full header list when
    any field cannot be resolved.
    """

    norm = [h.replace('"', "").strip().lower() for h in headers]
    taken: set[int] = set()
    found: dict[str, int] = {}
    missing: list[str] = []
    for name, aliases in _FIELD_ORDER:
        idx = _find(norm, aliases, taken)
        if idx is None:
            missing.append(name)
            continue
        found[name] = idx
        taken.add(idx)

    if missing:
        _logger.info("detect:failed headers=%d missing=%s", len(norm), ",".join(missing))
        raise HeaderDetectionError(norm, missing)

    cols = ColumnMap(
        date_idx=found["date"],
        desc_idx=found["description"],
        amount_idx=found["amount"],
        headers=tuple(norm),
    )
    _logger.info(
        "detect:columns date=%d description=%d amount=%d",
        cols.date_idx,
        cols.desc_idx,
        cols.amount_idx,
    )
    return cols


def amount_column_direction(cols: ColumnMap) -> TransactionType | None:
    """Return the direction implied by the amount header, if any.

    A header naming only a credit ("credit"/"avere") is income; one naming
    only a debit ("debit"/"dare") is expense. Neutral or mixed headers return
    ``None`` and the sign of the values decides.
    """

    if not cols.headers:
        return None
    h = cols.headers[cols.amount_idx]
    credit = any(a in h for a in _CREDIT_ALIASES)
    debit = any(a in h for a in _DEBIT_ALIASES)
    if credit and not debit:
        return TransactionType.INCOME
    if debit and not credit:
        return TransactionType.EXPENSE
    return None


__all__ = [
    "AMOUNT_ALIASES",
    "DATE_ALIASES",
    "DESCRIPTION_ALIASES",
    "amount_column_direction",
    "detect_columns",
]
