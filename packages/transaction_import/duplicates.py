"""Deduplication of normalized drafts against already-known transactions.

A draft is a duplicate of a reference transaction when all of these hold:

- ``date`` is the same ISO day;
- ``amount`` magnitudes are equal at two decimals;
- the normalized descriptions are equal, or the draft's normalized
  description is a substring of the reference's.

Matching is exact string work on purpose; fuzzy distances would suppress
legitimate repeat purchases. The reference collection is read-only input and
is never written back.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from .logging_setup import get_logger
from .models import CanonicalTransaction
from .normalizers import normalize_description, parse_date

_TWO_PLACES = Decimal("0.01")

_logger = get_logger("transaction_import.duplicates")


@dataclass(frozen=True, slots=True)
class ReferenceKey:
    date: str
    amount: Decimal
    description: str
    row_number: int | None = None


def _to_amount(raw: Any) -> Decimal | None:
    if raw is None or isinstance(raw, bool):
        return None
    try:
        d = Decimal(str(raw))
        if not d.is_finite():
            return None
        return abs(d).quantize(_TWO_PLACES, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        return None


def _reference_key(item: CanonicalTransaction | Mapping[str, Any]) -> ReferenceKey | None:
    if isinstance(item, CanonicalTransaction):
        return ReferenceKey(
            date=item.date,
            amount=item.amount,
            description=normalize_description(item.description),
            row_number=item.row_number,
        )
    if not isinstance(item, Mapping):
        return None
    d = parse_date(str(item.get("date") or ""))
    amount = _to_amount(item.get("amount"))
    desc = item.get("description")
    if d is None or amount is None or not isinstance(desc, str) or not desc.strip():
        return None
    return ReferenceKey(date=d.isoformat(), amount=amount, description=normalize_description(desc))


class ReferenceIndex:
    """Reference transactions bucketed by ``(date, amount)`` for lookup."""

    def __init__(self, reference: Iterable[CanonicalTransaction | Mapping[str, Any]] = ()) -> None:
        self._buckets: dict[tuple[str, Decimal], list[ReferenceKey]] = defaultdict(list)
        skipped = 0
        for item in reference:
            key = _reference_key(item)
            if key is None:
                skipped += 1
                continue
            self._add(key)
        if skipped:
            _logger.debug("dedupe:reference_skipped count=%d", skipped)

    def _add(self, key: ReferenceKey) -> None:
        self._buckets[(key.date, key.amount)].append(key)

    def add(self, tx: CanonicalTransaction) -> None:
        key = _reference_key(tx)
        if key is not None:
            self._add(key)

    def match(self, tx: CanonicalTransaction) -> ReferenceKey | None:
        candidates = self._buckets.get((tx.date, tx.amount.quantize(_TWO_PLACES)))
        if not candidates:
            return None
        desc = normalize_description(tx.description)
        for ref in candidates:
            if desc == ref.description or desc in ref.description:
                return ref
        return None


def mark_duplicates(
    drafts: Sequence[CanonicalTransaction],
    reference: Iterable[CanonicalTransaction | Mapping[str, Any]] = (),
    *,
    within_file: bool = True,
) -> int:
    """Set ``is_duplicate`` on each draft and return the number flagged.

    With ``within_file`` every accepted (non-duplicate) draft joins the
    reference set for the drafts after it, so a repeated line is flagged
    against its first occurrence.
    """

    index = ReferenceIndex(reference)
    flagged = 0
    for tx in drafts:
        hit = index.match(tx)
        if hit is not None:
            tx.is_duplicate = True
            tx.duplicate_of = hit.row_number
            flagged += 1
            continue
        tx.is_duplicate = False
        if within_file:
            index.add(tx)
    _logger.info("dedupe:summary drafts=%d duplicates=%d", len(drafts), flagged)
    return flagged


__all__ = ["ReferenceIndex", "mark_duplicates"]
