"""Records produced and consumed by the import pipeline.

``CanonicalTransaction`` is created once per accepted row by the normalizer
and refined in place by the deduplicator and the classifiers. Everything else
here is an immutable value passed between stages.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import StrEnum
from typing import Any, NamedTuple

from .categories import Category, coerce_category

REVIEW_THRESHOLD: int = 70


class TransactionType(StrEnum):
    INCOME = "Income"
    EXPENSE = "Expense"


class PipelineState(StrEnum):
    DETECTING = "detecting"
    NORMALIZING = "normalizing"
    DEDUPLICATING = "deduplicating"
    CLASSIFYING = "classifying"
    DONE = "done"
    FAILED = "failed"
    CANCELLED = "cancelled"


# ---------------------------------------------------------------------------
# Raw input
# ---------------------------------------------------------------------------


class RawRow(NamedTuple):
    """One data row as read from the file; ``line_number`` is 1-based."""

    line_number: int
    cells: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class RawTable:
    headers: tuple[str, ...]
    rows: tuple[RawRow, ...]


@dataclass(frozen=True, slots=True)
class ColumnMap:
    """Zero-based indices of the three required semantic columns."""

    date_idx: int
    desc_idx: int
    amount_idx: int
    headers: tuple[str, ...] = ()

    @property
    def max_index(self) -> int:
        return max(self.date_idx, self.desc_idx, self.amount_idx)


@dataclass(frozen=True, slots=True)
class RowRejection:
    line_number: int
    reason: str

    def __str__(self) -> str:
        return f"Row {self.line_number}: {self.reason}"


# ---------------------------------------------------------------------------
# Canonical transaction
# ---------------------------------------------------------------------------


def clamp_confidence(value: Any) -> int:
    try:
        n = round(float(value))
    except (TypeError, ValueError, OverflowError):
        return 0
    return max(0, min(100, n))


@dataclass(slots=True)
class CanonicalTransaction:
    """The pipeline's unit of output.

    ``amount`` is a positive magnitude; direction is carried by ``type``.
    ``needs_review`` is derived from ``confidence`` and cannot be set.
    Classifiers must go through :meth:`assign_category` so the category stays
    inside the vocabulary and the confidence inside [0, 100].
    """

    row_number: int
    date: str
    description: str
    amount: Decimal
    type: TransactionType = TransactionType.EXPENSE
    category: Category = Category.OTHER
    confidence: int = 0
    is_duplicate: bool = False
    source: str = "default"
    duplicate_of: int | None = field(default=None, repr=False)

    @property
    def needs_review(self) -> bool:
        return self.confidence < REVIEW_THRESHOLD

    def assign_category(self, category: Any, confidence: Any, *, source: str) -> None:
        self.category = coerce_category(category)
        self.confidence = clamp_confidence(confidence)
        self.source = source

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": self.date,
            "description": self.description,
            "amount": float(self.amount),
            "type": self.type.value,
            "category": self.category.value,
            "confidence": self.confidence,
            "needsReview": self.needs_review,
            "isDuplicate": self.is_duplicate,
        }


# ---------------------------------------------------------------------------
# Report
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class ImportStats:
    total: int = 0
    valid: int = 0
    invalid: int = 0
    duplicates: int = 0
    needs_review: int = 0
    avg_confidence: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "valid": self.valid,
            "invalid": self.invalid,
            "duplicates": self.duplicates,
            "needsReview": self.needs_review,
            "avgConfidence": self.avg_confidence,
        }


@dataclass(slots=True)
class ImportReport:
    """Outcome of one pipeline run.

    On ``DONE``/``CANCELLED``, ``transactions`` holds the new (non-duplicate)
    records and ``duplicates`` the suppressed ones. On ``FAILED``, ``error``
    and ``status_code`` describe the fatal problem; ``found_headers`` is set
    when the header could not be mapped.
    """

    state: PipelineState
    transactions: list[CanonicalTransaction] = field(default_factory=list)
    duplicates: list[CanonicalTransaction] = field(default_factory=list)
    stats: ImportStats = field(default_factory=ImportStats)
    errors: list[str] = field(default_factory=list)
    error: str | None = None
    found_headers: list[str] | None = None
    status_code: int = 200
    cancelled: bool = False

    @property
    def ok(self) -> bool:
        return self.state is not PipelineState.FAILED

    def to_dict(self) -> dict[str, Any]:
        if self.state is PipelineState.FAILED:
            out: dict[str, Any] = {"error": self.error}
            if self.found_headers is not None:
                out["foundHeaders"] = list(self.found_headers)
            out["parseErrors"] = self.errors[:10]
            out["stats"] = self.stats.to_dict()
            return out
        out = {
            "transactions": [t.to_dict() for t in self.transactions],
            "duplicates": [t.to_dict() for t in self.duplicates],
            "stats": self.stats.to_dict(),
            "errors": list(self.errors),
        }
        if self.cancelled:
            out["cancelled"] = True
        return out


__all__ = [
    "REVIEW_THRESHOLD",
    "CanonicalTransaction",
    "ColumnMap",
    "ImportReport",
    "ImportStats",
    "PipelineState",
    "RawRow",
    "RawTable",
    "RowRejection",
    "TransactionType",
]
