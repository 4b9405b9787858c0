"""Pipeline orchestrator.

Runs one file through Detecting → Normalizing → Deduplicating → Classifying
and returns an :class:`ImportReport`. Transitions only move forward; a run
ends in ``DONE``, ``FAILED`` (structural or configuration error) or
``CANCELLED`` (the caller's cancel event was set during classification).

Recoverable problems (rejected rows, failed classifier batches, missing
credentials when AI is optional) are collected in ``errors`` and never raise
past :meth:`ImportPipeline.run`.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from .config import ImportSettings
from .detect import amount_column_direction, detect_columns
from .duplicates import mark_duplicates
from .errors import ClassifierConfigError, ImportPipelineError, NoValidRowsError, StructuralError
from .fallback import FallbackClassifier
from .logging_setup import get_logger
from .models import (
    CanonicalTransaction,
    ImportReport,
    ImportStats,
    PipelineState,
    RawTable,
    RowRejection,
    TransactionType,
)
from .normalizers import infer_sign_convention, normalize_rows
from .rules import apply_rules

_logger = get_logger("transaction_import.pipeline")

_ORDER: dict[PipelineState, int] = {
    PipelineState.DETECTING: 0,
    PipelineState.NORMALIZING: 1,
    PipelineState.DEDUPLICATING: 2,
    PipelineState.CLASSIFYING: 3,
    PipelineState.DONE: 4,
    PipelineState.FAILED: 4,
    PipelineState.CANCELLED: 4,
}
_TERMINAL = frozenset({PipelineState.DONE, PipelineState.FAILED, PipelineState.CANCELLED})


class _Progress:
    """Per-run state holder enforcing forward-only transitions."""

    def __init__(self) -> None:
        self.state = PipelineState.DETECTING

    def advance(self, to: PipelineState) -> None:
        if self.state in _TERMINAL or _ORDER[to] <= _ORDER[self.state]:
            raise RuntimeError(f"invalid pipeline transition {self.state} -> {to}")
        _logger.info("pipeline:state from=%s to=%s", self.state, to)
        self.state = to


def compute_stats(
    drafts: Sequence[CanonicalTransaction], *, total: int, invalid: int
) -> ImportStats:
    """Aggregate counters over every row that survived normalization."""

    stats = ImportStats(total=total, valid=len(drafts), invalid=invalid)
    stats.duplicates = sum(1 for tx in drafts if tx.is_duplicate)
    stats.needs_review = sum(1 for tx in drafts if tx.needs_review)
    if drafts:
        stats.avg_confidence = round(sum(tx.confidence for tx in drafts) / len(drafts), 1)
    return stats


def failed_report(
    exc: ImportPipelineError,
    *,
    stats: ImportStats | None = None,
    errors: Sequence[str] = (),
) -> ImportReport:
    """Build the ``FAILED`` report for a fatal error."""

    found_headers = getattr(exc, "found_headers", None)
    if isinstance(exc, NoValidRowsError) and not errors:
        errors = exc.errors
    _logger.warning(
        "pipeline:failed status=%d error=%s", exc.status_code, exc.__class__.__name__
    )
    return ImportReport(
        state=PipelineState.FAILED,
        stats=stats or ImportStats(),
        errors=list(errors),
        error=str(exc),
        found_headers=list(found_headers) if found_headers is not None else None,
        status_code=exc.status_code,
    )


class ImportPipeline:
    """Sequence the import stages for one file at a time.

    The instance keeps only configuration; each :meth:`run` call is
    independent. ``classifier`` defaults to a :class:`FallbackClassifier`
    built from ``settings``.
    """

    def __init__(
        self,
        settings: ImportSettings | None = None,
        classifier: FallbackClassifier | None = None,
    ) -> None:
        self.settings = settings or ImportSettings()
        self.classifier = classifier or FallbackClassifier(self.settings)

    def run(
        self,
        table: RawTable,
        reference: Iterable[CanonicalTransaction | Mapping[str, Any]] = (),
        *,
        cancel_event: threading.Event | None = None,
    ) -> ImportReport:
        s = self.settings
        progress = _Progress()
        _logger.info("pipeline:start rows=%d", len(table.rows))

        # Detecting
        try:
            cols = detect_columns(table.headers)
        except StructuralError as e:
            progress.advance(PipelineState.FAILED)
            return failed_report(e, stats=ImportStats(total=len(table.rows)))
        direction = amount_column_direction(cols)
        signed = infer_sign_convention(table.rows, cols, header_direction=direction)

        # Normalizing
        progress.advance(PipelineState.NORMALIZING)
        drafts: list[CanonicalTransaction] = []
        errors: list[str] = []
        for res in normalize_rows(
            table.rows,
            cols,
            signed=signed,
            default_type=direction or TransactionType.EXPENSE,
        ):
            if isinstance(res, RowRejection):
                errors.append(str(res))
            else:
                drafts.append(res)
        rejected = len(errors)
        _logger.info("pipeline:normalized valid=%d invalid=%d", len(drafts), rejected)
        if not drafts:
            progress.advance(PipelineState.FAILED)
            return failed_report(
                NoValidRowsError(errors),
                stats=ImportStats(total=len(table.rows), invalid=rejected),
            )

        # Deduplicating
        progress.advance(PipelineState.DEDUPLICATING)
        mark_duplicates(drafts, reference, within_file=s.dedupe_within_file)

        # Classifying
        progress.advance(PipelineState.CLASSIFYING)
        cancelled = False
        try:
            cancelled = self.classify(drafts, errors, cancel_event=cancel_event)
        except ClassifierConfigError as e:
            progress.advance(PipelineState.FAILED)
            return failed_report(
                e,
                stats=compute_stats(drafts, total=len(table.rows), invalid=rejected),
                errors=errors,
            )

        progress.advance(PipelineState.CANCELLED if cancelled else PipelineState.DONE)
        report = ImportReport(
            state=progress.state,
            transactions=[tx for tx in drafts if not tx.is_duplicate],
            duplicates=[tx for tx in drafts if tx.is_duplicate],
            stats=compute_stats(drafts, total=len(table.rows), invalid=rejected),
            errors=errors,
            cancelled=cancelled,
        )
        _logger.info(
            "pipeline:done state=%s new=%d duplicates=%d needs_review=%d errors=%d",
            report.state,
            len(report.transactions),
            len(report.duplicates),
            report.stats.needs_review,
            len(report.errors),
        )
        return report

    def classify(
        self,
        drafts: Sequence[CanonicalTransaction],
        errors: list[str],
        *,
        cancel_event: threading.Event | None = None,
    ) -> bool:
        """Run the rule classifier, then the fallback on what stays unresolved.

        Duplicates keep their rule result and are never sent to the model.
        Recoverable problems are appended to ``errors``. Returns whether the
        run was cancelled. Raises :class:`ClassifierConfigError` only when
        credentials are missing and ``require_ai`` is set.
        """

        s = self.settings
        matched = apply_rules(
            drafts,
            matched_confidence=s.rule_confidence,
            unmatched_confidence=s.unmatched_confidence,
        )
        pending = [
            tx for tx in drafts if not tx.is_duplicate and tx.confidence < s.fallback_threshold
        ]
        _logger.info("pipeline:rules matched=%d pending=%d", matched, len(pending))

        try:
            outcome = self.classifier.classify(pending, cancel_event=cancel_event)
        except ClassifierConfigError as e:
            if s.require_ai:
                raise
            _logger.warning("pipeline:ai_unavailable pending=%d", len(pending))
            errors.append(f"AI categorization skipped: {e}")
            return False

        for b in outcome.failed:
            errors.append(
                f"AI categorization batch {b.number}/{outcome.total_batches} failed: {b.error}"
            )
        if outcome.cancelled:
            errors.append(
                f"Import cancelled: {len(outcome.skipped)} of {outcome.total_batches} "
                "AI categorization batches were not run"
            )
        return outcome.cancelled


__all__ = ["ImportPipeline", "compute_stats", "failed_report"]
