"""Fallback classifier: language-model categorization for unresolved drafts.

Public API:
    - :class:`FallbackClassifier`
    - :class:`FallbackOutcome`

Drafts are sent in batches of ``batch_size`` through the OpenAI Chat
Completions API, one request per batch, strictly one after another. A batch
whose call fails (HTTP error, timeout, connection error) or whose reply
cannot be parsed degrades to ``Other`` with ``failed_batch_confidence`` and
the next batch runs normally; batches are never retried.

No side effects occur at import time: the client is created on first use.
"""

from __future__ import annotations

import math
import threading
import time
from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from openai import OpenAI, OpenAIError

from . import prompting
from .categories import Category
from .config import ImportSettings
from .errors import ClassifierConfigError, StructuredResponseError
from .logging_setup import get_logger
from .models import CanonicalTransaction
from .responses import parse_batch_results

_logger = get_logger("transaction_import.fallback")


class BatchStatus(StrEnum):
    OK = "ok"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(frozen=True, slots=True)
class BatchReport:
    """Result of one batch; ``number`` is 1-based."""

    number: int
    size: int
    status: BatchStatus
    error: str | None = None


@dataclass(slots=True)
class FallbackOutcome:
    total_batches: int = 0
    batches: list[BatchReport] = field(default_factory=list)
    cancelled: bool = False

    @property
    def failed(self) -> list[BatchReport]:
        return [b for b in self.batches if b.status is BatchStatus.FAILED]

    @property
    def skipped(self) -> list[BatchReport]:
        return [b for b in self.batches if b.status is BatchStatus.SKIPPED]


def _create_client(*, timeout: float) -> OpenAI:
    # Retries are disabled: a failed batch degrades instead of being re-sent.
    return OpenAI(timeout=timeout, max_retries=0)


def _batches(
    drafts: Sequence[CanonicalTransaction], batch_size: int
) -> Iterator[tuple[int, list[CanonicalTransaction]]]:
    """Yield ``(batch_number, items)`` with 1-based batch numbers."""

    for k in range(math.ceil(len(drafts) / batch_size)):
        base = k * batch_size
        yield k + 1, list(drafts[base : base + batch_size])


def _extract_message_text(resp: Any) -> str:
    """Return the assistant text of a Chat Completions result.

    Raises ``StructuredResponseError`` when the reply has no text content
    (empty choices, refusal, or an unexpected SDK shape).
    """

    choices = getattr(resp, "choices", None)
    if not choices:
        raise StructuredResponseError("model reply has no choices")
    message = getattr(choices[0], "message", None)
    refusal = getattr(message, "refusal", None)
    if refusal:
        raise StructuredResponseError(f"model refused: {refusal}")
    content = getattr(message, "content", None)
    if not isinstance(content, str) or not content.strip():
        raise StructuredResponseError("model reply has no text content")
    return content


def _describe(exc: BaseException) -> str:
    msg = str(exc).strip()
    return f"{exc.__class__.__name__}: {msg}" if msg else exc.__class__.__name__


class FallbackClassifier:
    """Categorize drafts the keyword rules could not resolve.

    Parameters
    ----------
    settings:
        Batch size, model, temperature, timeout, inter-batch delay and the
        confidences used for defaults and degraded batches.
    """

    def __init__(self, settings: ImportSettings | None = None) -> None:
        self._settings = settings or ImportSettings()
        self._client: OpenAI | None = None

    @property
    def settings(self) -> ImportSettings:
        return self._settings

    def _get_client(self) -> OpenAI:
        if self._client is None:
            try:
                self._client = _create_client(timeout=self._settings.request_timeout)
            except OpenAIError as e:
                # The SDK raises here when OPENAI_API_KEY is not set.
                raise ClassifierConfigError(
                    "AI categorization is not configured: set OPENAI_API_KEY"
                ) from e
        return self._client

    def classify(
        self,
        drafts: Sequence[CanonicalTransaction],
        *,
        cancel_event: threading.Event | None = None,
    ) -> FallbackOutcome:
        """Classify ``drafts`` in place, batch by batch.

        The cancel event is checked before every batch; once it is set the
        remaining batches are reported as skipped and their drafts keep the
        category they already had.

        Raises :class:`ClassifierConfigError` before any batch is sent when
        credentials are missing. Batch-level failures never raise.
        """

        s = self._settings
        outcome = FallbackOutcome(total_batches=math.ceil(len(drafts) / s.batch_size))
        if not drafts:
            return outcome

        client = self._get_client()
        event = cancel_event or threading.Event()
        system_instructions = prompting.build_system_instructions()
        response_format = prompting.build_response_format()

        _logger.info(
            "fallback:start items=%d batches=%d batch_size=%d",
            len(drafts),
            outcome.total_batches,
            s.batch_size,
        )
        for number, batch in _batches(drafts, s.batch_size):
            if number > 1 and s.inter_batch_delay > 0:
                event.wait(s.inter_batch_delay)
            if event.is_set():
                outcome.cancelled = True
                outcome.batches.append(BatchReport(number, len(batch), BatchStatus.SKIPPED))
                continue
            outcome.batches.append(
                self._classify_batch(
                    client,
                    batch,
                    number=number,
                    total=outcome.total_batches,
                    system_instructions=system_instructions,
                    response_format=response_format,
                )
            )

        if outcome.cancelled:
            _logger.info(
                "fallback:cancelled skipped_batches=%d of=%d",
                len(outcome.skipped),
                outcome.total_batches,
            )
        _logger.info(
            "fallback:done batches=%d failed=%d skipped=%d",
            outcome.total_batches,
            len(outcome.failed),
            len(outcome.skipped),
        )
        return outcome

    def _classify_batch(
        self,
        client: OpenAI,
        batch: list[CanonicalTransaction],
        *,
        number: int,
        total: int,
        system_instructions: str,
        response_format: Any,
    ) -> BatchReport:
        s = self._settings
        user_content = prompting.build_user_content([(tx.description, tx.amount) for tx in batch])
        _logger.info("fallback:batch_llm batch=%d/%d size=%d", number, total, len(batch))

        t0 = time.perf_counter()
        try:
            resp = client.chat.completions.create(
                model=s.model,
                temperature=s.temperature,
                messages=[
                    {"role": "system", "content": system_instructions},
                    {"role": "user", "content": user_content},
                ],
                response_format=response_format,
            )
            results = parse_batch_results(_extract_message_text(resp), len(batch))
        except (OpenAIError, StructuredResponseError) as e:
            dt_ms = (time.perf_counter() - t0) * 1000.0
            _logger.warning(
                "fallback:batch_failed batch=%d/%d size=%d latency_ms=%.2f error=%s",
                number,
                total,
                len(batch),
                dt_ms,
                e.__class__.__name__,
            )
            for tx in batch:
                tx.assign_category(Category.OTHER, s.failed_batch_confidence, source="fallback")
            return BatchReport(number, len(batch), BatchStatus.FAILED, error=_describe(e))

        for tx, res in zip(batch, results, strict=True):
            confidence = s.unmatched_confidence if res.confidence is None else res.confidence
            if not res.in_vocabulary:
                confidence = min(confidence, s.failed_batch_confidence)
            tx.assign_category(res.category, confidence, source="model")

        dt_ms = (time.perf_counter() - t0) * 1000.0
        _logger.info(
            "fallback:batch_done batch=%d/%d size=%d latency_ms=%.2f",
            number,
            total,
            len(batch),
            dt_ms,
        )
        return BatchReport(number, len(batch), BatchStatus.OK)


__all__ = ["BatchReport", "BatchStatus", "FallbackClassifier", "FallbackOutcome"]
