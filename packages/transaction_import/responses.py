"""Structured response extraction for fallback classifier replies.

A reply is accepted in any of the shapes models actually produce:

- a JSON object ``{"results": [...]}`` (what the strict schema asks for);
- a bare JSON array ``[...]``;
- either of the above inside a fenced code block (```json ... ```) or
  surrounded by prose.

Anything else is a :class:`StructuredResponseError`, which the fallback
classifier turns into a degraded batch.
"""

from __future__ import annotations

import json
import math
import re
from collections.abc import Mapping
from typing import Any, NamedTuple

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from .categories import Category, coerce_category, is_known_category
from .errors import StructuredResponseError
from .models import clamp_confidence

_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)\s*```", re.DOTALL | re.IGNORECASE)
_ARRAY_RE = re.compile(r"\[.*\]", re.DOTALL)
_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)


class BatchItemResult(NamedTuple):
    """One aligned model decision.

    ``confidence`` is ``None`` when the model did not provide one.
    ``in_vocabulary`` is false when the model's label had to be coerced to
    ``Other``.
    """

    category: Category
    confidence: int | None
    in_vocabulary: bool


# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------


def _results_from(decoded: Any) -> list[Any] | None:
    if isinstance(decoded, list):
        return decoded
    if isinstance(decoded, Mapping):
        results = decoded.get("results")
        if isinstance(results, list):
            return results
    return None


def extract_json_payload(text: str | None) -> list[Any]:
    """Return the list of raw result items found in ``text``.

    Candidates are tried in order: the first fenced block, the whole text,
    the outermost ``[...]`` span, the outermost ``{...}`` span.
    """

    if not isinstance(text, str) or not text.strip():
        raise StructuredResponseError("empty model reply")

    candidates: list[str] = []
    m = _FENCE_RE.search(text)
    if m:
        candidates.append(m.group(1))
    candidates.append(text.strip())
    for pattern in (_ARRAY_RE, _OBJECT_RE):
        m = pattern.search(text)
        if m:
            candidates.append(m.group(0))

    for candidate in candidates:
        try:
            decoded = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        results = _results_from(decoded)
        if results is not None:
            return results
    raise StructuredResponseError("model reply did not contain a JSON array of results")


# ---------------------------------------------------------------------------
# Validation and alignment
# ---------------------------------------------------------------------------


class _ResultItem(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    index: int | None = Field(default=None, validation_alias=AliasChoices("index", "idx"))
    category: str
    confidence: float | None = None

    @field_validator("category", mode="before")
    @classmethod
    def _category_is_text(cls, v: Any) -> Any:
        if v is None:
            raise ValueError("category is required")
        return v if isinstance(v, str) else str(v)

    @field_validator("confidence")
    @classmethod
    def _confidence_is_finite(cls, v: float | None) -> float | None:
        # json.loads turns 1e400 and Infinity into float("inf").
        if v is not None and not math.isfinite(v):
            raise ValueError("confidence must be a finite number")
        return v


class _ResultBody(BaseModel):
    model_config = ConfigDict(extra="forbid")

    results: list[_ResultItem]


def _alignment(items: list[_ResultItem], batch_size: int) -> list[int]:
    """Return, for each batch position, the position of its item in ``items``."""

    indices = [it.index for it in items]
    if all(i is None for i in indices):
        return list(range(batch_size))
    if any(i is None for i in indices):
        raise StructuredResponseError("some results carry an index and some do not")

    found = sorted(i for i in indices if i is not None)
    if found == list(range(1, batch_size + 1)):
        offset = 1
    elif found == list(range(batch_size)):
        offset = 0
    else:
        raise StructuredResponseError(
            f"result indices {found} do not cover 1..{batch_size} exactly once"
        )

    order = [0] * batch_size
    for pos, idx in enumerate(indices):
        order[idx - offset] = pos  # type: ignore[operator]
    return order


def parse_batch_results(text: str | None, batch_size: int) -> list[BatchItemResult]:
    """Parse one model reply into exactly ``batch_size`` aligned decisions.

    Items are aligned by ``index`` as numbered in the prompt (1-based); a
    reply indexed 0..n-1 is accepted too, and a reply without indices is taken
    positionally. Categories go through :func:`coerce_category` and
    confidences are clamped to [0, 100].

    Raises :class:`StructuredResponseError` on any shape, length, or
    alignment problem.
    """

    raw_items = extract_json_payload(text)
    try:
        body = _ResultBody.model_validate({"results": raw_items})
    except ValidationError as e:
        raise StructuredResponseError(
            f"invalid result items ({e.error_count()} validation errors)"
        ) from e

    if len(body.results) != batch_size:
        raise StructuredResponseError(
            f"expected {batch_size} results, got {len(body.results)}"
        )

    out: list[BatchItemResult] = []
    for pos in _alignment(body.results, batch_size):
        item = body.results[pos]
        out.append(
            BatchItemResult(
                category=coerce_category(item.category),
                confidence=None if item.confidence is None else clamp_confidence(item.confidence),
                in_vocabulary=is_known_category(item.category),
            )
        )
    return out


__all__ = ["BatchItemResult", "extract_json_payload", "parse_batch_results"]
