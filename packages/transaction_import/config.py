"""Runtime settings for the import pipeline.

All tunables live on :class:`ImportSettings`. Defaults reproduce the
reference behavior (batches of 20, review below 70). Entry points build
settings with :meth:`ImportSettings.from_env`, which reads ``TXN_IMPORT_*``
variables; library callers may construct the dataclass directly.

Credentials are not part of the settings object: the OpenAI SDK reads
``OPENAI_API_KEY`` (and ``OPENAI_BASE_URL`` for compatible gateways) itself.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, fields, replace
from typing import Any

_ENV_PREFIX = "TXN_IMPORT_"
_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


@dataclass(frozen=True, slots=True)
class ImportSettings:
    batch_size: int = 20
    fallback_threshold: int = 70
    rule_confidence: int = 85
    unmatched_confidence: int = 50
    failed_batch_confidence: int = 30
    # Seconds to wait between fallback batches; some providers need ~12s.
    inter_batch_delay: float = 0.0
    request_timeout: float = 30.0
    model: str = "gpt-4o-mini"
    temperature: float = 0.3
    require_ai: bool = False
    dedupe_within_file: bool = True
    max_file_bytes: int = 5 * 1024 * 1024

    def __post_init__(self) -> None:
        if isinstance(self.batch_size, bool) or self.batch_size <= 0:
            raise ValueError("batch_size must be a positive integer")
        for name in (
            "fallback_threshold",
            "rule_confidence",
            "unmatched_confidence",
            "failed_batch_confidence",
        ):
            val = getattr(self, name)
            if not 0 <= val <= 100:
                raise ValueError(f"{name} must be within [0, 100]")
        if self.inter_batch_delay < 0:
            raise ValueError("inter_batch_delay must be >= 0")
        if self.request_timeout <= 0:
            raise ValueError("request_timeout must be > 0")
        if self.max_file_bytes <= 0:
            raise ValueError("max_file_bytes must be > 0")
        if not self.model.strip():
            raise ValueError("model must be a non-empty string")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None, **overrides: Any) -> ImportSettings:
        """Build settings from ``TXN_IMPORT_<FIELD>`` variables plus overrides.

        Overrides set to ``None`` are ignored so CLI options can be passed
        through unconditionally.
        """

        env = os.environ if environ is None else environ
        values: dict[str, Any] = {}
        for f in fields(cls):
            var = _ENV_PREFIX + f.name.upper()
            raw = env.get(var)
            if raw is None or not raw.strip():
                continue
            values[f.name] = _coerce(var, raw.strip(), f.default)
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)

    def with_overrides(self, **overrides: Any) -> ImportSettings:
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})


def _coerce(var: str, raw: str, default: Any) -> Any:
    if isinstance(default, bool):
        low = raw.lower()
        if low in _TRUE:
            return True
        if low in _FALSE:
            return False
        raise ValueError(f"{var} must be a boolean (got {raw!r})")
    try:
        if isinstance(default, int):
            return int(raw)
        if isinstance(default, float):
            return float(raw)
    except ValueError as e:
        raise ValueError(f"{var} must be a {type(default).__name__} (got {raw!r})") from e
    return raw


__all__ = ["ImportSettings"]
