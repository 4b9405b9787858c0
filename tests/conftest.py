"""Pytest configuration for test isolation.

The pipeline reads its tunables from ``TXN_IMPORT_*`` variables and the
OpenAI SDK reads ``OPENAI_API_KEY``/``OPENAI_BASE_URL``. A developer shell
with any of those set would change classifier behavior (for instance, a real
key would let the fallback classifier reach the network), so every test
starts from an environment without them. Tests that need a value set it
explicitly with ``monkeypatch``.
"""

from __future__ import annotations

import os

import pytest


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in list(os.environ):
        if name.startswith("TXN_IMPORT_") or name in {
            "OPENAI_API_KEY",
            "OPENAI_BASE_URL",
            "TRANSACTION_IMPORT_LOG_LEVEL",
        }:
            monkeypatch.delenv(name, raising=False)
