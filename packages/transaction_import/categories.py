"""Closed category vocabulary and its single validation point.

Every stage that receives a category from outside the package (rule table,
model output, caller payloads) goes through :func:`coerce_category`. Values
outside the vocabulary become :attr:`Category.OTHER`; nothing else in the
package compares category strings.
"""

from __future__ import annotations

import unicodedata
from enum import StrEnum
from typing import Any


class Category(StrEnum):
    FOOD = "Food"
    TRANSPORT = "Transport"
    ENTERTAINMENT = "Entertainment"
    BILLS = "Bills"
    HEALTHCARE = "Healthcare"
    SHOPPING = "Shopping"
    INVESTMENTS = "Investments"
    EDUCATION = "Education"
    TRAVEL = "Travel"
    INCOME = "Income"
    OTHER = "Other"


# Labels used by older exports and by models that drift from the exact names.
_ALIASES: dict[str, Category] = {
    "investment": Category.INVESTMENTS,
    "transportation": Category.TRANSPORT,
    "food & dining": Category.FOOD,
    "groceries": Category.FOOD,
    "bills & utilities": Category.BILLS,
    "utilities": Category.BILLS,
    "rent": Category.BILLS,
    "health": Category.HEALTHCARE,
}

_BY_KEY: dict[str, Category] = {c.value.casefold(): c for c in Category}


def _key(value: str) -> str:
    return " ".join(unicodedata.normalize("NFKC", value).split()).casefold()


def coerce_category(value: Any) -> Category:
    """Return the vocabulary member for ``value`` or ``Category.OTHER``.

    Matching is case-insensitive and whitespace-tolerant; a short alias table
    maps legacy labels (``"Investment"``, ``"Food & Dining"``, ...) onto the
    vocabulary. Never raises.
    """

    if isinstance(value, Category):
        return value
    if not isinstance(value, str):
        return Category.OTHER
    k = _key(value)
    return _BY_KEY.get(k) or _ALIASES.get(k) or Category.OTHER


def is_known_category(value: Any) -> bool:
    """True when ``value`` resolves to a vocabulary member without falling back."""

    if isinstance(value, Category):
        return True
    if not isinstance(value, str):
        return False
    k = _key(value)
    return k in _BY_KEY or k in _ALIASES


ALLOWED_CATEGORIES: tuple[str, ...] = tuple(c.value for c in Category)

__all__ = ["ALLOWED_CATEGORIES", "Category", "coerce_category", "is_known_category"]
