"""Deterministic keyword classifier.

The table below is walked in its declared order; the first category whose
keyword list has a substring match in the lower-cased description wins with
``rule_confidence`` (85). No match yields ``Other`` with
``unmatched_confidence`` (50), which is what sends a draft to the fallback
classifier. Keywords are plain substrings, so very short merchant names
(``eni``, ``ip``, ``bar``) are deliberately absent: they occur inside
unrelated words.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import NamedTuple

from .categories import Category
from .models import CanonicalTransaction
from .normalizers import normalize_description

RULE_CONFIDENCE: int = 85
UNMATCHED_CONFIDENCE: int = 50

CATEGORY_KEYWORDS: tuple[tuple[Category, tuple[str, ...]], ...] = (
    (
        Category.INCOME,
        (
            "stipendio",
            "salary",
            "payroll",
            "emolumenti",
            "pensione",
            "rimborso",
            "refund",
            "dividend",
            "accredito",
        ),
    ),
    (
        Category.FOOD,
        (
            "esselunga",
            "carrefour",
            "conad",
            "coop ",
            "lidl",
            "eurospin",
            "pam panorama",
            "supermercato",
            "supermarket",
            "mcdonald",
            "burger king",
            "kfc",
            "pizzeria",
            "ristorante",
            "restaurant",
            "trattoria",
            "osteria",
            "starbucks",
            "caffe",
            "coffee",
            "deliveroo",
            "just eat",
            "glovo",
            "uber eats",
        ),
    ),
    (
        Category.TRANSPORT,
        (
            "agip",
            "tamoil",
            "repsol",
            "shell",
            "q8",
            "carburante",
            "benzina",
            "trenitalia",
            "italo treno",
            "atm milano",
            "atac",
            "metro",
            "parcheggio",
            "parking",
            "telepass",
            "autostrade",
            "taxi",
            "uber",
            "free now",
            "freenow",
            "bolt.eu",
        ),
    ),
    (
        Category.BILLS,
        (
            "enel",
            "acea",
            "a2a",
            "iren mercato",
            "hera comm",
            "bolletta",
            "affitto",
            "condominio",
            "vodafone",
            "windtre",
            "iliad",
            "tim spa",
            "fastweb",
            "utility",
            "electric",
        ),
    ),
    (
        Category.HEALTHCARE,
        (
            "farmacia",
            "pharmacy",
            "ospedale",
            "hospital",
            "clinica",
            "clinic",
            "dentista",
            "dentist",
            "medico",
            "doctor",
        ),
    ),
    (
        Category.ENTERTAINMENT,
        (
            "netflix",
            "spotify",
            "disney",
            "prime video",
            "apple music",
            "cinema",
            "teatro",
            "concert",
            "museo",
            "museum",
            "steam",
            "playstation",
            "xbox",
            "nintendo",
        ),
    ),
    (
        Category.SHOPPING,
        (
            "amazon",
            "ebay",
            "zalando",
            "asos",
            "h&m",
            "zara",
            "ikea",
            "decathlon",
            "leroy merlin",
            "mediaworld",
            "unieuro",
            "aliexpress",
        ),
    ),
    (
        Category.INVESTMENTS,
        (
            "broker",
            "directa",
            "fineco",
            "degiro",
            "trade republic",
            "coinbase",
            "binance",
        ),
    ),
    (
        Category.EDUCATION,
        (
            "universita",
            "università",
            "university",
            "tuition",
            "scuola",
            "school",
            "udemy",
            "coursera",
            "libreria",
        ),
    ),
    (
        Category.TRAVEL,
        (
            "ryanair",
            "easyjet",
            "alitalia",
            "ita airways",
            "booking.com",
            "airbnb",
            "expedia",
            "hotel",
        ),
    ),
)


class RuleResult(NamedTuple):
    category: Category
    confidence: int
    keyword: str | None = None


def classify_description(
    description: str,
    *,
    matched_confidence: int = RULE_CONFIDENCE,
    unmatched_confidence: int = UNMATCHED_CONFIDENCE,
) -> RuleResult:
    """Return the first matching category for ``description``.

    Pure function of its arguments; repeated calls give the same result.
    """

    text = normalize_description(description)
    for category, keywords in CATEGORY_KEYWORDS:
        for kw in keywords:
            if kw in text:
                return RuleResult(category, matched_confidence, kw)
    return RuleResult(Category.OTHER, unmatched_confidence, None)


def apply_rules(
    drafts: Iterable[CanonicalTransaction],
    *,
    matched_confidence: int = RULE_CONFIDENCE,
    unmatched_confidence: int = UNMATCHED_CONFIDENCE,
) -> int:
    """Classify every draft in place; return how many matched a keyword."""

    matched = 0
    for tx in drafts:
        res = classify_description(
            tx.description,
            matched_confidence=matched_confidence,
            unmatched_confidence=unmatched_confidence,
        )
        tx.assign_category(
            res.category, res.confidence, source="rule" if res.keyword else "default"
        )
        if res.keyword:
            matched += 1
    return matched


__all__ = [
    "CATEGORY_KEYWORDS",
    "RULE_CONFIDENCE",
    "UNMATCHED_CONFIDENCE",
    "RuleResult",
    "apply_rules",
    "classify_description",
]
