"""Prompt construction for the fallback classifier.

This module builds:
- The system instruction naming the closed category vocabulary.
- The user message with one numbered line per batch item.
- The strict ``response_format`` (JSON Schema) object for the OpenAI Chat
  Completions API.
"""

from __future__ import annotations

from collections.abc import Sequence
from decimal import Decimal

from openai.types.shared_params import ResponseFormatJSONSchema

from .categories import Category

# Hints shown next to each category; they mirror the rule table's merchants so
# the model and the keyword classifier agree on borderline cases.
_CATEGORY_HINTS: dict[Category, str] = {
    Category.FOOD: (
        "groceries, supermarkets, restaurants, cafes, food delivery "
        "(Esselunga, Conad, Deliveroo)"
    ),
    Category.TRANSPORT: (
        "fuel, public transport, trains, taxis, parking, tolls "
        "(Trenitalia, ATM, Uber, Telepass)"
    ),
    Category.ENTERTAINMENT: "streaming, cinema, concerts, games, museums (Netflix, Spotify, Steam)",
    Category.BILLS: (
        "utilities, phone and internet, rent, condominium fees (Enel, A2A, Vodafone, Fastweb)"
    ),
    Category.HEALTHCARE: "pharmacies, doctors, dentists, hospitals",
    Category.SHOPPING: (
        "online and retail shopping, clothing, electronics, home (Amazon, Zalando, IKEA)"
    ),
    Category.INVESTMENTS: "brokers, trading platforms, crypto exchanges (Fineco, Degiro, Coinbase)",
    Category.EDUCATION: "tuition, schools, courses, books (Udemy, Coursera)",
    Category.TRAVEL: "flights, hotels, holiday rentals (Ryanair, Booking.com, Airbnb)",
    Category.INCOME: "salary, pensions, refunds, dividends, incoming transfers",
    Category.OTHER: "anything that does not clearly fit another category",
}


def build_system_instructions() -> str:
    """Return the system instruction listing the allowed categories.

    The model must pick exactly one category per numbered transaction, never
    invent new ones, and answer with JSON only.
    """

    lines = [
        "You are a financial transaction categorizer for personal bank statements "
        "(mostly Italian and European merchants).",
        "Assign exactly one category to each numbered transaction, chosen only from:",
    ]
    for cat in Category:
        lines.append(f"- {cat.value}: {_CATEGORY_HINTS[cat]}")
    lines.append(
        "For each transaction return its number as `index`, the `category`, and a "
        "`confidence` integer from 0 to 100. Never invent categories; use Other when "
        "unsure. Output JSON only."
    )
    return "\n".join(lines)


def format_amount(amount: Decimal | float | int | None) -> str:
    if amount is None:
        return "€?"
    return f"€{Decimal(str(amount)):.2f}"


def build_user_content(items: Sequence[tuple[str, Decimal | float | int | None]]) -> str:
    """Build the user message for one batch.

    ``items`` are ``(description, amount)`` pairs; they are numbered from 1 in
    the order given, and the model is asked to echo that number as ``index``.
    """

    lines = ["Categorize these transactions:"]
    for n, (description, amount) in enumerate(items, start=1):
        desc = " ".join(description.replace('"', "'").split())
        lines.append(f'{n}. "{desc}" ({format_amount(amount)})')
    return "\n".join(lines)


def build_response_format() -> ResponseFormatJSONSchema:
    """Return the strict JSON Schema ``response_format`` for a batch reply.

    Schema shape::

        {"results": [{"index": int, "category": <vocabulary>, "confidence": int}]}
    """

    codes = [c.value for c in Category]
    result: ResponseFormatJSONSchema = {
        "type": "json_schema",
        "json_schema": {
            "name": "transaction_categories",
            "schema": {
                "type": "object",
                "properties": {
                    "results": {
                        "type": "array",
                        "items": {
                            "type": "object",
                            "properties": {
                                "index": {"type": "integer"},
                                "category": {"type": "string", "enum": codes},
                                "confidence": {"type": "integer"},
                            },
                            "required": ["index", "category", "confidence"],
                            "additionalProperties": False,
                        },
                    }
                },
                "required": ["results"],
                "additionalProperties": False,
            },
            "strict": True,
        },
    }
    return result


__all__ = [
    "build_response_format",
    "build_system_instructions",
    "build_user_content",
    "format_amount",
]
