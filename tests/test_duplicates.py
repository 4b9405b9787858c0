# ruff: noqa: E402, I001
import sys
from decimal import Decimal
from pathlib import Path

# Make sure the workspace `packages/` dir is on sys.path so `transaction_import` is importable
_ROOT = Path(__file__).resolve().parents[1]
_PKG_DIR = _ROOT / "packages"
sys.path[:0] = [p for p in [str(_PKG_DIR), str(_ROOT)] if p not in sys.path]

from transaction_import.duplicates import ReferenceIndex, mark_duplicates
from transaction_import.models import CanonicalTransaction


def _tx(row: int, desc: str, amount: str = "45.20", day: str = "2024-01-05"):
    return CanonicalTransaction(row_number=row, date=day, description=desc, amount=Decimal(amount))


def test_repeated_line_is_flagged_against_first_occurrence():
    drafts = [_tx(2, "ESSELUNGA MILANO"), _tx(3, "ESSELUNGA MILANO")]
    assert mark_duplicates(drafts) == 1
    assert drafts[0].is_duplicate is False
    assert drafts[1].is_duplicate is True
    assert drafts[1].duplicate_of == 2


def test_within_file_matching_can_be_disabled():
    drafts = [_tx(2, "ESSELUNGA MILANO"), _tx(3, "ESSELUNGA MILANO")]
    assert mark_duplicates(drafts, within_file=False) == 0
    assert not any(d.is_duplicate for d in drafts)


def test_reference_mappings_match_case_insensitively():
    reference = [{"date": "05/01/2024", "amount": -45.2, "description": "Esselunga  Milano"}]
    drafts = [_tx(2, "ESSELUNGA MILANO")]
    assert mark_duplicates(drafts, reference) == 1
    assert drafts[0].is_duplicate is True
    assert drafts[0].duplicate_of is None


def test_draft_contained_in_reference_description_is_duplicate():
    reference = [_tx(10, "CARREFOUR EXPRESS")]
    drafts = [_tx(2, "Carrefour")]
    assert mark_duplicates(drafts, reference) == 1
    assert drafts[0].duplicate_of == 10


def test_reference_contained_in_draft_is_not_duplicate():
    reference = [_tx(10, "CARREFOUR")]
    drafts = [_tx(2, "CARREFOUR EXPRESS")]
    assert mark_duplicates(drafts, reference) == 0


def test_date_and_amount_must_match_exactly():
    reference = [_tx(10, "ESSELUNGA MILANO")]
    drafts = [
        _tx(2, "ESSELUNGA MILANO", amount="45.21"),
        _tx(3, "ESSELUNGA MILANO", day="2024-01-06"),
    ]
    assert mark_duplicates(drafts, reference, within_file=False) == 0


def test_unusable_reference_entries_are_skipped():
    reference = [
        {"date": "not a date", "amount": 1, "description": "x"},
        {"date": "2024-01-05", "amount": None, "description": "x"},
        {"date": "2024-01-05", "amount": "45.20", "description": "  "},
        "garbage",
        {"date": "2024-01-05", "amount": "45.20", "description": "ESSELUNGA MILANO"},
    ]
    index = ReferenceIndex(reference)
    assert index.match(_tx(2, "esselunga milano")) is not None


def test_reference_list_is_not_modified():
    reference = [{"date": "2024-01-05", "amount": 45.2, "description": "ESSELUNGA"}]
    snapshot = [dict(r) for r in reference]
    mark_duplicates([_tx(2, "ESSELUNGA"), _tx(3, "OTHER SHOP")], reference)
    assert reference == snapshot
