"""Row normalizer: raw cells → :class:`CanonicalTransaction` drafts.

Dates become ISO ``YYYY-MM-DD`` strings; amounts become positive ``Decimal``
magnitudes with two decimals; the sign is folded into
:class:`TransactionType` according to the file's sign convention. A row that
fails any rule produces a :class:`RowRejection` with a readable reason and
never stops the run.
"""

from __future__ import annotations

import re
import unicodedata
from collections.abc import Iterable, Iterator, Sequence
from datetime import date
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from dateutil import parser as date_parser

from .models import CanonicalTransaction, ColumnMap, RawRow, RowRejection, TransactionType


def normalize_description(value: str) -> str:
    """Matching key for descriptions: NFKC, collapsed whitespace, casefolded."""

    s = unicodedata.normalize("NFKC", value).strip()
    return " ".join(s.split()).casefold()


# ---------------------------------------------------------------------------
# Dates
# ---------------------------------------------------------------------------

_ISO_RE = re.compile(r"(\d{4})-(\d{2})-(\d{2})")
_DMY_SLASH_RE = re.compile(r"(\d{2})/(\d{2})/(\d{4})")
_DMY_DASH_RE = re.compile(r"(\d{2})-(\d{2})-(\d{4})")


def _safe_date(year: str, month: str, day: str) -> date | None:
    try:
        return date(int(year), int(month), int(day))
    except ValueError:
        return None


def parse_date(raw: str | None) -> date | None:
    """Parse a bank-export date; ``None`` when nothing sensible matches.

    Tried in order: ``YYYY-MM-DD``, ``DD/MM/YYYY``, ``DD-MM-YYYY``. The first
    pattern found in the text decides the field order and must be a real
    calendar day. Only when none of the three patterns occurs is a generic
    parse attempted; a time-of-day part is discarded.
    """

    if raw is None:
        return None
    s = raw.replace('"', "").strip()
    if not s:
        return None

    m = _ISO_RE.search(s)
    if m:
        return _safe_date(m.group(1), m.group(2), m.group(3))
    for pattern in (_DMY_SLASH_RE, _DMY_DASH_RE):
        m = pattern.search(s)
        if m:
            return _safe_date(m.group(3), m.group(2), m.group(1))

    try:
        parsed = date_parser.parse(s, dayfirst=False, fuzzy=False)
    except (ValueError, OverflowError):
        return None
    return parsed.date()


# ---------------------------------------------------------------------------
# Amounts
# ---------------------------------------------------------------------------

_CURRENCY_SYMBOLS = "€$£"
_TWO_PLACES = Decimal("0.01")


def _strip_markers(s: str) -> tuple[str, bool]:
    """Remove sign, currency and parentheses markers in any order."""

    negative = False
    while True:
        changed = False
        if s.startswith("+"):
            s = s[1:].lstrip()
            changed = True
        elif s.startswith("-"):
            negative = True
            s = s[1:].lstrip()
            changed = True
        if s.endswith("-"):
            negative = True
            s = s[:-1].rstrip()
            changed = True
        if s and s[0] in _CURRENCY_SYMBOLS:
            s = s[1:].lstrip()
            changed = True
        if s and s[-1] in _CURRENCY_SYMBOLS:
            s = s[:-1].rstrip()
            changed = True
        # Surrounding parentheses indicate negativity regardless of sign.
        if s.startswith("(") and s.endswith(")") and len(s) >= 2:
            negative = True
            s = s[1:-1].strip()
            changed = True
        if not changed:
            return s, negative


def _resolve_separators(s: str) -> str:
    """Return ``s`` with thousands separators removed and a ``.`` decimal point.

    - Both ``.`` and ``,`` present: the rightmost one is the decimal mark.
    - Only ``,``: thousands when it repeats or is followed by exactly three
      digits, otherwise a decimal comma (``45,20``).
    - Only ``.``: thousands when it repeats, otherwise a decimal point.
    """

    has_dot = "." in s
    has_comma = "," in s
    if has_dot and has_comma:
        if s.rfind(",") > s.rfind("."):
            return s.replace(".", "").replace(",", ".")
        return s.replace(",", "")
    if has_comma:
        head, _, tail = s.rpartition(",")
        if s.count(",") > 1 or (len(tail) == 3 and head.lstrip("-").isdigit()):
            return s.replace(",", "")
        return s.replace(",", ".")
    if has_dot and s.count(".") > 1:
        return s.replace(".", "")
    return s


def _parse_exact_amount(raw: str | None) -> Decimal | None:
    """Signed amount at full precision; ``None`` when not a finite number."""

    if raw is None:
        return None
    s = "".join(raw.replace('"', "").split())
    # Python digit grouping (``1_000``) is not a bank amount.
    if not s or "_" in s:
        return None
    s, negative = _strip_markers(s)
    s = _resolve_separators(s)
    try:
        d = Decimal(s)
    except InvalidOperation:
        return None
    if not d.is_finite():
        return None
    return -abs(d) if negative else d


def _to_two_places(d: Decimal) -> Decimal | None:
    try:
        return d.quantize(_TWO_PLACES, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        return None


def parse_signed_amount(raw: str | None) -> Decimal | None:
    """Parse a signed amount quantized to two decimals.

    ``None`` when the text is not a finite number.
    """

    d = _parse_exact_amount(raw)
    return None if d is None else _to_two_places(d)


def infer_sign_convention(
    rows: Iterable[RawRow], cols: ColumnMap, *, header_direction: TransactionType | None = None
) -> bool:
    """True when the file's amount signs carry direction.

    A header that names a direction (credit/debit column) overrides the
    values. Otherwise a single negative amount in the file is enough to read
    the column as signed (negative = expense, positive = income).
    """

    if header_direction is not None:
        return False
    for row in rows:
        if len(row.cells) <= cols.amount_idx:
            continue
        d = parse_signed_amount(row.cells[cols.amount_idx])
        if d is not None and d < 0:
            return True
    return False


# ---------------------------------------------------------------------------
# Rows
# ---------------------------------------------------------------------------


def normalize_row(
    row: RawRow,
    cols: ColumnMap,
    *,
    signed: bool = False,
    default_type: TransactionType = TransactionType.EXPENSE,
) -> CanonicalTransaction | RowRejection:
    """Normalize one data row or explain why it was rejected.

    ``signed`` selects the sign convention: when true, negative amounts are
    expenses and positive ones income; otherwise every row gets
    ``default_type``. The input row is never modified.
    """

    cells: Sequence[str] = row.cells
    if len(cells) <= cols.max_index:
        return RowRejection(row.line_number, "Invalid format")

    date_raw = cells[cols.date_idx].replace('"', "").strip()
    parsed_date = parse_date(date_raw)
    if parsed_date is None:
        return RowRejection(row.line_number, f'Invalid date format "{date_raw}"')

    amount_raw = cells[cols.amount_idx].replace('"', "").strip()
    exact = _parse_exact_amount(amount_raw)
    amount = None if exact is None else _to_two_places(exact)
    if amount is None or exact == 0:
        return RowRejection(row.line_number, f'Invalid amount "{amount_raw}"')
    if amount == 0:
        return RowRejection(row.line_number, f'Amount "{amount_raw}" rounds to zero')

    description = cells[cols.desc_idx].replace('"', "").strip()
    if not description:
        return RowRejection(row.line_number, "Empty description")

    if signed:
        tx_type = TransactionType.EXPENSE if amount < 0 else TransactionType.INCOME
    else:
        tx_type = default_type

    return CanonicalTransaction(
        row_number=row.line_number,
        date=parsed_date.isoformat(),
        description=description,
        amount=abs(amount),
        type=tx_type,
    )


def normalize_rows(
    rows: Iterable[RawRow],
    cols: ColumnMap,
    *,
    signed: bool = False,
    default_type: TransactionType = TransactionType.EXPENSE,
) -> Iterator[CanonicalTransaction | RowRejection]:
    for row in rows:
        yield normalize_row(row, cols, signed=signed, default_type=default_type)


__all__ = [
    "infer_sign_convention",
    "normalize_description",
    "normalize_row",
    "normalize_rows",
    "parse_date",
    "parse_signed_amount",
]
