"""Readers that turn an uploaded file into a :class:`RawTable`.

Two input shapes are supported:

- Delimited text (``,`` or ``;``, mixed freely). A ``"`` toggles an in-quote
  flag and delimiters inside quotes do not split. Rows are line based, so a
  quoted field cannot span lines.
- Excel workbooks (``.xlsx``/``.xlsm``); only the first worksheet is read.

Header cells are lower-cased and quote-stripped for the field detector. Data
cells are trimmed and otherwise left untouched; the normalizer owns their
interpretation.
"""

from __future__ import annotations

import datetime as dt
from decimal import Decimal
from io import BytesIO
from os import PathLike
from pathlib import Path
from typing import IO, Any
from zipfile import BadZipFile

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from .errors import EmptyFileError, FileTooLargeError, UnsupportedFileError
from .logging_setup import get_logger
from .models import RawRow, RawTable

_DELIMITERS = frozenset(",;")
_TEXT_SUFFIXES = frozenset({".csv", ".txt"})
_EXCEL_SUFFIXES = frozenset({".xlsx", ".xlsm"})

_logger = get_logger("transaction_import.sources")


def split_delimited_line(line: str) -> list[str]:
    """Split one line on ``,``/``;`` outside double quotes; cells are trimmed.

    Quote characters are consumed by the toggle and never appear in the
    output, which matches how bank exports quote amounts such as
    ``"1.234,56"``.
    """

    cells: list[str] = []
    current: list[str] = []
    in_quotes = False
    for ch in line:
        if ch == '"':
            in_quotes = not in_quotes
        elif ch in _DELIMITERS and not in_quotes:
            cells.append("".join(current).strip())
            current = []
        else:
            current.append(ch)
    cells.append("".join(current).strip())
    return cells


def normalize_header(cell: str) -> str:
    return cell.replace('"', "").strip().lower()


def read_delimited_text(text: str) -> RawTable:
    """Parse delimited text into a header plus numbered data rows.

    The header is the first non-empty line. Blank lines are skipped but still
    counted, so ``RawRow.line_number`` is the physical 1-based line.
    """

    if text.startswith("\ufeff"):
        text = text[1:]

    header: tuple[str, ...] | None = None
    rows: list[RawRow] = []
    for line_no, line in enumerate(text.splitlines(), start=1):
        if not line.strip():
            continue
        if header is None:
            header = tuple(normalize_header(c) for c in _split_header(line))
            continue
        rows.append(RawRow(line_number=line_no, cells=tuple(split_delimited_line(line))))

    if header is None or not rows:
        raise EmptyFileError("File is empty or has no data")
    return RawTable(headers=header, rows=tuple(rows))


def _split_header(line: str) -> list[str]:
    # Headers split on every delimiter; quotes are stripped afterwards.
    out: list[str] = []
    current: list[str] = []
    for ch in line:
        if ch in _DELIMITERS:
            out.append("".join(current))
            current = []
        else:
            current.append(ch)
    out.append("".join(current))
    return out


def _cell_to_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, dt.datetime):
        return value.date().isoformat()
    if isinstance(value, dt.date):
        return value.isoformat()
    if isinstance(value, bool):
        return str(value)
    if isinstance(value, float):
        # Avoid binary float artefacts such as 45.199999999.
        return format(Decimal(repr(value)).normalize(), "f")
    return str(value).strip()


def read_excel_workbook(source: str | PathLike[str] | bytes | IO[bytes]) -> RawTable:
    """Read the first worksheet of an Excel workbook.

    Date cells become ISO dates and numeric cells plain decimal strings so the
    normalizer sees the same text shapes it sees for CSV input. Row numbers
    are worksheet row numbers.
    """

    if isinstance(source, bytes):
        source = BytesIO(source)
    try:
        wb = load_workbook(source, read_only=True, data_only=True)
    except (BadZipFile, InvalidFileException, KeyError) as e:
        _logger.info("sources:excel_unreadable error=%s", e.__class__.__name__)
        raise UnsupportedFileError("File is not a readable Excel workbook") from e
    try:
        ws = wb.worksheets[0] if wb.worksheets else None
        if ws is None:
            raise EmptyFileError("Excel file is empty or has no data")
        header: tuple[str, ...] | None = None
        rows: list[RawRow] = []
        for row_no, values in enumerate(ws.iter_rows(values_only=True), start=1):
            cells = tuple(_cell_to_text(v) for v in values)
            if not any(cells):
                continue
            if header is None:
                header = tuple(normalize_header(c) for c in cells)
                continue
            rows.append(RawRow(line_number=row_no, cells=cells))
    finally:
        wb.close()

    if header is None or not rows:
        raise EmptyFileError("Excel file is empty or has no data")
    return RawTable(headers=header, rows=tuple(rows))


def _decode_text(data: bytes) -> str:
    """Decode UTF-8 first, then Windows-1252 (where 0x80 is the euro sign).

    latin-1 is the last resort for the few bytes cp1252 leaves undefined.
    """

    for encoding in ("utf-8-sig", "cp1252"):
        try:
            return data.decode(encoding)
        except UnicodeDecodeError:
            _logger.info("sources:decode_failed encoding=%s", encoding)
    return data.decode("latin-1")


def read_file(path: str | PathLike[str], *, max_bytes: int) -> RawTable:
    """Read a ``.csv``/``.txt`` or ``.xlsx``/``.xlsm`` file into a table.

    Raises :class:`FileTooLargeError` above ``max_bytes`` and
    :class:`UnsupportedFileError` for any other suffix or a workbook openpyxl
    cannot open.
    """

    p = Path(path)
    suffix = p.suffix.lower()
    if suffix not in _TEXT_SUFFIXES and suffix not in _EXCEL_SUFFIXES:
        raise UnsupportedFileError(f"Unsupported file type: {p.suffix or '<none>'}")

    size = p.stat().st_size
    if size > max_bytes:
        raise FileTooLargeError(size, max_bytes)

    _logger.info("sources:read path=%s bytes=%d", p.name, size)
    if suffix in _EXCEL_SUFFIXES:
        return read_excel_workbook(p)
    return read_delimited_text(_decode_text(p.read_bytes()))


__all__ = [
    "normalize_header",
    "read_delimited_text",
    "read_excel_workbook",
    "read_file",
    "split_delimited_line",
]
