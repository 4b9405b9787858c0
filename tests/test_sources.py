# ruff: noqa: E402, I001
import sys
from datetime import date, datetime
from pathlib import Path

import pytest
from openpyxl import Workbook

# Make sure the workspace `packages/` dir is on sys.path so `transaction_import` is importable
_ROOT = Path(__file__).resolve().parents[1]
_PKG_DIR = _ROOT / "packages"
sys.path[:0] = [p for p in [str(_PKG_DIR), str(_ROOT)] if p not in sys.path]

from transaction_import import Category, PipelineState, import_file
from transaction_import.config import ImportSettings
from transaction_import.errors import EmptyFileError, FileTooLargeError, UnsupportedFileError
from transaction_import.sources import (
    read_delimited_text,
    read_excel_workbook,
    read_file,
    split_delimited_line,
)


def _write_workbook(path: Path, rows: list[list[object]]) -> Path:
    wb = Workbook()
    ws = wb.active
    for row in rows:
        ws.append(row)
    wb.save(path)
    return path


def test_split_keeps_delimiters_inside_quotes():
    line = '2024-01-05,"ACME, INC; MILANO";"1.234,56"'
    assert split_delimited_line(line) == ["2024-01-05", "ACME, INC; MILANO", "1.234,56"]


def test_split_trims_cells_and_keeps_empty_ones():
    assert split_delimited_line(" a ;; b ") == ["a", "", "b"]


def test_read_delimited_text_tracks_physical_line_numbers():
    text = (
        '\ufeff"Date","Description","Amount"\r\n'
        "\r\n2024-01-05,LIDL,-1\r\n  \r\n2024-01-06,CONAD,-2"
    )
    table = read_delimited_text(text)
    assert table.headers == ("date", "description", "amount")
    assert [r.line_number for r in table.rows] == [3, 5]
    assert table.rows[1].cells == ("2024-01-06", "CONAD", "-2")


def test_header_may_start_after_leading_blank_lines():
    table = read_delimited_text("\n\nDATA;CAUSALE;IMPORTO\n05/01/2024;BAR;-1\n")
    assert table.headers == ("data", "causale", "importo")
    assert table.rows[0].line_number == 4


@pytest.mark.parametrize("text", ["", "   \n", "date,description,amount"])
def test_read_delimited_text_rejects_empty_input(text):
    with pytest.raises(EmptyFileError):
        read_delimited_text(text)


def test_read_excel_workbook_converts_cells(tmp_path: Path):
    path = _write_workbook(
        tmp_path / "export.xlsx",
        [
            ["Data", "Descrizione", "Importo"],
            [datetime(2024, 1, 5, 0, 0), "ESSELUNGA MILANO", -45.2],
            [None, None, None],
            [date(2024, 1, 6), "  STIPENDIO  ", 2500],
        ],
    )
    table = read_excel_workbook(path)
    assert table.headers == ("data", "descrizione", "importo")
    assert [r.line_number for r in table.rows] == [2, 4]
    assert table.rows[0].cells == ("2024-01-05", "ESSELUNGA MILANO", "-45.2")
    assert table.rows[1].cells == ("2024-01-06", "STIPENDIO", "2500")


def test_read_excel_workbook_accepts_bytes(tmp_path: Path):
    path = _write_workbook(
        tmp_path / "b.xlsx", [["date", "description", "amount"], ["2024-01-05", "x", 1]]
    )
    table = read_excel_workbook(path.read_bytes())
    assert len(table.rows) == 1


def test_read_excel_workbook_rejects_header_only(tmp_path: Path):
    path = _write_workbook(tmp_path / "h.xlsx", [["date", "description", "amount"]])
    with pytest.raises(EmptyFileError):
        read_excel_workbook(path)


def test_read_file_rejects_unsupported_suffix(tmp_path: Path):
    path = tmp_path / "statement.pdf"
    path.write_bytes(b"%PDF-1.4")
    with pytest.raises(UnsupportedFileError):
        read_file(path, max_bytes=1024)


def test_read_file_enforces_size_limit(tmp_path: Path):
    path = tmp_path / "big.csv"
    path.write_text("date,description,amount\n" + "2024-01-05,x,-1\n" * 100, encoding="utf-8")
    with pytest.raises(FileTooLargeError) as ei:
        read_file(path, max_bytes=100)
    assert ei.value.status_code == 400


def test_read_file_decodes_windows_1252_exports(tmp_path: Path):
    path = tmp_path / "cp1252.csv"
    text = "data;descrizione;importo\n05/01/2024;ESSELUNGA CAFFÈ;€-1,20\n06/01/2024;CONAD;-2\n"
    path.write_bytes(text.encode("cp1252"))
    table = read_file(path, max_bytes=1024)
    assert table.rows[0].cells[1:] == ("ESSELUNGA CAFFÈ", "€-1,20")

    report = import_file(path, settings=ImportSettings())
    assert report.state is PipelineState.DONE
    assert report.errors == []
    assert [str(t.amount) for t in report.transactions] == ["1.20", "2.00"]


def test_read_file_falls_back_to_latin1_for_bytes_cp1252_leaves_undefined(tmp_path: Path):
    path = tmp_path / "latin.csv"
    # 0x81 has no cp1252 mapping.
    path.write_bytes(b"data;causale;importo\n05/01/2024;CAFF\xc8 \x81;-1,20\n")
    table = read_file(path, max_bytes=1024)
    assert table.rows[0].cells[1] == "CAFFÈ \x81"


def test_import_file_runs_the_pipeline_on_excel(tmp_path: Path):
    path = _write_workbook(
        tmp_path / "export.xlsx",
        [
            ["Data operazione", "Causale", "Importo (EUR)"],
            [datetime(2024, 1, 5), "ESSELUNGA MILANO", -45.2],
            [datetime(2024, 1, 5), "ESSELUNGA MILANO", -45.2],
        ],
    )
    report = import_file(path, settings=ImportSettings())
    assert report.state is PipelineState.DONE
    (tx,) = report.transactions
    assert (tx.date, tx.category, tx.confidence) == ("2024-01-05", Category.FOOD, 85)
    assert len(report.duplicates) == 1


def test_import_file_reports_structural_errors(tmp_path: Path):
    path = tmp_path / "notes.txt"
    path.write_text("", encoding="utf-8")
    report = import_file(path, settings=ImportSettings())
    assert report.state is PipelineState.FAILED
    assert report.status_code == 400


@pytest.mark.parametrize("suffix", [".xlsx", ".xlsm"])
def test_corrupt_workbook_is_an_unsupported_file(tmp_path: Path, suffix: str):
    path = tmp_path / f"statement{suffix}"
    path.write_bytes(b"date,description,amount\n2024-01-05,LIDL,-1\n")
    with pytest.raises(UnsupportedFileError, match="readable Excel workbook"):
        read_file(path, max_bytes=1024)


def test_import_file_reports_corrupt_workbook_as_failed(tmp_path: Path):
    path = tmp_path / "statement.xlsx"
    path.write_bytes(b"date,description,amount\n2024-01-05,LIDL,-1\n")
    report = import_file(path, settings=ImportSettings())
    assert report.state is PipelineState.FAILED
    assert report.status_code == 400
    assert report.error == "File is not a readable Excel workbook"
