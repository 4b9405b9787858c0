# ruff: noqa: E402, I001
import json
import sys
from pathlib import Path

import pytest
from typer.testing import CliRunner

# Make sure the workspace `packages/` dir is on sys.path so `transaction_import` is importable
_ROOT = Path(__file__).resolve().parents[1]
_PKG_DIR = _ROOT / "packages"
sys.path[:0] = [p for p in [str(_PKG_DIR), str(_ROOT)] if p not in sys.path]

from transaction_import.cli import app

runner = CliRunner()


@pytest.fixture(autouse=True)
def _run_in_tmp(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    # The root callback reads ./.env; keep the developer's file out of the run.
    monkeypatch.chdir(tmp_path)


def _csv(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "export.csv"
    path.write_text(text, encoding="utf-8")
    return path


def test_import_file_writes_report(tmp_path: Path):
    src = _csv(
        tmp_path,
        "date,description,amount\n"
        "2024-01-05,ESSELUNGA MILANO,-45.20\n"
        "2024-01-05,ESSELUNGA MILANO,-45.20\n",
    )
    out = tmp_path / "report.json"

    result = runner.invoke(app, ["import-file", str(src), "--output", str(out)])

    assert result.exit_code == 0, result.output
    body = json.loads(out.read_text(encoding="utf-8"))
    assert body["stats"]["duplicates"] == 1
    assert body["transactions"][0]["category"] == "Food"
    assert body["transactions"][0]["confidence"] == 85


def test_import_file_uses_reference_for_deduplication(tmp_path: Path):
    src = _csv(tmp_path, "date,description,amount\n2024-01-05,ESSELUNGA MILANO,-45.20\n")
    ref = tmp_path / "known.json"
    ref.write_text(
        json.dumps([{"date": "2024-01-05", "amount": 45.2, "description": "esselunga milano"}]),
        encoding="utf-8",
    )
    out = tmp_path / "report.json"

    result = runner.invoke(
        app, ["import-file", str(src), "--reference", str(ref), "--output", str(out)]
    )

    assert result.exit_code == 0, result.output
    body = json.loads(out.read_text(encoding="utf-8"))
    assert body["transactions"] == []
    assert len(body["duplicates"]) == 1


def test_import_file_exits_nonzero_on_failed_import(tmp_path: Path):
    src = _csv(tmp_path, "x,y,z\n1,2,3\n")
    out = tmp_path / "report.json"

    result = runner.invoke(app, ["import-file", str(src), "--output", str(out)])

    assert result.exit_code == 1
    assert json.loads(out.read_text(encoding="utf-8"))["foundHeaders"] == ["x", "y", "z"]


def test_require_ai_without_credentials_fails(tmp_path: Path):
    src = _csv(tmp_path, "date,description,amount\n2024-01-05,ZETA HOLDINGS SRL,-2\n")
    out = tmp_path / "report.json"

    result = runner.invoke(app, ["import-file", str(src), "--require-ai", "--output", str(out)])

    assert result.exit_code == 1
    assert "OPENAI_API_KEY" in json.loads(out.read_text(encoding="utf-8"))["error"]


def test_invalid_env_setting_is_reported(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("TXN_IMPORT_BATCH_SIZE", "lots")
    src = _csv(tmp_path, "date,description,amount\n2024-01-05,LIDL,-2\n")

    result = runner.invoke(app, ["import-file", str(src)])

    assert result.exit_code == 1


def test_import_file_reports_corrupt_workbook(tmp_path: Path):
    src = tmp_path / "statement.xlsx"
    src.write_bytes(b"date,description,amount\n2024-01-05,LIDL,-1\n")
    out = tmp_path / "report.json"

    result = runner.invoke(app, ["import-file", str(src), "--output", str(out)])

    assert result.exit_code == 1
    assert json.loads(out.read_text(encoding="utf-8"))["error"] == (
        "File is not a readable Excel workbook"
    )


def test_categorize_command(tmp_path: Path):
    src = tmp_path / "items.json"
    src.write_text(
        json.dumps(
            [
                {"description": "ESSELUNGA", "amount": -10, "date": "2024-01-05"},
                {"description": "STIPENDIO", "amount": 2500, "date": "05/01/2024"},
            ]
        ),
        encoding="utf-8",
    )
    out = tmp_path / "out.json"

    result = runner.invoke(app, ["categorize", "--input", str(src), "--output", str(out)])

    assert result.exit_code == 0, result.output
    txs = json.loads(out.read_text(encoding="utf-8"))["transactions"]
    assert [(t["category"], t["type"]) for t in txs] == [("Food", "Expense"), ("Income", "Income")]


def test_categorize_rejects_empty_payload(tmp_path: Path):
    src = tmp_path / "items.json"
    src.write_text("[]", encoding="utf-8")

    result = runner.invoke(app, ["categorize", "--input", str(src)])

    assert result.exit_code == 1
