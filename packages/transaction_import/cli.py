"""CLI for the ``transaction_import`` package.

This module exposes callable command handlers (``cmd_import_file``,
``cmd_categorize``) and a Typer-based console interface. Environment
variables (notably ``OPENAI_API_KEY`` and ``TXN_IMPORT_*``) are loaded from a
local ``.env`` using ``python-dotenv`` before delegating to
:mod:`transaction_import.api`.
"""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Annotated, Any

import typer
from dotenv import load_dotenv

from .config import ImportSettings
from .errors import ClassifierConfigError
from .logging_setup import configure_logging

# ---- Small module-level helpers ----------------------------------------------


def _load_json_array(path: Path, what: str) -> list[Any]:
    """Read ``path`` as a JSON array; raise ``ValueError`` with context otherwise."""

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ValueError(f"{what} file is not valid JSON: {e}") from e
    if not isinstance(data, list):
        raise ValueError(f"{what} file must contain a JSON array")
    return data


def _emit(payload: Any, output: Path | None) -> None:
    text = json.dumps(payload, ensure_ascii=False, indent=2)
    if output is None:
        typer.echo(text)
    else:
        output.write_text(text + "\n", encoding="utf-8")


# ---- Command handlers ----------------------------------------------------------


def cmd_import_file(
    path: Path,
    *,
    reference: Path | None = None,
    output: Path | None = None,
    settings: ImportSettings | None = None,
) -> int:
    """Import ``path`` and print (or write) the report as JSON.

    Returns ``0`` when the run finished (``done`` or ``cancelled``) and ``1``
    when it failed or the inputs could not be read. Errors go to stderr.
    """

    from .api import import_file

    try:
        ref_items = _load_json_array(reference, "Reference") if reference else []
    except (OSError, ValueError) as e:
        print(f"Error: failed to load reference transactions: {e}", file=sys.stderr)
        return 1

    try:
        report = import_file(path, ref_items, settings=settings)
    except OSError as e:
        print(f"Error: cannot read '{path}': {e}", file=sys.stderr)
        return 1

    _emit(report.to_dict(), output)
    if not report.ok:
        print(f"Error: import failed ({report.status_code}): {report.error}", file=sys.stderr)
        return 1
    return 0


def cmd_categorize(
    input_path: Path,
    *,
    output: Path | None = None,
    settings: ImportSettings | None = None,
) -> int:
    """Categorize a JSON array of ``{description, amount, date}`` records."""

    from .api import categorize_transactions

    try:
        items = _load_json_array(input_path, "Input")
        txs = categorize_transactions(items, settings=settings)
    except (OSError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except ClassifierConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    _emit({"transactions": [tx.to_dict() for tx in txs]}, output)
    return 0


# ---- Typer-based console interface -------------------------------------------


app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help=(
        "Import bank statement exports (CSV/Excel) into categorized transactions. "
        "Loads OPENAI_API_KEY and TXN_IMPORT_* settings from a local .env before running."
    ),
)

OUTPUT_OPTION = typer.Option(
    "--output", "-o", help="Write the JSON result to this file instead of stdout."
)


@app.command("import-file")
def import_file_cmd(
    path: Annotated[Path, typer.Argument(help="Path to a .csv/.txt or .xlsx/.xlsm export.")],
    reference: Annotated[
        Path | None,
        typer.Option(help="JSON array of already-known transactions used for deduplication."),
    ] = None,
    output: Annotated[Path | None, OUTPUT_OPTION] = None,
    require_ai: Annotated[
        bool | None,
        typer.Option(
            "--require-ai/--no-require-ai",
            help="Fail the import when AI categorization is not configured.",
        ),
    ] = None,
    batch_size: Annotated[
        int | None, typer.Option(min=1, help="Transactions per AI categorization request.")
    ] = None,
    inter_batch_delay: Annotated[
        float | None, typer.Option(min=0.0, help="Seconds to wait between AI requests.")
    ] = None,
) -> None:
    """Detect columns, normalize, deduplicate and categorize one export."""

    try:
        settings = ImportSettings.from_env(
            require_ai=require_ai,
            batch_size=batch_size,
            inter_batch_delay=inter_batch_delay,
        )
    except ValueError as e:
        print(f"Error: invalid settings: {e}", file=sys.stderr)
        raise typer.Exit(1) from e
    raise typer.Exit(cmd_import_file(path, reference=reference, output=output, settings=settings))


@app.command("categorize")
def categorize_cmd(
    input_path: Annotated[
        Path,
        typer.Option("--input", "-i", help="JSON array of {description, amount, date} objects."),
    ],
    output: Annotated[Path | None, OUTPUT_OPTION] = None,
    batch_size: Annotated[
        int | None, typer.Option(min=1, help="Transactions per AI categorization request.")
    ] = None,
) -> None:
    """Categorize already-structured transactions."""

    try:
        settings = ImportSettings.from_env(batch_size=batch_size)
    except ValueError as e:
        print(f"Error: invalid settings: {e}", file=sys.stderr)
        raise typer.Exit(1) from e
    raise typer.Exit(cmd_categorize(input_path, output=output, settings=settings))


@app.callback()
def _root(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Log at DEBUG level.")] = False,
) -> None:
    """Root command.

    Loads ``.env`` from the current working directory (without overriding any
    already-set environment variables) and configures package logging.
    """

    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)
    configure_logging("DEBUG" if verbose else None)


if __name__ == "__main__":  # pragma: no cover
    # Running as a module: `python -m transaction_import.cli`
    app()
