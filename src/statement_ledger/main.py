"""Command line interface for statement-ledger.

Settings are read from ``.env``/``config.yaml`` when
``statement_ledger.core.settings`` is imported; logging is configured once in
the root callback before any command runs.
"""

import hashlib
import json
from pathlib import Path
from typing import Annotated

import typer

from statement_ledger.classifiers.flow import classify_flow_type, normalize_amount_and_flags
from statement_ledger.classifiers.merchant import normalize_merchant
from statement_ledger.core import settings
from statement_ledger.core.errors import ConfigurationError, UnrecognizedFormatError
from statement_ledger.logger import setup_logging
from statement_ledger.manager import LedgerService
from statement_ledger.models import Rule, SourceType

app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help="Ingest bank statement exports into a deduplicated, classified ledger.",
)

PATH_ARGUMENT = typer.Argument(..., exists=True, dir_okay=False, readable=True)


def _file_hash(path: Path) -> str:
    return hashlib.sha256(path.read_bytes()).hexdigest()


def _echo_json(payload: dict | list) -> None:
    typer.echo(json.dumps(payload, indent=2, ensure_ascii=False))


def _service() -> LedgerService:
    return LedgerService()


def _load_rules_or_exit(service: LedgerService, path: str | None = None) -> list[Rule]:
    try:
        return service.load_rules(path)
    except ConfigurationError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(1) from exc


@app.command("ingest-text")
def ingest_text_cmd(
    path: Annotated[Path, PATH_ARGUMENT],
    file_hash: str | None = typer.Option(None, help="Content hash of the uploaded file (default: SHA-256 of PATH)."),
    filename: str | None = typer.Option(None, help="Original filename (default: name of PATH)."),
) -> None:
    """Ingest the extracted text of a statement document."""
    service = _service()
    rules = _load_rules_or_exit(service)
    try:
        result = service.ingest_text(
            path.read_text(encoding="utf-8"),
            file_hash=file_hash or _file_hash(path),
            filename=filename or path.name,
            rules=rules,
        )
    except UnrecognizedFormatError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(1) from exc
    _echo_json(result.model_dump(mode="json", exclude_none=True))


@app.command("ingest-rows")
def ingest_rows_cmd(
    path: Annotated[Path, PATH_ARGUMENT],
    file_hash: str | None = typer.Option(None, help="Content hash of the uploaded file (default: SHA-256 of PATH)."),
    filename: str | None = typer.Option(None, help="Original filename (default: name of PATH)."),
) -> None:
    """Ingest a JSON list of spreadsheet rows.

    Each row is either an object with the row fields or the five cells of a
    date, text, amount, balance, currency export row.
    """
    try:
        rows = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        typer.echo(f"Error: {path} is not valid JSON: {exc}", err=True)
        raise typer.Exit(1) from exc
    if not isinstance(rows, list):
        typer.echo(f"Error: {path} must contain a JSON list of rows", err=True)
        raise typer.Exit(1)

    service = _service()
    rules = _load_rules_or_exit(service)
    result = service.ingest_rows(
        rows,
        file_hash=file_hash or _file_hash(path),
        filename=filename or path.name,
        rules=rules,
    )
    _echo_json(result.model_dump(mode="json", exclude_none=True))


@app.command("apply-rules")
def apply_rules_cmd(
    rules_path: str | None = typer.Option(None, "--rules", help="Rules JSON file (default: RULES_FILE)."),
) -> None:
    """Re-apply rules to every stored transaction."""
    service = _service()
    rules = _load_rules_or_exit(service, rules_path)
    result = service.apply_rules(rules)
    _echo_json(result.model_dump())


@app.command("list-transactions")
def list_transactions_cmd(
    offset: int = typer.Option(0, min=0, help="Number of transactions to skip."),
    limit: int | None = typer.Option(None, min=1, help="Maximum number of transactions to show."),
) -> None:
    """Show stored transactions with metadata and canonical merchant names."""
    enriched = _service().list_transactions(offset=offset, limit=limit)
    _echo_json([tx.model_dump(mode="json") for tx in enriched])


@app.command("merchants")
def merchants_cmd() -> None:
    """Show spending per merchant chain."""
    _echo_json([entry.model_dump() for entry in _service().merchant_breakdown()])


@app.command("classify")
def classify_cmd(
    description: str,
    amount: float,
    source: SourceType = typer.Option(SourceType.PDF, help="Source type of the transaction."),
    context: str | None = typer.Option(None, help="Row context as a JSON object."),
) -> None:
    """Classify one transaction and show its normalized amount."""
    classification = classify_flow_type(source, description, amount, context)
    adjustment = normalize_amount_and_flags(classification.flow_type, amount)
    _echo_json({
        **classification.model_dump(mode="json"),
        "amount": adjustment.amount,
        "is_transfer": adjustment.is_transfer,
        "is_excluded": adjustment.is_excluded,
    })


@app.command("normalize-merchant")
def normalize_merchant_cmd(
    raw: str,
    fallback: str | None = typer.Option(None, help="Text to fall back on when RAW is not a name."),
) -> None:
    """Show the canonical merchant name for a raw value."""
    _echo_json(normalize_merchant(raw, fallback).model_dump(mode="json"))


@app.callback()
def _root(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log the resolved configuration."),
) -> None:
    setup_logging()
    if verbose:
        settings.log_environment()


if __name__ == "__main__":
    app()
