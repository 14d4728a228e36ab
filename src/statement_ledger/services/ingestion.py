import json
from collections.abc import Iterable
from datetime import date
from typing import Any

from statement_ledger.core.errors import StatementLedgerError
from statement_ledger.domain.dates import parse_iso_date
from statement_ledger.domain.text import collapse_whitespace
from statement_ledger.domain.transactions import dedup_key, from_candidate, from_statement_row
from statement_ledger.logger import get_logger
from statement_ledger.models import (
    ClassifiedTransaction,
    IngestResult,
    Rule,
    SourceType,
    StatementRow,
)
from statement_ledger.parsing.spreadsheet import looks_like_five_column_row, parse_five_column_row
from statement_ledger.parsing.statement import parse_statement_text
from statement_ledger.services.rules import RuleBatchRunner
from statement_ledger.store import TransactionStore

logger = get_logger(__name__)


class IngestionPipeline:
    def __init__(
        self,
        transactions: TransactionStore,
        rule_runner: RuleBatchRunner,
        currency: str = "NOK",
    ) -> None:
        self.transactions = transactions
        self.rule_runner = rule_runner
        self.currency = currency

    def _commit(
        self,
        file_hash: str,
        source_type: SourceType,
        filename: str | None,
        classified: list[ClassifiedTransaction],
        result: IngestResult,
    ) -> None:
        pairs = [(dedup_key(tx.date, tx.description, tx.amount, tx.source_type), tx) for tx in classified]
        inserted = self.transactions.add_file(file_hash, source_type, pairs, filename)
        result.inserted = len(inserted)
        result.skipped_duplicates = len(pairs) - len(inserted)

    def _apply_rules(self, file_hash: str, rules: list[Rule] | None, result: IngestResult) -> None:
        if not rules or result.inserted == 0:
            return
        try:
            result.rules = self.rule_runner.apply_to_file(file_hash, rules)
        except Exception:
            logger.exception("Applying rules after ingesting %s failed", file_hash)

    def ingest_text(
        self,
        text: str,
        *,
        file_hash: str,
        filename: str | None = None,
        rules: list[Rule] | None = None,
        today: date | None = None,
    ) -> IngestResult:
        if self.transactions.has_file(file_hash):
            logger.info("File %s (%s) already ingested.", filename or "<text>", file_hash[:12])
            return IngestResult(file_duplicate=True)

        parsed = parse_statement_text(text, today=today)
        logger.info("[INGEST] File: %s, stats: %s", filename or "<text>", json.dumps(parsed.stats.model_dump()))

        result = IngestResult(
            skipped_lines_summary=parsed.skipped_summary() or None,
            stats=parsed.stats,
        )
        if not parsed.transactions:
            logger.warning("No valid transactions found in %s", filename or "<text>")
            return result

        classified: list[ClassifiedTransaction] = []
        for candidate in parsed.transactions:
            try:
                classified.append(from_candidate(candidate, currency=self.currency))
            except (StatementLedgerError, ValueError) as exc:
                result.skipped_invalid += 1
                logger.warning("Invalid transaction skipped (%s): %s", exc, candidate.raw_line[:100])

        self._commit(file_hash, SourceType.PDF, filename, classified, result)
        self._apply_rules(file_hash, rules, result)
        self._log_result(filename, result)
        return result

    def _to_statement_row(self, raw_row: Any, today: date | None) -> StatementRow:
        if isinstance(raw_row, StatementRow):
            row = raw_row
        elif isinstance(raw_row, (list, tuple)):
            if not looks_like_five_column_row(raw_row, today=today):
                raise ValueError("unrecognized column layout")
            row = parse_five_column_row(raw_row, today=today)
            if row is None:
                raise ValueError("unreadable five-column row")
        else:
            row = StatementRow.model_validate(raw_row)

        row = row.model_copy(update={
            "date": parse_iso_date(row.date, today=today),
            "description": collapse_whitespace(row.description),
            "currency": (row.currency or self.currency).upper(),
        })
        if not row.description:
            raise ValueError("empty description")
        return row

    def ingest_rows(
        self,
        rows: Iterable[StatementRow | dict[str, Any] | list[Any] | tuple[Any, ...]],
        *,
        file_hash: str,
        filename: str | None = None,
        rules: list[Rule] | None = None,
        today: date | None = None,
    ) -> IngestResult:
        """Ingest pre-structured rows.

        A row is a :class:`StatementRow`, a mapping with its fields, or the
        raw cells of a ``date, text, amount, balance, currency`` export row.
        """
        if self.transactions.has_file(file_hash):
            logger.info("File %s (%s) already ingested.", filename or "<rows>", file_hash[:12])
            return IngestResult(file_duplicate=True)

        result = IngestResult()
        classified: list[ClassifiedTransaction] = []
        for index, raw_row in enumerate(rows, start=1):
            try:
                classified.append(from_statement_row(self._to_statement_row(raw_row, today)))
            except (StatementLedgerError, ValueError) as exc:
                result.skipped_invalid += 1
                logger.warning("Invalid row %s skipped: %s", index, exc)

        self._commit(file_hash, SourceType.XLSX, filename, classified, result)
        self._apply_rules(file_hash, rules, result)
        self._log_result(filename, result)
        return result

    @staticmethod
    def _log_result(filename: str | None, result: IngestResult) -> None:
        logger.info(
            "[INGEST] %s: inserted=%s duplicates=%s invalid=%s",
            filename or "<input>",
            result.inserted,
            result.skipped_duplicates,
            result.skipped_invalid,
        )
