import os
from datetime import date
from typing import Any

from statement_ledger.core import settings
from statement_ledger.logger import get_logger
from statement_ledger.models import (
    EnrichedTransaction,
    IngestResult,
    MerchantTotal,
    Rule,
    RuleBatchResult,
    StatementRow,
)
from statement_ledger.services.enrichment import list_enriched, merchant_breakdown
from statement_ledger.services.ingestion import IngestionPipeline
from statement_ledger.services.rules import RuleBatchRunner, load_rules
from statement_ledger.store import (
    InMemoryMetaStore,
    InMemoryTransactionStore,
    JsonMetaStore,
    JsonTransactionStore,
    MetaStore,
    TransactionStore,
)

logger = get_logger(__name__)


class LedgerService:
    def __init__(
        self,
        data_dir: str | None = None,
        rules_file: str | None = None,
        *,
        persistent: bool = True,
        transactions: TransactionStore | None = None,
        meta: MetaStore | None = None,
    ) -> None:
        self.data_dir = data_dir or settings.DATA_DIR
        self.rules_file = rules_file or settings.RULES_FILE

        if transactions is None:
            transactions = (
                JsonTransactionStore(os.path.join(self.data_dir, "transactions.json"))
                if persistent
                else InMemoryTransactionStore()
            )
        if meta is None:
            meta = (
                JsonMetaStore(os.path.join(self.data_dir, "transaction_meta.json"))
                if persistent
                else InMemoryMetaStore()
            )
        self.transactions = transactions
        self.meta = meta

        self.rule_runner = RuleBatchRunner(
            transactions=self.transactions,
            meta=self.meta,
            batch_size=settings.RULES_BATCH_SIZE,
            straksbetaling_category=settings.straksbetaling_category(),
        )
        self.pipeline = IngestionPipeline(
            transactions=self.transactions,
            rule_runner=self.rule_runner,
            currency=settings.default_currency(),
        )
        logger.debug("Ledger service ready: data_dir=%s rules=%s", self.data_dir, self.rules_file)

    def load_rules(self, path: str | None = None) -> list[Rule]:
        return load_rules(path or self.rules_file)

    def ingest_text(
        self,
        text: str,
        *,
        file_hash: str,
        filename: str | None = None,
        rules: list[Rule] | None = None,
        today: date | None = None,
    ) -> IngestResult:
        return self.pipeline.ingest_text(
            text,
            file_hash=file_hash,
            filename=filename,
            rules=self.load_rules() if rules is None else rules,
            today=today,
        )

    def ingest_rows(
        self,
        rows: list[StatementRow | dict[str, Any] | list[Any]],
        *,
        file_hash: str,
        filename: str | None = None,
        rules: list[Rule] | None = None,
        today: date | None = None,
    ) -> IngestResult:
        return self.pipeline.ingest_rows(
            rows,
            file_hash=file_hash,
            filename=filename,
            rules=self.load_rules() if rules is None else rules,
            today=today,
        )

    def apply_rules(self, rules: list[Rule] | None = None) -> RuleBatchResult:
        return self.rule_runner.apply_to_all(self.load_rules() if rules is None else rules)

    def list_transactions(self, offset: int = 0, limit: int | None = None) -> list[EnrichedTransaction]:
        return list_enriched(self.transactions, self.meta, offset=offset, limit=limit)

    def merchant_breakdown(self) -> list[MerchantTotal]:
        return merchant_breakdown(self.list_transactions())
