import json
import os
from time import perf_counter

from pydantic import ValidationError

from statement_ledger.core.errors import ConfigurationError
from statement_ledger.domain.dates import format_duration
from statement_ledger.logger import get_logger
from statement_ledger.models import Rule, RuleBatchResult
from statement_ledger.rules.actions import apply_rules_to_batch
from statement_ledger.store import MetaStore, TransactionStore

logger = get_logger(__name__)


def load_rules(path: str) -> list[Rule]:
    """Read rules from a JSON list. A missing file means no rules."""
    if not os.path.exists(path):
        logger.info("Rules file %s not found, no rules loaded.", path)
        return []
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"Rules file {path} is not valid JSON: {exc}") from exc

    if not isinstance(data, list):
        raise ConfigurationError(f"Rules file {path} must contain a JSON list")
    try:
        rules = [Rule.model_validate(item) for item in data]
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid rule in {path}: {exc}") from exc

    logger.debug("Loaded %s rules from %s", len(rules), path)
    return rules


def enabled_rules(rules: list[Rule]) -> list[Rule]:
    return sorted((rule for rule in rules if rule.enabled), key=lambda rule: rule.priority)


class RuleBatchRunner:
    def __init__(
        self,
        transactions: TransactionStore,
        meta: MetaStore,
        batch_size: int,
        straksbetaling_category: str | None = None,
    ) -> None:
        self.transactions = transactions
        self.meta = meta
        self.batch_size = max(1, batch_size)
        self.straksbetaling_category = straksbetaling_category

    def apply_to_file(self, file_hash: str, rules: list[Rule]) -> RuleBatchResult:
        return apply_rules_to_batch(
            self.transactions.list_by_file(file_hash),
            enabled_rules(rules),
            self.meta,
            straksbetaling_category=self.straksbetaling_category,
        )

    def apply_to_all(self, rules: list[Rule]) -> RuleBatchResult:
        active_rules = enabled_rules(rules)
        total = RuleBatchResult()
        offset = 0
        start = perf_counter()

        while True:
            page = self.transactions.list_transactions(offset=offset, limit=self.batch_size)
            if not page:
                break
            page_result = apply_rules_to_batch(
                page,
                active_rules,
                self.meta,
                straksbetaling_category=self.straksbetaling_category,
            )
            total = total.add(page_result)
            logger.debug(
                "Rule batch at offset %s: processed=%s updated=%s errors=%s",
                offset,
                page_result.processed,
                page_result.updated,
                page_result.errors,
            )
            offset += len(page)
            if len(page) < self.batch_size:
                break

        logger.info(
            "Applied %s rules to %s transactions in %s (matched=%s updated=%s errors=%s)",
            len(active_rules),
            total.processed,
            format_duration(perf_counter() - start),
            total.matched,
            total.updated,
            total.errors,
        )
        return total
