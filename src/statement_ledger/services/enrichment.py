from statement_ledger.classifiers.merchant import merchant_chain_key, normalize_merchant
from statement_ledger.logger import get_logger
from statement_ledger.models import (
    EnrichedTransaction,
    FlowType,
    MerchantTotal,
    StoredTransaction,
    TransactionMeta,
)
from statement_ledger.store import MetaStore, TransactionStore

logger = get_logger(__name__)


def enrich_transaction(tx: StoredTransaction, meta: TransactionMeta | None = None) -> EnrichedTransaction:
    """Attach metadata, the canonical merchant name and its chain key.

    The merchant is derived from the stored merchant field, falling back on
    the description. A merchant id from the metadata keeps the full name as
    the chain key.
    """
    merchant = normalize_merchant(tx.merchant, tx.description)
    merchant_id = meta.merchant_id if meta else None
    return EnrichedTransaction(
        **tx.model_dump(),
        merchant_name=merchant.merchant,
        merchant_raw=merchant.merchant_raw,
        merchant_kind=merchant.merchant_kind,
        chain_key=merchant_chain_key(merchant_id, merchant.merchant),
        category_id=meta.category_id if meta else None,
        merchant_id=merchant_id,
        notes=meta.notes if meta else None,
        is_recurring=meta.is_recurring if meta else False,
        tags=list(meta.tags) if meta else [],
    )


def list_enriched(
    transactions: TransactionStore,
    meta: MetaStore,
    offset: int = 0,
    limit: int | None = None,
) -> list[EnrichedTransaction]:
    return [
        enrich_transaction(tx, meta.get(tx.id))
        for tx in transactions.list_transactions(offset=offset, limit=limit)
    ]


def merchant_breakdown(enriched: list[EnrichedTransaction]) -> list[MerchantTotal]:
    """Spending per merchant chain, largest first. Excluded rows do not count."""
    totals: dict[str, MerchantTotal] = {}
    for tx in enriched:
        if tx.is_excluded or tx.flow_type is not FlowType.EXPENSE:
            continue
        entry = totals.setdefault(tx.chain_key, MerchantTotal(chain_key=tx.chain_key))
        entry.merchant_id = entry.merchant_id or tx.merchant_id
        entry.total = round(entry.total + abs(tx.amount), 2)
        entry.count += 1

    logger.debug("Merchant breakdown over %s transactions: %s chains", len(enriched), len(totals))
    return sorted(totals.values(), key=lambda entry: (-entry.total, entry.chain_key))
