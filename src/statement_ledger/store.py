import hashlib
import json
import os
import uuid
from abc import ABC, abstractmethod
from datetime import datetime

from statement_ledger.logger import get_logger
from statement_ledger.models import ClassifiedTransaction, SourceType, StoredTransaction, TransactionMeta

logger = get_logger(__name__)


def transaction_hash(key: str) -> str:
    return hashlib.sha256(key.encode("utf-8")).hexdigest()


class TransactionStore(ABC):
    @abstractmethod
    def has_file(self, file_hash: str) -> bool:
        pass

    @abstractmethod
    def exists(self, key: str) -> bool:
        """True when a transaction with this dedup key is already stored."""
        pass

    @abstractmethod
    def add_file(
        self,
        file_hash: str,
        source_type: SourceType,
        transactions: list[tuple[str, ClassifiedTransaction]],
        filename: str | None = None,
    ) -> list[StoredTransaction]:
        """Record an ingested file together with its ``(dedup_key, transaction)`` pairs.

        Either everything is written or nothing is. Pairs whose key is already
        stored, or repeated earlier in the batch, are left out. Returns the
        transactions that were inserted.
        """
        pass

    @abstractmethod
    def list_transactions(self, offset: int = 0, limit: int | None = None) -> list[StoredTransaction]:
        pass

    @abstractmethod
    def list_by_file(self, file_hash: str) -> list[StoredTransaction]:
        pass


class MetaStore(ABC):
    @abstractmethod
    def get(self, transaction_id: str) -> TransactionMeta | None:
        pass

    @abstractmethod
    def save(self, meta: TransactionMeta) -> None:
        pass


class InMemoryTransactionStore(TransactionStore):
    def __init__(self):
        self.files: dict[str, dict[str, str | None]] = {}
        self.transactions: dict[str, StoredTransaction] = {}  # tx hash -> transaction

    def has_file(self, file_hash: str) -> bool:
        return file_hash in self.files

    def exists(self, key: str) -> bool:
        return transaction_hash(key) in self.transactions

    def add_file(
        self,
        file_hash: str,
        source_type: SourceType,
        transactions: list[tuple[str, ClassifiedTransaction]],
        filename: str | None = None,
    ) -> list[StoredTransaction]:
        staged: dict[str, StoredTransaction] = {}
        for key, tx in transactions:
            tx_hash = transaction_hash(key)
            if tx_hash in self.transactions or tx_hash in staged:
                logger.debug("Duplicate transaction skipped: %s", key)
                continue
            staged[tx_hash] = StoredTransaction(
                **tx.model_dump(),
                id=str(uuid.uuid4()),
                source_file_hash=file_hash,
            )

        previous_files, previous_transactions = self.files, self.transactions
        self.files = {
            **self.files,
            file_hash: {
                "source_type": SourceType(source_type).value,
                "filename": filename,
                "uploaded_at": datetime.now().isoformat(),
            },
        }
        self.transactions = {**self.transactions, **staged}
        try:
            self._persist()
        except Exception:
            self.files, self.transactions = previous_files, previous_transactions
            raise
        return list(staged.values())

    def list_transactions(self, offset: int = 0, limit: int | None = None) -> list[StoredTransaction]:
        ordered = sorted(self.transactions.values(), key=lambda tx: (tx.date, tx.created_at))
        end = None if limit is None else offset + limit
        return ordered[offset:end]

    def list_by_file(self, file_hash: str) -> list[StoredTransaction]:
        return [tx for tx in self.transactions.values() if tx.source_file_hash == file_hash]

    def _persist(self) -> None:
        pass


class JsonTransactionStore(InMemoryTransactionStore):
    """Transactions and ingested file records kept in one JSON document."""

    def __init__(self, data_path: str = "transactions.json"):
        super().__init__()
        self.data_path = data_path
        self.load()

    def load(self) -> None:
        if not os.path.exists(self.data_path):
            return
        try:
            with open(self.data_path, encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError:
            logger.warning("Transaction store %s is not valid JSON, starting empty.", self.data_path)
            return
        self.files = data.get("files", {})
        self.transactions = {
            tx_hash: StoredTransaction.model_validate(payload)
            for tx_hash, payload in data.get("transactions", {}).items()
        }
        logger.debug("Loaded %s transactions from %s", len(self.transactions), self.data_path)

    def save(self) -> None:
        data = {
            "files": self.files,
            "transactions": {
                tx_hash: tx.model_dump(mode="json") for tx_hash, tx in self.transactions.items()
            },
        }
        tmp_path = f"{self.data_path}.tmp"
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
        os.replace(tmp_path, self.data_path)

    def _persist(self) -> None:
        self.save()


class InMemoryMetaStore(MetaStore):
    def __init__(self):
        self.records: dict[str, TransactionMeta] = {}

    def get(self, transaction_id: str) -> TransactionMeta | None:
        meta = self.records.get(transaction_id)
        return meta.model_copy(deep=True) if meta else None

    def save(self, meta: TransactionMeta) -> None:
        self.records[meta.transaction_id] = meta.model_copy(deep=True)
        self._persist()

    def _persist(self) -> None:
        pass


class JsonMetaStore(InMemoryMetaStore):
    def __init__(self, data_path: str = "transaction_meta.json"):
        super().__init__()
        self.data_path = data_path
        self.load()

    def load(self) -> None:
        if not os.path.exists(self.data_path):
            return
        try:
            with open(self.data_path, encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError:
            logger.warning("Metadata store %s is not valid JSON, starting empty.", self.data_path)
            return
        self.records = {
            transaction_id: TransactionMeta.model_validate(payload)
            for transaction_id, payload in data.items()
        }

    def _persist(self) -> None:
        with open(self.data_path, "w", encoding="utf-8") as f:
            json.dump(
                {key: meta.model_dump(mode="json") for key, meta in self.records.items()},
                f,
                indent=2,
                ensure_ascii=False,
            )
