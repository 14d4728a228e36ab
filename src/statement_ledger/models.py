from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class SourceType(str, Enum):
    PDF = "pdf"
    XLSX = "xlsx"
    MANUAL = "manual"


class TransactionStatus(str, Enum):
    PENDING = "pending"
    BOOKED = "booked"


class FlowType(str, Enum):
    EXPENSE = "expense"
    INCOME = "income"
    TRANSFER = "transfer"
    UNKNOWN = "unknown"


class SkipReason(str, Enum):
    HEADER = "header"
    SECTION_MARKER = "section_marker"
    PAGE_NUMBER = "page_number"
    EMPTY = "empty"
    NO_DATE = "no_date"
    NO_AMOUNT = "no_amount"
    PARSE_FAILED = "parse_failed"
    EXCLUDED_PATTERN = "excluded_pattern"


class MerchantKind(str, Enum):
    NAME = "name"
    CODE = "code"
    UNKNOWN = "unknown"


class RuleMatchField(str, Enum):
    DESCRIPTION = "description"
    MERCHANT = "merchant"
    AMOUNT = "amount"
    SOURCE_TYPE = "source_type"
    STATUS = "status"


class RuleMatchType(str, Enum):
    CONTAINS = "contains"
    STARTS_WITH = "starts_with"
    ENDS_WITH = "ends_with"
    EXACT = "exact"
    REGEX = "regex"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    BETWEEN = "between"


class RuleActionType(str, Enum):
    SET_CATEGORY = "set_category"
    ADD_TAG = "add_tag"
    SET_MERCHANT = "set_merchant"
    SET_NOTES = "set_notes"
    MARK_RECURRING = "mark_recurring"


# Parser output

class ParsedTransactionCandidate(BaseModel):
    date: str  # ISO YYYY-MM-DD
    description: str
    amount: float
    status: TransactionStatus = TransactionStatus.BOOKED
    raw_line: str


class SkipRecord(BaseModel):
    line: str
    reason: SkipReason
    line_number: int


class ParseStats(BaseModel):
    total_lines: int = 0
    parsed_count: int = 0
    date_containing_lines: int = 0
    skipped_count: int = 0
    merged_lines: int = 0


class ParseResult(BaseModel):
    transactions: list[ParsedTransactionCandidate] = Field(default_factory=list)
    skipped_lines: list[SkipRecord] = Field(default_factory=list)
    stats: ParseStats = Field(default_factory=ParseStats)

    def skipped_summary(self) -> dict[str, int]:
        summary: dict[str, int] = {}
        for record in self.skipped_lines:
            summary[record.reason.value] = summary.get(record.reason.value, 0) + 1
        return summary


# Classification

class FlowClassification(BaseModel):
    flow_type: FlowType
    reason: str
    section_label: str | None = None


class SignAdjustment(BaseModel):
    amount: float
    is_transfer: bool = False
    is_excluded: bool = False


class ClassifiedTransaction(BaseModel):
    date: str
    booked_date: str | None = None
    description: str
    merchant: str | None = None
    amount: float
    currency: str = "NOK"
    status: TransactionStatus = TransactionStatus.BOOKED
    source_type: SourceType
    flow_type: FlowType
    is_transfer: bool = False
    is_excluded: bool = False
    reason: str = ""
    raw_line: str | None = None
    context: str | None = None


class StoredTransaction(ClassifiedTransaction):
    id: str
    source_file_hash: str
    created_at: datetime = Field(default_factory=datetime.now)


class MerchantNormalizationResult(BaseModel):
    merchant: str
    merchant_raw: str
    merchant_kind: MerchantKind


class EnrichedTransaction(StoredTransaction):
    """A stored transaction joined with its metadata and merchant view."""
    merchant_name: str
    merchant_raw: str
    merchant_kind: MerchantKind
    chain_key: str
    category_id: str | None = None
    merchant_id: str | None = None
    notes: str | None = None
    is_recurring: bool = False
    tags: list[str] = Field(default_factory=list)


class MerchantTotal(BaseModel):
    chain_key: str
    merchant_id: str | None = None
    total: float = 0.0
    count: int = 0


# Rules

class Rule(BaseModel):
    id: str
    name: str = ""
    priority: int = 100
    enabled: bool = True
    match_field: RuleMatchField
    match_type: RuleMatchType
    match_value: str
    match_value_secondary: str | None = None
    action_type: RuleActionType
    action_value: str


class RuleAction(BaseModel):
    type: RuleActionType
    value: str
    rule_id: str
    rule_name: str


class TransactionMeta(BaseModel):
    transaction_id: str
    category_id: str | None = None
    merchant_id: str | None = None
    notes: str | None = None
    is_recurring: bool = False
    tags: list[str] = Field(default_factory=list)
    updated_at: datetime | None = None

    def state(self) -> tuple[Any, ...]:
        return (
            self.category_id,
            self.merchant_id,
            self.notes,
            self.is_recurring,
            tuple(self.tags),
        )


class RuleApplication(BaseModel):
    transaction_id: str
    matched: bool = False
    updated: bool = False
    category_candidate: bool = False
    actions: list[RuleAction] = Field(default_factory=list)


class RuleBatchResult(BaseModel):
    processed: int = 0
    matched: int = 0
    updated: int = 0
    category_candidates: int = 0
    errors: int = 0

    def add(self, other: "RuleBatchResult") -> "RuleBatchResult":
        return RuleBatchResult(
            processed=self.processed + other.processed,
            matched=self.matched + other.matched,
            updated=self.updated + other.updated,
            category_candidates=self.category_candidates + other.category_candidates,
            errors=self.errors + other.errors,
        )


# Ingestion

class StatementRow(BaseModel):
    date: str
    booked_date: str | None = None
    description: str
    merchant: str | None = None
    amount: float
    currency: str = "NOK"
    context: str | dict[str, Any] | None = None


class IngestResult(BaseModel):
    inserted: int = 0
    skipped_duplicates: int = 0
    skipped_invalid: int = 0
    file_duplicate: bool = False
    skipped_lines_summary: dict[str, int] | None = None
    stats: ParseStats | None = None
    rules: RuleBatchResult | None = None
