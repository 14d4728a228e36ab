import json
from collections.abc import Mapping
from typing import Any

from statement_ledger.classifiers.flow import classify_flow_type, normalize_amount_and_flags
from statement_ledger.classifiers.sections import normalize_spreadsheet_amount
from statement_ledger.classifiers.transfer import detect_is_transfer
from statement_ledger.models import (
    ClassifiedTransaction,
    FlowType,
    ParsedTransactionCandidate,
    SourceType,
    StatementRow,
    TransactionStatus,
)


def format_amount(amount: float) -> str:
    """Shortest round-trip text for an amount: ``-245.5``, ``100``."""
    value = round(float(amount), 2)
    if value == 0:
        return "0"
    if value.is_integer():
        return str(int(value))
    return repr(value)


def dedup_key(date: str, description: str, amount: float, source_type: SourceType | str) -> str:
    source = SourceType(source_type).value
    return f"{date}|{(description or '').strip().lower()}|{format_amount(amount)}|{source}"


def context_to_text(context: str | Mapping[str, Any] | None) -> str | None:
    if context is None:
        return None
    if isinstance(context, Mapping):
        return json.dumps(dict(context), ensure_ascii=False, sort_keys=True, default=str)
    return str(context)


def build_classified_transaction(
    *,
    date: str,
    description: str,
    amount: float,
    source_type: SourceType,
    status: TransactionStatus = TransactionStatus.BOOKED,
    currency: str = "NOK",
    merchant: str | None = None,
    booked_date: str | None = None,
    raw_line: str | None = None,
    context: str | Mapping[str, Any] | None = None,
) -> ClassifiedTransaction:
    """Classify the flow, fix the amount sign and set the transfer flags."""
    classification = classify_flow_type(source_type, description, amount, context)

    spreadsheet_transfer = False
    if source_type is SourceType.XLSX:
        adjustment = normalize_spreadsheet_amount(amount, description, context)
        amount = adjustment.amount
        spreadsheet_transfer = adjustment.is_transfer

    normalized = normalize_amount_and_flags(classification.flow_type, amount)
    is_transfer = normalized.is_transfer or spreadsheet_transfer or detect_is_transfer(description)
    flow_type = FlowType.TRANSFER if is_transfer else classification.flow_type

    return ClassifiedTransaction(
        date=date,
        booked_date=booked_date,
        description=description,
        merchant=merchant,
        amount=normalized.amount,
        currency=currency,
        status=status,
        source_type=source_type,
        flow_type=flow_type,
        is_transfer=is_transfer,
        is_excluded=is_transfer,
        reason=classification.reason,
        raw_line=raw_line,
        context=context_to_text(context),
    )


def from_candidate(candidate: ParsedTransactionCandidate, *, currency: str = "NOK") -> ClassifiedTransaction:
    return build_classified_transaction(
        date=candidate.date,
        description=candidate.description,
        amount=candidate.amount,
        source_type=SourceType.PDF,
        status=candidate.status,
        currency=currency,
        raw_line=candidate.raw_line,
    )


def from_statement_row(row: StatementRow) -> ClassifiedTransaction:
    # Spreadsheet exports only contain booked rows.
    return build_classified_transaction(
        date=row.date,
        description=row.description,
        amount=row.amount,
        source_type=SourceType.XLSX,
        currency=row.currency,
        merchant=row.merchant,
        booked_date=row.booked_date,
        context=row.context,
    )


def transaction_payload(tx: ClassifiedTransaction) -> dict[str, Any]:
    return {
        "date": tx.date,
        "description": tx.description,
        "amount": tx.amount,
        "currency": tx.currency,
        "status": tx.status.value,
        "flow_type": tx.flow_type.value,
        "is_transfer": tx.is_transfer,
        "is_excluded": tx.is_excluded,
    }
