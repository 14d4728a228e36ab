"""Section context of spreadsheet rows.

Spreadsheet exports group rows under headings such as "Kjøp/uttak" or
"Innbetaling bankgiro". The heading travels with each row in its context
blob and decides the sign of the amount.
"""

import json
from collections.abc import Mapping
from typing import Any

from statement_ledger.classifiers.transfer import is_felleskonto_description, is_straksbetaling_description
from statement_ledger.domain.text import normalize_for_match
from statement_ledger.logger import get_logger
from statement_ledger.models import SignAdjustment

logger = get_logger(__name__)

SECTION_KEYS = ("section_label", "section", "sectionContext", "section_context")
SECTION_KEY_HINTS = ("type", "transaksjonstype", "kategori", "gruppe")

REFUND_MARKERS = (
    "refusjon",
    "tilbake",
    "retur",
    "kredit",
    "revers",
    "refund",
    "return",
)


def _load_context(context: str | Mapping[str, Any] | None) -> Mapping[str, Any] | None:
    if context is None:
        return None
    if isinstance(context, Mapping):
        return context
    raw = str(context).strip()
    if not raw:
        return None
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        logger.debug("Ignoring unparseable row context: %s", raw[:80])
        return None
    return parsed if isinstance(parsed, Mapping) else None


def _hinted_values(mapping: Mapping[str, Any]) -> list[str]:
    values = []
    for key, value in mapping.items():
        if not isinstance(value, str):
            continue
        normalized_key = normalize_for_match(str(key))
        if any(hint in normalized_key for hint in SECTION_KEY_HINTS):
            values.append(value)
    return values


def extract_section_label(context: str | Mapping[str, Any] | None) -> str | None:
    parsed = _load_context(context)
    if parsed is None:
        return None

    for key in SECTION_KEYS:
        direct = parsed.get(key)
        if direct is not None:
            if isinstance(direct, str) and direct.strip():
                return direct.strip()
            break

    candidates: list[str] = []
    raw_row = parsed.get("raw_row")
    if isinstance(raw_row, Mapping):
        candidates.extend(_hinted_values(raw_row))
    candidates.extend(_hinted_values(parsed))

    for candidate in candidates:
        if candidate.strip():
            return candidate.strip()
    return None


def is_purchase_section(section_label: str | None) -> bool:
    if not section_label:
        return False
    label = normalize_for_match(section_label)
    return "kjop/uttak" in label or "kjop / uttak" in label or ("kjop" in label and "uttak" in label)


def is_refund_like(description: str | None) -> bool:
    text = normalize_for_match(description)
    if not text:
        return False
    return any(marker in text for marker in REFUND_MARKERS)


def is_payment_like_row(description: str | None, section_label: str | None) -> bool:
    """Card bill payments and top-ups: money moved, not earned or spent."""
    if is_straksbetaling_description(description) or is_felleskonto_description(description):
        return False
    text = normalize_for_match(description)
    label = normalize_for_match(section_label)

    if "innbetaling bankgiro" in text:
        return True
    if "bankgiro" in text and ("innbetaling" in text or "betaling" in text):
        return True
    if "innbetaling" in label and any(word in label for word in ("bankgiro", "giro", "betaling")):
        return True
    return False


def normalize_spreadsheet_amount(
    amount: float,
    description: str,
    context: str | Mapping[str, Any] | None,
) -> SignAdjustment:
    section_label = extract_section_label(context)

    if is_payment_like_row(description, section_label):
        return SignAdjustment(amount=amount, is_transfer=True, is_excluded=True)

    if is_purchase_section(section_label) and not is_refund_like(description):
        return SignAdjustment(amount=-abs(amount))

    return SignAdjustment(amount=amount)
