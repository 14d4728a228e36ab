"""Rule matching.

Rules are evaluated against one transaction at a time, lowest priority
number first. User supplied regular expressions pass a structural filter
before they are compiled; a rejected pattern simply never matches.
"""

import re
from functools import lru_cache

from statement_ledger.classifiers.merchant import normalize_merchant
from statement_ledger.core.errors import UnsafePatternError
from statement_ledger.domain.text import collapse_whitespace
from statement_ledger.logger import get_logger
from statement_ledger.models import (
    ClassifiedTransaction,
    MerchantKind,
    Rule,
    RuleAction,
    RuleMatchField,
    RuleMatchType,
)

logger = get_logger(__name__)

MAX_PATTERN_LENGTH = 200
MAX_QUANTIFIER_BOUND = 1000

_LOOKAROUND_RE = re.compile(r"\(\?(?:<|=|!)")
_QUANTIFIER_RE = re.compile(r"\{\s*(\d*)\s*(?:,\s*(\d*)\s*)?\}")

STRING_MATCH_TYPES = frozenset({
    RuleMatchType.CONTAINS,
    RuleMatchType.STARTS_WITH,
    RuleMatchType.ENDS_WITH,
    RuleMatchType.EXACT,
    RuleMatchType.REGEX,
})
NUMERIC_MATCH_TYPES = frozenset({
    RuleMatchType.GREATER_THAN,
    RuleMatchType.LESS_THAN,
    RuleMatchType.BETWEEN,
})
MERCHANT_AWARE_FIELDS = frozenset({RuleMatchField.DESCRIPTION, RuleMatchField.MERCHANT})


def validate_pattern(pattern: str) -> None:
    if len(pattern) > MAX_PATTERN_LENGTH:
        raise UnsafePatternError(f"pattern longer than {MAX_PATTERN_LENGTH} characters")
    if _LOOKAROUND_RE.search(pattern):
        raise UnsafePatternError("lookaround assertions are not allowed")
    for match in _QUANTIFIER_RE.finditer(pattern):
        bounds = [int(value) for value in match.groups() if value]
        if any(bound >= MAX_QUANTIFIER_BOUND for bound in bounds):
            raise UnsafePatternError(f"quantifier bound {match.group(0)} too large")


@lru_cache(maxsize=512)
def compile_rule_pattern(pattern: str) -> re.Pattern[str]:
    validate_pattern(pattern)
    try:
        return re.compile(pattern, re.IGNORECASE)
    except re.error as exc:
        raise UnsafePatternError(f"invalid pattern: {exc}") from exc


def safe_regex_search(pattern: str, text: str) -> bool:
    try:
        compiled = compile_rule_pattern(pattern)
    except UnsafePatternError as exc:
        logger.debug("Rejected rule pattern %r: %s", pattern, exc)
        return False
    return compiled.search(text) is not None


def get_field_value(tx: ClassifiedTransaction, field: RuleMatchField) -> str | float:
    if field is RuleMatchField.DESCRIPTION:
        return tx.description or ""
    if field is RuleMatchField.MERCHANT:
        return tx.merchant or ""
    if field is RuleMatchField.AMOUNT:
        return tx.amount
    if field is RuleMatchField.SOURCE_TYPE:
        return tx.source_type.value
    if field is RuleMatchField.STATUS:
        return tx.status.value
    return ""


def combined_text(tx: ClassifiedTransaction) -> str:
    return collapse_whitespace(f"{tx.merchant or ''} {tx.description or ''}")


def string_match_candidates(tx: ClassifiedTransaction, field: RuleMatchField) -> list[str]:
    """The merchant+description blob, the raw field value when it differs, and
    the canonical merchant name for description and merchant rules."""
    combined = combined_text(tx)
    field_value = str(get_field_value(tx, field)).strip()
    candidates = []
    if combined:
        candidates.append(combined)
    if field_value and field_value != combined:
        candidates.append(field_value)
    if field in MERCHANT_AWARE_FIELDS:
        normalized = normalize_merchant(tx.merchant, tx.description)
        if normalized.merchant_kind is MerchantKind.NAME and normalized.merchant not in candidates:
            candidates.append(normalized.merchant)
    return candidates


def _parse_bound(raw: str | None) -> float | None:
    if raw is None:
        return None
    try:
        value = float(str(raw).strip())
    except ValueError:
        return None
    return value if value == value else None


def _matches_string(rule: Rule, candidates: list[str]) -> bool:
    needle = rule.match_value.lower()
    match_type = rule.match_type
    if match_type is RuleMatchType.REGEX:
        return any(safe_regex_search(rule.match_value, candidate) for candidate in candidates)
    for candidate in candidates:
        value = candidate.lower()
        if match_type is RuleMatchType.CONTAINS and needle in value:
            return True
        if match_type is RuleMatchType.STARTS_WITH and value.startswith(needle):
            return True
        if match_type is RuleMatchType.ENDS_WITH and value.endswith(needle):
            return True
        if match_type is RuleMatchType.EXACT and value == needle:
            return True
    return False


def _matches_numeric(rule: Rule, amount: float) -> bool:
    low = _parse_bound(rule.match_value)
    if low is None:
        return False
    if rule.match_type is RuleMatchType.GREATER_THAN:
        return amount > low
    if rule.match_type is RuleMatchType.LESS_THAN:
        return amount < low
    secondary = rule.match_value_secondary
    high = low if secondary is None or not str(secondary).strip() else _parse_bound(secondary)
    if high is None:
        return False
    return low <= amount <= high


def matches_rule(tx: ClassifiedTransaction, rule: Rule) -> bool:
    is_amount_field = rule.match_field is RuleMatchField.AMOUNT
    if rule.match_type in STRING_MATCH_TYPES:
        if is_amount_field:
            return False
        return _matches_string(rule, string_match_candidates(tx, rule.match_field))
    if rule.match_type in NUMERIC_MATCH_TYPES:
        if not is_amount_field:
            return False
        return _matches_numeric(rule, tx.amount)
    return False


def get_matching_rules(tx: ClassifiedTransaction, rules: list[Rule]) -> list[RuleAction]:
    actions: list[RuleAction] = []
    for rule in sorted(rules, key=lambda item: item.priority):
        if not rule.enabled:
            continue
        if matches_rule(tx, rule):
            logger.debug("Rule '%s' (%s) matched: '%s'", rule.name or rule.id, rule.match_type.value, tx.description[:50])
            actions.append(RuleAction(
                type=rule.action_type,
                value=rule.action_value,
                rule_id=rule.id,
                rule_name=rule.name,
            ))
    return actions
