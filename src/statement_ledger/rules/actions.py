from datetime import datetime

from statement_ledger.classifiers.transfer import is_straksbetaling_description
from statement_ledger.core import settings
from statement_ledger.core.errors import RuleApplicationError
from statement_ledger.domain.tags import merge_tags
from statement_ledger.logger import get_logger
from statement_ledger.models import (
    Rule,
    RuleAction,
    RuleActionType,
    RuleApplication,
    RuleBatchResult,
    StoredTransaction,
    TransactionMeta,
)
from statement_ledger.rules.matching import get_matching_rules
from statement_ledger.store import MetaStore

logger = get_logger(__name__)


def _first_action(actions: list[RuleAction], action_type: RuleActionType) -> RuleAction | None:
    for action in actions:
        if action.type is action_type:
            return action
    return None


def apply_rules_to_transaction(
    tx: StoredTransaction,
    rules: list[Rule],
    store: MetaStore,
    *,
    straksbetaling_category: str | None = None,
) -> RuleApplication:
    """Upsert the metadata implied by the matching rules.

    Per field the highest-precedence rule wins; tags are only ever added.
    Re-running with the same rules leaves the stored record untouched and
    reports ``updated=False``.
    """
    actions = get_matching_rules(tx, rules)
    if not actions:
        return RuleApplication(transaction_id=tx.id)

    existing = store.get(tx.id)
    meta = existing.model_copy(deep=True) if existing else TransactionMeta(transaction_id=tx.id)

    category_action = _first_action(actions, RuleActionType.SET_CATEGORY)
    merchant_action = _first_action(actions, RuleActionType.SET_MERCHANT)
    notes_action = _first_action(actions, RuleActionType.SET_NOTES)
    recurring_action = _first_action(actions, RuleActionType.MARK_RECURRING)
    tag_values = [action.value for action in actions if action.type is RuleActionType.ADD_TAG]

    desired_category = category_action.value if category_action else None
    if is_straksbetaling_description(tx.description):
        desired_category = straksbetaling_category or settings.straksbetaling_category()

    if desired_category is not None:
        meta.category_id = desired_category
    if merchant_action:
        meta.merchant_id = merchant_action.value
    if notes_action:
        meta.notes = notes_action.value
    if recurring_action:
        meta.is_recurring = recurring_action.value == "true"
    if tag_values:
        meta.tags, _ = merge_tags(meta.tags, tag_values)

    updated = existing is None or meta.state() != existing.state()
    if updated:
        meta.updated_at = datetime.now()
        store.save(meta)

    category_candidate = desired_category is not None and (
        existing is None or existing.category_id != desired_category
    )
    return RuleApplication(
        transaction_id=tx.id,
        matched=True,
        updated=updated,
        category_candidate=category_candidate,
        actions=actions,
    )


def apply_rules_to_batch(
    transactions: list[StoredTransaction],
    rules: list[Rule],
    store: MetaStore,
    *,
    straksbetaling_category: str | None = None,
) -> RuleBatchResult:
    result = RuleBatchResult()
    for tx in transactions:
        result.processed += 1
        try:
            application = apply_rules_to_transaction(
                tx, rules, store, straksbetaling_category=straksbetaling_category
            )
        except Exception as exc:
            result.errors += 1
            logger.exception("%s", RuleApplicationError(tx.id, exc))
            continue

        if application.matched:
            result.matched += 1
        if application.updated:
            result.updated += 1
        if application.category_candidate:
            result.category_candidates += 1
    return result
