import re
from collections.abc import Mapping
from typing import Any

from statement_ledger.classifiers.base import FlowContext, FlowSignal
from statement_ledger.classifiers.sections import (
    extract_section_label,
    is_payment_like_row,
    is_purchase_section,
    is_refund_like,
)
from statement_ledger.classifiers.transfer import (
    detect_is_transfer,
    has_transfer_signal,
    is_felleskonto_description,
    is_straksbetaling_description,
)
from statement_ledger.domain.text import normalize_for_match
from statement_ledger.logger import get_logger
from statement_ledger.models import FlowClassification, FlowType, SignAdjustment, SourceType

logger = get_logger(__name__)

INCOME_KEYWORDS = (
    "salary",
    "payroll",
    "utbytte",
    "dividend",
    "interest",
    "utbetaling",
    "pensjon",
    "trygd",
    "refund",
    "tilbakebetaling",
)
# Short stems that would otherwise hit inside unrelated words ("navn", "parenteser").
INCOME_WORD_PATTERNS = (
    re.compile(r"\blonn"),
    re.compile(r"\brente"),
    re.compile(r"\bnav\b"),
)

PURCHASE_MARKERS = ("kortkjop", "bankax", "visa")
KNOWN_MERCHANTS = (
    "sats",
    "google",
    "apple",
    "spotify",
    "netflix",
    "wolt",
    "foodora",
    "narvesen",
    "xxl",
    "cutters",
    "skatteetaten",
    "rema",
    "kiwi",
    "meny",
    "coop",
    "spar",
    "joker",
    "vinmonopolet",
    "shell",
)

_LETTER_RE = re.compile(r"[^\W\d_]")


def looks_like_income(description: str | None) -> bool:
    text = normalize_for_match(description)
    if any(keyword in text for keyword in INCOME_KEYWORDS):
        return True
    return any(pattern.search(text) for pattern in INCOME_WORD_PATTERNS)


def looks_like_transfer(description: str | None, section_label: str | None) -> bool:
    if is_felleskonto_description(description) or is_straksbetaling_description(description):
        return False
    if has_transfer_signal(description) or has_transfer_signal(section_label):
        return True
    if detect_is_transfer(description):
        return True
    return is_payment_like_row(description, section_label)


def looks_like_purchase(description: str | None) -> bool:
    text = normalize_for_match(description)
    if not text:
        return False
    if any(marker in text for marker in PURCHASE_MARKERS):
        return True
    if text.startswith("vipps"):
        return True
    if any(merchant in text for merchant in KNOWN_MERCHANTS):
        return True
    # "GOOGLE *YouTube" style card descriptors
    return "*" in (description or "") and not looks_like_income(description)


def looks_like_merchant_label(description: str | None) -> bool:
    trimmed = (description or "").strip()
    if not trimmed or not _LETTER_RE.search(trimmed):
        return False
    text = normalize_for_match(trimmed)
    if text.startswith("innbetaling") or text.startswith("utbetaling"):
        return False
    if "overforing" in text or "til konto" in text or "fra konto" in text:
        return False
    return True


class PolicyOverrideSignal(FlowSignal):
    def evaluate(self, ctx: FlowContext) -> FlowClassification | None:
        if is_straksbetaling_description(ctx.description):
            if ctx.amount > 0:
                return self.decide(ctx, FlowType.INCOME, "straksbetaling-positive")
            return self.decide(ctx, FlowType.EXPENSE, "straksbetaling-nonpositive")
        if is_felleskonto_description(ctx.description):
            return self.decide(ctx, FlowType.EXPENSE, "felleskonto-expense")
        return None


class TransferSignal(FlowSignal):
    def evaluate(self, ctx: FlowContext) -> FlowClassification | None:
        if looks_like_transfer(ctx.description, ctx.section_label):
            return self.decide(ctx, FlowType.TRANSFER, "transfer-signals")
        return None


class PurchaseSectionSignal(FlowSignal):
    def evaluate(self, ctx: FlowContext) -> FlowClassification | None:
        if is_purchase_section(ctx.section_label):
            return self.decide(ctx, FlowType.EXPENSE, "xlsx-section-purchase")
        return None


class RefundSignal(FlowSignal):
    def evaluate(self, ctx: FlowContext) -> FlowClassification | None:
        if ctx.amount > 0 and is_refund_like(ctx.description):
            return self.decide(ctx, FlowType.INCOME, "refund-positive")
        return None


class IncomeKeywordSignal(FlowSignal):
    def evaluate(self, ctx: FlowContext) -> FlowClassification | None:
        if looks_like_income(ctx.description):
            return self.decide(ctx, FlowType.INCOME, "income-keywords")
        return None


class PurchaseSignal(FlowSignal):
    def evaluate(self, ctx: FlowContext) -> FlowClassification | None:
        if looks_like_purchase(ctx.description) and not looks_like_income(ctx.description):
            return self.decide(ctx, FlowType.EXPENSE, "purchase-like")
        return None


class MerchantLabelSignal(FlowSignal):
    def evaluate(self, ctx: FlowContext) -> FlowClassification | None:
        if (
            ctx.amount > 0
            and looks_like_merchant_label(ctx.description)
            and not looks_like_income(ctx.description)
        ):
            return self.decide(ctx, FlowType.EXPENSE, "merchantish-positive")
        return None


class NegativeAmountSignal(FlowSignal):
    def evaluate(self, ctx: FlowContext) -> FlowClassification | None:
        if ctx.amount < 0:
            return self.decide(ctx, FlowType.EXPENSE, "fallback-negative")
        return None


class FlowClassifier:
    def __init__(self, signals: list[FlowSignal] | None = None):
        self.signals: list[FlowSignal] = signals if signals is not None else [
            PolicyOverrideSignal(),
            TransferSignal(),
            PurchaseSectionSignal(),
            RefundSignal(),
            IncomeKeywordSignal(),
            PurchaseSignal(),
            MerchantLabelSignal(),
            NegativeAmountSignal(),
        ]

    def classify(self, ctx: FlowContext) -> FlowClassification:
        for signal in self.signals:
            result = signal.evaluate(ctx)
            if result:
                logger.debug(
                    "%s decided %s (%s) for: '%s'",
                    signal.__class__.__name__,
                    result.flow_type.value,
                    result.reason,
                    ctx.description[:50],
                )
                return result
        return FlowSignal.decide(ctx, FlowType.UNKNOWN, "unknown")


_default_classifier = FlowClassifier()


def classify_flow_type(
    source_type: SourceType | str,
    description: str,
    amount: float,
    context: str | Mapping[str, Any] | None = None,
) -> FlowClassification:
    ctx = FlowContext(
        source_type=SourceType(source_type),
        description=description or "",
        amount=amount,
        section_label=extract_section_label(context),
    )
    return _default_classifier.classify(ctx)


def normalize_amount_and_flags(flow_type: FlowType | str, amount: float) -> SignAdjustment:
    flow = FlowType(flow_type)
    if flow is FlowType.EXPENSE:
        return SignAdjustment(amount=-abs(amount))
    if flow is FlowType.INCOME:
        return SignAdjustment(amount=abs(amount))
    if flow is FlowType.TRANSFER:
        return SignAdjustment(amount=amount, is_transfer=True, is_excluded=True)
    return SignAdjustment(amount=amount)
