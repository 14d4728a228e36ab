import re

from statement_ledger.domain.text import collapse_whitespace
from statement_ledger.models import MerchantKind, MerchantNormalizationResult

UNKNOWN_MERCHANT = "Ukjent brukersted"

_CODE_LIKE_RE = re.compile(
    r"^(?:NOK|KR)?[-+]?\d+(?:[.,]\d+)*(?:NOK|KR)?\.?$|^(?:NOK|KR)\.?$"
)
_EMPTY_SEPARATOR_RE = re.compile(r"\s*[-/]{2,}\s*")
_TRAILING_SEPARATOR_RE = re.compile(r"\s+[/-]\s*$")
_RAIL_PREFIX_RE = re.compile(
    r"^(?:visa|giro|girobetaling|e[-\s]?varekj[oø]p|varekj[oø]p|kortkj[oø]p)\s+",
    re.IGNORECASE,
)
_LEADING_CODE_RE = re.compile(r"^\d{3,8}\s+")
_TRAILING_CURRENCY_RE = re.compile(r"\s+(?:NOK|KR)\.?$", re.IGNORECASE)
_LEGAL_SUFFIX_RE = re.compile(r"^(?:as|ab|sa)$", re.IGNORECASE)
_SHORT_CAPS_RE = re.compile(r"^[A-Z0-9.&/:-]+$")

# Web-shop descriptors that should collapse onto one display name.
DOMAIN_CANONICAL_NAMES = (
    (re.compile(r"(?:^|\b)CLASOHLSON(?:\.COM)?(?:/NO)?(?:\b|$)"), "CLAS OHLSON"),
    (re.compile(r"(?:^|\b)CLAS[.\s_-]*OHLSON(?:\b|$)"), "CLAS OHLSON"),
    (re.compile(r"(?:^|\b)ELKJOP(?:\.NO)?(?:\b|$)"), "ELKJOP"),
    (re.compile(r"(?:^|\b)KOMPLETT(?:\.NO)?(?:\b|$)"), "KOMPLETT"),
    (re.compile(r"(?:^|\b)NETFLIX(?:\.COM)?(?:\b|$)"), "NETFLIX"),
    (re.compile(r"(?:^|\b)APPLE\.COM(?:/BILL)?(?:\b|$)"), "APPLE"),
)

_TAX_KEYWORDS = ("skatteetaten", "skatteinnkreving")


def is_code_like(value: str) -> bool:
    compact = re.sub(r"\s+", "", value).upper()
    if not compact:
        return True
    return _CODE_LIKE_RE.match(compact) is not None


def apply_domain_mapping(value: str) -> str:
    upper = value.upper()
    for pattern, canonical in DOMAIN_CANONICAL_NAMES:
        if pattern.search(upper):
            return canonical
    return value


def normalize_token_casing(value: str) -> str:
    """Title-case mixed or lower-case names. All-caps names stay as they are."""
    has_lower = any(char.islower() for char in value)
    has_upper = any(char.isupper() for char in value)
    if has_upper and not has_lower:
        return value

    tokens = []
    for token in value.split(" "):
        if not token or token.isdigit():
            tokens.append(token)
        elif _LEGAL_SUFFIX_RE.match(token):
            tokens.append(token.upper())
        elif len(token) <= 3 and _SHORT_CAPS_RE.match(token):
            tokens.append(token)
        else:
            tokens.append(token[:1].upper() + token[1:].lower())
    return " ".join(tokens)


def cleanup_merchant_candidate(raw: str) -> str:
    candidate = collapse_whitespace(raw)
    candidate = _EMPTY_SEPARATOR_RE.sub(" ", candidate)
    candidate = _TRAILING_SEPARATOR_RE.sub("", candidate).strip()
    candidate = _RAIL_PREFIX_RE.sub("", candidate)
    candidate = _LEADING_CODE_RE.sub("", candidate)
    candidate = _TRAILING_CURRENCY_RE.sub("", candidate).strip()
    candidate = apply_domain_mapping(candidate)
    return collapse_whitespace(candidate)


def _normalize_single(raw: str | None) -> MerchantNormalizationResult:
    merchant_raw = collapse_whitespace(str(raw or ""))
    if not merchant_raw:
        return MerchantNormalizationResult(
            merchant=UNKNOWN_MERCHANT,
            merchant_raw=merchant_raw,
            merchant_kind=MerchantKind.UNKNOWN,
        )
    if is_code_like(merchant_raw):
        return MerchantNormalizationResult(
            merchant=UNKNOWN_MERCHANT,
            merchant_raw=merchant_raw,
            merchant_kind=MerchantKind.CODE,
        )

    candidate = cleanup_merchant_candidate(merchant_raw) or merchant_raw
    if is_code_like(candidate):
        return MerchantNormalizationResult(
            merchant=UNKNOWN_MERCHANT,
            merchant_raw=merchant_raw,
            merchant_kind=MerchantKind.CODE,
        )
    return MerchantNormalizationResult(
        merchant=normalize_token_casing(candidate),
        merchant_raw=merchant_raw,
        merchant_kind=MerchantKind.NAME,
    )


def normalize_merchant(raw: str | None, fallback_raw: str | None = None) -> MerchantNormalizationResult:
    """Canonical display name for a raw merchant or description string.

    When ``raw`` does not yield a name, ``fallback_raw`` (usually the
    transaction description) is normalized once, without a further fallback,
    and used only if it yields a real name.
    """
    primary = _normalize_single(raw)
    if primary.merchant_kind is MerchantKind.NAME or fallback_raw is None:
        return primary

    fallback = _normalize_single(fallback_raw)
    if fallback.merchant_kind is not MerchantKind.NAME:
        return primary
    return MerchantNormalizationResult(
        merchant=fallback.merchant,
        merchant_raw=primary.merchant_raw or fallback.merchant_raw,
        merchant_kind=MerchantKind.NAME,
    )


def merchant_chain_key(merchant_id: str | None, merchant_name: str | None) -> str:
    """Grouping key that folds branch numbers away ("KIWI 505" -> "KIWI")."""
    name = (merchant_name or "").strip()
    if not name or merchant_id:
        return name

    lowered = name.lower()
    if any(keyword in lowered for keyword in _TAX_KEYWORDS):
        return "SKATTEETATEN"

    parts = name.split()
    if len(parts) >= 2 and parts[1].isdigit():
        return parts[0]
    return name
