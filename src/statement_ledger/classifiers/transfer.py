import re

from statement_ledger.domain.text import normalize_for_match

TRANSFER_PATTERNS = (
    re.compile(r"\boverf(?:o|ø)ring\b", re.IGNORECASE),
    re.compile(r"\btil\s+konto\b", re.IGNORECASE),
    re.compile(r"\bfra\s+konto\b", re.IGNORECASE),
    re.compile(r"\begen\s+konto\b", re.IGNORECASE),
    re.compile(r"\bmellom\s+egne\s+konti\b", re.IGNORECASE),
    re.compile(r"\binnskudd\b", re.IGNORECASE),
    re.compile(r"\butbetaling\s+til\s+egen\s+konto\b", re.IGNORECASE),
    re.compile(r"\btransfer\b", re.IGNORECASE),
    re.compile(r"\bto\s+account\b", re.IGNORECASE),
    re.compile(r"\bfrom\s+account\b", re.IGNORECASE),
    re.compile(r"\binternal\s+transfer\b", re.IGNORECASE),
)

TRANSFER_SIGNALS = (
    "overforing",
    "til konto",
    "fra konto",
    "egen konto",
    "mellom egne konti",
    "internal transfer",
    "to account",
    "from account",
)


def is_straksbetaling_description(description: str | None) -> bool:
    """Instant person-to-person payments. Never a transfer."""
    return "straksbetaling" in normalize_for_match(description)


def is_felleskonto_description(description: str | None) -> bool:
    """Payments into the shared household account. Always spending."""
    return "felleskonto" in normalize_for_match(description)


def detect_is_transfer(description: str | None) -> bool:
    text = (description or "").strip()
    if not text:
        return False
    if is_straksbetaling_description(text) or is_felleskonto_description(text):
        return False
    return any(pattern.search(text) for pattern in TRANSFER_PATTERNS)


def has_transfer_signal(text: str | None) -> bool:
    normalized = normalize_for_match(text)
    return any(signal in normalized for signal in TRANSFER_SIGNALS)
