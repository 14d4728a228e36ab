import re
import unicodedata

_WHITESPACE_RE = re.compile(r"\s+")
_COMBINING_RE = re.compile(r"[\u0300-\u036f]")

# NFKD does not decompose the Norwegian letters into ASCII.
_NORDIC_FOLD = str.maketrans({"ø": "o", "æ": "ae", "å": "a"})


def collapse_whitespace(value: str | None) -> str:
    return _WHITESPACE_RE.sub(" ", (value or "").replace("\u00a0", " ")).strip()


def normalize_for_match(value: str | None) -> str:
    """Lower-case, accent-folded, single-spaced text for keyword matching."""
    if not value:
        return ""
    lowered = value.lower().translate(_NORDIC_FOLD)
    decomposed = unicodedata.normalize("NFKD", lowered)
    return collapse_whitespace(_COMBINING_RE.sub("", decomposed))
