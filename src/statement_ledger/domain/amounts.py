import re

from statement_ledger.core.errors import InvalidAmountError

_CURRENCY_SUFFIX_RE = re.compile(r"\s*(?:kr|nok)\.?\s*$", re.IGNORECASE)
_NUMBER_RE = re.compile(r"^[-+]?\d+(?:\.\d+)?$")


def parse_amount(raw: str) -> float:
    """Parse a Norwegian or English formatted amount string.

    Accepts ``-1 234,56``, ``1.234,56``, ``1234.56``, ``250,-`` and a trailing
    ``kr``/``NOK`` unit. Raises InvalidAmountError otherwise.
    """
    value = (raw or "").strip().replace("\u2212", "-")
    value = _CURRENCY_SUFFIX_RE.sub("", value)
    if value.endswith(",-"):
        value = value[:-2]
    value = re.sub(r"\s", "", value)

    has_comma = "," in value
    has_dot = "." in value
    if has_comma and has_dot:
        # The later separator is the decimal mark.
        if value.rfind(",") > value.rfind("."):
            value = value.replace(".", "").replace(",", ".")
        else:
            value = value.replace(",", "")
    elif has_comma:
        value = value.replace(",", ".")
    elif value.count(".") > 1 or re.search(r"\.\d{3}$", value):
        # Dots used as thousands separators: 1.234 or 1.234.567
        value = value.replace(".", "")

    if not _NUMBER_RE.match(value):
        raise InvalidAmountError(f"invalid amount {raw!r}")
    return round(float(value), 2)
