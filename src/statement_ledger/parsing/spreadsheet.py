"""Lenient cell parsers for spreadsheet statement exports.

Cells arrive as whatever the spreadsheet reader produced: numbers (Excel
serial dates, plain amounts), ``date``/``datetime`` objects or strings.
Every parser returns ``None`` for values it cannot interpret.
"""

import re
from datetime import date, datetime
from typing import Any

from statement_ledger.core.errors import LineParseError
from statement_ledger.core.settings import default_currency
from statement_ledger.domain.dates import date_to_iso, excel_serial_to_iso, parse_day_month_year, parse_iso_date
from statement_ledger.domain.text import collapse_whitespace
from statement_ledger.models import StatementRow

FIVE_COLUMN_HEADERS = ("date", "text", "amount", "balance", "currency")

_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_DOTTED_DATE_RE = re.compile(r"^(\d{1,2})\.(\d{1,2})\.(\d{4})$")
_CURRENCY_RE = re.compile(r"^[A-Z]{3}$")
_CURRENCY_SUFFIX_RE = re.compile(r"\s?(?:kr|nok)$", re.IGNORECASE)
_NUMBER_RE = re.compile(r"^-?\d+(?:\.\d+)?$")

# Serial numbers stored as text are only trusted inside this window (1982-2173).
_SERIAL_TEXT_MIN = 30000
_SERIAL_TEXT_MAX = 100000


def parse_spreadsheet_date(value: Any, *, today: date | None = None) -> str | None:
    try:
        if isinstance(value, bool):
            return None
        if isinstance(value, (int, float)):
            return excel_serial_to_iso(value, today=today)
        if isinstance(value, (date, datetime)):
            return date_to_iso(value, today=today)
        if value is None:
            return None

        text = str(value).strip()
        if not text:
            return None
        try:
            serial = float(text)
        except ValueError:
            serial = None
        if serial is not None and _SERIAL_TEXT_MIN < serial < _SERIAL_TEXT_MAX:
            return excel_serial_to_iso(serial, today=today)
        if _ISO_DATE_RE.match(text):
            return parse_iso_date(text, today=today)
        dotted = _DOTTED_DATE_RE.match(text)
        if dotted:
            day, month, year = dotted.groups()
            return parse_day_month_year(day, month, year, today=today)
    except LineParseError:
        return None
    return None


def parse_spreadsheet_amount(value: Any) -> float | None:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return float(value) if value == value and abs(value) != float("inf") else None

    text = str(value).strip()
    if not text:
        return None
    if _DOTTED_DATE_RE.match(text) or _ISO_DATE_RE.match(text):
        return None

    cleaned = _CURRENCY_SUFFIX_RE.sub("", text).strip().replace("\u2212", "-")
    cleaned = re.sub(r"\s", "", cleaned)
    if "," in cleaned and "." in cleaned:
        # Dot is the thousands separator in Norwegian exports.
        cleaned = cleaned.replace(".", "")
    cleaned = cleaned.replace(",", ".", 1)

    if not _NUMBER_RE.match(cleaned):
        return None
    return float(cleaned)


def is_likely_currency(value: Any) -> bool:
    if not isinstance(value, str):
        return False
    return bool(_CURRENCY_RE.match(value.strip().upper()))


def _row_currency(value: Any) -> str:
    text = str(value or "").strip().upper()
    if text and is_likely_currency(text):
        return text
    return default_currency()


def looks_like_five_column_row(values: list[Any] | tuple[Any, ...], *, today: date | None = None) -> bool:
    """Detect the ``date, text, amount, balance, currency`` export layout."""
    if not isinstance(values, (list, tuple)) or len(values) != 5:
        return False
    row_date, text, amount, balance, currency = values
    if parse_spreadsheet_date(row_date, today=today) is None:
        return False
    if len(str(text or "").strip()) < 2:
        return False
    if parse_spreadsheet_amount(amount) is None or parse_spreadsheet_amount(balance) is None:
        return False
    currency_text = str(currency or "").strip().upper()
    if currency_text and not is_likely_currency(currency_text):
        return False
    return True


def parse_five_column_row(
    values: list[Any] | tuple[Any, ...],
    *,
    today: date | None = None,
) -> StatementRow | None:
    if len(values) != 5:
        return None
    row_date, text, amount, _balance, currency = values

    iso_date = parse_spreadsheet_date(row_date, today=today)
    if iso_date is None:
        return None
    description = collapse_whitespace(str(text or ""))
    if not description:
        return None
    parsed_amount = parse_spreadsheet_amount(amount)
    if parsed_amount is None:
        return None

    raw_row = {key: _json_safe(value) for key, value in zip(FIVE_COLUMN_HEADERS, values)}
    return StatementRow(
        date=iso_date,
        description=description,
        amount=parsed_amount,
        currency=_row_currency(currency),
        context={"raw_row": raw_row},
    )


def _json_safe(value: Any) -> Any:
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value
