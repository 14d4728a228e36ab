"""Statement text parser.

Turns the pre-extracted text of a bank/card statement document into
transaction candidates plus a ledger explaining every line that was not a
transaction. Only a document without any section marker is an error; every
line-level problem is recorded as a :class:`SkipRecord`.
"""

import json
import re
from dataclasses import dataclass
from datetime import date

from statement_ledger.core.errors import InvalidAmountError, LineParseError, UnrecognizedFormatError
from statement_ledger.domain.amounts import parse_amount
from statement_ledger.domain.dates import MIN_YEAR, max_year, parse_day_month_year
from statement_ledger.domain.text import collapse_whitespace
from statement_ledger.logger import get_logger
from statement_ledger.models import (
    ParsedTransactionCandidate,
    ParseResult,
    ParseStats,
    SkipReason,
    SkipRecord,
    TransactionStatus,
)

logger = get_logger(__name__)

_PENDING_MARKERS = ("reservasjon",)
_BOOKED_LINE_MARKERS = ("kontobevegelse", "transaksjoner", "bevegelser")
# Some banks only print running balances ("saldo") instead of a booked header.
_BOOKED_DOCUMENT_MARKERS = _BOOKED_LINE_MARKERS + ("saldo",)

MIN_PHYSICAL_LINES = 5
MAX_WRAP_CONTINUATIONS = 2
SKIPPED_LINE_PREVIEW = 100

_DATE_RE = re.compile(r"(?<!\d)(\d{2})([.\-/])(\d{2})\2(\d{4}|\d{2})(?!\d)")
_LEADING_DATE_RE = re.compile(r"^\d{2}([.\-/])\d{2}\1(?:\d{4}|\d{2})(?!\d)")
_LEADING_DATES_RE = re.compile(r"^(?:\d{2}([.\-/])\d{2}\1(?:\d{4}|\d{2})(?!\d)\s*)+")
_FOUR_DIGIT_RE = re.compile(r"(?<!\d)\d{4}(?!\d)")

_SIGN = r"[-+\u2212]?"
_GROUPED = r"\d{1,3}(?:[ \u00a0.]\d{3})+"
_AMOUNT = _SIGN + r"(?:\d{1,3}(?:,\d{3})+\.\d{1,2}|(?:" + _GROUPED + r"|\d+)(?:[.,]\d{1,2})?)"
_COMMA_DECIMAL = _SIGN + r"(?:" + _GROUPED + r"|\d+),\d{2}"
_DOT_DECIMAL = _SIGN + r"(?:\d{1,3}(?:,\d{3})+|\d+)\.\d{2}"
_INTEGER = _SIGN + r"(?:\d{1,3}(?:[ \u00a0]\d{3})+|\d+)"
_SUFFIX = r"(?:\s*(?:kr|nok)\.?|,-)?\s*$"

_TRAILING_AMOUNT_RE = re.compile(
    r"(?<![\w.,])(?P<amount>" + _AMOUNT + r")" + _SUFFIX,
    re.IGNORECASE,
)
_DECIMAL_TOKEN_RE = re.compile(
    r"(?<![\w.,])" + _SIGN + r"(?:" + _GROUPED + r"|\d+)[.,]\d{2}(?![\d.,])"
)

_DMY4 = r"(?P<d>\d{2}){sep}(?P<m>\d{2}){sep}(?P<y>\d{4})"
_DESC = r"\s+(?P<desc>.+?)\s+"


def _pattern(date_part: str, amount: str, suffix: str = _SUFFIX) -> re.Pattern[str]:
    return re.compile(r"^" + date_part + _DESC + r"(?P<amount>" + amount + r")" + suffix, re.IGNORECASE)


# Most specific first.
TRANSACTION_PATTERNS: tuple[tuple[str, re.Pattern[str]], ...] = (
    (
        "two_dates",
        re.compile(
            r"^(?P<d>\d{2})[.\-/](?P<m>\d{2})[.\-/](?P<y>\d{4}|\d{2})\s+"
            r"(?P<d2>\d{2})[.\-/](?P<m2>\d{2})[.\-/](?P<y2>\d{4}|\d{2})"
            + _DESC + r"(?P<amount>" + _AMOUNT + r")" + _SUFFIX,
            re.IGNORECASE,
        ),
    ),
    ("standard", _pattern(_DMY4.replace("{sep}", r"\."), _COMMA_DECIMAL, r"\s*$")),
    ("kr_suffix", _pattern(_DMY4.replace("{sep}", r"\."), _AMOUNT, r"\s*(?:kr|nok)\.?\s*$")),
    ("short_year", _pattern(r"(?P<d>\d{2})\.(?P<m>\d{2})\.(?P<y>\d{2})", _AMOUNT)),
    ("dashed", _pattern(_DMY4.replace("{sep}", "-"), _AMOUNT)),
    ("slashed", _pattern(_DMY4.replace("{sep}", "/"), _AMOUNT)),
    ("dot_decimal", _pattern(_DMY4.replace("{sep}", r"\."), _DOT_DECIMAL, r"\s*$")),
    ("integer", _pattern(_DMY4.replace("{sep}", r"\."), _INTEGER, r"(?:,-)?\s*$")),
)

HEADER_PATTERNS = (
    re.compile(r"^dato\s+", re.IGNORECASE),
    re.compile(r"^date\s+description", re.IGNORECASE),
    re.compile(r"^beskrivelse\s+", re.IGNORECASE),
    re.compile(r"^beløp\s*$", re.IGNORECASE),
    re.compile(r"^inn\s+ut", re.IGNORECASE),
    re.compile(r"^transaksjonsdato", re.IGNORECASE),
    re.compile(r"^bokførings?dato", re.IGNORECASE),
    re.compile(r"^konto.*?saldo", re.IGNORECASE),
)

PAGE_NUMBER_PATTERNS = (
    re.compile(r"^side\s+\d+\s*(?:av\s+\d+)?$", re.IGNORECASE),
    re.compile(r"^\d+\s*(?:av|of)\s+\d+$", re.IGNORECASE),
    re.compile(r"^page\s+\d+(?:\s+of\s+\d+)?$", re.IGNORECASE),
)

EXCLUDED_PATTERNS = (
    re.compile(r"^(?:saldo|balance|sum|totalt?)\s*:?\s*[+\-]?[\d\s,.]+$", re.IGNORECASE),
    re.compile(r"^utgående\s+saldo", re.IGNORECASE),
    re.compile(r"^inngående\s+saldo", re.IGNORECASE),
    re.compile(r"^periode[:\s]", re.IGNORECASE),
    re.compile(r"^kontonummer", re.IGNORECASE),
    re.compile(r"^bank\s*statement", re.IGNORECASE),
    re.compile(r"^kontoutskrift", re.IGNORECASE),
    re.compile(r"^\d{4}\.\d{2}\.\d{5}$"),
)


@dataclass(frozen=True)
class LineMatch:
    date: str
    description: str
    amount: float
    pattern: str


def has_section_markers(text: str) -> bool:
    lowered = text.lower()
    return any(marker in lowered for marker in _PENDING_MARKERS + _BOOKED_DOCUMENT_MARKERS)


def _starts_with_date(line: str) -> bool:
    return _LEADING_DATE_RE.match(line) is not None


def section_status(line: str) -> TransactionStatus | None:
    """Return the status a section marker line switches to, or None."""
    if _starts_with_date(line):
        return None
    lowered = line.lower()
    if any(marker in lowered for marker in _PENDING_MARKERS):
        return TransactionStatus.PENDING
    if any(marker in lowered for marker in _BOOKED_LINE_MARKERS):
        return TransactionStatus.BOOKED
    return None


def _matches_any(line: str, patterns: tuple[re.Pattern[str], ...]) -> bool:
    return any(pattern.search(line) for pattern in patterns)


def _is_noise_line(line: str) -> bool:
    return (
        _matches_any(line, HEADER_PATTERNS)
        or _matches_any(line, PAGE_NUMBER_PATTERNS)
        or _matches_any(line, EXCLUDED_PATTERNS)
    )


def _has_trailing_amount(line: str) -> bool:
    return _TRAILING_AMOUNT_RE.search(line) is not None


def _is_year_like(token: str, today: date | None) -> bool:
    return token.isdigit() and len(token) == 4 and MIN_YEAR <= int(token) <= max_year(today)


def _first_valid_date(line: str, today: date | None) -> tuple[str, re.Match[str]] | None:
    for match in _DATE_RE.finditer(line):
        day, _, month, year = match.groups()
        try:
            return parse_day_month_year(day, month, year, today=today), match
        except LineParseError:
            continue
    return None


def _split_on_date_boundaries(text: str) -> list[str]:
    """Split run-together text before each date that starts a new record.

    A date directly following another date (transaction + booking date) stays
    attached to it.
    """
    cuts: list[int] = []
    previous_end: int | None = None
    for match in _DATE_RE.finditer(text):
        between = text[previous_end:match.start()] if previous_end is not None else None
        if between is None or between.strip():
            cuts.append(match.start())
        previous_end = match.end()

    chunks: list[str] = []
    start = 0
    for cut in cuts:
        chunks.append(text[start:cut])
        start = cut
    chunks.append(text[start:])
    return [re.sub(r"\s*\n\s*", " ", chunk).strip() for chunk in chunks if chunk.strip()]


def split_lines(text: str) -> list[tuple[int, str]]:
    """Return ``(line_number, line)`` pairs for non-empty lines."""
    physical = [
        (number, line.strip())
        for number, line in enumerate(re.split(r"\r?\n|\r", text), start=1)
        if line.strip()
    ]
    if len(physical) >= MIN_PHYSICAL_LINES:
        return physical

    chunks = _split_on_date_boundaries(text)
    if len(chunks) > len(physical):
        logger.debug(
            "[PARSER] Only %s physical lines; split into %s chunks on date boundaries.",
            len(physical),
            len(chunks),
        )
        return list(enumerate(chunks, start=1))
    return physical


def merge_wrapped_lines(lines: list[tuple[int, str]]) -> tuple[list[tuple[int, str]], int]:
    """Join soft-wrapped transaction lines.

    A line that starts with a date but has no amount absorbs the following
    lines until an amount shows up or a new record boundary is reached.
    Returns the logical lines and the number of absorbed continuation lines.
    """
    logical: list[tuple[int, str]] = []
    merged_count = 0
    buffer: tuple[int, str] | None = None
    buffered_parts = 0

    def starts_record(line: str) -> bool:
        return _starts_with_date(line) and not _has_trailing_amount(line)

    for number, line in lines:
        if buffer is not None:
            is_boundary = (
                _starts_with_date(line)
                or section_status(line) is not None
                or _is_noise_line(line)
            )
            if not is_boundary and buffered_parts < MAX_WRAP_CONTINUATIONS:
                candidate = f"{buffer[1]} {line}"
                merged_count += 1
                if _has_trailing_amount(candidate):
                    logical.append((buffer[0], candidate))
                    buffer = None
                else:
                    buffer = (buffer[0], candidate)
                    buffered_parts += 1
                continue
            logical.append(buffer)
            buffer = None

        if starts_record(line):
            buffer = (number, line)
            buffered_parts = 0
            continue
        logical.append((number, line))

    if buffer is not None:
        logical.append(buffer)
    return logical, merged_count


def _strip_incidental_year(line: str, today: date | None) -> str:
    trailing = _TRAILING_AMOUNT_RE.search(line)
    if trailing is None or not _is_year_like(trailing.group("amount"), today):
        return line
    decimals = [m for m in _DECIMAL_TOKEN_RE.finditer(line) if m.end() <= trailing.start()]
    if not decimals:
        return line
    return line[:trailing.start()].rstrip()


def _is_ambiguous_integer_line(line: str) -> bool:
    """No decimal token, a bare 4-digit trailing token, and a rival 4-digit token."""
    if _DECIMAL_TOKEN_RE.search(line):
        return False
    trailing = _TRAILING_AMOUNT_RE.search(line)
    if trailing is None:
        return False
    token = trailing.group("amount")
    if not (token.isdigit() and len(token) == 4):
        return False
    leading = _LEADING_DATE_RE.match(line)
    rest = line[leading.end():] if leading else line
    return len(_FOUR_DIGIT_RE.findall(rest)) >= 2


def _clean_description(raw: str) -> str:
    return collapse_whitespace(_LEADING_DATES_RE.sub("", raw.strip()))


def _match_patterns(line: str, today: date | None) -> LineMatch | None:
    for name, pattern in TRANSACTION_PATTERNS:
        match = pattern.search(line)
        if not match:
            continue
        parts = match.groupdict()
        date_candidates = [(parts["d"], parts["m"], parts["y"])]
        if parts.get("d2"):
            date_candidates.append((parts["d2"], parts["m2"], parts["y2"]))

        iso_date = None
        for day, month, year in date_candidates:
            try:
                iso_date = parse_day_month_year(day, month, year, today=today)
                break
            except LineParseError:
                continue
        if iso_date is None:
            continue

        description = _clean_description(parts["desc"])
        if not description:
            continue
        try:
            amount = parse_amount(parts["amount"])
        except InvalidAmountError:
            continue
        return LineMatch(date=iso_date, description=description, amount=amount, pattern=name)
    return None


def _scan_free_form(line: str, today: date | None) -> LineMatch | None:
    found = _first_valid_date(line, today)
    if found is None:
        return None
    iso_date, date_match = found

    amount_match = _TRAILING_AMOUNT_RE.search(line, date_match.end())
    if amount_match is None:
        return None
    description = _clean_description(line[date_match.end():amount_match.start()])
    if not description:
        return None
    try:
        amount = parse_amount(amount_match.group("amount"))
    except InvalidAmountError:
        return None
    return LineMatch(date=iso_date, description=description, amount=amount, pattern="free_form")


def parse_transaction_line(line: str, *, today: date | None = None) -> LineMatch | None:
    """Parse one logical line, or return None when it is not a transaction."""
    candidate = _strip_incidental_year(line.strip(), today)
    if _is_ambiguous_integer_line(candidate):
        logger.debug("[PARSER] Ambiguous numeric tokens, dropping line: %s", candidate[:SKIPPED_LINE_PREVIEW])
        return None
    return _match_patterns(candidate, today) or _scan_free_form(candidate, today)


def classify_skipped_line(line: str, *, today: date | None = None) -> SkipReason:
    trimmed = line.strip()
    if not trimmed:
        return SkipReason.EMPTY
    if _matches_any(trimmed, HEADER_PATTERNS):
        return SkipReason.HEADER
    if _matches_any(trimmed, PAGE_NUMBER_PATTERNS):
        return SkipReason.PAGE_NUMBER
    if _matches_any(trimmed, EXCLUDED_PATTERNS):
        return SkipReason.EXCLUDED_PATTERN
    if _first_valid_date(trimmed, today) is None:
        return SkipReason.NO_DATE
    if not _has_trailing_amount(trimmed):
        return SkipReason.NO_AMOUNT
    return SkipReason.PARSE_FAILED


def parse_statement_text(text: str, *, today: date | None = None) -> ParseResult:
    if not has_section_markers(text or ""):
        raise UnrecognizedFormatError()

    physical = split_lines(text)
    lines, merged_count = merge_wrapped_lines(physical)

    transactions: list[ParsedTransactionCandidate] = []
    skipped: list[SkipRecord] = []
    current_status = TransactionStatus.BOOKED
    date_containing_lines = 0

    for line_number, line in lines:
        status = section_status(line)
        if status is not None:
            current_status = status
            skipped.append(SkipRecord(
                line=line[:SKIPPED_LINE_PREVIEW],
                reason=SkipReason.SECTION_MARKER,
                line_number=line_number,
            ))
            continue

        if _DATE_RE.search(line):
            date_containing_lines += 1

        parsed = parse_transaction_line(line, today=today)
        if parsed:
            logger.debug("[PARSER] Line %s matched '%s' pattern.", line_number, parsed.pattern)
            transactions.append(ParsedTransactionCandidate(
                date=parsed.date,
                description=parsed.description,
                amount=parsed.amount,
                status=current_status,
                raw_line=line,
            ))
            continue

        reason = classify_skipped_line(line, today=today)
        if reason is not SkipReason.EMPTY:
            skipped.append(SkipRecord(
                line=line[:SKIPPED_LINE_PREVIEW],
                reason=reason,
                line_number=line_number,
            ))

    result = ParseResult(
        transactions=transactions,
        skipped_lines=skipped,
        stats=ParseStats(
            total_lines=len(physical),
            parsed_count=len(transactions),
            date_containing_lines=date_containing_lines,
            skipped_count=len(skipped),
            merged_lines=merged_count,
        ),
    )
    logger.info("[PARSER] Skipped line summary: %s", json.dumps(result.skipped_summary(), sort_keys=True))
    return result
