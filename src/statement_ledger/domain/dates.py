from datetime import date, datetime, timedelta

from statement_ledger.core.errors import InvalidDateError

MIN_YEAR = 1990

# Excel's day 1 is 1900-01-01 and it counts a 1900-02-29 that never existed.
_EXCEL_EPOCH = date(1899, 12, 31)
_EXCEL_FAKE_LEAP_DAY = 60


def max_year(today: date | None = None) -> int:
    return (today or date.today()).year + 1


def expand_year(year: str) -> int:
    value = int(year)
    if len(year) == 2:
        return 1900 + value if value > 50 else 2000 + value
    return value


def parse_day_month_year(day: str, month: str, year: str, *, today: date | None = None) -> str:
    """Build an ISO date from statement date parts.

    Raises InvalidDateError for impossible calendar values and for years
    outside [MIN_YEAR, current year + 1]. Nothing is clamped.
    """
    try:
        full_year = expand_year(year)
        parsed = date(full_year, int(month), int(day))
    except ValueError as exc:
        raise InvalidDateError(f"invalid date {day}.{month}.{year}") from exc
    if not MIN_YEAR <= parsed.year <= max_year(today):
        raise InvalidDateError(f"year {parsed.year} out of range")
    return parsed.isoformat()


def parse_iso_date(value: str, *, today: date | None = None) -> str:
    try:
        parsed = date.fromisoformat(value.strip()[:10])
    except ValueError as exc:
        raise InvalidDateError(f"invalid ISO date {value!r}") from exc
    if not MIN_YEAR <= parsed.year <= max_year(today):
        raise InvalidDateError(f"year {parsed.year} out of range")
    return parsed.isoformat()


def excel_serial_to_iso(serial: float, *, today: date | None = None) -> str:
    if serial < 1 or serial > 100000:
        raise InvalidDateError(f"excel serial {serial} out of range")
    days = int(serial)
    if days > _EXCEL_FAKE_LEAP_DAY:
        days -= 1
    parsed = _EXCEL_EPOCH + timedelta(days=days)
    if not MIN_YEAR <= parsed.year <= max_year(today):
        raise InvalidDateError(f"year {parsed.year} out of range")
    return parsed.isoformat()


def date_to_iso(value: date | datetime, *, today: date | None = None) -> str:
    if isinstance(value, datetime):
        value = value.date()
    if not MIN_YEAR <= value.year <= max_year(today):
        raise InvalidDateError(f"year {value.year} out of range")
    return value.isoformat()


def format_duration(seconds: float) -> str:
    if seconds <= 0:
        return "0 ms"
    if seconds < 1:
        return f"{seconds * 1000:.1f} ms"
    if seconds < 60:
        return f"{seconds:.2f} s"
    return f"{seconds / 60:.2f} min"
