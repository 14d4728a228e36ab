from datetime import date, datetime

import pytest

from statement_ledger.parsing.spreadsheet import (
    is_likely_currency,
    looks_like_five_column_row,
    parse_five_column_row,
    parse_spreadsheet_amount,
    parse_spreadsheet_date,
)

TODAY = date(2026, 1, 15)


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        (45292, "2024-01-01"),
        (45292.75, "2024-01-01"),
        ("45292", "2024-01-01"),
        ("2024-03-05", "2024-03-05"),
        ("5.3.2024", "2024-03-05"),
        (datetime(2024, 3, 5, 12, 30), "2024-03-05"),
        (date(2024, 3, 5), "2024-03-05"),
    ],
)
def test_parse_spreadsheet_date(value, expected):
    assert parse_spreadsheet_date(value, today=TODAY) == expected


@pytest.mark.parametrize("value", [None, "", "abc", 0, 200000, "31.02.2024", "1.1.1985", True])
def test_parse_spreadsheet_date_rejects(value):
    assert parse_spreadsheet_date(value, today=TODAY) is None


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        (12, 12.0),
        (-245.5, -245.5),
        ("1.234,56", 1234.56),
        ("-245,50 kr", -245.5),
        ("1 000 NOK", 1000.0),
        ("\u2212 99,90", -99.9),
    ],
)
def test_parse_spreadsheet_amount(value, expected):
    assert parse_spreadsheet_amount(value) == expected


@pytest.mark.parametrize("value", [None, "", "abc", "05.01.2026", "2026-01-05", True])
def test_parse_spreadsheet_amount_rejects(value):
    assert parse_spreadsheet_amount(value) is None


def test_is_likely_currency():
    assert is_likely_currency("nok")
    assert is_likely_currency(" EUR ")
    assert not is_likely_currency("NOKK")
    assert not is_likely_currency(578)


def test_five_column_row_detection():
    row = ["05.01.2026", "KIWI 505 STORO", "-245,50", "10 000,00", "NOK"]
    assert looks_like_five_column_row(row, today=TODAY)
    assert not looks_like_five_column_row(row[:4], today=TODAY)
    assert not looks_like_five_column_row(["05.01.2026", "K", "-245,50", "0", "NOK"], today=TODAY)
    assert not looks_like_five_column_row(["05.01.2026", "KIWI", "-245,50", "0", "KRONER"], today=TODAY)
    assert looks_like_five_column_row(["05.01.2026", "KIWI", -245.5, 0, ""], today=TODAY)


def test_parse_five_column_row():
    row = parse_five_column_row(
        [46027, "  KIWI   505 STORO ", "-245,50", "10 000,00", "nok"],
        today=TODAY,
    )
    assert row is not None
    assert row.date == "2026-01-05"
    assert row.description == "KIWI 505 STORO"
    assert row.amount == -245.5
    assert row.currency == "NOK"
    assert row.context["raw_row"]["balance"] == "10 000,00"


def test_parse_five_column_row_rejects_missing_parts():
    assert parse_five_column_row(["", "KIWI", "-1", "0", "NOK"], today=TODAY) is None
    assert parse_five_column_row(["05.01.2026", "  ", "-1", "0", "NOK"], today=TODAY) is None
    assert parse_five_column_row(["05.01.2026", "KIWI", "n/a", "0", "NOK"], today=TODAY) is None
