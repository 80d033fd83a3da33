from datetime import date
from decimal import Decimal

import pytest

from finance_tracker.normalizers import (
    clean_description,
    format_amount,
    normalize_text,
    parse_amount,
    parse_date,
    to_title_case,
)


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("2024-12-31", date(2024, 12, 31)),
        ("2024-12-31 0:00:00", date(2024, 12, 31)),
        ("2024-01-05T08:30:00Z", date(2024, 1, 5)),
        ("12/31/2024", date(2024, 12, 31)),
        ("12-31-2024", date(2024, 12, 31)),
        ("3/7/24", date(2024, 3, 7)),
        # two-digit years at or above the pivot land in the 1900s
        ("01/05/75", date(1975, 1, 5)),
        ("01/01/70", date(1970, 1, 1)),
        ("01/01/69", date(2069, 1, 1)),
        ("Dec 31, 2024", date(2024, 12, 31)),
        ("31 Dec 2024", date(2024, 12, 31)),
    ],
)
def test_parse_date_supported_styles(text, expected):
    assert parse_date(text) == expected


@pytest.mark.parametrize(
    "text",
    [None, "", "   ", "2024", "02/30/2024", "2024-13-01", "hello world", "Jan 5, 1985"],
)
def test_parse_date_rejects_unparseable(text):
    assert parse_date(text) is None


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("$1,234.56", Decimal("1234.56")),
        ("-3.20", Decimal("-3.20")),
        ("(1,234.56)", Decimal("-1234.56")),
        ("$(42.00)", Decimal("-42.00")),
        ("45%", Decimal("45")),
        ("12.5 USD", Decimal("12.5")),
        ("", Decimal(0)),
        (None, Decimal(0)),
        ("n/a", Decimal(0)),
    ],
)
def test_parse_amount(text, expected):
    assert parse_amount(text) == expected


def test_parse_amount_parentheses_can_be_disabled():
    assert parse_amount("(12.00)", parentheses_negative=False) == Decimal(0)


def test_format_amount_two_decimals():
    assert format_amount(Decimal("1.005")) == "1.01"
    assert format_amount(Decimal("-3.2")) == "-3.20"
    assert format_amount(Decimal(0)) == "0.00"


def test_clean_description_strips_prefix_reference_and_location():
    assert clean_description("POS DEBIT - STARBUCKS 12345 SEATTLE WA") == "STARBUCKS"
    assert clean_description("Pos Debit STARBUCKS") == "STARBUCKS"
    assert clean_description("ACH Deposit PAYROLL ACME CORP") == "PAYROLL ACME CORP"
    assert clean_description("SHELL OIL SEATTLE WA") == "SHELL OIL"
    assert clean_description('  "Whole   Foods Market."  ') == "Whole Foods Market"


def test_to_title_case_and_normalize_text():
    assert to_title_case("PAYROLL ACME CORP") == "Payroll Acme Corp"
    assert normalize_text("  Hello\tWORLD ") == "hello world"
    assert normalize_text(None) == ""
