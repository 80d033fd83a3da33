"""Cell-level normalizers shared by every import path.

- ``parse_date``: cascading detector for the date styles bank and affiliate
  exports actually use (ISO, US month-first with dashes or slashes and a
  two-digit-year pivot at 70, then month-name text).
- ``parse_amount``: currency/percent/grouping-tolerant number parsing with
  optional accounting-parentheses negation. Unparseable input yields ``0``.
- ``clean_description`` / ``to_title_case``: statement description cleanup.
- ``normalize_text``: the comparison key used by rule matching and duplicate
  detection (NFKC, collapsed whitespace, case-folded).

None of these raise on malformed input; callers decide what a ``None`` date
or a zero amount means for their row.
"""

from __future__ import annotations

import re
import unicodedata
from datetime import date
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from dateutil import parser as dateutil_parser

# ---------------------------------------------------------------------------
# Dates
# ---------------------------------------------------------------------------

_ISO_RE = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})$")
_MDY_DASH_RE = re.compile(r"^(\d{1,2})-(\d{1,2})-(\d{2,4})$")
_MDY_SLASH_RE = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{2,4})$")
_TEXTUAL_RES = (
    re.compile(r"[a-zA-Z]{3,}\s+\d{1,2},?\s+\d{4}"),  # Dec 31, 2024
    re.compile(r"\d{1,2}\s+[a-zA-Z]{3,}\s+\d{4}"),  # 31 Dec 2024
)
_TOKEN_SPLIT_RE = re.compile(r"\s+|T")

# Two-digit years below the pivot land in the 2000s, the rest in the 1900s.
_YEAR_PIVOT = 70
_TEXTUAL_MIN_YEAR = 1990
_TEXTUAL_MAX_YEAR = 2050


def _expand_year(year: int) -> int:
    if year < 100:
        return year + (2000 if year < _YEAR_PIVOT else 1900)
    return year


def _safe_date(year: int, month: int, day: int) -> date | None:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def parse_date(text: str | None) -> date | None:
    """Parse a statement date cell; return ``None`` when nothing fits.

    Only the first whitespace/``T``-separated token is considered for the
    numeric formats, so ``"2024-12-31 0:00:00"`` and ISO timestamps work.
    Impossible calendar dates (``02/30/2024``) are rejected rather than rolled
    over. The textual fallback only runs when the whole cell looks like a
    month-name date, and only accepts years strictly between 1990 and 2050.
    """

    if not text:
        return None
    raw = text.strip()
    if len(raw) < 5:
        return None
    token = _TOKEN_SPLIT_RE.split(raw, maxsplit=1)[0]

    m = _ISO_RE.match(token)
    if m:
        parsed = _safe_date(int(m.group(1)), int(m.group(2)), int(m.group(3)))
        if parsed is not None:
            return parsed

    for pattern in (_MDY_DASH_RE, _MDY_SLASH_RE):
        m = pattern.match(token)
        if m:
            year = _expand_year(int(m.group(3)))
            parsed = _safe_date(year, int(m.group(1)), int(m.group(2)))
            if parsed is not None:
                return parsed

    if any(p.search(raw) for p in _TEXTUAL_RES):
        try:
            dt = dateutil_parser.parse(raw, fuzzy=True)
        except (ValueError, OverflowError):
            return None
        if _TEXTUAL_MIN_YEAR < dt.year < _TEXTUAL_MAX_YEAR:
            return dt.date()
    return None


# ---------------------------------------------------------------------------
# Amounts
# ---------------------------------------------------------------------------

_STRIP_RE = re.compile(r"[$,%\s]")
_LEADING_NUMBER_RE = re.compile(r"^[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")
_ZERO = Decimal(0)


def _leading_decimal(s: str) -> Decimal | None:
    m = _LEADING_NUMBER_RE.match(s)
    if not m:
        return None
    try:
        return Decimal(m.group(0))
    except InvalidOperation:
        return None


def parse_amount(text: str | None, *, parentheses_negative: bool = True) -> Decimal:
    """Parse a money/number cell into a ``Decimal``.

    ``$``, ``,``, ``%`` and whitespace are stripped first. With
    ``parentheses_negative`` a value wrapped in parentheses is negated, so
    ``"$(1,234.56)"`` becomes ``-1234.56``. Trailing garbage after a leading
    number is ignored (``"12.5 USD"`` -> ``12.5``). Empty or unparseable input
    yields ``0``.
    """

    if not text:
        return _ZERO
    s = _STRIP_RE.sub("", text)
    if not s:
        return _ZERO
    if parentheses_negative and s.startswith("(") and s.endswith(")"):
        inner = _leading_decimal(s.replace("(", "").replace(")", ""))
        return -inner if inner is not None else _ZERO
    value = _leading_decimal(s)
    return value if value is not None else _ZERO


def format_amount(d: Decimal) -> str:
    """Exactly two decimals, ASCII dot, leading minus for negatives."""

    q = d.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    return f"{q:.2f}"


# ---------------------------------------------------------------------------
# Descriptions
# ---------------------------------------------------------------------------

_TELLER_PREFIX_RE = re.compile(
    r"^(?:Pos Debit|Debit Purchase|Recurring Payment|Preauthorized Debit|Checkcard"
    r"|Visa Purchase|ACH Withdrawal|ACH Deposit|Paper Payment to|Withdrawal from"
    r"|Deposit from)(?: - | )",
    re.IGNORECASE,
)
_TRAILER_RES = (
    re.compile(r"PAYMENTS ID NBR:.*$", re.IGNORECASE),
    re.compile(r"ID NBR:.*$", re.IGNORECASE),
    re.compile(r"EDI PYMNTS.*$", re.IGNORECASE),
    re.compile(r"ACH ITEMS.*$", re.IGNORECASE),
    # long reference numbers and everything after them
    re.compile(r" \d{5,}.*$"),
    # trailing "CITY ST" location suffix (upper-case only)
    re.compile(r"\s+[A-Z]{2,}\s+[A-Z]{2}$"),
)
_SURROUNDING_QUOTES_RE = re.compile(r"^[\"']+|[\"']+$")
_TRAILING_PUNCT_RE = re.compile(r"[,.]+$")
_WORD_RE = re.compile(r"\w\S*")


def clean_description(text: str) -> str:
    cleaned = " ".join(text.split())
    cleaned = _SURROUNDING_QUOTES_RE.sub("", cleaned)
    cleaned = _TRAILING_PUNCT_RE.sub("", cleaned)
    cleaned = _TELLER_PREFIX_RE.sub("", cleaned)
    for pattern in _TRAILER_RES:
        cleaned = pattern.sub("", cleaned)
    return cleaned.strip()


def to_title_case(text: str) -> str:
    """Upper-case the first character of each word, lower-case the rest."""

    return _WORD_RE.sub(lambda m: m.group(0)[:1].upper() + m.group(0)[1:].lower(), text)


def normalize_text(value: object) -> str:
    """Comparison key: NFKC, whitespace collapsed, case-folded."""

    if value is None:
        return ""
    s = unicodedata.normalize("NFKC", str(value))
    return " ".join(s.split()).casefold()


__all__ = [
    "parse_date",
    "parse_amount",
    "format_amount",
    "clean_description",
    "to_title_case",
    "normalize_text",
]
