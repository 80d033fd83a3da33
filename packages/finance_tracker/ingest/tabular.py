"""Raw text -> ``RawTable`` for CSV/TSV exports and pasted clipboard text.

Exports in the wild put a preamble (report title, date range, account number)
above the real header row and use either commas or tabs. Two readers cover
them:

- ``read_string_as_table``: affiliate/analytics reports. The header row is the
  line among the first 50 non-empty lines that contains the most report
  keywords (first occurrence wins ties, lines of 1000+ characters never win).
  When nothing scores, the first line mentioning ``asin`` or ``video title``
  is used, then line 0.
- ``read_bank_table``: bank statements. The header row is the first of the
  first 20 lines that names a date column plus a description, an amount, or a
  credit/debit column pair.

Both pick the delimiter from the header line (tab wins only when it yields
strictly more fields, or ties with more than one field on a line that actually
contains a tab) and keep a data row only when it has at least
``max(1, len(headers) - 2)`` fields. Neither raises; bad input just yields
fewer rows.
"""

from __future__ import annotations

import csv
from collections.abc import Sequence

from ..logging_setup import get_logger
from ..models import RawTable
from .mapping import auto_map_bank_columns

_logger = get_logger("finance_tracker.ingest.tabular")

REPORT_HEADER_KEYWORDS: tuple[str, ...] = (
    "asin",
    "date",
    "product title",
    "title",
    "name",
    "ordered items",
    "shipped items",
    "clicks",
    "conversion",
    "revenue",
    "earnings",
    "fees",
    "commission",
    "bonus",
    "tracking id",
    "tag",
    "category",
    "video title",
    "content",
    "watch time",
    "subscribers",
    "impressions",
)

_HEADER_SCAN_LINES = 50
_BANK_HEADER_SCAN_LINES = 20
_MAX_HEADER_LENGTH = 1000


def parse_delimited_line(line: str, delimiter: str = ",") -> list[str]:
    """Split one line on ``delimiter`` honoring double-quote escaping.

    ``""`` inside a quoted field is a literal quote. Fields are
    whitespace-trimmed; an empty line is one empty field.
    """

    text = line.replace("\r", "").rstrip("\n")
    reader = csv.reader([text], delimiter=delimiter, skipinitialspace=True)
    fields = next(reader, None)
    if not fields:
        return [""]
    return [f.strip() for f in fields]


def detect_delimiter(header_line: str) -> tuple[str, list[str]]:
    """Return ``(delimiter, header_fields)`` for a header line."""

    tab_parts = parse_delimited_line(header_line, "\t")
    comma_parts = parse_delimited_line(header_line, ",")
    if len(tab_parts) > len(comma_parts):
        return "\t", tab_parts
    if len(tab_parts) == len(comma_parts) and len(tab_parts) > 1 and "\t" in header_line:
        return "\t", tab_parts
    return ",", comma_parts


def _collect_rows(lines: Sequence[str], start: int, delimiter: str, width: int) -> list[list[str]]:
    min_fields = max(1, width - 2)
    rows: list[list[str]] = []
    dropped = 0
    for raw in lines[start:]:
        # leading tabs are empty leading cells, not padding
        line = raw.lstrip("\r ").rstrip()
        if not line.strip():
            continue
        values = parse_delimited_line(line, delimiter)
        if len(values) >= min_fields:
            rows.append(values)
        else:
            dropped += 1
    if dropped:
        _logger.debug("tabular:short_rows_dropped count=%d min_fields=%d", dropped, min_fields)
    return rows


def _split_lines(text: str) -> list[str]:
    # "\r" is dropped per line by parse_delimited_line.
    return text.split("\n")


def _score_line(line: str) -> int:
    return sum(1 for k in REPORT_HEADER_KEYWORDS if k in line)


def find_report_header_index(lines: Sequence[str]) -> int:
    best_index = -1
    best_score = 0
    seen = 0
    for i, raw in enumerate(lines):
        if seen >= _HEADER_SCAN_LINES:
            break
        line = raw.strip().lower()
        if not line:
            continue
        seen += 1
        score = _score_line(line)
        if score > best_score and len(line) < _MAX_HEADER_LENGTH:
            best_score = score
            best_index = i

    if best_index != -1:
        return best_index
    for needle in ("asin", "video title"):
        for i, raw in enumerate(lines):
            if needle in raw.lower():
                return i
    return 0


def read_string_as_table(text: str) -> RawTable:
    """Detect header row and delimiter of a report export and parse it."""

    lines = _split_lines(text)
    header_index = find_report_header_index(lines)
    header_line = lines[header_index] if lines else ""
    delimiter, headers = detect_delimiter(header_line)
    rows = _collect_rows(lines, header_index + 1, delimiter, len(headers))
    _logger.debug(
        "tabular:report header_index=%d delimiter=%r columns=%d rows=%d",
        header_index,
        delimiter,
        len(headers),
        len(rows),
    )
    return RawTable(headers=headers, rows=rows)


def find_bank_header_index(lines: Sequence[str]) -> int:
    """Index of the first plausible bank header line, or ``-1``."""

    for i, raw in enumerate(lines[:_BANK_HEADER_SCAN_LINES]):
        line = raw.strip()
        if not line:
            continue
        _delimiter, parts = detect_delimiter(raw)
        mapping = auto_map_bank_columns(parts)
        if mapping.date == -1:
            continue
        if (
            mapping.description > -1
            or mapping.amount > -1
            or (mapping.credit > -1 and mapping.debit > -1)
        ):
            return i
    return -1


def read_bank_table(text: str) -> RawTable:
    """Parse a bank statement export; empty table when no header is found."""

    lines = _split_lines(text)
    header_index = find_bank_header_index(lines)
    if header_index == -1:
        _logger.info("tabular:bank_header_not_found lines_scanned=%d", min(len(lines), 20))
        return RawTable()
    delimiter, headers = detect_delimiter(lines[header_index])
    rows = _collect_rows(lines, header_index + 1, delimiter, len(headers))
    return RawTable(headers=headers, rows=rows)


__all__ = [
    "REPORT_HEADER_KEYWORDS",
    "parse_delimited_line",
    "detect_delimiter",
    "find_report_header_index",
    "find_bank_header_index",
    "read_string_as_table",
    "read_bank_table",
]
