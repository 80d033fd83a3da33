"""Public API for the ``finance_tracker`` package.

Import pipelines are pure: text in, records out. None of them touch the
store; the caller commits the result (``FinanceStore.commit_import`` and
friends) after any review step.

- ``detect_mapping`` / ``confirm_mapping``: column mapping for a header list,
  preferring a previously confirmed mapping from the on-disk cache.
- ``import_bank_statement``: parse, map, materialize, apply rules, then split
  the batch into rows to add, suspected duplicates and rule-ignored rows.
- ``import_amazon_report`` / ``import_youtube_report``: parse and map
  affiliate/creator reports into metric records.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import cast

from .cache import read_mapping, write_mapping
from .duplicates import DEFAULT_SIMILARITY_THRESHOLD, find_duplicates
from .ingest.adapters import amazon_report, bank_statement, youtube_report
from .ingest.adapters.amazon_report import AmazonSource
from .ingest.mapping import (
    AmazonColumnMapping,
    BankColumnMapping,
    ColumnMapping,
    MappingError,
    MappingKind,
    YouTubeColumnMapping,
    auto_map_columns,
    require_amazon,
    require_bank,
    require_youtube,
)
from .ingest.tabular import read_bank_table, read_string_as_table
from .logging_setup import get_logger
from .models import (
    Account,
    AmazonMetric,
    DuplicatePair,
    RawTable,
    ReconciliationRule,
    Transaction,
    TransactionType,
    YouTubeMetric,
)
from .rules import apply_rules_to_transactions

_logger = get_logger("finance_tracker.api")


@dataclass(frozen=True, slots=True)
class ImportResult:
    """Outcome of a bank-statement import, before anything is committed."""

    added: list[Transaction] = field(default_factory=list)
    duplicates: list[DuplicatePair] = field(default_factory=list)
    ignored: list[Transaction] = field(default_factory=list)


# ----------------------------------------------------------------------------
# Column mapping
# ----------------------------------------------------------------------------


def detect_mapping(kind: MappingKind, headers: Sequence[str]) -> tuple[ColumnMapping, bool]:
    """Return ``(mapping, from_cache)`` for ``headers``.

    A mapping confirmed earlier for the exact same header list wins over
    auto-detection.
    """

    cached = read_mapping(kind, headers)
    if cached is not None:
        _logger.debug("api:mapping_cache_hit kind=%s", kind)
        return cached, True
    return auto_map_columns(kind, headers), False


def confirm_mapping(kind: MappingKind, headers: Sequence[str], mapping: ColumnMapping) -> Path:
    """Remember ``mapping`` for future imports with the same headers."""

    return write_mapping(kind, headers, mapping)


def _require_headers(kind: MappingKind, table: RawTable) -> None:
    if not table.headers:
        required = {"bank": ["date", "amount"], "amazon": ["asin"], "youtube": ["content"]}[kind]
        raise MappingError(kind, required)


# ----------------------------------------------------------------------------
# Bank statements
# ----------------------------------------------------------------------------


def import_bank_statement(
    text: str,
    *,
    existing: Iterable[Transaction],
    transaction_types: Sequence[TransactionType],
    rules: Sequence[ReconciliationRule] = (),
    accounts: Iterable[Account] | None = None,
    account_id: str | None = None,
    source_filename: str | None = None,
    user_id: str | None = None,
    mapping: BankColumnMapping | None = None,
    similarity_threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
) -> ImportResult:
    """Turn statement text into an ``ImportResult``.

    Rows with unparseable dates or zero amounts are dropped. Rules run on every
    materialized row; rows a ``skip_import`` rule matched are returned in
    ``ignored`` and never reach duplicate detection.

    Raises
    ------
    MappingError
        When no header row is found or the date/amount columns are missing.
    """

    table = read_bank_table(text)
    _require_headers("bank", table)
    if mapping is None:
        detected, _ = detect_mapping("bank", table.headers)
        mapping = cast(BankColumnMapping, detected)
    require_bank(mapping)

    materialized = list(
        bank_statement.process_bank_rows(
            table,
            mapping,
            transaction_types=transaction_types,
            account_id=account_id,
            source_filename=source_filename,
            user_id=user_id,
        )
    )
    ruled = apply_rules_to_transactions(materialized, rules, accounts)
    ignored = [tx for tx in ruled if tx.is_ignored]
    kept = [tx for tx in ruled if not tx.is_ignored]
    check = find_duplicates(kept, existing, threshold=similarity_threshold)

    _logger.info(
        "api:bank_import rows=%d materialized=%d ignored=%d added=%d duplicates=%d",
        len(table.rows),
        len(materialized),
        len(ignored),
        len(check.added),
        len(check.duplicates),
    )
    return ImportResult(added=check.added, duplicates=check.duplicates, ignored=ignored)


# ----------------------------------------------------------------------------
# Reports
# ----------------------------------------------------------------------------


def import_amazon_report(
    text: str,
    *,
    source: AmazonSource = "auto",
    mapping: AmazonColumnMapping | None = None,
) -> list[AmazonMetric]:
    """Parse an Amazon Associates / Creator Connections export into metrics."""

    table = read_string_as_table(text)
    _require_headers("amazon", table)
    if mapping is None:
        detected, _ = detect_mapping("amazon", table.headers)
        mapping = cast(AmazonColumnMapping, detected)
    require_amazon(mapping)
    metrics = list(amazon_report.process_amazon_rows(table, mapping, source=source))
    _logger.info("api:amazon_import rows=%d metrics=%d", len(table.rows), len(metrics))
    return metrics


def import_youtube_report(
    text: str, *, mapping: YouTubeColumnMapping | None = None
) -> list[YouTubeMetric]:
    """Parse a YouTube Studio content export into per-video metrics."""

    table = read_string_as_table(text)
    _require_headers("youtube", table)
    if mapping is None:
        detected, _ = detect_mapping("youtube", table.headers)
        mapping = cast(YouTubeColumnMapping, detected)
    require_youtube(mapping)
    metrics = list(youtube_report.process_youtube_rows(table, mapping))
    _logger.info("api:youtube_import rows=%d metrics=%d", len(table.rows), len(metrics))
    return metrics


__all__ = [
    "ImportResult",
    "detect_mapping",
    "confirm_mapping",
    "import_bank_statement",
    "import_amazon_report",
    "import_youtube_report",
]
