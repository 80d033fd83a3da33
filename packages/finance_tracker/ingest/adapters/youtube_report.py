"""Adapter: YouTube Studio content report rows -> ``YouTubeMetric``.

Rows whose content id is missing, too short, or a ``Total`` line are dropped.
The publish date is optional: an unparseable or empty date keeps the row with
``publish_date=None``. Numbers strip ``$``/``,``/``%`` noise; parentheses are
not treated as negation here.
"""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from decimal import Decimal

from ...logging_setup import get_logger
from ...models import RawTable, YouTubeMetric
from ...normalizers import parse_amount, parse_date
from ..mapping import NOT_FOUND, YouTubeColumnMapping, cell
from .amazon_report import is_footer_key

_logger = get_logger("finance_tracker.ingest.adapters.youtube_report")


def _number(row: Sequence[str], index: int) -> Decimal:
    if index == NOT_FOUND:
        return Decimal(0)
    return parse_amount(cell(row, index), parentheses_negative=False)


def process_youtube_rows(
    table: RawTable, mapping: YouTubeColumnMapping
) -> Iterator[YouTubeMetric]:
    skipped = 0
    for row in table.rows:
        video_id = cell(row, mapping.content)
        if is_footer_key(video_id):
            skipped += 1
            continue

        yield YouTubeMetric(
            video_id=video_id,
            title=cell(row, mapping.title) if mapping.title != NOT_FOUND else "Unknown Video",
            publish_date=parse_date(cell(row, mapping.date)),
            duration=_number(row, mapping.duration),
            views=_number(row, mapping.views),
            watch_time_hours=_number(row, mapping.watch_time),
            subscribers=_number(row, mapping.subscribers),
            revenue=_number(row, mapping.revenue),
            impressions=_number(row, mapping.impressions),
            ctr=_number(row, mapping.ctr),
        )

    if skipped:
        _logger.debug("youtube_report:rows_skipped count=%d", skipped)


__all__ = ["process_youtube_rows"]
