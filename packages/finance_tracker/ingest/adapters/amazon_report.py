"""Adapter: Amazon affiliate / creator report rows -> ``AmazonMetric``.

Rows without a parseable date are dropped, as are summary/footer rows whose
ASIN is missing, shorter than two characters, or contains ``total``. Numbers
accept ``$``/``,``/``%`` noise and accounting parentheses.

Report type is either forced by the caller or classified per row: a campaign
title means Creator Connections, a tracking id containing ``onamz`` means
onsite, everything else offsite.
"""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from decimal import Decimal
from typing import Literal

from ...logging_setup import get_logger
from ...models import AmazonMetric, AmazonReportType, RawTable
from ...normalizers import parse_amount, parse_date
from ..mapping import NOT_FOUND, AmazonColumnMapping, cell

_logger = get_logger("finance_tracker.ingest.adapters.amazon_report")

type AmazonSource = AmazonReportType | Literal["auto"]

_ZERO = Decimal(0)


def is_footer_key(key: str) -> bool:
    """Report summary rows carry no real identifier or a ``Total`` label."""

    return not key or len(key) < 2 or "total" in key.lower()


def classify_report_type(tracking_id: str, campaign_title: str | None) -> AmazonReportType:
    if campaign_title:
        return AmazonReportType.CREATOR_CONNECTIONS
    if "onamz" in tracking_id:
        return AmazonReportType.ONSITE
    return AmazonReportType.OFFSITE


def _number(row: Sequence[str], index: int) -> Decimal:
    if index == NOT_FOUND:
        return _ZERO
    return parse_amount(cell(row, index), parentheses_negative=True)


def process_amazon_rows(
    table: RawTable,
    mapping: AmazonColumnMapping,
    *,
    source: AmazonSource = "auto",
) -> Iterator[AmazonMetric]:
    skipped = 0
    for row in table.rows:
        metric_date = parse_date(cell(row, mapping.date))
        if metric_date is None:
            skipped += 1
            continue
        asin = cell(row, mapping.asin)
        if is_footer_key(asin):
            skipped += 1
            continue

        title = cell(row, mapping.title) if mapping.title != NOT_FOUND else f"Product {asin}"
        tracking_id = cell(row, mapping.tracking) if mapping.tracking != NOT_FOUND else "default"
        campaign_title = (
            cell(row, mapping.campaign_title) or None
            if mapping.campaign_title != NOT_FOUND
            else None
        )

        if source == "auto":
            report_type = classify_report_type(tracking_id, campaign_title)
        else:
            report_type = AmazonReportType(source)

        clicks = _number(row, mapping.clicks)
        ordered = _number(row, mapping.ordered)
        conversion = float(ordered / clicks * 100) if clicks > 0 else 0.0

        yield AmazonMetric(
            date=metric_date,
            asin=asin,
            title=title or campaign_title or asin,
            clicks=clicks,
            ordered_items=ordered,
            shipped_items=_number(row, mapping.shipped),
            revenue=_number(row, mapping.revenue),
            conversion_rate=conversion,
            tracking_id=tracking_id,
            category=(cell(row, mapping.category) or None)
            if mapping.category != NOT_FOUND
            else None,
            report_type=report_type,
            campaign_title=campaign_title,
        )

    if skipped:
        _logger.debug("amazon_report:rows_skipped count=%d", skipped)


__all__ = ["AmazonSource", "is_footer_key", "classify_report_type", "process_amazon_rows"]
