"""Header -> semantic-field column mapping for bank, Amazon and YouTube exports.

Each schema is an ordered list of ``FieldRule`` entries. A rule scans the
headers in document order and returns the index of the first header that
matches any of its candidates, so the first matching *header* wins, not the
best candidate. Downstream caches store mappings built this way; keep the
scan order when touching the candidate lists.

Matching runs on lowercased, trimmed headers:

- ``contains`` candidates match a header that equals or contains them;
- ``exact`` candidates match only a header equal to them.

Mappings are pydantic models with ``-1`` meaning "not found". Users may
override any index before confirming an import (``with_overrides``).
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Literal, Self

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

MappingKind = Literal["bank", "amazon", "youtube"]

NOT_FOUND = -1


class MappingError(ValueError):
    """A required column could not be mapped; the import must not proceed."""

    def __init__(self, kind: str, missing: Sequence[str]) -> None:
        self.kind = kind
        self.missing = tuple(missing)
        super().__init__(
            f"could not map required {kind} column(s): {', '.join(self.missing)}; "
            "map them manually before importing"
        )


@dataclass(frozen=True, slots=True)
class FieldRule:
    field: str
    contains: tuple[str, ...] = ()
    exact: tuple[str, ...] = ()

    def matches(self, header: str) -> bool:
        if header in self.exact:
            return True
        return any(header == c or c in header for c in self.contains)

    def find(self, headers: Sequence[str]) -> int:
        for i, header in enumerate(headers):
            if self.matches(header):
                return i
        return NOT_FOUND


def _find(field: str, *candidates: str) -> FieldRule:
    return FieldRule(field=field, contains=candidates)


def _find_exact(field: str, *candidates: str) -> FieldRule:
    return FieldRule(field=field, exact=candidates)


AMAZON_RULES: tuple[FieldRule, ...] = (
    _find_exact("date", "date", "date shipped"),
    _find_exact("asin", "asin"),
    _find("title", "product title", "title", "item name", "name"),
    _find("clicks", "clicks"),
    _find("ordered", "ordered items", "items ordered"),
    _find("shipped", "shipped items", "items shipped"),
    _find(
        "revenue",
        "ad fees",
        "advertising fees",
        "commission income",
        "earnings",
        "bounties",
        "amount",
    ),
    _find("tracking", "tracking id"),
    _find("category", "category", "product group"),
    _find("campaign_title", "campaign title"),
)

YOUTUBE_RULES: tuple[FieldRule, ...] = (
    _find("content", "content", "video id", "video"),
    _find("title", "video title", "title"),
    _find("date", "video publish time", "publish time", "date"),
    _find("duration", "duration"),
    _find("views", "views"),
    _find("watch_time", "watch time"),
    _find("subscribers", "subscribers"),
    _find("revenue", "estimated revenue", "revenue", "your estimated revenue"),
    _find("impressions", "impressions"),
    _find("ctr", "impressions click-through rate", "click-through rate", "ctr"),
)

BANK_RULES: tuple[FieldRule, ...] = (
    FieldRule("date", contains=("date",), exact=("dt",)),
    _find("description", "description", "merchant", "payee", "name", "transaction"),
    _find("amount", "amount"),
    _find("credit", "credit", "deposit"),
    _find("debit", "debit", "payment", "withdraw"),
    _find("category", "category"),
)


def normalize_headers(headers: Sequence[str]) -> list[str]:
    return [h.strip().lower() for h in headers]


def _apply_rules(rules: Sequence[FieldRule], headers: Sequence[str]) -> dict[str, int]:
    normalized = normalize_headers(headers)
    return {rule.field: rule.find(normalized) for rule in rules}


# ---------------------------------------------------------------------------
# Mapping models
# ---------------------------------------------------------------------------


class _ColumnMapping(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
        validate_assignment=True,
    )

    def with_overrides(self, **overrides: int) -> Self:
        """Return a copy with user-chosen indices replacing detected ones."""

        data: dict[str, Any] = self.model_dump()
        data.update(overrides)
        return type(self).model_validate(data)

    def missing(self, fields: Sequence[str]) -> list[str]:
        return [f for f in fields if getattr(self, f) == NOT_FOUND]


def _col() -> Any:
    return Field(default=NOT_FOUND, ge=NOT_FOUND)


class AmazonColumnMapping(_ColumnMapping):
    date: int = _col()
    asin: int = _col()
    title: int = _col()
    clicks: int = _col()
    ordered: int = _col()
    shipped: int = _col()
    revenue: int = _col()
    tracking: int = _col()
    category: int = _col()
    campaign_title: int = _col()


class YouTubeColumnMapping(_ColumnMapping):
    content: int = _col()
    title: int = _col()
    date: int = _col()
    duration: int = _col()
    views: int = _col()
    watch_time: int = _col()
    subscribers: int = _col()
    revenue: int = _col()
    impressions: int = _col()
    ctr: int = _col()


class BankColumnMapping(_ColumnMapping):
    date: int = _col()
    description: int = _col()
    amount: int = _col()
    credit: int = _col()
    debit: int = _col()
    category: int = _col()


type ColumnMapping = AmazonColumnMapping | YouTubeColumnMapping | BankColumnMapping

MAPPING_MODELS: dict[str, type[_ColumnMapping]] = {
    "bank": BankColumnMapping,
    "amazon": AmazonColumnMapping,
    "youtube": YouTubeColumnMapping,
}


# ---------------------------------------------------------------------------
# Auto-detection
# ---------------------------------------------------------------------------


def auto_map_amazon_columns(headers: Sequence[str]) -> AmazonColumnMapping:
    return AmazonColumnMapping(**_apply_rules(AMAZON_RULES, headers))


def auto_map_youtube_columns(headers: Sequence[str]) -> YouTubeColumnMapping:
    return YouTubeColumnMapping(**_apply_rules(YOUTUBE_RULES, headers))


def auto_map_bank_columns(headers: Sequence[str]) -> BankColumnMapping:
    return BankColumnMapping(**_apply_rules(BANK_RULES, headers))


def auto_map_columns(kind: MappingKind, headers: Sequence[str]) -> ColumnMapping:
    if kind == "amazon":
        return auto_map_amazon_columns(headers)
    if kind == "youtube":
        return auto_map_youtube_columns(headers)
    if kind == "bank":
        return auto_map_bank_columns(headers)
    raise ValueError(f"unknown mapping kind: {kind!r}")


# ---------------------------------------------------------------------------
# Required-column validation
# ---------------------------------------------------------------------------


def require_amazon(mapping: AmazonColumnMapping) -> AmazonColumnMapping:
    missing = mapping.missing(["asin"])
    if missing:
        raise MappingError("amazon", missing)
    return mapping


def require_youtube(mapping: YouTubeColumnMapping) -> YouTubeColumnMapping:
    missing = mapping.missing(["content"])
    if missing:
        raise MappingError("youtube", missing)
    return mapping


def require_bank(mapping: BankColumnMapping) -> BankColumnMapping:
    missing = mapping.missing(["date"])
    if mapping.amount == NOT_FOUND and (
        mapping.credit == NOT_FOUND or mapping.debit == NOT_FOUND
    ):
        missing.append("amount (or credit and debit)")
    if missing:
        raise MappingError("bank", missing)
    return mapping


def cell(row: Sequence[str], index: int) -> str:
    """Return the cell at ``index`` or ``""`` when unmapped/out of range."""

    if index < 0 or index >= len(row):
        return ""
    return row[index]


__all__ = [
    "MappingKind",
    "NOT_FOUND",
    "MappingError",
    "FieldRule",
    "AMAZON_RULES",
    "YOUTUBE_RULES",
    "BANK_RULES",
    "normalize_headers",
    "AmazonColumnMapping",
    "YouTubeColumnMapping",
    "BankColumnMapping",
    "ColumnMapping",
    "MAPPING_MODELS",
    "auto_map_amazon_columns",
    "auto_map_youtube_columns",
    "auto_map_bank_columns",
    "auto_map_columns",
    "require_amazon",
    "require_youtube",
    "require_bank",
    "cell",
]
