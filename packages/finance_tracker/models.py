"""Data models for ``finance_tracker``.

Every persisted record is a pydantic model whose JSON shape uses camelCase keys
(``typeId``, ``linkGroupId``...), matching the collections stored by the
application. Construction accepts either camelCase or snake_case keys so code
can build records with Python names while stored payloads load unchanged.

Amounts are ``Decimal`` in memory and plain JSON numbers on disk.

Rule conditions are a discriminated union (``BasicCondition | ConditionGroup``)
on the ``type`` tag. Payloads that predate the tag are tagged once during
validation: an item that carries nested ``conditions`` is a group, anything
else is a basic condition. Rules that predate the condition list entirely
(``descriptionContains`` / ``accountId`` / ``amountEquals``) are upgraded to an
equivalent chain of basic conditions.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    PlainSerializer,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel


def new_id() -> str:
    """Return a fresh opaque identifier."""

    return str(uuid.uuid4())


# Decimal in memory, JSON number on the wire.
Money = Annotated[
    Decimal,
    PlainSerializer(lambda d: float(d), return_type=float, when_used="json"),
]


class _Record(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_json_dict(self) -> dict[str, Any]:
        """Serialize to the stored (camelCase) JSON shape."""

        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


def _blank_to_none(v: Any) -> Any:
    if isinstance(v, str) and not v.strip():
        return None
    return v


# ---------------------------------------------------------------------------
# Reference collections
# ---------------------------------------------------------------------------


class BalanceEffect(str, Enum):
    INCOME = "income"
    EXPENSE = "expense"
    TRANSFER = "transfer"
    INVESTMENT = "investment"
    DONATION = "donation"
    TAX = "tax"
    SAVINGS = "savings"
    DEBT = "debt"


class TransactionType(_Record):
    id: str
    name: str
    balance_effect: BalanceEffect
    is_default: bool = False


def _default_type(type_id: str, name: str, effect: BalanceEffect) -> TransactionType:
    return TransactionType(id=type_id, name=name, balance_effect=effect, is_default=True)


DEFAULT_TRANSACTION_TYPES: tuple[TransactionType, ...] = (
    _default_type("default-expense-purchase", "Purchase", BalanceEffect.EXPENSE),
    _default_type("default-expense-bill", "Bill Payment", BalanceEffect.EXPENSE),
    _default_type("default-expense-fee", "Fee", BalanceEffect.EXPENSE),
    _default_type("default-income-deposit", "Direct Deposit", BalanceEffect.INCOME),
    _default_type("default-income-paycheck", "Paycheck", BalanceEffect.INCOME),
    _default_type("default-income-refund", "Refund", BalanceEffect.INCOME),
    _default_type("default-transfer-payment", "Credit Card Payment", BalanceEffect.TRANSFER),
    _default_type("default-transfer-transfer", "Transfer", BalanceEffect.TRANSFER),
    _default_type(
        "default-investment-contribution", "Investment Contribution", BalanceEffect.INVESTMENT
    ),
    _default_type("default-donation-charity", "Charitable Donation", BalanceEffect.DONATION),
    _default_type("default-tax-payment", "Tax Payment", BalanceEffect.TAX),
    _default_type("default-savings-deposit", "Savings Deposit", BalanceEffect.SAVINGS),
    _default_type("default-debt-payment", "Debt Payment", BalanceEffect.DEBT),
)


class AccountType(_Record):
    id: str
    name: str
    is_default: bool = False


class Account(_Record):
    id: str
    name: str
    identifier: str = ""
    account_type_id: str | None = None


class Category(_Record):
    id: str
    name: str
    parent_id: str | None = None


class Tag(_Record):
    id: str
    name: str
    color: str | None = None


class Payee(_Record):
    id: str
    name: str
    parent_id: str | None = None
    notes: str | None = None


class User(_Record):
    id: str
    name: str
    is_default: bool = False


class SubTask(_Record):
    id: str = Field(default_factory=new_id)
    text: str
    is_completed: bool = False


class TaskItem(_Record):
    id: str = Field(default_factory=new_id)
    title: str
    description: str | None = None
    due_date: date | None = None
    is_completed: bool = False
    priority: Literal["low", "medium", "high"] = "medium"
    subtasks: list[SubTask] = Field(default_factory=list)
    # Free-form recurrence payload ({"frequency": "monthly", ...}); not interpreted here.
    recurrence: dict[str, Any] | None = None


class BusinessDocument(_Record):
    id: str = Field(default_factory=new_id)
    name: str
    upload_date: date
    size: int = 0
    mime_type: str = "application/octet-stream"
    parent_id: str | None = None


# ---------------------------------------------------------------------------
# Ledger
# ---------------------------------------------------------------------------


class Transaction(_Record):
    """A ledger row.

    ``amount`` is never negative; direction comes from the balance effect of
    the referenced transaction type. ``is_parent`` rows are split containers
    whose children share ``link_group_id`` and point back through
    ``parent_transaction_id``.
    """

    id: str = Field(default_factory=new_id)
    date: date
    description: str
    original_description: str | None = None
    amount: Money = Field(ge=0)
    category_id: str | None = None
    category: str | None = None
    type_id: str
    account_id: str | None = None
    payee_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices("counterpartyId", "payeeId", "payee_id", "counterparty_id"),
        serialization_alias="counterpartyId",
    )
    merchant_id: str | None = None
    location_id: str | None = None
    user_id: str | None = None
    tag_ids: list[str] = Field(default_factory=list)
    link_group_id: str | None = None
    is_parent: bool = False
    parent_transaction_id: str | None = None
    source_filename: str | None = None
    notes: str | None = None
    metadata: dict[str, str] = Field(default_factory=dict)
    applied_rule_ids: list[str] = Field(default_factory=list)
    is_ignored: bool = False

    @field_validator("amount", mode="before")
    @classmethod
    def _coerce_amount(cls, v: Any) -> Any:
        # Stored payloads carry floats; route through str to avoid binary noise.
        if isinstance(v, float):
            return Decimal(str(v))
        return v

    @field_validator("tag_ids")
    @classmethod
    def _dedupe_tags(cls, v: list[str]) -> list[str]:
        return list(dict.fromkeys(t for t in v if t))

    @field_validator("metadata", mode="before")
    @classmethod
    def _stringify_metadata(cls, v: Any) -> Any:
        if isinstance(v, dict):
            return {str(k): "" if val is None else str(val) for k, val in v.items()}
        return v


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------


RuleLogic = Literal["AND", "OR"]


def _coerce_logic(v: Any) -> str:
    if isinstance(v, str) and v.strip().upper() == "OR":
        return "OR"
    return "AND"


def _tag_condition_items(items: Any) -> Any:
    """Attach the ``type`` tag to untagged condition payloads (recursively)."""

    if not isinstance(items, list):
        return items
    tagged: list[Any] = []
    for item in items:
        if item is None:
            continue
        if isinstance(item, dict) and "type" not in item:
            item = dict(item)
            item["type"] = "group" if "conditions" in item else "basic"
        tagged.append(item)
    return tagged


class BasicCondition(_Record):
    """``(field, operator, value)`` test plus the logic linking it to the next term.

    ``field`` and ``operator`` are kept as plain strings: unknown values load
    fine and simply never match.
    """

    type: Literal["basic"] = "basic"
    id: str = Field(default_factory=new_id)
    field: str
    operator: str
    value: str = ""
    metadata_key: str | None = None
    next_logic: RuleLogic = "AND"

    @field_validator("value", mode="before")
    @classmethod
    def _value_to_str(cls, v: Any) -> Any:
        if v is None:
            return ""
        if isinstance(v, int | float | Decimal) and not isinstance(v, bool):
            return str(v)
        return v

    @field_validator("next_logic", mode="before")
    @classmethod
    def _logic(cls, v: Any) -> str:
        return _coerce_logic(v)


class ConditionGroup(_Record):
    type: Literal["group"] = "group"
    id: str = Field(default_factory=new_id)
    conditions: list[RuleCondition] = Field(default_factory=list)
    next_logic: RuleLogic = "AND"

    @field_validator("conditions", mode="before")
    @classmethod
    def _tag(cls, v: Any) -> Any:
        return _tag_condition_items(v)

    @field_validator("next_logic", mode="before")
    @classmethod
    def _logic(cls, v: Any) -> str:
        return _coerce_logic(v)


RuleCondition = Annotated[BasicCondition | ConditionGroup, Field(discriminator="type")]

ConditionGroup.model_rebuild()


_LEGACY_RULE_KEYS: dict[str, tuple[str, str]] = {
    # legacy key -> (field, operator)
    "descriptionContains": ("description", "contains"),
    "description_contains": ("description", "contains"),
    "accountId": ("accountId", "equals"),
    "account_id": ("accountId", "equals"),
    "amountEquals": ("amount", "equals"),
    "amount_equals": ("amount", "equals"),
}


class ReconciliationRule(_Record):
    """A named condition chain plus the field overwrites applied on match."""

    id: str = Field(default_factory=new_id)
    name: str = ""
    conditions: list[RuleCondition] = Field(default_factory=list)
    set_category_id: str | None = None
    set_payee_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "setCounterpartyId", "setPayeeId", "set_payee_id", "set_counterparty_id"
        ),
        serialization_alias="setCounterpartyId",
    )
    set_location_id: str | None = None
    set_user_id: str | None = None
    set_transaction_type_id: str | None = None
    set_description: str | None = None
    assign_tag_ids: list[str] = Field(default_factory=list)
    skip_import: bool = False

    @model_validator(mode="before")
    @classmethod
    def _upgrade_legacy(cls, data: Any) -> Any:
        if not isinstance(data, dict) or data.get("conditions"):
            return data
        logic = _coerce_logic(data.get("matchLogic") or data.get("match_logic"))
        conditions: list[dict[str, Any]] = []
        for key, (fld, op) in _LEGACY_RULE_KEYS.items():
            raw = data.get(key)
            if raw is None or (isinstance(raw, str) and not raw.strip()):
                continue
            conditions.append(
                {"type": "basic", "field": fld, "operator": op, "value": raw, "nextLogic": logic}
            )
        if not conditions:
            return data
        upgraded = {k: v for k, v in data.items() if k not in _LEGACY_RULE_KEYS}
        upgraded["conditions"] = conditions
        return upgraded

    @field_validator("conditions", mode="before")
    @classmethod
    def _tag(cls, v: Any) -> Any:
        return _tag_condition_items(v)

    @field_validator(
        "set_category_id",
        "set_payee_id",
        "set_location_id",
        "set_user_id",
        "set_transaction_type_id",
        "set_description",
        mode="before",
    )
    @classmethod
    def _blank(cls, v: Any) -> Any:
        return _blank_to_none(v)


# ---------------------------------------------------------------------------
# Affiliate / channel metrics
# ---------------------------------------------------------------------------


class AmazonReportType(str, Enum):
    ONSITE = "onsite"
    OFFSITE = "offsite"
    CREATOR_CONNECTIONS = "creator_connections"
    UNKNOWN = "unknown"


class AmazonMetric(_Record):
    id: str = Field(default_factory=new_id)
    date: date
    asin: str
    title: str
    clicks: Money = Decimal(0)
    ordered_items: Money = Decimal(0)
    shipped_items: Money = Decimal(0)
    revenue: Money = Decimal(0)
    conversion_rate: float = 0.0
    tracking_id: str = "default"
    category: str | None = None
    report_type: AmazonReportType = AmazonReportType.UNKNOWN
    campaign_title: str | None = None


class YouTubeMetric(_Record):
    id: str = Field(default_factory=new_id)
    video_id: str
    title: str
    publish_date: date | None = None
    duration: Money = Decimal(0)
    views: Money = Decimal(0)
    watch_time_hours: Money = Decimal(0)
    subscribers: Money = Decimal(0)
    revenue: Money = Decimal(0)
    impressions: Money = Decimal(0)
    ctr: Money = Decimal(0)


# ---------------------------------------------------------------------------
# Ephemeral review structures
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class DuplicatePair:
    """A candidate from an import paired with the stored row it likely repeats."""

    new_tx: Transaction
    existing_tx: Transaction


@dataclass(frozen=True, slots=True)
class RawTable:
    """Header row plus data rows, each row aligned to ``headers``.

    Every row has at least ``max(1, len(headers) - 2)`` cells.
    """

    headers: list[str] = field(default_factory=list)
    rows: list[list[str]] = field(default_factory=list)


__all__ = [
    "new_id",
    "Money",
    "BalanceEffect",
    "TransactionType",
    "DEFAULT_TRANSACTION_TYPES",
    "AccountType",
    "Account",
    "Category",
    "Tag",
    "Payee",
    "User",
    "SubTask",
    "TaskItem",
    "BusinessDocument",
    "Transaction",
    "RuleLogic",
    "BasicCondition",
    "ConditionGroup",
    "RuleCondition",
    "ReconciliationRule",
    "AmazonReportType",
    "AmazonMetric",
    "YouTubeMetric",
    "DuplicatePair",
    "RawTable",
]
