"""Persistence integration for finance_tracker.

Collections are stored wholesale, one row per collection name, in the
``ft_collections`` table owned by ``libs/db``. Saving a collection overwrites
its whole JSON payload (last write wins); nothing is stored per record.

Scope:
- Load every stored collection as raw JSON (``load_collections``).
- Overwrite one collection (``save_collection``).
- Upgrade legacy payload shapes and fill empty reference collections with
  defaults (``migrate_collections``).
"""

from __future__ import annotations

import re
import uuid
from collections.abc import Mapping, Sequence
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.orm import Session

from db.client import session_scope
from db.models.finance import FtCollection

from .logging_setup import get_logger
from .models import DEFAULT_TRANSACTION_TYPES

_logger = get_logger("finance_tracker.persistence")

DEFAULT_USER_ID = "default-user"
DEFAULT_ACCOUNT_ID = "default-account-other"

_DEFAULT_CATEGORY_NAMES = (
    "Groceries",
    "Dining",
    "Shopping",
    "Travel",
    "Entertainment",
    "Utilities",
    "Health",
    "Services",
    "Transportation",
    "Income",
    "Other",
)

_WS_RE = re.compile(r"\s+")


def _to_payload(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", by_alias=True, exclude_none=True)
    if isinstance(value, Mapping):
        return {k: _to_payload(v) for k, v in value.items()}
    if isinstance(value, Sequence) and not isinstance(value, str | bytes):
        return [_to_payload(v) for v in value]
    return value


# ----------------------------------------------------------------------------
# Storage
# ----------------------------------------------------------------------------


def load_collections(session: Session) -> dict[str, Any]:
    """Return ``{key: payload}`` for every stored collection."""

    rows = session.execute(select(FtCollection)).scalars().all()
    _logger.debug("persistence:loaded collections=%d", len(rows))
    return {row.key: row.payload for row in rows}


def save_collection(session: Session, key: str, value: Any) -> None:
    """Overwrite the stored payload for ``key``.

    ``value`` may be raw JSON or (lists of) pydantic records, which are dumped
    in their camelCase JSON shape.
    """

    payload = _to_payload(value)
    now = datetime.now(UTC)
    row = session.get(FtCollection, key)
    if row is None:
        session.add(FtCollection(key=key, payload=payload, updated_at=now))
    else:
        row.payload = payload
        row.updated_at = now
    session.flush()
    size = len(payload) if isinstance(payload, list | dict) else 1
    _logger.debug("persistence:saved key=%s items=%d", key, size)


def save_collection_in_new_session(
    key: str, value: Any, *, database_url: str | None = None
) -> None:
    """Open a short transaction and save one collection (used by background saves)."""

    with session_scope(database_url=database_url) as session:
        save_collection(session, key, value)


# ----------------------------------------------------------------------------
# Legacy upgrades and defaults
# ----------------------------------------------------------------------------


def _migrated_category_id(name: str) -> str:
    slug = _WS_RE.sub("-", name.lower())
    return f"migrated-{slug}-{uuid.uuid4().hex[:4]}"


def default_categories() -> list[dict[str, Any]]:
    return [
        {"id": f"default-{name.lower().replace(' ', '-')}", "name": name}
        for name in _DEFAULT_CATEGORY_NAMES
    ]


def _non_empty_list(value: Any) -> bool:
    return isinstance(value, list) and len(value) > 0


def migrate_collections(raw: Mapping[str, Any]) -> dict[str, Any]:
    """Upgrade legacy shapes and fill defaults; returns a new mapping.

    - ``categories`` stored as a list of names become objects with
      ``migrated-<slug>-<4 hex>`` ids; an empty list gets the default set.
    - ``users`` falls back to a single default user; transactions saved before
      users existed get that user's id.
    - Empty ``transactionTypes``, ``accountTypes`` and ``accounts`` get
      defaults (the default account uses a ``General`` account type).
    """

    data = dict(raw)

    users = data.get("users")
    if not _non_empty_list(users):
        users = [{"id": DEFAULT_USER_ID, "name": "Primary User", "isDefault": True}]
    data["users"] = users
    default_user_id = next((u["id"] for u in users if u.get("isDefault")), users[0]["id"])

    transactions = data.get("transactions")
    if isinstance(transactions, list):
        upgraded = 0
        out = []
        for tx in transactions:
            if isinstance(tx, dict) and "userId" not in tx and "user_id" not in tx:
                tx = {**tx, "userId": default_user_id}
                upgraded += 1
            out.append(tx)
        data["transactions"] = out
        if upgraded:
            _logger.info("persistence:migrated transactions_user=%d", upgraded)
    else:
        data["transactions"] = []

    categories = data.get("categories")
    if _non_empty_list(categories):
        if isinstance(categories[0], str):
            data["categories"] = [
                {"id": _migrated_category_id(name), "name": name}
                for name in categories
                if isinstance(name, str)
            ]
            _logger.info("persistence:migrated categories=%d", len(data["categories"]))
    else:
        data["categories"] = default_categories()

    if not _non_empty_list(data.get("transactionTypes")):
        data["transactionTypes"] = [t.to_json_dict() for t in DEFAULT_TRANSACTION_TYPES]

    account_types = data.get("accountTypes")
    if not _non_empty_list(account_types):
        account_types = [
            {"id": "default-bank", "name": "Bank", "isDefault": True},
            {"id": "default-cc", "name": "Credit Card", "isDefault": True},
        ]
    else:
        account_types = list(account_types)

    if not _non_empty_list(data.get("accounts")):
        general = next((t for t in account_types if t.get("name") == "General"), None)
        if general is None:
            general = {"id": "default-general", "name": "General", "isDefault": True}
            account_types.append(general)
        data["accounts"] = [
            {
                "id": DEFAULT_ACCOUNT_ID,
                "name": "Other",
                "identifier": "Default Account",
                "accountTypeId": general["id"],
            }
        ]
    data["accountTypes"] = account_types
    return data


__all__ = [
    "DEFAULT_USER_ID",
    "DEFAULT_ACCOUNT_ID",
    "load_collections",
    "save_collection",
    "save_collection_in_new_session",
    "default_categories",
    "migrate_collections",
]
