"""Application state and the store that owns it.

``AppState`` holds every collection as typed records. ``FinanceStore`` is the
only writer: each named operation updates the state and schedules a save of
the collections it touched through a ``DebouncedSaver``. Ingestion, rule
evaluation and linking stay pure; the store just applies their results.

Saves are debounced per collection key: a burst of edits to ``transactions``
produces one write carrying the final list. ``flush()`` writes whatever is
pending immediately and is called by the CLI before exit.
"""

from __future__ import annotations

import os
import threading
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel

from db.client import init_schema, session_scope

from .linking import SplitPart, link_transactions, split_transaction, unlink_group
from .logging_setup import get_logger
from .models import (
    Account,
    AccountType,
    AmazonMetric,
    BusinessDocument,
    Category,
    Payee,
    ReconciliationRule,
    Tag,
    TaskItem,
    Transaction,
    TransactionType,
    User,
    YouTubeMetric,
)
from .persistence import load_collections, migrate_collections, save_collection_in_new_session
from .rules import apply_rules_to_transactions, find_matching_transactions

_logger = get_logger("finance_tracker.state")

DEFAULT_SAVE_DELAY_SECONDS = 0.5
_DELAY_ENV = "FT_SAVE_DEBOUNCE_SECONDS"

# stored key -> (AppState attribute, record model)
COLLECTIONS: dict[str, tuple[str, type[BaseModel]]] = {
    "transactions": ("transactions", Transaction),
    "accounts": ("accounts", Account),
    "accountTypes": ("account_types", AccountType),
    "categories": ("categories", Category),
    "transactionTypes": ("transaction_types", TransactionType),
    "tags": ("tags", Tag),
    "payees": ("payees", Payee),
    "users": ("users", User),
    "reconciliationRules": ("rules", ReconciliationRule),
    "amazonMetrics": ("amazon_metrics", AmazonMetric),
    "youtubeMetrics": ("youtube_metrics", YouTubeMetric),
    "tasks": ("tasks", TaskItem),
    "businessDocuments": ("business_documents", BusinessDocument),
}


@dataclass
class AppState:
    transactions: list[Transaction] = field(default_factory=list)
    accounts: list[Account] = field(default_factory=list)
    account_types: list[AccountType] = field(default_factory=list)
    categories: list[Category] = field(default_factory=list)
    transaction_types: list[TransactionType] = field(default_factory=list)
    tags: list[Tag] = field(default_factory=list)
    payees: list[Payee] = field(default_factory=list)
    users: list[User] = field(default_factory=list)
    rules: list[ReconciliationRule] = field(default_factory=list)
    amazon_metrics: list[AmazonMetric] = field(default_factory=list)
    youtube_metrics: list[YouTubeMetric] = field(default_factory=list)
    tasks: list[TaskItem] = field(default_factory=list)
    business_documents: list[BusinessDocument] = field(default_factory=list)
    # Collections without a typed model (settings, profiles...), kept verbatim.
    extras: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_collections(cls, raw: dict[str, Any]) -> AppState:
        state = cls()
        for key, payload in raw.items():
            entry = COLLECTIONS.get(key)
            if entry is None:
                state.extras[key] = payload
                continue
            attr, model = entry
            items = payload if isinstance(payload, list) else []
            setattr(state, attr, [model.model_validate(item) for item in items])
        return state

    def collection(self, key: str) -> list[Any]:
        try:
            attr, _ = COLLECTIONS[key]
        except KeyError:
            raise KeyError(f"unknown collection: {key!r}") from None
        return getattr(self, attr)

    def payload(self, key: str) -> Any:
        if key in COLLECTIONS:
            return [
                r.model_dump(mode="json", by_alias=True, exclude_none=True)
                for r in self.collection(key)
            ]
        return self.extras.get(key)


# ----------------------------------------------------------------------------
# Debounced saving
# ----------------------------------------------------------------------------


def _delay_from_env() -> float:
    raw = os.getenv(_DELAY_ENV)
    if raw is None or not raw.strip():
        return DEFAULT_SAVE_DELAY_SECONDS
    try:
        return max(0.0, float(raw))
    except ValueError:
        _logger.warning(
            "state:invalid %s=%r; using %.2f", _DELAY_ENV, raw, DEFAULT_SAVE_DELAY_SECONDS
        )
        return DEFAULT_SAVE_DELAY_SECONDS


class DebouncedSaver:
    """Coalesce saves per key; the last scheduled payload for a key wins.

    ``save_fn(key, payload)`` runs on a timer thread after ``delay`` seconds of
    quiet for that key, or synchronously from ``flush()``. With ``delay <= 0``
    every ``schedule`` saves immediately.
    """

    def __init__(self, save_fn: Callable[[str, Any], None], *, delay: float | None = None) -> None:
        self._save_fn = save_fn
        self._delay = _delay_from_env() if delay is None else delay
        self._lock = threading.Lock()
        # Serializes save_fn calls so an older payload never lands after a newer one.
        self._save_lock = threading.Lock()
        self._pending: dict[str, Any] = {}
        self._timers: dict[str, threading.Timer] = {}

    @property
    def delay(self) -> float:
        return self._delay

    @property
    def pending_keys(self) -> list[str]:
        with self._lock:
            return sorted(self._pending)

    def schedule(self, key: str, payload: Any) -> None:
        if self._delay <= 0:
            with self._save_lock:
                self._save_fn(key, payload)
            return
        with self._lock:
            self._pending[key] = payload
            old = self._timers.pop(key, None)
            if old is not None:
                old.cancel()
            timer = threading.Timer(self._delay, self._fire, args=(key,))
            timer.daemon = True
            self._timers[key] = timer
            timer.start()

    def _fire(self, key: str) -> None:
        with self._save_lock:
            with self._lock:
                if self._timers.get(key) is threading.current_thread():
                    del self._timers[key]
                if key not in self._pending:
                    return
                payload = self._pending.pop(key)
            try:
                self._save_fn(key, payload)
            except Exception:
                _logger.exception("state:save_failed key=%s; kept pending for flush", key)
                with self._lock:
                    self._pending.setdefault(key, payload)

    def flush(self) -> None:
        """Cancel timers and write every pending payload now; errors propagate.

        A timer save already in progress finishes before anything is written.
        """

        with self._save_lock:
            with self._lock:
                for timer in self._timers.values():
                    timer.cancel()
                self._timers.clear()
                pending = dict(self._pending)
                self._pending.clear()
            for key, payload in pending.items():
                self._save_fn(key, payload)
        if pending:
            _logger.debug("state:flushed keys=%d", len(pending))

    def close(self) -> None:
        self.flush()


# ----------------------------------------------------------------------------
# Store
# ----------------------------------------------------------------------------


class FinanceStore:
    """Owns an ``AppState``; every mutation goes through a named operation."""

    def __init__(self, state: AppState | None = None, saver: DebouncedSaver | None = None) -> None:
        self.state = state or AppState()
        self._saver = saver

    @classmethod
    def load(cls, *, database_url: str | None = None, delay: float | None = None) -> FinanceStore:
        """Load (and upgrade) every collection from the database."""

        init_schema(database_url=database_url)
        with session_scope(database_url=database_url) as session:
            raw = load_collections(session)
        state = AppState.from_collections(migrate_collections(raw))

        def _save(key: str, payload: Any) -> None:
            save_collection_in_new_session(key, payload, database_url=database_url)

        return cls(state, DebouncedSaver(_save, delay=delay))

    def _touch(self, *keys: str) -> None:
        if self._saver is None:
            return
        for key in keys:
            self._saver.schedule(key, self.state.payload(key))

    def flush(self) -> None:
        if self._saver is not None:
            self._saver.flush()

    def close(self) -> None:
        if self._saver is not None:
            self._saver.close()

    # -- generic per-collection operations ----------------------------------

    def add(self, key: str, *records: BaseModel) -> None:
        self.state.collection(key).extend(records)
        self._touch(key)

    def update(self, key: str, *records: BaseModel) -> int:
        """Replace stored records by id; returns how many were found."""

        updates = {r.id: r for r in records}  # type: ignore[attr-defined]
        items = self.state.collection(key)
        found = 0
        for i, item in enumerate(items):
            if item.id in updates:
                items[i] = updates[item.id]
                found += 1
        if found:
            self._touch(key)
        return found

    def save(self, key: str, record: BaseModel) -> None:
        """Update the record with the same id, or append it."""

        if not self.update(key, record):
            self.add(key, record)

    def delete(self, key: str, *ids: str) -> int:
        wanted = set(ids)
        items = self.state.collection(key)
        kept = [item for item in items if item.id not in wanted]
        removed = len(items) - len(kept)
        if removed:
            items[:] = kept
            self._touch(key)
        return removed

    def get_transaction(self, tx_id: str) -> Transaction:
        for tx in self.state.transactions:
            if tx.id == tx_id:
                return tx
        raise KeyError(f"unknown transaction: {tx_id!r}")

    # -- domain operations ---------------------------------------------------

    def commit_import(
        self, transactions: Sequence[Transaction], new_categories: Iterable[Category] = ()
    ) -> int:
        categories = list(new_categories)
        if categories:
            self.add("categories", *categories)
        if transactions:
            self.add("transactions", *transactions)
        _logger.info(
            "state:import_committed transactions=%d categories=%d",
            len(transactions),
            len(categories),
        )
        return len(transactions)

    def add_amazon_metrics(self, metrics: Sequence[AmazonMetric]) -> int:
        if not metrics:
            return 0
        merged = [*self.state.amazon_metrics, *metrics]
        merged.sort(key=lambda m: m.date, reverse=True)
        self.state.amazon_metrics = merged
        self._touch("amazonMetrics")
        return len(metrics)

    def add_youtube_metrics(self, metrics: Sequence[YouTubeMetric]) -> int:
        """Add a report batch; stored rows for the same videos are replaced."""

        if not metrics:
            return 0
        incoming = {m.video_id for m in metrics}
        kept = [m for m in self.state.youtube_metrics if m.video_id not in incoming]
        merged = [*kept, *metrics]
        merged.sort(key=lambda m: m.revenue, reverse=True)
        self.state.youtube_metrics = merged
        self._touch("youtubeMetrics")
        return len(metrics)

    def preview_rule(self, rule: ReconciliationRule) -> list[tuple[Transaction, Transaction]]:
        return find_matching_transactions(self.state.transactions, rule, self.state.accounts)

    def apply_rules(self, rule_ids: Sequence[str] | None = None) -> list[Transaction]:
        """Re-run rules over the stored ledger; returns the rows that changed."""

        rules = self.state.rules
        if rule_ids:
            wanted = set(rule_ids)
            rules = [r for r in rules if r.id in wanted]
        if not rules:
            return []
        changed: list[Transaction] = []
        for rule in rules:
            pairs = find_matching_transactions(self.state.transactions, rule, self.state.accounts)
            if pairs:
                updated = []
                for _, tx in pairs:
                    if rule.id not in tx.applied_rule_ids:
                        tx.applied_rule_ids = [*tx.applied_rule_ids, rule.id]
                    updated.append(tx)
                self.update("transactions", *updated)
                changed.extend(updated)
        return list({tx.id: tx for tx in changed}.values())

    def apply_rules_to_import(self, transactions: Iterable[Transaction]) -> list[Transaction]:
        return apply_rules_to_transactions(transactions, self.state.rules, self.state.accounts)

    def link(self, ids: Sequence[str], *, type_overrides: dict[str, str] | None = None) -> str:
        updated = link_transactions(self.state.transactions, ids, type_overrides=type_overrides)
        self.update("transactions", *updated)
        return updated[0].link_group_id or ""

    def unlink(self, link_group_id: str) -> None:
        self.state.transactions = unlink_group(self.state.transactions, link_group_id)
        self._touch("transactions")

    def split(
        self, tx_id: str, parts: Sequence[SplitPart], *, title: str | None = None
    ) -> list[Transaction]:
        parent, children = split_transaction(self.get_transaction(tx_id), parts, title=title)
        self.update("transactions", parent)
        self.add("transactions", *children)
        return children


__all__ = [
    "DEFAULT_SAVE_DELAY_SECONDS",
    "COLLECTIONS",
    "AppState",
    "DebouncedSaver",
    "FinanceStore",
]
