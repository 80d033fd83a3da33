"""Link groups: transfer detection, manual linking, unlinking and splits.

A link group is a set of ledger rows sharing ``link_group_id`` that record one
real-world event. Two shapes exist:

- transfer groups: rows from different accounts whose totals cancel out, e.g.
  a 500.00 card payment leaving checking against the 300.00 and 200.00 it
  paid off on the card;
- split groups: one ``is_parent`` container plus children (same
  ``link_group_id``, ``parent_transaction_id`` pointing at the parent) whose
  amounts add up to the parent's.

Detection only proposes groups. Nothing is linked until the caller passes the
ids to ``link_transactions``.
"""

from __future__ import annotations

import itertools
from collections import defaultdict
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from decimal import Decimal

from .logging_setup import get_logger
from .models import BalanceEffect, Transaction, TransactionType, new_id

_logger = get_logger("finance_tracker.linking")

DEFAULT_TOLERANCE = Decimal("0.05")
DEFAULT_WINDOW_DAYS = 5
DEFAULT_MAX_SIDE_SIZE = 4
# Upper bound on candidates considered per anchor; keeps subset search small.
_MAX_POOL = 20
_SPLIT_TOLERANCE = Decimal("0.01")


def _as_amount(item: Transaction | Decimal | int | float | str) -> Decimal:
    if isinstance(item, Transaction):
        return item.amount
    if isinstance(item, Decimal):
        return item
    return Decimal(str(item))


def side_total(side: Iterable[Transaction | Decimal | int | float | str]) -> Decimal:
    return sum((_as_amount(x) for x in side), Decimal(0))


def sides_balance(
    side_a: Iterable[Transaction | Decimal | int | float | str],
    side_b: Iterable[Transaction | Decimal | int | float | str],
    *,
    tolerance: Decimal = DEFAULT_TOLERANCE,
) -> bool:
    """True when the two sides' totals are equal in magnitude within ``tolerance``."""

    return abs(abs(side_total(side_a)) - abs(side_total(side_b))) <= tolerance


@dataclass(frozen=True, slots=True)
class TransferGroup:
    side_a: tuple[Transaction, ...]
    side_b: tuple[Transaction, ...]

    @property
    def total_a(self) -> Decimal:
        return side_total(self.side_a)

    @property
    def total_b(self) -> Decimal:
        return side_total(self.side_b)

    @property
    def difference(self) -> Decimal:
        return abs(abs(self.total_a) - abs(self.total_b))

    @property
    def transaction_ids(self) -> list[str]:
        return [t.id for t in (*self.side_a, *self.side_b)]


def group_by_link(transactions: Iterable[Transaction]) -> dict[str, list[Transaction]]:
    groups: dict[str, list[Transaction]] = defaultdict(list)
    for tx in transactions:
        if tx.link_group_id:
            groups[tx.link_group_id].append(tx)
    return dict(groups)


def _is_free(tx: Transaction) -> bool:
    return not tx.link_group_id and not tx.is_parent and not tx.parent_transaction_id


def _different_accounts(a: Transaction, b: Transaction) -> bool:
    if a.account_id and b.account_id:
        return a.account_id != b.account_id
    return True


def find_transfer_groups(
    transactions: Sequence[Transaction],
    transaction_types: Sequence[TransactionType],
    *,
    tolerance: Decimal = DEFAULT_TOLERANCE,
    window_days: int = DEFAULT_WINDOW_DAYS,
    max_side_size: int = DEFAULT_MAX_SIDE_SIZE,
) -> list[TransferGroup]:
    """Propose transfer groups among unlinked rows.

    Anchors are unlinked transfer-typed rows, largest first. For each anchor
    the smallest set of unlinked rows from other accounts, dated within
    ``window_days``, whose total matches the anchor's amount is proposed. A row
    joins at most one proposal.
    """

    transfer_type_ids = {
        t.id for t in transaction_types if t.balance_effect == BalanceEffect.TRANSFER
    }
    free = [tx for tx in transactions if _is_free(tx)]
    anchors = sorted(
        (tx for tx in free if tx.type_id in transfer_type_ids),
        key=lambda t: (-t.amount, t.date, t.id),
    )

    used: set[str] = set()
    groups: list[TransferGroup] = []
    for anchor in anchors:
        if anchor.id in used:
            continue
        pool = [
            tx
            for tx in free
            if tx.id != anchor.id
            and tx.id not in used
            and _different_accounts(anchor, tx)
            and abs((tx.date - anchor.date).days) <= window_days
            and tx.amount <= anchor.amount + tolerance
        ]
        pool.sort(key=lambda t: (abs((t.date - anchor.date).days), -t.amount, t.id))
        pool = pool[:_MAX_POOL]

        match: tuple[Transaction, ...] | None = None
        for size in range(1, max_side_size + 1):
            for combo in itertools.combinations(pool, size):
                if sides_balance((anchor,), combo, tolerance=tolerance):
                    match = combo
                    break
            if match is not None:
                break
        if match is None:
            continue

        groups.append(TransferGroup(side_a=(anchor,), side_b=match))
        used.add(anchor.id)
        used.update(t.id for t in match)

    _logger.info("linking:transfer_groups anchors=%d proposed=%d", len(anchors), len(groups))
    return groups


def link_transactions(
    transactions: Iterable[Transaction],
    ids: Sequence[str],
    *,
    type_overrides: dict[str, str] | None = None,
) -> list[Transaction]:
    """Stamp a fresh ``link_group_id`` on the selected rows; return updated copies.

    ``type_overrides`` optionally re-types members (e.g. the payment side as a
    transfer) in the same step.
    """

    wanted = set(ids)
    selected = [tx for tx in transactions if tx.id in wanted]
    if len(selected) < 2:
        raise ValueError("at least 2 transactions are required to create a link group")
    group_id = new_id()
    overrides = type_overrides or {}
    updated: list[Transaction] = []
    for tx in selected:
        changes: dict[str, object] = {"link_group_id": group_id}
        if tx.id in overrides:
            changes["type_id"] = overrides[tx.id]
        updated.append(tx.model_copy(update=changes, deep=True))
    return updated


def unlink_group(transactions: Iterable[Transaction], link_group_id: str) -> list[Transaction]:
    """Dissolve a link group and return the resulting full transaction list.

    For a split group the children are removed and the parent is restored as
    a plain transaction. Otherwise every member just loses its link id.
    """

    txs = list(transactions)
    members = [tx for tx in txs if tx.link_group_id == link_group_id]
    if not members:
        raise ValueError(f"no transactions in link group {link_group_id!r}")

    parent = next((tx for tx in members if tx.is_parent), None)
    out: list[Transaction] = []
    for tx in txs:
        if tx.link_group_id != link_group_id:
            out.append(tx)
            continue
        if parent is not None and not tx.is_parent:
            continue  # split child
        out.append(
            tx.model_copy(
                update={"link_group_id": None, "is_parent": False, "parent_transaction_id": None},
                deep=True,
            )
        )
    return out


@dataclass(frozen=True, slots=True)
class SplitPart:
    description: str
    amount: Decimal
    category_id: str | None = None
    category: str | None = None
    type_id: str | None = None


def split_transaction(
    tx: Transaction, parts: Sequence[SplitPart], *, title: str | None = None
) -> tuple[Transaction, list[Transaction]]:
    """Turn ``tx`` into a split container plus one child per part.

    The parts must number at least two and add up to the original amount
    (within one cent). Children inherit date, account, payee, user, location
    and source file from the original.
    """

    if tx.is_parent:
        raise ValueError("transaction is already split")
    if len(parts) < 2:
        raise ValueError("a split transaction must have at least 2 parts")
    total = side_total(p.amount for p in parts)
    if abs(total - tx.amount) >= _SPLIT_TOLERANCE:
        raise ValueError(
            f"split parts total {total:.2f} does not equal the original amount {tx.amount:.2f}"
        )
    if any(p.amount < 0 for p in parts):
        raise ValueError("split part amounts must not be negative")

    group_id = tx.link_group_id or new_id()
    parent = tx.model_copy(
        update={
            "description": title or tx.description,
            "is_parent": True,
            "link_group_id": group_id,
        },
        deep=True,
    )
    children = [
        Transaction(
            date=tx.date,
            description=p.description,
            amount=p.amount,
            category_id=p.category_id if p.category_id is not None else tx.category_id,
            category=p.category or "Split",
            type_id=p.type_id or tx.type_id,
            account_id=tx.account_id,
            payee_id=tx.payee_id,
            user_id=tx.user_id,
            location_id=tx.location_id,
            source_filename=tx.source_filename,
            link_group_id=group_id,
            parent_transaction_id=tx.id,
        )
        for p in parts
    ]
    return parent, children


__all__ = [
    "DEFAULT_TOLERANCE",
    "DEFAULT_WINDOW_DAYS",
    "DEFAULT_MAX_SIDE_SIZE",
    "side_total",
    "sides_balance",
    "TransferGroup",
    "group_by_link",
    "find_transfer_groups",
    "link_transactions",
    "unlink_group",
    "SplitPart",
    "split_transaction",
]
