"""Duplicate detection between an import batch and the stored ledger.

Public surface:
- ``transaction_signature``: ``date|amount(2dp)|description|account`` key used
  to prefer exact repeats over fuzzy ones.
- ``descriptions_similar``: normalized equality, normalized substring in either
  direction, or a rapidfuzz token-set ratio at or above the threshold.
- ``find_duplicates``: split candidates into ``added`` and ``duplicates``
  (``DuplicatePair`` objects for human review). A candidate is a duplicate of
  a stored row with the same date, amounts within one cent, compatible
  accounts (equal, or either side unset) and similar descriptions. Each stored
  row backs at most one pair, so two identical coffees on the same day in the
  file only collide with two stored coffees. Nothing is merged automatically.
- ``resolve_duplicates`` plus the bulk helpers: turn per-pair decisions into
  the list of candidates to import. The default decision is ``skip``.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum

from rapidfuzz import fuzz

from .logging_setup import get_logger
from .models import DuplicatePair, Transaction
from .normalizers import format_amount, normalize_text

_logger = get_logger("finance_tracker.duplicates")

AMOUNT_TOLERANCE = Decimal("0.01")
# token_set_ratio ignores extra tokens on one side ("SHELL GAS #4471" vs
# "Shell Gas"), so the bar can stay high.
DEFAULT_SIMILARITY_THRESHOLD: float = 90.0


class DuplicateDecision(str, Enum):
    IMPORT = "import"
    SKIP = "skip"


@dataclass(frozen=True, slots=True)
class DuplicateCheck:
    added: list[Transaction] = field(default_factory=list)
    duplicates: list[DuplicatePair] = field(default_factory=list)


def transaction_signature(tx: Transaction) -> str:
    desc = (tx.description or "").strip().lower()
    return f"{tx.date.isoformat()}|{format_amount(tx.amount)}|{desc}|{tx.account_id or ''}"


def descriptions_similar(
    a: str | None, b: str | None, *, threshold: float = DEFAULT_SIMILARITY_THRESHOLD
) -> bool:
    na, nb = normalize_text(a), normalize_text(b)
    if not na or not nb:
        return False
    if na == nb or na in nb or nb in na:
        return True
    return fuzz.token_set_ratio(na, nb) >= threshold


def _accounts_compatible(a: Transaction, b: Transaction) -> bool:
    if a.account_id and b.account_id:
        return a.account_id == b.account_id
    return True


def _amounts_equal(a: Transaction, b: Transaction) -> bool:
    return abs(a.amount - b.amount) < AMOUNT_TOLERANCE


def _compare_text(tx: Transaction) -> str:
    return tx.original_description or tx.description


def find_duplicates(
    candidates: Iterable[Transaction],
    existing: Iterable[Transaction],
    *,
    threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
) -> DuplicateCheck:
    """Pair each candidate with at most one unclaimed stored transaction."""

    stored = list(existing)
    by_date: dict[date, list[int]] = defaultdict(list)
    for i, tx in enumerate(stored):
        by_date[tx.date].append(i)
    signatures = [transaction_signature(tx) for tx in stored]

    claimed: set[int] = set()
    result = DuplicateCheck()
    for cand in candidates:
        pool = [
            i
            for i in by_date.get(cand.date, ())
            if i not in claimed
            and _amounts_equal(cand, stored[i])
            and _accounts_compatible(cand, stored[i])
        ]
        cand_sig = transaction_signature(cand)
        match = next((i for i in pool if signatures[i] == cand_sig), None)
        if match is None:
            match = next(
                (
                    i
                    for i in pool
                    if descriptions_similar(
                        _compare_text(cand), _compare_text(stored[i]), threshold=threshold
                    )
                ),
                None,
            )
        if match is None:
            result.added.append(cand)
            continue
        claimed.add(match)
        result.duplicates.append(DuplicatePair(new_tx=cand, existing_tx=stored[match]))

    _logger.info(
        "duplicates:checked candidates=%d added=%d duplicates=%d",
        len(result.added) + len(result.duplicates),
        len(result.added),
        len(result.duplicates),
    )
    return result


# ----------------------------------------------------------------------------
# Decisions
# ----------------------------------------------------------------------------


def import_all(pairs: Sequence[DuplicatePair]) -> dict[str, DuplicateDecision]:
    return {p.new_tx.id: DuplicateDecision.IMPORT for p in pairs}


def skip_all(pairs: Sequence[DuplicatePair]) -> dict[str, DuplicateDecision]:
    return {p.new_tx.id: DuplicateDecision.SKIP for p in pairs}


def resolve_duplicates(
    pairs: Sequence[DuplicatePair],
    decisions: Mapping[str, DuplicateDecision] | None = None,
    *,
    default: DuplicateDecision = DuplicateDecision.SKIP,
) -> list[Transaction]:
    """Return the candidates the user chose to import anyway.

    ``decisions`` is keyed by the candidate's id; pairs without a decision use
    ``default``.
    """

    chosen = decisions or {}
    return [
        p.new_tx
        for p in pairs
        if chosen.get(p.new_tx.id, default) == DuplicateDecision.IMPORT
    ]


__all__ = [
    "AMOUNT_TOLERANCE",
    "DEFAULT_SIMILARITY_THRESHOLD",
    "DuplicateDecision",
    "DuplicateCheck",
    "transaction_signature",
    "descriptions_similar",
    "find_duplicates",
    "import_all",
    "skip_all",
    "resolve_duplicates",
]
