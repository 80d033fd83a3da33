"""Interactive review steps for imports.

Two operator-facing flows:

- ``review_duplicates``: walk the suspected duplicate pairs from an import,
  show the incoming row next to the stored one, and collect an import/skip
  decision per pair. "import all" / "skip all" settle every remaining pair.
  Esc settles the rest with the default decision (skip).
- ``review_column_mapping``: show the detected header for each mapped field
  and let the operator confirm or correct it before the mapping is cached.

Both take injectable ``selector``/``prompt_fn`` callables so tests can drive
them without a terminal, and a ``print_fn`` for output.
"""

from __future__ import annotations

import builtins
from collections.abc import Callable, Sequence
from decimal import Decimal

from .duplicates import DuplicateDecision
from .ingest.mapping import NOT_FOUND, ColumnMapping
from .logging_setup import get_logger
from .models import DuplicatePair, Transaction
from .term_ui import (
    IMPORT,
    SKIP,
    prompt_column_choice,
    select_duplicate_action,
)

_logger = get_logger("finance_tracker.review")

# selector(default) -> chosen action or None (cancel)
DuplicateSelector = Callable[[str], str | None]
# prompt_fn(field, headers, current) -> index, NOT_FOUND, or None (cancel)
ColumnPrompt = Callable[[str, Sequence[str], int], int | None]


# ----------------------------------------------------------------------------
# Presentation helpers
# ----------------------------------------------------------------------------


def _fmt_amount(value: Decimal) -> str:
    sign = "-" if value < 0 else ""
    return f"{sign}${abs(value):,.2f}"


def _fmt_tx_line(label: str, tx: Transaction) -> str:
    desc = tx.original_description or tx.description
    account = f" [{tx.account_id}]" if tx.account_id else ""
    amount = _fmt_amount(tx.amount)
    return f"  {label:<8} {tx.date.isoformat()}  {amount:>12}  {desc[:60]}{account}"


def _render_pair(pair: DuplicatePair, *, position: int, total: int, print_fn) -> None:
    print_fn(f"Possible duplicate {position}/{total}:")
    print_fn(_fmt_tx_line("new", pair.new_tx))
    print_fn(_fmt_tx_line("stored", pair.existing_tx))


def _default_selector(default: str) -> str | None:
    return select_duplicate_action(default=default)


# ----------------------------------------------------------------------------
# Duplicates
# ----------------------------------------------------------------------------


def review_duplicates(
    pairs: Sequence[DuplicatePair],
    *,
    selector: DuplicateSelector | None = None,
    print_fn: Callable[..., None] = builtins.print,
    default: DuplicateDecision = DuplicateDecision.SKIP,
) -> dict[str, DuplicateDecision]:
    """Collect a decision per pair, keyed by the incoming transaction id.

    Parameters
    ----------
    selector:
        Optional injection point for tests; receives the default action string
        and returns one of ``skip``/``import``/``skip all``/``import all`` or
        ``None`` to stop reviewing. Defaults to the prompt_toolkit prompt.
    default:
        Decision offered first and applied to pairs left undecided on cancel.
    """

    if not pairs:
        return {}

    choose = selector or _default_selector
    decisions: dict[str, DuplicateDecision] = {}
    bulk: DuplicateDecision | None = None
    default_action = IMPORT if default == DuplicateDecision.IMPORT else SKIP

    for n, pair in enumerate(pairs, start=1):
        key = pair.new_tx.id
        if bulk is not None:
            decisions[key] = bulk
            continue

        _render_pair(pair, position=n, total=len(pairs), print_fn=print_fn)
        action = choose(default_action)
        if action is None:
            print_fn("Review cancelled; remaining duplicates use the default.")
            bulk = default
            decisions[key] = default
            continue

        match action:
            case "import":
                decisions[key] = DuplicateDecision.IMPORT
            case "skip":
                decisions[key] = DuplicateDecision.SKIP
            case "import all":
                bulk = DuplicateDecision.IMPORT
                decisions[key] = bulk
            case "skip all":
                bulk = DuplicateDecision.SKIP
                decisions[key] = bulk
            case _:
                raise ValueError(f"unknown duplicate action: {action!r}")
        print_fn("")

    imported = sum(1 for d in decisions.values() if d == DuplicateDecision.IMPORT)
    _logger.info(
        "review:duplicates pairs=%d import=%d skip=%d", len(pairs), imported, len(pairs) - imported
    )
    print_fn(f"Duplicates: importing {imported}, skipping {len(pairs) - imported}.")
    return decisions


# ----------------------------------------------------------------------------
# Column mapping
# ----------------------------------------------------------------------------


def _default_column_prompt(field_name: str, headers: Sequence[str], current: int) -> int | None:
    return prompt_column_choice(field_name, headers, current=current)


def describe_mapping(mapping: ColumnMapping, headers: Sequence[str]) -> list[str]:
    lines = []
    for name, idx in mapping.model_dump().items():
        label = headers[idx] if 0 <= idx < len(headers) else "(not mapped)"
        lines.append(f"  {name:<16} -> {label}")
    return lines


def review_column_mapping(
    mapping: ColumnMapping,
    headers: Sequence[str],
    *,
    prompt_fn: ColumnPrompt | None = None,
    print_fn: Callable[..., None] = builtins.print,
) -> ColumnMapping | None:
    """Confirm or correct ``mapping`` field by field.

    Returns the (possibly corrected) mapping, or ``None`` when the operator
    cancels.
    """

    ask = prompt_fn or _default_column_prompt
    print_fn("Detected columns:")
    for line in describe_mapping(mapping, headers):
        print_fn(line)

    overrides: dict[str, int] = {}
    for name, current in mapping.model_dump().items():
        chosen = ask(name, headers, current)
        if chosen is None:
            print_fn("Mapping cancelled.")
            return None
        if chosen != current:
            overrides[name] = chosen if chosen >= 0 else NOT_FOUND
    if not overrides:
        return mapping
    _logger.debug("review:mapping_overrides fields=%s", ",".join(sorted(overrides)))
    return mapping.with_overrides(**overrides)


__all__ = [
    "DuplicateSelector",
    "ColumnPrompt",
    "review_duplicates",
    "describe_mapping",
    "review_column_mapping",
]
