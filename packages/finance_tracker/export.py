"""Clipboard-friendly TSV export of ledger rows.

``build_clipboard_tsv`` renders a header row plus one line per transaction for
the selected columns. Cell text never contains tabs or line breaks (they are
replaced with single spaces) so the output pastes cleanly into a spreadsheet.

``copy_to_clipboard`` hands text to the platform clipboard tool (``pbcopy``,
``wl-copy``, ``xclip``, ``xsel`` or ``clip``) and raises ``ClipboardError`` when
none is available or the tool fails. There is no retry.
"""

from __future__ import annotations

import re
import shutil
import subprocess
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Literal

from .logging_setup import get_logger
from .models import Transaction
from .normalizers import format_amount

_logger = get_logger("finance_tracker.export")

ExportColumn = Literal[
    "date",
    "description",
    "original_description",
    "payee",
    "category",
    "account",
    "type",
    "amount",
    "tags",
    "notes",
]

COLUMN_LABELS: dict[str, str] = {
    "date": "Date",
    "description": "Description",
    "original_description": "Original Description",
    "payee": "Entity/Payee",
    "category": "Category",
    "account": "Account",
    "type": "Transaction Type",
    "amount": "Amount",
    "tags": "Tags",
    "notes": "Notes",
}

DEFAULT_COLUMNS: tuple[str, ...] = ("date", "description", "category", "account", "amount")

_CELL_WS_RE = re.compile(r"[\t\r\n]+")


class ClipboardError(RuntimeError):
    """Raised when text could not be placed on the system clipboard."""


@dataclass(frozen=True, slots=True)
class ExportLookups:
    """Id -> display name maps used to resolve reference columns."""

    categories: Mapping[str, str] = field(default_factory=dict)
    accounts: Mapping[str, str] = field(default_factory=dict)
    payees: Mapping[str, str] = field(default_factory=dict)
    types: Mapping[str, str] = field(default_factory=dict)
    tags: Mapping[str, str] = field(default_factory=dict)


def _clean_cell(value: str) -> str:
    return _CELL_WS_RE.sub(" ", value)


def _cell(tx: Transaction, column: str, lookups: ExportLookups) -> str:
    match column:
        case "date":
            return tx.date.isoformat()
        case "description":
            return tx.description
        case "original_description":
            return tx.original_description or ""
        case "payee":
            return lookups.payees.get(tx.payee_id or "", "")
        case "category":
            name = lookups.categories.get(tx.category_id or "")
            return name or tx.category or ""
        case "account":
            return lookups.accounts.get(tx.account_id or "", "")
        case "type":
            return lookups.types.get(tx.type_id, "")
        case "amount":
            return format_amount(tx.amount)
        case "tags":
            return ", ".join(lookups.tags.get(t, t) for t in tx.tag_ids)
        case "notes":
            return tx.notes or ""
        case _:
            raise ValueError(f"unknown export column: {column!r}")


def build_clipboard_tsv(
    transactions: Iterable[Transaction],
    columns: Sequence[str] = DEFAULT_COLUMNS,
    lookups: ExportLookups | None = None,
) -> str:
    """Return ``columns`` of ``transactions`` as tab-separated text with a header row."""

    unknown = [c for c in columns if c not in COLUMN_LABELS]
    if unknown:
        raise ValueError(f"unknown export column(s): {', '.join(unknown)}")
    lk = lookups or ExportLookups()
    lines = ["\t".join(COLUMN_LABELS[c] for c in columns)]
    for tx in transactions:
        lines.append("\t".join(_clean_cell(_cell(tx, c, lk)) for c in columns))
    return "\n".join(lines)


# ----------------------------------------------------------------------------
# Clipboard
# ----------------------------------------------------------------------------

_CLIPBOARD_COMMANDS: tuple[tuple[str, ...], ...] = (
    ("pbcopy",),
    ("wl-copy",),
    ("xclip", "-selection", "clipboard"),
    ("xsel", "--clipboard", "--input"),
    ("clip",),
)


def _find_clipboard_command() -> list[str] | None:
    for cmd in _CLIPBOARD_COMMANDS:
        path = shutil.which(cmd[0])
        if path:
            return [path, *cmd[1:]]
    return None


def copy_to_clipboard(text: str, *, command: Sequence[str] | None = None) -> None:
    argv = list(command) if command else _find_clipboard_command()
    if not argv:
        raise ClipboardError("no clipboard tool found (tried pbcopy, wl-copy, xclip, xsel, clip)")
    try:
        subprocess.run(argv, input=text.encode("utf-8"), check=True, timeout=10)
    except (OSError, subprocess.SubprocessError) as e:
        raise ClipboardError(f"could not copy to clipboard: {e}") from e
    _logger.debug("export:copied chars=%d tool=%s", len(text), argv[0])


__all__ = [
    "ExportColumn",
    "COLUMN_LABELS",
    "DEFAULT_COLUMNS",
    "ClipboardError",
    "ExportLookups",
    "build_clipboard_tsv",
    "copy_to_clipboard",
]
