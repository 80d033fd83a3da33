import subprocess
from datetime import date
from decimal import Decimal

import pytest

from finance_tracker import export
from finance_tracker.export import (
    ClipboardError,
    ExportLookups,
    build_clipboard_tsv,
    copy_to_clipboard,
)
from finance_tracker.models import Transaction


def _tx(**kwargs) -> Transaction:
    base = {
        "date": date(2024, 3, 1),
        "description": "Coffee",
        "amount": Decimal("4.5"),
        "type_id": "default-expense-purchase",
    }
    return Transaction(**(base | kwargs))


def test_default_columns_and_lookups():
    lookups = ExportLookups(
        categories={"cat-dining": "Dining"},
        accounts={"acct-1": "Checking"},
    )
    rows = [
        _tx(category_id="cat-dining", account_id="acct-1"),
        _tx(description="Refund", amount=Decimal("12"), category="Uncategorized"),
    ]

    tsv = build_clipboard_tsv(rows, lookups=lookups)

    assert tsv.split("\n") == [
        "Date\tDescription\tCategory\tAccount\tAmount",
        "2024-03-01\tCoffee\tDining\tChecking\t4.50",
        "2024-03-01\tRefund\tUncategorized\t\t12.00",
    ]


def test_cells_never_contain_tabs_or_newlines():
    tx = _tx(description="Line one\nLine\ttwo", notes="a\r\nb")

    tsv = build_clipboard_tsv([tx], ["description", "notes"])

    assert tsv == "Description\tNotes\nLine one Line two\ta b"


def test_reference_columns_resolve_names():
    lookups = ExportLookups(
        payees={"p1": "Blue Bottle"},
        types={"default-expense-purchase": "Purchase"},
        tags={"t1": "Habit"},
    )
    tx = _tx(payee_id="p1", tag_ids=["t1", "t-unknown"], original_description="SQ *BLUE BOTTLE")

    tsv = build_clipboard_tsv([tx], ["payee", "type", "tags", "original_description"], lookups)

    assert tsv.split("\n")[0] == "Entity/Payee\tTransaction Type\tTags\tOriginal Description"
    assert tsv.split("\n")[1] == "Blue Bottle\tPurchase\tHabit, t-unknown\tSQ *BLUE BOTTLE"


def test_unknown_column_rejected():
    with pytest.raises(ValueError, match="balance"):
        build_clipboard_tsv([_tx()], ["date", "balance"])


def test_empty_ledger_exports_header_only():
    assert build_clipboard_tsv([], ["date", "amount"]) == "Date\tAmount"


def test_copy_to_clipboard_pipes_text_to_tool(monkeypatch):
    seen = {}

    def fake_run(argv, *, input, check, timeout):
        seen["argv"] = argv
        seen["input"] = input
        return subprocess.CompletedProcess(argv, 0)

    monkeypatch.setattr(export.subprocess, "run", fake_run)

    copy_to_clipboard("a\tb", command=["pbcopy"])

    assert seen == {"argv": ["pbcopy"], "input": b"a\tb"}


def test_copy_to_clipboard_without_tool_raises(monkeypatch):
    monkeypatch.setattr(export.shutil, "which", lambda name: None)

    with pytest.raises(ClipboardError):
        copy_to_clipboard("text")


def test_copy_to_clipboard_tool_failure_raises(monkeypatch):
    def failing_run(argv, **kwargs):
        raise subprocess.CalledProcessError(1, argv)

    monkeypatch.setattr(export.subprocess, "run", failing_run)

    with pytest.raises(ClipboardError):
        copy_to_clipboard("text", command=["xclip", "-selection", "clipboard"])
