# ruff: noqa: I001
"""CLI for the ``finance_tracker`` package.

This module exposes callable command handlers (``cmd_import_statement``,
``cmd_export_tsv``...) and a Typer-based console interface on top of them.
Handlers return a process exit code and print ``Error: ...`` to stderr on
failure. Environment variables (``DATABASE_URL``, ``FT_CACHE_DIR``...) are
loaded from a local ``.env`` using ``python-dotenv`` by the root callback.
Business logic lives in ``finance_tracker.api`` and the modules it calls.
"""

from __future__ import annotations

import sys
from collections.abc import Sequence
from pathlib import Path
from typing import Annotated, cast

import typer
from dotenv import load_dotenv
from typer.models import OptionInfo

from .logging_setup import configure_logging, get_logger

_logger = get_logger("finance_tracker.cli")


def _err(message: str) -> None:
    print(f"Error: {message}", file=sys.stderr)


def _read_input(csv_path: str) -> str | None:
    """Read an import file, reporting failures; ``None`` means the caller returns 1."""

    from .ingest.utils import UnsupportedFormatError, read_import_text

    try:
        return read_import_text(csv_path)
    except FileNotFoundError:
        _err(f"File not found: {csv_path}")
    except PermissionError:
        _err(f"Permission denied: {csv_path}")
    except UnsupportedFormatError as e:
        _err(str(e))
    except (OSError, UnicodeDecodeError) as e:
        _err(f"Unexpected failure reading '{csv_path}': {e}")
    return None


def _resolve_mapping(kind, headers, *, interactive: bool, prompt_fn=None):
    """Cached or detected mapping; interactive runs confirm and cache it.

    Returns ``None`` when the operator cancels the mapping review.
    """

    from .api import confirm_mapping, detect_mapping
    from .review import review_column_mapping

    mapping, from_cache = detect_mapping(kind, headers)
    if from_cache or not interactive:
        return mapping
    confirmed = review_column_mapping(mapping, headers, prompt_fn=prompt_fn)
    if confirmed is None:
        return None
    confirm_mapping(kind, headers, confirmed)
    return confirmed


# ----------------------------------------------------------------------------
# Command handlers
# ----------------------------------------------------------------------------


def cmd_import_statement(
    csv_path: str,
    *,
    account_id: str | None = None,
    database_url: str | None = None,
    interactive: bool = True,
    import_duplicates: bool = False,
    selector=None,
    prompt_fn=None,
) -> int:
    """Import a bank statement: map, apply rules, review duplicates, commit."""

    from .api import import_bank_statement
    from .duplicates import import_all, resolve_duplicates
    from .ingest.mapping import BankColumnMapping, MappingError
    from .ingest.tabular import read_bank_table
    from .persistence import DEFAULT_ACCOUNT_ID
    from .review import review_duplicates
    from .state import FinanceStore

    text = _read_input(csv_path)
    if text is None:
        return 1

    store = FinanceStore.load(database_url=database_url)
    try:
        state = store.state
        target_account = account_id or DEFAULT_ACCOUNT_ID
        if not any(a.id == target_account for a in state.accounts):
            _err(f"Unknown account: {target_account}")
            return 1
        default_user = next((u for u in state.users if u.is_default), None) or (
            state.users[0] if state.users else None
        )

        table = read_bank_table(text)
        if not table.headers:
            _err("could not find a header row with date and amount columns")
            return 1
        mapping = _resolve_mapping(
            "bank", table.headers, interactive=interactive, prompt_fn=prompt_fn
        )
        if mapping is None:
            print("Import cancelled.")
            return 1

        try:
            result = import_bank_statement(
                text,
                existing=state.transactions,
                transaction_types=state.transaction_types,
                rules=state.rules,
                accounts=state.accounts,
                account_id=target_account,
                source_filename=Path(csv_path).name,
                user_id=default_user.id if default_user else None,
                mapping=cast(BankColumnMapping, mapping),
            )
        except MappingError as e:
            _err(str(e))
            return 1

        if import_duplicates:
            decisions = import_all(result.duplicates)
        elif interactive and result.duplicates:
            decisions = review_duplicates(result.duplicates, selector=selector)
        else:
            decisions = {}
        accepted = resolve_duplicates(result.duplicates, decisions)

        added = store.commit_import([*result.added, *accepted])
        store.flush()
        print(
            f"Imported {added} transactions "
            f"({len(result.duplicates) - len(accepted)} duplicates skipped, "
            f"{len(result.ignored)} ignored by rules)."
        )
        return 0
    finally:
        store.close()


def cmd_import_amazon(
    csv_path: str,
    *,
    source: str = "auto",
    database_url: str | None = None,
    confirm_mapping: bool = False,
    prompt_fn=None,
) -> int:
    """Import an Amazon earnings/associates report into ``amazonMetrics``."""

    from .api import import_amazon_report
    from .ingest.mapping import AmazonColumnMapping, MappingError
    from .ingest.tabular import read_string_as_table
    from .state import FinanceStore

    text = _read_input(csv_path)
    if text is None:
        return 1
    table = read_string_as_table(text)
    mapping = _resolve_mapping(
        "amazon", table.headers, interactive=confirm_mapping, prompt_fn=prompt_fn
    )
    if mapping is None:
        print("Import cancelled.")
        return 1
    try:
        metrics = import_amazon_report(
            text,
            source=source,  # type: ignore[arg-type]
            mapping=cast(AmazonColumnMapping, mapping),
        )
    except MappingError as e:
        _err(str(e))
        return 1

    store = FinanceStore.load(database_url=database_url)
    try:
        added = store.add_amazon_metrics(metrics)
        store.flush()
    finally:
        store.close()
    print(f"Imported {added} Amazon metric rows.")
    return 0


def cmd_import_youtube(
    csv_path: str,
    *,
    database_url: str | None = None,
    confirm_mapping: bool = False,
    prompt_fn=None,
) -> int:
    """Import a YouTube content report into ``youtubeMetrics``."""

    from .api import import_youtube_report
    from .ingest.mapping import MappingError, YouTubeColumnMapping
    from .ingest.tabular import read_string_as_table
    from .state import FinanceStore

    text = _read_input(csv_path)
    if text is None:
        return 1
    table = read_string_as_table(text)
    mapping = _resolve_mapping(
        "youtube", table.headers, interactive=confirm_mapping, prompt_fn=prompt_fn
    )
    if mapping is None:
        print("Import cancelled.")
        return 1
    try:
        metrics = import_youtube_report(text, mapping=cast(YouTubeColumnMapping, mapping))
    except MappingError as e:
        _err(str(e))
        return 1

    store = FinanceStore.load(database_url=database_url)
    try:
        added = store.add_youtube_metrics(metrics)
        store.flush()
    finally:
        store.close()
    print(f"Imported {added} YouTube video rows.")
    return 0


def cmd_apply_rules(
    *,
    rule_ids: Sequence[str] = (),
    dry_run: bool = False,
    database_url: str | None = None,
) -> int:
    """Re-run reconciliation rules over stored transactions."""

    from .state import FinanceStore

    store = FinanceStore.load(database_url=database_url)
    try:
        rules = store.state.rules
        if rule_ids:
            known = {r.id for r in rules}
            unknown = [r for r in rule_ids if r not in known]
            if unknown:
                _err(f"Unknown rule id(s): {', '.join(unknown)}")
                return 1
        if dry_run:
            wanted = set(rule_ids)
            for rule in rules:
                if wanted and rule.id not in wanted:
                    continue
                pairs = store.preview_rule(rule)
                print(f"{rule.name or rule.id}\t{len(pairs)} transactions would change")
            return 0
        changed = store.apply_rules(rule_ids or None)
        store.flush()
        print(f"Updated {len(changed)} transactions.")
        return 0
    finally:
        store.close()


def cmd_find_transfers(*, link: bool = False, database_url: str | None = None) -> int:
    """Propose transfer groups; with ``link`` stamp a link group on each."""

    from .linking import find_transfer_groups
    from .state import FinanceStore

    store = FinanceStore.load(database_url=database_url)
    try:
        groups = find_transfer_groups(store.state.transactions, store.state.transaction_types)
        if not groups:
            print("No transfer groups found.")
            return 0
        for n, group in enumerate(groups, start=1):
            anchor = group.side_a[0]
            print(
                f"Group {n}: {anchor.date.isoformat()} {anchor.description} "
                f"{group.total_a:.2f} <-> {len(group.side_b)} transaction(s) {group.total_b:.2f}"
            )
            for tx in group.side_b:
                print(f"  {tx.date.isoformat()}\t{tx.amount:.2f}\t{tx.description}")
            if link:
                store.link(group.transaction_ids)
        if link:
            store.flush()
            print(f"Linked {len(groups)} groups.")
        return 0
    finally:
        store.close()


def cmd_export_tsv(
    *,
    columns: Sequence[str] = (),
    copy: bool = False,
    database_url: str | None = None,
) -> int:
    """Print (or copy) the ledger as TSV for pasting into a spreadsheet."""

    from .export import (
        DEFAULT_COLUMNS,
        ClipboardError,
        ExportLookups,
        build_clipboard_tsv,
        copy_to_clipboard,
    )
    from .state import FinanceStore

    store = FinanceStore.load(database_url=database_url)
    try:
        state = store.state
        lookups = ExportLookups(
            categories={c.id: c.name for c in state.categories},
            accounts={a.id: a.name for a in state.accounts},
            payees={p.id: p.name for p in state.payees},
            types={t.id: t.name for t in state.transaction_types},
            tags={t.id: t.name for t in state.tags},
        )
        rows = [tx for tx in state.transactions if not tx.is_parent]
        try:
            tsv = build_clipboard_tsv(rows, list(columns) or DEFAULT_COLUMNS, lookups)
        except ValueError as e:
            _err(str(e))
            return 1
    finally:
        store.close()

    if not copy:
        print(tsv)
        return 0
    try:
        copy_to_clipboard(tsv)
    except ClipboardError as e:
        _err(str(e))
        return 1
    print(f"Copied {len(rows)} rows to the clipboard.")
    return 0


# ----------------------------------------------------------------------------
# Typer app
# ----------------------------------------------------------------------------

app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help=(
        "Import bank statements and affiliate reports into a local ledger, apply "
        "reconciliation rules and export results. Loads a local .env before running."
    ),
)

# Module-level option objects to satisfy ruff B008 (no calls in parameter
# defaults). Typer will inspect these when used as default values below.
CSV_PATH_OPTION: OptionInfo = typer.Option(
    ...,  # required
    "--csv-path",
    help="Path to a CSV/TSV export to import",
    dir_okay=False,
    file_okay=True,
    exists=False,  # allow non-existent here; the handler will report nice errors
    readable=True,
)
DATABASE_URL_OPTION: OptionInfo = typer.Option(
    ..., "--database-url", help="Override DATABASE_URL (falls back to env var)."
)


def _exit(code: int) -> None:
    if code:
        raise typer.Exit(code)


@app.command("import-statement")
def import_statement_cmd(
    csv_path: Annotated[Path, CSV_PATH_OPTION],
    database_url: Annotated[str | None, DATABASE_URL_OPTION] = None,
    *,
    account_id: str | None = typer.Option(
        None, help="Account the statement belongs to (defaults to the 'Other' account)."
    ),
    interactive: bool = typer.Option(
        True, help="Confirm column mapping and review suspected duplicates."
    ),
    import_duplicates: bool = typer.Option(
        False, help="Import every suspected duplicate without review."
    ),
) -> None:
    """Import a bank/credit-card statement."""

    _exit(
        cmd_import_statement(
            str(csv_path),
            account_id=account_id,
            database_url=database_url,
            interactive=interactive,
            import_duplicates=import_duplicates,
        )
    )


@app.command("import-amazon")
def import_amazon_cmd(
    csv_path: Annotated[Path, CSV_PATH_OPTION],
    database_url: Annotated[str | None, DATABASE_URL_OPTION] = None,
    *,
    source: str = typer.Option(
        "auto", help="Report type: auto, onsite, offsite or creator_connections."
    ),
    confirm_mapping: bool = typer.Option(
        False, help="Review the detected column mapping and remember it."
    ),
) -> None:
    """Import an Amazon Associates / Creator Connections report."""

    if source not in {"auto", "onsite", "offsite", "creator_connections"}:
        _err(f"Unknown report source: {source}")
        raise typer.Exit(2)
    _exit(
        cmd_import_amazon(
            str(csv_path),
            source=source,
            database_url=database_url,
            confirm_mapping=confirm_mapping,
        )
    )


@app.command("import-youtube")
def import_youtube_cmd(
    csv_path: Annotated[Path, CSV_PATH_OPTION],
    database_url: Annotated[str | None, DATABASE_URL_OPTION] = None,
    *,
    confirm_mapping: bool = typer.Option(
        False, help="Review the detected column mapping and remember it."
    ),
) -> None:
    """Import a YouTube Studio content report."""

    _exit(
        cmd_import_youtube(
            str(csv_path), database_url=database_url, confirm_mapping=confirm_mapping
        )
    )


@app.command("apply-rules")
def apply_rules_cmd(
    database_url: Annotated[str | None, DATABASE_URL_OPTION] = None,
    *,
    rule_id: list[str] | None = typer.Option(
        None, help="Only apply these rule ids (repeatable)."
    ),
    dry_run: bool = typer.Option(False, help="Report what would change without saving."),
) -> None:
    """Re-run reconciliation rules over stored transactions."""

    _exit(cmd_apply_rules(rule_ids=rule_id or (), dry_run=dry_run, database_url=database_url))


@app.command("find-transfers")
def find_transfers_cmd(
    database_url: Annotated[str | None, DATABASE_URL_OPTION] = None,
    *,
    link: bool = typer.Option(False, help="Link every proposed group as a transfer."),
) -> None:
    """Propose transfer groups whose sides balance."""

    _exit(cmd_find_transfers(link=link, database_url=database_url))


@app.command("export-tsv")
def export_tsv_cmd(
    database_url: Annotated[str | None, DATABASE_URL_OPTION] = None,
    *,
    column: list[str] | None = typer.Option(
        None,
        help=(
            "Column to include (repeatable): date, description, original_description, "
            "payee, category, account, type, amount, tags, notes."
        ),
    ),
    copy: bool = typer.Option(False, help="Copy to the clipboard instead of printing."),
) -> None:
    """Export transactions as tab-separated values."""

    _exit(cmd_export_tsv(columns=column or (), copy=copy, database_url=database_url))


@app.callback(invoke_without_command=True)
def _root(
    ctx: typer.Context,
    *,
    log_level: str | None = typer.Option(
        None, help="Log level (falls back to FINANCE_TRACKER_LOG_LEVEL, default INFO)."
    ),
) -> None:
    """Root command.

    Loads ``.env`` from the current working directory (without overriding any
    already-set environment variables) and configures logging.
    """

    # Load environment from .env in CWD (override=False to keep existing env)
    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)

    # Central logging setup so child loggers inherit configuration
    configure_logging(log_level)
    _logger.debug("cli:start command=%s", ctx.invoked_subcommand or "-")

    if ctx.invoked_subcommand is None:
        # No subcommand provided - show help
        typer.echo("No subcommand provided. Use --help to see available commands.")
        raise typer.Exit(1)


if __name__ == "__main__":  # pragma: no cover - exercised via console script
    # Running as a module: `python -m finance_tracker.cli`
    app()
