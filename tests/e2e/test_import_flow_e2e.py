from __future__ import annotations

from pathlib import Path

import pytest
from typer.testing import CliRunner

from finance_tracker.cli import app, cmd_import_statement
from finance_tracker.models import ReconciliationRule
from finance_tracker.persistence import DEFAULT_ACCOUNT_ID, DEFAULT_USER_ID
from tests.helpers.db import seed_collections, stored_collections

DATA = Path(__file__).resolve().parents[1] / "data"
STATEMENT = DATA / "checking_march_2024.csv"


def test_e2e_statement_import_then_reimport_skips_duplicates(
    db_url: str, capsys: pytest.CaptureFixture[str]
):
    # -------------------------
    # First import
    # -------------------------
    code = cmd_import_statement(str(STATEMENT), database_url=db_url, interactive=False)

    assert code == 0
    out = capsys.readouterr().out
    assert "Imported 3 transactions (0 duplicates skipped, 0 ignored by rules)." in out

    rows = stored_collections(db_url)["transactions"]
    assert [r["description"] for r in rows] == ["Starbucks", "Payroll Acme Corp", "Shell Oil"]
    assert {r["accountId"] for r in rows} == {DEFAULT_ACCOUNT_ID}
    assert {r["userId"] for r in rows} == {DEFAULT_USER_ID}
    assert {r["sourceFilename"] for r in rows} == {STATEMENT.name}

    # -------------------------
    # Same file again
    # -------------------------
    code = cmd_import_statement(str(STATEMENT), database_url=db_url, interactive=False)

    assert code == 0
    out = capsys.readouterr().out
    assert "Imported 0 transactions (3 duplicates skipped, 0 ignored by rules)." in out
    assert len(stored_collections(db_url)["transactions"]) == 3


def test_e2e_interactive_import_reviews_duplicates_and_caches_mapping(
    db_url: str, capsys: pytest.CaptureFixture[str]
):
    cmd_import_statement(str(STATEMENT), database_url=db_url, interactive=False)
    capsys.readouterr()

    asked: list[str] = []

    def keep_detected(field_name, headers, current):
        asked.append(field_name)
        return current

    answers = iter(["import", "skip all"])
    code = cmd_import_statement(
        str(STATEMENT),
        database_url=db_url,
        selector=lambda default: next(answers),
        prompt_fn=keep_detected,
    )

    assert code == 0
    assert "date" in asked
    out = capsys.readouterr().out
    assert "Imported 1 transactions (2 duplicates skipped, 0 ignored by rules)." in out
    assert len(stored_collections(db_url)["transactions"]) == 4

    # The confirmed mapping is cached, so a third run does not prompt again.
    asked.clear()
    cmd_import_statement(
        str(STATEMENT),
        database_url=db_url,
        selector=lambda default: "skip all",
        prompt_fn=keep_detected,
    )
    assert asked == []


def test_e2e_skip_import_rule_and_unknown_account(
    db_url: str, capsys: pytest.CaptureFixture[str]
):
    rule = ReconciliationRule.model_validate(
        {"id": "r-payroll", "name": "Payroll", "descriptionContains": "payroll", "skipImport": True}
    )
    seed_collections(database_url=db_url, collections={"reconciliationRules": [rule]})

    code = cmd_import_statement(str(STATEMENT), database_url=db_url, interactive=False)

    assert code == 0
    assert "Imported 2 transactions (0 duplicates skipped, 1 ignored by rules)." in (
        capsys.readouterr().out
    )

    code = cmd_import_statement(
        str(STATEMENT), account_id="acct-missing", database_url=db_url, interactive=False
    )
    assert code == 1
    assert "Unknown account: acct-missing" in capsys.readouterr().err


def test_e2e_missing_file_reports_error(tmp_path: Path, capsys: pytest.CaptureFixture[str]):
    code = cmd_import_statement(str(tmp_path / "nope.csv"), interactive=False)

    assert code == 1
    assert "File not found" in capsys.readouterr().err


# ----------------------------------------------------------------------------
# Console commands
# ----------------------------------------------------------------------------


def test_cli_reports_import_and_export(db_url: str):
    runner = CliRunner()

    result = runner.invoke(
        app,
        [
            "import-amazon",
            "--csv-path",
            str(DATA / "amazon_earnings_jan_2024.csv"),
            "--database-url",
            db_url,
        ],
    )
    assert result.exit_code == 0, result.output
    assert "Imported 2 Amazon metric rows." in result.stdout

    result = runner.invoke(
        app,
        [
            "import-youtube",
            "--csv-path",
            str(DATA / "youtube_content_2024.csv"),
            "--database-url",
            db_url,
        ],
    )
    assert result.exit_code == 0, result.output
    stored = stored_collections(db_url)
    assert [m["videoId"] for m in stored["youtubeMetrics"]] == ["abc123xyz", "def456uvw"]
    assert len(stored["amazonMetrics"]) == 2

    result = runner.invoke(
        app,
        [
            "import-statement",
            "--csv-path",
            str(STATEMENT),
            "--database-url",
            db_url,
            "--no-interactive",
        ],
    )
    assert result.exit_code == 0, result.output

    result = runner.invoke(
        app,
        ["export-tsv", "--database-url", db_url, "--column", "date", "--column", "amount"],
    )
    assert result.exit_code == 0, result.output
    assert result.stdout.splitlines()[:2] == ["Date\tAmount", "2024-03-01\t4.50"]


def test_cli_find_transfers_and_apply_rules(db_url: str):
    seed_collections(
        database_url=db_url,
        collections={
            "transactions": [
                {
                    "id": "pay",
                    "date": "2024-03-01",
                    "description": "Card Payment",
                    "amount": 500,
                    "typeId": "default-transfer-payment",
                    "accountId": "checking",
                },
                {
                    "id": "c1",
                    "date": "2024-03-02",
                    "description": "Groceries",
                    "amount": 300,
                    "typeId": "default-expense-purchase",
                    "accountId": "card",
                },
                {
                    "id": "c2",
                    "date": "2024-03-03",
                    "description": "Fuel",
                    "amount": 200,
                    "typeId": "default-expense-purchase",
                    "accountId": "card",
                },
            ],
            "reconciliationRules": [
                {
                    "id": "r-fuel",
                    "name": "Fuel",
                    "conditions": [
                        {"field": "description", "operator": "contains", "value": "fuel"}
                    ],
                    "setCategoryId": "default-transportation",
                }
            ],
        },
    )
    runner = CliRunner()

    result = runner.invoke(app, ["find-transfers", "--database-url", db_url])
    assert result.exit_code == 0, result.output
    assert result.stdout.startswith("Group 1: 2024-03-01 Card Payment 500.00")

    result = runner.invoke(app, ["find-transfers", "--database-url", db_url, "--link"])
    assert "Linked 1 groups." in result.stdout
    link_ids = {r.get("linkGroupId") for r in stored_collections(db_url)["transactions"]}
    assert len(link_ids) == 1 and None not in link_ids

    result = runner.invoke(app, ["apply-rules", "--database-url", db_url, "--dry-run"])
    assert "Fuel\t1 transactions would change" in result.stdout

    result = runner.invoke(app, ["apply-rules", "--database-url", db_url])
    assert "Updated 1 transactions." in result.stdout

    result = runner.invoke(app, ["apply-rules", "--database-url", db_url, "--rule-id", "nope"])
    assert result.exit_code == 1
