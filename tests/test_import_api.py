import textwrap
from datetime import date
from decimal import Decimal
from pathlib import Path

import pytest

from finance_tracker import (
    MappingError,
    ReconciliationRule,
    Transaction,
    UnsupportedFormatError,
    import_amazon_report,
    import_bank_statement,
    import_youtube_report,
)
from finance_tracker.api import confirm_mapping, detect_mapping
from finance_tracker.ingest.adapters.youtube_report import process_youtube_rows
from finance_tracker.ingest.mapping import BankColumnMapping, YouTubeColumnMapping
from finance_tracker.ingest.utils import read_import_text
from finance_tracker.models import DEFAULT_TRANSACTION_TYPES, AmazonReportType, RawTable

DATA = Path(__file__).resolve().parent / "data"

EXPENSE = "default-expense-purchase"
INCOME = "default-income-deposit"


def _dedent(s: str) -> str:
    return textwrap.dedent(s).lstrip("\n").rstrip()


def _import(text: str, **kwargs):
    kwargs.setdefault("existing", [])
    kwargs.setdefault("transaction_types", DEFAULT_TRANSACTION_TYPES)
    return import_bank_statement(text, **kwargs)


# ----------------------------------------------------------------------------
# Bank statements
# ----------------------------------------------------------------------------


def test_bank_statement_single_amount_column():
    text = read_import_text(DATA / "checking_march_2024.csv")

    result = _import(text, account_id="acct-checking", source_filename="march.csv")

    assert [tx.description for tx in result.added] == [
        "Starbucks",
        "Payroll Acme Corp",
        "Shell Oil",
    ]
    coffee, payroll, gas = result.added
    assert coffee.date == date(2024, 3, 1)
    assert coffee.amount == Decimal("4.50")
    assert coffee.type_id == EXPENSE
    assert payroll.amount == Decimal("1500.00")
    assert payroll.type_id == INCOME
    assert gas.account_id == "acct-checking"
    assert gas.source_filename == "march.csv"
    assert gas.category == "Uncategorized"
    assert gas.metadata["Balance"] == "2450.50"
    assert result.duplicates == []
    assert result.ignored == []


def test_bank_statement_credit_debit_columns():
    text = _dedent(
        """
        Date,Description,Debit,Credit,Category
        01/02/2024,RENT PAYMENT,1200.00,,Housing
        01/03/2024,REFUND FROM STORE,,25.00,Shopping
        01/04/2024,NOTHING HERE,,,Other
        """
    )

    result = _import(text)

    assert [(tx.description, tx.amount, tx.type_id, tx.category) for tx in result.added] == [
        ("Rent Payment", Decimal("1200.00"), EXPENSE, "Housing"),
        ("Refund From Store", Decimal("25.00"), INCOME, "Shopping"),
    ]


def test_bank_statement_without_amount_columns_raises():
    text = "Date,Description,Memo\n01/02/2024,Coffee,note\n"

    with pytest.raises(MappingError):
        _import(text)


def test_bank_statement_without_header_raises():
    with pytest.raises(MappingError):
        _import("nothing to see here\n")


def test_bank_statement_rules_and_ignored_rows():
    text = read_import_text(DATA / "checking_march_2024.csv")
    rules = [
        ReconciliationRule.model_validate(
            {
                "id": "rule-coffee",
                "name": "Coffee",
                "conditions": [{"field": "description", "operator": "contains", "value": "star"}],
                "setCategoryId": "cat-dining",
            }
        ),
        ReconciliationRule.model_validate(
            {"id": "rule-payroll", "descriptionContains": "payroll", "skipImport": True}
        ),
    ]

    result = _import(text, rules=rules)

    assert [tx.description for tx in result.ignored] == ["Payroll Acme Corp"]
    assert [tx.description for tx in result.added] == ["Starbucks", "Shell Oil"]
    coffee = result.added[0]
    assert coffee.category_id == "cat-dining"
    assert coffee.applied_rule_ids == ["rule-coffee"]
    assert coffee.original_description == "Starbucks"


def test_bank_statement_reports_duplicates_against_existing():
    text = read_import_text(DATA / "checking_march_2024.csv")
    stored = Transaction(
        date=date(2024, 3, 3),
        description="SHELL OIL #4471",
        amount=Decimal("45.00"),
        type_id=EXPENSE,
        account_id="acct-checking",
    )

    result = _import(text, existing=[stored], account_id="acct-checking")

    assert len(result.added) == 2
    assert [(p.new_tx.description, p.existing_tx.id) for p in result.duplicates] == [
        ("Shell Oil", stored.id)
    ]


def test_bank_statement_explicit_mapping_overrides_detection():
    text = _dedent(
        """
        Date,Memo,Description,Amount
        01/05/2024,GROCERY RUN,ignored text,-30.00
        """
    )
    mapping = BankColumnMapping(date=0, description=1, amount=3)

    result = _import(text, mapping=mapping)

    assert [tx.description for tx in result.added] == ["Grocery Run"]


def test_detect_mapping_prefers_confirmed_cache():
    headers = ["Date", "Memo", "Description", "Amount"]
    detected, from_cache = detect_mapping("bank", headers)
    assert from_cache is False
    assert detected.description == 2

    confirm_mapping("bank", headers, detected.with_overrides(description=1))
    cached, from_cache = detect_mapping("bank", headers)

    assert from_cache is True
    assert cached.description == 1


def test_read_import_text_rejects_pdf(tmp_path):
    pdf = tmp_path / "statement.txt"
    pdf.write_bytes(b"%PDF-1.7 binary")

    with pytest.raises(UnsupportedFormatError):
        read_import_text(pdf)


def test_read_import_text_strips_bom_and_carriage_returns(tmp_path):
    path = tmp_path / "export.csv"
    path.write_bytes("\ufeffDate,Amount\r\n01/01/2024,1.00\r\n".encode())

    assert read_import_text(path) == "Date,Amount\n01/01/2024,1.00\n"


# ----------------------------------------------------------------------------
# Reports
# ----------------------------------------------------------------------------


def test_amazon_report_import():
    metrics = import_amazon_report(read_import_text(DATA / "amazon_earnings_jan_2024.csv"))

    assert [m.asin for m in metrics] == ["B000TEST01", "B000TEST02"]
    planner, lamp = metrics
    assert planner.date == date(2024, 1, 5)
    assert planner.title == "Budget Planner Notebook"
    assert planner.shipped_items == Decimal(2)
    assert planner.revenue == Decimal("1.50")
    assert planner.report_type == AmazonReportType.OFFSITE
    assert lamp.date == date(2024, 1, 7)
    assert lamp.revenue == Decimal("-2.10")
    assert lamp.report_type == AmazonReportType.ONSITE


def test_amazon_report_forced_source_and_conversion():
    text = _dedent(
        """
        ASIN,Date,Title,Clicks,Ordered Items,Earnings,Campaign Title
        B0CCAMP001,2024-02-01,Mic,200,5,12.00,Spring Launch
        """
    )

    (auto,) = import_amazon_report(text)
    (forced,) = import_amazon_report(text, source=AmazonReportType.OFFSITE)

    assert auto.report_type == AmazonReportType.CREATOR_CONNECTIONS
    assert auto.campaign_title == "Spring Launch"
    assert auto.conversion_rate == pytest.approx(2.5)
    assert forced.report_type == AmazonReportType.OFFSITE


def test_amazon_report_requires_asin():
    with pytest.raises(MappingError):
        import_amazon_report("Date,Title,Clicks\n2024-02-01,Mic,200\n")


def test_youtube_report_import():
    metrics = import_youtube_report(read_import_text(DATA / "youtube_content_2024.csv"))

    assert [m.video_id for m in metrics] == ["abc123xyz", "def456uvw"]
    budget, tour = metrics
    assert budget.title == "How I budget"
    assert budget.publish_date == date(2024, 1, 5)
    assert budget.views == Decimal(800)
    assert budget.watch_time_hours == Decimal("40.25")
    assert budget.revenue == Decimal("10.00")
    assert budget.ctr == Decimal("5.33")
    assert tour.publish_date is None


# ----------------------------------------------------------------------------
# Adapters
# ----------------------------------------------------------------------------


def test_process_youtube_rows_skips_footer_and_keeps_order():
    table = RawTable(
        headers=["Content", "Video title", "Estimated revenue"],
        rows=[
            ["abc123xyz", "How To Brew", "12.50"],
            ["Total", "", "12.50"],
            ["def456uvw", "Grinder Review", "3.00"],
        ],
    )
    mapping = YouTubeColumnMapping(content=0, title=1, revenue=2)

    metrics = list(process_youtube_rows(table, mapping))

    assert [(m.video_id, m.revenue) for m in metrics] == [
        ("abc123xyz", Decimal("12.50")),
        ("def456uvw", Decimal("3.00")),
    ]
